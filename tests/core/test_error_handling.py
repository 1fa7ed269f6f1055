"""
Tests for the error handler and validation helpers.
"""

import pytest

from dpr_engine.core.error_handling import (
    EngineError,
    ErrorHandler,
    ErrorSeverity,
    FormatError,
    ensure_int_in_range,
    require_non_empty_string,
    safe_operation,
)


@pytest.fixture
def handler():
    """A fresh error handler with an empty history."""
    return ErrorHandler()


def test_format_error_hierarchy():
    """
    Test that FormatError can be caught both as an engine error and a ValueError.
    """
    error = FormatError("2d", "missing sides")
    assert isinstance(error, EngineError)
    assert isinstance(error, ValueError)
    assert "2d" in str(error)
    assert "missing sides" in str(error)


def test_safe_execute_returns_result(handler):
    assert handler.safe_execute(lambda: 42, 0, "should not fail") == 42
    assert handler.history == []


def test_safe_execute_returns_default_and_records(handler):
    """
    Test that a failing operation returns the default and is recorded.
    """

    def fail():
        raise ValueError("boom")

    result = handler.safe_execute(
        fail, -1, "Operation failed", ErrorSeverity.HIGH, {"step": "test"}
    )
    assert result == -1
    assert len(handler.history) == 1
    issue = handler.history[0]
    assert issue.severity == ErrorSeverity.HIGH
    assert issue.context == {"step": "test"}
    assert "boom" in issue.message


def test_safe_execute_propagates_unexpected_errors(handler):
    """
    Test that errors outside the engine's own are not swallowed.
    """

    def fail():
        raise KeyError("missing")

    with pytest.raises(KeyError):
        handler.safe_execute(fail, None, "Operation failed")


def test_safe_operation_decorator():
    """
    Test that the decorator returns the default value when the function fails.
    """

    @safe_operation(default_value=0.0, error_message="Division failed")
    def divide(a, b):
        if b == 0:
            raise ValueError("division by zero")
        return a / b

    assert divide(6, 3) == 2.0
    assert divide(1, 0) == 0.0
    assert divide.__name__ == "divide"


def test_ensure_int_in_range_keeps_valid_values():
    assert ensure_int_in_range(3, "rounds", 1, 20) == 3


@pytest.mark.parametrize(
    "value, expected", [(0, 1), (25, 20), (-4, 1), ("7", 7), ("abc", 1), (True, 1)]
)
def test_ensure_int_in_range_corrects_values(value, expected):
    """
    Test that out-of-range or non-integer values are corrected.
    """
    assert ensure_int_in_range(value, "rounds", 1, 20) == expected


def test_ensure_int_in_range_without_maximum():
    assert ensure_int_in_range(500, "level", 1) == 500


@pytest.mark.parametrize("value", ["", "   ", None, 5])
def test_require_non_empty_string_raises(value):
    with pytest.raises(ValueError):
        require_non_empty_string(value, "effect name")


def test_require_non_empty_string_returns_value():
    assert require_non_empty_string("Smite", "effect name") == "Smite"
