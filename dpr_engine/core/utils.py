"""
Utilities module for the DPR engine.

Provides small shared helpers: ability modifiers, clamping and the rich
console used for colored output.
"""

from typing import Any

from rich.console import Console
from rich.rule import Rule

# Initialize the rich console.
_console = Console(markup=True, width=120, force_terminal=True, force_jupyter=False)


def cprint(*args: Any, **kwargs: Any) -> None:
    """
    Custom print function to handle colored output.

    Args:
        *args: Arguments to pass to the console print function.
        **kwargs: Keyword arguments to pass to the console print function.

    """
    _console.print(*args, **kwargs)


def crule(*args: Any, **kwargs: Any) -> None:
    """Prints a horizontal rule, e.g. a section title."""
    _console.print(Rule(*args, **kwargs))


def ccapture(content: Any) -> str:
    """
    Captures console output as a string.

    Args:
        content (Any): The content to capture.

    Returns:
        str: The captured output as a string.

    """
    with _console.capture() as capture:
        _console.print(content, markup=True, end="")
    return capture.get()


def get_stat_modifier(score: int) -> int:
    """
    Calculates the D&D ability score modifier.

    Args:
        score (int): The ability score.

    Returns:
        int: The modifier for the given ability score.

    """
    return (score - 10) // 2


def clamp(value: float, lower: float, upper: float) -> float:
    """Restricts value to the closed interval [lower, upper]."""
    return max(lower, min(upper, value))


def proficiency_for_level(level: int) -> int:
    """
    Returns the proficiency bonus for a total character level.

    Args:
        level (int): The total character level (1-20).

    Returns:
        int: The proficiency bonus (2-6).

    """
    return 2 + (max(1, min(20, level)) - 1) // 4


def normalize_names(value: Any) -> frozenset[str]:
    """
    Normalizes a name or collection of names to a lowercase frozenset.

    Args:
        value (Any): None, a single name, or an iterable of names.

    Returns:
        frozenset[str]: The stripped, lowercased names.

    """
    if value is None:
        return frozenset()
    if isinstance(value, str):
        value = [value]
    return frozenset(str(item).strip().lower() for item in value)
