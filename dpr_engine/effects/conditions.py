"""
Condition expressions for the effect DSL.

Conditions are small tagged pydantic models that can be serialized, stored
and evaluated against an evaluation context without ever executing text.
Values are looked up through dotted paths ("combat.flanking",
"target.conditions", "attack.advantage_state") that may only descend into
public, non-callable attributes of a fixed set of roots.
"""

from collections.abc import Mapping
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field

from dpr_engine.core.logging import log_debug

# Roots a condition path is allowed to start from.
ALLOWED_ROOTS = frozenset(
    {"build", "stats", "target", "combat", "attack", "resources"}
)

Scalar = Union[bool, int, float, str, None]


class PathError(ValueError):
    """Raised when a condition path is not allowed."""


def _normalize(value: Any) -> Any:
    """Reduces enums to their values and strings to lowercase."""
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, str):
        return value.lower()
    if isinstance(value, (set, frozenset, list, tuple)):
        return {_normalize(item) for item in value}
    return value


def resolve_path(context: Mapping[str, Any], path: str) -> Any:
    """
    Resolves a dotted path against the evaluation context.

    Args:
        context (Mapping[str, Any]):
            The evaluation context, keyed by root name.
        path (str):
            The dotted path, e.g. "combat.flanking".

    Returns:
        Any:
            The resolved value, or None if any segment is missing.

    Raises:
        PathError:
            If the root is not allowed or a segment is private.

    """
    segments = path.split(".")
    root = segments[0]
    if root not in ALLOWED_ROOTS:
        raise PathError(f"Unknown condition root '{root}' in path '{path}'")

    current: Any = context.get(root)
    for segment in segments[1:]:
        if not segment or segment.startswith("_") or segment.startswith("model_"):
            raise PathError(f"Segment '{segment}' of path '{path}' is not accessible")
        if current is None:
            return None
        if isinstance(current, Mapping):
            current = current.get(segment)
        else:
            current = getattr(current, segment, None)
        if callable(current):
            raise PathError(f"Path '{path}' resolves to a callable")
    return current


class AlwaysCondition(BaseModel):
    """A condition that always holds."""

    kind: Literal["always"] = "always"

    def is_met(self, context: Mapping[str, Any]) -> bool:
        return True

    def describe(self) -> str:
        return "always"


class FlagCondition(BaseModel):
    """Holds when the value at `path` is truthy."""

    kind: Literal["flag"] = "flag"
    path: str = Field(description="Dotted path to a boolean-like value.")

    def is_met(self, context: Mapping[str, Any]) -> bool:
        return bool(resolve_path(context, self.path))

    def describe(self) -> str:
        return self.path


class EqualsCondition(BaseModel):
    """Holds when the value at `path` equals `value`."""

    kind: Literal["equals"] = "equals"
    path: str = Field(description="Dotted path to compare.")
    value: Scalar = Field(description="Expected value.")

    def is_met(self, context: Mapping[str, Any]) -> bool:
        return _normalize(resolve_path(context, self.path)) == _normalize(self.value)

    def describe(self) -> str:
        return f"{self.path} == {self.value!r}"


class ContainsCondition(BaseModel):
    """Holds when the collection at `path` contains `value`."""

    kind: Literal["contains"] = "contains"
    path: str = Field(description="Dotted path to a collection.")
    value: Scalar = Field(description="Member to look for.")

    def is_met(self, context: Mapping[str, Any]) -> bool:
        collection = resolve_path(context, self.path)
        if collection is None:
            return False
        if isinstance(collection, str):
            return _normalize(self.value) in collection.lower()
        return _normalize(self.value) in _normalize(collection)

    def describe(self) -> str:
        return f"{self.value!r} in {self.path}"


class CompareCondition(BaseModel):
    """Holds when the numeric value at `path` compares favorably to `value`."""

    kind: Literal["compare"] = "compare"
    path: str = Field(description="Dotted path to a number.")
    op: Literal["<", "<=", ">", ">=", "==", "!="] = Field(
        description="Comparison operator."
    )
    value: float = Field(description="Right-hand side of the comparison.")

    def is_met(self, context: Mapping[str, Any]) -> bool:
        left = resolve_path(context, self.path)
        if not isinstance(left, (int, float)) or isinstance(left, bool):
            return False
        if self.op == "<":
            return left < self.value
        if self.op == "<=":
            return left <= self.value
        if self.op == ">":
            return left > self.value
        if self.op == ">=":
            return left >= self.value
        if self.op == "==":
            return left == self.value
        return left != self.value

    def describe(self) -> str:
        return f"{self.path} {self.op} {self.value:g}"


class AllOfCondition(BaseModel):
    """Holds when every nested condition holds."""

    kind: Literal["all_of"] = "all_of"
    conditions: list["Condition"] = Field(default_factory=list)

    def is_met(self, context: Mapping[str, Any]) -> bool:
        return all(condition.is_met(context) for condition in self.conditions)

    def describe(self) -> str:
        return "(" + " and ".join(c.describe() for c in self.conditions) + ")"


class AnyOfCondition(BaseModel):
    """Holds when at least one nested condition holds."""

    kind: Literal["any_of"] = "any_of"
    conditions: list["Condition"] = Field(default_factory=list)

    def is_met(self, context: Mapping[str, Any]) -> bool:
        return any(condition.is_met(context) for condition in self.conditions)

    def describe(self) -> str:
        return "(" + " or ".join(c.describe() for c in self.conditions) + ")"


class NotCondition(BaseModel):
    """Negates a nested condition."""

    kind: Literal["not"] = "not"
    condition: "Condition"

    def is_met(self, context: Mapping[str, Any]) -> bool:
        return not self.condition.is_met(context)

    def describe(self) -> str:
        return f"not {self.condition.describe()}"


Condition = Annotated[
    Union[
        AlwaysCondition,
        FlagCondition,
        EqualsCondition,
        ContainsCondition,
        CompareCondition,
        AllOfCondition,
        AnyOfCondition,
        NotCondition,
    ],
    Field(discriminator="kind"),
]

AllOfCondition.model_rebuild()
AnyOfCondition.model_rebuild()
NotCondition.model_rebuild()


def evaluate(condition: Condition, context: Mapping[str, Any]) -> bool:
    """
    Evaluates a condition, logging the outcome.

    Args:
        condition (Condition):
            The condition to evaluate.
        context (Mapping[str, Any]):
            The evaluation context.

    Returns:
        bool:
            True if the condition holds, False otherwise.

    """
    result = condition.is_met(context)
    log_debug("Evaluated condition", {"condition": condition.describe(), "result": result})
    return result


# ==============================================================================
# CONSTRUCTION HELPERS
# ==============================================================================


def always() -> AlwaysCondition:
    return AlwaysCondition()


def flag(path: str) -> FlagCondition:
    return FlagCondition(path=path)


def equals(path: str, value: Scalar) -> EqualsCondition:
    return EqualsCondition(path=path, value=value)


def contains(path: str, value: Scalar) -> ContainsCondition:
    return ContainsCondition(path=path, value=value)


def compare(path: str, op: str, value: float) -> CompareCondition:
    return CompareCondition(path=path, op=op, value=value)


def all_of(*conditions: Condition) -> AllOfCondition:
    return AllOfCondition(conditions=list(conditions))


def any_of(*conditions: Condition) -> AnyOfCondition:
    return AnyOfCondition(conditions=list(conditions))


def not_(condition: Condition) -> NotCondition:
    return NotCondition(condition=condition)
