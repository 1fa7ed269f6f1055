"""
Effects module for the DPR engine.

Contains the trigger types and attack events, the sandboxed condition
language homebrew effects are written in, and the effect descriptors
themselves.
"""

# Import the event system.
from .event_system import AttackEvent, TriggerType

# Import the condition language.
from .conditions import (
    ALLOWED_ROOTS,
    PathError,
    all_of,
    always,
    any_of,
    compare,
    contains,
    equals,
    evaluate,
    flag,
    not_,
    resolve_path,
)

# Import effect descriptors.
from .effect_descriptor import (
    CritRangePayload,
    DamagePayload,
    EffectDescriptor,
    ResourceCost,
    ToHitPayload,
    effects_for_trigger,
)

__all__ = [
    # Event system
    "AttackEvent",
    "TriggerType",
    # Conditions
    "ALLOWED_ROOTS",
    "PathError",
    "all_of",
    "always",
    "any_of",
    "compare",
    "contains",
    "equals",
    "evaluate",
    "flag",
    "not_",
    "resolve_path",
    # Descriptors
    "CritRangePayload",
    "DamagePayload",
    "EffectDescriptor",
    "ResourceCost",
    "ToHitPayload",
    "effects_for_trigger",
]
