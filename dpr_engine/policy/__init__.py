"""
Policy module for the DPR engine.

Contains the class resource tables, the resource manager tracking what a
build spends, and the policy engine deciding how those resources are used.
"""

# Import from class_resources.py
from .class_resources import (
    ClassResources,
    PactSlots,
    caster_type,
    class_resources_for,
    pact_slots_for,
    spell_slots_for,
)

# Import from resource_manager.py
from .resource_manager import (
    PACT_SLOT,
    SPELL_SLOT,
    EfficiencyAnalysis,
    ResourceManager,
    ResourceSnapshot,
    ResourceUsage,
    RestBenefit,
)

# Import from policy_engine.py
from .policy_engine import (
    CombatPolicyContext,
    PartyContext,
    PolicyAlternative,
    PolicyDecision,
    PolicyEngine,
    evaluate_policy_effectiveness,
    neutral_decision,
)

__all__ = [
    "ClassResources",
    "PactSlots",
    "caster_type",
    "class_resources_for",
    "pact_slots_for",
    "spell_slots_for",
    "PACT_SLOT",
    "SPELL_SLOT",
    "EfficiencyAnalysis",
    "ResourceManager",
    "ResourceSnapshot",
    "ResourceUsage",
    "RestBenefit",
    "CombatPolicyContext",
    "PartyContext",
    "PolicyAlternative",
    "PolicyDecision",
    "PolicyEngine",
    "evaluate_policy_effectiveness",
    "neutral_decision",
]
