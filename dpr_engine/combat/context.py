"""
Evaluation context module for the DPR engine.

Builds the read-only mapping that condition expressions are evaluated
against. Only the roots listed here are reachable from a condition.
"""

from typing import Any

from dpr_engine.character.build import Build
from dpr_engine.character.build_stats import BuildStats
from dpr_engine.character.target import CombatContext, Target
from dpr_engine.effects.conditions import AnyOfCondition, any_of, contains
from dpr_engine.effects.event_system import AttackEvent


def build_context(
    build: Build,
    target: Target,
    combat: CombatContext,
    attack: AttackEvent | None = None,
    resources: dict[str, int] | None = None,
    stats: BuildStats | None = None,
) -> dict[str, Any]:
    """
    Assembles the evaluation context for condition expressions.

    Args:
        build (Build):
            The attacker's build.
        target (Target):
            The creature being attacked.
        combat (CombatContext):
            The circumstances of the attack.
        attack (AttackEvent | None):
            The attack being evaluated; defaults to a main-hand attack.
        resources (dict[str, int] | None):
            Remaining resources by name, as reported by a resource snapshot.
        stats (BuildStats | None):
            Precomputed stats for the build.

    Returns:
        dict[str, Any]:
            The context keyed by root name.

    """
    stats = stats or BuildStats(build)
    if attack is None:
        weapon = stats.main_hand
        attack = AttackEvent(
            attack_type=weapon.attack_type,
            weapon_properties=weapon.properties,
        )
    return {
        "build": build,
        "stats": stats,
        "target": target,
        "combat": combat,
        "attack": attack,
        "resources": dict(resources or {}),
    }


def target_has(condition: str) -> AnyOfCondition:
    """Condition that holds when the target has `condition` from any source."""
    return any_of(
        contains("target.conditions", condition),
        contains("combat.target_conditions", condition),
    )
