"""
Advantage module for the DPR engine.

Merges independently triggered advantage and disadvantage sources into a
single roll state. Sources are declared as data (a condition expression
each) and evaluated against the attack's context; any advantage together
with any disadvantage cancels out, regardless of how many of each apply.
"""

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from dpr_engine.character.build import Build
from dpr_engine.character.target import CombatContext, Target
from dpr_engine.core.constants import AdvantageKind, AdvantageState, AttackRange, Cover
from dpr_engine.core.logging import log_debug
from dpr_engine.effects.conditions import (
    AlwaysCondition,
    Condition,
    all_of,
    any_of,
    contains,
    equals,
    flag,
    not_,
)
from dpr_engine.effects.event_system import AttackEvent

from .context import build_context, target_has
from .probability import ProbabilityModel


class AdvantageSource(BaseModel):
    """A single reason the attack roll gains advantage or disadvantage."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Stable identifier of the source.")
    name: str = Field(description="Name listed in the resolution reasoning.")
    kind: AdvantageKind = Field(description="Advantage or disadvantage.")
    condition: Condition = Field(
        default_factory=AlwaysCondition,
        description="When the source applies.",
    )
    description: str = Field(default="", description="Rules summary.")

    def applies(self, context: Mapping[str, Any]) -> bool:
        return self.condition.is_met(context)


class AdvantageResolution(BaseModel):
    """Outcome of merging every applicable source."""

    state: AdvantageState
    advantage_sources: list[str] = Field(default_factory=list)
    disadvantage_sources: list[str] = Field(default_factory=list)
    reasoning: str = ""


def _source(
    source_id: str, name: str, kind: AdvantageKind, condition: Condition, description: str
) -> AdvantageSource:
    return AdvantageSource(
        id=source_id, name=name, kind=kind, condition=condition, description=description
    )


_ADV = AdvantageKind.ADVANTAGE
_DIS = AdvantageKind.DISADVANTAGE

DEFAULT_SOURCES: tuple[AdvantageSource, ...] = (
    _source(
        "flanking", "Flanking", _ADV, flag("combat.flanking"),
        "An ally is on the opposite side of the target.",
    ),
    _source(
        "hidden", "Unseen Attacker", _ADV, flag("combat.hidden"),
        "The target cannot see the attacker.",
    ),
    _source(
        "target-prone-melee", "Target Prone", _ADV,
        all_of(target_has("prone"), equals("attack.attack_type", "melee")),
        "Melee attacks against a prone target have advantage.",
    ),
    _source(
        "target-restrained", "Target Restrained", _ADV, target_has("restrained"),
        "Attacks against a restrained creature have advantage.",
    ),
    _source(
        "target-paralyzed", "Target Paralyzed", _ADV, target_has("paralyzed"),
        "Attacks against a paralyzed creature have advantage.",
    ),
    _source(
        "target-stunned", "Target Stunned", _ADV, target_has("stunned"),
        "Attacks against a stunned creature have advantage.",
    ),
    _source(
        "target-unconscious", "Target Unconscious", _ADV, target_has("unconscious"),
        "Attacks against an unconscious creature have advantage.",
    ),
    _source(
        "target-blinded", "Target Blinded", _ADV, target_has("blinded"),
        "Attacks against a creature that cannot see have advantage.",
    ),
    _source(
        "reckless-attack", "Reckless Attack", _ADV,
        all_of(flag("combat.reckless_attack"), equals("attack.attack_type", "melee")),
        "Barbarian melee attacks made recklessly.",
    ),
    _source(
        "pack-tactics", "Pack Tactics", _ADV,
        all_of(contains("build.features", "pack tactics"), flag("combat.ally_within_5ft")),
        "An ally of the attacker is within 5 ft of the target.",
    ),
    _source(
        "archery-style", "Archery Style", _ADV,
        all_of(
            contains("build.fighting_styles", "archery"),
            equals("attack.attack_type", "ranged"),
        ),
        "Ranged accuracy from the Archery fighting style.",
    ),
    _source(
        "target-prone-ranged", "Target Prone (ranged)", _DIS,
        all_of(target_has("prone"), equals("attack.attack_type", "ranged")),
        "Ranged attacks against a prone target have disadvantage.",
    ),
    _source(
        "attacker-blinded", "Attacker Blinded", _DIS,
        contains("combat.attacker_conditions", "blinded"),
        "The attacker cannot see.",
    ),
    _source(
        "attacker-poisoned", "Attacker Poisoned", _DIS,
        contains("combat.attacker_conditions", "poisoned"),
        "Poisoned creatures attack with disadvantage.",
    ),
    _source(
        "attacker-frightened", "Attacker Frightened", _DIS,
        contains("combat.attacker_conditions", "frightened"),
        "The source of fear is in sight.",
    ),
    _source(
        "attacker-restrained", "Attacker Restrained", _DIS,
        contains("combat.attacker_conditions", "restrained"),
        "Restrained creatures attack with disadvantage.",
    ),
    _source(
        "attacker-prone", "Attacker Prone", _DIS,
        contains("combat.attacker_conditions", "prone"),
        "Prone creatures attack with disadvantage.",
    ),
    _source(
        "target-dodging", "Target Dodging", _DIS,
        contains("combat.target_actions", "dodge"),
        "The target took the Dodge action.",
    ),
    _source(
        "long-range", "Long Range", _DIS,
        equals("combat.range", AttackRange.LONG.value),
        "The target is beyond the weapon's normal range.",
    ),
    _source(
        "partial-cover", "Partial Cover", _DIS,
        any_of(
            equals("combat.cover", Cover.HALF.value),
            equals("combat.cover", Cover.THREE_QUARTERS.value),
        ),
        "The target is partially obscured.",
    ),
    _source(
        "darkness", "Darkness", _DIS,
        all_of(equals("combat.lighting", "darkness"), not_(flag("stats.darkvision"))),
        "The target is in darkness and the attacker lacks darkvision.",
    ),
)


class AdvantageResolver:
    """
    Resolves the net advantage state from an ordered catalog of sources.

    Attributes:
        sources (tuple[AdvantageSource, ...]):
            The catalog, evaluated in order.

    """

    def __init__(self, sources: tuple[AdvantageSource, ...] = DEFAULT_SOURCES) -> None:
        self.sources = tuple(sources)

    def resolve(self, context: Mapping[str, Any]) -> AdvantageResolution:
        """
        Resolves the roll state for an evaluation context.

        Args:
            context (Mapping[str, Any]):
                The evaluation context (see `build_context`).

        Returns:
            AdvantageResolution:
                The resolved state, the contributing sources and a
                human-readable reasoning.

        """
        combat = context.get("combat")
        override = getattr(combat, "advantage_override", None)
        if override is not None:
            return AdvantageResolution(
                state=override,
                reasoning=f"Advantage state set explicitly: {override.value}",
            )

        advantage = [
            s.name for s in self.sources if s.kind == _ADV and s.applies(context)
        ]
        disadvantage = [
            s.name for s in self.sources if s.kind == _DIS and s.applies(context)
        ]

        if advantage and disadvantage:
            state = AdvantageState.NORMAL
            reasoning = (
                "Advantage and disadvantage cancel out "
                f"({len(advantage)} advantage, {len(disadvantage)} disadvantage sources)"
            )
        elif advantage:
            stats = context.get("stats")
            if getattr(stats, "elven_accuracy", False):
                state = AdvantageState.TRIPLE_ADVANTAGE
                reasoning = "Triple advantage from: " + ", ".join(advantage)
            else:
                state = AdvantageState.ADVANTAGE
                reasoning = "Advantage from: " + ", ".join(advantage)
        elif disadvantage:
            state = AdvantageState.DISADVANTAGE
            reasoning = "Disadvantage from: " + ", ".join(disadvantage)
        else:
            state = AdvantageState.NORMAL
            reasoning = "No advantage or disadvantage sources apply"

        log_debug("Resolved advantage", {"state": state.value, "reasoning": reasoning})
        return AdvantageResolution(
            state=state,
            advantage_sources=advantage,
            disadvantage_sources=disadvantage,
            reasoning=reasoning,
        )

    def resolve_for(
        self,
        build: Build,
        target: Target,
        combat: CombatContext,
        attack: AttackEvent | None = None,
    ) -> AdvantageResolution:
        """Convenience wrapper building the context first."""
        return self.resolve(build_context(build, target, combat, attack))


# ==============================================================================
# ANALYSIS HELPERS
# ==============================================================================


class AdvantageSweepRow(BaseModel):
    """Hit chance of every advantage state against one AC."""

    armor_class: int
    hit_chances: dict[AdvantageState, float]

    @property
    def advantage_gain(self) -> float:
        return (
            self.hit_chances[AdvantageState.ADVANTAGE]
            - self.hit_chances[AdvantageState.NORMAL]
        )


def sweep_advantage_states(
    attack_bonus: float, ac_range: range = range(10, 26), crit_range: int = 1
) -> list[AdvantageSweepRow]:
    """
    Hit chances of every advantage state across a range of ACs.

    Args:
        attack_bonus (float):
            The attack bonus.
        ac_range (range):
            The ACs to evaluate.
        crit_range (int):
            Number of d20 faces that crit.

    Returns:
        list[AdvantageSweepRow]:
            One row per AC.

    """
    rows = []
    for armor_class in ac_range:
        table = ProbabilityModel.table(attack_bonus, armor_class, crit_range)
        rows.append(
            AdvantageSweepRow(
                armor_class=armor_class,
                hit_chances={state: probs.hit for state, probs in table.items()},
            )
        )
    return rows


class AdvantageRecommendation(BaseModel):
    """A tactical change and the roll state it would produce."""

    action: str
    resulting_state: AdvantageState
    reasoning: str


def recommend_advantage_sources(
    build: Build,
    target: Target,
    combat: CombatContext,
    resolver: AdvantageResolver | None = None,
) -> list[AdvantageRecommendation]:
    """
    Suggests context changes that would improve the roll state.

    Each candidate change (flank, hide, attack recklessly, close to normal
    range, get around cover) is re-resolved and kept only if it improves
    the current state.

    Args:
        build (Build):
            The attacker's build.
        target (Target):
            The creature being attacked.
        combat (CombatContext):
            The current circumstances.
        resolver (AdvantageResolver | None):
            The resolver to use.

    Returns:
        list[AdvantageRecommendation]:
            Improving changes, in catalog order.

    """
    resolver = resolver or AdvantageResolver()
    rank = {
        AdvantageState.DISADVANTAGE: 0,
        AdvantageState.NORMAL: 1,
        AdvantageState.ADVANTAGE: 2,
        AdvantageState.TRIPLE_ADVANTAGE: 3,
    }
    current = resolver.resolve_for(build, target, combat).state

    candidates: list[tuple[str, dict[str, Any]]] = [
        ("Move to flank the target", {"flanking": True}),
        ("Hide before attacking", {"hidden": True}),
        ("Close to normal range", {"range": AttackRange.NORMAL}),
        ("Reposition to remove cover", {"cover": Cover.NONE}),
    ]
    if build.class_level("barbarian") >= 2:
        candidates.append(("Attack recklessly", {"reckless_attack": True}))

    recommendations = []
    for action, update in candidates:
        if all(getattr(combat, key) == value for key, value in update.items()):
            continue
        resolution = resolver.resolve_for(build, target, combat.model_copy(update=update))
        if rank[resolution.state] > rank[current]:
            recommendations.append(
                AdvantageRecommendation(
                    action=action,
                    resulting_state=resolution.state,
                    reasoning=resolution.reasoning,
                )
            )
    return recommendations
