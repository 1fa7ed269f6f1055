"""
Once-per-turn module for the DPR engine.

Features such as Sneak Attack or Divine Smite add damage to at most one
attack per turn. This module builds the list of such effects for a build,
evaluates every (effect, attack) pairing and selects the one with the
highest expected damage.
"""

from collections.abc import Sequence
from enum import Enum
from typing import Literal

from catchery import log_warning
from pydantic import BaseModel, ConfigDict, Field

from dpr_engine.character.build import Build
from dpr_engine.character.build_stats import BuildStats
from dpr_engine.character.target import CombatContext, Target
from dpr_engine.core.constants import (
    MAX_ALTERNATIVES,
    AttackType,
    DamageType,
    OncePerTurnPolicy,
    ResourceType,
)
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
from dpr_engine.effects.effect_descriptor import DamagePayload, ResourceCost
from dpr_engine.effects.event_system import AttackEvent, TriggerType

from .advantage import AdvantageResolver
from .context import build_context
from .damage import AttackSequence, DamageAggregator, DamageSource, feature_source, spell_source
from .probability import AttackProbabilities, ProbabilityModel

# Creature types Divine Smite deals an extra 1d8 against.
SMITE_BONUS_CREATURE_TYPES = ("undead", "fiend")


class OncePerTurnEffect(BaseModel):
    """
    A bonus damage effect usable on at most one attack per turn.

    Attributes:
        name (str):
            Display name.
        priority (int):
            Tie-breaker between effects with the same expected damage.
        trigger (TriggerType):
            ON_CRIT effects only add damage on critical hits.
        condition (Condition):
            Evaluated per attack against the evaluation context.
        damage (tuple[DamageSource, ...]):
            The damage added to the attack.
        resource_cost (ResourceCost | None):
            Resource spent when the effect is used.

    """

    model_config = ConfigDict(frozen=True)

    name: str
    priority: int = 10
    trigger: TriggerType = TriggerType.ON_HIT
    condition: Condition = Field(default_factory=AlwaysCondition)
    damage: tuple[DamageSource, ...]
    resource_cost: ResourceCost | None = None
    description: str = ""

    def expected_damage(
        self, hit: float, crit: float, target: Target | None = None
    ) -> float:
        """
        Expected damage of the effect on an attack with the given odds.

        Args:
            hit (float):
                Probability the attack hits, crits included.
            crit (float):
                Probability the attack crits.
            target (Target | None):
                Supplies damage defenses.

        Returns:
            float: `(hit - crit) * base + crit * crit_doubled(base)`.

        """
        if self.trigger == TriggerType.ON_CRIT:
            critical = DamageAggregator.total(self.damage, True, target).total
            return crit * critical
        sequence = AttackSequence(
            hit_probability=hit, crit_probability=crit, normal_damage=self.damage
        )
        return DamageAggregator.expected_per_attack(sequence, target)


class OncePerTurnOption(BaseModel):
    """The best attack for one effect."""

    name: str
    attack_index: int
    expected_damage: float
    priority: int


class OncePerTurnAnalysis(BaseModel):
    """Outcome of the once-per-turn selection."""

    selected: str | None = None
    attack_index: int | None = None
    expected_damage: float = 0.0
    priority: int = 0
    resource_cost: ResourceCost | None = None
    alternatives: list[OncePerTurnOption] = Field(default_factory=list)
    trigger_probability: float = 0.0
    expected_by_index: dict[int, float] = Field(
        default_factory=dict,
        description="Expected damage of the selected effect on each qualifying attack.",
    )
    reasoning: str = "No once-per-turn effects available"


# ==============================================================================
# EFFECT CATALOG
# ==============================================================================


def _sneak_attack_condition() -> Condition:
    return all_of(
        any_of(
            contains("attack.weapon_properties", "finesse"),
            equals("attack.attack_type", AttackType.RANGED.value),
        ),
        any_of(
            equals("attack.advantage_state", "advantage"),
            equals("attack.advantage_state", "triple-advantage"),
            flag("combat.ally_within_5ft"),
        ),
        not_(equals("attack.advantage_state", "disadvantage")),
    )


def build_once_per_turn_effects(
    build: Build,
    target: Target | None = None,
    stats: BuildStats | None = None,
) -> list[OncePerTurnEffect]:
    """
    Lists the once-per-turn effects available to a build.

    Args:
        build (Build):
            The build.
        target (Target | None):
            The target, used for creature-type specific damage.
        stats (BuildStats | None):
            Precomputed stats for the build.

    Returns:
        list[OncePerTurnEffect]:
            The effects, highest priority first.

    """
    stats = stats or BuildStats(build)
    weapon_type = stats.main_hand.damage_type
    effects: list[OncePerTurnEffect] = []

    if stats.sneak_attack_dice:
        dice = f"{stats.sneak_attack_dice}d6"
        effects.append(
            OncePerTurnEffect(
                name="Sneak Attack",
                priority=100,
                condition=_sneak_attack_condition(),
                damage=(feature_source("Sneak Attack", dice, weapon_type),),
                description=f"{dice} with a finesse or ranged weapon and advantage or an adjacent ally",
            )
        )

    if build.class_level("paladin") >= 2:
        count = 2
        if target is not None and target.creature_type in SMITE_BONUS_CREATURE_TYPES:
            count += 1
        effects.append(
            OncePerTurnEffect(
                name="Divine Smite",
                priority=80,
                condition=equals("attack.attack_type", AttackType.MELEE.value),
                damage=(spell_source("Divine Smite", f"{count}d8", DamageType.RADIANT),),
                resource_cost=ResourceCost(
                    resource_type=ResourceType.SPELL_SLOT, amount=1, level=1
                ),
                description=f"{count}d8 radiant on a melee hit, spends a spell slot",
            )
        )

    hunter = build.subclass_of("ranger") == "hunter" and build.class_level("ranger") >= 3
    if hunter or build.has_feature("colossus slayer"):
        effects.append(
            OncePerTurnEffect(
                name="Colossus Slayer",
                priority=50,
                condition=any_of(
                    flag("target.is_bloodied"), equals("target.current_hp", None)
                ),
                damage=(
                    feature_source(
                        "Colossus Slayer", "1d8", weapon_type, on_crit_double=False
                    ),
                ),
                description="1d8 against a target below its hit point maximum",
            )
        )

    for descriptor in build.custom_effects:
        if not descriptor.once_per_turn or not isinstance(
            descriptor.payload, DamagePayload
        ):
            continue
        payload = descriptor.payload
        effects.append(
            OncePerTurnEffect(
                name=descriptor.name,
                priority=descriptor.priority,
                trigger=descriptor.trigger,
                condition=descriptor.condition,
                damage=(
                    feature_source(
                        descriptor.name,
                        payload.to_dice(weapon_type),
                        on_crit_double=payload.on_crit_double,
                    ),
                ),
                resource_cost=descriptor.resource_cost,
                description=descriptor.description,
            )
        )

    effects.sort(key=lambda effect: effect.priority, reverse=True)
    return effects


def attack_events(
    stats: BuildStats,
    num_attacks: int,
    probabilities: AttackProbabilities,
) -> list[AttackEvent]:
    """Main-hand attack events sharing the same odds."""
    weapon = stats.main_hand
    return [
        AttackEvent(
            index=index,
            attack_type=weapon.attack_type,
            advantage_state=probabilities.advantage_state,
            hit_probability=probabilities.hit,
            crit_probability=probabilities.crit,
            weapon_properties=weapon.properties,
        )
        for index in range(num_attacks)
    ]


# ==============================================================================
# SELECTION
# ==============================================================================


class OncePerTurnSelector:
    """
    Picks the best once-per-turn effect and the attack to use it on.

    Attributes:
        max_alternatives (int):
            How many runner-up effects are reported.

    """

    def __init__(self, max_alternatives: int = MAX_ALTERNATIVES) -> None:
        self.max_alternatives = max_alternatives

    def analyze(
        self,
        build: Build,
        target: Target,
        combat: CombatContext,
        num_attacks: int | None = None,
        probabilities: AttackProbabilities | None = None,
        attacks: Sequence[AttackEvent] | None = None,
        effects: Sequence[OncePerTurnEffect] | None = None,
        stats: BuildStats | None = None,
    ) -> OncePerTurnAnalysis:
        """
        Evaluates every effect on every attack of the turn.

        Ties on expected damage are broken by higher priority, then by the
        lower attack index.

        Args:
            build (Build):
                The attacker's build.
            target (Target):
                The creature being attacked.
            combat (CombatContext):
                The circumstances of the attacks.
            num_attacks (int | None):
                Attacks in the turn; defaults to the build's Attack action.
            probabilities (AttackProbabilities | None):
                Shared odds of the attacks; resolved from the build when omitted.
            attacks (Sequence[AttackEvent] | None):
                Explicit per-attack events; overrides the two arguments above.
            effects (Sequence[OncePerTurnEffect] | None):
                The candidate effects; defaults to the build's catalog.
            stats (BuildStats | None):
                Precomputed stats for the build.

        Returns:
            OncePerTurnAnalysis:
                The selected effect, its attack index and the alternatives.

        """
        stats = stats or BuildStats(build)
        if attacks is None:
            if probabilities is None:
                state = AdvantageResolver().resolve_for(build, target, combat).state
                probabilities = ProbabilityModel.resolve(
                    stats.attack_bonus(),
                    target.armor_class,
                    state,
                    stats.crit_range,
                    stats.halfling_luck,
                )
            count = stats.number_of_attacks if num_attacks is None else num_attacks
            attacks = attack_events(stats, count, probabilities)
        if effects is None:
            effects = build_once_per_turn_effects(build, target, stats)

        # (effect, best index, best value, per-index values, eligibility)
        evaluated = []
        for effect in effects:
            values: dict[int, float] = {}
            eligible: list[bool] = []
            for attack in attacks:
                context = build_context(build, target, combat, attack, stats=stats)
                ok = effect.condition.is_met(context)
                eligible.append(ok)
                if ok:
                    values[attack.index] = effect.expected_damage(
                        attack.hit_probability, attack.crit_probability, target
                    )
            if not values:
                continue
            best_index = min(values, key=lambda i: (-values[i], i))
            evaluated.append((effect, best_index, values[best_index], values, eligible))

        if not evaluated:
            return OncePerTurnAnalysis()

        evaluated.sort(key=lambda item: (-item[2], -item[0].priority, item[1]))
        effect, index, value, values, eligible = evaluated[0]
        alternatives = [
            OncePerTurnOption(
                name=other.name,
                attack_index=other_index,
                expected_damage=other_value,
                priority=other.priority,
            )
            for other, other_index, other_value, _, _ in evaluated[1:]
        ][: self.max_alternatives]

        analysis = OncePerTurnAnalysis(
            selected=effect.name,
            attack_index=index,
            expected_damage=value,
            priority=effect.priority,
            resource_cost=effect.resource_cost,
            alternatives=alternatives,
            trigger_probability=trigger_probability_across_attacks(
                [attack.hit_probability for attack in attacks], eligible
            ),
            expected_by_index=values,
            reasoning=f"Using {effect.name} on attack #{index + 1} for {value:.2f} expected damage",
        )
        log_debug(
            "Selected once-per-turn effect",
            {"effect": effect.name, "attack": index, "expected": f"{value:.2f}"},
        )
        return analysis

    @staticmethod
    def apply_policy(
        analysis: OncePerTurnAnalysis, policy: OncePerTurnPolicy | str
    ) -> OncePerTurnAnalysis:
        """
        Moves the selected effect to the attack the policy asks for.

        `firstHit` uses the first qualifying attack; `bestHit` keeps the
        attack with the highest expected damage. Unknown policies leave the
        analysis unchanged.

        Args:
            analysis (OncePerTurnAnalysis):
                The analysis to adjust.
            policy (OncePerTurnPolicy | str):
                The build's once-per-turn policy.

        Returns:
            OncePerTurnAnalysis:
                The adjusted analysis.

        """
        if analysis.selected is None or not analysis.expected_by_index:
            return analysis
        value = policy.value if isinstance(policy, Enum) else str(policy)
        if value == OncePerTurnPolicy.BEST_HIT.value:
            return analysis
        if value == OncePerTurnPolicy.FIRST_HIT.value:
            first = min(analysis.expected_by_index)
            return analysis.model_copy(
                update={
                    "attack_index": first,
                    "expected_damage": analysis.expected_by_index[first],
                    "reasoning": (
                        f"Using {analysis.selected} on the first qualifying attack "
                        f"(#{first + 1}) for consistency"
                    ),
                }
            )
        log_warning(
            f"Unknown once-per-turn policy '{value}', keeping the optimal attack",
            {"effect": analysis.selected},
        )
        return analysis


def trigger_probability_across_attacks(
    hit_probabilities: Sequence[float], eligibility: Sequence[bool]
) -> float:
    """
    Probability that at least one eligible attack hits.

    Args:
        hit_probabilities (Sequence[float]):
            Hit chance of each attack.
        eligibility (Sequence[bool]):
            Whether the effect may be used on each attack.

    Returns:
        float: `1 - prod(1 - p_i)` over eligible attacks.

    """
    all_miss = 1.0
    for hit, eligible in zip(hit_probabilities, eligibility):
        if eligible:
            all_miss *= 1.0 - hit
    return 1.0 - all_miss


# ==============================================================================
# TIMING
# ==============================================================================


class TimingAnalysis(BaseModel):
    """Whether to use an effect on the first attack or hold it."""

    strategy: Literal["immediate", "wait"]
    expected_value: float
    reasoning: str
    first_trigger_by_index: list[float] = Field(
        default_factory=list,
        description="Probability the effect first triggers on each attack.",
    )


def analyze_timing(
    effect: OncePerTurnEffect | None,
    hit_probabilities: Sequence[float],
    crit_probabilities: Sequence[float],
    target: Target | None = None,
) -> TimingAnalysis:
    """
    Compares using an effect on the first attack against holding it.

    Args:
        effect (OncePerTurnEffect | None):
            The effect, usually the highest priority one.
        hit_probabilities (Sequence[float]):
            Hit chance of each attack.
        crit_probabilities (Sequence[float]):
            Crit chance of each attack.
        target (Target | None):
            Supplies damage defenses.

    Returns:
        TimingAnalysis:
            The recommended strategy and its expected value.

    """
    if effect is None or not hit_probabilities:
        return TimingAnalysis(
            strategy="immediate",
            expected_value=0.0,
            reasoning="No once-per-turn effects available",
        )

    first_trigger = []
    all_missed = 1.0
    for hit in hit_probabilities:
        first_trigger.append(all_missed * hit)
        all_missed *= 1.0 - hit

    values = [
        effect.expected_damage(hit, crit, target)
        for hit, crit in zip(hit_probabilities, crit_probabilities)
    ]
    immediate = values[0]
    waiting = max(values[1:], default=0.0)
    if immediate >= waiting:
        return TimingAnalysis(
            strategy="immediate",
            expected_value=immediate,
            reasoning=f"Use {effect.name} immediately for {immediate:.1f} expected damage",
            first_trigger_by_index=first_trigger,
        )
    return TimingAnalysis(
        strategy="wait",
        expected_value=waiting,
        reasoning=(
            f"Wait for a better opportunity ({waiting:.1f} vs {immediate:.1f} "
            "expected damage)"
        ),
        first_trigger_by_index=first_trigger,
    )
