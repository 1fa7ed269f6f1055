"""
Policy engine module for the DPR engine.

Resolves the in-combat choices a build leaves to its declarative policies
(spend a resource, power attack, pick a target, reposition, where to put a
once-per-turn effect). Every decision is a pure function of a
`CombatPolicyContext` and returns a `PolicyDecision` with its expected
value, a confidence and the alternatives that were considered.
"""

import re
from collections.abc import Sequence
from enum import Enum

from catchery import log_warning
from pydantic import BaseModel, ConfigDict, Field

from dpr_engine.character.build import Build
from dpr_engine.character.build_stats import BuildStats
from dpr_engine.character.target import CombatContext, Target
from dpr_engine.combat.advantage import AdvantageResolver
from dpr_engine.combat.attack_profile import AttackProfile, build_attack_profile
from dpr_engine.combat.damage import DamageAggregator
from dpr_engine.combat.once_per_turn import (
    OncePerTurnAnalysis,
    OncePerTurnSelector,
    build_once_per_turn_effects,
)
from dpr_engine.combat.power_attack import PowerAttackAnalyzer
from dpr_engine.core.constants import (
    FAVORABLE_TARGET_CONDITIONS,
    PRIORITY_TARGET_TYPES,
    Cover,
    OncePerTurnPolicy,
    PositioningPolicy,
    PowerAttackPolicy,
    SmitePolicy,
    TargetingPolicy,
)
from dpr_engine.core.logging import log_debug
from dpr_engine.core.settings import DEFAULT_SETTINGS, EngineSettings

from .resource_manager import ResourceSnapshot

USE_RESOURCE = "use-resource"
SMITE_ON_CRIT = "smite-on-crit"
CONSERVE_RESOURCES = "conserve-resources"
NO_SPECIAL_ACTION = "no-special-action"


class PolicyAlternative(BaseModel):
    """A rejected option of a decision."""

    action: str
    expected_value: float
    reasoning: str


class PolicyDecision(BaseModel):
    """
    The outcome of one policy decision.

    Attributes:
        action (str):
            Machine-readable action, e.g. "use-power-attack".
        reasoning (str):
            Human-readable explanation.
        expected_value (float):
            Expected damage of the chosen action.
        confidence (float):
            How clear-cut the decision is, from 0 to 1.
        alternatives (list[PolicyAlternative]):
            The other options considered.

    """

    action: str
    reasoning: str
    expected_value: float = 0.0
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    alternatives: list[PolicyAlternative] = Field(default_factory=list)


class PartyContext(BaseModel):
    """What the attacker knows about its party."""

    model_config = ConfigDict(frozen=True)

    ally_count: int = Field(default=0, ge=0)
    average_level: float = Field(default=1.0, ge=1.0, le=20.0)
    has_healer: bool = False
    has_support: bool = False


class CombatPolicyContext(BaseModel):
    """Everything a policy decision may look at."""

    model_config = ConfigDict(frozen=True)

    build: Build
    target: Target
    combat: CombatContext = Field(default_factory=CombatContext)
    round: int = Field(default=1, ge=1)
    resources: ResourceSnapshot = Field(default_factory=ResourceSnapshot)
    party: PartyContext | None = None


def _policy_value(policy: Enum | str) -> str:
    return policy.value if isinstance(policy, Enum) else str(policy)


def _slug(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def _once_per_turn_action(name: str, attack_index: int) -> str:
    return f"use-{_slug(name)}-on-attack-{attack_index + 1}"


def _capped(value: float, target: Target) -> float:
    """Expected damage is worth nothing beyond the target's remaining HP."""
    remaining = target.remaining_hp
    return value if remaining is None else min(value, float(remaining))


def _weapon_dpr(profile: AttackProfile, target: Target) -> float:
    return sum(
        DamageAggregator.calculate_dpr(sequence, target)
        for sequence in profile.sequences
    )


def neutral_decision(axis: str, policy: Enum | str) -> PolicyDecision:
    """The decision returned for a policy value the engine does not know."""
    value = _policy_value(policy)
    log_warning(
        f"Unknown {axis} policy '{value}', taking no special action",
        {"axis": axis, "policy": value},
    )
    return PolicyDecision(
        action=NO_SPECIAL_ACTION,
        reasoning=f"Unrecognized {axis} policy '{value}'",
        confidence=1.0,
    )


class PolicyEngine:
    """
    Decides in-combat choices from a build's declarative policies.

    Attributes:
        settings (EngineSettings):
            Thresholds and confidence bands.
        resolver (AdvantageResolver):
            Resolves the roll state of the attacks.
        selector (OncePerTurnSelector):
            Places once-per-turn effects.

    """

    def __init__(
        self,
        settings: EngineSettings = DEFAULT_SETTINGS,
        resolver: AdvantageResolver | None = None,
        selector: OncePerTurnSelector | None = None,
    ) -> None:
        self.settings = settings
        self.resolver = resolver or AdvantageResolver()
        self.selector = selector or OncePerTurnSelector(settings.max_alternatives)

    def _scaled_confidence(self, delta: float, default: float) -> float:
        """Close calls lower the confidence, clear wins raise it."""
        magnitude = abs(delta)
        if magnitude < self.settings.low_confidence_delta:
            return 0.6
        if magnitude > self.settings.high_confidence_delta:
            return 0.95
        return default

    def _profile(
        self,
        context: CombatPolicyContext,
        stats: BuildStats,
        target: Target | None = None,
        combat: CombatContext | None = None,
    ) -> AttackProfile:
        return build_attack_profile(
            context.build,
            target or context.target,
            combat or context.combat,
            stats=stats,
            resolver=self.resolver,
        )

    # ============================================================================
    # RESOURCES
    # ============================================================================

    def decide_resource_usage(self, context: CombatPolicyContext) -> PolicyDecision:
        """
        Decides whether to spend a resource on a costly on-hit effect.

        The highest priority effect with a resource cost (Divine Smite, a
        homebrew rider, ...) is weighed against attacking without it. The
        comparison caps expected damage at the target's remaining hit
        points, so spending is not recommended against nearly dead targets.

        Args:
            context (CombatPolicyContext):
                The decision context; `build.policies.smite_policy` applies.

        Returns:
            PolicyDecision:
                `use-resource`, `smite-on-crit` or `conserve-resources`.

        """
        build, target = context.build, context.target
        policy = build.policies.smite_policy
        stats = BuildStats(build)
        costly = [
            effect
            for effect in build_once_per_turn_effects(build, target, stats)
            if effect.resource_cost is not None
        ]
        if not costly:
            return PolicyDecision(
                action=CONSERVE_RESOURCES,
                reasoning="No effects that spend resources are available",
                confidence=1.0,
            )

        effect = costly[0]
        cost = effect.resource_cost
        if context.resources.available(cost.resource_type, cost.level) < cost.amount:
            return PolicyDecision(
                action=CONSERVE_RESOURCES,
                reasoning=f"Not enough resources left for {effect.name} ({cost})",
                confidence=1.0,
            )

        profile = self._profile(context, stats)
        events = profile.events()
        analysis = self.selector.analyze(
            build, target, context.combat, attacks=events, effects=[effect], stats=stats
        )
        base = _capped(_weapon_dpr(profile, target), target)
        if analysis.selected is None:
            return PolicyDecision(
                action=CONSERVE_RESOURCES,
                reasoning=f"{effect.name} cannot be used on these attacks",
                expected_value=base,
                confidence=1.0,
            )

        weapon_dpr = _weapon_dpr(profile, target)
        with_effect = _capped(weapon_dpr + analysis.expected_damage, target)
        value = _policy_value(policy)

        if value == SmitePolicy.NEVER.value:
            return PolicyDecision(
                action=CONSERVE_RESOURCES,
                reasoning=f"Policy set to never spend resources on {effect.name}",
                expected_value=base,
                confidence=1.0,
                alternatives=[
                    PolicyAlternative(
                        action=USE_RESOURCE,
                        expected_value=with_effect,
                        reasoning=f"Use {effect.name} on any hit",
                    )
                ],
            )

        if value == SmitePolicy.ON_CRIT.value:
            crit = events[analysis.attack_index].crit_probability
            critical = DamageAggregator.total(effect.damage, True, target).total
            on_crit = _capped(weapon_dpr + crit * critical, target)
            alternatives = [
                PolicyAlternative(
                    action=USE_RESOURCE,
                    expected_value=with_effect,
                    reasoning=f"Use {effect.name} on any hit",
                )
            ]
            if on_crit > base:
                return PolicyDecision(
                    action=SMITE_ON_CRIT,
                    reasoning=(
                        f"Will use {effect.name} only on critical hits "
                        f"(+{on_crit - base:.2f} expected damage)"
                    ),
                    expected_value=on_crit,
                    confidence=0.8,
                    alternatives=alternatives,
                )
            return PolicyDecision(
                action=CONSERVE_RESOURCES,
                reasoning=(
                    f"A critical {effect.name} would add nothing against this target"
                ),
                expected_value=base,
                confidence=0.8,
                alternatives=alternatives,
            )

        if value == SmitePolicy.OPTIMAL.value:
            delta = with_effect - base
            use = delta > 0
            decision = PolicyDecision(
                action=USE_RESOURCE if use else CONSERVE_RESOURCES,
                reasoning=(
                    f"{effect.name} EV: {with_effect:.1f} vs normal EV: {base:.1f}"
                ),
                expected_value=max(with_effect, base),
                confidence=self._scaled_confidence(delta, 0.9),
                alternatives=[
                    PolicyAlternative(
                        action=CONSERVE_RESOURCES if use else USE_RESOURCE,
                        expected_value=min(with_effect, base),
                        reasoning="Alternative approach with lower expected value",
                    )
                ],
            )
            log_debug(
                "Resource usage decision",
                {
                    "effect": effect.name,
                    "action": decision.action,
                    "delta": f"{delta:.2f}",
                },
            )
            return decision

        if value == SmitePolicy.ALWAYS.value:
            return PolicyDecision(
                action=USE_RESOURCE,
                reasoning=f"Policy set to always use {effect.name} when available",
                expected_value=with_effect,
                confidence=0.7,
            )

        return neutral_decision("resource usage", policy)

    # ============================================================================
    # POWER ATTACK
    # ============================================================================

    def decide_power_attack(self, context: CombatPolicyContext) -> PolicyDecision:
        """
        Decides whether to take the power attack trade-off.

        Args:
            context (CombatPolicyContext):
                The decision context; `build.policies.power_attack_policy` and
                `power_attack_threshold_ev` apply.

        Returns:
            PolicyDecision:
                `use-power-attack` or `normal-attack`.

        """
        build, target = context.build, context.target
        policies = build.policies
        stats = BuildStats(build)
        feature = stats.power_attack_feature()
        if feature is None:
            return PolicyDecision(
                action="normal-attack",
                reasoning=f"No power attack feat usable with {stats.main_hand.name}",
                confidence=1.0,
            )

        main = self._profile(context, stats).main
        analyzer = PowerAttackAnalyzer(
            main.attack_bonus,
            main.sequence,
            target,
            main.crit_range,
            stats.halfling_luck,
            self.settings,
        )
        analysis = analyzer.analyze(target.armor_class, main.resolution.state)
        value = _policy_value(policies.power_attack_policy)

        if value == PowerAttackPolicy.NEVER.value:
            return PolicyDecision(
                action="normal-attack",
                reasoning=f"Policy set to never use {feature}",
                expected_value=analysis.normal_dpr,
                confidence=1.0,
            )

        if value == PowerAttackPolicy.ALWAYS.value:
            return PolicyDecision(
                action="use-power-attack",
                reasoning=f"Policy set to always use {feature}",
                expected_value=analysis.power_attack_dpr,
                confidence=0.7,
            )

        if value == PowerAttackPolicy.OPTIMAL.value:
            use = (
                analysis.should_use
                and analysis.delta > policies.power_attack_threshold_ev
            )
            if use:
                reasoning = (
                    f"{feature} increases DPR by {analysis.delta:.1f}. Target AC "
                    f"{target.armor_class} is at or below the break-even point of "
                    f"{analysis.break_even_ac}."
                )
            else:
                reasoning = (
                    f"{feature} changes DPR by {analysis.delta:+.1f}. Target AC "
                    f"{target.armor_class} against a break-even point of "
                    f"{analysis.break_even_ac}."
                )
            return PolicyDecision(
                action="use-power-attack" if use else "normal-attack",
                reasoning=reasoning,
                expected_value=(
                    analysis.power_attack_dpr if use else analysis.normal_dpr
                ),
                confidence=self._scaled_confidence(analysis.delta, 0.8),
                alternatives=[
                    PolicyAlternative(
                        action="normal-attack" if use else "use-power-attack",
                        expected_value=(
                            analysis.normal_dpr if use else analysis.power_attack_dpr
                        ),
                        reasoning=(
                            "Standard attacks for higher accuracy"
                            if use
                            else "Power attack for higher damage per hit"
                        ),
                    )
                ],
            )

        return neutral_decision("power attack", policies.power_attack_policy)

    # ============================================================================
    # TARGETING AND POSITIONING
    # ============================================================================

    @staticmethod
    def tactical_value(target: Target) -> float:
        """
        Bonus score for targets worth focusing regardless of damage.

        Args:
            target (Target):
                The candidate target.

        Returns:
            float:
                Up to +2 for low HP, plus the priority of the target's role,
                plus 1 when a favorable condition affects it.

        """
        value = (1.0 - target.hp_fraction) * 2.0
        value += PRIORITY_TARGET_TYPES.get(target.role or "", 0.0)
        if target.conditions & FAVORABLE_TARGET_CONDITIONS:
            value += 1.0
        return value

    def decide_targeting(
        self, context: CombatPolicyContext, targets: Sequence[Target]
    ) -> PolicyDecision:
        """
        Picks the target with the best expected damage plus tactical value.

        Args:
            context (CombatPolicyContext):
                The decision context; its target is the primary target.
            targets (Sequence[Target]):
                The candidate targets.

        Returns:
            PolicyDecision:
                `attack-<name>` for the best target, or `attack-primary-target`.

        """
        policy = context.build.policies.targeting_policy
        value = _policy_value(policy)
        stats = BuildStats(context.build)

        current = _weapon_dpr(self._profile(context, stats), context.target)
        if value == TargetingPolicy.PRIMARY.value or len(targets) <= 1:
            reasoning = (
                "Only one target available"
                if len(targets) <= 1
                else "Policy set to always attack the primary target"
            )
            return PolicyDecision(
                action="attack-primary-target",
                reasoning=reasoning,
                expected_value=current,
                confidence=1.0,
            )

        if value != TargetingPolicy.OPTIMAL.value:
            return neutral_decision("targeting", policy)

        scored = []
        for target in targets:
            profile = self._profile(context, stats, target=target)
            expected = _weapon_dpr(profile, target)
            hit = profile.main.probabilities.hit
            scored.append((target, expected, self.tactical_value(target), hit))

        best = max(scored, key=lambda item: item[1] + item[2])
        alternatives = [
            PolicyAlternative(
                action=f"attack-{_slug(target.name)}",
                expected_value=expected,
                reasoning=(
                    f"Hit chance: {hit * 100:.1f}%, Tactical value: {tactical:.1f}"
                ),
            )
            for target, expected, tactical, hit in scored
            if target is not best[0]
        ][: self.settings.max_alternatives]

        target, expected, tactical, _ = best
        return PolicyDecision(
            action=f"attack-{_slug(target.name)}",
            reasoning=(
                f"Highest combined value: {expected:.1f} damage + "
                f"{tactical:.1f} tactical"
            ),
            expected_value=expected,
            confidence=0.8,
            alternatives=alternatives,
        )

    def decide_positioning(self, context: CombatPolicyContext) -> PolicyDecision:
        """
        Decides whether moving is worth it to flank or to get around cover.

        Args:
            context (CombatPolicyContext):
                The decision context; `build.policies.positioning_policy`
                applies.

        Returns:
            PolicyDecision:
                `move-for-flanking`, `move-to-avoid-cover` or
                `maintain-position`.

        """
        build, target, combat = context.build, context.target, context.combat
        policy = build.policies.positioning_policy
        value = _policy_value(policy)
        stats = BuildStats(build)
        current = _weapon_dpr(self._profile(context, stats), target)

        if value == PositioningPolicy.HOLD.value:
            return PolicyDecision(
                action="maintain-position",
                reasoning="Policy set to hold position",
                expected_value=current,
                confidence=1.0,
            )
        if value != PositioningPolicy.OPTIMAL.value:
            return neutral_decision("positioning", policy)

        options: list[tuple[str, float, str]] = []
        if not combat.flanking and combat.ally_within_5ft:
            flanking = combat.model_copy(update={"flanking": True})
            flanked = _weapon_dpr(
                self._profile(context, stats, combat=flanking), target
            )
            options.append(
                (
                    "move-for-flanking",
                    flanked,
                    f"Flanking would increase DPR by {flanked - current:.1f}",
                )
            )
        if combat.cover != Cover.NONE:
            clear = combat.model_copy(update={"cover": Cover.NONE})
            uncovered = _weapon_dpr(self._profile(context, stats, combat=clear), target)
            options.append(
                (
                    "move-to-avoid-cover",
                    uncovered,
                    f"Getting around {combat.cover.value} cover would increase DPR "
                    f"by {uncovered - current:.1f}",
                )
            )

        worthwhile = [
            option for option in options
            if option[1] - current > self.settings.positioning_threshold
        ]
        if worthwhile:
            action, expected, reasoning = max(worthwhile, key=lambda option: option[1])
            return PolicyDecision(
                action=action,
                reasoning=reasoning,
                expected_value=expected,
                confidence=0.8,
                alternatives=[
                    PolicyAlternative(
                        action="attack-from-current-position",
                        expected_value=current,
                        reasoning="Attack without repositioning",
                    )
                ],
            )
        return PolicyDecision(
            action="maintain-position",
            reasoning="Current position is tactically sound",
            expected_value=current,
            confidence=0.6,
            alternatives=[
                PolicyAlternative(
                    action=action, expected_value=expected, reasoning=reasoning
                )
                for action, expected, reasoning in options
            ],
        )

    # ============================================================================
    # ONCE PER TURN
    # ============================================================================

    def analyze_once_per_turn(
        self, context: CombatPolicyContext, profile: AttackProfile | None = None
    ) -> OncePerTurnAnalysis:
        """Once-per-turn selection over the turn's attacks, policy applied."""
        build = context.build
        stats = BuildStats(build)
        profile = profile or self._profile(context, stats)
        analysis = self.selector.analyze(
            build,
            context.target,
            context.combat,
            attacks=profile.events(),
            stats=stats,
        )
        return self.selector.apply_policy(analysis, build.policies.once_per_turn_policy)

    def decide_once_per_turn(self, context: CombatPolicyContext) -> PolicyDecision:
        """
        Decides which once-per-turn effect to use, and on which attack.

        Args:
            context (CombatPolicyContext):
                The decision context; `build.policies.once_per_turn_policy`
                applies.

        Returns:
            PolicyDecision:
                `use-<effect>-on-attack-<n>`, or `no-once-per-turn`.

        """
        policy = context.build.policies.once_per_turn_policy
        if _policy_value(policy) not in {p.value for p in OncePerTurnPolicy}:
            return neutral_decision("once-per-turn", policy)
        analysis = self.analyze_once_per_turn(context)
        if analysis.selected is None:
            return PolicyDecision(
                action="no-once-per-turn",
                reasoning="No applicable once-per-turn effects",
                confidence=1.0,
            )

        return PolicyDecision(
            action=_once_per_turn_action(analysis.selected, analysis.attack_index),
            reasoning=analysis.reasoning,
            expected_value=analysis.expected_damage,
            confidence=0.9,
            alternatives=[
                PolicyAlternative(
                    action=_once_per_turn_action(option.name, option.attack_index),
                    expected_value=option.expected_damage,
                    reasoning=f"Priority {option.priority}",
                )
                for option in analysis.alternatives
            ],
        )


def evaluate_policy_effectiveness(build: Build) -> list[str]:
    """Recommendations about policies that tend to waste damage or resources."""
    recommendations = []
    smite = _policy_value(build.policies.smite_policy)
    if smite == SmitePolicy.ALWAYS.value:
        recommendations.append(
            "Always spending resources may waste spell slots against weak enemies; "
            "consider the optimal policy"
        )
    elif smite == SmitePolicy.NEVER.value and build.class_level("paladin") >= 2:
        recommendations.append(
            "Never using Divine Smite wastes a significant damage source; "
            "consider using it at least on critical hits"
        )
    if (
        _policy_value(build.policies.power_attack_policy)
        == PowerAttackPolicy.ALWAYS.value
        and BuildStats(build).power_attack_feature() is not None
    ):
        recommendations.append(
            "Always power attacking loses damage against high AC targets; "
            "consider the optimal policy"
        )
    return recommendations
