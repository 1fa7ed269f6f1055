"""
DPR orchestrator module for the DPR engine.

Puts every analyzer together for one build against one target: resolves
the roll state, assembles the weapon attacks, lets the policy engine decide
on power attacks and resource spending, places the once-per-turn effect,
adds precast spells and homebrew riders, and projects the result over
several rounds.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from dpr_engine.character.build import Build
from dpr_engine.character.build_stats import BuildStats
from dpr_engine.character.target import CombatContext, Target
from dpr_engine.core.constants import MAX_ROUNDS, AdvantageState
from dpr_engine.core.error_handling import ensure_int_in_range
from dpr_engine.core.logging import log_debug, log_info
from dpr_engine.core.settings import DEFAULT_SETTINGS, EngineSettings
from dpr_engine.effects.effect_descriptor import DamagePayload, ResourceCost
from dpr_engine.effects.event_system import TriggerType
from dpr_engine.policy.policy_engine import (
    CONSERVE_RESOURCES,
    NO_SPECIAL_ACTION,
    SMITE_ON_CRIT,
    CombatPolicyContext,
    PolicyDecision,
    PolicyEngine,
)
from dpr_engine.policy.resource_manager import (
    PACT_SLOT,
    SPELL_SLOT,
    ResourceManager,
    ResourceSnapshot,
    ResourceUsage,
)

from .advantage import AdvantageResolver
from .attack_profile import AttackProfile, build_attack_profile
from .context import build_context
from .damage import DamageAggregator, feature_source
from .once_per_turn import (
    OncePerTurnAnalysis,
    OncePerTurnOption,
    build_once_per_turn_effects,
)
from .power_attack import PowerAttackAnalysis, PowerAttackAnalyzer
from .probability import (
    ProbabilityModel,
    expected_save_damage,
    save_success_probability,
)
from .spells import PrecastPlan, plan_precast, reprice_precast


class CamelModel(BaseModel):
    """Result models dumped with camelCase keys for reporting consumers."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DPRBreakdown(CamelModel):
    weapon_damage: float = 0.0
    once_per_turn: float = 0.0
    spell_damage: float = 0.0
    other_sources: float = 0.0

    @property
    def total(self) -> float:
        return (
            self.weapon_damage
            + self.once_per_turn
            + self.spell_damage
            + self.other_sources
        )


class DPRSummary(CamelModel):
    total: float
    by_round: list[float] = Field(default_factory=list)
    breakdown: DPRBreakdown = Field(default_factory=DPRBreakdown)
    conditions: dict[str, float] = Field(
        default_factory=dict,
        description="Weapon DPR under each advantage state.",
    )


class PowerAttackSummary(CamelModel):
    feature: str
    recommended: bool
    used: bool
    break_even_ac: int = Field(alias="breakEvenAC")
    normal_dpr: float = Field(alias="normalDPR")
    power_attack_dpr: float = Field(alias="powerAttackDPR")


class OncePerTurnSummary(CamelModel):
    selected_effect: str
    attack_index: int
    expected_damage: float
    trigger_probability: float
    reasoning: str
    alternatives: list[OncePerTurnOption] = Field(default_factory=list)


class ResourceUsageSummary(CamelModel):
    spell_slots: dict[int, int] = Field(
        default_factory=dict,
        description="Spell slots spent by level.",
    )
    features: dict[str, int] = Field(
        default_factory=dict,
        description="Other resources spent by name.",
    )


class DPRResult(CamelModel):
    """
    Everything calculated for one build against one target.

    Dump with `to_report()` for the camelCase layout expected by reporting
    and charting code.
    """

    dpr: DPRSummary
    hit_chances: dict[str, float] = Field(default_factory=dict)
    crit_chances: dict[str, float] = Field(default_factory=dict)
    advantage_state: AdvantageState = AdvantageState.NORMAL
    advantage_reasoning: str = ""
    power_attack: PowerAttackSummary | None = None
    once_per_turn_analysis: OncePerTurnSummary | None = None
    active_spells: list[str] = Field(default_factory=list)
    resource_usage: ResourceUsageSummary = Field(default_factory=ResourceUsageSummary)
    decisions: list[PolicyDecision] = Field(default_factory=list)

    def to_report(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class TurnEvaluation(BaseModel):
    """The expected damage of one turn and the choices behind it."""

    profile: AttackProfile
    breakdown: DPRBreakdown
    power_attack: PowerAttackAnalysis | None = None
    power_attack_feature: str | None = None
    power_attack_used: bool = False
    once_per_turn: OncePerTurnAnalysis = Field(default_factory=OncePerTurnAnalysis)
    precast: PrecastPlan = Field(default_factory=PrecastPlan)
    other_costs: list[ResourceCost] = Field(
        default_factory=list,
        description="Resources spent by homebrew riders this turn.",
    )
    decisions: list[PolicyDecision] = Field(default_factory=list)

    @property
    def total(self) -> float:
        return self.breakdown.total


class RoundResult(BaseModel):
    round: int
    dpr: float
    breakdown: DPRBreakdown
    once_per_turn: str | None = None
    resources_left: ResourceSnapshot


class SimulationResult(BaseModel):
    """Round-by-round damage with resources actually spent."""

    rounds: list[RoundResult] = Field(default_factory=list)
    resource_usage: ResourceUsageSummary = Field(default_factory=ResourceUsageSummary)

    @property
    def total(self) -> float:
        return sum(result.dpr for result in self.rounds)

    @property
    def average(self) -> float:
        return self.total / len(self.rounds) if self.rounds else 0.0


def summarize_usage(history: list[ResourceUsage]) -> ResourceUsageSummary:
    """Groups a resource manager's history by spell slot level and pool."""
    summary = ResourceUsageSummary()
    for usage in history:
        if usage.resource in (SPELL_SLOT, PACT_SLOT) and usage.levels:
            for level in usage.levels:
                summary.spell_slots[level] = summary.spell_slots.get(level, 0) + 1
        else:
            summary.features[usage.resource] = (
                summary.features.get(usage.resource, 0) + usage.amount
            )
    return summary


def _available_slots(snapshot: ResourceSnapshot) -> dict[int, int]:
    """Regular spell slots with pact slots folded in at their level."""
    slots = dict(snapshot.spell_slots)
    if snapshot.pact_slot_level is not None:
        pact = snapshot.pools.get(PACT_SLOT, 0)
        if pact:
            level = snapshot.pact_slot_level
            slots[level] = slots.get(level, 0) + pact
    return slots


def _weapon_dpr(profile: AttackProfile, target: Target) -> float:
    return sum(
        DamageAggregator.calculate_dpr(sequence, target)
        for sequence in profile.sequences
    )


class DPROrchestrator:
    """
    Computes the expected damage per round of a build.

    Attributes:
        settings (EngineSettings):
            Tunable constants.
        resolver (AdvantageResolver):
            Resolves the roll state of the attacks.
        policy_engine (PolicyEngine):
            Makes the in-combat choices.

    """

    def __init__(
        self,
        settings: EngineSettings = DEFAULT_SETTINGS,
        resolver: AdvantageResolver | None = None,
        policy_engine: PolicyEngine | None = None,
    ) -> None:
        self.settings = settings
        self.resolver = resolver or AdvantageResolver()
        self.policy_engine = policy_engine or PolicyEngine(settings, self.resolver)

    # ============================================================================
    # TURN EVALUATION
    # ============================================================================

    def _apply_power_attack(
        self,
        profile: AttackProfile,
        target: Target,
        stats: BuildStats,
        context: CombatPolicyContext,
    ) -> tuple[
        AttackProfile,
        PowerAttackAnalysis | None,
        str | None,
        bool,
        PolicyDecision | None,
    ]:
        """Swaps in the power attack main hand when the policy says so."""
        feature = stats.power_attack_feature()
        if feature is None:
            return profile, None, None, False, None

        main = profile.main
        analyzer = PowerAttackAnalyzer(
            main.attack_bonus,
            main.sequence,
            target,
            main.crit_range,
            profile.lucky,
            self.settings,
        )
        analysis = analyzer.analyze(target.armor_class, main.resolution.state)
        decision = self.policy_engine.decide_power_attack(context)
        if decision.action != "use-power-attack":
            return profile, analysis, feature, False, decision

        attack_bonus = main.attack_bonus - self.settings.power_attack_penalty
        probabilities = ProbabilityModel.resolve(
            attack_bonus,
            target.armor_class,
            main.resolution.state,
            main.crit_range,
            profile.lucky,
        )
        powered = main.model_copy(
            update={
                "attack_bonus": attack_bonus,
                "probabilities": probabilities,
                "sequence": analyzer.power_sequence.with_probabilities(
                    probabilities.hit, probabilities.crit
                ),
            }
        )
        profile = profile.model_copy(update={"main": powered})
        return profile, analysis, feature, True, decision

    def _plan_precast(
        self,
        build: Build,
        target: Target,
        profile: AttackProfile,
        stats: BuildStats,
        slots: dict[int, int] | None = None,
    ) -> tuple[AttackProfile, PrecastPlan]:
        """Plans the precast spells, dropping the off hand for a bonus action spell."""
        state = profile.main.resolution.state
        plan = plan_precast(build, target, state, profile.sequences, slots, stats)
        if plan.uses_bonus_action and profile.off_hand is not None:
            profile = profile.without_off_hand()
            plan = plan_precast(build, target, state, profile.sequences, slots, stats)
        return profile, plan

    def _other_sources(
        self,
        build: Build,
        target: Target,
        combat: CombatContext,
        stats: BuildStats,
        profile: AttackProfile,
        resources: ResourceSnapshot,
    ) -> tuple[float, list[ResourceCost]]:
        """Expected damage of the homebrew riders that are not once per turn."""
        total = 0.0
        costs: list[ResourceCost] = []
        for effect in build.custom_effects:
            if effect.once_per_turn or not isinstance(effect.payload, DamagePayload):
                continue
            cost = effect.resource_cost
            if (
                cost is not None
                and resources.available(cost.resource_type, cost.level) < cost.amount
            ):
                log_debug(
                    f"Skipping {effect.name}: not enough resources", {"cost": str(cost)}
                )
                continue
            payload = effect.payload
            value = 0.0

            if effect.trigger.requires_hit:
                crit_only = effect.trigger == TriggerType.ON_CRIT
                for attack in profile.attacks:
                    context = build_context(
                        build, target, combat, attack.event(0), stats=stats
                    )
                    if not effect.applies(context):
                        continue
                    source = feature_source(
                        effect.name,
                        payload.to_dice(attack.weapon.damage_type),
                        on_crit_double=payload.on_crit_double,
                    )
                    sequence = attack.sequence.model_copy(
                        update={
                            "normal_damage": () if crit_only else (source,),
                            "crit_damage": (source,) if crit_only else (),
                        }
                    )
                    value += DamageAggregator.calculate_dpr(sequence, target)
                if payload.save_dc is not None:
                    success = save_success_probability(
                        payload.save_dc, target.saving_throw_bonus
                    )
                    factor = 1.0 - success
                    if payload.half_on_save:
                        factor += success / 2
                    value *= factor

            elif effect.trigger.is_per_turn:
                context = build_context(build, target, combat, stats=stats)
                if effect.applies(context):
                    source = feature_source(
                        effect.name, payload.to_dice(stats.main_hand.damage_type)
                    )
                    value = DamageAggregator.total((source,), False, target).total
                    if payload.save_dc is not None:
                        value = expected_save_damage(
                            value,
                            payload.save_dc,
                            target.saving_throw_bonus,
                            payload.half_on_save,
                        )

            if value > 0 and cost is not None:
                costs.append(cost)
            total += value
        return total, costs

    def evaluate_turn(
        self,
        build: Build,
        target: Target,
        combat: CombatContext | None = None,
        resources: ResourceSnapshot | None = None,
        round_number: int = 1,
        precast: PrecastPlan | None = None,
    ) -> TurnEvaluation:
        """
        Computes the expected damage of a single turn.

        Args:
            build (Build):
                The attacker's build.
            target (Target):
                The creature being attacked.
            combat (CombatContext | None):
                The circumstances of the attacks.
            resources (ResourceSnapshot | None):
                Remaining resources; defaults to the build's maximum.
            round_number (int):
                The 1-based round, seen by the policy engine.
            precast (PrecastPlan | None):
                Already active spells; planned from the build when omitted.

        Returns:
            TurnEvaluation:
                The breakdown and the decisions taken.

        """
        combat = combat or CombatContext()
        stats = BuildStats(build)
        if resources is None:
            resources = ResourceManager.from_build(build).snapshot()
        context = CombatPolicyContext(
            build=build,
            target=target,
            combat=combat,
            round=round_number,
            resources=resources,
        )
        decisions: list[PolicyDecision] = []

        profile = build_attack_profile(build, target, combat, stats, self.resolver)
        state = profile.main.resolution.state
        profile, power, feature, powered, decision = self._apply_power_attack(
            profile, target, stats, context
        )
        if decision is not None:
            decisions.append(decision)

        # Spells are priced against the attacks actually made this turn.
        if precast is None:
            profile, precast = self._plan_precast(build, target, profile, stats)
        else:
            if precast.uses_bonus_action:
                profile = profile.without_off_hand()
            precast = reprice_precast(
                precast, build, target, state, profile.sequences, stats
            )

        spend = self.policy_engine.decide_resource_usage(context)
        decisions.append(spend)
        effects = build_once_per_turn_effects(build, target, stats)
        if spend.action in (CONSERVE_RESOURCES, NO_SPECIAL_ACTION):
            effects = [effect for effect in effects if effect.resource_cost is None]
        elif spend.action == SMITE_ON_CRIT:
            effects = [
                effect.model_copy(update={"trigger": TriggerType.ON_CRIT})
                if effect.resource_cost is not None
                else effect
                for effect in effects
            ]
        selector = self.policy_engine.selector
        once = selector.analyze(
            build,
            target,
            combat,
            attacks=profile.events(),
            effects=effects,
            stats=stats,
        )
        once = selector.apply_policy(once, build.policies.once_per_turn_policy)

        other, costs = self._other_sources(
            build, target, combat, stats, profile, resources
        )
        breakdown = DPRBreakdown(
            weapon_damage=_weapon_dpr(profile, target),
            once_per_turn=once.expected_damage,
            spell_damage=precast.total_dpr,
            other_sources=other,
        )
        log_debug(
            "Evaluated turn",
            {
                "build": build.name,
                "round": round_number,
                "state": state.value,
                "total": f"{breakdown.total:.2f}",
            },
        )
        return TurnEvaluation(
            profile=profile,
            breakdown=breakdown,
            power_attack=power,
            power_attack_feature=feature,
            power_attack_used=powered,
            once_per_turn=once,
            precast=precast,
            other_costs=costs,
            decisions=decisions,
        )

    # ============================================================================
    # PUBLIC API
    # ============================================================================

    def calculate(
        self,
        build: Build,
        target: Target,
        combat: CombatContext | None = None,
        rounds: int = 3,
    ) -> DPRResult:
        """
        Calculates the expected damage per round of a build.

        Rounds past the configured start round are scaled down by the
        depletion heuristic; use `simulate_rounds` to spend resources
        explicitly instead.

        Args:
            build (Build):
                The attacker's build.
            target (Target):
                The creature being attacked.
            combat (CombatContext | None):
                The circumstances of the attacks.
            rounds (int):
                Rounds to project, clamped to [1, 20].

        Returns:
            DPRResult:
                The total, the per-round projection, the breakdown by
                source, the per-advantage-state comparison and the
                analyses behind them.

        """
        combat = combat or CombatContext()
        rounds = ensure_int_in_range(
            rounds, "rounds", 1, MAX_ROUNDS, {"build": build.name}
        )
        turn = self.evaluate_turn(build, target, combat)
        profile = turn.profile
        main = profile.main

        table = ProbabilityModel.table(
            main.attack_bonus, target.armor_class, main.crit_range, profile.lucky
        )
        conditions = {}
        for state in table:
            conditions[state.value] = 0.0
            for attack in profile.attacks:
                odds = ProbabilityModel.resolve(
                    attack.attack_bonus,
                    target.armor_class,
                    state,
                    attack.crit_range,
                    profile.lucky,
                )
                conditions[state.value] += DamageAggregator.calculate_dpr(
                    attack.sequence.with_probabilities(odds.hit, odds.crit), target
                )

        by_round = [
            turn.total * self.settings.depletion_multiplier(number)
            for number in range(1, rounds + 1)
        ]

        power_attack = None
        if turn.power_attack is not None:
            power_attack = PowerAttackSummary(
                feature=turn.power_attack_feature,
                recommended=turn.power_attack.should_use,
                used=turn.power_attack_used,
                break_even_ac=turn.power_attack.break_even_ac,
                normal_dpr=turn.power_attack.normal_dpr,
                power_attack_dpr=turn.power_attack.power_attack_dpr,
            )

        once = turn.once_per_turn
        once_summary = None
        if once.selected is not None:
            once_summary = OncePerTurnSummary(
                selected_effect=once.selected,
                attack_index=once.attack_index,
                expected_damage=once.expected_damage,
                trigger_probability=once.trigger_probability,
                reasoning=once.reasoning,
                alternatives=once.alternatives,
            )

        result = DPRResult(
            dpr=DPRSummary(
                total=turn.total,
                by_round=by_round,
                breakdown=turn.breakdown,
                conditions=conditions,
            ),
            hit_chances={state.value: odds.hit for state, odds in table.items()},
            crit_chances={state.value: odds.crit for state, odds in table.items()},
            advantage_state=main.resolution.state,
            advantage_reasoning=main.resolution.reasoning,
            power_attack=power_attack,
            once_per_turn_analysis=once_summary,
            active_spells=[spell.name for spell in turn.precast.spells],
            resource_usage=self._planned_usage(build, turn, rounds),
            decisions=turn.decisions,
        )
        log_info(
            f"DPR for {build.name} against {target.name}: {turn.total:.2f}",
            {"ac": target.armor_class, "rounds": rounds},
        )
        return result

    def _planned_usage(
        self, build: Build, turn: TurnEvaluation, rounds: int
    ) -> ResourceUsageSummary:
        """Resources the turn's choices spend over `rounds`, while they last."""
        manager = ResourceManager.from_build(build)
        for level, count in turn.precast.slots_used.items():
            for _ in range(count):
                manager.use_resource(SPELL_SLOT, level=level)
        cost = turn.once_per_turn.resource_cost
        for _ in range(rounds):
            if cost is not None:
                manager.use_resource(
                    cost.resource_type, cost.amount, level=cost.level
                )
            for other in turn.other_costs:
                manager.use_resource(
                    other.resource_type, other.amount, level=other.level
                )
        return summarize_usage(manager.history)

    def simulate_rounds(
        self,
        build: Build,
        target: Target,
        combat: CombatContext | None = None,
        resources: ResourceManager | None = None,
        rounds: int = 3,
    ) -> SimulationResult:
        """
        Plays out several rounds, spending resources as the policies decide.

        Precast spells are cast before the first round. Each round the
        policy engine sees what is left, so a paladin stops smiting once
        the spell slots run out.

        Args:
            build (Build):
                The attacker's build.
            target (Target):
                The creature being attacked.
            combat (CombatContext | None):
                The circumstances of the attacks.
            resources (ResourceManager | None):
                The manager to spend from; a fresh one for the build when
                omitted. It is mutated.
            rounds (int):
                Rounds to simulate, clamped to [1, 20].

        Returns:
            SimulationResult:
                The damage of each round and the resources spent.

        """
        combat = combat or CombatContext()
        rounds = ensure_int_in_range(
            rounds, "rounds", 1, MAX_ROUNDS, {"build": build.name}
        )
        manager = resources or ResourceManager.from_build(build)
        first_usage = len(manager.history)

        stats = BuildStats(build)
        profile = build_attack_profile(build, target, combat, stats, self.resolver)
        opening = CombatPolicyContext(
            build=build,
            target=target,
            combat=combat,
            round=1,
            resources=manager.snapshot(),
        )
        profile, *_ = self._apply_power_attack(profile, target, stats, opening)
        _, precast = self._plan_precast(
            build, target, profile, stats, _available_slots(manager.snapshot())
        )
        for level, count in precast.slots_used.items():
            for _ in range(count):
                manager.use_resource(SPELL_SLOT, purpose="damage", level=level)

        result = SimulationResult()
        for _ in range(rounds):
            number = manager.next_round()
            turn = self.evaluate_turn(
                build, target, combat, manager.snapshot(), number, precast
            )
            once = turn.once_per_turn
            if once.resource_cost is not None:
                cost = once.resource_cost
                manager.use_resource(
                    cost.resource_type,
                    cost.amount,
                    purpose="damage",
                    damage_dealt=once.expected_damage,
                    level=cost.level,
                )
            for cost in turn.other_costs:
                manager.use_resource(cost.resource_type, cost.amount, level=cost.level)
            result.rounds.append(
                RoundResult(
                    round=number,
                    dpr=turn.total,
                    breakdown=turn.breakdown,
                    once_per_turn=once.selected,
                    resources_left=manager.snapshot(),
                )
            )

        result.resource_usage = summarize_usage(manager.history[first_usage:])
        return result

    def compare_scenarios(
        self,
        build: Build,
        target: Target,
        combat: CombatContext | None = None,
    ) -> dict[AdvantageState, float]:
        """Total DPR with the roll state forced to each advantage state."""
        combat = combat or CombatContext()
        return {
            state: self.evaluate_turn(
                build, target, combat.model_copy(update={"advantage_override": state})
            ).total
            for state in AdvantageState
        }


def calculate_dpr(
    build: Build,
    target: Target,
    combat: CombatContext | None = None,
    rounds: int = 3,
    settings: EngineSettings = DEFAULT_SETTINGS,
) -> DPRResult:
    """One-shot DPR calculation with a default orchestrator."""
    return DPROrchestrator(settings).calculate(build, target, combat, rounds)
