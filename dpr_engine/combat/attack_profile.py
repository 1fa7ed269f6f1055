"""
Attack profile module for the DPR engine.

Turns a build, a target and the combat circumstances into the attack
sequences of one turn: the resolved advantage state, the attack bonus with
buffs folded in, the hit and crit chances, and the damage sources of the
main-hand and off-hand attacks.
"""

from pydantic import BaseModel, ConfigDict

from dpr_engine.character.build import Build, Weapon
from dpr_engine.character.build_stats import BuildStats
from dpr_engine.character.target import CombatContext, Target
from dpr_engine.core.dice_parser import DiceModel
from dpr_engine.effects.effect_descriptor import (
    CritRangePayload,
    ToHitPayload,
    effects_for_trigger,
)
from dpr_engine.effects.event_system import AttackEvent, TriggerType

from .advantage import AdvantageResolution, AdvantageResolver
from .context import build_context
from .damage import AttackSequence, DamageSource, weapon_source
from .probability import AttackProbabilities, ProbabilityModel


class WeaponAttack(BaseModel):
    """Everything needed to evaluate the attacks made with one weapon."""

    model_config = ConfigDict(frozen=True)

    weapon: Weapon
    off_hand: bool = False
    resolution: AdvantageResolution
    attack_bonus: float
    crit_range: int
    probabilities: AttackProbabilities
    sequence: AttackSequence

    def event(self, index: int) -> AttackEvent:
        """The attack event seen by conditions for the attack at `index`."""
        return AttackEvent(
            index=index,
            attack_type=self.weapon.attack_type,
            advantage_state=self.resolution.state,
            hit_probability=self.probabilities.hit,
            crit_probability=self.probabilities.crit,
            weapon_properties=self.weapon.properties,
            off_hand=self.off_hand,
        )


class AttackProfile(BaseModel):
    """The weapon attacks of one turn."""

    model_config = ConfigDict(frozen=True)

    main: WeaponAttack
    off_hand: WeaponAttack | None = None
    lucky: bool = False

    @property
    def attacks(self) -> list[WeaponAttack]:
        return [self.main] if self.off_hand is None else [self.main, self.off_hand]

    @property
    def sequences(self) -> list[AttackSequence]:
        return [attack.sequence for attack in self.attacks]

    def events(self) -> list[AttackEvent]:
        """Attack events of the whole turn, main hand first."""
        events = [self.main.event(i) for i in range(self.main.sequence.num_attacks)]
        if self.off_hand is not None:
            events.append(self.off_hand.event(len(events)))
        return events

    def without_off_hand(self) -> "AttackProfile":
        return self.model_copy(update={"off_hand": None})


def buff_bonus(combat: CombatContext) -> float:
    """Expected value of the dice added to every attack roll (e.g. Bless)."""
    return sum(DiceModel.average(DiceModel.parse(dice)) for dice in combat.bonus_dice)


def _weapon_attack(
    build: Build,
    target: Target,
    combat: CombatContext,
    stats: BuildStats,
    resolver: AdvantageResolver,
    weapon: Weapon,
    off_hand: bool,
    num_attacks: int,
) -> WeaponAttack:
    event = AttackEvent(
        attack_type=weapon.attack_type,
        weapon_properties=weapon.properties,
        off_hand=off_hand,
    )
    context = build_context(build, target, combat, event, stats=stats)
    resolution = resolver.resolve(context)

    attack_bonus = stats.attack_bonus(weapon) + buff_bonus(combat)
    crit_range = stats.crit_range
    for effect in effects_for_trigger(list(build.custom_effects), TriggerType.ON_ATTACK_ROLL):
        if not effect.applies(context):
            continue
        if isinstance(effect.payload, ToHitPayload):
            attack_bonus += effect.payload.bonus
        elif isinstance(effect.payload, CritRangePayload):
            crit_range += effect.payload.extra

    probabilities = ProbabilityModel.resolve(
        attack_bonus, target.armor_class, resolution.state, crit_range, stats.halfling_luck
    )

    normal: tuple[DamageSource, ...] = (
        weapon_source(
            weapon.name,
            stats.weapon_dice(weapon, off_hand),
            reroll=stats.reroll_mechanic(weapon),
        ),
    )
    crit_only: tuple[DamageSource, ...] = ()
    if stats.brutal_critical_dice and weapon.is_melee and weapon.dice.sides:
        crit_only = (
            weapon_source(
                "Brutal Critical",
                f"{stats.brutal_critical_dice}d{weapon.dice.sides}",
                weapon.damage_type,
            ),
        )

    return WeaponAttack(
        weapon=weapon,
        off_hand=off_hand,
        resolution=resolution,
        attack_bonus=attack_bonus,
        crit_range=crit_range,
        probabilities=probabilities,
        sequence=AttackSequence(
            hit_probability=probabilities.hit,
            crit_probability=probabilities.crit,
            normal_damage=normal,
            crit_damage=crit_only,
            num_attacks=num_attacks,
        ),
    )


def build_attack_profile(
    build: Build,
    target: Target,
    combat: CombatContext,
    stats: BuildStats | None = None,
    resolver: AdvantageResolver | None = None,
) -> AttackProfile:
    """
    Assembles the weapon attacks of one turn.

    The main hand (an unarmed strike when empty) attacks once per attack of
    the Attack action; an off-hand weapon adds one bonus action attack whose
    ability modifier only counts with Two-Weapon Fighting.

    Args:
        build (Build):
            The attacker's build.
        target (Target):
            The creature being attacked.
        combat (CombatContext):
            The circumstances of the attacks.
        stats (BuildStats | None):
            Precomputed stats for the build.
        resolver (AdvantageResolver | None):
            The advantage resolver to use.

    Returns:
        AttackProfile:
            The main-hand and off-hand attacks.

    """
    stats = stats or BuildStats(build)
    resolver = resolver or AdvantageResolver()
    main = _weapon_attack(
        build, target, combat, stats, resolver,
        stats.main_hand, False, stats.number_of_attacks,
    )
    off_hand = None
    if stats.off_hand is not None:
        off_hand = _weapon_attack(
            build, target, combat, stats, resolver, stats.off_hand, True, 1
        )
    return AttackProfile(main=main, off_hand=off_hand, lucky=stats.halfling_luck)
