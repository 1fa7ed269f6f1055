"""
Precast spells module for the DPR engine.

Spells cast before the first attack (Hunter's Mark, Spiritual Weapon, ...)
contribute their own expected damage every round. Only one concentration
spell can be maintained at a time, so when several are requested the one
with the highest expected damage is kept.
"""

from collections.abc import Sequence
from typing import Literal

from catchery import log_warning
from pydantic import BaseModel, ConfigDict, Field

from dpr_engine.character.build import Build
from dpr_engine.character.build_stats import BuildStats
from dpr_engine.character.target import Target
from dpr_engine.core.constants import AdvantageState, DamageType, RerollMechanic
from dpr_engine.core.logging import log_debug

from .damage import AttackSequence, DamageAggregator, spell_source
from .probability import ProbabilityModel, expected_save_damage


class PrecastSpell(BaseModel):
    """
    A spell whose damage is modeled once it is active.

    Attributes:
        kind (str):
            `rider` adds its dice to every weapon hit, `attack` makes one
            spell attack per round, `save` deals damage every round unless
            the target saves.

    """

    model_config = ConfigDict(frozen=True)

    name: str
    level: int = Field(ge=1, le=9, description="Spell slot level spent.")
    concentration: bool
    kind: Literal["rider", "attack", "save"]
    dice: str
    damage_type: DamageType
    add_spell_modifier: bool = False
    half_on_save: bool = False
    bonus_action: bool = Field(
        default=False,
        description="Whether the spell's attack uses the bonus action each round.",
    )


PRECAST_SPELLS: dict[str, PrecastSpell] = {
    spell.name.lower(): spell
    for spell in (
        PrecastSpell(
            name="Hunter's Mark",
            level=1,
            concentration=True,
            kind="rider",
            dice="1d6",
            damage_type=DamageType.FORCE,
        ),
        PrecastSpell(
            name="Hex",
            level=1,
            concentration=True,
            kind="rider",
            dice="1d6",
            damage_type=DamageType.NECROTIC,
        ),
        PrecastSpell(
            name="Spiritual Weapon",
            level=2,
            concentration=False,
            kind="attack",
            dice="1d8",
            damage_type=DamageType.FORCE,
            add_spell_modifier=True,
            bonus_action=True,
        ),
        PrecastSpell(
            name="Spirit Guardians",
            level=3,
            concentration=True,
            kind="save",
            dice="3d8",
            damage_type=DamageType.RADIANT,
            half_on_save=True,
        ),
    )
}


class SpellContribution(BaseModel):
    """Expected damage of one active spell."""

    name: str
    dpr: float
    level: int
    concentration: bool
    bonus_action: bool = False


class PrecastPlan(BaseModel):
    """The spells kept active and the slots spent casting them."""

    spells: list[SpellContribution] = Field(default_factory=list)
    dropped: list[str] = Field(
        default_factory=list,
        description="Requested spells that were not kept.",
    )
    slots_used: dict[int, int] = Field(default_factory=dict)

    @property
    def total_dpr(self) -> float:
        return sum(spell.dpr for spell in self.spells)

    @property
    def uses_bonus_action(self) -> bool:
        return any(spell.bonus_action for spell in self.spells)


def spell_dpr(
    spell: PrecastSpell,
    stats: BuildStats,
    target: Target,
    advantage_state: AdvantageState,
    weapon_sequences: Sequence[AttackSequence],
) -> float:
    """
    Expected damage per round of an active spell.

    With Elemental Adept for the spell's damage type, 1s on its damage
    dice count as 2s.

    Args:
        spell (PrecastSpell):
            The spell.
        stats (BuildStats):
            The caster's stats.
        target (Target):
            The creature affected.
        advantage_state (AdvantageState):
            Roll state used for spell attacks.
        weapon_sequences (Sequence[AttackSequence]):
            The caster's weapon attacks, for riders.

    Returns:
        float: Expected damage per round.

    """
    bonus = stats.spellcasting_modifier if spell.add_spell_modifier else 0
    reroll = RerollMechanic.NONE
    if stats.elemental_adept(spell.damage_type):
        reroll = RerollMechanic.RAISE_MIN
    source = spell_source(spell.name, spell.dice, spell.damage_type, reroll).with_bonus(
        bonus
    )

    if spell.kind == "rider":
        return sum(
            DamageAggregator.calculate_dpr(
                sequence.model_copy(
                    update={"normal_damage": (source,), "crit_damage": ()}
                ),
                target,
            )
            for sequence in weapon_sequences
        )

    if spell.kind == "attack":
        probabilities = ProbabilityModel.resolve(
            stats.spell_attack_bonus, target.armor_class, advantage_state
        )
        sequence = AttackSequence(
            hit_probability=probabilities.hit,
            crit_probability=probabilities.crit,
            normal_damage=(source,),
        )
        return DamageAggregator.calculate_dpr(sequence, target)

    damage = DamageAggregator.total((source,), False, target).total
    return expected_save_damage(
        damage, stats.spell_save_dc, target.saving_throw_bonus, spell.half_on_save
    )


def _has_slot(slots: dict[int, int], level: int) -> bool:
    return any(count > 0 for slot, count in slots.items() if slot >= level)


def _spend_slot(slots: dict[int, int], level: int) -> int:
    """Spends the lowest available slot of at least `level`, returns its level."""
    for slot in sorted(slots):
        if slot >= level and slots[slot] > 0:
            slots[slot] -= 1
            return slot
    return level


def plan_precast(
    build: Build,
    target: Target,
    advantage_state: AdvantageState,
    weapon_sequences: Sequence[AttackSequence],
    slots: dict[int, int] | None = None,
    stats: BuildStats | None = None,
) -> PrecastPlan:
    """
    Decides which of the build's precast spells are active.

    Unknown spell names are skipped with a warning. Of the concentration
    spells, only the one with the highest expected damage is kept. When
    `slots` is given, spells without an available slot are dropped and
    the slots spent are reported.

    Args:
        build (Build):
            The caster's build; `policies.precast` lists the spells.
        target (Target):
            The creature affected.
        advantage_state (AdvantageState):
            Roll state used for spell attacks.
        weapon_sequences (Sequence[AttackSequence]):
            The caster's weapon attacks, for riders.
        slots (dict[int, int] | None):
            Available spell slots by level.
        stats (BuildStats | None):
            Precomputed stats for the build.

    Returns:
        PrecastPlan:
            The active spells, the dropped ones and the slots spent.

    """
    stats = stats or BuildStats(build)
    remaining = dict(slots) if slots is not None else None
    plan = PrecastPlan()

    candidates: list[tuple[PrecastSpell, float]] = []
    for name in build.policies.precast:
        spell = PRECAST_SPELLS.get(name.strip().lower())
        if spell is None:
            log_warning(
                f"Unknown precast spell '{name}', ignoring it",
                {"build": build.name, "known": sorted(PRECAST_SPELLS)},
            )
            plan.dropped.append(name)
            continue
        dpr = spell_dpr(spell, stats, target, advantage_state, weapon_sequences)
        candidates.append((spell, dpr))

    concentration = [c for c in candidates if c[0].concentration]
    if concentration:
        best = max(concentration, key=lambda c: c[1])
        for spell, _ in concentration:
            if spell is not best[0]:
                plan.dropped.append(spell.name)
        candidates = [c for c in candidates if not c[0].concentration or c is best]

    for spell, dpr in candidates:
        if remaining is not None:
            if not _has_slot(remaining, spell.level):
                log_warning(
                    f"No spell slot left to cast {spell.name}",
                    {"build": build.name, "level": spell.level},
                )
                plan.dropped.append(spell.name)
                continue
            used = _spend_slot(remaining, spell.level)
            plan.slots_used[used] = plan.slots_used.get(used, 0) + 1
        else:
            plan.slots_used[spell.level] = plan.slots_used.get(spell.level, 0) + 1
        plan.spells.append(
            SpellContribution(
                name=spell.name,
                dpr=dpr,
                level=spell.level,
                concentration=spell.concentration,
                bonus_action=spell.bonus_action,
            )
        )

    log_debug(
        "Planned precast spells",
        {
            "active": [spell.name for spell in plan.spells],
            "dropped": plan.dropped,
            "dpr": f"{plan.total_dpr:.2f}",
        },
    )
    return plan


def reprice_precast(
    plan: PrecastPlan,
    build: Build,
    target: Target,
    advantage_state: AdvantageState,
    weapon_sequences: Sequence[AttackSequence],
    stats: BuildStats | None = None,
) -> PrecastPlan:
    """
    Recomputes the damage of the active spells against a turn's attacks.

    The spells and the slots spent are kept; only their expected damage
    follows the given weapon attacks, e.g. once a power attack lowers the
    chance to hit.

    Args:
        plan (PrecastPlan):
            The plan whose spells are active.
        build (Build):
            The caster's build.
        target (Target):
            The creature affected.
        advantage_state (AdvantageState):
            Roll state used for spell attacks.
        weapon_sequences (Sequence[AttackSequence]):
            The weapon attacks of the turn, for riders.
        stats (BuildStats | None):
            Precomputed stats for the build.

    Returns:
        PrecastPlan:
            A copy of `plan` with updated damage.

    """
    stats = stats or BuildStats(build)
    spells = [
        contribution.model_copy(
            update={
                "dpr": spell_dpr(
                    PRECAST_SPELLS[contribution.name.lower()],
                    stats,
                    target,
                    advantage_state,
                    weapon_sequences,
                )
            }
        )
        for contribution in plan.spells
    ]
    return plan.model_copy(update={"spells": spells})
