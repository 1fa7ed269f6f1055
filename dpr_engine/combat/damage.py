"""
Damage module for the DPR engine.

Handles expected damage aggregation: tagged damage sources are summed by
damage type, doubled on critical hits where the source allows it, and
adjusted for the target's immunities, resistances and vulnerabilities.
"""

import math
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from dpr_engine.character.target import Target
from dpr_engine.core.constants import DamageOrigin, DamageType, RerollMechanic
from dpr_engine.core.dice_parser import DiceExpression, DiceModel

UNTYPED = "untyped"


class DamageSource(BaseModel):
    """Represents a single tagged source of damage on a hit.

    The dice carry the damage type; sources without a type are grouped as
    untyped and are never affected by resistances.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Display name of the source.")
    dice: DiceExpression = Field(description="Damage dice including flat bonus.")
    origin: DamageOrigin = Field(
        default=DamageOrigin.WEAPON,
        description="Whether the damage comes from a weapon, spell or feature.",
    )
    on_crit_double: bool = Field(
        default=True,
        description="Whether the dice count doubles on a critical hit.",
    )
    reroll: RerollMechanic = Field(
        default=RerollMechanic.NONE,
        description="Die manipulation applied before averaging.",
    )

    @property
    def damage_type(self) -> DamageType | None:
        return self.dice.damage_type

    def expected(self, is_crit: bool = False) -> float:
        """
        Expected damage of this source for one hit.

        Args:
            is_crit (bool):
                Whether the hit is a critical hit.

        Returns:
            float:
                The expected damage before resistances.

        """
        dice = self.dice.doubled() if is_crit and self.on_crit_double else self.dice
        return DiceModel.expected_with_mechanic(dice, self.reroll)

    def with_bonus(self, extra: int) -> "DamageSource":
        return self.model_copy(update={"dice": self.dice.with_bonus(extra)})

    def __str__(self) -> str:
        damage_type = self.damage_type.value if self.damage_type else UNTYPED
        return f"{self.name} ({self.dice} {damage_type})"


class AttackSequence(BaseModel):
    """The attacks of one weapon in a turn, all sharing the same odds."""

    model_config = ConfigDict(frozen=True)

    hit_probability: float = Field(ge=0.0, le=1.0)
    crit_probability: float = Field(ge=0.0, le=1.0)
    normal_damage: tuple[DamageSource, ...] = Field(
        default=(),
        description="Damage dealt on every hit.",
    )
    crit_damage: tuple[DamageSource, ...] = Field(
        default=(),
        description="Additional damage dealt only on critical hits.",
    )
    num_attacks: int = Field(default=1, ge=1)

    def model_post_init(self, _: Any) -> None:
        """Validates fields after model initialization."""
        if self.crit_probability > self.hit_probability:
            raise ValueError("crit_probability cannot exceed hit_probability")

    def with_probabilities(self, hit: float, crit: float) -> "AttackSequence":
        return self.model_copy(update={"hit_probability": hit, "crit_probability": crit})


class DamageBreakdown(BaseModel):
    """Expected damage of one hit, grouped by damage type."""

    by_type: dict[str, float] = Field(default_factory=dict)
    total: float = 0.0


def apply_defenses(damage_type: DamageType | None, value: float, target: Target) -> float:
    """
    Applies the target's defenses to a damage type total.

    Immunity wins over resistance, which wins over vulnerability. The
    transform is applied once per damage type total.

    Args:
        damage_type (DamageType | None):
            The damage type; untyped damage is unaffected.
        value (float):
            The expected damage of that type.
        target (Target):
            The creature taking the damage.

    Returns:
        float:
            The adjusted expected damage.

    """
    if damage_type is None:
        return value
    if damage_type in target.immunities:
        return 0.0
    if damage_type in target.resistances:
        return float(math.floor(value / 2))
    if damage_type in target.vulnerabilities:
        return value * 2
    return value


class DamageAggregator:
    """Closed-form expected damage over damage sources."""

    @staticmethod
    def total(
        sources: list[DamageSource] | tuple[DamageSource, ...],
        is_crit: bool = False,
        target: Target | None = None,
    ) -> DamageBreakdown:
        """
        Sums the expected damage of several sources for a single hit.

        Args:
            sources (list[DamageSource]):
                The damage sources.
            is_crit (bool):
                Whether the hit is a critical hit.
            target (Target | None):
                If given, its defenses are applied per damage type.

        Returns:
            DamageBreakdown:
                The per-type and total expected damage.

        """
        raw: dict[DamageType | None, float] = {}
        for source in sources:
            raw[source.damage_type] = raw.get(source.damage_type, 0.0) + source.expected(
                is_crit
            )

        by_type: dict[str, float] = {}
        for damage_type, value in raw.items():
            if target is not None:
                value = apply_defenses(damage_type, value, target)
            key = damage_type.value if damage_type else UNTYPED
            by_type[key] = value
        return DamageBreakdown(by_type=by_type, total=sum(by_type.values()))

    @staticmethod
    def expected_per_attack(sequence: AttackSequence, target: Target | None = None) -> float:
        """
        Expected damage of a single attack of the sequence.

        Args:
            sequence (AttackSequence):
                The attack sequence.
            target (Target | None):
                The creature being attacked.

        Returns:
            float:
                `(hit - crit) * normal + crit * crit_total`.

        """
        normal_hit = max(0.0, sequence.hit_probability - sequence.crit_probability)
        normal = DamageAggregator.total(sequence.normal_damage, False, target).total
        critical = DamageAggregator.total(
            sequence.normal_damage + sequence.crit_damage, True, target
        ).total
        return normal_hit * normal + sequence.crit_probability * critical

    @staticmethod
    def calculate_dpr(sequence: AttackSequence, target: Target | None = None) -> float:
        """Expected damage of every attack in the sequence."""
        return DamageAggregator.expected_per_attack(sequence, target) * sequence.num_attacks


# ==============================================================================
# SOURCE CONSTRUCTORS
# ==============================================================================


def weapon_source(
    name: str,
    dice: DiceExpression | str,
    damage_type: DamageType | None = None,
    reroll: RerollMechanic = RerollMechanic.NONE,
) -> DamageSource:
    """Builds a weapon damage source from dice or a dice string."""
    if isinstance(dice, str):
        dice = DiceModel.parse(dice, damage_type)
    return DamageSource(name=name, dice=dice, origin=DamageOrigin.WEAPON, reroll=reroll)


def feature_source(
    name: str,
    dice: DiceExpression | str,
    damage_type: DamageType | None = None,
    on_crit_double: bool = True,
) -> DamageSource:
    """Builds a class feature or homebrew damage source."""
    if isinstance(dice, str):
        dice = DiceModel.parse(dice, damage_type)
    return DamageSource(
        name=name, dice=dice, origin=DamageOrigin.FEATURE, on_crit_double=on_crit_double
    )


def spell_source(
    name: str,
    dice: DiceExpression | str,
    damage_type: DamageType | None = None,
    reroll: RerollMechanic = RerollMechanic.NONE,
    on_crit_double: bool = True,
) -> DamageSource:
    """Builds a spell damage source."""
    if isinstance(dice, str):
        dice = DiceModel.parse(dice, damage_type)
    return DamageSource(
        name=name,
        dice=dice,
        origin=DamageOrigin.SPELL,
        on_crit_double=on_crit_double,
        reroll=reroll,
    )
