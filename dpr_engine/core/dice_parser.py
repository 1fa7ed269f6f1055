"""
Dice model module for the DPR engine.

Parses dice expressions into structured values and computes closed-form
expected, minimum and maximum damage, including the two damage-die
manipulations used by fighting styles and feats (reroll low faces once,
raise the minimum face).
"""

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .constants import DamageType, RerollMechanic
from .error_handling import FormatError


class DiceExpression(BaseModel):
    """A dice term `NdM+B` with an optional damage type."""

    model_config = ConfigDict(frozen=True)

    count: int = Field(
        default=0,
        ge=0,
        description="Number of dice rolled.",
    )
    sides: int = Field(
        default=0,
        ge=0,
        description="Number of faces on each die.",
    )
    bonus: int = Field(
        default=0,
        description="Flat modifier added to the dice total.",
    )
    damage_type: DamageType | None = Field(
        default=None,
        description="The damage type dealt by this expression, if any.",
    )

    def model_post_init(self, _: Any) -> None:
        """Validates fields after model initialization."""
        if self.count > 0 and self.sides == 0:
            raise ValueError("dice with a count must have at least one side")

    @property
    def has_dice(self) -> bool:
        return self.count > 0

    def doubled(self) -> "DiceExpression":
        """Returns a copy with the dice count doubled (critical hit)."""
        return self.model_copy(update={"count": self.count * 2})

    def with_bonus(self, extra: int) -> "DiceExpression":
        """Returns a copy with `extra` added to the flat bonus."""
        return self.model_copy(update={"bonus": self.bonus + extra})

    def __str__(self) -> str:
        if not self.has_dice:
            return str(self.bonus)
        text = f"{self.count}d{self.sides}"
        if self.bonus > 0:
            text += f"+{self.bonus}"
        elif self.bonus < 0:
            text += f"{self.bonus}"
        return text


class DiceModel:
    """Closed-form statistics over dice expressions."""

    DICE_PATTERN = re.compile(r"^(\d*)d(\d+)(?:([+-])(\d+))?$", re.IGNORECASE)
    FLAT_PATTERN = re.compile(r"^[+-]?\d+$")

    @staticmethod
    def parse(expression: Any, damage_type: DamageType | None = None) -> DiceExpression:
        """
        Parses a dice expression such as "2d6+3", "d8", "1d4-1" or "5".

        Args:
            expression (Any):
                The expression to parse.
            damage_type (DamageType | None):
                Damage type attached to the parsed expression.

        Returns:
            DiceExpression:
                The parsed expression.

        Raises:
            FormatError:
                If the expression matches neither `NdM(+B)?` nor an integer.

        """
        if not isinstance(expression, str):
            raise FormatError(expression, "expected a string")
        expr = expression.replace(" ", "")
        if not expr:
            raise FormatError(expression, "empty expression")

        if DiceModel.FLAT_PATTERN.match(expr):
            return DiceExpression(bonus=int(expr), damage_type=damage_type)

        match = DiceModel.DICE_PATTERN.match(expr)
        if not match:
            raise FormatError(expression)

        count_str, sides_str, sign, bonus_str = match.groups()
        if int(sides_str) == 0:
            raise FormatError(expression, "dice need at least one side")
        bonus = int(bonus_str) if bonus_str else 0
        if sign == "-":
            bonus = -bonus
        return DiceExpression(
            count=int(count_str) if count_str else 1,
            sides=int(sides_str),
            bonus=bonus,
            damage_type=damage_type,
        )

    @staticmethod
    def average(dice: DiceExpression) -> float:
        """
        Returns the signed mean of a dice expression, without any floor.

        Used for attack roll modifiers, where a negative total is a penalty.
        """
        if dice.count == 0:
            return float(dice.bonus)
        return dice.count * (dice.sides + 1) / 2 + dice.bonus

    @staticmethod
    def _floored_expectation(dice: DiceExpression, faces: dict[int, float]) -> float:
        """Expected value of `max(0, total)` given the per-die face weights."""
        totals = {dice.bonus: 1.0}
        for _ in range(dice.count):
            rolled: dict[int, float] = {}
            for total, weight in totals.items():
                for face, chance in faces.items():
                    key = total + face
                    rolled[key] = rolled.get(key, 0.0) + weight * chance
            totals = rolled
        return sum(max(0, total) * weight for total, weight in totals.items())

    @staticmethod
    def expected_value(dice: DiceExpression) -> float:
        """
        Returns the expected damage of a dice expression.

        Damage never drops below zero, so a negative bonus that can outweigh
        the dice is averaged over the floored totals.

        Args:
            dice (DiceExpression):
                The dice expression.

        Returns:
            float:
                `count*(sides+1)/2 + bonus` when the total cannot go negative,
                the floored expectation otherwise.

        """
        if dice.count + dice.bonus >= 0:
            return DiceModel.average(dice)
        if dice.count == 0:
            return 0.0
        faces = {face: 1 / dice.sides for face in range(1, dice.sides + 1)}
        return DiceModel._floored_expectation(dice, faces)

    @staticmethod
    def minimum(dice: DiceExpression) -> int:
        """Returns the lowest possible total, never below zero."""
        return max(0, dice.count + dice.bonus)

    @staticmethod
    def maximum(dice: DiceExpression) -> int:
        """Returns the highest possible total, never below zero."""
        return max(0, dice.count * dice.sides + dice.bonus)

    @staticmethod
    def reroll_low(dice: DiceExpression) -> float:
        """
        Expected total when every die showing 1 or 2 is rerolled once and the
        new result is kept (Great Weapon Fighting).

        A kept face contributes its own value, a rerolled face contributes
        the plain die average. Dice with two faces or fewer are unaffected.

        Args:
            dice (DiceExpression):
                The dice expression.

        Returns:
            float:
                The expected total including the flat bonus, never below zero.

        """
        if dice.count == 0 or dice.sides <= 2:
            return DiceModel.expected_value(dice)
        sides = dice.sides
        if dice.count + dice.bonus < 0:
            faces = {
                face: (0.0 if face <= 2 else 1 / sides) + 2 / sides / sides
                for face in range(1, sides + 1)
            }
            return DiceModel._floored_expectation(dice, faces)
        average = (sides + 1) / 2
        kept_faces = sides * (sides + 1) / 2 - 3
        per_die = (kept_faces + 2 * average) / sides
        return dice.count * per_die + dice.bonus

    @staticmethod
    def raise_minimum_face(dice: DiceExpression) -> float:
        """
        Expected total when a face of 1 counts as a 2 (Elemental Adept).

        Args:
            dice (DiceExpression):
                The dice expression.

        Returns:
            float:
                The expected total including the flat bonus, never below zero.

        """
        if dice.count == 0 or dice.sides <= 1:
            return DiceModel.expected_value(dice)
        sides = dice.sides
        if 2 * dice.count + dice.bonus < 0:
            faces = {face: 1 / sides for face in range(2, sides + 1)}
            faces[2] += 1 / sides
            return DiceModel._floored_expectation(dice, faces)
        modified_average = (sides * (sides + 1) / 2 - 1 + 2) / sides
        return dice.count * modified_average + dice.bonus

    @staticmethod
    def expected_with_mechanic(
        dice: DiceExpression, mechanic: RerollMechanic = RerollMechanic.NONE
    ) -> float:
        """Dispatches to the expectation matching the reroll mechanic."""
        if mechanic == RerollMechanic.REROLL_LOW:
            return DiceModel.reroll_low(dice)
        if mechanic == RerollMechanic.RAISE_MIN:
            return DiceModel.raise_minimum_face(dice)
        return DiceModel.expected_value(dice)


def parse_dice(expression: str, damage_type: DamageType | None = None) -> DiceExpression:
    """Shortcut for `DiceModel.parse`."""
    return DiceModel.parse(expression, damage_type)
