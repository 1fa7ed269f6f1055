"""
Probability module for the DPR engine.

Converts an attack bonus, a target AC and a resolved advantage state into
hit and critical hit probabilities, and provides the related helpers for
saving throws and multi-attack turns.
"""

from pydantic import BaseModel, ConfigDict, Field

from dpr_engine.core.constants import MAX_HIT_CHANCE, MIN_HIT_CHANCE, AdvantageState
from dpr_engine.core.utils import clamp


class AttackProbabilities(BaseModel):
    """Hit and crit chances of a single attack roll."""

    model_config = ConfigDict(frozen=True)

    advantage_state: AdvantageState = Field(default=AdvantageState.NORMAL)
    needed_roll: float = Field(description="Lowest d20 face that hits.")
    hit: float = Field(ge=0.0, le=1.0, description="Chance to hit, crits included.")
    crit: float = Field(ge=0.0, le=1.0, description="Chance of a critical hit.")

    @property
    def normal_hit(self) -> float:
        """Chance of a non-critical hit."""
        return self.hit - self.crit

    @property
    def miss(self) -> float:
        return 1.0 - self.hit


def _apply_state(probability: float, state: AdvantageState) -> float:
    if state == AdvantageState.ADVANTAGE:
        return 1.0 - (1.0 - probability) ** 2
    if state == AdvantageState.TRIPLE_ADVANTAGE:
        return 1.0 - (1.0 - probability) ** 3
    if state == AdvantageState.DISADVANTAGE:
        return probability**2
    return probability


class ProbabilityModel:
    """Closed-form attack roll probabilities."""

    @staticmethod
    def needed_roll(attack_bonus: float, target_ac: int) -> float:
        """
        Returns the d20 face needed to hit, clamped to [2, 20].

        Args:
            attack_bonus (float):
                Total bonus added to the d20.
            target_ac (int):
                The target's armor class.

        Returns:
            float: The needed roll.

        """
        return clamp(target_ac - attack_bonus + 1, 2, 20)

    @staticmethod
    def base_hit(attack_bonus: float, target_ac: int) -> float:
        """Single-die hit chance, bounded by automatic hits and misses."""
        needed = ProbabilityModel.needed_roll(attack_bonus, target_ac)
        return clamp((21 - needed) / 20, MIN_HIT_CHANCE, MAX_HIT_CHANCE)

    @staticmethod
    def resolve(
        attack_bonus: float,
        target_ac: int,
        advantage_state: AdvantageState = AdvantageState.NORMAL,
        crit_range: int = 1,
        lucky: bool = False,
    ) -> AttackProbabilities:
        """
        Resolves hit and crit chances for one attack roll.

        Args:
            attack_bonus (float):
                Total bonus added to the d20.
            target_ac (int):
                The target's armor class.
            advantage_state (AdvantageState):
                The resolved roll state.
            crit_range (int):
                Number of d20 faces that crit (1 means 20 only).
            lucky (bool):
                Whether natural 1s are rerolled once (Halfling Luck).

        Returns:
            AttackProbabilities:
                The resolved probabilities; crit never exceeds hit.

        """
        needed = ProbabilityModel.needed_roll(attack_bonus, target_ac)
        hit = clamp((21 - needed) / 20, MIN_HIT_CHANCE, MAX_HIT_CHANCE)
        crit = min(max(crit_range, 0) / 20, hit)
        if lucky:
            hit += hit / 20
            crit += crit / 20
        return AttackProbabilities(
            advantage_state=advantage_state,
            needed_roll=needed,
            hit=_apply_state(hit, advantage_state),
            crit=_apply_state(crit, advantage_state),
        )

    @staticmethod
    def table(
        attack_bonus: float,
        target_ac: int,
        crit_range: int = 1,
        lucky: bool = False,
    ) -> dict[AdvantageState, AttackProbabilities]:
        """Resolves the probabilities for every advantage state."""
        return {
            state: ProbabilityModel.resolve(
                attack_bonus, target_ac, state, crit_range, lucky
            )
            for state in AdvantageState
        }


# ==============================================================================
# MULTI-ATTACK AND SAVING THROW HELPERS
# ==============================================================================


def probability_at_least_one_hit(hit: float, attacks: int) -> float:
    """Chance that at least one of `attacks` independent attacks hits."""
    if attacks <= 0:
        return 0.0
    return 1.0 - (1.0 - hit) ** attacks


def expected_hits(hit: float, attacks: int) -> float:
    return hit * max(0, attacks)


def save_success_probability(save_dc: int, save_bonus: int) -> float:
    """
    Chance that a creature succeeds on a saving throw.

    Args:
        save_dc (int):
            The DC to beat.
        save_bonus (int):
            The creature's bonus to the save.

    Returns:
        float: Probability of `d20 + save_bonus >= save_dc`.

    """
    return clamp((21 - (save_dc - save_bonus)) / 20, 0.0, 1.0)


def expected_save_damage(
    damage: float, save_dc: int, save_bonus: int, half_on_save: bool = True
) -> float:
    """
    Expected damage of an effect the target saves against.

    Args:
        damage (float):
            Expected damage on a failed save.
        save_dc (int):
            The DC to beat.
        save_bonus (int):
            The target's bonus to the save.
        half_on_save (bool):
            Whether a successful save still takes half damage.

    Returns:
        float: The expected damage.

    """
    success = save_success_probability(save_dc, save_bonus)
    expected = (1.0 - success) * damage
    if half_on_save:
        expected += success * damage / 2
    return expected
