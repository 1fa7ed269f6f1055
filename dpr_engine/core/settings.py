"""
Engine settings for the DPR engine.

Bundles the tunable constants into a single pydantic model so callers can
override them per analysis without touching module globals.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .constants import (
    AC_SWEEP_MAX,
    AC_SWEEP_MIN,
    DEPLETION_FLOOR,
    DEPLETION_START_ROUND,
    DEPLETION_STEP,
    HIGH_CONFIDENCE_DELTA,
    LOW_CONFIDENCE_DELTA,
    MAX_ALTERNATIVES,
    POSITIONING_THRESHOLD,
    POWER_ATTACK_BONUS,
    POWER_ATTACK_PENALTY,
)


class EngineSettings(BaseModel):
    """Tunable parameters shared by the analyzers and the orchestrator."""

    model_config = ConfigDict(frozen=True)

    power_attack_penalty: int = Field(
        default=POWER_ATTACK_PENALTY,
        description="Attack roll penalty taken when power attacking.",
    )
    power_attack_bonus: int = Field(
        default=POWER_ATTACK_BONUS,
        description="Damage bonus gained by each power attack damage source.",
    )
    ac_sweep_min: int = Field(
        default=AC_SWEEP_MIN,
        ge=1,
        le=30,
        description="Lowest AC considered by break-even sweeps.",
    )
    ac_sweep_max: int = Field(
        default=AC_SWEEP_MAX,
        ge=1,
        le=30,
        description="Highest AC considered by break-even sweeps.",
    )
    depletion_start_round: int = Field(
        default=DEPLETION_START_ROUND,
        ge=0,
        description="Rounds after this one are scaled down by the depletion heuristic.",
    )
    depletion_step: float = Field(
        default=DEPLETION_STEP,
        ge=0.0,
        description="Per-round reduction applied by the depletion heuristic.",
    )
    depletion_floor: float = Field(
        default=DEPLETION_FLOOR,
        ge=0.0,
        le=1.0,
        description="Lowest multiplier the depletion heuristic may apply.",
    )
    positioning_threshold: float = Field(
        default=POSITIONING_THRESHOLD,
        description="Minimum DPR gain required to recommend moving.",
    )
    low_confidence_delta: float = Field(
        default=LOW_CONFIDENCE_DELTA,
        description="EV deltas below this lower the decision confidence.",
    )
    high_confidence_delta: float = Field(
        default=HIGH_CONFIDENCE_DELTA,
        description="EV deltas above this raise the decision confidence.",
    )
    max_alternatives: int = Field(
        default=MAX_ALTERNATIVES,
        ge=0,
        description="How many alternatives analyses report.",
    )

    def model_post_init(self, _: Any) -> None:
        """Validates fields after model initialization."""
        if self.ac_sweep_min > self.ac_sweep_max:
            raise ValueError("ac_sweep_min must not exceed ac_sweep_max")

    @property
    def ac_range(self) -> range:
        return range(self.ac_sweep_min, self.ac_sweep_max + 1)

    def depletion_multiplier(self, round_number: int) -> float:
        """
        Multiplier applied to a round's DPR by the depletion heuristic.

        Args:
            round_number (int):
                The 1-based round number.

        Returns:
            float:
                1.0 up to the start round, then `max(floor, 1 - round*step)`.

        """
        if round_number <= self.depletion_start_round:
            return 1.0
        return max(self.depletion_floor, 1.0 - round_number * self.depletion_step)


DEFAULT_SETTINGS = EngineSettings()
