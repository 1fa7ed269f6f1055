"""
Event system module for the DPR engine.

Defines the closed set of triggers an effect can hook into, and the
per-attack event carried through the evaluation context when deciding
whether a trigger's condition holds for a specific attack.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from dpr_engine.core.constants import AdvantageState, AttackType


class TriggerType(Enum):
    """Enumeration of the moments an effect can hook into."""

    ON_ATTACK_ROLL = "on_attack_roll"  # Before the d20 is rolled
    ON_HIT = "on_hit"  # When an attack hits
    ON_CRIT = "on_crit"  # When an attack is a critical hit
    ON_DAMAGE_ROLL = "on_damage_roll"  # When weapon damage is rolled
    ON_SAVE = "on_save"  # When the target rolls a saving throw against us
    ON_TURN_START = "on_turn_start"  # At the beginning of our turn
    ON_TURN_END = "on_turn_end"  # At the end of our turn
    ON_KILL = "on_kill"  # When the target drops to 0 HP

    @property
    def requires_hit(self) -> bool:
        return self in (
            TriggerType.ON_HIT,
            TriggerType.ON_CRIT,
            TriggerType.ON_DAMAGE_ROLL,
        )

    @property
    def is_per_turn(self) -> bool:
        return self in (
            TriggerType.ON_SAVE,
            TriggerType.ON_TURN_START,
            TriggerType.ON_TURN_END,
        )


class AttackEvent(BaseModel):
    """Per-attack data visible to conditions under the `attack` root."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(
        default=0,
        ge=0,
        description="Position of the attack within the turn.",
    )
    attack_type: AttackType = Field(
        default=AttackType.MELEE,
        description="Whether the attack is a melee or a ranged attack.",
    )
    advantage_state: AdvantageState = Field(
        default=AdvantageState.NORMAL,
        description="Resolved advantage state of the attack roll.",
    )
    hit_probability: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        description="Probability the attack hits (crits included).",
    )
    crit_probability: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        description="Probability the attack is a critical hit.",
    )
    weapon_properties: frozenset[str] = Field(
        default_factory=frozenset,
        description="Properties of the weapon making the attack.",
    )
    off_hand: bool = Field(
        default=False,
        description="Whether this is the bonus action off-hand attack.",
    )

    def __str__(self) -> str:
        return (
            f"AttackEvent(index={self.index}, type={self.attack_type}, "
            f"state={self.advantage_state}, hit={self.hit_probability:.2f}, "
            f"crit={self.crit_probability:.2f})"
        )
