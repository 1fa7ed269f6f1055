"""
Target and combat context module for the DPR engine.

Defines the immutable snapshots describing who is being attacked and the
circumstances of the attack (cover, lighting, flanking, conditions).
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from dpr_engine.core.constants import AdvantageState, AttackRange, Cover, DamageType, Lighting
from dpr_engine.core.utils import normalize_names


class Target(BaseModel):
    """The creature being attacked."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(default="Target", description="Display name of the target.")
    armor_class: int = Field(default=15, ge=5, le=30, description="Armor class.")
    max_hp: int | None = Field(default=None, ge=1, description="Maximum hit points.")
    current_hp: int | None = Field(default=None, ge=0, description="Current hit points.")
    creature_type: str = Field(
        default="humanoid",
        description="Creature type (humanoid, undead, fiend, ...).",
    )
    role: str | None = Field(
        default=None,
        description="Tactical role (spellcaster, support, brute, ...).",
    )
    resistances: frozenset[DamageType] = Field(default_factory=frozenset)
    immunities: frozenset[DamageType] = Field(default_factory=frozenset)
    vulnerabilities: frozenset[DamageType] = Field(default_factory=frozenset)
    conditions: frozenset[str] = Field(
        default_factory=frozenset,
        description="Conditions affecting the target (prone, restrained, ...).",
    )
    saving_throw_bonus: int = Field(
        default=0,
        description="Bonus the target adds to saving throws against our effects.",
    )

    @field_validator("conditions", mode="before")
    @classmethod
    def normalize_conditions(cls, value: Any) -> Any:
        return normalize_names(value)

    @field_validator("creature_type", "role")
    @classmethod
    def normalize_type(cls, value: str | None) -> str | None:
        return value.strip().lower() if value else value

    @property
    def hp_fraction(self) -> float:
        """Current HP as a fraction of maximum, 1.0 when unknown."""
        if not self.max_hp:
            return 1.0
        current = self.max_hp if self.current_hp is None else self.current_hp
        return max(0.0, min(1.0, current / self.max_hp))

    @property
    def is_bloodied(self) -> bool:
        """True when the target is known to be below its maximum HP."""
        if self.max_hp is None or self.current_hp is None:
            return False
        return self.current_hp < self.max_hp

    @property
    def remaining_hp(self) -> int | None:
        if self.current_hp is not None:
            return self.current_hp
        return self.max_hp


class CombatContext(BaseModel):
    """Circumstances of an attack."""

    model_config = ConfigDict(frozen=True)

    advantage_override: AdvantageState | None = Field(
        default=None,
        description="Forces a roll state, bypassing source resolution.",
    )
    cover: Cover = Field(default=Cover.NONE)
    range: AttackRange = Field(default=AttackRange.NORMAL)
    lighting: Lighting = Field(default=Lighting.BRIGHT)
    flanking: bool = Field(default=False)
    hidden: bool = Field(default=False, description="The attacker is unseen.")
    reckless_attack: bool = Field(default=False)
    ally_within_5ft: bool = Field(
        default=False,
        description="An ally of the attacker is within 5 ft of the target.",
    )
    target_actions: frozenset[str] = Field(
        default_factory=frozenset,
        description="Actions the target took this round (dodge, ...).",
    )
    attacker_conditions: frozenset[str] = Field(
        default_factory=frozenset,
        description="Conditions affecting the attacker (blinded, poisoned, ...).",
    )
    target_conditions: frozenset[str] = Field(
        default_factory=frozenset,
        description="Extra target conditions applied for this attack only.",
    )
    bonus_dice: tuple[str, ...] = Field(
        default=(),
        description="Dice added to attack rolls, e.g. ('1d4',) for Bless.",
    )

    @field_validator("target_actions", "attacker_conditions", "target_conditions", mode="before")
    @classmethod
    def lower_names(cls, value: Any) -> Any:
        return normalize_names(value)
