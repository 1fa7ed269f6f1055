"""
Build module for the DPR engine.

Defines the immutable snapshot of a character build as handed to the
engine: class levels, ability scores, equipment, features, fighting
styles, declarative policies and homebrew effect descriptors.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from dpr_engine.core.constants import (
    AttackType,
    DamageType,
    OncePerTurnPolicy,
    PositioningPolicy,
    PowerAttackPolicy,
    SmitePolicy,
    TargetingPolicy,
)
from dpr_engine.core.dice_parser import DiceExpression, DiceModel
from dpr_engine.core.utils import normalize_names
from dpr_engine.effects.effect_descriptor import EffectDescriptor


class AbilityScores(BaseModel):
    """The six ability scores of a build."""

    model_config = ConfigDict(frozen=True)

    strength: int = Field(default=10, ge=1, le=30)
    dexterity: int = Field(default=10, ge=1, le=30)
    constitution: int = Field(default=10, ge=1, le=30)
    intelligence: int = Field(default=10, ge=1, le=30)
    wisdom: int = Field(default=10, ge=1, le=30)
    charisma: int = Field(default=10, ge=1, le=30)

    def score(self, ability: str) -> int:
        """Returns the score for an ability name such as 'dexterity'."""
        return getattr(self, ability.lower())


class ClassLevel(BaseModel):
    """Levels taken in a single class."""

    model_config = ConfigDict(frozen=True)

    class_name: str = Field(description="Class name, e.g. 'Fighter'.")
    subclass: str | None = Field(default=None, description="Subclass name.")
    level: int = Field(default=1, ge=1, le=20, description="Levels in the class.")

    @field_validator("class_name", "subclass")
    @classmethod
    def normalize_name(cls, value: str | None) -> str | None:
        return value.strip().lower() if value else value


class Weapon(BaseModel):
    """A weapon wielded by the build."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Weapon name.")
    attack_type: AttackType = Field(
        default=AttackType.MELEE,
        description="Whether the weapon is used in melee or at range.",
    )
    damage: str = Field(description="Base damage dice, e.g. '1d8'.")
    damage_type: DamageType = Field(description="The weapon's damage type.")
    properties: frozenset[str] = Field(
        default_factory=frozenset,
        description="Weapon properties (finesse, light, heavy, two-handed, ...).",
    )
    magic_bonus: int = Field(
        default=0,
        ge=0,
        le=3,
        description="Enhancement bonus to attack and damage rolls.",
    )

    @field_validator("properties", mode="before")
    @classmethod
    def normalize_properties(cls, value: Any) -> Any:
        return normalize_names(value)

    def model_post_init(self, _: Any) -> None:
        """Validates fields after model initialization."""
        DiceModel.parse(self.damage)

    @property
    def dice(self) -> DiceExpression:
        return DiceModel.parse(self.damage, self.damage_type)

    def has_property(self, name: str) -> bool:
        return name.lower() in self.properties

    @property
    def is_ranged(self) -> bool:
        return self.attack_type == AttackType.RANGED

    @property
    def is_melee(self) -> bool:
        return self.attack_type == AttackType.MELEE


UNARMED_STRIKE = Weapon(
    name="Unarmed Strike",
    damage="1d4",
    damage_type=DamageType.BLUDGEONING,
)


class Equipment(BaseModel):
    """Weapons held by the build."""

    model_config = ConfigDict(frozen=True)

    main_hand: Weapon | None = Field(default=None, description="Main-hand weapon.")
    off_hand: Weapon | None = Field(default=None, description="Off-hand weapon.")


class Policies(BaseModel):
    """
    Declarative policies resolving in-combat choices automatically.

    Values are kept as given so that unrecognized policies reach the policy
    engine, which answers them with a neutral decision.
    """

    model_config = ConfigDict(frozen=True)

    smite_policy: SmitePolicy | str = Field(default=SmitePolicy.OPTIMAL)
    once_per_turn_policy: OncePerTurnPolicy | str = Field(
        default=OncePerTurnPolicy.BEST_HIT
    )
    power_attack_policy: PowerAttackPolicy | str = Field(
        default=PowerAttackPolicy.OPTIMAL
    )
    power_attack_threshold_ev: float = Field(
        default=0.0,
        ge=0.0,
        description="Minimum DPR gain before power attack is recommended.",
    )
    targeting_policy: TargetingPolicy | str = Field(default=TargetingPolicy.OPTIMAL)
    positioning_policy: PositioningPolicy | str = Field(
        default=PositioningPolicy.OPTIMAL
    )
    precast: tuple[str, ...] = Field(
        default=(),
        description="Spells cast before combat starts (e.g. \"Hunter's Mark\").",
    )


class Build(BaseModel):
    """
    Immutable snapshot of a character build.

    Features and fighting styles are matched case-insensitively.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(default="Build", description="Display name of the build.")
    levels: tuple[ClassLevel, ...] = Field(
        default=(ClassLevel(class_name="fighter", level=1),),
        min_length=1,
        description="Class levels, in the order they were taken.",
    )
    abilities: AbilityScores = Field(default_factory=AbilityScores)
    proficiency_bonus: int | None = Field(
        default=None,
        ge=2,
        le=6,
        description="Proficiency bonus; derived from total level when omitted.",
    )
    equipment: Equipment = Field(default_factory=Equipment)
    features: frozenset[str] = Field(
        default_factory=frozenset,
        description="Feats and class features, e.g. 'sharpshooter'.",
    )
    fighting_styles: frozenset[str] = Field(
        default_factory=frozenset,
        description="Fighting styles, e.g. 'great weapon fighting'.",
    )
    policies: Policies = Field(default_factory=Policies)
    spell_slots: dict[int, int] | None = Field(
        default=None,
        description="Explicit spell slots by level; derived from classes when omitted.",
    )
    custom_effects: tuple[EffectDescriptor, ...] = Field(
        default=(),
        description="Homebrew effect descriptors.",
    )

    @field_validator("features", "fighting_styles", mode="before")
    @classmethod
    def lower_names(cls, value: Any) -> Any:
        return normalize_names(value)

    @property
    def total_level(self) -> int:
        return min(20, sum(entry.level for entry in self.levels))

    def class_level(self, class_name: str) -> int:
        """Returns the levels taken in a class (0 if none)."""
        name = class_name.lower()
        return sum(entry.level for entry in self.levels if entry.class_name == name)

    def subclass_of(self, class_name: str) -> str | None:
        name = class_name.lower()
        for entry in self.levels:
            if entry.class_name == name and entry.subclass:
                return entry.subclass
        return None

    def has_feature(self, name: str) -> bool:
        return name.lower() in self.features

    def has_fighting_style(self, name: str) -> bool:
        return name.lower() in self.fighting_styles
