"""
Constants and enumerations for the DPR engine.

Defines global tuning constants and the enumerations for damage types,
advantage states, damage origins, reroll mechanics, resource types and the
declarative policies used throughout the engine.
"""

from enum import Enum

# Power attack trade-off (Sharpshooter / Great Weapon Master).
POWER_ATTACK_PENALTY = 5
POWER_ATTACK_BONUS = 10

# AC values swept when searching for break-even points.
AC_SWEEP_MIN = 5
AC_SWEEP_MAX = 30

# Multi-round projection heuristic.
DEPLETION_START_ROUND = 3
DEPLETION_STEP = 0.1
DEPLETION_FLOOR = 0.5
MAX_ROUNDS = 20
MAX_LEVEL = 20

# Policy engine thresholds.
POSITIONING_THRESHOLD = 1.0
LOW_CONFIDENCE_DELTA = 0.5
HIGH_CONFIDENCE_DELTA = 2.0
MAX_ALTERNATIVES = 3

# Hit probability bounds (natural 1 always misses, natural 20 always hits).
MIN_HIT_CHANCE = 0.05
MAX_HIT_CHANCE = 0.95


class NiceEnum(Enum):
    """An enumeration that provides a nicer string representation."""

    def __str__(self) -> str:
        return self.name


class DamageType(NiceEnum):
    """Defines various types of damage that can be inflicted."""

    PIERCING = "piercing"
    SLASHING = "slashing"
    BLUDGEONING = "bludgeoning"
    FIRE = "fire"
    COLD = "cold"
    LIGHTNING = "lightning"
    THUNDER = "thunder"
    POISON = "poison"
    NECROTIC = "necrotic"
    RADIANT = "radiant"
    PSYCHIC = "psychic"
    FORCE = "force"
    ACID = "acid"


class AdvantageState(NiceEnum):
    """The single resolved roll state for an attack."""

    NORMAL = "normal"
    ADVANTAGE = "advantage"
    DISADVANTAGE = "disadvantage"
    TRIPLE_ADVANTAGE = "triple-advantage"


class AdvantageKind(NiceEnum):
    """Whether an advantage source grants advantage or imposes disadvantage."""

    ADVANTAGE = "advantage"
    DISADVANTAGE = "disadvantage"


class DamageOrigin(NiceEnum):
    """Where a damage source comes from."""

    WEAPON = "weapon"
    SPELL = "spell"
    FEATURE = "feature"


class RerollMechanic(NiceEnum):
    """Damage die manipulation applied before averaging."""

    NONE = "none"
    REROLL_LOW = "reroll-low"
    RAISE_MIN = "raise-min"


class AttackType(NiceEnum):
    """Defines whether a weapon is used in melee or at range."""

    MELEE = "melee"
    RANGED = "ranged"


class Cover(NiceEnum):
    """Degrees of cover a target can have."""

    NONE = "none"
    HALF = "half"
    THREE_QUARTERS = "three-quarters"
    FULL = "full"


class AttackRange(NiceEnum):
    """Range band of the attack."""

    NORMAL = "normal"
    LONG = "long"


class Lighting(NiceEnum):
    """Lighting conditions around the target."""

    BRIGHT = "bright"
    DIM = "dim"
    DARKNESS = "darkness"


class ResourceType(NiceEnum):
    """Closed set of resource tags that resource costs may reference."""

    SPELL_SLOT = "spellSlot"
    SUPERIORITY_DIE = "superiorityDie"
    KI = "ki"
    RAGE = "rage"
    BARDIC = "bardic"
    SORCERY = "sorcery"
    WARLOCK = "warlock"
    OTHER = "other"


class RestType(NiceEnum):
    """When a resource pool recharges."""

    SHORT = "short"
    LONG = "long"


class SmitePolicy(NiceEnum):
    """How resource-costly on-hit effects are spent."""

    NEVER = "never"
    ON_CRIT = "onCrit"
    OPTIMAL = "optimal"
    ALWAYS = "always"


class OncePerTurnPolicy(NiceEnum):
    """Which attack in the sequence receives a once-per-turn effect."""

    FIRST_HIT = "firstHit"
    BEST_HIT = "bestHit"


class PowerAttackPolicy(NiceEnum):
    """When to take the -5/+10 trade-off."""

    NEVER = "never"
    OPTIMAL = "optimal"
    ALWAYS = "always"


class TargetingPolicy(NiceEnum):
    """How to pick among candidate targets."""

    PRIMARY = "primary"
    OPTIMAL = "optimal"


class PositioningPolicy(NiceEnum):
    """Whether the attacker is willing to reposition."""

    HOLD = "hold"
    OPTIMAL = "optimal"


# Target creature types that are worth focusing first.
PRIORITY_TARGET_TYPES = {
    "spellcaster": 3.0,
    "support": 2.0,
}

# Target conditions that make a target easier to finish.
FAVORABLE_TARGET_CONDITIONS = {"prone", "restrained"}
