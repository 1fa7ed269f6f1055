"""
Build stats module for the DPR engine.

Single place where every derived number of a build is computed: ability
modifiers, proficiency, attack bonuses, number of attacks, critical range,
fighting style bonuses and class damage dice. Every analyzer reads these
values from here so that the derivations cannot drift apart.
"""

import math

from dpr_engine.core.constants import DamageType, RerollMechanic
from dpr_engine.core.dice_parser import DiceExpression
from dpr_engine.core.utils import get_stat_modifier, proficiency_for_level

from .build import UNARMED_STRIKE, Build, Weapon

SPELLCASTING_ABILITY = {
    "artificer": "intelligence",
    "bard": "charisma",
    "cleric": "wisdom",
    "druid": "wisdom",
    "paladin": "charisma",
    "ranger": "wisdom",
    "sorcerer": "charisma",
    "warlock": "charisma",
    "wizard": "intelligence",
}

# Classes (or subclasses) that gain a second attack at the given class level.
EXTRA_ATTACK_LEVEL = {
    "barbarian": 5,
    "fighter": 5,
    "monk": 5,
    "paladin": 5,
    "ranger": 5,
}
EXTRA_ATTACK_SUBCLASSES = {
    ("bard", "college of valor"): 6,
    ("bard", "college of swords"): 6,
    ("wizard", "bladesinging"): 6,
}


class BuildStats:
    """
    Derived statistics of a build.

    Attributes:
        build (Build):
            The build snapshot the stats are derived from.

    """

    def __init__(self, build: Build) -> None:
        """
        Initializes the stats for a build.

        Args:
            build (Build):
                The build snapshot.

        """
        self.build: Build = build

    # ============================================================================
    # ABILITY SCORE MODIFIERS
    # ============================================================================

    @property
    def STR(self) -> int:
        return get_stat_modifier(self.build.abilities.strength)

    @property
    def DEX(self) -> int:
        return get_stat_modifier(self.build.abilities.dexterity)

    @property
    def CON(self) -> int:
        return get_stat_modifier(self.build.abilities.constitution)

    @property
    def INT(self) -> int:
        return get_stat_modifier(self.build.abilities.intelligence)

    @property
    def WIS(self) -> int:
        return get_stat_modifier(self.build.abilities.wisdom)

    @property
    def CHA(self) -> int:
        return get_stat_modifier(self.build.abilities.charisma)

    @property
    def total_level(self) -> int:
        return self.build.total_level

    @property
    def proficiency(self) -> int:
        """
        Returns the proficiency bonus, explicit or derived from total level.

        Returns:
            int: The proficiency bonus.

        """
        if self.build.proficiency_bonus is not None:
            return self.build.proficiency_bonus
        return proficiency_for_level(self.total_level)

    # ============================================================================
    # WEAPONS
    # ============================================================================

    @property
    def main_hand(self) -> Weapon:
        """The main-hand weapon, or an unarmed strike when nothing is held."""
        return self.build.equipment.main_hand or UNARMED_STRIKE

    @property
    def off_hand(self) -> Weapon | None:
        return self.build.equipment.off_hand

    def attack_modifier(self, weapon: Weapon) -> int:
        """
        Returns the ability modifier used with a weapon.

        Finesse weapons use the better of STR and DEX, ranged weapons use
        DEX, everything else uses STR.

        Args:
            weapon (Weapon):
                The weapon being used.

        Returns:
            int: The ability modifier.

        """
        if weapon.has_property("finesse"):
            return max(self.STR, self.DEX)
        if weapon.is_ranged:
            return self.DEX
        return self.STR

    def attack_bonus(self, weapon: Weapon | None = None) -> int:
        """
        Returns the total attack bonus with a weapon (main hand by default).

        Args:
            weapon (Weapon | None):
                The weapon being used.

        Returns:
            int: Proficiency + ability modifier + magic bonus.

        """
        weapon = weapon or self.main_hand
        return self.proficiency + self.attack_modifier(weapon) + weapon.magic_bonus

    def damage_bonus(self, weapon: Weapon | None = None, off_hand: bool = False) -> int:
        """
        Returns the flat damage bonus added to each weapon hit.

        Off-hand attacks only add a positive ability modifier with the
        Two-Weapon Fighting style. Dueling adds 2 to one-handed melee attacks
        when no off-hand weapon is held.

        Args:
            weapon (Weapon | None):
                The weapon being used.
            off_hand (bool):
                Whether this is the bonus action off-hand attack.

        Returns:
            int: The flat damage bonus.

        """
        weapon = weapon or self.main_hand
        modifier = self.attack_modifier(weapon)
        if off_hand and not self.two_weapon_fighting:
            modifier = min(0, modifier)
        bonus = modifier + weapon.magic_bonus
        if not off_hand and self.dueling_applies(weapon):
            bonus += 2
        return bonus

    def weapon_dice(self, weapon: Weapon | None = None, off_hand: bool = False) -> DiceExpression:
        """Returns the weapon dice with the flat damage bonus folded in."""
        weapon = weapon or self.main_hand
        return weapon.dice.with_bonus(self.damage_bonus(weapon, off_hand))

    def reroll_mechanic(self, weapon: Weapon | None = None) -> RerollMechanic:
        """Great Weapon Fighting rerolls low faces of two-handed melee weapons."""
        weapon = weapon or self.main_hand
        if (
            self.build.has_fighting_style("great weapon fighting")
            and weapon.is_melee
            and (weapon.has_property("two-handed") or weapon.has_property("versatile"))
            and self.off_hand is None
        ):
            return RerollMechanic.REROLL_LOW
        return RerollMechanic.NONE

    # ============================================================================
    # FIGHTING STYLES AND FEATS
    # ============================================================================

    @property
    def two_weapon_fighting(self) -> bool:
        return self.build.has_fighting_style("two-weapon fighting")

    def dueling_applies(self, weapon: Weapon) -> bool:
        return (
            self.build.has_fighting_style("dueling")
            and weapon.is_melee
            and not weapon.has_property("two-handed")
            and self.off_hand is None
        )

    def power_attack_feature(self, weapon: Weapon | None = None) -> str | None:
        """
        Returns the power attack feat usable with a weapon, if any.

        Sharpshooter applies to ranged weapons, Great Weapon Master to heavy
        melee weapons.

        Args:
            weapon (Weapon | None):
                The weapon being used.

        Returns:
            str | None: The feat name, or None.

        """
        weapon = weapon or self.main_hand
        if weapon.is_ranged and self.build.has_feature("sharpshooter"):
            return "Sharpshooter"
        if (
            weapon.is_melee
            and weapon.has_property("heavy")
            and self.build.has_feature("great weapon master")
        ):
            return "Great Weapon Master"
        return None

    @property
    def elven_accuracy(self) -> bool:
        return self.build.has_feature("elven accuracy")

    @property
    def halfling_luck(self) -> bool:
        return self.build.has_feature("lucky") or self.build.has_feature("halfling luck")

    @property
    def darkvision(self) -> bool:
        return self.build.has_feature("darkvision")

    def elemental_adept(self, damage_type: DamageType | None) -> bool:
        """True if the build has Elemental Adept for the given damage type."""
        if damage_type is None:
            return False
        return self.build.has_feature(f"elemental adept ({damage_type.value})")

    # ============================================================================
    # ATTACK PROGRESSION
    # ============================================================================

    @property
    def number_of_attacks(self) -> int:
        """
        Returns the number of attacks made with the Attack action.

        Extra Attack does not stack across classes; Fighters gain a third and
        fourth attack at levels 11 and 20.

        Returns:
            int: Attacks per Attack action.

        """
        attacks = 1
        fighter = self.build.class_level("fighter")
        if fighter >= 20:
            attacks = 4
        elif fighter >= 11:
            attacks = 3
        for class_name, level in EXTRA_ATTACK_LEVEL.items():
            if self.build.class_level(class_name) >= level:
                attacks = max(attacks, 2)
        for (class_name, subclass), level in EXTRA_ATTACK_SUBCLASSES.items():
            if (
                self.build.subclass_of(class_name) == subclass
                and self.build.class_level(class_name) >= level
            ):
                attacks = max(attacks, 2)
        if self.build.has_feature("extra attack"):
            attacks = max(attacks, 2)
        return attacks

    @property
    def crit_range(self) -> int:
        """
        Returns how many d20 faces score a critical hit (1 means 20 only).

        Returns:
            int: The number of critical faces.

        """
        fighter = self.build.class_level("fighter")
        champion = self.build.subclass_of("fighter") == "champion"
        if self.build.has_feature("superior critical") or (champion and fighter >= 15):
            return 3
        if self.build.has_feature("improved critical") or (champion and fighter >= 3):
            return 2
        return 1

    @property
    def brutal_critical_dice(self) -> int:
        """Extra weapon dice rolled on a critical hit (Barbarian)."""
        barbarian = self.build.class_level("barbarian")
        if barbarian >= 17:
            return 3
        if barbarian >= 13:
            return 2
        if barbarian >= 9:
            return 1
        return 0

    @property
    def sneak_attack_dice(self) -> int:
        rogue = self.build.class_level("rogue")
        return math.ceil(rogue / 2) if rogue else 0

    # ============================================================================
    # SPELLCASTING
    # ============================================================================

    @property
    def spellcasting_ability(self) -> str | None:
        for entry in self.build.levels:
            if entry.class_name in SPELLCASTING_ABILITY:
                return SPELLCASTING_ABILITY[entry.class_name]
        return None

    @property
    def spellcasting_modifier(self) -> int:
        ability = self.spellcasting_ability
        if ability is None:
            return 0
        return get_stat_modifier(self.build.abilities.score(ability))

    @property
    def spell_attack_bonus(self) -> int:
        return self.proficiency + self.spellcasting_modifier

    @property
    def spell_save_dc(self) -> int:
        return 8 + self.proficiency + self.spellcasting_modifier

    def summary(self) -> dict[str, int | str | None]:
        """Returns the headline numbers, for logging and reports."""
        return {
            "level": self.total_level,
            "proficiency": self.proficiency,
            "weapon": self.main_hand.name,
            "attack_bonus": self.attack_bonus(),
            "damage": str(self.weapon_dice()),
            "attacks": self.number_of_attacks,
            "crit_range": self.crit_range,
            "power_attack": self.power_attack_feature(),
        }
