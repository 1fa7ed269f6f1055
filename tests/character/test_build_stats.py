"""
Tests for builds and the statistics derived from them.
"""

import pytest

from dpr_engine.character.build import (
    UNARMED_STRIKE,
    AbilityScores,
    Build,
    ClassLevel,
    Equipment,
    Weapon,
)
from dpr_engine.character.build_stats import BuildStats
from dpr_engine.core.constants import AttackType, DamageType, RerollMechanic


@pytest.fixture
def rapier():
    """A finesse one-handed weapon."""
    return Weapon(
        name="Rapier",
        damage="1d8",
        damage_type=DamageType.PIERCING,
        properties={"finesse"},
    )


@pytest.fixture
def greatsword():
    """A heavy two-handed weapon."""
    return Weapon(
        name="Greatsword",
        damage="2d6",
        damage_type=DamageType.SLASHING,
        properties={"heavy", "two-handed"},
    )


@pytest.fixture
def longbow():
    """A ranged weapon."""
    return Weapon(
        name="Longbow",
        attack_type=AttackType.RANGED,
        damage="1d8",
        damage_type=DamageType.PIERCING,
        properties={"heavy", "two-handed"},
    )


def fighter(level, **kwargs):
    return Build(
        name="Fighter",
        levels=(ClassLevel(class_name="Fighter", level=level),),
        abilities=AbilityScores(strength=16, dexterity=14),
        **kwargs,
    )


def test_class_names_are_normalized():
    build = fighter(3)
    assert build.levels[0].class_name == "fighter"
    assert build.class_level("FIGHTER") == 3
    assert build.class_level("wizard") == 0


def test_empty_hands_attack_unarmed():
    """
    Test that a build with no weapon attacks with an unarmed strike.
    """
    stats = BuildStats(fighter(1))
    assert stats.main_hand == UNARMED_STRIKE
    assert stats.attack_bonus() == 2 + 3


def test_finesse_uses_better_ability(rapier):
    """
    Test that finesse weapons use the better of STR and DEX.
    """
    build = Build(
        abilities=AbilityScores(strength=8, dexterity=18),
        equipment=Equipment(main_hand=rapier),
    )
    stats = BuildStats(build)
    assert stats.attack_modifier(rapier) == 4
    assert stats.attack_bonus() == 6


def test_ranged_weapon_uses_dexterity(longbow):
    stats = BuildStats(fighter(1, equipment=Equipment(main_hand=longbow)))
    assert stats.attack_modifier(longbow) == 2


def test_explicit_proficiency_bonus_wins():
    build = fighter(1, proficiency_bonus=4)
    assert BuildStats(build).proficiency == 4


@pytest.mark.parametrize("level, attacks", [(1, 1), (5, 2), (11, 3), (20, 4)])
def test_fighter_attack_progression(level, attacks):
    assert BuildStats(fighter(level)).number_of_attacks == attacks


def test_extra_attack_does_not_stack_across_classes():
    """
    Test that Extra Attack from two classes still gives two attacks.
    """
    build = Build(
        levels=(
            ClassLevel(class_name="fighter", level=5),
            ClassLevel(class_name="paladin", level=5),
        )
    )
    assert BuildStats(build).number_of_attacks == 2


def test_champion_crit_range():
    def champion(level):
        return Build(
            levels=(ClassLevel(class_name="fighter", subclass="Champion", level=level),)
        )

    assert BuildStats(champion(2)).crit_range == 1
    assert BuildStats(champion(3)).crit_range == 2
    assert BuildStats(champion(15)).crit_range == 3


def test_dueling_adds_two_damage(rapier):
    build = fighter(
        1,
        equipment=Equipment(main_hand=rapier),
        fighting_styles={"Dueling"},
    )
    assert BuildStats(build).damage_bonus() == 3 + 2


def test_off_hand_without_two_weapon_fighting(rapier):
    """
    Test that the off-hand attack only adds a negative ability modifier
    unless the build has Two-Weapon Fighting.
    """
    dagger = Weapon(
        name="Dagger",
        damage="1d4",
        damage_type=DamageType.PIERCING,
        properties={"finesse", "light"},
    )
    equipment = Equipment(main_hand=rapier, off_hand=dagger)
    plain = BuildStats(fighter(1, equipment=equipment))
    assert plain.damage_bonus(dagger, off_hand=True) == 0

    styled = BuildStats(
        fighter(1, equipment=equipment, fighting_styles={"two-weapon fighting"})
    )
    assert styled.damage_bonus(dagger, off_hand=True) == 3


def test_great_weapon_fighting_rerolls_two_handed(greatsword, rapier):
    build = fighter(
        1,
        equipment=Equipment(main_hand=greatsword),
        fighting_styles={"great weapon fighting"},
    )
    stats = BuildStats(build)
    assert stats.reroll_mechanic() == RerollMechanic.REROLL_LOW
    assert stats.reroll_mechanic(rapier) == RerollMechanic.NONE


def test_power_attack_features(greatsword, longbow, rapier):
    """
    Test that Sharpshooter needs a ranged weapon and Great Weapon Master a
    heavy melee weapon.
    """
    feats = {"sharpshooter", "great weapon master"}
    stats = BuildStats(fighter(5, features=feats))
    assert stats.power_attack_feature(longbow) == "Sharpshooter"
    assert stats.power_attack_feature(greatsword) == "Great Weapon Master"
    assert stats.power_attack_feature(rapier) is None


def test_sneak_attack_and_brutal_critical_dice():
    rogue = Build(levels=(ClassLevel(class_name="rogue", level=5),))
    barbarian = Build(levels=(ClassLevel(class_name="barbarian", level=13),))
    assert BuildStats(rogue).sneak_attack_dice == 3
    assert BuildStats(barbarian).brutal_critical_dice == 2
    assert BuildStats(rogue).brutal_critical_dice == 0


def test_spellcasting_numbers():
    build = Build(
        levels=(ClassLevel(class_name="cleric", level=5),),
        abilities=AbilityScores(wisdom=18),
    )
    stats = BuildStats(build)
    assert stats.spellcasting_ability == "wisdom"
    assert stats.spell_attack_bonus == 3 + 4
    assert stats.spell_save_dc == 8 + 3 + 4


def test_summary_lists_headline_numbers(greatsword):
    stats = BuildStats(fighter(5, equipment=Equipment(main_hand=greatsword)))
    summary = stats.summary()
    assert summary["attacks"] == 2
    assert summary["weapon"] == "Greatsword"
    assert summary["damage"] == "2d6+3"


def test_weapon_with_invalid_dice_is_rejected():
    with pytest.raises(ValueError):
        Weapon(name="Broken", damage="2d", damage_type=DamageType.FIRE)
