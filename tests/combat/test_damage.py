"""
Tests for expected damage aggregation.
"""

import pytest

from dpr_engine.character.target import Target
from dpr_engine.core.constants import DamageOrigin, DamageType, RerollMechanic
from dpr_engine.combat.damage import (
    AttackSequence,
    DamageAggregator,
    apply_defenses,
    feature_source,
    spell_source,
    weapon_source,
)


@pytest.fixture
def longsword():
    """A longsword hit with a +3 modifier."""
    return weapon_source("Longsword", "1d8+3", DamageType.SLASHING)


def test_single_source_average(longsword):
    assert longsword.expected() == pytest.approx(7.5)
    assert longsword.origin == DamageOrigin.WEAPON


def test_crit_doubles_dice_not_bonus(longsword):
    """
    Test that a critical hit doubles the dice but keeps the flat bonus.
    """
    assert longsword.expected(is_crit=True) == pytest.approx(12.0)


def test_sources_without_crit_doubling():
    flat = feature_source("Hex", "1d6", DamageType.NECROTIC, on_crit_double=False)
    assert flat.expected(is_crit=True) == pytest.approx(3.5)


def test_resistance_applies_per_damage_type():
    """
    Test that resistance halves and rounds down each damage type total once.
    """
    target = Target(resistances={DamageType.FIRE})
    sources = [
        spell_source("Fire", "10", DamageType.FIRE),
        spell_source("Force", "5", DamageType.FORCE),
    ]
    breakdown = DamageAggregator.total(sources, target=target)
    assert breakdown.by_type == {"fire": 5.0, "force": 5.0}
    assert breakdown.total == pytest.approx(10.0)

    split = [
        feature_source("Flame A", "1d6", DamageType.FIRE),
        feature_source("Flame B", "1d6", DamageType.FIRE),
    ]
    assert DamageAggregator.total(split, target=target).total == pytest.approx(3.0)


def test_immunity_and_vulnerability():
    target = Target(
        immunities={DamageType.POISON}, vulnerabilities={DamageType.RADIANT}
    )
    assert apply_defenses(DamageType.POISON, 12.0, target) == 0.0
    assert apply_defenses(DamageType.RADIANT, 4.5, target) == pytest.approx(9.0)
    assert apply_defenses(None, 4.5, target) == pytest.approx(4.5)


def test_untyped_damage_ignores_defenses():
    target = Target(resistances={DamageType.SLASHING})
    breakdown = DamageAggregator.total([feature_source("Bonus", "4")], target=target)
    assert breakdown.by_type == {"untyped": 4.0}


def test_reroll_mechanic_is_applied():
    """
    Test that Great Weapon Fighting raises the expected value of 2d6.
    """
    greatsword = weapon_source(
        "Greatsword", "2d6", DamageType.SLASHING, RerollMechanic.REROLL_LOW
    )
    assert greatsword.expected() == pytest.approx(25 / 3)


def test_calculate_dpr(longsword):
    """
    Test the expected DPR of a two-attack sequence with crit-only damage.
    """
    sequence = AttackSequence(
        hit_probability=0.6,
        crit_probability=0.05,
        normal_damage=(longsword,),
        crit_damage=(feature_source("Brutal", "1d8", DamageType.SLASHING),),
        num_attacks=2,
    )
    per_attack = 0.55 * 7.5 + 0.05 * (12.0 + 9.0)
    assert DamageAggregator.expected_per_attack(sequence) == pytest.approx(per_attack)
    assert DamageAggregator.calculate_dpr(sequence) == pytest.approx(2 * per_attack)


def test_crit_cannot_exceed_hit(longsword):
    with pytest.raises(ValueError):
        AttackSequence(
            hit_probability=0.1, crit_probability=0.2, normal_damage=(longsword,)
        )


def test_with_bonus(longsword):
    assert longsword.with_bonus(10).expected() == pytest.approx(17.5)
