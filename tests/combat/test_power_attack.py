"""
Tests for the power attack trade-off analysis.
"""

import pytest

from dpr_engine.core.constants import AdvantageState, DamageType
from dpr_engine.combat.damage import AttackSequence, weapon_source
from dpr_engine.combat.probability import ProbabilityModel
from dpr_engine.combat.power_attack import (
    PowerAttackAnalyzer,
    analyze_power_attack,
    compare_with_buffs,
    describe_recommendation,
)


@pytest.fixture
def longbow():
    """A single longbow attack with a +3 damage modifier."""
    return AttackSequence(
        hit_probability=0.5,
        crit_probability=0.05,
        normal_damage=(weapon_source("Longbow", "1d8+3", DamageType.PIERCING),),
    )


@pytest.fixture
def analyzer(longbow):
    """A Sharpshooter analyzer for a +7 attack bonus."""
    return PowerAttackAnalyzer(7, longbow)


def test_break_even_ac(analyzer):
    """
    Test that a +7 longbow should power attack up to AC 18 and not above.
    """
    assert analyzer.break_even_ac() == 18
    assert analyzer.power_attack_dpr(18) > analyzer.normal_dpr(18)
    assert analyzer.power_attack_dpr(19) < analyzer.normal_dpr(19)


def test_thresholds_follow_advantage(analyzer):
    """
    Test that advantage raises the break-even AC and disadvantage lowers it.
    """
    thresholds = analyzer.thresholds_by_advantage_state()
    assert thresholds[AdvantageState.ADVANTAGE] == 19
    assert (
        thresholds[AdvantageState.DISADVANTAGE]
        < thresholds[AdvantageState.NORMAL]
        < thresholds[AdvantageState.ADVANTAGE]
    )


def test_analysis_against_single_ac(longbow):
    analysis = analyze_power_attack(7, 15, longbow)
    assert analysis.should_use
    assert analysis.break_even_ac == 18
    assert analysis.delta == pytest.approx(
        analysis.power_attack_dpr - analysis.normal_dpr
    )
    assert describe_recommendation(analysis).startswith("Power attack")

    high = analyze_power_attack(7, 25, longbow)
    assert not high.should_use
    assert describe_recommendation(high).startswith("Attack normally")


def test_sweep_covers_configured_range(analyzer):
    rows = analyzer.sweep()
    assert [row.armor_class for row in rows] == list(range(5, 31))


@pytest.mark.parametrize("state", list(AdvantageState))
def test_recommendation_flips_once_at_break_even(analyzer, state):
    """
    Test that power attacking is recommended for every AC up to the
    break-even point and for none above it, for every roll state.
    """
    break_even = analyzer.break_even_ac(state)
    for row in analyzer.sweep(advantage_state=state):
        assert row.should_use == (row.armor_class <= break_even)
        assert analyzer.analyze(row.armor_class, state).should_use == row.should_use


@pytest.mark.parametrize("state", list(AdvantageState))
def test_damage_crosses_at_break_even(analyzer, state):
    """
    Test that power attacking deals more damage at the break-even AC and no
    more one AC above it.
    """
    break_even = analyzer.break_even_ac(state)
    if break_even >= 5:
        assert analyzer.power_attack_dpr(break_even, state) > analyzer.normal_dpr(
            break_even, state
        )
    if break_even < 30:
        assert analyzer.power_attack_dpr(
            break_even + 1, state
        ) <= analyzer.normal_dpr(break_even + 1, state)


def test_sharpshooter_hit_trade_off():
    """
    Test the Sharpshooter trade-off on 1d8+3 at +7: ignoring crits,
    hit(AC) * 7.5 and hit'(AC) * 17.5 swap order between AC 18 and 19.
    """
    def hit(bonus, ac):
        return ProbabilityModel.resolve(bonus, ac).hit

    assert hit(7, 18) * 7.5 < hit(2, 18) * 17.5
    assert hit(7, 19) * 7.5 > hit(2, 19) * 17.5
    assert hit(7, 18) == pytest.approx(0.45)
    assert hit(2, 18) == pytest.approx(0.20)


def test_natural_twenty_range_is_not_recommended(analyzer):
    """
    Test that the ACs where both attacks only land on a natural 20 stay
    above the break-even point, even though the flat bonus edges ahead.
    """
    analysis = analyzer.analyze(25)
    assert analysis.delta > 0
    assert not analysis.should_use
    assert analysis.break_even_ac == 18


def test_power_attack_bonus_applies_to_every_hit(longbow):
    """
    Test that the flat bonus is added to every normal damage source.
    """
    analyzer = PowerAttackAnalyzer(7, longbow)
    assert len(analyzer.power_sequence.normal_damage) == 1
    assert analyzer.power_sequence.normal_damage[0].dice.bonus == 13


def test_buffs_raise_the_break_even(longbow):
    base, buffed = compare_with_buffs(7, 18, longbow, ["1d4"])
    assert buffed.break_even_ac >= base.break_even_ac
    assert buffed.normal_dpr > base.normal_dpr
