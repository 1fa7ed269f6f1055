"""
Tests for precast spell planning.
"""

import pytest

from dpr_engine.character.build import AbilityScores, Build, ClassLevel, Policies
from dpr_engine.character.build_stats import BuildStats
from dpr_engine.character.target import Target
from dpr_engine.core.constants import AdvantageState, DamageType
from dpr_engine.combat.damage import AttackSequence
from dpr_engine.combat.spells import PRECAST_SPELLS, plan_precast, spell_dpr


@pytest.fixture
def sequences():
    """Two weapon attacks at even odds."""
    return [AttackSequence(hit_probability=0.5, crit_probability=0.05, num_attacks=2)]


def _caster(*precast, features=(), class_name="ranger"):
    return Build(
        levels=(ClassLevel(class_name=class_name, level=5),),
        abilities=AbilityScores(wisdom=16),
        features=set(features),
        policies=Policies(precast=precast),
    )


def test_rider_adds_damage_to_every_attack(sequences):
    """
    Test that a rider spell adds its dice to each weapon hit, doubled on crits.
    """
    build = _caster("Hunter's Mark")
    value = spell_dpr(
        PRECAST_SPELLS["hunter's mark"],
        BuildStats(build),
        Target(),
        AdvantageState.NORMAL,
        sequences,
    )
    assert value == pytest.approx(2 * (0.45 * 3.5 + 0.05 * 7.0))


def test_only_one_concentration_spell_is_kept(sequences):
    """
    Test that the concentration spell with the highest damage wins.
    """
    build = _caster("Hex", "Hunter's Mark")
    target = Target(resistances={DamageType.NECROTIC})
    plan = plan_precast(build, target, AdvantageState.NORMAL, sequences)
    assert [spell.name for spell in plan.spells] == ["Hunter's Mark"]
    assert plan.dropped == ["Hex"]
    assert plan.slots_used == {1: 1}


def test_save_spell_damage():
    """
    Test that a save spell deals half damage on a successful save.
    """
    build = _caster("Spirit Guardians", class_name="cleric")
    plan = plan_precast(build, Target(), AdvantageState.NORMAL, [])
    assert plan.total_dpr == pytest.approx(0.65 * 13.5 + 0.35 * 6.75)


def test_elemental_adept_raises_spell_damage():
    plain = plan_precast(
        _caster("Spirit Guardians", class_name="cleric"),
        Target(),
        AdvantageState.NORMAL,
        [],
    )
    adept = plan_precast(
        _caster(
            "Spirit Guardians",
            class_name="cleric",
            features={"elemental adept (radiant)"},
        ),
        Target(),
        AdvantageState.NORMAL,
        [],
    )
    assert adept.total_dpr > plain.total_dpr


def test_spells_need_available_slots(sequences):
    """
    Test that casting uses the lowest sufficient slot and that spells
    without a slot are dropped.
    """
    build = _caster("Hunter's Mark")
    plan = plan_precast(
        build, Target(), AdvantageState.NORMAL, sequences, slots={1: 0, 2: 1}
    )
    assert plan.slots_used == {2: 1}

    empty = plan_precast(build, Target(), AdvantageState.NORMAL, sequences, slots={})
    assert empty.spells == []
    assert empty.dropped == ["Hunter's Mark"]


def test_unknown_spell_is_skipped(sequences):
    plan = plan_precast(
        _caster("Wish", "Spiritual Weapon"), Target(), AdvantageState.NORMAL, sequences
    )
    assert plan.dropped == ["Wish"]
    assert [spell.name for spell in plan.spells] == ["Spiritual Weapon"]
    assert plan.uses_bonus_action
