"""
Tests for once-per-turn effect selection.
"""

import pytest

from dpr_engine.character.build import Build, ClassLevel, Equipment, Weapon
from dpr_engine.character.target import CombatContext, Target
from dpr_engine.core.constants import AdvantageState, DamageType, OncePerTurnPolicy
from dpr_engine.effects.event_system import AttackEvent
from dpr_engine.combat.once_per_turn import (
    OncePerTurnSelector,
    analyze_timing,
    build_once_per_turn_effects,
    trigger_probability_across_attacks,
)
from dpr_engine.combat.probability import ProbabilityModel

RAPIER = Weapon(
    name="Rapier", damage="1d8", damage_type=DamageType.PIERCING, properties={"finesse"}
)
LONGSWORD = Weapon(name="Longsword", damage="1d8", damage_type=DamageType.SLASHING)


@pytest.fixture
def rogue():
    """A level 5 rogue with a rapier."""
    return Build(
        name="Rogue",
        levels=(ClassLevel(class_name="rogue", level=5),),
        equipment=Equipment(main_hand=RAPIER),
    )


@pytest.fixture
def paladin():
    """A level 5 paladin with a longsword."""
    return Build(
        name="Paladin",
        levels=(ClassLevel(class_name="paladin", level=5),),
        equipment=Equipment(main_hand=LONGSWORD),
    )


@pytest.fixture
def selector():
    """The default once-per-turn selector."""
    return OncePerTurnSelector()


def test_sneak_attack_with_adjacent_ally(rogue, selector):
    analysis = selector.analyze(rogue, Target(), CombatContext(ally_within_5ft=True))
    assert analysis.selected == "Sneak Attack"
    assert analysis.priority == 100
    assert analysis.attack_index == 0
    assert analysis.expected_damage > 0


def test_sneak_attack_needs_an_opening(rogue, selector):
    """
    Test that Sneak Attack is unavailable without advantage or an ally, and
    never with disadvantage.
    """
    assert selector.analyze(rogue, Target(), CombatContext()).selected is None

    probabilities = ProbabilityModel.resolve(5, 15, AdvantageState.DISADVANTAGE)
    analysis = selector.analyze(
        rogue,
        Target(),
        CombatContext(ally_within_5ft=True),
        probabilities=probabilities,
    )
    assert analysis.selected is None
    assert analysis.reasoning == "No once-per-turn effects available"


def test_divine_smite_against_undead(paladin):
    effects = build_once_per_turn_effects(paladin, Target(creature_type="Undead"))
    smite = next(effect for effect in effects if effect.name == "Divine Smite")
    assert smite.resource_cost is not None
    assert smite.expected_damage(1.0, 0.0) == pytest.approx(13.5)


def test_best_hit_is_never_worse_than_first_hit(paladin, selector):
    """
    Test that the best attack is chosen, and that the first-hit policy moves
    the effect to the first attack.
    """
    attacks = [
        AttackEvent(index=0, hit_probability=0.4, crit_probability=0.05),
        AttackEvent(index=1, hit_probability=0.8, crit_probability=0.05),
    ]
    best = selector.analyze(paladin, Target(), CombatContext(), attacks=attacks)
    assert best.selected == "Divine Smite"
    assert best.attack_index == 1

    first = OncePerTurnSelector.apply_policy(best, OncePerTurnPolicy.FIRST_HIT)
    assert first.attack_index == 0
    assert best.expected_damage >= first.expected_damage
    assert OncePerTurnSelector.apply_policy(best, "bestHit") == best
    assert OncePerTurnSelector.apply_policy(best, "sometimes") == best


def test_trigger_probability(paladin, selector):
    attacks = [
        AttackEvent(index=0, hit_probability=0.5, crit_probability=0.05),
        AttackEvent(index=1, hit_probability=0.5, crit_probability=0.05),
    ]
    analysis = selector.analyze(paladin, Target(), CombatContext(), attacks=attacks)
    assert analysis.trigger_probability == pytest.approx(0.75)
    assert trigger_probability_across_attacks([0.5, 0.5], [True, False]) == 0.5


def test_colossus_slayer_needs_a_wounded_target(selector):
    """
    Test that Colossus Slayer only applies below maximum hit points, and
    that a target with unknown hit points counts as wounded.
    """
    ranger = Build(
        levels=(ClassLevel(class_name="ranger", subclass="hunter", level=3),),
        equipment=Equipment(main_hand=LONGSWORD),
    )
    healthy = Target(max_hp=40, current_hp=40)
    wounded = Target(max_hp=40, current_hp=10)
    assert selector.analyze(ranger, healthy, CombatContext()).selected is None
    assert selector.analyze(ranger, wounded, CombatContext()).selected == (
        "Colossus Slayer"
    )
    assert selector.analyze(ranger, Target(), CombatContext()).selected == (
        "Colossus Slayer"
    )


def test_alternatives_are_reported(selector):
    build = Build(
        levels=(
            ClassLevel(class_name="paladin", level=2),
            ClassLevel(class_name="rogue", level=1),
        ),
        features={"colossus slayer"},
        equipment=Equipment(main_hand=RAPIER),
    )
    analysis = selector.analyze(build, Target(), CombatContext(ally_within_5ft=True))
    assert analysis.selected == "Divine Smite"
    names = [option.name for option in analysis.alternatives]
    assert names == ["Colossus Slayer", "Sneak Attack"]


def test_timing(paladin):
    smite = build_once_per_turn_effects(paladin)[0]
    immediate = analyze_timing(smite, [0.6, 0.6], [0.05, 0.05])
    assert immediate.strategy == "immediate"
    assert immediate.first_trigger_by_index == pytest.approx([0.6, 0.24])

    waiting = analyze_timing(smite, [0.3, 0.9], [0.05, 0.05])
    assert waiting.strategy == "wait"
    assert analyze_timing(None, [], []).expected_value == 0.0
