"""
Tests for the level progression analysis.
"""

import pytest

from dpr_engine.character.build import AbilityScores, Build, ClassLevel, Equipment, Weapon
from dpr_engine.character.target import Target
from dpr_engine.core.constants import DamageType
from dpr_engine.core.error_handling import EngineError
from dpr_engine.combat.dpr import DPROrchestrator
from dpr_engine.combat.level_analysis import (
    analyze_level_progression,
    build_at_level,
    features_at_level,
    scale_class_levels,
)


@pytest.fixture
def fighter():
    """A level 5 fighter with a longsword."""
    return Build(
        name="Fighter",
        levels=(ClassLevel(class_name="fighter", level=5),),
        abilities=AbilityScores(strength=16),
        proficiency_bonus=3,
        equipment=Equipment(
            main_hand=Weapon(
                name="Longsword", damage="1d8", damage_type=DamageType.SLASHING
            )
        ),
    )


@pytest.mark.parametrize("target_level", range(1, 21))
def test_scaled_levels_sum_to_target(target_level):
    levels = (
        ClassLevel(class_name="fighter", level=5),
        ClassLevel(class_name="wizard", level=1),
        ClassLevel(class_name="cleric", level=1),
    )
    scaled = scale_class_levels(levels, target_level)
    assert sum(entry.level for entry in scaled) == target_level
    assert all(entry.level >= 1 for entry in scaled)


def test_scaling_keeps_proportions():
    """
    Test that class levels keep their share and the order they were taken.
    """
    levels = (
        ClassLevel(class_name="fighter", level=3),
        ClassLevel(class_name="rogue", level=2),
    )
    scaled = scale_class_levels(levels, 10)
    assert [(entry.class_name, entry.level) for entry in scaled] == [
        ("fighter", 6),
        ("rogue", 4),
    ]
    assert [entry.class_name for entry in scale_class_levels(levels, 1)] == ["fighter"]


def test_features_at_level():
    fighter_5 = (ClassLevel(class_name="fighter", level=5),)
    assert features_at_level(fighter_5, 5) == ["Extra Attack", "Proficiency Bonus +3"]
    fighter_4 = (ClassLevel(class_name="fighter", level=4),)
    assert features_at_level(fighter_4, 4) == ["Ability Score Improvement"]
    rogue_3 = (ClassLevel(class_name="rogue", level=3),)
    assert features_at_level(rogue_3, 3) == ["Rogue Subclass"]


def test_features_follow_previous_class_levels():
    """
    Test that a milestone skipped over by a jump in class level is still
    listed, and that a class held at the same level lists nothing new.
    """
    fighter_2 = (ClassLevel(class_name="fighter", level=2),)
    fighter_5 = (ClassLevel(class_name="fighter", level=5),)
    assert features_at_level(fighter_5, 5, previous=fighter_2) == [
        "Fighter Subclass",
        "Extra Attack",
        "Proficiency Bonus +3",
    ]
    assert features_at_level(fighter_2, 3, previous=fighter_2) == []


def test_multiclass_milestones_are_listed_once():
    """
    Test that scaling a fighter 3 / rogue 2 build keeps the fighter at level
    1 for several character levels without repeating its base features.
    """
    build = Build(
        name="Skirmisher",
        levels=(
            ClassLevel(class_name="fighter", level=3),
            ClassLevel(class_name="rogue", level=2),
        ),
    )
    progression = analyze_level_progression(build, Target(), max_level=5)
    features = [
        feature for snapshot in progression.levels for feature in snapshot.new_features
    ]
    assert features.count("Fighter Base Features") == 1
    assert features.count("Rogue Base Features") == 1
    assert progression.at(1).new_features == ["Fighter Base Features"]
    assert progression.at(2).new_features == ["Rogue Base Features"]
    assert progression.at(3).new_features == []
    assert progression.at(5).new_features == [
        "Fighter Subclass",
        "Proficiency Bonus +3",
    ]


def test_build_at_level_derives_proficiency(fighter):
    levelled = build_at_level(fighter, 9)
    assert levelled.total_level == 9
    assert levelled.proficiency_bonus is None
    assert levelled.name == fighter.name


def test_progression_finds_extra_attack(fighter):
    """
    Test that all twenty levels are evaluated and that gaining Extra Attack
    is a key level.
    """
    progression = analyze_level_progression(fighter, Target())
    assert [snapshot.level for snapshot in progression.levels] == list(range(1, 21))
    assert 5 in progression.key_levels
    assert 11 in progression.key_levels
    assert 1 not in progression.key_levels

    fifth = progression.at(5)
    assert fifth.number_of_attacks == 2
    assert fifth.proficiency_bonus == 3
    assert fifth.dpr > progression.at(4).dpr
    assert progression.at(11).number_of_attacks == 3
    assert progression.at(21) is None


def test_progression_stops_at_max_level(fighter):
    progression = analyze_level_progression(fighter, Target(), max_level=3)
    assert len(progression.levels) == 3
    assert progression.levels[-1].class_levels == {"fighter": 3}


def test_failed_level_records_zero_dpr(fighter):
    """
    Test that a level that cannot be evaluated is kept with zero damage.
    """

    class FailingOrchestrator(DPROrchestrator):
        def evaluate_turn(self, build, target, *args, **kwargs):
            if build.total_level == 2:
                raise EngineError("broken level")
            return super().evaluate_turn(build, target, *args, **kwargs)

    progression = analyze_level_progression(
        fighter, Target(), orchestrator=FailingOrchestrator(), max_level=3
    )
    assert progression.at(2).dpr == 0.0
    assert progression.at(3).dpr > 0.0
