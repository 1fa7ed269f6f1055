"""
Tests for assembling the attacks of a turn.
"""

import pytest

from dpr_engine.character.build import AbilityScores, Build, ClassLevel, Equipment, Weapon
from dpr_engine.character.target import CombatContext, Target
from dpr_engine.core.constants import DamageType
from dpr_engine.effects.effect_descriptor import (
    CritRangePayload,
    EffectDescriptor,
    ToHitPayload,
)
from dpr_engine.effects.event_system import TriggerType
from dpr_engine.combat.attack_profile import buff_bonus, build_attack_profile

SHORTSWORD = Weapon(
    name="Shortsword",
    damage="1d6",
    damage_type=DamageType.PIERCING,
    properties={"finesse", "light"},
)


@pytest.fixture
def dual_wielder():
    """A level 5 fighter with two shortswords."""
    return Build(
        levels=(ClassLevel(class_name="fighter", level=5),),
        abilities=AbilityScores(dexterity=16),
        equipment=Equipment(main_hand=SHORTSWORD, off_hand=SHORTSWORD),
    )


def test_off_hand_attack(dual_wielder):
    """
    Test that the off-hand attack is a single attack without the ability
    modifier, unless the build has Two-Weapon Fighting.
    """
    profile = build_attack_profile(dual_wielder, Target(), CombatContext())
    assert profile.main.sequence.num_attacks == 2
    assert profile.off_hand.sequence.num_attacks == 1
    assert profile.off_hand.sequence.normal_damage[0].dice.bonus == 0
    assert [event.index for event in profile.events()] == [0, 1, 2]
    assert profile.events()[2].off_hand

    styled = dual_wielder.model_copy(update={"fighting_styles": {"two-weapon fighting"}})
    profile = build_attack_profile(styled, Target(), CombatContext())
    assert profile.off_hand.sequence.normal_damage[0].dice.bonus == 3
    assert profile.without_off_hand().off_hand is None


def test_bless_adds_to_attack_bonus(dual_wielder):
    combat = CombatContext(bonus_dice=("1d4",))
    assert buff_bonus(combat) == pytest.approx(2.5)
    profile = build_attack_profile(dual_wielder, Target(), combat)
    assert profile.main.attack_bonus == pytest.approx(8.5)


def test_attack_roll_effects(dual_wielder):
    """
    Test that homebrew attack roll effects change the bonus and crit range.
    """
    build = dual_wielder.model_copy(
        update={
            "custom_effects": (
                EffectDescriptor(
                    name="Blessed Aim",
                    trigger=TriggerType.ON_ATTACK_ROLL,
                    payload=ToHitPayload(bonus=1),
                ),
                EffectDescriptor(
                    name="Keen Edge",
                    trigger=TriggerType.ON_ATTACK_ROLL,
                    payload=CritRangePayload(extra=1),
                ),
            )
        }
    )
    profile = build_attack_profile(build, Target(), CombatContext())
    assert profile.main.attack_bonus == pytest.approx(7)
    assert profile.main.crit_range == 2
    assert profile.main.probabilities.crit == pytest.approx(0.10)
