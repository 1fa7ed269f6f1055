"""
Tests for the resource manager.
"""

import pytest

from dpr_engine.character.build import Build, ClassLevel
from dpr_engine.core.constants import ResourceType, RestType
from dpr_engine.policy.class_resources import CHANNEL_DIVINITY, PactSlots
from dpr_engine.policy.resource_manager import (
    PACT_SLOT,
    SPELL_SLOT,
    ResourceManager,
)


@pytest.fixture
def manager():
    """A caster with two 1st level slots and one 2nd level slot."""
    return ResourceManager(spell_slots={1: 2, 2: 1})


def test_spell_slots_spend_highest_first(manager):
    """
    Test that a plain spend uses the highest available slot.
    """
    assert manager.use_resource(SPELL_SLOT)
    assert manager.spell_slots == {1: 2, 2: 0}
    assert manager.history[0].levels == [2]


def test_minimum_level_uses_lowest_sufficient_slot():
    manager = ResourceManager(spell_slots={1: 1, 2: 1, 3: 1})
    assert manager.use_resource(ResourceType.SPELL_SLOT, level=2)
    assert manager.spell_slots == {1: 1, 2: 0, 3: 1}


def test_underflow_changes_nothing(manager):
    """
    Test that spending more than is available fails without side effects.
    """
    assert not manager.use_resource(SPELL_SLOT, amount=4)
    assert not manager.use_resource(SPELL_SLOT, level=3)
    assert not manager.use_resource(ResourceType.KI)
    assert manager.spell_slots == {1: 2, 2: 1}
    assert manager.history == []


def test_restore_fills_lowest_levels_first(manager):
    manager.use_resource(SPELL_SLOT, amount=3)
    assert manager.spell_slots == {1: 0, 2: 0}
    assert manager.restore_spell_slots(1) == 1
    assert manager.spell_slots == {1: 1, 2: 0}
    assert manager.restore_spell_slots() == 2
    assert manager.spell_slots == manager.max_spell_slots


def test_pact_slots_are_a_fallback():
    """
    Test that pact slots are spent once the regular slots run out.
    """
    manager = ResourceManager(
        spell_slots={1: 1}, pact_slots=PactSlots(level=3, slots=2)
    )
    assert manager.available(SPELL_SLOT) == 3
    assert manager.available(SPELL_SLOT, level=2) == 2
    assert manager.use_resource(SPELL_SLOT)
    assert manager.use_resource(SPELL_SLOT, level=3)
    assert manager.history[1].resource == PACT_SLOT
    assert manager.history[1].levels == [3]
    assert not manager.use_resource(SPELL_SLOT, level=4)


def test_rests():
    """
    Test that a short rest refills only short rest pools and a long rest
    refills everything.
    """
    manager = ResourceManager(
        spell_slots={1: 2},
        pools={"ki": 5, "rage": 3},
        short_rest_pools={"ki"},
    )
    manager.use_resource(ResourceType.KI, 2)
    manager.use_resource(ResourceType.RAGE)
    manager.use_resource(SPELL_SLOT)
    manager.next_encounter()

    benefit = manager.short_rest()
    assert benefit.resources_restored == {"ki": 2}
    assert manager.available("ki") == 5
    assert manager.available("rage") == 2
    assert manager.spell_slots == {1: 1}

    benefit = manager.long_rest()
    assert benefit.resources_restored == {"rage": 1, SPELL_SLOT: 1}
    assert manager.available("rage") == 3
    assert manager.spell_slots == {1: 2}
    assert manager.encounter == 0
    assert manager.long_rests == 1


def test_rest_recommendations():
    manager = ResourceManager(pools={"ki": 10}, short_rest_pools={"ki"})
    assert manager.recommend_rest().recommendation == "continue_fighting"
    manager.use_resource("ki", 8)
    assert manager.recommend_rest().recommendation == "take_now"
    assert manager.recommend_rest(RestType.LONG).recommendation == "take_now"
    assert manager.resource_percentage() == pytest.approx(0.2)


def test_rounds_and_encounters(manager):
    assert manager.next_round() == 1
    assert manager.next_round() == 2
    manager.use_resource(SPELL_SLOT)
    assert manager.history[0].round == 2
    assert manager.next_encounter() == 1
    assert manager.snapshot().round == 0


def test_snapshot_context(manager):
    context = manager.snapshot().as_context()
    assert context[SPELL_SLOT] == 3
    assert context[f"{SPELL_SLOT}1"] == 2


def test_from_build():
    paladin = Build(levels=(ClassLevel(class_name="paladin", level=5),))
    manager = ResourceManager.from_build(paladin)
    assert manager.spell_slots == {1: 4, 2: 2}
    assert manager.available(CHANNEL_DIVINITY) == 1


def test_efficiency_analysis():
    """
    Test that the damage per unit is averaged per resource and ranked.
    """
    manager = ResourceManager(spell_slots={1: 4}, pools={"superiorityDie": 4})
    manager.use_resource(SPELL_SLOT, damage_dealt=10.0)
    manager.use_resource(SPELL_SLOT, damage_dealt=20.0)
    manager.use_resource(ResourceType.SUPERIORITY_DIE, damage_dealt=5.0)
    manager.use_resource(ResourceType.SUPERIORITY_DIE, purpose="utility")

    analysis = manager.efficiency_analysis()
    assert analysis.average_efficiency == {SPELL_SLOT: 15.0, "superiorityDie": 5.0}
    assert analysis.most_efficient == SPELL_SLOT
    assert analysis.least_efficient == "superiorityDie"
    assert len(analysis.recommendations) == 3
    assert ResourceManager().efficiency_analysis().most_efficient is None
