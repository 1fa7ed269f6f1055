"""
Tests for homebrew effect descriptors.
"""

import pytest

from dpr_engine.core.constants import DamageType, ResourceType
from dpr_engine.effects.conditions import flag
from dpr_engine.effects.effect_descriptor import (
    CritRangePayload,
    DamagePayload,
    EffectDescriptor,
    ResourceCost,
    ToHitPayload,
    effects_for_trigger,
)
from dpr_engine.effects.event_system import AttackEvent, TriggerType


@pytest.fixture
def effects():
    """A mix of descriptors with different triggers and payloads."""
    return [
        EffectDescriptor(
            name="Flame Tongue",
            trigger=TriggerType.ON_HIT,
            payload=DamagePayload(dice="2d6", damage_type=DamageType.FIRE),
        ),
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
    ]


def test_effects_for_trigger(effects):
    on_roll = effects_for_trigger(effects, TriggerType.ON_ATTACK_ROLL)
    assert [effect.name for effect in on_roll] == ["Blessed Aim", "Keen Edge"]
    to_hit = effects_for_trigger(effects, TriggerType.ON_ATTACK_ROLL, "to_hit")
    assert [effect.name for effect in to_hit] == ["Blessed Aim"]


def test_effect_applies_checks_condition():
    effect = EffectDescriptor(
        name="Ambush",
        trigger=TriggerType.ON_HIT,
        condition=flag("combat.hidden"),
        payload=DamagePayload(dice="1d6"),
    )
    assert effect.applies({"combat": {"hidden": True}})
    assert not effect.applies({"combat": {"hidden": False}})


def test_damage_payload_defaults_to_weapon_type():
    payload = DamagePayload(dice="1d8")
    assert payload.to_dice(DamageType.SLASHING).damage_type == DamageType.SLASHING
    typed = DamagePayload(dice="1d8", damage_type=DamageType.COLD)
    assert typed.to_dice(DamageType.SLASHING).damage_type == DamageType.COLD


def test_malformed_dice_fail_fast():
    with pytest.raises(ValueError):
        EffectDescriptor(
            name="Broken",
            trigger=TriggerType.ON_HIT,
            payload=DamagePayload(dice="two dice"),
        )


def test_empty_name_is_rejected():
    with pytest.raises(ValueError):
        EffectDescriptor(
            name="  ",
            trigger=TriggerType.ON_HIT,
            payload=DamagePayload(dice="1d6"),
        )


def test_once_per_turn_needs_a_hit_trigger():
    """
    Test that only hit-based triggers can be limited to once per turn.
    """
    with pytest.raises(ValueError):
        EffectDescriptor(
            name="Aura",
            trigger=TriggerType.ON_TURN_START,
            payload=DamagePayload(dice="1d6"),
            once_per_turn=True,
        )


def test_trigger_categories():
    assert TriggerType.ON_CRIT.requires_hit
    assert not TriggerType.ON_KILL.requires_hit
    assert TriggerType.ON_SAVE.is_per_turn
    assert not TriggerType.ON_HIT.is_per_turn


def test_resource_cost_string():
    slot = ResourceCost(resource_type=ResourceType.SPELL_SLOT, level=2)
    assert str(slot) == "1x level 2+ spell slot"
    assert str(ResourceCost(resource_type=ResourceType.KI, amount=2)) == "2x ki"


def test_attack_event_string():
    event = AttackEvent(index=1, hit_probability=0.6, crit_probability=0.05)
    assert "index=1" in str(event)
    assert "hit=0.60" in str(event)
