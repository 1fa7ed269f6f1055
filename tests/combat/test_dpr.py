"""
Tests for the DPR orchestrator.
"""

import pytest

from dpr_engine.character.build import (
    AbilityScores,
    Build,
    ClassLevel,
    Equipment,
    Policies,
    Weapon,
)
from dpr_engine.character.target import Target
from dpr_engine.core.constants import AdvantageState, AttackType, DamageType
from dpr_engine.effects.effect_descriptor import DamagePayload, EffectDescriptor
from dpr_engine.effects.event_system import TriggerType
from dpr_engine.combat.dpr import DPROrchestrator, calculate_dpr
from dpr_engine.policy.resource_manager import ResourceManager

LONGSWORD = Weapon(name="Longsword", damage="1d8", damage_type=DamageType.SLASHING)


@pytest.fixture
def orchestrator():
    """The default orchestrator."""
    return DPROrchestrator()


@pytest.fixture
def paladin():
    """A level 5 paladin with a longsword and 16 strength."""
    return Build(
        name="Paladin",
        levels=(ClassLevel(class_name="paladin", level=5),),
        abilities=AbilityScores(strength=16),
        equipment=Equipment(main_hand=LONGSWORD),
    )


def test_unarmed_strike_by_default():
    """
    Test that a build without weapons punches for 1d4.
    """
    result = calculate_dpr(Build(), Target())
    assert result.dpr.breakdown.weapon_damage == pytest.approx(0.30 * 2.5 + 0.05 * 5)
    assert result.dpr.total == pytest.approx(1.0)
    assert result.power_attack is None
    assert result.once_per_turn_analysis is None


def test_breakdown_sums_to_total(orchestrator, paladin):
    result = orchestrator.calculate(paladin, Target())
    breakdown = result.dpr.breakdown
    assert breakdown.once_per_turn > 0
    assert result.dpr.total == pytest.approx(breakdown.total)
    assert result.once_per_turn_analysis.selected_effect == "Divine Smite"


def test_depletion_by_round(orchestrator, paladin):
    """
    Test that rounds after the third are scaled down, never below half.
    """
    result = orchestrator.calculate(paladin, Target(), rounds=6)
    total = result.dpr.total
    assert result.dpr.by_round == pytest.approx(
        [total, total, total, total * 0.6, total * 0.5, total * 0.5]
    )
    assert len(orchestrator.calculate(paladin, Target(), rounds=50).dpr.by_round) == 20


def test_conditions_cover_every_advantage_state(orchestrator, paladin):
    result = orchestrator.calculate(paladin, Target())
    conditions = result.dpr.conditions
    assert set(conditions) == {state.value for state in AdvantageState}
    assert (
        conditions["disadvantage"]
        < conditions["normal"]
        < conditions["advantage"]
        < conditions["triple-advantage"]
    )
    assert conditions["normal"] == pytest.approx(result.dpr.breakdown.weapon_damage)
    assert result.hit_chances["normal"] == pytest.approx(0.55)


def test_report_uses_camel_case(orchestrator):
    """
    Test the keys of the report consumed by charts.
    """
    archer = Build(
        levels=(ClassLevel(class_name="fighter", level=5),),
        abilities=AbilityScores(dexterity=16),
        equipment=Equipment(
            main_hand=Weapon(
                name="Longbow",
                attack_type=AttackType.RANGED,
                damage="1d8",
                damage_type=DamageType.PIERCING,
            )
        ),
        features={"sharpshooter"},
    )
    report = orchestrator.calculate(archer, Target(armor_class=12)).to_report()
    assert set(report["dpr"]) == {"total", "byRound", "breakdown", "conditions"}
    assert "weaponDamage" in report["dpr"]["breakdown"]
    assert {"breakEvenAC", "normalDPR", "powerAttackDPR"} <= set(report["powerAttack"])
    assert report["powerAttack"]["used"] is True
    assert "hitChances" in report
    assert "advantageState" in report


def test_bonus_action_spell_replaces_off_hand(orchestrator):
    """
    Test that Spiritual Weapon takes the bonus action of the off-hand attack.
    """
    equipment = Equipment(
        main_hand=Weapon(
            name="Mace", damage="1d6", damage_type=DamageType.BLUDGEONING
        ),
        off_hand=Weapon(
            name="Light Hammer",
            damage="1d4",
            damage_type=DamageType.BLUDGEONING,
            properties={"light"},
        ),
    )
    cleric = Build(
        levels=(ClassLevel(class_name="cleric", level=3),),
        abilities=AbilityScores(strength=14, wisdom=16),
        equipment=equipment,
    )
    plain = orchestrator.evaluate_turn(cleric, Target())
    assert plain.profile.off_hand is not None

    casting = cleric.model_copy(
        update={"policies": Policies(precast=("Spiritual Weapon",))}
    )
    turn = orchestrator.evaluate_turn(casting, Target())
    assert turn.profile.off_hand is None
    assert turn.precast.uses_bonus_action
    assert turn.breakdown.spell_damage > 0


def test_homebrew_damage_rider(orchestrator, paladin):
    """
    Test that an on-hit homebrew effect adds its damage to every hit.
    """
    flaming = paladin.model_copy(
        update={
            "custom_effects": (
                EffectDescriptor(
                    name="Flame Tongue",
                    trigger=TriggerType.ON_HIT,
                    payload=DamagePayload(dice="2d6", damage_type=DamageType.FIRE),
                ),
            )
        }
    )
    turn = orchestrator.evaluate_turn(flaming, Target())
    assert turn.breakdown.other_sources == pytest.approx((0.5 * 7 + 0.05 * 14) * 2)

    resistant = orchestrator.evaluate_turn(
        flaming, Target(immunities={DamageType.FIRE})
    )
    assert resistant.breakdown.other_sources == 0.0


def test_simulated_rounds_spend_slots(orchestrator):
    """
    Test that a paladin smites while slots last and stops once they run out.
    """
    paladin = Build(
        levels=(ClassLevel(class_name="paladin", level=2),),
        abilities=AbilityScores(strength=16),
        equipment=Equipment(main_hand=LONGSWORD),
    )
    manager = ResourceManager.from_build(paladin)
    result = orchestrator.simulate_rounds(paladin, Target(), resources=manager)

    assert [r.once_per_turn for r in result.rounds] == [
        "Divine Smite",
        "Divine Smite",
        None,
    ]
    assert result.rounds[0].dpr > result.rounds[2].dpr
    assert result.resource_usage.spell_slots == {1: 2}
    assert manager.spell_slots == {1: 0}
    assert result.rounds[-1].resources_left.round == 3
    assert result.average == pytest.approx(result.total / 3)


def test_planned_usage(orchestrator, paladin):
    result = orchestrator.calculate(paladin, Target(), rounds=3)
    assert sum(result.resource_usage.spell_slots.values()) == 3


def test_compare_scenarios(orchestrator, paladin):
    scenarios = orchestrator.compare_scenarios(paladin, Target())
    assert (
        scenarios[AdvantageState.DISADVANTAGE]
        < scenarios[AdvantageState.NORMAL]
        < scenarios[AdvantageState.ADVANTAGE]
    )


def test_precast_rider_priced_at_power_attack_odds(orchestrator):
    """
    Test that Hunter's Mark is priced at the hit chance of the attacks
    actually made, after the power attack penalty.
    """
    ranger = Build(
        name="Ranger",
        levels=(ClassLevel(class_name="ranger", level=5),),
        abilities=AbilityScores(dexterity=16),
        equipment=Equipment(
            main_hand=Weapon(
                name="Longbow",
                attack_type=AttackType.RANGED,
                damage="1d8",
                damage_type=DamageType.PIERCING,
            )
        ),
        features={"sharpshooter"},
        policies=Policies(power_attack_policy="always", precast=("Hunter's Mark",)),
    )
    target = Target(armor_class=15)
    turn = orchestrator.evaluate_turn(ranger, target)
    assert turn.power_attack_used
    expected = sum(
        (sequence.hit_probability + sequence.crit_probability)
        * 3.5
        * sequence.num_attacks
        for sequence in turn.profile.sequences
    )
    assert turn.breakdown.spell_damage == pytest.approx(expected)

    steady = ranger.model_copy(
        update={
            "policies": Policies(
                power_attack_policy="never", precast=("Hunter's Mark",)
            )
        }
    )
    assert (
        orchestrator.evaluate_turn(steady, target).breakdown.spell_damage
        > turn.breakdown.spell_damage
    )

    simulated = orchestrator.simulate_rounds(ranger, target, rounds=1)
    assert simulated.rounds[0].breakdown.spell_damage == pytest.approx(expected)
