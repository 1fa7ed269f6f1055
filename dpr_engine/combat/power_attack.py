"""
Power attack module for the DPR engine.

Compares the Sharpshooter / Great Weapon Master trade-off (a penalty to
hit for a flat damage bonus) against regular attacks, and finds the
break-even armor class for each advantage state.
"""

from pydantic import BaseModel

from dpr_engine.character.target import Target
from dpr_engine.core.constants import AdvantageState
from dpr_engine.core.dice_parser import DiceModel
from dpr_engine.core.logging import log_debug
from dpr_engine.core.settings import DEFAULT_SETTINGS, EngineSettings

from .damage import AttackSequence, DamageAggregator
from .probability import ProbabilityModel


class PowerAttackAnalysis(BaseModel):
    """Regular versus power attack DPR against one AC."""

    armor_class: int
    advantage_state: AdvantageState = AdvantageState.NORMAL
    normal_dpr: float
    power_attack_dpr: float
    should_use: bool
    break_even_ac: int
    delta: float


class PowerAttackSweepRow(BaseModel):
    """One row of an AC sweep, for charting."""

    armor_class: int
    normal_dpr: float
    power_attack_dpr: float
    should_use: bool

    @property
    def delta(self) -> float:
        return self.power_attack_dpr - self.normal_dpr


class PowerAttackAnalyzer:
    """
    Evaluates the power attack trade-off for one attack sequence.

    Attributes:
        attack_bonus (float):
            Regular attack bonus.
        sequence (AttackSequence):
            Damage sources and number of attacks; its probabilities are
            recomputed for every AC.
        target (Target | None):
            Supplies damage defenses; its AC is not used.
        crit_range (int):
            Number of d20 faces that crit.
        lucky (bool):
            Whether natural 1s are rerolled.
        settings (EngineSettings):
            Penalty, bonus and sweep range.

    """

    def __init__(
        self,
        attack_bonus: float,
        sequence: AttackSequence,
        target: Target | None = None,
        crit_range: int = 1,
        lucky: bool = False,
        settings: EngineSettings = DEFAULT_SETTINGS,
    ) -> None:
        self.attack_bonus = attack_bonus
        self.sequence = sequence
        self.target = target
        self.crit_range = crit_range
        self.lucky = lucky
        self.settings = settings
        self.power_sequence = sequence.model_copy(
            update={
                "normal_damage": tuple(
                    source.with_bonus(settings.power_attack_bonus)
                    for source in sequence.normal_damage
                )
            }
        )

    def _dpr(
        self,
        attack_bonus: float,
        sequence: AttackSequence,
        armor_class: int,
        advantage_state: AdvantageState,
    ) -> float:
        probabilities = ProbabilityModel.resolve(
            attack_bonus, armor_class, advantage_state, self.crit_range, self.lucky
        )
        return DamageAggregator.calculate_dpr(
            sequence.with_probabilities(probabilities.hit, probabilities.crit),
            self.target,
        )

    def normal_dpr(
        self, armor_class: int, advantage_state: AdvantageState = AdvantageState.NORMAL
    ) -> float:
        return self._dpr(self.attack_bonus, self.sequence, armor_class, advantage_state)

    def power_attack_dpr(
        self, armor_class: int, advantage_state: AdvantageState = AdvantageState.NORMAL
    ) -> float:
        return self._dpr(
            self.attack_bonus - self.settings.power_attack_penalty,
            self.power_sequence,
            armor_class,
            advantage_state,
        )

    def sweep(
        self,
        ac_range: range | None = None,
        advantage_state: AdvantageState = AdvantageState.NORMAL,
    ) -> list[PowerAttackSweepRow]:
        """
        Compares both strategies across a range of ACs.

        The recommendation of every row follows the single break-even point,
        so it holds up to that AC and not above, even where both attacks only
        land on a natural 20 and the flat bonus edges ahead again.

        Args:
            ac_range (range | None):
                The ACs to evaluate; defaults to the configured sweep range.
            advantage_state (AdvantageState):
                The roll state of every attack.

        Returns:
            list[PowerAttackSweepRow]:
                One row per AC.

        """
        break_even = self.break_even_ac(advantage_state)
        return [
            PowerAttackSweepRow(
                armor_class=armor_class,
                normal_dpr=self.normal_dpr(armor_class, advantage_state),
                power_attack_dpr=self.power_attack_dpr(armor_class, advantage_state),
                should_use=armor_class <= break_even,
            )
            for armor_class in ac_range or self.settings.ac_range
        ]

    def break_even_ac(self, advantage_state: AdvantageState = AdvantageState.NORMAL) -> int:
        """
        Returns the highest AC at which power attacking still pays off.

        The sweep starts at the lowest configured AC and stops at the first
        AC where the regular attack is at least as good; the AC before it is
        the break-even point. If power attacking never pays off, the result
        is one below the sweep range; if it always does, the top of the range.

        Args:
            advantage_state (AdvantageState):
                The roll state of every attack.

        Returns:
            int: The break-even AC.

        """
        previous = self.settings.ac_sweep_min - 1
        for armor_class in self.settings.ac_range:
            normal = self.normal_dpr(armor_class, advantage_state)
            if self.power_attack_dpr(armor_class, advantage_state) <= normal:
                return previous
            previous = armor_class
        return previous

    def analyze(
        self,
        armor_class: int,
        advantage_state: AdvantageState = AdvantageState.NORMAL,
    ) -> PowerAttackAnalysis:
        """
        Compares both strategies against one AC.

        Args:
            armor_class (int):
                The target AC.
            advantage_state (AdvantageState):
                The roll state of every attack.

        Returns:
            PowerAttackAnalysis:
                Both DPRs, the recommendation and the break-even AC.

        """
        normal = self.normal_dpr(armor_class, advantage_state)
        power = self.power_attack_dpr(armor_class, advantage_state)
        break_even = self.break_even_ac(advantage_state)
        analysis = PowerAttackAnalysis(
            armor_class=armor_class,
            advantage_state=advantage_state,
            normal_dpr=normal,
            power_attack_dpr=power,
            should_use=armor_class <= break_even,
            break_even_ac=break_even,
            delta=power - normal,
        )
        log_debug(
            "Power attack analysis",
            {
                "ac": armor_class,
                "state": advantage_state.value,
                "normal": f"{normal:.2f}",
                "power": f"{power:.2f}",
                "break_even": analysis.break_even_ac,
            },
        )
        return analysis

    def thresholds_by_advantage_state(self) -> dict[AdvantageState, int]:
        """Break-even AC for every advantage state."""
        return {state: self.break_even_ac(state) for state in AdvantageState}


def analyze_power_attack(
    attack_bonus: float,
    target_ac: int,
    sequence: AttackSequence,
    advantage_state: AdvantageState = AdvantageState.NORMAL,
    target: Target | None = None,
    crit_range: int = 1,
    settings: EngineSettings = DEFAULT_SETTINGS,
) -> PowerAttackAnalysis:
    """One-shot power attack analysis against a single AC."""
    analyzer = PowerAttackAnalyzer(
        attack_bonus, sequence, target, crit_range, settings=settings
    )
    return analyzer.analyze(target_ac, advantage_state)


def compare_with_buffs(
    attack_bonus: float,
    target_ac: int,
    sequence: AttackSequence,
    bonus_dice: list[str] | tuple[str, ...],
    advantage_state: AdvantageState = AdvantageState.NORMAL,
    target: Target | None = None,
    crit_range: int = 1,
) -> tuple[PowerAttackAnalysis, PowerAttackAnalysis]:
    """
    Power attack analysis without and with attack roll buffs (e.g. Bless).

    Args:
        attack_bonus (float):
            The unbuffed attack bonus.
        target_ac (int):
            The target AC.
        sequence (AttackSequence):
            Damage sources and number of attacks.
        bonus_dice (list[str]):
            Dice added to every attack roll, e.g. ["1d4"].
        advantage_state (AdvantageState):
            The roll state of every attack.
        target (Target | None):
            Supplies damage defenses.
        crit_range (int):
            Number of d20 faces that crit.

    Returns:
        tuple[PowerAttackAnalysis, PowerAttackAnalysis]:
            The unbuffed and buffed analyses.

    """
    buff = sum(DiceModel.average(DiceModel.parse(dice)) for dice in bonus_dice)
    base = analyze_power_attack(
        attack_bonus, target_ac, sequence, advantage_state, target, crit_range
    )
    buffed = analyze_power_attack(
        attack_bonus + buff, target_ac, sequence, advantage_state, target, crit_range
    )
    return base, buffed


def describe_recommendation(analysis: PowerAttackAnalysis) -> str:
    """Short human-readable recommendation for an analysis."""
    if analysis.should_use:
        return (
            f"Power attack: +{analysis.delta:.2f} DPR against AC {analysis.armor_class} "
            f"(worth it up to AC {analysis.break_even_ac})"
        )
    return (
        f"Attack normally: power attack changes DPR by {analysis.delta:+.2f} against "
        f"AC {analysis.armor_class} (break-even AC {analysis.break_even_ac})"
    )
