"""
Level progression module for the DPR engine.

Replays a build at every character level from 1 to 20, scaling its class
levels proportionally, and records the DPR, the resources and the features
gained at each level. Levels where the damage jumps are flagged as key
levels.
"""

import math

from catchery import log_warning
from pydantic import BaseModel, Field

from dpr_engine.character.build import Build, ClassLevel
from dpr_engine.character.target import CombatContext, Target
from dpr_engine.core.constants import MAX_LEVEL
from dpr_engine.core.error_handling import ensure_int_in_range, safe_operation
from dpr_engine.core.logging import log_debug
from dpr_engine.core.utils import proficiency_for_level
from dpr_engine.policy.class_resources import class_resources_for

from .dpr import DPRBreakdown, DPROrchestrator, TurnEvaluation

# Relative DPR increase that marks a key level.
KEY_LEVEL_GAIN = 0.15

# Character levels granting an Ability Score Improvement.
ASI_LEVELS = frozenset({4, 8, 12, 16, 19})

EXTRA_ATTACK_CLASSES = frozenset({"fighter", "barbarian", "paladin", "ranger", "monk"})
FIGHTING_STYLE_CLASSES = frozenset({"fighter", "ranger", "paladin"})


class LevelSnapshot(BaseModel):
    """The state of a build at one character level."""

    level: int = Field(ge=1, le=MAX_LEVEL)
    class_levels: dict[str, int] = Field(default_factory=dict)
    proficiency_bonus: int
    attack_bonus: float = 0.0
    number_of_attacks: int = 1
    dpr: float = 0.0
    breakdown: DPRBreakdown = Field(default_factory=DPRBreakdown)
    spell_slots: dict[int, int] = Field(default_factory=dict)
    pools: dict[str, int] = Field(default_factory=dict)
    new_features: list[str] = Field(default_factory=list)
    dpr_gain: float = Field(
        default=0.0,
        description="DPR gained over the previous level.",
    )
    key_level: bool = False


class LevelProgression(BaseModel):
    """The DPR of a build across levels 1 to 20."""

    build_name: str
    levels: list[LevelSnapshot] = Field(default_factory=list)

    @property
    def key_levels(self) -> list[int]:
        return [snapshot.level for snapshot in self.levels if snapshot.key_level]

    def at(self, level: int) -> LevelSnapshot | None:
        for snapshot in self.levels:
            if snapshot.level == level:
                return snapshot
        return None


def scale_class_levels(
    levels: tuple[ClassLevel, ...], target_level: int
) -> tuple[ClassLevel, ...]:
    """
    Scales the class levels of a build to a new total level.

    Every class but the last keeps its share of the total (rounded down, at
    least one level); the last class takes what is left. When the target is
    lower than the number of classes, the classes taken last are dropped.

    Args:
        levels (tuple[ClassLevel, ...]):
            The class levels, in the order they were taken.
        target_level (int):
            The new total level.

    Returns:
        tuple[ClassLevel, ...]:
            The scaled class levels, summing to `target_level`.

    """
    if not levels:
        return (ClassLevel(class_name="fighter", level=target_level),)
    kept = levels[:target_level]
    factor = target_level / sum(entry.level for entry in kept)
    remaining = target_level
    scaled: list[ClassLevel] = []
    for index, entry in enumerate(kept):
        if index == len(kept) - 1:
            share = remaining
        else:
            # Leave at least one level for every class still to come.
            share = max(1, math.floor(entry.level * factor))
            share = min(share, remaining - (len(kept) - index - 1))
        remaining -= share
        scaled.append(entry.model_copy(update={"level": share}))
    return tuple(scaled)


def features_at_level(
    levels: tuple[ClassLevel, ...],
    total_level: int,
    previous: tuple[ClassLevel, ...] | None = None,
) -> list[str]:
    """
    Names the milestones reached at this level.

    A class milestone is listed once, at the character level where its class
    first reaches it, even when scaling holds a class level still or moves
    it by more than one.

    Args:
        levels (tuple[ClassLevel, ...]):
            The class levels at this character level.
        total_level (int):
            The character level.
        previous (tuple[ClassLevel, ...] | None):
            The class levels at the character level before; when omitted,
            every class is taken to have gained exactly one level.

    Returns:
        list[str]: The milestones, class features first.

    """
    if previous is None:
        before = {entry.class_name: entry.level - 1 for entry in levels}
    else:
        before = {entry.class_name: entry.level for entry in previous}

    features = []
    for entry in levels:
        name = entry.class_name.title()
        gained = range(before.get(entry.class_name, 0) + 1, entry.level + 1)
        if 1 in gained:
            features.append(f"{name} Base Features")
        if 2 in gained and entry.class_name in FIGHTING_STYLE_CLASSES:
            features.append("Fighting Style")
        if 3 in gained:
            features.append(f"{name} Subclass")
        if 5 in gained and entry.class_name in EXTRA_ATTACK_CLASSES:
            features.append("Extra Attack")
        if entry.class_name == "fighter" and 11 in gained:
            features.append("Extra Attack (2)")
        if entry.class_name == "fighter" and 20 in gained:
            features.append("Extra Attack (3)")
    if total_level in (5, 9, 13, 17):
        features.append(f"Proficiency Bonus +{proficiency_for_level(total_level)}")
    if total_level in ASI_LEVELS:
        features.append("Ability Score Improvement")
    return features


def build_at_level(build: Build, level: int) -> Build:
    """A copy of `build` levelled to `level`, with derived proficiency and slots."""
    levels = scale_class_levels(build.levels, level)
    return build.model_copy(
        update={"levels": levels, "proficiency_bonus": None, "spell_slots": None}
    )


@safe_operation(default_value=None, error_message="Level evaluation failed")
def _evaluate_level(
    orchestrator: DPROrchestrator,
    build: Build,
    target: Target,
    combat: CombatContext,
) -> TurnEvaluation:
    return orchestrator.evaluate_turn(build, target, combat)


def analyze_level_progression(
    build: Build,
    target: Target,
    combat: CombatContext | None = None,
    orchestrator: DPROrchestrator | None = None,
    max_level: int = MAX_LEVEL,
) -> LevelProgression:
    """
    Evaluates a build at every level from 1 to `max_level`.

    A level is a key level when its DPR grows by more than `KEY_LEVEL_GAIN`
    over the previous level, or when it grants an extra attack. A level that
    fails to evaluate is logged and recorded with zero DPR.

    Args:
        build (Build):
            The build; its class levels are scaled at every level.
        target (Target):
            The creature being attacked.
        combat (CombatContext | None):
            The circumstances of the attacks.
        orchestrator (DPROrchestrator | None):
            The orchestrator evaluating each level.
        max_level (int):
            The last level evaluated, clamped to [1, 20].

    Returns:
        LevelProgression:
            One snapshot per level.

    """
    combat = combat or CombatContext()
    orchestrator = orchestrator or DPROrchestrator()
    max_level = ensure_int_in_range(
        max_level, "max_level", 1, MAX_LEVEL, {"build": build.name}
    )

    progression = LevelProgression(build_name=build.name)
    previous = 0.0
    previous_levels: tuple[ClassLevel, ...] = ()
    for level in range(1, max_level + 1):
        levelled = build_at_level(build, level)
        resources = class_resources_for(levelled)
        features = features_at_level(levelled.levels, level, previous_levels)
        previous_levels = levelled.levels
        snapshot = LevelSnapshot(
            level=level,
            class_levels={entry.class_name: entry.level for entry in levelled.levels},
            proficiency_bonus=proficiency_for_level(level),
            spell_slots=resources.spell_slots,
            pools=resources.pools,
            new_features=features,
        )

        turn = _evaluate_level(orchestrator, levelled, target, combat)
        if turn is None:
            log_warning(
                "Level could not be evaluated, recording zero DPR",
                {"build": build.name, "level": level},
            )
        else:
            snapshot.dpr = turn.total
            snapshot.breakdown = turn.breakdown
            snapshot.attack_bonus = turn.profile.main.attack_bonus
            snapshot.number_of_attacks = turn.profile.main.sequence.num_attacks

        snapshot.dpr_gain = snapshot.dpr - previous
        jumped = previous > 0 and snapshot.dpr_gain > previous * KEY_LEVEL_GAIN
        snapshot.key_level = level > 1 and (
            jumped or any(feature.startswith("Extra Attack") for feature in features)
        )
        previous = snapshot.dpr
        progression.levels.append(snapshot)

    log_debug(
        "Level progression analyzed",
        {"build": build.name, "key_levels": progression.key_levels},
    )
    return progression
