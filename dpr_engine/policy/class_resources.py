"""
Class resources module for the DPR engine.

Derives the maximum spell slots and per-class resource pools of a build
from its class levels: full / half / third caster slot tables, warlock pact
magic, and the pools of the martial classes.
"""

import math

from pydantic import BaseModel, ConfigDict, Field

from dpr_engine.character.build import Build
from dpr_engine.core.constants import ResourceType
from dpr_engine.core.utils import get_stat_modifier

# Slots per spell level (index 0 is 1st level) for each class level.
FULL_CASTER_SLOTS: dict[int, tuple[int, ...]] = {
    1: (2,),
    2: (3,),
    3: (4, 2),
    4: (4, 3),
    5: (4, 3, 2),
    6: (4, 3, 3),
    7: (4, 3, 3, 1),
    8: (4, 3, 3, 2),
    9: (4, 3, 3, 3, 1),
    10: (4, 3, 3, 3, 2),
    11: (4, 3, 3, 3, 2, 1),
    12: (4, 3, 3, 3, 2, 1),
    13: (4, 3, 3, 3, 2, 1, 1),
    14: (4, 3, 3, 3, 2, 1, 1),
    15: (4, 3, 3, 3, 2, 1, 1, 1),
    16: (4, 3, 3, 3, 2, 1, 1, 1),
    17: (4, 3, 3, 3, 2, 1, 1, 1, 1),
    18: (4, 3, 3, 3, 3, 1, 1, 1, 1),
    19: (4, 3, 3, 3, 3, 2, 1, 1, 1),
    20: (4, 3, 3, 3, 3, 2, 2, 1, 1),
}

HALF_CASTER_SLOTS: dict[int, tuple[int, ...]] = {
    1: (),
    2: (2,),
    3: (3,),
    4: (3,),
    5: (4, 2),
    6: (4, 2),
    7: (4, 3),
    8: (4, 3),
    9: (4, 3, 2),
    10: (4, 3, 2),
    11: (4, 3, 3),
    12: (4, 3, 3),
    13: (4, 3, 3, 1),
    14: (4, 3, 3, 1),
    15: (4, 3, 3, 2),
    16: (4, 3, 3, 2),
    17: (4, 3, 3, 3, 1),
    18: (4, 3, 3, 3, 1),
    19: (4, 3, 3, 3, 2),
    20: (4, 3, 3, 3, 2),
}

THIRD_CASTER_SLOTS: dict[int, tuple[int, ...]] = {
    1: (),
    2: (),
    3: (2,),
    4: (3,),
    5: (3,),
    6: (3,),
    7: (4, 2),
    8: (4, 2),
    9: (4, 2),
    10: (4, 3),
    11: (4, 3),
    12: (4, 3),
    13: (4, 3, 2),
    14: (4, 3, 2),
    15: (4, 3, 2),
    16: (4, 3, 3),
    17: (4, 3, 3),
    18: (4, 3, 3),
    19: (4, 3, 3, 1),
    20: (4, 3, 3, 1),
}

# Warlock level -> (number of pact slots, pact slot level).
PACT_SLOTS: dict[int, tuple[int, int]] = {
    1: (1, 1),
    2: (2, 1),
    3: (2, 2),
    4: (2, 2),
    5: (2, 3),
    6: (2, 3),
    7: (2, 4),
    8: (2, 4),
    9: (2, 5),
    10: (2, 5),
    **{level: (3, 5) for level in range(11, 17)},
    **{level: (4, 5) for level in range(17, 21)},
}

FULL_CASTERS = frozenset({"bard", "cleric", "druid", "sorcerer", "wizard"})
HALF_CASTERS = frozenset({"paladin", "ranger", "artificer"})
THIRD_CASTER_SUBCLASSES = frozenset(
    {("fighter", "eldritch knight"), ("rogue", "arcane trickster")}
)

# Stand-in for resources that become unlimited (level 20 Rage).
UNLIMITED = 99

ACTION_SURGE = "actionSurge"
SECOND_WIND = "secondWind"
CHANNEL_DIVINITY = "channelDivinity"
WILD_SHAPE = "wildShape"
ARCANE_RECOVERY = "arcaneRecovery"


class PactSlots(BaseModel):
    """Warlock pact magic slots, all of the same level."""

    model_config = ConfigDict(frozen=True)

    level: int = Field(ge=1, le=5)
    slots: int = Field(ge=0)


class ClassResources(BaseModel):
    """Maximum resources of a build after a long rest."""

    model_config = ConfigDict(frozen=True)

    spell_slots: dict[int, int] = Field(default_factory=dict)
    pact_slots: PactSlots | None = None
    pools: dict[str, int] = Field(
        default_factory=dict,
        description="Other depletable resources by name.",
    )
    short_rest_pools: frozenset[str] = Field(
        default_factory=frozenset,
        description="Pools refilled by a short rest.",
    )


def caster_type(class_name: str, subclass: str | None = None) -> str:
    """Returns 'full', 'half', 'third', 'warlock' or 'none'."""
    name = class_name.lower()
    if name in FULL_CASTERS:
        return "full"
    if name == "warlock":
        return "warlock"
    if name in HALF_CASTERS:
        return "half"
    if (name, (subclass or "").lower()) in THIRD_CASTER_SUBCLASSES:
        return "third"
    return "none"


def _slots_from_row(row: tuple[int, ...]) -> dict[int, int]:
    return {level: count for level, count in enumerate(row, start=1) if count > 0}


def spell_slots_for(build: Build) -> dict[int, int]:
    """
    Maximum spell slots of a build, pact magic excluded.

    A single spellcasting class uses its own table; several spellcasting
    classes combine their levels (half casters count half, third casters a
    third, both rounded down) on the full caster table.

    Args:
        build (Build):
            The build.

    Returns:
        dict[int, int]: Slots by spell level.

    """
    if build.spell_slots is not None:
        return {level: count for level, count in build.spell_slots.items() if count > 0}

    casting = [
        (entry, caster_type(entry.class_name, entry.subclass))
        for entry in build.levels
    ]
    casting = [(entry, kind) for entry, kind in casting if kind in ("full", "half", "third")]
    if not casting:
        return {}

    if len(casting) == 1:
        entry, kind = casting[0]
        table = {
            "full": FULL_CASTER_SLOTS,
            "half": HALF_CASTER_SLOTS,
            "third": THIRD_CASTER_SLOTS,
        }[kind]
        return _slots_from_row(table[min(entry.level, 20)])

    caster_level = 0
    for entry, kind in casting:
        if kind == "full":
            caster_level += entry.level
        elif kind == "half":
            caster_level += entry.level // 2
        else:
            caster_level += entry.level // 3
    caster_level = min(caster_level, 20)
    if caster_level == 0:
        return {}
    return _slots_from_row(FULL_CASTER_SLOTS[caster_level])


def pact_slots_for(build: Build) -> PactSlots | None:
    level = build.class_level("warlock")
    if level == 0:
        return None
    slots, slot_level = PACT_SLOTS[min(level, 20)]
    return PactSlots(level=slot_level, slots=slots)


def class_resources_for(build: Build) -> ClassResources:
    """
    Computes the maximum resources of a build.

    Args:
        build (Build):
            The build.

    Returns:
        ClassResources:
            Spell slots, pact slots and pools, with the pools a short rest
            refills.

    """
    pools: dict[str, int] = {}
    short_rest: set[str] = set()

    pact = pact_slots_for(build)
    if pact is not None:
        pools[ResourceType.WARLOCK.value] = pact.slots
        short_rest.add(ResourceType.WARLOCK.value)

    for entry in build.levels:
        level = entry.level
        if entry.class_name == "sorcerer" and level >= 2:
            pools[ResourceType.SORCERY.value] = level
        elif entry.class_name == "monk" and level >= 2:
            pools[ResourceType.KI.value] = level
            short_rest.add(ResourceType.KI.value)
        elif entry.class_name == "barbarian":
            if level >= 20:
                rages = UNLIMITED
            elif level >= 17:
                rages = 6
            elif level >= 12:
                rages = 5
            elif level >= 6:
                rages = 4
            elif level >= 3:
                rages = 3
            else:
                rages = 2
            pools[ResourceType.RAGE.value] = rages
        elif entry.class_name == "fighter":
            pools[SECOND_WIND] = 1
            short_rest.add(SECOND_WIND)
            if level >= 2:
                pools[ACTION_SURGE] = 2 if level >= 17 else 1
                short_rest.add(ACTION_SURGE)
            if entry.subclass == "battle master" and level >= 3:
                pools[ResourceType.SUPERIORITY_DIE.value] = (
                    6 if level >= 15 else 5 if level >= 7 else 4
                )
                short_rest.add(ResourceType.SUPERIORITY_DIE.value)
        elif entry.class_name == "cleric" and level >= 2:
            pools[CHANNEL_DIVINITY] = 3 if level >= 18 else 2 if level >= 6 else 1
            short_rest.add(CHANNEL_DIVINITY)
        elif entry.class_name == "paladin" and level >= 3:
            pools[CHANNEL_DIVINITY] = max(pools.get(CHANNEL_DIVINITY, 0), 1)
            short_rest.add(CHANNEL_DIVINITY)
        elif entry.class_name == "druid" and level >= 2:
            pools[WILD_SHAPE] = UNLIMITED if level >= 20 else 2
            short_rest.add(WILD_SHAPE)
        elif entry.class_name == "bard":
            pools[ResourceType.BARDIC.value] = max(
                1, get_stat_modifier(build.abilities.charisma)
            )
            if level >= 5:
                short_rest.add(ResourceType.BARDIC.value)
        elif entry.class_name == "wizard":
            pools[ARCANE_RECOVERY] = math.ceil(level / 2)

    return ClassResources(
        spell_slots=spell_slots_for(build),
        pact_slots=pact,
        pools=pools,
        short_rest_pools=frozenset(short_rest),
    )
