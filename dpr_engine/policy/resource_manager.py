"""
Resource manager module for the DPR engine.

The only mutable state of the engine: tracks spell slots and class resource
pools across rounds, encounters and rests for a single build. Every
mutation holds the manager's lock, so one manager must only be driven by
one logical writer at a time.
"""

import threading
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from dpr_engine.character.build import Build
from dpr_engine.core.constants import ResourceType, RestType
from dpr_engine.core.logging import log_debug, log_info

from .class_resources import (
    ACTION_SURGE,
    CHANNEL_DIVINITY,
    PactSlots,
    class_resources_for,
)

SPELL_SLOT = ResourceType.SPELL_SLOT.value
PACT_SLOT = ResourceType.WARLOCK.value

# Rough DPR value of one unit of each resource, used to weigh rests.
RESOURCE_VALUES: dict[str, float] = {
    ACTION_SURGE: 25.0,
    ResourceType.SUPERIORITY_DIE.value: 8.0,
    ResourceType.KI.value: 6.0,
    ResourceType.RAGE.value: 15.0,
    ResourceType.SORCERY.value: 5.0,
    CHANNEL_DIVINITY: 15.0,
    ResourceType.BARDIC.value: 4.0,
}
DEFAULT_RESOURCE_VALUE = 5.0
SPELL_LEVEL_VALUE = 7.0

Purpose = Literal["damage", "utility", "defense", "healing"]


class ResourceUsage(BaseModel):
    """One recorded use of a resource."""

    round: int
    encounter: int
    resource: str
    amount: int
    purpose: Purpose = "damage"
    efficiency: float = Field(default=0.0, description="Damage dealt per unit spent.")
    levels: list[int] = Field(
        default_factory=list,
        description="Spell slot levels spent, for spell slots.",
    )


class ResourceSnapshot(BaseModel):
    """Read-only view of the remaining resources."""

    model_config = ConfigDict(frozen=True)

    spell_slots: dict[int, int] = Field(default_factory=dict)
    pact_slot_level: int | None = None
    pools: dict[str, int] = Field(default_factory=dict)
    round: int = 0
    encounter: int = 0

    def available(self, resource: ResourceType | str, level: int | None = None) -> int:
        """Units of a resource left; spell slots count pact slots of high enough level."""
        key = resource.value if isinstance(resource, Enum) else resource
        if key == SPELL_SLOT:
            minimum = level or 1
            regular = sum(
                count for slot, count in self.spell_slots.items() if slot >= minimum
            )
            pact = 0
            if self.pact_slot_level is not None and self.pact_slot_level >= minimum:
                pact = self.pools.get(PACT_SLOT, 0)
            return regular + pact
        return self.pools.get(key, 0)

    def as_context(self) -> dict[str, int]:
        """Flat mapping exposed to conditions under the `resources` root."""
        context = dict(self.pools)
        context[SPELL_SLOT] = self.available(SPELL_SLOT)
        for slot, count in self.spell_slots.items():
            context[f"{SPELL_SLOT}{slot}"] = count
        return context


class RestBenefit(BaseModel):
    """What a rest restored, and whether taking it is advisable."""

    rest_type: RestType
    resources_restored: dict[str, int] = Field(default_factory=dict)
    total_value: float = 0.0
    recommendation: Literal["take_now", "continue_fighting"] = "continue_fighting"
    reasoning: str = ""


class EfficiencyAnalysis(BaseModel):
    """Average damage per resource unit, from the usage history."""

    most_efficient: str | None = None
    least_efficient: str | None = None
    average_efficiency: dict[str, float] = Field(default_factory=dict)
    recommendations: list[str] = Field(default_factory=list)


class ResourceManager:
    """
    Tracks the depletable resources of one build.

    Spell slots are spent from the highest available level first, unless
    a minimum level is requested, in which case the lowest slot of at least
    that level is used. Restoring slots fills the lowest levels first.

    Attributes:
        history (list[ResourceUsage]):
            Every successful spend, in order.
        round (int):
            Current combat round.
        encounter (int):
            Encounters fought since the last long rest.

    """

    def __init__(
        self,
        spell_slots: dict[int, int] | None = None,
        pools: dict[str, int] | None = None,
        short_rest_pools: frozenset[str] | set[str] | None = None,
        pact_slots: PactSlots | None = None,
    ) -> None:
        self._lock = threading.RLock()
        self._max_slots: dict[int, int] = {
            level: count for level, count in (spell_slots or {}).items() if count > 0
        }
        self._max_pools: dict[str, int] = dict(pools or {})
        self._pact_slots = pact_slots
        if pact_slots is not None:
            self._max_pools.setdefault(PACT_SLOT, pact_slots.slots)
        self._short_rest_pools = frozenset(short_rest_pools or ())
        if pact_slots is not None:
            self._short_rest_pools |= {PACT_SLOT}

        self._slots = dict(self._max_slots)
        self._pools = dict(self._max_pools)
        self.history: list[ResourceUsage] = []
        self.round = 0
        self.encounter = 0
        self.short_rests = 0
        self.long_rests = 0

    @classmethod
    def from_build(cls, build: Build) -> "ResourceManager":
        """Creates a manager holding the build's maximum resources."""
        resources = class_resources_for(build)
        return cls(
            spell_slots=resources.spell_slots,
            pools=resources.pools,
            short_rest_pools=resources.short_rest_pools,
            pact_slots=resources.pact_slots,
        )

    # ============================================================================
    # QUERIES
    # ============================================================================

    def snapshot(self) -> ResourceSnapshot:
        with self._lock:
            return ResourceSnapshot(
                spell_slots=dict(self._slots),
                pact_slot_level=self._pact_slots.level if self._pact_slots else None,
                pools=dict(self._pools),
                round=self.round,
                encounter=self.encounter,
            )

    @property
    def spell_slots(self) -> dict[int, int]:
        with self._lock:
            return dict(self._slots)

    @property
    def max_spell_slots(self) -> dict[int, int]:
        return dict(self._max_slots)

    def available(self, resource: ResourceType | str, level: int | None = None) -> int:
        return self.snapshot().available(resource, level)

    def maximum(self, resource: ResourceType | str) -> int:
        key = resource.value if isinstance(resource, Enum) else resource
        if key == SPELL_SLOT:
            return sum(self._max_slots.values())
        return self._max_pools.get(key, 0)

    def resource_percentage(self) -> float:
        """Fraction of all resource units still available."""
        with self._lock:
            current = sum(self._slots.values()) + sum(self._pools.values())
            maximum = sum(self._max_slots.values()) + sum(self._max_pools.values())
        return current / maximum if maximum else 1.0

    # ============================================================================
    # SPENDING
    # ============================================================================

    def _take_slots(self, amount: int, level: int | None) -> list[int] | None:
        """Removes spell slots, returning the levels spent or None on underflow."""
        if level is None:
            order = sorted(self._slots, reverse=True)
        else:
            order = sorted(slot for slot in self._slots if slot >= level)
        if sum(self._slots[slot] for slot in order) < amount:
            return None
        spent: list[int] = []
        for slot in order:
            while self._slots[slot] > 0 and len(spent) < amount:
                self._slots[slot] -= 1
                spent.append(slot)
        return spent

    def use_resource(
        self,
        resource: ResourceType | str,
        amount: int = 1,
        purpose: Purpose = "damage",
        damage_dealt: float = 0.0,
        level: int | None = None,
    ) -> bool:
        """
        Spends a resource and records the use.

        Spell slots fall back to warlock pact slots (if their level is high
        enough) once the regular slots run out. Spending more than is
        available changes nothing.

        Args:
            resource (ResourceType | str):
                The resource, e.g. `ResourceType.SPELL_SLOT` or "actionSurge".
            amount (int):
                Units to spend.
            purpose (str):
                What the resource was spent on.
            damage_dealt (float):
                Damage attributed to the spend, for efficiency tracking.
            level (int | None):
                Minimum spell slot level.

        Returns:
            bool: True if the resource was spent.

        """
        if amount <= 0:
            return False
        key = resource.value if isinstance(resource, Enum) else resource
        with self._lock:
            levels: list[int] = []
            if key == SPELL_SLOT:
                spent = self._take_slots(amount, level)
                if spent is None:
                    pact = self._pact_slots
                    if (
                        pact is None
                        or (level is not None and pact.level < level)
                        or self._pools.get(PACT_SLOT, 0) < amount
                    ):
                        log_debug(
                            "Not enough spell slots",
                            {"amount": amount, "level": level, "slots": self._slots},
                        )
                        return False
                    self._pools[PACT_SLOT] -= amount
                    key = PACT_SLOT
                    spent = [pact.level] * amount
                levels = spent
            else:
                if self._pools.get(key, 0) < amount:
                    log_debug(
                        f"Not enough {key}",
                        {"amount": amount, "available": self._pools.get(key, 0)},
                    )
                    return False
                self._pools[key] -= amount

            self.history.append(
                ResourceUsage(
                    round=self.round,
                    encounter=self.encounter,
                    resource=key,
                    amount=amount,
                    purpose=purpose,
                    efficiency=damage_dealt / amount if damage_dealt > 0 else 0.0,
                    levels=levels,
                )
            )
        return True

    # ============================================================================
    # RESTS AND PROGRESSION
    # ============================================================================

    def restore_spell_slots(self, count: int | None = None) -> int:
        """
        Restores spell slots, lowest levels first, up to each maximum.

        Args:
            count (int | None):
                Slots to restore; None restores all of them.

        Returns:
            int: The number of slots restored.

        """
        restored = 0
        with self._lock:
            for slot in sorted(self._max_slots):
                missing = self._max_slots[slot] - self._slots.get(slot, 0)
                if count is not None:
                    missing = min(missing, count - restored)
                if missing > 0:
                    self._slots[slot] = self._slots.get(slot, 0) + missing
                    restored += missing
                if count is not None and restored >= count:
                    break
        return restored

    def _restorable(self, rest_type: RestType) -> tuple[dict[str, int], float]:
        restored: dict[str, int] = {}
        value = 0.0
        for key, maximum in self._max_pools.items():
            if rest_type == RestType.SHORT and key not in self._short_rest_pools:
                continue
            missing = maximum - self._pools.get(key, 0)
            if missing > 0:
                restored[key] = missing
                if key == PACT_SLOT and self._pact_slots is not None:
                    value += missing * self._pact_slots.level * SPELL_LEVEL_VALUE
                else:
                    value += missing * RESOURCE_VALUES.get(key, DEFAULT_RESOURCE_VALUE)
        if rest_type == RestType.LONG:
            missing_slots = 0
            for slot, maximum in self._max_slots.items():
                missing = maximum - self._slots.get(slot, 0)
                missing_slots += missing
                value += missing * slot * SPELL_LEVEL_VALUE
            if missing_slots:
                restored[SPELL_SLOT] = missing_slots
        return restored, value

    def recommend_rest(self, rest_type: RestType = RestType.SHORT) -> RestBenefit:
        """
        Evaluates a rest without taking it.

        Args:
            rest_type (RestType):
                The rest to evaluate.

        Returns:
            RestBenefit:
                What the rest would restore and the recommendation.

        """
        with self._lock:
            restored, value = self._restorable(rest_type)
            percentage = self.resource_percentage()
            encounters = self.encounter

        if rest_type == RestType.LONG:
            if percentage < 0.3:
                advice, reasoning = (
                    "take_now",
                    "Less than 30% of resources remaining, a long rest is highly recommended",
                )
            elif encounters >= 6:
                advice, reasoning = (
                    "take_now",
                    "Six or more encounters completed, the adventuring day is over",
                )
            else:
                advice, reasoning = (
                    "continue_fighting",
                    "Still have significant resources for more encounters",
                )
        elif value >= 30:
            advice, reasoning = (
                "take_now",
                f"A short rest would restore {value:.0f} DPR worth of resources",
            )
        elif percentage < 0.5:
            advice, reasoning = ("take_now", "Less than 50% of resources remaining")
        else:
            advice, reasoning = (
                "continue_fighting",
                "Limited benefit from a short rest at current resource levels",
            )
        return RestBenefit(
            rest_type=rest_type,
            resources_restored=restored,
            total_value=value,
            recommendation=advice,
            reasoning=reasoning,
        )

    def short_rest(self) -> RestBenefit:
        """Refills pact slots and the short rest pools."""
        with self._lock:
            benefit = self.recommend_rest(RestType.SHORT)
            for key in benefit.resources_restored:
                self._pools[key] = self._max_pools[key]
            self.short_rests += 1
        log_info("Short rest", {"restored": benefit.resources_restored})
        return benefit

    def long_rest(self) -> RestBenefit:
        """Refills every spell slot and pool, and starts a new adventuring day."""
        with self._lock:
            restored, value = self._restorable(RestType.LONG)
            self.restore_spell_slots()
            self._pools = dict(self._max_pools)
            self.long_rests += 1
            self.encounter = 0
            self.round = 0
        log_info("Long rest", {"restored": restored})
        return RestBenefit(
            rest_type=RestType.LONG,
            resources_restored=restored,
            total_value=value,
            recommendation="take_now",
            reasoning="A long rest restores all resources",
        )

    def next_round(self) -> int:
        with self._lock:
            self.round += 1
            return self.round

    def next_encounter(self) -> int:
        with self._lock:
            self.encounter += 1
            self.round = 0
            return self.encounter

    # ============================================================================
    # ANALYSIS
    # ============================================================================

    def efficiency_analysis(self) -> EfficiencyAnalysis:
        """
        Averages the damage per unit of each resource in the history.

        Returns:
            EfficiencyAnalysis:
                The averages, best and worst resources, and advice.

        """
        by_resource: dict[str, list[float]] = {}
        for usage in list(self.history):
            if usage.efficiency > 0:
                by_resource.setdefault(usage.resource, []).append(usage.efficiency)

        averages = {
            resource: sum(values) / len(values) for resource, values in by_resource.items()
        }
        ranked = sorted(averages.items(), key=lambda item: item[1], reverse=True)
        analysis = EfficiencyAnalysis(average_efficiency=averages)
        if not ranked:
            return analysis

        best, best_value = ranked[0]
        worst, worst_value = ranked[-1]
        analysis.most_efficient = best
        analysis.least_efficient = worst
        analysis.recommendations.append(
            f"Most efficient: {best} ({best_value:.1f} damage per use)"
        )
        if len(ranked) > 1:
            analysis.recommendations.append(
                f"Least efficient: {worst} ({worst_value:.1f} damage per use)"
            )
            analysis.recommendations.append(f"Consider using {best} more and {worst} less")
        return analysis
