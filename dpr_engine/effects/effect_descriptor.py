"""
Effect descriptor module for the DPR engine.

An effect descriptor is the serializable stand-in for a homebrew hook: a
trigger, a condition expression and a small numeric payload. Descriptors
are interpreted by the engine, never executed.
"""

from collections.abc import Mapping
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from dpr_engine.core.constants import DamageType, ResourceType
from dpr_engine.core.dice_parser import DiceExpression, DiceModel
from dpr_engine.core.error_handling import require_non_empty_string
from dpr_engine.core.logging import log_debug

from .conditions import AlwaysCondition, Condition
from .event_system import TriggerType


class ResourceCost(BaseModel):
    """A depletable resource an effect spends when it is used."""

    model_config = ConfigDict(frozen=True)

    resource_type: ResourceType = Field(
        description="Which kind of resource is spent.",
    )
    amount: int = Field(
        default=1,
        ge=1,
        description="How many units are spent.",
    )
    level: int | None = Field(
        default=None,
        ge=1,
        le=9,
        description="Minimum spell slot level, for spell slot costs.",
    )

    def __str__(self) -> str:
        if self.resource_type == ResourceType.SPELL_SLOT and self.level:
            return f"{self.amount}x level {self.level}+ spell slot"
        return f"{self.amount}x {self.resource_type.value}"


class ToHitPayload(BaseModel):
    """Flat bonus (or penalty) to the attack roll."""

    kind: Literal["to_hit"] = "to_hit"
    bonus: float = Field(description="Value added to the attack bonus.")


class DamagePayload(BaseModel):
    """Extra damage dealt when the effect triggers."""

    kind: Literal["damage"] = "damage"
    dice: str = Field(description="Dice expression, e.g. '1d6' or '2d8+1'.")
    damage_type: DamageType | None = Field(
        default=None,
        description="Damage type; None means the weapon's damage type.",
    )
    on_crit_double: bool = Field(
        default=True,
        description="Whether the dice are doubled on a critical hit.",
    )
    save_dc: int | None = Field(
        default=None,
        ge=1,
        description="If set, the target saves against this DC to avoid the damage.",
    )
    half_on_save: bool = Field(
        default=False,
        description="Whether a successful save still takes half damage.",
    )

    def to_dice(self, fallback_type: DamageType | None = None) -> DiceExpression:
        """Parses the payload dice, defaulting the damage type."""
        return DiceModel.parse(self.dice, self.damage_type or fallback_type)


class CritRangePayload(BaseModel):
    """Widens the critical hit range by a number of faces."""

    kind: Literal["crit_range"] = "crit_range"
    extra: int = Field(ge=0, le=18, description="Additional faces that crit.")


EffectPayload = Annotated[
    Union[ToHitPayload, DamagePayload, CritRangePayload],
    Field(discriminator="kind"),
]


class EffectDescriptor(BaseModel):
    """
    A trigger-tagged effect with a condition and a payload.

    Examples:
        A homebrew "Flame Tongue" rider dealing 2d6 fire on every hit:

            EffectDescriptor(
                name="Flame Tongue",
                trigger=TriggerType.ON_HIT,
                payload=DamagePayload(dice="2d6", damage_type=DamageType.FIRE),
            )

    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Display name of the effect.")
    description: str = Field(default="", description="Free-form description.")
    trigger: TriggerType = Field(description="When the effect is evaluated.")
    condition: Condition = Field(
        default_factory=AlwaysCondition,
        description="Condition that must hold for the effect to apply.",
    )
    payload: EffectPayload = Field(description="What the effect does.")
    once_per_turn: bool = Field(
        default=False,
        description="Whether the effect can apply at most once per turn.",
    )
    priority: int = Field(
        default=10,
        description="Tie-breaker among once-per-turn effects (higher wins).",
    )
    resource_cost: ResourceCost | None = Field(
        default=None,
        description="Resource spent each time the effect applies.",
    )

    def model_post_init(self, _: Any) -> None:
        """Validates fields after model initialization."""
        require_non_empty_string(self.name, "effect name", {"trigger": self.trigger.value})
        if isinstance(self.payload, DamagePayload):
            # Fail fast on malformed dice.
            DiceModel.parse(self.payload.dice)
        if self.once_per_turn and self.trigger not in (
            TriggerType.ON_HIT,
            TriggerType.ON_CRIT,
            TriggerType.ON_DAMAGE_ROLL,
        ):
            raise ValueError("only hit-based triggers can be once per turn")

    def applies(self, context: Mapping[str, Any]) -> bool:
        """
        Checks whether the effect's condition holds in the given context.

        Args:
            context (Mapping[str, Any]):
                The evaluation context.

        Returns:
            bool:
                True if the effect applies.

        """
        result = self.condition.is_met(context)
        log_debug(
            f"Effect '{self.name}' {'applies' if result else 'does not apply'}",
            {"trigger": self.trigger.value},
        )
        return result


def effects_for_trigger(
    effects: list[EffectDescriptor],
    trigger: TriggerType,
    payload_kind: str | None = None,
) -> list[EffectDescriptor]:
    """
    Filters descriptors by trigger and, optionally, payload kind.

    Args:
        effects (list[EffectDescriptor]):
            The descriptors to filter.
        trigger (TriggerType):
            The trigger to keep.
        payload_kind (str | None):
            The payload kind to keep, or None for any.

    Returns:
        list[EffectDescriptor]:
            The matching descriptors, in their original order.

    """
    return [
        effect
        for effect in effects
        if effect.trigger == trigger
        and (payload_kind is None or effect.payload.kind == payload_kind)
    ]
