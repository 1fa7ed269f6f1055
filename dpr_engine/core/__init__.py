"""
Core module for the DPR engine.

Contains the constants and enumerations, the dice model, error handling,
logging, engine settings and small utilities shared by every other module.
"""

# Import from constants.py
from .constants import (
    AdvantageKind,
    AdvantageState,
    AttackRange,
    AttackType,
    Cover,
    DamageOrigin,
    DamageType,
    Lighting,
    NiceEnum,
    OncePerTurnPolicy,
    PositioningPolicy,
    PowerAttackPolicy,
    RerollMechanic,
    ResourceType,
    RestType,
    SmitePolicy,
    TargetingPolicy,
)

# Import from dice_parser.py
from .dice_parser import DiceExpression, DiceModel, parse_dice

# Import from error_handling.py
from .error_handling import (
    ERROR_HANDLER,
    EngineError,
    EngineIssue,
    ErrorHandler,
    ErrorSeverity,
    FormatError,
    ensure_int_in_range,
    require_non_empty_string,
    safe_operation,
)

# Import from logging.py
from .logging import (
    get_logger,
    log_debug,
    log_error,
    log_info,
    log_warning,
    setup_logging,
)

# Import from settings.py
from .settings import DEFAULT_SETTINGS, EngineSettings

# Import from utils.py
from .utils import clamp, get_stat_modifier, normalize_names, proficiency_for_level

__all__ = [
    # Constants
    "AdvantageKind",
    "AdvantageState",
    "AttackRange",
    "AttackType",
    "Cover",
    "DamageOrigin",
    "DamageType",
    "Lighting",
    "NiceEnum",
    "OncePerTurnPolicy",
    "PositioningPolicy",
    "PowerAttackPolicy",
    "RerollMechanic",
    "ResourceType",
    "RestType",
    "SmitePolicy",
    "TargetingPolicy",
    # Dice
    "DiceExpression",
    "DiceModel",
    "parse_dice",
    # Error handling
    "ERROR_HANDLER",
    "EngineError",
    "EngineIssue",
    "ErrorHandler",
    "ErrorSeverity",
    "FormatError",
    "ensure_int_in_range",
    "require_non_empty_string",
    "safe_operation",
    # Logging
    "get_logger",
    "log_debug",
    "log_error",
    "log_info",
    "log_warning",
    "setup_logging",
    # Settings
    "DEFAULT_SETTINGS",
    "EngineSettings",
    # Utilities
    "clamp",
    "get_stat_modifier",
    "normalize_names",
    "proficiency_for_level",
]
