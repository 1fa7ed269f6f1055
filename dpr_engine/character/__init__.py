"""
Character module for the DPR engine.

Contains the build model (class levels, abilities, equipment, features and
policies), the stats derived from it, and the target and combat context the
build attacks in.
"""

# Import from build.py
from .build import (
    UNARMED_STRIKE,
    AbilityScores,
    Build,
    ClassLevel,
    Equipment,
    Policies,
    Weapon,
)

# Import from build_stats.py
from .build_stats import BuildStats

# Import from target.py
from .target import CombatContext, Target

__all__ = [
    "UNARMED_STRIKE",
    "AbilityScores",
    "Build",
    "BuildStats",
    "ClassLevel",
    "CombatContext",
    "Equipment",
    "Policies",
    "Target",
    "Weapon",
]
