"""
MooncrestBot - Levels Package
=============================

Tier tables and Discord tier-role sync.
"""

from src.services.levels.policy import (
    LevelConfig,
    LevelPolicy,
    Tier,
    get_level_config,
    load_level_config,
    tier_progress,
)

__all__ = [
    "LevelConfig",
    "LevelPolicy",
    "Tier",
    "get_level_config",
    "load_level_config",
    "tier_progress",
]
