"""
MooncrestBot - Configuration
============================

Central configuration from environment variables.

Tier tables and the mountain list live in a JSON file so they can be
swapped without touching code (see config/levels.json).
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet


ROOT_DIR = Path(__file__).parent.parent.parent
DATA_DIR = ROOT_DIR / "data"
LOGS_DIR = ROOT_DIR / "logs"

DATA_DIR.mkdir(exist_ok=True)
LOGS_DIR.mkdir(exist_ok=True)


def _get_env_int(key: str, default: int) -> int:
    """Get environment variable as int with default."""
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_env_int_set(key: str, default: str = "") -> FrozenSet[int]:
    """Get environment variable as a set of ints (comma-separated)."""
    value = os.getenv(key, default)
    if not value:
        return frozenset()
    try:
        return frozenset(int(x.strip()) for x in value.split(",") if x.strip())
    except ValueError:
        return frozenset()


@dataclass(frozen=True)
class Config:
    """Bot configuration from environment variables."""

    # Bot settings
    TOKEN: str = os.getenv("MOONCREST_BOT_TOKEN", "")
    GUILD_ID: int = _get_env_int("MOONCREST_GUILD_ID", 0)
    OWNER_ID: int = _get_env_int("MOONCREST_OWNER_ID", 0)

    # Channels
    LOG_CHANNEL_ID: int = _get_env_int("MOONCREST_LOG_CHANNEL_ID", 0)
    ANNOUNCEMENT_CHANNEL_ID: int = _get_env_int("MOONCREST_ANNOUNCEMENT_CHANNEL_ID", 0)
    ANNOUNCEMENT_ROLE_ID: int = _get_env_int("MOONCREST_ANNOUNCEMENT_ROLE_ID", 0)

    # Granted on /verify
    VERIFIED_ROLE_ID: int = _get_env_int("MOONCREST_VERIFIED_ROLE_ID", 0)

    # Manager roles - comma-separated IDs
    GIVEAWAY_MANAGER_ROLES: FrozenSet[int] = field(
        default_factory=lambda: _get_env_int_set("MOONCREST_GIVEAWAY_MANAGER_ROLES", "")
    )
    XP_MANAGER_ROLES: FrozenSet[int] = field(
        default_factory=lambda: _get_env_int_set("MOONCREST_XP_MANAGER_ROLES", "")
    )
    GUIDE_MANAGER_ROLES: FrozenSet[int] = field(
        default_factory=lambda: _get_env_int_set("MOONCREST_GUIDE_MANAGER_ROLES", "")
    )
    REWARD_MANAGER_ROLES: FrozenSet[int] = field(
        default_factory=lambda: _get_env_int_set("MOONCREST_REWARD_MANAGER_ROLES", "")
    )

    # Voice settings
    VC_CREATOR_CHANNEL_ID: int = _get_env_int("MOONCREST_VC_CREATOR_ID", 0)
    VC_CATEGORY_ID: int = _get_env_int("MOONCREST_VC_CATEGORY_ID", 0)

    # Roblox
    ROBLOX_GROUP_ID: int = _get_env_int("MOONCREST_ROBLOX_GROUP_ID", 0)
    ROBLOX_OPENCLOUD_API_KEY: str = os.getenv("ROBLOX_OPENCLOUD_API_KEY", "")
    ROBLOX_COOKIE: str = os.getenv("ROBLOX_COOKIE", "")
    # Group ranks above this belong to staff/donor roles and are never synced
    ROBLOX_MAX_TIER_RANK: int = _get_env_int("MOONCREST_ROBLOX_MAX_TIER_RANK", 151)

    # Database
    DATABASE_PATH: str = os.getenv("MOONCREST_DATABASE_PATH", str(DATA_DIR / "mooncrest.db"))

    # Tier tables / mountains
    LEVELS_PATH: str = os.getenv("MOONCREST_LEVELS_PATH", str(ROOT_DIR / "config" / "levels.json"))

    @property
    def announce_channel_id(self) -> int:
        """Announcement channel, falling back to the log channel."""
        return self.ANNOUNCEMENT_CHANNEL_ID or self.LOG_CHANNEL_ID


def load_levels_file(path: str) -> Dict[str, Any]:
    """
    Load the tier/mountain configuration file.

    Returns an empty dict when the file is missing so the bot still starts
    (tier lookups then return nothing and role/rank sync is skipped).
    """
    file_path = Path(path)
    if not file_path.exists():
        return {}
    with open(file_path, "r", encoding="utf-8") as f:
        return json.load(f)


config = Config()
