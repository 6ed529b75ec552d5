"""
MooncrestBot - Shared Constants
===============================

Centralized constants for the entire codebase.
Import from here instead of defining locally.
"""

from datetime import time as dt_time
from zoneinfo import ZoneInfo


# =============================================================================
# Timezone
# =============================================================================

TIMEZONE_WIB = ZoneInfo("Asia/Jakarta")


# =============================================================================
# Period Resets
# =============================================================================

# Weekly reset runs on Mondays, monthly reset on the 1st, both at 05:00 WIB
PERIOD_RESET_TIME = dt_time(hour=5, minute=0, tzinfo=TIMEZONE_WIB)
WEEKLY_RESET_WEEKDAY = 0
MONTHLY_RESET_DAY = 1


# =============================================================================
# Giveaways
# =============================================================================

GIVEAWAY_CHECK_INTERVAL = 30        # Seconds between expired-giveaway sweeps
GIVEAWAY_DRAW_TIMEOUT = 300         # Seconds before an unfinished draw claim is taken over
GIVEAWAY_JOIN_CUSTOM_ID = "giveaway:join"


# =============================================================================
# Expeditions
# =============================================================================

DIFFICULTIES = ("Easy", "Medium", "Hard", "Extreme")


# =============================================================================
# Leaderboards
# =============================================================================

LEADERBOARD_SIZE = 10
RANK_SYNC_ALL_LIMIT = 1000          # Top users by xp for /sync-rank without target
RANK_SYNC_DELAY = 0.5               # Seconds between rank writes (Roblox rate limit)


# =============================================================================
# TempVoice
# =============================================================================

TEMPVOICE_DELETE_DELAY = 15         # Seconds an empty channel survives


# =============================================================================
# HTTP
# =============================================================================

HTTP_TIMEOUT_TOTAL = 15
HTTP_TIMEOUT_CONNECT = 5
ROBLOX_ROLES_MAX_PAGES = 10


# =============================================================================
# Embeds
# =============================================================================

EMBED_FIELD_LIMIT = 1020
EMBED_DESCRIPTION_LIMIT = 4096
