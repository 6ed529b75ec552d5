"""
MooncrestBot - Colors Module
============================

Color and emoji definitions for Discord embeds.
"""


# =============================================================================
# Base Color Values (Hex)
# =============================================================================

# Primary brand colors (Mooncrest)
COLOR_MOONCREST = 0x1B1464  # Night blue (primary brand color)
COLOR_GOLD = 0xFFD700       # Champions / hall of fame

# Status colors
COLOR_SUCCESS = 0x43B581    # Green - successful actions
COLOR_ERROR = 0xF04747      # Red - errors and failures
COLOR_WARNING = 0xFAA61A    # Orange - warnings

# Feature-specific colors
COLOR_GIVEAWAY = 0x5865F2   # Blurple - running giveaways
COLOR_GIVEAWAY_ENDED = 0xFF0000


# =============================================================================
# Emojis
# =============================================================================

EMOJI_GIVEAWAY = "🎉"
EMOJI_CLIMBER = "🧗"
EMOJI_HOST = "🎤"
EMOJI_EXPLORER = "🚀"


__all__ = [
    "COLOR_MOONCREST",
    "COLOR_GOLD",
    "COLOR_SUCCESS",
    "COLOR_ERROR",
    "COLOR_WARNING",
    "COLOR_GIVEAWAY",
    "COLOR_GIVEAWAY_ENDED",
    "EMOJI_GIVEAWAY",
    "EMOJI_CLIMBER",
    "EMOJI_HOST",
    "EMOJI_EXPLORER",
]
