"""
MooncrestBot - Shared Command Choices
=====================================

Option choices and autocomplete shared by the points commands.
"""

from typing import List

import discord
from discord import app_commands

from src.core.constants import DIFFICULTIES
from src.services.levels import get_level_config


DIFFICULTY_CHOICES: List[app_commands.Choice[str]] = [
    app_commands.Choice(name=d, value=d) for d in DIFFICULTIES
]


async def mountain_autocomplete(
    interaction: discord.Interaction,
    current: str,
) -> List[app_commands.Choice[str]]:
    """Autocomplete for configured mountain names."""
    needle = current.lower()
    matches = [m for m in get_level_config().mountains if needle in m.lower()]
    return [app_commands.Choice(name=m, value=m) for m in matches[:25]]  # Discord limit
