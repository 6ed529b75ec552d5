"""
MooncrestBot - Embed Footer
===========================

Shared footer for every embed the bot sends.
"""

import os
from typing import Optional

import discord


FOOTER_TEXT = os.getenv("MOONCREST_FOOTER_TEXT", "Mooncrest Expedition")

_icon_url: Optional[str] = None


def init_footer(bot: discord.Client, guild_id: Optional[int] = None) -> None:
    """Cache the server icon for footers. Call once after ready."""
    global _icon_url
    guild = bot.get_guild(guild_id) if guild_id else None
    if guild and guild.icon:
        _icon_url = guild.icon.url
    elif bot.user:
        _icon_url = bot.user.display_avatar.url


def set_footer(embed: discord.Embed, text: Optional[str] = None) -> discord.Embed:
    """Apply the standard footer and return the embed."""
    embed.set_footer(text=text or FOOTER_TEXT, icon_url=_icon_url)
    return embed


__all__ = ["FOOTER_TEXT", "init_footer", "set_footer"]
