"""
MooncrestBot - Nickname Utilities
=================================

Server nicknames mirror the linked Roblox profile: "Display (@name)".
"""

import discord

from src.core.logger import log
from src.services.roblox import RobloxUser


NICKNAME_LIMIT = 32  # Discord limit


def build_nickname(roblox_user: RobloxUser) -> str:
    """Nickname shown in the server for a linked account."""
    display = roblox_user.display_name or roblox_user.name
    return f"{display} (@{roblox_user.name})"[:NICKNAME_LIMIT]


async def apply_nickname(member: discord.Member, nickname: str, reason: str = "Roblox verification") -> str:
    """Set a nickname and describe what happened."""
    if member.nick == nickname:
        return "Already up to date"
    try:
        await member.edit(nick=nickname, reason=reason)
        return "Updated"
    except discord.HTTPException as e:
        log.tree("Nickname Update Failed", [
            ("Member", f"{member.name} ({member.id})"),
            ("Error", str(e)[:80]),
        ], emoji="⚠️")
        return "Failed (missing permissions?)"
