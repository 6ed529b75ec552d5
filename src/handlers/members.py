"""
MooncrestBot - Members Handler
==============================

Returning members get their verified role, tier roles and nickname back
when they rejoin the home guild.
"""

import discord
from discord.ext import commands

from src.core.config import config
from src.core.logger import log
from src.services.roblox import RobloxUser
from src.utils.nickname import apply_nickname, build_nickname


async def restore_returning_member(ledger, member: discord.Member) -> bool:
    """
    Restore a rejoining member from their linked record.

    Returns:
        True if the member had a verified record.
    """
    user = await ledger.get_user_by_discord(member.id)
    if user is None or not user.is_verified:
        return False

    try:
        restored = await ledger.restore_member(member, user)
    except discord.HTTPException as e:
        log.error_tree("Member Role Restore Failed", e, [
            ("Member", f"{member.name} ({member.id})"),
        ])
        restored = []

    nickname = build_nickname(RobloxUser(user.roblox_id, user.roblox_username))
    nickname_status = await apply_nickname(member, nickname, reason="Returning verified member")

    log.tree("Member Restored", [
        ("Member", f"{member.name} ({member.id})"),
        ("Roblox", f"{user.roblox_username} ({user.roblox_id})"),
        ("Roles", ", ".join(restored) or "None"),
        ("Nickname", nickname_status),
    ], emoji="👋")
    return True


class MembersHandler(commands.Cog):
    """Member join events."""

    def __init__(self, bot):
        self.bot = bot

    @commands.Cog.listener()
    async def on_member_join(self, member: discord.Member):
        if member.bot:
            return
        if config.GUILD_ID and member.guild.id != config.GUILD_ID:
            return

        try:
            await restore_returning_member(self.bot.ledger, member)
        except Exception as e:
            log.error_tree("Member Join Handling Failed", e, [
                ("Member", f"{member.name} ({member.id})"),
            ])


async def setup(bot):
    await bot.add_cog(MembersHandler(bot))
