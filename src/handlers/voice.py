"""
MooncrestBot - Voice Handler
============================

Routes voice state changes in the home guild to TempVoice.
"""

import discord
from discord.ext import commands

from src.core.config import config


class VoiceHandler(commands.Cog):
    """Forwards member voice moves to the TempVoice service."""

    def __init__(self, bot):
        self.bot = bot

    @commands.Cog.listener()
    async def on_voice_state_update(
        self,
        member: discord.Member,
        before: discord.VoiceState,
        after: discord.VoiceState
    ):
        if member.bot:
            return
        if config.GUILD_ID and member.guild.id != config.GUILD_ID:
            return

        # None until on_ready has started services
        tempvoice = self.bot.tempvoice
        if tempvoice is not None:
            await tempvoice.on_voice_state_update(member, before, after)


async def setup(bot):
    await bot.add_cog(VoiceHandler(bot))
