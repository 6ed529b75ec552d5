"""
MooncrestBot - Ready Handler
============================

Handles bot startup events.
"""

import asyncio

import discord
from discord.ext import commands

from src.core.config import config
from src.core.logger import log
from src.services.database import db
from src.utils.footer import init_footer


class ReadyHandler(commands.Cog):
    """Handles bot ready event."""

    def __init__(self, bot):
        self.bot = bot

    @commands.Cog.listener()
    async def on_ready(self):
        """Called when the bot is ready. Fires again after every reconnect."""
        users = await asyncio.to_thread(db.get_user_count)
        log.tree("Bot Ready", [
            ("User", str(self.bot.user)),
            ("ID", str(self.bot.user.id)),
            ("Guilds", str(len(self.bot.guilds))),
            ("User Records", str(users)),
        ], emoji="🚀")

        # Cache the server icon for embed footers
        init_footer(self.bot, config.GUILD_ID)

        await self.bot._init_services()

        await self.bot.change_presence(
            activity=discord.Activity(
                type=discord.ActivityType.watching,
                name="the expedition"
            )
        )


async def setup(bot):
    await bot.add_cog(ReadyHandler(bot))
