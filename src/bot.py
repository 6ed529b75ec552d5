"""
MooncrestBot - Main Bot
=======================

Discord bot for the Mooncrest Expedition community: points ledger, tier
roles, Roblox rank sync, giveaways, period champions and TempVoice.
"""

from typing import Optional

import discord
from discord.ext import commands

from src.core.config import config
from src.core.logger import log
from src.services.database import db
from src.services.giveaway import GiveawayService
from src.services.ledger import LedgerService
from src.services.levels import get_level_config
from src.services.operator_log import operator_log
from src.services.periods import PeriodResetService
from src.services.roblox import RankBackend, RankSyncService, create_rank_backend
from src.services.tempvoice import TempVoiceService
from src.utils.http import http_session
from src.utils.task_registry import TaskRegistry


EXTENSIONS = (
    # Handlers
    "src.handlers.ready",
    "src.handlers.members",
    "src.handlers.voice",
    # Commands
    "src.commands.giveaway",
    "src.commands.xp",
    "src.commands.guide",
    "src.commands.batch",
    "src.commands.leaderboard",
    "src.commands.hall_of_fame",
    "src.commands.verify",
    "src.commands.sync_rank",
    "src.commands.period_reset",
)


class MooncrestBot(commands.Bot):
    """Main bot class for MooncrestBot."""

    def __init__(self) -> None:
        intents = discord.Intents.default()
        intents.members = True
        intents.voice_states = True

        super().__init__(
            command_prefix="!",
            intents=intents,
            help_command=None,
        )

        self.registry = TaskRegistry()

        levels = get_level_config()
        self.rank_backend: RankBackend = create_rank_backend()
        self.rank_sync = RankSyncService(self.rank_backend, levels.climbing)
        self.ledger = LedgerService(levels=levels, rank_sync=self.rank_sync)

        # Started once the gateway is ready
        self.giveaway_service: Optional[GiveawayService] = None
        self.period_service: Optional[PeriodResetService] = None
        self.tempvoice: Optional[TempVoiceService] = None
        self._services_ready = False

    async def setup_hook(self) -> None:
        """Called when the bot is starting up."""
        db.require_healthy()

        for extension in EXTENSIONS:
            await self.load_extension(extension)

        if config.GUILD_ID:
            guild = discord.Object(id=config.GUILD_ID)
            self.tree.copy_global_to(guild=guild)
            synced = await self.tree.sync(guild=guild)
            log.tree("Commands Synced", [
                ("Guild", str(config.GUILD_ID)),
                ("Count", str(len(synced))),
            ], emoji="🔄")

    async def _init_services(self) -> None:
        """Initialize bot services. Safe to call on every reconnect."""
        if self._services_ready:
            return
        self._services_ready = True

        operator_log.set_bot(self)

        self.giveaway_service = GiveawayService(self)
        await self.giveaway_service.setup()

        self.period_service = PeriodResetService(self)
        await self.period_service.setup()

        self.tempvoice = TempVoiceService(self, self.registry)
        await self.tempvoice.setup()

        log.tree("Services Ready", [
            ("Rank Backend", self.rank_backend.name),
            ("Group", str(config.ROBLOX_GROUP_ID) if config.ROBLOX_GROUP_ID else "Not set"),
        ], emoji="✅")

    async def close(self) -> None:
        """Clean up when bot is shutting down."""
        log.info("Bot shutting down...")

        self.registry.cancel_all()

        if self.giveaway_service:
            self.giveaway_service.stop()
        if self.period_service:
            self.period_service.stop()

        await http_session.close()
        await super().close()
