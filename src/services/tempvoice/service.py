"""
MooncrestBot - TempVoice Service
================================

Join-to-create personal voice channels.

    - Joining the creator channel creates "<name>'s Channel" and moves the
      member into it (one creation in flight per member)
    - A member who already owns a channel is moved back to it
    - An emptied channel is deleted after a grace period unless someone
      rejoins first
"""

import asyncio
from typing import TYPE_CHECKING, Optional

import discord

from src.core.config import config
from src.core.constants import TEMPVOICE_DELETE_DELAY
from src.core.logger import log
from src.services.database import Database, db
from src.utils.task_registry import TaskRegistry

if TYPE_CHECKING:
    from src.bot import MooncrestBot


def _delete_key(channel_id: int) -> str:
    return f"tempvoice:delete:{channel_id}"


def _create_key(member_id: int) -> str:
    return f"tempvoice:create:{member_id}"


class TempVoiceService:
    """Service for managing temporary voice channels."""

    def __init__(
        self,
        bot: "MooncrestBot",
        registry: TaskRegistry,
        database: Optional[Database] = None,
        delete_delay: float = TEMPVOICE_DELETE_DELAY,
    ) -> None:
        self.bot = bot
        self.registry = registry
        self.db = database or db
        self.delete_delay = delete_delay

    async def setup(self) -> None:
        """Clean stale rows and schedule deletion of channels left empty."""
        if not config.VC_CREATOR_CHANNEL_ID:
            log.tree("TempVoice Service", [
                ("Status", "Disabled"),
                ("Reason", "MOONCREST_VC_CREATOR_ID not set"),
            ], emoji="ℹ️")
            return

        stale = 0
        pending = 0
        channel_ids = await asyncio.to_thread(self.db.get_all_temp_channels, config.GUILD_ID)
        for channel_id in channel_ids:
            channel = self.bot.get_channel(channel_id)
            if channel is None:
                await asyncio.to_thread(self.db.delete_temp_channel, channel_id)
                stale += 1
            elif not channel.members:
                self._schedule_delete(channel)
                pending += 1

        log.tree("TempVoice Service Ready", [
            ("Creator Channel", str(config.VC_CREATOR_CHANNEL_ID)),
            ("Category", str(config.VC_CATEGORY_ID) if config.VC_CATEGORY_ID else "Not set"),
            ("Stale Rows Removed", str(stale)),
            ("Empty Channels Queued", str(pending)),
        ], emoji="🔊")

    # =========================================================================
    # Voice Events
    # =========================================================================

    async def on_voice_state_update(
        self,
        member: discord.Member,
        before: discord.VoiceState,
        after: discord.VoiceState,
    ) -> None:
        """Handle voice state updates."""
        left_channel = before.channel and (not after.channel or before.channel.id != after.channel.id)
        joined_channel = after.channel and (not before.channel or after.channel.id != before.channel.id)

        if joined_channel:
            if after.channel.id == config.VC_CREATOR_CHANNEL_ID:
                await self.create_for(member)
            elif self.registry.cancel(_delete_key(after.channel.id)):
                log.tree("Channel Deletion Cancelled", [
                    ("Channel", after.channel.name),
                    ("Rejoined By", f"{member.name} ({member.id})"),
                ], emoji="↩️")

        if left_channel and before.channel.id != config.VC_CREATOR_CHANNEL_ID:
            if not before.channel.members and await asyncio.to_thread(self.db.is_temp_channel, before.channel.id):
                self._schedule_delete(before.channel)

    # =========================================================================
    # Create
    # =========================================================================

    async def create_for(self, member: discord.Member) -> Optional[discord.VoiceChannel]:
        """Create (or return to) the member's personal channel."""
        key = _create_key(member.id)
        if not self.registry.try_acquire(key):
            log.tree("Create Skipped", [
                ("User", f"{member.name} ({member.id})"),
                ("Reason", "Creation already in progress"),
            ], emoji="⏭️")
            return None

        try:
            guild = member.guild
            existing_id = await asyncio.to_thread(self.db.get_owner_channel, member.id, guild.id)
            if existing_id:
                existing = guild.get_channel(existing_id)
                if existing is not None:
                    self.registry.cancel(_delete_key(existing.id))
                    await member.move_to(existing)
                    return existing
                await asyncio.to_thread(self.db.delete_temp_channel, existing_id)

            category = guild.get_channel(config.VC_CATEGORY_ID) if config.VC_CATEGORY_ID else None
            channel = await guild.create_voice_channel(
                name=f"{member.display_name}'s Channel",
                category=category,
                reason=f"TempVoice for {member.name}",
            )
            await asyncio.to_thread(self.db.create_temp_channel, channel.id, member.id, guild.id)

            try:
                await member.move_to(channel)
            except discord.HTTPException as e:
                # Member left voice before the move; the empty channel gets cleaned up
                log.error_tree("TempVoice Move Failed", e, [
                    ("User", f"{member.name} ({member.id})"),
                ])
                self._schedule_delete(channel)

            log.tree("Channel Created", [
                ("Channel", channel.name),
                ("Owner", f"{member.name} ({member.id})"),
            ], emoji="🔊")
            return channel
        except discord.HTTPException as e:
            log.error_tree("TempVoice Create Failed", e, [
                ("User", f"{member.name} ({member.id})"),
            ])
            return None
        finally:
            self.registry.release(key)

    # =========================================================================
    # Delete
    # =========================================================================

    def _schedule_delete(self, channel: discord.VoiceChannel) -> None:
        async def delete() -> None:
            await self._delete_if_empty(channel)

        self.registry.schedule(_delete_key(channel.id), self.delete_delay, delete)
        log.tree("Channel Deletion Scheduled", [
            ("Channel", channel.name),
            ("Delay", f"{self.delete_delay}s"),
        ], emoji="⏳")

    async def _delete_if_empty(self, channel: discord.VoiceChannel) -> None:
        current = self.bot.get_channel(channel.id)
        if current is None:
            await asyncio.to_thread(self.db.delete_temp_channel, channel.id)
            return
        if current.members:
            return

        await asyncio.to_thread(self.db.delete_temp_channel, channel.id)
        try:
            await current.delete(reason="Empty")
        except discord.NotFound:
            pass
        log.tree("Channel Auto-Deleted", [
            ("Channel", current.name),
        ], emoji="🗑️")
