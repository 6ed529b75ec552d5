"""
MooncrestBot - Sync Rank Command
================================

Push climbing tiers to Roblox group ranks for one user or the top of the
leaderboard.
"""

import asyncio
from typing import List, Optional

import discord
from discord import app_commands
from discord.ext import commands

from src.core.colors import COLOR_MOONCREST, COLOR_SUCCESS
from src.core.config import config
from src.core.constants import RANK_SYNC_ALL_LIMIT, RANK_SYNC_DELAY
from src.core.errors import NotFound
from src.core.logger import log
from src.services.database import db
from src.services.ledger import UserRecord
from src.services.roblox import SyncResult, SyncStatus
from src.utils.footer import set_footer
from src.utils.permissions import require_manager
from src.utils.responses import safe_defer, safe_send, send_error
from src.utils.targets import find_target_user


def build_result_embed(results: List[SyncResult], names: dict) -> discord.Embed:
    updated = [r for r in results if r.status == SyncStatus.UPDATED]
    failed = [r for r in results if r.status == SyncStatus.FAILED]
    skipped = [r for r in results if r not in updated and r not in failed]

    embed = discord.Embed(
        title="✅ Sync Complete",
        description=(
            f"**Results:**\n"
            f"✅ Synced: {len(updated)}\n"
            f"⏭️ Skipped: {len(skipped)}\n"
            f"❌ Errors: {len(failed)}"
        ),
        color=COLOR_SUCCESS,
    )
    notes = [
        f"{names.get(r.roblox_id, r.roblox_id)}: {r.message}"
        for r in results
        if r.status in (SyncStatus.NOT_IN_GROUP, SyncStatus.SKIPPED_SPECIAL_ROLE, SyncStatus.FAILED)
    ]
    if notes:
        text = "\n".join(notes[:10])
        if len(notes) > 10:
            text += f"\n...and {len(notes) - 10} more"
        embed.add_field(name="Details", value=text[:1020], inline=False)
    set_footer(embed)
    return embed


class SyncRankCog(commands.Cog):
    """Roblox rank sync for staff."""

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot

    @app_commands.command(name="sync-rank", description="Sync climbing tiers to Roblox group ranks")
    @app_commands.describe(target="Discord user or Roblox username (leave empty to sync everyone)")
    @app_commands.guild_only()
    async def sync_rank(self, interaction: discord.Interaction, target: Optional[str] = None) -> None:
        if not await require_manager(interaction, config.XP_MANAGER_ROLES, "sync-rank"):
            return

        await safe_defer(interaction)
        try:
            if target:
                users = [await find_target_user(self.bot, target)]
            else:
                rows = await asyncio.to_thread(db.get_top_users, "xp", RANK_SYNC_ALL_LIMIT, 0)
                users = [UserRecord.from_row(r) for r in rows]
            if not users:
                raise NotFound("No users found to sync.")
        except Exception as e:
            await send_error(interaction, e, "sync-rank")
            return

        await safe_send(interaction, embed=discord.Embed(
            title="🔄 Syncing Roblox Ranks...",
            description=f"Syncing {len(users)} user(s)...",
            color=COLOR_MOONCREST,
        ), ephemeral=False)

        log.tree("Rank Sync Started", [
            ("By", f"{interaction.user.name} ({interaction.user.id})"),
            ("Target", target or "All"),
            ("Users", str(len(users))),
        ], emoji="🔄")

        try:
            results = await self.bot.rank_sync.sync_many(
                [(u.roblox_id, u.xp) for u in users], delay=RANK_SYNC_DELAY,
            )
        except Exception as e:
            await send_error(interaction, e, "sync-rank")
            return

        names = {u.roblox_id: u.roblox_username for u in users}
        await safe_send(interaction, embed=build_result_embed(results, names), ephemeral=False)


async def setup(bot: commands.Bot) -> None:
    """Add the cog to the bot."""
    await bot.add_cog(SyncRankCog(bot))
    log.tree("Command Loaded", [
        ("Name", "sync-rank"),
    ], emoji="✅")
