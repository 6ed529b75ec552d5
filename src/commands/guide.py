"""
MooncrestBot - Guide Points Command
===================================

Manage a verified member's guide (host) points.
"""

import discord
from discord import app_commands
from discord.ext import commands

from src.core.config import config
from src.core.logger import log
from src.services.ledger import PointsAction
from src.utils.permissions import require_manager
from src.utils.responses import safe_defer, safe_send, send_error


class GuideCog(commands.Cog):
    """Guide points management for staff."""

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot

    guide_group = app_commands.Group(
        name="guide",
        description="Manage a linked member's guide points",
        guild_only=True,
    )

    async def _apply(
        self,
        interaction: discord.Interaction,
        action: PointsAction,
        member: discord.Member,
        amount: int,
    ) -> None:
        command = f"guide {action.value}"
        if not await require_manager(interaction, config.GUIDE_MANAGER_ROLES, command):
            return

        await safe_defer(interaction)
        try:
            user = await self.bot.ledger.require_linked(member.id)
            old_points = user.guide_points
            result = await self.bot.ledger.apply_guide(
                user.roblox_id, action, amount, actor=interaction.user, member=member,
            )
        except Exception as e:
            await send_error(interaction, e, command)
            return

        message = (
            f"✅ Guide points for <@{member.id}> updated: "
            f"**{old_points}** → **{result.user.guide_points}**."
        )
        if result.tier_changed and result.new_tier:
            message += f" 🎉 **Promoted to {result.new_tier.name}!**"
        await safe_send(interaction, message, ephemeral=False)

    @guide_group.command(name="add", description="Add guide points to a linked member")
    @app_commands.describe(member="The Discord member to manage", amount="Points amount")
    async def add_points(
        self,
        interaction: discord.Interaction,
        member: discord.Member,
        amount: app_commands.Range[int, 0],
    ) -> None:
        await self._apply(interaction, PointsAction.ADD, member, amount)

    @guide_group.command(name="remove", description="Remove guide points from a linked member")
    @app_commands.describe(member="The Discord member to manage", amount="Points amount")
    async def remove_points(
        self,
        interaction: discord.Interaction,
        member: discord.Member,
        amount: app_commands.Range[int, 0],
    ) -> None:
        await self._apply(interaction, PointsAction.REMOVE, member, amount)

    @guide_group.command(name="set", description="Set a linked member's guide points")
    @app_commands.describe(member="The Discord member to manage", amount="New total")
    async def set_points(
        self,
        interaction: discord.Interaction,
        member: discord.Member,
        amount: app_commands.Range[int, 0],
    ) -> None:
        await self._apply(interaction, PointsAction.SET, member, amount)


async def setup(bot: commands.Bot) -> None:
    """Add the cog to the bot."""
    await bot.add_cog(GuideCog(bot))
    log.tree("Command Loaded", [
        ("Name", "guide (add, remove, set)"),
    ], emoji="✅")
