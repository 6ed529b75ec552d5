"""
MooncrestBot - Lunar Points Commands
====================================

/xp manages a Roblox user's Lunar Points by username.
/xpd does the same for a verified Discord member.

Add and remove also count (or uncount) an expedition on the given
mountain and difficulty. Set and bonus leave expedition counts alone.
"""

from typing import Optional

import discord
from discord import app_commands
from discord.ext import commands

from src.core.config import config
from src.core.errors import Ineligible, NotFound
from src.core.logger import log
from src.services.ledger import ActionContext, LedgerResult, PointsAction
from src.utils.choices import DIFFICULTY_CHOICES, mountain_autocomplete
from src.utils.permissions import require_manager
from src.utils.responses import safe_defer, safe_send, send_error


def format_points_result(result: LedgerResult, name: str, reason: Optional[str] = None) -> str:
    """Public reply for a climbing points change."""
    if result.action == PointsAction.BONUS:
        message = f"✅ Gave **{result.amount}** bonus Lunar Points to **{name}**."
    else:
        message = (
            f"✅ Successfully performed '{result.action.value}' with {result.amount} "
            f"Lunar Points for **{name}**."
        )

    if result.tier_changed and result.new_tier:
        message += f" 🎉 **{name} has leveled up to {result.new_tier.name}!**"
    if reason:
        message += f"\n*Reason: {reason}*"
    return message


class XPCog(commands.Cog):
    """Lunar Points management for staff."""

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot

    xp_group = app_commands.Group(
        name="xp",
        description="Manage a Roblox user's Lunar Points",
        guild_only=True,
    )
    xpd_group = app_commands.Group(
        name="xpd",
        description="Manage a linked Discord member's Lunar Points",
        guild_only=True,
    )

    # =========================================================================
    # Shared Flow
    # =========================================================================

    async def _apply_by_username(
        self,
        interaction: discord.Interaction,
        action: PointsAction,
        username: str,
        amount: int,
        context: Optional[ActionContext] = None,
        reason: Optional[str] = None,
    ) -> None:
        command = f"xp {action.value}"
        if not await require_manager(interaction, config.XP_MANAGER_ROLES, command):
            return

        await safe_defer(interaction)
        try:
            ledger = self.bot.ledger
            ledger.validate_context(context)

            roblox_user = await self.bot.rank_backend.lookup_user(username)
            if roblox_user is None:
                raise NotFound("Roblox user not found.")
            if not await self.bot.rank_backend.is_member_of(roblox_user.id, config.ROBLOX_GROUP_ID):
                raise Ineligible("User is not in the community group.")

            existing = await ledger.get_user(roblox_user.id)
            member = None
            if existing and existing.discord_id and interaction.guild:
                member = interaction.guild.get_member(existing.discord_id)

            result = await ledger.apply_points(
                roblox_user.id, action, amount, context,
                username=roblox_user.name, actor=interaction.user, member=member, reason=reason,
            )
        except Exception as e:
            await send_error(interaction, e, command)
            return

        await safe_send(interaction, format_points_result(result, roblox_user.name, reason), ephemeral=False)

    async def _apply_by_member(
        self,
        interaction: discord.Interaction,
        action: PointsAction,
        member: discord.Member,
        amount: int,
        context: Optional[ActionContext] = None,
        reason: Optional[str] = None,
    ) -> None:
        command = f"xpd {action.value}"
        if not await require_manager(interaction, config.XP_MANAGER_ROLES, command):
            return

        await safe_defer(interaction)
        try:
            ledger = self.bot.ledger
            ledger.validate_context(context)
            user = await ledger.require_linked(member.id)
            result = await ledger.apply_points(
                user.roblox_id, action, amount, context,
                actor=interaction.user, member=member, reason=reason,
            )
        except Exception as e:
            await send_error(interaction, e, command)
            return

        name = result.user.roblox_username or member.display_name
        await safe_send(interaction, format_points_result(result, name, reason), ephemeral=False)

    # =========================================================================
    # /xp
    # =========================================================================

    @xp_group.command(name="add", description="Add Lunar Points and count an expedition")
    @app_commands.describe(
        username="Roblox username",
        amount="Lunar Points amount",
        mountain_name="Mountain climbed",
        difficulty="Expedition difficulty",
    )
    @app_commands.autocomplete(mountain_name=mountain_autocomplete)
    @app_commands.choices(difficulty=DIFFICULTY_CHOICES)
    async def xp_add(
        self,
        interaction: discord.Interaction,
        username: str,
        amount: app_commands.Range[int, 0],
        mountain_name: str,
        difficulty: str,
    ) -> None:
        await self._apply_by_username(
            interaction, PointsAction.ADD, username, amount, ActionContext(mountain_name, difficulty)
        )

    @xp_group.command(name="remove", description="Remove Lunar Points and uncount an expedition")
    @app_commands.describe(
        username="Roblox username",
        amount="Lunar Points amount",
        mountain_name="Mountain climbed",
        difficulty="Expedition difficulty",
    )
    @app_commands.autocomplete(mountain_name=mountain_autocomplete)
    @app_commands.choices(difficulty=DIFFICULTY_CHOICES)
    async def xp_remove(
        self,
        interaction: discord.Interaction,
        username: str,
        amount: app_commands.Range[int, 0],
        mountain_name: str,
        difficulty: str,
    ) -> None:
        await self._apply_by_username(
            interaction, PointsAction.REMOVE, username, amount, ActionContext(mountain_name, difficulty)
        )

    @xp_group.command(name="set", description="Set Lunar Points")
    @app_commands.describe(username="Roblox username", amount="New Lunar Points total")
    async def xp_set(
        self,
        interaction: discord.Interaction,
        username: str,
        amount: app_commands.Range[int, 0],
    ) -> None:
        await self._apply_by_username(interaction, PointsAction.SET, username, amount)

    @xp_group.command(name="bonus", description="Give bonus Lunar Points without counting an expedition")
    @app_commands.describe(username="Roblox username", amount="Bonus amount", reason="Why the bonus was given")
    async def xp_bonus(
        self,
        interaction: discord.Interaction,
        username: str,
        amount: app_commands.Range[int, 0],
        reason: Optional[str] = None,
    ) -> None:
        await self._apply_by_username(interaction, PointsAction.BONUS, username, amount, reason=reason)

    # =========================================================================
    # /xpd
    # =========================================================================

    @xpd_group.command(name="add", description="Add Lunar Points to a linked member and count an expedition")
    @app_commands.describe(
        member="The Discord member to manage",
        amount="Lunar Points amount",
        mountain_name="Mountain climbed",
        difficulty="Expedition difficulty",
    )
    @app_commands.autocomplete(mountain_name=mountain_autocomplete)
    @app_commands.choices(difficulty=DIFFICULTY_CHOICES)
    async def xpd_add(
        self,
        interaction: discord.Interaction,
        member: discord.Member,
        amount: app_commands.Range[int, 0],
        mountain_name: str,
        difficulty: str,
    ) -> None:
        await self._apply_by_member(
            interaction, PointsAction.ADD, member, amount, ActionContext(mountain_name, difficulty)
        )

    @xpd_group.command(name="remove", description="Remove Lunar Points from a linked member")
    @app_commands.describe(
        member="The Discord member to manage",
        amount="Lunar Points amount",
        mountain_name="Mountain climbed",
        difficulty="Expedition difficulty",
    )
    @app_commands.autocomplete(mountain_name=mountain_autocomplete)
    @app_commands.choices(difficulty=DIFFICULTY_CHOICES)
    async def xpd_remove(
        self,
        interaction: discord.Interaction,
        member: discord.Member,
        amount: app_commands.Range[int, 0],
        mountain_name: str,
        difficulty: str,
    ) -> None:
        await self._apply_by_member(
            interaction, PointsAction.REMOVE, member, amount, ActionContext(mountain_name, difficulty)
        )

    @xpd_group.command(name="set", description="Set a linked member's Lunar Points")
    @app_commands.describe(member="The Discord member to manage", amount="New Lunar Points total")
    async def xpd_set(
        self,
        interaction: discord.Interaction,
        member: discord.Member,
        amount: app_commands.Range[int, 0],
    ) -> None:
        await self._apply_by_member(interaction, PointsAction.SET, member, amount)

    @xpd_group.command(name="bonus", description="Give bonus Lunar Points to a linked member")
    @app_commands.describe(member="The Discord member to manage", amount="Bonus amount", reason="Why the bonus was given")
    async def xpd_bonus(
        self,
        interaction: discord.Interaction,
        member: discord.Member,
        amount: app_commands.Range[int, 0],
        reason: Optional[str] = None,
    ) -> None:
        await self._apply_by_member(interaction, PointsAction.BONUS, member, amount, reason=reason)


async def setup(bot: commands.Bot) -> None:
    """Add the cog to the bot."""
    await bot.add_cog(XPCog(bot))
    log.tree("Command Loaded", [
        ("Name", "xp, xpd (add, remove, set, bonus)"),
    ], emoji="✅")
