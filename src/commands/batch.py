"""
MooncrestBot - Batch Points Command
===================================

Apply one Lunar Points action to many verified members at once.

Targets are user and role mentions in a single text option. Members who
left or are not verified are skipped with a reason; one member failing
does not stop the rest.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional, Set, Tuple

import discord
from discord import app_commands
from discord.ext import commands

from src.core.colors import COLOR_MOONCREST
from src.core.config import config
from src.core.constants import EMBED_FIELD_LIMIT
from src.core.errors import MooncrestError, NotFound
from src.core.logger import log
from src.services.ledger import ActionContext, PointsAction
from src.utils.choices import DIFFICULTY_CHOICES, mountain_autocomplete
from src.utils.footer import set_footer
from src.utils.permissions import require_manager
from src.utils.responses import safe_defer, safe_send, send_error


USER_MENTION = re.compile(r"<@!?(\d+)>")
ROLE_MENTION = re.compile(r"<@&(\d+)>")


def parse_targets(text: str) -> Tuple[List[int], List[int]]:
    """User IDs and role IDs mentioned in `text`, in order, without repeats."""
    users = list(dict.fromkeys(int(m) for m in USER_MENTION.findall(text)))
    roles = list(dict.fromkeys(int(m) for m in ROLE_MENTION.findall(text)))
    return users, roles


def _clip(items: List[str], sep: str) -> str:
    text = sep.join(items)
    if len(text) <= EMBED_FIELD_LIMIT:
        return text
    return text[:EMBED_FIELD_LIMIT - 3] + "..."


@dataclass
class BatchReport:
    processed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    level_ups: List[str] = field(default_factory=list)

    def to_embed(self, action: PointsAction, amount: int) -> discord.Embed:
        embed = discord.Embed(
            title=f"📦 Batch {action.value.title()} Complete",
            color=COLOR_MOONCREST,
        )
        embed.add_field(name="Success", value=str(len(self.processed)), inline=True)
        embed.add_field(name="Skipped", value=str(len(self.skipped)), inline=True)
        embed.add_field(name="Amount", value=str(amount), inline=True)
        if self.processed:
            embed.add_field(name="Processed Users", value=_clip(self.processed, ", "), inline=False)
        if self.level_ups:
            embed.add_field(name="🎉 Level Ups", value=_clip(self.level_ups, "\n"), inline=False)
        if self.skipped:
            embed.add_field(name="⚠️ Skipped Users", value=_clip(self.skipped, ", "), inline=False)
        set_footer(embed)
        return embed


class BatchCog(commands.Cog):
    """Batch Lunar Points commands."""

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot

    batch_group = app_commands.Group(
        name="batch",
        description="Apply Lunar Points to many members",
        guild_only=True,
    )

    async def _resolve_targets(self, guild: discord.Guild, text: str) -> Set[int]:
        user_ids, role_ids = parse_targets(text)
        targets: Set[int] = set(user_ids)
        for role_id in role_ids:
            role = guild.get_role(role_id)
            if role is None:
                log.tree("Batch Role Not Found", [
                    ("Role ID", str(role_id)),
                ], emoji="⚠️")
                continue
            targets.update(m.id for m in role.members if not m.bot)
        return targets

    async def _get_member(self, guild: discord.Guild, user_id: int) -> Optional[discord.Member]:
        member = guild.get_member(user_id)
        if member is not None:
            return member
        try:
            return await guild.fetch_member(user_id)
        except discord.NotFound:
            return None

    async def _run(
        self,
        interaction: discord.Interaction,
        action: PointsAction,
        targets: str,
        amount: int,
        context: Optional[ActionContext] = None,
        reason: Optional[str] = None,
    ) -> None:
        command = f"batch {action.value}"
        if not await require_manager(interaction, config.XP_MANAGER_ROLES, command):
            return

        await safe_defer(interaction)
        try:
            ledger = self.bot.ledger
            context = ledger.validate_context(context)
            target_ids = await self._resolve_targets(interaction.guild, targets)
            if not target_ids:
                raise NotFound("No valid users or roles found.")
        except Exception as e:
            await send_error(interaction, e, command)
            return

        reason = reason or f"Batch {action.value}"
        report = BatchReport()

        for user_id in target_ids:
            try:
                member = await self._get_member(interaction.guild, user_id)
                if member is None:
                    report.skipped.append(f"<@{user_id}> (Left)")
                    continue

                user = await ledger.get_user_by_discord(user_id)
                if user is None or not user.is_verified:
                    report.skipped.append(f"<@{user_id}> (Unverified)")
                    continue

                result = await ledger.apply_points(
                    user.roblox_id, action, amount, context,
                    actor=interaction.user, member=member, reason=reason,
                )
                report.processed.append(f"<@{user_id}>")
                if result.tier_changed and result.new_tier:
                    report.level_ups.append(f"🎉 <@{user_id}> → **{result.new_tier.name}**")
            except MooncrestError as e:
                report.skipped.append(f"<@{user_id}> ({e})")
            except Exception as e:
                log.error_tree("Batch Entry Failed", e, [
                    ("User ID", str(user_id)),
                    ("Action", action.value),
                ])
                report.skipped.append(f"<@{user_id}> (Error)")

        log.tree("Batch Complete", [
            ("Admin", f"{interaction.user.name} ({interaction.user.id})"),
            ("Action", action.value),
            ("Amount", str(amount)),
            ("Processed", str(len(report.processed))),
            ("Skipped", str(len(report.skipped))),
        ], emoji="📦")
        await safe_send(interaction, embed=report.to_embed(action, amount), ephemeral=False)

    @batch_group.command(name="add", description="Add Lunar Points and an expedition to each target")
    @app_commands.describe(
        targets="Users or roles to target (e.g. @user1 @Role)",
        amount="Lunar Points per member",
        mountain_name="Mountain climbed",
        difficulty="Expedition difficulty",
        reason="Optional reason for this batch",
    )
    @app_commands.autocomplete(mountain_name=mountain_autocomplete)
    @app_commands.choices(difficulty=DIFFICULTY_CHOICES)
    async def add_points(
        self,
        interaction: discord.Interaction,
        targets: str,
        amount: app_commands.Range[int, 0],
        mountain_name: str,
        difficulty: str,
        reason: Optional[str] = None,
    ) -> None:
        await self._run(
            interaction, PointsAction.ADD, targets, amount, ActionContext(mountain_name, difficulty), reason
        )

    @batch_group.command(name="remove", description="Remove Lunar Points and an expedition from each target")
    @app_commands.describe(
        targets="Users or roles to target (e.g. @user1 @Role)",
        amount="Lunar Points per member",
        mountain_name="Mountain climbed",
        difficulty="Expedition difficulty",
    )
    @app_commands.autocomplete(mountain_name=mountain_autocomplete)
    @app_commands.choices(difficulty=DIFFICULTY_CHOICES)
    async def remove_points(
        self,
        interaction: discord.Interaction,
        targets: str,
        amount: app_commands.Range[int, 0],
        mountain_name: str,
        difficulty: str,
    ) -> None:
        await self._run(
            interaction, PointsAction.REMOVE, targets, amount, ActionContext(mountain_name, difficulty)
        )

    @batch_group.command(name="set", description="Set each target's Lunar Points")
    @app_commands.describe(targets="Users or roles to target (e.g. @user1 @Role)", amount="New total")
    async def set_points(
        self,
        interaction: discord.Interaction,
        targets: str,
        amount: app_commands.Range[int, 0],
    ) -> None:
        await self._run(interaction, PointsAction.SET, targets, amount)

    @batch_group.command(name="bonus", description="Give bonus Lunar Points to each target")
    @app_commands.describe(
        targets="Users or roles to target (e.g. @user1 @Role)",
        amount="Bonus per member",
        reason="Optional reason for this batch bonus",
    )
    async def bonus_points(
        self,
        interaction: discord.Interaction,
        targets: str,
        amount: app_commands.Range[int, 0],
        reason: Optional[str] = None,
    ) -> None:
        await self._run(interaction, PointsAction.BONUS, targets, amount, reason=reason)


async def setup(bot: commands.Bot) -> None:
    """Add the cog to the bot."""
    await bot.add_cog(BatchCog(bot))
    log.tree("Command Loaded", [
        ("Name", "batch (add, remove, set, bonus)"),
    ], emoji="✅")
