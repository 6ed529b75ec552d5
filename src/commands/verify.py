"""
MooncrestBot - Verification Commands
====================================

/verify links a Discord account to a Roblox account in the community group.
/update refreshes the stored username and nickname.
/updateprofile (staff) does the same for another member.
/listverify (staff) lists every verified member.
/unlink (staff) deletes a member's record.
"""

import asyncio
from typing import List, Optional

import discord
from discord import app_commands
from discord.ext import commands

from src.core.colors import COLOR_MOONCREST, COLOR_SUCCESS
from src.core.config import config
from src.core.constants import EMBED_DESCRIPTION_LIMIT
from src.core.errors import Ineligible, NotFound
from src.core.logger import log
from src.services.database import db
from src.services.ledger import UserRecord
from src.services.levels import get_level_config, tier_progress
from src.services.roblox import RobloxUser
from src.utils.footer import set_footer
from src.utils.nickname import apply_nickname, build_nickname
from src.utils.permissions import require_manager
from src.utils.responses import safe_defer, safe_send, send_error
from src.utils.targets import find_target_user


def format_verified_list(users: List[UserRecord], limit: int = EMBED_DESCRIPTION_LIMIT) -> str:
    """One line per verified member, cut to fit an embed description."""
    if not users:
        return "No verified members yet."

    lines = [f"<@{u.discord_id}> · **{u.roblox_username}** (`{u.roblox_id}`)" for u in users]
    text = "\n".join(lines)
    if len(text) <= limit:
        return text

    # Leave room for the overflow line
    budget = limit - len(f"\n... and {len(lines)} more")
    shown, used = 0, 0
    for line in lines:
        if used + len(line) + 1 > budget:
            break
        used += len(line) + 1
        shown += 1
    return "\n".join(lines[:shown]) + f"\n... and {len(lines) - shown} more"


class VerifyCog(commands.Cog):
    """Roblox account linking."""

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot

    async def _refresh_profile(self, user: UserRecord) -> RobloxUser:
        """Fetch the current Roblox profile and store its username."""
        roblox_user = await self.bot.rank_backend.get_user(user.roblox_id)
        if roblox_user is None:
            raise NotFound(f"Could not fetch the latest data for Roblox ID **{user.roblox_id}**.")
        await self.bot.ledger.refresh_username(user, roblox_user.name)
        return roblox_user

    @app_commands.command(name="verify", description="Link your Roblox account")
    @app_commands.describe(username="Your Roblox username")
    @app_commands.guild_only()
    async def verify(self, interaction: discord.Interaction, username: str) -> None:
        await safe_defer(interaction, ephemeral=True)
        member = interaction.user
        try:
            backend = self.bot.rank_backend
            roblox_user = await backend.lookup_user(username.strip())
            if roblox_user is None:
                raise NotFound(f"Roblox user **{username}** not found.")
            if not await backend.is_member_of(roblox_user.id, config.ROBLOX_GROUP_ID):
                raise Ineligible("Join the community group on Roblox first, then verify again.")

            user = await self.bot.ledger.link_account(member.id, roblox_user.id, roblox_user.name)
        except Exception as e:
            await send_error(interaction, e, "verify")
            return

        nickname_status = await apply_nickname(member, build_nickname(roblox_user))

        # Returning members get their tier roles back
        try:
            await self.bot.ledger.restore_member(member, user)
        except discord.HTTPException as e:
            log.error_tree("Verify Role Sync Failed", e, [
                ("Member", f"{member.name} ({member.id})"),
            ])

        embed = discord.Embed(
            title="✅ Verified",
            description=f"Your Discord account is now linked to **{roblox_user.name}**.",
            color=COLOR_SUCCESS,
        )
        embed.add_field(name="Lunar Points", value=str(user.xp), inline=True)
        current, upcoming = tier_progress(get_level_config().climbing, user.xp)
        tier_text = current.name if current else "None"
        if upcoming:
            tier_text += f"\nNext: {upcoming.name} at {upcoming.threshold}"
        embed.add_field(name="Tier", value=tier_text, inline=True)
        embed.add_field(name="Nickname", value=nickname_status, inline=True)
        set_footer(embed)
        await safe_send(interaction, embed=embed)

    @app_commands.command(name="update", description="Refresh your Roblox profile data and nickname")
    @app_commands.guild_only()
    async def update(self, interaction: discord.Interaction) -> None:
        await safe_defer(interaction, ephemeral=True)
        member = interaction.user
        try:
            user = await self.bot.ledger.get_user_by_discord(member.id)
            if user is None or not user.is_verified:
                raise NotFound("You are not verified! Use `/verify` first.")
            roblox_user = await self._refresh_profile(user)
        except Exception as e:
            await send_error(interaction, e, "update")
            return

        nickname_status = await apply_nickname(member, build_nickname(roblox_user))

        embed = discord.Embed(
            title="✅ Profile Updated",
            description=f"Successfully updated your profile data linked to **{roblox_user.name}**.",
            color=COLOR_MOONCREST,
        )
        embed.add_field(name="Nickname Status", value=nickname_status, inline=True)
        set_footer(embed)
        await safe_send(interaction, embed=embed)

    @app_commands.command(name="updateprofile", description="Refresh a member's Roblox profile data and nickname (staff)")
    @app_commands.describe(target="Discord user, Discord ID or Roblox username")
    @app_commands.guild_only()
    async def updateprofile(self, interaction: discord.Interaction, target: str) -> None:
        if not await require_manager(interaction, config.XP_MANAGER_ROLES, "updateprofile"):
            return

        await safe_defer(interaction, ephemeral=True)
        try:
            user = await find_target_user(self.bot, target)
            if not user.is_verified or not user.discord_id:
                raise NotFound(f"**{user.roblox_username}** is not verified.")
            old_username = user.roblox_username
            roblox_user = await self._refresh_profile(user)
        except Exception as e:
            await send_error(interaction, e, "updateprofile")
            return

        member: Optional[discord.Member] = interaction.guild.get_member(user.discord_id)
        if member is None:
            try:
                member = await interaction.guild.fetch_member(user.discord_id)
            except discord.HTTPException:
                member = None

        if member is not None:
            nickname_status = await apply_nickname(member, build_nickname(roblox_user))
        else:
            nickname_status = "Member not in server"

        log.tree("Profile Updated", [
            ("By", f"{interaction.user.name} ({interaction.user.id})"),
            ("Roblox", f"{roblox_user.name} ({roblox_user.id})"),
            ("Old Username", old_username),
            ("Nickname", nickname_status),
        ], emoji="🔄")

        embed = discord.Embed(
            title="✅ Profile Updated",
            description=f"Updated <@{user.discord_id}>'s profile data.",
            color=COLOR_MOONCREST,
        )
        embed.add_field(name="Roblox Account", value=f"{roblox_user.name} (`{roblox_user.id}`)", inline=True)
        embed.add_field(name="Old Username", value=old_username or "Unknown", inline=True)
        embed.add_field(name="Nickname Status", value=nickname_status, inline=True)
        set_footer(embed)
        await safe_send(interaction, embed=embed)

    @app_commands.command(name="listverify", description="List every verified member (staff)")
    @app_commands.guild_only()
    async def listverify(self, interaction: discord.Interaction) -> None:
        if not await require_manager(interaction, config.XP_MANAGER_ROLES, "listverify"):
            return

        await safe_defer(interaction, ephemeral=True)
        try:
            rows = await asyncio.to_thread(db.get_verified_users)
        except Exception as e:
            await send_error(interaction, e, "listverify")
            return

        users = [UserRecord.from_row(r) for r in rows]
        embed = discord.Embed(
            title=f"📋 Verified Members ({len(users)})",
            description=format_verified_list(users),
            color=COLOR_MOONCREST,
        )
        set_footer(embed)
        await safe_send(interaction, embed=embed)

    @app_commands.command(name="unlink", description="Remove a member's linked record (staff)")
    @app_commands.describe(member="Member to unlink")
    @app_commands.guild_only()
    async def unlink(self, interaction: discord.Interaction, member: discord.Member) -> None:
        if not await require_manager(interaction, config.XP_MANAGER_ROLES, "unlink"):
            return

        await safe_defer(interaction, ephemeral=True)
        try:
            user = await self.bot.ledger.get_user_by_discord(member.id)
            if user is None:
                raise NotFound(f"{member.mention} is not linked.")
            await self.bot.ledger.unlink(user.roblox_id)
        except Exception as e:
            await send_error(interaction, e, "unlink")
            return

        log.tree("Account Unlinked", [
            ("By", f"{interaction.user.name} ({interaction.user.id})"),
            ("Member", f"{member.name} ({member.id})"),
            ("Roblox", f"{user.roblox_username} ({user.roblox_id})"),
        ], emoji="🔓")
        await safe_send(interaction, f"✅ Unlinked {member.mention} from **{user.roblox_username}**.")


async def setup(bot: commands.Bot) -> None:
    """Add the cog to the bot."""
    await bot.add_cog(VerifyCog(bot))
    log.tree("Command Loaded", [
        ("Name", "verify, update, updateprofile, listverify, unlink"),
    ], emoji="✅")
