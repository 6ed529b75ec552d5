"""
MooncrestBot - Giveaway Command
===============================

Staff commands to start, end and reroll giveaways.
"""

from typing import Optional

import discord
from discord import app_commands
from discord.ext import commands

from src.core.config import config
from src.core.errors import InvalidArgument
from src.core.logger import log
from src.utils.permissions import require_manager
from src.utils.responses import safe_defer, safe_send, send_error


def parse_message_id(value: str) -> int:
    """Message IDs arrive as text since they overflow Discord's integer option."""
    try:
        message_id = int(value.strip())
    except ValueError:
        raise InvalidArgument("Please provide a valid message ID") from None
    if message_id <= 0:
        raise InvalidArgument("Please provide a valid message ID")
    return message_id


class GiveawayCog(commands.Cog):
    """Giveaway management commands."""

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot

    giveaway_group = app_commands.Group(
        name="giveaway",
        description="Manage giveaways",
        guild_only=True,
    )

    @giveaway_group.command(name="start", description="Start a new giveaway")
    @app_commands.describe(
        prize="What is being given away",
        winners="Number of winners",
        duration="How long it runs (e.g. 30m, 1h, 2d, 1w)",
        channel="Channel to post in (defaults to this one)",
        sponsor="Who is sponsoring the prize",
        required_role="Role entrants must have",
    )
    async def start(
        self,
        interaction: discord.Interaction,
        prize: str,
        winners: app_commands.Range[int, 1, 50],
        duration: str,
        channel: Optional[discord.TextChannel] = None,
        sponsor: Optional[discord.Member] = None,
        required_role: Optional[discord.Role] = None,
    ) -> None:
        if not await require_manager(interaction, config.GIVEAWAY_MANAGER_ROLES, "giveaway start"):
            return

        await safe_defer(interaction, ephemeral=True)
        target = channel or interaction.channel
        try:
            giveaway = await self.bot.giveaway_service.start(
                target, interaction.user, prize, winners, duration,
                sponsor=sponsor, required_role=required_role,
            )
        except Exception as e:
            await send_error(interaction, e, "giveaway start")
            return

        await safe_send(
            interaction,
            f"🎉 Giveaway for **{giveaway['prize']}** started in <#{giveaway['channel_id']}>. "
            f"Message ID: `{giveaway['message_id']}`",
        )

    @giveaway_group.command(name="end", description="End a giveaway now and draw winners")
    @app_commands.describe(message_id="Message ID of the giveaway announcement")
    async def end(self, interaction: discord.Interaction, message_id: str) -> None:
        if not await require_manager(interaction, config.GIVEAWAY_MANAGER_ROLES, "giveaway end"):
            return

        await safe_defer(interaction, ephemeral=True)
        try:
            winners = await self.bot.giveaway_service.end(parse_message_id(message_id))
        except Exception as e:
            await send_error(interaction, e, "giveaway end")
            return

        log.tree("Giveaway End (Manual)", [
            ("Admin", f"{interaction.user.name} ({interaction.user.id})"),
            ("Message ID", message_id),
            ("Winners", str(len(winners))),
        ], emoji="🏁")

        if winners:
            await safe_send(interaction, f"✅ Giveaway ended! {len(winners)} winner(s) selected.")
        else:
            await safe_send(interaction, "✅ Giveaway ended with no eligible winners.")

    @giveaway_group.command(name="reroll", description="Draw new winners from the remaining entrants")
    @app_commands.describe(
        message_id="Message ID of the giveaway announcement",
        count="How many new winners to draw",
    )
    async def reroll(
        self,
        interaction: discord.Interaction,
        message_id: str,
        count: app_commands.Range[int, 1, 50] = 1,
    ) -> None:
        if not await require_manager(interaction, config.GIVEAWAY_MANAGER_ROLES, "giveaway reroll"):
            return

        await safe_defer(interaction, ephemeral=True)
        try:
            winners = await self.bot.giveaway_service.reroll(parse_message_id(message_id), count)
        except Exception as e:
            await send_error(interaction, e, "giveaway reroll")
            return

        log.tree("Giveaway Reroll", [
            ("Admin", f"{interaction.user.name} ({interaction.user.id})"),
            ("Message ID", message_id),
            ("New Winners", ", ".join(str(w) for w in winners)),
        ], emoji="🎲")
        await safe_send(interaction, f"🎲 Rerolled! New winner(s): {', '.join(f'<@{w}>' for w in winners)}")


async def setup(bot: commands.Bot) -> None:
    """Add the cog to the bot."""
    await bot.add_cog(GiveawayCog(bot))
    log.tree("Command Loaded", [
        ("Name", "giveaway (start, end, reroll)"),
    ], emoji="✅")
