"""
MooncrestBot - Period Reset Command
===================================

/period-reset runs the weekly or monthly reset on demand: after the bot
was offline at 05:00 WIB, or after a run that did not finish.
"""

import discord
from discord import app_commands
from discord.ext import commands

from src.core.colors import COLOR_SUCCESS, COLOR_WARNING
from src.core.config import config
from src.core.logger import log
from src.services.periods import MONTHLY, WEEKLY, PeriodSnapshot
from src.utils.footer import set_footer
from src.utils.permissions import require_manager
from src.utils.responses import safe_defer, safe_send, send_error


def build_reset_embed(snapshot: PeriodSnapshot) -> discord.Embed:
    embed = discord.Embed(
        title=f"{'✅' if snapshot.complete else '⚠️'} {snapshot.period.title()} Reset",
        description=f"Period `{snapshot.period_key}`",
        color=COLOR_SUCCESS if snapshot.complete else COLOR_WARNING,
    )
    for name, count in snapshot.reset_counts.items():
        embed.add_field(name=name, value=f"{count} reset", inline=True)
    if snapshot.already_reset:
        embed.add_field(name="Already Reset", value=", ".join(snapshot.already_reset), inline=False)
    if snapshot.failed:
        embed.add_field(
            name="Failed",
            value=f"{', '.join(snapshot.failed)}\nRun the command again to retry.",
            inline=False,
        )
    set_footer(embed)
    return embed


class PeriodResetCog(commands.Cog):
    """Manual trigger for the scheduled period resets."""

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot

    @app_commands.command(name="period-reset", description="Run this week's or month's reset if it has not run yet")
    @app_commands.describe(period="Which rolling statistics to reset")
    @app_commands.choices(period=[
        app_commands.Choice(name="Weekly", value=WEEKLY),
        app_commands.Choice(name="Monthly", value=MONTHLY),
    ])
    @app_commands.guild_only()
    async def period_reset(self, interaction: discord.Interaction, period: app_commands.Choice[str]) -> None:
        if not await require_manager(interaction, config.XP_MANAGER_ROLES, "period-reset"):
            return

        service = getattr(self.bot, "period_service", None)
        if service is None:
            await safe_send(interaction, "❌ The period reset service is not running yet.")
            return

        await safe_defer(interaction)
        log.tree("Period Reset Requested", [
            ("By", f"{interaction.user.name} ({interaction.user.id})"),
            ("Period", period.value),
        ], emoji="🔄")

        try:
            snapshot = await service.run_reset(period.value)
        except Exception as e:
            await send_error(interaction, e, "period-reset")
            return

        if snapshot is None:
            await safe_send(interaction, f"ℹ️ The {period.value} reset for this period has already run.")
            return
        await safe_send(interaction, embed=build_reset_embed(snapshot))


async def setup(bot: commands.Bot) -> None:
    """Add the cog to the bot."""
    await bot.add_cog(PeriodResetCog(bot))
    log.tree("Command Loaded", [
        ("Name", "period-reset"),
    ], emoji="✅")
