"""
MooncrestBot - Leaderboard Commands
===================================

/weekly and /monthly show the top climbers, hosts and explorers of the
current period.
"""

import asyncio
from typing import Any, Dict, List

import discord
from discord import app_commands
from discord.ext import commands

from src.core.colors import COLOR_MOONCREST
from src.core.constants import LEADERBOARD_SIZE
from src.core.logger import log
from src.services.database import db
from src.services.periods import MONTHLY, PERIOD_METRICS, WEEKLY
from src.utils.footer import set_footer
from src.utils.responses import safe_defer, safe_send, send_error


EMPTY_TEXT = {
    "weekly_xp": "No one has gained Lunar Points this week yet.",
    "weekly_guide_points": "No active guides this week yet.",
    "weekly_expeditions": "No expeditions this week yet.",
    "monthly_xp": "No one has gained Lunar Points this month yet.",
    "monthly_guide_points": "No active guides this month yet.",
    "monthly_expeditions": "No expeditions this month yet.",
}


def format_ranking(rows: List[Dict[str, Any]], field: str, unit: str) -> str:
    """Numbered lines for rows with a positive value."""
    lines = [
        f"**{i}.** {row['roblox_username'] or row['roblox_id']} - **{row[field]}** {unit}"
        for i, row in enumerate((r for r in rows if r[field] > 0), start=1)
    ]
    return "\n".join(lines) if lines else EMPTY_TEXT.get(field, "No data yet.")


def build_leaderboard_embed(period: str, rankings: Dict[str, List[Dict[str, Any]]]) -> discord.Embed:
    weekly = period == WEEKLY
    embed = discord.Embed(
        title="📅 Weekly Leaderboard" if weekly else "🗓️ Monthly Leaderboard",
        description=(
            "These statistics reset automatically every Monday at 05:00 WIB."
            if weekly else
            "These statistics reset automatically on the 1st of every month at 05:00 WIB."
        ),
        color=COLOR_MOONCREST,
    )
    for metric in PERIOD_METRICS[period]:
        embed.add_field(
            name=f"{metric.emoji} {metric.title.split(' of ')[0]}s ({metric.unit})",
            value=format_ranking(rankings.get(metric.field, []), metric.field, metric.unit),
            inline=True,
        )
    set_footer(embed, f"Mooncrest Expedition • {'Weekly' if weekly else 'Monthly'} Stats")
    return embed


class LeaderboardCog(commands.Cog):
    """Period leaderboards."""

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot

    async def _show(self, interaction: discord.Interaction, period: str) -> None:
        await safe_defer(interaction)
        try:
            rankings = {}
            for metric in PERIOD_METRICS[period]:
                rankings[metric.field] = await asyncio.to_thread(
                    db.get_top_users, metric.field, LEADERBOARD_SIZE, 0
                )
        except Exception as e:
            await send_error(interaction, e, period)
            return

        log.tree("Leaderboard Viewed", [
            ("User", f"{interaction.user.name} ({interaction.user.id})"),
            ("Period", period),
        ], emoji="📊")
        await safe_send(interaction, embed=build_leaderboard_embed(period, rankings), ephemeral=False)

    @app_commands.command(name="weekly", description="Show the current weekly leaderboard")
    async def weekly(self, interaction: discord.Interaction) -> None:
        await self._show(interaction, WEEKLY)

    @app_commands.command(name="monthly", description="Show the current monthly leaderboard")
    async def monthly(self, interaction: discord.Interaction) -> None:
        await self._show(interaction, MONTHLY)


async def setup(bot: commands.Bot) -> None:
    """Add the cog to the bot."""
    await bot.add_cog(LeaderboardCog(bot))
    log.tree("Command Loaded", [
        ("Name", "weekly, monthly"),
    ], emoji="✅")
