"""
MooncrestBot - Hall of Fame Commands
====================================

Reward managers record the Host and Climber of each week or month;
anyone can browse a year's records.
"""

import asyncio
import calendar
import re
from datetime import date
from typing import Any, Dict, List, Optional

import discord
from discord import app_commands
from discord.ext import commands

from src.core.colors import COLOR_GOLD, EMOJI_CLIMBER, EMOJI_HOST
from src.core.config import config
from src.core.errors import InvalidArgument
from src.core.logger import log
from src.services.database import db
from src.services.periods import MONTHLY, WEEKLY
from src.utils.footer import set_footer
from src.utils.permissions import require_manager
from src.utils.responses import safe_defer, safe_send, send_error


DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
DESCRIPTION_LIMIT = 3900

CATEGORY_CHOICES = {
    WEEKLY: [
        app_commands.Choice(name="🧭 Host of the Week", value="host"),
        app_commands.Choice(name="🧗 Climber of the Week", value="climber"),
    ],
    MONTHLY: [
        app_commands.Choice(name="🧭 Host of the Month", value="host"),
        app_commands.Choice(name="🧗 Climber of the Month", value="climber"),
    ],
}

MONTH_CHOICES = [
    app_commands.Choice(name=calendar.month_name[m], value=m) for m in range(1, 13)
]


def parse_week_start(text: str) -> date:
    """
    Parse a YYYY-MM-DD week start.

    Raises:
        InvalidArgument: Wrong format or not a real date.
    """
    text = text.strip()
    if not DATE_PATTERN.match(text):
        raise InvalidArgument("Invalid date format. Please use YYYY-MM-DD (e.g. 2025-12-01)")
    try:
        return date.fromisoformat(text)
    except ValueError:
        raise InvalidArgument("Invalid date. Please provide a valid date in YYYY-MM-DD format.") from None


def weekly_key(week_start: date) -> str:
    return f"weekly:{week_start.isoformat()}"


def monthly_key(year: int, month: int) -> str:
    if not 1 <= month <= 12:
        raise InvalidArgument("Month must be between 1 and 12")
    return f"monthly:{year:04d}-{month:02d}"


def _period_label(record: Dict[str, Any]) -> str:
    _, _, stamp = record["period_key"].partition(":")
    if record["period_type"] == MONTHLY:
        year, month = stamp.split("-")
        return f"**{calendar.month_name[int(month)]} {year}**"
    return f"**Week of {stamp}**"


def format_hall_records(records: List[Dict[str, Any]], usernames: Dict[int, str]) -> str:
    """One block per period with its host and climber lines."""
    lines: List[str] = []
    current: Optional[str] = None
    for record in records:
        if record["period_key"] != current:
            current = record["period_key"]
            lines.append(f"\n{_period_label(record)}")

        name = usernames.get(record["user_id"]) or str(record["user_id"])
        if record["category"] == "host":
            line = f"{EMOJI_HOST} **Host:** {name} - {record['value']} Points"
        else:
            line = f"{EMOJI_CLIMBER} **Climber:** {name} - {record['value']} LP"
        if record["reason"]:
            line += f" _({record['reason']})_"
        lines.append(line)
    return "\n".join(lines).strip()


def split_description(text: str, limit: int = DESCRIPTION_LIMIT) -> List[str]:
    """Split on line boundaries so each chunk fits an embed description."""
    chunks: List[str] = []
    current = ""
    for line in text.split("\n"):
        if current and len(current) + len(line) + 1 > limit:
            chunks.append(current)
            current = line
        else:
            current = f"{current}\n{line}" if current else line
    if current:
        chunks.append(current)
    return chunks


class HallOfFameCog(commands.Cog):
    """Weekly and monthly winner records."""

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot

    async def _record(
        self,
        interaction: discord.Interaction,
        period_type: str,
        key: str,
        year: int,
        category: str,
        user: discord.Member,
        value: int,
        reason: Optional[str],
        label: str,
    ) -> None:
        linked = await self.bot.ledger.get_user_by_discord(user.id)
        if linked is None:
            raise InvalidArgument(
                f"{user.mention} has not linked their Roblox account yet. They must use `/verify` first."
            )

        await asyncio.to_thread(
            db.record_hall_of_fame, key, period_type, year, category,
            linked.roblox_id, value, reason or "", interaction.user.id,
        )

        is_host = category == "host"
        suffix = "Week" if period_type == WEEKLY else "Month"
        embed = discord.Embed(
            title=f"🏆 {suffix}ly Winner Recorded!",
            description=(
                f"Successfully recorded **{'Host' if is_host else 'Climber'} of the {suffix}** for **{label}**"
            ),
            color=COLOR_GOLD,
        )
        embed.add_field(name="👤 Winner", value=f"{linked.roblox_username} ({user.mention})", inline=True)
        embed.add_field(name="Guide Points" if is_host else "Lunar Points", value=f"**{value}**", inline=True)
        embed.add_field(name="📅 Period", value=label, inline=True)
        if reason:
            embed.add_field(name="📝 Reason", value=reason, inline=False)
        set_footer(embed)

        log.tree("Hall of Fame Recorded", [
            ("By", f"{interaction.user.name} ({interaction.user.id})"),
            ("Period", key),
            ("Category", category),
            ("Winner", f"{linked.roblox_username} ({linked.roblox_id})"),
            ("Value", str(value)),
        ], emoji="🏆")
        await safe_send(interaction, embed=embed)

    @app_commands.command(name="weekly-winner", description="Record the Host or Climber of the Week")
    @app_commands.describe(
        category="Category of the winner",
        user="Discord member to award",
        value="Points (for Host) or Lunar Points (for Climber)",
        week_start="Week start date (YYYY-MM-DD, e.g. 2025-12-01)",
        reason="Reason for the award",
    )
    @app_commands.choices(category=CATEGORY_CHOICES[WEEKLY])
    @app_commands.guild_only()
    async def weekly_winner(
        self,
        interaction: discord.Interaction,
        category: str,
        user: discord.Member,
        value: app_commands.Range[int, 1],
        week_start: str,
        reason: Optional[str] = None,
    ) -> None:
        if not await require_manager(interaction, config.REWARD_MANAGER_ROLES, "weekly-winner"):
            return

        await safe_defer(interaction, ephemeral=True)
        try:
            start = parse_week_start(week_start)
            await self._record(
                interaction, WEEKLY, weekly_key(start), start.year,
                category, user, value, reason, start.isoformat(),
            )
        except Exception as e:
            await send_error(interaction, e, "weekly-winner")

    @app_commands.command(name="monthly-winner", description="Record the Host or Climber of the Month")
    @app_commands.describe(
        category="Category of the winner",
        user="Discord member to award",
        value="Points (for Host) or Lunar Points (for Climber)",
        month="Month of the award",
        year="Year of the award",
        reason="Reason for the award",
    )
    @app_commands.choices(category=CATEGORY_CHOICES[MONTHLY], month=MONTH_CHOICES)
    @app_commands.guild_only()
    async def monthly_winner(
        self,
        interaction: discord.Interaction,
        category: str,
        user: discord.Member,
        value: app_commands.Range[int, 1],
        month: int,
        year: app_commands.Range[int, 2024, 2100],
        reason: Optional[str] = None,
    ) -> None:
        if not await require_manager(interaction, config.REWARD_MANAGER_ROLES, "monthly-winner"):
            return

        await safe_defer(interaction, ephemeral=True)
        try:
            await self._record(
                interaction, MONTHLY, monthly_key(year, month), year,
                category, user, value, reason, f"{calendar.month_name[month]} {year}",
            )
        except Exception as e:
            await send_error(interaction, e, "monthly-winner")

    @app_commands.command(name="hall-records", description="View Hall of Fame records for a year")
    @app_commands.describe(period="Period type", year="Year to view (e.g. 2025)")
    @app_commands.choices(period=[
        app_commands.Choice(name="📅 Monthly", value=MONTHLY),
        app_commands.Choice(name="🗓️ Weekly", value=WEEKLY),
    ])
    async def hall_records(
        self,
        interaction: discord.Interaction,
        period: str,
        year: app_commands.Range[int, 2024, 2100],
    ) -> None:
        await safe_defer(interaction)
        try:
            records = [
                r for r in await asyncio.to_thread(db.get_hall_of_fame_year, year)
                if r["period_type"] == period
            ]
            usernames: Dict[int, str] = {}
            for user_id in {r["user_id"] for r in records}:
                row = await asyncio.to_thread(db.get_user, user_id)
                if row:
                    usernames[user_id] = row["roblox_username"]
        except Exception as e:
            await send_error(interaction, e, "hall-records")
            return

        if not records:
            await safe_send(interaction, f"📭 No {period} records found for year {year}.", ephemeral=False)
            return

        label = "Monthly" if period == MONTHLY else "Weekly"
        chunks = split_description(format_hall_records(records, usernames))
        for index, chunk in enumerate(chunks):
            embed = discord.Embed(
                title=f"🏆 Hall of Fame - {label} Records {year}" if index == 0 else "🏆 Continued...",
                description=chunk,
                color=COLOR_GOLD,
            )
            set_footer(embed)
            await safe_send(interaction, embed=embed, ephemeral=False)


async def setup(bot: commands.Bot) -> None:
    """Add the cog to the bot."""
    await bot.add_cog(HallOfFameCog(bot))
    log.tree("Command Loaded", [
        ("Name", "weekly-winner, monthly-winner, hall-records"),
    ], emoji="✅")
