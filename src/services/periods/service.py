"""
MooncrestBot - Period Reset Service
===================================

Weekly and monthly champions plus rolling-window resets.

Runs daily at 05:00 WIB; Mondays trigger the weekly run, the 1st of the
month the monthly run. Each run:
    1. Claims a period marker (a second claim for the same period skips)
    2. Finds the top record per metric (0 means no leader)
    3. Posts one announcement
    4. Zeroes each rolling field only where it is > 0

Metrics are reset one batch at a time. A run that fails before every
metric is reset marks its period failed; the next claim (the scheduler
or /period-reset) resets only the remaining metrics without announcing
again.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Dict, List, Optional

import discord
from discord.ext import tasks

from src.core.colors import COLOR_GOLD, EMOJI_CLIMBER, EMOJI_EXPLORER, EMOJI_HOST
from src.core.config import config
from src.core.constants import MONTHLY_RESET_DAY, PERIOD_RESET_TIME, TIMEZONE_WIB, WEEKLY_RESET_WEEKDAY
from src.core.logger import log
from src.services.database import Database, db
from src.services.database.periods import RUN_DONE, RUN_FAILED
from src.services.operator_log import OperatorLogger, operator_log

if TYPE_CHECKING:
    from src.bot import MooncrestBot


WEEKLY = "weekly"
MONTHLY = "monthly"


@dataclass(frozen=True)
class Metric:
    """One rolling counter announced and reset per period."""
    field: str
    title: str
    emoji: str
    unit: str


PERIOD_METRICS: Dict[str, List[Metric]] = {
    WEEKLY: [
        Metric("weekly_xp", "Climber of the Week", EMOJI_CLIMBER, "Weekly LP"),
        Metric("weekly_guide_points", "Host of the Week", EMOJI_HOST, "Weekly Points"),
        Metric("weekly_expeditions", "Explorer of the Week", EMOJI_EXPLORER, "Expeditions"),
    ],
    MONTHLY: [
        Metric("monthly_xp", "Climber of the Month", EMOJI_CLIMBER, "Monthly LP"),
        Metric("monthly_guide_points", "Host of the Month", EMOJI_HOST, "Monthly Points"),
        Metric("monthly_expeditions", "Explorer of the Month", EMOJI_EXPLORER, "Expeditions"),
    ],
}


@dataclass
class Leader:
    roblox_id: int
    username: str
    discord_id: Optional[int]
    value: int

    @property
    def display(self) -> str:
        return f"<@{self.discord_id}>" if self.discord_id else self.username


@dataclass
class PeriodSnapshot:
    """Leaders per metric for the elapsed period."""
    period: str
    period_key: str
    leaders: Dict[str, Optional[Leader]] = field(default_factory=dict)
    reset_counts: Dict[str, int] = field(default_factory=dict)
    failed: List[str] = field(default_factory=list)
    already_reset: List[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.failed


def period_key(period: str, now: datetime) -> str:
    """
    Marker key for the period whose reset is due at `now`.

    Weekly keys name the Monday that starts the week, so a retry later in
    the same week maps to the same marker.
    """
    local = now.astimezone(TIMEZONE_WIB)
    if period == WEEKLY:
        week_start = local.date() - timedelta(days=(local.weekday() - WEEKLY_RESET_WEEKDAY) % 7)
        return f"weekly:{week_start.isoformat()}"
    if period == MONTHLY:
        return f"monthly:{local.strftime('%Y-%m')}"
    raise ValueError(f"Unknown period: {period}")


def due_periods(now: datetime) -> List[str]:
    """Periods whose boundary falls on this (WIB) day."""
    local = now.astimezone(TIMEZONE_WIB)
    due = []
    if local.weekday() == WEEKLY_RESET_WEEKDAY:
        due.append(WEEKLY)
    if local.day == MONTHLY_RESET_DAY:
        due.append(MONTHLY)
    return due


def build_announcement_embed(snapshot: PeriodSnapshot) -> discord.Embed:
    label = "WEEKLY" if snapshot.period == WEEKLY else "MONTHLY"
    span = "week" if snapshot.period == WEEKLY else "month"
    embed = discord.Embed(
        title=f"🏆 {label} CHAMPIONS: Mooncrest Expedition 🏆",
        description=f"This {span} has concluded! {span.title()}ly statistics have been reset.",
        color=COLOR_GOLD,
    )
    for metric in PERIOD_METRICS[snapshot.period]:
        leader = snapshot.leaders.get(metric.field)
        name = leader.display if leader else "None yet"
        value = leader.value if leader else 0
        embed.add_field(
            name=f"{metric.emoji} {metric.title}",
            value=f"{name}\n(**{value}** {metric.unit})",
            inline=True,
        )
    when = "every Monday" if snapshot.period == WEEKLY else "on the 1st of every month"
    embed.set_footer(text=f"{span.title()}ly statistics are automatically reset {when} at 05:00 WIB.")
    return embed


class PeriodResetService:
    """Scheduled weekly/monthly champion announcements and resets."""

    def __init__(
        self,
        bot: Optional["MooncrestBot"] = None,
        database: Optional[Database] = None,
        reporter: Optional[OperatorLogger] = None,
    ) -> None:
        self.bot = bot
        self.db = database or db
        self.reporter = reporter or operator_log

    async def setup(self) -> None:
        self.reset_check.start()
        log.tree("Period Reset Service Ready", [
            ("Time", PERIOD_RESET_TIME.strftime("%H:%M WIB")),
            ("Weekly", "Mondays"),
            ("Monthly", f"Day {MONTHLY_RESET_DAY}"),
        ], emoji="🗓️")

    def stop(self) -> None:
        if self.reset_check.is_running():
            self.reset_check.cancel()

    # =========================================================================
    # Scheduled Task
    # =========================================================================

    @tasks.loop(time=PERIOD_RESET_TIME)
    async def reset_check(self) -> None:
        """Daily trigger; runs whichever periods end today or failed earlier this period."""
        now = datetime.now(TIMEZONE_WIB)
        for period in await self.pending_periods(now):
            try:
                await self.run_reset(period, now)
            except Exception as e:
                log.error_tree("Period Reset Failed", e, [
                    ("Period", period),
                ])
                await self.reporter.log_failure("Period Reset Failed", e, period=period)

    async def pending_periods(self, now: datetime) -> List[str]:
        """Periods due today plus periods whose run this period is marked failed."""
        pending = due_periods(now)
        for period in (WEEKLY, MONTHLY):
            if period in pending:
                continue
            run = await asyncio.to_thread(self.db.get_period_run, period_key(period, now))
            if run and run["status"] == RUN_FAILED:
                pending.append(period)
        return pending

    @reset_check.before_loop
    async def _before_reset_check(self) -> None:
        if self.bot is not None:
            await self.bot.wait_until_ready()

    # =========================================================================
    # Run
    # =========================================================================

    async def compute_leaders(self, period: str) -> Dict[str, Optional[Leader]]:
        """Top record per metric; a top value of 0 is no leader."""
        leaders: Dict[str, Optional[Leader]] = {}
        for metric in PERIOD_METRICS[period]:
            rows = await asyncio.to_thread(self.db.get_top_users, metric.field, 1, 0)
            top = rows[0] if rows else None
            if top and top[metric.field] > 0:
                leaders[metric.field] = Leader(
                    roblox_id=top["roblox_id"],
                    username=top["roblox_username"],
                    discord_id=top["discord_id"],
                    value=top[metric.field],
                )
            else:
                leaders[metric.field] = None
        return leaders

    async def run_reset(self, period: str, now: Optional[datetime] = None) -> Optional[PeriodSnapshot]:
        """
        Announce and reset one period.

        A run that stops before every metric is reset leaves its marker
        failed, so the next trigger (or /period-reset) picks it up. A
        retry only resets; the announcement is never posted twice.

        Returns:
            The snapshot, or None if this period already ran.
        """
        now = now or datetime.now(TIMEZONE_WIB)
        key = period_key(period, now)

        claimed = await asyncio.to_thread(self.db.claim_period_run, key)
        if not claimed:
            return None

        run = await asyncio.to_thread(self.db.get_period_run, key)
        retry = bool(run and run["announced"])
        snapshot = PeriodSnapshot(
            period=period,
            period_key=key,
            already_reset=list(run["reset_fields"]) if run else [],
        )
        log.tree("Period Reset Starting", [
            ("Period", period),
            ("Key", key),
            ("Retry", "Yes" if retry else "No"),
        ], emoji="🔄")

        try:
            if not retry:
                snapshot.leaders = await self.compute_leaders(period)
                await self._announce(snapshot)
                await asyncio.to_thread(self.db.mark_period_announced, key)
            await self._reset_metrics(snapshot)
        except Exception:
            await asyncio.to_thread(self.db.finish_period_run, key, RUN_FAILED)
            raise

        status = RUN_DONE if snapshot.complete else RUN_FAILED
        await asyncio.to_thread(self.db.finish_period_run, key, status)

        log.tree("Period Reset Complete", [
            ("Period", period),
            ("Key", key),
            ("Status", status),
        ] + [
            (f"Reset {name}", str(count)) for name, count in snapshot.reset_counts.items()
        ], emoji="✅" if snapshot.complete else "⚠️")
        await self.reporter.log_event(
            f"{period.title()} Reset Complete",
            success=snapshot.complete,
            period_key=key,
            failed_metrics=", ".join(snapshot.failed) or None,
            **{f"reset_{name}": count for name, count in snapshot.reset_counts.items()},
        )
        return snapshot

    async def _reset_metrics(self, snapshot: PeriodSnapshot) -> None:
        """
        Zero each metric in its own batch, skipping metrics an earlier
        attempt already reset. Failures are collected, not raised.
        """
        for metric in PERIOD_METRICS[snapshot.period]:
            if metric.field in snapshot.already_reset:
                continue
            try:
                snapshot.reset_counts[metric.field] = await asyncio.to_thread(
                    self.db.reset_period_field, metric.field
                )
                await asyncio.to_thread(self.db.record_period_field_reset, snapshot.period_key, metric.field)
            except Exception as e:
                snapshot.failed.append(metric.field)
                log.error_tree("Period Metric Reset Failed", e, [
                    ("Period", snapshot.period),
                    ("Field", metric.field),
                ])
                await self.reporter.log_failure(
                    "Period Metric Reset Failed", e, period=snapshot.period, field=metric.field,
                )

    async def _announce(self, snapshot: PeriodSnapshot) -> bool:
        if self.bot is None:
            return False

        channel = self.bot.get_channel(config.announce_channel_id)
        if channel is None:
            log.tree("Period Announcement Skipped", [
                ("Period", snapshot.period),
                ("Reason", "Announcement channel not found"),
            ], emoji="⚠️")
            return False

        content = f"<@&{config.ANNOUNCEMENT_ROLE_ID}>" if config.ANNOUNCEMENT_ROLE_ID else None
        try:
            await channel.send(content=content, embed=build_announcement_embed(snapshot))
            return True
        except discord.HTTPException as e:
            log.error_tree("Period Announcement Failed", e, [
                ("Period", snapshot.period),
            ])
            await self.reporter.log_failure("Period Announcement Failed", e, period=snapshot.period)
            return False
