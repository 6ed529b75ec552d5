"""
MooncrestBot - Operator Log Service
===================================

Posts ledger changes and side-effect failures to the staff log channel.

Every send is best effort: a failure to post is logged to the console and
file logs and never raised to the caller.
"""

from datetime import datetime
from typing import Optional, TYPE_CHECKING

import discord

from src.core.colors import COLOR_ERROR, COLOR_MOONCREST, COLOR_SUCCESS, COLOR_WARNING
from src.core.config import config
from src.core.constants import TIMEZONE_WIB
from src.core.logger import log
from src.utils.footer import set_footer

if TYPE_CHECKING:
    from src.bot import MooncrestBot


class OperatorLogger:
    """Sends log embeds to the configured log channel."""

    def __init__(self, channel_id: Optional[int] = None) -> None:
        self.channel_id = channel_id if channel_id is not None else config.LOG_CHANNEL_ID
        self._bot: Optional["MooncrestBot"] = None

    @property
    def enabled(self) -> bool:
        return bool(self.channel_id) and self._bot is not None

    def set_bot(self, bot: "MooncrestBot") -> None:
        """Set bot reference for channel lookup."""
        self._bot = bot
        if not self.channel_id:
            log.tree("Operator Log Disabled", [
                ("Reason", "MOONCREST_LOG_CHANNEL_ID not set"),
            ], emoji="⚠️")

    async def _send_log(self, embed: discord.Embed) -> bool:
        """Send a log embed to the channel."""
        if not self.enabled:
            return False

        channel = self._bot.get_channel(self.channel_id)
        if channel is None:
            log.tree("Operator Log Channel Missing", [
                ("Channel ID", str(self.channel_id)),
            ], emoji="⚠️")
            return False

        try:
            await channel.send(embed=embed)
            return True
        except discord.HTTPException as e:
            log.tree("Operator Log Send Failed", [
                ("Channel ID", str(self.channel_id)),
                ("Error", str(e)[:100]),
            ], emoji="❌")
            return False

    def _get_time_str(self) -> str:
        return datetime.now(TIMEZONE_WIB).strftime("%Y-%m-%d %H:%M %Z")

    # =========================================================================
    # Ledger Events
    # =========================================================================

    async def log_points_change(
        self,
        actor: Optional[discord.abc.User],
        target_name: str,
        track: str,
        action: str,
        amount: int,
        total: int,
        old_tier: Optional[str] = None,
        new_tier: Optional[str] = None,
        **fields,
    ) -> bool:
        """Log an add/remove/set/bonus applied to a user."""
        embed = discord.Embed(
            title=f"📊 {track.title()} {action.title()}",
            color=COLOR_MOONCREST,
        )
        embed.add_field(name="User", value=f"`{target_name}`", inline=True)
        embed.add_field(name="Amount", value=f"`{amount}`", inline=True)
        embed.add_field(name="Total", value=f"`{total}`", inline=True)
        if actor is not None:
            embed.add_field(name="By", value=f"{actor.mention} `[{actor.id}]`", inline=True)
        if old_tier != new_tier:
            embed.add_field(name="Tier", value=f"`{old_tier}` → `{new_tier}`", inline=True)
        for name, value in fields.items():
            if value is not None:
                embed.add_field(name=name.replace("_", " ").title(), value=f"`{value}`", inline=True)
        embed.add_field(name="Time", value=f"`{self._get_time_str()}`", inline=False)

        set_footer(embed)
        return await self._send_log(embed)

    # =========================================================================
    # Failures / Events
    # =========================================================================

    async def log_failure(self, title: str, error: BaseException, **fields) -> bool:
        """Report a side-effect failure that did not roll back the primary write."""
        embed = discord.Embed(
            title=f"❌ {title}",
            description=f"```{type(error).__name__}: {str(error)[:500]}```",
            color=COLOR_ERROR,
        )
        for name, value in fields.items():
            if value is not None:
                embed.add_field(name=name.replace("_", " ").title(), value=f"`{value}`", inline=True)
        embed.add_field(name="Time", value=f"`{self._get_time_str()}`", inline=False)

        set_footer(embed)
        return await self._send_log(embed)

    async def log_event(self, title: str, success: bool = True, **fields) -> bool:
        """Log a generic operator-facing event."""
        embed = discord.Embed(
            title=title,
            color=COLOR_SUCCESS if success else COLOR_WARNING,
        )
        for name, value in fields.items():
            if value is not None:
                embed.add_field(name=name.replace("_", " ").title(), value=f"`{value}`", inline=True)

        set_footer(embed)
        return await self._send_log(embed)


# Global instance
operator_log = OperatorLogger()
