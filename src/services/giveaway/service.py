"""
MooncrestBot - Giveaway Service
===============================

Giveaway lifecycle: start, join, end (sweep or manual) and reroll.

State machine: OPEN -> ENDED, and ENDED supports repeated rerolls that
only append winners.

Once end() claims a record (drawing = 1) joins are refused at the storage
layer, so every entrant that made it in is in the draw snapshot.
"""

import asyncio
import random
import time
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

import discord
from discord.ext import tasks

from src.core.colors import COLOR_GIVEAWAY, COLOR_GIVEAWAY_ENDED, EMOJI_GIVEAWAY
from src.core.constants import GIVEAWAY_CHECK_INTERVAL, GIVEAWAY_DRAW_TIMEOUT
from src.core.errors import (
    AlreadyEnded,
    AlreadyEntered,
    Ineligible,
    InsufficientEntrants,
    InvalidArgument,
    NotEnded,
    NotFound,
)
from src.core.logger import log
from src.services.database import Database, db
from src.services.giveaway.views import GiveawayJoinView
from src.services.operator_log import OperatorLogger, operator_log
from src.utils.duration import format_duration, parse_duration
from src.utils.footer import set_footer

if TYPE_CHECKING:
    from src.bot import MooncrestBot


# =============================================================================
# Draw
# =============================================================================

def pick_winners(entrants: Sequence[int], count: int, rng: Optional[random.Random] = None) -> List[int]:
    """
    Draw up to count winners without replacement.

    Each step picks a uniform index into what is left and removes it.
    The input sequence is not modified.
    """
    rng = rng or random
    pool = list(entrants)
    winners: List[int] = []
    for _ in range(count):
        if not pool:
            break
        winners.append(pool.pop(rng.randrange(len(pool))))
    return winners


# =============================================================================
# Embeds
# =============================================================================

def build_giveaway_embed(giveaway: Dict[str, Any], entrant_count: int = 0) -> discord.Embed:
    """Running giveaway announcement."""
    embed = discord.Embed(
        title=f"{EMOJI_GIVEAWAY} GIVEAWAY {EMOJI_GIVEAWAY}",
        description=(
            f"Press **Join** to enter!\n"
            f"**Prize:** {giveaway['prize']}\n"
            f"**Winners:** {giveaway['winner_count']}\n"
            f"**Ends:** <t:{giveaway['end_time'] // 1000}:R>"
        ),
        color=COLOR_GIVEAWAY,
    )
    embed.add_field(name="Participants", value=f"`{entrant_count}`", inline=True)
    if giveaway.get("sponsor_id"):
        embed.add_field(name="Sponsored by", value=f"<@{giveaway['sponsor_id']}>", inline=True)
    if giveaway.get("required_role_id"):
        embed.add_field(name="Requirement", value=f"Must have the <@&{giveaway['required_role_id']}> role.", inline=True)
    set_footer(embed)
    return embed


def build_ended_embed(giveaway: Dict[str, Any], winners: List[int], entrant_count: int) -> discord.Embed:
    """Terminal announcement state."""
    winners_text = ", ".join(f"<@{w}>" for w in winners) if winners else "None"
    embed = discord.Embed(
        title=f"{EMOJI_GIVEAWAY} GIVEAWAY ENDED {EMOJI_GIVEAWAY}",
        description=f"**Prize:** {giveaway['prize']}\n**Winners:** {winners_text}",
        color=COLOR_GIVEAWAY_ENDED,
    )
    embed.add_field(name="Participants", value=f"`{entrant_count}`", inline=True)
    set_footer(embed)
    return embed


# =============================================================================
# Service
# =============================================================================

class GiveawayService:
    """Service for managing giveaways."""

    def __init__(
        self,
        bot: "MooncrestBot",
        database: Optional[Database] = None,
        reporter: Optional[OperatorLogger] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.bot = bot
        self.db = database or db
        self.reporter = reporter or operator_log
        self.rng = rng or random.Random()

    async def setup(self) -> None:
        """Register the persistent Join button and start the sweep."""
        self.bot.add_view(GiveawayJoinView(self))
        self.sweep_loop.start()

        active = await asyncio.to_thread(self.db.get_active_giveaways)
        log.tree("Giveaway Service Ready", [
            ("Active Giveaways", str(len(active))),
            ("Sweep Interval", f"{GIVEAWAY_CHECK_INTERVAL}s"),
        ], emoji="🎉")

    def stop(self) -> None:
        """Stop the giveaway service."""
        if self.sweep_loop.is_running():
            self.sweep_loop.cancel()
        log.tree("Giveaway Service Stopped", [], emoji="🛑")

    # =========================================================================
    # Sweep
    # =========================================================================

    @tasks.loop(seconds=GIVEAWAY_CHECK_INTERVAL)
    async def sweep_loop(self) -> None:
        await self.sweep_due()

    @sweep_loop.before_loop
    async def _before_sweep(self) -> None:
        await self.bot.wait_until_ready()

    async def sweep_due(self, now_ms: Optional[int] = None) -> int:
        """
        End every open giveaway whose end time has passed.

        Draws claimed longer than GIVEAWAY_DRAW_TIMEOUT ago (the process
        died or the task was killed mid-draw) are taken over and finished.
        """
        now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
        ended = await self._recover_stale_draws(now_ms)

        due = await asyncio.to_thread(self.db.get_due_giveaways, now_ms)
        for message_id in due:
            try:
                await self.end(message_id)
                ended += 1
            except AlreadyEnded:
                continue
            except Exception as e:
                log.error_tree("Giveaway Sweep End Failed", e, [
                    ("Message ID", str(message_id)),
                ])

        if due:
            log.tree("Giveaway Sweep", [
                ("Due", str(len(due))),
                ("Ended", str(ended)),
            ], emoji="⏰")
        return ended

    async def _recover_stale_draws(self, now_ms: int) -> int:
        """Finish draws whose claim outlived GIVEAWAY_DRAW_TIMEOUT."""
        cutoff = now_ms - GIVEAWAY_DRAW_TIMEOUT * 1000
        stale = await asyncio.to_thread(self.db.get_stale_draws, cutoff)
        recovered = 0
        for message_id in stale:
            taken = await asyncio.to_thread(self.db.reclaim_stale_draw, message_id, cutoff, now_ms)
            if not taken:
                continue
            log.tree("Giveaway Draw Reclaimed", [
                ("Message ID", str(message_id)),
                ("Timeout", f"{GIVEAWAY_DRAW_TIMEOUT}s"),
            ], emoji="♻️")
            giveaway = await asyncio.to_thread(self.db.get_giveaway, message_id)
            try:
                await self._finish_draw(giveaway)
                recovered += 1
            except Exception as e:
                log.error_tree("Giveaway Draw Recovery Failed", e, [
                    ("Message ID", str(message_id)),
                ])
        return recovered

    # =========================================================================
    # Start
    # =========================================================================

    async def start(
        self,
        channel: discord.abc.Messageable,
        host: discord.abc.User,
        prize: str,
        winner_count: int,
        duration: str,
        sponsor: Optional[discord.abc.User] = None,
        required_role: Optional[discord.Role] = None,
    ) -> Dict[str, Any]:
        """
        Post the announcement and store an open giveaway.

        Raises:
            InvalidArgument: Bad duration or winner count. Nothing is posted.
        """
        duration_ms = parse_duration(duration)
        if winner_count < 1:
            raise InvalidArgument("Winner count must be at least 1")
        if not prize or not prize.strip():
            raise InvalidArgument("Prize cannot be empty")

        giveaway = {
            "prize": prize.strip(),
            "winner_count": winner_count,
            "end_time": int(time.time() * 1000) + duration_ms,
            "sponsor_id": sponsor.id if sponsor else None,
            "required_role_id": required_role.id if required_role else None,
            "host_id": host.id,
        }

        message = await channel.send(embed=build_giveaway_embed(giveaway), view=GiveawayJoinView(self))

        giveaway["message_id"] = message.id
        giveaway["channel_id"] = message.channel.id
        giveaway["guild_id"] = message.guild.id if message.guild else 0

        await asyncio.to_thread(
            self.db.create_giveaway,
            giveaway["message_id"],
            giveaway["channel_id"],
            giveaway["guild_id"],
            giveaway["host_id"],
            giveaway["prize"],
            giveaway["winner_count"],
            giveaway["end_time"],
            giveaway["sponsor_id"],
            giveaway["required_role_id"],
        )

        log.tree("Giveaway Started", [
            ("Host", f"{host.name} ({host.id})"),
            ("Prize", giveaway["prize"][:50]),
            ("Winners", str(winner_count)),
            ("Duration", format_duration(duration_ms)),
            ("Required Role", str(giveaway["required_role_id"] or "None")),
        ], emoji="🎉")
        return giveaway

    # =========================================================================
    # Join
    # =========================================================================

    async def join(
        self,
        message_id: int,
        member: discord.Member,
        message: Optional[discord.Message] = None,
    ) -> int:
        """
        Enter a member into an open giveaway.

        Returns:
            The new entrant count.

        Raises:
            NotFound, AlreadyEnded, Ineligible, AlreadyEntered
        """
        giveaway = await asyncio.to_thread(self.db.get_giveaway, message_id)
        if giveaway is None:
            raise NotFound("This giveaway no longer exists.")
        if giveaway["ended"] or giveaway["drawing"]:
            raise AlreadyEnded("This giveaway has already ended.")

        required = giveaway["required_role_id"]
        if required and not any(r.id == required for r in member.roles):
            raise Ineligible(f"You need the <@&{required}> role to join this giveaway.")

        if member.id in giveaway["entrants"]:
            raise AlreadyEntered("You have already entered this giveaway.")

        added = await asyncio.to_thread(self.db.add_giveaway_entry, message_id, member.id)
        if not added:
            if await asyncio.to_thread(self.db.has_entered_giveaway, message_id, member.id):
                raise AlreadyEntered("You have already entered this giveaway.")
            raise AlreadyEnded("This giveaway has already ended.")

        count = await asyncio.to_thread(self.db.get_giveaway_entry_count, message_id)
        log.tree("Giveaway Joined", [
            ("Member", f"{member.name} ({member.id})"),
            ("Message ID", str(message_id)),
            ("Participants", str(count)),
        ], emoji="🎟️")

        await self._update_entry_count(giveaway, count, message)
        return count

    async def _update_entry_count(
        self,
        giveaway: Dict[str, Any],
        count: int,
        message: Optional[discord.Message] = None,
    ) -> None:
        """Refresh the participant count on the announcement."""
        try:
            if message is None:
                message = await self._fetch_announcement(giveaway)
            await message.edit(embed=build_giveaway_embed(giveaway, count))
        except discord.HTTPException as e:
            log.tree("Giveaway Entry Count Update Failed", [
                ("Message ID", str(giveaway["message_id"])),
                ("Error", str(e)[:50]),
            ], emoji="⚠️")

    # =========================================================================
    # End
    # =========================================================================

    async def end(self, message_id: int) -> List[int]:
        """
        Draw winners and close a giveaway. Safe to call before end_time.

        A deleted announcement, any fault or a cancellation while ending
        still leaves the record ended so the sweep never retries it.

        Returns:
            The drawn winners (possibly empty).

        Raises:
            NotFound: Unknown giveaway.
            AlreadyEnded: Already ended or another draw claimed it.
        """
        giveaway = await asyncio.to_thread(self.db.get_giveaway, message_id)
        if giveaway is None:
            raise NotFound("Could not find a giveaway with that message ID.")
        if giveaway["ended"]:
            raise AlreadyEnded("This giveaway has already ended.")

        claimed = await asyncio.to_thread(self.db.claim_giveaway_draw, message_id)
        if not claimed:
            raise AlreadyEnded("This giveaway is already being ended.")

        return await self._finish_draw(giveaway)

    async def _finish_draw(self, giveaway: Dict[str, Any]) -> List[int]:
        """Run a claimed draw through to the ended state."""
        message_id = giveaway["message_id"]
        winners: List[int] = []
        try:
            try:
                message = await self._fetch_announcement(giveaway)
            except discord.NotFound:
                await asyncio.to_thread(self.db.mark_giveaway_ended, message_id, [])
                log.tree("Giveaway Closed (Message Deleted)", [
                    ("Message ID", str(message_id)),
                ], emoji="🗑️")
                return []

            # Entrants added before the claim; no more can arrive
            giveaway = await asyncio.to_thread(self.db.get_giveaway, message_id)
            entrants = giveaway["entrants"]
            eligible = await self._eligible_entrants(giveaway, entrants)
            winners = pick_winners(eligible, giveaway["winner_count"], self.rng)

            log.tree("Giveaway Winner Selection", [
                ("Message ID", str(message_id)),
                ("Entrants", str(len(entrants))),
                ("Eligible", str(len(eligible))),
                ("Winners", str(len(winners))),
            ], emoji="🎲")

            await asyncio.to_thread(self.db.mark_giveaway_ended, message_id, winners)
            await self._announce_winners(message, giveaway, winners)
            await message.edit(embed=build_ended_embed(giveaway, winners, len(entrants)), view=None)

        except asyncio.CancelledError:
            log.tree("Giveaway End Cancelled", [
                ("Message ID", str(message_id)),
            ], emoji="⚠️")
            await self._force_ended(message_id, winners)
            raise
        except Exception as e:
            log.error_tree("Giveaway End Failed", e, [
                ("Message ID", str(message_id)),
            ])
            await self._force_ended(message_id, winners)
            await self.reporter.log_failure("Giveaway End Failed", e, message_id=str(message_id))
            raise

        log.tree("Giveaway Ended", [
            ("Message ID", str(message_id)),
            ("Prize", giveaway["prize"][:30]),
            ("Winners", ", ".join(str(w) for w in winners) or "None"),
        ], emoji="🏆")
        return winners

    async def _force_ended(self, message_id: int, winners: List[int]) -> None:
        current = await asyncio.to_thread(self.db.get_giveaway, message_id)
        if current and not current["ended"]:
            await asyncio.to_thread(self.db.mark_giveaway_ended, message_id, winners)

    async def _eligible_entrants(self, giveaway: Dict[str, Any], entrants: List[int]) -> List[int]:
        """
        Entrants that still hold the required role (members may have changed).

        An entrant whose member lookup fails is left out of this draw.
        """
        required = giveaway["required_role_id"]
        if not required or not entrants:
            return list(entrants)

        guild = self.bot.get_guild(giveaway["guild_id"])
        if guild is None or guild.get_role(required) is None:
            return list(entrants)

        eligible = []
        for user_id in entrants:
            member = guild.get_member(user_id)
            if member is None:
                try:
                    member = await guild.fetch_member(user_id)
                except discord.NotFound:
                    continue
                except discord.HTTPException as e:
                    log.tree("Giveaway Entrant Lookup Failed", [
                        ("Message ID", str(giveaway["message_id"])),
                        ("User ID", str(user_id)),
                        ("Error", str(e)[:50]),
                    ], emoji="⚠️")
                    continue
            if any(r.id == required for r in member.roles):
                eligible.append(user_id)
        return eligible

    async def _fetch_announcement(self, giveaway: Dict[str, Any]) -> discord.Message:
        channel = self.bot.get_channel(giveaway["channel_id"])
        if channel is None:
            channel = await self.bot.fetch_channel(giveaway["channel_id"])
        return await channel.fetch_message(giveaway["message_id"])

    async def _announce_winners(
        self,
        message: discord.Message,
        giveaway: Dict[str, Any],
        winners: List[int],
    ) -> None:
        if winners:
            mentions = ", ".join(f"<@{w}>" for w in winners)
            content = f"Congratulations {mentions}! You won the **{giveaway['prize']}**!"
        else:
            content = f"Could not determine a winner for the **{giveaway['prize']}**. (No valid participants)."
        await message.channel.send(content=content, reference=message)

    # =========================================================================
    # Reroll
    # =========================================================================

    async def reroll(self, message_id: int, count: int = 1) -> List[int]:
        """
        Draw additional winners from entrants who have not won yet.

        Raises:
            NotFound, NotEnded, InvalidArgument, InsufficientEntrants
        """
        if count < 1:
            raise InvalidArgument("Reroll amount must be at least 1")

        giveaway = await asyncio.to_thread(self.db.get_giveaway, message_id)
        if giveaway is None:
            raise NotFound("Could not find a giveaway with that message ID.")
        if not giveaway["ended"]:
            raise NotEnded("This giveaway has not ended yet. Use `/giveaway end` first.")

        previous = set(giveaway["winners"])
        pool = [e for e in giveaway["entrants"] if e not in previous]
        if len(pool) < count:
            raise InsufficientEntrants(
                f"Not enough new participants to draw {count} new winner(s). Only {len(pool)} available."
            )

        new_winners = pick_winners(pool, count, self.rng)
        await asyncio.to_thread(self.db.append_giveaway_winners, message_id, new_winners)

        log.tree("Giveaway Rerolled", [
            ("Message ID", str(message_id)),
            ("New Winners", ", ".join(str(w) for w in new_winners)),
            ("Total Winners", str(len(previous) + len(new_winners))),
        ], emoji="🔁")

        try:
            channel = self.bot.get_channel(giveaway["channel_id"])
            if channel is not None:
                mentions = ", ".join(f"<@{w}>" for w in new_winners)
                await channel.send(
                    f"{EMOJI_GIVEAWAY} Congratulations to the new winner(s) for the **{giveaway['prize']}**: {mentions}!"
                )
        except discord.HTTPException as e:
            log.error_tree("Giveaway Reroll Announce Failed", e, [
                ("Message ID", str(message_id)),
            ])
            await self.reporter.log_failure("Giveaway Reroll Announce Failed", e, message_id=str(message_id))

        return new_winners
