"""
MooncrestBot - Giveaways Database Mixin
=======================================

Database operations for the giveaway system.

Entrant inserts and draw claims are single conditional statements so a
join racing an end cannot slip an entrant in after the draw started.
"""

import time
from typing import Any, Dict, List, Optional

from src.core.logger import log


class GiveawaysMixin:
    """Mixin for giveaway database operations."""

    def create_giveaway(
        self,
        message_id: int,
        channel_id: int,
        guild_id: int,
        host_id: int,
        prize: str,
        winner_count: int,
        end_time: int,
        sponsor_id: Optional[int] = None,
        required_role_id: Optional[int] = None,
    ) -> None:
        """Store a new open giveaway keyed by its announcement message."""
        with self._get_conn() as conn:
            conn.execute("""
                INSERT INTO giveaways (
                    message_id, channel_id, guild_id, host_id, prize,
                    winner_count, end_time, sponsor_id, required_role_id, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                message_id, channel_id, guild_id, host_id, prize,
                winner_count, end_time, sponsor_id, required_role_id, int(time.time()),
            ))

        log.tree("DB: Giveaway Created", [
            ("Message ID", str(message_id)),
            ("Prize", prize[:30]),
            ("Winners", str(winner_count)),
            ("End Time", str(end_time)),
        ], emoji="🎉")

    def get_giveaway(self, message_id: int) -> Optional[Dict[str, Any]]:
        """Get a giveaway with its entrants and winners, or None."""
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT * FROM giveaways WHERE message_id = ?", (message_id,)
            ).fetchone()
            if not row:
                return None
            data = dict(row)
            data["ended"] = bool(data["ended"])
            data["drawing"] = bool(data["drawing"])
            data["entrants"] = [
                r["user_id"] for r in conn.execute(
                    "SELECT user_id FROM giveaway_entries WHERE message_id = ? ORDER BY entered_at, rowid",
                    (message_id,),
                )
            ]
            data["winners"] = [
                r["user_id"] for r in conn.execute(
                    "SELECT user_id FROM giveaway_winners WHERE message_id = ? ORDER BY position",
                    (message_id,),
                )
            ]
            return data

    def get_active_giveaways(self) -> List[Dict[str, Any]]:
        """Get every giveaway that has not ended."""
        with self._get_conn() as conn:
            rows = conn.execute(
                "SELECT * FROM giveaways WHERE ended = 0 ORDER BY end_time"
            ).fetchall()
            return [dict(r) for r in rows]

    def get_due_giveaways(self, now_ms: int) -> List[int]:
        """Get message ids of open giveaways whose end time has passed."""
        with self._get_conn() as conn:
            rows = conn.execute(
                "SELECT message_id FROM giveaways WHERE ended = 0 AND end_time <= ?",
                (now_ms,),
            ).fetchall()
            return [r["message_id"] for r in rows]

    def add_giveaway_entry(self, message_id: int, user_id: int) -> bool:
        """
        Append an entrant if the giveaway is still open.

        Returns:
            True if the entrant was added, False if the giveaway closed or
            the user was already entered.
        """
        with self._get_conn() as conn:
            cur = conn.execute("""
                INSERT OR IGNORE INTO giveaway_entries (message_id, user_id, entered_at)
                SELECT ?, ?, ?
                WHERE EXISTS (
                    SELECT 1 FROM giveaways
                    WHERE message_id = ? AND ended = 0 AND drawing = 0
                )
            """, (message_id, user_id, int(time.time() * 1000), message_id))
            return cur.rowcount > 0

    def has_entered_giveaway(self, message_id: int, user_id: int) -> bool:
        """Check if a user is in the entrant set."""
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT 1 FROM giveaway_entries WHERE message_id = ? AND user_id = ?",
                (message_id, user_id),
            ).fetchone()
            return row is not None

    def get_giveaway_entry_count(self, message_id: int) -> int:
        """Count entrants."""
        with self._get_conn() as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM giveaway_entries WHERE message_id = ?", (message_id,)
            ).fetchone()[0]

    def claim_giveaway_draw(self, message_id: int, now_ms: Optional[int] = None) -> bool:
        """
        Mark an open giveaway as drawing and stamp the claim time.

        Returns:
            True for the single caller that wins the claim.
        """
        now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
        with self._get_conn() as conn:
            cur = conn.execute(
                "UPDATE giveaways SET drawing = 1, drawing_at = ? "
                "WHERE message_id = ? AND ended = 0 AND drawing = 0",
                (now_ms, message_id),
            )
            return cur.rowcount > 0

    def get_stale_draws(self, cutoff_ms: int) -> List[int]:
        """Get message ids of draws claimed at or before cutoff that never ended."""
        with self._get_conn() as conn:
            rows = conn.execute(
                "SELECT message_id FROM giveaways "
                "WHERE ended = 0 AND drawing = 1 AND COALESCE(drawing_at, 0) <= ?",
                (cutoff_ms,),
            ).fetchall()
            return [r["message_id"] for r in rows]

    def reclaim_stale_draw(self, message_id: int, cutoff_ms: int, now_ms: Optional[int] = None) -> bool:
        """
        Take over a draw whose claim is older than cutoff.

        Returns:
            True for the single caller that wins the takeover.
        """
        now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
        with self._get_conn() as conn:
            cur = conn.execute(
                "UPDATE giveaways SET drawing_at = ? "
                "WHERE message_id = ? AND ended = 0 AND drawing = 1 AND COALESCE(drawing_at, 0) <= ?",
                (now_ms, message_id, cutoff_ms),
            )
            return cur.rowcount > 0

    def append_giveaway_winners(self, message_id: int, winners: List[int]) -> None:
        """Append winners after any already recorded."""
        if not winners:
            return
        with self._get_conn() as conn:
            start = conn.execute(
                "SELECT COALESCE(MAX(position), -1) + 1 FROM giveaway_winners WHERE message_id = ?",
                (message_id,),
            ).fetchone()[0]
            conn.executemany(
                "INSERT INTO giveaway_winners (message_id, position, user_id) VALUES (?, ?, ?)",
                [(message_id, start + i, user_id) for i, user_id in enumerate(winners)],
            )

    def mark_giveaway_ended(self, message_id: int, winners: Optional[List[int]] = None) -> None:
        """Set ended (terminal) and record the initial winners."""
        with self._get_conn() as conn:
            conn.execute(
                "UPDATE giveaways SET ended = 1, drawing = 1 WHERE message_id = ?",
                (message_id,),
            )
        if winners:
            self.append_giveaway_winners(message_id, winners)

        log.tree("DB: Giveaway Ended", [
            ("Message ID", str(message_id)),
            ("Winners", str(len(winners or []))),
        ], emoji="🏁")
