"""
MooncrestBot - Database TempVoice Mixin
=======================================

TempVoice channel records.
"""

import time
from typing import List, Optional

from src.core.logger import logger


class TempVoiceMixin:
    """Mixin for TempVoice database operations."""

    def create_temp_channel(self, channel_id: int, owner_id: int, guild_id: int) -> None:
        """Create a new temp channel record."""
        with self._get_conn() as conn:
            conn.execute("""
                INSERT OR REPLACE INTO temp_channels (channel_id, owner_id, guild_id, created_at)
                VALUES (?, ?, ?, ?)
            """, (channel_id, owner_id, guild_id, int(time.time())))

        logger.tree("DB: Channel Created", [
            ("Channel ID", str(channel_id)),
            ("Owner ID", str(owner_id)),
        ], emoji="💾")

    def delete_temp_channel(self, channel_id: int) -> None:
        """Delete a temp channel record."""
        with self._get_conn() as conn:
            conn.execute("DELETE FROM temp_channels WHERE channel_id = ?", (channel_id,))

    def is_temp_channel(self, channel_id: int) -> bool:
        """Check if a channel is a temp channel."""
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT 1 FROM temp_channels WHERE channel_id = ?", (channel_id,)
            ).fetchone()
            return row is not None

    def get_owner_channel(self, owner_id: int, guild_id: int) -> Optional[int]:
        """Get the channel ID owned by a user in a guild."""
        with self._get_conn() as conn:
            row = conn.execute("""
                SELECT channel_id FROM temp_channels
                WHERE owner_id = ? AND guild_id = ?
            """, (owner_id, guild_id)).fetchone()
            return row["channel_id"] if row else None

    def get_all_temp_channels(self, guild_id: int) -> List[int]:
        """Get every temp channel id stored for a guild."""
        with self._get_conn() as conn:
            rows = conn.execute(
                "SELECT channel_id FROM temp_channels WHERE guild_id = ?", (guild_id,)
            ).fetchall()
            return [r["channel_id"] for r in rows]
