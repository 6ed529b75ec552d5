"""
MooncrestBot - Database Users Mixin
===================================

Points ledger storage. One row per Roblox account.

Writes are whole-record replacements: the caller loads a record, mutates
it and hands the full row back, so map keys removed in memory are gone
from storage too.
"""

import json
import time
from typing import Any, Dict, List, Optional

from src.core.logger import logger


# Numeric columns that can be ranked or reset
RANKABLE_FIELDS = frozenset({
    "xp",
    "weekly_xp",
    "monthly_xp",
    "guide_points",
    "weekly_guide_points",
    "monthly_guide_points",
    "sar_points",
    "expeditions",
    "weekly_expeditions",
    "monthly_expeditions",
})

_JSON_FIELDS = ("expedition_history", "difficulty_stats", "achievements")

_USER_COLUMNS = (
    "roblox_id",
    "discord_id",
    "roblox_username",
    "xp",
    "weekly_xp",
    "monthly_xp",
    "guide_points",
    "weekly_guide_points",
    "monthly_guide_points",
    "sar_points",
    "expeditions",
    "weekly_expeditions",
    "monthly_expeditions",
    "expedition_history",
    "difficulty_stats",
    "achievements",
    "is_verified",
    "created_at",
    "updated_at",
)


def _check_field(field: str) -> str:
    if field not in RANKABLE_FIELDS:
        raise ValueError(f"Unknown user field: {field}")
    return field


def _decode_row(row) -> Dict[str, Any]:
    data = dict(row)
    for key in _JSON_FIELDS:
        data[key] = json.loads(data[key]) if data.get(key) else ({} if key != "achievements" else [])
    data["is_verified"] = bool(data["is_verified"])
    return data


class UsersMixin:
    """Mixin for user record operations."""

    def get_user(self, roblox_id: int) -> Optional[Dict[str, Any]]:
        """Get a user row by Roblox id."""
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE roblox_id = ?", (roblox_id,)
            ).fetchone()
            return _decode_row(row) if row else None

    def get_user_by_discord(self, discord_id: int) -> Optional[Dict[str, Any]]:
        """Get the user row linked to a Discord account."""
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE discord_id = ?", (discord_id,)
            ).fetchone()
            return _decode_row(row) if row else None

    def save_user(self, data: Dict[str, Any]) -> None:
        """Replace the whole user row."""
        now = int(time.time())
        row = dict(data)
        row.setdefault("created_at", now)
        row["updated_at"] = now
        values = []
        for column in _USER_COLUMNS:
            value = row.get(column)
            if column in _JSON_FIELDS:
                value = json.dumps(value if value is not None else ({} if column != "achievements" else []))
            elif column == "is_verified":
                value = 1 if value else 0
            values.append(value)

        placeholders = ", ".join("?" for _ in _USER_COLUMNS)
        with self._get_conn() as conn:
            conn.execute(
                f"INSERT OR REPLACE INTO users ({', '.join(_USER_COLUMNS)}) VALUES ({placeholders})",
                values,
            )

    def delete_user(self, roblox_id: int) -> bool:
        """Delete a user row. Returns True if a row was removed."""
        with self._get_conn() as conn:
            cur = conn.execute("DELETE FROM users WHERE roblox_id = ?", (roblox_id,))
            deleted = cur.rowcount > 0

        if deleted:
            logger.tree("DB: User Deleted", [
                ("Roblox ID", str(roblox_id)),
            ], emoji="🗑️")
        return deleted

    def get_top_users(self, field: str, limit: int = 10, offset: int = 0) -> List[Dict[str, Any]]:
        """Get users ordered by a numeric field, highest first."""
        column = _check_field(field)
        with self._get_conn() as conn:
            rows = conn.execute(
                f"SELECT * FROM users ORDER BY {column} DESC, roblox_id ASC LIMIT ? OFFSET ?",
                (limit, offset),
            ).fetchall()
            return [_decode_row(r) for r in rows]

    def get_verified_users(self) -> List[Dict[str, Any]]:
        """Linked and verified users, by Roblox username."""
        with self._get_conn() as conn:
            rows = conn.execute(
                "SELECT * FROM users WHERE is_verified = 1 AND discord_id IS NOT NULL "
                "ORDER BY roblox_username COLLATE NOCASE, roblox_id"
            ).fetchall()
            return [_decode_row(r) for r in rows]

    def reset_period_field(self, field: str) -> int:
        """
        Zero a rolling-window field on every row where it is non-zero.

        Returns:
            Number of rows written.
        """
        column = _check_field(field)
        with self._get_conn() as conn:
            cur = conn.execute(
                f"UPDATE users SET {column} = 0, updated_at = ? WHERE {column} > 0",
                (int(time.time()),),
            )
            return cur.rowcount

    def get_user_count(self) -> int:
        """Count all user rows."""
        with self._get_conn() as conn:
            return conn.execute("SELECT COUNT(*) FROM users").fetchone()[0]
