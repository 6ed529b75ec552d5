"""
MooncrestBot - Database Hall of Fame Mixin
==========================================

Manually recorded weekly/monthly winners. One row per period and
category ("host" or "climber"); recording again overwrites.
"""

import time
from typing import Any, Dict, List

from src.core.logger import logger


class HallOfFameMixin:
    """Mixin for hall of fame records."""

    def record_hall_of_fame(
        self,
        period_key: str,
        period_type: str,
        year: int,
        category: str,
        user_id: int,
        value: int,
        reason: str,
        recorded_by: int,
    ) -> None:
        """Insert or overwrite a winner for a period and category."""
        with self._get_conn() as conn:
            conn.execute("""
                INSERT OR REPLACE INTO hall_of_fame (
                    period_key, period_type, year, category, user_id,
                    value, reason, recorded_by, recorded_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                period_key, period_type, year, category, user_id,
                value, reason, recorded_by, int(time.time()),
            ))

        logger.tree("DB: Hall of Fame Recorded", [
            ("Period", period_key),
            ("Category", category),
            ("User ID", str(user_id)),
            ("Value", str(value)),
        ], emoji="🏆")

    def get_hall_of_fame_year(self, year: int) -> List[Dict[str, Any]]:
        """Get every record for a year, oldest period first."""
        with self._get_conn() as conn:
            rows = conn.execute("""
                SELECT * FROM hall_of_fame
                WHERE year = ?
                ORDER BY period_type DESC, period_key ASC, category ASC
            """, (year,)).fetchall()
            return [dict(r) for r in rows]
