"""
MooncrestBot - Database Periods Mixin
=====================================

Run markers for weekly/monthly resets.

A marker moves running -> done, or running -> failed when the run did
not reset every metric. A failed marker can be claimed again; the
announced flag and the list of fields already reset survive, so a retry
neither posts a second announcement nor zeroes a field twice.
"""

import json
import time
from typing import Any, Dict, List, Optional

from src.core.logger import logger


RUN_RUNNING = "running"
RUN_DONE = "done"
RUN_FAILED = "failed"


class PeriodsMixin:
    """Mixin for period reset bookkeeping."""

    def claim_period_run(self, period_key: str) -> bool:
        """
        Record that a period reset is running.

        Returns:
            False if the period is running or already finished.
        """
        now = int(time.time())
        with self._get_conn() as conn:
            cur = conn.execute(
                "INSERT OR IGNORE INTO period_runs (period_key, ran_at, status) VALUES (?, ?, ?)",
                (period_key, now, RUN_RUNNING),
            )
            claimed = cur.rowcount > 0
            if not claimed:
                cur = conn.execute(
                    "UPDATE period_runs SET status = ?, ran_at = ? WHERE period_key = ? AND status = ?",
                    (RUN_RUNNING, now, period_key, RUN_FAILED),
                )
                claimed = cur.rowcount > 0
                if claimed:
                    logger.tree("DB: Period Run Retried", [
                        ("Period", period_key),
                    ], emoji="🔁")

        if not claimed:
            logger.tree("DB: Period Already Ran", [
                ("Period", period_key),
            ], emoji="⏭️")
        return claimed

    def get_period_run(self, period_key: str) -> Optional[Dict[str, Any]]:
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT * FROM period_runs WHERE period_key = ?", (period_key,)
            ).fetchone()
            if not row:
                return None
            data = dict(row)
            data["announced"] = bool(data["announced"])
            data["reset_fields"] = json.loads(data["reset_fields"] or "[]")
            return data

    def mark_period_announced(self, period_key: str) -> None:
        with self._get_conn() as conn:
            conn.execute(
                "UPDATE period_runs SET announced = 1 WHERE period_key = ?", (period_key,)
            )

    def record_period_field_reset(self, period_key: str, field: str) -> None:
        """Add a field to the run's list of fields already reset."""
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT reset_fields FROM period_runs WHERE period_key = ?", (period_key,)
            ).fetchone()
            if not row:
                return
            fields: List[str] = json.loads(row["reset_fields"] or "[]")
            if field not in fields:
                fields.append(field)
            conn.execute(
                "UPDATE period_runs SET reset_fields = ? WHERE period_key = ?",
                (json.dumps(fields), period_key),
            )

    def finish_period_run(self, period_key: str, status: str) -> None:
        """Close a claimed run as done or failed."""
        with self._get_conn() as conn:
            conn.execute(
                "UPDATE period_runs SET status = ? WHERE period_key = ?", (status, period_key)
            )

        logger.tree("DB: Period Run Finished", [
            ("Period", period_key),
            ("Status", status),
        ], emoji="🏁" if status == RUN_DONE else "⚠️")
