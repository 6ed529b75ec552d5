"""
MooncrestBot - Database Core
============================

SQLite file shared by every mixin: one short-lived connection per
operation, schema creation, and a health flag that trips on corruption.

Callers run these blocking methods through asyncio.to_thread.
"""

import os
import shutil
import sqlite3
import time
from contextlib import contextmanager
from typing import Generator, Optional

from src.core.config import config
from src.core.logger import logger


CORRUPTION_MARKERS = (
    "disk i/o error",
    "database disk image is malformed",
    "file is not a database",
    "file is encrypted",
)


class DatabaseUnavailableError(Exception):
    """The database file is corrupted; reads and writes are refused."""
    pass


class DatabaseCore:
    """Connection handling and schema for the bot's SQLite file."""

    def __init__(self, db_path: Optional[str] = None) -> None:
        self.db_path = db_path or config.DATABASE_PATH
        self._healthy = True
        self._corruption_reason: Optional[str] = None
        self._init_db()

    def require_healthy(self) -> None:
        """
        Stop startup when the file failed its integrity check.

        Raises:
            DatabaseUnavailableError: With the recorded corruption reason.
        """
        if self._healthy:
            return
        raise DatabaseUnavailableError(
            f"Database unusable ({self._corruption_reason or 'unknown'}). "
            "A copy was saved next to the file; restore or remove it before restarting."
        )

    def _check_integrity(self) -> bool:
        try:
            conn = sqlite3.connect(self.db_path, timeout=10.0)
            try:
                row = conn.execute("PRAGMA integrity_check").fetchone()
            finally:
                conn.close()
        except sqlite3.DatabaseError as e:
            logger.error_tree("DB Integrity Check Failed", e)
            return False
        return bool(row) and row[0] == "ok"

    def _mark_corrupted(self, reason: str) -> None:
        """Flip the health flag and keep a copy of the damaged file."""
        self._healthy = False
        self._corruption_reason = reason
        backup_path = f"{self.db_path}.corrupted.{int(time.time())}"
        try:
            shutil.copy2(self.db_path, backup_path)
        except OSError as e:
            logger.error_tree("DB Backup Failed", e)
            return
        logger.tree("Corrupted DB Copied", [
            ("Reason", reason[:100]),
            ("Copy", backup_path),
        ], emoji="💾")

    @contextmanager
    def _get_conn(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Open a connection for one operation; commit on success.

        Raises:
            DatabaseUnavailableError: The database was marked unhealthy.
            sqlite3.DatabaseError: Re-raised after rollback.
        """
        if not self._healthy:
            logger.tree("DB Operation Rejected", [
                ("Reason", self._corruption_reason or "Unhealthy"),
            ], emoji="⚠️")
            raise DatabaseUnavailableError(f"Database unavailable: {self._corruption_reason or 'unhealthy'}")

        conn = sqlite3.connect(self.db_path, timeout=10.0)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.DatabaseError as e:
            conn.rollback()
            message = str(e).lower()
            if any(marker in message for marker in CORRUPTION_MARKERS):
                logger.error_tree("Database Corruption Detected", e)
                self._mark_corrupted(str(e))
            elif not isinstance(e, sqlite3.IntegrityError):
                logger.tree("Database Error", [
                    ("Type", type(e).__name__),
                    ("Message", str(e)[:100]),
                ], emoji="⚠️")
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Create every table and index if missing."""
        if os.path.exists(self.db_path) and not self._check_integrity():
            logger.tree("DATABASE CORRUPTION DETECTED", [
                ("Path", self.db_path),
                ("Check", "PRAGMA integrity_check"),
                ("Action", "Copying file, bot will refuse to start"),
            ], emoji="🚨")
            self._mark_corrupted("integrity_check failed on startup")
            return

        with self._get_conn() as conn:
            cur = conn.cursor()

            # =====================================================================
            # Users (points ledger)
            # =====================================================================

            cur.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    roblox_id INTEGER PRIMARY KEY,
                    discord_id INTEGER UNIQUE,
                    roblox_username TEXT NOT NULL DEFAULT '',
                    xp INTEGER NOT NULL DEFAULT 0,
                    weekly_xp INTEGER NOT NULL DEFAULT 0,
                    monthly_xp INTEGER NOT NULL DEFAULT 0,
                    guide_points INTEGER NOT NULL DEFAULT 0,
                    weekly_guide_points INTEGER NOT NULL DEFAULT 0,
                    monthly_guide_points INTEGER NOT NULL DEFAULT 0,
                    sar_points INTEGER NOT NULL DEFAULT 0,
                    expeditions INTEGER NOT NULL DEFAULT 0,
                    weekly_expeditions INTEGER NOT NULL DEFAULT 0,
                    monthly_expeditions INTEGER NOT NULL DEFAULT 0,
                    expedition_history TEXT NOT NULL DEFAULT '{}',
                    difficulty_stats TEXT NOT NULL DEFAULT '{}',
                    achievements TEXT NOT NULL DEFAULT '[]',
                    is_verified INTEGER NOT NULL DEFAULT 0,
                    created_at INTEGER NOT NULL,
                    updated_at INTEGER NOT NULL
                )
            """)
            cur.execute("CREATE INDEX IF NOT EXISTS idx_users_xp ON users (xp DESC)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_users_weekly_xp ON users (weekly_xp DESC)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_users_monthly_xp ON users (monthly_xp DESC)")

            # =====================================================================
            # Giveaways
            # =====================================================================

            cur.execute("""
                CREATE TABLE IF NOT EXISTS giveaways (
                    message_id INTEGER PRIMARY KEY,
                    channel_id INTEGER NOT NULL,
                    guild_id INTEGER NOT NULL,
                    host_id INTEGER NOT NULL,
                    prize TEXT NOT NULL,
                    winner_count INTEGER NOT NULL,
                    end_time INTEGER NOT NULL,
                    sponsor_id INTEGER,
                    required_role_id INTEGER,
                    ended INTEGER NOT NULL DEFAULT 0,
                    drawing INTEGER NOT NULL DEFAULT 0,
                    drawing_at INTEGER,
                    created_at INTEGER NOT NULL
                )
            """)

            # Migration: Add drawing_at column if missing
            cur.execute("PRAGMA table_info(giveaways)")
            columns = [row[1] for row in cur.fetchall()]
            if "drawing_at" not in columns:
                cur.execute("ALTER TABLE giveaways ADD COLUMN drawing_at INTEGER")

            cur.execute("""
                CREATE INDEX IF NOT EXISTS idx_giveaways_open
                ON giveaways (ended, end_time)
            """)

            cur.execute("""
                CREATE TABLE IF NOT EXISTS giveaway_entries (
                    message_id INTEGER NOT NULL,
                    user_id INTEGER NOT NULL,
                    entered_at INTEGER NOT NULL,
                    PRIMARY KEY (message_id, user_id)
                )
            """)

            cur.execute("""
                CREATE TABLE IF NOT EXISTS giveaway_winners (
                    message_id INTEGER NOT NULL,
                    position INTEGER NOT NULL,
                    user_id INTEGER NOT NULL,
                    PRIMARY KEY (message_id, position)
                )
            """)

            # =====================================================================
            # Period resets / Hall of Fame
            # =====================================================================

            cur.execute("""
                CREATE TABLE IF NOT EXISTS period_runs (
                    period_key TEXT PRIMARY KEY,
                    ran_at INTEGER NOT NULL,
                    status TEXT NOT NULL DEFAULT 'done',
                    announced INTEGER NOT NULL DEFAULT 0,
                    reset_fields TEXT NOT NULL DEFAULT '[]'
                )
            """)

            # Migration: Add run status columns if missing
            cur.execute("PRAGMA table_info(period_runs)")
            columns = [row[1] for row in cur.fetchall()]
            if "status" not in columns:
                cur.execute("ALTER TABLE period_runs ADD COLUMN status TEXT NOT NULL DEFAULT 'done'")
            if "announced" not in columns:
                cur.execute("ALTER TABLE period_runs ADD COLUMN announced INTEGER NOT NULL DEFAULT 0")
            if "reset_fields" not in columns:
                cur.execute("ALTER TABLE period_runs ADD COLUMN reset_fields TEXT NOT NULL DEFAULT '[]'")

            cur.execute("""
                CREATE TABLE IF NOT EXISTS hall_of_fame (
                    period_key TEXT NOT NULL,
                    period_type TEXT NOT NULL,
                    year INTEGER NOT NULL,
                    category TEXT NOT NULL,
                    user_id INTEGER NOT NULL,
                    value INTEGER NOT NULL DEFAULT 0,
                    reason TEXT NOT NULL DEFAULT '',
                    recorded_by INTEGER NOT NULL,
                    recorded_at INTEGER NOT NULL,
                    PRIMARY KEY (period_key, category)
                )
            """)

            # =====================================================================
            # TempVoice
            # =====================================================================

            cur.execute("""
                CREATE TABLE IF NOT EXISTS temp_channels (
                    channel_id INTEGER PRIMARY KEY,
                    owner_id INTEGER NOT NULL,
                    guild_id INTEGER NOT NULL,
                    created_at INTEGER NOT NULL
                )
            """)

        logger.tree("Database Init", [
            ("Path", self.db_path),
            ("Status", "Ready"),
        ], emoji="✅")
