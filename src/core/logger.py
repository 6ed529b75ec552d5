"""
MooncrestBot - Logger
=====================

Tree-style console and file logging.
"""

import traceback
from datetime import datetime
from typing import List, Optional, Tuple
from zoneinfo import ZoneInfo

from src.core.config import LOGS_DIR


TIMEZONE = ZoneInfo("Asia/Jakarta")

# ANSI colors
RESET = "\033[0m"
BOLD = "\033[1m"
RED = "\033[91m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
BLUE = "\033[94m"
CYAN = "\033[96m"
GRAY = "\033[90m"

Details = Optional[List[Tuple[str, str]]]


class Logger:
    """Tree-style logger with colors."""

    def __init__(self):
        self.log_file = LOGS_DIR / "bot.log"
        self.error_file = LOGS_DIR / "bot_error.log"

    def _timestamp(self) -> str:
        """Get formatted timestamp."""
        now = datetime.now(TIMEZONE)
        return now.strftime("%I:%M:%S %p %Z")

    def _write_file(self, message: str, error: bool = False) -> None:
        """Write to log file."""
        try:
            with open(self.error_file if error else self.log_file, "a", encoding="utf-8") as f:
                f.write(message + "\n")
        except OSError:
            pass

    def _format_tree(self, items: List[Tuple[str, str]]) -> str:
        """Format items as a tree."""
        if not items:
            return ""
        lines = []
        for i, (key, value) in enumerate(items):
            prefix = "└─" if i == len(items) - 1 else "├─"
            lines.append(f"  {prefix} {key}: {value}")
        return "\n".join(lines)

    def _emit(self, color: str, emoji: str, title: str, items: Details, error: bool = False) -> None:
        timestamp = self._timestamp()
        tree_str = self._format_tree(items or [])

        console_msg = f"{GRAY}[{timestamp}]{RESET} {color}{emoji}{RESET} {BOLD}{title}{RESET}"
        if tree_str:
            console_msg += f"\n{CYAN}{tree_str}{RESET}"
        print(console_msg)

        file_msg = f"[{timestamp}] {emoji} {title}"
        if tree_str:
            file_msg += f"\n{tree_str}"
        self._write_file(file_msg, error=error)

    def tree(self, title: str, items: List[Tuple[str, str]], emoji: str = "ℹ️") -> None:
        """Log with tree format."""
        self._emit("", emoji, title, items)

    def info(self, message: str, details: Details = None) -> None:
        """Log info message."""
        self._emit(BLUE, "ℹ️", message, details)

    def success(self, message: str, details: Details = None) -> None:
        """Log success message."""
        self._emit(GREEN, "✅", message, details)

    def warning(self, message: str, details: Details = None) -> None:
        """Log warning message."""
        self._emit(YELLOW, "⚠️", message, details, error=True)

    def error(self, message: str, details: Details = None) -> None:
        """Log error message."""
        self._emit(RED, "❌", message, details, error=True)

    def error_tree(self, title: str, error: BaseException, details: Details = None) -> None:
        """
        Log an exception with its context and a short traceback.

        The traceback only goes to the error file; the console gets the
        one-line summary.
        """
        items = list(details or [])
        items.append(("Error Type", type(error).__name__))
        items.append(("Error", str(error)[:200]))
        self._emit(RED, "❌", title, items, error=True)

        tb = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        if tb.strip():
            self._write_file(tb.rstrip(), error=True)


log = Logger()
logger = log
