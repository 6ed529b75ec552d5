"""
MooncrestBot - Periods Package
==============================

Weekly/monthly champion announcements and rolling-window resets.
"""

from src.services.periods.service import (
    MONTHLY,
    PERIOD_METRICS,
    WEEKLY,
    Leader,
    PeriodResetService,
    PeriodSnapshot,
    due_periods,
    period_key,
)

__all__ = [
    "MONTHLY",
    "PERIOD_METRICS",
    "WEEKLY",
    "Leader",
    "PeriodResetService",
    "PeriodSnapshot",
    "due_periods",
    "period_key",
]
