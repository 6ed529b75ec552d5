"""
MooncrestBot - Ledger Package
=============================

Per-user progression state and points arithmetic.
"""

from src.services.ledger.ledger import apply_guide_action, apply_points_action
from src.services.ledger.models import ActionContext, PointsAction, UserRecord
from src.services.ledger.service import LedgerResult, LedgerService

__all__ = [
    "ActionContext",
    "LedgerResult",
    "LedgerService",
    "PointsAction",
    "UserRecord",
    "apply_guide_action",
    "apply_points_action",
]
