"""
MooncrestBot - Ledger Models
============================

User progression record and the closed set of points actions.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


# =============================================================================
# Actions
# =============================================================================

class PointsAction(str, Enum):
    """Mutation applied to a points total."""

    ADD = "add"
    REMOVE = "remove"
    SET = "set"
    BONUS = "bonus"


@dataclass
class ActionContext:
    """Optional expedition details attached to add/remove."""
    mountain_name: Optional[str] = None
    difficulty: Optional[str] = None


# =============================================================================
# User Record
# =============================================================================

@dataclass
class UserRecord:
    """Per-user progression state, keyed by Roblox id."""
    roblox_id: int
    discord_id: Optional[int] = None
    roblox_username: str = ""

    xp: int = 0
    weekly_xp: int = 0
    monthly_xp: int = 0

    guide_points: int = 0
    weekly_guide_points: int = 0
    monthly_guide_points: int = 0

    sar_points: int = 0

    expeditions: int = 0
    weekly_expeditions: int = 0
    monthly_expeditions: int = 0

    expedition_history: Dict[str, int] = field(default_factory=dict)
    difficulty_stats: Dict[str, int] = field(default_factory=dict)

    is_verified: bool = False
    achievements: List[str] = field(default_factory=list)

    created_at: Optional[int] = None

    @classmethod
    def new(cls, roblox_id: int, roblox_username: str = "") -> "UserRecord":
        """Zeroed record for a first grant or first verification."""
        return cls(roblox_id=roblox_id, roblox_username=roblox_username)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "UserRecord":
        known = {k: v for k, v in row.items() if k in cls.__dataclass_fields__}
        record = cls(**known)
        record.expedition_history = dict(record.expedition_history or {})
        record.difficulty_stats = dict(record.difficulty_stats or {})
        record.achievements = list(record.achievements or [])
        return record

    def to_row(self) -> Dict[str, Any]:
        row = asdict(self)
        if row["created_at"] is None:
            del row["created_at"]
        return row
