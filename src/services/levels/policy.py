"""
MooncrestBot - Level Policy
===========================

Maps a cumulative points total to a named tier and keeps a member's
Discord tier role in line with it.

Tier tables come from config/levels.json:

    {
        "levels": [{"name", "threshold", "role_id", "rank_role_id"}, ...],
        "guide_levels": [{"name", "threshold", "role_id"}, ...],
        "mountains": ["Mount Everest", ...]
    }
"""

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple

import discord

from src.core.config import config, load_levels_file
from src.core.logger import logger


@dataclass(frozen=True)
class Tier:
    """One row of a tier table."""
    name: str
    threshold: int
    role_id: int = 0
    rank_role_id: int = 0


class LevelPolicy:
    """Ordered tier table for one points track."""

    def __init__(self, tiers: Iterable[Tier], label: str = "climbing") -> None:
        # Stable sort keeps file order for equal thresholds
        self.tiers: List[Tier] = sorted(tiers, key=lambda t: t.threshold)
        self.label = label

    @classmethod
    def from_entries(cls, entries: Iterable[Dict[str, Any]], label: str) -> "LevelPolicy":
        tiers = [
            Tier(
                name=str(entry["name"]),
                threshold=int(entry.get("threshold", 0)),
                role_id=int(entry.get("role_id") or 0),
                rank_role_id=int(entry.get("rank_role_id") or 0),
            )
            for entry in entries
        ]
        return cls(tiers, label)

    def get_level(self, points: int) -> Optional[Tier]:
        """
        Highest tier whose threshold is <= points.

        Equal thresholds resolve to the later tier. Points below every
        threshold map to the first tier; an empty table gives None.
        """
        if not self.tiers:
            return None
        current = self.tiers[0]
        for tier in self.tiers:
            if points >= tier.threshold:
                current = tier
            else:
                break
        return current

    def has_leveled_up(self, old_points: int, new_points: int) -> bool:
        """True on any tier change, promotion or demotion."""
        old = self.get_level(old_points)
        new = self.get_level(new_points)
        return (old.name if old else None) != (new.name if new else None)

    def next_tier(self, points: int) -> Optional[Tier]:
        """First tier above the current one, or None at the top."""
        for tier in self.tiers:
            if tier.threshold > points:
                return tier
        return None

    @property
    def role_ids(self) -> FrozenSet[int]:
        """Discord role ids owned by this table."""
        return frozenset(t.role_id for t in self.tiers if t.role_id)

    async def sync_member_role(self, member: discord.Member, tier: Optional[Tier]) -> bool:
        """
        Give the member exactly the target tier role from this table.

        Roles outside the table are never touched.

        Returns:
            True if any role was added or removed.
        """
        target_id = tier.role_id if tier else 0
        owned = self.role_ids
        stale = [r for r in member.roles if r.id in owned and r.id != target_id]
        has_target = any(r.id == target_id for r in member.roles)

        changed = False
        if stale:
            await member.remove_roles(*stale, reason=f"{self.label.title()} tier change")
            changed = True

        if target_id and not has_target:
            role = member.guild.get_role(target_id)
            if role is None:
                logger.tree("Tier Role Missing", [
                    ("Table", self.label),
                    ("Tier", tier.name),
                    ("Role ID", str(target_id)),
                ], emoji="⚠️")
            else:
                await member.add_roles(role, reason=f"{self.label.title()} tier: {tier.name}")
                changed = True

        if changed:
            logger.tree("Tier Role Synced", [
                ("Member", f"{member.name} ({member.id})"),
                ("Table", self.label),
                ("Tier", tier.name if tier else "None"),
                ("Removed", str(len(stale))),
            ], emoji="🎖️")
        return changed


@dataclass
class LevelConfig:
    """Everything loaded from the levels file."""
    climbing: LevelPolicy
    guide: LevelPolicy
    mountains: List[str] = field(default_factory=list)

    def canonical_mountain(self, name: str) -> Optional[str]:
        """Configured spelling of a mountain, matched case-insensitively."""
        wanted = name.strip().lower()
        for mountain in self.mountains:
            if mountain.lower() == wanted:
                return mountain
        return None


def load_level_config(path: Optional[str] = None) -> LevelConfig:
    """Build the climbing and guide policies from the levels file."""
    path = path or config.LEVELS_PATH
    data = load_levels_file(path)
    level_config = LevelConfig(
        climbing=LevelPolicy.from_entries(data.get("levels", []), "climbing"),
        guide=LevelPolicy.from_entries(data.get("guide_levels", []), "guide"),
        mountains=[str(m) for m in data.get("mountains", [])],
    )
    logger.tree("Level Config Loaded", [
        ("Path", str(path)),
        ("Climbing Tiers", str(len(level_config.climbing.tiers))),
        ("Guide Tiers", str(len(level_config.guide.tiers))),
        ("Mountains", str(len(level_config.mountains))),
    ], emoji="📈")
    return level_config


_level_config: Optional[LevelConfig] = None


def get_level_config() -> LevelConfig:
    """Process-wide level config, loaded on first use."""
    global _level_config
    if _level_config is None:
        _level_config = load_level_config()
    return _level_config


def tier_progress(policy: LevelPolicy, points: int) -> Tuple[Optional[Tier], Optional[Tier]]:
    """Current and next tier for display."""
    return policy.get_level(points), policy.next_tier(points)
