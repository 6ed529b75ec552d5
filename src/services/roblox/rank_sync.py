"""
MooncrestBot - Roblox Rank Sync
===============================

Pushes a user's climbing tier to their Roblox group rank.

Policy:
    - Not in the group: nothing to do
    - Group rank above the tier range (staff, boosters, donors): skipped
    - Already on the tier's role: nothing to do
    - Otherwise: set the role
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from src.core.config import config
from src.core.constants import RANK_SYNC_DELAY
from src.core.errors import ExternalServiceFailure
from src.core.logger import log
from src.services.levels.policy import LevelPolicy
from src.services.roblox.client import RankBackend


class SyncStatus(str, Enum):
    UPDATED = "updated"
    ALREADY_CORRECT = "already_correct"
    SKIPPED_SPECIAL_ROLE = "skipped_special_role"
    NOT_IN_GROUP = "not_in_group"
    NO_MAPPING = "no_mapping"
    FAILED = "failed"


@dataclass
class SyncResult:
    """Outcome of one rank sync."""
    roblox_id: int
    status: SyncStatus
    message: str

    @property
    def success(self) -> bool:
        return self.status in (SyncStatus.UPDATED, SyncStatus.ALREADY_CORRECT)


class RankSyncService:
    """Applies the skip policy and writes ranks through a backend."""

    def __init__(
        self,
        backend: RankBackend,
        policy: LevelPolicy,
        group_id: Optional[int] = None,
        max_tier_rank: Optional[int] = None,
    ) -> None:
        self.backend = backend
        self.policy = policy
        self.group_id = group_id if group_id is not None else config.ROBLOX_GROUP_ID
        self.max_tier_rank = max_tier_rank if max_tier_rank is not None else config.ROBLOX_MAX_TIER_RANK

    async def sync_user(self, roblox_id: int, xp: int) -> SyncResult:
        """
        Bring one user's group rank in line with their xp tier.

        Raises:
            ExternalServiceFailure: Roblox refused or could not be reached.
        """
        tier = self.policy.get_level(xp)
        if tier is None or not tier.rank_role_id:
            return SyncResult(roblox_id, SyncStatus.NO_MAPPING, f"No Roblox role mapped for {tier.name if tier else 'tier'}")

        current = await self.backend.get_rank(roblox_id, self.group_id)
        if current is None:
            log.tree("Rank Sync Skipped", [
                ("Roblox ID", str(roblox_id)),
                ("Reason", "Not in group"),
            ], emoji="⏭️")
            return SyncResult(roblox_id, SyncStatus.NOT_IN_GROUP, "User not in group")

        if current.rank > self.max_tier_rank:
            log.tree("Rank Sync Skipped", [
                ("Roblox ID", str(roblox_id)),
                ("Role", f"{current.role_name} (rank {current.rank})"),
                ("Reason", "Special role"),
            ], emoji="⏭️")
            return SyncResult(roblox_id, SyncStatus.SKIPPED_SPECIAL_ROLE, "Skipped - user has special role")

        if current.role_id == tier.rank_role_id:
            return SyncResult(roblox_id, SyncStatus.ALREADY_CORRECT, f"Already {tier.name}")

        await self.backend.set_rank(roblox_id, self.group_id, tier.rank_role_id)

        log.tree("Rank Synced", [
            ("Roblox ID", str(roblox_id)),
            ("From", current.role_name),
            ("To", tier.name),
        ], emoji="🎮")
        return SyncResult(roblox_id, SyncStatus.UPDATED, f"Rank updated from {current.role_name} to {tier.name}")

    async def sync_many(
        self,
        users: Iterable[Tuple[int, int]],
        delay: float = RANK_SYNC_DELAY,
    ) -> List[SyncResult]:
        """
        Sync (roblox_id, xp) pairs one at a time, pausing between writes.

        A failure for one user is recorded and the run continues.
        """
        results: List[SyncResult] = []
        for index, (roblox_id, xp) in enumerate(users):
            if index and delay:
                await asyncio.sleep(delay)
            try:
                results.append(await self.sync_user(roblox_id, xp))
            except ExternalServiceFailure as e:
                log.tree("Rank Sync Failed", [
                    ("Roblox ID", str(roblox_id)),
                    ("Reason", e.reason.value),
                    ("Error", str(e)[:100]),
                ], emoji="❌")
                results.append(SyncResult(roblox_id, SyncStatus.FAILED, str(e)))

        log.tree("Rank Sync Batch Complete", [
            ("Total", str(len(results))),
            ("Updated", str(sum(1 for r in results if r.status == SyncStatus.UPDATED))),
            ("Skipped", str(sum(1 for r in results if not r.success and r.status != SyncStatus.FAILED))),
            ("Failed", str(sum(1 for r in results if r.status == SyncStatus.FAILED))),
        ], emoji="🎮")
        return results
