"""
MooncrestBot - Roblox Package
=============================

Roblox account lookup and group rank sync.
"""

from src.services.roblox.client import (
    GroupRank,
    LegacyGroupsBackend,
    OpenCloudBackend,
    RankBackend,
    RobloxUser,
    create_rank_backend,
)
from src.services.roblox.rank_sync import RankSyncService, SyncResult, SyncStatus

__all__ = [
    "GroupRank",
    "LegacyGroupsBackend",
    "OpenCloudBackend",
    "RankBackend",
    "RobloxUser",
    "create_rank_backend",
    "RankSyncService",
    "SyncResult",
    "SyncStatus",
]
