"""
MooncrestBot - Ledger Service
=============================

Load, mutate and persist user records, then run the side effects of a
tier change.

The database write is the authoritative outcome. Everything after it
(Discord tier role, Roblox rank, operator log) is best effort: failures
are logged and reported, never rolled back into the record.
"""

import asyncio
from dataclasses import dataclass
from typing import List, Optional, Union

import discord

from src.core.config import config
from src.core.constants import DIFFICULTIES
from src.core.errors import InvalidArgument, NotFound
from src.core.logger import log
from src.services.database import Database, db
from src.services.ledger.ledger import apply_guide_action, apply_points_action
from src.services.ledger.models import ActionContext, PointsAction, UserRecord
from src.services.levels.policy import LevelConfig, LevelPolicy, Tier, get_level_config
from src.services.operator_log import OperatorLogger, operator_log
from src.services.roblox.rank_sync import RankSyncService
from src.utils.async_utils import create_safe_task


@dataclass
class LedgerResult:
    """Record after a mutation plus the tier before and after."""
    user: UserRecord
    action: PointsAction
    amount: int
    old_tier: Optional[Tier]
    new_tier: Optional[Tier]
    tier_changed: bool = False


class LedgerService:
    """Points and guide points mutations for every command surface."""

    def __init__(
        self,
        database: Optional[Database] = None,
        levels: Optional[LevelConfig] = None,
        rank_sync: Optional[RankSyncService] = None,
        reporter: Optional[OperatorLogger] = None,
        verified_role_id: Optional[int] = None,
    ) -> None:
        self.db = database or db
        self.levels = levels or get_level_config()
        self.rank_sync = rank_sync
        self.reporter = reporter or operator_log
        self.verified_role_id = config.VERIFIED_ROLE_ID if verified_role_id is None else verified_role_id

    # =========================================================================
    # Records
    # =========================================================================

    async def get_user(self, roblox_id: int) -> Optional[UserRecord]:
        row = await asyncio.to_thread(self.db.get_user, roblox_id)
        return UserRecord.from_row(row) if row else None

    async def get_user_by_discord(self, discord_id: int) -> Optional[UserRecord]:
        row = await asyncio.to_thread(self.db.get_user_by_discord, discord_id)
        return UserRecord.from_row(row) if row else None

    async def require_linked(self, discord_id: int) -> UserRecord:
        """
        Record linked to a Discord account.

        Raises:
            NotFound: The account is not verified.
        """
        user = await self.get_user_by_discord(discord_id)
        if user is None or not user.is_verified:
            raise NotFound("That member is not verified")
        return user

    async def load_or_create(self, roblox_id: int, username: str = "") -> UserRecord:
        """Existing record, or a zeroed one for a first grant."""
        user = await self.get_user(roblox_id)
        if user is None:
            user = UserRecord.new(roblox_id, username)
            log.tree("Ledger Record Created", [
                ("Roblox ID", str(roblox_id)),
                ("Username", username or "Unknown"),
            ], emoji="🆕")
        elif username and user.roblox_username != username:
            user.roblox_username = username
        return user

    async def save(self, user: UserRecord) -> None:
        await asyncio.to_thread(self.db.save_user, user.to_row())

    # =========================================================================
    # Validation
    # =========================================================================

    def validate_context(self, context: Optional[ActionContext]) -> ActionContext:
        """
        Canonicalize mountain and difficulty, rejecting unknown values.

        Raises:
            InvalidArgument: Unknown mountain or difficulty.
        """
        context = context or ActionContext()
        mountain = context.mountain_name
        if mountain:
            canonical = self.levels.canonical_mountain(mountain)
            if canonical is None:
                raise InvalidArgument(f"Invalid mountain name: **{mountain}**. Pick one from the list.")
            mountain = canonical

        difficulty = context.difficulty
        if difficulty:
            matches = [d for d in DIFFICULTIES if d.lower() == difficulty.strip().lower()]
            if not matches:
                raise InvalidArgument(f"Invalid difficulty: **{difficulty}**. Use {', '.join(DIFFICULTIES)}.")
            difficulty = matches[0]

        return ActionContext(mountain_name=mountain, difficulty=difficulty)

    # =========================================================================
    # Climbing Points
    # =========================================================================

    async def apply_points(
        self,
        roblox_id: int,
        action: Union[PointsAction, str],
        amount: int,
        context: Optional[ActionContext] = None,
        username: str = "",
        actor: Optional[discord.abc.User] = None,
        member: Optional[discord.Member] = None,
        reason: Optional[str] = None,
    ) -> LedgerResult:
        """
        Apply a climbing points action and persist the whole record.

        Raises:
            InvalidArgument: Bad action, amount, mountain or difficulty.
                Raised before anything is written.
        """
        context = self.validate_context(context)
        user = await self.load_or_create(roblox_id, username)
        old_xp = user.xp
        old_tier = self.levels.climbing.get_level(old_xp)

        apply_points_action(user, action, amount, context)
        await self.save(user)

        result = LedgerResult(
            user=user,
            action=PointsAction(action),
            amount=amount,
            old_tier=old_tier,
            new_tier=self.levels.climbing.get_level(user.xp),
            tier_changed=self.levels.climbing.has_leveled_up(old_xp, user.xp),
        )

        log.tree("Points Updated", [
            ("User", f"{user.roblox_username} ({user.roblox_id})"),
            ("Action", result.action.value),
            ("Amount", str(amount)),
            ("XP", str(user.xp)),
            ("Expeditions", str(user.expeditions)),
            ("Tier", _tier_change_str(result)),
        ], emoji="📊")

        if result.tier_changed:
            await self._on_tier_change(result, self.levels.climbing, member, sync_rank=True)

        create_safe_task(
            self.reporter.log_points_change(
                actor, user.roblox_username or str(user.roblox_id), "Lunar Points",
                result.action.value, amount, user.xp,
                old_tier=_tier_name(old_tier), new_tier=_tier_name(result.new_tier),
                mountain=context.mountain_name, difficulty=context.difficulty,
                expeditions=user.expeditions if result.action in (PointsAction.ADD, PointsAction.REMOVE) else None,
                reason=reason,
            ),
            "Points Log",
        )
        return result

    # =========================================================================
    # Guide Points
    # =========================================================================

    async def apply_guide(
        self,
        roblox_id: int,
        action: Union[PointsAction, str],
        amount: int,
        username: str = "",
        actor: Optional[discord.abc.User] = None,
        member: Optional[discord.Member] = None,
        reason: Optional[str] = None,
    ) -> LedgerResult:
        """Apply a guide points action and persist the whole record."""
        user = await self.load_or_create(roblox_id, username)
        old_points = user.guide_points
        old_tier = self.levels.guide.get_level(old_points)

        apply_guide_action(user, action, amount)
        await self.save(user)

        result = LedgerResult(
            user=user,
            action=PointsAction(action),
            amount=amount,
            old_tier=old_tier,
            new_tier=self.levels.guide.get_level(user.guide_points),
            tier_changed=self.levels.guide.has_leveled_up(old_points, user.guide_points),
        )

        log.tree("Guide Points Updated", [
            ("User", f"{user.roblox_username} ({user.roblox_id})"),
            ("Action", result.action.value),
            ("Amount", str(amount)),
            ("Guide Points", str(user.guide_points)),
            ("Tier", _tier_change_str(result)),
        ], emoji="🧭")

        if result.tier_changed:
            await self._on_tier_change(result, self.levels.guide, member, sync_rank=False)

        create_safe_task(
            self.reporter.log_points_change(
                actor, user.roblox_username or str(user.roblox_id), "Guide Points",
                result.action.value, amount, user.guide_points,
                old_tier=_tier_name(old_tier), new_tier=_tier_name(result.new_tier),
                reason=reason,
            ),
            "Guide Points Log",
        )
        return result

    # =========================================================================
    # Tier Change Side Effects
    # =========================================================================

    async def _on_tier_change(
        self,
        result: LedgerResult,
        policy: LevelPolicy,
        member: Optional[discord.Member],
        sync_rank: bool,
    ) -> None:
        user = result.user
        log.tree("Tier Changed", [
            ("User", f"{user.roblox_username} ({user.roblox_id})"),
            ("Table", policy.label),
            ("Change", _tier_change_str(result)),
        ], emoji="🎉")

        if member is not None:
            try:
                await policy.sync_member_role(member, result.new_tier)
            except discord.HTTPException as e:
                log.error_tree("Tier Role Sync Failed", e, [
                    ("Member", f"{member.name} ({member.id})"),
                    ("Table", policy.label),
                ])
                create_safe_task(
                    self.reporter.log_failure("Tier Role Sync Failed", e, member=str(member.id), table=policy.label),
                    "Tier Role Failure Report",
                )

        if sync_rank and self.rank_sync is not None:
            self.dispatch_rank_sync(user)

    def dispatch_rank_sync(self, user: UserRecord) -> asyncio.Task:
        """Detached Roblox rank sync; failures are logged and reported."""
        async def report(error: BaseException) -> None:
            await self.reporter.log_failure(
                "Roblox Rank Sync Failed", error,
                roblox_id=str(user.roblox_id), username=user.roblox_username,
            )

        return create_safe_task(
            self.rank_sync.sync_user(user.roblox_id, user.xp),
            f"Rank Sync {user.roblox_id}",
            on_error=report,
        )

    # =========================================================================
    # Verification
    # =========================================================================

    async def link_account(self, discord_id: int, roblox_id: int, username: str) -> UserRecord:
        """
        Link a Discord account to a Roblox account, creating the record on
        first verification.

        Raises:
            InvalidArgument: Either side is already linked elsewhere.
        """
        existing = await self.get_user_by_discord(discord_id)
        if existing is not None and existing.roblox_id != roblox_id:
            raise InvalidArgument(
                f"You are already verified as **{existing.roblox_username}**. Ask staff to unlink first."
            )

        user = await self.load_or_create(roblox_id, username)
        if user.discord_id and user.discord_id != discord_id:
            raise InvalidArgument(f"**{username}** is already linked to another Discord account.")

        user.discord_id = discord_id
        user.roblox_username = username
        user.is_verified = True
        await self.save(user)

        log.tree("Account Linked", [
            ("Discord ID", str(discord_id)),
            ("Roblox", f"{username} ({roblox_id})"),
        ], emoji="🔗")
        return user

    async def refresh_username(self, user: UserRecord, username: str) -> UserRecord:
        if user.roblox_username != username:
            user.roblox_username = username
            await self.save(user)
        return user

    async def restore_member(self, member: discord.Member, user: UserRecord) -> List[str]:
        """
        Give a linked member the verified role and the tier roles their
        record earns.

        Returns:
            Labels of the roles that changed.
        """
        restored = []
        if self.verified_role_id:
            role = member.guild.get_role(self.verified_role_id)
            if role is not None and role not in member.roles:
                await member.add_roles(role, reason="Roblox verification")
                restored.append("verified")

        climbing, guide = self.levels.climbing, self.levels.guide
        if await climbing.sync_member_role(member, climbing.get_level(user.xp)):
            restored.append(climbing.label)
        if await guide.sync_member_role(member, guide.get_level(user.guide_points)):
            restored.append(guide.label)
        return restored

    async def unlink(self, roblox_id: int) -> bool:
        """Delete a record. The only path that removes a user."""
        return await asyncio.to_thread(self.db.delete_user, roblox_id)


def _tier_name(tier: Optional[Tier]) -> Optional[str]:
    return tier.name if tier else None


def _tier_change_str(result: LedgerResult) -> str:
    old = _tier_name(result.old_tier) or "None"
    new = _tier_name(result.new_tier) or "None"
    return new if old == new else f"{old} → {new}"
