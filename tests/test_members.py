"""
Tests for restoring returning members and resolving staff command targets.
"""

from types import SimpleNamespace

import pytest

from src.core.errors import NotFound
from src.handlers.members import MembersHandler, restore_returning_member
from src.services.ledger import LedgerService, UserRecord
from src.services.roblox import RobloxUser
from src.utils.targets import find_target_user

from conftest import FakeGuild, FakeMember, FakeRole


VERIFIED_ROLE = 9


@pytest.fixture
def ledger(database, level_config, reporter):
    return LedgerService(
        database=database, levels=level_config, reporter=reporter, verified_role_id=VERIFIED_ROLE,
    )


@pytest.fixture
def guild():
    roles = [FakeRole(VERIFIED_ROLE, "Verified")] + [FakeRole(i) for i in (11, 12, 13, 14, 21, 22, 23)]
    return FakeGuild(guild_id=1, roles=roles)


async def link(ledger, discord_id, roblox_id, username, xp=0, guide_points=0):
    user = await ledger.link_account(discord_id, roblox_id, username)
    user.xp = xp
    user.guide_points = guide_points
    await ledger.save(user)
    return user


class FakeBackend:
    def __init__(self, users=None):
        self.users = {u.name.lower(): u for u in (users or [])}

    async def lookup_user(self, username):
        return self.users.get(username.lower())


# =============================================================================
# Member Join
# =============================================================================

class TestRestoreReturningMember:
    async def test_verified_member_gets_roles_and_nickname(self, ledger, guild):
        await link(ledger, 555, 42, "alpine", xp=150, guide_points=60)
        member = guild.add_member(FakeMember(555, "alpine"))

        assert await restore_returning_member(ledger, member) is True
        assert sorted(member.added) == [VERIFIED_ROLE, 12, 22]
        assert member.nick == "alpine (@alpine)"

    async def test_stale_tier_role_is_replaced(self, ledger, guild):
        await link(ledger, 555, 42, "alpine", xp=600)
        member = guild.add_member(FakeMember(555, "alpine", roles=[FakeRole(12)]))

        await restore_returning_member(ledger, member)
        assert member.removed == [12]
        assert 13 in member.added

    async def test_unverified_record_is_left_alone(self, ledger, guild):
        await ledger.save(UserRecord(roblox_id=43, discord_id=556, roblox_username="ghost", xp=150))
        member = guild.add_member(FakeMember(556, "ghost"))

        assert await restore_returning_member(ledger, member) is False
        assert member.added == []
        assert member.edits == []

    async def test_unknown_member_is_left_alone(self, ledger, guild):
        member = guild.add_member(FakeMember(557, "newcomer"))

        assert await restore_returning_member(ledger, member) is False
        assert member.added == []

    async def test_bots_are_ignored_on_join(self, ledger, guild):
        await link(ledger, 555, 42, "alpine", xp=150)
        member = guild.add_member(FakeMember(555, "alpine"))
        member.bot = True

        await MembersHandler(SimpleNamespace(ledger=ledger)).on_member_join(member)
        assert member.added == []

    async def test_join_restores_member(self, ledger, guild):
        await link(ledger, 555, 42, "alpine", xp=150)
        member = guild.add_member(FakeMember(555, "alpine"))

        await MembersHandler(SimpleNamespace(ledger=ledger)).on_member_join(member)
        assert VERIFIED_ROLE in member.added
        assert member.edits == ["alpine (@alpine)"]


# =============================================================================
# Verified Listing
# =============================================================================

class TestVerifiedUsers:
    async def test_only_linked_verified_users_sorted_by_name(self, ledger, database):
        await link(ledger, 555, 42, "Bravo")
        await link(ledger, 556, 43, "alpine")
        await ledger.save(UserRecord(roblox_id=44, discord_id=557, roblox_username="aaa"))
        await ledger.save(UserRecord(roblox_id=45, roblox_username="unlinked", is_verified=True))

        rows = database.get_verified_users()
        assert [r["roblox_username"] for r in rows] == ["alpine", "Bravo"]


# =============================================================================
# Staff Targets
# =============================================================================

class TestFindTargetUser:
    async def test_mention_resolves_linked_record(self, ledger):
        await link(ledger, 123456789012345678, 42, "alpine")
        bot = SimpleNamespace(ledger=ledger, rank_backend=FakeBackend())

        user = await find_target_user(bot, "<@123456789012345678>")
        assert user.roblox_id == 42

    async def test_roblox_username_resolves_record(self, ledger):
        await link(ledger, 555, 42, "alpine")
        bot = SimpleNamespace(ledger=ledger, rank_backend=FakeBackend([RobloxUser(42, "alpine")]))

        user = await find_target_user(bot, "Alpine")
        assert user.discord_id == 555

    async def test_unknown_target_raises(self, ledger):
        bot = SimpleNamespace(ledger=ledger, rank_backend=FakeBackend())

        with pytest.raises(NotFound):
            await find_target_user(bot, "nobody")
        with pytest.raises(NotFound):
            await find_target_user(bot, "123456789012345678")
