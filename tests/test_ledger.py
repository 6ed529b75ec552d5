"""
Tests for the points ledger arithmetic and the ledger service.
"""

import pytest

from src.core.errors import InvalidArgument, NotFound
from src.services.ledger import (
    ActionContext,
    LedgerService,
    PointsAction,
    UserRecord,
    apply_guide_action,
    apply_points_action,
)

from conftest import FakeGuild, FakeMember, FakeRole


EVEREST_HARD = ActionContext(mountain_name="Everest", difficulty="Hard")


def snapshot(user: UserRecord) -> dict:
    return {
        "xp": user.xp,
        "weekly_xp": user.weekly_xp,
        "monthly_xp": user.monthly_xp,
        "expeditions": user.expeditions,
        "weekly_expeditions": user.weekly_expeditions,
        "monthly_expeditions": user.monthly_expeditions,
        "expedition_history": dict(user.expedition_history),
        "difficulty_stats": dict(user.difficulty_stats),
    }


# =============================================================================
# Pure Arithmetic
# =============================================================================

class TestApplyPointsAction:
    def test_add_then_remove_on_zero_record(self):
        user = UserRecord.new(1, "climber")

        apply_points_action(user, "add", 100, EVEREST_HARD)
        assert user.xp == 100
        assert user.weekly_xp == 100
        assert user.monthly_xp == 100
        assert user.expeditions == 1
        assert user.weekly_expeditions == 1
        assert user.monthly_expeditions == 1
        assert user.expedition_history == {"Everest": 1}
        assert user.difficulty_stats == {"Hard": 1}

        apply_points_action(user, "remove", 100, EVEREST_HARD)
        assert user.xp == 0
        assert user.weekly_xp == 0
        assert user.monthly_xp == 0
        assert user.expeditions == 0
        assert "Everest" not in user.expedition_history
        assert "Hard" not in user.difficulty_stats
        assert user.expedition_history == {}
        assert user.difficulty_stats == {}

    @pytest.mark.parametrize("amount", [0, 1, 75, 10_000])
    def test_add_remove_restores_prior_state(self, amount):
        user = UserRecord.new(1)
        apply_points_action(user, PointsAction.ADD, 300, ActionContext("K2", "Extreme"))
        apply_points_action(user, PointsAction.ADD, 40, EVEREST_HARD)
        before = snapshot(user)

        apply_points_action(user, PointsAction.ADD, amount, EVEREST_HARD)
        apply_points_action(user, PointsAction.REMOVE, amount, EVEREST_HARD)

        assert snapshot(user) == before

    def test_remove_on_fresh_record_stays_at_zero(self):
        user = UserRecord.new(1)
        apply_points_action(user, "remove", 50, EVEREST_HARD)

        assert snapshot(user) == snapshot(UserRecord.new(1))
        assert user.expedition_history == {}
        assert user.difficulty_stats == {}

    def test_remove_floors_each_field_independently(self):
        user = UserRecord(roblox_id=1, xp=500, weekly_xp=20, monthly_xp=80, expeditions=3)
        apply_points_action(user, "remove", 50)

        assert user.xp == 450
        assert user.weekly_xp == 0
        assert user.monthly_xp == 30
        assert user.expeditions == 2
        assert user.weekly_expeditions == 0

    def test_set_only_moves_xp(self):
        user = UserRecord(roblox_id=1, xp=900, weekly_xp=40, monthly_xp=60, expeditions=5)
        apply_points_action(user, "set", 120)

        assert user.xp == 120
        assert user.weekly_xp == 40
        assert user.monthly_xp == 60
        assert user.expeditions == 5

    def test_set_then_level_reflects_amount(self, climbing_policy):
        for prior in (0, 50, 5000):
            user = UserRecord(roblox_id=1, xp=prior)
            apply_points_action(user, "set", 500)
            assert climbing_policy.get_level(user.xp).name == "Mountaineer"

    def test_bonus_skips_expeditions(self):
        user = UserRecord.new(1)
        apply_points_action(user, "bonus", 25, EVEREST_HARD)

        assert user.xp == 25
        assert user.weekly_xp == 25
        assert user.monthly_xp == 25
        assert user.expeditions == 0
        assert user.expedition_history == {}
        assert user.difficulty_stats == {}

    def test_remove_keeps_positive_counters(self):
        user = UserRecord(roblox_id=1, expedition_history={"Everest": 2}, difficulty_stats={"Hard": 3})
        apply_points_action(user, "remove", 0, EVEREST_HARD)

        assert user.expedition_history == {"Everest": 1}
        assert user.difficulty_stats == {"Hard": 2}

    @pytest.mark.parametrize("action", ["grant", "", "ADD"])
    def test_unknown_action_rejected(self, action):
        user = UserRecord.new(1)
        with pytest.raises(InvalidArgument):
            apply_points_action(user, action, 10)
        assert user.xp == 0

    @pytest.mark.parametrize("amount", [-1, 1.5, "10", True])
    def test_bad_amount_rejected(self, amount):
        user = UserRecord.new(1)
        with pytest.raises(InvalidArgument):
            apply_points_action(user, "add", amount)
        assert snapshot(user) == snapshot(UserRecord.new(1))


class TestApplyGuideAction:
    def test_add_touches_all_guide_windows(self):
        user = UserRecord.new(1)
        apply_guide_action(user, "add", 30)

        assert (user.guide_points, user.weekly_guide_points, user.monthly_guide_points) == (30, 30, 30)
        assert user.xp == 0
        assert user.expeditions == 0

    def test_remove_floors_at_zero(self):
        user = UserRecord(roblox_id=1, guide_points=10, weekly_guide_points=4, monthly_guide_points=10)
        apply_guide_action(user, "remove", 6)

        assert (user.guide_points, user.weekly_guide_points, user.monthly_guide_points) == (4, 0, 4)

    def test_set_only_moves_total(self):
        user = UserRecord(roblox_id=1, guide_points=10, weekly_guide_points=4)
        apply_guide_action(user, "set", 100)

        assert user.guide_points == 100
        assert user.weekly_guide_points == 4


# =============================================================================
# Service
# =============================================================================

@pytest.fixture
def ledger(database, level_config, reporter):
    return LedgerService(database=database, levels=level_config, reporter=reporter)


class TestLedgerService:
    async def test_first_grant_creates_and_persists_record(self, ledger, database):
        result = await ledger.apply_points(42, "add", 100, EVEREST_HARD, username="alpine")

        row = database.get_user(42)
        assert row["xp"] == 100
        assert row["roblox_username"] == "alpine"
        assert row["expedition_history"] == {"Everest": 1}
        assert row["difficulty_stats"] == {"Hard": 1}
        assert result.tier_changed
        assert result.old_tier.name == "Climber"
        assert result.new_tier.name == "Hiker"

    async def test_tier_change_flag_follows_policy(self, ledger):
        same = await ledger.apply_points(42, "bonus", 50)
        assert not same.tier_changed

        promoted = await ledger.apply_points(42, "bonus", 50)
        assert promoted.tier_changed

        demoted = await ledger.apply_points(42, "set", 10)
        assert demoted.tier_changed
        assert demoted.new_tier.name == "Climber"

    async def test_removed_keys_are_gone_from_storage(self, ledger, database):
        await ledger.apply_points(42, "add", 100, EVEREST_HARD)
        await ledger.apply_points(42, "remove", 100, EVEREST_HARD)

        row = database.get_user(42)
        assert row["xp"] == 0
        assert row["expedition_history"] == {}
        assert row["difficulty_stats"] == {}

    async def test_mountain_name_is_canonicalized(self, ledger, database):
        await ledger.apply_points(42, "add", 10, ActionContext("everest", "hard"))

        row = database.get_user(42)
        assert row["expedition_history"] == {"Everest": 1}
        assert row["difficulty_stats"] == {"Hard": 1}

    async def test_unknown_mountain_writes_nothing(self, ledger, database):
        with pytest.raises(InvalidArgument):
            await ledger.apply_points(42, "add", 10, ActionContext("Olympus", "Hard"))
        assert database.get_user(42) is None

    async def test_unknown_difficulty_writes_nothing(self, ledger, database):
        with pytest.raises(InvalidArgument):
            await ledger.apply_points(42, "add", 10, ActionContext("K2", "Impossible"))
        assert database.get_user(42) is None

    async def test_tier_change_syncs_member_role(self, ledger):
        climber, hiker = FakeRole(11, "Climber"), FakeRole(12, "Hiker")
        guild = FakeGuild(roles=[climber, hiker])
        member = guild.add_member(FakeMember(7, roles=[climber]))

        await ledger.apply_points(42, "bonus", 150, member=member)

        assert member.removed == [11]
        assert member.added == [12]

    async def test_guide_tier_change_uses_guide_table(self, ledger):
        trainee, guide = FakeRole(21), FakeRole(22)
        climber = FakeRole(11)
        guild = FakeGuild(roles=[trainee, guide, climber])
        member = guild.add_member(FakeMember(7, roles=[trainee, climber]))

        result = await ledger.apply_guide(42, "add", 60, member=member)

        assert result.new_tier.name == "Guide"
        assert member.removed == [21]
        assert member.added == [22]
        assert climber in member.roles

    async def test_link_account_marks_verified(self, ledger, database):
        user = await ledger.link_account(555, 42, "alpine")

        assert user.is_verified
        row = database.get_user_by_discord(555)
        assert row["roblox_id"] == 42
        assert row["is_verified"] is True

    async def test_link_account_keeps_existing_points(self, ledger):
        await ledger.apply_points(42, "add", 100, EVEREST_HARD, username="alpine")
        user = await ledger.link_account(555, 42, "alpine")

        assert user.xp == 100
        assert user.expedition_history == {"Everest": 1}

    async def test_link_account_rejects_second_discord_account(self, ledger):
        await ledger.link_account(555, 42, "alpine")
        with pytest.raises(InvalidArgument):
            await ledger.link_account(556, 42, "alpine")

    async def test_require_linked(self, ledger):
        with pytest.raises(NotFound):
            await ledger.require_linked(555)

        await ledger.link_account(555, 42, "alpine")
        user = await ledger.require_linked(555)
        assert user.roblox_id == 42

    async def test_unlink_deletes_record(self, ledger, database):
        await ledger.link_account(555, 42, "alpine")

        assert await ledger.unlink(42) is True
        assert database.get_user(42) is None
        assert await ledger.unlink(42) is False
