"""
Tests for the giveaway lifecycle: start, join, end, reroll and sweep.
"""

import asyncio
import random

import pytest

from src.core.constants import GIVEAWAY_DRAW_TIMEOUT
from src.core.errors import (
    AlreadyEnded,
    AlreadyEntered,
    Ineligible,
    InsufficientEntrants,
    InvalidArgument,
    NotEnded,
    NotFound,
)
from src.services.giveaway import GiveawayService, pick_winners

from conftest import FakeBot, FakeChannel, FakeGuild, FakeMember, FakeRole, make_http_error


REQUIRED_ROLE = FakeRole(77, "Climbers")


@pytest.fixture
def guild():
    return FakeGuild(guild_id=1, roles=[REQUIRED_ROLE])


@pytest.fixture
def channel(guild):
    return FakeChannel(channel_id=100, guild=guild)


@pytest.fixture
def service(guild, channel, database, reporter):
    bot = FakeBot(channels=[channel], guilds=[guild])
    return GiveawayService(bot, database=database, reporter=reporter, rng=random.Random(7))


@pytest.fixture
def host():
    return FakeMember(999, "host")


def make_members(guild, count, start=1, roles=None):
    return [guild.add_member(FakeMember(start + i, f"m{start + i}", roles=roles)) for i in range(count)]


async def start_with_entrants(service, channel, host, guild, entrants=5, winners=2, required_role=None):
    giveaway = await service.start(channel, host, "Summit Pass", winners, "1h", required_role=required_role)
    roles = [REQUIRED_ROLE] if required_role else None
    members = make_members(guild, entrants, roles=roles)
    for member in members:
        await service.join(giveaway["message_id"], member)
    return giveaway["message_id"], members


# =============================================================================
# Draw
# =============================================================================

class TestPickWinners:
    def test_distinct_and_from_pool(self):
        pool = [1, 2, 3, 4, 5]
        winners = pick_winners(pool, 3, random.Random(1))

        assert len(winners) == 3
        assert len(set(winners)) == 3
        assert set(winners) <= set(pool)

    def test_does_not_mutate_input(self):
        pool = [1, 2, 3, 4, 5]
        pick_winners(pool, 5, random.Random(1))
        assert pool == [1, 2, 3, 4, 5]

    def test_count_larger_than_pool(self):
        assert sorted(pick_winners([1, 2], 5, random.Random(1))) == [1, 2]

    def test_empty_pool(self):
        assert pick_winners([], 3) == []


# =============================================================================
# Start / Join
# =============================================================================

class TestStartAndJoin:
    async def test_start_posts_and_stores(self, service, channel, host, database):
        giveaway = await service.start(channel, host, "Summit Pass", 2, "2d")

        assert len(channel.sent) == 1
        stored = database.get_giveaway(giveaway["message_id"])
        assert stored["prize"] == "Summit Pass"
        assert stored["winner_count"] == 2
        assert stored["ended"] is False
        assert stored["entrants"] == []
        assert stored["end_time"] - stored["created_at"] * 1000 >= 2 * 86_400_000 - 5_000

    @pytest.mark.parametrize("duration", ["", "10", "5y", "0m", "abc"])
    async def test_start_rejects_bad_duration_before_posting(self, service, channel, host, duration):
        with pytest.raises(InvalidArgument):
            await service.start(channel, host, "Summit Pass", 1, duration)
        assert channel.sent == []

    async def test_start_rejects_zero_winners(self, service, channel, host):
        with pytest.raises(InvalidArgument):
            await service.start(channel, host, "Summit Pass", 0, "1h")
        assert channel.sent == []

    async def test_double_join_keeps_one_entry(self, service, channel, host, guild, database):
        giveaway = await service.start(channel, host, "Summit Pass", 1, "1h")
        member = guild.add_member(FakeMember(5))

        assert await service.join(giveaway["message_id"], member) == 1
        with pytest.raises(AlreadyEntered):
            await service.join(giveaway["message_id"], member)

        assert database.get_giveaway(giveaway["message_id"])["entrants"] == [5]

    async def test_join_updates_participant_count(self, service, channel, host, guild):
        giveaway = await service.start(channel, host, "Summit Pass", 1, "1h")
        member = guild.add_member(FakeMember(5))
        await service.join(giveaway["message_id"], member)

        announcement = channel.messages[giveaway["message_id"]]
        field = next(f for f in announcement.embed.fields if f.name == "Participants")
        assert field.value == "`1`"

    async def test_join_requires_role(self, service, channel, host, guild):
        giveaway = await service.start(channel, host, "Summit Pass", 1, "1h", required_role=REQUIRED_ROLE)
        outsider = guild.add_member(FakeMember(5))
        insider = guild.add_member(FakeMember(6, roles=[REQUIRED_ROLE]))

        with pytest.raises(Ineligible):
            await service.join(giveaway["message_id"], outsider)
        assert await service.join(giveaway["message_id"], insider) == 1

    async def test_join_unknown_giveaway(self, service, guild):
        with pytest.raises(NotFound):
            await service.join(123456, guild.add_member(FakeMember(5)))

    async def test_join_after_draw_claimed_is_rejected(self, service, channel, host, guild, database):
        message_id, _ = await start_with_entrants(service, channel, host, guild, entrants=2)
        assert database.claim_giveaway_draw(message_id)

        late = guild.add_member(FakeMember(50))
        with pytest.raises(AlreadyEnded):
            await service.join(message_id, late)

        assert database.add_giveaway_entry(message_id, 50) is False
        assert 50 not in database.get_giveaway(message_id)["entrants"]


# =============================================================================
# End
# =============================================================================

class TestEnd:
    async def test_five_entrants_two_winners(self, service, channel, host, guild, database):
        message_id, members = await start_with_entrants(service, channel, host, guild, entrants=5, winners=2)
        entrants_before = database.get_giveaway(message_id)["entrants"]

        winners = await service.end(message_id)

        assert len(winners) == 2
        assert len(set(winners)) == 2
        assert set(winners) <= {m.id for m in members}

        stored = database.get_giveaway(message_id)
        assert stored["ended"] is True
        assert stored["winners"] == winners
        assert stored["entrants"] == entrants_before

    async def test_end_announces_and_edits(self, service, channel, host, guild):
        message_id, _ = await start_with_entrants(service, channel, host, guild, entrants=3, winners=1)
        announcement = channel.messages[message_id]

        winners = await service.end(message_id)

        reply = channel.sent[-1]
        assert reply.reference is announcement
        assert f"<@{winners[0]}>" in reply.content
        assert announcement.edits[-1]["view"] is None
        assert "ENDED" in announcement.embed.title

    async def test_end_with_no_entrants(self, service, channel, host, database):
        giveaway = await service.start(channel, host, "Summit Pass", 2, "1h")

        assert await service.end(giveaway["message_id"]) == []
        assert database.get_giveaway(giveaway["message_id"])["ended"] is True
        assert "No valid participants" in channel.sent[-1].content

    async def test_end_twice(self, service, channel, host, guild):
        message_id, _ = await start_with_entrants(service, channel, host, guild, entrants=2, winners=1)
        await service.end(message_id)

        with pytest.raises(AlreadyEnded):
            await service.end(message_id)

    async def test_end_unknown(self, service):
        with pytest.raises(NotFound):
            await service.end(424242)

    async def test_deleted_announcement_closes_without_winners(self, service, channel, host, guild, database):
        message_id, _ = await start_with_entrants(service, channel, host, guild, entrants=3, winners=1)
        del channel.messages[message_id]
        sent_before = len(channel.sent)

        assert await service.end(message_id) == []

        stored = database.get_giveaway(message_id)
        assert stored["ended"] is True
        assert stored["winners"] == []
        assert len(channel.sent) == sent_before

    async def test_role_lost_before_end_is_excluded(self, service, channel, host, guild):
        message_id, members = await start_with_entrants(
            service, channel, host, guild, entrants=3, winners=3, required_role=REQUIRED_ROLE,
        )
        members[0].roles.remove(REQUIRED_ROLE)

        winners = await service.end(message_id)

        assert sorted(winners) == sorted(m.id for m in members[1:])

    async def test_sweep_ends_due_giveaways(self, service, channel, host, guild, database):
        message_id, _ = await start_with_entrants(service, channel, host, guild, entrants=2, winners=1)
        stored = database.get_giveaway(message_id)

        assert await service.sweep_due(now_ms=stored["end_time"] - 1) == 0
        assert await service.sweep_due(now_ms=stored["end_time"]) == 1
        assert database.get_giveaway(message_id)["ended"] is True

    async def test_failed_member_lookup_skips_only_that_entrant(self, service, channel, host, guild, database):
        message_id, members = await start_with_entrants(
            service, channel, host, guild, entrants=3, winners=1, required_role=REQUIRED_ROLE,
        )
        flaky = members[0].id
        cached = guild.get_member

        async def fetch_member(user_id):
            raise make_http_error(500)

        guild.get_member = lambda user_id: None if user_id == flaky else cached(user_id)
        guild.fetch_member = fetch_member

        winners = await service.end(message_id)

        assert len(winners) == 1
        assert winners[0] != flaky
        stored = database.get_giveaway(message_id)
        assert stored["ended"] is True
        assert stored["winners"] == winners
        assert f"<@{winners[0]}>" in channel.sent[-1].content

    async def test_cancelled_draw_still_ends(self, service, channel, host, guild, database, monkeypatch):
        message_id, _ = await start_with_entrants(service, channel, host, guild, entrants=2, winners=1)

        async def cancelled(giveaway, entrants):
            raise asyncio.CancelledError()

        monkeypatch.setattr(service, "_eligible_entrants", cancelled)

        with pytest.raises(asyncio.CancelledError):
            await service.end(message_id)

        stored = database.get_giveaway(message_id)
        assert stored["ended"] is True
        assert stored["winners"] == []
        assert database.get_due_giveaways(stored["end_time"]) == []

    async def test_sweep_finishes_abandoned_draw(self, service, channel, host, guild, database):
        message_id, members = await start_with_entrants(service, channel, host, guild, entrants=2, winners=1)
        assert database.claim_giveaway_draw(message_id, now_ms=0)
        end_time = database.get_giveaway(message_id)["end_time"]

        assert await service.sweep_due(now_ms=end_time) == 1

        stored = database.get_giveaway(message_id)
        assert stored["ended"] is True
        assert len(stored["winners"]) == 1
        assert database.get_due_giveaways(end_time) == []

        rerolled = await service.reroll(message_id, 1)
        assert rerolled[0] in {m.id for m in members}
        assert rerolled[0] not in stored["winners"]

    async def test_sweep_leaves_recent_draw_claim_alone(self, service, channel, host, guild, database):
        message_id, _ = await start_with_entrants(service, channel, host, guild, entrants=2, winners=1)
        end_time = database.get_giveaway(message_id)["end_time"]
        assert database.claim_giveaway_draw(message_id, now_ms=end_time)

        assert await service.sweep_due(now_ms=end_time + GIVEAWAY_DRAW_TIMEOUT * 1000 - 1) == 0

        stored = database.get_giveaway(message_id)
        assert stored["ended"] is False
        assert stored["drawing"] is True


# =============================================================================
# Reroll
# =============================================================================

class TestReroll:
    async def test_reroll_draws_from_remaining(self, service, channel, host, guild, database):
        message_id, members = await start_with_entrants(service, channel, host, guild, entrants=5, winners=2)
        first = await service.end(message_id)

        new = await service.reroll(message_id, 1)

        assert len(new) == 1
        assert new[0] not in first
        assert new[0] in {m.id for m in members}
        assert database.get_giveaway(message_id)["winners"] == first + new

    async def test_reroll_more_than_remaining(self, service, channel, host, guild, database):
        message_id, _ = await start_with_entrants(service, channel, host, guild, entrants=5, winners=2)
        first = await service.end(message_id)

        with pytest.raises(InsufficientEntrants):
            await service.reroll(message_id, 4)
        assert database.get_giveaway(message_id)["winners"] == first

    async def test_repeated_rerolls_never_repeat(self, service, channel, host, guild, database):
        message_id, _ = await start_with_entrants(service, channel, host, guild, entrants=5, winners=2)
        await service.end(message_id)

        await service.reroll(message_id, 1)
        await service.reroll(message_id, 2)

        winners = database.get_giveaway(message_id)["winners"]
        assert len(winners) == 5
        assert len(set(winners)) == 5
        with pytest.raises(InsufficientEntrants):
            await service.reroll(message_id, 1)

    async def test_reroll_open_giveaway(self, service, channel, host, guild):
        message_id, _ = await start_with_entrants(service, channel, host, guild, entrants=2, winners=1)
        with pytest.raises(NotEnded):
            await service.reroll(message_id, 1)

    async def test_reroll_bad_count(self, service, channel, host, guild):
        message_id, _ = await start_with_entrants(service, channel, host, guild, entrants=2, winners=1)
        await service.end(message_id)
        with pytest.raises(InvalidArgument):
            await service.reroll(message_id, 0)
