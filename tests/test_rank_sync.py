"""
Tests for the Roblox rank sync policy and backend request handling.
"""

import pytest

from src.core.errors import ExternalServiceFailure, FailureReason
from src.services.levels import LevelPolicy, Tier
from src.services.roblox import (
    GroupRank,
    LegacyGroupsBackend,
    OpenCloudBackend,
    RankBackend,
    RankSyncService,
    SyncStatus,
)


GROUP_ID = 4242


# =============================================================================
# Fakes
# =============================================================================

class FakeResponse:
    def __init__(self, status, headers=None, body=None):
        self.status = status
        self.headers = headers or {}
        self._body = body

    async def json(self, content_type=None):
        if not isinstance(self._body, (dict, list)):
            raise ValueError("not json")
        return self._body

    async def text(self):
        return str(self._body or "")

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeHttp:
    """Replays queued (status, headers, body) responses in order."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def request(self, method, url, headers=None, **kwargs):
        self.calls.append({"method": method, "url": url, "headers": headers or {}, **kwargs})
        status, headers_out, body = self.responses.pop(0)
        return FakeResponse(status, headers_out, body)


class FakeBackend(RankBackend):
    name = "fake"

    def __init__(self, ranks=None, fail_for=()):
        super().__init__(http=FakeHttp())
        self.ranks = dict(ranks or {})
        self.fail_for = set(fail_for)
        self.writes = []

    async def get_rank(self, user_id, group_id):
        return self.ranks.get(user_id)

    async def set_rank(self, user_id, group_id, role_id):
        if user_id in self.fail_for:
            raise ExternalServiceFailure(FailureReason.UNAUTHORIZED, "Forbidden")
        self.writes.append((user_id, group_id, role_id))


def make_service(backend, policy):
    return RankSyncService(backend, policy, group_id=GROUP_ID, max_tier_rank=50)


# =============================================================================
# Skip Policy
# =============================================================================

class TestRankSyncPolicy:
    async def test_not_in_group(self, climbing_policy):
        backend = FakeBackend()
        result = await make_service(backend, climbing_policy).sync_user(1, 600)

        assert result.status == SyncStatus.NOT_IN_GROUP
        assert backend.writes == []

    async def test_special_role_is_left_alone(self, climbing_policy):
        backend = FakeBackend({1: GroupRank(role_id=900, role_name="Moderator", rank=200)})
        result = await make_service(backend, climbing_policy).sync_user(1, 600)

        assert result.status == SyncStatus.SKIPPED_SPECIAL_ROLE
        assert backend.writes == []

    async def test_already_on_tier_role(self, climbing_policy):
        backend = FakeBackend({1: GroupRank(role_id=102, role_name="Hiker", rank=2)})
        result = await make_service(backend, climbing_policy).sync_user(1, 150)

        assert result.status == SyncStatus.ALREADY_CORRECT
        assert result.success
        assert backend.writes == []

    async def test_promotes_to_tier_role(self, climbing_policy):
        backend = FakeBackend({1: GroupRank(role_id=101, role_name="Climber", rank=1)})
        result = await make_service(backend, climbing_policy).sync_user(1, 600)

        assert result.status == SyncStatus.UPDATED
        assert backend.writes == [(1, GROUP_ID, 103)]

    async def test_demotes_after_points_removed(self, climbing_policy):
        backend = FakeBackend({1: GroupRank(role_id=104, role_name="Summiter", rank=4)})
        result = await make_service(backend, climbing_policy).sync_user(1, 20)

        assert result.status == SyncStatus.UPDATED
        assert backend.writes == [(1, GROUP_ID, 101)]

    async def test_unmapped_tier(self):
        policy = LevelPolicy([Tier("Climber", 0)], "climbing")
        backend = FakeBackend({1: GroupRank(role_id=101, role_name="Climber", rank=1)})
        result = await make_service(backend, policy).sync_user(1, 0)

        assert result.status == SyncStatus.NO_MAPPING
        assert backend.writes == []

    async def test_batch_continues_past_failures(self, climbing_policy):
        backend = FakeBackend(
            {
                1: GroupRank(role_id=101, role_name="Climber", rank=1),
                2: GroupRank(role_id=101, role_name="Climber", rank=1),
            },
            fail_for={1},
        )
        results = await make_service(backend, climbing_policy).sync_many([(1, 600), (2, 600), (3, 600)], delay=0)

        assert [r.status for r in results] == [
            SyncStatus.FAILED,
            SyncStatus.UPDATED,
            SyncStatus.NOT_IN_GROUP,
        ]
        assert backend.writes == [(2, GROUP_ID, 103)]


# =============================================================================
# Legacy Backend
# =============================================================================

class TestLegacyBackend:
    async def test_rotated_csrf_token_retries_once(self):
        http = FakeHttp(
            (403, {"x-csrf-token": "fresh"}, {"errors": [{"message": "Token Validation Failed"}]}),
            (200, {}, {}),
        )
        backend = LegacyGroupsBackend("cookie|_value", http=http)
        backend.csrf_token = "stale"

        await backend.set_rank(1, GROUP_ID, 103)

        assert len(http.calls) == 2
        assert http.calls[0]["headers"]["X-CSRF-TOKEN"] == "stale"
        assert http.calls[1]["headers"]["X-CSRF-TOKEN"] == "fresh"
        assert http.calls[1]["json"] == {"roleId": 103}

    async def test_second_rejection_is_unauthorized(self):
        http = FakeHttp(
            (403, {"x-csrf-token": "a"}, {}),
            (403, {"x-csrf-token": "b"}, {"errors": [{"message": "Token Validation Failed"}]}),
        )
        backend = LegacyGroupsBackend("cookie|_value", http=http)
        backend.csrf_token = "stale"

        with pytest.raises(ExternalServiceFailure) as exc_info:
            await backend.set_rank(1, GROUP_ID, 103)

        assert exc_info.value.reason == FailureReason.UNAUTHORIZED
        assert "Token Validation Failed" in str(exc_info.value)
        assert len(http.calls) == 2

    async def test_fetches_token_before_first_write(self):
        http = FakeHttp(
            (403, {"X-CSRF-TOKEN": "issued"}, {}),
            (200, {}, {}),
        )
        backend = LegacyGroupsBackend("cookie|_value", http=http)

        await backend.set_rank(1, GROUP_ID, 103)

        assert http.calls[0]["method"] == "POST"
        assert http.calls[1]["method"] == "PATCH"
        assert http.calls[1]["headers"]["X-CSRF-TOKEN"] == "issued"

    async def test_no_cookie_cannot_write(self):
        http = FakeHttp()
        backend = LegacyGroupsBackend("", http=http)

        with pytest.raises(ExternalServiceFailure) as exc_info:
            await backend.set_rank(1, GROUP_ID, 103)

        assert exc_info.value.reason == FailureReason.UNAUTHORIZED
        assert http.calls == []

    def test_bare_cookie_gets_warning_prefix(self):
        backend = LegacyGroupsBackend("abc", http=FakeHttp())
        assert backend.cookie.endswith("|_abc")

    async def test_get_rank_finds_group(self):
        http = FakeHttp((200, {}, {"data": [
            {"group": {"id": 1}, "role": {"id": 5, "name": "Guest", "rank": 1}},
            {"group": {"id": GROUP_ID}, "role": {"id": 102, "name": "Hiker", "rank": 2}},
        ]}))
        backend = LegacyGroupsBackend("", http=http)

        rank = await backend.get_rank(1, GROUP_ID)

        assert rank == GroupRank(role_id=102, role_name="Hiker", rank=2)
        assert await LegacyGroupsBackend("", http=FakeHttp((200, {}, {"data": []}))).get_rank(1, GROUP_ID) is None


# =============================================================================
# Open Cloud Backend
# =============================================================================

class TestOpenCloudBackend:
    async def test_get_rank_resolves_role_path(self):
        http = FakeHttp(
            (200, {}, {"groupMemberships": [{"path": "groups/4242/memberships/abc", "role": "groups/4242/roles/102"}]}),
            (200, {}, {"groupRoles": [{"id": "101", "displayName": "Climber", "rank": 1}]}),
            (200, {}, {"groupRoles": [{"id": "102", "displayName": "Hiker", "rank": 2}]}),
        )
        http.responses[1][2]["nextPageToken"] = "page2"
        backend = OpenCloudBackend("key", http=http)

        rank = await backend.get_rank(1, GROUP_ID)

        assert rank == GroupRank(role_id=102, role_name="Hiker", rank=2)
        assert http.calls[0]["headers"]["x-api-key"] == "key"
        assert http.calls[2]["params"] == {"pageToken": "page2"}

    async def test_set_rank_patches_membership(self):
        http = FakeHttp(
            (200, {}, {"groupMemberships": [{"path": "groups/4242/memberships/abc", "role": "groups/4242/roles/101"}]}),
            (200, {}, {}),
        )
        backend = OpenCloudBackend("key", http=http)

        await backend.set_rank(1, GROUP_ID, 103)

        patch = http.calls[1]
        assert patch["method"] == "PATCH"
        assert patch["url"].endswith("/groups/4242/memberships/abc")
        assert patch["json"] == {"role": f"groups/{GROUP_ID}/roles/103"}

    async def test_set_rank_not_a_member(self):
        backend = OpenCloudBackend("key", http=FakeHttp((200, {}, {"groupMemberships": []})))

        with pytest.raises(ExternalServiceFailure) as exc_info:
            await backend.set_rank(1, GROUP_ID, 103)
        assert exc_info.value.reason == FailureReason.NOT_A_MEMBER

    async def test_lookup_user(self):
        http = FakeHttp((200, {}, {"data": [{"id": 77, "name": "alpine", "displayName": "Alpine"}]}))
        backend = OpenCloudBackend("key", http=http)

        user = await backend.lookup_user("alpine")

        assert (user.id, user.name, user.display_name) == (77, "alpine", "Alpine")
        assert http.calls[0]["json"]["usernames"] == ["alpine"]
