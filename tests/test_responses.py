"""
Tests for interaction replies and manager-role gating.
"""

from types import SimpleNamespace

import discord
import pytest

from src.core.errors import NotFound
from src.utils.permissions import has_manager_role, require_manager
from src.utils.responses import GENERIC_ERROR, safe_send, send_error

from conftest import FakeRole


class FakeResponse:
    def __init__(self, done=False):
        self.done = done
        self.sent = []

    def is_done(self):
        return self.done

    async def send_message(self, **kwargs):
        self.done = True
        self.sent.append(kwargs)

    async def defer(self, **kwargs):
        self.done = True


class FakeFollowup:
    def __init__(self):
        self.sent = []

    async def send(self, **kwargs):
        self.sent.append(kwargs)


class FakeInteraction:
    def __init__(self, user=None, deferred=False):
        self.user = user or SimpleNamespace(id=5, name="alpine")
        self.response = FakeResponse(done=deferred)
        self.followup = FakeFollowup()

    @property
    def messages(self):
        return [m["content"] for m in self.response.sent + self.followup.sent]


def make_member(role_ids=(), admin=False):
    """A real discord.Member subclass carrying only what the check reads."""
    class StubMember(discord.Member):
        def __init__(self):
            pass

    StubMember.id = 7
    StubMember.name = "staff"
    StubMember.roles = [FakeRole(r) for r in role_ids]
    StubMember.guild_permissions = SimpleNamespace(administrator=admin)
    return StubMember()


class TestSafeSend:
    async def test_first_reply_uses_response(self):
        interaction = FakeInteraction()
        assert await safe_send(interaction, "hi")
        assert interaction.response.sent[0]["content"] == "hi"
        assert interaction.followup.sent == []

    async def test_deferred_reply_uses_followup(self):
        interaction = FakeInteraction(deferred=True)
        await safe_send(interaction, "hi", ephemeral=False)
        assert interaction.followup.sent[0] == {"content": "hi", "embed": None, "ephemeral": False}


class TestSendError:
    async def test_domain_error_message_is_shown(self):
        interaction = FakeInteraction()
        await send_error(interaction, NotFound("User **bob** not found in database."), "xp add")
        assert interaction.messages == ["❌ User **bob** not found in database."]

    async def test_unexpected_error_is_generic(self):
        interaction = FakeInteraction()
        await send_error(interaction, RuntimeError("socket closed"), "xp add")
        assert interaction.messages == [GENERIC_ERROR]


class TestManagerRole:
    def test_plain_user_is_denied(self):
        assert has_manager_role(SimpleNamespace(id=5), frozenset({1})) is False

    async def test_require_manager_replies_when_denied(self):
        interaction = FakeInteraction()
        assert await require_manager(interaction, frozenset({1}), "giveaway start") is False
        assert "permission" in interaction.messages[0]


@pytest.mark.parametrize("role_ids,admin,expected", [
    ((1,), False, True),
    ((2,), False, False),
    ((), True, True),
])
def test_member_roles_and_admin(role_ids, admin, expected):
    assert has_manager_role(make_member(role_ids, admin), frozenset({1})) is expected
