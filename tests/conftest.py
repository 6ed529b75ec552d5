"""
Pytest configuration and fixtures for MooncrestBot tests.

Discord objects are replaced by small fakes that record what the
services asked them to do.
"""

import os
import tempfile
from types import SimpleNamespace

# Keep the import-time global database out of the project tree
os.environ.setdefault(
    "MOONCREST_DATABASE_PATH",
    os.path.join(tempfile.mkdtemp(prefix="mooncrest-tests-"), "global.db"),
)

import discord
import pytest

from src.services.database import Database
from src.services.levels import LevelConfig, LevelPolicy, Tier


# =============================================================================
# Discord Fakes
# =============================================================================

def make_not_found() -> discord.NotFound:
    return discord.NotFound(SimpleNamespace(status=404, reason="Not Found"), "Unknown Message")


def make_http_error(status: int = 500) -> discord.HTTPException:
    return discord.HTTPException(SimpleNamespace(status=status, reason="Server Error"), "Internal Server Error")


class FakeRole:
    def __init__(self, role_id: int, name: str = "role"):
        self.id = role_id
        self.name = name

    def __eq__(self, other):
        return isinstance(other, FakeRole) and other.id == self.id

    def __hash__(self):
        return hash(self.id)


class FakeChannel:
    def __init__(self, channel_id: int = 100, guild=None):
        self.id = channel_id
        self.guild = guild
        self.name = f"channel-{channel_id}"
        self.sent = []
        self.messages = {}
        self.members = []
        self.deleted = False
        self._next_id = 9000

    async def send(self, content=None, **kwargs):
        self._next_id += 1
        message = FakeMessage(self._next_id, self, content=content, **kwargs)
        self.sent.append(message)
        self.messages[message.id] = message
        return message

    async def fetch_message(self, message_id: int):
        if message_id not in self.messages:
            raise make_not_found()
        return self.messages[message_id]

    async def delete(self, reason=None):
        self.deleted = True


class FakeMessage:
    def __init__(self, message_id: int, channel: FakeChannel, content=None, **kwargs):
        self.id = message_id
        self.channel = channel
        self.guild = channel.guild
        self.content = content
        self.embed = kwargs.get("embed")
        self.view = kwargs.get("view")
        self.reference = kwargs.get("reference")
        self.edits = []

    async def edit(self, **kwargs):
        self.edits.append(kwargs)
        if "embed" in kwargs:
            self.embed = kwargs["embed"]
        if "view" in kwargs:
            self.view = kwargs["view"]


class FakeMember:
    def __init__(self, member_id: int, name: str = "member", roles=None, guild=None):
        self.id = member_id
        self.name = name
        self.display_name = name
        self.mention = f"<@{member_id}>"
        self.bot = False
        self.roles = list(roles or [])
        self.guild = guild
        self.added = []
        self.removed = []
        self.nick = None
        self.edits = []

    async def add_roles(self, *roles, reason=None):
        for role in roles:
            self.added.append(role.id)
            if role not in self.roles:
                self.roles.append(role)

    async def remove_roles(self, *roles, reason=None):
        for role in roles:
            self.removed.append(role.id)
            if role in self.roles:
                self.roles.remove(role)

    async def edit(self, nick=None, reason=None):
        self.edits.append(nick)
        self.nick = nick


class FakeGuild:
    def __init__(self, guild_id: int = 1, roles=None, members=None):
        self.id = guild_id
        self._roles = {r.id: r for r in (roles or [])}
        self._members = {m.id: m for m in (members or [])}
        for member in self._members.values():
            member.guild = self

    def get_role(self, role_id: int):
        return self._roles.get(role_id)

    def get_member(self, member_id: int):
        return self._members.get(member_id)

    async def fetch_member(self, member_id: int):
        member = self._members.get(member_id)
        if member is None:
            raise make_not_found()
        return member

    def add_member(self, member: FakeMember) -> FakeMember:
        member.guild = self
        self._members[member.id] = member
        return member


class FakeBot:
    def __init__(self, channels=None, guilds=None):
        self._channels = {c.id: c for c in (channels or [])}
        self._guilds = {g.id: g for g in (guilds or [])}
        self.views = []

    def get_channel(self, channel_id: int):
        return self._channels.get(channel_id)

    async def fetch_channel(self, channel_id: int):
        channel = self._channels.get(channel_id)
        if channel is None:
            raise make_not_found()
        return channel

    def get_guild(self, guild_id: int):
        return self._guilds.get(guild_id)

    def add_view(self, view):
        self.views.append(view)

    async def wait_until_ready(self):
        return None


class FakeReporter:
    """Stands in for the operator log channel."""

    def __init__(self):
        self.failures = []
        self.changes = []
        self.events = []

    async def log_failure(self, title, error, **fields):
        self.failures.append((title, error, fields))
        return True

    async def log_points_change(self, *args, **kwargs):
        self.changes.append((args, kwargs))
        return True

    async def log_event(self, title, success=True, **fields):
        self.events.append((title, success, fields))
        return True


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def database(tmp_path) -> Database:
    """Fresh sqlite database per test."""
    return Database(str(tmp_path / "test.db"))


@pytest.fixture
def reporter() -> FakeReporter:
    return FakeReporter()


@pytest.fixture
def climbing_policy() -> LevelPolicy:
    return LevelPolicy([
        Tier("Climber", 0, role_id=11, rank_role_id=101),
        Tier("Hiker", 100, role_id=12, rank_role_id=102),
        Tier("Mountaineer", 500, role_id=13, rank_role_id=103),
        Tier("Summiter", 1000, role_id=14, rank_role_id=104),
    ], "climbing")


@pytest.fixture
def level_config(climbing_policy) -> LevelConfig:
    guide = LevelPolicy([
        Tier("Trainee Guide", 0, role_id=21),
        Tier("Guide", 50, role_id=22),
        Tier("Senior Guide", 200, role_id=23),
    ], "guide")
    return LevelConfig(
        climbing=climbing_policy,
        guide=guide,
        mountains=["Everest", "K2", "Mount Rinjani"],
    )
