"""
MooncrestBot - Roblox Client
============================

Roblox user lookup and group rank access.

Two credential strategies share one interface:
    - OpenCloudBackend: Open Cloud v2 with an API key (preferred)
    - LegacyGroupsBackend: groups.roblox.com v1 with a .ROBLOSECURITY
      cookie and CSRF token

create_rank_backend() picks one from config at startup.
"""

import asyncio
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import aiohttp

from src.core.config import Config, config as default_config
from src.core.constants import ROBLOX_ROLES_MAX_PAGES
from src.core.errors import ExternalServiceFailure, FailureReason
from src.core.logger import log
from src.utils.http import http_session


USERS_API = "https://users.roblox.com/v1"
GROUPS_API = "https://groups.roblox.com/v1"
AUTH_TICKET_URL = "https://auth.roblox.com/v1/authentication-ticket"
OPEN_CLOUD_API = "https://apis.roblox.com/cloud/v2"

ROLES_CACHE_TTL = 300

_ROLE_PATH_RE = re.compile(r"roles/(\d+)")


# =============================================================================
# Models
# =============================================================================

@dataclass
class RobloxUser:
    """Public Roblox profile."""
    id: int
    name: str
    display_name: str = ""


@dataclass
class GroupRank:
    """A member's role in a group."""
    role_id: int
    role_name: str
    rank: int


def _failure_for_status(status: int) -> FailureReason:
    if status in (401, 403):
        return FailureReason.UNAUTHORIZED
    if status == 404:
        return FailureReason.NOT_A_MEMBER
    if status == 400:
        return FailureReason.INVALID_TARGET
    return FailureReason.UNAVAILABLE


# =============================================================================
# Base Backend
# =============================================================================

class RankBackend(ABC):
    """Roblox access with a backend-specific credential."""

    name = "base"

    def __init__(self, http=None) -> None:
        self._http = http or http_session

    def _headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json"}

    async def _request(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        **kwargs,
    ) -> Tuple[int, Dict[str, str], Any]:
        """
        Send a request and return (status, headers, body).

        Body is parsed JSON when the response has one, otherwise text.

        Raises:
            ExternalServiceFailure: Connection error or timeout.
        """
        try:
            async with self._http.request(method, url, headers=headers or self._headers(), **kwargs) as resp:
                try:
                    body = await resp.json(content_type=None)
                except ValueError:
                    body = await resp.text()
                return resp.status, dict(resp.headers), body
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            log.tree("Roblox Request Failed", [
                ("Backend", self.name),
                ("Method", method),
                ("URL", url[:80]),
                ("Error", str(e)[:100]),
            ], emoji="❌")
            raise ExternalServiceFailure(FailureReason.UNAVAILABLE, "Roblox API unreachable") from e

    # =========================================================================
    # Users API (public)
    # =========================================================================

    async def lookup_user(self, username: str) -> Optional[RobloxUser]:
        """Resolve a username to a profile, or None if no such account."""
        status, _, body = await self._request(
            "POST",
            f"{USERS_API}/usernames/users",
            headers={"Content-Type": "application/json"},
            json={"usernames": [username], "excludeBannedUsers": True},
        )
        if status != 200:
            raise ExternalServiceFailure(_failure_for_status(status), f"Username lookup failed ({status})")
        data = (body or {}).get("data") or []
        if not data:
            return None
        entry = data[0]
        return RobloxUser(id=int(entry["id"]), name=entry["name"], display_name=entry.get("displayName", ""))

    async def get_user(self, user_id: int) -> Optional[RobloxUser]:
        """Fetch a profile by id, or None if no such account."""
        status, _, body = await self._request(
            "GET",
            f"{USERS_API}/users/{user_id}",
            headers={"Content-Type": "application/json"},
        )
        if status == 404:
            return None
        if status != 200:
            raise ExternalServiceFailure(_failure_for_status(status), f"User lookup failed ({status})")
        return RobloxUser(id=int(body["id"]), name=body["name"], display_name=body.get("displayName", ""))

    # =========================================================================
    # Groups
    # =========================================================================

    async def is_member_of(self, user_id: int, group_id: int) -> bool:
        return await self.get_rank(user_id, group_id) is not None

    @abstractmethod
    async def get_rank(self, user_id: int, group_id: int) -> Optional[GroupRank]:
        """Current group role, or None when the user is not in the group."""

    @abstractmethod
    async def set_rank(self, user_id: int, group_id: int, role_id: int) -> None:
        """
        Move a member to a group role.

        Raises:
            ExternalServiceFailure: With the reason the write was refused.
        """


# =============================================================================
# Open Cloud Backend
# =============================================================================

class OpenCloudBackend(RankBackend):
    """Open Cloud v2 groups API with an API key."""

    name = "opencloud"

    def __init__(self, api_key: str, http=None) -> None:
        super().__init__(http)
        self.api_key = api_key
        self._roles_cache: Dict[int, Tuple[float, List[Dict[str, Any]]]] = {}

    def _headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "Content-Type": "application/json",
        }

    async def get_group_roles(self, group_id: int) -> List[Dict[str, Any]]:
        """Every role in a group, following pagination."""
        cached = self._roles_cache.get(group_id)
        if cached and time.monotonic() - cached[0] < ROLES_CACHE_TTL:
            return cached[1]

        roles: List[Dict[str, Any]] = []
        page_token: Optional[str] = None
        pages = 0
        while True:
            params = {"pageToken": page_token} if page_token else {}
            status, _, body = await self._request(
                "GET", f"{OPEN_CLOUD_API}/groups/{group_id}/roles", params=params,
            )
            if status != 200:
                raise ExternalServiceFailure(_failure_for_status(status), f"Group roles fetch failed ({status})")
            roles.extend(body.get("groupRoles") or [])
            page_token = body.get("nextPageToken")
            pages += 1
            if not page_token or pages >= ROBLOX_ROLES_MAX_PAGES:
                break

        self._roles_cache[group_id] = (time.monotonic(), roles)
        return roles

    async def get_membership(self, user_id: int, group_id: int) -> Optional[Dict[str, Any]]:
        status, _, body = await self._request(
            "GET",
            f"{OPEN_CLOUD_API}/groups/{group_id}/memberships",
            params={"filter": f"user == 'users/{user_id}'", "maxPageSize": 1},
        )
        if status != 200:
            raise ExternalServiceFailure(_failure_for_status(status), f"Membership fetch failed ({status})")
        memberships = body.get("groupMemberships") or []
        return memberships[0] if memberships else None

    async def get_rank(self, user_id: int, group_id: int) -> Optional[GroupRank]:
        membership = await self.get_membership(user_id, group_id)
        if not membership:
            return None

        match = _ROLE_PATH_RE.search(membership.get("role", ""))
        if not match:
            log.tree("Roblox Role Path Unparsed", [
                ("User ID", str(user_id)),
                ("Role", str(membership.get("role"))[:60]),
            ], emoji="⚠️")
            return None
        role_id = match.group(1)

        for role in await self.get_group_roles(group_id):
            if str(role.get("id")) == role_id:
                return GroupRank(
                    role_id=int(role_id),
                    role_name=role.get("displayName", ""),
                    rank=int(role.get("rank", 0)),
                )

        log.tree("Roblox Role Not In Group", [
            ("User ID", str(user_id)),
            ("Role ID", role_id),
        ], emoji="⚠️")
        return None

    async def set_rank(self, user_id: int, group_id: int, role_id: int) -> None:
        membership = await self.get_membership(user_id, group_id)
        if not membership:
            raise ExternalServiceFailure(FailureReason.NOT_A_MEMBER, "User is not in the group")

        status, _, body = await self._request(
            "PATCH",
            f"{OPEN_CLOUD_API}/{membership['path']}",
            params={"updateMask": "role"},
            json={"role": f"groups/{group_id}/roles/{role_id}"},
        )
        if status == 200:
            return

        message = body.get("message") if isinstance(body, dict) else None
        raise ExternalServiceFailure(_failure_for_status(status), message or f"Rank update failed ({status})")


# =============================================================================
# Legacy Cookie Backend
# =============================================================================

COOKIE_WARNING_PREFIX = (
    "_|WARNING:-DO-NOT-SHARE-THIS.--Sharing-this-will-allow-someone-to-log-in-as-you-"
    "and-to-steal-your-ROBUX-and-items.|_"
)


class LegacyGroupsBackend(RankBackend):
    """groups.roblox.com v1 with a .ROBLOSECURITY cookie."""

    name = "legacy"

    def __init__(self, cookie: str = "", http=None) -> None:
        super().__init__(http)
        if cookie and "|_" not in cookie:
            cookie = f"{COOKIE_WARNING_PREFIX}{cookie}"
        self.cookie = cookie
        self.csrf_token: Optional[str] = None

    @property
    def can_write(self) -> bool:
        return bool(self.cookie)

    def _headers(self, include_csrf: bool = False) -> Dict[str, str]:
        headers = {
            "User-Agent": "Roblox/WinInet",
            "Content-Type": "application/json",
        }
        if self.cookie:
            headers["Cookie"] = f".ROBLOSECURITY={self.cookie}"
        if include_csrf and self.csrf_token:
            headers["X-CSRF-TOKEN"] = self.csrf_token
        return headers

    async def refresh_csrf_token(self) -> None:
        """Roblox hands out the token on a rejected authenticated POST."""
        _, headers, _ = await self._request("POST", AUTH_TICKET_URL, headers=self._headers(), json={})
        token = _header(headers, "x-csrf-token")
        if token:
            self.csrf_token = token

    async def get_rank(self, user_id: int, group_id: int) -> Optional[GroupRank]:
        status, _, body = await self._request("GET", f"{GROUPS_API}/users/{user_id}/groups/roles")
        if status != 200:
            raise ExternalServiceFailure(_failure_for_status(status), f"Group roles fetch failed ({status})")

        for entry in body.get("data") or []:
            if int(entry["group"]["id"]) == int(group_id):
                role = entry["role"]
                return GroupRank(role_id=int(role["id"]), role_name=role.get("name", ""), rank=int(role["rank"]))
        return None

    async def set_rank(self, user_id: int, group_id: int, role_id: int) -> None:
        if not self.can_write:
            raise ExternalServiceFailure(FailureReason.UNAUTHORIZED, "No Roblox credential configured")
        if not self.csrf_token:
            await self.refresh_csrf_token()

        retried = False
        while True:
            status, headers, body = await self._request(
                "PATCH",
                f"{GROUPS_API}/groups/{group_id}/users/{user_id}",
                headers=self._headers(include_csrf=True),
                json={"roleId": role_id},
            )
            if status == 200:
                return

            token = _header(headers, "x-csrf-token")
            if status == 403 and token and not retried:
                self.csrf_token = token
                retried = True
                log.tree("Roblox CSRF Token Rotated", [
                    ("User ID", str(user_id)),
                    ("Action", "Retrying once"),
                ], emoji="🔄")
                continue

            message = None
            if isinstance(body, dict) and body.get("errors"):
                message = body["errors"][0].get("message")
            raise ExternalServiceFailure(_failure_for_status(status), message or f"Rank update failed ({status})")


def _header(headers: Dict[str, str], name: str) -> Optional[str]:
    for key, value in headers.items():
        if key.lower() == name:
            return value
    return None


# =============================================================================
# Factory
# =============================================================================

def create_rank_backend(cfg: Optional[Config] = None, http=None) -> RankBackend:
    """
    Build the configured backend. API key wins over cookie; with neither
    the legacy backend runs read-only (lookups work, rank writes fail
    as Unauthorized).
    """
    cfg = cfg or default_config
    if cfg.ROBLOX_OPENCLOUD_API_KEY:
        backend: RankBackend = OpenCloudBackend(cfg.ROBLOX_OPENCLOUD_API_KEY, http)
        writable = True
    else:
        backend = LegacyGroupsBackend(cfg.ROBLOX_COOKIE, http)
        writable = backend.can_write

    log.tree("Roblox Backend", [
        ("Backend", backend.name),
        ("Rank Writes", "Enabled" if writable else "Disabled"),
        ("Group ID", str(cfg.ROBLOX_GROUP_ID)),
    ], emoji="🎮" if writable else "⚠️")
    return backend
