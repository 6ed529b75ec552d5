"""
MooncrestBot - HTTP Utilities
=============================

One aiohttp session for every outbound call (Roblox APIs).
"""

from typing import Optional

import aiohttp

from src.core.constants import HTTP_TIMEOUT_CONNECT, HTTP_TIMEOUT_TOTAL

DEFAULT_TIMEOUT = aiohttp.ClientTimeout(total=HTTP_TIMEOUT_TOTAL, connect=HTTP_TIMEOUT_CONNECT)


class HTTPSessionManager:
    """Creates the session on first use and again after close()."""

    _session: Optional[aiohttp.ClientSession] = None

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=DEFAULT_TIMEOUT)
        return self._session

    def request(self, method: str, url: str, **kwargs):
        """Request context manager (use with async with)."""
        return self.session.request(method, url, **kwargs)

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None


http_session = HTTPSessionManager()
