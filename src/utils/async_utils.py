"""
MooncrestBot - Async Utilities
==============================

Fire-and-forget tasks whose failures still reach the log.

Usage:
    from src.utils.async_utils import create_safe_task

    create_safe_task(rank_sync.sync_user(roblox_id, xp), "Rank Sync")
"""

import asyncio
from typing import Any, Awaitable, Callable, Coroutine, Optional

from src.core.logger import logger


ErrorCallback = Callable[[BaseException], Awaitable[None]]


def create_safe_task(
    coro: Coroutine[Any, Any, Any],
    name: str = "Background Task",
    on_error: Optional[ErrorCallback] = None,
) -> asyncio.Task:
    """
    Schedule a coroutine the caller will not await.

    Exceptions are logged and handed to on_error (for example the
    operator log) instead of disappearing with the task. A failure here
    never reaches the code that scheduled it.

    Args:
        coro: The coroutine to run.
        name: Task name for logs.
        on_error: Optional async callback for reporting the failure.
    """
    async def wrapped():
        try:
            return await coro
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error_tree("Background Task Failed", e, [
                ("Task", name),
            ])
            if on_error is None:
                return
            try:
                await on_error(e)
            except Exception as report_error:
                logger.error_tree("Background Task Report Failed", report_error, [
                    ("Task", name),
                ])

    return asyncio.create_task(wrapped(), name=name)


__all__ = ["create_safe_task"]
