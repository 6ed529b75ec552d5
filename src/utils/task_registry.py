"""
MooncrestBot - Task Registry
============================

Owned registry of keyed delayed actions and in-flight guards.

One registry lives on the bot; services that need "do X in N seconds
unless cancelled" or "only one of these at a time per key" go through it
instead of keeping their own handle dicts.

Usage:
    registry.schedule(f"vc-delete:{channel.id}", 15, delete_channel)
    registry.cancel(f"vc-delete:{channel.id}")

    if registry.try_acquire(f"vc-create:{member.id}"):
        try:
            ...
        finally:
            registry.release(f"vc-create:{member.id}")
"""

import asyncio
from typing import Awaitable, Callable, Dict, Hashable, Set

from src.core.logger import logger


Action = Callable[[], Awaitable[None]]


class TaskRegistry:
    """Keyed timers plus a set of in-flight keys."""

    def __init__(self) -> None:
        self._tasks: Dict[Hashable, asyncio.Task] = {}
        self._in_flight: Set[Hashable] = set()

    # =========================================================================
    # Delayed Actions
    # =========================================================================

    def schedule(self, key: Hashable, delay: float, action: Action) -> asyncio.Task:
        """
        Run action after delay seconds. Replaces any pending action
        under the same key.
        """
        self.cancel(key)
        task = asyncio.create_task(self._run(key, delay, action), name=f"registry:{key}")
        self._tasks[key] = task
        return task

    async def _run(self, key: Hashable, delay: float, action: Action) -> None:
        try:
            await asyncio.sleep(delay)
            await action()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error_tree("Scheduled Action Failed", e, [
                ("Key", str(key)),
            ])
        finally:
            if self._tasks.get(key) is asyncio.current_task():
                del self._tasks[key]

    def cancel(self, key: Hashable) -> bool:
        """Cancel a pending action. Returns True if one was pending."""
        task = self._tasks.pop(key, None)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    def is_pending(self, key: Hashable) -> bool:
        task = self._tasks.get(key)
        return task is not None and not task.done()

    def cancel_all(self) -> int:
        """Cancel every pending action. Returns how many were cancelled."""
        count = 0
        for key in list(self._tasks):
            if self.cancel(key):
                count += 1
        self._in_flight.clear()
        if count:
            logger.tree("Task Registry Cleared", [
                ("Cancelled", str(count)),
            ], emoji="🧹")
        return count

    def __len__(self) -> int:
        return sum(1 for t in self._tasks.values() if not t.done())

    # =========================================================================
    # In-flight Guards
    # =========================================================================

    def try_acquire(self, key: Hashable) -> bool:
        """Mark key in flight. False if it already was."""
        if key in self._in_flight:
            return False
        self._in_flight.add(key)
        return True

    def release(self, key: Hashable) -> None:
        self._in_flight.discard(key)


__all__ = ["TaskRegistry"]
