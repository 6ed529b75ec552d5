"""
Tests for duration parsing and the task registry.
"""

import asyncio

import pytest

from src.core.errors import InvalidArgument
from src.utils.duration import format_duration, parse_duration
from src.utils.task_registry import TaskRegistry


# =============================================================================
# Duration
# =============================================================================

class TestParseDuration:
    @pytest.mark.parametrize("text,expected", [
        ("30s", 30_000),
        ("10m", 600_000),
        ("2h", 7_200_000),
        ("1d", 86_400_000),
        ("1w", 604_800_000),
        (" 3H ", 10_800_000),
    ])
    def test_valid(self, text, expected):
        assert parse_duration(text) == expected

    @pytest.mark.parametrize("text", ["", "10", "h", "1.5h", "5y", "-1m", "0s", None])
    def test_invalid(self, text):
        with pytest.raises(InvalidArgument):
            parse_duration(text)


class TestFormatDuration:
    def test_largest_units_first(self):
        assert format_duration(90_061_000) == "1d 1h 1m 1s"

    def test_zero(self):
        assert format_duration(0) == "0s"


# =============================================================================
# Task Registry
# =============================================================================

class TestTaskRegistry:
    async def test_action_runs_after_delay(self):
        registry = TaskRegistry()
        ran = []

        async def action():
            ran.append(True)

        task = registry.schedule("k", 0.01, action)
        await task

        assert ran == [True]
        assert not registry.is_pending("k")
        assert len(registry) == 0

    async def test_cancel_prevents_action(self):
        registry = TaskRegistry()
        ran = []

        async def action():
            ran.append(True)

        registry.schedule("k", 0.05, action)
        assert registry.is_pending("k")
        assert registry.cancel("k") is True
        await asyncio.sleep(0.1)

        assert ran == []
        assert registry.cancel("k") is False

    async def test_reschedule_replaces_pending(self):
        registry = TaskRegistry()
        ran = []

        async def first():
            ran.append("first")

        async def second():
            ran.append("second")

        registry.schedule("k", 0.05, first)
        task = registry.schedule("k", 0.01, second)
        await task
        await asyncio.sleep(0.08)

        assert ran == ["second"]

    async def test_failing_action_is_contained(self):
        registry = TaskRegistry()

        async def boom():
            raise RuntimeError("boom")

        task = registry.schedule("k", 0, boom)
        await task

        assert not registry.is_pending("k")

    async def test_cancel_all(self):
        registry = TaskRegistry()

        async def action():
            pass

        registry.schedule("a", 10, action)
        registry.schedule("b", 10, action)
        registry.try_acquire("c")

        assert registry.cancel_all() == 2
        assert len(registry) == 0
        assert registry.try_acquire("c") is True

    def test_in_flight_guard(self):
        registry = TaskRegistry()

        assert registry.try_acquire("vc") is True
        assert registry.try_acquire("vc") is False
        registry.release("vc")
        assert registry.try_acquire("vc") is True
