"""
Unit tests for the Jittered Dispatcher.
"""

import random

import pytest
from unittest.mock import AsyncMock

from shared.jitter import JitteredDispatcher


class TestJitteredDispatcher:
    """Test cases for JitteredDispatcher."""

    def test_delay_within_bounds(self):
        """Test delays stay inside [0, max_jitter_ms]."""
        dispatcher = JitteredDispatcher(500, rng=random.Random(7))

        delays = [dispatcher.next_delay() for _ in range(200)]

        assert all(0 <= d <= 0.5 for d in delays)
        assert len(set(delays)) > 1

    def test_override_ceiling(self):
        """Test a per-call ceiling replaces the default."""
        dispatcher = JitteredDispatcher(500, rng=random.Random(7))

        assert all(dispatcher.next_delay(200) <= 0.2 for _ in range(100))

    def test_zero_jitter(self):
        """Test a zero ceiling disables the delay."""
        assert JitteredDispatcher(0).next_delay() == 0.0

    def test_negative_jitter_rejected(self):
        """Test negative ceilings are a configuration error."""
        with pytest.raises(ValueError):
            JitteredDispatcher(-1)

    @pytest.mark.asyncio
    async def test_dispatch_sleeps_then_calls(self):
        """Test dispatch sleeps before awaiting the call."""
        sleep = AsyncMock()
        dispatcher = JitteredDispatcher(500, rng=random.Random(1), sleep=sleep)
        fn = AsyncMock(return_value="result")

        result = await dispatcher.dispatch(fn, "A1", page=2)

        assert result == "result"
        fn.assert_awaited_once_with("A1", page=2)
        sleep.assert_awaited_once()
        assert 0 <= sleep.await_args.args[0] <= 0.5

    @pytest.mark.asyncio
    async def test_dispatch_without_jitter_skips_sleep(self):
        """Test no sleep happens when jitter is disabled."""
        sleep = AsyncMock()
        dispatcher = JitteredDispatcher(0, sleep=sleep)

        await dispatcher.dispatch(AsyncMock(return_value=None))

        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_dispatch_propagates_errors(self):
        """Test the dispatcher does not swallow or retry failures."""
        dispatcher = JitteredDispatcher(0)
        fn = AsyncMock(side_effect=RuntimeError("boom"))

        with pytest.raises(RuntimeError):
            await dispatcher.dispatch(fn)

        assert fn.await_count == 1
