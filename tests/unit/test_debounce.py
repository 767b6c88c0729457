"""Tests for the trailing-edge debouncer."""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

from kubemirror.cache.debounce import TrailingDebouncer


class TestTrailingDebouncer:
    async def test_burst_collapses_to_one_delivery(self) -> None:
        callback = MagicMock()
        debouncer = TrailingDebouncer(0.03, callback)

        for _ in range(5):
            debouncer.trigger()
            await asyncio.sleep(0.005)
        callback.assert_not_called()

        await asyncio.sleep(0.06)
        callback.assert_called_once()
        assert not debouncer.pending

    async def test_delivery_waits_for_quiet_window_after_last_trigger(self) -> None:
        callback = MagicMock()
        debouncer = TrailingDebouncer(0.06, callback)

        debouncer.trigger()
        await asyncio.sleep(0.03)
        debouncer.trigger()
        await asyncio.sleep(0.03)

        # 60 ms after the first trigger, but only 30 ms after the last.
        callback.assert_not_called()
        await asyncio.sleep(0.08)
        callback.assert_called_once()

    async def test_separate_windows_deliver_separately(self) -> None:
        callback = MagicMock()
        debouncer = TrailingDebouncer(0.01, callback)

        debouncer.trigger()
        await asyncio.sleep(0.03)
        debouncer.trigger()
        await asyncio.sleep(0.03)

        assert callback.call_count == 2

    async def test_flush_delivers_now_and_absorbs_pending(self) -> None:
        callback = MagicMock()
        debouncer = TrailingDebouncer(0.02, callback)

        debouncer.trigger()
        assert debouncer.pending
        debouncer.flush()
        callback.assert_called_once()
        assert not debouncer.pending

        await asyncio.sleep(0.04)
        callback.assert_called_once()

    async def test_cancel_drops_pending_delivery(self) -> None:
        callback = MagicMock()
        debouncer = TrailingDebouncer(0.01, callback)

        debouncer.trigger()
        debouncer.cancel()
        await asyncio.sleep(0.03)

        callback.assert_not_called()
