"""
Unit tests for the event dispatcher
"""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from ethicore_promptshield.events import AnalysisStartedEvent, EventDispatcher, EventHandler
from ethicore_promptshield.models import AnalysisRequest


def _make_event() -> AnalysisStartedEvent:
    return AnalysisStartedEvent(
        analysis_id="analysis-1",
        request=AnalysisRequest(prompt="hello"),
        timestamp=datetime.now(timezone.utc),
    )


class TestEventDispatcher:
    @pytest.mark.asyncio
    async def test_handlers_called_in_order(self):
        calls = []
        first, second = EventHandler(), EventHandler()
        first.on_analysis_started = AsyncMock(side_effect=lambda e: calls.append("first"))
        second.on_analysis_started = AsyncMock(side_effect=lambda e: calls.append("second"))
        dispatcher = EventDispatcher([first])
        dispatcher.add_handler(second)

        event = _make_event()
        await dispatcher.analysis_started(event)

        assert calls == ["first", "second"]
        first.on_analysis_started.assert_awaited_once_with(event)

    @pytest.mark.asyncio
    async def test_default_hooks_are_no_ops(self):
        await EventDispatcher([EventHandler()]).analysis_started(_make_event())

    @pytest.mark.asyncio
    async def test_failure_is_isolated(self):
        broken, healthy = EventHandler(), EventHandler()
        broken.on_analysis_started = AsyncMock(side_effect=RuntimeError("sink down"))
        healthy.on_analysis_started = AsyncMock()

        await EventDispatcher([broken, healthy]).analysis_started(_make_event())

        healthy.on_analysis_started.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self):
        handler = EventHandler()
        handler.on_analysis_started = AsyncMock(side_effect=asyncio.CancelledError())

        with pytest.raises(asyncio.CancelledError):
            await EventDispatcher([handler]).analysis_started(_make_event())
