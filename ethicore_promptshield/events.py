"""
Ethicore Engine™ - PromptShield - Analysis Events
Lifecycle hooks for integrators (alerting, auditing, metrics)
Version: 1.0.0

Copyright © 2026 Oracles Technologies LLC
All Rights Reserved
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Iterable, List, TypeVar

from ethicore_promptshield.models import AnalysisRequest, AnalysisResult, ThreatInfo

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalysisStartedEvent:
    analysis_id: str
    request: AnalysisRequest
    timestamp: datetime


@dataclass(frozen=True)
class ThreatDetectedEvent:
    analysis_id: str
    request: AnalysisRequest
    threat_info: ThreatInfo
    detection_layer: str
    timestamp: datetime


@dataclass(frozen=True)
class AnalysisCompletedEvent:
    result: AnalysisResult
    request: AnalysisRequest
    timestamp: datetime


class EventHandler:
    """
    Base class for analysis event handlers.

    Override only the hooks you need; the defaults do nothing. A handler
    that raises is logged and does not affect the analysis result.
    """

    async def on_analysis_started(self, event: AnalysisStartedEvent) -> None:
        pass

    async def on_threat_detected(self, event: ThreatDetectedEvent) -> None:
        pass

    async def on_analysis_completed(self, event: AnalysisCompletedEvent) -> None:
        pass


E = TypeVar("E")


class EventDispatcher:
    """Delivers events to every registered handler in registration order"""

    def __init__(self, handlers: Iterable[EventHandler] = ()):
        self.handlers: List[EventHandler] = list(handlers)

    def add_handler(self, handler: EventHandler) -> None:
        self.handlers.append(handler)

    async def analysis_started(self, event: AnalysisStartedEvent) -> None:
        await self._dispatch(event, "analysis_started", lambda h, e: h.on_analysis_started(e))

    async def threat_detected(self, event: ThreatDetectedEvent) -> None:
        await self._dispatch(event, "threat_detected", lambda h, e: h.on_threat_detected(e))

    async def analysis_completed(self, event: AnalysisCompletedEvent) -> None:
        await self._dispatch(event, "analysis_completed", lambda h, e: h.on_analysis_completed(e))

    async def _dispatch(
        self,
        event: E,
        event_name: str,
        invoke: Callable[[EventHandler, E], Awaitable[None]],
    ) -> None:
        for handler in self.handlers:
            try:
                await invoke(handler, event)
            except asyncio.CancelledError:
                logger.debug("Event handler cancelled during %s", event_name)
                raise
            except Exception as e:
                logger.error(
                    "Event handler %s failed on %s: %s", type(handler).__name__, event_name, e
                )
