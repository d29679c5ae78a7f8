"""
Ethicore Engine™ - PromptShield - Main PromptShield Class
Public entry point: validation, pipeline execution, failure policy, events
Version: 1.0.0

Copyright © 2026 Oracles Technologies LLC
All Rights Reserved
"""

import asyncio
import hashlib
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Union

from ethicore_promptshield.analyzers.heuristic_analyzer import (
    BuiltInHeuristicAnalyzer,
    HeuristicAnalyzer,
)
from ethicore_promptshield.analyzers.heuristic_layer import HeuristicLayer
from ethicore_promptshield.analyzers.language_detector import LanguageDetector
from ethicore_promptshield.analyzers.language_filter import LanguageFilterLayer
from ethicore_promptshield.analyzers.ml_inference_engine import MLClassificationLayer
from ethicore_promptshield.analyzers.model_loader import ModelLoader
from ethicore_promptshield.analyzers.pattern_analyzer import PatternMatchingLayer
from ethicore_promptshield.analyzers.threat_aggregator import USER_FACING_MESSAGE
from ethicore_promptshield.analyzers.threat_detector import PipelineOrchestrator
from ethicore_promptshield.events import (
    AnalysisCompletedEvent,
    AnalysisStartedEvent,
    EventDispatcher,
    EventHandler,
    ThreatDetectedEvent,
)
from ethicore_promptshield.models import (
    AnalysisRequest,
    AnalysisResult,
    DetectionBreakdown,
    FailureBehavior,
    LayerResult,
    ThreatInfo,
    ThreatSeverity,
)
from ethicore_promptshield.providers import (
    BuiltInPatternProvider,
    PatternProvider,
    YamlPatternProvider,
)
from ethicore_promptshield.utils.config import PromptShieldConfig
from ethicore_promptshield.validation import RequestValidator
from ethicore_promptshield.versions import LAYER_VERSIONS, __version__

logger = logging.getLogger(__name__)

PACKAGE_LOGGER = "ethicore_promptshield"


def prompt_fingerprint(text: str) -> str:
    """Short SHA-256 prefix; raw prompt text is never logged."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:16]


class PromptShield:
    """
    Multi-layer prompt-injection detector.

    Usage:
        shield = PromptShield()
        result = await shield.analyze("Ignore all previous instructions")
        if result.is_threat:
            return result.threat_info.user_facing_message
    """

    def __init__(
        self,
        config: Optional[PromptShieldConfig] = None,
        providers: Optional[Iterable[PatternProvider]] = None,
        heuristic_analyzers: Optional[Iterable[HeuristicAnalyzer]] = None,
        event_handlers: Optional[Iterable[EventHandler]] = None,
        model_loader: Optional[ModelLoader] = None,
        language_detector: Optional[LanguageDetector] = None,
    ):
        self.config = (config or PromptShieldConfig()).validate()
        logging.getLogger(PACKAGE_LOGGER).setLevel(self.config.log_level.upper())

        self.validator = RequestValidator(self.config.max_prompt_length)
        self.events = EventDispatcher(event_handlers or ())

        pattern_providers = (
            list(providers) if providers is not None else self._default_providers()
        )
        self.pattern_layer = PatternMatchingLayer(pattern_providers, self.config.pattern_matching)

        analyzers = (
            list(heuristic_analyzers)
            if heuristic_analyzers is not None
            else [BuiltInHeuristicAnalyzer(self.config.heuristics)]
        )
        self.heuristic_layer = HeuristicLayer(analyzers, self.config)

        self.ml_layer: Optional[MLClassificationLayer] = None
        if self.config.ml.enabled:
            self.ml_layer = MLClassificationLayer(self.config.ml, model_loader=model_loader)

        self.language_filter: Optional[LanguageFilterLayer] = None
        if self.config.language.enabled:
            self.language_filter = LanguageFilterLayer(self.config.language, detector=language_detector)

        self.orchestrator = PipelineOrchestrator(
            self.pattern_layer,
            self.heuristic_layer,
            self.ml_layer,
            self.config,
            language_filter=self.language_filter,
        )

        logger.info(
            "PromptShield %s initialized: %d patterns, ML %s, failure behavior %s",
            __version__,
            self.pattern_layer.pattern_count,
            "enabled" if self.ml_layer is not None else "disabled",
            self.config.failure_behavior.value,
        )

    def _default_providers(self) -> List[PatternProvider]:
        providers: List[PatternProvider] = []
        if self.config.pattern_matching.include_builtin_patterns:
            providers.append(BuiltInPatternProvider())
        for path in self.config.pattern_files:
            providers.append(YamlPatternProvider(path))
        return providers

    def add_event_handler(self, handler: EventHandler) -> None:
        self.events.add_handler(handler)

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    async def analyze(self, request: Union[AnalysisRequest, str]) -> AnalysisResult:
        """
        Analyze a prompt for injection and jailbreak attempts.

        Args:
            request: An AnalysisRequest, or the prompt text itself

        Returns:
            AnalysisResult. Pipeline failures and timeouts follow
            ``config.failure_behavior`` instead of raising.

        Raises:
            ValidationError: the request is malformed (no layer ran)
        """
        if isinstance(request, str):
            request = AnalysisRequest(prompt=request)
        if request is None:
            raise TypeError("request must not be None")

        self.validator.ensure_valid(request)

        analysis_id = str(uuid.uuid4())
        metadata = request.metadata
        logger.info(
            "Starting prompt analysis: analysis_id=%s, prompt_length=%d, prompt_sha256=%s, "
            "user_id=%s, conversation_id=%s",
            analysis_id,
            len(request.prompt),
            prompt_fingerprint(request.prompt),
            metadata.user_id if metadata else None,
            metadata.conversation_id if metadata else None,
        )

        await self.events.analysis_started(
            AnalysisStartedEvent(
                analysis_id=analysis_id,
                request=request,
                timestamp=datetime.now(timezone.utc),
            )
        )

        timeout_ms = self.config.analysis_timeout_ms
        try:
            if timeout_ms and timeout_ms > 0:
                result = await asyncio.wait_for(
                    self.orchestrator.execute(request, analysis_id),
                    timeout=timeout_ms / 1000.0,
                )
            else:
                result = await self.orchestrator.execute(request, analysis_id)
        except asyncio.CancelledError:
            logger.warning("Analysis cancelled: analysis_id=%s", analysis_id)
            raise
        except asyncio.TimeoutError:
            logger.warning(
                "Analysis timed out after %d ms: analysis_id=%s", timeout_ms, analysis_id
            )
            result = self._failure_result(analysis_id, f"timed out after {timeout_ms} ms")
        except Exception as e:
            logger.error("Analysis failed: analysis_id=%s: %s", analysis_id, e)
            result = self._failure_result(analysis_id, "pipeline error")

        logger.info(
            "Analysis completed: analysis_id=%s, is_threat=%s, confidence=%.3f, "
            "decision_layer=%s, duration=%.2fms",
            result.analysis_id, result.is_threat, result.confidence,
            result.decision_layer, result.duration_ms,
        )

        if result.is_threat and result.threat_info is not None:
            await self.events.threat_detected(
                ThreatDetectedEvent(
                    analysis_id=result.analysis_id,
                    request=request,
                    threat_info=result.threat_info,
                    detection_layer=result.decision_layer,
                    timestamp=result.timestamp,
                )
            )

        await self.events.analysis_completed(
            AnalysisCompletedEvent(result=result, request=request, timestamp=result.timestamp)
        )
        return result

    def _failure_result(self, analysis_id: str, reason: str) -> AnalysisResult:
        """Result for a pipeline failure or timeout, per failure_behavior."""
        fail_closed = self.config.failure_behavior is FailureBehavior.FAIL_CLOSED
        decision = self.config.failure_behavior.value
        marker = {"error": f"Analysis failed - {'fail-closed' if fail_closed else 'fail-open'} mode"}

        breakdown = DetectionBreakdown(
            pattern_matching=LayerResult(
                layer_name=self.pattern_layer.layer_name, was_executed=False, data=marker
            ),
            heuristics=LayerResult(
                layer_name=self.heuristic_layer.layer_name, was_executed=False, data=marker
            ),
            ml_classification=(
                LayerResult(layer_name=self.ml_layer.layer_name, was_executed=False, data=marker)
                if self.ml_layer is not None
                else None
            ),
            executed_layers=(),
        )

        if not fail_closed:
            logger.warning(
                "Returning safe result due to fail-open configuration: analysis_id=%s (%s)",
                analysis_id, reason,
            )
            return AnalysisResult(
                analysis_id=analysis_id,
                is_threat=False,
                confidence=0.0,
                decision_layer=decision,
                duration_ms=0.0,
                timestamp=datetime.now(timezone.utc),
                breakdown=breakdown,
            )

        logger.error("Blocking request (fail-closed): analysis_id=%s (%s)", analysis_id, reason)
        threat_info = ThreatInfo(
            owasp_category="LLM01",
            threat_type="Analysis Failure",
            explanation=f"Analysis could not be completed ({reason}); request blocked.",
            user_facing_message=USER_FACING_MESSAGE,
            severity=ThreatSeverity.CRITICAL,
            detection_sources=(decision,),
        )
        return AnalysisResult(
            analysis_id=analysis_id,
            is_threat=True,
            confidence=1.0,
            decision_layer=decision,
            duration_ms=0.0,
            timestamp=datetime.now(timezone.utc),
            threat_info=threat_info,
            breakdown=breakdown,
        )

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def get_status(self) -> Dict[str, Any]:
        """Configuration and readiness snapshot"""
        return {
            "version": __version__,
            "pattern_count": self.pattern_layer.pattern_count,
            "disabled_pattern_count": self.pattern_layer.disabled_pattern_count,
            "heuristic_analyzers": [
                getattr(a, "analyzer_name", type(a).__name__) for a in self.heuristic_layer.analyzers
            ],
            "model_available": self.ml_layer is not None and self.ml_layer.model_available,
            "layers": {
                "LanguageFilter": self.language_filter is not None,
                "PatternMatching": self.config.pattern_matching.enabled,
                "Heuristics": self.config.heuristics.enabled,
                "MLClassification": self.ml_layer is not None,
            },
            "threat_threshold": self.config.threat_threshold,
            "failure_behavior": self.config.failure_behavior.value,
            "include_breakdown": self.config.include_breakdown,
            "event_handlers": len(self.events.handlers),
            "layer_versions": dict(LAYER_VERSIONS),
        }


async def analyze_prompt(prompt: str, config: Optional[PromptShieldConfig] = None) -> AnalysisResult:
    """Convenience function for one-off prompt analysis"""
    shield = PromptShield(config=config)
    return await shield.analyze(prompt)
