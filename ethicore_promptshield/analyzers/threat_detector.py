"""
Ethicore Engine™ - PromptShield - Multi-Layer Threat Detection Orchestrator
Sequences the detection layers with early-exit logic
Version: 1.0.0

Pipeline:
- Gate:    Language filter     (optional; blocks unsupported languages)
- Layer 1: Pattern matching    (known attack signatures)
- Layer 2: Heuristics          (structural and linguistic signals)
- Layer 3: ML classification   (feature score + optional ONNX model)

Decision logic:
- A layer that is confident enough decides alone (early exit)
- Otherwise executed layer confidences are combined by weighted mean
- A failing layer is logged and contributes a zero-confidence result

Copyright © 2026 Oracles Technologies LLC
All Rights Reserved
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from ethicore_promptshield.analyzers.heuristic_layer import HeuristicLayer
from ethicore_promptshield.analyzers.language_filter import LanguageFilterLayer, LanguageFilterResult
from ethicore_promptshield.analyzers.ml_inference_engine import MLClassificationLayer
from ethicore_promptshield.analyzers.pattern_analyzer import PatternMatchingLayer
from ethicore_promptshield.analyzers.threat_aggregator import ThreatInfoBuilder
from ethicore_promptshield.models import (
    AnalysisRequest,
    AnalysisResult,
    DetectionBreakdown,
    LayerResult,
    ThreatInfo,
)
from ethicore_promptshield.utils.config import PromptShieldConfig

logger = logging.getLogger(__name__)

AGGREGATED_DECISION = "Aggregated"
ML_SKIP_FACTOR = 0.5


@dataclass
class _PipelineContext:
    """Execution state of one analysis"""
    analysis_id: str
    timestamp: datetime
    start_time: float
    executed_layers: List[str] = field(default_factory=list)
    language_result: Optional[LanguageFilterResult] = None
    pattern_result: Optional[LayerResult] = None
    heuristic_result: Optional[LayerResult] = None
    ml_result: Optional[LayerResult] = None

    @property
    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self.start_time) * 1000


def failed_layer_result(layer_name: str) -> LayerResult:
    return LayerResult(
        layer_name=layer_name,
        was_executed=True,
        confidence=0.0,
        is_threat=False,
        duration_ms=0.0,
        data={"error": "Layer execution failed"},
    )


class PipelineOrchestrator:
    """
    [Language gate ->] Pattern -> Heuristics -> ML, stopping at the first
    decisive layer. The language gate never contributes to the aggregate.

    The orchestrator never raises for a single layer's failure; only
    cancellation and failures outside the layers propagate to the caller.
    """

    def __init__(
        self,
        pattern_layer: PatternMatchingLayer,
        heuristic_layer: HeuristicLayer,
        ml_layer: Optional[MLClassificationLayer],
        config: PromptShieldConfig,
        language_filter: Optional[LanguageFilterLayer] = None,
    ):
        if pattern_layer is None or heuristic_layer is None:
            raise ValueError("pattern_layer and heuristic_layer are required")
        self.pattern_layer = pattern_layer
        self.heuristic_layer = heuristic_layer
        self.ml_layer = ml_layer
        self.language_filter = language_filter
        self.config = config
        self.threat_info_builder = ThreatInfoBuilder(include_details=config.include_breakdown)

    async def execute(self, request: AnalysisRequest, analysis_id: str) -> AnalysisResult:
        ctx = _PipelineContext(
            analysis_id=analysis_id,
            timestamp=datetime.now(timezone.utc),
            start_time=time.perf_counter(),
        )
        logger.info(
            "Starting analysis pipeline: analysis_id=%s, prompt_length=%d",
            analysis_id, len(request.prompt),
        )

        try:
            result = await self._run_language_filter(ctx, request)
            if result is not None:
                return result

            result = await self._run_pattern_matching(ctx, request)
            if result is not None:
                return result

            result = await self._run_heuristics(ctx, request)
            if result is not None:
                return result

            result = await self._run_ml(ctx, request)
            if result is not None:
                return result

            return self._aggregated_result(ctx)
        except asyncio.CancelledError:
            logger.warning("Pipeline cancelled: analysis_id=%s", analysis_id)
            raise
        except Exception as e:
            logger.error("Pipeline failed: analysis_id=%s: %s", analysis_id, e)
            raise

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _run_language_filter(
        self, ctx: _PipelineContext, request: AnalysisRequest
    ) -> Optional[AnalysisResult]:
        if self.language_filter is None or not self.config.language.enabled:
            return None

        await asyncio.sleep(0)
        try:
            outcome = await self.language_filter.analyze(request.prompt)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("%s layer failed, continuing with detection: %s", self.language_filter.layer_name, e)
            return None

        ctx.language_result = outcome
        if not outcome.was_executed:
            return None
        ctx.executed_layers.append(self.language_filter.layer_name)

        logger.debug(
            "Language filter: should_proceed=%s, language=%s",
            outcome.should_proceed,
            outcome.language.language_name if outcome.language else "unknown",
        )
        if outcome.should_proceed or not outcome.is_blocked:
            return None

        logger.info("Request blocked by language filter: %s", outcome.message)
        return self._language_block_result(ctx, outcome)

    async def _run_pattern_matching(
        self, ctx: _PipelineContext, request: AnalysisRequest
    ) -> Optional[AnalysisResult]:
        ctx.pattern_result = await self._execute_layer(
            lambda: self.pattern_layer.analyze(request.prompt),
            self.pattern_layer.layer_name,
            ctx,
        )
        result = ctx.pattern_result
        logger.debug(
            "Pattern matching: is_threat=%s, confidence=%s", result.is_threat, result.confidence
        )

        if result.is_threat is not True:
            return None
        if (result.confidence or 0.0) < self.pattern_layer.adjusted_early_exit_threshold:
            return None

        logger.info("Early exit: pattern matching (confidence=%.0f%%)", (result.confidence or 0.0) * 100)
        return self._early_exit_result(ctx, self.pattern_layer.layer_name, result)

    async def _run_heuristics(
        self, ctx: _PipelineContext, request: AnalysisRequest
    ) -> Optional[AnalysisResult]:
        ctx.heuristic_result = await self._execute_layer(
            lambda: self.heuristic_layer.analyze(
                request.prompt, ctx.pattern_result, request.system_prompt
            ),
            self.heuristic_layer.layer_name,
            ctx,
        )
        result = ctx.heuristic_result
        logger.debug("Heuristics: is_threat=%s, confidence=%s", result.is_threat, result.confidence)

        if not HeuristicLayer.is_definitive(result):
            return None

        logger.info(
            "Early exit: heuristics definitive %s (confidence=%.0f%%)",
            "threat" if result.is_threat else "safe",
            (result.confidence or 0.0) * 100,
        )
        return self._early_exit_result(ctx, self.heuristic_layer.layer_name, result)

    async def _run_ml(
        self, ctx: _PipelineContext, request: AnalysisRequest
    ) -> Optional[AnalysisResult]:
        if self.ml_layer is None or not self.config.ml.enabled:
            return None

        combined = (
            (ctx.pattern_result.confidence or 0.0) + (ctx.heuristic_result.confidence or 0.0)
        ) / 2.0
        if combined < self.config.ml.threshold * ML_SKIP_FACTOR:
            logger.debug("Skipping ML layer: low combined risk (%.3f)", combined)
            return None

        ctx.ml_result = await self._execute_layer(
            lambda: self.ml_layer.analyze(request.prompt),
            self.ml_layer.layer_name,
            ctx,
        )
        result = ctx.ml_result
        logger.debug("ML classification: is_threat=%s, confidence=%s", result.is_threat, result.confidence)

        if result.is_threat is not True or (result.confidence or 0.0) < self.config.ml.threshold:
            return None

        logger.info("Early exit: ML classification (confidence=%.0f%%)", (result.confidence or 0.0) * 100)
        return self._early_exit_result(ctx, self.ml_layer.layer_name, result)

    @staticmethod
    async def _execute_layer(
        action: Callable[[], Awaitable[LayerResult]],
        layer_name: str,
        ctx: _PipelineContext,
    ) -> LayerResult:
        # Cancellation checkpoint at every layer boundary
        await asyncio.sleep(0)
        try:
            result = await action()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("%s layer failed: %s", layer_name, e)
            result = failed_layer_result(layer_name)

        if result.was_executed:
            ctx.executed_layers.append(layer_name)
        return result

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    def _early_exit_result(
        self, ctx: _PipelineContext, decision_layer: str, deciding: LayerResult
    ) -> AnalysisResult:
        is_threat = bool(deciding.is_threat)
        confidence = min(1.0, max(0.0, deciding.confidence or 0.0))
        threat_info: Optional[ThreatInfo] = None
        if is_threat:
            threat_info = self.threat_info_builder.build_from_single_layer(
                deciding, decision_layer, confidence
            )

        return AnalysisResult(
            analysis_id=ctx.analysis_id,
            is_threat=is_threat,
            confidence=confidence,
            decision_layer=decision_layer,
            duration_ms=ctx.elapsed_ms,
            timestamp=ctx.timestamp,
            threat_info=threat_info,
            breakdown=self._breakdown(ctx),
        )

    def _language_block_result(
        self, ctx: _PipelineContext, outcome: LanguageFilterResult
    ) -> AnalysisResult:
        detected = outcome.language.language_name if outcome.language else "Unknown"
        threat_info = self.threat_info_builder.build_language_block(
            detected, self.config.language.supported_languages
        )
        return AnalysisResult(
            analysis_id=ctx.analysis_id,
            is_threat=True,
            confidence=outcome.block_confidence,
            decision_layer=self.language_filter.layer_name,
            duration_ms=ctx.elapsed_ms,
            timestamp=ctx.timestamp,
            threat_info=threat_info,
            breakdown=self._breakdown(ctx),
        )

    def _aggregated_result(self, ctx: _PipelineContext) -> AnalysisResult:
        confidence = self.aggregate_confidence(
            ctx.pattern_result, ctx.heuristic_result, ctx.ml_result
        )
        is_threat = confidence >= self.config.threat_threshold
        threat_info = None
        if is_threat:
            threat_info = self.threat_info_builder.build(
                ctx.pattern_result, ctx.heuristic_result, ctx.ml_result, confidence
            )

        result = AnalysisResult(
            analysis_id=ctx.analysis_id,
            is_threat=is_threat,
            confidence=confidence,
            decision_layer=AGGREGATED_DECISION,
            duration_ms=ctx.elapsed_ms,
            timestamp=ctx.timestamp,
            threat_info=threat_info,
            breakdown=self._breakdown(ctx),
        )
        logger.info(
            "Analysis completed: is_threat=%s, confidence=%.3f, duration=%.2fms",
            result.is_threat, result.confidence, result.duration_ms,
        )
        return result

    def aggregate_confidence(
        self,
        pattern_result: Optional[LayerResult],
        heuristic_result: Optional[LayerResult],
        ml_result: Optional[LayerResult],
    ) -> float:
        """Weighted mean over executed layers; weights renormalise to 1."""
        agg = self.config.aggregation
        weighted: List[Tuple[float, float]] = []
        for result, weight in (
            (pattern_result, agg.pattern_matching_weight),
            (heuristic_result, agg.heuristics_weight),
            (ml_result, agg.ml_classification_weight),
        ):
            if result is not None and result.was_executed:
                weighted.append((result.confidence or 0.0, weight))

        total_weight = sum(w for _, w in weighted)
        if total_weight <= 0:
            return 0.0
        score = sum(c * w for c, w in weighted) / total_weight
        return min(1.0, max(0.0, score))

    def _breakdown(self, ctx: _PipelineContext) -> DetectionBreakdown:
        executed = tuple(ctx.executed_layers)
        # A configured ML layer always reports, if only as not executed
        ml_placeholder = (
            LayerResult.skipped(self.ml_layer.layer_name) if self.ml_layer is not None else None
        )
        if not self.config.include_breakdown:
            return DetectionBreakdown(
                pattern_matching=LayerResult.skipped(self.pattern_layer.layer_name),
                heuristics=LayerResult.skipped(self.heuristic_layer.layer_name),
                ml_classification=ml_placeholder,
                executed_layers=executed,
            )

        language_filter = None
        if ctx.language_result is not None and self.config.language.include_language_in_results:
            language_filter = ctx.language_result.to_layer_result()
        return DetectionBreakdown(
            pattern_matching=ctx.pattern_result or LayerResult.skipped(self.pattern_layer.layer_name),
            heuristics=ctx.heuristic_result or LayerResult.skipped(self.heuristic_layer.layer_name),
            ml_classification=ctx.ml_result or ml_placeholder,
            executed_layers=executed,
            language_filter=language_filter,
        )

    def get_statistics(self) -> Dict[str, object]:
        return {
            "pattern_count": self.pattern_layer.pattern_count,
            "heuristic_analyzers": len(self.heuristic_layer.analyzers),
            "ml_layer": self.ml_layer is not None,
            "language_filter": self.language_filter is not None and self.config.language.enabled,
            "layer_weights": {
                "PatternMatching": self.config.aggregation.pattern_matching_weight,
                "Heuristics": self.config.aggregation.heuristics_weight,
                "MLClassification": self.config.aggregation.ml_classification_weight,
            },
            "thresholds": {
                "threat": self.config.threat_threshold,
                "pattern_early_exit": self.pattern_layer.adjusted_early_exit_threshold,
                "ml": self.config.ml.threshold,
            },
        }
