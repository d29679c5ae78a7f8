"""
Ethicore Engine™ - PromptShield - Heuristic Layer
Runs registered heuristic analyzers and combines their scores
Version: 1.0.0

Copyright © 2026 Oracles Technologies LLC
All Rights Reserved
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Tuple

from ethicore_promptshield.analyzers.heuristic_analyzer import (
    HeuristicAnalyzer,
    HeuristicContext,
    HeuristicResult,
    HeuristicSignal,
)
from ethicore_promptshield.models import LayerResult

if TYPE_CHECKING:
    from ethicore_promptshield.utils.config import PromptShieldConfig

logger = logging.getLogger(__name__)

LAYER_NAME = "Heuristics"


class HeuristicLayer:
    """
    Second detection layer.

    The layer score is the weight-averaged analyzer score. Scores outside the
    definitive thresholds let the pipeline skip ML classification.
    """

    def __init__(self, analyzers: Iterable[HeuristicAnalyzer], config: "PromptShieldConfig"):
        self.config = config
        self.analyzers: List[HeuristicAnalyzer] = list(analyzers)

        if not self.analyzers:
            logger.warning("No heuristic analyzers registered")
        else:
            logger.info("Initialized HeuristicLayer with %d analyzers", len(self.analyzers))

    @property
    def layer_name(self) -> str:
        return LAYER_NAME

    async def analyze(
        self,
        prompt: str,
        pattern_result: LayerResult,
        system_prompt: Optional[str] = None,
    ) -> LayerResult:
        if not self.config.heuristics.enabled:
            return LayerResult.skipped(LAYER_NAME)

        start_time = time.perf_counter()
        context = HeuristicContext(
            prompt=prompt,
            pattern_matching_result=pattern_result,
            config=self.config,
            system_prompt=system_prompt,
        )

        results: List[Tuple[HeuristicAnalyzer, HeuristicResult]] = []
        for analyzer in self.analyzers:
            await asyncio.sleep(0)
            result = await self._run_analyzer(analyzer, context)
            if result is not None:
                results.append((analyzer, result))

        score = self._aggregate(results)
        duration_ms = (time.perf_counter() - start_time) * 1000
        return LayerResult(
            layer_name=LAYER_NAME,
            was_executed=True,
            confidence=score,
            is_threat=score >= 0.5,
            duration_ms=duration_ms,
            data=self._build_data(results, score),
        )

    async def _run_analyzer(
        self, analyzer: HeuristicAnalyzer, context: HeuristicContext
    ) -> Optional[HeuristicResult]:
        name = getattr(analyzer, "analyzer_name", type(analyzer).__name__)
        start_time = time.perf_counter()
        try:
            result = await analyzer.analyze(context)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Heuristic analyzer %s failed: %s", name, e)
            return None

        logger.debug(
            "Heuristic analyzer %s completed: score=%.3f, signals=%d, duration=%.2fms",
            name, result.score, len(result.signals), (time.perf_counter() - start_time) * 1000,
        )
        return result

    @staticmethod
    def _aggregate(results: List[Tuple[HeuristicAnalyzer, HeuristicResult]]) -> float:
        if not results:
            return 0.0
        total_weight = sum(max(0.0, analyzer.weight) for analyzer, _ in results)
        if total_weight <= 0:
            return 0.0
        weighted = sum(max(0.0, analyzer.weight) * result.score for analyzer, result in results)
        return min(1.0, max(0.0, weighted / total_weight))

    def _build_data(
        self,
        results: List[Tuple[HeuristicAnalyzer, HeuristicResult]],
        score: float,
    ) -> Dict[str, Any]:
        h = self.config.heuristics
        definitive_threat = score >= h.definitive_threat_threshold
        definitive_safe = score <= h.definitive_safe_threshold

        signals: List[HeuristicSignal] = [s for _, r in results for s in r.signals]
        data: Dict[str, Any] = {
            "signal_count": len(signals),
            "analyzer_count": len(results),
            "is_definitive": definitive_threat or definitive_safe,
        }
        if definitive_threat:
            data["early_exit_reason"] = "definitive_threat"
        elif definitive_safe:
            data["early_exit_reason"] = "definitive_safe"

        top = sorted(signals, key=lambda s: s.contribution, reverse=True)[:5]
        if top:
            data["top_signals"] = [
                {"name": s.name, "contribution": s.contribution, "description": s.description}
                for s in top
            ]
        return data

    @staticmethod
    def is_definitive(result: LayerResult) -> bool:
        return bool(result.data) and result.data.get("is_definitive") is True
