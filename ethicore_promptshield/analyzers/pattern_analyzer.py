"""
Ethicore Engine™ - PromptShield - Pattern Analyzer
Bounded-time regex matching against known attack signatures
Version: 1.0.0

Copyright © 2026 Oracles Technologies LLC
All Rights Reserved
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

import regex

from ethicore_promptshield.models import (
    DetectionPattern,
    LayerResult,
    SensitivityLevel,
    ThreatSeverity,
    severity_to_confidence,
)
from ethicore_promptshield.providers.base_provider import PatternProvider
from ethicore_promptshield.utils.bounded_regex import (
    BoundedRegex,
    MatchOutcome,
    any_match,
    compile_list,
)
from ethicore_promptshield.utils.config import PatternMatchingConfig

logger = logging.getLogger(__name__)

LAYER_NAME = "PatternMatching"


class CompiledPattern:
    """A DetectionPattern paired with its bounded-time matcher"""

    __slots__ = ("pattern", "_regex")

    def __init__(self, pattern: DetectionPattern, timeout_ms: int):
        self.pattern = pattern
        # Signatures are matched case-insensitively regardless of inline flags
        self._regex = BoundedRegex(pattern.pattern, timeout_ms, ignore_case=True)

    def try_match(self, text: str) -> MatchOutcome:
        return self._regex.try_search(text)

    def is_match(self, text: str) -> bool:
        """True on match; a timeout counts as no match."""
        return self._regex.is_match(text)


@dataclass
class _ScanState:
    """Running state of one scan"""
    matched_patterns: List[str] = field(default_factory=list)
    timed_out_patterns: List[str] = field(default_factory=list)
    highest_confidence: float = 0.0
    highest_severity: ThreatSeverity = ThreatSeverity.LOW
    owasp_category: Optional[str] = None
    early_exit: bool = False

    @property
    def is_threat(self) -> bool:
        return len(self.matched_patterns) > 0

    def record_timeout(self, name: str, contribution: float) -> None:
        self.timed_out_patterns.append(name)
        if contribution > self.highest_confidence:
            self.highest_confidence = contribution

    def record_match(self, pattern: DetectionPattern, confidence: float) -> None:
        self.matched_patterns.append(pattern.name)
        if confidence > self.highest_confidence:
            self.highest_confidence = confidence
            self.owasp_category = pattern.owasp_category
            self.highest_severity = pattern.severity


# ---------------------------------------------------------------------------
# Sensitivity adjustment
# ---------------------------------------------------------------------------

def adjust_match_confidence(base: float, sensitivity: SensitivityLevel) -> float:
    if sensitivity is SensitivityLevel.LOW:
        return base * 0.85
    if sensitivity is SensitivityLevel.HIGH:
        return min(1.0, base * 1.1)
    if sensitivity is SensitivityLevel.PARANOID:
        return min(1.0, base * 1.2)
    return base


def adjust_early_exit_threshold(base: float, sensitivity: SensitivityLevel) -> float:
    if sensitivity is SensitivityLevel.LOW:
        return min(1.0, base + 0.05)
    if sensitivity is SensitivityLevel.HIGH:
        return max(0.5, base - 0.05)
    if sensitivity is SensitivityLevel.PARANOID:
        return max(0.4, base - 0.1)
    return base


def adjust_timeout_contribution(base: float, sensitivity: SensitivityLevel) -> float:
    if sensitivity is SensitivityLevel.LOW:
        return base * 0.7
    if sensitivity is SensitivityLevel.HIGH:
        return min(1.0, base * 1.3)
    if sensitivity is SensitivityLevel.PARANOID:
        return min(1.0, base * 1.6)
    return base


class PatternMatchingLayer:
    """
    First detection layer: known attack signatures.

    Implements:
    - Pattern loading from any number of PatternProviders
    - Compile-time filtering of disabled patterns
    - Per-pattern evaluation bound; a timeout is a suspicion signal, not an error
    - Early exit on the first match at or above the adjusted threshold
    - Allowlist short-circuit
    """

    def __init__(
        self,
        providers: Iterable[PatternProvider],
        config: Optional[PatternMatchingConfig] = None,
    ):
        self.config = config or PatternMatchingConfig()
        self._disabled_ids = {pid.lower() for pid in self.config.disabled_pattern_ids}
        self._severity_table = self.config.severity_table()
        self._allowlist = compile_list(
            self.config.allowed_patterns, self.config.timeout_ms, "pattern matching allowlist"
        )
        self.compiled_patterns = self._compile_patterns(list(providers))

        if self._disabled_ids:
            logger.info(
                "PatternMatchingLayer initialized with %d disabled patterns",
                len(self._disabled_ids),
            )

    @property
    def layer_name(self) -> str:
        return LAYER_NAME

    @property
    def pattern_count(self) -> int:
        return len(self.compiled_patterns)

    @property
    def disabled_pattern_count(self) -> int:
        return len(self._disabled_ids)

    @property
    def adjusted_early_exit_threshold(self) -> float:
        return adjust_early_exit_threshold(
            self.config.early_exit_threshold, self.config.sensitivity
        )

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _compile_patterns(self, providers: List[PatternProvider]) -> List[CompiledPattern]:
        collected: List[DetectionPattern] = []
        for provider in providers:
            name = getattr(provider, "provider_name", type(provider).__name__)
            try:
                collected.extend(provider.get_patterns())
                logger.info("Loaded patterns from provider: %s", name)
            except Exception as e:
                logger.error("Failed to load patterns from provider %s: %s", name, e)

        compiled: List[CompiledPattern] = []
        skipped = 0
        for pattern in collected:
            if not pattern.enabled:
                continue
            if pattern.id.lower() in self._disabled_ids:
                logger.debug("Skipping disabled pattern: %s - %s", pattern.id, pattern.name)
                skipped += 1
                continue
            try:
                compiled.append(CompiledPattern(pattern, self.config.timeout_ms))
            except regex.error as e:
                logger.error("Failed to compile pattern %s - %s: %s", pattern.id, pattern.name, e)

        logger.info(
            "Compiled %d patterns from %d providers (skipped %d disabled)",
            len(compiled), len(providers), skipped,
        )
        return compiled

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    async def analyze(self, prompt: str) -> LayerResult:
        """
        Scan a prompt against every compiled pattern.

        Args:
            prompt: Raw prompt text

        Returns:
            LayerResult; confidence is the highest match (or timeout) score
        """
        if not self.config.enabled:
            return LayerResult.skipped(LAYER_NAME)

        if any_match(self._allowlist, prompt):
            logger.debug("Prompt matched pattern allowlist, skipping pattern matching")
            return LayerResult(
                layer_name=LAYER_NAME,
                was_executed=True,
                confidence=0.0,
                is_threat=False,
                data={"status": "allowlisted", "reason": "Prompt matched allowlist pattern"},
            )

        start_time = time.perf_counter()
        sensitivity = self.config.sensitivity
        early_exit_threshold = self.adjusted_early_exit_threshold
        timeout_contribution = adjust_timeout_contribution(
            self.config.timeout_contribution, sensitivity
        )
        state = _ScanState()

        for compiled in self.compiled_patterns:
            # Cancellation checkpoint between patterns
            await asyncio.sleep(0)

            outcome = compiled.try_match(prompt)
            pattern = compiled.pattern

            if outcome is MatchOutcome.TIMEOUT:
                logger.warning(
                    "Pattern timeout detected (potential ReDoS): %s (%s)", pattern.name, pattern.id
                )
                state.record_timeout(pattern.name, timeout_contribution)
                continue

            if outcome is MatchOutcome.MATCH:
                confidence = adjust_match_confidence(
                    severity_to_confidence(pattern.severity, self._severity_table), sensitivity
                )
                state.record_match(pattern, confidence)
                logger.debug(
                    "Pattern matched: %s (confidence: %.3f, severity: %s)",
                    pattern.name, confidence, pattern.severity.label,
                )
                if confidence >= early_exit_threshold:
                    logger.info("Early exit triggered by high-confidence pattern: %s", pattern.name)
                    state.early_exit = True
                    break

        duration_ms = (time.perf_counter() - start_time) * 1000
        return LayerResult(
            layer_name=LAYER_NAME,
            was_executed=True,
            confidence=min(1.0, max(0.0, state.highest_confidence)),
            is_threat=state.is_threat,
            duration_ms=duration_ms,
            data=self._build_data(state),
        )

    def _build_data(self, state: _ScanState) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "matched_patterns": list(state.matched_patterns),
            "pattern_count": len(state.matched_patterns),
            "sensitivity": self.config.sensitivity.value,
            "early_exit": state.early_exit,
        }
        if state.timed_out_patterns:
            data["timed_out_patterns"] = list(state.timed_out_patterns)
            data["timeout_count"] = len(state.timed_out_patterns)
            data["has_timeouts"] = True
        if state.is_threat:
            data["owasp_category"] = state.owasp_category or "LLM01"
            data["severity"] = state.highest_severity.label
        if self._disabled_ids:
            data["disabled_patterns_count"] = len(self._disabled_ids)
        return data
