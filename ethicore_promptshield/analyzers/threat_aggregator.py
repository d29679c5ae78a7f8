"""
Ethicore Engine™ - PromptShield - Threat Aggregator
Assembles the explainable ThreatInfo from layer results
Version: 1.0.0

Copyright © 2026 Oracles Technologies LLC
All Rights Reserved
"""

from typing import List, Optional, Sequence

from ethicore_promptshield.models import (
    LayerResult,
    ThreatInfo,
    ThreatSeverity,
    confidence_to_severity,
)

DEFAULT_OWASP_CATEGORY = "LLM01"
DEFAULT_THREAT_TYPE = "Prompt Injection"
LANGUAGE_THREAT_TYPE = "Unsupported Language"

# Shown to end users. Never names patterns, layers or scores.
USER_FACING_MESSAGE = (
    "Your request could not be processed due to security concerns. "
    "Please rephrase your message and try again."
)

GENERIC_EXPLANATION = "Potential prompt injection detected."


class _ThreatContext:
    """Accumulates category, patterns and sources across layers"""

    def __init__(self):
        self.owasp_category = DEFAULT_OWASP_CATEGORY
        self.matched_patterns: List[str] = []
        self.detection_sources: List[str] = []

    def add_pattern_result(self, result: Optional[LayerResult]) -> None:
        if result is None or result.is_threat is not True:
            return
        data = result.data or {}
        self.owasp_category = str(data.get("owasp_category") or DEFAULT_OWASP_CATEGORY)
        patterns = data.get("matched_patterns")
        if isinstance(patterns, (list, tuple)):
            self.matched_patterns.extend(str(p) for p in patterns)
        self.detection_sources.append("PatternMatching")

    def add_layer_result(self, result: Optional[LayerResult], layer_name: str) -> None:
        if result is not None and result.is_threat is True:
            self.detection_sources.append(layer_name)


class ThreatInfoBuilder:
    """
    Builds ThreatInfo for the final result.

    With ``include_details=False`` the explanation is generic and matched
    pattern names are withheld.
    """

    def __init__(self, include_details: bool = True):
        self.include_details = include_details

    def build(
        self,
        pattern_result: LayerResult,
        heuristic_result: Optional[LayerResult],
        ml_result: Optional[LayerResult],
        aggregate_confidence: float,
    ) -> Optional[ThreatInfo]:
        """ThreatInfo over every layer that flagged a threat, or None."""
        ctx = _ThreatContext()
        ctx.add_pattern_result(pattern_result)
        ctx.add_layer_result(heuristic_result, "Heuristics")
        ctx.add_layer_result(ml_result, "MLClassification")

        if not ctx.detection_sources:
            return None

        explanation = (
            f"Potential prompt injection detected with confidence {aggregate_confidence:.0%}. "
            f"Detected by: {', '.join(ctx.detection_sources)}."
        )
        return self._create(ctx, explanation, aggregate_confidence)

    def build_from_single_layer(
        self,
        result: LayerResult,
        decision_layer: str,
        confidence: float,
    ) -> Optional[ThreatInfo]:
        """ThreatInfo for an early exit; None unless the layer flagged a threat."""
        if result.is_threat is not True:
            return None

        ctx = _ThreatContext()
        ctx.add_pattern_result(result)
        # add_pattern_result already credited PatternMatching
        ctx.detection_sources = [decision_layer]

        explanation = f"Threat detected by {decision_layer} layer with {confidence:.0%} confidence."
        return self._create(ctx, explanation, confidence)

    def _create(self, ctx: _ThreatContext, explanation: str, confidence: float) -> ThreatInfo:
        matched = tuple(ctx.matched_patterns) if ctx.matched_patterns and self.include_details else None
        return ThreatInfo(
            owasp_category=ctx.owasp_category,
            threat_type=DEFAULT_THREAT_TYPE,
            explanation=explanation if self.include_details else GENERIC_EXPLANATION,
            user_facing_message=USER_FACING_MESSAGE,
            severity=confidence_to_severity(confidence),
            detection_sources=tuple(ctx.detection_sources),
            matched_patterns=matched,
        )

    def build_language_block(
        self, detected_language: str, supported_languages: Sequence[str]
    ) -> ThreatInfo:
        """ThreatInfo for a prompt stopped by the language filter."""
        supported = ", ".join(supported_languages)
        return ThreatInfo(
            owasp_category=DEFAULT_OWASP_CATEGORY,
            threat_type=LANGUAGE_THREAT_TYPE,
            explanation=(
                f"Input language '{detected_language}' is not supported. "
                f"Supported languages: [{supported}]."
            ),
            user_facing_message=f"Please submit your request in a supported language ({supported}).",
            severity=ThreatSeverity.MEDIUM,
            detection_sources=("LanguageFilter",),
        )
