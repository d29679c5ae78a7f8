"""
Ethicore Engine™ - PromptShield - Language Filter
Gate in front of the detection layers for unsupported languages
Version: 1.0.0

The built-in patterns and heuristics are English. A prompt written in
another language would slip past them, so the filter can block it before
detection runs.

Copyright © 2026 Oracles Technologies LLC
All Rights Reserved
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ethicore_promptshield.analyzers.language_detector import (
    UNDETERMINED,
    LanguageDetectionResult,
    LanguageDetector,
    SimpleLanguageDetector,
)
from ethicore_promptshield.models import LayerResult, UnsupportedLanguageBehavior
from ethicore_promptshield.utils.config import LanguageConfig

logger = logging.getLogger(__name__)

LAYER_NAME = "LanguageFilter"

# Reported confidence of a language block
BLOCK_CONFIDENCE = 0.9


@dataclass(frozen=True)
class LanguageFilterResult:
    """Outcome of the language gate"""
    was_executed: bool
    should_proceed: bool
    is_blocked: bool = False
    language: Optional[LanguageDetectionResult] = None
    duration_ms: float = 0.0
    message: Optional[str] = None
    has_warning: bool = False
    block_confidence: float = 0.0

    def to_layer_result(self) -> LayerResult:
        data: Dict[str, Any] = {}
        if self.language is not None:
            data["language_code"] = self.language.language_code
            data["language_name"] = self.language.language_name
            data["script_code"] = self.language.script_code
            data["detection_confidence"] = self.language.confidence
            data["detection_reliable"] = self.language.is_reliable
        data["should_proceed"] = self.should_proceed
        if self.message is not None:
            data["message"] = self.message
        if self.has_warning:
            data["warning"] = True
        if self.is_blocked:
            data["blocked"] = True

        return LayerResult(
            layer_name=LAYER_NAME,
            was_executed=self.was_executed,
            confidence=self.block_confidence if self.is_blocked else 0.0,
            is_threat=self.is_blocked,
            duration_ms=self.duration_ms,
            data=data,
        )


class LanguageFilterLayer:
    """Detects the prompt language and applies the configured behaviour"""

    def __init__(self, config: LanguageConfig, detector: Optional[LanguageDetector] = None):
        self.config = config
        self.detector = detector or SimpleLanguageDetector()
        self.supported_languages = {code.strip().lower() for code in config.supported_languages}

        logger.info(
            "LanguageFilterLayer initialized: enabled=%s, supported_languages=%s",
            config.enabled, sorted(self.supported_languages),
        )

    @property
    def layer_name(self) -> str:
        return LAYER_NAME

    async def analyze(self, prompt: str) -> LanguageFilterResult:
        if not self.config.enabled:
            return LanguageFilterResult(was_executed=False, should_proceed=True)

        start_time = time.perf_counter()

        def elapsed_ms() -> float:
            return (time.perf_counter() - start_time) * 1000

        try:
            if len(prompt) < self.config.min_text_length_for_detection:
                logger.debug(
                    "Text too short for language detection (%d < %d chars)",
                    len(prompt), self.config.min_text_length_for_detection,
                )
                return self._apply(
                    self.config.on_short_text,
                    UNDETERMINED,
                    elapsed_ms(),
                    "Text too short for reliable language detection",
                )

            language = self.detector.detect(prompt)
            logger.debug(
                "Language detected: %s (%s), confidence=%.2f",
                language.language_name, language.script_name, language.confidence,
            )

            if language.confidence < self.config.min_detection_confidence:
                return self._apply(
                    self.config.on_low_confidence_detection,
                    language,
                    elapsed_ms(),
                    f"Language detection confidence ({language.confidence:.0%}) below threshold",
                )

            if language.language_code.lower() in self.supported_languages:
                return LanguageFilterResult(
                    was_executed=True,
                    should_proceed=True,
                    language=language,
                    duration_ms=elapsed_ms(),
                    message=f"Language '{language.language_name}' is supported",
                )

            logger.info(
                "Unsupported language: %s, behavior=%s",
                language.language_name, self.config.on_unsupported_language.value,
            )
            return self._apply(
                self.config.on_unsupported_language,
                language,
                elapsed_ms(),
                f"Language '{language.language_name}' is not supported. "
                f"Supported: [{', '.join(self.config.supported_languages)}]",
            )
        except Exception as e:
            # Detection problems never block; detection layers still run
            logger.error("Language detection failed: %s", e)
            return LanguageFilterResult(
                was_executed=True,
                should_proceed=True,
                language=UNDETERMINED,
                duration_ms=elapsed_ms(),
                message=f"Language detection error: {e}",
                has_warning=True,
            )

    @staticmethod
    def _apply(
        behavior: UnsupportedLanguageBehavior,
        language: LanguageDetectionResult,
        duration_ms: float,
        reason: str,
    ) -> LanguageFilterResult:
        if behavior is UnsupportedLanguageBehavior.ALLOW:
            return LanguageFilterResult(
                was_executed=True,
                should_proceed=True,
                language=language,
                duration_ms=duration_ms,
                message=reason,
            )
        if behavior is UnsupportedLanguageBehavior.ALLOW_WITH_WARNING:
            return LanguageFilterResult(
                was_executed=True,
                should_proceed=True,
                language=language,
                duration_ms=duration_ms,
                message=f"{reason}. Detection may be less effective.",
                has_warning=True,
            )
        return LanguageFilterResult(
            was_executed=True,
            should_proceed=False,
            is_blocked=True,
            language=language,
            duration_ms=duration_ms,
            message=reason,
            block_confidence=BLOCK_CONFIDENCE,
        )
