"""
Ethicore Engine™ - PromptShield - Request Validation
Rejects malformed requests before any detection layer runs
Version: 1.0.0

Copyright © 2026 Oracles Technologies LLC
All Rights Reserved
"""

import logging
from dataclasses import dataclass, field
from typing import List

from ethicore_promptshield.exceptions import ValidationError
from ethicore_promptshield.models import AnalysisRequest

logger = logging.getLogger(__name__)

PROMPT_REQUIRED = "PROMPT_REQUIRED"
PROMPT_TOO_LONG = "PROMPT_TOO_LONG"
PROMPT_INVALID_CHARS = "PROMPT_INVALID_CHARS"
PROMPT_SUSPICIOUS_CHARS = "PROMPT_SUSPICIOUS_CHARS"

VALIDATION_FAILED = "VALIDATION_FAILED"

FORBIDDEN_CHARS = frozenset("\x00")

# Invisible, direction-changing and unusual spacing characters
SUSPICIOUS_CHARS = frozenset(
    "\u200b\u200c\u200d\ufeff"          # zero-width
    "\u202a\u202b\u202c\u202d\u202e"    # bidi embedding / override
    "\u2066\u2067\u2068\u2069"          # bidi isolates
    "\u00ad"                            # soft hyphen
    "\u034f"                            # combining grapheme joiner
    "\u115f\u1160"                      # hangul fillers
    "\u17b4\u17b5"                      # khmer inherent vowels
    "\u180e"                            # mongolian vowel separator
    "\u2000\u2001\u2002\u2003\u2004\u2005\u2006\u2007\u2008\u2009\u200a"
    "\u2028\u2029\u202f\u205f"
    "\u3000"                            # ideographic space
    "\uffa0"                            # halfwidth hangul filler
)

MAX_REPORTED_CHARS = 5


@dataclass
class ValidationResult:
    """Outcome of validating one request"""
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)


def _distinct_in_order(text: str, charset: frozenset) -> List[str]:
    found: List[str] = []
    for c in text:
        if c in charset and c not in found:
            found.append(c)
    return found


def _describe(chars: List[str]) -> str:
    return ", ".join(f"U+{ord(c):04X}" for c in chars)


class RequestValidator:
    """
    Structural checks on an AnalysisRequest.

    Errors reject the request; warnings are logged and analysis proceeds
    (the detection layers score invisible characters themselves).
    """

    def __init__(self, max_prompt_length: int = 50_000):
        if max_prompt_length <= 0:
            raise ValueError("max_prompt_length must be positive")
        self.max_prompt_length = max_prompt_length

    def validate(self, request: AnalysisRequest) -> ValidationResult:
        result = ValidationResult()
        prompt = request.prompt

        if prompt is None or not prompt.strip():
            result.errors.append(
                f"{PROMPT_REQUIRED}: Prompt is required and cannot be null or empty."
            )
            return result

        if len(prompt) > self.max_prompt_length:
            result.errors.append(
                f"{PROMPT_TOO_LONG}: Prompt length ({len(prompt):,}) exceeds maximum "
                f"allowed length ({self.max_prompt_length:,})."
            )

        forbidden = _distinct_in_order(prompt, FORBIDDEN_CHARS)
        if forbidden:
            result.errors.append(
                f"{PROMPT_INVALID_CHARS}: Prompt contains forbidden characters: {_describe(forbidden)}"
            )

        suspicious = _distinct_in_order(prompt, SUSPICIOUS_CHARS)
        if suspicious:
            suffix = ""
            if len(suspicious) > MAX_REPORTED_CHARS:
                suffix = f" and {len(suspicious) - MAX_REPORTED_CHARS} more"
            result.warnings.append(
                f"{PROMPT_SUSPICIOUS_CHARS}: Prompt contains suspicious Unicode characters: "
                f"{_describe(suspicious[:MAX_REPORTED_CHARS])}{suffix}"
            )

        if request.system_prompt and len(request.system_prompt) > self.max_prompt_length:
            result.errors.append(
                f"{PROMPT_TOO_LONG}: System prompt length ({len(request.system_prompt):,}) "
                f"exceeds maximum allowed length ({self.max_prompt_length:,})."
            )

        return result

    def ensure_valid(self, request: AnalysisRequest) -> ValidationResult:
        """Validate and raise ValidationError on any error."""
        result = self.validate(request)
        for warning in result.warnings:
            logger.warning("Analysis request warning: %s", warning)
        if not result.is_valid:
            message = "; ".join(result.errors)
            logger.warning("Analysis request validation failed: %s", message)
            raise ValidationError(VALIDATION_FAILED, message, result.errors)
        return result
