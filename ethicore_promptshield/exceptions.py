"""
Ethicore Engine™ - PromptShield - Exceptions

Copyright © 2026 Oracles Technologies LLC
All Rights Reserved
"""

from datetime import datetime, timezone
from typing import List, Optional, Sequence


class PromptShieldError(Exception):
    """Base class for every error raised by PromptShield."""

    def __init__(self, message: str = "A PromptShield error occurred.") -> None:
        super().__init__(message)
        self.timestamp = datetime.now(timezone.utc)


class ValidationError(PromptShieldError):
    """
    Raised when an AnalysisRequest is rejected before any layer runs.

    Attributes:
        error_code: Stable machine-readable code (e.g. ``VALIDATION_FAILED``).
        errors: Every individual validation message.
    """

    def __init__(
        self,
        error_code: str,
        message: str,
        errors: Optional[Sequence[str]] = None,
    ) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.errors: List[str] = list(errors) if errors else [message]


class ConfigurationError(PromptShieldError):
    """Raised when configuration values are out of range."""
