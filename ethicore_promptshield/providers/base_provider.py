"""
Ethicore Engine™ - PromptShield - Base Pattern Provider
Core abstraction for detection pattern sources
Version: 1.0.0

Copyright © 2026 Oracles Technologies LLC
All Rights Reserved
"""

from abc import ABC, abstractmethod
from typing import Iterable

from ethicore_promptshield.models import DetectionPattern


class PatternProvider(ABC):
    """
    Source of DetectionPatterns for the pattern matching layer.

    Patterns are read once, when the layer is constructed. A provider that
    raises from get_patterns() is logged and skipped; it never prevents the
    other providers from loading.
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Human-readable provider name used in logs"""

    @abstractmethod
    def get_patterns(self) -> Iterable[DetectionPattern]:
        """Return patterns in the order they should be evaluated"""
