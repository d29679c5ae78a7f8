"""
Ethicore Engine™ - PromptShield - Built-In Pattern Provider

Copyright © 2026 Oracles Technologies LLC
All Rights Reserved
"""

from typing import List

from ethicore_promptshield.data.builtin_patterns import get_all_patterns
from ethicore_promptshield.models import DetectionPattern
from ethicore_promptshield.providers.base_provider import PatternProvider


class BuiltInPatternProvider(PatternProvider):
    """Serves the packaged pattern library"""

    @property
    def provider_name(self) -> str:
        return "Built-In Patterns"

    def get_patterns(self) -> List[DetectionPattern]:
        return get_all_patterns()
