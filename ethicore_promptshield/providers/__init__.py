"""Pattern providers"""

from ethicore_promptshield.providers.base_provider import PatternProvider
from ethicore_promptshield.providers.builtin_provider import BuiltInPatternProvider
from ethicore_promptshield.providers.yaml_provider import YamlPatternProvider

__all__ = ["PatternProvider", "BuiltInPatternProvider", "YamlPatternProvider"]
