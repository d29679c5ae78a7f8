"""Utilities module"""

from ethicore_promptshield.utils.bounded_regex import BoundedRegex, MatchOutcome
from ethicore_promptshield.utils.config import PromptShieldConfig, load_config

__all__ = ["BoundedRegex", "MatchOutcome", "PromptShieldConfig", "load_config"]
