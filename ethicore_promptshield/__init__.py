"""
Ethicore Engine™ - PromptShield - Prompt Injection Detection
Multi-layer prompt-injection and jailbreak classifier for LLM applications

Copyright © 2026 Oracles Technologies LLC
All Rights Reserved
"""

from .versions import __version__

__author__ = "Oracles Technologies LLC"

# Core exports
from .shield import PromptShield, analyze_prompt
from .models import (
    AnalysisMetadata,
    AnalysisRequest,
    AnalysisResult,
    ConversationMessage,
    DetectionBreakdown,
    DetectionPattern,
    FailureBehavior,
    LayerResult,
    SensitivityLevel,
    ThreatInfo,
    ThreatSeverity,
    UnsupportedLanguageBehavior,
)
from .exceptions import ConfigurationError, PromptShieldError, ValidationError
from .events import (
    AnalysisCompletedEvent,
    AnalysisStartedEvent,
    EventHandler,
    ThreatDetectedEvent,
)
from .providers import BuiltInPatternProvider, PatternProvider, YamlPatternProvider
from .utils.config import PromptShieldConfig, load_config

# Main API exports
__all__ = [
    # Core classes
    'PromptShield',
    'PromptShieldConfig',
    'load_config',

    # Requests and results
    'AnalysisRequest',
    'AnalysisMetadata',
    'ConversationMessage',
    'AnalysisResult',
    'DetectionBreakdown',
    'LayerResult',
    'ThreatInfo',
    'ThreatSeverity',
    'SensitivityLevel',
    'FailureBehavior',
    'UnsupportedLanguageBehavior',
    'DetectionPattern',

    # Exceptions
    'PromptShieldError',
    'ValidationError',
    'ConfigurationError',

    # Events
    'EventHandler',
    'AnalysisStartedEvent',
    'ThreatDetectedEvent',
    'AnalysisCompletedEvent',

    # Pattern providers
    'PatternProvider',
    'BuiltInPatternProvider',
    'YamlPatternProvider',

    # Convenience functions
    'analyze_prompt',

    # Version
    '__version__',
]

# Package metadata
__description__ = "Prompt injection detection - multi-layer security for LLM applications"
__url__ = "https://oraclestechnologies.com/promptshield"
