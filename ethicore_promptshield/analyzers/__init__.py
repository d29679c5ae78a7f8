"""
Ethicore Engine™ - PromptShield - Analyzers package

Exports the detection layers and their building blocks so integrators can
import directly from ``ethicore_promptshield.analyzers`` without knowing the
internal module layout.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Gate - language filter
# ---------------------------------------------------------------------------
from ethicore_promptshield.analyzers.language_detector import (
    LanguageDetectionResult,
    LanguageDetector,
    SimpleLanguageDetector,
)
from ethicore_promptshield.analyzers.language_filter import LanguageFilterLayer, LanguageFilterResult

# ---------------------------------------------------------------------------
# Layer 1 - pattern matching
# ---------------------------------------------------------------------------
from ethicore_promptshield.analyzers.pattern_analyzer import CompiledPattern, PatternMatchingLayer

# ---------------------------------------------------------------------------
# Layer 2 - heuristics
# ---------------------------------------------------------------------------
from ethicore_promptshield.analyzers.heuristic_analyzer import (
    BuiltInHeuristicAnalyzer,
    HeuristicAnalyzer,
    HeuristicContext,
    HeuristicResult,
    HeuristicSignal,
    HeuristicSignals,
)
from ethicore_promptshield.analyzers.heuristic_layer import HeuristicLayer

# ---------------------------------------------------------------------------
# Layer 3 - ML classification (numpy + onnxruntime)
# ---------------------------------------------------------------------------
from ethicore_promptshield.analyzers.feature_extractor import FEATURE_NAMES, FeatureExtractor
from ethicore_promptshield.analyzers.ml_inference_engine import InferenceMode, MLClassificationLayer
from ethicore_promptshield.analyzers.model_loader import ModelLoader
from ethicore_promptshield.analyzers.tokenizer import SimpleTokenizer, TokenizationStrategy

# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------
from ethicore_promptshield.analyzers.threat_aggregator import ThreatInfoBuilder
from ethicore_promptshield.analyzers.threat_detector import PipelineOrchestrator

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
__all__ = [
    # Layers
    "LanguageFilterLayer",
    "PatternMatchingLayer",
    "HeuristicLayer",
    "MLClassificationLayer",
    "PipelineOrchestrator",
    # Building blocks
    "CompiledPattern",
    "LanguageFilterResult",
    "LanguageDetector",
    "SimpleLanguageDetector",
    "LanguageDetectionResult",
    "HeuristicAnalyzer",
    "BuiltInHeuristicAnalyzer",
    "HeuristicContext",
    "HeuristicResult",
    "HeuristicSignal",
    "HeuristicSignals",
    "FeatureExtractor",
    "FEATURE_NAMES",
    "SimpleTokenizer",
    "TokenizationStrategy",
    "ModelLoader",
    "InferenceMode",
    "ThreatInfoBuilder",
]
