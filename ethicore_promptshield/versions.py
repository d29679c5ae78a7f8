"""
Ethicore Engine™ - PromptShield - Version Information
"""

__version__ = "1.0.0"
__version_info__ = tuple(map(int, __version__.split('.')))

# Build information
__build__ = "stable.1"
__release_date__ = "2026-10-18"

# Feature flags
FEATURES = {
    "pattern_matching": True,
    "heuristics": True,
    "ml_classification": True,
    "onnx_models": True,
    "yaml_patterns": True,
    "event_handlers": True,
    "language_filter": True,
}

# Layer versions
LAYER_VERSIONS = {
    "orchestrator": "1.0.0",
    "language_filter": "1.0.0",
    "pattern_matching": "1.0.0",
    "heuristics": "1.0.0",
    "ml_classification": "1.0.0",
    "feature_extractor": "1.0.0",
    "tokenizer": "1.0.0",
}
