"""Configuration management"""

import json
import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from ethicore_promptshield.exceptions import ConfigurationError
from ethicore_promptshield.models import (
    DEFAULT_SEVERITY_CONFIDENCE,
    FailureBehavior,
    SensitivityLevel,
    ThreatSeverity,
    UnsupportedLanguageBehavior,
)

logger = logging.getLogger(__name__)


@dataclass
class PatternMatchingConfig:
    """Regex pattern-matching layer settings"""
    enabled: bool = True

    # Hard bound on a single pattern evaluation. A pattern that runs longer
    # is recorded as "timed out" instead of raising.
    timeout_ms: int = 100

    # Stop scanning once a match reaches this (sensitivity-adjusted) confidence
    early_exit_threshold: float = 0.9

    include_builtin_patterns: bool = True

    # Suspicion score assigned when any pattern times out (pre-sensitivity)
    timeout_contribution: float = 0.3

    # Pattern ids removed at compile time (case-insensitive)
    disabled_pattern_ids: List[str] = field(default_factory=list)

    # Any match short-circuits the layer to "allowlisted"
    allowed_patterns: List[str] = field(default_factory=list)

    sensitivity: SensitivityLevel = SensitivityLevel.MEDIUM

    # Optional override of the severity -> confidence calibration,
    # keyed by severity name ("Critical", "High", ...).
    severity_confidence: Optional[Dict[str, float]] = None

    def severity_table(self) -> Optional[Dict[ThreatSeverity, float]]:
        if not self.severity_confidence:
            return None
        table = dict(DEFAULT_SEVERITY_CONFIDENCE)
        for name, value in self.severity_confidence.items():
            table[ThreatSeverity.parse(name)] = float(value)
        return table


@dataclass
class HeuristicConfig:
    """Heuristic signal layer settings"""
    enabled: bool = True

    # Scores at/above (threat) or at/below (safe) these let the pipeline skip ML
    definitive_threat_threshold: float = 0.85
    definitive_safe_threshold: float = 0.15

    sensitivity: SensitivityLevel = SensitivityLevel.MEDIUM

    # Legacy keyword mode: minimum directive keywords before a signal fires
    directive_word_threshold: int = 3

    punctuation_ratio_threshold: float = 0.15
    alphanumeric_ratio_threshold: float = 0.5

    allowed_patterns: List[str] = field(default_factory=list)
    additional_blocked_patterns: List[str] = field(default_factory=list)

    # Legacy directive keywords ignored for this deployment's domain
    domain_exclusions: List[str] = field(default_factory=list)

    # Compound regexes (keyword + context) instead of bare keywords
    use_compound_patterns: bool = True

    regex_timeout_ms: int = 50


@dataclass
class MLConfig:
    """ML classification layer settings"""
    enabled: bool = True

    # ONNX model file; None -> look for a packaged model, else feature-only
    model_path: Optional[str] = None

    threshold: float = 0.8
    max_sequence_length: int = 512

    # Inference concurrency bound. Waiting longer than
    # inference_timeout_seconds / 2 for a slot yields a degraded result.
    max_concurrent_inferences: int = 4
    inference_timeout_seconds: float = 10.0

    use_ensemble: bool = True
    model_weight: float = 0.7
    include_feature_importance: bool = True

    sensitivity: SensitivityLevel = SensitivityLevel.MEDIUM

    # Feature name -> weight override, clamped to [0, 1]
    feature_weights: Optional[Dict[str, float]] = None

    allowed_patterns: List[str] = field(default_factory=list)
    disabled_features: List[str] = field(default_factory=list)

    # Features below this value are ignored by the feature score
    min_feature_contribution: float = 0.1

    # Display policy only: features above this are listed in top_features
    feature_display_threshold: float = 0.3


@dataclass
class LanguageConfig:
    """Language gate in front of the detection layers"""

    # Off by default. When on, encoded or symbol-only prompts detect as
    # low-confidence and follow on_low_confidence_detection.
    enabled: bool = False

    # ISO 639-1 codes allowed through to detection
    supported_languages: List[str] = field(default_factory=lambda: ["en"])

    on_unsupported_language: UnsupportedLanguageBehavior = UnsupportedLanguageBehavior.BLOCK

    # Detections below this confidence use on_low_confidence_detection
    min_detection_confidence: float = 0.7
    on_low_confidence_detection: UnsupportedLanguageBehavior = UnsupportedLanguageBehavior.BLOCK

    # Shorter prompts are not classified and use on_short_text
    min_text_length_for_detection: int = 20
    on_short_text: UnsupportedLanguageBehavior = UnsupportedLanguageBehavior.ALLOW

    # Report the LanguageFilter layer result in the breakdown
    include_language_in_results: bool = True


@dataclass
class AggregationConfig:
    """Layer weights for the final aggregate (renormalised over executed layers)"""
    pattern_matching_weight: float = 0.4
    heuristics_weight: float = 0.6
    ml_classification_weight: float = 0.8


@dataclass
class PromptShieldConfig:
    """PromptShield configuration"""

    # Aggregate confidence at/above which a fully-aggregated result is a threat
    threat_threshold: float = 0.75

    # Requests longer than this are rejected before any layer runs
    max_prompt_length: int = 50_000

    # Opt-in technical detail. When False the result only lists executed
    # layer names and ThreatInfo carries a generic explanation.
    include_breakdown: bool = True

    # Pipeline failure / timeout policy. FAIL_CLOSED blocks.
    failure_behavior: FailureBehavior = FailureBehavior.FAIL_CLOSED

    # Whole-analysis time limit; 0 = no timeout (not recommended)
    analysis_timeout_ms: int = 5_000

    # Logging
    log_level: str = "INFO"

    # Extra YAML pattern files loaded by YamlPatternProvider
    pattern_files: List[str] = field(default_factory=list)

    pattern_matching: PatternMatchingConfig = field(default_factory=PatternMatchingConfig)
    heuristics: HeuristicConfig = field(default_factory=HeuristicConfig)
    ml: MLConfig = field(default_factory=MLConfig)
    aggregation: AggregationConfig = field(default_factory=AggregationConfig)
    language: LanguageConfig = field(default_factory=LanguageConfig)

    def set_sensitivity(self, level: Union[SensitivityLevel, str]) -> None:
        """Apply one sensitivity tier to every layer."""
        level = SensitivityLevel.parse(level)
        self.pattern_matching.sensitivity = level
        self.heuristics.sensitivity = level
        self.ml.sensitivity = level

    def validate(self) -> "PromptShieldConfig":
        """Raise ConfigurationError on any out-of-range value."""
        errors: List[str] = []

        def unit(name: str, value: float) -> None:
            if not 0.0 <= value <= 1.0:
                errors.append(f"{name} must be within [0, 1] (got {value})")

        def positive(name: str, value: float) -> None:
            if value <= 0:
                errors.append(f"{name} must be positive (got {value})")

        unit("threat_threshold", self.threat_threshold)
        positive("max_prompt_length", self.max_prompt_length)
        if self.analysis_timeout_ms < 0:
            errors.append(f"analysis_timeout_ms must be >= 0 (got {self.analysis_timeout_ms})")

        pm = self.pattern_matching
        positive("pattern_matching.timeout_ms", pm.timeout_ms)
        unit("pattern_matching.early_exit_threshold", pm.early_exit_threshold)
        unit("pattern_matching.timeout_contribution", pm.timeout_contribution)
        for name, value in (pm.severity_confidence or {}).items():
            try:
                ThreatSeverity.parse(name)
            except (KeyError, ValueError):
                errors.append(f"pattern_matching.severity_confidence has unknown severity {name!r}")
                continue
            unit(f"pattern_matching.severity_confidence[{name}]", value)

        h = self.heuristics
        unit("heuristics.definitive_threat_threshold", h.definitive_threat_threshold)
        unit("heuristics.definitive_safe_threshold", h.definitive_safe_threshold)
        if h.definitive_safe_threshold >= h.definitive_threat_threshold:
            errors.append("heuristics.definitive_safe_threshold must be below definitive_threat_threshold")
        unit("heuristics.punctuation_ratio_threshold", h.punctuation_ratio_threshold)
        unit("heuristics.alphanumeric_ratio_threshold", h.alphanumeric_ratio_threshold)
        positive("heuristics.directive_word_threshold", h.directive_word_threshold)
        positive("heuristics.regex_timeout_ms", h.regex_timeout_ms)

        ml = self.ml
        unit("ml.threshold", ml.threshold)
        unit("ml.model_weight", ml.model_weight)
        unit("ml.min_feature_contribution", ml.min_feature_contribution)
        unit("ml.feature_display_threshold", ml.feature_display_threshold)
        positive("ml.max_sequence_length", ml.max_sequence_length)
        positive("ml.max_concurrent_inferences", ml.max_concurrent_inferences)
        positive("ml.inference_timeout_seconds", ml.inference_timeout_seconds)

        lang = self.language
        unit("language.min_detection_confidence", lang.min_detection_confidence)
        if lang.min_text_length_for_detection < 0:
            errors.append(
                f"language.min_text_length_for_detection must be >= 0 "
                f"(got {lang.min_text_length_for_detection})"
            )
        if not lang.supported_languages:
            errors.append("language.supported_languages must not be empty")

        agg = self.aggregation
        for name in ("pattern_matching_weight", "heuristics_weight", "ml_classification_weight"):
            if getattr(agg, name) < 0:
                errors.append(f"aggregation.{name} must be >= 0")

        if errors:
            raise ConfigurationError("Invalid PromptShield configuration: " + "; ".join(errors))
        return self

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PromptShieldConfig":
        """Build a config from a plain (e.g. YAML/JSON-decoded) mapping."""
        data = dict(data or {})
        sections = {
            "pattern_matching": PatternMatchingConfig,
            "heuristics": HeuristicConfig,
            "ml": MLConfig,
            "aggregation": AggregationConfig,
            "language": LanguageConfig,
        }
        kwargs: Dict[str, Any] = {}
        for key, section_cls in sections.items():
            if key in data:
                kwargs[key] = _build_section(section_cls, data.pop(key) or {}, key)

        sensitivity = data.pop("sensitivity", None)
        known = {f.name for f in fields(cls)}
        for key, value in data.items():
            if key not in known:
                raise ConfigurationError(f"Unknown configuration key: {key}")
            kwargs[key] = value
        if "failure_behavior" in kwargs:
            kwargs["failure_behavior"] = _parse_failure_behavior(kwargs["failure_behavior"])

        config = cls(**kwargs)
        if sensitivity is not None:
            try:
                config.set_sensitivity(sensitivity)
            except ValueError as e:
                raise ConfigurationError(str(e)) from e
        return config

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "PromptShieldConfig":
        """Load configuration from a YAML file (top-level mapping)."""
        config_path = Path(path)
        if not config_path.exists():
            raise ConfigurationError(f"Configuration file not found: {path}")
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration file must contain a mapping: {path}")
        return cls.from_dict(data)

    @classmethod
    def from_env(cls) -> "PromptShieldConfig":
        """Load configuration from environment variables"""
        def _int_env(var: str, default: int) -> int:
            try:
                return int(os.getenv(var, str(default)))
            except ValueError:
                return default

        def _float_env(var: str, default: float) -> float:
            try:
                return float(os.getenv(var, str(default)))
            except ValueError:
                return default

        def _bool_env(var: str, default: bool) -> bool:
            return os.getenv(var, str(default)).lower() == "true"

        def _list_env(var: str) -> List[str]:
            return [item.strip() for item in os.getenv(var, "").split(",") if item.strip()]

        config = cls(
            threat_threshold=_float_env("PROMPTSHIELD_THREAT_THRESHOLD", 0.75),
            max_prompt_length=_int_env("PROMPTSHIELD_MAX_PROMPT_LENGTH", 50_000),
            include_breakdown=_bool_env("PROMPTSHIELD_INCLUDE_BREAKDOWN", True),
            failure_behavior=_parse_failure_behavior(
                os.getenv("PROMPTSHIELD_FAILURE_BEHAVIOR", "FailClosed")
            ),
            analysis_timeout_ms=_int_env("PROMPTSHIELD_ANALYSIS_TIMEOUT_MS", 5_000),
            log_level=os.getenv("PROMPTSHIELD_LOG_LEVEL", "INFO"),
            pattern_files=_list_env("PROMPTSHIELD_PATTERN_FILES"),
            pattern_matching=PatternMatchingConfig(
                enabled=_bool_env("PROMPTSHIELD_PATTERNS_ENABLED", True),
                timeout_ms=_int_env("PROMPTSHIELD_PATTERN_TIMEOUT_MS", 100),
                disabled_pattern_ids=_list_env("PROMPTSHIELD_DISABLED_PATTERNS"),
            ),
            heuristics=HeuristicConfig(
                enabled=_bool_env("PROMPTSHIELD_HEURISTICS_ENABLED", True),
            ),
            ml=MLConfig(
                enabled=_bool_env("PROMPTSHIELD_ML_ENABLED", True),
                model_path=os.getenv("PROMPTSHIELD_MODEL_PATH"),
                threshold=_float_env("PROMPTSHIELD_ML_THRESHOLD", 0.8),
                max_concurrent_inferences=_int_env("PROMPTSHIELD_ML_MAX_CONCURRENCY", 4),
            ),
            language=LanguageConfig(
                enabled=_bool_env("PROMPTSHIELD_LANGUAGE_FILTER_ENABLED", False),
                supported_languages=_list_env("PROMPTSHIELD_SUPPORTED_LANGUAGES") or ["en"],
            ),
        )
        sensitivity = os.getenv("PROMPTSHIELD_SENSITIVITY")
        if sensitivity:
            try:
                config.set_sensitivity(sensitivity)
            except ValueError:
                logger.warning("Ignoring unknown PROMPTSHIELD_SENSITIVITY=%r", sensitivity)
        return config


def load_config(config_file: Optional[str] = None, **kwargs) -> PromptShieldConfig:
    """
    Load PromptShield configuration from file or environment

    Args:
        config_file: Path to configuration file (JSON/YAML). When omitted the
            PROMPTSHIELD_* environment variables are used.
        **kwargs: Override top-level configuration values

    Returns:
        Validated PromptShieldConfig instance
    """
    if config_file:
        config_path = Path(config_file)
        suffix = config_path.suffix.lower()
        if suffix == ".json":
            if not config_path.exists():
                raise ConfigurationError(f"Configuration file not found: {config_file}")
            with open(config_path, "r", encoding="utf-8") as f:
                config = PromptShieldConfig.from_dict(json.load(f))
        elif suffix in (".yml", ".yaml"):
            config = PromptShieldConfig.from_yaml(config_path)
        else:
            raise ConfigurationError(f"Unsupported config file format: {config_path.suffix}")
    else:
        config = PromptShieldConfig.from_env()

    for key, value in kwargs.items():
        if not hasattr(config, key):
            raise ConfigurationError(f"Unknown configuration key: {key}")
        setattr(config, key, value)

    return config.validate()


def _build_section(section_cls: type, data: Dict[str, Any], prefix: str) -> Any:
    known = {f.name for f in fields(section_cls)}
    unknown = set(data) - known
    if unknown:
        raise ConfigurationError(f"Unknown {prefix} configuration keys: {sorted(unknown)}")
    values = dict(data)
    if "sensitivity" in values:
        try:
            values["sensitivity"] = SensitivityLevel.parse(values["sensitivity"])
        except ValueError as e:
            raise ConfigurationError(f"{prefix}.sensitivity: {e}") from e
    for key in ("on_unsupported_language", "on_low_confidence_detection", "on_short_text"):
        if key in values:
            try:
                values[key] = UnsupportedLanguageBehavior.parse(values[key])
            except ValueError as e:
                raise ConfigurationError(f"{prefix}.{key}: {e}") from e
    return section_cls(**values)


def _parse_failure_behavior(value: Any) -> FailureBehavior:
    if isinstance(value, FailureBehavior):
        return value
    text = str(value).replace("_", "").replace("-", "").lower()
    for member in FailureBehavior:
        if text == member.value.lower():
            return member
    raise ConfigurationError(f"Unknown failure behavior: {value!r}")
