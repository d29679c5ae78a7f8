"""
Ethicore Engine™ - PromptShield - Core Data Model
Request, layer result and analysis result records shared by every layer
Version: 1.0.0

Copyright © 2026 Oracles Technologies LLC
All Rights Reserved
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple


class ThreatSeverity(Enum):
    """Ordered threat severity (LOW < MEDIUM < HIGH < CRITICAL)"""
    LOW = 0
    MEDIUM = 1
    HIGH = 2
    CRITICAL = 3

    def __lt__(self, other: "ThreatSeverity") -> bool:
        if not isinstance(other, ThreatSeverity):
            return NotImplemented
        return self.value < other.value

    @property
    def label(self) -> str:
        return self.name.capitalize()

    @classmethod
    def parse(cls, value: Any) -> "ThreatSeverity":
        """Accept an enum member, a member name (any case) or an ordinal."""
        if isinstance(value, ThreatSeverity):
            return value
        if isinstance(value, int):
            return cls(value)
        return cls[str(value).strip().upper()]


# Severity -> confidence calibration used by the pattern engine.
DEFAULT_SEVERITY_CONFIDENCE: Dict[ThreatSeverity, float] = {
    ThreatSeverity.CRITICAL: 0.95,
    ThreatSeverity.HIGH: 0.85,
    ThreatSeverity.MEDIUM: 0.7,
    ThreatSeverity.LOW: 0.5,
}

# Confidence -> severity bands, checked top-down.
SEVERITY_BANDS: Tuple[Tuple[float, ThreatSeverity], ...] = (
    (0.9, ThreatSeverity.CRITICAL),
    (0.8, ThreatSeverity.HIGH),
    (0.6, ThreatSeverity.MEDIUM),
)


def severity_to_confidence(
    severity: ThreatSeverity,
    table: Optional[Mapping[ThreatSeverity, float]] = None,
) -> float:
    return (table or DEFAULT_SEVERITY_CONFIDENCE).get(severity, 0.6)


def confidence_to_severity(confidence: float) -> ThreatSeverity:
    for floor, severity in SEVERITY_BANDS:
        if confidence >= floor:
            return severity
    return ThreatSeverity.LOW


class SensitivityLevel(Enum):
    """Global detection aggressiveness tier"""
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    PARANOID = "Paranoid"

    @classmethod
    def parse(cls, value: Any) -> "SensitivityLevel":
        if isinstance(value, SensitivityLevel):
            return value
        text = str(value).strip()
        for member in cls:
            if text.lower() in (member.value.lower(), member.name.lower()):
                return member
        raise ValueError(f"Unknown sensitivity level: {value!r}")


class FailureBehavior(Enum):
    """What analyze() returns when the pipeline itself fails"""
    FAIL_CLOSED = "FailClosed"  # secure default: block
    FAIL_OPEN = "FailOpen"      # pass through; discouraged


class UnsupportedLanguageBehavior(Enum):
    """Language filter outcome when a prompt is not in a supported language"""
    BLOCK = "Block"
    ALLOW = "Allow"
    ALLOW_WITH_WARNING = "AllowWithWarning"

    @classmethod
    def parse(cls, value: Any) -> "UnsupportedLanguageBehavior":
        if isinstance(value, UnsupportedLanguageBehavior):
            return value
        text = str(value).replace("_", "").replace("-", "").strip().lower()
        for member in cls:
            if text == member.value.lower():
                return member
        raise ValueError(f"Unknown unsupported-language behavior: {value!r}")


@dataclass(frozen=True)
class ConversationMessage:
    """Prior conversation turn"""
    role: str
    content: str


@dataclass(frozen=True)
class AnalysisMetadata:
    """Caller-supplied context; never used for scoring"""
    user_id: Optional[str] = None
    conversation_id: Optional[str] = None
    source: Optional[str] = None
    correlation_id: Optional[str] = None
    properties: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class AnalysisRequest:
    """A single prompt submitted for analysis"""
    prompt: str
    system_prompt: Optional[str] = None
    conversation_history: Optional[Tuple[ConversationMessage, ...]] = None
    metadata: Optional[AnalysisMetadata] = None


@dataclass(frozen=True)
class DetectionPattern:
    """Provider-supplied regex detection rule"""
    id: str
    name: str
    pattern: str
    description: str = ""
    owasp_category: str = "LLM01"
    severity: ThreatSeverity = ThreatSeverity.MEDIUM
    enabled: bool = True


@dataclass(frozen=True)
class LayerResult:
    """Uniform per-layer outcome"""
    layer_name: str
    was_executed: bool
    confidence: Optional[float] = None
    is_threat: Optional[bool] = None
    duration_ms: Optional[float] = None
    data: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def skipped(cls, layer_name: str) -> "LayerResult":
        return cls(layer_name=layer_name, was_executed=False)


@dataclass(frozen=True)
class ThreatInfo:
    """Explainable threat descriptor"""
    owasp_category: str
    threat_type: str
    explanation: str            # technical; for security teams only
    user_facing_message: str    # generic; never leaks detection internals
    severity: ThreatSeverity
    detection_sources: Tuple[str, ...]
    matched_patterns: Optional[Tuple[str, ...]] = None


@dataclass(frozen=True)
class DetectionBreakdown:
    """Per-layer results in execution order"""
    pattern_matching: LayerResult
    heuristics: LayerResult
    ml_classification: Optional[LayerResult]
    executed_layers: Tuple[str, ...]
    language_filter: Optional[LayerResult] = None


@dataclass(frozen=True)
class AnalysisResult:
    """Terminal artifact returned to the caller"""
    analysis_id: str
    is_threat: bool
    confidence: float  # 0.0 to 1.0
    decision_layer: str
    duration_ms: float
    timestamp: datetime
    threat_info: Optional[ThreatInfo] = None
    breakdown: Optional[DetectionBreakdown] = None
