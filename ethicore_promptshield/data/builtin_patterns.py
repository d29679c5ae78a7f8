"""
Ethicore Engine™ - PromptShield
Built-In Detection Pattern Library

Version: 1.0.0

Regex rules for the most common prompt injection families, aligned with the
OWASP LLM Top 10. Order matters: the pattern engine scans in registration
order and may exit early on the first high-confidence match.

References:
  - OWASP LLM Top 10: https://owasp.org/www-project-top-10-for-large-language-model-applications/

Copyright © 2026 Oracles Technologies LLC
All Rights Reserved
"""
from __future__ import annotations

from collections import Counter
from typing import Any, Dict, List, Tuple

from ethicore_promptshield.models import DetectionPattern, ThreatSeverity


# ---------------------------------------------------------------------------
# Built-in pattern registry
#
# Ids follow builtin-<family>-NNN. Numbering is historical and not contiguous.
# ---------------------------------------------------------------------------

BUILTIN_PATTERNS: Tuple[DetectionPattern, ...] = (
    # Jailbreak attempts
    DetectionPattern(
        id="builtin-jailbreak-001",
        name="DAN Mode Jailbreak",
        pattern=r"(?i)\b(DAN\s+mode|do\s+anything\s+now)\b",
        owasp_category="LLM01",
        severity=ThreatSeverity.CRITICAL,
        description="Detects 'Do Anything Now' (DAN) jailbreak attempts",
    ),
    DetectionPattern(
        id="builtin-jailbreak-002",
        name="Ignore Previous Instructions",
        pattern=r"(?i)\b(ignore|disregard|forget)\s+(all\s+)?(previous|prior|above|earlier)\s+(instructions?|commands?|rules?|prompts?)\b",
        owasp_category="LLM01",
        severity=ThreatSeverity.CRITICAL,
        description="Attempts to override system instructions",
    ),
    DetectionPattern(
        id="builtin-jailbreak-005",
        name="Forget Everything Pattern",
        pattern=r"(?i)\b(forget|disregard)\s+.{0,20}\b(everything|all\s+you|what\s+you)\b",
        owasp_category="LLM01",
        severity=ThreatSeverity.HIGH,
        description="Attempts to make AI forget training or context",
    ),
    DetectionPattern(
        id="builtin-jailbreak-006",
        name="Disregard Safety/Guidelines",
        pattern=r"(?i)\b(disregard|ignore|bypass)\s+.{0,10}\b(safety|guidelines?|restrictions?|constraints?)\b",
        owasp_category="LLM01",
        severity=ThreatSeverity.CRITICAL,
        description="Attempts to bypass safety guidelines",
    ),
    DetectionPattern(
        id="builtin-jailbreak-007",
        name="No Restrictions Pattern",
        pattern=r"(?i)\b(act|behave|respond).{0,20}\b(no\s+restrictions?|without\s+restrictions?|unrestricted)\b",
        owasp_category="LLM01",
        severity=ThreatSeverity.HIGH,
        description="Requests for unrestricted behavior",
    ),
    DetectionPattern(
        id="builtin-jailbreak-003",
        name="New Role Assignment",
        pattern=r"(?i)\b(you\s+are\s+now|from\s+now\s+on|starting\s+now)\s+.{0,30}\b(assistant|AI|bot|system)\b",
        owasp_category="LLM01",
        severity=ThreatSeverity.HIGH,
        description="Attempts to reassign the AI's role mid-conversation",
    ),

    # Role-play and impersonation
    DetectionPattern(
        id="builtin-roleplay-001",
        name="Role Impersonation - Privileged",
        pattern=r"(?i)\b(act\s+as|pretend\s+(you\s+are|to\s+be)|roleplay\s+as|simulate)\s+.{0,50}\b(admin|root|developer|engineer|DAN|sudo)\b",
        owasp_category="LLM01",
        severity=ThreatSeverity.HIGH,
        description="Attempts to impersonate privileged roles",
    ),
    DetectionPattern(
        id="builtin-roleplay-002",
        name="Role Impersonation - Unrestricted",
        pattern=r"(?i)\b(act\s+as|pretend\s+to\s+be|become)\s+.{0,30}\b(AI|character|system)\b.{0,50}\b(no\s+|without\s+|unrestricted|bypass|no\s+ethical)\b",
        owasp_category="LLM01",
        severity=ThreatSeverity.CRITICAL,
        description="Attempts to assume unrestricted character roles",
    ),
    DetectionPattern(
        id="builtin-roleplay-003",
        name="Safety Bypass Through Role",
        pattern=r"(?i)\b(from\s+now\s+on|starting\s+now|going\s+forward)\s*,?\s*.{0,30}\b(act|pretend|behave)\s+.{0,50}\b(no\s+restrictions?|no\s+constraints?|bypass|safety)\b",
        owasp_category="LLM01",
        severity=ThreatSeverity.CRITICAL,
        description="Attempts to bypass safety through role changes",
    ),
    DetectionPattern(
        id="builtin-roleplay-004",
        name="No Restrictions Mode",
        pattern=r"(?i)\b(AI|you)\s+.{0,20}\b(can|that\s+can|able\s+to)\s+.{0,30}\b(bypass|ignore|no\s+restrictions?|anything|everything)\b",
        owasp_category="LLM01",
        severity=ThreatSeverity.HIGH,
        description="Requests for unrestricted AI behavior",
    ),

    # Instruction override
    DetectionPattern(
        id="builtin-override-001",
        name="Instruction Override",
        pattern=r"(?i)\b(disregard|override|bypass|skip)\s+(all\s+)?(instructions?|rules?|guidelines?|constraints?)\b",
        owasp_category="LLM01",
        severity=ThreatSeverity.CRITICAL,
        description="Direct attempts to override safety constraints",
    ),
    DetectionPattern(
        id="builtin-override-002",
        name="New Instructions Injection",
        pattern=r"(?i)\b(new\s+instructions?|updated\s+instructions?|revised\s+instructions?)\s*:",
        owasp_category="LLM01",
        severity=ThreatSeverity.HIGH,
        description="Attempts to inject new instructions",
    ),

    # System prompt extraction
    DetectionPattern(
        id="builtin-extraction-001",
        name="System Prompt Extraction",
        pattern=r"(?i)\b(repeat|show|display|tell\s+me|what\s+(are|is|were))\s+.{0,30}\b(your\s+)?(system\s+)?(prompt|instructions?|rules?|guidelines?)\b",
        owasp_category="LLM01",
        severity=ThreatSeverity.HIGH,
        description="Attempts to extract system prompts or instructions",
    ),
    DetectionPattern(
        id="builtin-extraction-002",
        name="Initial Prompt Request",
        pattern=r"(?i)\b(what|show|display)\s+(was|were)\s+(your\s+)?(initial|original|first)\s+(prompt|instructions?)\b",
        owasp_category="LLM01",
        severity=ThreatSeverity.MEDIUM,
        description="Attempts to retrieve initial system configuration",
    ),

    # Encoding obfuscation
    DetectionPattern(
        id="builtin-encoding-001",
        name="Base64 Encoding Detection",
        pattern=r"(?i)(base64|base-64)\s*(decode|decoding|encoded)|\b[A-Za-z0-9+/]{40,}={0,2}\b",
        owasp_category="LLM01",
        severity=ThreatSeverity.MEDIUM,
        description="Detects potential base64-encoded injection attempts",
    ),
    DetectionPattern(
        id="builtin-encoding-002",
        name="Hex Encoding Detection",
        pattern=r"(?i)(hex|hexadecimal)\s*(decode|decoding)|(?:\\x[0-9a-fA-F]{2}){10,}",
        owasp_category="LLM01",
        severity=ThreatSeverity.MEDIUM,
        description="Detects hex-encoded injection attempts",
    ),

    # Delimiter and structure injection
    DetectionPattern(
        id="builtin-delimiter-001",
        name="Delimiter Injection",
        pattern=r"(#{3,}|={3,}|-{3,}|\*{3,}|_{3,})\s*(system|user|assistant|instruction|prompt)\s*(#{3,}|={3,}|-{3,}|\*{3,}|_{3,})",
        owasp_category="LLM01",
        severity=ThreatSeverity.HIGH,
        description="Detects delimiter-based prompt structure manipulation",
    ),
    DetectionPattern(
        id="builtin-delimiter-002",
        name="XML/JSON Injection Markers",
        pattern=r"<\s*(system|instruction|prompt)\s*>|\"(system|instruction|prompt)\"\s*:\s*\"",
        owasp_category="LLM01",
        severity=ThreatSeverity.MEDIUM,
        description="Detects XML/JSON-style injection markers",
    ),

    # Context exhaustion
    DetectionPattern(
        id="builtin-exhaustion-001",
        name="Excessive Repetition",
        pattern=r"(.{10,})\1{10,}",
        owasp_category="LLM02",
        severity=ThreatSeverity.LOW,
        description="Detects excessive repetition that may exhaust context",
    ),

    # Alignment and harmful content
    DetectionPattern(
        id="builtin-alignment-001",
        name="Safety Bypass Attempt",
        pattern=r"(?i)\b(bypass|circumvent|avoid|disable)\s+(safety|security|ethical|moral)\s+(features?|checks?|guidelines?|constraints?)\b",
        owasp_category="LLM07",
        severity=ThreatSeverity.CRITICAL,
        description="Attempts to bypass safety and ethical guidelines",
    ),
    DetectionPattern(
        id="builtin-alignment-002",
        name="Harmful Content Request",
        pattern=r"(?i)\b(help\s+me|show\s+me\s+how\s+to|teach\s+me\s+to)\s+.{0,50}\b(hack|exploit|attack|harm|illegal)\b",
        owasp_category="LLM07",
        severity=ThreatSeverity.HIGH,
        description="Requests for harmful or illegal content",
    ),
)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def get_all_patterns() -> List[DetectionPattern]:
    """Return the built-in patterns in registration order."""
    return list(BUILTIN_PATTERNS)


def get_pattern(pattern_id: str):
    """Return a single built-in pattern by id (case-insensitive), or None."""
    wanted = pattern_id.lower()
    for pattern in BUILTIN_PATTERNS:
        if pattern.id.lower() == wanted:
            return pattern
    return None


def get_pattern_statistics() -> Dict[str, Any]:
    """Return a statistics summary for the built-in pattern set."""
    by_severity = Counter(p.severity.label for p in BUILTIN_PATTERNS)
    by_category = Counter(p.owasp_category for p in BUILTIN_PATTERNS)
    return {
        "totalPatterns": len(BUILTIN_PATTERNS),
        "bySeverity": {s.label: by_severity.get(s.label, 0) for s in reversed(ThreatSeverity)},
        "byCategory": dict(by_category),
    }
