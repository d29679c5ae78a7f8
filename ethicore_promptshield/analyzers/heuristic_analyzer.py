"""
Ethicore Engine™ - PromptShield - Heuristic Analyzer
Statistical and linguistic signals for prompts no signature catches
Version: 1.0.0

Copyright © 2026 Oracles Technologies LLC
All Rights Reserved
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple

from ethicore_promptshield.models import LayerResult, SensitivityLevel
from ethicore_promptshield.utils.bounded_regex import (
    BoundedRegex,
    MatchOutcome,
    any_match,
    compile_list,
)
from ethicore_promptshield.utils.config import HeuristicConfig

if TYPE_CHECKING:
    from ethicore_promptshield.utils.config import PromptShieldConfig

logger = logging.getLogger(__name__)


class HeuristicSignals:
    """Catalog of signal names emitted by the built-in analyzer"""
    CUSTOM_BLOCKLIST = "custom_blocklist"
    SPECIAL_CHARACTER_RATIO = "special_char_ratio"
    INSTRUCTION_LANGUAGE = "instruction_language"
    ROLE_SWITCHING = "role_switching"
    ENCODING_PATTERNS = "encoding_patterns"
    DELIMITER_INJECTION = "delimiter_injection"
    ANOMALOUS_STRUCTURE = "anomalous_structure"
    EXCESSIVE_LENGTH = "excessive_length"
    PATTERN_TIMEOUT = "pattern_timeout"
    SUSPICIOUS_UNICODE = "suspicious_unicode"
    INVISIBLE_CHARACTERS = "invisible_characters"
    BIDIRECTIONAL_OVERRIDE = "bidirectional_override"


@dataclass(frozen=True)
class HeuristicSignal:
    """One fired detector"""
    name: str
    contribution: float  # 0.0 to 1.0
    description: Optional[str] = None


@dataclass
class HeuristicResult:
    """Score and signals produced by one analyzer"""
    score: float
    signals: List[HeuristicSignal] = field(default_factory=list)
    explanation: Optional[str] = None


@dataclass(frozen=True)
class HeuristicContext:
    """Everything an analyzer may look at"""
    prompt: str
    pattern_matching_result: LayerResult
    config: "PromptShieldConfig"
    system_prompt: Optional[str] = None


class HeuristicAnalyzer(ABC):
    """Pluggable heuristic analyzer run by the HeuristicLayer"""

    @property
    @abstractmethod
    def analyzer_name(self) -> str:
        """Name used in logs"""

    @property
    def weight(self) -> float:
        """Relative weight in the layer's weighted mean"""
        return 1.0

    @abstractmethod
    async def analyze(self, context: HeuristicContext) -> HeuristicResult:
        """Score the prompt in ``context``"""


# ==============================================================================
# BUILT-IN DETECTOR TABLES
# ==============================================================================

# (regex, base contribution, description); evaluated on the lowercased prompt
DIRECTIVE_COMPOUND_PATTERNS: Tuple[Tuple[str, float, str], ...] = (
    # Instruction override
    (r"ignore\s+(all\s+)?(previous|prior|above|earlier)\s+(instructions?|rules?|guidelines?|prompts?)", 0.9, "Instruction override attempt"),
    (r"ignore\s+(all\s+)?(safety|security)\s+(rules?|guidelines?|restrictions?)", 0.9, "Safety override attempt"),
    (r"disregard\s+(your\s+)?(instructions?|rules?|guidelines?|system\s+prompt)", 0.9, "Instruction disregard attempt"),
    (r"forget\s+(everything|all|what)\s+(you|i)\s+(know|said|told)", 0.85, "Memory reset attempt"),
    (r"override\s+(your\s+)?(instructions?|rules?|safety|guidelines?)", 0.9, "Direct override attempt"),
    (r"bypass\s+(your\s+)?(safety|security|rules?|filters?|restrictions?)", 0.95, "Security bypass attempt"),

    # Information extraction
    (r"(show|reveal|display|print|output)\s+(me\s+)?(your|the)\s+(system|original|initial|hidden)\s+(prompt|instructions?)", 0.85, "System prompt extraction attempt"),
    (r"what\s+(are|is|were)\s+your\s+(system|original|initial)\s+(prompt|instructions?|rules?)", 0.8, "System prompt query"),
    (r"(repeat|echo|print)\s+(back\s+)?(your|the)\s+(system|original)\s+(prompt|instructions?)", 0.85, "Prompt echo attempt"),

    # Role manipulation
    (r"(new|updated|changed?|override)\s+instructions?\s*:", 0.85, "New instructions injection"),
    (r"(admin|developer|root|sudo|superuser)\s+(mode|access|privileges?)", 0.9, "Privilege escalation attempt"),
    (r"(jailbreak|dan|devel?oper\s*mode|unrestricted)", 0.95, "Known jailbreak pattern"),

    # Prompt structure manipulation
    (r"<\/?system>|<\/?user>|<\/?assistant>|\[system\]|\[user\]", 0.75, "Prompt structure injection"),
    (r"```\s*(system|instruction|prompt)", 0.7, "Code block prompt injection"),
)

ROLE_TRANSITION_PATTERNS: Tuple[Tuple[str, float, str], ...] = (
    (r"you\s+are\s+now\s+(a|an|the|my)\s+(different|new|evil|unrestricted|unfiltered)", 0.85, "Role reassignment"),
    (r"from\s+now\s+on\s*,?\s*(you\s+)?(will|must|should|are|act|behave|respond|ignore|bypass)", 0.85, "Behavior override"),
    (r"pretend\s+(to\s+be|you\s+are|that\s+you)\s+(a|an)?\s*(ai|assistant|bot|model|system)?\s*(without|with\s+no|that\s+has\s+no)", 0.8, "Role pretending with restriction removal"),
    (r"pretend\s+(to\s+be|you\s+are)\s+(evil|malicious|unrestricted|unfiltered|dan)", 0.85, "Malicious role pretending"),
    (r"act\s+as\s+(if|though)\s+you\s+(have\s+no|don't\s+have|are\s+not\s+bound|can\s+ignore)", 0.85, "Restriction bypass via acting"),
    (r"roleplay\s+as\s+(a|an)?\s*(evil|malicious|unrestricted|hacker)", 0.85, "Malicious roleplay request"),
    (r"switch\s+to\s+(a|an)?\s*(different|new|another|developer|admin|unrestricted)\s*(mode|persona|character)", 0.8, "Mode switch attempt"),
)

LEGACY_DIRECTIVE_WORDS = (
    "ignore", "disregard", "forget", "override", "bypass",
    "act as", "pretend", "roleplay", "simulate",
    "new instructions", "updated instructions",
)

LEGACY_ROLE_TRANSITION_PHRASES = (
    "you are now", "from now on", "starting now", "new role",
    "act as a", "pretend to be", "switch to", "change to",
)

PUNCTUATION_CHARS = frozenset("#=-*_|/\\<>")
ZERO_WIDTH_CHARS = frozenset("\u200b\u200c\u200d\ufeff")
BIDI_CHARS = frozenset("\u202a\u202b\u202c\u202d\u202e\u2066\u2067\u2068\u2069")

REPEATED_DELIMITERS = r"(#{3,}|={3,}|-{3,}|\*{3,}|_{3,})"
STRUCTURE_MARKERS = r"<\s*(system|instruction|prompt|user|assistant)\s*>|\"(system|instruction|prompt)\"\s*:"
BASE64_RUN = r"\b[A-Za-z0-9+/]{40,}={0,2}\b"
HEX_ESCAPE_RUN = r"(?:\\x[0-9a-fA-F]{2}){10,}"

_SENSITIVITY_MULTIPLIER = {
    SensitivityLevel.LOW: 0.7,
    SensitivityLevel.MEDIUM: 1.0,
    SensitivityLevel.HIGH: 1.2,
    SensitivityLevel.PARANOID: 1.5,
}


class BuiltInHeuristicAnalyzer(HeuristicAnalyzer):
    """
    Default heuristic analyzer.

    Detects:
    - Custom blocklist hits
    - Excessive length
    - Low alphanumeric ratio and delimiter-heavy text
    - Directive and role-transition language (compound regex or legacy keywords)
    - Prompt-structure markers and encoded payloads
    - Zero-width and bidirectional-override characters
    - Timeouts reported by the pattern layer

    Each detector emits at most one signal. Contributions are scaled by the
    sensitivity multiplier except for the pattern-timeout carry-forward.
    """

    def __init__(self, config: Optional[HeuristicConfig] = None):
        self.config = config or HeuristicConfig()
        timeout_ms = self.config.regex_timeout_ms

        self._allowlist = compile_list(self.config.allowed_patterns, timeout_ms, "allowlist")
        self._blocklist = compile_list(
            self.config.additional_blocked_patterns, timeout_ms, "blocklist"
        )
        self._domain_exclusions = {e.lower() for e in self.config.domain_exclusions}

        self._directive_patterns = self._compile_table(DIRECTIVE_COMPOUND_PATTERNS, timeout_ms)
        self._role_patterns = self._compile_table(ROLE_TRANSITION_PATTERNS, timeout_ms)
        self._repeated_delimiters = BoundedRegex(REPEATED_DELIMITERS, timeout_ms)
        self._structure_markers = BoundedRegex(STRUCTURE_MARKERS, timeout_ms, ignore_case=True)
        self._base64 = BoundedRegex(BASE64_RUN, timeout_ms)
        self._hex = BoundedRegex(HEX_ESCAPE_RUN, timeout_ms)

        logger.debug(
            "BuiltInHeuristicAnalyzer initialized: sensitivity=%s, allowlist=%d, blocklist=%d",
            self.config.sensitivity.value, len(self._allowlist), len(self._blocklist),
        )

    @staticmethod
    def _compile_table(table, timeout_ms: int) -> List[Tuple[BoundedRegex, float, str]]:
        return [
            (BoundedRegex(source, timeout_ms, ignore_case=True), contribution, description)
            for source, contribution, description in table
        ]

    @property
    def analyzer_name(self) -> str:
        return "Built-In Heuristics"

    async def analyze(self, context: HeuristicContext) -> HeuristicResult:
        prompt = context.prompt

        if any_match(self._allowlist, prompt):
            logger.debug("Prompt matched allowlist pattern, skipping heuristic analysis")
            return HeuristicResult(
                score=0.0,
                signals=[],
                explanation="Prompt matched allowlist pattern - analysis skipped",
            )

        compound = self.config.use_compound_patterns
        candidates = [
            self._check_blocklist(prompt),
            self._analyze_length(prompt, context.config.max_prompt_length),
            self._analyze_character_distribution(prompt),
            self._analyze_punctuation(prompt),
            self._analyze_directive_compound(prompt) if compound else self._analyze_directive_legacy(prompt),
            self._analyze_role_compound(prompt) if compound else self._analyze_role_legacy(prompt),
            self._analyze_structure(prompt),
            self._analyze_encoding(prompt),
            self._analyze_unicode(prompt),
            self._check_pattern_timeouts(context.pattern_matching_result),
        ]
        signals = [s for s in candidates if s is not None]

        if signals:
            explanation = (
                f"Detected {len(signals)} heuristic signals indicating potential threat "
                f"(sensitivity: {self.config.sensitivity.value})"
            )
        else:
            explanation = "No suspicious heuristic signals detected"

        return HeuristicResult(
            score=self.aggregate_score(signals),
            signals=signals,
            explanation=explanation,
        )

    # ------------------------------------------------------------------
    # Detectors
    # ------------------------------------------------------------------

    def _check_blocklist(self, prompt: str) -> Optional[HeuristicSignal]:
        for pattern in self._blocklist:
            outcome = pattern.try_search(prompt)
            if outcome is MatchOutcome.MATCH:
                return self._signal(
                    HeuristicSignals.CUSTOM_BLOCKLIST, 0.9, "Matched custom blocklist pattern"
                )
            if outcome is MatchOutcome.TIMEOUT:
                return self._signal(
                    HeuristicSignals.CUSTOM_BLOCKLIST,
                    0.5,
                    "Blocklist pattern check timed out - potential complexity attack",
                )
        return None

    def _analyze_length(self, prompt: str, max_length: int) -> Optional[HeuristicSignal]:
        length = len(prompt)
        threshold = max_length * 0.1
        if length <= threshold:
            return None
        contribution = min(1.0, (length - threshold) / (max_length * 0.5))
        return self._signal(
            HeuristicSignals.EXCESSIVE_LENGTH,
            contribution,
            f"Prompt length ({length} chars) exceeds typical user input threshold ({threshold:,.0f} chars)",
        )

    def _analyze_character_distribution(self, prompt: str) -> Optional[HeuristicSignal]:
        if not prompt:
            return None
        ratio = sum(1 for c in prompt if c.isalnum()) / len(prompt)
        threshold = self.config.alphanumeric_ratio_threshold
        if ratio >= threshold:
            return None
        return self._signal(
            HeuristicSignals.SPECIAL_CHARACTER_RATIO,
            1.0 - ratio,
            f"Low alphanumeric ratio ({ratio:.0%}) suggests obfuscation (threshold: {threshold:.0%})",
        )

    def _analyze_punctuation(self, prompt: str) -> Optional[HeuristicSignal]:
        if not prompt:
            return None
        ratio = sum(1 for c in prompt if c in PUNCTUATION_CHARS) / len(prompt)
        threshold = self.config.punctuation_ratio_threshold
        if ratio <= threshold:
            return None
        return self._signal(
            HeuristicSignals.DELIMITER_INJECTION,
            min(1.0, ratio / (threshold * 2)),
            f"High punctuation density ({ratio:.0%}) may indicate delimiter injection (threshold: {threshold:.0%})",
        )

    def _analyze_directive_compound(self, prompt: str) -> Optional[HeuristicSignal]:
        return self._analyze_compound(
            prompt,
            self._directive_patterns,
            HeuristicSignals.INSTRUCTION_LANGUAGE,
            "directive",
            bonus_per_match=0.02,
            max_bonus=0.1,
        )

    def _analyze_role_compound(self, prompt: str) -> Optional[HeuristicSignal]:
        return self._analyze_compound(
            prompt,
            self._role_patterns,
            HeuristicSignals.ROLE_SWITCHING,
            "role transition",
            bonus_per_match=0.05,
            max_bonus=0.15,
        )

    def _analyze_compound(
        self,
        prompt: str,
        patterns: Sequence[Tuple[BoundedRegex, float, str]],
        signal_name: str,
        pattern_type: str,
        bonus_per_match: float,
        max_bonus: float,
    ) -> Optional[HeuristicSignal]:
        lower_prompt = prompt.lower()
        matches: List[Tuple[str, float]] = []

        for pattern, contribution, description in patterns:
            outcome = pattern.try_search(lower_prompt)
            if outcome is MatchOutcome.MATCH:
                matches.append((description, contribution))
            elif outcome is MatchOutcome.TIMEOUT:
                matches.append((f"Pattern timeout during {pattern_type} analysis", 0.5))

        if not matches:
            return None

        highest = max(contribution for _, contribution in matches)
        bonus = min(max_bonus, len(matches) * bonus_per_match)
        return self._signal(
            signal_name,
            min(1.0, highest + bonus),
            f"Detected {len(matches)} {pattern_type} pattern(s): {matches[0][0]}",
        )

    def _analyze_directive_legacy(self, prompt: str) -> Optional[HeuristicSignal]:
        lower_prompt = prompt.lower()
        words = [w for w in LEGACY_DIRECTIVE_WORDS if w not in self._domain_exclusions]
        match_count = sum(1 for w in words if w in lower_prompt)
        threshold = self._adjusted_word_threshold(self.config.directive_word_threshold)

        if match_count < threshold:
            return None
        return self._signal(
            HeuristicSignals.INSTRUCTION_LANGUAGE,
            min(1.0, match_count / 5.0),
            f"High density of directive keywords ({match_count} found, threshold: {threshold})",
        )

    def _analyze_role_legacy(self, prompt: str) -> Optional[HeuristicSignal]:
        lower_prompt = prompt.lower()
        match_count = sum(1 for p in LEGACY_ROLE_TRANSITION_PHRASES if p in lower_prompt)
        if match_count == 0:
            return None
        return self._signal(
            HeuristicSignals.ROLE_SWITCHING,
            min(1.0, 0.6 + match_count * 0.2),
            f"Contains {match_count} role transition phrase(s)",
        )

    def _analyze_structure(self, prompt: str) -> Optional[HeuristicSignal]:
        return self._analyze_regex_pair(
            prompt,
            self._repeated_delimiters,
            self._structure_markers,
            HeuristicSignals.ANOMALOUS_STRUCTURE,
            first=(0.65, "Contains repeated delimiter patterns"),
            second=(0.85, "Contains structural markers suggesting prompt manipulation"),
            both=(0.85, "Contains structural markers suggesting prompt manipulation"),
            timeout_description="Structure analysis timed out - potential complexity attack",
        )

    def _analyze_encoding(self, prompt: str) -> Optional[HeuristicSignal]:
        return self._analyze_regex_pair(
            prompt,
            self._base64,
            self._hex,
            HeuristicSignals.ENCODING_PATTERNS,
            first=(0.7, "Contains potential base64-encoded content"),
            second=(0.7, "Contains potential hex-encoded content"),
            both=(0.85, "Contains both base64 and hex encoding patterns"),
            timeout_description="Encoding analysis timed out",
        )

    def _analyze_regex_pair(
        self,
        prompt: str,
        first_regex: BoundedRegex,
        second_regex: BoundedRegex,
        signal_name: str,
        first: Tuple[float, str],
        second: Tuple[float, str],
        both: Tuple[float, str],
        timeout_description: str,
    ) -> Optional[HeuristicSignal]:
        first_outcome = first_regex.try_search(prompt)
        second_outcome = (
            second_regex.try_search(prompt)
            if first_outcome is not MatchOutcome.TIMEOUT
            else MatchOutcome.TIMEOUT
        )
        if MatchOutcome.TIMEOUT in (first_outcome, second_outcome):
            return self._signal(signal_name, 0.5, timeout_description)

        first_hit = first_outcome is MatchOutcome.MATCH
        second_hit = second_outcome is MatchOutcome.MATCH
        if first_hit and second_hit:
            contribution, description = both
        elif first_hit:
            contribution, description = first
        elif second_hit:
            contribution, description = second
        else:
            return None
        return self._signal(signal_name, contribution, description)

    def _analyze_unicode(self, prompt: str) -> Optional[HeuristicSignal]:
        has_zero_width = any(c in ZERO_WIDTH_CHARS for c in prompt)
        has_bidi = any(c in BIDI_CHARS for c in prompt)

        if has_zero_width and has_bidi:
            return self._signal(
                HeuristicSignals.SUSPICIOUS_UNICODE,
                0.9,
                "Contains both zero-width and bidirectional override characters",
            )
        if has_bidi:
            return self._signal(
                HeuristicSignals.BIDIRECTIONAL_OVERRIDE,
                0.8,
                "Contains bidirectional text override characters",
            )
        if has_zero_width:
            return self._signal(
                HeuristicSignals.INVISIBLE_CHARACTERS,
                0.6,
                "Contains zero-width or invisible characters",
            )
        return None

    @staticmethod
    def _check_pattern_timeouts(pattern_result: LayerResult) -> Optional[HeuristicSignal]:
        data = pattern_result.data or {}
        if data.get("has_timeouts") is not True:
            return None
        timeout_count = int(data.get("timeout_count", 1))
        # Carried forward as-is; not scaled by sensitivity
        return HeuristicSignal(
            name=HeuristicSignals.PATTERN_TIMEOUT,
            contribution=min(1.0, 0.4 + timeout_count * 0.1),
            description=f"Pattern matching had {timeout_count} timeout(s) - potential ReDoS attempt",
        )

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def _signal(self, name: str, contribution: float, description: str) -> HeuristicSignal:
        return HeuristicSignal(
            name=name,
            contribution=self.adjust_contribution(contribution),
            description=description,
        )

    def adjust_contribution(self, base: float) -> float:
        multiplier = _SENSITIVITY_MULTIPLIER.get(self.config.sensitivity, 1.0)
        return min(1.0, max(0.0, base * multiplier))

    def _adjusted_word_threshold(self, base: int) -> int:
        sensitivity = self.config.sensitivity
        if sensitivity is SensitivityLevel.LOW:
            return base + 2
        if sensitivity is SensitivityLevel.HIGH:
            return max(1, base - 1)
        if sensitivity is SensitivityLevel.PARANOID:
            return max(1, base - 2)
        return base

    @staticmethod
    def aggregate_score(signals: Sequence[HeuristicSignal]) -> float:
        """Strongest signal plus a small bonus for corroborating ones."""
        if not signals:
            return 0.0
        contributions = [s.contribution for s in signals]
        score = max(contributions) + 0.2 * (sum(contributions) / len(contributions))
        return min(1.0, max(0.0, score))
