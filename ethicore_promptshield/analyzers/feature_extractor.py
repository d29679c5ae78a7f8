"""
Ethicore Engine™ - PromptShield - Feature Extractor
48-dimensional numeric fingerprint of a prompt for ML scoring
Version: 1.0.0

Copyright © 2026 Oracles Technologies LLC
All Rights Reserved
"""

import math
import unicodedata
from collections import Counter
from typing import List, Sequence, Tuple

import numpy as np

from ethicore_promptshield.utils.bounded_regex import BoundedRegex

FEATURE_COUNT = 48

# Display names, index-aligned with the vector
FEATURE_NAMES: Tuple[str, ...] = (
    # Statistical (0-11)
    "Length", "WordCount", "AvgWordLength", "Entropy",
    "LineCount", "AvgLineLength", "UniqueWordRatio", "SentenceCount",
    "AvgSentenceLength", "WhitespaceRatio", "TrigramDiversity", "CompressionRatio",
    # Character (12-23)
    "LowercaseRatio", "UppercaseRatio", "DigitRatio", "PunctuationRatio",
    "SymbolRatio", "ControlCharRatio", "HighUnicodeRatio", "ZeroWidthChars",
    "BidiOverrides", "DelimiterRatio", "BracketBalance", "QuoteDensity",
    # Lexical (24-35)
    "InjectionKeywords", "CommandKeywords", "RoleKeywords", "ImperativeMood",
    "QuestionDensity", "ExclamationDensity", "IgnorePattern", "NewInstructionsPattern",
    "PersonaSwitchPattern", "SystemPromptRef", "CodeIndicators", "SocialEngineering",
    # Structural (36-47)
    "RepeatedDelimiters", "XmlTags", "JsonStructure", "MarkdownHeaders",
    "Base64Content", "HexContent", "UrlPresence", "EmailPresence",
    "ConsecutiveSameChar", "TemplatePlaceholders", "SectionCount", "StructuralComplexity",
)

REGEX_TIMEOUT_MS = 100

INJECTION_KEYWORDS = (
    "ignore", "forget", "disregard", "override", "bypass", "skip",
    "jailbreak", "dan", "developer mode", "sudo", "admin",
    "system prompt", "instructions", "previous", "above",
)
COMMAND_KEYWORDS = (
    "execute", "run", "eval", "print", "output", "display",
    "show", "reveal", "tell", "repeat", "write", "generate",
)
ROLE_KEYWORDS = (
    "act as", "pretend", "roleplay", "you are", "behave as",
    "simulate", "imagine", "persona", "character", "assistant",
)
IMPERATIVE_VERBS = frozenset({
    "do", "make", "let", "give", "tell", "show", "help", "stop", "start",
    "ignore", "forget", "remember", "act", "pretend", "write", "generate",
})

IGNORE_PHRASES = ("ignore all", "ignore previous", "ignore the above", "forget everything", "disregard")
NEW_INSTRUCTION_PHRASES = (
    "new instruction", "updated instruction", "real instruction",
    "actual instruction", "true instruction",
)
PERSONA_PHRASES = ("you are now", "from now on you", "act as a", "pretend to be", "behave like")
SYSTEM_PROMPT_PHRASES = (
    "system prompt", "your instructions", "your prompt",
    "original prompt", "initial instructions",
)
CODE_MARKERS = ("```", "exec(", "eval(", "import ", "function ", "<script", "${")
SOCIAL_ENGINEERING_PHRASES = (
    "trust me", "believe me", "i promise", "don't worry",
    "confidential", "secret", "between us", "no one will know",
    "urgent", "immediately", "right now", "quickly",
)
TEMPLATE_MARKERS = ("{{", "}}", "{%", "${", "<%")
SECTION_DELIMITERS = ("---", "===", "###", "***", "___")

DELIMITER_CHARS = frozenset("#=-*_|/\\<>[]{}")
WORD_SEPARATORS = str.maketrans({"\t": " ", "\n": " ", "\r": " "})
ZERO_WIDTH_CHARS = frozenset("\u200b\u200c\u200d\ufeff")
OPEN_BRACKETS = "([{<"
CLOSE_BRACKETS = {")": "(", "]": "[", "}": "{", ">": "<"}
MAX_TRIGRAMS = 26 * 26 * 26


def _is_bidi(c: str) -> bool:
    return "\u202a" <= c <= "\u202e" or "\u2066" <= c <= "\u2069"


def _split_words(text: str) -> List[str]:
    return [w for w in text.translate(WORD_SEPARATORS).split(" ") if w]


class FeatureExtractor:
    """
    Pure, deterministic text -> float32[48] feature extraction.

    Groups:
        0-11   statistical
        12-23  character distribution
        24-35  lexical
        36-47  structural

    Every value is normalised into [0, 1]. Regex checks are time-bounded;
    a timed-out check reads as present for repeated delimiters (suspicious)
    and absent for everything else.
    """

    def __init__(self):
        self._repeated_delimiters = BoundedRegex(r"(#{4,}|={4,}|-{4,}|\*{4,}|_{4,})", REGEX_TIMEOUT_MS)
        self._xml_tag = BoundedRegex(r"<\/?[a-zA-Z][a-zA-Z0-9]*(\s[^>]*)?>", REGEX_TIMEOUT_MS)
        self._base64 = BoundedRegex(r"\b[A-Za-z0-9+/]{30,}={0,2}\b", REGEX_TIMEOUT_MS)
        self._hex = BoundedRegex(r"(?:\\x[0-9a-fA-F]{2}){8,}|0x[0-9a-fA-F]{16,}", REGEX_TIMEOUT_MS)
        self._email = BoundedRegex(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}", REGEX_TIMEOUT_MS)

    def extract(self, text: str) -> np.ndarray:
        """
        Extract the feature vector for one prompt.

        Args:
            text: Prompt text (may be empty)

        Returns:
            numpy float32 array of shape (48,)
        """
        if text is None:
            raise ValueError("text must not be None")

        features: List[float] = []
        features.extend(self._statistical_features(text))
        features.extend(self._character_features(text))
        features.extend(self._lexical_features(text))
        features.extend(self._structural_features(text))

        vector = np.asarray(features, dtype=np.float32)
        return np.clip(vector, 0.0, 1.0)

    def extract_batch(self, texts: Sequence[str]) -> np.ndarray:
        """Stack feature vectors into a (n, 48) float32 matrix."""
        if not texts:
            return np.zeros((0, FEATURE_COUNT), dtype=np.float32)
        return np.stack([self.extract(t) for t in texts])

    # ------------------------------------------------------------------
    # Statistical (0-11)
    # ------------------------------------------------------------------

    def _statistical_features(self, text: str) -> List[float]:
        length = len(text)
        words = _split_words(text)
        word_count = len(words)
        line_count = text.count("\n") + 1
        sentence_enders = sum(1 for c in text if c in ".!?")

        avg_word_length = sum(len(w) for w in words) / word_count if word_count else 0.0
        unique_words = len({w.lower() for w in words})
        avg_sentence_length = word_count / sentence_enders if sentence_enders else word_count
        whitespace = sum(1 for c in text if c.isspace())

        return [
            math.log10(length + 1) / 5.0 if length else 0.0,
            min(word_count / 500.0, 1.0),
            min(avg_word_length / 15.0, 1.0),
            self._entropy(text),
            min(line_count / 100.0, 1.0),
            min(length / line_count / 200.0, 1.0),
            unique_words / word_count if word_count else 0.0,
            min(sentence_enders / 50.0, 1.0),
            min(avg_sentence_length / 30.0, 1.0),
            whitespace / length if length else 0.0,
            self._trigram_diversity(text),
            self._compression_estimate(text),
        ]

    @staticmethod
    def _entropy(text: str) -> float:
        if not text:
            return 0.0
        length = len(text)
        entropy = 0.0
        for count in Counter(text).values():
            p = count / length
            entropy -= p * math.log2(p)
        # ~7 bits is the ceiling for ASCII text
        return min(entropy / 7.0, 1.0)

    @staticmethod
    def _trigram_diversity(text: str) -> float:
        if len(text) < 3:
            return 0.0
        trigrams = {text[i:i + 3] for i in range(len(text) - 2)}
        return len(trigrams) / min(len(text) - 2, MAX_TRIGRAMS)

    @staticmethod
    def _compression_estimate(text: str) -> float:
        """Share of repeated substrings (lengths 3-10), a cheap repetitiveness proxy."""
        if len(text) < 10:
            return 0.0
        lowered = text.lower()
        repeated = 0
        for size in range(3, min(10, len(text) // 2) + 1):
            seen = set()
            for i in range(len(lowered) - size + 1):
                sub = lowered[i:i + size]
                if sub in seen:
                    repeated += 1
                else:
                    seen.add(sub)
        return min(repeated / (len(text) * 2), 1.0)

    # ------------------------------------------------------------------
    # Character distribution (12-23)
    # ------------------------------------------------------------------

    def _character_features(self, text: str) -> List[float]:
        if not text:
            return [0.0] * 12

        length = len(text)
        lower = upper = digits = punctuation = symbols = control = 0
        high_unicode = zero_width = bidi = delimiters = quotes = 0

        for c in text:
            category = unicodedata.category(c)
            if category == "Ll":
                lower += 1
            elif category == "Lu":
                upper += 1
            elif category == "Nd":
                digits += 1
            if category.startswith("P"):
                punctuation += 1
                symbols += 1
            elif category.startswith("S"):
                symbols += 1
            if category == "Cc" and c not in "\n\r\t":
                control += 1
            if ord(c) > 127:
                high_unicode += 1
            if c in ZERO_WIDTH_CHARS:
                zero_width += 1
            if _is_bidi(c):
                bidi += 1
            if c in DELIMITER_CHARS:
                delimiters += 1
            if c in "\"'`":
                quotes += 1

        return [
            lower / length,
            upper / length,
            digits / length,
            punctuation / length,
            symbols / length,
            control / length,
            high_unicode / length,
            min(zero_width / 10.0, 1.0),
            min(bidi / 5.0, 1.0),
            delimiters / length,
            self._bracket_balance(text),
            min(quotes / length * 10.0, 1.0),
        ]

    @staticmethod
    def _bracket_balance(text: str) -> float:
        """0 = balanced, 1 = twenty or more mismatches."""
        stack: List[str] = []
        mismatches = 0
        for c in text:
            if c in OPEN_BRACKETS:
                stack.append(c)
            elif c in CLOSE_BRACKETS:
                if not stack or stack.pop() != CLOSE_BRACKETS[c]:
                    mismatches += 1
        mismatches += len(stack)
        return min(mismatches / 20.0, 1.0)

    # ------------------------------------------------------------------
    # Lexical (24-35)
    # ------------------------------------------------------------------

    def _lexical_features(self, text: str) -> List[float]:
        lower_text = text.lower()
        words = _split_words(lower_text)
        word_count = max(len(words), 1)

        def density(keywords: Sequence[str]) -> float:
            count = sum(lower_text.count(k) for k in keywords)
            return min(count / word_count * 10.0, 1.0)

        def flag(phrases: Sequence[str]) -> float:
            return 1.0 if any(p in lower_text for p in phrases) else 0.0

        imperative = 0.0
        if words:
            imperative_count = sum(1 for w in words if w in IMPERATIVE_VERBS)
            imperative = min(imperative_count / len(words) * 5.0, 1.0)

        social = sum(1 for p in SOCIAL_ENGINEERING_PHRASES if p in lower_text)

        return [
            density(INJECTION_KEYWORDS),
            density(COMMAND_KEYWORDS),
            density(ROLE_KEYWORDS),
            imperative,
            min(text.count("?") / word_count * 5.0, 1.0),
            min(text.count("!") / word_count * 5.0, 1.0),
            flag(IGNORE_PHRASES),
            flag(NEW_INSTRUCTION_PHRASES),
            flag(PERSONA_PHRASES),
            flag(SYSTEM_PROMPT_PHRASES),
            flag(CODE_MARKERS),
            min(social / 5.0, 1.0),
        ]

    # ------------------------------------------------------------------
    # Structural (36-47)
    # ------------------------------------------------------------------

    def _structural_features(self, text: str) -> List[float]:
        trimmed = text.strip()
        json_like = (
            (trimmed.startswith("{") and trimmed.endswith("}"))
            or (trimmed.startswith("[") and trimmed.endswith("]"))
            or '":' in text
        )
        has_url = "http://" in text or "https://" in text or "www." in text
        sections = min(1 + sum(text.count(d) for d in SECTION_DELIMITERS), 20)

        return [
            1.0 if self._repeated_delimiters.is_match(text, on_timeout=True) else 0.0,
            1.0 if self._xml_tag.is_match(text) else 0.0,
            1.0 if json_like else 0.0,
            min(self._markdown_headers(text) / 10.0, 1.0),
            1.0 if self._base64.is_match(text) else 0.0,
            1.0 if self._hex.is_match(text) else 0.0,
            1.0 if has_url else 0.0,
            1.0 if self._email.is_match(text) else 0.0,
            min(self._longest_run(text) / 20.0, 1.0),
            1.0 if any(m in text for m in TEMPLATE_MARKERS) else 0.0,
            min(sections / 10.0, 1.0),
            self._structural_complexity(text),
        ]

    @staticmethod
    def _markdown_headers(text: str) -> int:
        return sum(1 for line in text.split("\n") if line.startswith("#"))

    @staticmethod
    def _longest_run(text: str) -> int:
        if not text:
            return 0
        longest = current = 1
        for previous, c in zip(text, text[1:]):
            if c == previous:
                current += 1
                longest = max(longest, current)
            else:
                current = 1
        return longest

    @staticmethod
    def _structural_complexity(text: str) -> float:
        if not text:
            return 0.0

        complexity = 0.0
        depth = max_depth = 0
        for c in text:
            if c in OPEN_BRACKETS:
                depth += 1
                max_depth = max(max_depth, depth)
            elif c in CLOSE_BRACKETS:
                depth = max(0, depth - 1)
        complexity += min(max_depth / 10.0, 0.3)

        if "```" in text or "def " in text or "function" in text:
            complexity += 0.2
        if "##" in text or "**" in text or "__" in text:
            complexity += 0.15
        if "</" in text or "/>" in text:
            complexity += 0.2

        special = sum(1 for c in text if not c.isalnum() and not c.isspace())
        complexity += min(special / len(text), 0.15)
        return min(complexity, 1.0)
