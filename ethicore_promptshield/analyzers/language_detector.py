"""
Ethicore Engine™ - PromptShield - Language Detector
Lightweight script and marker-word language identification
Version: 1.0.0

Two phases:
- Script detection for non-Latin alphabets (Cyrillic, CJK, Arabic, ...)
- Marker-word frequency for Latin text (English, German, French, Spanish)

Copyright © 2026 Oracles Technologies LLC
All Rights Reserved
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import FrozenSet, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

LANGUAGE_NAMES = {
    "en": "English",
    "de": "German",
    "fr": "French",
    "es": "Spanish",
    "it": "Italian",
    "pt": "Portuguese",
    "nl": "Dutch",
    "pl": "Polish",
    "uk": "Ukrainian",
    "ru": "Russian",
    "zh": "Chinese",
    "ja": "Japanese",
    "ko": "Korean",
    "ar": "Arabic",
    "he": "Hebrew",
    "hi": "Hindi",
    "th": "Thai",
    "vi": "Vietnamese",
    "tr": "Turkish",
    "el": "Greek",
    "und": "Undetermined",
}

SCRIPT_NAMES = {
    "Latn": "Latin",
    "Cyrl": "Cyrillic",
    "Hans": "Simplified Chinese",
    "Hant": "Traditional Chinese",
    "Jpan": "Japanese",
    "Kore": "Korean",
    "Arab": "Arabic",
    "Hebr": "Hebrew",
    "Deva": "Devanagari",
    "Thai": "Thai",
    "Grek": "Greek",
    "Zzzz": "Unknown",
}


@dataclass(frozen=True)
class LanguageDetectionResult:
    """Detected language (ISO 639-1) and script (ISO 15924)"""
    language_code: str
    script_code: str
    confidence: float
    is_reliable: bool

    @property
    def language_name(self) -> str:
        return LANGUAGE_NAMES.get(self.language_code, f"Unknown ({self.language_code})")

    @property
    def script_name(self) -> str:
        return SCRIPT_NAMES.get(self.script_code, self.script_code)

    @property
    def is_english(self) -> bool:
        return self.language_code == "en"


UNDETERMINED = LanguageDetectionResult("und", "Zzzz", 0.0, False)


class LanguageDetector(ABC):
    """Base class for pluggable language detectors"""

    @abstractmethod
    def detect(self, text: str) -> LanguageDetectionResult:
        """Identify the dominant language of ``text``."""


# (code points, language, script, base confidence), most specific first.
# "und-" languages share a script and stay undetermined.
_ScriptRanges = Tuple[Tuple[int, int], ...]
SCRIPT_TABLE: Sequence[Tuple[_ScriptRanges, str, str, float]] = (
    (((0x3040, 0x309F), (0x30A0, 0x30FF)), "ja", "Jpan", 0.95),
    (((0xAC00, 0xD7AF), (0x1100, 0x11FF)), "ko", "Kore", 0.95),
    (((0x0E00, 0x0E7F),), "th", "Thai", 0.95),
    (((0x0590, 0x05FF),), "he", "Hebr", 0.95),
    (((0x0600, 0x06FF), (0x0750, 0x077F)), "ar", "Arab", 0.90),
    (((0x0370, 0x03FF), (0x1F00, 0x1FFF)), "el", "Grek", 0.95),
    (((0x0900, 0x097F),), "hi", "Deva", 0.90),
    (((0x0400, 0x04FF), (0x0500, 0x052F)), "und-Cyrl", "Cyrl", 0.85),
    (((0x4E00, 0x9FFF), (0x3400, 0x4DBF)), "zh", "Hans", 0.85),
)

# Share of characters a script needs before it decides the language
MIN_SCRIPT_RATIO = 0.10

ENGLISH_MARKERS: FrozenSet[str] = frozenset({
    "the", "a", "an", "this", "that", "these", "those",
    "i", "you", "he", "she", "it", "we", "they", "me", "him", "her", "us", "them",
    "is", "are", "was", "were", "be", "been", "being",
    "have", "has", "had", "do", "does", "did",
    "will", "would", "could", "should", "can", "may", "might",
    "in", "on", "at", "to", "for", "with", "by", "from", "of",
    "and", "but", "or", "if", "because", "although", "while",
    "not", "all", "what", "when", "where", "how", "why", "who",
    "your", "my", "our", "their", "his", "its",
})

GERMAN_MARKERS: FrozenSet[str] = frozenset({
    "der", "die", "das", "und", "ist", "von", "mit", "auf", "für", "nicht",
    "sich", "auch", "als", "noch", "nach", "bei", "aus", "wenn", "nur", "werden",
})

FRENCH_MARKERS: FrozenSet[str] = frozenset({
    "le", "la", "les", "de", "du", "des", "et", "est", "que", "qui",
    "dans", "pour", "pas", "sur", "avec", "ce", "une", "son", "mais", "nous",
})

SPANISH_MARKERS: FrozenSet[str] = frozenset({
    "el", "la", "los", "las", "de", "del", "que", "y", "en", "un",
    "es", "se", "no", "por", "con", "para", "como", "una", "su", "al",
})

# Punctuation treated as a word separator, in addition to whitespace
_WORD_SEPARATORS = str.maketrans({ch: " " for ch in ".,!?;:\"'()[]{}"})

# Marker ratios are taken over at most this many words
MAX_SAMPLE_WORDS = 100


class SimpleLanguageDetector(LanguageDetector):
    """
    Script ranges first, then marker words for Latin text.

    English wins any near-tie (within 10% of the best ratio). Latin text
    with no marker signal is reported as undetermined at 0.3 confidence.
    """

    def detect(self, text: str) -> LanguageDetectionResult:
        if not text or not text.strip():
            return UNDETERMINED

        by_script = self._detect_by_script(text)
        if by_script is not None:
            return by_script
        return self._detect_latin(text)

    @staticmethod
    def _detect_by_script(text: str) -> Optional[LanguageDetectionResult]:
        length = len(text)
        for ranges, language, script, base_confidence in SCRIPT_TABLE:
            count = sum(1 for ch in text if any(lo <= ord(ch) <= hi for lo, hi in ranges))
            if count == 0:
                continue

            ratio = count / length
            if ratio < MIN_SCRIPT_RATIO:
                continue

            confidence = min(base_confidence * (0.5 + ratio), 0.99)
            return LanguageDetectionResult(
                language_code="und" if language.startswith("und-") else language,
                script_code=script,
                confidence=confidence,
                is_reliable=confidence >= 0.7 and ratio >= 0.3,
            )
        return None

    @staticmethod
    def _detect_latin(text: str) -> LanguageDetectionResult:
        words = text.lower().translate(_WORD_SEPARATORS).split()
        if not words:
            return UNDETERMINED

        sample = min(len(words), MAX_SAMPLE_WORDS)
        ratios = {
            "en": sum(w in ENGLISH_MARKERS for w in words) / sample,
            "de": sum(w in GERMAN_MARKERS for w in words) / sample,
            "fr": sum(w in FRENCH_MARKERS for w in words) / sample,
            "es": sum(w in SPANISH_MARKERS for w in words) / sample,
        }
        best = max(ratios.values())

        if best < 0.05:
            return LanguageDetectionResult("und", "Latn", 0.3, False)

        if ratios["en"] >= best * 0.9:
            language = "en"
        else:
            language = next(code for code in ("de", "fr", "es") if ratios[code] == best)

        confidence = min(0.5 + best * 2, 0.95)
        return LanguageDetectionResult(
            language_code=language,
            script_code="Latn",
            confidence=confidence,
            is_reliable=confidence >= 0.7 and len(words) >= 10,
        )
