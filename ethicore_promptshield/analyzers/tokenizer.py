"""
Ethicore Engine™ - PromptShield - Tokenizer
Security-focused subword tokenizer feeding the ONNX classifier
Version: 1.0.0

Copyright © 2026 Oracles Technologies LLC
All Rights Reserved
"""

import unicodedata
from enum import Enum
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

PAD_TOKEN_ID = 0
UNKNOWN_TOKEN_ID = 1
CLS_TOKEN_ID = 2
SEP_TOKEN_ID = 3
MASK_TOKEN_ID = 4

# Vocabulary ids are shifted past the special tokens
VOCAB_START_OFFSET = 5

MAX_BPE_ITERATIONS = 50


class TokenizationStrategy(Enum):
    WORD = "word"
    CHARACTER = "character"
    SUBWORD = "subword"


# ---------------------------------------------------------------------------
# Default vocabulary
# ---------------------------------------------------------------------------

_PUNCTUATION = ".,!?;:'-\"()[]{}/<>@#$%^&*+=_\\|`~"

_COMMON_WORDS = (
    "the", "be", "to", "of", "and", "a", "in", "that", "have", "i",
    "it", "for", "not", "on", "with", "he", "as", "you", "do", "at",
    "this", "but", "his", "by", "from", "they", "we", "say", "her", "she",
    "or", "an", "will", "my", "one", "all", "would", "there", "their", "what",
    "so", "up", "out", "if", "about", "who", "get", "which", "go", "me",
    "when", "make", "can", "like", "time", "no", "just", "him", "know", "take",
    "people", "into", "year", "your", "good", "some", "could", "them", "see", "other",
    "than", "then", "now", "look", "only", "come", "its", "over", "think", "also",
)

_SECURITY_KEYWORDS = (
    # Injection commands
    "ignore", "forget", "disregard", "override", "bypass", "skip", "delete", "remove",
    "jailbreak", "dan", "sudo", "admin", "root", "privileged", "elevated",
    # Role manipulation
    "pretend", "roleplay", "act", "persona", "character", "simulate", "imagine",
    "behave", "respond", "answer", "reply", "talk", "speak", "write",
    # System references
    "system", "prompt", "instruction", "instructions", "previous", "above", "below",
    "original", "initial", "real", "actual", "true", "hidden", "secret",
    # Action verbs
    "execute", "run", "eval", "print", "output", "display", "show", "reveal",
    "tell", "repeat", "generate", "create", "produce", "give", "provide",
    # Context manipulation
    "context", "conversation", "message", "messages", "history", "chat", "session",
    "beginning", "start", "end", "first", "last", "new", "updated",
    # Technical terms
    "api", "key", "token", "password", "credential", "access", "permission",
    "code", "script", "function", "variable", "data", "json", "xml",
    # Single-token phrase parts
    "you", "are", "now", "from", "on", "must", "should", "always", "never",
    "everything", "anything", "nothing", "all", "any", "every",
)

_SUBWORD_PIECES = (
    "##ing", "##ed", "##er", "##est", "##ly", "##tion", "##ness",
    "##ment", "##able", "##ible", "##ful", "##less", "##ive", "##ous",
    "un##", "re##", "pre##", "dis##", "mis##", "over##", "under##",
    "##s", "##es", "##al", "##ity", "##ize", "##ise", "##ify",
)

# Lower value = applied first
_COMMON_MERGES = (
    "th", "he", "in", "er", "an", "re", "on", "at", "en", "nd",
    "ti", "es", "or", "te", "of", "ed", "is", "it", "al", "ar",
    "st", "to", "nt", "ng", "se", "ha", "as", "ou", "io", "le",
    "ve", "co", "me", "de", "hi", "ri", "ro", "ic", "ne", "ea",
    "ra", "ce", "li", "ch", "ll", "be", "ma", "si", "om", "ur",
)

_SECURITY_MERGES = (
    "ig", "no", "re", "by", "pa", "ss", "sy", "st", "em", "pr",
    "om", "pt", "in", "st", "ru", "ct", "io", "ns", "ad", "mi",
    "ro", "ot", "ja", "il", "br", "ea", "ck", "ex", "ec", "ut",
)


def build_default_vocabulary() -> Dict[str, int]:
    """
    Characters, punctuation, common English words, injection keywords and
    subword pieces. Ids are assigned sequentially; a repeated entry keeps
    its later id, leaving a gap at the earlier one.
    """
    vocabulary: Dict[str, int] = {}
    token_id = 0
    entries: List[str] = []
    entries.extend(chr(c) for c in range(ord("a"), ord("z") + 1))
    entries.extend(chr(c) for c in range(ord("0"), ord("9") + 1))
    entries.extend(_PUNCTUATION)
    entries.extend(_COMMON_WORDS)
    entries.extend(_SECURITY_KEYWORDS)
    entries.extend(_SUBWORD_PIECES)
    for entry in entries:
        vocabulary[entry.lower()] = token_id
        token_id += 1
    return vocabulary


def build_bpe_merges() -> Dict[str, int]:
    merges: Dict[str, int] = {}
    priority = 0
    for pair in _COMMON_MERGES:
        merges[pair] = priority
        priority += 1
    for pair in _SECURITY_MERGES:
        if pair not in merges:
            merges[pair] = priority
            priority += 1
    return merges


def _is_punct_or_symbol(c: str) -> bool:
    return unicodedata.category(c)[0] in ("P", "S")


def _is_valid_char(c: str) -> bool:
    return c == " " or unicodedata.category(c)[0] in ("L", "N", "P", "S")


class SimpleTokenizer:
    """
    Fixed-length tokenizer for the prompt classifier.

    Output is always exactly ``max_sequence_length`` ids, padded with PAD.
    With special tokens enabled the sequence is ``[CLS] ... [SEP]`` and the
    last slot is reserved for SEP.
    """

    def __init__(
        self,
        max_sequence_length: int,
        vocabulary: Optional[Mapping[str, int]] = None,
        strategy: TokenizationStrategy = TokenizationStrategy.SUBWORD,
        add_special_tokens: bool = True,
        lowercase: bool = True,
    ):
        if max_sequence_length <= 0:
            raise ValueError("max_sequence_length must be positive")

        self.max_sequence_length = max_sequence_length
        self.strategy = strategy
        self.add_special_tokens = add_special_tokens
        self.lowercase = lowercase

        source = vocabulary if vocabulary is not None else build_default_vocabulary()
        # Lookups are case-insensitive
        self._vocabulary: Dict[str, int] = {k.lower(): v for k, v in source.items()}
        self._merges = build_bpe_merges()

    @property
    def vocabulary_size(self) -> int:
        return len(self._vocabulary) + VOCAB_START_OFFSET

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def tokenize(self, text: str) -> np.ndarray:
        """Token ids as an int64 array of length max_sequence_length."""
        if text is None:
            raise ValueError("text must not be None")

        normalized = self._normalize(text)
        if self.strategy is TokenizationStrategy.CHARACTER:
            pieces: Sequence[str] = list(normalized)
        elif self.strategy is TokenizationStrategy.WORD:
            pieces = self._pre_tokenize(normalized)
        else:
            pieces = [sub for word in self._pre_tokenize(normalized) for sub in self._apply_bpe(word)]

        return self._encode(pieces)

    def tokenize_with_attention(self, text: str) -> Tuple[np.ndarray, np.ndarray]:
        """(token_ids, attention_mask); the mask is 1 wherever the id is not PAD."""
        token_ids = self.tokenize(text)
        attention_mask = (token_ids != PAD_TOKEN_ID).astype(np.int64)
        return token_ids, attention_mask

    def tokenize_batch(self, texts: Sequence[str]) -> np.ndarray:
        """(len(texts), max_sequence_length) int64 matrix."""
        if texts is None:
            raise ValueError("texts must not be None")
        if not texts:
            return np.zeros((0, self.max_sequence_length), dtype=np.int64)
        return np.stack([self.tokenize(t) for t in texts])

    def decode(self, token_ids: Sequence[int]) -> str:
        """Readable rendering of ids, for debugging only."""
        reverse = {v: k for k, v in self._vocabulary.items()}
        parts: List[str] = []
        for token_id in token_ids:
            token_id = int(token_id)
            if token_id == PAD_TOKEN_ID:
                continue
            if token_id == CLS_TOKEN_ID:
                parts.append("[CLS] ")
            elif token_id == SEP_TOKEN_ID:
                parts.append(" [SEP]")
            elif token_id == UNKNOWN_TOKEN_ID:
                parts.append("[UNK] ")
            else:
                word = reverse.get(token_id - VOCAB_START_OFFSET)
                if word is None:
                    parts.append("[UNK] ")
                else:
                    parts.append(word if word.startswith("##") else word + " ")
        return "".join(parts).strip()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _encode(self, pieces: Sequence[str]) -> np.ndarray:
        reserve = 1 if self.add_special_tokens else 0
        ids: List[int] = [CLS_TOKEN_ID] if self.add_special_tokens else []

        for piece in pieces:
            if len(ids) >= self.max_sequence_length - reserve:
                break
            vocab_id = self._vocabulary.get(piece.lower())
            ids.append(vocab_id + VOCAB_START_OFFSET if vocab_id is not None else UNKNOWN_TOKEN_ID)

        if self.add_special_tokens and len(ids) < self.max_sequence_length:
            ids.append(SEP_TOKEN_ID)

        result = np.full(self.max_sequence_length, PAD_TOKEN_ID, dtype=np.int64)
        ids = ids[: self.max_sequence_length]
        result[: len(ids)] = ids
        return result

    def _normalize(self, text: str) -> str:
        out: List[str] = []
        last_was_space = False
        for c in text:
            if c.isspace():
                if not last_was_space:
                    out.append(" ")
                    last_was_space = True
            elif _is_valid_char(c):
                out.append(c.lower() if self.lowercase else c)
                last_was_space = False
        return "".join(out).strip()

    @staticmethod
    def _pre_tokenize(text: str) -> List[str]:
        """Split on whitespace; every punctuation or symbol char is its own token."""
        tokens: List[str] = []
        current: List[str] = []
        for c in text:
            if c.isspace():
                if current:
                    tokens.append("".join(current))
                    current = []
            elif _is_punct_or_symbol(c):
                if current:
                    tokens.append("".join(current))
                    current = []
                tokens.append(c)
            else:
                current.append(c)
        if current:
            tokens.append("".join(current))
        return tokens

    def _apply_bpe(self, word: str) -> List[str]:
        if not word:
            return []

        tokens = [c if i == 0 else "##" + c for i, c in enumerate(word)]

        iteration = 0
        while len(tokens) > 1 and iteration < MAX_BPE_ITERATIONS:
            iteration += 1
            best_priority: Optional[int] = None
            best_index = -1
            for i in range(len(tokens) - 1):
                priority = self._merges.get(tokens[i] + tokens[i + 1].lstrip("#"))
                if priority is not None and (best_priority is None or priority < best_priority):
                    best_priority = priority
                    best_index = i

            if best_index < 0:
                break

            merged = tokens[best_index] + tokens[best_index + 1].lstrip("#")
            if best_index == 0:
                merged = merged.lstrip("#")
            else:
                merged = "##" + merged.lstrip("#")
            tokens[best_index] = merged
            del tokens[best_index + 1]

        return tokens
