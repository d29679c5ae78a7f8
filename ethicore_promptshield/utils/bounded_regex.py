"""
Ethicore Engine™ - PromptShield - Bounded-time regular expressions
Every regex evaluated on untrusted prompt text goes through this module.
Version: 1.0.0

Copyright © 2026 Oracles Technologies LLC
All Rights Reserved
"""

import logging
from enum import Enum
from typing import Iterable, List, Sequence

import regex

logger = logging.getLogger(__name__)


class MatchOutcome(Enum):
    """Result of a bounded match attempt"""
    MATCH = "match"
    NO_MATCH = "no_match"
    TIMEOUT = "timeout"


class BoundedRegex:
    """
    Compiled regex whose every evaluation is capped at ``timeout_ms``.

    A timeout is reported as ``MatchOutcome.TIMEOUT`` and never raised:
    input that drives a pattern into catastrophic backtracking is itself
    treated as a signal by the callers.
    """

    __slots__ = ("source", "timeout_ms", "_compiled")

    def __init__(self, source: str, timeout_ms: int, ignore_case: bool = False):
        flags = regex.IGNORECASE if ignore_case else 0
        self.source = source
        self.timeout_ms = timeout_ms
        # regex.error propagates so callers can log and skip the pattern
        self._compiled = regex.compile(source, flags)

    def try_search(self, text: str) -> MatchOutcome:
        try:
            found = self._compiled.search(text, timeout=self.timeout_ms / 1000.0)
        except TimeoutError:
            return MatchOutcome.TIMEOUT
        return MatchOutcome.MATCH if found is not None else MatchOutcome.NO_MATCH

    def is_match(self, text: str, on_timeout: bool = False) -> bool:
        """Boolean view; ``on_timeout`` is returned when the bound is hit."""
        outcome = self.try_search(text)
        if outcome is MatchOutcome.TIMEOUT:
            return on_timeout
        return outcome is MatchOutcome.MATCH

    def __repr__(self) -> str:
        return f"BoundedRegex({self.source!r}, timeout_ms={self.timeout_ms})"


def compile_list(
    sources: Iterable[str],
    timeout_ms: int,
    list_name: str,
    ignore_case: bool = True,
) -> List[BoundedRegex]:
    """Compile user-supplied regexes, logging and skipping invalid ones."""
    compiled: List[BoundedRegex] = []
    for source in sources:
        try:
            compiled.append(BoundedRegex(source, timeout_ms, ignore_case=ignore_case))
        except regex.error as e:
            logger.warning("Invalid regex pattern in %s: %r (%s)", list_name, source, e)
    return compiled


def any_match(patterns: Sequence[BoundedRegex], text: str) -> bool:
    """True when any pattern matches; timeouts count as no match."""
    return any(p.is_match(text) for p in patterns)
