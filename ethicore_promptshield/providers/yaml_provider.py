"""
Ethicore Engine™ - PromptShield - YAML Pattern Provider
Loads deployment-specific detection patterns from YAML files
Version: 1.0.0

Copyright © 2026 Oracles Technologies LLC
All Rights Reserved
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from ethicore_promptshield.exceptions import ConfigurationError
from ethicore_promptshield.models import DetectionPattern, ThreatSeverity
from ethicore_promptshield.providers.base_provider import PatternProvider

logger = logging.getLogger(__name__)


class YamlPatternProvider(PatternProvider):
    """
    Pattern provider backed by a YAML document.

    Expected layout (a bare top-level list is accepted too)::

        patterns:
          - id: acme-001
            name: Internal codename leak
            pattern: "(?i)project\\s+bluebird"
            severity: High
            owasp_category: LLM06
            description: Mentions of the unreleased product
            enabled: true

    ``id``, ``name`` and ``pattern`` are required. Entries missing them, or
    carrying an unknown severity, are logged and skipped.
    """

    def __init__(self, path: Union[str, Path], name: Optional[str] = None):
        self.path = Path(path)
        self._name = name or f"YAML Patterns ({self.path.name})"

    @property
    def provider_name(self) -> str:
        return self._name

    def get_patterns(self) -> List[DetectionPattern]:
        if not self.path.exists():
            raise ConfigurationError(f"Pattern file not found: {self.path}")

        with open(self.path, "r", encoding="utf-8") as f:
            document = yaml.safe_load(f) or []

        entries = document.get("patterns", []) if isinstance(document, dict) else document
        if not isinstance(entries, list):
            raise ConfigurationError(f"Pattern file must contain a list of patterns: {self.path}")

        patterns: List[DetectionPattern] = []
        for index, entry in enumerate(entries):
            pattern = self._parse_entry(entry, index)
            if pattern is not None:
                patterns.append(pattern)

        logger.info("%s: loaded %d patterns", self.provider_name, len(patterns))
        return patterns

    def _parse_entry(self, entry: Any, index: int) -> Optional[DetectionPattern]:
        if not isinstance(entry, dict):
            logger.warning("%s: entry %d is not a mapping, skipped", self.provider_name, index)
            return None

        missing = [key for key in ("id", "name", "pattern") if not entry.get(key)]
        if missing:
            logger.warning(
                "%s: entry %d missing %s, skipped", self.provider_name, index, ", ".join(missing)
            )
            return None

        try:
            severity = ThreatSeverity.parse(entry.get("severity", "Medium"))
        except (KeyError, ValueError):
            logger.warning(
                "%s: entry %s has unknown severity %r, skipped",
                self.provider_name, entry["id"], entry.get("severity"),
            )
            return None

        fields: Dict[str, Any] = {
            "id": str(entry["id"]),
            "name": str(entry["name"]),
            "pattern": str(entry["pattern"]),
            "description": str(entry.get("description", "")),
            "owasp_category": str(entry.get("owasp_category", "LLM01")),
            "severity": severity,
            "enabled": bool(entry.get("enabled", True)),
        }
        return DetectionPattern(**fields)
