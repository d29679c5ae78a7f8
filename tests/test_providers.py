"""
Unit tests for pattern providers
"""

import pytest

from ethicore_promptshield.data.builtin_patterns import (
    get_all_patterns,
    get_pattern,
    get_pattern_statistics,
)
from ethicore_promptshield.exceptions import ConfigurationError
from ethicore_promptshield.models import ThreatSeverity
from ethicore_promptshield.providers import BuiltInPatternProvider, YamlPatternProvider


class TestBuiltInPatternProvider:
    def test_library(self):
        patterns = BuiltInPatternProvider().get_patterns()

        assert len(patterns) == 21
        assert len({p.id for p in patterns}) == 21
        assert all(p.enabled for p in patterns)
        assert patterns[0].id == "builtin-jailbreak-001"

    def test_returns_fresh_list(self):
        first = get_all_patterns()
        first.clear()

        assert len(get_all_patterns()) == 21

    def test_critical_signatures_present(self):
        by_id = {p.id: p for p in BuiltInPatternProvider().get_patterns()}

        assert by_id["builtin-jailbreak-002"].severity is ThreatSeverity.CRITICAL
        assert by_id["builtin-encoding-001"].severity is ThreatSeverity.MEDIUM

    def test_lookup_by_id(self):
        assert get_pattern("BUILTIN-JAILBREAK-002").name == "Ignore Previous Instructions"
        assert get_pattern("no-such-pattern") is None

    def test_statistics(self):
        stats = get_pattern_statistics()

        assert stats["totalPatterns"] == 21
        assert sum(stats["bySeverity"].values()) == 21
        assert list(stats["bySeverity"]) == ["Critical", "High", "Medium", "Low"]


class TestYamlPatternProvider:
    def _write(self, tmp_path, text: str):
        path = tmp_path / "patterns.yaml"
        path.write_text(text, encoding="utf-8")
        return path

    def test_mapping_layout(self, tmp_path):
        path = self._write(
            tmp_path,
            "patterns:\n"
            "  - id: acme-001\n"
            "    name: Codename leak\n"
            "    pattern: 'project\\s+bluebird'\n"
            "    severity: high\n"
            "    owasp_category: LLM06\n"
            "    description: Unreleased product\n",
        )

        patterns = YamlPatternProvider(path).get_patterns()

        assert len(patterns) == 1
        pattern = patterns[0]
        assert pattern.id == "acme-001"
        assert pattern.pattern == r"project\s+bluebird"
        assert pattern.severity is ThreatSeverity.HIGH
        assert pattern.owasp_category == "LLM06"
        assert pattern.enabled is True

    def test_bare_list_and_defaults(self, tmp_path):
        path = self._write(tmp_path, "- {id: a, name: A, pattern: foo}\n")

        pattern = YamlPatternProvider(path).get_patterns()[0]

        assert pattern.severity is ThreatSeverity.MEDIUM
        assert pattern.owasp_category == "LLM01"

    def test_invalid_entries_skipped(self, tmp_path):
        path = self._write(
            tmp_path,
            "patterns:\n"
            "  - just a string\n"
            "  - {id: missing-pattern, name: No regex}\n"
            "  - {id: bad-sev, name: Bad, pattern: x, severity: apocalyptic}\n"
            "  - {id: ok, name: Ok, pattern: y, enabled: false}\n",
        )

        patterns = YamlPatternProvider(path).get_patterns()

        assert [p.id for p in patterns] == ["ok"]
        assert patterns[0].enabled is False

    def test_empty_file(self, tmp_path):
        assert YamlPatternProvider(self._write(tmp_path, "")).get_patterns() == []

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            YamlPatternProvider(tmp_path / "absent.yaml").get_patterns()

    def test_wrong_shape(self, tmp_path):
        with pytest.raises(ConfigurationError):
            YamlPatternProvider(self._write(tmp_path, "patterns: 42\n")).get_patterns()

    def test_provider_name(self, tmp_path):
        assert YamlPatternProvider(tmp_path / "x.yaml").provider_name == "YAML Patterns (x.yaml)"
        assert YamlPatternProvider(tmp_path / "x.yaml", name="Acme").provider_name == "Acme"
