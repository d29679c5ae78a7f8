"""
Unit tests for RequestValidator
"""

import pytest

from ethicore_promptshield.exceptions import ValidationError
from ethicore_promptshield.models import AnalysisRequest
from ethicore_promptshield.validation import (
    PROMPT_INVALID_CHARS,
    PROMPT_REQUIRED,
    PROMPT_SUSPICIOUS_CHARS,
    PROMPT_TOO_LONG,
    VALIDATION_FAILED,
    RequestValidator,
)

ZERO_WIDTH_SPACE = chr(0x200B)


@pytest.fixture
def validator():
    return RequestValidator(max_prompt_length=100)


class TestRequestValidator:
    def test_valid_request(self, validator):
        result = validator.validate(AnalysisRequest(prompt="hello"))

        assert result.is_valid
        assert not result.has_warnings

    @pytest.mark.parametrize("prompt", [None, "", "  \t\n"])
    def test_prompt_required(self, validator, prompt):
        result = validator.validate(AnalysisRequest(prompt=prompt))

        assert result.errors == [f"{PROMPT_REQUIRED}: Prompt is required and cannot be null or empty."]

    def test_too_long(self):
        result = RequestValidator(max_prompt_length=1000).validate(AnalysisRequest(prompt="x" * 1001))

        assert result.errors == [
            f"{PROMPT_TOO_LONG}: Prompt length (1,001) exceeds maximum allowed length (1,000)."
        ]

    def test_length_at_limit(self, validator):
        assert validator.validate(AnalysisRequest(prompt="x" * 100)).is_valid

    def test_system_prompt_too_long(self, validator):
        result = validator.validate(AnalysisRequest(prompt="hi", system_prompt="s" * 101))

        assert len(result.errors) == 1
        assert result.errors[0].startswith(f"{PROMPT_TOO_LONG}: System prompt")

    def test_null_character(self, validator):
        result = validator.validate(AnalysisRequest(prompt="a\x00b\x00"))

        assert result.errors == [f"{PROMPT_INVALID_CHARS}: Prompt contains forbidden characters: U+0000"]

    def test_suspicious_characters_warn(self, validator):
        result = validator.validate(AnalysisRequest(prompt=f"hi{ZERO_WIDTH_SPACE}there"))

        assert result.is_valid
        assert result.warnings == [
            f"{PROMPT_SUSPICIOUS_CHARS}: Prompt contains suspicious Unicode characters: U+200B"
        ]

    def test_suspicious_characters_truncated(self, validator):
        chars = "".join(chr(c) for c in (0x200B, 0x200C, 0x200D, 0xFEFF, 0x202E, 0x2066, 0x3000))

        result = validator.validate(AnalysisRequest(prompt=f"x{chars}"))

        assert result.warnings[0].endswith("U+200B, U+200C, U+200D, U+FEFF, U+202E and 2 more")

    def test_multiple_errors(self, validator):
        result = validator.validate(AnalysisRequest(prompt="\x00" * 101))

        assert len(result.errors) == 2

    def test_ensure_valid_raises(self, validator):
        with pytest.raises(ValidationError) as exc_info:
            validator.ensure_valid(AnalysisRequest(prompt="\x00" * 101))

        error = exc_info.value
        assert error.error_code == VALIDATION_FAILED
        assert len(error.errors) == 2
        assert str(error) == "; ".join(error.errors)

    def test_ensure_valid_returns_warnings(self, validator):
        result = validator.ensure_valid(AnalysisRequest(prompt=f"a{ZERO_WIDTH_SPACE}"))

        assert result.has_warnings

    def test_invalid_limit(self):
        with pytest.raises(ValueError):
            RequestValidator(max_prompt_length=0)
