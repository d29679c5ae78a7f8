"""
Ethicore Engine™ - PromptShield - Shared pytest fixtures

conftest.py is auto-loaded by pytest for all tests in this directory.
Place shared fixtures here so individual test files stay focused on
what they're testing, not on setup boilerplate.
"""

from __future__ import annotations

import pytest

from ethicore_promptshield import PromptShield, PromptShieldConfig
from ethicore_promptshield.analyzers.model_loader import ModelLoader


class _NoModelLoader(ModelLoader):
    """ModelLoader that never looks on disk; tests run feature-only by default."""

    def __init__(self):
        super().__init__(model_path=None, models_dir=None)

    def _resolve_model_path(self, model_path):
        return None


@pytest.fixture
def no_model_loader() -> ModelLoader:
    return _NoModelLoader()


@pytest.fixture
def config() -> PromptShieldConfig:
    return PromptShieldConfig(log_level="WARNING")


@pytest.fixture
def shield(config, no_model_loader) -> PromptShield:
    """PromptShield with default config and no ONNX model."""
    return PromptShield(config=config, model_loader=no_model_loader)
