"""
Ethicore Engine™ - PromptShield - ML Inference Engine
Feature-weighted scoring with an optional ONNX classifier ensemble
Version: 1.0.0

Combines two probability sources:
- Feature score: weighted sum over the 48 extracted features, squashed
  through a sigmoid
- Model score: ONNX sequence classifier over the subword tokenizer output

When both are available they are blended, with the model weight growing
as the model becomes more decisive. Any model failure degrades to the
feature score alone.

Copyright © 2026 Oracles Technologies LLC
All Rights Reserved
"""

import asyncio
import logging
import math
import time
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple

import numpy as np

from ethicore_promptshield.analyzers.feature_extractor import FEATURE_NAMES, FeatureExtractor
from ethicore_promptshield.analyzers.model_loader import ModelLoader
from ethicore_promptshield.analyzers.tokenizer import SimpleTokenizer, TokenizationStrategy
from ethicore_promptshield.models import LayerResult, SensitivityLevel
from ethicore_promptshield.utils.bounded_regex import any_match, compile_list
from ethicore_promptshield.utils.config import MLConfig

logger = logging.getLogger(__name__)

LAYER_NAME = "MLClassification"

ALLOWLIST_TIMEOUT_MS = 50
TOP_FEATURE_COUNT = 5

# Extra weight the model earns when it is confident (|p - 0.5| -> 0.5)
CONFIDENCE_BOOST = 0.3


class InferenceMode(Enum):
    """How the threat probability was produced"""
    FEATURE_BASED = "FeatureBased"
    TOKEN_BASED = "TokenBased"
    ENSEMBLE = "Ensemble"
    DEGRADED = "Degraded"


# Feature index -> (name, weight). Features not listed do not score.
DEFAULT_FEATURE_WEIGHTS: Dict[int, Tuple[str, float]] = {
    3: ("Entropy", 0.05),
    11: ("CompressionRatio", 0.08),
    17: ("ControlCharRatio", 0.15),
    18: ("HighUnicodeRatio", 0.20),
    19: ("ZeroWidthChars", 0.25),
    20: ("BidiOverrides", 0.30),
    24: ("InjectionKeywords", 0.40),
    25: ("CommandKeywords", 0.25),
    26: ("RoleKeywords", 0.35),
    30: ("IgnorePattern", 0.50),
    31: ("NewInstructionsPattern", 0.45),
    32: ("PersonaSwitchPattern", 0.55),
    33: ("SystemPromptRef", 0.40),
    34: ("CodeIndicators", 0.20),
    36: ("RepeatedDelimiters", 0.15),
    37: ("XmlTags", 0.10),
    40: ("Base64Content", 0.15),
    45: ("TemplatePlaceholders", 0.20),
    47: ("StructuralComplexity", 0.10),
}

_FEATURE_NAME_TO_INDEX: Dict[str, int] = {
    name.lower(): index for index, (name, _) in DEFAULT_FEATURE_WEIGHTS.items()
}

_SENSITIVITY_MULTIPLIER = {
    SensitivityLevel.LOW: 0.7,
    SensitivityLevel.MEDIUM: 1.0,
    SensitivityLevel.HIGH: 1.3,
    SensitivityLevel.PARANOID: 1.6,
}


def sigmoid(x: float) -> float:
    return 1.0 / (1.0 + math.exp(-x))


def softmax(logits: np.ndarray) -> np.ndarray:
    shifted = np.exp(logits - np.max(logits))
    return shifted / shifted.sum()


def ensemble_score(model_score: float, feature_score: float, model_weight: float) -> float:
    """Blend model and feature scores; a decisive model earns more weight."""
    decisiveness = abs(model_score - 0.5) * 2.0
    weight = model_weight + decisiveness * (1.0 - model_weight) * CONFIDENCE_BOOST
    combined = model_score * weight + feature_score * (1.0 - weight)
    return min(1.0, max(0.0, combined))


class MLClassificationLayer:
    """
    Third detection layer.

    Inference runs in a worker thread behind a semaphore of
    ``max_concurrent_inferences`` slots. A caller that cannot get a slot
    within half the inference timeout receives a degraded, non-executed
    result instead of queueing indefinitely.
    """

    def __init__(
        self,
        config: Optional[MLConfig] = None,
        model_loader: Optional[ModelLoader] = None,
        feature_extractor: Optional[FeatureExtractor] = None,
        tokenizer: Optional[SimpleTokenizer] = None,
    ):
        self.config = config or MLConfig()
        self.model_loader = model_loader
        if self.model_loader is None and self.config.enabled:
            self.model_loader = ModelLoader(self.config.model_path)

        self.feature_extractor = feature_extractor or FeatureExtractor()
        self.tokenizer = tokenizer or SimpleTokenizer(
            self.config.max_sequence_length,
            strategy=TokenizationStrategy.SUBWORD,
            add_special_tokens=True,
            lowercase=True,
        )

        self._semaphore = asyncio.Semaphore(self.config.max_concurrent_inferences)
        self._allowlist = compile_list(
            self.config.allowed_patterns, ALLOWLIST_TIMEOUT_MS, "ML classification allowlist"
        )
        self._weight_overrides = self._build_weight_overrides(self.config.feature_weights)
        self._disabled_indices = self._build_disabled_indices(self.config.disabled_features)

        if self.model_available:
            logger.info(
                "MLClassificationLayer initialized with ONNX model "
                "(threshold=%.2f, max_concurrent=%d, disabled_features=%d)",
                self.config.threshold,
                self.config.max_concurrent_inferences,
                len(self._disabled_indices),
            )
        else:
            logger.warning(
                "MLClassificationLayer initialized without a model - using feature-based scoring"
            )

    @property
    def layer_name(self) -> str:
        return LAYER_NAME

    @property
    def model_available(self) -> bool:
        return self.model_loader is not None and self.model_loader.is_available

    @property
    def disabled_feature_count(self) -> int:
        return len(self._disabled_indices)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @staticmethod
    def _build_weight_overrides(custom: Optional[Mapping[str, float]]) -> Dict[int, float]:
        overrides: Dict[int, float] = {}
        for name, weight in (custom or {}).items():
            index = _FEATURE_NAME_TO_INDEX.get(str(name).lower())
            if index is None:
                logger.warning("Unknown feature name in weight overrides: %s", name)
                continue
            overrides[index] = min(1.0, max(0.0, float(weight)))
        return overrides

    @staticmethod
    def _build_disabled_indices(names: List[str]) -> Set[int]:
        disabled: Set[int] = set()
        for name in names:
            index = _FEATURE_NAME_TO_INDEX.get(str(name).lower())
            if index is None:
                logger.warning("Unknown feature name in disabled list: %s", name)
                continue
            disabled.add(index)
            logger.debug("Feature disabled: %s", name)
        return disabled

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    async def analyze(self, prompt: str) -> LayerResult:
        if not self.config.enabled:
            return LayerResult.skipped(LAYER_NAME)

        if any_match(self._allowlist, prompt):
            logger.debug("Prompt matched ML allowlist, skipping classification")
            return LayerResult(
                layer_name=LAYER_NAME,
                was_executed=True,
                confidence=0.0,
                is_threat=False,
                data={"status": "allowlisted", "reason": "Prompt matched allowlist pattern"},
            )

        wait_seconds = self.config.inference_timeout_seconds / 2.0
        try:
            await asyncio.wait_for(self._semaphore.acquire(), timeout=wait_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                "ML inference concurrency limit reached (%d); returning degraded result",
                self.config.max_concurrent_inferences,
            )
            return LayerResult(
                layer_name=LAYER_NAME,
                was_executed=False,
                confidence=0.0,
                is_threat=False,
                data={"status": "concurrency_limited", "degraded": True},
            )

        start_time = time.perf_counter()
        try:
            worker = asyncio.ensure_future(asyncio.to_thread(self._classify, prompt))
        except BaseException:
            self._semaphore.release()
            raise
        # Slot is held until the worker thread finishes, even if this task is cancelled
        worker.add_done_callback(self._release_slot)

        try:
            probability, mode, features = await asyncio.shield(worker)
        except asyncio.CancelledError:
            logger.debug("ML analysis cancelled; inference slot held until the worker finishes")
            raise
        except Exception as e:
            logger.error("ML classification failed: %s", e)
            return LayerResult(
                layer_name=LAYER_NAME,
                was_executed=True,
                confidence=0.0,
                is_threat=False,
                duration_ms=(time.perf_counter() - start_time) * 1000,
                data={"status": "error", "error": str(e), "degraded": True},
            )

        duration_ms = (time.perf_counter() - start_time) * 1000
        probability = min(1.0, max(0.0, probability))
        is_threat = probability >= self.config.threshold

        logger.debug(
            "ML classification completed: probability=%.3f, mode=%s, duration=%.2fms",
            probability, mode.value, duration_ms,
        )
        return LayerResult(
            layer_name=LAYER_NAME,
            was_executed=True,
            confidence=probability,
            is_threat=is_threat,
            duration_ms=duration_ms,
            data=self._build_data(probability, mode, features),
        )

    def _release_slot(self, worker: "asyncio.Future") -> None:
        self._semaphore.release()
        if not worker.cancelled() and worker.exception() is not None:
            # Retrieved here so a worker abandoned by a cancelled caller is not reported as unhandled
            logger.debug("ML inference worker finished with error: %s", worker.exception())

    def _classify(self, prompt: str) -> Tuple[float, InferenceMode, np.ndarray]:
        """Blocking part of the analysis; runs in a worker thread."""
        features = self.feature_extractor.extract(prompt)
        feature_score = self.feature_score(features)

        if not self.model_available:
            return feature_score, InferenceMode.FEATURE_BASED, features

        try:
            model_score = self._run_model(prompt)
        except Exception as e:
            logger.warning("ONNX inference failed, using feature-based scoring: %s", e)
            return feature_score, InferenceMode.DEGRADED, features

        if not self.config.use_ensemble:
            return model_score, InferenceMode.TOKEN_BASED, features
        return (
            ensemble_score(model_score, feature_score, self.config.model_weight),
            InferenceMode.ENSEMBLE,
            features,
        )

    def feature_score(self, features: np.ndarray) -> float:
        """Sigmoid of the weighted sum of the scoring features."""
        multiplier = _SENSITIVITY_MULTIPLIER.get(self.config.sensitivity, 1.0)
        min_contribution = self.config.min_feature_contribution

        total = 0.0
        for index, (_, default_weight) in DEFAULT_FEATURE_WEIGHTS.items():
            if index in self._disabled_indices or index >= len(features):
                continue
            value = float(features[index])
            if value < min_contribution:
                continue
            weight = self._weight_overrides.get(index, default_weight)
            total += value * weight * multiplier

        return sigmoid(2.0 * total - 2.0)

    def _run_model(self, prompt: str) -> float:
        session = self.model_loader.session
        input_names = self.model_loader.input_names
        output_names = self.model_loader.output_names
        if session is None or not output_names:
            raise RuntimeError("ONNX session is not available")

        token_ids, attention_mask = self.tokenizer.tokenize_with_attention(prompt)
        token_ids = token_ids.reshape(1, -1)

        ids_name = next((n for n in input_names if "input" in n.lower()), "input_ids")
        feeds: Dict[str, np.ndarray] = {ids_name: token_ids}

        mask_name = next(
            (n for n in input_names if "attention" in n.lower() or "mask" in n.lower()), None
        )
        if mask_name is not None:
            feeds[mask_name] = attention_mask.reshape(1, -1)

        type_name = next(
            (n for n in input_names if "token_type" in n.lower() or "segment" in n.lower()), None
        )
        if type_name is not None:
            feeds[type_name] = np.zeros_like(token_ids)

        outputs = session.run([output_names[0]], feeds)
        logits = np.asarray(outputs[0], dtype=np.float64).reshape(-1)

        if logits.size >= 2:
            return float(softmax(logits)[1])
        if logits.size == 1:
            return sigmoid(float(logits[0]))
        raise ValueError("ONNX model returned an empty output")

    # ------------------------------------------------------------------
    # Result data
    # ------------------------------------------------------------------

    def top_features(self, features: np.ndarray) -> List[str]:
        """Display-only list of the strongest features, formatted Name:0.00"""
        threshold = self.config.feature_display_threshold
        candidates = [
            (FEATURE_NAMES[i] if i < len(FEATURE_NAMES) else f"Feature{i}", float(v))
            for i, v in enumerate(features)
            if float(v) > threshold and i not in self._disabled_indices
        ]
        candidates.sort(key=lambda item: item[1], reverse=True)
        return [f"{name}:{value:.2f}" for name, value in candidates[:TOP_FEATURE_COUNT]]

    def _build_data(
        self, probability: float, mode: InferenceMode, features: np.ndarray
    ) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "status": "success",
            "threshold": self.config.threshold,
            "mode": mode.value,
            "sensitivity": self.config.sensitivity.value,
            "threat_probability": probability,
            "benign_probability": 1.0 - probability,
            "model_available": self.model_available,
        }
        if self.config.include_feature_importance:
            top = self.top_features(features)
            if top:
                data["top_features"] = top
        if self._disabled_indices:
            data["disabled_features_count"] = len(self._disabled_indices)
        return data

    def get_status(self) -> Dict[str, Any]:
        return {
            "enabled": self.config.enabled,
            "model_available": self.model_available,
            "threshold": self.config.threshold,
            "sensitivity": self.config.sensitivity.value,
            "max_concurrent_inferences": self.config.max_concurrent_inferences,
            "use_ensemble": self.config.use_ensemble,
            "disabled_features": len(self._disabled_indices),
        }
