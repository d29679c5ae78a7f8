"""
Ethicore Engine™ - PromptShield - Model Loader
Loads the optional ONNX prompt-injection classifier
Version: 1.0.0

Copyright © 2026 Oracles Technologies LLC
All Rights Reserved
"""

import logging
from pathlib import Path
from typing import List, Optional

import onnxruntime as ort

logger = logging.getLogger(__name__)

# Packaged models ship next to the analyzers package
PACKAGED_MODELS_DIR = Path(__file__).resolve().parent.parent / "models"


class ModelLoader:
    """
    Owns the ONNX inference session.

    A missing model is a valid state: ``is_available`` is False and the
    ML layer scores with extracted features only.
    """

    def __init__(self, model_path: Optional[str] = None, models_dir: Optional[Path] = None):
        self.models_dir = Path(models_dir) if models_dir is not None else PACKAGED_MODELS_DIR
        self.model_path: Optional[Path] = None
        self._session: Optional["ort.InferenceSession"] = None
        self._input_names: List[str] = []
        self._output_names: List[str] = []

        resolved = self._resolve_model_path(model_path)
        if resolved is not None:
            self._load(resolved)

    @property
    def is_available(self) -> bool:
        return self._session is not None

    @property
    def session(self) -> Optional["ort.InferenceSession"]:
        return self._session

    @property
    def input_names(self) -> List[str]:
        return list(self._input_names)

    @property
    def output_names(self) -> List[str]:
        return list(self._output_names)

    def _resolve_model_path(self, model_path: Optional[str]) -> Optional[Path]:
        if model_path:
            candidate = Path(model_path)
            if candidate.exists():
                return candidate
            logger.warning("Configured model path does not exist: %s", model_path)

        if self.models_dir.is_dir():
            packaged = sorted(self.models_dir.glob("*.onnx"))
            if packaged:
                return packaged[0]

        logger.warning(
            "No ONNX model found (configured: %s, packaged dir: %s) - "
            "ML layer will use feature-based scoring",
            model_path, self.models_dir,
        )
        return None

    def _load(self, path: Path) -> None:
        try:
            options = ort.SessionOptions()
            options.log_severity_level = 2  # warnings and above
            self._session = ort.InferenceSession(
                str(path),
                sess_options=options,
                providers=["CPUExecutionProvider"],
            )
            self._input_names = [inp.name for inp in self._session.get_inputs()]
            self._output_names = [out.name for out in self._session.get_outputs()]
            self.model_path = path

            logger.info("ONNX model loaded: %s", path.name)
            logger.info("   Inputs: %s", self._input_names)
            logger.info("   Outputs: %s", self._output_names)
        except Exception as e:
            logger.error("Failed to load ONNX model %s: %s", path, e)
            self._session = None
            self._input_names = []
            self._output_names = []

    def close(self) -> None:
        """Release the session; the loader reports unavailable afterwards."""
        self._session = None
        self._input_names = []
        self._output_names = []
