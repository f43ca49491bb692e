"""ONNX Runtime implementation of the inference backend."""
from pathlib import Path
from typing import List, Optional

import numpy as np
import onnxruntime as ort

from faceverify.core.config import settings
from faceverify.core.exceptions import BackendError, ModelLoadError
from faceverify.core.logging import get_logger
from faceverify.domain.interfaces.recognition.inference_backend import InferenceBackend, ModelHandle

logger = get_logger(__name__)


class OnnxRuntimeBackend(InferenceBackend):
    """Runs recognition models exported to ONNX.

    ``InferenceSession.run`` is safe to call from several threads at once, so
    the backend is reentrant and the embedder does not serialise calls.

    Note:
        This implementation uses CPU inference by default. For GPU support,
        set INFERENCE_PROVIDERS to include 'CUDAExecutionProvider'.
    """

    reentrant = True

    def __init__(self, providers: Optional[List[str]] = None) -> None:
        self.providers = providers or list(settings.INFERENCE_PROVIDERS)

    def load(self, model_path: str, name: Optional[str] = None) -> ModelHandle:
        path = Path(model_path)
        if not path.is_file():
            raise ModelLoadError(
                f"Model file not found: {path}",
                details={"path": str(path)},
            )

        try:
            session = ort.InferenceSession(str(path), providers=self.providers)
        except Exception as e:
            logger.error("Failed to load ONNX model", path=str(path), error=str(e), exc_info=True)
            raise ModelLoadError(f"Failed to load model {path}: {e}", details={"path": str(path)})

        model_input = session.get_inputs()[0]
        # Dynamic axes come back as strings or None
        input_shape = tuple(dim if isinstance(dim, int) else None for dim in model_input.shape)

        handle = ModelHandle(
            name=name or path.stem,
            path=str(path),
            input_name=model_input.name,
            input_shape=input_shape,
            session=session,
        )
        logger.info(
            "Loaded ONNX model",
            model=handle.name,
            path=handle.path,
            input_shape=handle.input_shape,
            providers=self.providers,
        )
        return handle

    def run(self, handle: ModelHandle, tensor: np.ndarray) -> np.ndarray:
        if handle.session is None:
            raise BackendError(
                f"Model {handle.name} has no active session",
                details={"model": handle.name},
            )
        try:
            outputs = handle.session.run(None, {handle.input_name: tensor})
        except Exception as e:
            logger.error("ONNX inference failed", model=handle.name, error=str(e))
            raise BackendError(f"Inference failed for model {handle.name}: {e}",
                               details={"model": handle.name})
        return np.asarray(outputs[0])
