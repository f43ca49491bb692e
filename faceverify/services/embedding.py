"""Embedding extraction on top of a shared, read-only recognition model."""
import threading
from contextlib import nullcontext
from typing import Optional

import numpy as np

from faceverify.core.concurrency import call_with_retries
from faceverify.core.config import settings
from faceverify.core.exceptions import BackendError, InferenceError
from faceverify.core.logging import get_logger
from faceverify.core.profiles import ModelProfile
from faceverify.domain.entities.face import Embedding, NormalizedTensor
from faceverify.domain.interfaces.recognition.inference_backend import InferenceBackend, ModelHandle

logger = get_logger(__name__)


class FaceEmbedder:
    """
    Turns normalized face tensors into tagged embeddings.

    The model handle is loaded once by the caller and injected here. Calls are
    serialised with a lock only when the backend is not reentrant; otherwise
    ``embed`` may be issued from many threads at once.

    Example:
        ```python
        backend = OnnxRuntimeBackend()
        handle = backend.load("models/buffalo_l/w600k_r50.onnx", name="ArcFace")
        embedder = FaceEmbedder(backend, handle, get_profile("ArcFace"))
        embedding = embedder.embed(tensor)
        ```
    """

    def __init__(
        self,
        backend: InferenceBackend,
        handle: ModelHandle,
        profile: ModelProfile,
        max_retries: Optional[int] = None,
        retry_backoff_seconds: Optional[float] = None,
    ) -> None:
        self.backend = backend
        self.handle = handle
        self.profile = profile
        self.max_retries = settings.INFERENCE_MAX_RETRIES if max_retries is None else max_retries
        self.retry_backoff_seconds = (settings.INFERENCE_RETRY_BACKOFF_SECONDS
                                      if retry_backoff_seconds is None else retry_backoff_seconds)
        self._lock = threading.Lock() if not backend.reentrant else None

    def embed(self, tensor: NormalizedTensor) -> Embedding:
        """
        Run the recognition model on one face tensor.

        Args:
            tensor: Output of the normalizer for this embedder's model

        Returns:
            Embedding tagged with the model name

        Raises:
            InferenceError: On a malformed tensor, a persistent backend failure,
                an output of the wrong length or non-finite output values
        """
        if tensor.model_name != self.profile.name:
            raise InferenceError(
                f"Tensor prepared for {tensor.model_name} passed to {self.profile.name} embedder",
                details={"expected_model": self.profile.name, "tensor_model": tensor.model_name},
            )
        if not self.handle.accepts(tensor.data.shape):
            raise InferenceError(
                "Tensor shape does not match the model input",
                details={
                    "model": self.profile.name,
                    "expected": self.handle.input_shape,
                    "actual": tensor.data.shape,
                },
            )

        try:
            output = call_with_retries(
                lambda: self._run(tensor.data),
                retry_on=(BackendError,),
                max_retries=self.max_retries,
                backoff_seconds=self.retry_backoff_seconds,
                description=f"embed:{self.profile.name}",
            )
        except BackendError as e:
            logger.error("Inference failed after retries", model=self.profile.name, error=str(e))
            raise InferenceError(
                f"Inference failed for model {self.profile.name}: {e}",
                details={"model": self.profile.name, "attempts": self.max_retries + 1},
            ) from e

        vector = np.asarray(output, dtype=np.float32).reshape(-1)
        if vector.shape[0] != self.profile.embedding_dim:
            raise InferenceError(
                "Model output has unexpected length",
                details={
                    "model": self.profile.name,
                    "expected": self.profile.embedding_dim,
                    "actual": int(vector.shape[0]),
                },
            )
        if not np.all(np.isfinite(vector)):
            raise InferenceError(
                "Model output contains NaN or infinite values",
                details={"model": self.profile.name},
            )

        if self.profile.normalize_embedding:
            norm = np.linalg.norm(vector)
            if norm == 0:
                raise InferenceError("Model output has zero magnitude", details={"model": self.profile.name})
            vector = vector / norm

        return Embedding(vector=vector, model_name=self.profile.name)

    def warm_up(self) -> None:
        """Run one dummy inference so the first real request does not pay for lazy initialisation."""
        shape = tuple(1 if dim is None else dim for dim in self.handle.input_shape)
        self.embed(NormalizedTensor(data=np.zeros(shape, dtype=np.float32), model_name=self.profile.name))
        logger.info("Embedder warmed up", model=self.profile.name)

    def _run(self, data: np.ndarray) -> np.ndarray:
        with self._lock if self._lock is not None else nullcontext():
            return self.backend.run(self.handle, data)
