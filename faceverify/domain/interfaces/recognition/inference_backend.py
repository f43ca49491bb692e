"""Inference backend interface."""
from abc import ABC, abstractmethod
from typing import Any, Optional, Tuple

import numpy as np
from pydantic import BaseModel, ConfigDict, Field


class ModelHandle(BaseModel):
    """Loaded model, shared read-only by every caller."""
    name: str = Field(..., description="Model identifier")
    path: str = Field(..., description="File the model was loaded from")
    input_name: str = Field("input", description="Name of the model's input tensor")
    input_shape: Tuple[Optional[int], ...] = Field(..., description="Input shape, None for dynamic axes")
    session: Any = Field(None, description="Backend specific session object", repr=False)

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    def accepts(self, shape: Tuple[int, ...]) -> bool:
        """Return True if a tensor of ``shape`` fits the model input."""
        if len(shape) != len(self.input_shape):
            return False
        return all(expected is None or expected == actual
                   for expected, actual in zip(self.input_shape, shape))


class InferenceBackend(ABC):
    """Interface for running an opaque recognition model."""

    #: Whether ``run`` may be called concurrently on the same handle
    reentrant: bool = True

    @abstractmethod
    def load(self, model_path: str, name: Optional[str] = None) -> ModelHandle:
        """
        Load a model from disk.

        Args:
            model_path: Path of the model file
            name: Identifier to give the handle (defaults to the file stem)

        Returns:
            ModelHandle ready for ``run``

        Raises:
            ModelLoadError: If the model cannot be loaded
        """
        pass

    @abstractmethod
    def run(self, handle: ModelHandle, tensor: np.ndarray) -> np.ndarray:
        """
        Run the model on one input tensor.

        Args:
            handle: Handle returned by ``load``
            tensor: Input tensor matching ``handle.input_shape``

        Returns:
            The model's first output

        Raises:
            BackendError: If the backend fails to run the model
        """
        pass
