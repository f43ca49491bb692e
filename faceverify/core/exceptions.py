"""Custom exceptions for face verification and search."""
from typing import Optional


class FaceRecognitionError(Exception):
    """Base exception for face recognition operations."""

    def __init__(self, message: str, details: Optional[dict] = None):
        """
        Initialize face recognition error.

        Args:
            message: Error description
            details: Additional error context
        """
        super().__init__(message)
        self.details = details or {}


class DecodeError(FaceRecognitionError):
    """Raised when the provided image is unsupported or corrupt."""
    pass


class NoFaceDetectedError(FaceRecognitionError):
    """Raised when no face is detected in the image."""
    pass


class MultipleFacesError(FaceRecognitionError):
    """Raised when multiple faces are found in an image that expects only one face."""
    pass


class AlignmentFailedError(FaceRecognitionError):
    """Raised when a face region lacks the eye landmarks needed for alignment."""
    pass


class ShapeMismatchError(FaceRecognitionError):
    """Raised when data passed between pipeline stages has the wrong shape."""
    pass


class BackendError(FaceRecognitionError):
    """Raised by an inference backend when a model run fails."""
    pass


class InferenceError(FaceRecognitionError):
    """Raised when an embedding cannot be produced from a face tensor."""
    pass


class ModelLoadError(FaceRecognitionError):
    """Raised when a detection or recognition model fails to load."""
    pass


class IncomparableEmbeddingsError(FaceRecognitionError):
    """Raised when embeddings from different recognition models are compared."""
    pass


class OperationTimeoutError(FaceRecognitionError):
    """Raised when a decode or inference call exceeds its time budget."""
    pass


class OperationCancelledError(FaceRecognitionError):
    """Raised when a pipeline run is cancelled between stages."""
    pass


class ConfigurationError(FaceRecognitionError):
    """Raised when a model profile or setting is missing or invalid."""
    pass


class EmbeddingStoreError(FaceRecognitionError):
    """Raised when the embedding store cannot be read or written."""
    pass
