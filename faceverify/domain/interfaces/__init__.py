"""Service interfaces package."""
from .recognition.face_detection import FaceDetector
from .recognition.inference_backend import InferenceBackend, ModelHandle
from .storage.embedding_store import EmbeddingStore, StoredEmbedding

__all__ = ["FaceDetector", "InferenceBackend", "ModelHandle", "EmbeddingStore", "StoredEmbedding"]
