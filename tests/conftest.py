"""Shared fixtures: fake detector and inference backend plus synthetic face images.

The fakes stand in for the InsightFace detector and the ONNX recognition
model so the pipeline can be exercised without model files. Each synthetic
"person" is a random block pattern; photos of the same person are the same
pattern with a little pixel noise.
"""
import time
from pathlib import Path
from typing import List, Optional

import cv2
import numpy as np
import pytest

from faceverify.core.exceptions import BackendError
from faceverify.core.logging import setup_logging
from faceverify.core.profiles import get_profile
from faceverify.domain.entities.face import LANDMARK_NAMES, BoundingBox, FaceRegion, Landmark, PixelBuffer
from faceverify.domain.interfaces.recognition.face_detection import FaceDetector
from faceverify.domain.interfaces.recognition.inference_backend import InferenceBackend, ModelHandle
from faceverify.infrastructure.storage.embedding_store import InMemoryEmbeddingStore
from faceverify.services.alignment import FaceAligner
from faceverify.services.embedding import FaceEmbedder
from faceverify.services.face_indexing import FaceIndexingService
from faceverify.services.face_matching import FaceMatchingService
from faceverify.services.matching import FaceMatcher
from faceverify.services.normalization import FaceNormalizer
from faceverify.services.pipeline import FacePipeline
from faceverify.services.search_index import SearchIndex

IMAGE_SIZE = 160
POOLED_GRID = 8


def make_region(
    x: float = 32.0,
    y: float = 32.0,
    size: float = 96.0,
    confidence: float = 0.99,
    eye_tilt: float = 0.0,
) -> FaceRegion:
    """Square face region with the five landmarks at typical positions.

    ``eye_tilt`` moves the right eye down (positive) or up by that many pixels.
    """
    points = [
        (x + 0.3 * size, y + 0.4 * size),
        (x + 0.7 * size, y + 0.4 * size + eye_tilt),
        (x + 0.5 * size, y + 0.6 * size),
        (x + 0.35 * size, y + 0.8 * size),
        (x + 0.65 * size, y + 0.8 * size),
    ]
    return FaceRegion(
        bounding_box=BoundingBox(x=x, y=y, width=size, height=size),
        landmarks=[Landmark(name=name, x=px, y=py) for name, (px, py) in zip(LANDMARK_NAMES, points)],
        confidence=confidence,
    )


def person_pattern(seed: int) -> np.ndarray:
    """Random block pattern identifying one synthetic person."""
    rng = np.random.default_rng(seed)
    blocks = rng.integers(0, 256, size=(POOLED_GRID, POOLED_GRID, 3), dtype=np.uint8)
    return cv2.resize(blocks, (IMAGE_SIZE, IMAGE_SIZE), interpolation=cv2.INTER_NEAREST)


def person_photo(seed: int, shot: int = 0) -> np.ndarray:
    """One photo of person ``seed``; different shots differ by pixel noise only."""
    pattern = person_pattern(seed).astype(np.float32)
    if shot:
        noise = np.random.default_rng(1000 * seed + shot).normal(0.0, 6.0, pattern.shape)
        pattern = pattern + noise
    return np.clip(pattern, 0, 255).astype(np.uint8)


def write_image(path: Path, pixels: np.ndarray) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    assert cv2.imwrite(str(path), pixels)
    return path


class FakeDetector(FaceDetector):
    """Finds one centred face in any non-blank image, or returns fixed regions."""

    def __init__(self, regions: Optional[List[FaceRegion]] = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self.regions = regions
        self.calls = 0

    def _detect_regions(self, buffer: PixelBuffer) -> List[FaceRegion]:
        self.calls += 1
        if not buffer.pixels.any():
            return []
        if self.regions is not None:
            return list(self.regions)
        size = 0.6 * min(buffer.width, buffer.height)
        return [make_region(x=0.2 * buffer.width, y=0.2 * buffer.height, size=size)]


class FakeBackend(InferenceBackend):
    """Deterministic random-projection embedder.

    The input face is area-pooled to a coarse grid and multiplied by a fixed
    random matrix, so similar crops give nearby embeddings and unrelated
    crops give nearly orthogonal ones.
    """

    def __init__(self, embedding_dim: int = 512) -> None:
        rng = np.random.default_rng(0)
        self.embedding_dim = embedding_dim
        self.projection = rng.standard_normal((embedding_dim, POOLED_GRID * POOLED_GRID * 3))
        self.calls = 0

    def load(self, model_path: str, name: Optional[str] = None) -> ModelHandle:
        return ModelHandle(
            name=name or Path(model_path).stem,
            path=model_path,
            input_name="input.1",
            input_shape=(None, 3, 112, 112),
        )

    def run(self, handle: ModelHandle, tensor: np.ndarray) -> np.ndarray:
        self.calls += 1
        hwc = np.ascontiguousarray(np.transpose(tensor[0], (1, 2, 0)))
        pooled = cv2.resize(hwc, (POOLED_GRID, POOLED_GRID), interpolation=cv2.INTER_AREA)
        vector = self.projection @ pooled.reshape(-1).astype(np.float64)
        return vector.astype(np.float32)[np.newaxis, :]


class FlakyBackend(FakeBackend):
    """Fails with BackendError for the first ``failures`` calls."""

    def __init__(self, failures: int) -> None:
        super().__init__()
        self.failures = failures

    def run(self, handle: ModelHandle, tensor: np.ndarray) -> np.ndarray:
        if self.failures > 0:
            self.failures -= 1
            self.calls += 1
            raise BackendError("transient backend failure", details={"model": handle.name})
        return super().run(handle, tensor)


class NaNBackend(FakeBackend):
    def run(self, handle: ModelHandle, tensor: np.ndarray) -> np.ndarray:
        output = super().run(handle, tensor)
        output[0, 0] = np.nan
        return output


class SlowBackend(FakeBackend):
    def __init__(self, delay: float) -> None:
        super().__init__()
        self.delay = delay

    def run(self, handle: ModelHandle, tensor: np.ndarray) -> np.ndarray:
        time.sleep(self.delay)
        return super().run(handle, tensor)


def build_pipeline(
    backend: Optional[InferenceBackend] = None,
    detector: Optional[FaceDetector] = None,
    **kwargs,
) -> FacePipeline:
    profile = get_profile("ArcFace")
    backend = backend or FakeBackend()
    handle = backend.load("models/arcface.onnx", name=profile.name)
    return FacePipeline(
        detector=detector or FakeDetector(),
        aligner=FaceAligner(profile),
        normalizer=FaceNormalizer(profile),
        embedder=FaceEmbedder(backend, handle, profile, retry_backoff_seconds=0.0),
        matcher=FaceMatcher(metric="cosine"),
        **kwargs,
    )


@pytest.fixture(scope="session", autouse=True)
def configure_logging():
    """Route structured logs through stdlib logging to stderr, as the CLI does."""
    setup_logging()


@pytest.fixture
def arcface_profile():
    return get_profile("ArcFace")


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def pipeline(fake_backend):
    return build_pipeline(backend=fake_backend)


@pytest.fixture
def search_index(pipeline):
    return SearchIndex(pipeline.matcher)


@pytest.fixture
def store():
    return InMemoryEmbeddingStore()


@pytest.fixture
def indexing_service(pipeline, search_index, store):
    return FaceIndexingService(pipeline, search_index, store, max_concurrency=2, index_all_faces=False)


@pytest.fixture
def matching_service(pipeline, search_index):
    return FaceMatchingService(pipeline, search_index)


@pytest.fixture
def alice_photos(tmp_path):
    return [write_image(tmp_path / f"alice_{shot}.png", person_photo(1, shot)) for shot in range(2)]


@pytest.fixture
def bob_photos(tmp_path):
    return [write_image(tmp_path / f"bob_{shot}.png", person_photo(2, shot)) for shot in range(2)]


@pytest.fixture
def blank_image(tmp_path):
    return write_image(tmp_path / "blank.png", np.zeros((IMAGE_SIZE, IMAGE_SIZE, 3), dtype=np.uint8))


@pytest.fixture
def corrupt_image(tmp_path):
    path = tmp_path / "corrupt.jpg"
    path.write_bytes(np.random.default_rng(7).integers(0, 256, size=512, dtype=np.uint8).tobytes())
    return path


@pytest.fixture
def reference_dir(tmp_path):
    """Reference collection: alice, bob and carol folders plus one corrupt file."""
    root = tmp_path / "people"
    for seed, name in ((1, "alice"), (2, "bob"), (3, "carol")):
        write_image(root / name / "ref.png", person_photo(seed))
    (root / "corrupt.jpg").write_bytes(b"not an image at all")
    return root
