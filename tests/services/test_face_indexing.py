"""Tests for building the search index from a directory."""
from pathlib import Path

import numpy as np
import pytest

from faceverify.core.concurrency import CancellationToken
from faceverify.core.exceptions import ConfigurationError
from faceverify.services.detection.insight_face import InsightFaceDetector
from faceverify.services.face_indexing import FaceIndexingService
from faceverify.services.search_index import SearchIndex

from conftest import FakeDetector, build_pipeline, make_region, person_photo, write_image


class DarkImageFailingModel:
    """Detection model that returns one centred face and fails on very dark images."""

    def detect(self, img, max_num=0):
        if img.mean() < 40:
            raise RuntimeError("onnxruntime: invalid input")
        region = make_region()
        box = region.bounding_box
        bboxes = np.array([[box.x, box.y, box.x + box.width, box.y + box.height, region.confidence]])
        kpss = np.array([[[p.x, p.y] for p in region.landmarks]])
        return bboxes, kpss


class TestFaceIndexing:
    """Test suite for FaceIndexingService.build_from_directory."""

    async def test_partial_failure_isolated(self, indexing_service, reference_dir, search_index):
        """Should index the good images and skip the corrupt one."""
        result = await indexing_service.build_from_directory(reference_dir)

        assert [entry.label for entry in result.entries] == ["alice", "bob", "carol"]
        assert len(result.skipped) == 1
        assert result.skipped[0].source.endswith("corrupt.jpg")
        assert result.skipped[0].error_type == "DecodeError"
        assert result.cancelled is False
        assert len(search_index) == 3

    async def test_no_face_is_skipped(self, indexing_service, reference_dir):
        write_image(reference_dir / "dave" / "blank.png", person_photo(4) * 0)

        result = await indexing_service.build_from_directory(reference_dir)

        assert len(result.entries) == 3
        assert sorted(item.error_type for item in result.skipped) == ["DecodeError", "NoFaceDetectedError"]

    async def test_detector_failure_isolated(self, reference_dir, search_index, store):
        """Should skip an image the detection model fails on and index the rest."""
        write_image(reference_dir / "dave" / "dark.png", person_photo(4) // 8)
        pipeline = build_pipeline(detector=InsightFaceDetector(DarkImageFailingModel(), min_confidence=0.5))
        service = FaceIndexingService(pipeline, search_index, store, max_concurrency=2)

        result = await service.build_from_directory(reference_dir)

        assert [entry.label for entry in result.entries] == ["alice", "bob", "carol"]
        failures = {Path(item.source).name: item.error_type for item in result.skipped}
        assert failures == {"corrupt.jpg": "DecodeError", "dark.png": "BackendError"}
        assert len(search_index) == 3

    async def test_entries_persisted(self, indexing_service, reference_dir, store):
        await indexing_service.build_from_directory(reference_dir)

        stored = store.list()
        assert [item.label for item in stored] == ["alice", "bob", "carol"]
        assert all(item.embedding.model_name == "ArcFace" for item in stored)

    async def test_rebuild_does_not_duplicate_store(self, indexing_service, reference_dir, store, pipeline):
        """Should leave the store matching the live index after indexing the same directory twice."""
        await indexing_service.build_from_directory(reference_dir)
        await indexing_service.build_from_directory(reference_dir)

        reloaded = SearchIndex(pipeline.matcher)
        reloaded.load_from_store(store)

        assert len(store.list()) == 3
        assert len(reloaded) == len(indexing_service.index) == 3

    async def test_new_images_persisted_on_rebuild(self, indexing_service, reference_dir, store):
        await indexing_service.build_from_directory(reference_dir)
        write_image(reference_dir / "dave" / "ref.png", person_photo(4))

        await indexing_service.build_from_directory(reference_dir)

        assert [item.label for item in store.list()] == ["alice", "bob", "carol", "dave"]

    async def test_no_persist(self, indexing_service, reference_dir, store, search_index):
        await indexing_service.build_from_directory(reference_dir, persist=False)

        assert store.list() == []
        assert len(search_index) == 3

    async def test_cancelled_build(self, indexing_service, reference_dir, search_index):
        """Should stop starting images once cancelled and report them as skipped."""
        token = CancellationToken()
        token.cancel()

        result = await indexing_service.build_from_directory(reference_dir, cancel_token=token)

        assert result.cancelled is True
        assert result.entries == []
        assert len(result.skipped) == 4
        assert {item.error_type for item in result.skipped} == {"OperationCancelledError"}
        assert len(search_index) == 0

    async def test_all_faces_indexed(self, reference_dir, search_index, store):
        detector = FakeDetector(regions=[make_region(), make_region(x=10, y=10, size=40, confidence=0.8)])
        pipeline = build_pipeline(detector=detector)
        service = FaceIndexingService(pipeline, search_index, store, index_all_faces=True)

        result = await service.build_from_directory(reference_dir)

        assert len(result.entries) == 6

    async def test_bounded_concurrency(self, reference_dir, search_index, store):
        """Should never run more than max_concurrency images at once."""
        in_flight = []
        peak = []

        class CountingDetector(FakeDetector):
            def _detect_regions(self, buffer):
                in_flight.append(1)
                peak.append(len(in_flight))
                try:
                    return super()._detect_regions(buffer)
                finally:
                    in_flight.pop()

        pipeline = build_pipeline(detector=CountingDetector())
        service = FaceIndexingService(pipeline, search_index, store, max_concurrency=1)

        result = await service.build_from_directory(reference_dir)

        assert len(result.entries) == 3
        assert max(peak) == 1

    async def test_missing_directory(self, indexing_service, tmp_path):
        with pytest.raises(ConfigurationError):
            await indexing_service.build_from_directory(tmp_path / "nowhere")


def test_labels_from_folders(reference_dir):
    write_image(reference_dir / "erin.png", person_photo(5))
    write_image(reference_dir / "team" / "frank" / "1.jpg", person_photo(6))
    (reference_dir / "notes.txt").write_text("ignored")

    labels = [label for label, _ in FaceIndexingService.discover_images(reference_dir)]

    assert labels == ["alice", "bob", "carol", "corrupt", "erin", "team/frank"]
