"""
Tests for the perception layer: detector result mapping and the frame pipeline

Models are never loaded; detector outputs are mocked.
"""

import base64
from unittest.mock import AsyncMock

import cv2
import numpy as np
import pytest

from detection.face_detector import FaceDetector
from detection.gaze_detector import GazeDetector
from detection.object_detector import ObjectDetector
from detection.pipeline import PerceptionPipeline, decode_base64_image
from models.detection_models import DetectionType, Severity
from utils.errors import PerceptionError


def encoded_frame(width=32, height=24) -> str:
    ok, buffer = cv2.imencode(".jpg", np.zeros((height, width, 3), dtype=np.uint8))
    assert ok
    return base64.b64encode(buffer.tobytes()).decode()


class TestFaceMapping:

    def test_no_face_is_face_absent(self):
        detections = FaceDetector().to_detections({"count": 0, "confidence": 0.0, "locations": []})

        assert len(detections) == 1
        assert detections[0].type == DetectionType.FACE_ABSENT
        assert detections[0].severity == Severity.HIGH

    def test_single_face_is_clean(self):
        assert FaceDetector().to_detections({"count": 1, "confidence": 0.95}) == []

    def test_multiple_faces(self):
        detections = FaceDetector().to_detections({"count": 3, "confidence": 0.8})

        assert [d.type for d in detections] == [DetectionType.MULTIPLE_FACES]
        assert detections[0].confidence == pytest.approx(0.8)
        assert "(3)" in detections[0].description


class TestGazeMapping:

    @pytest.mark.parametrize("status", ["good", "acceptable", "no_face", "unknown"])
    def test_non_poor_status_is_clean(self, status):
        assert GazeDetector().to_detections({"focus_status": status}) == []

    def test_poor_focus_is_focus_lost(self):
        detections = GazeDetector().to_detections({"focus_status": "poor", "direction": "left_down"})

        assert [d.type for d in detections] == [DetectionType.FOCUS_LOST]
        assert "left_down" in detections[0].description

    def test_focus_status_rules(self):
        detector = GazeDetector()

        assert detector._determine_focus_status("center", {"yaw": 5, "pitch": 5}) == "good"
        assert detector._determine_focus_status("left", {"yaw": 5, "pitch": 5}) == "acceptable"
        assert detector._determine_focus_status("center", {"yaw": 45, "pitch": 5}) == "poor"


class TestObjectMapping:

    def test_prohibited_classes(self):
        detector = ObjectDetector(confidence_threshold=0.7)
        detections = detector.to_detections({"objects": [
            {"class": "cell phone", "confidence": 0.91},
            {"class": "book", "confidence": 0.8},
            {"class": "laptop", "confidence": 0.75},
            {"class": "person", "confidence": 0.99},
        ]})

        assert [d.type for d in detections] == [
            DetectionType.PHONE_DETECTED,
            DetectionType.NOTES_DETECTED,
            DetectionType.DEVICE_DETECTED,
        ]
        assert detections[0].severity == Severity.HIGH
        assert detections[2].severity == Severity.MEDIUM
        assert detections[0].duration == 2.0

    def test_low_confidence_ignored(self):
        detector = ObjectDetector(confidence_threshold=0.7)

        assert detector.to_detections({"objects": [{"class": "cell phone", "confidence": 0.5}]}) == []


class TestDecodeImage:

    def test_plain_base64(self):
        frame = decode_base64_image(encoded_frame())

        assert frame is not None
        assert frame.shape == (24, 32, 3)

    def test_data_url(self):
        frame = decode_base64_image("data:image/jpeg;base64," + encoded_frame())

        assert frame is not None

    def test_garbage(self):
        assert decode_base64_image("%%%%") is None


class TestPipeline:

    def make_pipeline(self, face=None, gaze=None, objects=None):
        face_detector = FaceDetector()
        gaze_detector = GazeDetector()
        object_detector = ObjectDetector()

        face_detector.detect = AsyncMock(return_value=face or {"count": 1, "confidence": 0.9})
        gaze_detector.detect = AsyncMock(return_value=gaze or {"focus_status": "good"})
        object_detector.detect = AsyncMock(return_value=objects or {"objects": []})

        return PerceptionPipeline(face_detector, gaze_detector, object_detector)

    async def test_clean_frame(self):
        pipeline = self.make_pipeline()

        assert await pipeline.evaluate(np.zeros((20, 20, 3), dtype=np.uint8)) == []

    async def test_gated_detections_take_frame_duration(self):
        pipeline = self.make_pipeline(
            face={"count": 0},
            gaze={"focus_status": "poor", "direction": "right"},
            objects={"objects": [{"class": "cell phone", "confidence": 0.9}]},
        )

        detections = await pipeline.evaluate(np.zeros((20, 20, 3), dtype=np.uint8), frame_duration=3.0)
        by_type = {d.type: d for d in detections}

        assert set(by_type) == {
            DetectionType.FOCUS_LOST,
            DetectionType.FACE_ABSENT,
            DetectionType.PHONE_DETECTED,
        }
        assert by_type[DetectionType.FOCUS_LOST].duration == 3.0
        assert by_type[DetectionType.FACE_ABSENT].duration == 3.0
        assert by_type[DetectionType.PHONE_DETECTED].duration == 2.0

    async def test_detector_failure_raises(self):
        pipeline = self.make_pipeline()
        pipeline.object_detector.detect = AsyncMock(side_effect=RuntimeError("CUDA error"))

        with pytest.raises(PerceptionError):
            await pipeline.evaluate(np.zeros((20, 20, 3), dtype=np.uint8))

    def test_status_before_initialize(self):
        assert PerceptionPipeline().status == {
            "face_detector": False,
            "gaze_detector": False,
            "object_detector": False,
        }
