import asyncio
import base64
import binascii
import logging
from datetime import datetime
from typing import Dict, List, Optional

import cv2
import numpy as np

from detection.face_detector import FaceDetector
from detection.gaze_detector import GazeDetector
from detection.object_detector import ObjectDetector
from models.detection_models import DetectionResult, DetectionType
from utils.errors import PerceptionError

logger = logging.getLogger(__name__)


def decode_base64_image(base64_string: str) -> Optional[np.ndarray]:
    """Decode a base64 (or data URL) image to OpenCV format, None when it is not an image"""
    # Strip a data URL prefix if present
    if ',' in base64_string:
        base64_string = base64_string.split(',', 1)[1]

    try:
        img_data = base64.b64decode(base64_string, validate=False)
    except (binascii.Error, ValueError) as e:
        logger.error(f"Error decoding image: {e}")
        return None

    nparr = np.frombuffer(img_data, np.uint8)
    if nparr.size == 0:
        return None
    return cv2.imdecode(nparr, cv2.IMREAD_COLOR)


class PerceptionPipeline:
    """Runs the face, gaze and object detectors over a frame and returns typed detections"""

    def __init__(
        self,
        face_detector: Optional[FaceDetector] = None,
        gaze_detector: Optional[GazeDetector] = None,
        object_detector: Optional[ObjectDetector] = None,
    ):
        self.face_detector = face_detector or FaceDetector()
        self.gaze_detector = gaze_detector or GazeDetector()
        self.object_detector = object_detector or ObjectDetector()

    async def initialize(self):
        await self.face_detector.initialize()
        await self.gaze_detector.initialize()
        await self.object_detector.initialize()
        logger.info("✅ All AI models loaded successfully")

    @property
    def status(self) -> Dict[str, bool]:
        return {
            "face_detector": self.face_detector.is_ready,
            "gaze_detector": self.gaze_detector.is_ready,
            "object_detector": self.object_detector.is_ready,
        }

    async def evaluate(self, frame: np.ndarray, frame_duration: float = 1.0) -> List[DetectionResult]:
        """
        Evaluate one frame.

        Args:
            frame: BGR image
            frame_duration: Seconds of interview this frame stands for; used as the
                observation window of focus_lost / face_absent detections

        Returns:
            Detections found in the frame (possibly empty)

        Raises:
            PerceptionError: if any detector fails, so the cycle can be skipped as a whole
        """
        timestamp = datetime.now()

        # Half resolution for faster processing
        height, width = frame.shape[:2]
        resized_frame = cv2.resize(frame, (max(1, width // 2), max(1, height // 2)))

        try:
            face_result, gaze_result, object_result = await asyncio.gather(
                self.face_detector.detect(resized_frame),
                self.gaze_detector.detect(resized_frame),
                self.object_detector.detect(resized_frame),
            )
        except Exception as e:
            logger.error(f"Error processing frame: {e}")
            raise PerceptionError(str(e)) from e

        detections = (
            self.gaze_detector.to_detections(gaze_result, timestamp)
            + self.face_detector.to_detections(face_result, timestamp)
            + self.object_detector.to_detections(object_result, timestamp)
        )

        return [
            detection.model_copy(update={"duration": frame_duration})
            if detection.type in (DetectionType.FOCUS_LOST, DetectionType.FACE_ABSENT)
            else detection
            for detection in detections
        ]
