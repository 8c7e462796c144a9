import cv2
import numpy as np
from datetime import datetime
from typing import Dict, List, Optional
import logging

from models.detection_models import DetectionResult, DetectionType, Severity

# Try to import MediaPipe, fallback to None if not available
try:
    import mediapipe as mp
    MEDIAPIPE_AVAILABLE = True
except ImportError:
    mp = None
    MEDIAPIPE_AVAILABLE = False

logger = logging.getLogger(__name__)

# Confidence reported for an empty frame (nothing to score it against)
FACE_ABSENT_CONFIDENCE = 0.9


class FaceDetector:
    """Face presence and face count using MediaPipe or OpenCV Haar Cascades"""

    def __init__(self, min_confidence: float = 0.5):
        self.min_confidence = min_confidence
        self.face_cascade = None
        self.mp_face_detection = None
        self.face_detection = None
        self.is_ready = False
        self.use_mediapipe = True

    async def initialize(self):
        """Initialize face detection models"""
        try:
            logger.info("🔍 Initializing Face Detector...")

            # Try MediaPipe first (more accurate) if available
            if MEDIAPIPE_AVAILABLE:
                try:
                    self.mp_face_detection = mp.solutions.face_detection
                    self.face_detection = self.mp_face_detection.FaceDetection(
                        model_selection=0,
                        min_detection_confidence=self.min_confidence
                    )
                    self.use_mediapipe = True
                    logger.info("✅ MediaPipe Face Detection initialized")
                except Exception as mp_error:
                    logger.warning(f"MediaPipe failed: {mp_error}, falling back to OpenCV")
                    self.use_mediapipe = False
            else:
                logger.info("⚠️ MediaPipe not available, using OpenCV")
                self.use_mediapipe = False

            if not self.use_mediapipe:
                cascade_path = cv2.data.haarcascades + 'haarcascade_frontalface_default.xml'
                self.face_cascade = cv2.CascadeClassifier(cascade_path)

                if self.face_cascade.empty():
                    raise RuntimeError("Failed to load Haar cascade classifier")

                logger.info("✅ OpenCV Haar Cascade initialized")

            self.is_ready = True

        except Exception as e:
            logger.error(f"❌ Failed to initialize face detector: {e}")
            raise

    async def detect(self, frame: np.ndarray) -> Dict:
        """Detect faces in frame"""
        if not self.is_ready:
            raise RuntimeError("Face detector is not initialized")

        if self.use_mediapipe:
            return self._detect_mediapipe(frame)
        return self._detect_opencv(frame)

    def _detect_mediapipe(self, frame: np.ndarray) -> Dict:
        rgb_frame = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        results = self.face_detection.process(rgb_frame)

        face_locations = []
        confidences = []

        if results.detections:
            h, w = frame.shape[:2]
            for detection in results.detections:
                bbox = detection.location_data.relative_bounding_box
                face_locations.append([
                    int(bbox.xmin * w),
                    int(bbox.ymin * h),
                    int(bbox.width * w),
                    int(bbox.height * h),
                ])
                confidences.append(detection.score[0])

        avg_confidence = np.mean(confidences) if confidences else 0.0

        return {
            "count": len(face_locations),
            "confidence": float(avg_confidence),
            "locations": face_locations
        }

    def _detect_opencv(self, frame: np.ndarray) -> Dict:
        gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)

        faces = self.face_cascade.detectMultiScale(
            gray,
            scaleFactor=1.1,
            minNeighbors=5,
            minSize=(30, 30),
            flags=cv2.CASCADE_SCALE_IMAGE
        )

        face_locations = [[int(x), int(y), int(w), int(h)] for (x, y, w, h) in faces]

        # Haar cascades give no score, use a fixed estimate
        confidence = 0.8 if len(face_locations) > 0 else 0.0

        return {
            "count": len(face_locations),
            "confidence": confidence,
            "locations": face_locations
        }

    def to_detections(self, result: Dict, timestamp: Optional[datetime] = None) -> List[DetectionResult]:
        """Map a raw face result to typed detections"""
        timestamp = timestamp or datetime.now()
        count = result.get("count", 0)

        if count == 0:
            return [DetectionResult(
                type=DetectionType.FACE_ABSENT,
                confidence=FACE_ABSENT_CONFIDENCE,
                timestamp=timestamp,
                description="No face detected in frame",
                severity=Severity.HIGH,
            )]

        if count > 1:
            return [DetectionResult(
                type=DetectionType.MULTIPLE_FACES,
                confidence=min(1.0, max(0.0, result.get("confidence", 0.0))),
                timestamp=timestamp,
                duration=1.5,
                description=f"Multiple faces detected in frame ({count})",
                severity=Severity.HIGH,
            )]

        return []
