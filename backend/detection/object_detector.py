import numpy as np
from ultralytics import YOLO
from datetime import datetime
from typing import Dict, List, Optional
import logging

from models.detection_models import DetectionResult, DetectionType, Severity

logger = logging.getLogger(__name__)


class ObjectDetector:
    """Prohibited object detection using YOLOv8"""

    # COCO class names mapped to the detection they raise
    PROHIBITED_CLASSES: Dict[str, DetectionType] = {
        'cell phone': DetectionType.PHONE_DETECTED,
        'book': DetectionType.NOTES_DETECTED,
        'laptop': DetectionType.DEVICE_DETECTED,
        'keyboard': DetectionType.DEVICE_DETECTED,
        'mouse': DetectionType.DEVICE_DETECTED,
        'remote': DetectionType.DEVICE_DETECTED,
        'tv': DetectionType.DEVICE_DETECTED,
    }

    DESCRIPTIONS: Dict[DetectionType, str] = {
        DetectionType.PHONE_DETECTED: "Mobile phone detected in frame",
        DetectionType.NOTES_DETECTED: "Books or notes detected in frame",
        DetectionType.DEVICE_DETECTED: "Unauthorized electronic device detected",
    }

    SEVERITIES: Dict[DetectionType, Severity] = {
        DetectionType.PHONE_DETECTED: Severity.HIGH,
        DetectionType.NOTES_DETECTED: Severity.HIGH,
        DetectionType.DEVICE_DETECTED: Severity.MEDIUM,
    }

    # Estimated on-screen duration (seconds) of an object sighting
    DURATIONS: Dict[DetectionType, float] = {
        DetectionType.PHONE_DETECTED: 2.0,
        DetectionType.NOTES_DETECTED: 1.8,
        DetectionType.DEVICE_DETECTED: 1.2,
    }

    def __init__(self, model_path: str = 'yolov8n.pt', confidence_threshold: float = 0.7):
        self.model_path = model_path
        self.model = None
        self.is_ready = False
        self.confidence_threshold = confidence_threshold
        self.iou_threshold = 0.45

    async def initialize(self):
        """Initialize YOLOv8 model"""
        try:
            logger.info("📱 Initializing Object Detector (YOLOv8)...")

            # Downloads the weights on first use
            self.model = YOLO(self.model_path)

            # Warm up the model with a dummy inference
            dummy_img = np.zeros((640, 640, 3), dtype=np.uint8)
            _ = self.model(dummy_img, verbose=False)

            self.is_ready = True
            logger.info("✅ YOLOv8 Object Detection initialized")

        except Exception as e:
            logger.error(f"❌ Failed to initialize object detector: {e}")
            raise

    async def detect(self, frame: np.ndarray) -> Dict:
        """Run YOLOv8 on a frame and return every detected object"""
        if not self.is_ready:
            raise RuntimeError("Object detector is not initialized")

        results = self.model(frame, conf=self.confidence_threshold, iou=self.iou_threshold, verbose=False)

        detected_objects = []
        for result in results:
            boxes = result.boxes
            if boxes is None:
                continue

            for box in boxes:
                cls_id = int(box.cls.cpu().numpy()[0])
                detected_objects.append({
                    "class": self.model.names.get(cls_id, 'unknown'),
                    "class_id": cls_id,
                    "confidence": float(box.conf.cpu().numpy()[0]),
                    "bbox": box.xyxy.cpu().numpy()[0].astype(int).tolist(),  # [x1, y1, x2, y2]
                })

        return {
            "objects": detected_objects,
            "total_objects": len(detected_objects)
        }

    def to_detections(self, result: Dict, timestamp: Optional[datetime] = None) -> List[DetectionResult]:
        """Map raw YOLO objects to typed detections (one per prohibited object)"""
        timestamp = timestamp or datetime.now()
        detections = []

        for obj in result.get("objects", []):
            detection_type = self.PROHIBITED_CLASSES.get(str(obj.get("class", "")).lower())
            confidence = obj.get("confidence", 0.0)

            if detection_type is None or confidence < self.confidence_threshold:
                continue

            detections.append(DetectionResult(
                type=detection_type,
                confidence=min(1.0, confidence),
                timestamp=timestamp,
                duration=self.DURATIONS[detection_type],
                description=self.DESCRIPTIONS[detection_type],
                severity=self.SEVERITIES[detection_type],
            ))

        return detections
