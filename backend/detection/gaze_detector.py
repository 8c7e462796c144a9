import cv2
import numpy as np
from datetime import datetime
from typing import Dict, List, Optional
import logging
import math

from models.detection_models import DetectionResult, DetectionType, Severity

# Try to import MediaPipe, fallback to None if not available
try:
    import mediapipe as mp
    MEDIAPIPE_AVAILABLE = True
except ImportError:
    mp = None
    MEDIAPIPE_AVAILABLE = False

logger = logging.getLogger(__name__)

LEFT_EYE_LANDMARKS = [33, 7, 163, 144, 145, 153, 154, 155, 133, 173, 157, 158, 159, 160, 161, 246]
RIGHT_EYE_LANDMARKS = [362, 382, 381, 380, 374, 373, 390, 249, 263, 466, 388, 387, 386, 385, 384, 398]

# Generic 3D face model used for head pose (nose, chin, eye corners, mouth corners)
FACE_MODEL_POINTS = np.array([
    [0.0, 0.0, 0.0],
    [0.0, -330.0, -65.0],
    [-225.0, 170.0, -135.0],
    [225.0, 170.0, -135.0],
    [-150.0, -150.0, -125.0],
    [150.0, -150.0, -125.0]
])
POSE_LANDMARKS = [1, 175, 33, 362, 61, 291]

HEAD_YAW_LIMIT = 30  # degrees
HEAD_PITCH_LIMIT = 20  # degrees


class GazeDetector:
    """Gaze and focus estimation using MediaPipe Face Mesh"""

    def __init__(self, gaze_threshold: float = 0.15):
        self.face_mesh = None
        self.face_cascade = None
        self.is_ready = False
        self.gaze_threshold = gaze_threshold

    async def initialize(self):
        """Initialize MediaPipe Face Mesh, or the Haar cascade used by the fallback"""
        logger.info("👁️ Initializing Gaze Detector...")

        if MEDIAPIPE_AVAILABLE:
            try:
                self.face_mesh = mp.solutions.face_mesh.FaceMesh(
                    max_num_faces=1,
                    refine_landmarks=True,
                    min_detection_confidence=0.5,
                    min_tracking_confidence=0.5
                )
                logger.info("✅ MediaPipe Face Mesh initialized for gaze detection")
            except Exception as e:
                logger.warning(f"MediaPipe Face Mesh failed: {e}, using basic gaze estimation")
                self.face_mesh = None
        else:
            logger.warning("⚠️ MediaPipe not available, using basic gaze estimation")

        if self.face_mesh is None:
            self.face_cascade = cv2.CascadeClassifier(
                cv2.data.haarcascades + 'haarcascade_frontalface_default.xml'
            )

        self.is_ready = True

    async def detect(self, frame: np.ndarray) -> Dict:
        """Detect gaze direction and focus status"""
        if not self.is_ready:
            raise RuntimeError("Gaze detector is not initialized")

        if self.face_mesh is not None:
            return self._detect_with_mediapipe(frame)
        return self._detect_fallback(frame)

    def _detect_with_mediapipe(self, frame: np.ndarray) -> Dict:
        rgb_frame = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        results = self.face_mesh.process(rgb_frame)

        if not results.multi_face_landmarks:
            return {"focus_status": "no_face", "direction": "unknown", "head_pose": {}}

        face_landmarks = results.multi_face_landmarks[0]
        gaze_info = self._calculate_gaze_direction(face_landmarks, frame.shape)
        head_pose = self._calculate_head_pose(face_landmarks, frame.shape)

        return {
            "focus_status": self._determine_focus_status(gaze_info["direction"], head_pose),
            "direction": gaze_info["direction"],
            "gaze_vector": gaze_info["vector"],
            "head_pose": head_pose,
        }

    def _detect_fallback(self, frame: np.ndarray) -> Dict:
        """Estimate focus from how far the face sits from the frame centre"""
        gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
        faces = self.face_cascade.detectMultiScale(gray, 1.3, 5)

        if len(faces) == 0:
            return {"focus_status": "no_face", "direction": "unknown", "head_pose": {}}

        (x, y, w, h) = faces[0]
        frame_center_x = frame.shape[1] // 2
        face_center_x = x + w // 2
        offset = abs(face_center_x - frame_center_x) / frame_center_x
        side = "left" if face_center_x < frame_center_x else "right"

        if offset < 0.2:
            focus_status, direction = "good", "center"
        elif offset < 0.4:
            focus_status, direction = "acceptable", side
        else:
            focus_status, direction = "poor", side

        return {
            "focus_status": focus_status,
            "direction": direction,
            "head_pose": {"yaw": offset * 30, "pitch": 0.0, "roll": 0.0},  # Rough estimate
        }

    def _calculate_gaze_direction(self, face_landmarks, frame_shape) -> Dict:
        height, width = frame_shape[:2]

        left_eye_center = self._get_landmark_center(face_landmarks, LEFT_EYE_LANDMARKS, width, height)
        right_eye_center = self._get_landmark_center(face_landmarks, RIGHT_EYE_LANDMARKS, width, height)

        eye_center_x = (left_eye_center[0] + right_eye_center[0]) / 2
        eye_center_y = (left_eye_center[1] + right_eye_center[1]) / 2

        gaze_x = (eye_center_x - width / 2) / (width / 2)
        gaze_y = (eye_center_y - height / 2) / (height / 2)

        direction = "center"
        if abs(gaze_x) > self.gaze_threshold:
            direction = "right" if gaze_x > 0 else "left"
        if abs(gaze_y) > self.gaze_threshold:
            direction += "_up" if gaze_y < 0 else "_down"

        return {"direction": direction, "vector": [gaze_x, gaze_y]}

    def _calculate_head_pose(self, face_landmarks, frame_shape) -> Dict:
        """Pitch/yaw/roll in degrees from solvePnP against a generic face model"""
        height, width = frame_shape[:2]

        landmarks_2d = np.array([
            [face_landmarks.landmark[idx].x * width, face_landmarks.landmark[idx].y * height]
            for idx in POSE_LANDMARKS
        ], dtype=np.float64)

        camera_matrix = np.array([
            [width, 0, width / 2],
            [0, width, height / 2],
            [0, 0, 1]
        ], dtype=np.float64)
        dist_coeffs = np.zeros((4, 1))

        success, rotation_vector, _ = cv2.solvePnP(
            FACE_MODEL_POINTS, landmarks_2d, camera_matrix, dist_coeffs
        )
        if not success:
            return {"pitch": 0.0, "yaw": 0.0, "roll": 0.0}

        rotation_matrix, _ = cv2.Rodrigues(rotation_vector)
        pitch, yaw, roll = self._rotation_matrix_to_euler_angles(rotation_matrix)
        return {"pitch": float(pitch), "yaw": float(yaw), "roll": float(roll)}

    def _determine_focus_status(self, gaze_direction: str, head_pose: Dict) -> str:
        head_yaw = abs(head_pose.get("yaw", 0))
        head_pitch = abs(head_pose.get("pitch", 0))

        is_centered_gaze = gaze_direction in ["center", "center_up", "center_down"]
        is_head_forward = head_yaw < HEAD_YAW_LIMIT and head_pitch < HEAD_PITCH_LIMIT

        if is_centered_gaze and is_head_forward:
            return "good"
        elif is_head_forward:
            return "acceptable"
        return "poor"

    def _get_landmark_center(self, face_landmarks, landmark_indices: List[int], width: int, height: int) -> List[float]:
        x_coords = [face_landmarks.landmark[idx].x * width for idx in landmark_indices]
        y_coords = [face_landmarks.landmark[idx].y * height for idx in landmark_indices]
        return [sum(x_coords) / len(x_coords), sum(y_coords) / len(y_coords)]

    def _rotation_matrix_to_euler_angles(self, R):
        sy = math.sqrt(R[0, 0] * R[0, 0] + R[1, 0] * R[1, 0])

        if sy >= 1e-6:
            x = math.atan2(R[2, 1], R[2, 2])
            y = math.atan2(-R[2, 0], sy)
            z = math.atan2(R[1, 0], R[0, 0])
        else:
            x = math.atan2(-R[1, 2], R[1, 1])
            y = math.atan2(-R[2, 0], sy)
            z = 0

        return math.degrees(x), math.degrees(y), math.degrees(z)

    def to_detections(self, result: Dict, timestamp: Optional[datetime] = None) -> List[DetectionResult]:
        """A poor focus status becomes a focus_lost detection; no_face is left to the face detector"""
        if result.get("focus_status") != "poor":
            return []

        return [DetectionResult(
            type=DetectionType.FOCUS_LOST,
            confidence=0.85,
            timestamp=timestamp or datetime.now(),
            description=f"Candidate appears to be looking away from screen ({result.get('direction', 'unknown')})",
            severity=Severity.MEDIUM,
        )]
