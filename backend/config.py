"""
Integrity Monitor configuration

Values are read from environment variables (or a local .env file).
"""
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Configuration for the integrity monitor backend."""

    # API Settings
    APP_NAME: str = "Interview Integrity Monitor"
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

    # Storage
    DATA_DIR: str = "logs"
    UPLOAD_DIR: str = "uploads"
    MAX_UPLOAD_BYTES: int = 100 * 1024 * 1024  # 100MB

    # Temporal thresholds (seconds)
    FOCUS_LOSS_THRESHOLD_SECONDS: float = 5.0
    FACE_ABSENCE_THRESHOLD_SECONDS: float = 10.0
    DEFAULT_FRAME_DURATION_SECONDS: float = 1.0

    # Perception
    FACE_DETECTION_CONFIDENCE: float = 0.5
    OBJECT_DETECTION_CONFIDENCE: float = 0.7
    GAZE_SENSITIVITY: float = 0.15
    YOLO_MODEL: str = "yolov8n.pt"

    # Video processing
    VIDEO_SAMPLE_FRAMES: int = 10

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


settings = Settings()
