"""
Pytest configuration for the integrity monitor backend
"""
import os
import sys
import tempfile
from datetime import datetime
from unittest.mock import AsyncMock

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Keep module-level stores of main.py out of the working tree
os.environ.setdefault("DATA_DIR", tempfile.mkdtemp(prefix="integrity-data-"))
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="integrity-uploads-"))

from detection.state_engine import DetectionStateEngine
from models.detection_models import (
    DetectionEvent,
    DetectionResult,
    DetectionType,
    InterviewSession,
    Severity,
)
from utils.session_store import SessionStore


def make_detection(
    detection_type: DetectionType,
    duration: float = 0.0,
    confidence: float = 0.9,
    description: str = "raw detection",
    severity: Severity = Severity.MEDIUM,
) -> DetectionResult:
    return DetectionResult(
        type=detection_type,
        confidence=confidence,
        timestamp=datetime(2024, 5, 1, 10, 0, 0),
        duration=duration,
        description=description,
        severity=severity,
    )


def make_event(detection_type: DetectionType, **kwargs) -> DetectionEvent:
    return DetectionEvent.from_result(make_detection(detection_type, **kwargs))


def make_session(events=None, duration: int = 60, session_id: str = "session-1") -> InterviewSession:
    session = InterviewSession(
        session_id=session_id,
        title="Backend engineer interview",
        interviewer_name="Dana Reviewer",
        candidate_name="Sam Candidate",
        scheduled_at=datetime(2024, 5, 1, 10, 0, 0),
        duration=duration,
    )
    if events:
        session.append_events(list(events))
    return session


@pytest.fixture
def engine():
    """Fresh detection state engine with default thresholds"""
    return DetectionStateEngine()


@pytest.fixture
def store(tmp_path):
    """Session store rooted in a temporary directory"""
    return SessionStore(base_dir=str(tmp_path / "data"))


@pytest.fixture
def app_module(tmp_path, monkeypatch):
    """main.py with isolated storage, a fresh engine and mocked perception"""
    import main
    from services.video_processor import VideoProcessor
    from utils.connection_manager import ConnectionManager

    monkeypatch.setattr(main, "session_store", SessionStore(base_dir=str(tmp_path / "data")))
    monkeypatch.setattr(main, "state_engine", DetectionStateEngine())
    monkeypatch.setattr(main.perception, "evaluate", AsyncMock(return_value=[]))
    monkeypatch.setattr(main, "video_processor", VideoProcessor(main.perception))
    monkeypatch.setattr(main, "manager", ConnectionManager())
    monkeypatch.setattr(main.settings, "UPLOAD_DIR", str(tmp_path / "uploads"))
    return main


@pytest.fixture
def client(app_module):
    """FastAPI test client (startup hooks are not run, so no models are loaded)"""
    from fastapi.testclient import TestClient
    return TestClient(app_module.app)
