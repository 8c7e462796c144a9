from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import datetime
from enum import Enum


class DetectionType(str, Enum):
    """Closed set of signals the perception layer can report"""
    FOCUS_LOST = "focus_lost"
    FACE_ABSENT = "face_absent"
    MULTIPLE_FACES = "multiple_faces"
    PHONE_DETECTED = "phone_detected"
    NOTES_DETECTED = "notes_detected"
    DEVICE_DETECTED = "device_detected"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class SessionStatus(str, Enum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class DetectionResult(BaseModel):
    """Single typed detection produced by the perception pipeline for one evaluation cycle"""
    model_config = ConfigDict(allow_inf_nan=False)

    type: DetectionType
    confidence: float = Field(ge=0.0, le=1.0)
    timestamp: datetime = Field(default_factory=datetime.now)

    # For focus_lost / face_absent this is the observation window of the cycle,
    # for everything else an estimated event duration
    duration: float = Field(default=0.0, ge=0.0)
    description: str = ""
    severity: Severity = Severity.MEDIUM


class DetectionEvent(DetectionResult):
    """Accepted occurrence stored in a session's event log"""
    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_result(cls, result: DetectionResult, **overrides) -> "DetectionEvent":
        data = result.model_dump()
        data.update(overrides)
        return cls(**data)


class SessionTemporalState(BaseModel):
    """Per-session accumulators for the threshold-gated signals"""
    model_config = ConfigDict(allow_inf_nan=False)

    focus_away_seconds: float = Field(default=0.0, ge=0.0)
    face_absent_seconds: float = Field(default=0.0, ge=0.0)


class InterviewSession(BaseModel):
    """Interview session with its ordered detection event log"""
    session_id: str
    title: str
    description: Optional[str] = None
    interviewer_name: str = ""
    candidate_name: str = ""
    scheduled_at: datetime
    duration: int = Field(default=60, ge=1, le=480)  # minutes
    status: SessionStatus = SessionStatus.SCHEDULED

    video_url: Optional[str] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    # Event log (arrival order) and the score derived from it
    detection_events: List[DetectionEvent] = []
    integrity_score: int = Field(default=100, ge=0, le=100)

    def append_events(self, events: List[DetectionEvent]) -> int:
        """Append accepted events and recompute the integrity score from the whole log"""
        from scoring.integrity import compute_integrity_score

        self.detection_events.extend(events)
        self.integrity_score = compute_integrity_score(self.detection_events)
        self.updated_at = datetime.now()
        return self.integrity_score


class Deductions(BaseModel):
    """Points deducted per detection type"""
    focus_loss: int = 0
    face_absence: int = 0
    multiple_faces: int = 0
    phone_detections: int = 0
    notes_detections: int = 0
    device_detections: int = 0

    def total(self) -> int:
        return (
            self.focus_loss
            + self.face_absence
            + self.multiple_faces
            + self.phone_detections
            + self.notes_detections
            + self.device_detections
        )


class SessionReport(BaseModel):
    """Integrity report derived from a session's event log"""
    session_id: str
    candidate_name: str = ""
    interviewer_name: str = ""
    interview_duration: int = 0  # minutes

    total_focus_loss_events: int = 0
    total_face_absence_events: int = 0
    total_multiple_faces_events: int = 0
    total_phone_detections: int = 0
    total_notes_detections: int = 0
    total_device_detections: int = 0

    integrity_score: int = Field(default=100, ge=0, le=100)
    deductions: Deductions = Deductions()
    summary: str
    recommendations: List[str] = []
    generated_at: datetime = Field(default_factory=datetime.now)


# Request bodies validated at the HTTP boundary

class SessionCreate(BaseModel):
    title: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    interviewer_name: str = ""
    candidate_name: str = Field(min_length=1)
    scheduled_at: datetime = Field(default_factory=datetime.now)
    duration: int = Field(default=60, ge=1, le=480)


class SessionUpdate(BaseModel):
    """Partial update of session metadata; the event log and score are not updatable"""
    title: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    interviewer_name: Optional[str] = None
    candidate_name: Optional[str] = Field(default=None, min_length=1)
    scheduled_at: Optional[datetime] = None
    duration: Optional[int] = Field(default=None, ge=1, le=480)
    status: Optional[SessionStatus] = None
    video_url: Optional[str] = None


class DetectionEventCreate(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    type: DetectionType
    timestamp: datetime = Field(default_factory=datetime.now)
    duration: float = Field(ge=0.0)
    confidence: float = Field(ge=0.0, le=1.0)
    description: str = Field(min_length=1)
    severity: Severity = Severity.MEDIUM


class FrameRequest(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    frame_base64: str = Field(min_length=1)
    duration: Optional[float] = Field(default=None, ge=0.0)  # seconds covered by this frame
