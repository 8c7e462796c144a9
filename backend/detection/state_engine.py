"""
Detection State Engine - Turns raw per-cycle detections into accepted events

Focus loss and face absence are transient signals: each evaluation cycle only
reports how long the current observation window was. The engine accumulates
those windows per session and emits one event when the running total crosses
its threshold, then starts again from zero. A cycle without the signal clears
the accumulated time.

All other detection types are accepted as-is.

The accumulators live behind TemporalStateStore. The in-memory store is
per-process, so running several server instances needs a shared store
implementation instead.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from models.detection_models import (
    DetectionEvent,
    DetectionResult,
    DetectionType,
    SessionTemporalState,
)

logger = logging.getLogger(__name__)

FOCUS_LOSS_THRESHOLD_SECONDS = 5.0
FACE_ABSENCE_THRESHOLD_SECONDS = 10.0

GATED_TYPES = (DetectionType.FOCUS_LOST, DetectionType.FACE_ABSENT)


class TemporalStateStore(ABC):
    """Keyed storage for per-session accumulators"""

    @abstractmethod
    def get(self, session_id: str) -> Optional[SessionTemporalState]:
        ...

    @abstractmethod
    def set(self, session_id: str, state: SessionTemporalState) -> None:
        ...

    @abstractmethod
    def reset(self, session_id: str) -> None:
        ...


class InMemoryTemporalStateStore(TemporalStateStore):
    """Process-local store guarded by a lock"""

    def __init__(self):
        self._states: Dict[str, SessionTemporalState] = {}
        self._lock = threading.Lock()

    def get(self, session_id: str) -> Optional[SessionTemporalState]:
        with self._lock:
            state = self._states.get(session_id)
            return state.model_copy() if state is not None else None

    def set(self, session_id: str, state: SessionTemporalState) -> None:
        with self._lock:
            self._states[session_id] = state.model_copy()

    def reset(self, session_id: str) -> None:
        with self._lock:
            self._states.pop(session_id, None)

    def __contains__(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._states

    def __len__(self) -> int:
        with self._lock:
            return len(self._states)


class DetectionStateEngine:
    """
    Applies threshold gating to a batch of raw detections.

    One engine instance is expected per process; callers must invoke
    reset() when a session ends so its accumulators are released.
    """

    def __init__(
        self,
        store: Optional[TemporalStateStore] = None,
        focus_threshold: float = FOCUS_LOSS_THRESHOLD_SECONDS,
        face_absence_threshold: float = FACE_ABSENCE_THRESHOLD_SECONDS,
    ):
        self.store = store if store is not None else InMemoryTemporalStateStore()
        self.focus_threshold = focus_threshold
        self.face_absence_threshold = face_absence_threshold

    def process_detections(
        self,
        session_id: str,
        detections: List[DetectionResult],
    ) -> List[DetectionEvent]:
        """
        Process the detections of one evaluation cycle.

        Args:
            session_id: Opaque session key; unknown ids start from zero
            detections: Raw detections of a single frame or an uploaded batch

        Returns:
            Accepted events: the focus event (if any), the face-absence
            event (if any), then every ungated detection in input order
        """
        state = self.store.get(session_id) or SessionTemporalState()
        events: List[DetectionEvent] = []

        # Only the first detection of each gated type in the batch counts
        focus_detection = self._first_of(detections, DetectionType.FOCUS_LOST)
        face_detection = self._first_of(detections, DetectionType.FACE_ABSENT)

        state.focus_away_seconds, focus_event = self._accumulate(
            session_id,
            focus_detection,
            state.focus_away_seconds,
            self.focus_threshold,
            "Focus lost",
        )
        if focus_event:
            events.append(focus_event)

        state.face_absent_seconds, face_event = self._accumulate(
            session_id,
            face_detection,
            state.face_absent_seconds,
            self.face_absence_threshold,
            "Face absent",
        )
        if face_event:
            events.append(face_event)

        self.store.set(session_id, state)

        for detection in detections:
            if detection.type not in GATED_TYPES:
                events.append(DetectionEvent.from_result(detection))

        return events

    def reset(self, session_id: str):
        """Drop both accumulators for a session"""
        self.store.reset(session_id)
        logger.debug(f"Temporal state cleared for session {session_id}")

    def _accumulate(
        self,
        session_id: str,
        detection: Optional[DetectionResult],
        previous: float,
        threshold: float,
        label: str,
    ):
        """Return the new accumulated value and the event emitted by this cycle, if any"""
        # A cycle without the signal clears the accumulated time
        if detection is None:
            return 0.0, None

        current = previous + detection.duration
        if previous < threshold <= current:
            logger.info(
                f"{label} threshold crossed for session {session_id}: "
                f"{current:.1f}s >= {threshold:g}s"
            )
            event = DetectionEvent.from_result(
                detection,
                duration=current,
                description=f"{label} for more than {threshold:g} seconds",
            )
            return 0.0, event

        return current, None

    @staticmethod
    def _first_of(
        detections: List[DetectionResult],
        detection_type: DetectionType,
    ) -> Optional[DetectionResult]:
        for detection in detections:
            if detection.type == detection_type:
                return detection
        return None
