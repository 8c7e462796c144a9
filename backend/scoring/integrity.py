from typing import Dict, Iterable

from models.detection_models import DetectionEvent, DetectionType

BASE_SCORE = 100

# Points deducted for every accepted event of each type.
# Shared by the live score and the report breakdown.
DEDUCTION_WEIGHTS: Dict[DetectionType, int] = {
    DetectionType.FOCUS_LOST: 2,
    DetectionType.FACE_ABSENT: 5,
    DetectionType.MULTIPLE_FACES: 10,
    DetectionType.PHONE_DETECTED: 15,
    DetectionType.NOTES_DETECTED: 20,
    DetectionType.DEVICE_DETECTED: 10,
}


def count_events(events: Iterable[DetectionEvent]) -> Dict[DetectionType, int]:
    """Count events per detection type (every type present, zero when unseen)"""
    counts = {detection_type: 0 for detection_type in DetectionType}
    for event in events:
        counts[event.type] += 1
    return counts


def deduction_for(detection_type: DetectionType, count: int = 1) -> int:
    return DEDUCTION_WEIGHTS[detection_type] * count


def compute_integrity_score(events: Iterable[DetectionEvent]) -> int:
    """
    Integrity score for an event log.

    Depends only on the per-type counts, so the result is the same for any
    ordering of the log. Never drops below zero.
    """
    total_deduction = sum(
        deduction_for(detection_type, count)
        for detection_type, count in count_events(events).items()
    )
    return max(0, BASE_SCORE - total_deduction)
