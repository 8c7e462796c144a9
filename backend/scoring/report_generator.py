"""
Report Generator - Builds the integrity report for an interview session

The report is a projection of the session's event log and metadata: the same
log always produces the same counts, deductions, score, summary and
recommendations.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from models.detection_models import (
    Deductions,
    DetectionType,
    InterviewSession,
    SessionReport,
)
from scoring.integrity import BASE_SCORE, count_events, deduction_for

logger = logging.getLogger(__name__)

# Score bands for the closing sentence of the summary
GOOD_INTEGRITY_SCORE = 90
REASONABLE_INTEGRITY_SCORE = 70

# Recommendation triggers
FOCUS_LOSS_RECOMMENDATION_LIMIT = 5
FACE_ABSENCE_RECOMMENDATION_LIMIT = 3


def build_deductions(counts: Dict[DetectionType, int]) -> Deductions:
    return Deductions(
        focus_loss=deduction_for(DetectionType.FOCUS_LOST, counts[DetectionType.FOCUS_LOST]),
        face_absence=deduction_for(DetectionType.FACE_ABSENT, counts[DetectionType.FACE_ABSENT]),
        multiple_faces=deduction_for(DetectionType.MULTIPLE_FACES, counts[DetectionType.MULTIPLE_FACES]),
        phone_detections=deduction_for(DetectionType.PHONE_DETECTED, counts[DetectionType.PHONE_DETECTED]),
        notes_detections=deduction_for(DetectionType.NOTES_DETECTED, counts[DetectionType.NOTES_DETECTED]),
        device_detections=deduction_for(DetectionType.DEVICE_DETECTED, counts[DetectionType.DEVICE_DETECTED]),
    )


def generate_summary(
    integrity_score: int,
    interview_duration: int,
    total_focus_loss_events: int,
    total_phone_detections: int,
    total_notes_detections: int,
) -> str:
    """Human-readable summary of the session"""
    summary = f"Interview completed with an integrity score of {integrity_score}/100. "
    summary += f"The interview lasted {interview_duration} minutes. "

    if total_focus_loss_events > 0:
        summary += f"The candidate lost focus {total_focus_loss_events} times during the interview. "

    if total_phone_detections > 0:
        summary += f"A mobile phone was detected {total_phone_detections} times. "

    if total_notes_detections > 0:
        summary += f"Notes or books were detected {total_notes_detections} times. "

    if integrity_score >= GOOD_INTEGRITY_SCORE:
        summary += "Overall, the candidate maintained good integrity throughout the interview."
    elif integrity_score >= REASONABLE_INTEGRITY_SCORE:
        summary += "The candidate showed some concerning behavior but maintained reasonable integrity."
    else:
        summary += "The candidate showed significant integrity concerns during the interview."

    return summary


def generate_recommendations(
    integrity_score: int,
    total_focus_loss_events: int,
    total_phone_detections: int,
    total_notes_detections: int,
    total_face_absence_events: int,
) -> List[str]:
    """Every matching rule contributes, in a fixed order"""
    recommendations = []

    if total_focus_loss_events > FOCUS_LOSS_RECOMMENDATION_LIMIT:
        recommendations.append("Consider additional focus training for the candidate")

    if total_phone_detections > 0:
        recommendations.append("Implement stricter phone detection policies")

    if total_notes_detections > 0:
        recommendations.append("Review candidate preparation guidelines regarding study materials")

    if total_face_absence_events > FACE_ABSENCE_RECOMMENDATION_LIMIT:
        recommendations.append("Investigate technical issues or candidate behavior during face absence periods")

    if integrity_score < REASONABLE_INTEGRITY_SCORE:
        recommendations.append("Consider additional proctoring measures for future interviews")
        recommendations.append("Review interview environment setup with the candidate")

    if not recommendations:
        recommendations.append("No specific recommendations - candidate maintained good integrity")

    return recommendations


def generate_report(
    session: InterviewSession,
    generated_at: Optional[datetime] = None,
) -> SessionReport:
    """
    Build the integrity report for a session.

    Args:
        session: Session with its event log and interviewer/candidate metadata
        generated_at: Optional timestamp to stamp on the report (defaults to now)

    Returns:
        SessionReport whose integrity_score equals the score computed from the log
    """
    counts = count_events(session.detection_events)
    deductions = build_deductions(counts)
    integrity_score = max(0, BASE_SCORE - deductions.total())

    summary = generate_summary(
        integrity_score=integrity_score,
        interview_duration=session.duration,
        total_focus_loss_events=counts[DetectionType.FOCUS_LOST],
        total_phone_detections=counts[DetectionType.PHONE_DETECTED],
        total_notes_detections=counts[DetectionType.NOTES_DETECTED],
    )

    recommendations = generate_recommendations(
        integrity_score=integrity_score,
        total_focus_loss_events=counts[DetectionType.FOCUS_LOST],
        total_phone_detections=counts[DetectionType.PHONE_DETECTED],
        total_notes_detections=counts[DetectionType.NOTES_DETECTED],
        total_face_absence_events=counts[DetectionType.FACE_ABSENT],
    )

    logger.debug(
        f"Report built for session {session.session_id}: score={integrity_score}, "
        f"events={len(session.detection_events)}"
    )

    return SessionReport(
        session_id=session.session_id,
        candidate_name=session.candidate_name,
        interviewer_name=session.interviewer_name,
        interview_duration=session.duration,
        total_focus_loss_events=counts[DetectionType.FOCUS_LOST],
        total_face_absence_events=counts[DetectionType.FACE_ABSENT],
        total_multiple_faces_events=counts[DetectionType.MULTIPLE_FACES],
        total_phone_detections=counts[DetectionType.PHONE_DETECTED],
        total_notes_detections=counts[DetectionType.NOTES_DETECTED],
        total_device_detections=counts[DetectionType.DEVICE_DETECTED],
        integrity_score=integrity_score,
        deductions=deductions,
        summary=summary,
        recommendations=recommendations,
        generated_at=generated_at or datetime.now(),
    )
