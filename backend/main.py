from fastapi import FastAPI, WebSocket, WebSocketDisconnect, HTTPException, UploadFile, File
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from typing import Dict, List
from datetime import datetime
from pathlib import Path
import csv
import io
import json
import logging
import math
import uuid

import aiofiles

from config import settings
from detection.pipeline import PerceptionPipeline, decode_base64_image
from detection.face_detector import FaceDetector
from detection.gaze_detector import GazeDetector
from detection.object_detector import ObjectDetector
from detection.state_engine import DetectionStateEngine
from models.detection_models import (
    DetectionEvent,
    DetectionEventCreate,
    FrameRequest,
    InterviewSession,
    SessionCreate,
    SessionReport,
    SessionStatus,
    SessionUpdate,
)
from services.video_processor import VideoProcessor
from utils.connection_manager import ConnectionManager
from utils.errors import PerceptionError, ProcessingConflictError, SessionNotFoundError
from utils.session_store import SessionStore

# Configure logging
logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    description="Interview proctoring with threshold-gated detections and integrity scoring",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Global instances
perception = PerceptionPipeline(
    face_detector=FaceDetector(min_confidence=settings.FACE_DETECTION_CONFIDENCE),
    gaze_detector=GazeDetector(gaze_threshold=settings.GAZE_SENSITIVITY),
    object_detector=ObjectDetector(
        model_path=settings.YOLO_MODEL,
        confidence_threshold=settings.OBJECT_DETECTION_CONFIDENCE,
    ),
)
state_engine = DetectionStateEngine(
    focus_threshold=settings.FOCUS_LOSS_THRESHOLD_SECONDS,
    face_absence_threshold=settings.FACE_ABSENCE_THRESHOLD_SECONDS,
)
session_store = SessionStore(base_dir=settings.DATA_DIR)
video_processor = VideoProcessor(perception, sample_frames=settings.VIDEO_SAMPLE_FRAMES)
manager = ConnectionManager()


@app.on_event("startup")
async def startup_event():
    """Initialize detection models on startup"""
    logger.info("🚀 Starting Integrity Monitor Backend...")

    try:
        await perception.initialize()
    except Exception as e:
        logger.error(f"❌ Failed to initialize models: {e}")
        raise


@app.get("/")
async def root():
    return {
        "message": settings.APP_NAME,
        "status": "running",
        "models": perception.status
    }


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "subscribed_sessions": len(manager.subscribers),
        "subscribers": sum(manager.subscriber_count(session_id) for session_id in manager.subscribers)
    }


async def get_session_or_404(session_id: str) -> InterviewSession:
    try:
        return await session_store.require_session(session_id)
    except SessionNotFoundError:
        raise HTTPException(status_code=404, detail="Session not found")


async def persist_and_publish(session_id: str, events: List[DetectionEvent]) -> InterviewSession:
    """Append accepted events to the session log and push them to subscribers"""
    session = await session_store.append_events(session_id, events)

    for event in events:
        await manager.publish(session_id, "detection-event", {
            "event": event.model_dump(mode="json"),
            "integrity_score": session.integrity_score
        })

    return session


async def process_frame(session_id: str, frame_base64: str, duration: float) -> Dict:
    """Evaluate one frame, gate its detections and record the accepted events"""
    frame = decode_base64_image(frame_base64)
    if frame is None:
        raise HTTPException(status_code=400, detail="Failed to decode image")

    try:
        detections = await perception.evaluate(frame, duration)
    except PerceptionError as e:
        # The temporal state is left untouched for a failed cycle
        logger.warning(f"Skipping frame for session {session_id}: {e}")
        raise HTTPException(status_code=502, detail="Frame could not be evaluated")

    events = state_engine.process_detections(session_id, detections)
    session = await persist_and_publish(session_id, events)

    return {
        "success": True,
        "count": len(events),
        "integrity_score": session.integrity_score,
        "data": [event.model_dump(mode="json") for event in events]
    }


# Sessions

@app.post("/sessions", status_code=201)
async def create_session(data: SessionCreate) -> InterviewSession:
    return await session_store.create_session(data)


@app.get("/sessions")
async def list_sessions():
    sessions = await session_store.list_sessions()
    return {
        "count": len(sessions),
        "sessions": [
            {
                "session_id": session.session_id,
                "title": session.title,
                "candidate_name": session.candidate_name,
                "interviewer_name": session.interviewer_name,
                "status": session.status,
                "scheduled_at": session.scheduled_at.isoformat(),
                "integrity_score": session.integrity_score,
                "total_events": len(session.detection_events)
            }
            for session in sessions
        ]
    }


@app.get("/sessions/{session_id}")
async def get_session(session_id: str) -> InterviewSession:
    return await get_session_or_404(session_id)


@app.put("/sessions/{session_id}")
async def update_session(session_id: str, data: SessionUpdate) -> InterviewSession:
    """Update session metadata or status; recorded events are never touched"""
    try:
        session = await session_store.update_session(session_id, data)
    except SessionNotFoundError:
        raise HTTPException(status_code=404, detail="Session not found")

    if session.status in (SessionStatus.COMPLETED, SessionStatus.CANCELLED):
        state_engine.reset(session_id)

    return session


@app.delete("/sessions/{session_id}")
async def delete_session(session_id: str):
    try:
        await session_store.delete_session(session_id)
    except SessionNotFoundError:
        raise HTTPException(status_code=404, detail="Session not found")

    state_engine.reset(session_id)

    return {
        "success": True,
        "message": "Session deleted successfully"
    }


@app.post("/sessions/{session_id}/start")
async def start_session(session_id: str) -> InterviewSession:
    session = await get_session_or_404(session_id)

    session.status = SessionStatus.IN_PROGRESS
    session.started_at = datetime.now()
    await session_store.save_session(session)

    # A restarted session accumulates from zero
    state_engine.reset(session_id)

    await manager.publish(session_id, "session-started", {
        "status": session.status.value,
        "started_at": session.started_at.isoformat()
    })
    logger.info(f"▶️ Session {session_id} started")
    return session


@app.post("/sessions/{session_id}/end")
async def end_session(session_id: str) -> InterviewSession:
    session = await get_session_or_404(session_id)

    session.status = SessionStatus.COMPLETED
    session.ended_at = datetime.now()
    await session_store.save_session(session)

    state_engine.reset(session_id)

    await manager.publish(session_id, "session-ended", {
        "status": session.status.value,
        "ended_at": session.ended_at.isoformat(),
        "integrity_score": session.integrity_score
    })
    logger.info(f"⏹️ Session {session_id} ended with integrity score {session.integrity_score}")
    return session


@app.post("/sessions/{session_id}/detection")
async def add_detection_event(session_id: str, data: DetectionEventCreate):
    """Record a single, already validated event without threshold gating"""
    await get_session_or_404(session_id)

    event = DetectionEvent(**data.model_dump())
    session = await persist_and_publish(session_id, [event])

    return {
        "success": True,
        "data": event.model_dump(mode="json"),
        "integrity_score": session.integrity_score
    }


@app.post("/sessions/{session_id}/frame")
async def process_frame_realtime(session_id: str, request: FrameRequest):
    await get_session_or_404(session_id)

    duration = request.duration
    if duration is None:
        duration = settings.DEFAULT_FRAME_DURATION_SECONDS

    return await process_frame(session_id, request.frame_base64, duration)


@app.post("/sessions/{session_id}/upload")
async def upload_session_video(session_id: str, file: UploadFile = File(...)):
    """Process an uploaded interview video as one detection batch"""
    await get_session_or_404(session_id)

    if not (file.content_type or "").startswith("video/"):
        raise HTTPException(status_code=400, detail="Only video files are allowed")

    if video_processor.is_processing(session_id):
        raise HTTPException(status_code=409, detail="Video is already being processed for this session")

    upload_dir = Path(settings.UPLOAD_DIR)
    upload_dir.mkdir(parents=True, exist_ok=True)
    video_path = upload_dir / f"video-{uuid.uuid4().hex}{Path(file.filename or '').suffix}"

    try:
        size = 0
        async with aiofiles.open(video_path, 'wb') as f:
            while chunk := await file.read(1024 * 1024):
                size += len(chunk)
                if size > settings.MAX_UPLOAD_BYTES:
                    raise HTTPException(status_code=413, detail="Video file is too large")
                await f.write(chunk)

        logger.info(f"Processing uploaded video {video_path} for session {session_id}")
        detections = await video_processor.process_video(str(video_path), session_id)

    except ProcessingConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except PerceptionError as e:
        logger.error(f"Video processing failed for session {session_id}: {e}")
        raise HTTPException(status_code=422, detail="Video could not be processed")
    finally:
        video_processor.cleanup_file(str(video_path))

    # The whole video is one evaluation cycle for the temporal logic
    events = state_engine.process_detections(session_id, detections)
    session = await persist_and_publish(session_id, events)

    return {
        "success": True,
        "message": "Video processed",
        "count": len(events),
        "integrity_score": session.integrity_score,
        "data": [event.model_dump(mode="json") for event in events]
    }


# Reports

@app.post("/reports/generate/{session_id}")
async def generate_session_report(session_id: str, response: Response) -> SessionReport:
    """Create the report once; later calls return the stored one"""
    try:
        report, created = await session_store.create_report(session_id)
    except SessionNotFoundError:
        raise HTTPException(status_code=404, detail="Session not found")

    response.status_code = 201 if created else 200
    return report


@app.get("/reports")
async def list_reports():
    reports = await session_store.list_reports()
    return {"count": len(reports), "reports": reports}


@app.get("/reports/{session_id}")
async def get_session_report(session_id: str) -> SessionReport:
    report = await session_store.get_report(session_id)
    if report is None:
        raise HTTPException(status_code=404, detail="Session report not found")
    return report


@app.get("/export/{session_id}/json")
async def export_session_json(session_id: str):
    """Export the session report as a JSON file"""
    report = await session_store.get_report(session_id)
    if report is None:
        raise HTTPException(status_code=404, detail="Session report not found")

    return Response(
        content=report.model_dump_json(indent=2),
        media_type="application/json",
        headers={"Content-Disposition": f"attachment; filename=session_report_{session_id}.json"}
    )


@app.get("/export/{session_id}/csv")
async def export_session_csv(session_id: str):
    """Export the session event log as a CSV file"""
    session = await get_session_or_404(session_id)

    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(['Timestamp', 'Type', 'Severity', 'Duration (s)', 'Confidence', 'Description'])

    for event in session.detection_events:
        writer.writerow([
            event.timestamp.isoformat(),
            event.type.value,
            event.severity.value,
            f"{event.duration:.1f}",
            f"{event.confidence:.2f}",
            event.description
        ])

    return Response(
        content=output.getvalue(),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=session_events_{session_id}.csv"}
    )


@app.websocket("/ws/{session_id}")
async def websocket_endpoint(websocket: WebSocket, session_id: str):
    """Subscribe to live session updates; clients may also push frames"""
    await manager.connect(session_id, websocket)

    try:
        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                message = None

            if not isinstance(message, dict):
                await websocket.send_text(json.dumps({"error": "Invalid message"}))
                continue

            if message.get('type') == 'frame':
                image = message.get('image', '')
                if not isinstance(image, str):
                    await websocket.send_text(json.dumps({"error": "Invalid message"}))
                    continue

                try:
                    duration = float(message.get('duration', settings.DEFAULT_FRAME_DURATION_SECONDS))
                except (TypeError, ValueError):
                    duration = math.nan

                if not math.isfinite(duration) or duration < 0:
                    await websocket.send_text(json.dumps({"error": "Invalid frame duration"}))
                    continue

                try:
                    await get_session_or_404(session_id)
                    # Accepted events reach this socket through the subscription
                    await process_frame(session_id, image, duration)
                except HTTPException as e:
                    await websocket.send_text(json.dumps({"error": e.detail}))

            elif message.get('type') == 'ping':
                await websocket.send_text(json.dumps({"type": "pong"}))

    except WebSocketDisconnect:
        logger.debug(f"WebSocket closed for session {session_id}")
    finally:
        manager.disconnect(session_id, websocket)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
