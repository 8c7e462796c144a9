import logging
import uuid
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

import aiofiles

from models.detection_models import (
    DetectionEvent,
    InterviewSession,
    SessionCreate,
    SessionReport,
    SessionUpdate,
)
from scoring.report_generator import generate_report
from utils.errors import SessionNotFoundError

logger = logging.getLogger(__name__)


class SessionStore:
    """JSON file store for interview sessions and their reports"""

    def __init__(self, base_dir: str = "logs"):
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

        # Create subdirectories
        (self.base_dir / "sessions").mkdir(exist_ok=True)
        (self.base_dir / "reports").mkdir(exist_ok=True)

    def _session_file(self, session_id: str) -> Path:
        return self.base_dir / "sessions" / f"{session_id}.json"

    def _report_file(self, session_id: str) -> Path:
        return self.base_dir / "reports" / f"{session_id}.json"

    async def create_session(self, data: SessionCreate) -> InterviewSession:
        """Create and persist a new scheduled session"""
        session = InterviewSession(
            session_id=uuid.uuid4().hex,
            **data.model_dump(),
        )
        await self.save_session(session)

        logger.info(f"📝 Created session {session.session_id} for {session.candidate_name}")
        return session

    async def get_session(self, session_id: str) -> Optional[InterviewSession]:
        session_file = self._session_file(session_id)
        if not session_file.exists():
            return None

        async with aiofiles.open(session_file, 'r') as f:
            content = await f.read()
        return InterviewSession.model_validate_json(content)

    async def require_session(self, session_id: str) -> InterviewSession:
        session = await self.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def save_session(self, session: InterviewSession):
        session.updated_at = datetime.now()
        async with aiofiles.open(self._session_file(session.session_id), 'w') as f:
            await f.write(session.model_dump_json(indent=2))

    async def update_session(self, session_id: str, data: SessionUpdate) -> InterviewSession:
        """Apply the fields set in data; the event log and score are left as they are"""
        session = await self.require_session(session_id)

        for field, value in data.model_dump(exclude_unset=True, exclude_none=True).items():
            setattr(session, field, value)

        await self.save_session(session)
        logger.info(f"✏️ Updated session {session_id}")
        return session

    async def delete_session(self, session_id: str):
        """Remove a session together with its report"""
        session_file = self._session_file(session_id)
        if not session_file.exists():
            raise SessionNotFoundError(session_id)

        session_file.unlink()
        self._report_file(session_id).unlink(missing_ok=True)
        logger.info(f"🗑️ Deleted session {session_id}")

    async def list_sessions(self) -> List[InterviewSession]:
        """All sessions, most recently scheduled first"""
        sessions = []
        for session_file in (self.base_dir / "sessions").glob("*.json"):
            try:
                async with aiofiles.open(session_file, 'r') as f:
                    sessions.append(InterviewSession.model_validate_json(await f.read()))
            except ValueError as e:
                logger.warning(f"Skipping unreadable session file {session_file}: {e}")

        sessions.sort(key=lambda s: s.scheduled_at, reverse=True)
        return sessions

    async def append_events(
        self,
        session_id: str,
        events: List[DetectionEvent],
    ) -> InterviewSession:
        """
        Append accepted events to a session's log, recompute its score and persist.

        The score is always derived from the complete log.
        """
        session = await self.require_session(session_id)
        session.append_events(events)
        await self.save_session(session)

        if events:
            logger.info(
                f"📝 Session {session_id}: +{len(events)} event(s), "
                f"integrity score {session.integrity_score}"
            )

        return session

    async def get_report(self, session_id: str) -> Optional[SessionReport]:
        report_file = self._report_file(session_id)
        if not report_file.exists():
            return None

        async with aiofiles.open(report_file, 'r') as f:
            content = await f.read()
        return SessionReport.model_validate_json(content)

    async def create_report(self, session_id: str) -> Tuple[SessionReport, bool]:
        """
        Generate a report once per session.

        Returns:
            (report, created) where created is False when an existing report was returned
        """
        existing = await self.get_report(session_id)
        if existing is not None:
            return existing, False

        session = await self.require_session(session_id)
        report = generate_report(session)

        async with aiofiles.open(self._report_file(session_id), 'w') as f:
            await f.write(report.model_dump_json(indent=2))

        logger.info(f"📊 Saved report for session {session_id} (score {report.integrity_score})")
        return report, True

    async def list_reports(self) -> List[SessionReport]:
        """All reports, newest first"""
        reports = []
        for report_file in (self.base_dir / "reports").glob("*.json"):
            try:
                async with aiofiles.open(report_file, 'r') as f:
                    reports.append(SessionReport.model_validate_json(await f.read()))
            except ValueError as e:
                logger.warning(f"Skipping unreadable report file {report_file}: {e}")

        reports.sort(key=lambda r: r.generated_at, reverse=True)
        return reports
