class ProctorError(Exception):
    """Base error for the integrity monitor backend"""


class SessionNotFoundError(ProctorError):
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session {session_id} not found")


class ProcessingConflictError(ProctorError):
    """Raised when a video job is already running for the session"""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Video is already being processed for session {session_id}")


class PerceptionError(ProctorError):
    """Raised when a frame or video cannot be evaluated"""
