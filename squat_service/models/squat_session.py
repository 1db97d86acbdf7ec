"""
FORMCOACH Squat Service - Session Manager

Keeps one SquatAnalyzer per client session and is the frame-processing
boundary between the transport and the analyzer: bad payloads and analysis
failures are reported as feedback, never raised to the caller.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from core.config import settings

from .landmarks import LandmarkParseError, parse_landmark_frame
from .squat_analyzer import AnalysisSnapshot, SquatAnalyzer

logger = logging.getLogger(__name__)


class SessionNotFoundError(KeyError):
    """Raised when a session ID is not registered."""


class SessionLimitError(RuntimeError):
    """Raised when the maximum number of sessions is reached."""


@dataclass
class SquatSession:
    """A client's squat analysis session."""
    session_id: str
    user_id: str
    analyzer: SquatAnalyzer
    created_at: float = field(default_factory=time.time)
    last_frame_at: Optional[float] = None
    frames_processed: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "session_id": self.session_id,
            "user_id": self.user_id,
            "created_at": self.created_at,
            "last_frame_at": self.last_frame_at,
            "frames_processed": self.frames_processed,
            **self.analyzer.snapshot().to_dict(),
        }


class SquatSessionManager:
    """
    Manages squat analysis sessions.

    Each session owns its own analyzer; sessions never share state.
    """

    def __init__(
        self,
        max_sessions: Optional[int] = None,
        clock: Callable[[], float] = time.time
    ):
        self.max_sessions = max_sessions if max_sessions is not None else settings.MAX_SESSIONS
        self._clock = clock
        self.active_sessions: Dict[str, SquatSession] = {}

    @property
    def session_count(self) -> int:
        return len(self.active_sessions)

    def create_session(self, user_id: str) -> SquatSession:
        """
        Create a new analysis session.

        Raises:
            SessionLimitError: If max_sessions sessions are already active
        """
        if self.session_count >= self.max_sessions:
            raise SessionLimitError(f"Maximum sessions reached ({self.max_sessions})")

        session_id = str(uuid.uuid4())[:8]
        session = SquatSession(
            session_id=session_id,
            user_id=user_id,
            analyzer=SquatAnalyzer(clock=self._clock),
        )
        self.active_sessions[session_id] = session

        logger.info(f"🏋️ Session created: {session_id} (user: {user_id})")
        return session

    def get_session(self, session_id: str) -> SquatSession:
        session = self.active_sessions.get(session_id)
        if not session:
            raise SessionNotFoundError(session_id)
        return session

    def process_frame(
        self,
        session_id: str,
        payload: Any,
        timestamp: Optional[float] = None
    ) -> AnalysisSnapshot:
        """
        Feed one landmark-frame payload to a session's analyzer.

        Args:
            session_id: Active session ID
            payload: Landmark list, JSON string, or None for no detection
            timestamp: Frame time in seconds (defaults to the wall clock)

        Returns:
            Snapshot after the frame
        """
        session = self.get_session(session_id)
        now = self._clock() if timestamp is None else timestamp
        session.frames_processed += 1
        session.last_frame_at = now

        try:
            frame = parse_landmark_frame(payload)
        except LandmarkParseError as e:
            return session.analyzer.record_error(e)
        except Exception as e:
            logger.error(f"Unexpected error parsing frame for {session_id}: {type(e).__name__}: {e}")
            return session.analyzer.record_error(e)

        return session.analyzer.on_frame(frame, timestamp=now)

    def toggle(self, session_id: str) -> AnalysisSnapshot:
        return self.get_session(session_id).analyzer.toggle_analyzing()

    def reset(self, session_id: str) -> AnalysisSnapshot:
        return self.get_session(session_id).analyzer.reset()

    def get_session_status(self, session_id: str) -> Dict[str, Any]:
        return self.get_session(session_id).to_dict()

    def cleanup_session(self, session_id: str) -> bool:
        """Remove session; returns False if it did not exist."""
        session = self.active_sessions.pop(session_id, None)
        if session:
            logger.info(
                f"👋 Session ended: {session_id} "
                f"({session.analyzer.state.rep_count} reps, {session.frames_processed} frames)"
            )
        return session is not None

    def get_stats(self) -> dict:
        """Get session statistics."""
        return {
            "active_sessions": self.session_count,
            "max_sessions": self.max_sessions,
            "total_reps": sum(s.analyzer.state.rep_count for s in self.active_sessions.values()),
        }


# ═══════════════════════════════════════════════════════════════════════════════
# MODULE-LEVEL SINGLETON
# ═══════════════════════════════════════════════════════════════════════════════

_manager_instance: Optional[SquatSessionManager] = None

def get_session_manager() -> SquatSessionManager:
    """Get or create the global session manager instance."""
    global _manager_instance
    if _manager_instance is None:
        _manager_instance = SquatSessionManager()
    return _manager_instance
