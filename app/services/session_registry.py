import threading
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from app.core.clock import as_utc
from app.services.exam_session import ExamSession


class SessionRegistry:
    """Live sessions keyed by (exam_id, user_id). At most one per candidate per exam."""

    def __init__(self):
        self._lock = threading.Lock()
        self._sessions: Dict[Tuple[int, str], ExamSession] = {}

    def get(self, exam_id: int, user_id: str) -> Optional[ExamSession]:
        with self._lock:
            return self._sessions.get((exam_id, user_id))

    def put(self, session: ExamSession) -> Optional[ExamSession]:
        """Registers a session and returns the one it replaced, already disposed."""
        with self._lock:
            previous = self._sessions.get((session.exam_id, session.user_id))
            self._sessions[(session.exam_id, session.user_id)] = session
        if previous is not None and previous is not session:
            previous.dispose()
            return previous
        return None

    def remove(self, session: ExamSession) -> None:
        key = (session.exam_id, session.user_id)
        with self._lock:
            if self._sessions.get(key) is session:
                del self._sessions[key]
        session.dispose()

    def all(self) -> List[ExamSession]:
        with self._lock:
            return list(self._sessions.values())

    def idle(self, now: datetime, ttl_seconds: int) -> List[ExamSession]:
        cutoff = as_utc(now) - timedelta(seconds=ttl_seconds)
        return [s for s in self.all() if as_utc(s.last_activity) < cutoff]

    def clear(self) -> None:
        for session in self.all():
            self.remove(session)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
