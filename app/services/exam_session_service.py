import logging
from typing import Callable, Optional, Tuple
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.clock import system_clock
from app.core.config import settings
from app.core.constants import FlushReasonEnum, NavigationActionEnum, SubmissionTriggerEnum
from app.core.database import SessionLocal
from app.core.exceptions import AttemptAlreadySubmitted, PersistenceFailure, SessionNotActive
from app.schemas.exam_attempt import AttemptProgress
from app.schemas.session import SessionView
from app.services.exam_attempt import exam_attempt_service
from app.services.exam_session import ExamSession
from app.services.reconciler import PersistenceReconciler
from app.services.session_registry import SessionRegistry

logger = logging.getLogger(__name__)


class ExamSessionService:
    """
    Entry point for every candidate action. Finds (or rebuilds) the live
    session, applies the transition, then lets the timer and the submission
    latch run before answering with a fresh view.
    """

    def __init__(
        self,
        clock=system_clock,
        registry: Optional[SessionRegistry] = None,
        reconciler: Optional[PersistenceReconciler] = None,
        session_factory: Callable[[], Session] = SessionLocal,
    ):
        self.clock = clock
        self.registry = registry or SessionRegistry()
        self.reconciler = reconciler or PersistenceReconciler(clock)
        self.session_factory = session_factory

    # -- lifecycle -----------------------------------------------------------

    def start_session(
        self, db: Session, exam_id: int, user_id: str, local_snapshot: Optional[AttemptProgress] = None
    ) -> SessionView:
        live = self.registry.get(exam_id, user_id)
        if live is not None:
            # A reload: persist what the old instance holds before rebuilding from the store.
            if live.is_dirty:
                self.reconciler.flush(db, live, FlushReasonEnum.UNLOAD)
            self.registry.remove(live)

        session = self.reconciler.load_session(db, exam_id, user_id, local_snapshot=local_snapshot)
        self.registry.put(session)
        return self._after_action(db, session, True)

    def get_view(self, db: Session, exam_id: int, user_id: str) -> SessionView:
        session = self._require_session(db, exam_id, user_id)
        return self._after_action(db, session, True)

    # -- candidate actions ---------------------------------------------------

    def select_answer(self, db: Session, exam_id: int, user_id: str, question_id: int, option: str) -> SessionView:
        session = self._require_session(db, exam_id, user_id)
        return self._after_action(db, session, session.select_answer(question_id, option))

    def toggle_flag(self, db: Session, exam_id: int, user_id: str, question_id: int) -> SessionView:
        session = self._require_session(db, exam_id, user_id)
        return self._after_action(db, session, session.toggle_flag(question_id))

    def play_audio(self, db: Session, exam_id: int, user_id: str, question_id: int) -> SessionView:
        session = self._require_session(db, exam_id, user_id)
        return self._after_action(db, session, session.play_audio(question_id))

    def navigate(
        self, db: Session, exam_id: int, user_id: str, action: NavigationActionEnum, index: Optional[int] = None
    ) -> SessionView:
        session = self._require_session(db, exam_id, user_id)
        if action == NavigationActionEnum.NEXT:
            applied = session.next()
        elif action == NavigationActionEnum.PREVIOUS:
            applied = session.previous()
        else:
            applied = session.jump_to(index)
        return self._after_action(db, session, applied)

    def request_finish_section(self, db: Session, exam_id: int, user_id: str) -> SessionView:
        session = self._require_session(db, exam_id, user_id)
        return self._after_action(db, session, session.request_finish_section())

    def cancel_finish_section(self, db: Session, exam_id: int, user_id: str) -> SessionView:
        session = self._require_session(db, exam_id, user_id)
        return self._after_action(db, session, session.cancel_finish_section())

    def confirm_finish_section(self, db: Session, exam_id: int, user_id: str) -> SessionView:
        session = self._require_session(db, exam_id, user_id)
        applied = session.confirm_finish_section()
        if applied and not session.needs_submission:
            self.reconciler.flush(db, session, FlushReasonEnum.SECTION_FINISHED)
        return self._after_action(db, session, applied)

    def continue_to_section(self, db: Session, exam_id: int, user_id: str) -> SessionView:
        session = self._require_session(db, exam_id, user_id)
        return self._after_action(db, session, session.continue_to_section())

    def submit(self, db: Session, exam_id: int, user_id: str) -> SessionView:
        """Retries a final submission that is due but has not been stored yet."""
        session = self._require_session(db, exam_id, user_id)
        return self._after_action(db, session, session.needs_submission)

    def flush(self, db: Session, exam_id: int, user_id: str, reason: FlushReasonEnum) -> bool:
        session = self.registry.get(exam_id, user_id)
        if session is None or not session.is_dirty:
            return False
        return self.reconciler.flush(db, session, reason)

    def flush_detached(self, exam_id: int, user_id: str, reason: FlushReasonEnum) -> None:
        """Background variant of flush; owns its database session."""
        db = self.session_factory()
        try:
            self.flush(db, exam_id, user_id, reason)
        finally:
            db.close()

    # -- scheduler hooks -----------------------------------------------------

    def autosave(self, db: Session) -> int:
        flushed = 0
        for session in self.registry.all():
            if session.is_dirty and self.reconciler.flush(db, session, FlushReasonEnum.INTERVAL):
                flushed += 1
        return flushed

    def enforce_deadlines(self, db: Session) -> Tuple[int, int]:
        """
        Ticks every live session, then submits expired attempts nobody holds
        in memory. Returns (live submissions, store submissions).
        """
        live = 0
        for session in self.registry.all():
            session.tick()
            if session.needs_submission:
                try:
                    if self.reconciler.submit(db, session):
                        live += 1
                except PersistenceFailure:
                    continue

        orphaned = 0
        for attempt in exam_attempt_service.get_expired_attempts(db, self.clock.now()):
            if self.registry.get(attempt.exam_id, attempt.user_id) is not None:
                continue
            try:
                exam_attempt_service.submit_attempt(
                    db, attempt.id, submitted_at=self.clock.now(), trigger=SubmissionTriggerEnum.TIMER_EXPIRED
                )
                orphaned += 1
            except AttemptAlreadySubmitted:
                db.rollback()
            except SQLAlchemyError as e:
                db.rollback()
                logger.warning(f"Deadline submission failed for exam attempt {attempt.id}: {e}")
        return live, orphaned

    def evict_idle(self, db: Session) -> int:
        evicted = 0
        for session in self.registry.idle(self.clock.now(), settings.SESSION_IDLE_TTL_SECONDS):
            if session.is_dirty:
                self.reconciler.flush(db, session, FlushReasonEnum.EVICTION)
            self.registry.remove(session)
            evicted += 1
        if evicted:
            logger.info(f"Evicted {evicted} idle exam sessions")
        return evicted

    # -- internals -----------------------------------------------------------

    def _require_session(self, db: Session, exam_id: int, user_id: str) -> ExamSession:
        session = self.registry.get(exam_id, user_id)
        if session is not None:
            return session

        attempt = exam_attempt_service.get_attempt(db, exam_id, user_id)
        if attempt is None:
            raise SessionNotActive()
        if attempt.submitted_at is not None:
            raise AttemptAlreadySubmitted()

        # Restart and reload look the same: rebuild from the store.
        session = self.reconciler.load_session(db, exam_id, user_id)
        self.registry.put(session)
        return session

    def _after_action(self, db: Session, session: ExamSession, applied: bool) -> SessionView:
        session.tick()
        if session.needs_submission:
            self.reconciler.submit(db, session)
        return session.view(applied=applied)


exam_session_service = ExamSessionService()
