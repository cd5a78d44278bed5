import logging
import time
from typing import Optional, Sequence
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.clock import as_utc
from app.core.config import settings
from app.core.constants import FlushReasonEnum, SubmissionTriggerEnum
from app.core.exceptions import (
    AttemptAlreadySubmitted, AttemptNotFound, DuplicateAttempt, InvalidAttemptState, PersistenceFailure
)
from app.schemas.exam import Exam
from app.schemas.exam_attempt import AttemptProgress
from app.schemas.question import CandidateQuestion
from app.services.catalog import catalog_service
from app.services.exam_attempt import exam_attempt_service
from app.services.exam_session import ExamSession

logger = logging.getLogger(__name__)


def sanitize_progress(
    progress: AttemptProgress,
    exam: Exam,
    questions: Sequence[CandidateQuestion],
    max_audio_plays: int,
) -> AttemptProgress:
    """Drops everything that does not fit the exam and repairs section bookkeeping."""
    by_id = {q.id: q for q in questions}
    numbers = [s.number for s in exam.sections_json]

    answers = {qid: a for qid, a in progress.answers.items() if qid in by_id and a in by_id[qid].options_json}
    plays = {qid: min(n, max_audio_plays) for qid, n in progress.audio_play_count.items() if qid in by_id}
    finished = {n: bool(progress.section_finished.get(n, False)) for n in numbers}
    times = {n: t for n, t in progress.section_times.items() if n in finished}
    flags = [qid for qid in progress.flagged_questions if qid in by_id]

    current = min(max(progress.current_section, numbers[0]), numbers[-1])
    done = [n for n in numbers if finished[n]]
    if done and max(done) < numbers[-1]:
        current = max(current, numbers[numbers.index(max(done)) + 1])

    return AttemptProgress(
        current_section=current,
        answers=answers,
        audio_play_count=plays,
        section_finished=finished,
        section_times=times,
        flagged_questions=flags,
        revision=progress.revision,
    )


def merge_progress(
    server: AttemptProgress,
    local: Optional[AttemptProgress],
    exam: Exam,
    questions: Sequence[CandidateQuestion],
    max_audio_plays: int,
) -> AttemptProgress:
    """
    Deterministic merge of the stored snapshot with a client-held one.

    - Higher revision wins answers (per key) and flags; a tie goes to the server.
    - Monotone fields merge monotonically whatever the revisions say:
      current_section takes the max, finished sections are unioned,
      audio plays and section times take the per-key max.
    - Answers in sections already finished on the server keep the server value.
    """
    server = sanitize_progress(server, exam, questions, max_audio_plays)
    if local is None:
        return server
    local = sanitize_progress(local, exam, questions, max_audio_plays)

    local_wins = local.revision > server.revision
    newer, older = (local, server) if local_wins else (server, local)

    section_of = {q.id: q.section_number for q in questions}
    locked_sections = {n for n, done in server.section_finished.items() if done}

    answers = dict(older.answers)
    answers.update(newer.answers)
    for qid, answer in server.answers.items():
        if section_of.get(qid) in locked_sections:
            answers[qid] = answer

    finished = {
        n: server.section_finished.get(n, False) or local.section_finished.get(n, False)
        for n in server.section_finished
    }
    plays = {
        qid: max(server.audio_play_count.get(qid, 0), local.audio_play_count.get(qid, 0))
        for qid in set(server.audio_play_count) | set(local.audio_play_count)
    }
    times = {
        n: max(server.section_times.get(n, 0), local.section_times.get(n, 0))
        for n in set(server.section_times) | set(local.section_times)
    }

    merged = AttemptProgress(
        current_section=max(server.current_section, local.current_section),
        answers=answers,
        audio_play_count=plays,
        section_finished=finished,
        section_times=times,
        flagged_questions=newer.flagged_questions,
        revision=max(server.revision, local.revision),
    )
    # Re-run the section repair in case the union finished more sections.
    return sanitize_progress(merged, exam, questions, max_audio_plays)


class PersistenceReconciler:
    """
    Moves session state between the in-memory ExamSession and the attempt store.

    load_session is the only way a session comes into existence; flush and
    submit are the only ways its state reaches the store.
    """

    def __init__(self, clock, store=exam_attempt_service, catalog=catalog_service):
        self.clock = clock
        self.store = store
        self.catalog = catalog

    def load_session(
        self, db: Session, exam_id: int, user_id: str, local_snapshot: Optional[AttemptProgress] = None
    ) -> ExamSession:
        exam = self.catalog.get_exam(db, exam_id)
        questions = self.catalog.get_candidate_questions(db, exam_id)

        attempt = self.store.get_attempt(db, exam_id, user_id)
        if attempt is None:
            try:
                attempt = self.store.create_attempt(db, exam_id, user_id, started_at=self.clock.now())
            except DuplicateAttempt:
                # Lost a creation race with another request for the same candidate.
                attempt = self.store.get_attempt(db, exam_id, user_id)
                if attempt is None:
                    raise
        if attempt.submitted_at is not None:
            raise DuplicateAttempt()

        server = AttemptProgress.from_attempt(attempt)
        progress = merge_progress(server, local_snapshot, exam, questions, settings.MAX_AUDIO_PLAYS)

        session = ExamSession(
            attempt_id=attempt.id,
            exam_id=exam_id,
            user_id=user_id,
            sections=exam.sections_json,
            questions=questions,
            progress=progress,
            started_at=as_utc(attempt.started_at),
            clock=self.clock,
            duration_seconds=settings.EXAM_DURATION_SECONDS,
            max_audio_plays=settings.MAX_AUDIO_PLAYS,
            listening_section=settings.LISTENING_SECTION_NUMBER,
        )
        if progress.model_dump() != server.model_dump():
            session.mark_dirty()
        logger.info(
            f"Session loaded for attempt {attempt.id} (section {session.current_section}, "
            f"{session.time_remaining}s left, local snapshot {'merged' if local_snapshot else 'none'})"
        )
        return session

    def flush(self, db: Session, session: ExamSession, reason: FlushReasonEnum = FlushReasonEnum.INTERVAL) -> bool:
        """Best effort. Failures are logged and left for the next flush, which re-sends full state."""
        if session.is_submitted or session.disposed:
            return False
        progress = session.snapshot()
        try:
            self.store.update_attempt(db, session.attempt_id, session.user_id, progress)
        except AttemptAlreadySubmitted:
            logger.info(f"Skipped {reason.value} flush for attempt {session.attempt_id}: already submitted")
            return False
        except (SQLAlchemyError, InvalidAttemptState, AttemptNotFound) as e:
            db.rollback()
            logger.warning(f"{reason.value} flush failed for attempt {session.attempt_id}: {e}")
            return False
        session.mark_flushed(progress.revision)
        logger.debug(f"Flushed attempt {session.attempt_id} revision {progress.revision} ({reason.value})")
        return True

    def submit(self, db: Session, session: ExamSession) -> bool:
        """
        Final submission. Returns False when no submission was due or another
        trigger already holds the latch. Raises PersistenceFailure after the
        configured retries; the attempt then stays unsubmitted and the latch
        is reopened for the next trigger.
        """
        if not session.claim_submission():
            return False

        trigger = session.submission_trigger or SubmissionTriggerEnum.CANDIDATE
        completed = False
        last_error = None
        try:
            for attempt_no in range(1, settings.SUBMIT_MAX_RETRIES + 1):
                try:
                    try:
                        self.store.update_attempt(db, session.attempt_id, session.user_id, session.snapshot())
                        attempt = self.store.submit_attempt(
                            db, session.attempt_id, submitted_at=self.clock.now(), trigger=trigger
                        )
                    except AttemptAlreadySubmitted:
                        # The other trigger won; adopt its outcome.
                        db.rollback()
                        attempt = self.store.get_owned_attempt(db, session.attempt_id, session.user_id)
                    session.complete_submission(as_utc(attempt.submitted_at), attempt.submission_trigger)
                    completed = True
                    return True
                except SQLAlchemyError as e:
                    db.rollback()
                    last_error = e
                    logger.warning(
                        f"Submit attempt {attempt_no}/{settings.SUBMIT_MAX_RETRIES} failed "
                        f"for exam attempt {session.attempt_id}: {e}"
                    )
                    if attempt_no < settings.SUBMIT_MAX_RETRIES:
                        # Runs outside the session lock; only the latch is held.
                        time.sleep(settings.SUBMIT_RETRY_DELAY_SECONDS)

            logger.error(f"Exam attempt {session.attempt_id} could not be submitted: {last_error}")
            raise PersistenceFailure()
        finally:
            if not completed:
                session.release_submission()
