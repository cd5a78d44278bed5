import logging
from datetime import datetime, timedelta
from typing import List, Optional
from sqlalchemy.orm import Session

from app.core.clock import as_utc
from app.core.config import settings
from app.core.constants import SubmissionTriggerEnum
from app.core.exceptions import (
    AttemptAlreadySubmitted, AttemptNotFound, AttemptNotSubmitted, DuplicateAttempt, InvalidAttemptState
)
from app.crud.exam_attempt import exam_attempt as crud_exam_attempt
from app.models.exam_attempt import ExamAttempt
from app.schemas.exam import Exam
from app.schemas.exam_attempt import AttemptProgress, ExamAttemptCreate, ExamAttemptResult
from app.schemas.question import Question, ReviewQuestion
from app.schemas.score import CategoryScore
from app.services.catalog import catalog_service
from app.services.scoring import is_correct, score_attempt

logger = logging.getLogger(__name__)


class ExamAttemptService:
    """
    Durable attempt store. The database row is the source of truth for
    resumption; every write here is a full-state overwrite scoped to the
    owning user.
    """

    def create_attempt(self, db: Session, exam_id: int, user_id: str, started_at: datetime) -> ExamAttempt:
        exam = catalog_service.get_exam(db, exam_id)

        if crud_exam_attempt.get_by_user_and_exam(db, user_id=user_id, exam_id=exam_id):
            raise DuplicateAttempt()

        attempt_in = ExamAttemptCreate(
            exam_id=exam_id,
            user_id=user_id,
            started_at=started_at,
            current_section=exam.sections_json[0].number,
            section_finished_json={str(s.number): False for s in exam.sections_json},
        )
        attempt = crud_exam_attempt.create(db, obj_in=attempt_in)
        logger.info(f"Exam attempt {attempt.id} created for user {user_id} on exam {exam_id}")
        return attempt

    def get_attempt(self, db: Session, exam_id: int, user_id: str) -> Optional[ExamAttempt]:
        return crud_exam_attempt.get_by_user_and_exam(db, user_id=user_id, exam_id=exam_id)

    def get_owned_attempt(self, db: Session, attempt_id: int, user_id: str) -> ExamAttempt:
        attempt = crud_exam_attempt.get_for_user(db, attempt_id=attempt_id, user_id=user_id)
        if not attempt:
            raise AttemptNotFound()
        return attempt

    def update_attempt(self, db: Session, attempt_id: int, user_id: str, progress: AttemptProgress) -> ExamAttempt:
        attempt = self.get_owned_attempt(db, attempt_id, user_id)
        if attempt.submitted_at is not None:
            raise AttemptAlreadySubmitted()

        stored = AttemptProgress.from_attempt(attempt)
        if progress.revision < stored.revision:
            self._log_stale(attempt, progress.revision, stored.revision)
            return attempt

        exam = catalog_service.get_exam(db, attempt.exam_id)
        questions = catalog_service.get_candidate_questions(db, attempt.exam_id)
        self._validate_progress(exam, questions, progress)
        progress = self._enforce_monotonic(stored, progress)

        rows = crud_exam_attempt.write_progress(
            db, attempt_id=attempt_id, user_id=user_id, values=progress.to_columns()
        )
        db.refresh(attempt)
        if rows == 0:
            # Lost a race between our read and the write.
            if attempt.submitted_at is not None:
                raise AttemptAlreadySubmitted()
            self._log_stale(attempt, progress.revision, attempt.revision or 0)
        return attempt

    def submit_attempt(
        self,
        db: Session,
        attempt_id: int,
        submitted_at: datetime,
        trigger: SubmissionTriggerEnum = SubmissionTriggerEnum.CANDIDATE,
    ) -> ExamAttempt:
        """
        Privileged. Recomputes every score from the stored answers and the full
        catalog, then writes them together with submitted_at. A second call for
        the same attempt raises AttemptAlreadySubmitted.
        """
        attempt = crud_exam_attempt.get(db, id=attempt_id)
        if not attempt:
            raise AttemptNotFound()
        if attempt.submitted_at is not None:
            raise AttemptAlreadySubmitted()

        exam = catalog_service.get_exam(db, attempt.exam_id)
        questions = catalog_service.get_privileged_questions(db, attempt.exam_id)
        progress = AttemptProgress.from_attempt(attempt)
        report = score_attempt(questions, progress.answers, section_numbers=[s.number for s in exam.sections_json])

        rows = crud_exam_attempt.mark_submitted(db, attempt_id=attempt_id, values={
            "submitted_at": submitted_at,
            "submission_trigger": trigger.value,
            "current_section": exam.last_section,
            "section_finished_json": {str(s.number): True for s in exam.sections_json},
            "score_section_json": {str(k): v for k, v in report.score_section.items()},
            "score_category_json": [c.model_dump() for c in report.categories],
            "total_score_250": report.total_score_250,
            "passed": report.passed,
        })
        if rows == 0:
            raise AttemptAlreadySubmitted()

        db.refresh(attempt)
        logger.info(
            f"Exam attempt {attempt_id} submitted ({trigger.value}): "
            f"{report.total_correct}/{report.total_questions} correct, {report.total_score_250:.2f}/250"
        )
        return attempt

    def get_result(self, db: Session, exam_id: int, user_id: str) -> ExamAttemptResult:
        attempt = self.get_attempt(db, exam_id, user_id)
        if not attempt:
            raise AttemptNotFound()
        if attempt.submitted_at is None:
            raise AttemptNotSubmitted()

        progress = AttemptProgress.from_attempt(attempt)
        questions = catalog_service.get_privileged_questions(db, exam_id)
        return ExamAttemptResult(
            attempt_id=attempt.id,
            exam_id=attempt.exam_id,
            started_at=as_utc(attempt.started_at),
            submitted_at=as_utc(attempt.submitted_at),
            submission_trigger=attempt.submission_trigger,
            score_section=attempt.score_section_json or {},
            score_category=[CategoryScore(**c) for c in (attempt.score_category_json or [])],
            total_score_250=attempt.total_score_250,
            passed=bool(attempt.passed),
            section_times=progress.section_times,
            questions=[self._review(q, progress.answers.get(q.id)) for q in questions],
        )

    def get_expired_attempts(self, db: Session, now: datetime, limit: int = 100) -> List[ExamAttempt]:
        deadline = as_utc(now) - timedelta(seconds=settings.EXAM_DURATION_SECONDS)
        return crud_exam_attempt.get_in_progress_started_before(db, started_before=deadline, limit=limit)

    def _review(self, question: Question, answer: Optional[str]) -> ReviewQuestion:
        return ReviewQuestion(
            **question.model_dump(),
            user_answer=answer,
            is_correct=is_correct(question, answer),
        )

    def _validate_progress(self, exam: Exam, questions, progress: AttemptProgress) -> None:
        options = {q.id: q.options_json for q in questions}
        sections = {s.number for s in exam.sections_json}
        problems = []

        referenced = set(progress.answers) | set(progress.audio_play_count) | set(progress.flagged_questions)
        unknown = sorted(referenced - set(options))
        if unknown:
            problems.append(f"questions not in exam: {unknown}")
        bad_options = [qid for qid, answer in progress.answers.items() if qid in options and answer not in options[qid]]
        if bad_options:
            problems.append(f"answers not among options: {bad_options}")
        if progress.current_section not in sections:
            problems.append(f"unknown current_section {progress.current_section}")
        bad_sections = sorted((set(progress.section_finished) | set(progress.section_times)) - sections)
        if bad_sections:
            problems.append(f"unknown sections: {bad_sections}")
        if any(count > settings.MAX_AUDIO_PLAYS for count in progress.audio_play_count.values()):
            problems.append(f"audio plays above the cap of {settings.MAX_AUDIO_PLAYS}")

        if problems:
            raise InvalidAttemptState(detail="; ".join(problems))

    def _log_stale(self, attempt: ExamAttempt, incoming: int, stored: int) -> None:
        logger.info(f"Skipped stale write for attempt {attempt.id}: revision {incoming} behind stored {stored}")

    def _enforce_monotonic(self, stored: AttemptProgress, incoming: AttemptProgress) -> AttemptProgress:
        finished = dict(incoming.section_finished)
        for number, done in stored.section_finished.items():
            if done:
                finished[number] = True
        plays = dict(incoming.audio_play_count)
        for qid, count in stored.audio_play_count.items():
            plays[qid] = max(count, plays.get(qid, 0))

        merged = incoming.model_copy(update={
            "current_section": max(stored.current_section, incoming.current_section),
            "section_finished": finished,
            "audio_play_count": plays,
            "revision": max(stored.revision, incoming.revision),
        })
        if merged.current_section != incoming.current_section or finished != incoming.section_finished:
            logger.warning("Progress write tried to move backwards; kept stored section state")
        return merged


exam_attempt_service = ExamAttemptService()
