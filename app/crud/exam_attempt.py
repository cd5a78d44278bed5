from datetime import datetime
from typing import Any, Dict, List, Optional, Union
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.constants import ExamAttemptStatusEnum
from app.core.exceptions import DuplicateAttempt
from app.crud.base import CRUDBase
from app.models.exam_attempt import ExamAttempt
from app.schemas.exam_attempt import ExamAttemptCreate


class CRUDExamAttempt(CRUDBase[ExamAttempt, ExamAttemptCreate, ExamAttemptCreate]):

    def create(self, db: Session, *, obj_in: Union[ExamAttemptCreate, Dict[str, Any]], commit: bool = True) -> ExamAttempt:
        try:
            return super().create(db, obj_in=obj_in, commit=commit)
        except IntegrityError:
            # uq_exam_attempts_exam_user: someone else created it first
            db.rollback()
            raise DuplicateAttempt()

    def get_for_user(self, db: Session, *, attempt_id: int, user_id: str) -> Optional[ExamAttempt]:
        return (
            db.query(ExamAttempt)
            .filter(ExamAttempt.id == attempt_id)
            .filter(ExamAttempt.user_id == user_id)
            .first()
        )

    def get_by_user_and_exam(self, db: Session, *, user_id: str, exam_id: int) -> Optional[ExamAttempt]:
        return (
            db.query(ExamAttempt)
            .filter(ExamAttempt.user_id == user_id)
            .filter(ExamAttempt.exam_id == exam_id)
            .first()
        )

    def get_in_progress_started_before(self, db: Session, *, started_before: datetime, limit: int = 100) -> List[ExamAttempt]:
        return (
            db.query(ExamAttempt)
            .filter(ExamAttempt.submitted_at.is_(None))
            .filter(ExamAttempt.started_at <= started_before)
            .order_by(ExamAttempt.started_at)
            .limit(limit)
            .all()
        )

    def write_progress(self, db: Session, *, attempt_id: int, user_id: str, values: Dict[str, Any]) -> int:
        """
        Full overwrite of the mutable fields. Returns rows touched: 0 if the
        attempt is submitted, not owned, or already holds a newer revision.
        """
        rows = (
            db.query(ExamAttempt)
            .filter(ExamAttempt.id == attempt_id)
            .filter(ExamAttempt.user_id == user_id)
            .filter(ExamAttempt.submitted_at.is_(None))
            .filter(ExamAttempt.revision <= values["revision"])
            .update(values, synchronize_session=False)
        )
        db.commit()
        return rows

    def mark_submitted(self, db: Session, *, attempt_id: int, values: Dict[str, Any]) -> int:
        """
        Sets submitted_at together with the score fields in one guarded UPDATE.
        Only the first caller sees a row count of 1.
        """
        values = dict(values, status=ExamAttemptStatusEnum.SUBMITTED)
        rows = (
            db.query(ExamAttempt)
            .filter(ExamAttempt.id == attempt_id)
            .filter(ExamAttempt.submitted_at.is_(None))
            .update(values, synchronize_session=False)
        )
        db.commit()
        return rows


exam_attempt = CRUDExamAttempt(ExamAttempt)
