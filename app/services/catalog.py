from typing import List
from sqlalchemy.orm import Session

from app.core.exceptions import CatalogNotFound
from app.crud.exam import exam as crud_exam
from app.crud.question import question as crud_question
from app.schemas.exam import Exam
from app.schemas.question import CandidateQuestion, Question


class CatalogService:
    """
    Read contract over exams and their questions.

    Two views of the same questions exist: the candidate view, which never
    carries ``correct_answer``, and the privileged view used for scoring and
    for review after submission.
    """

    def get_exam(self, db: Session, exam_id: int) -> Exam:
        exam = crud_exam.get(db, id=exam_id)
        if not exam:
            raise CatalogNotFound()
        return Exam.model_validate(exam)

    def get_candidate_questions(self, db: Session, exam_id: int) -> List[CandidateQuestion]:
        return [CandidateQuestion.model_validate(q) for q in self._get_question_rows(db, exam_id)]

    def get_privileged_questions(self, db: Session, exam_id: int) -> List[Question]:
        return [Question.model_validate(q) for q in self._get_question_rows(db, exam_id)]

    def _get_question_rows(self, db: Session, exam_id: int):
        questions = crud_question.get_by_exam(db, exam_id=exam_id)
        if not questions:
            raise CatalogNotFound(detail="No questions found for this exam.")
        return questions


catalog_service = CatalogService()
