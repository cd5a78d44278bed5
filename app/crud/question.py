from typing import Any, Dict, List, Union
from sqlalchemy.orm import Session

from app.core.exceptions import CatalogNotFound
from app.crud.base import CRUDBase
from app.models.exam import Exam
from app.models.question import Question
from app.schemas.question import QuestionCreate

class CRUDQuestion(CRUDBase[Question, QuestionCreate, QuestionCreate]):
    def get_by_exam(self, db: Session, *, exam_id: int) -> List[Question]:
        return (
            db.query(self.model)
            .filter(self.model.exam_id == exam_id)
            .order_by(self.model.section_number, self.model.question_order, self.model.id)
            .all()
        )

    def create(self, db: Session, *, obj_in: Union[QuestionCreate, Dict[str, Any]], commit: bool = True) -> Question:
        if not isinstance(obj_in, QuestionCreate):
            obj_in = QuestionCreate.model_validate(obj_in)
        exam = db.query(Exam).filter(Exam.id == obj_in.exam_id).first()
        if not exam:
            raise CatalogNotFound()
        if obj_in.section_number not in exam.section_numbers:
            raise ValueError(f"Exam {exam.id} has no section {obj_in.section_number}.")
        return super().create(db, obj_in=obj_in.model_dump(), commit=commit)

question = CRUDQuestion(Question)
