from typing import Any, Dict, Union
from sqlalchemy.orm import Session, selectinload

from app.crud.base import CRUDBase
from app.models.exam import Exam
from app.schemas.exam import ExamCreate


class CRUDExam(CRUDBase[Exam, ExamCreate, ExamCreate]):

    def _query_with_relationships(self, db: Session):
        return db.query(Exam).options(selectinload(Exam.questions))

    def get(self, db: Session, id: int):
        return self._query_with_relationships(db).filter(Exam.id == id).first()

    def create(self, db: Session, *, obj_in: Union[ExamCreate, Dict[str, Any]], commit: bool = True) -> Exam:
        if not isinstance(obj_in, ExamCreate):
            obj_in = ExamCreate.model_validate(obj_in)
        data = obj_in.model_dump()
        data["sections_json"] = [section.model_dump() for section in obj_in.sections_json]
        return super().create(db, obj_in=data, commit=commit)

exam = CRUDExam(Exam)
