from typing import List
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.schemas.response import APIResponse
from app.utils import deps
from app.schemas.exam import Exam
from app.schemas.question import CandidateQuestion
from app.schemas.exam_attempt import ExamAttemptResult
from app.services.catalog import catalog_service
from app.services.exam_attempt import exam_attempt_service

router = APIRouter()


@router.get("/{exam_id}", response_model=APIResponse[Exam])
def get_exam(
    *,
    db: Session = Depends(deps.get_db),
    exam_id: int,
    user_id: str = Depends(deps.get_current_user_id)
):
    exam = catalog_service.get_exam(db, exam_id)
    return APIResponse(message="Exam retrieved successfully", data=exam)


@router.get("/{exam_id}/questions", response_model=APIResponse[List[CandidateQuestion]])
def get_exam_questions(
    *,
    db: Session = Depends(deps.get_db),
    exam_id: int,
    user_id: str = Depends(deps.get_current_user_id)
):
    questions = catalog_service.get_candidate_questions(db, exam_id)
    return APIResponse(message="Exam questions retrieved successfully", data=questions)


@router.get("/{exam_id}/result", response_model=APIResponse[ExamAttemptResult])
def get_exam_result(
    *,
    db: Session = Depends(deps.get_db),
    exam_id: int,
    user_id: str = Depends(deps.get_current_user_id)
):
    result = exam_attempt_service.get_result(db, exam_id, user_id)
    return APIResponse(message="Exam result retrieved successfully", data=result)
