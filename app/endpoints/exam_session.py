from typing import Optional
from fastapi import APIRouter, BackgroundTasks, Body, Depends, status
from sqlalchemy.orm import Session

from app.schemas.response import APIResponse, FlushAccepted
from app.schemas.session import AnswerIn, FlushIn, NavigateIn, SessionStart, SessionView
from app.services.exam_session_service import ExamSessionService
from app.utils import deps

router = APIRouter()


def _view_message(view: SessionView, accepted: str) -> str:
    return accepted if view.applied else "Action not allowed in the current exam state"


@router.post("/{exam_id}/session", response_model=APIResponse[SessionView])
def start_session(
    *,
    db: Session = Depends(deps.get_db),
    exam_id: int,
    body: Optional[SessionStart] = Body(None),
    user_id: str = Depends(deps.get_current_user_id),
    service: ExamSessionService = Depends(deps.get_exam_session_service)
):
    view = service.start_session(db, exam_id, user_id, local_snapshot=body.local_snapshot if body else None)
    return APIResponse(message="Exam session loaded", data=view)


@router.get("/{exam_id}/session", response_model=APIResponse[SessionView])
def get_session(
    *,
    db: Session = Depends(deps.get_db),
    exam_id: int,
    user_id: str = Depends(deps.get_current_user_id),
    service: ExamSessionService = Depends(deps.get_exam_session_service)
):
    view = service.get_view(db, exam_id, user_id)
    return APIResponse(message="Exam session retrieved", data=view)


@router.post("/{exam_id}/session/answers", response_model=APIResponse[SessionView])
def select_answer(
    *,
    db: Session = Depends(deps.get_db),
    exam_id: int,
    answer_in: AnswerIn,
    user_id: str = Depends(deps.get_current_user_id),
    service: ExamSessionService = Depends(deps.get_exam_session_service)
):
    view = service.select_answer(db, exam_id, user_id, answer_in.question_id, answer_in.option)
    return APIResponse(message=_view_message(view, "Answer recorded"), data=view)


@router.post("/{exam_id}/session/flags/{question_id}", response_model=APIResponse[SessionView])
def toggle_flag(
    *,
    db: Session = Depends(deps.get_db),
    exam_id: int,
    question_id: int,
    user_id: str = Depends(deps.get_current_user_id),
    service: ExamSessionService = Depends(deps.get_exam_session_service)
):
    view = service.toggle_flag(db, exam_id, user_id, question_id)
    return APIResponse(message=_view_message(view, "Flag toggled"), data=view)


@router.post("/{exam_id}/session/audio/{question_id}/play", response_model=APIResponse[SessionView])
def play_audio(
    *,
    db: Session = Depends(deps.get_db),
    exam_id: int,
    question_id: int,
    user_id: str = Depends(deps.get_current_user_id),
    service: ExamSessionService = Depends(deps.get_exam_session_service)
):
    view = service.play_audio(db, exam_id, user_id, question_id)
    return APIResponse(message=_view_message(view, "Audio play recorded"), data=view)


@router.post("/{exam_id}/session/navigate", response_model=APIResponse[SessionView])
def navigate(
    *,
    db: Session = Depends(deps.get_db),
    exam_id: int,
    navigate_in: NavigateIn,
    user_id: str = Depends(deps.get_current_user_id),
    service: ExamSessionService = Depends(deps.get_exam_session_service)
):
    view = service.navigate(db, exam_id, user_id, navigate_in.action, navigate_in.index)
    return APIResponse(message=_view_message(view, "Moved"), data=view)


@router.post("/{exam_id}/session/finish-section", response_model=APIResponse[SessionView])
def request_finish_section(
    *,
    db: Session = Depends(deps.get_db),
    exam_id: int,
    user_id: str = Depends(deps.get_current_user_id),
    service: ExamSessionService = Depends(deps.get_exam_session_service)
):
    view = service.request_finish_section(db, exam_id, user_id)
    return APIResponse(message=_view_message(view, "Confirm to finish this section"), data=view)


@router.post("/{exam_id}/session/finish-section/confirm", response_model=APIResponse[SessionView])
def confirm_finish_section(
    *,
    db: Session = Depends(deps.get_db),
    exam_id: int,
    user_id: str = Depends(deps.get_current_user_id),
    service: ExamSessionService = Depends(deps.get_exam_session_service)
):
    view = service.confirm_finish_section(db, exam_id, user_id)
    return APIResponse(message=_view_message(view, "Section finished"), data=view)


@router.post("/{exam_id}/session/finish-section/cancel", response_model=APIResponse[SessionView])
def cancel_finish_section(
    *,
    db: Session = Depends(deps.get_db),
    exam_id: int,
    user_id: str = Depends(deps.get_current_user_id),
    service: ExamSessionService = Depends(deps.get_exam_session_service)
):
    view = service.cancel_finish_section(db, exam_id, user_id)
    return APIResponse(message=_view_message(view, "Finish cancelled"), data=view)


@router.post("/{exam_id}/session/continue", response_model=APIResponse[SessionView])
def continue_to_section(
    *,
    db: Session = Depends(deps.get_db),
    exam_id: int,
    user_id: str = Depends(deps.get_current_user_id),
    service: ExamSessionService = Depends(deps.get_exam_session_service)
):
    view = service.continue_to_section(db, exam_id, user_id)
    return APIResponse(message=_view_message(view, "Next section started"), data=view)


@router.post(
    "/{exam_id}/session/flush",
    response_model=APIResponse[FlushAccepted],
    status_code=status.HTTP_202_ACCEPTED
)
def flush_session(
    *,
    exam_id: int,
    background_tasks: BackgroundTasks,
    flush_in: Optional[FlushIn] = Body(None),
    user_id: str = Depends(deps.get_current_user_id),
    service: ExamSessionService = Depends(deps.get_exam_session_service)
):
    reason = (flush_in or FlushIn()).reason
    queued = service.registry.get(exam_id, user_id) is not None
    if queued:
        background_tasks.add_task(service.flush_detached, exam_id, user_id, reason)
    return APIResponse(message="Flush accepted", data=FlushAccepted(reason=reason.value, queued=queued))


@router.post("/{exam_id}/session/submit", response_model=APIResponse[SessionView])
def submit(
    *,
    db: Session = Depends(deps.get_db),
    exam_id: int,
    user_id: str = Depends(deps.get_current_user_id),
    service: ExamSessionService = Depends(deps.get_exam_session_service)
):
    view = service.submit(db, exam_id, user_id)
    return APIResponse(message=_view_message(view, "Exam submitted"), data=view)
