from pydantic import BaseModel, Field, model_validator
from typing import Optional, List, Dict
from datetime import datetime

from app.core.constants import FlushReasonEnum, NavigationActionEnum, SessionPhaseEnum
from app.schemas.exam_attempt import AttemptProgress
from app.schemas.question import CandidateQuestion


class SessionView(BaseModel):
    """Candidate-facing snapshot of a live session. Never carries correct answers."""
    attempt_id: int
    exam_id: int
    phase: SessionPhaseEnum
    current_section: int
    section_title: str
    last_section: int
    current_index: int
    current_question: Optional[CandidateQuestion] = None
    section_question_ids: List[int] = []
    answers: Dict[int, str] = {}
    flagged_questions: List[int] = []
    audio_play_count: Dict[int, int] = {}
    section_finished: Dict[int, bool] = {}
    time_remaining: int
    started_at: datetime
    submitted_at: Optional[datetime] = None
    pending_confirmation: bool = False
    is_listening_section: bool = False
    can_go_back: bool = False
    can_go_next: bool = False
    can_jump: bool = False
    applied: bool = Field(True, description="False when the last action was rejected as illegal.")


class SessionStart(BaseModel):
    local_snapshot: Optional[AttemptProgress] = Field(
        None,
        description="Progress cached by the client, merged with the stored attempt on load."
    )


class AnswerIn(BaseModel):
    question_id: int
    option: str


class NavigateIn(BaseModel):
    action: NavigationActionEnum
    index: Optional[int] = None

    @model_validator(mode="after")
    def index_required_for_jump(self) -> "NavigateIn":
        if self.action == NavigationActionEnum.JUMP and self.index is None:
            raise ValueError("index is required when action is 'jump'.")
        return self


class FlushIn(BaseModel):
    reason: FlushReasonEnum = FlushReasonEnum.HIDDEN
