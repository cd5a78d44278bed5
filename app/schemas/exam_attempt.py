from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Dict
from datetime import datetime

from app.schemas.question import ReviewQuestion
from app.schemas.score import CategoryScore


class AttemptProgress(BaseModel):
    """
    The mutable part of an attempt, as one typed record.

    Attributes:
        current_section:   Section being worked on. Never decreases.
        answers:           question id -> chosen option text. Keys accumulate.
        audio_play_count:  question id -> number of plays (audio questions only).
        section_finished:  section number -> finished flag. Only flips to True.
        section_times:     section number -> whole seconds spent in that section.
        flagged_questions: question ids marked for review.
        revision:          bumped on every accepted mutation; orders snapshots.
    """

    current_section: int = Field(default=1, ge=1)
    answers: Dict[int, str] = Field(default_factory=dict)
    audio_play_count: Dict[int, int] = Field(default_factory=dict)
    section_finished: Dict[int, bool] = Field(default_factory=dict)
    section_times: Dict[int, int] = Field(default_factory=dict)
    flagged_questions: List[int] = Field(default_factory=list)
    revision: int = Field(default=0, ge=0)

    @field_validator("flagged_questions")
    @classmethod
    def dedupe_flags(cls, v: List[int]) -> List[int]:
        return sorted(set(v))

    @field_validator("audio_play_count", "section_times")
    @classmethod
    def non_negative_counts(cls, v: Dict[int, int]) -> Dict[int, int]:
        if any(count < 0 for count in v.values()):
            raise ValueError("Counts cannot be negative.")
        return v

    @classmethod
    def from_attempt(cls, attempt) -> "AttemptProgress":
        return cls(
            current_section=attempt.current_section,
            answers=attempt.answers_json or {},
            audio_play_count=attempt.audio_play_json or {},
            section_finished=attempt.section_finished_json or {},
            section_times=attempt.section_times_json or {},
            flagged_questions=attempt.flagged_questions_json or [],
            revision=attempt.revision or 0,
        )

    def to_columns(self) -> Dict[str, object]:
        # JSON object keys are strings on the wire and in the database.
        return {
            "current_section": self.current_section,
            "answers_json": {str(k): v for k, v in self.answers.items()},
            "audio_play_json": {str(k): v for k, v in self.audio_play_count.items()},
            "section_finished_json": {str(k): v for k, v in self.section_finished.items()},
            "section_times_json": {str(k): v for k, v in self.section_times.items()},
            "flagged_questions_json": list(self.flagged_questions),
            "revision": self.revision,
        }


class ExamAttemptCreate(BaseModel):
    exam_id: int
    user_id: str
    started_at: datetime
    current_section: int = 1
    section_finished_json: Dict[str, bool] = {}


class ExamAttemptResult(BaseModel):
    attempt_id: int
    exam_id: int
    started_at: datetime
    submitted_at: datetime
    submission_trigger: Optional[str] = None
    score_section: Dict[int, float]
    score_category: List[CategoryScore] = []
    total_score_250: float
    passed: bool
    section_times: Dict[int, int] = {}
    questions: List[ReviewQuestion] = []
