from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import Optional, List
from datetime import datetime

from app.core.constants import QuestionTypeEnum


class QuestionBase(BaseModel):
    exam_id: int
    section_number: int = Field(..., ge=1)
    category: str = Field(..., min_length=1)
    type: QuestionTypeEnum = QuestionTypeEnum.TEXT
    content_text: str
    image_url: Optional[str] = None
    audio_url: Optional[str] = None
    options_json: List[str]
    question_order: int = 0


class QuestionCreate(QuestionBase):
    correct_answer: str
    explanation: Optional[str] = None

    @field_validator("options_json")
    @classmethod
    def validate_options(cls, v: List[str]) -> List[str]:
        if len(v) < 2:
            raise ValueError("A question needs at least two options.")
        if len(set(v)) != len(v):
            raise ValueError("Options must be unique within a question.")
        return v

    @model_validator(mode="after")
    def validate_answer_and_media(self) -> "QuestionCreate":
        if self.correct_answer not in self.options_json:
            raise ValueError(f"correct_answer '{self.correct_answer}' is not one of the options.")
        if self.type == QuestionTypeEnum.IMAGE and not self.image_url:
            raise ValueError("Image questions require image_url.")
        if self.type == QuestionTypeEnum.AUDIO and not self.audio_url:
            raise ValueError("Audio questions require audio_url.")
        return self


class CandidateQuestion(QuestionBase):
    """Question as served to a candidate before submission: no correct answer."""
    id: int

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class Question(CandidateQuestion):
    # Trusted read path only (scoring, review after submission).
    correct_answer: str
    explanation: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ReviewQuestion(Question):
    user_answer: Optional[str] = None
    is_correct: bool = False
