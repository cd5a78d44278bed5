from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List
from datetime import datetime


class Section(BaseModel):
    number: int = Field(..., ge=1, description="1-based position; defines traversal order.")
    title: str
    duration_minutes: Optional[int] = Field(
        None,
        description="Display only. The global exam timer governs time limits."
    )


class ExamBase(BaseModel):
    title: str
    description: Optional[str] = None
    sections_json: List[Section] = Field(..., min_length=1)
    language_options: List[str] = []

    @field_validator("sections_json")
    @classmethod
    def validate_section_numbers(cls, v: List[Section]) -> List[Section]:
        numbers = sorted(section.number for section in v)
        if numbers != list(range(1, len(numbers) + 1)):
            raise ValueError("Sections must be numbered contiguously starting at 1.")
        return sorted(v, key=lambda section: section.number)

    class Config:
        json_schema_extra = {
            "example": {
                "title": "JFT-Basic Mock Test A",
                "description": "Four-section computer based test",
                "sections_json": [
                    {"number": 1, "title": "Script and Vocabulary", "duration_minutes": 15},
                    {"number": 2, "title": "Conversation and Expression", "duration_minutes": 15},
                    {"number": 3, "title": "Listening Comprehension", "duration_minutes": 15},
                    {"number": 4, "title": "Reading Comprehension", "duration_minutes": 15},
                ],
                "language_options": ["en", "ja"]
            }
        }


class ExamCreate(ExamBase):
    created_by: Optional[str] = None


class Exam(ExamBase):
    id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @property
    def last_section(self) -> int:
        return self.sections_json[-1].number
