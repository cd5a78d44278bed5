from pydantic import BaseModel
from typing import Dict, List


class SectionScore(BaseModel):
    section_number: int
    correct: int
    total: int
    percentage: float


class CategoryScore(BaseModel):
    category: str
    correct: int
    total: int
    percentage: float


class ScoreReport(BaseModel):
    sections: List[SectionScore]
    categories: List[CategoryScore]
    total_correct: int
    total_questions: int
    total_score_250: float
    passed: bool

    @property
    def score_section(self) -> Dict[int, float]:
        return {s.section_number: s.percentage for s in self.sections}
