"""
Scoring engine.

Pure functions from (questions with correct answers, answers) to scores.
Only call these with the privileged question view; the candidate view has
no correct answers.
"""

from collections import OrderedDict
from typing import Dict, Iterable, List, Optional, Sequence

from app.core.config import settings
from app.core.constants import SCORE_SCALE, SECTION_SCORE_SCALE
from app.schemas.question import Question
from app.schemas.score import CategoryScore, ScoreReport, SectionScore


def is_correct(question: Question, answer: Optional[str]) -> bool:
    # Exact string match: no trimming, no case folding, no width folding.
    return answer is not None and answer == question.correct_answer


def _percentage(correct: int, total: int, scale: int) -> float:
    return scale * correct / total if total else 0.0


def score_attempt(
    questions: Sequence[Question],
    answers: Dict[int, str],
    section_numbers: Optional[Iterable[int]] = None,
    pass_score: Optional[float] = None,
) -> ScoreReport:
    """
    Scores one attempt.

    Args:
        questions:       every question of the exam, with correct answers.
        answers:         question id -> chosen option.
        section_numbers: sections to report; sections without questions score 0.
                         Defaults to the sections the questions mention.
        pass_score:      threshold on the 250 scale (defaults to settings).

    Returns:
        ScoreReport with per-section percentages (0-100), per-category
        percentages, and total_score_250 = 250 * correct / questions.
    """
    if pass_score is None:
        pass_score = settings.PASS_SCORE_250

    numbers = sorted(set(section_numbers) if section_numbers is not None else {q.section_number for q in questions})
    section_counts = {n: [0, 0] for n in numbers}
    category_counts: "OrderedDict[str, List[int]]" = OrderedDict()

    for question in questions:
        hit = 1 if is_correct(question, answers.get(question.id)) else 0
        section_counts.setdefault(question.section_number, [0, 0])
        section_counts[question.section_number][0] += hit
        section_counts[question.section_number][1] += 1
        bucket = category_counts.setdefault(question.category, [0, 0])
        bucket[0] += hit
        bucket[1] += 1

    sections = [
        SectionScore(
            section_number=n,
            correct=correct,
            total=total,
            percentage=_percentage(correct, total, SECTION_SCORE_SCALE),
        )
        for n, (correct, total) in sorted(section_counts.items())
    ]
    categories = [
        CategoryScore(
            category=name,
            correct=correct,
            total=total,
            percentage=_percentage(correct, total, SECTION_SCORE_SCALE),
        )
        for name, (correct, total) in category_counts.items()
    ]

    total_correct = sum(s.correct for s in sections)
    total_questions = sum(s.total for s in sections)
    total_score = _percentage(total_correct, total_questions, SCORE_SCALE)

    return ScoreReport(
        sections=sections,
        categories=categories,
        total_correct=total_correct,
        total_questions=total_questions,
        total_score_250=total_score,
        passed=total_score >= pass_score,
    )
