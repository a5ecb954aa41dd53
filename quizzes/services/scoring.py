# quizzes/services/scoring.py
"""
Auto-marking for multiple-choice quizzes.

Pure functions only: no ORM access, so the same answer key and answer map
always produce the same result regardless of where or how often it runs.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Mapping, Optional, Sequence


@dataclass(frozen=True)
class AnswerKeyEntry:
    question_id: str
    correct_index: int
    option_count: int


@dataclass(frozen=True)
class QuestionMark:
    question_id: str
    selected_index: Optional[int]
    correct_index: int
    is_correct: bool

    def as_dict(self) -> dict:
        return {
            "question_id": self.question_id,
            "selected_index": self.selected_index,
            "correct_index": self.correct_index,
            "is_correct": self.is_correct,
        }


@dataclass(frozen=True)
class ScoreResult:
    score: int
    correct_count: int
    total_questions: int
    breakdown: tuple[QuestionMark, ...] = field(default_factory=tuple)


def percent_half_up(correct: int, total: int) -> int:
    if total <= 0:
        return 0
    pct = Decimal(correct) * 100 / Decimal(total)
    return int(pct.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _as_index(value) -> Optional[int]:
    # bools are ints in Python; True must not mark option 1
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def score(answer_key: Sequence[AnswerKeyEntry], submitted_answers: Mapping) -> ScoreResult:
    """
    Compare each answer-key entry with the submitted option index.

    Missing or non-integer answers are wrong, ids that are not in the key are
    ignored, and the total is always the size of the key.
    """
    answers = {str(k): v for k, v in (submitted_answers or {}).items()}
    marks = []
    correct = 0
    for entry in answer_key:
        selected = _as_index(answers.get(entry.question_id))
        ok = selected is not None and selected == entry.correct_index
        correct += 1 if ok else 0
        marks.append(QuestionMark(
            question_id=entry.question_id,
            selected_index=selected,
            correct_index=entry.correct_index,
            is_correct=ok,
        ))
    total = len(answer_key)
    return ScoreResult(
        score=percent_half_up(correct, total),
        correct_count=correct,
        total_questions=total,
        breakdown=tuple(marks),
    )
