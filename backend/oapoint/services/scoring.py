"""
Scoring Service - Computes per-question credit and the aggregate result.

Rules:
1. single-correct: full points iff exactly one option is selected and it is
   the (first) option marked correct
2. multi-correct: full points iff the selected index set equals the correct
   index set; no partial credit
3. coding: points * passed / total over the judged test cases; the only
   partial-credit path
4. max_score = sum(points or 1); percentage = round_half_up(total / max * 100),
   0 when max_score is 0

Unattempted (no answer, or no option/code) is reported for display only and
scores 0 like a wrong answer.
"""

import time
import json
from dataclasses import dataclass, field, asdict
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from oapoint.models.attempt import Attempt, Answer
from oapoint.models.test import Test, Question, SINGLE_CORRECT, MULTI_CORRECT, CODING
from oapoint.logging_config import attempt_context, get_logger, log_with_context

logger = get_logger("scoring")

STATUS_CORRECT = "correct"
STATUS_PARTIAL = "partial"
STATUS_INCORRECT = "incorrect"
STATUS_UNATTEMPTED = "unattempted"


def round_half_up(value: float, digits: int = 0) -> float:
    """Round like JavaScript's Math.round (halves go up, not to even)."""
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


@dataclass
class QuestionScore:
    question_id: str
    section_id: str
    question_type: str
    max_points: float
    earned: float
    is_correct: bool
    status: str
    passed_test_cases: Optional[int] = None
    total_test_cases: Optional[int] = None

    @property
    def earned_display(self) -> float:
        return round_half_up(self.earned, 1)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["earned_display"] = self.earned_display
        return data


@dataclass
class ScoreResult:
    total_score: float
    max_score: float
    percentage: int
    per_question: List[QuestionScore] = field(default_factory=list)

    def count(self, status: str) -> int:
        return sum(1 for q in self.per_question if q.status == status)


def question_points(question: Question) -> float:
    return question.points or 1


def _is_unattempted(answer: Optional[Answer]) -> bool:
    return answer is None or answer.is_empty


def score_single_correct(question: Question, selected: List[int]) -> bool:
    correct = question.correct_option_indices
    if not correct:
        return False
    return len(selected) == 1 and selected[0] == correct[0]


def score_multi_correct(question: Question, selected: List[int]) -> bool:
    correct = set(question.correct_option_indices)
    if not correct:
        return False
    return set(selected) == correct


def score_coding(results: List[dict]):
    """Return (passed, total) for a list of judge results."""
    total = len(results)
    passed = sum(1 for r in results if r.get("passed"))
    return passed, total


def score_question(question: Question, section_id: str, answer: Optional[Answer]) -> QuestionScore:
    points = question_points(question)
    qs = QuestionScore(
        question_id=question.id,
        section_id=section_id,
        question_type=question.question_type,
        max_points=points,
        earned=0.0,
        is_correct=False,
        status=STATUS_UNATTEMPTED if _is_unattempted(answer) else STATUS_INCORRECT,
    )
    if answer is None:
        return qs

    if question.question_type == SINGLE_CORRECT:
        qs.is_correct = score_single_correct(question, answer.selected_options_list)
        qs.earned = points if qs.is_correct else 0.0
    elif question.question_type == MULTI_CORRECT:
        qs.is_correct = score_multi_correct(question, answer.selected_options_list)
        qs.earned = points if qs.is_correct else 0.0
    elif question.question_type == CODING:
        passed, total = score_coding(answer.test_case_results_list)
        qs.passed_test_cases = passed
        qs.total_test_cases = total
        if total > 0:
            qs.earned = points * passed / total
            qs.is_correct = passed == total
            if 0 < passed < total:
                qs.status = STATUS_PARTIAL

    if qs.is_correct:
        qs.status = STATUS_CORRECT
    return qs


def score(test: Test, answers: Dict[str, Answer]) -> ScoreResult:
    """
    Score a set of answers against a test definition.

    Args:
        test: Test with sections and questions loaded
        answers: Mapping question_id -> Answer (missing means unanswered)

    Returns:
        ScoreResult with per-question entries in test order
    """
    per_question = []
    for section, question in test.iter_questions():
        per_question.append(score_question(question, section.id, answers.get(question.id)))

    max_score = sum(q.max_points for q in per_question)
    total_score = sum(q.earned for q in per_question)
    percentage = int(round_half_up(total_score / max_score * 100)) if max_score > 0 else 0
    return ScoreResult(
        total_score=total_score,
        max_score=max_score,
        percentage=percentage,
        per_question=per_question,
    )


def compute_score(attempt: Attempt, test: Test, db: Session) -> ScoreResult:
    """
    Score an attempt and store the result on it.

    The caller owns the transaction; this only flushes.
    """
    start_time = time.time()

    result = score(test, attempt.answers_by_question())

    attempt.total_score = result.total_score
    attempt.max_score = result.max_score
    attempt.percentage = result.percentage
    attempt.score_breakdown = json.dumps([q.to_dict() for q in result.per_question])
    db.flush()

    duration_ms = (time.time() - start_time) * 1000

    log_with_context(logger, "INFO",
        "Score computed: {:.2f}/{} ({}%) correct={}, partial={}, unattempted={}".format(
            result.total_score, result.max_score, result.percentage,
            result.count(STATUS_CORRECT), result.count(STATUS_PARTIAL),
            result.count(STATUS_UNATTEMPTED)),
        context=attempt_context(attempt),
        extra_data={
            "duration_ms": round(duration_ms, 2),
            "score": float(result.total_score),
            "percentage": result.percentage
        })

    return result
