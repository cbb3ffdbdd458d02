"""
Tests for the scoring engine.

Tests are built as transient ORM objects; no database is needed.
"""
import json

import pytest

from oapoint.models import Test, Section, Question, Answer
from oapoint.services.scoring import (
    STATUS_CORRECT, STATUS_INCORRECT, STATUS_PARTIAL, STATUS_UNATTEMPTED,
    round_half_up, score, score_question
)


def _question(qid, qtype, options=None, correct=(), points=1, cases=0):
    question = Question(id=qid, question_text=qid, question_type=qtype, points=points)
    if options is not None:
        question.options = json.dumps(
            [{"text": str(o), "isCorrect": i in correct} for i, o in enumerate(options)])
    else:
        question.options = "[]"
        question.coding_details = json.dumps({"testCases": [{"input": "", "output": ""}] * cases})
    return question


def _test(*questions):
    section = Section(id="s1", name="Aptitude", time_limit_minutes=10, order=0)
    section.questions = list(questions)
    return Test(title="t", sections=[section], duration_minutes=10)


def _mcq_answer(qid, qtype, selected):
    return Answer(question_id=qid, question_type=qtype, selected_options=json.dumps(selected))


def _coding_answer(qid, passed_flags):
    results = [{"passed": p, "input": "", "expectedOutput": "", "actualOutput": ""} for p in passed_flags]
    return Answer(question_id=qid, question_type="coding", code="int main(){}", language="cpp",
                  test_case_results=json.dumps(results))


class TestRoundHalfUp:
    def test_halves_round_up(self):
        assert round_half_up(0.5) == 1
        assert round_half_up(2.5) == 3
        assert round_half_up(66.665, 2) == 66.67

    def test_one_decimal(self):
        assert round_half_up(6.6666, 1) == 6.7
        assert round_half_up(6.65, 1) == 6.7


class TestSingleCorrect:
    def test_exact_correct_option_earns_full_points(self):
        q = _question("q1", "single-correct", ["A", "B", "C"], correct={1}, points=3)
        result = score_question(q, "s1", _mcq_answer("q1", "single-correct", [1]))
        assert result.is_correct
        assert result.earned == 3
        assert result.status == STATUS_CORRECT

    def test_wrong_option_earns_nothing(self):
        q = _question("q1", "single-correct", ["A", "B", "C"], correct={1})
        result = score_question(q, "s1", _mcq_answer("q1", "single-correct", [0]))
        assert result.earned == 0
        assert result.status == STATUS_INCORRECT

    def test_more_than_one_selection_is_wrong(self):
        q = _question("q1", "single-correct", ["A", "B", "C"], correct={1})
        result = score_question(q, "s1", _mcq_answer("q1", "single-correct", [1, 2]))
        assert not result.is_correct

    def test_first_correct_option_is_the_key(self):
        q = _question("q1", "single-correct", ["A", "B", "C"], correct={1, 2})
        assert score_question(q, "s1", _mcq_answer("q1", "single-correct", [1])).is_correct
        assert not score_question(q, "s1", _mcq_answer("q1", "single-correct", [2])).is_correct


class TestMultiCorrect:
    @pytest.mark.parametrize("selected,expected", [
        ([0, 2], 2),
        ([2, 0], 2),
        ([0], 0),
        ([0, 1, 2], 0),
        ([], 0),
    ])
    def test_set_equality_without_partial_credit(self, selected, expected):
        q = _question("q1", "multi-correct", ["w", "x", "y", "z"], correct={0, 2}, points=2)
        result = score_question(q, "s1", _mcq_answer("q1", "multi-correct", selected))
        assert result.earned == expected


class TestCoding:
    def test_two_of_three_cases_on_ten_points(self):
        q = _question("c1", "coding", points=10, cases=3)
        result = score_question(q, "s1", _coding_answer("c1", [True, True, False]))
        assert result.earned == pytest.approx(6.6667, abs=1e-4)
        assert result.earned_display == 6.7
        assert result.status == STATUS_PARTIAL
        assert (result.passed_test_cases, result.total_test_cases) == (2, 3)

    def test_all_cases_pass(self):
        q = _question("c1", "coding", points=10, cases=2)
        result = score_question(q, "s1", _coding_answer("c1", [True, True]))
        assert result.earned == 10
        assert result.is_correct

    def test_no_results_scores_zero(self):
        q = _question("c1", "coding", points=10, cases=2)
        result = score_question(q, "s1", _coding_answer("c1", []))
        assert result.earned == 0


class TestAggregate:
    def test_coding_partial_credit_feeds_percentage(self):
        coding_q = _question("c1", "coding", points=10, cases=3)
        result = score(_test(coding_q), {"c1": _coding_answer("c1", [True, True, False])})
        assert result.total_score == pytest.approx(6.6667, abs=1e-4)
        assert result.max_score == 10
        assert result.percentage == 67

    def test_unanswered_questions_count_toward_max(self):
        q1 = _question("q1", "single-correct", ["A", "B"], correct={0})
        q2 = _question("q2", "single-correct", ["A", "B"], correct={0})
        result = score(_test(q1, q2), {"q1": _mcq_answer("q1", "single-correct", [0])})
        assert result.total_score == 1
        assert result.max_score == 2
        assert result.percentage == 50
        assert result.count(STATUS_UNATTEMPTED) == 1

    def test_empty_selection_is_unattempted(self):
        q1 = _question("q1", "single-correct", ["A", "B"], correct={0})
        result = score(_test(q1), {"q1": _mcq_answer("q1", "single-correct", [])})
        assert result.per_question[0].status == STATUS_UNATTEMPTED
        assert result.total_score == 0

    def test_missing_points_default_to_one(self):
        q1 = _question("q1", "single-correct", ["A", "B"], correct={0}, points=None)
        result = score(_test(q1), {"q1": _mcq_answer("q1", "single-correct", [0])})
        assert result.max_score == 1
        assert result.percentage == 100

    def test_total_never_exceeds_max(self):
        q1 = _question("q1", "single-correct", ["A", "B"], correct={0}, points=2)
        q2 = _question("q2", "multi-correct", ["A", "B"], correct={0, 1}, points=3)
        result = score(_test(q1, q2), {
            "q1": _mcq_answer("q1", "single-correct", [0]),
            "q2": _mcq_answer("q2", "multi-correct", [0, 1]),
        })
        assert 0 <= result.total_score <= result.max_score
        assert result.percentage == 100

    def test_no_questions_means_zero_percent(self):
        result = score(Test(title="t", sections=[]), {})
        assert result.max_score == 0
        assert result.percentage == 0

    def test_breakdown_entries_follow_test_order(self):
        q1 = _question("q1", "single-correct", ["A", "B"], correct={0})
        q2 = _question("q2", "single-correct", ["A", "B"], correct={0})
        result = score(_test(q1, q2), {})
        assert [q.question_id for q in result.per_question] == ["q1", "q2"]
        assert result.per_question[0].to_dict()["earned_display"] == 0
