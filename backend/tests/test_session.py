"""
Tests for the attempt session state machine.
"""
from datetime import timedelta
from unittest.mock import patch

import pytest

from oapoint.errors import (
    AlreadyStarted, AttemptClosed, InvalidAnswer, NotFound, NotInvited, OutsideWindow,
    TestInactive, WrongSection
)
from oapoint.models import Attempt
from oapoint.services import session
from oapoint.services.session import SessionState
from oapoint.timeutils import utcnow

from conftest import build_test


def _mcq(qtype, selected):
    return {"questionType": qtype, "selectedOptions": selected}


def _questions(test):
    aptitude, code = test.sections
    return aptitude.questions[0], aptitude.questions[1], code.questions[0]


class TestStart:
    def test_creates_attempt_and_opens_first_section(self, db_session, sample_test, student):
        now = utcnow()
        attempt = session.start_attempt(db_session, sample_test.id, student.id, now=now)

        assert attempt.status == "IN_PROGRESS"
        assert attempt.current_section_index == 0
        assert attempt.start_time == now
        assert len(attempt.section_attempts) == 1
        assert attempt.section_attempts[0].section_id == sample_test.sections[0].id
        assert attempt.section_attempts[0].started_at == now
        assert session.session_state(attempt) == SessionState.IN_PROGRESS

    def test_second_start_fails_and_leaves_attempt_untouched(self, db_session, sample_test, student):
        attempt = session.start_attempt(db_session, sample_test.id, student.id)
        single, _, _ = _questions(sample_test)
        session.submit_answer(db_session, attempt, sample_test, single.id, _mcq("single-correct", [1]))
        before = (attempt.id, attempt.start_time, attempt.current_section_index)

        with pytest.raises(AlreadyStarted):
            session.start_attempt(db_session, sample_test.id, student.id,
                                  now=utcnow() + timedelta(minutes=5))

        db_session.expire_all()
        attempts = db_session.query(Attempt).filter(Attempt.test_id == sample_test.id).all()
        assert len(attempts) == 1
        reloaded = attempts[0]
        assert (reloaded.id, reloaded.start_time, reloaded.current_section_index) == before
        assert len(reloaded.answers_by_question()) == 1

    def test_start_after_submit_is_already_started(self, db_session, sample_test, student):
        attempt = session.start_attempt(db_session, sample_test.id, student.id)
        session.submit_attempt(db_session, attempt, sample_test)
        with pytest.raises(AlreadyStarted, match="already completed"):
            session.start_attempt(db_session, sample_test.id, student.id)

    def test_concurrent_start_is_already_started(self, db_session, sample_test, student):
        session.start_attempt(db_session, sample_test.id, student.id)

        # The existence check misses a row another request has just inserted
        with patch.object(session, "find_attempt", return_value=None):
            with pytest.raises(AlreadyStarted, match="already been started"):
                session.start_attempt(db_session, sample_test.id, student.id)

        assert db_session.query(Attempt).filter(Attempt.test_id == sample_test.id).count() == 1

    def test_inactive_test(self, db_session, admin, student):
        test = build_test(db_session, admin, students=[student], active=False)
        with pytest.raises(TestInactive):
            session.start_attempt(db_session, test.id, student.id)

    def test_not_invited(self, db_session, sample_test, other_student):
        with pytest.raises(NotInvited):
            session.start_attempt(db_session, sample_test.id, other_student.id)

    def test_before_window(self, db_session, admin, student):
        now = utcnow()
        test = build_test(db_session, admin, students=[student],
                          start=now + timedelta(hours=1), end=now + timedelta(hours=2))
        with pytest.raises(OutsideWindow, match="not started"):
            session.start_attempt(db_session, test.id, student.id, now=now)

    def test_after_window(self, db_session, admin, student):
        now = utcnow()
        test = build_test(db_session, admin, students=[student],
                          start=now - timedelta(hours=2), end=now - timedelta(hours=1))
        with pytest.raises(OutsideWindow, match="ended"):
            session.start_attempt(db_session, test.id, student.id, now=now)

    def test_unknown_test(self, db_session, student):
        with pytest.raises(NotFound):
            session.start_attempt(db_session, "missing", student.id)

    def test_no_attempt_means_not_started(self):
        assert session.session_state(None) == SessionState.NOT_STARTED


class TestSubmitAnswer:
    def test_resubmission_overwrites(self, db_session, sample_test, student):
        attempt = session.start_attempt(db_session, sample_test.id, student.id)
        single, _, _ = _questions(sample_test)

        session.submit_answer(db_session, attempt, sample_test, single.id, _mcq("single-correct", [0]))
        session.submit_answer(db_session, attempt, sample_test, single.id, _mcq("single-correct", [1]),
                              time_spent=12)

        answers = attempt.answers_by_question()
        assert len(answers) == 1
        assert answers[single.id].selected_options_list == [1]
        assert answers[single.id].time_spent == 12

    def test_overlapping_save_overwrites(self, db_session, sample_test, student):
        attempt = session.start_attempt(db_session, sample_test.id, student.id)
        single, _, _ = _questions(sample_test)
        session.submit_answer(db_session, attempt, sample_test, single.id, _mcq("single-correct", [0]))

        with patch.object(session, "find_answer", return_value=None):
            row = session.submit_answer(db_session, attempt, sample_test, single.id,
                                        _mcq("single-correct", [1]), time_spent=30)

        db_session.expire_all()
        answers = db_session.get(Attempt, attempt.id).answers_by_question()
        assert len(answers) == 1
        assert answers[single.id].id == row.id
        assert answers[single.id].selected_options_list == [1]
        assert answers[single.id].time_spent == 30

    def test_question_from_later_section_is_rejected(self, db_session, sample_test, student):
        attempt = session.start_attempt(db_session, sample_test.id, student.id)
        _, _, code_q = _questions(sample_test)
        with pytest.raises(WrongSection):
            session.submit_answer(db_session, attempt, sample_test, code_q.id,
                                  {"questionType": "coding", "code": "x", "language": "cpp"})
        assert attempt.answers_by_question() == {}

    def test_mismatched_section_id(self, db_session, sample_test, student):
        attempt = session.start_attempt(db_session, sample_test.id, student.id)
        single, _, _ = _questions(sample_test)
        with pytest.raises(WrongSection):
            session.submit_answer(db_session, attempt, sample_test, single.id,
                                  _mcq("single-correct", [1]), section_id=sample_test.sections[1].id)

    def test_answer_type_must_match_question(self, db_session, sample_test, student):
        attempt = session.start_attempt(db_session, sample_test.id, student.id)
        single, _, _ = _questions(sample_test)
        with pytest.raises(InvalidAnswer):
            session.submit_answer(db_session, attempt, sample_test, single.id,
                                  {"questionType": "coding", "code": "x"})

    def test_option_index_out_of_range(self, db_session, sample_test, student):
        attempt = session.start_attempt(db_session, sample_test.id, student.id)
        single, _, _ = _questions(sample_test)
        with pytest.raises(InvalidAnswer):
            session.submit_answer(db_session, attempt, sample_test, single.id, _mcq("single-correct", [7]))

    def test_unknown_question(self, db_session, sample_test, student):
        attempt = session.start_attempt(db_session, sample_test.id, student.id)
        with pytest.raises(NotFound):
            session.submit_answer(db_session, attempt, sample_test, "nope", _mcq("single-correct", [0]))

    def test_rejected_after_submit(self, db_session, sample_test, student):
        attempt = session.start_attempt(db_session, sample_test.id, student.id)
        session.submit_attempt(db_session, attempt, sample_test)
        single, _, _ = _questions(sample_test)
        with pytest.raises(AttemptClosed):
            session.submit_answer(db_session, attempt, sample_test, single.id, _mcq("single-correct", [1]))


class TestCompleteSection:
    def test_wrong_section_does_not_mutate(self, db_session, sample_test, student):
        attempt = session.start_attempt(db_session, sample_test.id, student.id)
        with pytest.raises(WrongSection):
            session.complete_section(db_session, attempt, sample_test, sample_test.sections[1].id)

        db_session.expire_all()
        reloaded = db_session.get(Attempt, attempt.id)
        assert reloaded.current_section_index == 0
        assert reloaded.section_attempts[0].completed_at is None
        assert len(reloaded.section_attempts) == 1

    def test_advances_to_next_section(self, db_session, sample_test, student):
        attempt = session.start_attempt(db_session, sample_test.id, student.id)
        transition = session.complete_section(db_session, attempt, sample_test, sample_test.sections[0].id)

        assert transition.state == SessionState.SECTION_COMPLETE
        assert transition.completed_section_index == 0
        assert transition.current_section_index == 1
        assert attempt.current_section_index == 1
        assert attempt.section_attempts[0].completed_at is not None
        assert attempt.section_attempts[1].section_id == sample_test.sections[1].id

    def test_section_time_spent(self, db_session, sample_test, student):
        now = utcnow()
        attempt = session.start_attempt(db_session, sample_test.id, student.id, now=now)
        session.complete_section(db_session, attempt, sample_test, sample_test.sections[0].id,
                                 now=now + timedelta(minutes=10))

        first, second = attempt.section_attempts
        assert first.is_completed and first.time_spent_seconds == 600
        assert not second.is_completed and second.time_spent_seconds is None

    def test_sections_cannot_be_revisited(self, db_session, sample_test, student):
        attempt = session.start_attempt(db_session, sample_test.id, student.id)
        session.complete_section(db_session, attempt, sample_test, sample_test.sections[0].id)
        single, _, _ = _questions(sample_test)

        with pytest.raises(WrongSection):
            session.complete_section(db_session, attempt, sample_test, sample_test.sections[0].id)
        with pytest.raises(WrongSection):
            session.submit_answer(db_session, attempt, sample_test, single.id, _mcq("single-correct", [1]))

    def test_last_section_submits(self, db_session, sample_test, student):
        attempt = session.start_attempt(db_session, sample_test.id, student.id)
        single, multi, _ = _questions(sample_test)
        session.submit_answer(db_session, attempt, sample_test, single.id, _mcq("single-correct", [1]))
        session.submit_answer(db_session, attempt, sample_test, multi.id, _mcq("multi-correct", [0, 2]))
        session.complete_section(db_session, attempt, sample_test, sample_test.sections[0].id)

        transition = session.complete_section(db_session, attempt, sample_test, sample_test.sections[1].id)

        assert transition.state == SessionState.SUBMITTED
        assert attempt.is_submitted
        assert attempt.end_time is not None
        assert attempt.total_score == 3
        assert attempt.max_score == 13
        assert attempt.percentage == 23


class TestSubmit:
    def test_scores_and_closes_open_sections(self, db_session, sample_test, student):
        attempt = session.start_attempt(db_session, sample_test.id, student.id)
        single, _, _ = _questions(sample_test)
        session.submit_answer(db_session, attempt, sample_test, single.id, _mcq("single-correct", [1]))

        outcome = session.submit_attempt(db_session, attempt, sample_test)

        assert not outcome.already_submitted
        assert attempt.total_score == 1
        assert attempt.max_score == 13
        assert all(sa.completed_at is not None for sa in attempt.section_attempts)
        assert len(attempt.score_breakdown_list) == 3

    def test_second_submit_returns_stored_score(self, db_session, sample_test, student):
        attempt = session.start_attempt(db_session, sample_test.id, student.id)
        single, _, _ = _questions(sample_test)
        session.submit_answer(db_session, attempt, sample_test, single.id, _mcq("single-correct", [1]))
        first = session.submit_attempt(db_session, attempt, sample_test)
        end_time = first.attempt.end_time

        second = session.submit_attempt(db_session, attempt, sample_test, now=utcnow() + timedelta(hours=1))

        assert second.already_submitted
        assert second.attempt.total_score == first.attempt.total_score
        assert second.attempt.end_time == end_time

    def test_coding_partial_credit(self, db_session, sample_test, student):
        attempt = session.start_attempt(db_session, sample_test.id, student.id)
        session.complete_section(db_session, attempt, sample_test, sample_test.sections[0].id)
        _, _, code_q = _questions(sample_test)
        results = [
            {"passed": True, "input": "2 3", "expectedOutput": "5", "actualOutput": "5"},
            {"passed": True, "input": "10 20", "expectedOutput": "30", "actualOutput": "30"},
            {"passed": False, "input": "-5 5", "expectedOutput": "0", "actualOutput": "1"},
        ]
        session.submit_answer(db_session, attempt, sample_test, code_q.id,
                              {"questionType": "coding", "code": "int main(){}", "language": "cpp",
                               "testCaseResults": results})

        session.submit_attempt(db_session, attempt, sample_test)

        assert attempt.total_score == pytest.approx(6.6667, abs=1e-4)
        coding_entry = [q for q in attempt.score_breakdown_list if q["question_id"] == code_q.id][0]
        assert coding_entry["earned_display"] == 6.7
        assert coding_entry["status"] == "partial"


class TestTimeLeft:
    def test_counts_down_from_start(self, db_session, sample_test, student):
        start = utcnow()
        attempt = session.start_attempt(db_session, sample_test.id, student.id, now=start)
        left = session.time_left(sample_test, attempt, now=start + timedelta(minutes=4))
        assert left == {"testSeconds": 26 * 60, "sectionSeconds": 6 * 60}

    def test_floors_at_zero(self, db_session, sample_test, student):
        start = utcnow()
        attempt = session.start_attempt(db_session, sample_test.id, student.id, now=start)
        left = session.time_left(sample_test, attempt, now=start + timedelta(hours=3))
        assert left == {"testSeconds": 0, "sectionSeconds": 0}

    def test_submitted_attempt_has_no_time(self, db_session, sample_test, student):
        attempt = session.start_attempt(db_session, sample_test.id, student.id)
        session.submit_attempt(db_session, attempt, sample_test)
        assert session.time_left(sample_test, attempt) == {"testSeconds": 0, "sectionSeconds": 0}
