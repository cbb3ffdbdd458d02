"""
Session Service - the attempt lifecycle state machine.

States:
    NOT_STARTED -> IN_PROGRESS(i) -> SECTION_COMPLETE(i) -> IN_PROGRESS(i+1) -> ... -> SUBMITTED

- start_attempt: creates the attempt and opens section 0
- submit_answer: upserts an answer into the current section
- complete_section: closes the current section and opens the next, or
  submits when it was the last one
- submit_attempt: finalizes and scores; repeated calls return the stored score

Section progression is monotonic: the index only moves forward. Deadlines are
tracked by the client; the server reports remaining time (see time_left) but
does not enforce it.
"""

import enum
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from oapoint.errors import (
    AlreadyStarted, AttemptClosed, InvalidAnswer, InvalidTest, NotFound, NotInvited,
    OutsideWindow, TestInactive, WrongSection
)
from oapoint.logging_config import attempt_context, get_logger, log_with_context
from oapoint.models.attempt import (
    Attempt, SectionAttempt, Answer, STATUS_IN_PROGRESS, STATUS_SUBMITTED
)
from oapoint.models.test import Test, Section, Question, CODING
from oapoint.services.scoring import compute_score
from oapoint.timeutils import utcnow

logger = get_logger("session")


class SessionState(str, enum.Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    SECTION_COMPLETE = "section_complete"
    SUBMITTED = "submitted"


@dataclass
class SectionTransition:
    """Outcome of complete_section."""
    state: SessionState
    completed_section_index: int
    current_section_index: int
    attempt: Attempt


@dataclass
class SubmitOutcome:
    attempt: Attempt
    already_submitted: bool


def session_state(attempt: Optional[Attempt]) -> SessionState:
    if attempt is None:
        return SessionState.NOT_STARTED
    if attempt.status == STATUS_SUBMITTED:
        return SessionState.SUBMITTED
    return SessionState.IN_PROGRESS


def load_test(db: Session, test_id: str) -> Test:
    test = db.query(Test).options(
        joinedload(Test.sections).joinedload(Section.questions),
        joinedload(Test.allowed_students)
    ).filter(Test.id == test_id).first()
    if not test:
        raise NotFound("Test not found.")
    return test


def find_attempt(db: Session, test_id: str, student_id: str) -> Optional[Attempt]:
    return db.query(Attempt).options(
        joinedload(Attempt.section_attempts).joinedload(SectionAttempt.answers)
    ).filter(
        Attempt.test_id == test_id,
        Attempt.student_id == student_id
    ).first()


def get_attempt(db: Session, test_id: str, student_id: str) -> Attempt:
    attempt = find_attempt(db, test_id, student_id)
    if not attempt:
        raise NotFound("Test attempt not found.")
    return attempt


def _open_section(attempt: Attempt, test: Test, index: int, now: datetime) -> SectionAttempt:
    section = test.sections[index]
    section_attempt = attempt.section_attempt_for(section.id)
    if section_attempt is None:
        section_attempt = SectionAttempt(
            section_id=section.id,
            section_index=index,
            section_name=section.name,
            started_at=now,
        )
        attempt.section_attempts.append(section_attempt)
    return section_attempt


def _already_started(existing: Optional[Attempt]) -> AlreadyStarted:
    if existing is not None and existing.is_submitted:
        return AlreadyStarted("Test already completed.")
    return AlreadyStarted("Test has already been started.")


def start_attempt(db: Session, test_id: str, student_id: str,
                  browser_info: dict = None, now: datetime = None) -> Attempt:
    """
    Create the attempt for (test, student) and open the first section.

    Raises:
        NotFound: unknown test
        AlreadyStarted: an attempt already exists (in progress or submitted)
        TestInactive: the test is not active
        NotInvited: the student is not on the test's invitation list
        OutsideWindow: now is before start_date or after end_date
    """
    now = now or utcnow()
    test = load_test(db, test_id)

    existing = find_attempt(db, test_id, student_id)
    if existing is not None:
        raise _already_started(existing)
    if not test.is_active:
        raise TestInactive()
    if student_id not in test.allowed_student_ids:
        raise NotInvited()
    if now < test.start_date:
        raise OutsideWindow("Test has not started yet.")
    if now > test.end_date:
        raise OutsideWindow("Test has ended.")
    if not test.sections:
        raise InvalidTest("Test has no sections.")

    attempt = Attempt(
        test_id=test.id,
        student_id=student_id,
        start_time=now,
        current_section_index=0,
        status=STATUS_IN_PROGRESS,
        browser_info=json.dumps(browser_info) if browser_info else None,
    )
    db.add(attempt)
    _open_section(attempt, test, 0, now)
    try:
        db.commit()
    except IntegrityError:
        # A concurrent start for the same student won the unique constraint
        db.rollback()
        log_with_context(logger, "WARNING", "Concurrent start rejected",
                         context={"test_id": str(test_id), "student_id": str(student_id)})
        raise _already_started(
            db.query(Attempt).filter(Attempt.test_id == test_id, Attempt.student_id == student_id).first()
        )
    db.refresh(attempt)

    log_with_context(logger, "INFO", "Attempt started",
                     context=attempt_context(attempt),
                     extra_data={"sections": len(test.sections)})
    return attempt


def _find_question(test: Test, question_id: str):
    for index, section in enumerate(test.sections):
        for question in section.questions:
            if question.id == question_id:
                return index, section, question
    return None, None, None


def _check_answer_shape(question: Question, answer: dict):
    answer_type = answer.get("questionType")
    if answer_type != question.question_type:
        raise InvalidAnswer(
            "Answer type '{}' does not match question type '{}'.".format(
                answer_type, question.question_type)
        )
    if question.is_mcq:
        option_count = len(question.options_list)
        for index in answer.get("selectedOptions") or []:
            if not 0 <= index < option_count:
                raise InvalidAnswer("Selected option {} does not exist.".format(index))


def find_answer(section_attempt: SectionAttempt, question_id: str) -> Optional[Answer]:
    for existing in section_attempt.answers:
        if existing.question_id == question_id:
            return existing
    return None


def _apply_answer(row: Answer, question: Question, answer: dict, time_spent: int, now: datetime):
    is_coding = question.question_type == CODING
    row.question_type = question.question_type
    row.selected_options = None if is_coding else json.dumps(answer.get("selectedOptions") or [])
    row.code = answer.get("code") if is_coding else None
    row.language = answer.get("language") if is_coding else None
    row.test_case_results = json.dumps(answer.get("testCaseResults") or []) if is_coding else None
    row.time_spent = time_spent or 0
    row.submitted_at = now


def submit_answer(db: Session, attempt: Attempt, test: Test, question_id: str,
                  answer: dict, time_spent: int = 0, section_id: str = None,
                  now: datetime = None) -> Answer:
    """
    Upsert an answer for a question in the current section.

    ``answer`` is the validated boundary payload: questionType plus either
    selectedOptions or code/language/testCaseResults. ``section_id``, when
    given, must name the question's section.

    Raises:
        AttemptClosed: the attempt is already submitted
        NotFound: the question is not part of this test
        WrongSection: the question belongs to a section other than the current one
        InvalidAnswer: the answer shape does not fit the question
    """
    now = now or utcnow()
    if attempt.is_submitted:
        raise AttemptClosed()

    section_index, section, question = _find_question(test, question_id)
    if question is None:
        raise NotFound("Question not found.")
    if section_id is not None and section_id != section.id:
        raise WrongSection("Question does not belong to section {}.".format(section_id))
    if section_index != attempt.current_section_index:
        raise WrongSection("Question belongs to section {} but the current section is {}.".format(
            section_index, attempt.current_section_index))
    _check_answer_shape(question, answer)

    section_attempt = _open_section(attempt, test, section_index, now)

    row = find_answer(section_attempt, question_id)
    if row is None:
        row = Answer(attempt_id=attempt.id, question_id=question_id)
        section_attempt.answers.append(row)
    _apply_answer(row, question, answer, time_spent, now)

    try:
        db.commit()
    except IntegrityError:
        # An overlapping save inserted the row first; overwrite it instead
        db.rollback()
        row = db.query(Answer).filter(
            Answer.attempt_id == attempt.id, Answer.question_id == question_id
        ).one()
        _apply_answer(row, question, answer, time_spent, now)
        db.commit()

    log_with_context(logger, "DEBUG", "Answer saved for question {}".format(question_id),
                     context=attempt_context(attempt),
                     extra_data={"section_index": section_index, "question_type": question.question_type})
    return row


def submit_attempt(db: Session, attempt: Attempt, test: Test, now: datetime = None) -> SubmitOutcome:
    """
    Finalize and score the attempt.

    Idempotent: an already submitted attempt is returned unchanged with its
    stored score.
    """
    if attempt.is_submitted:
        log_with_context(logger, "INFO", "Duplicate submit ignored",
                         context=attempt_context(attempt))
        return SubmitOutcome(attempt=attempt, already_submitted=True)

    now = now or utcnow()
    for section_attempt in attempt.section_attempts:
        if not section_attempt.is_completed:
            section_attempt.completed_at = now

    attempt.end_time = now
    attempt.status = STATUS_SUBMITTED
    compute_score(attempt, test, db)
    db.commit()
    db.refresh(attempt)

    log_with_context(logger, "INFO", "Attempt submitted",
                     context=attempt_context(attempt),
                     extra_data={
                         "total_score": float(attempt.total_score),
                         "max_score": float(attempt.max_score),
                         "percentage": attempt.percentage,
                         "duration_seconds": int((attempt.end_time - attempt.start_time).total_seconds()),
                     })
    return SubmitOutcome(attempt=attempt, already_submitted=False)


def complete_section(db: Session, attempt: Attempt, test: Test, section_id: str,
                     now: datetime = None) -> SectionTransition:
    """
    Close the current section and move to the next one.

    Raises:
        AttemptClosed: the attempt is already submitted
        WrongSection: section_id is not the current section's id (no mutation)
    """
    now = now or utcnow()
    if attempt.is_submitted:
        raise AttemptClosed()

    index = attempt.current_section_index
    if index >= len(test.sections) or test.sections[index].id != section_id:
        raise WrongSection()

    section_attempt = _open_section(attempt, test, index, now)
    section_attempt.completed_at = now

    if index == len(test.sections) - 1:
        outcome = submit_attempt(db, attempt, test, now=now)
        return SectionTransition(
            state=SessionState.SUBMITTED,
            completed_section_index=index,
            current_section_index=index,
            attempt=outcome.attempt,
        )

    attempt.current_section_index = index + 1
    _open_section(attempt, test, index + 1, now)
    db.commit()
    db.refresh(attempt)

    log_with_context(logger, "INFO", "Section {} completed".format(index),
                     context=attempt_context(attempt),
                     extra_data={"next_section_index": index + 1})
    return SectionTransition(
        state=SessionState.SECTION_COMPLETE,
        completed_section_index=index,
        current_section_index=index + 1,
        attempt=attempt,
    )


def time_left(test: Test, attempt: Attempt, now: datetime = None) -> dict:
    """
    Remaining seconds for the whole test and for the current section.

    elapsed = now - start; remaining = limit * 60 - elapsed, floored at 0.
    Used by a resuming client to rebuild its countdowns.
    """
    now = now or utcnow()
    if attempt.is_submitted:
        return {"testSeconds": 0, "sectionSeconds": 0}

    elapsed = (now - attempt.start_time).total_seconds()
    test_seconds = max(0, int(test.duration_minutes * 60 - elapsed))

    section_seconds = 0
    index = attempt.current_section_index
    if index < len(test.sections):
        section = test.sections[index]
        section_attempt = attempt.section_attempt_for(section.id)
        section_start = section_attempt.started_at if section_attempt else now
        section_elapsed = (now - section_start).total_seconds()
        section_seconds = max(0, int(section.time_limit_minutes * 60 - section_elapsed))

    return {"testSeconds": test_seconds, "sectionSeconds": min(section_seconds, test_seconds)}
