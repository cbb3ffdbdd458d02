"""
Student API routes - dashboard and the test-taking session.

Provides endpoints for:
- Listing invited tests with their dashboard status
- Fetching a test for taking, with any existing attempt and remaining time
- Driving the attempt: start, submit answers, complete sections, submit
- Reporting proctoring violations
- Viewing results and personal statistics
"""

import time

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from oapoint.auth import require_student
from oapoint.database import get_db
from oapoint.errors import NotFound
from oapoint.logging_config import get_logger, log_with_context
from oapoint.models.test import Test
from oapoint.models.user import User
from oapoint.schemas import (
    CompleteSectionRequest, StartTestRequest, SubmitAnswerRequest, ViolationRequest
)
from oapoint.services import reports, session
from oapoint.services.proctoring import ViolationRecorder, dispatch_signal, report_violation
from oapoint.services.tests import serialize_test
from oapoint.timeutils import isoformat

router = APIRouter()
logger = get_logger("http")


def _load_invited_test(db: Session, test_id: str, student: User) -> Test:
    test = session.load_test(db, test_id)
    if student.id not in test.allowed_student_ids:
        raise NotFound("Test not found or not registered.")
    return test


@router.get("/api/student/tests")
def list_tests(student: User = Depends(require_student), db: Session = Depends(get_db)):
    """List the student's invited tests with dashboard status."""
    start_time = time.time()

    tests = reports.invited_tests(db, student)
    attempts = reports.student_attempts(db, student)

    data = []
    for test in tests:
        attempt = attempts.get(test.id)
        status = reports.registration_status(test, attempt)
        data.append({
            "id": test.id,
            "title": test.title,
            "description": test.description,
            "startDate": isoformat(test.start_date),
            "endDate": isoformat(test.end_date),
            "duration": test.duration_minutes,
            "isActive": test.is_active,
            "numberOfSections": len(test.sections),
            "status": status,
            "hasAttempted": attempt is not None,
            "isCompleted": status == reports.STATUS_COMPLETED,
            "completedAt": isoformat(attempt.end_time) if attempt else None,
            "score": attempt.total_score if attempt and attempt.is_submitted else None,
            "percentage": attempt.percentage if attempt and attempt.is_submitted else None,
        })

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO",
        "Listed {} tests for student".format(len(data)),
        context={"student_id": str(student.id)},
        extra_data={"duration_ms": round(duration_ms, 2)})

    return {"tests": data}


@router.get("/api/student/tests/{test_id}")
def get_test(test_id: str, student: User = Depends(require_student), db: Session = Depends(get_db)):
    """Test for taking, with the existing attempt and remaining time if started."""
    test = _load_invited_test(db, test_id, student)
    attempt = session.find_attempt(db, test.id, student.id)

    data = serialize_test(test, for_student=True)
    data["status"] = reports.registration_status(test, attempt)
    return {
        "test": data,
        "existingAttempt": reports.serialize_attempt(attempt, include_violations=False) if attempt else None,
        "timeLeft": session.time_left(test, attempt) if attempt else None,
    }


@router.post("/api/student/tests/{test_id}/start")
def start_test(test_id: str, request: StartTestRequest = None,
               student: User = Depends(require_student), db: Session = Depends(get_db)):
    """Create the attempt and open the first section."""
    browser_info = None
    if request is not None and request.browser_info is not None:
        browser_info = request.browser_info.model_dump(by_alias=True, exclude_none=True)

    attempt = session.start_attempt(db, test_id, student.id, browser_info=browser_info)
    test = session.load_test(db, test_id)

    return {
        "message": "Test started successfully",
        "attemptId": attempt.id,
        "startTime": isoformat(attempt.start_time),
        "currentSectionIndex": attempt.current_section_index,
        "timeLeft": session.time_left(test, attempt),
    }


@router.post("/api/student/tests/{test_id}/submit-answer")
def submit_answer(test_id: str, request: SubmitAnswerRequest,
                  student: User = Depends(require_student), db: Session = Depends(get_db)):
    """Upsert an answer for a question in the current section."""
    attempt = session.get_attempt(db, test_id, student.id)
    test = session.load_test(db, test_id)

    answer = session.submit_answer(
        db, attempt, test,
        question_id=request.question_id,
        answer=request.answer.model_dump(by_alias=True),
        time_spent=request.time_spent,
        section_id=request.section_id,
    )
    return {
        "message": "Answer submitted successfully",
        "questionId": answer.question_id,
        "submittedAt": isoformat(answer.submitted_at),
    }


@router.post("/api/student/tests/{test_id}/complete-section")
def complete_section(test_id: str, request: CompleteSectionRequest,
                     student: User = Depends(require_student), db: Session = Depends(get_db)):
    """Close the current section; the last one submits the attempt."""
    attempt = session.get_attempt(db, test_id, student.id)
    test = session.load_test(db, test_id)

    transition = session.complete_section(db, attempt, test, request.section_id)
    result = {
        "message": "Section completed successfully",
        "state": transition.state.value,
        "completedSectionIndex": transition.completed_section_index,
        "currentSectionIndex": transition.current_section_index,
    }
    if transition.state == session.SessionState.SUBMITTED:
        result.update({
            "score": transition.attempt.total_score,
            "maxScore": transition.attempt.max_score,
            "percentage": transition.attempt.percentage,
        })
    else:
        result["timeLeft"] = session.time_left(test, transition.attempt)
    return result


@router.post("/api/student/tests/{test_id}/submit")
def submit_test(test_id: str, student: User = Depends(require_student), db: Session = Depends(get_db)):
    """Finalize and score the attempt. Repeated calls return the stored score."""
    start_time = time.time()

    attempt = session.get_attempt(db, test_id, student.id)
    test = session.load_test(db, test_id)
    outcome = session.submit_attempt(db, attempt, test)

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO",
        "Submit handled for test {}".format(test_id),
        context={"attempt_id": str(outcome.attempt.id)},
        extra_data={"duration_ms": round(duration_ms, 2), "already_submitted": outcome.already_submitted})

    return {
        "message": "Test already submitted" if outcome.already_submitted else "Test submitted successfully",
        "alreadySubmitted": outcome.already_submitted,
        "score": outcome.attempt.total_score,
        "maxScore": outcome.attempt.max_score,
        "percentage": outcome.attempt.percentage,
    }


@router.post("/api/student/tests/{test_id}/report-violation")
def report(test_id: str, request: ViolationRequest,
           student: User = Depends(require_student), db: Session = Depends(get_db)):
    """
    Append a proctoring violation. Storage failures are logged, never surfaced.

    A raw ``signal`` goes through the attempt's ViolationRecorder, which picks
    the violation type; otherwise the client's ``type`` is stored as given.
    """
    attempt = session.get_attempt(db, test_id, student.id)
    if request.signal is not None:
        violation = dispatch_signal(ViolationRecorder(db, attempt), request.signal,
                                    key=request.key, details=request.details)
    else:
        violation = report_violation(db, attempt, request.type,
                                     description=request.description, details=request.details)
    return {
        "message": "Violation reported successfully",
        "recorded": violation is not None,
    }


@router.get("/api/student/tests/{test_id}/results")
def get_results(test_id: str, student: User = Depends(require_student), db: Session = Depends(get_db)):
    """The student's attempt with its score breakdown."""
    test = _load_invited_test(db, test_id, student)
    attempt = session.get_attempt(db, test.id, student.id)

    return {
        "test": serialize_test(test, for_student=True, reveal_answers=attempt.is_submitted),
        "attempt": reports.serialize_attempt(attempt),
        "status": reports.registration_status(test, attempt),
    }


@router.get("/api/student/statistics")
def get_statistics(student: User = Depends(require_student), db: Session = Depends(get_db)):
    """Totals per dashboard status plus average percentage of completed tests."""
    tests = reports.invited_tests(db, student)
    attempts = reports.student_attempts(db, student)
    return {"statistics": reports.student_statistics(tests, attempts)}
