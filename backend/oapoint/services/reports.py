"""
Reporting Service - attempt serialization, results tables and statistics.

Statistics are derived on read from attempts and invitations; nothing is
cached on the user row.
"""

from collections import OrderedDict
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session, joinedload

from oapoint.models.attempt import Attempt, SectionAttempt
from oapoint.models.test import Test, test_invitations
from oapoint.models.user import User
from oapoint.services.scoring import round_half_up
from oapoint.timeutils import utcnow, isoformat

STATUS_COMPLETED = "completed"
STATUS_IN_PROGRESS = "in_progress"
STATUS_MISSED = "missed"
STATUS_TO_ATTEMPT = "to_attempt"

SCORE_BUCKETS = (
    ("90-100", 90),
    ("80-89", 80),
    ("70-79", 70),
    ("60-69", 60),
    ("50-59", 50),
    ("Below 50", 0),
)


def registration_status(test: Test, attempt: Optional[Attempt], now: datetime = None) -> str:
    """Dashboard status of an invited test for one student."""
    now = now or utcnow()
    if attempt is not None:
        return STATUS_COMPLETED if attempt.is_submitted else STATUS_IN_PROGRESS
    if now > test.end_date:
        return STATUS_MISSED
    return STATUS_TO_ATTEMPT


def serialize_student(user: User) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "registrationNumber": user.registration_number,
        "phone": user.phone,
        "isActive": user.is_active,
        "createdAt": isoformat(user.created_at),
    }


def time_taken_seconds(attempt: Attempt) -> Optional[int]:
    if not attempt.end_time:
        return None
    return int((attempt.end_time - attempt.start_time).total_seconds())


def serialize_attempt(attempt: Attempt, include_violations: bool = True) -> dict:
    """Serialize an Attempt with its section visits, answers and score."""
    data = {
        "id": attempt.id,
        "testId": attempt.test_id,
        "studentId": attempt.student_id,
        "status": attempt.status,
        "isCompleted": attempt.is_submitted,
        "startTime": isoformat(attempt.start_time),
        "endTime": isoformat(attempt.end_time),
        "currentSectionIndex": attempt.current_section_index,
        "totalScore": attempt.total_score,
        "maxScore": attempt.max_score,
        "percentage": attempt.percentage,
        "timeTaken": time_taken_seconds(attempt),
        "browserInfo": attempt.browser_info_dict or None,
        "sectionAttempts": [
            {
                "sectionId": sa.section_id,
                "sectionIndex": sa.section_index,
                "sectionName": sa.section_name,
                "startedAt": isoformat(sa.started_at),
                "completedAt": isoformat(sa.completed_at),
                "timeSpent": sa.time_spent_seconds,
                "answers": [
                    {
                        "questionId": answer.question_id,
                        "questionType": answer.question_type,
                        "selectedOptions": answer.selected_options_list,
                        "code": answer.code,
                        "language": answer.language,
                        "testCaseResults": answer.test_case_results_list,
                        "timeSpent": answer.time_spent,
                        "submittedAt": isoformat(answer.submitted_at),
                    }
                    for answer in sa.answers
                ],
            }
            for sa in attempt.section_attempts
        ],
    }
    if attempt.is_submitted:
        data["scoreBreakdown"] = [
            {
                "questionId": q["question_id"],
                "sectionId": q["section_id"],
                "questionType": q["question_type"],
                "maxPoints": q["max_points"],
                "earned": q["earned"],
                "earnedDisplay": q["earned_display"],
                "isCorrect": q["is_correct"],
                "status": q["status"],
                "passedTestCases": q.get("passed_test_cases"),
                "totalTestCases": q.get("total_test_cases"),
            }
            for q in attempt.score_breakdown_list
        ]
    if include_violations:
        data["violations"] = [
            {
                "id": v.id,
                "type": v.type,
                "description": v.description,
                "details": v.details_dict or None,
                "timestamp": isoformat(v.timestamp),
            }
            for v in attempt.violations
        ]
    return data


def load_test_attempts(db: Session, test_id: str) -> List[Attempt]:
    return db.query(Attempt).options(
        joinedload(Attempt.student),
        joinedload(Attempt.violations),
        joinedload(Attempt.section_attempts).joinedload(SectionAttempt.answers),
    ).filter(Attempt.test_id == test_id).all()


def results_rows(attempts: List[Attempt]) -> List[dict]:
    """Results table rows, best score first."""
    ordered = sorted(attempts, key=lambda a: (-(a.total_score or 0), a.start_time))
    rows = []
    for attempt in ordered:
        student = attempt.student
        rows.append({
            "attemptId": attempt.id,
            "student": {
                "id": student.id,
                "name": student.name,
                "email": student.email,
                "registrationNumber": student.registration_number,
            } if student else None,
            "status": attempt.status,
            "isCompleted": attempt.is_submitted,
            "totalScore": attempt.total_score,
            "maxScore": attempt.max_score,
            "percentage": attempt.percentage,
            "startTime": isoformat(attempt.start_time),
            "endTime": isoformat(attempt.end_time),
            "timeTaken": time_taken_seconds(attempt),
            "violationCount": len(attempt.violations),
        })
    return rows


def score_distribution(percentages: List[int]) -> "OrderedDict[str, int]":
    buckets = OrderedDict((label, 0) for label, _ in SCORE_BUCKETS)
    for percentage in percentages:
        for label, floor in SCORE_BUCKETS:
            if percentage >= floor:
                buckets[label] += 1
                break
    return buckets


def summarize_test(test: Test, attempts: List[Attempt]) -> dict:
    """Participation and score summary for one test."""
    total_invited = len(test.allowed_students)
    completed = [a for a in attempts if a.is_submitted]
    percentages = [a.percentage or 0 for a in completed]
    average = sum(percentages) / len(percentages) if percentages else 0
    return {
        "totalInvited": total_invited,
        "totalAttempted": len(attempts),
        "totalCompleted": len(completed),
        "totalInProgress": len(attempts) - len(completed),
        "averageScore": round_half_up(average, 2),
        "scoreDistribution": score_distribution(percentages),
        "completionRate": int(round_half_up(len(completed) / total_invited * 100)) if total_invited else 0,
    }


def invited_tests(db: Session, student: User) -> List[Test]:
    return db.query(Test).join(
        test_invitations, test_invitations.c.test_id == Test.id
    ).filter(test_invitations.c.student_id == student.id).order_by(Test.start_date.desc()).all()


def student_attempts(db: Session, student: User) -> dict:
    """Map test_id -> Attempt for the student."""
    attempts = db.query(Attempt).filter(Attempt.student_id == student.id).all()
    return {a.test_id: a for a in attempts}


def student_statistics(tests: List[Test], attempts: dict, now: datetime = None) -> dict:
    now = now or utcnow()
    statuses = [registration_status(t, attempts.get(t.id), now) for t in tests]
    completed = [attempts[t.id] for t, s in zip(tests, statuses) if s == STATUS_COMPLETED]
    return {
        "totalTests": len(tests),
        "completedTests": statuses.count(STATUS_COMPLETED),
        "inProgressTests": statuses.count(STATUS_IN_PROGRESS),
        "toAttemptTests": statuses.count(STATUS_TO_ATTEMPT),
        "missedTests": statuses.count(STATUS_MISSED),
        "totalScore": sum(a.total_score or 0 for a in completed),
        "averageScore": int(round_half_up(
            sum(a.percentage or 0 for a in completed) / len(completed))) if completed else 0,
    }
