"""
Admin API routes - test management and reporting.

Provides endpoints for:
- Creating, listing, updating and deleting tests
- Inviting students and toggling a test's active flag
- Results tables, single attempt review and test statistics
- Listing students

Admins only see tests they created; anything else is reported as not found.
"""

import time

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session, joinedload

from oapoint.auth import require_admin
from oapoint.database import get_db
from oapoint.errors import BadRequest, NotFound
from oapoint.logging_config import get_logger, log_with_context
from oapoint.models.attempt import Attempt, SectionAttempt
from oapoint.models.test import Test, Section
from oapoint.models.user import User, ROLE_STUDENT
from oapoint.schemas import AddStudentsRequest, TestCreate, TestUpdate
from oapoint.services import reports
from oapoint.services import tests as test_service

router = APIRouter()
logger = get_logger("http")


@router.post("/api/admin/tests", status_code=201)
def create_test(request: TestCreate, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    """Create a test (inactive until toggled)."""
    test = test_service.create_test(db, admin, request)
    return {
        "message": "Test created successfully",
        "test": test_service.serialize_test(test),
    }


@router.get("/api/admin/tests")
def list_tests(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    """List the admin's tests, newest first."""
    start_time = time.time()

    tests = db.query(Test).options(
        joinedload(Test.sections).joinedload(Section.questions)
    ).filter(Test.created_by == admin.id).order_by(Test.created_at.desc()).all()

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO",
        "Listed {} tests".format(len(tests)),
        context={"admin_id": str(admin.id)},
        extra_data={"duration_ms": round(duration_ms, 2)})

    return {"tests": [test_service.serialize_test(t) for t in tests]}


@router.get("/api/admin/tests/{test_id}")
def get_test(test_id: str, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    test = test_service.load_owned_test(db, test_id, admin)
    return {"test": test_service.serialize_test(test)}


@router.put("/api/admin/tests/{test_id}")
def update_test(test_id: str, request: TestUpdate,
                admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    """Partially update a test. Sections are replaced wholesale when given."""
    test = test_service.load_owned_test(db, test_id, admin)
    test = test_service.update_test(db, test, request)
    return {
        "message": "Test updated successfully",
        "test": test_service.serialize_test(test),
    }


@router.delete("/api/admin/tests/{test_id}")
def delete_test(test_id: str, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    """Delete a test together with its attempts."""
    test = test_service.load_owned_test(db, test_id, admin)
    test_service.delete_test(db, test)
    return {"message": "Test deleted successfully"}


@router.post("/api/admin/tests/{test_id}/add-students")
def add_students(test_id: str, request: AddStudentsRequest,
                 admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    """Merge student ids into the invitation list."""
    if not request.student_ids:
        raise BadRequest("Please provide an array of student IDs.")
    test = test_service.load_owned_test(db, test_id, admin)
    added = test_service.add_students(db, test, request.student_ids)
    return {
        "message": "Added {} students to test successfully".format(added),
        "added": added,
        "test": test_service.serialize_test(test),
    }


@router.patch("/api/admin/tests/{test_id}/toggle-status")
def toggle_status(test_id: str, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    test = test_service.load_owned_test(db, test_id, admin)
    test = test_service.toggle_status(db, test)
    return {
        "message": "Test {} successfully".format("activated" if test.is_active else "deactivated"),
        "test": test_service.serialize_test(test),
    }


@router.get("/api/admin/tests/{test_id}/results")
def get_results(test_id: str, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    """All attempts for the test, best score first."""
    start_time = time.time()

    test = test_service.load_owned_test(db, test_id, admin)
    rows = reports.results_rows(reports.load_test_attempts(db, test.id))

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO",
        "Results fetched: {} attempts".format(len(rows)),
        context={"test_id": str(test.id)},
        extra_data={"duration_ms": round(duration_ms, 2)})

    return {"test": {"id": test.id, "title": test.title}, "results": rows}


@router.get("/api/admin/tests/{test_id}/attempts/{attempt_id}")
def get_attempt(test_id: str, attempt_id: str,
                admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    """Full attempt with answers, score breakdown and violation log."""
    test = test_service.load_owned_test(db, test_id, admin)
    attempt = db.query(Attempt).options(
        joinedload(Attempt.student),
        joinedload(Attempt.violations),
        joinedload(Attempt.section_attempts).joinedload(SectionAttempt.answers),
    ).filter(Attempt.id == attempt_id, Attempt.test_id == test.id).first()

    if not attempt:
        raise NotFound("Test attempt not found.")

    result = reports.serialize_attempt(attempt)
    result["student"] = reports.serialize_student(attempt.student) if attempt.student else None
    return {"attempt": result}


@router.get("/api/admin/tests/{test_id}/statistics")
def get_statistics(test_id: str, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    test = test_service.load_owned_test(db, test_id, admin)
    attempts = reports.load_test_attempts(db, test.id)
    return {"statistics": reports.summarize_test(test, attempts)}


@router.get("/api/admin/students")
def list_students(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    """All students, newest first."""
    students = db.query(User).filter(User.role == ROLE_STUDENT).order_by(User.created_at.desc()).all()
    return {"students": [reports.serialize_student(s) for s in students]}
