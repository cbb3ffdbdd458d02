"""
Compiler API routes - run student code through the judge.

- run: custom input, or the question's example cases
- submit: examples plus every test case, hidden ones included
- languages: supported languages with a starter template
"""

import time

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from oapoint.auth import require_student
from oapoint.database import get_db
from oapoint.errors import BadRequest, NotFound
from oapoint.logging_config import get_logger, log_with_context
from oapoint.models.test import Test, CODING
from oapoint.models.user import User
from oapoint.schemas import RunCodeRequest, SubmitCodeRequest
from oapoint.services.judge import (
    CodeExecutor, SUPPORTED_LANGUAGES, clean_output, get_code_executor, run_cases
)
from oapoint.services.scoring import round_half_up
from oapoint.services.session import load_test

router = APIRouter()
logger = get_logger("judge")


def _check_language(language: str):
    if language not in SUPPORTED_LANGUAGES:
        raise BadRequest("Only C++ is supported currently.")


def _find_coding_question(test: Test, question_id: str):
    for _, question in test.iter_questions():
        if question.id == question_id and question.question_type == CODING:
            return question
    raise NotFound("Coding question not found.")


def _load_question(db: Session, test_id: str, question_id: str, student: User):
    if not test_id or not question_id:
        raise BadRequest("testId and questionId are required.")
    test = load_test(db, test_id)
    if student.id not in test.allowed_student_ids:
        raise NotFound("Test not found or not registered.")
    return _find_coding_question(test, question_id)


@router.post("/api/compiler/run")
def run_code(request: RunCodeRequest, student: User = Depends(require_student),
             db: Session = Depends(get_db), executor: CodeExecutor = Depends(get_code_executor)):
    """Run with custom input, or against the question's examples."""
    _check_language(request.language)
    start_time = time.time()

    if request.custom_input is not None:
        result = executor.execute(request.code, request.language, request.custom_input)
        return {
            "success": result.success,
            "output": clean_output(result.output),
            "error": result.error,
            "executionTime": result.time_ms,
        }

    question = _load_question(db, request.test_id, request.question_id, student)
    examples = question.coding_details_dict.get("examples", [])
    results = run_cases(executor, request.code, request.language, examples)
    all_passed = all(r["passed"] for r in results)

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO",
        "Ran {} example cases".format(len(results)),
        context={"student_id": str(student.id), "question_id": str(question.id)},
        extra_data={"duration_ms": round(duration_ms, 2), "all_passed": all_passed})

    return {
        "success": True,
        "results": results,
        "allPassed": all_passed,
        "message": "All example test cases passed!" if all_passed else "Some test cases failed",
    }


@router.post("/api/compiler/submit")
def submit_code(request: SubmitCodeRequest, student: User = Depends(require_student),
                db: Session = Depends(get_db), executor: CodeExecutor = Depends(get_code_executor)):
    """Run against examples and all test cases and report a score."""
    _check_language(request.language)
    start_time = time.time()

    question = _load_question(db, request.test_id, request.question_id, student)
    details = question.coding_details_dict
    cases = [dict(example, isHidden=False) for example in details.get("examples", [])]
    cases.extend(details.get("testCases", []))

    results = run_cases(executor, request.code, request.language, cases)
    passed_count = sum(1 for r in results if r["passed"])
    total = len(results)
    points = question.points or 1
    score = int(round_half_up(passed_count / total * points)) if total else 0

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO",
        "Code submitted: {}/{} cases passed".format(passed_count, total),
        context={"student_id": str(student.id), "question_id": str(question.id)},
        extra_data={"duration_ms": round(duration_ms, 2)})

    return {
        "success": True,
        "results": results,
        "passedCount": passed_count,
        "totalTestCases": total,
        "score": score,
        "maxScore": points,
        "message": "{}/{} test cases passed".format(passed_count, total),
    }


@router.get("/api/compiler/languages")
def list_languages():
    return {"languages": list(SUPPORTED_LANGUAGES.values())}
