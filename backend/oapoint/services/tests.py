"""
Test authoring service - create, update, invite and serialize tests.

Every MCQ question must have at least one option marked correct; this is
checked whenever sections are written. ``duration_minutes`` is recomputed
from the section time limits on the same path.
"""

import json
from typing import List

from sqlalchemy.orm import Session, joinedload

from oapoint.errors import InvalidTest, NotFound
from oapoint.logging_config import get_logger, log_with_context
from oapoint.models.attempt import Attempt
from oapoint.models.test import Test, Section, Question, CODING, MCQ_TYPES
from oapoint.models.user import User, ROLE_STUDENT
from oapoint.schemas import SectionIn, TestCreate, TestUpdate
from oapoint.timeutils import to_naive_utc, isoformat

logger = get_logger("db")

# Test columns an update may clear with an explicit null
NULLABLE_TEST_FIELDS = {"description"}


def validate_sections(sections: List[SectionIn]) -> None:
    for section in sections:
        for number, question in enumerate(section.questions, 1):
            if question.question_type in MCQ_TYPES:
                if not any(option.is_correct for option in question.options):
                    raise InvalidTest(
                        'Question {} in section "{}" must have at least one correct answer selected.'.format(
                            number, section.name)
                    )
            elif question.coding_details is None:
                raise InvalidTest(
                    'Question {} in section "{}" is a coding question without problem details.'.format(
                        number, section.name)
                )


def build_sections(sections: List[SectionIn]) -> List[Section]:
    built = []
    ordered = sorted(enumerate(sections), key=lambda pair: (
        pair[1].order if pair[1].order is not None else pair[0], pair[0]))
    for index, (_, section_in) in enumerate(ordered):
        section = Section(
            name=section_in.name,
            time_limit_minutes=section_in.time_limit,
            instructions=section_in.instructions,
            order=index,
        )
        for position, question_in in enumerate(section_in.questions):
            is_coding = question_in.question_type == CODING
            section.questions.append(Question(
                position=position,
                question_text=question_in.question_text,
                question_image=question_in.question_image,
                question_type=question_in.question_type,
                options="[]" if is_coding else json.dumps(
                    [o.model_dump(by_alias=True) for o in question_in.options]),
                coding_details=json.dumps(question_in.coding_details.model_dump(by_alias=True))
                if is_coding else None,
                points=question_in.points,
            ))
        built.append(section)
    return built


def load_owned_test(db: Session, test_id: str, admin: User) -> Test:
    test = db.query(Test).options(
        joinedload(Test.sections).joinedload(Section.questions)
    ).filter(Test.id == test_id, Test.created_by == admin.id).first()
    if not test:
        raise NotFound("Test not found.")
    return test


def create_test(db: Session, admin: User, payload: TestCreate) -> Test:
    validate_sections(payload.sections)
    sections = build_sections(payload.sections)
    test = Test(
        title=payload.title.strip(),
        description=payload.description,
        created_by=admin.id,
        start_date=to_naive_utc(payload.start_date),
        end_date=to_naive_utc(payload.end_date),
        enable_camera=payload.enable_camera,
        enable_full_screen=payload.enable_full_screen,
        prevent_copy_paste=payload.prevent_copy_paste,
        prevent_right_click=payload.prevent_right_click,
        is_active=False,
        sections=sections,
        duration_minutes=sum(s.time_limit_minutes for s in sections),
    )
    db.add(test)
    db.commit()
    db.refresh(test)

    log_with_context(logger, "INFO", "Test created: {}".format(test.title),
                     context={"test_id": str(test.id), "admin_id": str(admin.id)},
                     extra_data={"sections": len(sections), "duration_minutes": test.duration_minutes})
    return test


def update_test(db: Session, test: Test, payload: TestUpdate) -> Test:
    fields = payload.model_dump(exclude_unset=True, exclude={"sections"})
    for name in ("start_date", "end_date"):
        if name in fields:
            fields[name] = to_naive_utc(fields[name])
    for name, value in fields.items():
        if value is None and name not in NULLABLE_TEST_FIELDS:
            continue
        setattr(test, name, value.strip() if name == "title" else value)

    if test.end_date <= test.start_date:
        raise InvalidTest("endDate must be after startDate.")

    if payload.sections is not None:
        validate_sections(payload.sections)
        has_attempts = db.query(Attempt.id).filter(Attempt.test_id == test.id).first() is not None
        if has_attempts:
            raise InvalidTest("Sections cannot be changed after students have started the test.")
        test.sections = build_sections(payload.sections)
        test.duration_minutes = sum(s.time_limit_minutes for s in test.sections)

    db.commit()
    db.refresh(test)
    log_with_context(logger, "INFO", "Test updated: {}".format(test.title),
                     context={"test_id": str(test.id)},
                     extra_data={"fields": sorted(payload.model_dump(exclude_unset=True).keys())})
    return test


def add_students(db: Session, test: Test, student_ids: List[str]) -> int:
    """Invite students by id; unknown ids and non-students are ignored. Returns the number newly added."""
    students = db.query(User).filter(User.id.in_(student_ids), User.role == ROLE_STUDENT).all()
    already = test.allowed_student_ids
    added = [s for s in students if s.id not in already]
    test.allowed_students.extend(added)
    db.commit()

    log_with_context(logger, "INFO", "Invited {} students".format(len(added)),
                     context={"test_id": str(test.id)},
                     extra_data={"requested": len(student_ids), "ignored": len(student_ids) - len(students)})
    return len(added)


def toggle_status(db: Session, test: Test) -> Test:
    test.is_active = not test.is_active
    db.commit()
    db.refresh(test)
    log_with_context(logger, "INFO",
                     "Test {}".format("activated" if test.is_active else "deactivated"),
                     context={"test_id": str(test.id)})
    return test


def delete_test(db: Session, test: Test) -> None:
    test_id = str(test.id)
    db.delete(test)
    db.commit()
    log_with_context(logger, "INFO", "Test deleted", context={"test_id": test_id})


def serialize_question(question: Question, reveal_answers: bool) -> dict:
    data = {
        "id": question.id,
        "questionText": question.question_text,
        "questionImage": question.question_image,
        "questionType": question.question_type,
        "points": question.points,
    }
    if question.question_type == CODING:
        details = dict(question.coding_details_dict)
        if not reveal_answers:
            details["testCases"] = [c for c in details.get("testCases", []) if not c.get("isHidden")]
        data["codingDetails"] = details
    else:
        options = question.options_list
        if not reveal_answers:
            options = [{"text": o.get("text", "")} for o in options]
        data["options"] = options
    return data


def serialize_test(test: Test, for_student: bool = False, reveal_answers: bool = None) -> dict:
    """
    Serialize a test. Students get no invitation list, and unless
    reveal_answers is set (submitted results) no correct flags or hidden cases.
    """
    if reveal_answers is None:
        reveal_answers = not for_student
    data = {
        "id": test.id,
        "title": test.title,
        "description": test.description,
        "startDate": isoformat(test.start_date),
        "endDate": isoformat(test.end_date),
        "duration": test.duration_minutes,
        "isActive": test.is_active,
        "resultsPublished": test.results_published,
        "proctoring": test.proctoring_config,
        "sections": [
            {
                "id": section.id,
                "name": section.name,
                "timeLimit": section.time_limit_minutes,
                "instructions": section.instructions,
                "order": section.order,
                "numberOfQuestions": len(section.questions),
                "questions": [serialize_question(q, reveal_answers) for q in section.questions],
            }
            for section in test.sections
        ],
    }
    if not for_student:
        data["createdBy"] = test.created_by
        data["allowedStudents"] = sorted(test.allowed_student_ids)
        data["createdAt"] = isoformat(test.created_at)
        data["updatedAt"] = isoformat(test.updated_at)
    return data
