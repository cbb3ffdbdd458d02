"""
Test definition models - tests, their ordered sections and questions.

A test is authored by an administrator and is read-only to students.
Questions are polymorphic over ``question_type``:
- single-correct / multi-correct: ``options`` JSON list of {text, isCorrect}
- coding: ``coding_details`` JSON with examples and (possibly hidden) test cases
"""

import uuid
import json
from sqlalchemy import (
    Column, Text, Integer, Float, DateTime, String, Boolean, ForeignKey, Table
)
from sqlalchemy.orm import relationship
from oapoint.database import Base
from oapoint.timeutils import utcnow

SINGLE_CORRECT = "single-correct"
MULTI_CORRECT = "multi-correct"
CODING = "coding"
QUESTION_TYPES = (SINGLE_CORRECT, MULTI_CORRECT, CODING)
MCQ_TYPES = (SINGLE_CORRECT, MULTI_CORRECT)

SECTION_NAMES = (
    "Aptitude", "Technical", "Coding", "Logical Reasoning", "English", "Domain Specific"
)

# Invited students (allowedStudentIds)
test_invitations = Table(
    "test_invitations",
    Base.metadata,
    Column("test_id", String(36), ForeignKey("tests.id", ondelete="CASCADE"), primary_key=True),
    Column("student_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("invited_at", DateTime, default=utcnow),
)


def _loads(value, fallback):
    if isinstance(value, (dict, list)):
        return value
    try:
        return json.loads(value) if value else fallback
    except (json.JSONDecodeError, TypeError):
        return fallback


class Test(Base):
    """
    SQLAlchemy model for the tests table.

    ``duration_minutes`` mirrors the sum of section time limits; it is
    recomputed whenever sections are written (see services.tests).
    """
    __tablename__ = "tests"
    __test__ = False

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique test identifier")
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    created_by = Column(String(36), ForeignKey("users.id"), nullable=False,
                        doc="Administrator who owns this test")
    start_date = Column(DateTime, nullable=False, doc="Availability window start (UTC)")
    end_date = Column(DateTime, nullable=False, doc="Availability window end (UTC)")
    duration_minutes = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=False)

    # Proctoring settings
    enable_camera = Column(Boolean, nullable=False, default=True)
    enable_full_screen = Column(Boolean, nullable=False, default=True)
    prevent_copy_paste = Column(Boolean, nullable=False, default=True)
    prevent_right_click = Column(Boolean, nullable=False, default=True)

    results_published = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    creator = relationship("User", foreign_keys=[created_by])
    sections = relationship("Section", back_populates="test", order_by="Section.order",
                            cascade="all, delete-orphan")
    allowed_students = relationship("User", secondary=test_invitations)
    attempts = relationship("Attempt", back_populates="test", cascade="all, delete-orphan")

    @property
    def allowed_student_ids(self):
        return {s.id for s in self.allowed_students}

    @property
    def proctoring_config(self):
        return {
            "camera": self.enable_camera,
            "fullScreen": self.enable_full_screen,
            "blockCopyPaste": self.prevent_copy_paste,
            "blockRightClick": self.prevent_right_click,
        }

    def iter_questions(self):
        """Yield (section, question) pairs in test order."""
        for section in self.sections:
            for question in section.questions:
                yield section, question

    def __repr__(self):
        return f"<Test(id={self.id}, title='{self.title}', active={self.is_active})>"


class Section(Base):
    """An ordered, individually timed block of questions."""
    __tablename__ = "sections"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    test_id = Column(String(36), ForeignKey("tests.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(64), nullable=False)
    time_limit_minutes = Column(Integer, nullable=False)
    instructions = Column(Text, nullable=True)
    order = Column(Integer, nullable=False)

    test = relationship("Test", back_populates="sections")
    questions = relationship("Question", back_populates="section", order_by="Question.position",
                             cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Section(id={self.id}, name='{self.name}', order={self.order})>"


class Question(Base):
    """A single question inside a section."""
    __tablename__ = "questions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    section_id = Column(String(36), ForeignKey("sections.id", ondelete="CASCADE"), nullable=False)
    position = Column(Integer, nullable=False, default=0)
    question_text = Column(Text, nullable=False)
    question_image = Column(Text, nullable=True, doc="Externally hosted image URL")
    question_type = Column(String(16), nullable=False)
    options = Column(Text, nullable=False, default="[]",
                     doc="MCQ options as JSON: [{text, isCorrect}]")
    coding_details = Column(Text, nullable=True,
                            doc="Coding problem as JSON: statement, examples, testCases, limits")
    points = Column(Float, nullable=False, default=1)

    section = relationship("Section", back_populates="questions")

    @property
    def options_list(self):
        return _loads(self.options, [])

    @property
    def coding_details_dict(self):
        return _loads(self.coding_details, {})

    @property
    def is_mcq(self):
        return self.question_type in MCQ_TYPES

    @property
    def correct_option_indices(self):
        return [i for i, option in enumerate(self.options_list) if option.get("isCorrect")]

    def __repr__(self):
        return f"<Question(id={self.id}, type='{self.question_type}', points={self.points})>"
