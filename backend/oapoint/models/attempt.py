"""
Attempt models - a student's progress through one test.

Each attempt contains:
- The current section pointer (monotonic, sections are never revisited)
- One SectionAttempt per section the student has entered
- Upserted answers keyed by question
- The proctoring violation log
- The final score and per-question breakdown once submitted
"""

import uuid
import json
from sqlalchemy import (
    Column, Text, Integer, Float, DateTime, ForeignKey, Index, String, UniqueConstraint
)
from sqlalchemy.orm import relationship
from oapoint.database import Base
from oapoint.timeutils import utcnow

STATUS_IN_PROGRESS = "IN_PROGRESS"
STATUS_SUBMITTED = "SUBMITTED"


def _loads(value, fallback):
    if isinstance(value, (dict, list)):
        return value
    try:
        return json.loads(value) if value else fallback
    except (json.JSONDecodeError, TypeError):
        return fallback


class Attempt(Base):
    """
    SQLAlchemy model for the attempts table.

    Lifecycle statuses:
    - IN_PROGRESS: started, accepting answers and section completions
    - SUBMITTED: finalized and scored; immutable from here on

    A (test, student) pair has at most one attempt; "not started" is the
    absence of a row.
    """
    __tablename__ = "attempts"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique attempt identifier")
    student_id = Column(String(36), ForeignKey("users.id"), nullable=False,
                        doc="Student who owns this attempt")
    test_id = Column(String(36), ForeignKey("tests.id", ondelete="CASCADE"), nullable=False,
                     doc="Test being attempted")
    start_time = Column(DateTime, nullable=False,
                        doc="When the student started the test")
    end_time = Column(DateTime, nullable=True,
                      doc="When the attempt was submitted (NULL while in progress)")
    current_section_index = Column(Integer, nullable=False, default=0)
    status = Column(String(16), nullable=False, default=STATUS_IN_PROGRESS)
    total_score = Column(Float, nullable=False, default=0)
    max_score = Column(Float, nullable=False, default=0)
    percentage = Column(Integer, nullable=False, default=0)
    score_breakdown = Column(Text, nullable=True,
                             doc="Per-question scoring breakdown as JSON list")
    browser_info = Column(Text, nullable=True,
                          doc="Client userAgent / screenResolution / timezone as JSON")
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    student = relationship("User", back_populates="attempts")
    test = relationship("Test", back_populates="attempts")
    section_attempts = relationship("SectionAttempt", back_populates="attempt",
                                    order_by="SectionAttempt.section_index",
                                    cascade="all, delete-orphan")
    violations = relationship("Violation", back_populates="attempt",
                              order_by="Violation.timestamp",
                              cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("test_id", "student_id", name="uq_attempts_test_student"),
        Index("ix_attempts_student_id", "student_id"),
        Index("ix_attempts_test_id", "test_id"),
        Index("ix_attempts_status", "status"),
    )

    @property
    def is_submitted(self):
        return self.status == STATUS_SUBMITTED

    @property
    def score_breakdown_list(self):
        return _loads(self.score_breakdown, [])

    @property
    def browser_info_dict(self):
        return _loads(self.browser_info, {})

    def section_attempt_for(self, section_id):
        for section_attempt in self.section_attempts:
            if section_attempt.section_id == section_id:
                return section_attempt
        return None

    def answers_by_question(self):
        """Map question_id -> Answer across all sections."""
        return {
            answer.question_id: answer
            for section_attempt in self.section_attempts
            for answer in section_attempt.answers
        }

    def __repr__(self):
        return f"<Attempt(id={self.id}, student={self.student_id}, test={self.test_id}, status='{self.status}')>"


class SectionAttempt(Base):
    """The student's visit to one section: when it opened and closed, and its answers."""
    __tablename__ = "section_attempts"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    attempt_id = Column(String(36), ForeignKey("attempts.id", ondelete="CASCADE"), nullable=False)
    section_id = Column(String(36), ForeignKey("sections.id", ondelete="CASCADE"), nullable=False)
    section_index = Column(Integer, nullable=False)
    section_name = Column(Text, nullable=False)
    started_at = Column(DateTime, nullable=False, default=utcnow)
    completed_at = Column(DateTime, nullable=True)

    attempt = relationship("Attempt", back_populates="section_attempts")
    section = relationship("Section")
    answers = relationship("Answer", back_populates="section_attempt",
                           cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("attempt_id", "section_id", name="uq_section_attempts_attempt_section"),
    )

    @property
    def is_completed(self):
        return self.completed_at is not None

    @property
    def time_spent_seconds(self):
        if not self.completed_at:
            return None
        return int((self.completed_at - self.started_at).total_seconds())


class Answer(Base):
    """
    A submitted answer. One row per (attempt, question); resubmission
    overwrites the row in place.
    """
    __tablename__ = "answers"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    attempt_id = Column(String(36), ForeignKey("attempts.id", ondelete="CASCADE"), nullable=False)
    section_attempt_id = Column(String(36), ForeignKey("section_attempts.id", ondelete="CASCADE"),
                                nullable=False)
    question_id = Column(String(36), ForeignKey("questions.id", ondelete="CASCADE"), nullable=False)
    question_type = Column(String(16), nullable=False)
    selected_options = Column(Text, nullable=True, doc="Selected option indices as JSON list")
    code = Column(Text, nullable=True)
    language = Column(String(16), nullable=True)
    test_case_results = Column(Text, nullable=True,
                               doc="Judge results as JSON: [{passed, input, expectedOutput, actualOutput, error}]")
    time_spent = Column(Integer, nullable=False, default=0, doc="Seconds spent on the question")
    submitted_at = Column(DateTime, nullable=False, default=utcnow)

    section_attempt = relationship("SectionAttempt", back_populates="answers")
    question = relationship("Question")

    __table_args__ = (
        UniqueConstraint("attempt_id", "question_id", name="uq_answers_attempt_question"),
    )

    @property
    def selected_options_list(self):
        return _loads(self.selected_options, [])

    @property
    def test_case_results_list(self):
        return _loads(self.test_case_results, [])

    @property
    def is_empty(self):
        """No option picked and no code written."""
        return not self.selected_options_list and not (self.code or "").strip()

    def __repr__(self):
        return f"<Answer(attempt={self.attempt_id}, question={self.question_id}, type='{self.question_type}')>"
