"""
Violation model - append-only proctoring events recorded against an attempt.

Violations are never updated or deduplicated; a flapping fullscreen state
produces one row per transition.
"""

import uuid
import json
from sqlalchemy import Column, Text, DateTime, ForeignKey, String, Index
from sqlalchemy.orm import relationship
from oapoint.database import Base
from oapoint.timeutils import utcnow

VIOLATION_TYPES = (
    "tab-switch",
    "copy-paste",
    "right-click",
    "fullscreen-exit",
    "suspicious-activity",
    "inspect",
    "dev-tools",
)


class Violation(Base):
    """SQLAlchemy model for the violations table."""
    __tablename__ = "violations"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique violation identifier")
    attempt_id = Column(String(36), ForeignKey("attempts.id", ondelete="CASCADE"), nullable=False,
                        doc="Attempt the event was reported against")
    type = Column(String(32), nullable=False)
    description = Column(Text, nullable=True)
    details = Column(Text, nullable=True, doc="Optional client-supplied details as JSON")
    timestamp = Column(DateTime, nullable=False, default=utcnow,
                       doc="Server receive time")

    attempt = relationship("Attempt", back_populates="violations")

    __table_args__ = (
        Index("ix_violations_attempt_id", "attempt_id"),
    )

    @property
    def details_dict(self):
        if isinstance(self.details, dict):
            return self.details
        try:
            return json.loads(self.details) if self.details else {}
        except (json.JSONDecodeError, TypeError):
            return {}

    def __repr__(self):
        return f"<Violation(id={self.id}, attempt={self.attempt_id}, type='{self.type}')>"
