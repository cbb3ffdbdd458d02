"""
User model - administrators and students.

Administrators author tests; students are invited to tests and own their
attempts. Credentials live with the auth service, so no password is kept.
"""

import uuid
from sqlalchemy import Column, Text, DateTime, String, Boolean
from sqlalchemy.orm import relationship
from oapoint.database import Base
from oapoint.timeutils import utcnow

ROLE_ADMIN = "admin"
ROLE_STUDENT = "student"


class User(Base):
    """SQLAlchemy model for the users table."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique user identifier")
    name = Column(Text, nullable=False,
                  doc="Full name")
    email = Column(String(255), nullable=False, unique=True,
                   doc="Lower-cased login email")
    role = Column(String(16), nullable=False, default=ROLE_STUDENT,
                  doc="admin | student")
    registration_number = Column(String(64), nullable=True, unique=True,
                                 doc="Alphanumeric registration number (students only)")
    phone = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow)

    attempts = relationship("Attempt", back_populates="student")

    @property
    def is_admin(self):
        return self.role == ROLE_ADMIN

    @property
    def is_student(self):
        return self.role == ROLE_STUDENT

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"
