from oapoint.models.user import User
from oapoint.models.test import Test, Section, Question, test_invitations
from oapoint.models.attempt import Attempt, SectionAttempt, Answer
from oapoint.models.violation import Violation

__all__ = [
    "User", "Test", "Section", "Question", "test_invitations",
    "Attempt", "SectionAttempt", "Answer", "Violation",
]
