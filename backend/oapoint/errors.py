"""
Domain error taxonomy.

Services raise these exceptions; main.py registers a handler that renders
them as ``{"detail": <message>, "error": <code>}`` with the matching HTTP
status. Messages are user-facing and end with a period.
"""


class OAPointError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 400
    code = "BadRequest"
    default_message = "Request could not be processed."

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFound(OAPointError):
    status_code = 404
    code = "NotFound"
    default_message = "Resource not found."


class Unauthorized(OAPointError):
    status_code = 401
    code = "Unauthorized"
    default_message = "No token, authorization denied."


class Forbidden(OAPointError):
    status_code = 403
    code = "Forbidden"
    default_message = "Access denied."


class AlreadyStarted(OAPointError):
    status_code = 409
    code = "AlreadyStarted"
    default_message = "Test has already been started."


class TestInactive(OAPointError):
    __test__ = False  # not a pytest test class

    status_code = 400
    code = "TestInactive"
    default_message = "Test is not currently active."


class NotInvited(OAPointError):
    status_code = 403
    code = "NotInvited"
    default_message = "You are not authorized to take this test."


class OutsideWindow(OAPointError):
    status_code = 400
    code = "OutsideWindow"
    default_message = "Test is not available at this time."


class WrongSection(OAPointError):
    status_code = 409
    code = "WrongSection"
    default_message = "Only the current section can be completed."


class AttemptClosed(OAPointError):
    status_code = 409
    code = "AttemptClosed"
    default_message = "Test attempt has already been submitted."


class InvalidAnswer(OAPointError):
    status_code = 422
    code = "InvalidAnswer"
    default_message = "Answer does not match the question type."


class InvalidTest(OAPointError):
    status_code = 400
    code = "InvalidTest"
    default_message = "Test definition is invalid."


class RateLimited(OAPointError):
    status_code = 429
    code = "RateLimited"
    default_message = "Too many requests. Please slow down."


class JudgeUnavailable(OAPointError):
    status_code = 502
    code = "JudgeUnavailable"
    default_message = "Code execution service is unavailable. Please try again later."


class BadRequest(OAPointError):
    """Malformed or unsupported request input."""
