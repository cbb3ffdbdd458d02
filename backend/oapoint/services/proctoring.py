"""
Proctoring Service - violation reporting and client signal mapping.

report_violation appends to an attempt's log with a server timestamp. It
never raises: a failure is logged and the caller carries on, because
proctoring must not interrupt the test. There is no deduplication and no
rate limit; reviewers treat volume as a signal rather than an exact count.

ProctoringListener is the capability interface a test-taking client drives
(focus loss, fullscreen exit, dev tools, forbidden key combos, right click).
ViolationRecorder is the listener the report endpoint binds to the attempt; it
turns each signal into a violation through report_violation.
"""

import json
from abc import ABC, abstractmethod
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from oapoint.logging_config import attempt_context, get_logger, log_with_context
from oapoint.models.attempt import Attempt
from oapoint.models.violation import Violation, VIOLATION_TYPES
from oapoint.timeutils import utcnow

logger = get_logger("proctoring")

FALLBACK_TYPE = "suspicious-activity"


def report_violation(db: Session, attempt: Attempt, violation_type: str,
                     description: str = None, details: dict = None) -> Optional[Violation]:
    """
    Append a violation to the attempt's log.

    Unknown types are stored as ``suspicious-activity`` with the reported
    type kept in details. Submitted attempts still accept violations.
    Returns the stored Violation, or None if the write failed.
    """
    details = dict(details or {})
    if violation_type not in VIOLATION_TYPES:
        details["reportedType"] = violation_type
        violation_type = FALLBACK_TYPE

    violation = Violation(
        attempt_id=attempt.id,
        type=violation_type,
        description=description,
        details=json.dumps(details) if details else None,
        timestamp=utcnow(),
    )
    try:
        db.add(violation)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        log_with_context(logger, "ERROR", "Failed to record violation: {}".format(e),
                         context={"attempt_id": str(attempt.id)},
                         extra_data={"type": violation_type})
        return None

    log_with_context(logger, "WARNING", "Violation recorded: {}".format(violation_type),
                     context=attempt_context(attempt),
                     extra_data={"description": description})
    return violation


class ProctoringListener(ABC):
    """Signals raised by a proctored test client."""

    @abstractmethod
    def on_focus_lost(self, details: dict = None):
        pass

    @abstractmethod
    def on_fullscreen_exit(self, details: dict = None):
        pass

    @abstractmethod
    def on_dev_tools_suspected(self, details: dict = None):
        pass

    @abstractmethod
    def on_forbidden_key_combo(self, key: str, details: dict = None):
        pass

    @abstractmethod
    def on_right_click(self, details: dict = None):
        pass


class ViolationRecorder(ProctoringListener):
    """Records every proctoring signal as a violation on one attempt."""

    def __init__(self, db: Session, attempt: Attempt):
        self.db = db
        self.attempt = attempt

    def on_focus_lost(self, details: dict = None):
        return report_violation(self.db, self.attempt, "tab-switch",
                                "Switched to another tab/window", details)

    def on_fullscreen_exit(self, details: dict = None):
        return report_violation(self.db, self.attempt, "fullscreen-exit",
                                "Exited fullscreen mode", details)

    def on_dev_tools_suspected(self, details: dict = None):
        return report_violation(self.db, self.attempt, "dev-tools",
                                "Developer tools detected", details)

    def on_forbidden_key_combo(self, key: str, details: dict = None):
        key = (key or "").upper()
        if key in ("C", "V", "X"):
            return report_violation(self.db, self.attempt, "copy-paste",
                                    "{} key combination attempted".format(key), details)
        # F12, Ctrl+Shift+I/J/C, Ctrl+U
        return report_violation(self.db, self.attempt, "dev-tools",
                                "Developer tools shortcut detected", details)

    def on_right_click(self, details: dict = None):
        return report_violation(self.db, self.attempt, "right-click",
                                "Right-click attempted", details)


SIGNAL_HANDLERS = {
    "focus-lost": "on_focus_lost",
    "fullscreen-exit": "on_fullscreen_exit",
    "dev-tools-suspected": "on_dev_tools_suspected",
    "forbidden-key-combo": "on_forbidden_key_combo",
    "right-click": "on_right_click",
}


def dispatch_signal(listener: ProctoringListener, signal: str, key: str = None, details: dict = None):
    """Route a named client signal to the matching listener hook."""
    handler_name = SIGNAL_HANDLERS.get(signal)
    if handler_name is None:
        raise ValueError("Unknown proctoring signal: {}".format(signal))
    handler = getattr(listener, handler_name)
    if signal == "forbidden-key-combo":
        return handler(key, details)
    return handler(details)
