"""Exception types raised by the tracker core."""

from __future__ import annotations

from typing import Optional

PERMISSION_HINT = (
    "The store is rejecting writes. Check the access rules for the "
    "expenses, recurring_bills and work_sessions collections."
)
UNAVAILABLE_HINT = "Store unavailable. Check your internet connection."


class WinnerTrackerError(Exception):
    """Base class for every tracker error."""


class ValidationError(WinnerTrackerError, ValueError):
    """Bad user input. Raised before any state is changed."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class StorageUnavailable(WinnerTrackerError):
    """The backing store could not be reached."""


class StorageError(WinnerTrackerError):
    """The backing store rejected an operation."""

    def __init__(self, message: str, hint: Optional[str] = None):
        super().__init__(message)
        self.hint = hint

    def user_message(self) -> str:
        return self.hint or str(self)


class RecordNotFound(StorageError):
    """Update or delete addressed a record id the store does not hold."""


class LinkRepairFailure(StorageError):
    """A recurring-bill mirror write failed after its expense was saved."""

    def __init__(self, message: str, expense_id: Optional[str] = None):
        super().__init__(message)
        self.expense_id = expense_id


class AlreadyRunning(WinnerTrackerError):
    """A work session is already active."""


class InvalidSessionState(WinnerTrackerError):
    """A work-session transition was requested from the wrong state."""
