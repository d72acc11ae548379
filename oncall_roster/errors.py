"""
errors.py — Exception taxonomy

Unfillable slots are never errors (they are reported as holes). These
exceptions cover invalid input and I/O failures only.
"""


class PlanningError(Exception):
    """Base class for roster planning failures."""


class InvalidInputError(PlanningError):
    """Slot or availability data is malformed (unknown kind, missing fields, ...)."""


class PersistenceError(PlanningError):
    """A read or write against the row store failed."""


class EmailDeliveryError(PlanningError):
    """The email API rejected a message or could not be reached."""

    def __init__(self, message: str, status_code: int = None, retryable: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable
