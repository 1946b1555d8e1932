"""Error kinds raised by the trip lifecycle operations.

The HTTP layer maps each kind to a status code in ``main.py``; everything
below carries a human readable message only.
"""


class LifecycleError(Exception):
    status_code = 500

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class ValidationError(LifecycleError):
    """Bad input. Nothing was written."""
    status_code = 400


class NotFoundError(LifecycleError):
    """A referenced student, trip or request does not exist."""
    status_code = 404


class ConflictError(LifecycleError):
    """The write would break an invariant (overlapping trip, double resolution)."""
    status_code = 409


class StaleApprovalWarning(UserWarning):
    """An approval landed after the student's trip had already been closed."""

    def __init__(self, request_id, student_id):
        super().__init__(
            f"Extension request {request_id} approved but student {student_id} has no active trip"
        )
        self.request_id = request_id
        self.student_id = student_id
