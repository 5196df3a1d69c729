"""Error taxonomy shared by the scheduling library and the services.

Every error carries the HTTP status the routes answer with, so callers that
are not HTTP handlers can still branch on the category.
"""

from fastapi import status


class SchedulingError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationFailed(SchedulingError):
    """A required field is missing or malformed; nothing was sent to the database."""
    status_code = status.HTTP_400_BAD_REQUEST


class NotFound(SchedulingError):
    status_code = status.HTTP_404_NOT_FOUND


class BookingConflict(SchedulingError):
    """The system of record refused the write because the slot or room is taken."""
    status_code = status.HTTP_409_CONFLICT


class PolicyViolation(SchedulingError):
    status_code = status.HTTP_403_FORBIDDEN


class AccessDenied(PolicyViolation):
    pass


class InvalidTransition(PolicyViolation):
    status_code = status.HTTP_409_CONFLICT


class RescheduleAlreadyUsed(PolicyViolation):
    def __init__(self, detail: str = 'This appointment was already rescheduled once. Please contact the clinic.'):
        super().__init__(detail)


class PartialData(SchedulingError):
    """A dependent lookup failed; the affected dates must be treated as unavailable."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class TransactionFailed(SchedulingError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, detail: str = 'No changes were applied. Please retry or contact support.'):
        super().__init__(detail)
