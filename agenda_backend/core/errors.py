"""Error taxonomy shared by the agenda services.

Every error is an ``HTTPException`` so services can raise them directly and
FastAPI renders the status code and detail without extra handlers.
"""

from fastapi import HTTPException, status


class AgendaError(HTTPException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = 'Internal server error.'

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(status_code=self.status_code, detail=detail or self.default_detail)


class ValidationError(AgendaError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Invalid request.'


class AuthorizationError(AgendaError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = 'You are not allowed to perform this action.'


class NotFoundError(AgendaError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Resource not found.'


class ConflictError(AgendaError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'This time is already booked.'


class UpstreamError(AgendaError):
    """Payment gateway unreachable or failing. Safe to retry."""

    default_detail = 'Payment gateway unavailable. Please try again.'


class TransientStorageError(AgendaError):
    """Database unavailable. Safe to retry."""

    default_detail = 'Database unavailable. Verify DATABASE_URL and Postgres credentials.'
