import asyncio
import functools
import logging
from typing import Any, Dict, Iterable, List, Union
from uuid import UUID

from fastapi import status
from sqlalchemy.exc import DisconnectionError, InterfaceError, OperationalError

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    @property
    def detail(self) -> Union[str, Dict[str, Any]]:
        """Payload for HTTPException.detail. Subclasses add field attribution."""
        return self.message


class NotFoundError(ServiceError):
    def __init__(self, message: str = "Not found") -> None:
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class AccessDeniedError(ServiceError):
    def __init__(self, message: str = "Access denied") -> None:
        super().__init__(message, status.HTTP_403_FORBIDDEN)


class DuplicateRecordError(ServiceError):
    def __init__(self, message: str = "Attendance already marked for this date") -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)


class InvalidAttendanceDateError(ServiceError):
    def __init__(self, message: str = "Cannot mark attendance for future dates") -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class InvalidEnrollmentError(ServiceError):
    """One or more students are not actively enrolled in the batch."""

    def __init__(self, invalid_student_ids: Iterable[UUID]) -> None:
        self.invalid_student_ids: List[UUID] = list(invalid_student_ids)
        super().__init__(
            "Some students are not enrolled in this batch",
            status.HTTP_400_BAD_REQUEST,
        )

    @property
    def detail(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "invalid_student_ids": [str(s) for s in self.invalid_student_ids],
        }


class _WindowExpiredError(ServiceError):
    def __init__(self, message: str, window_hours: int) -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)
        self.window_hours = window_hours

    @property
    def detail(self) -> Dict[str, Any]:
        return {"message": self.message, "window_hours": self.window_hours}


class EditWindowExpiredError(_WindowExpiredError):
    def __init__(self, window_hours: int) -> None:
        super().__init__(
            f"Attendance can only be edited within {window_hours} hours of marking",
            window_hours,
        )


class DeleteWindowExpiredError(_WindowExpiredError):
    def __init__(self, window_hours: int) -> None:
        super().__init__(
            f"Attendance records older than {window_hours} hours cannot be deleted",
            window_hours,
        )


class StoreUnavailableError(ServiceError):
    """Infrastructure failure. The message never carries driver details."""

    def __init__(self, message: str = "Attendance store is temporarily unavailable") -> None:
        super().__init__(message, status.HTTP_503_SERVICE_UNAVAILABLE)


_STORE_ERRORS = (OperationalError, InterfaceError, DisconnectionError, asyncio.TimeoutError, ConnectionError)


def translate_store_errors(func):
    """Decorator: surface database connectivity failures as StoreUnavailableError."""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except _STORE_ERRORS as e:
            logger.error("Store unavailable in %s: %s", func.__name__, e)
            raise StoreUnavailableError() from e

    return wrapper
