import logging
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from starlette import status

logger = logging.getLogger(__name__)


class StorageCategory(str, Enum):
    POLL = "poll"
    OPTIONS = "options"
    VOTES = "votes"


class PollsError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "POLLS_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_content(self) -> dict:
        return {"message": self.message, "error_code": self.error_code}


class ValidationError(PollsError):
    """Bad input shape. The operation is never attempted."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_code = "VALIDATION_ERROR"

    def __init__(self, errors: Dict[str, List[str]], message: str = "Validation failed"):
        super().__init__(message)
        self.errors = errors

    def to_content(self) -> dict:
        return {**super().to_content(), "errors": self.errors}


class AuthError(PollsError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "AUTH_ERROR"

    def __init__(self, message: str = "Authentication required", redirect_to: Optional[str] = None):
        super().__init__(message)
        self.redirect_to = redirect_to

    def to_content(self) -> dict:
        return {**super().to_content(), "redirect_to": self.redirect_to}


class PermissionDenied(PollsError):
    status_code = status.HTTP_403_FORBIDDEN
    error_code = "INSUFFICIENT_PERMISSIONS"

    def __init__(self, message: str, redirect_to: Optional[str] = None):
        super().__init__(message)
        self.redirect_to = redirect_to

    def to_content(self) -> dict:
        return {**super().to_content(), "redirect_to": self.redirect_to}


class NotFound(PollsError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "RESOURCE_NOT_FOUND"


class StorageError(PollsError):
    """A storage write failed.

    ``category`` is for logs only; clients get ``message`` and nothing else
    about the failure.
    """

    error_code = "STORAGE_ERROR"

    def __init__(self, category: StorageCategory, message: str, conflict: bool = False):
        super().__init__(message)
        self.category = category
        self.conflict = conflict
        self.status_code = status.HTTP_409_CONFLICT if conflict else status.HTTP_503_SERVICE_UNAVAILABLE


@contextmanager
def storage_errors(category: StorageCategory, message: str):
    """Translate SQLAlchemy failures raised inside the block into a StorageError."""
    try:
        yield
    except SQLAlchemyError as exc:
        logger.error(f"Storage failure [{category.value}]: {type(exc).__name__}: {exc}")
        raise StorageError(category, message, conflict=isinstance(exc, IntegrityError)) from exc


async def polls_exception_handler(request: Request, exc: PollsError):
    request_id = str(uuid.uuid4())[:8]
    client_ip = request.client.host if request.client else "unknown"

    if exc.status_code >= 500:
        logger.error(
            f"Server error [ID: {request_id}] - "
            f"Status: {exc.status_code} - "
            f"Path: {request.url.path} - "
            f"IP: {client_ip} - "
            f"Detail: {exc.message}"
        )
    else:
        logger.warning(
            f"Client error [ID: {request_id}] - "
            f"Status: {exc.status_code} - "
            f"Code: {exc.error_code} - "
            f"Path: {request.url.path} - "
            f"IP: {client_ip}"
        )

    headers = {}
    if isinstance(exc, AuthError):
        headers["WWW-Authenticate"] = "Bearer"
    if getattr(exc, "redirect_to", None):
        headers["Location"] = exc.redirect_to

    return JSONResponse(
        status_code=exc.status_code,
        content={
            **exc.to_content(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "path": str(request.url.path),
            "request_id": request_id,
        },
        headers=headers,
    )
