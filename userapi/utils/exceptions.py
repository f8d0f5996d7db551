"""
HTTP-aware exception classes raised by services and routes.

Every class declares the HTTP status it maps to. The error handler treats a
declared 4xx status as an expected client failure and anything else as an
application fault.
"""

from http import HTTPStatus
from typing import Any, List, Optional, Union

Message = Union[str, List[str]]


class HttpError(Exception):
    """Base exception carrying a declared HTTP status code"""

    status_code: int = HTTPStatus.INTERNAL_SERVER_ERROR.value
    default_message: str = "Internal server error"

    def __init__(
        self,
        message: Optional[Message] = None,
        *,
        status_code: Optional[int] = None,
        details: Optional[Any] = None,
        headers: Optional[dict] = None,
    ):
        self.message: Message = message if message is not None else self.default_message
        if status_code is not None:
            self.status_code = int(status_code)
        self.details = details
        self.headers = headers
        super().__init__(
            ", ".join(self.message) if isinstance(self.message, list) else self.message
        )


class BadRequestError(HttpError):
    status_code = HTTPStatus.BAD_REQUEST.value
    default_message = "Invalid request data"


class UnauthorizedError(HttpError):
    status_code = HTTPStatus.UNAUTHORIZED.value
    default_message = "Unauthorized"

    def __init__(self, message: Optional[Message] = None, **kwargs):
        kwargs.setdefault("headers", {"WWW-Authenticate": "Bearer"})
        super().__init__(message, **kwargs)


class ForbiddenError(HttpError):
    status_code = HTTPStatus.FORBIDDEN.value
    default_message = "Access denied"


class NotFoundError(HttpError):
    """Raised when an entity cannot be found"""

    status_code = HTTPStatus.NOT_FOUND.value

    def __init__(
        self,
        entity_name: str,
        identifier: Optional[Union[str, int]] = None,
        **kwargs,
    ):
        if identifier is not None:
            message = f"{entity_name} with identifier {identifier} not found"
        else:
            message = f"{entity_name} not found"
        super().__init__(message, **kwargs)
        self.entity_name = entity_name
        self.identifier = identifier


class ConflictError(HttpError):
    """Raised when a unique field value is already taken"""

    status_code = HTTPStatus.CONFLICT.value

    def __init__(self, entity_name: str, field_name: str, value: Any, **kwargs):
        super().__init__(
            f"{entity_name} with {field_name} '{value}' already exists", **kwargs
        )
        self.entity_name = entity_name
        self.field_name = field_name
        self.value = value


class InternalServerError(HttpError):
    status_code = HTTPStatus.INTERNAL_SERVER_ERROR.value
    default_message = "Internal server error"
