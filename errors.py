"""Failure taxonomy shared by the record store, the pager and the HTTP layer."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError


class StoreError(Exception):
    """Base class for every failure raised by the record store."""


class ValidationError(StoreError, ValueError):
    """Input is missing or malformed. Raised before anything is written."""


class NotFoundError(StoreError, LookupError):
    """The target record does not exist."""


class PermissionDeniedError(StoreError, PermissionError):
    """The caller does not own the target record, or is not authenticated."""

    def __init__(self, message: str, *, authenticated: bool = True) -> None:
        super().__init__(message)
        self.authenticated = authenticated


class TransientError(StoreError, ConnectionError):
    """The backing store or a remote service is unavailable. Safe to retry."""


def validate(schema: type[BaseModel], data: object) -> BaseModel:
    """Coerce ``data`` into ``schema``, converting pydantic failures to ValidationError."""
    if isinstance(data, schema):
        return data
    if isinstance(data, BaseModel):
        data = data.model_dump(exclude_unset=True)
    try:
        return schema.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError(_format_pydantic_error(exc)) from exc


def _format_pydantic_error(exc: PydanticValidationError) -> str:
    parts: list[str] = []
    for err in exc.errors():
        location = ".".join(str(item) for item in err.get("loc", ()) if item != "__root__")
        message = err.get("msg", "invalid value")
        if message.startswith("Value error, "):
            message = message[len("Value error, ") :]
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts) or "Invalid input"


def user_message(exc: Exception, action: Optional[str] = None) -> str:
    prefix = f"Could not {action}. " if action else ""
    if isinstance(exc, ValidationError):
        return str(exc)
    if isinstance(exc, PermissionDeniedError):
        if not exc.authenticated:
            return f"{prefix}You are signed out. Please sign in again."
        return (
            f"{prefix}You do not have access to this record. "
            "Please sign in again, or contact support if this keeps happening."
        )
    if isinstance(exc, NotFoundError):
        return f"{prefix}{exc} It may have been removed; refresh and try again."
    if isinstance(exc, TransientError):
        return f"{prefix}The service is temporarily unavailable. Please try again."
    return f"{prefix}An unexpected error occurred."
