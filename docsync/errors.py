"""
Error types for docsync.

Three families of errors surface from the data-access core:

    CoreError
        Coded failures raised by the core itself (no client bound,
        invalid operation on a singleton model, too many retries,
        aborted pipeline, ...).

    ValidationError
        Aggregate of every field and validator failure found in a
        validation pass. Never raised for the first failure only.

    TransportError
        Decoded from a non-ok executor response. May embed a
        ValidationError when the remote store rejected the payload.

Usage:
    try:
        await Post.create({"title": ""})
    except ValidationError as e:
        print(e.paths)         # ["title"]
        print(e.to_dict())     # JSON-ready payload
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


# =============================================================================
# Codes
# =============================================================================


class ErrorCodes(str, Enum):
    """Stable error codes carried by every CoreError."""

    UNKNOWN = "UNKNOWN"
    NO_CLIENT = "NO_CLIENT"
    INVALID_OPERATION = "INVALID_OPERATION"
    INVALID_PARAMS = "INVALID_PARAMS"
    INVALID_MODEL = "INVALID_MODEL"
    ALREADY_REGISTERED = "ALREADY_REGISTERED"
    NOT_FOUND = "NOT_FOUND"
    TOO_MANY_RETRIES = "TOO_MANY_RETRIES"
    EXECUTION_ABORTED = "EXECUTION_ABORTED"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    TRANSPORT_ERROR = "TRANSPORT_ERROR"


# =============================================================================
# Core errors
# =============================================================================


class CoreError(Exception):
    """Base exception for every error raised by docsync."""

    def __init__(self, message: str = "", *, code: ErrorCodes = ErrorCodes.UNKNOWN):
        super().__init__(message)
        self.message = message
        self.code = code

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.message}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": type(self).__name__,
            "code": self.code.value,
            "message": self.message,
        }


# =============================================================================
# Validation errors
# =============================================================================


@dataclass(frozen=True, slots=True)
class ValidationFieldError:
    """A value that does not match the type of its field."""

    path: str
    field_type: str
    value: Any = None
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "fieldType": self.field_type,
            "value": self.value,
            "message": self.message,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ValidationFieldError":
        return cls(
            path=data.get("path", ""),
            field_type=data.get("fieldType", ""),
            value=data.get("value"),
            message=data.get("message", ""),
        )


@dataclass(frozen=True, slots=True)
class ValidationValidatorError:
    """A validator that rejected the values found at its path."""

    validator: str
    path: str | None = None
    value: Any = None
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "validator": self.validator,
            "path": self.path,
            "value": self.value,
            "message": self.message,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ValidationValidatorError":
        return cls(
            validator=data.get("validator", ""),
            path=data.get("path"),
            value=data.get("value"),
            message=data.get("message", ""),
        )


class ValidationError(CoreError):
    """
    Aggregated validation failure.

    Holds every field error and validator error found in one pass so a
    caller can report all problems at once.
    """

    def __init__(
        self,
        *,
        fields: list[ValidationFieldError] | None = None,
        validators: list[ValidationValidatorError] | None = None,
        model: str | None = None,
    ):
        self.fields = list(fields or [])
        self.validators = list(validators or [])
        self.model = model
        super().__init__(self._build_message(), code=ErrorCodes.VALIDATION_FAILED)

    @property
    def paths(self) -> list[str]:
        """Distinct paths involved in the failure, in discovery order."""
        seen: dict[str, None] = {}
        for error in self.fields:
            seen.setdefault(error.path)
        for error in self.validators:
            if error.path:
                seen.setdefault(error.path)
        return list(seen)

    def for_path(self, path: str) -> list[ValidationFieldError | ValidationValidatorError]:
        """Return the errors attached to one path."""
        found: list[ValidationFieldError | ValidationValidatorError] = []
        found.extend(e for e in self.fields if e.path == path)
        found.extend(e for e in self.validators if e.path == path)
        return found

    def _build_message(self) -> str:
        message = "Validation failed"
        paths = self.paths
        if paths:
            suffix = "s" if len(paths) > 1 else ""
            message += f" on path{suffix} {', '.join(paths)}"
        if self.model:
            message += f" on model {self.model}"

        reasons = []
        if self.fields:
            types = ", ".join(e.field_type for e in self.fields)
            reasons.append(f"{len(self.fields)} field error(s) ({types})")
        if self.validators:
            types = ", ".join(e.validator for e in self.validators)
            reasons.append(f"{len(self.validators)} validator error(s) ({types})")
        if reasons:
            message += f": {' and '.join(reasons)}"
        return message

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["fields"] = [e.to_dict() for e in self.fields]
        data["validators"] = [e.to_dict() for e in self.validators]
        data["paths"] = self.paths
        if self.model:
            data["model"] = self.model
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ValidationError":
        return cls(
            fields=[ValidationFieldError.from_dict(e) for e in data.get("fields") or []],
            validators=[ValidationValidatorError.from_dict(e) for e in data.get("validators") or []],
            model=data.get("model"),
        )


# =============================================================================
# Transport errors
# =============================================================================


class TransportError(CoreError):
    """Raised when the operation executor reports a failed operation."""

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCodes = ErrorCodes.TRANSPORT_ERROR,
        status_code: int | None = None,
        response_body: str | None = None,
        retryable: bool = False,
        retry_after: float | None = None,
        validation_error: ValidationError | None = None,
    ):
        super().__init__(message, code=code)
        self.status_code = status_code
        self.response_body = response_body
        self.retryable = retryable
        self.retry_after = retry_after
        self.validation_error = validation_error

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.status_code:
            parts.append(f"(status={self.status_code})")
        return " ".join(parts)


def decode_error(
    payload: Any,
    *,
    status_code: int | None = None,
    response_body: str | None = None,
) -> TransportError:
    """
    Decode an error payload returned by the remote store.

    Accepts either a bare error object or one wrapped in ``{"error": ...}``.
    A payload typed ``ValidationError`` is decoded and embedded.

    Args:
        payload: Decoded JSON body (or None when the body was not JSON)
        status_code: HTTP status, when known
        response_body: Raw body text, kept for diagnostics

    Returns:
        TransportError describing the failure
    """
    error = payload.get("error", payload) if isinstance(payload, dict) else None
    if not isinstance(error, dict):
        return TransportError(
            response_body or "Request failed",
            status_code=status_code,
            response_body=response_body,
            retryable=status_code is not None and (status_code == 429 or status_code >= 500),
        )

    raw_code = error.get("code") or ErrorCodes.TRANSPORT_ERROR.value
    try:
        code = ErrorCodes(raw_code)
    except ValueError:
        code = ErrorCodes.TRANSPORT_ERROR
    if status_code == 404 and code == ErrorCodes.TRANSPORT_ERROR:
        code = ErrorCodes.NOT_FOUND

    validation_error = None
    if error.get("type") == "ValidationError":
        validation_error = ValidationError.from_dict(error)
        code = ErrorCodes.VALIDATION_FAILED

    return TransportError(
        error.get("message") or "Request failed",
        code=code,
        status_code=status_code,
        response_body=response_body,
        retryable=status_code is not None and (status_code == 429 or status_code >= 500),
        validation_error=validation_error,
    )
