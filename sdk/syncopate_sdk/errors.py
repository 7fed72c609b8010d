"""
Error types for Syncopate SDK.

This module defines all exception types raised by the SDK:
- SyncopateError: Base exception
- DefinitionError: Entity class declarations are missing or invalid
- MappingError: Wire record has an unexpected shape
- ValidationError: Entity failed local validation (field -> message map)
- ArgumentError: Malformed query/join or entity type mismatch
- TransportError: Network failure talking to the store
- ApiError: Store-reported failure
- NotFoundError: Store reports no such record
- IntegrityConstraintError: Store reports a uniqueness violation

Invariants:
    - All errors inherit from SyncopateError
    - Local errors (definition, validation, argument) never reach the network
    - Store errors are classified to the most specific type
"""

from __future__ import annotations

import re
from typing import Any

NOT_FOUND_DB_CODES = ("SY100", "SY200")
UNIQUE_CONSTRAINT_DB_CODE = "SY209"

_CATEGORIES = {
    "SY0": "General",
    "SY1": "Entity Type",
    "SY2": "Entity",
    "SY3": "Query",
    "SY4": "Persistence",
}

_FIELD_WITH_VALUE = re.compile(
    r"field ['\"]([^'\"]*)['\"]\s+with\s+value\s+['\"]([^'\"]*)['\"]", re.IGNORECASE
)
_DUPLICATE_ENTRY = re.compile(
    r"duplicate entry ['\"]([^'\"]*)['\"]\s+for\s+key\s+['\"]([^'\"]*)['\"]", re.IGNORECASE
)
_UNIQUE_ON_FIELD = re.compile(
    r"unique constraint on (?:column|field) ['\"]([^'\"]*)['\"]", re.IGNORECASE
)


class SyncopateError(Exception):
    """Base exception for all Syncopate SDK errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "SYNCOPATE_ERROR"
        self.details = details or {}


class DefinitionError(SyncopateError):
    """Entity class declaration is missing or invalid.

    Raised when:
    - Class is not decorated with @entity
    - A relationship declaration is unsupported
    """

    def __init__(self, message: str, entity_class: str | None = None) -> None:
        super().__init__(message, code="DEFINITION_ERROR", details={"entity_class": entity_class})
        self.entity_class = entity_class


class MappingError(SyncopateError):
    """Wire record could not be mapped to an entity."""

    def __init__(self, message: str, record: Any = None) -> None:
        super().__init__(message, code="MAPPING_ERROR", details={"record": record})
        self.record = record


class ValidationError(SyncopateError):
    """Entity failed local validation.

    Carries every violation found, keyed by field name, so callers can
    render all form errors in one pass.

    Attributes:
        violations: Field name -> message
    """

    def __init__(
        self,
        message: str = "Validation failed",
        violations: dict[str, str] | None = None,
    ) -> None:
        self.violations: dict[str, str] = dict(violations or {})
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details={"violations": self.violations},
        )

    def add_violation(self, field_name: str, message: str) -> ValidationError:
        self.violations[field_name] = message
        return self

    @property
    def errors(self) -> list[str]:
        """Violations as human readable strings."""
        return [f"{name}: {msg}" for name, msg in self.violations.items()]

    def __str__(self) -> str:
        if not self.violations:
            return self.message
        return f"{self.message}: {'; '.join(self.errors)}"


class ArgumentError(SyncopateError):
    """Malformed query, join, or mismatched entity type."""

    def __init__(self, message: str, argument: str | None = None) -> None:
        super().__init__(message, code="ARGUMENT_ERROR", details={"argument": argument})
        self.argument = argument


class TransportError(SyncopateError):
    """Failed to communicate with the store.

    Raised when:
    - Store is unreachable
    - Connection times out
    """

    def __init__(self, message: str, url: str | None = None) -> None:
        super().__init__(message, code="TRANSPORT_ERROR", details={"url": url})
        self.url = url


class ApiError(SyncopateError):
    """Store-reported failure.

    Attributes:
        status_code: HTTP status code
        db_code: Store error code (e.g. SY200)
        api_response: Original error body
    """

    def __init__(
        self,
        message: str,
        status_code: int = 0,
        db_code: str | None = None,
        api_response: dict[str, Any] | None = None,
    ) -> None:
        self.api_response = api_response or {}
        self.status_code = status_code
        self.db_code = db_code or self.api_response.get("db_code")
        super().__init__(
            message,
            code="API_ERROR",
            details={
                "status_code": status_code,
                "db_code": self.db_code,
                "category": self.category,
            },
        )

    @property
    def category(self) -> str:
        """Error category derived from the db code prefix."""
        if not self.db_code:
            return "Unknown"
        return _CATEGORIES.get(self.db_code[:3], "Unknown")

    @property
    def is_client_error(self) -> bool:
        return 400 <= self.status_code < 500

    @property
    def is_server_error(self) -> bool:
        return self.status_code >= 500

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404 or self.db_code in NOT_FOUND_DB_CODES

    def is_error_type(self, db_code: str) -> bool:
        return self.db_code == db_code


class NotFoundError(ApiError):
    """Store reports no such record.

    Attributes:
        entity_type: Entity type looked up, when known
        entity_id: Identifier looked up, when known
    """

    def __init__(
        self,
        message: str,
        status_code: int = 404,
        db_code: str | None = None,
        api_response: dict[str, Any] | None = None,
        entity_type: str | None = None,
        entity_id: str | int | None = None,
    ) -> None:
        super().__init__(message, status_code, db_code, api_response)
        self.code = "NOT_FOUND"
        self.entity_type = entity_type
        self.entity_id = entity_id


class IntegrityConstraintError(ApiError):
    """Store reports a uniqueness violation.

    Never worth retrying: the duplicate write will fail again.

    Attributes:
        field: Field that violated the constraint
        value: Offending value
    """

    def __init__(
        self,
        field: str,
        value: Any,
        message: str = "",
        status_code: int = 409,
        db_code: str | None = None,
        api_response: dict[str, Any] | None = None,
    ) -> None:
        if not message:
            shown = f'"{value}"' if isinstance(value, (str, int, float)) else "provided"
            message = (
                f"Integrity constraint violation: The value {shown} for field "
                f'"{field}" already exists and must be unique'
            )
        super().__init__(message, status_code, db_code or UNIQUE_CONSTRAINT_DB_CODE, api_response)
        self.code = "INTEGRITY_CONSTRAINT"
        self.field = field
        self.value = value

    def is_field_violation(self, field_name: str) -> bool:
        return self.field == field_name

    @property
    def friendly_message(self) -> str:
        """User facing message."""
        if isinstance(self.value, (str, int, float)):
            return f'The {self.field} "{self.value}" is already in use. Please choose a different value.'
        return f"The provided {self.field} is already in use. Please choose a different value."


def _extract_constraint(payload: dict[str, Any], message: str) -> tuple[str, Any]:
    """Find the offending field and value in a uniqueness error body."""
    field_name = "unknown"
    value = None

    details = payload.get("details")
    if isinstance(details, dict):
        if "field" in details:
            field_name = details["field"]
        if "value" in details:
            value = details["value"]
        elif isinstance(details.get("constraint"), dict):
            constraint = details["constraint"]
            field_name = constraint.get("field", field_name)
            value = constraint.get("value")

    if field_name == "unknown" or value is None:
        match = _FIELD_WITH_VALUE.search(message)
        if match:
            field_name, value = match.group(1), match.group(2)
        else:
            match = _DUPLICATE_ENTRY.search(message)
            if match:
                value, field_name = match.group(1), match.group(2)
            else:
                match = _UNIQUE_ON_FIELD.search(message)
                if match:
                    field_name = match.group(1)

    return field_name, value


def error_from_response(payload: Any, status_code: int | None = None) -> ApiError:
    """Classify a store error body into the most specific ApiError.

    Args:
        payload: Decoded error body ({"message", "code", "db_code"?, "details"?})
        status_code: HTTP status, falls back to the body's "code"

    Returns:
        IntegrityConstraintError, NotFoundError or ApiError
    """
    if not isinstance(payload, dict):
        payload = {"message": str(payload) if payload else "Unknown API error"}

    message = payload.get("message") or payload.get("error") or "Unknown API error"
    if not isinstance(message, str):
        message = str(message)
    body_code = payload.get("code")
    if status_code is None or status_code < 400:
        status_code = body_code if isinstance(body_code, int) else 400
    db_code = payload.get("db_code")

    lowered = message.lower()
    if (
        db_code == UNIQUE_CONSTRAINT_DB_CODE
        or "unique constraint" in lowered
        or (status_code == 409 and "duplicate" in lowered)
    ):
        field_name, value = _extract_constraint(payload, message)
        return IntegrityConstraintError(
            field_name,
            value,
            message,
            status_code=status_code,
            db_code=db_code,
            api_response=payload,
        )

    if status_code == 404 or db_code in NOT_FOUND_DB_CODES:
        return NotFoundError(message, status_code, db_code, payload)

    return ApiError(message, status_code, db_code, payload)
