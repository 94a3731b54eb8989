"""Errors raised when a mutation would bypass write permissions.

Every error carries an :class:`ErrorKind` together with the payload that
describes the violation, so callers can branch on ``exc.kind`` instead of
on the concrete class.  The concrete classes also derive from the matching
Django exception, which lets views rely on Django's usual 403/404 handling.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from django.core.exceptions import ObjectDoesNotExist, PermissionDenied

from .types import Operation


class ErrorKind(str, Enum):
    OBJECT_ACCESS = "object_access"
    FIELD_ACCESS = "field_access"
    RECORD_NOT_FOUND = "record_not_found"
    POLICY = "policy"


class DMLError(Exception):
    """Base class for every violation reported by the policy layer."""

    kind: ErrorKind = ErrorKind.POLICY

    def __init__(
        self,
        message: str,
        *,
        record_type: Optional[str] = None,
        field: Optional[str] = None,
        operation: Optional[Operation] = None,
        identifier: Any = None,
    ) -> None:
        super().__init__(message)
        self.record_type = record_type
        self.field = field
        self.operation = operation
        self.identifier = identifier

    @property
    def payload(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "record_type": self.record_type,
            "field": self.field,
            "operation": self.operation,
            "identifier": self.identifier,
        }


class ObjectAccessDenied(DMLError, PermissionDenied):
    kind = ErrorKind.OBJECT_ACCESS

    def __init__(self, record_type: str, operation: Operation) -> None:
        super().__init__(
            f"No {operation.value} access to {record_type}",
            record_type=record_type,
            operation=operation,
        )


class FieldAccessDenied(DMLError, PermissionDenied):
    kind = ErrorKind.FIELD_ACCESS

    def __init__(self, record_type: str, field: str, operation: Operation) -> None:
        super().__init__(
            f"No {operation.value} access to field {record_type}.{field}",
            record_type=record_type,
            field=field,
            operation=operation,
        )


class RecordNotFound(DMLError, ObjectDoesNotExist):
    kind = ErrorKind.RECORD_NOT_FOUND

    def __init__(self, identifier: Any) -> None:
        super().__init__(
            f"Record {identifier!r} does not exist",
            identifier=identifier,
        )


class PolicyError(DMLError, ValueError):
    """Any other precondition violation; carries a message only."""

    kind = ErrorKind.POLICY

    def __init__(self, message: str) -> None:
        super().__init__(message)
