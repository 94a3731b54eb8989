"""Object- and field-level write permission enforcement for Django models."""

from .exceptions import (
    DMLError,
    ErrorKind,
    FieldAccessDenied,
    ObjectAccessDenied,
    PolicyError,
    RecordNotFound,
)
from .types import FieldDescriptor, ObjectDescriptor, Operation, Record

__all__ = [
    "DMLError",
    "ErrorKind",
    "FieldAccessDenied",
    "FieldDescriptor",
    "ObjectAccessDenied",
    "ObjectDescriptor",
    "Operation",
    "PolicyError",
    "Record",
    "RecordNotFound",
]
