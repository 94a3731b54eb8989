"""Object-level and field-level write checks."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

from .cache import PolicyCache
from .exceptions import (
    FieldAccessDenied,
    ObjectAccessDenied,
    PolicyError,
    RecordNotFound,
)
from .schema import SchemaProvider
from .types import ObjectDescriptor, Operation, Record

logger = logging.getLogger(__name__)


def _allows(descriptor: ObjectDescriptor, operation: Operation) -> bool:
    if operation is Operation.INSERT:
        return descriptor.creatable
    if operation is Operation.UPDATE:
        return descriptor.updatable
    if operation is Operation.DELETE:
        return descriptor.deletable
    if operation is Operation.UPSERT:
        return descriptor.creatable and descriptor.updatable
    raise ValueError(f"Unsupported operation: {operation}")


class AccessChecker:
    """Validate object-level permissions for a set of record types."""

    def __init__(self, schema: SchemaProvider):
        self.schema = schema
        self._descriptors: dict[str, ObjectDescriptor] = {}

    def describe(self, record_type: str) -> ObjectDescriptor:
        descriptor = self._descriptors.get(record_type)
        if descriptor is None:
            descriptor = self.schema.describe_object(record_type)
            self._descriptors[record_type] = descriptor
        return descriptor

    def check_object_access(self, types: Iterable[str], operation: Operation) -> None:
        """Raise :class:`ObjectAccessDenied` for the first type lacking access.

        ``types`` is checked in iteration order, so pass an ordered
        collection for reproducible errors.
        """

        for record_type in types:
            if not _allows(self.describe(record_type), operation):
                logger.warning(
                    "Object access denied: %s on %s", operation.value, record_type
                )
                raise ObjectAccessDenied(record_type, operation)


class FieldGuard:
    """Detect illicit population or modification of restricted fields."""

    def __init__(self, cache: PolicyCache):
        self.cache = cache

    def check_known_fields(self, record: Record) -> None:
        """Reject field keys the schema does not describe for ``record.type``."""

        unknown = sorted(set(record.fields) - self.cache.field_names(record.type))
        if unknown:
            logger.warning("Unknown fields for %s: %s", record.type, ", ".join(unknown))
            raise PolicyError(
                f"Unknown field(s) for {record.type}: {', '.join(unknown)}"
            )

    def check_insert(self, record: Record) -> None:
        restricted = self.cache.restricted_fields(Operation.INSERT, record.type)
        for name in restricted:
            if record.fields.get(name) is not None:
                self._deny(record.type, name, Operation.INSERT)

    def check_update(self, record: Record, snapshot: Optional[Record]) -> None:
        restricted = self.cache.restricted_fields(Operation.UPDATE, record.type)
        if not restricted:
            return
        if snapshot is None:
            logger.warning("Update target %r of %s not found", record.id, record.type)
            raise RecordNotFound(record.id)
        for name in restricted:
            value = record.fields.get(name)
            if value is None:
                continue
            if self._changed(record.type, name, value, snapshot.fields.get(name)):
                self._deny(record.type, name, Operation.UPDATE)

    def _changed(self, record_type: str, name: str, value: Any, current: Any) -> bool:
        to_python = getattr(self.cache.schema, "to_python", None)
        if to_python is not None:
            value = to_python(record_type, name, value)
            current = to_python(record_type, name, current)
        return value != current

    @staticmethod
    def _deny(record_type: str, name: str, operation: Operation) -> None:
        logger.warning(
            "Field access denied: %s on %s.%s", operation.value, record_type, name
        )
        raise FieldAccessDenied(record_type, name, operation)
