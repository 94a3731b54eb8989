"""Cached restricted-field sets keyed by operation and record type."""

from __future__ import annotations

import logging
import threading
from typing import Iterable

from .conf import settings
from .exceptions import PolicyError
from .schema import SchemaProvider
from .types import FieldDescriptor, Operation

logger = logging.getLogger(__name__)

# System-managed fields that are never restricted.
EXEMPT_FIELDS = frozenset(
    {
        "id",
        "isdeleted",
        "createddate",
        "lastmodifieddate",
        "lastmodifiedbyid",
        "createdbyid",
        "systemmodstamp",
    }
)


def normalize_field_name(name: str) -> str:
    """Fold ``name`` for exempt matching: ``Is_Deleted`` -> ``isdeleted``."""

    return name.replace("_", "").lower()


def exempt_fields(extra: Iterable[str] = ()) -> frozenset[str]:
    return EXEMPT_FIELDS | {normalize_field_name(name) for name in extra}


class PolicyCache:
    """Restricted fields per ``(operation, record_type)``.

    Each entry is computed once from ``schema`` on first demand and then
    returned unchanged for the lifetime of the cache.  The schema reflects
    a single principal, so a cache must never be shared between
    principals.
    """

    CACHEABLE = (Operation.INSERT, Operation.UPDATE)

    def __init__(self, schema: SchemaProvider, extra_exempt: Iterable[str] | None = None):
        self.schema = schema
        if extra_exempt is None:
            extra_exempt = settings.SECURE_DML_EXEMPT_FIELDS
        self.exempt = exempt_fields(extra_exempt)
        self._entries: dict[tuple[Operation, str], tuple[str, ...]] = {}
        self._descriptors: dict[str, tuple[FieldDescriptor, ...]] = {}
        self._lock = threading.Lock()

    def describe(self, record_type: str) -> tuple[FieldDescriptor, ...]:
        """Return the field descriptors of ``record_type``, queried once."""

        with self._lock:
            cached = self._descriptors.get(record_type)
        if cached is not None:
            return cached
        described = tuple(self.schema.describe_fields(record_type))
        with self._lock:
            return self._descriptors.setdefault(record_type, described)

    def field_names(self, record_type: str) -> frozenset[str]:
        """Names a record of ``record_type`` may carry in its fields."""

        return frozenset(d.name for d in self.describe(record_type))

    def restricted_fields(self, operation: Operation, record_type: str) -> tuple[str, ...]:
        """Return the fields the principal cannot write, in schema order."""

        if operation not in self.CACHEABLE:
            raise PolicyError(f"No restricted fields for {operation.value} operations")
        key = (operation, record_type)
        with self._lock:
            cached = self._entries.get(key)
        if cached is not None:
            return cached

        computed = self._compute(operation, record_type)
        with self._lock:
            # First writer wins; a concurrent computation produced the same set.
            return self._entries.setdefault(key, computed)

    def is_cached(self, operation: Operation, record_type: str) -> bool:
        with self._lock:
            return (operation, record_type) in self._entries

    def _compute(self, operation: Operation, record_type: str) -> tuple[str, ...]:
        restricted = []
        for descriptor in self.describe(record_type):
            if normalize_field_name(descriptor.name) in self.exempt:
                continue
            if descriptor.calculated:
                continue
            if operation is Operation.INSERT and not descriptor.creatable:
                restricted.append(descriptor.name)
            elif operation is Operation.UPDATE and not descriptor.updatable:
                restricted.append(descriptor.name)
        logger.debug(
            "Restricted %s fields for %s: %s",
            operation.value,
            record_type,
            ", ".join(restricted) or "<none>",
        )
        return tuple(restricted)
