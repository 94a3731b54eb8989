"""Value types shared by the policy layer and its collaborators."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Union


class Operation(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    UPSERT = "upsert"


@dataclass(frozen=True)
class ObjectDescriptor:
    """Object-level capabilities of the current principal for a record type."""

    creatable: bool
    updatable: bool
    deletable: bool


@dataclass(frozen=True)
class FieldDescriptor:
    """Write capabilities of the current principal for one field."""

    name: str
    creatable: bool
    updatable: bool
    calculated: bool = False


def type_label(record_type: Any) -> str:
    """Return the string label for ``record_type``.

    Django model classes are normalised to ``app_label.ModelName``; anything
    else is used as-is.
    """

    meta = getattr(record_type, "_meta", None)
    if meta is not None:
        return meta.label
    return str(record_type)


@dataclass
class Record:
    """A record of ``type`` holding only the fields the caller populated.

    ``fields`` never contains implicit nulls: a missing key means the
    field was not supplied, while a key mapped to ``None`` means it was
    supplied as null.
    """

    type: str
    fields: dict[str, Any] = field(default_factory=dict)
    id: Any = None

    def __post_init__(self) -> None:
        self.type = type_label(self.type)
        self.fields = dict(self.fields)

    @classmethod
    def of(cls, record_type: Any, id: Any = None, **fields: Any) -> "Record":
        return cls(record_type, fields, id=id)


RecordOrRecords = Union[Record, Iterable[Record]]


def as_record_list(records: RecordOrRecords) -> list[Record]:
    if isinstance(records, Record):
        return [records]
    return list(records)
