"""Schema providers describing what the current principal may write."""

from __future__ import annotations

from typing import Any, Protocol, Sequence

from django.apps import apps as django_apps
from django.core.exceptions import ValidationError

from . import checks
from .types import FieldDescriptor, ObjectDescriptor, type_label


class SchemaProvider(Protocol):
    """Capability flags for record types and their fields.

    A provider may also define ``to_python(record_type, field, value)``;
    update checks then compare submitted and stored values after
    converting both with it.
    """

    def describe_object(self, record_type: str) -> ObjectDescriptor:
        ...

    def describe_fields(self, record_type: str) -> Sequence[FieldDescriptor]:
        ...


def resolve_model(record_type: Any):
    """Return the Django model registered under ``record_type``."""

    if hasattr(record_type, "_meta"):
        return record_type
    return django_apps.get_model(type_label(record_type))


def _is_calculated(field) -> bool:
    return not field.editable or getattr(field, "generated", False)


class DjangoSchemaProvider:
    """Describe Django models using ``user``'s model and field permissions.

    Object flags map to the standard ``add_``/``change_``/``delete_`` model
    permissions.  Field flags map to ``add_<model>_<field>`` and
    ``change_<model>_<field>`` permissions (see
    :func:`secure_dml.utils.generate_field_permissions_for_model`).
    Fields are reported by attribute name, so a foreign key ``campaign``
    is described as ``campaign_id``.
    """

    def __init__(self, user):
        self.user = user

    def describe_object(self, record_type: str) -> ObjectDescriptor:
        model = resolve_model(record_type)
        return ObjectDescriptor(
            creatable=checks.can_add_model(self.user, model),
            updatable=checks.can_change_model(self.user, model),
            deletable=checks.can_delete_model(self.user, model),
        )

    def describe_fields(self, record_type: str) -> list[FieldDescriptor]:
        model = resolve_model(record_type)
        descriptors = []
        for field in model._meta.concrete_fields:
            if field.auto_created:
                continue
            descriptors.append(
                FieldDescriptor(
                    name=field.attname,
                    creatable=checks.can_create_field(self.user, model, field.name),
                    updatable=checks.can_update_field(self.user, model, field.name),
                    calculated=_is_calculated(field),
                )
            )
        return descriptors

    def to_python(self, record_type: str, name: str, value: Any) -> Any:
        """Convert ``value`` with the model field's own ``to_python``.

        Values the field rejects are returned unchanged.
        """

        if value is None:
            return None
        field = resolve_model(record_type)._meta.get_field(name)
        try:
            return field.to_python(value)
        except ValidationError:
            return value
