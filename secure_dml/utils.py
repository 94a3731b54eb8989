from django.contrib.auth.models import Permission
from django.contrib.contenttypes.models import ContentType
from django.db.models import Q
from django.utils.text import capfirst

from .checks import FIELD_ACTIONS


def writable_fields(model):
    """Return the concrete fields of ``model`` that may carry write permissions."""

    return [
        field
        for field in model._meta.concrete_fields
        if not field.auto_created and field.editable
    ]


def generate_field_permissions_for_model(model):
    """Ensure add/change permissions exist for each writable field of ``model``.

    ``add_<model>_<field>`` allows populating the field on create and
    ``change_<model>_<field>`` allows modifying it on update. Proxy and
    abstract models are skipped. Returns a tuple of the number of
    permissions created and deleted, respectively.
    """

    if model._meta.abstract or model._meta.proxy:
        return 0, 0

    ct = ContentType.objects.get_for_model(model)
    model_name = model._meta.model_name
    verbose_name = capfirst(model._meta.verbose_name)

    expected_perms = {}
    for field in writable_fields(model):
        field_name = field.name
        expected_perms[f"add_{model_name}_{field_name}"] = (
            f'Can set field "{field_name}" when adding "{verbose_name}"'
        )
        expected_perms[f"change_{model_name}_{field_name}"] = (
            f'Can change field "{field_name}" on Model "{verbose_name}"'
        )

    # Collect existing field-level permissions for this model
    prefixes = Q()
    for action in FIELD_ACTIONS:
        prefixes |= Q(codename__startswith=f"{action}_{model_name}_")
    existing_qs = Permission.objects.filter(content_type=ct).filter(prefixes)
    existing_codenames = set(existing_qs.values_list("codename", flat=True))

    # Delete permissions for fields no longer present
    to_delete = existing_codenames - expected_perms.keys()
    deleted_count = 0
    if to_delete:
        deleted_count, _ = Permission.objects.filter(
            content_type=ct, codename__in=to_delete
        ).delete()

    # Bulk-create any missing permissions
    to_create = [
        Permission(codename=codename, name=name[:255], content_type=ct)
        for codename, name in expected_perms.items()
        if codename not in existing_codenames
    ]
    created_objs = Permission.objects.bulk_create(to_create)
    created_count = len(created_objs)

    return created_count, deleted_count
