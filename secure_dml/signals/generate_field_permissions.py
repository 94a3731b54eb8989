import logging

from django.apps import AppConfig
from django.db.models.signals import post_migrate
from django.dispatch import receiver

from secure_dml.utils import generate_field_permissions_for_model

logger = logging.getLogger(__name__)


@receiver(post_migrate, dispatch_uid="secure_dml.provision_field_permissions")
def provision_field_permissions(sender: AppConfig | None, **kwargs) -> None:
    """Sync add/change field permissions for every model of the migrated app."""

    if not isinstance(sender, AppConfig):
        return

    created = deleted = 0
    for model in sender.get_models():
        model_created, model_deleted = generate_field_permissions_for_model(model)
        created += model_created
        deleted += model_deleted
    if created or deleted:
        logger.debug(
            "Field permissions for %s: %d created, %d removed",
            sender.label,
            created,
            deleted,
        )
