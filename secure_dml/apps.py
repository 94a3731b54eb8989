from django.apps import AppConfig
from django.core.signals import request_finished

from .checks import clear_perm_cache


def _clear_perm_cache(**kwargs):
    """Signal handler to clear the permission cache."""
    clear_perm_cache()


class SecureDmlConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "secure_dml"
    verbose_name = "Secure DML"

    def ready(self):
        import secure_dml.signals  # noqa: F401
        request_finished.connect(
            _clear_perm_cache, dispatch_uid="secure_dml.clear_perm_cache"
        )
