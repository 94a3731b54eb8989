"""secure_dml settings, read from ``django.conf.settings`` on every access."""
from __future__ import annotations

from typing import Any

from django.conf import settings as django_settings

__all__ = ["DEFAULTS", "settings"]

DEFAULTS: dict[str, Any] = {
    # Staff users skip every check; superusers always do.
    "PERMISSIONS_STAFF_BYPASS": False,
    # Extra field names that are never restricted.
    "SECURE_DML_EXEMPT_FIELDS": (),
    # Run each DjangoRecordStore call in a single transaction.
    "SECURE_DML_ATOMIC": True,
}


class AppSettings:
    """Expose the names in :data:`DEFAULTS`, honouring project overrides.

    Lookups are not cached, so ``override_settings`` takes effect
    immediately.
    """

    def __getattr__(self, name: str) -> Any:
        if name not in DEFAULTS:
            raise AttributeError(f"Unknown secure_dml setting: {name}")
        return getattr(django_settings, name, DEFAULTS[name])


settings = AppSettings()
