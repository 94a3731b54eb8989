# secure_dml/checks.py

"""Permission lookups for the Django schema provider.

This module caches calls to :meth:`User.has_perm` for the duration of a
request to avoid repeated permission lookups.  Use
``clear_perm_cache()`` after long‑running tasks (such as management commands
or Celery workers) to avoid stale results or memory growth.  The cache may
also be temporarily disabled with the :func:`disable_perm_cache`
context manager.
"""

from contextlib import contextmanager
from contextvars import ContextVar

from .conf import settings


# ---------------------------------
# per-request user.has_perm caching
# ---------------------------------

_perm_cache_var: ContextVar[dict | None] = ContextVar("perm_cache", default=None)
_cache_disabled_var: ContextVar[bool] = ContextVar("perm_cache_disabled", default=False)


def _cached_has_perm(user, perm: str) -> bool:
    """Return ``user.has_perm(perm)`` using a per-request cache."""

    if _cache_disabled_var.get():
        return user.has_perm(perm)

    cache = _perm_cache_var.get()
    if cache is None:
        cache = {}
        _perm_cache_var.set(cache)
    key = (id(user), perm)
    if key not in cache:
        cache[key] = user.has_perm(perm)
    return cache[key]


def bypass_all(user) -> bool:
    """Return True if the user should bypass all permission checks.

    Superusers always bypass. Staff bypass is controlled by the
    ``PERMISSIONS_STAFF_BYPASS`` setting.
    """

    if getattr(user, "is_superuser", False):
        return True
    return bool(settings.PERMISSIONS_STAFF_BYPASS) and getattr(user, "is_staff", False)


def clear_perm_cache() -> None:
    """Clear the permission cache.

    Long-running tasks should call this periodically or on completion to
    ensure fresh permission checks and prevent unbounded cache growth.
    """

    _perm_cache_var.set(None)


@contextmanager
def disable_perm_cache():
    """Context manager to temporarily disable caching of ``has_perm`` calls."""

    token = _cache_disabled_var.set(True)
    try:
        yield
    finally:
        _cache_disabled_var.reset(token)

# --------------------
# MODEL-LEVEL CHECKS
# --------------------

def can_act_on_model(user, model, action):
    """Return whether ``user`` may perform ``action`` on ``model``.

    ``action`` is a Django permission prefix such as ``"add"``.
    """

    if bypass_all(user):
        return True
    model_name = model._meta.model_name
    app_label = model._meta.app_label
    return _cached_has_perm(user, f"{app_label}.{action}_{model_name}")


def can_add_model(user, model):
    return can_act_on_model(user, model, "add")


def can_change_model(user, model):
    return can_act_on_model(user, model, "change")


def can_delete_model(user, model):
    return can_act_on_model(user, model, "delete")

# --------------------
# FIELD-LEVEL CHECKS
# --------------------

FIELD_ACTIONS = ("add", "change")


def field_perm_codename(model, field_name, action):
    """Return the codename (without app label) of a field permission."""

    return f"{action}_{model._meta.model_name}_{field_name}"


def can_act_on_field(user, model, field_name, action):
    """Return whether ``user`` may write ``field_name`` for ``action``.

    ``action`` should be ``"add"`` (populate on create) or ``"change"``
    (modify on update). Only the field permission is consulted; object-level
    access is checked separately.
    """

    if action not in FIELD_ACTIONS:
        raise ValueError(f"Unsupported action: {action}")
    if bypass_all(user):
        return True
    app_label = model._meta.app_label
    return _cached_has_perm(
        user, f"{app_label}.{field_perm_codename(model, field_name, action)}"
    )


def can_create_field(user, model, field_name):
    return can_act_on_field(user, model, field_name, "add")


def can_update_field(user, model, field_name):
    return can_act_on_field(user, model, field_name, "change")
