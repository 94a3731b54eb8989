from .generate_field_permissions import provision_field_permissions

__all__ = ["provision_field_permissions"]
