"""Django app configuration for catalog."""

from django.apps import AppConfig


class CatalogConfig(AppConfig):
    """Products and their stock counters."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "catalog"
