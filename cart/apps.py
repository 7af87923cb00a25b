"""Django app configuration for carts."""

from django.apps import AppConfig


class CartConfig(AppConfig):
    """Per-user carts that reserve stock and lock while a payment is in flight."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "cart"
