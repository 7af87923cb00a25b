"""Django app configuration for the users app."""

from django.apps import AppConfig


class UsersConfig(AppConfig):
    """Shopper accounts; owners of carts, payments and orders."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "users"
