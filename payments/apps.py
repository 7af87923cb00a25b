"""Django app configuration for the payments app."""

from django.apps import AppConfig

from .registry import VerificationRegistry


class PaymentsConfig(AppConfig):
    """Gateway checkout and verification.

    Owns the process-wide single-flight registry used by verification.
    """

    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"

    def ready(self):
        self.verification_registry = VerificationRegistry()
