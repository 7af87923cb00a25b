"""User model for shoppers.

Extends Django's `AbstractUser` with a unique, normalised email and an
optional phone number. Both are forwarded to the payment gateway as the
customer contact when a checkout is initiated.
"""

from django.contrib.auth.models import AbstractUser
from django.core.validators import RegexValidator
from django.db import models


class User(AbstractUser):
    """Shopper account with unique email and optional E.164 phone."""

    email = models.EmailField(unique=True)
    phone = models.CharField(
        max_length=16,
        blank=True,
        validators=[RegexValidator(r"^\+?[1-9]\d{1,14}$", message="Use E.164 format (e.g., +9779800000000)")],
        help_text="Contact number shared with the payment provider at checkout",
    )

    def save(self, *args, **kwargs):
        """Normalise email and phone before persisting.

        Email is stored lowercase without surrounding whitespace so that the
        uniqueness constraint is reliable.
        """
        if self.email:
            self.email = self.email.strip().lower()
        if self.phone:
            self.phone = self.phone.strip()
        super().save(*args, **kwargs)

    @property
    def display_name(self) -> str:
        full = self.get_full_name().strip()
        return full or self.username
