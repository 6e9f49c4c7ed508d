"""
Refunds app configuration.
"""

from django.apps import AppConfig


class RefundsConfig(AppConfig):
    """Configuration for the refunds application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "refunds"
    verbose_name = "Refunds"
