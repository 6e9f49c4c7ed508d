"""
POS app configuration.
"""

from django.apps import AppConfig


class PosConfig(AppConfig):
    """Configuration for the point-of-sale collaborator application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "pos"
    verbose_name = "Point of Sale"
