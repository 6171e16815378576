"""
E-Learning Application Configuration

This module contains the Django application configuration for the E-Learning system.

The E-Learning application provides user profiles with roles, courses and
enrollments, and the Chapa payment settlement with instructor payouts.

Author: DSP Development Team
Version: 1.0.0
"""

from django.apps import AppConfig


class ElearningConfig(AppConfig):
    """
    Configuration class for the E-Learning Django application.

    Attributes:
        default_auto_field: Default primary key field type for models
        name: Application name for Django registration
        verbose_name: Human-readable application name for admin interface
    """

    default_auto_field: str = "django.db.models.BigAutoField"
    name: str = "elearning"
    verbose_name: str = "E-Learning System"

    def ready(self) -> None:
        """
        Register the profile signal handlers.

        The receivers are connected when users.models is imported; importing it
        here keeps that independent of the models registry import order.
        """
        super().ready()
        from .users import models  # noqa: F401
