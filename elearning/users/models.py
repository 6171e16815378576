"""
E-Learning User Management Models

This module extends Django's built-in User model with the platform profile:
the user's role (student, instructor, admin) and, for instructors, the
earnings ledger credited by settled course payments.

Models:
- Profile: Role and earnings ledger for a user account

Features:
- Automatic profile creation for new users
- Earnings only ever move through atomic F() increments (see
  elearning.payments.services)

Author: DSP Development Team
Version: 1.0.0
"""

from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models.signals import post_save
from django.dispatch import receiver
from django.utils.translation import gettext_lazy as _


class Profile(models.Model):
    """
    Extended user profile model for the E-Learning system.

    Attributes:
        user: One-to-one relationship with Django User model
        role: Platform role; also selects the caller's rate-limit tier
        earnings: Accumulated instructor share of settled payments
    """

    ROLE_STUDENT = "student"
    ROLE_INSTRUCTOR = "instructor"
    ROLE_ADMIN = "admin"
    ROLE_CHOICES = [
        (ROLE_STUDENT, _("Student")),
        (ROLE_INSTRUCTOR, _("Instructor")),
        (ROLE_ADMIN, _("Admin")),
    ]

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="profile",
        verbose_name=_("User"),
        help_text=_("Associated user account"),
    )

    role = models.CharField(
        max_length=20,
        choices=ROLE_CHOICES,
        default=ROLE_STUDENT,
        verbose_name=_("Role"),
    )

    earnings = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        default=Decimal("0"),
        validators=[MinValueValidator(Decimal("0"))],
        verbose_name=_("Earnings"),
        help_text=_("Total instructor share credited from settled payments"),
    )

    class Meta:
        verbose_name = _("User Profile")
        verbose_name_plural = _("User Profiles")
        db_table = "elearning_profile"

    def __str__(self) -> str:
        return f"{self.user.username} Profile"

    def __repr__(self) -> str:
        return f"<Profile(user={self.user.username}, role={self.role})>"

    @property
    def is_admin(self) -> bool:
        return self.role == self.ROLE_ADMIN


def is_platform_admin(user) -> bool:
    """Staff accounts and users with the admin role may run operator actions."""
    if user is None or not user.is_authenticated:
        return False
    if user.is_staff or user.is_superuser:
        return True
    try:
        return user.profile.is_admin
    except Profile.DoesNotExist:
        return False


# --- Signal Handlers for Automatic Profile Management ---


@receiver(post_save, sender=settings.AUTH_USER_MODEL)
def create_user_profile(sender, instance, created: bool, **kwargs) -> None:
    """
    Automatically create a user profile when a new user is created.

    Args:
        sender: The User model class
        instance: The actual User instance that was saved
        created: Boolean indicating if this is a new instance
        **kwargs: Additional signal arguments
    """
    if created:
        Profile.objects.get_or_create(user=instance)
