"""
E-Learning Application Django Admin Configuration

This module provides the Django admin interface configuration for the E-Learning
models.

The admin interface is organized into logical sections:
- User Management: User administration with role and earnings inline
- Course Management: Courses and enrollments
- Payments: Chapa payments with a bulk "mark payout paid" action

Payment rows are read-only here. Status and payout fields change only through
settlement and the payout ledger, which the admin action calls.

Author: DSP Development Team
Version: 1.0.0
"""

from typing import Optional
from django.contrib import admin, messages
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.contrib.auth.models import User
from django.utils.translation import gettext_lazy as _
from django.db.models import QuerySet
from django.http import HttpRequest

from core.exceptions import PlatformException
from .models import Profile, Course, Enrollment, Payment
from .payments.payouts import PayoutLedger

# --- User Management Administration ---


class ProfileInline(admin.StackedInline):
    """
    Inline admin configuration for user profiles.

    Earnings are read-only: they only move through settlement.
    """

    model = Profile
    can_delete = False
    verbose_name_plural = "Profile Information"
    fk_name = "user"
    fields = ("role", "earnings")
    readonly_fields = ("earnings",)

    def get_extra(
        self, request: HttpRequest, obj: Optional[User] = None, **kwargs
    ) -> int:
        """Return 0 extra forms since profile should exist or be created automatically."""
        return 0


class UserAdmin(BaseUserAdmin):
    """
    User administration interface with profile integration.
    """

    inlines = (ProfileInline,)
    list_display = (
        "username",
        "email",
        "first_name",
        "last_name",
        "is_staff",
        "is_active",
        "get_role",
    )
    list_select_related = ("profile",)
    list_filter = (
        "is_staff",
        "is_superuser",
        "is_active",
        "profile__role",
        "date_joined",
    )
    search_fields = ("username", "first_name", "last_name", "email")
    ordering = ("username",)

    @admin.display(description=_("Role"))
    def get_role(self, instance: User) -> Optional[str]:
        try:
            return instance.profile.get_role_display()
        except Profile.DoesNotExist:
            return None


admin.site.unregister(User)
admin.site.register(User, UserAdmin)


# --- Course Management Administration ---


class EnrollmentInline(admin.TabularInline):
    model = Enrollment
    extra = 0
    fields = ("student", "progress", "completed", "created_at")
    readonly_fields = ("created_at",)


@admin.register(Course)
class CourseAdmin(admin.ModelAdmin):
    """Administration interface for courses."""

    list_display = ("title", "instructor", "price", "status", "student_count")
    list_filter = ("status",)
    search_fields = ("title", "description", "instructor__username")
    filter_horizontal = ("students",)
    inlines = [EnrollmentInline]

    @admin.display(description=_("Students"))
    def student_count(self, obj: Course) -> int:
        return obj.students.count()

    def get_queryset(self, request: HttpRequest) -> QuerySet:
        """Optimize queryset for better performance."""
        return super().get_queryset(request).select_related("instructor")


@admin.register(Enrollment)
class EnrollmentAdmin(admin.ModelAdmin):
    list_display = ("student", "course", "progress", "completed", "created_at")
    list_filter = ("completed", "course")
    search_fields = ("student__username", "course__title")

    def get_queryset(self, request: HttpRequest) -> QuerySet:
        return super().get_queryset(request).select_related("student", "course")


# --- Payments Administration ---


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    """
    Administration interface for Chapa payments.

    The "mark payout paid" action goes through PayoutLedger so the admin
    follows the same preconditions as the API.
    """

    list_display = (
        "tx_ref",
        "user",
        "course",
        "amount",
        "status",
        "instructor_share",
        "payout_credited",
        "payout_status",
        "created_at",
    )
    list_filter = ("status", "type", "payout_credited", "payout_status")
    search_fields = ("tx_ref", "user__username", "user__email", "course__title")
    date_hierarchy = "created_at"
    actions = ["mark_payout_paid"]
    readonly_fields = [field.name for field in Payment._meta.fields]

    fieldsets = (
        (_("Transaction"), {"fields": ("tx_ref", "user", "course", "amount", "type", "status")}),
        (_("Split"), {"fields": ("platform_share", "instructor_share", "gateway_fee_estimate")}),
        (
            _("Payout"),
            {"fields": ("payout_credited", "payout_status", "payout_paid_at", "payout_tx_ref")},
        ),
        (_("Timestamps"), {"fields": ("id", "created_at", "updated_at")}),
    )

    def get_queryset(self, request: HttpRequest) -> QuerySet:
        return super().get_queryset(request).select_related("user", "course")

    def has_add_permission(self, request: HttpRequest) -> bool:
        return False

    @admin.action(description=_("Mark instructor payout as paid"))
    def mark_payout_paid(self, request: HttpRequest, queryset: QuerySet) -> None:
        ledger = PayoutLedger()
        marked = 0
        for payment in queryset:
            try:
                ledger.mark_paid(payment.pk)
            except PlatformException as e:
                self.message_user(request, f"{payment.tx_ref}: {e.message}", level=messages.WARNING)
                continue
            marked += 1
        if marked:
            self.message_user(request, f"{marked} payout(s) marked as paid.", level=messages.SUCCESS)
