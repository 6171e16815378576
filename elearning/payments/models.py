"""
E-Learning Payment Models

One row per attempted monetary transaction with the Chapa gateway.

Lifecycle:
- created ``pending`` when the checkout is initiated
- moved to ``success`` or ``failed`` by verification
- payout fields touched only after ``success``: ``payout_credited`` flips to
  True once, when the instructor ledger is credited, and ``payout_status``
  moves ``pending → paid`` once, when an operator records the payout

Author: DSP Development Team
Version: 1.0.0
"""

from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.utils.translation import gettext_lazy as _


class Payment(models.Model):
    TYPE_SUBSCRIPTION = "subscription"
    TYPE_ONE_TIME = "one-time"
    TYPE_CHOICES = [
        (TYPE_SUBSCRIPTION, _("Subscription")),
        (TYPE_ONE_TIME, _("One-time")),
    ]

    STATUS_PENDING = "pending"
    STATUS_SUCCESS = "success"
    STATUS_FAILED = "failed"
    STATUS_CHOICES = [
        (STATUS_PENDING, _("Pending")),
        (STATUS_SUCCESS, _("Success")),
        (STATUS_FAILED, _("Failed")),
    ]

    PAYOUT_PENDING = "pending"
    PAYOUT_PAID = "paid"
    PAYOUT_STATUS_CHOICES = [
        (PAYOUT_PENDING, _("Pending")),
        (PAYOUT_PAID, _("Paid")),
    ]

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="payments",
        verbose_name=_("Payer"),
    )
    course = models.ForeignKey(
        "elearning.Course",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="payments",
        verbose_name=_("Course"),
    )
    tx_ref = models.CharField(
        max_length=100,
        unique=True,
        verbose_name=_("Transaction Reference"),
    )
    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.01"))],
        verbose_name=_("Amount"),
    )
    type = models.CharField(max_length=20, choices=TYPE_CHOICES, verbose_name=_("Type"))
    status = models.CharField(
        max_length=20,
        choices=STATUS_CHOICES,
        default=STATUS_PENDING,
        db_index=True,
        verbose_name=_("Status"),
    )

    platform_share = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0"))
    instructor_share = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0"))
    gateway_fee_estimate = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0"))

    payout_credited = models.BooleanField(
        default=False,
        verbose_name=_("Payout Credited"),
        help_text=_("Instructor earnings were credited for this payment"),
    )
    payout_status = models.CharField(
        max_length=20,
        choices=PAYOUT_STATUS_CHOICES,
        default=PAYOUT_PENDING,
        verbose_name=_("Payout Status"),
    )
    payout_paid_at = models.DateTimeField(null=True, blank=True, verbose_name=_("Paid Out At"))
    payout_tx_ref = models.CharField(
        max_length=100, blank=True, default="", verbose_name=_("Payout Reference")
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Payment")
        verbose_name_plural = _("Payments")
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["payout_credited", "payout_status"], name="payment_payout_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.tx_ref} ({self.status})"

    @property
    def is_settled(self) -> bool:
        return self.status == self.STATUS_SUCCESS
