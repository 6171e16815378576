"""
Payment Settlement Service
==========================

The payment state machine for course purchases through Chapa.

Flow
----
1. initiate(): persist a ``pending`` Payment, then ask Chapa for a checkout
   URL. The row is committed before the outbound call, so a timeout or crash
   afterwards still leaves a record that a later verify() can settle.
2. verify(): called by the Chapa webhook or by a polling client, any number of
   times. Chapa is the source of truth for the transaction status.
   - not ``success``: the status is written and nothing else happens
   - ``success``: one atomic fan-out under a row lock on the payment:
       * status and split fields are written
       * the payer is enrolled in the course (once per student/course)
       * the instructor's earnings are credited (once per payment, guarded by
         ``payout_credited``)
     Any failure rolls the whole fan-out back; the payment keeps its previous
     state and the next verify() retries it.
3. mark_paid(): operator records the payout (see payouts.py).

Split
-----
The platform keeps 20% of the amount net of the gateway fee estimate, rounded
half-up to whole currency units; the instructor gets the rest. The fee
estimate is zero until real fee parsing exists.

Author: DSP Development Team
Date: 2025-09-03
"""

from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Optional

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction
from django.db.models import F, QuerySet

from core.chapa_integration import ChapaClient
from core.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from ..courses.models import Course, Enrollment
from ..users.models import Profile, is_platform_admin
from .models import Payment
from .payouts import PayoutLedger

logger = logging.getLogger(__name__)


PLATFORM_PCT = Decimal("0.20")
WHOLE_UNIT = Decimal("1")
ZERO = Decimal("0")

# Fields a payer may change on their own pending payment.
PAYER_EDITABLE_FIELDS = ("amount", "type", "course")


@dataclass(frozen=True)
class Split:
    platform_share: Decimal
    instructor_share: Decimal
    gateway_fee: Decimal


@dataclass(frozen=True)
class InitiationResult:
    payment: Payment
    checkout_url: str
    provider_payload: Dict[str, Any]
    public_key: Optional[str] = None


@dataclass(frozen=True)
class VerificationResult:
    provider_result: Dict[str, Any]
    payment: Payment


def compute_split(amount: Decimal, gateway_fee: Decimal = ZERO) -> Split:
    """
    Split a settled amount between platform and instructor.

    A fee estimate outside ``[0, amount]`` is clamped into that range, so
    neither share can go negative.

    >>> compute_split(Decimal("1000"))
    Split(platform_share=Decimal('200'), instructor_share=Decimal('800'), gateway_fee=Decimal('0'))
    """
    amount = Decimal(amount)
    fee = min(max(Decimal(gateway_fee), ZERO), amount)
    net = amount - fee
    platform_share = (net * PLATFORM_PCT).quantize(WHOLE_UNIT, rounding=ROUND_HALF_UP)
    instructor_share = max(net - platform_share, ZERO)
    return Split(platform_share=platform_share, instructor_share=instructor_share, gateway_fee=fee)


def generate_tx_ref() -> str:
    """Millisecond timestamp plus 64 random bits."""
    return f"chapa_{int(time.time() * 1000)}_{secrets.token_hex(8)}"


class SettlementOrchestrator:
    """
    Example:
        >>> orchestrator = SettlementOrchestrator()
        >>> result = orchestrator.initiate(
        ...     {"course": course.id, "amount": Decimal("1000"), "type": "one-time"},
        ...     request.user,
        ...     callback_url,
        ... )
        >>> redirect(result.checkout_url)
        >>> orchestrator.verify(result.payment.tx_ref).payment.status
        'success'
    """

    def __init__(
        self,
        gateway: Optional[ChapaClient] = None,
        payouts: Optional[PayoutLedger] = None,
    ) -> None:
        self.gateway = gateway or ChapaClient.from_settings()
        self.payouts = payouts or PayoutLedger()

    # ---------- lookups ----------

    def _resolve_course(self, course_ref) -> Optional[Course]:
        if course_ref in (None, ""):
            return None
        if isinstance(course_ref, Course):
            return course_ref
        try:
            return Course.objects.get(pk=course_ref)
        except (Course.DoesNotExist, ValueError, TypeError, DjangoValidationError):
            raise ValidationError("Course not found", details={"course": str(course_ref)})

    def get_payment(self, payment_id) -> Payment:
        try:
            return Payment.objects.select_related("user", "course").get(pk=payment_id)
        except (Payment.DoesNotExist, ValueError, TypeError):
            raise NotFoundError("Payment not found", resource="payment")

    def list_payments(self) -> QuerySet:
        return Payment.objects.select_related("user", "course")

    def list_payments_for_user(self, user) -> QuerySet:
        return Payment.objects.filter(user=user).select_related("course")

    def _persist(self, **fields) -> Payment:
        try:
            with transaction.atomic():
                return Payment.objects.create(**fields)
        except IntegrityError:
            logger.error("Duplicate transaction reference %s", fields.get("tx_ref"))
            raise ConflictError("Transaction reference already exists")

    # ---------- payment records ----------

    def create_payment(self, payment_data: Dict[str, Any], payer) -> Payment:
        """
        Record a payment whose ``tx_ref`` was issued outside initiate().

        Raises:
            ValidationError: If the course does not exist
            ConflictError: If ``tx_ref`` is already used
        """
        course = self._resolve_course(payment_data.get("course"))
        tx_ref = payment_data["tx_ref"]
        if Payment.objects.filter(tx_ref=tx_ref).exists():
            raise ConflictError("Transaction reference already exists")

        payment = self._persist(
            user=payer,
            course=course,
            tx_ref=tx_ref,
            amount=payment_data["amount"],
            type=payment_data["type"],
        )
        logger.info("Payment created: %s (tx_ref=%s)", payment.pk, tx_ref)
        return payment

    def _check_owner_or_admin(self, payment: Payment, user, action: str) -> None:
        if payment.user_id != user.pk and not is_platform_admin(user):
            raise PermissionDeniedError(f"Not authorized to {action} this payment")

    def update_payment(self, payment_id, update_data: Dict[str, Any], user) -> Payment:
        """
        Owner or admin may change amount, type or course of a pending payment.
        Status and payout fields are owned by settlement and payout actions.
        """
        payment = self.get_payment(payment_id)
        self._check_owner_or_admin(payment, user, "update")
        if payment.status != Payment.STATUS_PENDING:
            raise ConflictError("Only pending payments can be modified")

        changed = []
        for field_name in PAYER_EDITABLE_FIELDS:
            if field_name not in update_data:
                continue
            value = update_data[field_name]
            if field_name == "course":
                value = self._resolve_course(value)
            setattr(payment, field_name, value)
            changed.append(field_name)

        if changed:
            payment.save(update_fields=changed + ["updated_at"])
            logger.info("Payment updated: %s (%s)", payment.pk, ", ".join(changed))
        return payment

    def delete_payment(self, payment_id, user) -> None:
        payment = self.get_payment(payment_id)
        self._check_owner_or_admin(payment, user, "delete")
        if payment.payout_credited:
            raise ConflictError("Payments credited to an instructor cannot be deleted")
        payment.delete()
        logger.info("Payment deleted: %s", payment_id)

    # ---------- settlement ----------

    def initiate(self, payment_data: Dict[str, Any], payer, callback_url: str) -> InitiationResult:
        """
        Create a pending payment and open a Chapa checkout for it.

        Raises:
            ValidationError: If the course does not exist
            ConfigurationError: If the gateway secret is missing
            ConflictError: If the generated reference collides (not retried)
            GatewayError: If Chapa rejects the initialization
        """
        course = self._resolve_course(payment_data.get("course"))
        self.gateway.ensure_configured()

        tx_ref = generate_tx_ref()
        payment = self._persist(
            user=payer,
            course=course,
            tx_ref=tx_ref,
            amount=payment_data["amount"],
            type=payment_data["type"],
            status=Payment.STATUS_PENDING,
        )
        logger.info("Pending payment %s created (tx_ref=%s)", payment.pk, tx_ref)

        result = self.gateway.initialize(
            amount=payment.amount,
            email=payer.email,
            first_name=payer.username or "",
            tx_ref=tx_ref,
            callback_url=callback_url,
        )
        return InitiationResult(
            payment=payment,
            checkout_url=result.checkout_url,
            provider_payload=result.payload,
            public_key=self.gateway.public_key,
        )

    def verify(self, tx_ref: str) -> VerificationResult:
        """
        Reconcile a payment with Chapa. Safe to call repeatedly.

        Raises:
            NotFoundError: If no payment has this reference
            GatewayError: If Chapa cannot be reached or rejects the call
        """
        if not Payment.objects.filter(tx_ref=tx_ref).exists():
            raise NotFoundError("Payment record not found", resource="payment")

        provider_result = self.gateway.verify(tx_ref)
        provider_status = str(provider_result.get("status") or "").lower()

        if provider_status == Payment.STATUS_SUCCESS:
            self._settle(tx_ref)
        else:
            self._mark_unsettled(tx_ref, provider_status)

        payment = Payment.objects.select_related("course").get(tx_ref=tx_ref)
        return VerificationResult(provider_result=provider_result, payment=payment)

    def _mark_unsettled(self, tx_ref: str, provider_status: str) -> None:
        status = provider_status if provider_status in (Payment.STATUS_PENDING, Payment.STATUS_FAILED) else Payment.STATUS_FAILED
        # A settled payment is never downgraded.
        updated = (
            Payment.objects.filter(tx_ref=tx_ref)
            .exclude(status=Payment.STATUS_SUCCESS)
            .update(status=status)
        )
        if updated:
            logger.info("Payment %s marked %s (provider status=%r)", tx_ref, status, provider_status)
        else:
            logger.warning(
                "Ignoring provider status %r for already settled payment %s", provider_status, tx_ref
            )

    def _settle(self, tx_ref: str) -> None:
        with transaction.atomic():
            payment = (
                Payment.objects.select_for_update()
                .select_related("course")
                .get(tx_ref=tx_ref)
            )

            split = compute_split(payment.amount)
            payment.status = Payment.STATUS_SUCCESS
            payment.platform_share = split.platform_share
            payment.instructor_share = split.instructor_share
            payment.gateway_fee_estimate = split.gateway_fee
            update_fields = [
                "status",
                "platform_share",
                "instructor_share",
                "gateway_fee_estimate",
                "updated_at",
            ]

            course = payment.course
            if course is not None:
                self._ensure_enrollment(payment.user_id, course, tx_ref)

                if not payment.payout_credited and course.instructor_id:
                    self._credit_instructor(course.instructor_id, split.instructor_share)
                    payment.payout_credited = True
                    payment.payout_status = Payment.PAYOUT_PENDING
                    update_fields += ["payout_credited", "payout_status"]
                    logger.info(
                        "Credited instructor %s with %s for payment %s",
                        course.instructor_id,
                        split.instructor_share,
                        tx_ref,
                    )

            payment.save(update_fields=update_fields)

        logger.info(
            "Payment %s settled (platform=%s, instructor=%s)",
            tx_ref,
            split.platform_share,
            split.instructor_share,
        )

    def _ensure_enrollment(self, student_id, course: Course, tx_ref: str) -> bool:
        _enrollment, created = Enrollment.objects.get_or_create(student_id=student_id, course=course)
        course.students.add(student_id)
        if created:
            logger.info(
                "Enrolled user %s into course %s (ref=%s).", student_id, course.pk, tx_ref
            )
        else:
            logger.info(
                "Enrollment already exists for user %s and course %s.", student_id, course.pk
            )
        return created

    def _credit_instructor(self, instructor_id, share: Decimal) -> None:
        Profile.objects.get_or_create(user_id=instructor_id)
        Profile.objects.filter(user_id=instructor_id).update(earnings=F("earnings") + share)

    # ---------- payouts ----------

    def unpaid_payouts(self) -> QuerySet:
        return self.payouts.unpaid()

    def mark_paid(self, payment_id, payout_tx_ref: Optional[str] = None) -> Payment:
        return self.payouts.mark_paid(payment_id, payout_tx_ref)
