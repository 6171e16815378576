"""
Payout Ledger

Tracks which settled payments have had their instructor share paid out.
Crediting happens during settlement (see services.py); this module covers the
operator side: listing credited-but-unpaid payments and recording a payout.
"""

import logging
from typing import Optional

from django.db import transaction
from django.db.models import QuerySet
from django.utils import timezone

from core.exceptions import NotFoundError, ValidationError
from .models import Payment

logger = logging.getLogger(__name__)


class PayoutLedger:
    def unpaid(self) -> QuerySet:
        return (
            Payment.objects.filter(payout_credited=True)
            .exclude(payout_status=Payment.PAYOUT_PAID)
            .select_related("course", "course__instructor", "user")
        )

    def mark_paid(self, payment_id, payout_tx_ref: Optional[str] = None) -> Payment:
        """
        Record that the instructor share of a payment was paid out.

        Marking an already paid payment again leaves the original payout
        timestamp in place.

        Raises:
            NotFoundError: If the payment does not exist
            ValidationError: If the payment was never credited to an instructor
        """
        with transaction.atomic():
            try:
                payment = Payment.objects.select_for_update().get(pk=payment_id)
            except (Payment.DoesNotExist, ValueError, TypeError):
                raise NotFoundError("Payment not found", resource="payment")

            if not payment.payout_credited:
                raise ValidationError("Payment has no credited payout to mark as paid")

            if payment.payout_status == Payment.PAYOUT_PAID:
                logger.info("Payout for payment %s already marked paid", payment.pk)
                return payment

            payment.payout_status = Payment.PAYOUT_PAID
            payment.payout_paid_at = timezone.now()
            update_fields = ["payout_status", "payout_paid_at", "updated_at"]
            if payout_tx_ref:
                payment.payout_tx_ref = payout_tx_ref
                update_fields.append("payout_tx_ref")
            payment.save(update_fields=update_fields)

        logger.info("Payout for payment %s marked paid (ref=%s)", payment.pk, payout_tx_ref)
        return payment
