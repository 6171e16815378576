"""
    Tests für die Auszahlungen an Instructors: offene Auszahlungen auflisten und als bezahlt markieren.
"""

from decimal import Decimal

from django.test import TestCase

from core.exceptions import NotFoundError, ValidationError
from elearning.payments.models import Payment
from elearning.payments.payouts import PayoutLedger
from elearning.payments.services import SettlementOrchestrator

from .helpers import FakeGateway, create_course, create_user, earnings_of


class PayoutLedgerTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        cls.instructor = create_user("instructor", role="instructor")
        cls.student = create_user("student")
        cls.course = create_course(cls.instructor)

    def setUp(self):
        self.ledger = PayoutLedger()
        gateway = FakeGateway()
        self.settled = Payment.objects.create(
            user=self.student, course=self.course, tx_ref="settled", amount=Decimal("1000"), type="one-time"
        )
        self.pending = Payment.objects.create(
            user=self.student, course=self.course, tx_ref="pending", amount=Decimal("500"), type="one-time"
        )
        gateway.statuses["settled"] = "success"
        SettlementOrchestrator(gateway=gateway).verify("settled")

    def test_unpaid_lists_only_credited_payments(self):
        self.assertEqual(list(self.ledger.unpaid()), [Payment.objects.get(tx_ref="settled")])

    def test_mark_paid(self):
        payment = self.ledger.mark_paid(self.settled.pk, "bank-2025-001")

        self.assertEqual(payment.payout_status, Payment.PAYOUT_PAID)
        self.assertIsNotNone(payment.payout_paid_at)
        self.assertEqual(payment.payout_tx_ref, "bank-2025-001")
        self.assertFalse(self.ledger.unpaid().exists())
        # Paying out does not touch the credited balance.
        self.assertEqual(earnings_of(self.instructor), Decimal("800"))

    def test_mark_paid_twice_keeps_first_timestamp(self):
        first = self.ledger.mark_paid(self.settled.pk)
        second = self.ledger.mark_paid(self.settled.pk, "late-ref")
        self.assertEqual(second.payout_paid_at, first.payout_paid_at)
        self.assertEqual(second.payout_tx_ref, "")

    def test_mark_paid_requires_credit(self):
        with self.assertRaises(ValidationError):
            self.ledger.mark_paid(self.pending.pk)
        self.pending.refresh_from_db()
        self.assertEqual(self.pending.payout_status, Payment.PAYOUT_PENDING)

    def test_mark_paid_unknown_payment(self):
        with self.assertRaises(NotFoundError):
            self.ledger.mark_paid(987654)

    def test_orchestrator_delegates(self):
        orchestrator = SettlementOrchestrator(gateway=FakeGateway(), payouts=self.ledger)
        self.assertEqual(orchestrator.unpaid_payouts().count(), 1)
        self.assertEqual(
            orchestrator.mark_paid(self.settled.pk).payout_status, Payment.PAYOUT_PAID
        )
