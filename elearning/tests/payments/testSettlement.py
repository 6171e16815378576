"""
    Tests für den Zahlungsablauf: Checkout anlegen, Verifizierung, atomare Gutschrift
    (Einschreibung + Instructor-Einnahmen) und die Aufteilung Plattform/Instructor.
"""

import threading
import unittest
from decimal import Decimal
from unittest import mock

from django.db import connection
from django.test import SimpleTestCase, TestCase, TransactionTestCase

from core.chapa_integration import ChapaClient, ChapaConfig
from core.exceptions import (
    ConfigurationError,
    ConflictError,
    GatewayError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from elearning.courses.models import Enrollment
from elearning.payments.models import Payment
from elearning.payments.services import SettlementOrchestrator, compute_split, generate_tx_ref

from .helpers import FakeGateway, create_course, create_user, earnings_of

CALLBACK = "https://api.example.com/api/elearning/payments/chapa/verify/"


class SplitTests(SimpleTestCase):
    def test_twenty_percent_platform_share(self):
        split = compute_split(Decimal("1000"))
        self.assertEqual(split.platform_share, Decimal("200"))
        self.assertEqual(split.instructor_share, Decimal("800"))
        self.assertEqual(split.gateway_fee, Decimal("0"))

    def test_platform_share_rounds_half_up_to_whole_units(self):
        # 0.2 * 12.50 = 2.50 -> 3
        split = compute_split(Decimal("12.50"))
        self.assertEqual(split.platform_share, Decimal("3"))
        self.assertEqual(split.instructor_share, Decimal("9.50"))

    def test_shares_add_up_to_net(self):
        for amount in ("0.01", "7.77", "99.99", "1234.56"):
            split = compute_split(Decimal(amount), Decimal("1.00"))
            self.assertEqual(
                split.platform_share + split.instructor_share + split.gateway_fee, Decimal(amount)
            )

    def test_fee_is_clamped(self):
        split = compute_split(Decimal("10"), Decimal("25"))
        self.assertEqual(split.gateway_fee, Decimal("10"))
        self.assertEqual(split.instructor_share, Decimal("0"))
        self.assertEqual(compute_split(Decimal("10"), Decimal("-3")).gateway_fee, Decimal("0"))


class TxRefTests(SimpleTestCase):
    def test_format(self):
        tx_ref = generate_tx_ref()
        prefix, millis, token = tx_ref.split("_")
        self.assertEqual(prefix, "chapa")
        self.assertTrue(millis.isdigit())
        self.assertEqual(len(token), 16)

    def test_distinct_over_many_generations(self):
        refs = {generate_tx_ref() for _ in range(5000)}
        self.assertEqual(len(refs), 5000)


class InitiateTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        cls.instructor = create_user("instructor", role="instructor")
        cls.student = create_user("student")
        cls.course = create_course(cls.instructor)

    def setUp(self):
        self.gateway = FakeGateway()
        self.orchestrator = SettlementOrchestrator(gateway=self.gateway)

    def payment_data(self, **overrides):
        data = {"course": self.course.pk, "amount": Decimal("1000"), "type": Payment.TYPE_ONE_TIME}
        data.update(overrides)
        return data

    def test_creates_pending_payment_and_returns_checkout(self):
        result = self.orchestrator.initiate(self.payment_data(), self.student, CALLBACK)

        payment = Payment.objects.get(tx_ref=result.payment.tx_ref)
        self.assertEqual(payment.status, Payment.STATUS_PENDING)
        self.assertEqual(payment.user, self.student)
        self.assertEqual(payment.course, self.course)
        self.assertTrue(result.checkout_url.endswith(payment.tx_ref))
        self.assertEqual(result.public_key, "CHAPUBK_TEST-fake")
        self.assertEqual(self.gateway.initialized, [payment.tx_ref])

    def test_unknown_course_is_rejected(self):
        with self.assertRaises(ValidationError):
            self.orchestrator.initiate(self.payment_data(course=999999), self.student, CALLBACK)
        self.assertFalse(Payment.objects.exists())

    def test_payment_without_course(self):
        result = self.orchestrator.initiate(self.payment_data(course=None), self.student, CALLBACK)
        self.assertIsNone(result.payment.course)

    def test_missing_secret_key_fails_before_persisting(self):
        orchestrator = SettlementOrchestrator(gateway=ChapaClient(ChapaConfig(secret_key=None)))
        with self.assertRaises(ConfigurationError):
            orchestrator.initiate(self.payment_data(), self.student, CALLBACK)
        self.assertFalse(Payment.objects.exists())

    def test_gateway_failure_leaves_pending_row(self):
        orchestrator = SettlementOrchestrator(gateway=FakeGateway(fail_initialize=True))
        with self.assertRaises(GatewayError):
            orchestrator.initiate(self.payment_data(), self.student, CALLBACK)
        self.assertEqual(Payment.objects.filter(status=Payment.STATUS_PENDING).count(), 1)

    def test_colliding_reference_is_a_conflict(self):
        Payment.objects.create(
            user=self.student, tx_ref="chapa_1_dup", amount=Decimal("5"), type=Payment.TYPE_ONE_TIME
        )
        with mock.patch("elearning.payments.services.generate_tx_ref", return_value="chapa_1_dup"):
            with self.assertRaises(ConflictError):
                self.orchestrator.initiate(self.payment_data(), self.student, CALLBACK)
        self.assertEqual(self.gateway.initialized, [])


class VerifyTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        cls.instructor = create_user("instructor", role="instructor")
        cls.student = create_user("student")
        cls.course = create_course(cls.instructor)

    def setUp(self):
        self.gateway = FakeGateway()
        self.orchestrator = SettlementOrchestrator(gateway=self.gateway)
        self.payment = Payment.objects.create(
            user=self.student,
            course=self.course,
            tx_ref="chapa_1700000000000_a1b2c3d4e5f60718",
            amount=Decimal("1000"),
            type=Payment.TYPE_ONE_TIME,
        )

    def test_success_fans_out_once(self):
        self.gateway.statuses[self.payment.tx_ref] = "success"

        result = self.orchestrator.verify(self.payment.tx_ref)

        payment = result.payment
        self.assertEqual(payment.status, Payment.STATUS_SUCCESS)
        self.assertEqual(payment.platform_share, Decimal("200"))
        self.assertEqual(payment.instructor_share, Decimal("800"))
        self.assertTrue(payment.payout_credited)
        self.assertEqual(payment.payout_status, Payment.PAYOUT_PENDING)
        self.assertEqual(result.provider_result["status"], "success")
        self.assertTrue(
            Enrollment.objects.filter(student=self.student, course=self.course).exists()
        )
        self.assertIn(self.student, self.course.students.all())
        self.assertEqual(earnings_of(self.instructor), Decimal("800"))

    def test_repeated_verify_is_idempotent(self):
        self.gateway.statuses[self.payment.tx_ref] = "success"

        for _ in range(3):
            self.orchestrator.verify(self.payment.tx_ref)

        self.assertEqual(
            Enrollment.objects.filter(student=self.student, course=self.course).count(), 1
        )
        self.assertEqual(self.course.students.filter(pk=self.student.pk).count(), 1)
        self.assertEqual(earnings_of(self.instructor), Decimal("800"))

    def test_existing_enrollment_is_kept(self):
        Enrollment.objects.create(student=self.student, course=self.course, progress=40)
        self.gateway.statuses[self.payment.tx_ref] = "success"

        self.orchestrator.verify(self.payment.tx_ref)

        enrollment = Enrollment.objects.get(student=self.student, course=self.course)
        self.assertEqual(enrollment.progress, 40)
        self.assertEqual(earnings_of(self.instructor), Decimal("800"))

    def test_unknown_reference(self):
        with self.assertRaises(NotFoundError):
            self.orchestrator.verify("chapa_0_unknown")
        self.assertEqual(self.gateway.verified, [])

    def test_failed_status_has_no_side_effects(self):
        self.gateway.statuses[self.payment.tx_ref] = "failed"

        result = self.orchestrator.verify(self.payment.tx_ref)

        self.assertEqual(result.payment.status, Payment.STATUS_FAILED)
        self.assertFalse(result.payment.payout_credited)
        self.assertFalse(Enrollment.objects.exists())
        self.assertEqual(earnings_of(self.instructor), Decimal("0"))

    def test_pending_status_stays_pending(self):
        result = self.orchestrator.verify(self.payment.tx_ref)
        self.assertEqual(result.payment.status, Payment.STATUS_PENDING)

    def test_unknown_provider_status_counts_as_failed(self):
        self.gateway.statuses[self.payment.tx_ref] = "reversed"
        result = self.orchestrator.verify(self.payment.tx_ref)
        self.assertEqual(result.payment.status, Payment.STATUS_FAILED)

    def test_settled_payment_is_not_downgraded(self):
        self.gateway.statuses[self.payment.tx_ref] = "success"
        self.orchestrator.verify(self.payment.tx_ref)

        self.gateway.statuses[self.payment.tx_ref] = "failed"
        result = self.orchestrator.verify(self.payment.tx_ref)

        self.assertEqual(result.payment.status, Payment.STATUS_SUCCESS)
        self.assertEqual(earnings_of(self.instructor), Decimal("800"))

    def test_course_without_instructor_enrolls_without_credit(self):
        course = create_course(instructor=None)
        self.payment.course = course
        self.payment.save()
        self.gateway.statuses[self.payment.tx_ref] = "success"

        result = self.orchestrator.verify(self.payment.tx_ref)

        self.assertEqual(result.payment.status, Payment.STATUS_SUCCESS)
        self.assertFalse(result.payment.payout_credited)
        self.assertTrue(Enrollment.objects.filter(student=self.student, course=course).exists())

    def test_failure_during_fan_out_rolls_back(self):
        self.gateway.statuses[self.payment.tx_ref] = "success"

        with mock.patch.object(
            SettlementOrchestrator, "_credit_instructor", side_effect=RuntimeError("db down")
        ):
            with self.assertRaises(RuntimeError):
                self.orchestrator.verify(self.payment.tx_ref)

        payment = Payment.objects.get(pk=self.payment.pk)
        self.assertEqual(payment.status, Payment.STATUS_PENDING)
        self.assertFalse(payment.payout_credited)
        self.assertFalse(Enrollment.objects.exists())

        # The next verify completes the settlement.
        self.orchestrator.verify(self.payment.tx_ref)
        self.assertEqual(earnings_of(self.instructor), Decimal("800"))

    def test_gateway_error_propagates(self):
        self.gateway.verify = mock.Mock(side_effect=GatewayError("Chapa request failed"))
        with self.assertRaises(GatewayError):
            self.orchestrator.verify(self.payment.tx_ref)
        self.assertEqual(Payment.objects.get(pk=self.payment.pk).status, Payment.STATUS_PENDING)


class PaymentRecordTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        cls.instructor = create_user("instructor", role="instructor")
        cls.student = create_user("student")
        cls.other = create_user("other")
        cls.admin = create_user("operator", role="admin")
        cls.course = create_course(cls.instructor)

    def setUp(self):
        self.orchestrator = SettlementOrchestrator(gateway=FakeGateway())

    def create(self, tx_ref="manual-1", user=None):
        return self.orchestrator.create_payment(
            {"tx_ref": tx_ref, "course": self.course.pk, "amount": Decimal("50"), "type": "subscription"},
            user or self.student,
        )

    def test_create_and_list(self):
        payment = self.create()
        self.create("manual-2", user=self.other)
        self.assertEqual(payment.status, Payment.STATUS_PENDING)
        self.assertEqual(list(self.orchestrator.list_payments_for_user(self.student)), [payment])
        self.assertEqual(self.orchestrator.list_payments().count(), 2)

    def test_duplicate_reference(self):
        self.create()
        with self.assertRaises(ConflictError):
            self.create()

    def test_get_missing_payment(self):
        with self.assertRaises(NotFoundError):
            self.orchestrator.get_payment(424242)

    def test_owner_updates_payer_fields_only(self):
        payment = self.create()
        updated = self.orchestrator.update_payment(
            payment.pk, {"amount": Decimal("75"), "type": "one-time"}, self.student
        )
        self.assertEqual(updated.amount, Decimal("75"))
        self.assertEqual(updated.type, "one-time")
        self.assertEqual(updated.status, Payment.STATUS_PENDING)

    def test_stranger_cannot_update_or_delete(self):
        payment = self.create()
        with self.assertRaises(PermissionDeniedError):
            self.orchestrator.update_payment(payment.pk, {"amount": Decimal("1")}, self.other)
        with self.assertRaises(PermissionDeniedError):
            self.orchestrator.delete_payment(payment.pk, self.other)

    def test_settled_payment_cannot_be_edited(self):
        payment = self.create()
        Payment.objects.filter(pk=payment.pk).update(status=Payment.STATUS_SUCCESS)
        with self.assertRaises(ConflictError):
            self.orchestrator.update_payment(payment.pk, {"amount": Decimal("1")}, self.student)

    def test_admin_deletes(self):
        payment = self.create()
        self.orchestrator.delete_payment(payment.pk, self.admin)
        self.assertFalse(Payment.objects.filter(pk=payment.pk).exists())

    def test_credited_payment_cannot_be_deleted(self):
        payment = self.create()
        Payment.objects.filter(pk=payment.pk).update(payout_credited=True)
        with self.assertRaises(ConflictError):
            self.orchestrator.delete_payment(payment.pk, self.admin)


class InterleavedVerifyTests(TestCase):
    """
    Ein zweiter Verify-Aufruf schließt die Gutschrift ab, während der erste noch
    auf die Antwort von Chapa wartet. Der erste darf danach nichts doppelt buchen.
    """

    @classmethod
    def setUpTestData(cls):
        cls.instructor = create_user("instructor", role="instructor")
        cls.student = create_user("student")
        cls.course = create_course(cls.instructor)

    def setUp(self):
        self.payment = Payment.objects.create(
            user=self.student, course=self.course, tx_ref="tx_x", amount=Decimal("1000"), type="one-time"
        )
        self.gateway = FakeGateway()
        self.gateway.statuses["tx_x"] = "success"
        self.orchestrator = SettlementOrchestrator(gateway=self.gateway)

    def test_settlement_committed_during_gateway_call_credits_once(self):
        other_gateway = FakeGateway()
        other_gateway.statuses["tx_x"] = "success"
        provider_verify = self.gateway.verify

        def settle_elsewhere_first(tx_ref):
            SettlementOrchestrator(gateway=other_gateway).verify(tx_ref)
            return provider_verify(tx_ref)

        with mock.patch.object(self.gateway, "verify", side_effect=settle_elsewhere_first):
            result = self.orchestrator.verify("tx_x")

        self.assertEqual(other_gateway.verified, ["tx_x"])
        self.assertEqual(result.payment.status, Payment.STATUS_SUCCESS)
        self.assertTrue(result.payment.payout_credited)
        self.assertEqual(Enrollment.objects.filter(student=self.student, course=self.course).count(), 1)
        self.assertEqual(self.course.students.filter(pk=self.student.pk).count(), 1)
        self.assertEqual(earnings_of(self.instructor), Decimal("800"))

    def test_late_failure_report_after_settlement_keeps_success(self):
        def settle_then_report_failure(tx_ref):
            self.orchestrator._settle(tx_ref)
            return {"status": "failed", "tx_ref": tx_ref}

        with mock.patch.object(self.gateway, "verify", side_effect=settle_then_report_failure):
            result = self.orchestrator.verify("tx_x")

        self.assertEqual(result.payment.status, Payment.STATUS_SUCCESS)
        self.assertTrue(result.payment.payout_credited)
        self.assertEqual(earnings_of(self.instructor), Decimal("800"))


@unittest.skipUnless(
    connection.vendor == "postgresql", "row locks need a database with concurrent writers"
)
class ConcurrentVerifyTests(TransactionTestCase):
    def test_concurrent_verifies_credit_once(self):
        instructor = create_user("instructor", role="instructor")
        student = create_user("student")
        course = create_course(instructor)
        payment = Payment.objects.create(
            user=student, course=course, tx_ref="chapa_concurrent", amount=Decimal("1000"), type="one-time"
        )
        gateway = FakeGateway()
        gateway.statuses[payment.tx_ref] = "success"
        errors = []

        def run():
            try:
                SettlementOrchestrator(gateway=gateway).verify(payment.tx_ref)
            except Exception as e:
                errors.append(e)
            finally:
                connection.close()

        threads = [threading.Thread(target=run) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(errors, [])
        self.assertEqual(Enrollment.objects.filter(student=student, course=course).count(), 1)
        self.assertEqual(earnings_of(instructor), Decimal("800"))
