"""
    Test Script für die Payment-Endpunkte unter /api/elearning/payments/.
    Tokens werden über /api/elearning/token/ ausgestellt und als Bearer-Header gesendet.
"""

from decimal import Decimal
from unittest import mock

from django.test import TestCase, override_settings
from rest_framework import status

from elearning.courses.models import Enrollment
from elearning.payments.models import Payment

from .helpers import FakeGateway, create_course, create_user, earnings_of

BASE = "/api/elearning/payments/"


class PaymentViewTestCase(TestCase):
    @classmethod
    def setUpTestData(cls):
        cls.instructor = create_user("instructor", role="instructor")
        cls.student = create_user("student")
        cls.other = create_user("other")
        cls.admin = create_user("operator", is_staff=True)
        cls.course = create_course(cls.instructor)

    def setUp(self):
        self.gateway = FakeGateway()
        patcher = mock.patch(
            "elearning.payments.services.ChapaClient.from_settings", return_value=self.gateway
        )
        patcher.start()
        self.addCleanup(patcher.stop)

    def auth(self, user):
        response = self.client.post(
            "/api/elearning/token/", {"username": user.username, "password": "pw-123456"}
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        return {"HTTP_AUTHORIZATION": f"Bearer {response.json()['access']}"}


class TokenTests(PaymentViewTestCase):
    def test_token_carries_role(self):
        response = self.client.post(
            "/api/elearning/token/", {"username": "instructor", "password": "pw-123456"}
        )
        body = response.json()
        self.assertEqual(body["role"], "instructor")
        self.assertIn("access", body)
        self.assertIn("refresh", body)

    def test_refresh_token(self):
        response = self.client.post(
            "/api/elearning/token/", {"username": "student", "password": "pw-123456"}
        )
        refresh = response.json()["refresh"]
        response = self.client.post("/api/elearning/token/refresh/", {"refresh": refresh})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn("access", response.json())

    def test_refresh_token_failure(self):
        response = self.client.post("/api/elearning/token/refresh/", {"refresh": "bad token"})
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class ChapaFlowTests(PaymentViewTestCase):
    def test_init_then_verify(self):
        headers = self.auth(self.student)
        response = self.client.post(
            f"{BASE}chapa/init/",
            {"course": self.course.pk, "amount": "1000.00", "type": "one-time"},
            content_type="application/json",
            **headers,
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        body = response.json()
        tx_ref = body["tx_ref"]
        self.assertTrue(body["checkout_url"].endswith(tx_ref))
        self.assertEqual(body["payment"]["status"], "pending")

        self.gateway.statuses[tx_ref] = "success"
        response = self.client.get(f"{BASE}chapa/verify/", {"tx_ref": tx_ref})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.json()["payment"]["status"], "success")

        # Webhook delivery of the same reference changes nothing.
        response = self.client.post(
            f"{BASE}chapa/verify/", {"tx_ref": tx_ref}, content_type="application/json"
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Enrollment.objects.filter(student=self.student).count(), 1)
        self.assertEqual(earnings_of(self.instructor), Decimal("800"))

    def test_init_requires_authentication(self):
        response = self.client.post(
            f"{BASE}chapa/init/",
            {"course": self.course.pk, "amount": "10", "type": "one-time"},
            content_type="application/json",
        )
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_init_rejects_bad_amount(self):
        response = self.client.post(
            f"{BASE}chapa/init/",
            {"course": self.course.pk, "amount": "0", "type": "one-time"},
            content_type="application/json",
            **self.auth(self.student),
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_init_unknown_course(self):
        response = self.client.post(
            f"{BASE}chapa/init/",
            {"course": 999999, "amount": "10", "type": "one-time"},
            content_type="application/json",
            **self.auth(self.student),
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.json()["detail"], "Course not found")

    def test_init_gateway_failure_is_502(self):
        self.gateway.fail_initialize = True
        response = self.client.post(
            f"{BASE}chapa/init/",
            {"course": self.course.pk, "amount": "10", "type": "one-time"},
            content_type="application/json",
            **self.auth(self.student),
        )
        self.assertEqual(response.status_code, status.HTTP_502_BAD_GATEWAY)
        self.assertEqual(response.json()["error_code"], "GatewayError")
        self.assertEqual(Payment.objects.filter(status="pending").count(), 1)

    def test_verify_requires_tx_ref(self):
        response = self.client.get(f"{BASE}chapa/verify/")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_verify_unknown_reference(self):
        response = self.client.get(f"{BASE}chapa/verify/", {"tx_ref": "chapa_0_missing"})
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.json()["error_code"], "NotFound")


class PaymentCrudViewTests(PaymentViewTestCase):
    def setUp(self):
        super().setUp()
        self.payment = Payment.objects.create(
            user=self.student, course=self.course, tx_ref="manual-1", amount=Decimal("50"), type="one-time"
        )

    def test_create_payment(self):
        response = self.client.post(
            BASE,
            {"tx_ref": "manual-2", "course": self.course.pk, "amount": "25.00", "type": "subscription"},
            content_type="application/json",
            **self.auth(self.student),
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.json()["user"], self.student.pk)

    def test_duplicate_reference_is_409(self):
        response = self.client.post(
            BASE,
            {"tx_ref": "manual-1", "amount": "25.00", "type": "subscription"},
            content_type="application/json",
            **self.auth(self.student),
        )
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_list_all_is_admin_only(self):
        self.assertEqual(
            self.client.get(BASE, **self.auth(self.student)).status_code, status.HTTP_403_FORBIDDEN
        )
        response = self.client.get(BASE, **self.auth(self.admin))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.json()), 1)

    def test_my_payments(self):
        response = self.client.get(f"{BASE}me/", **self.auth(self.other))
        self.assertEqual(response.json(), [])
        response = self.client.get(f"{BASE}me/", **self.auth(self.student))
        self.assertEqual([p["tx_ref"] for p in response.json()], ["manual-1"])

    def test_detail_visibility(self):
        url = f"{BASE}{self.payment.pk}/"
        self.assertEqual(self.client.get(url, **self.auth(self.student)).status_code, 200)
        self.assertEqual(self.client.get(url, **self.auth(self.other)).status_code, 403)
        self.assertEqual(self.client.get(url, **self.auth(self.admin)).status_code, 200)
        self.assertEqual(
            self.client.get(f"{BASE}424242/", **self.auth(self.admin)).status_code, 404
        )

    def test_update_ignores_status(self):
        response = self.client.put(
            f"{BASE}{self.payment.pk}/",
            {"amount": "60.00", "status": "success"},
            content_type="application/json",
            **self.auth(self.student),
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.payment.refresh_from_db()
        self.assertEqual(self.payment.amount, Decimal("60.00"))
        self.assertEqual(self.payment.status, Payment.STATUS_PENDING)

    def test_delete_by_stranger_is_forbidden(self):
        response = self.client.delete(f"{BASE}{self.payment.pk}/", **self.auth(self.other))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        response = self.client.delete(f"{BASE}{self.payment.pk}/", **self.auth(self.student))
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)


class PayoutViewTests(PaymentViewTestCase):
    def setUp(self):
        super().setUp()
        self.payment = Payment.objects.create(
            user=self.student, course=self.course, tx_ref="settled", amount=Decimal("1000"), type="one-time"
        )
        self.gateway.statuses["settled"] = "success"
        self.client.get(f"{BASE}chapa/verify/", {"tx_ref": "settled"})

    def test_unpaid_and_mark_paid(self):
        headers = self.auth(self.admin)
        response = self.client.get(f"{BASE}unpaid-payouts/", **headers)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        payouts = response.json()
        self.assertEqual(len(payouts), 1)
        self.assertEqual(payouts[0]["instructor"], self.instructor.pk)
        self.assertEqual(Decimal(payouts[0]["instructor_share"]), Decimal("800"))

        response = self.client.post(
            f"{BASE}{self.payment.pk}/mark-paid/",
            {"payout_tx_ref": "bank-1"},
            content_type="application/json",
            **headers,
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.json()["payout_status"], "paid")
        self.assertEqual(self.client.get(f"{BASE}unpaid-payouts/", **headers).json(), [])

    def test_admin_role_without_staff_flag(self):
        operator = create_user("finance", role="admin")
        response = self.client.get(f"{BASE}unpaid-payouts/", **self.auth(operator))
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_payout_endpoints_are_admin_only(self):
        headers = self.auth(self.instructor)
        self.assertEqual(
            self.client.get(f"{BASE}unpaid-payouts/", **headers).status_code,
            status.HTTP_403_FORBIDDEN,
        )
        self.assertEqual(
            self.client.post(f"{BASE}{self.payment.pk}/mark-paid/", **headers).status_code,
            status.HTTP_403_FORBIDDEN,
        )


@override_settings(RATE_LIMIT_POINTS=3, RATE_LIMIT_DURATION=60, RATE_LIMIT_EXEMPT="/static")
class IngressGuardIntegrationTests(PaymentViewTestCase):
    def test_fourth_anonymous_request_is_throttled(self):
        url = f"{BASE}chapa/verify/"
        for remaining in ("2", "1", "0"):
            response = self.client.get(url)
            self.assertEqual(response["X-RateLimit-Remaining"], remaining)
        response = self.client.get(url)
        self.assertEqual(response.status_code, status.HTTP_429_TOO_MANY_REQUESTS)
        self.assertEqual(response.json(), {"detail": "Too many requests, please try again later."})
        self.assertGreaterEqual(int(response["Retry-After"]), 1)
