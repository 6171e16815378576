"""

Payments Views for Chapa Integration
====================================

This module provides the API endpoints of the payment settlement flow.

Endpoints:
----------

1. PaymentListCreateView
   - URL: /api/elearning/payments/
   - Methods: POST (authenticated), GET (admin)
   - Purpose:
       POST records a payment with a caller supplied ``tx_ref``.
       GET lists every payment, newest first.

2. MyPaymentsView
   - URL: /api/elearning/payments/me/
   - Method: GET
   - Auth: Required
   - Purpose: Lists the caller's own payments.

3. ChapaInitView
   - URL: /api/elearning/payments/chapa/init/
   - Method: POST
   - Auth: Required
   - Expected Body:
       {
           "course": 42,
           "amount": "1000.00",
           "type": "one-time",
           "callback_url": "https://..."   (optional)
       }
   - Purpose:
       Creates a pending payment and returns the Chapa checkout URL.
   - Typical Flow:
       1. Frontend calls this endpoint and redirects the user to checkout_url.
       2. Chapa calls the verify endpoint (callback_url) once the user paid.
       3. Frontend may also poll the verify endpoint with the returned tx_ref.

4. ChapaVerifyView
   - URL: /api/elearning/payments/chapa/verify/
   - Methods: POST, GET
   - Auth: Public (the gateway calls it)
   - Expected Input: ``tx_ref`` in the body or the query string
   - Purpose:
       Reconciles the payment with Chapa. On success the payer is enrolled
       and the course instructor credited, exactly once.

5. UnpaidPayoutsView
   - URL: /api/elearning/payments/unpaid-payouts/
   - Method: GET
   - Auth: Admin
   - Purpose: Lists credited payments whose instructor share is not paid out.

6. MarkPaidView
   - URL: /api/elearning/payments/<id>/mark-paid/
   - Method: POST
   - Auth: Admin
   - Expected Body: { "payout_tx_ref": "bank-123" }   (optional)

7. PaymentDetailView
   - URL: /api/elearning/payments/<id>/
   - Methods: GET (admin or owner), PUT (owner or admin), DELETE (owner or admin)

Error Responses:
----------------
Every failure of the settlement service is a PlatformException and is
returned as ``{"detail", "error_code", "details"}`` with its status code.

Dependencies:
-------------
- Django REST Framework for API endpoints.
- requests (through core.chapa_integration) for the gateway calls.

Author: DSP Development Team
Date: [2025-09-03]
"""

import logging

from django.conf import settings
from rest_framework import status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import PlatformException, ValidationError
from ..users.models import is_platform_admin
from .permissions import IsPlatformAdmin
from .serializers import (
    MarkPaidSerializer,
    PaymentCreateSerializer,
    PaymentInitiateSerializer,
    PaymentSerializer,
    PaymentUpdateSerializer,
    PayoutSerializer,
)
from .services import SettlementOrchestrator

logger = logging.getLogger(__name__)


def default_callback_url() -> str:
    return f"{settings.APP_BASE_URL.rstrip('/')}/api/elearning/payments/chapa/verify/"


def error_response(exc: PlatformException) -> Response:
    if exc.is_server_fault:
        logger.exception("Payment request failed: %s", exc.message)
    else:
        logger.warning("Payment request rejected: %s", exc.message)
    return Response(exc.to_dict(), status=exc.status_code)


class PaymentAPIView(APIView):
    """Base view holding the settlement service."""

    orchestrator_class = SettlementOrchestrator

    def get_orchestrator(self) -> SettlementOrchestrator:
        return self.orchestrator_class()


class PaymentListCreateView(PaymentAPIView):
    def get_permissions(self):
        if self.request.method == "GET":
            return [IsPlatformAdmin()]
        return [IsAuthenticated()]

    def get(self, request):
        payments = self.get_orchestrator().list_payments()
        return Response(PaymentSerializer(payments, many=True).data, status=status.HTTP_200_OK)

    def post(self, request):
        serializer = PaymentCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            payment = self.get_orchestrator().create_payment(serializer.validated_data, request.user)
        except PlatformException as e:
            return error_response(e)
        return Response(PaymentSerializer(payment).data, status=status.HTTP_201_CREATED)


class MyPaymentsView(PaymentAPIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        payments = self.get_orchestrator().list_payments_for_user(request.user)
        return Response(PaymentSerializer(payments, many=True).data, status=status.HTTP_200_OK)


class ChapaInitView(PaymentAPIView):
    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = PaymentInitiateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        callback_url = request.data.get("callback_url") or default_callback_url()

        try:
            result = self.get_orchestrator().initiate(serializer.validated_data, request.user, callback_url)
        except PlatformException as e:
            return error_response(e)

        return Response(
            {
                "checkout_url": result.checkout_url,
                "tx_ref": result.payment.tx_ref,
                "public_key": result.public_key,
                "payment": PaymentSerializer(result.payment).data,
                "chapa": result.provider_payload,
            },
            status=status.HTTP_201_CREATED,
        )


class ChapaVerifyView(PaymentAPIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request):
        return self._verify(request.query_params.get("tx_ref") or request.query_params.get("trx_ref"))

    def post(self, request):
        tx_ref = request.data.get("tx_ref") or request.query_params.get("tx_ref")
        return self._verify(tx_ref)

    def _verify(self, tx_ref):
        if not tx_ref:
            return error_response(ValidationError("tx_ref is required"))

        try:
            result = self.get_orchestrator().verify(str(tx_ref))
        except PlatformException as e:
            return error_response(e)

        return Response(
            {
                "chapa": result.provider_result,
                "payment": PaymentSerializer(result.payment).data,
            },
            status=status.HTTP_200_OK,
        )


class UnpaidPayoutsView(PaymentAPIView):
    permission_classes = [IsPlatformAdmin]

    def get(self, request):
        payouts = self.get_orchestrator().unpaid_payouts()
        return Response(PayoutSerializer(payouts, many=True).data, status=status.HTTP_200_OK)


class MarkPaidView(PaymentAPIView):
    permission_classes = [IsPlatformAdmin]

    def post(self, request, pk):
        serializer = MarkPaidSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            payment = self.get_orchestrator().mark_paid(pk, serializer.validated_data.get("payout_tx_ref"))
        except PlatformException as e:
            return error_response(e)
        return Response(PayoutSerializer(payment).data, status=status.HTTP_200_OK)


class PaymentDetailView(PaymentAPIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        try:
            payment = self.get_orchestrator().get_payment(pk)
        except PlatformException as e:
            return error_response(e)
        if payment.user_id != request.user.pk and not is_platform_admin(request.user):
            return Response(
                {"detail": "Not authorized to view this payment"},
                status=status.HTTP_403_FORBIDDEN,
            )
        return Response(PaymentSerializer(payment).data, status=status.HTTP_200_OK)

    def put(self, request, pk):
        serializer = PaymentUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        try:
            payment = self.get_orchestrator().update_payment(pk, serializer.validated_data, request.user)
        except PlatformException as e:
            return error_response(e)
        return Response(PaymentSerializer(payment).data, status=status.HTTP_200_OK)

    def delete(self, request, pk):
        try:
            self.get_orchestrator().delete_payment(pk, request.user)
        except PlatformException as e:
            return error_response(e)
        return Response(status=status.HTTP_204_NO_CONTENT)
