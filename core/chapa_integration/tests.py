"""
Chapa Integration Tests - DSP

Client tests with ``requests.request`` patched out; no network access.

Author: DSP Development Team
Date: 2025-09-03
"""

from decimal import Decimal
from unittest import mock

import requests
from django.test import SimpleTestCase, override_settings

from core.exceptions import ConfigurationError, GatewayError
from .client import ChapaClient, ChapaConfig


def fake_response(status_code=200, body=None, json_error=False):
    response = mock.Mock(spec=requests.Response)
    response.status_code = status_code
    response.ok = 200 <= status_code < 400
    if json_error:
        response.json.side_effect = ValueError("not json")
    else:
        response.json.return_value = body
    return response


class ChapaConfigTests(SimpleTestCase):
    @override_settings(
        CHAPA_BASE_URL="https://sandbox.chapa.test/",
        CHAPA_SECRET_KEY="CHASECK_TEST-abc",
        CHAPA_PUBLIC_KEY="CHAPUBK_TEST-xyz",
        CHAPA_TIMEOUT_SECONDS=7,
    )
    def test_from_settings(self):
        config = ChapaConfig.from_settings()
        self.assertEqual(config.base_url, "https://sandbox.chapa.test")
        self.assertEqual(config.public_key, "CHAPUBK_TEST-xyz")
        self.assertEqual(config.timeout, 7.0)
        self.assertTrue(config.is_configured)

    def test_secret_not_in_repr(self):
        config = ChapaConfig(secret_key="CHASECK_TEST-abc")
        self.assertNotIn("CHASECK_TEST-abc", repr(config))

    @override_settings(CHAPA_SECRET_KEY="")
    def test_blank_secret_is_unconfigured(self):
        self.assertFalse(ChapaConfig.from_settings().is_configured)


class ChapaClientTests(SimpleTestCase):
    def setUp(self):
        self.chapa = ChapaClient(
            ChapaConfig(base_url="https://api.chapa.test", secret_key="sk", timeout=3)
        )

    @mock.patch("core.chapa_integration.client.requests.request")
    def test_initialize_returns_checkout_url(self, request):
        request.return_value = fake_response(
            body={
                "status": "success",
                "data": {"checkout_url": "https://checkout.chapa.test/pay/1"},
            }
        )

        result = self.chapa.initialize(
            amount=Decimal("1000.00"),
            email="student@example.com",
            first_name="student",
            tx_ref="chapa_1_abc",
            callback_url="https://app.test/verify/",
        )

        self.assertEqual(result.checkout_url, "https://checkout.chapa.test/pay/1")
        args, kwargs = request.call_args
        self.assertEqual(args, ("POST", "https://api.chapa.test/v1/transaction/initialize"))
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer sk")
        self.assertEqual(kwargs["timeout"], 3)
        self.assertEqual(kwargs["json"]["amount"], "1000.00")
        self.assertEqual(kwargs["json"]["currency"], "ETB")
        self.assertEqual(kwargs["json"]["tx_ref"], "chapa_1_abc")

    @mock.patch("core.chapa_integration.client.requests.request")
    def test_initialize_without_checkout_url_fails(self, request):
        request.return_value = fake_response(body={"status": "success", "data": {}})
        with self.assertRaises(GatewayError):
            self.chapa.initialize(
                amount=Decimal("10"),
                email="a@example.com",
                first_name="a",
                tx_ref="t",
                callback_url="https://app.test/verify/",
            )

    @mock.patch("core.chapa_integration.client.requests.request")
    def test_verify_returns_data(self, request):
        request.return_value = fake_response(
            body={"status": "success", "data": {"status": "success", "tx_ref": "t1"}}
        )
        data = self.chapa.verify("t1")
        self.assertEqual(data["status"], "success")
        self.assertEqual(
            request.call_args[0], ("GET", "https://api.chapa.test/v1/transaction/verify/t1")
        )

    @mock.patch("core.chapa_integration.client.requests.request")
    def test_provider_error_carries_message_and_status(self, request):
        request.return_value = fake_response(
            status_code=400, body={"message": "Invalid transaction", "status": "failed", "data": None}
        )
        with self.assertRaises(GatewayError) as ctx:
            self.chapa.verify("t1")
        self.assertEqual(ctx.exception.message, "Invalid transaction")
        self.assertEqual(ctx.exception.provider_status, 400)
        self.assertEqual(ctx.exception.status_code, 502)

    @mock.patch("core.chapa_integration.client.requests.request")
    def test_non_json_body(self, request):
        request.return_value = fake_response(status_code=502, json_error=True)
        with self.assertRaises(GatewayError):
            self.chapa.verify("t1")

    @mock.patch("core.chapa_integration.client.requests.request")
    def test_verify_without_status_fails(self, request):
        request.return_value = fake_response(body={"data": {"tx_ref": "t1"}})
        with self.assertRaises(GatewayError):
            self.chapa.verify("t1")

    @mock.patch("core.chapa_integration.client.requests.request")
    def test_timeout_maps_to_gateway_error(self, request):
        request.side_effect = requests.exceptions.Timeout()
        with self.assertRaises(GatewayError):
            self.chapa.verify("t1")

    @mock.patch("core.chapa_integration.client.requests.request")
    def test_connection_error_maps_to_gateway_error(self, request):
        request.side_effect = requests.exceptions.ConnectionError("refused")
        with self.assertRaises(GatewayError):
            self.chapa.verify("t1")

    @mock.patch("core.chapa_integration.client.requests.request")
    def test_missing_secret_fails_before_network(self, request):
        client = ChapaClient(ChapaConfig(secret_key=None))
        with self.assertRaises(ConfigurationError):
            client.verify("t1")
        request.assert_not_called()
