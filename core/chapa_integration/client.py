"""
Chapa Gateway Client

Thin HTTP client for the Chapa payment provider. It exposes the two calls the
settlement flow needs:

- initialize(): create a hosted checkout and return its URL
- verify(): fetch the authoritative status of a transaction

Both calls authenticate with the gateway secret key as a bearer token. A
missing secret raises ConfigurationError before any network traffic happens.
Every provider failure (transport error, non-2xx status, non-JSON body or a
body without a ``data`` object) surfaces as GatewayError; no call is retried
here, verification is re-triggered by the webhook or the polling client.

Author: DSP Development Team
Version: 1.0.0
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Optional

import requests
from django.conf import settings

from core.exceptions import ConfigurationError, GatewayError

logger = logging.getLogger(__name__)


DEFAULT_BASE_URL = "https://api.chapa.co"
DEFAULT_CURRENCY = "ETB"


@dataclass(frozen=True)
class ChapaConfig:
    """
    Immutable gateway configuration, built once and injected into the client.

    Attributes:
        base_url: Provider API root, without trailing slash
        secret_key: Bearer secret used for every call
        public_key: Publishable key handed to the frontend (optional)
        timeout: Transport timeout in seconds for each call
    """

    base_url: str = DEFAULT_BASE_URL
    secret_key: Optional[str] = field(default=None, repr=False)
    public_key: Optional[str] = None
    timeout: float = 15.0

    @classmethod
    def from_settings(cls) -> "ChapaConfig":
        return cls(
            base_url=(getattr(settings, "CHAPA_BASE_URL", "") or DEFAULT_BASE_URL).rstrip("/"),
            secret_key=getattr(settings, "CHAPA_SECRET_KEY", None) or None,
            public_key=getattr(settings, "CHAPA_PUBLIC_KEY", None) or None,
            timeout=float(getattr(settings, "CHAPA_TIMEOUT_SECONDS", 15)),
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.secret_key)


@dataclass(frozen=True)
class InitializeResult:
    checkout_url: str
    payload: Dict[str, Any]


class ChapaClient:
    """
    Chapa REST client.

    Example:
        >>> client = ChapaClient.from_settings()
        >>> result = client.initialize(
        ...     amount=Decimal("1000"),
        ...     email="student@example.com",
        ...     first_name="student",
        ...     tx_ref="chapa_1700000000000_3f2a",
        ...     callback_url="https://api.example.com/api/elearning/payments/chapa/verify/",
        ... )
        >>> result.checkout_url
        'https://checkout.chapa.co/checkout/payment/...'
    """

    INITIALIZE_PATH = "/v1/transaction/initialize"
    VERIFY_PATH = "/v1/transaction/verify/{tx_ref}"

    def __init__(self, config: ChapaConfig) -> None:
        self.config = config

    @classmethod
    def from_settings(cls) -> "ChapaClient":
        return cls(ChapaConfig.from_settings())

    @property
    def public_key(self) -> Optional[str]:
        return self.config.public_key

    def ensure_configured(self) -> None:
        """
        Raises:
            ConfigurationError: If the gateway secret key is not set
        """
        if not self.config.is_configured:
            raise ConfigurationError(
                "Chapa secret key not configured", setting="CHAPA_SECRET_KEY"
            )

    def initialize(
        self,
        *,
        amount: Decimal,
        email: str,
        first_name: str,
        tx_ref: str,
        callback_url: str,
        currency: str = DEFAULT_CURRENCY,
    ) -> InitializeResult:
        """
        Create a hosted checkout for a transaction.

        Args:
            amount: Gross amount to charge
            email: Payer email address
            first_name: Payer display name
            tx_ref: Our unique transaction reference
            callback_url: URL the provider calls once the checkout completes
            currency: ISO currency code, ETB by default

        Returns:
            InitializeResult with the checkout URL and the raw ``data`` payload

        Raises:
            ConfigurationError: If credentials are missing
            GatewayError: On transport failure or unsuccessful response
        """
        self.ensure_configured()
        body = {
            "amount": str(amount),
            "currency": currency,
            "email": email,
            "first_name": first_name or "",
            "tx_ref": tx_ref,
            "callback_url": callback_url,
        }
        logger.info("Chapa initialize tx_ref=%s amount=%s %s", tx_ref, amount, currency)
        data = self._request("POST", self.INITIALIZE_PATH, json=body)

        checkout_url = data.get("checkout_url")
        if not checkout_url:
            logger.error("Chapa initialize returned no checkout_url for tx_ref=%s", tx_ref)
            raise GatewayError("Chapa initialization returned no checkout URL", payload=data)
        return InitializeResult(checkout_url=checkout_url, payload=data)

    def verify(self, tx_ref: str) -> Dict[str, Any]:
        """
        Fetch the authoritative transaction state from the provider.

        Returns:
            The provider ``data`` object, containing at least ``status``

        Raises:
            ConfigurationError: If credentials are missing
            GatewayError: On transport failure or unsuccessful response
        """
        self.ensure_configured()
        logger.info("Chapa verify tx_ref=%s", tx_ref)
        data = self._request("GET", self.VERIFY_PATH.format(tx_ref=tx_ref))
        if "status" not in data:
            raise GatewayError("Chapa verification payload has no status", payload=data)
        return data

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.secret_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        url = f"{self.config.base_url}{path}"
        try:
            response = requests.request(
                method, url, headers=self._headers(), timeout=self.config.timeout, **kwargs
            )
        except requests.exceptions.Timeout:
            logger.warning("Chapa timeout after %ss for %s %s", self.config.timeout, method, path)
            raise GatewayError(f"Chapa request timed out after {self.config.timeout}s")
        except requests.exceptions.RequestException as e:
            logger.error("Chapa request failed: %s", e)
            raise GatewayError(f"Chapa request failed: {e}")

        return self._handle_response(response)

    def _handle_response(self, response: requests.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            body = None

        if not isinstance(body, dict):
            logger.error("Chapa returned non-JSON body (HTTP %s)", response.status_code)
            raise GatewayError(
                "Chapa returned a malformed response", provider_status=response.status_code
            )

        data = body.get("data")
        if not response.ok or not isinstance(data, dict):
            message = body.get("message") or f"Chapa request failed (HTTP {response.status_code})"
            if not isinstance(message, str):
                message = str(message)
            logger.error("Chapa error %s: %s", response.status_code, body)
            raise GatewayError(message, provider_status=response.status_code, payload=body)

        return data
