"""
Paystack gateway adapter.

All calls to Paystack go through this adapter so timeouts, error
translation and amount conversion live in one place. Amounts cross the
boundary as Decimal major units (e.g. ZAR 1000.00) and are sent to Paystack
in minor units (100000).

Usage:
    from payments.adapters import PaystackAdapter

    gateway = PaystackAdapter.from_settings()

    charge = gateway.charge(
        amount=Decimal("1000.00"),
        currency="ZAR",
        reference="PAY_1700000000000_ab12cd34ef",
        email="client@example.com",
    )
    redirect(charge.authorization_url)

    transfer = gateway.transfer(
        recipient="RCP_xxx",
        amount=Decimal("900.00"),
        reference="PAYOUT_1700000000000_0f1e2d3c4b",
        currency="ZAR",
    )

Error translation:
    httpx.TimeoutException      -> GatewayTimeoutError (retryable)
    httpx.HTTPError / 5xx       -> GatewayUnavailableError (retryable)
    429                         -> GatewayRateLimitError (retryable)
    other 4xx / status: false   -> GatewayRequestError
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING

import httpx
from django.conf import settings

from payments.exceptions import (
    GatewayRequestError,
    GatewayRateLimitError,
    GatewayTimeoutError,
    GatewayUnavailableError,
    PaymentValidationError,
)
from payments.fees import to_money

if TYPE_CHECKING:
    from typing import Any


logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-paystack-signature"


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class ChargeResult:
    """
    Result of initializing or verifying a transaction.

    Attributes:
        status: Paystack status ("pending", "success", "failed", "abandoned")
        reference: Transaction reference
        authorization_url: Checkout URL for the client (initialize only)
        access_code: Checkout access code (initialize only)
        amount: Charged amount in major units (verify only)
        raw: Response ``data`` object
    """

    status: str
    reference: str
    authorization_url: str | None = None
    access_code: str | None = None
    amount: Decimal | None = None
    raw: dict = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == "success"


@dataclass
class TransferResult:
    """
    Result of a transfer request.

    Attributes:
        status: Paystack transfer status ("pending", "success", "otp", "failed")
        transfer_code: Paystack transfer code (TRF_xxx)
        reference: Transfer reference
        raw: Response ``data`` object
    """

    status: str
    transfer_code: str | None
    reference: str
    raw: dict = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == "success"

    @property
    def failed(self) -> bool:
        return self.status in ("failed", "reversed")


# =============================================================================
# Helpers
# =============================================================================


def to_subunit(amount) -> int:
    """Convert a major-unit amount to Paystack's integer minor units."""
    value = to_money(amount)
    if value <= 0:
        raise PaymentValidationError(
            "Gateway amounts must be positive",
            details={"amount": str(value)},
        )
    return int(value * 100)


def from_subunit(value: int | None) -> Decimal | None:
    if value is None:
        return None
    return (Decimal(value) / 100).quantize(Decimal("0.01"))


def compute_signature(payload: bytes, secret_key: str) -> str:
    """HMAC-SHA512 hex digest Paystack sends in ``x-paystack-signature``."""
    return hmac.new(secret_key.encode("utf-8"), payload, hashlib.sha512).hexdigest()


# =============================================================================
# Paystack Adapter
# =============================================================================


class PaystackAdapter:
    """
    Thin synchronous client for the Paystack REST API.

    Args:
        secret_key: Paystack secret key (sk_live_xxx / sk_test_xxx)
        base_url: API root, https://api.paystack.co by default
        timeout: Seconds before a call raises GatewayTimeoutError
        http: Optional pre-built httpx.Client (tests pass one with a
            MockTransport)
    """

    def __init__(
        self,
        secret_key: str,
        base_url: str = "https://api.paystack.co",
        timeout: float = 10.0,
        http: httpx.Client | None = None,
    ) -> None:
        self.secret_key = secret_key
        self.timeout = timeout
        self.http = http or httpx.Client(
            base_url=base_url,
            timeout=httpx.Timeout(timeout, connect=min(timeout, 5.0)),
        )

    @classmethod
    def from_settings(cls) -> PaystackAdapter:
        return cls(
            secret_key=settings.PAYSTACK_SECRET_KEY,
            base_url=settings.PAYSTACK_BASE_URL,
            timeout=settings.PAYSTACK_TIMEOUT_SECONDS,
        )

    def close(self) -> None:
        self.http.close()

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    def charge(
        self,
        amount,
        currency: str,
        reference: str,
        email: str,
        callback_url: str | None = None,
        metadata: dict | None = None,
    ) -> ChargeResult:
        """
        Initialize a transaction and return the checkout URL.

        The charge itself completes in the client's browser; its outcome
        arrives as a ``charge.success`` or ``charge.failed`` webhook.
        """
        body: dict[str, Any] = {
            "amount": to_subunit(amount),
            "currency": currency,
            "reference": reference,
            "email": email,
        }
        if callback_url:
            body["callback_url"] = callback_url
        if metadata:
            body["metadata"] = metadata

        data = self._request("POST", "/transaction/initialize", json=body)
        return ChargeResult(
            status="pending",
            reference=data.get("reference", reference),
            authorization_url=data.get("authorization_url"),
            access_code=data.get("access_code"),
            raw=data,
        )

    def verify_charge(self, reference: str) -> ChargeResult:
        """Look up the final status of a transaction."""
        data = self._request("GET", f"/transaction/verify/{reference}")
        return ChargeResult(
            status=data.get("status", "unknown"),
            reference=data.get("reference", reference),
            amount=from_subunit(data.get("amount")),
            raw=data,
        )

    # -------------------------------------------------------------------------
    # Transfers
    # -------------------------------------------------------------------------

    def transfer(
        self,
        recipient: str,
        amount,
        reference: str,
        currency: str,
        reason: str = "",
    ) -> TransferResult:
        """
        Send ``amount`` from the Paystack balance to ``recipient``.

        Paystack treats ``reference`` as an idempotency key: repeating a
        call with the same reference returns the original transfer.
        """
        if not recipient:
            raise GatewayRequestError(
                "Transfer recipient code is required",
                details={"reference": reference},
            )

        data = self._request(
            "POST",
            "/transfer",
            json={
                "source": "balance",
                "amount": to_subunit(amount),
                "recipient": recipient,
                "reason": reason,
                "reference": reference,
                "currency": currency,
            },
        )
        return TransferResult(
            status=data.get("status", "pending"),
            transfer_code=data.get("transfer_code"),
            reference=data.get("reference", reference),
            raw=data,
        )

    # -------------------------------------------------------------------------
    # Webhooks
    # -------------------------------------------------------------------------

    def verify_signature(self, payload: bytes, signature: str | None) -> bool:
        """
        Check ``x-paystack-signature`` against the raw request body.

        Returns False when the secret or the signature is missing.
        """
        if not self.secret_key or not signature:
            return False
        expected = compute_signature(payload, self.secret_key)
        return hmac.compare_digest(expected, signature)

    # -------------------------------------------------------------------------
    # HTTP
    # -------------------------------------------------------------------------

    def _request(self, method: str, path: str, *, json: dict | None = None) -> dict:
        headers = {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }
        try:
            response = self.http.request(method, path, json=json, headers=headers)
        except httpx.TimeoutException as exc:
            logger.warning(
                f"Paystack {method} {path} timed out after {self.timeout}s",
                extra={"path": path},
            )
            raise GatewayTimeoutError(
                f"Paystack request to {path} timed out after {self.timeout}s",
                details={"path": path},
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning(
                f"Paystack {method} {path} connection failed: {exc}",
                extra={"path": path},
            )
            raise GatewayUnavailableError(
                f"Paystack connection failed: {exc}",
                details={"path": path},
            ) from exc

        body = self._decode(response)
        message = body.get("message") or f"HTTP {response.status_code}"
        details = {"path": path, "status_code": response.status_code}

        if response.status_code == 429:
            raise GatewayRateLimitError(f"Paystack rate limit: {message}", details=details)
        if response.status_code >= 500:
            raise GatewayUnavailableError(f"Paystack unavailable: {message}", details=details)
        if response.status_code >= 400 or not body.get("status"):
            raise GatewayRequestError(f"Paystack rejected request: {message}", details=details)

        data = body.get("data")
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _decode(response: httpx.Response) -> dict:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}
