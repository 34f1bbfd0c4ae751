"""
services/phoenixd_client.py
----------------------------
HTTP client for the phoenixd payment API (the payment gateway).

Responsibilities:
    - Send invoice, offer and lightning-address payments.
    - Bound every call with a timeout.
    - Turn every failure, including phoenixd's "200 OK with a `reason`"
      responses, into a GatewayError carrying a GatewayErrorKind.
"""

from typing import Optional

import httpx

from config import GATEWAY_TIMEOUT_SECONDS, PHOENIXD_PASSWORD, PHOENIXD_URL
from exceptions import GatewayError, GatewayErrorKind
from models.connection import NodeConnection
from models.execution import PaymentResult
from utils.logger import get_logger

logger = get_logger(__name__)

# phoenixd wording when it cannot reach the domain behind a lightning address.
_RESOLUTION_MARKERS = ("could not connect", "cannot resolve")


def classify_error(message: str, default: GatewayErrorKind) -> GatewayErrorKind:
    """Map a phoenixd error text to a GatewayErrorKind."""
    lowered = message.lower()
    if any(marker in lowered for marker in _RESOLUTION_MARKERS):
        return GatewayErrorKind.RESOLUTION_UNREACHABLE
    return default


def _optional_int(body: dict, key: str) -> int:
    """Read an informational integer field of a payment response, 0 when unusable."""
    value = body.get(key)
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring malformed {key} in phoenixd response: {value!r}")
        return 0


class PhoenixdClient:
    """
    Thin synchronous wrapper around phoenixd's REST API.

    Usage:
        with PhoenixdClient.from_connection(active_connection) as gateway:
            result = gateway.pay_offer(offer, 1000, "rent")
    """

    def __init__(
        self,
        url: str = PHOENIXD_URL,
        password: str = PHOENIXD_PASSWORD,
        timeout: float = GATEWAY_TIMEOUT_SECONDS,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.url = url.rstrip("/")
        self.timeout = timeout
        self._client = httpx.Client(
            base_url=self.url,
            auth=httpx.BasicAuth("", password),
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_connection(cls, connection: Optional[NodeConnection], **kwargs) -> "PhoenixdClient":
        """Build a client for a stored connection, or the configured default node."""
        if connection is None:
            return cls(**kwargs)
        return cls(
            url=connection.url or PHOENIXD_URL,
            password=connection.password or PHOENIXD_PASSWORD,
            **kwargs,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "PhoenixdClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ── Payments ──────────────────────────────────────────

    def pay_invoice(self, invoice: str, amount_sat: Optional[int] = None) -> PaymentResult:
        """Pay a BOLT11 invoice; `amount_sat` only for amountless invoices."""
        return self._pay("/payinvoice", {"invoice": invoice, "amountSat": amount_sat})

    def pay_offer(self, offer: str, amount_sat: int, message: Optional[str] = None) -> PaymentResult:
        """Pay a reusable BOLT12 offer."""
        return self._pay("/payoffer", {"offer": offer, "amountSat": amount_sat, "message": message})

    def pay_ln_address(self, address: str, amount_sat: int, message: Optional[str] = None) -> PaymentResult:
        """Pay a lightning address; phoenixd resolves it itself."""
        return self._pay("/paylnaddress", {"address": address, "amountSat": amount_sat, "message": message})

    # ── Internals ─────────────────────────────────────────

    def _pay(self, endpoint: str, params: dict) -> PaymentResult:
        form = {key: str(value) for key, value in params.items() if value is not None}
        try:
            response = self._client.post(endpoint, data=form)
        except httpx.TimeoutException as e:
            raise GatewayError(
                f"phoenixd {endpoint} timed out after {self.timeout:g}s", GatewayErrorKind.TIMEOUT
            ) from e
        except httpx.TransportError as e:
            raise GatewayError(
                f"Cannot reach phoenixd at {self.url}: {e}", GatewayErrorKind.NODE_UNREACHABLE
            ) from e

        if response.is_error:
            text = response.text
            raise GatewayError(
                f"Phoenixd API error: {response.status_code} - {text}",
                classify_error(text, GatewayErrorKind.HTTP_ERROR),
            )

        try:
            body = response.json()
        except ValueError:
            raise GatewayError(
                f"Unexpected phoenixd response: {response.text[:200]}", GatewayErrorKind.INVALID_RESPONSE
            ) from None
        if not isinstance(body, dict):
            raise GatewayError(f"Unexpected phoenixd response: {body!r}", GatewayErrorKind.INVALID_RESPONSE)

        # phoenixd answers 200 even when the payment failed.
        reason = body.get("reason")
        if reason:
            raise GatewayError(str(reason), classify_error(str(reason), GatewayErrorKind.PAYMENT_FAILED))

        if not body.get("paymentId"):
            raise GatewayError("Payment succeeded but no paymentId returned", GatewayErrorKind.INVALID_RESPONSE)

        # The payment is settled from here on: never fail on the optional fields.
        return PaymentResult(
            payment_id=str(body["paymentId"]),
            payment_hash=str(body.get("paymentHash") or ""),
            recipient_amount_sat=_optional_int(body, "recipientAmountSat"),
            routing_fee_sat=_optional_int(body, "routingFeeSat"),
            payment_preimage=body.get("paymentPreimage"),
        )
