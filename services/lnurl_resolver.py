"""
services/lnurl_resolver.py
---------------------------
Manual LNURL-pay resolution of lightning addresses.

Used only when phoenixd itself cannot reach the domain behind a lightning
address: we fetch the pay request ourselves, obtain a BOLT11 invoice from
its callback and let phoenixd pay that invoice.

    user@domain.com -> https://domain.com/.well-known/lnurlp/user
"""

from typing import Optional

import httpx

from config import LNURL_TIMEOUT_SECONDS
from exceptions import ResolutionError
from models.execution import PaymentResult
from utils.logger import get_logger

logger = get_logger(__name__)


def lnurlp_url(address: str) -> str:
    """
    Build the well-known LNURL-pay URL of a lightning address.

    Raises:
        ResolutionError: If the address is not of the form user@domain.
    """
    user, sep, domain = address.strip().partition("@")
    if not sep or not user or not domain or "@" in domain:
        raise ResolutionError("Invalid Lightning Address format")
    return f"https://{domain}/.well-known/lnurlp/{user}"


def _int_field(data: dict, key: str) -> int:
    """
    Read an optional integer field of an LNURL response (0 when absent).
    Numeric strings are accepted; anything else is a ResolutionError.
    """
    value = data.get(key)
    if value is None:
        return 0
    if isinstance(value, bool):
        raise ResolutionError(f"Invalid {key} in LNURL response: {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ResolutionError(f"Invalid {key} in LNURL response: {value!r}") from None


class LnurlResolver:
    """Resolves a lightning address to an invoice and pays it through the gateway."""

    def __init__(
        self,
        timeout: float = LNURL_TIMEOUT_SECONDS,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.timeout = timeout
        self._transport = transport

    def pay(self, gateway, address: str, amount_sat: int, comment: Optional[str] = None) -> PaymentResult:
        """
        Resolve `address` and pay the resulting invoice with `gateway`.

        Raises:
            ResolutionError: If any resolution step fails.
            GatewayError: If phoenixd fails to pay the invoice.
        """
        invoice = self.fetch_invoice(address, amount_sat, comment)
        logger.info(f"Paying invoice for {address} via manual LNURL resolution")
        return gateway.pay_invoice(invoice)

    def fetch_invoice(self, address: str, amount_sat: int, comment: Optional[str] = None) -> str:
        """Run the LNURL-pay handshake and return a BOLT11 invoice."""
        url = lnurlp_url(address)
        amount_msat = amount_sat * 1000

        with httpx.Client(timeout=self.timeout, transport=self._transport, follow_redirects=True) as client:
            logger.info(f"Fetching LNURL from: {url}")
            pay_request = self._get_json(client, url, None, "fetch LNURL")

            if pay_request.get("status") == "ERROR":
                raise ResolutionError(f"LNURL error: {pay_request.get('reason', pay_request)}")
            if pay_request.get("tag") != "payRequest" or not isinstance(pay_request.get("callback"), str):
                raise ResolutionError("Not a valid LNURL-pay endpoint")

            min_sendable = _int_field(pay_request, "minSendable")
            max_sendable = _int_field(pay_request, "maxSendable")
            if min_sendable and amount_msat < min_sendable:
                raise ResolutionError(f"Amount too low. Minimum: {min_sendable // 1000} sats")
            if max_sendable and amount_msat > max_sendable:
                raise ResolutionError(f"Amount too high. Maximum: {max_sendable // 1000} sats")

            params = {"amount": str(amount_msat)}
            comment_allowed = _int_field(pay_request, "commentAllowed")
            if comment and len(comment) <= comment_allowed:
                params["comment"] = comment

            logger.info(f"Requesting invoice from: {pay_request['callback']}")
            invoice_data = self._get_json(client, pay_request["callback"], params, "get invoice")

        invoice = invoice_data.get("pr")
        if invoice_data.get("status") == "ERROR" or not invoice or not isinstance(invoice, str):
            raise ResolutionError("Failed to get invoice from Lightning Address")
        return invoice

    @staticmethod
    def _get_json(client: httpx.Client, url: str, params: Optional[dict], step: str) -> dict:
        try:
            response = client.get(url, params=params)
        except httpx.TimeoutException as e:
            raise ResolutionError(f"Failed to {step}: timed out") from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise ResolutionError(f"Failed to {step}: {e}") from e

        if response.is_error:
            raise ResolutionError(f"Failed to {step}: {response.status_code}")
        try:
            data = response.json()
        except ValueError:
            raise ResolutionError(f"Failed to {step}: response is not JSON") from None
        if not isinstance(data, dict):
            raise ResolutionError(f"Failed to {step}: unexpected response")
        return data
