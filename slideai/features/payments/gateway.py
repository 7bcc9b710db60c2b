"""
Payment gateway protocol and HTTP client.

Creates a hosted payment session for a fixed amount and returns the URL the
browser is sent to. The gateway later redirects back to `redirect_url`
with the outcome parameters handled in payments.verification.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import httpx

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentSession:
    """Hosted payment session created by the gateway."""
    payment_url: str
    special_reference: Optional[str] = None


class PaymentGateway(Protocol):
    async def create_payment(self, amount: int, redirect_url: Optional[str] = None) -> PaymentSession:
        """
        Create a payment session.

        Args:
            amount: Amount in minor currency units
            redirect_url: Where the gateway sends the browser afterwards

        Raises:
            PaymentGatewayError: If the session cannot be created
        """
        ...


class PaymentGatewayError(Exception):
    """Base exception for payment gateway errors."""
    pass


class HttpPaymentGateway:
    """httpx implementation of PaymentGateway."""

    def __init__(
        self,
        api_url: str,
        *,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url
        self.timeout = timeout
        self._transport = transport

    async def create_payment(self, amount: int, redirect_url: Optional[str] = None) -> PaymentSession:
        if amount <= 0:
            raise ValueError("amount must be positive")

        payload: Dict[str, Any] = {"amount": amount}
        if redirect_url:
            payload["redirection_url"] = redirect_url

        logger.info("[payments] creating payment", extra={"amount": amount})
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.api_url, json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            raise PaymentGatewayError(
                f"Payment API error: {e.response.status_code} {e.response.reason_phrase}"
            ) from e
        except httpx.HTTPError as e:
            raise PaymentGatewayError(f"Payment API unreachable: {e}") from e
        except ValueError as e:
            raise PaymentGatewayError("Payment API returned malformed JSON") from e

        payment_url = data.get("payment_url") if isinstance(data, dict) else None
        if not payment_url:
            raise PaymentGatewayError("Payment API response missing payment_url")
        return PaymentSession(payment_url=payment_url, special_reference=data.get("special_reference"))
