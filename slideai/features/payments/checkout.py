"""Per-session entry point into the payment flow."""
import logging
from typing import Optional

from slideai.features.entitlements.notifications import Notifier
from slideai.features.payments.gateway import PaymentGateway, PaymentGatewayError, PaymentSession
from slideai.models.identity import Identity

logger = logging.getLogger(__name__)

LOGIN_REQUIRED_MESSAGE = "You must be logged in to make a payment"
PAYMENT_FAILED_MESSAGE = "Payment processing failed. Please try again."
RETURN_PATH = "/payment-success"


class PaymentCheckout:
    """
    Creates payment sessions for the single subscription tier.

    `creating` is True while a gateway call is outstanding; the UI shows a
    busy indicator from it.
    """

    def __init__(self, gateway: PaymentGateway, notifier: Notifier, *, amount: int, base_url: str):
        self._gateway = gateway
        self._notifier = notifier
        self.amount = amount
        self.redirect_url = f"{base_url.rstrip('/')}{RETURN_PATH}"
        self.creating = False

    async def start(self, identity: Optional[Identity]) -> Optional[PaymentSession]:
        """Return a payment session, or None when it could not be created."""
        if identity is None:
            self._notifier.error(LOGIN_REQUIRED_MESSAGE)
            return None

        self.creating = True
        try:
            session = await self._gateway.create_payment(self.amount, self.redirect_url)
        except PaymentGatewayError as e:
            logger.error(
                "[payments] session creation failed",
                extra={"user_id": identity.user_id, "error_code": "gateway_error", "error": str(e)},
            )
            self._notifier.error(PAYMENT_FAILED_MESSAGE)
            return None
        finally:
            self.creating = False

        logger.info(
            "[payments] session created",
            extra={"user_id": identity.user_id, "special_reference": session.special_reference},
        )
        return session
