"""
Server-side payment verification.

Authoritative counterpart of the redirect check: re-derives the same
three-field decision for an authenticated caller and commits paid status
through a service-held store.
"""
import logging
from dataclasses import dataclass
from typing import Mapping, Optional

from slideai.features.entitlements.store import EntitlementStore, EntitlementStoreError
from slideai.features.payments.verification import PaymentRedirect
from slideai.models.entitlement import EntitlementRecord, SubscriptionStatus

logger = logging.getLogger(__name__)

VERIFIED_MESSAGE = "Payment verified and subscription updated"
REJECTED_MESSAGE = "Payment verification failed"


@dataclass(frozen=True)
class VerificationResult:
    success: bool
    message: str
    record: Optional[EntitlementRecord] = None


async def verify_payment_server_side(
    store: EntitlementStore,
    user_id: str,
    params: Mapping[str, str],
) -> VerificationResult:
    """
    Verify redirect parameters and, when approved, mark the user paid.

    Raises:
        EntitlementStoreError: If the approved payment cannot be committed
    """
    redirect = PaymentRedirect.from_params(params)
    if not redirect.verified:
        logger.info(
            "[payments] server verification rejected",
            extra={"user_id": user_id, "txn_response_code": redirect.txn_response_code},
        )
        return VerificationResult(success=False, message=REJECTED_MESSAGE)

    fields = {"status": SubscriptionStatus.PAID, "payment_reference": redirect.merchant_order_id}
    record = await store.update_by_user(user_id, fields)
    logger.info(
        "[payments] server verification committed",
        extra={"user_id": user_id, "payment_reference": redirect.merchant_order_id},
    )
    return VerificationResult(success=True, message=VERIFIED_MESSAGE, record=record)


class ServerPaymentVerifier:
    """
    Verifier used by the reconciliation flow when server verification is on.

    Runs the authoritative check in-process against the service-held store.
    Store failures are reported as an unverified result.
    """

    def __init__(self, store: EntitlementStore):
        self._store = store

    async def verify(self, user_id: str, params: Mapping[str, str]) -> VerificationResult:
        try:
            return await verify_payment_server_side(self._store, user_id, params)
        except EntitlementStoreError as e:
            logger.error(
                "[payments] server verification failed",
                extra={"user_id": user_id, "error_code": "store_error", "error": str(e)},
            )
            return VerificationResult(success=False, message="Failed to update subscription")
