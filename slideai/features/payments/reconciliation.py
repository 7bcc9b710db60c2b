"""
Payment reconciliation flow.

Runs once per page load that carries gateway return parameters:
1. Wait for the session's entitlement load to settle
2. Verify the outcome (redirect check, or the server verifier when configured)
3. Commit paid status through the entitlement manager
4. Report an outcome; the caller clears the parameters from the visible URL

A return that arrives before the session has an identity is held in
`pending_params` and resumed by the provider after the next identity bind.
Commit failures are not memoized, so the same return may be retried.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Mapping, Optional, Protocol, Tuple

from slideai.features.entitlements.manager import EntitlementManager
from slideai.features.entitlements.notifications import Notifier
from slideai.features.payments.service import VerificationResult
from slideai.features.payments.verification import PaymentRedirect, has_redirect_params

logger = logging.getLogger(__name__)

SUCCESS_MESSAGE = "Payment successful! You now have premium access."
REJECTED_MESSAGE = "Payment verification failed. Please try again or contact support."
COMMIT_FAILED_MESSAGE = "Error processing payment. Please contact support."

ACCOUNT_URL = "/account"
HOME_URL = "/"
RECOVERY_LINKS: Tuple[str, ...] = (ACCOUNT_URL, HOME_URL)


class ReconciliationStatus(str, Enum):
    NOT_APPLICABLE = "not_applicable"  # no gateway parameters present
    DEFERRED = "deferred"  # identity not resolved; parameters left in place
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class ReconciliationOutcome:
    status: ReconciliationStatus
    message: Optional[str] = None
    next_url: Optional[str] = None
    links: Tuple[str, ...] = ()
    payment_reference: Optional[str] = None
    retryable: bool = False  # commit failed after a verified return

    @property
    def consumed(self) -> bool:
        """Parameters were acted on and must not trigger verification again."""
        return self.status in (ReconciliationStatus.SUCCEEDED, ReconciliationStatus.FAILED)


class PaymentVerifier(Protocol):
    async def verify(self, user_id: str, params: Mapping[str, str]) -> VerificationResult: ...


class PaymentReconciliationFlow:
    """
    Interprets a gateway return for one session.

    With a `verifier`, the server-side decision is authoritative and the
    manager is refreshed from the store afterwards. Without one, the redirect
    check gates `set_paid_status()` directly.
    """

    def __init__(
        self,
        manager: EntitlementManager,
        notifier: Notifier,
        *,
        verifier: Optional[PaymentVerifier] = None,
        identity_timeout: float = 5.0,
    ):
        self._manager = manager
        self._notifier = notifier
        self._verifier = verifier
        self._identity_timeout = identity_timeout
        self._consumed: Dict[str, ReconciliationOutcome] = {}
        self.last_outcome: Optional[ReconciliationOutcome] = None
        self.pending_params: Optional[Dict[str, str]] = None

    async def run(self, params: Mapping[str, str]) -> ReconciliationOutcome:
        if not has_redirect_params(params):
            return ReconciliationOutcome(status=ReconciliationStatus.NOT_APPLICABLE)

        ready = await self._manager.wait_until_loaded(self._identity_timeout)
        if not ready:
            logger.info(
                "[payments] reconciliation deferred, identity not resolved",
                extra={"session_id": self._manager.session_id, "user_id": self._manager.user_id},
            )
            self.pending_params = dict(params)
            return ReconciliationOutcome(status=ReconciliationStatus.DEFERRED)

        self.pending_params = None

        redirect = PaymentRedirect.from_params(params)
        reference = redirect.merchant_order_id
        if reference and reference in self._consumed:
            logger.info(
                "[payments] redirect already reconciled",
                extra={"user_id": self._manager.user_id, "payment_reference": reference},
            )
            return self._consumed[reference]

        if self._verifier is not None:
            outcome = await self._reconcile_on_server(redirect, params)
        else:
            outcome = await self._reconcile_locally(redirect)

        if reference and not outcome.retryable:
            self._consumed[reference] = outcome
        self.last_outcome = outcome
        return outcome

    async def resume(self) -> Optional[ReconciliationOutcome]:
        """Re-run a deferred return once the session has a loaded identity."""
        params = self.pending_params
        if params is None:
            return None
        outcome = await self.run(params)
        if outcome.status is ReconciliationStatus.DEFERRED:
            return None
        logger.info(
            "[payments] deferred return reconciled",
            extra={"user_id": self._manager.user_id, "payment_reference": outcome.payment_reference},
        )
        return outcome

    async def _reconcile_locally(self, redirect: PaymentRedirect) -> ReconciliationOutcome:
        if not redirect.verified:
            return self._fail(redirect, REJECTED_MESSAGE)
        if not await self._manager.set_paid_status(redirect.merchant_order_id):
            return self._fail(redirect, COMMIT_FAILED_MESSAGE, retryable=True)
        return self._succeed(redirect)

    async def _reconcile_on_server(self, redirect: PaymentRedirect, params: Mapping[str, str]) -> ReconciliationOutcome:
        result = await self._verifier.verify(self._manager.user_id, params)
        if not result.success:
            if not redirect.verified:
                return self._fail(redirect, REJECTED_MESSAGE)
            return self._fail(redirect, COMMIT_FAILED_MESSAGE, retryable=True)

        await self._manager.refresh()
        subscription = self._manager.subscription
        if subscription is None or not subscription.is_paid:
            return self._fail(redirect, COMMIT_FAILED_MESSAGE, retryable=True)
        return self._succeed(redirect)

    def _succeed(self, redirect: PaymentRedirect) -> ReconciliationOutcome:
        self._notifier.success(SUCCESS_MESSAGE)
        logger.info(
            "[payments] reconciliation succeeded",
            extra={"user_id": self._manager.user_id, "payment_reference": redirect.merchant_order_id},
        )
        return ReconciliationOutcome(
            status=ReconciliationStatus.SUCCEEDED,
            message=SUCCESS_MESSAGE,
            next_url=ACCOUNT_URL,
            links=(ACCOUNT_URL,),
            payment_reference=redirect.merchant_order_id,
        )

    def _fail(self, redirect: PaymentRedirect, message: str, *, retryable: bool = False) -> ReconciliationOutcome:
        self._notifier.error(message)
        logger.warning(
            "[payments] reconciliation failed",
            extra={
                "user_id": self._manager.user_id,
                "payment_reference": redirect.merchant_order_id,
                "txn_response_code": redirect.txn_response_code,
            },
        )
        return ReconciliationOutcome(
            status=ReconciliationStatus.FAILED,
            message=message,
            links=RECOVERY_LINKS,
            payment_reference=redirect.merchant_order_id,
            retryable=retryable,
        )
