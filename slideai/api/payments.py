"""
Payment routes.

- POST /api/payments/session: Create a gateway payment session
- GET  /payment-success: Gateway return URL; reconciles then redirects to a clean URL
- POST /api/payments/verify: Server-side verification with a service-held store
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from pydantic import BaseModel

from slideai.api.deps import get_entitlement_session, get_provider, set_session_cookie
from slideai.core.auth import require_identity
from slideai.core.errors import AppError, ConflictError, UnauthorizedError, UpstreamError
from slideai.core.logging import log_event
from slideai.features.entitlements.provider import EntitlementSession
from slideai.features.entitlements.store import EntitlementStoreError
from slideai.features.payments.checkout import RETURN_PATH
from slideai.features.payments.reconciliation import ReconciliationStatus
from slideai.features.payments.service import verify_payment_server_side
from slideai.features.payments.verification import strip_redirect_params
from slideai.models.identity import Identity

logger = logging.getLogger(__name__)

router = APIRouter(tags=["payments"])


class PaymentSessionResponse(BaseModel):
    payment_url: str
    special_reference: Optional[str]


@router.post("/api/payments/session", response_model=PaymentSessionResponse)
async def create_payment_session(session: EntitlementSession = Depends(get_entitlement_session)):
    """
    Create a payment session for the Starter tier.

    Errors:
        401: Not logged in
        409: A payment session is already being created for this session
        502: Gateway error
    """
    if session.manager.identity is None:
        raise UnauthorizedError("You must be logged in to make a payment")
    if session.checkout.creating:
        raise ConflictError("Payment session already in progress")

    payment = await session.checkout.start(session.manager.identity)
    if payment is None:
        raise UpstreamError("Payment processing failed. Please try again.")
    return {"payment_url": payment.payment_url, "special_reference": payment.special_reference}


@router.get(RETURN_PATH)
async def payment_return(request: Request, session: EntitlementSession = Depends(get_entitlement_session)):
    """
    Gateway return URL.

    With outcome parameters: reconcile once, then 303 to a URL without them
    (the account page on success) so a refresh cannot re-trigger verification.
    Without parameters: report the last outcome and recovery links.
    """
    params = dict(request.query_params)
    outcome = await session.reconciliation.run(params)

    if outcome.consumed:
        log_event(
            "info",
            "payment.return",
            user_id=session.manager.user_id,
            session_id=session.session_id,
            event_type="payment_reconciliation",
            extra={"outcome": outcome.status.value, "payment_reference": outcome.payment_reference},
        )
        query = f"?{request.url.query}" if request.url.query else ""
        target = outcome.next_url or strip_redirect_params(f"{request.url.path}{query}")
        response = RedirectResponse(url=target, status_code=303)
        set_session_cookie(response, session.session_id)
        return response

    if outcome.status is ReconciliationStatus.DEFERRED:
        return {"status": "loading", "message": "Please wait while we verify your payment..."}

    last = session.reconciliation.last_outcome
    if last is None:
        return {"status": "idle", "message": None, "links": ["/account", "/"]}
    return {
        "status": "success" if last.status is ReconciliationStatus.SUCCEEDED else "error",
        "message": last.message,
        "links": list(last.links),
        "payment_reference": last.payment_reference,
    }


@router.post("/api/payments/verify")
async def verify_payment_endpoint(request: Request, identity: Identity = Depends(require_identity)):
    """
    Authoritative verification: re-checks the outcome parameters and commits
    paid status for the authenticated caller.

    Returns:
        {"success": true, "message": ..., "subscription": {...}} when verified
        {"success": false, "message": "Payment verification failed"} otherwise
    """
    store = get_provider(request).store
    try:
        result = await verify_payment_server_side(store, identity.user_id, dict(request.query_params))
    except EntitlementStoreError as e:
        logger.error(
            "[payments] verify endpoint commit failed",
            extra={"user_id": identity.user_id, "error_code": "store_error", "error": str(e)},
        )
        raise AppError("Failed to update subscription", code="store_error", status_code=500)

    body = {"success": result.success, "message": result.message}
    if result.record is not None:
        body["subscription"] = result.record.model_dump(mode="json")
    return body
