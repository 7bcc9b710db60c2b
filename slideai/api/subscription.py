"""
Subscription API routes.

- GET  /api/subscription: Cached entitlement state for the session
- POST /api/subscription/refresh: Re-run the load for the current identity
- GET  /api/account: Account summary (plan, usage)
"""
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from slideai.api.deps import get_entitlement_session
from slideai.core.errors import UnauthorizedError
from slideai.features.entitlements.provider import EntitlementSession


router = APIRouter(prefix="/api", tags=["subscription"])

FREE_TIER_LIMIT = 1


class AccountResponse(BaseModel):
    email: Optional[str]
    plan: str
    status: Optional[str]
    usage: str
    presentations_generated: int
    payment_reference: Optional[str]
    can_create_presentation: bool
    degraded: bool


@router.get("/subscription")
async def get_subscription(session: EntitlementSession = Depends(get_entitlement_session)):
    return session.manager.snapshot()


@router.post("/subscription/refresh")
async def refresh_subscription(session: EntitlementSession = Depends(get_entitlement_session)):
    await session.manager.refresh()
    return session.manager.snapshot()


@router.get("/account", response_model=AccountResponse)
async def get_account(session: EntitlementSession = Depends(get_entitlement_session)):
    """
    Account view data.

    Paid users show "Unlimited presentations"; free users see their usage
    against the single free generation.
    """
    manager = session.manager
    if manager.identity is None:
        raise UnauthorizedError("Authentication required")

    record = manager.subscription
    generated = record.presentations_generated if record else 0
    is_paid = bool(record and record.is_paid)
    return {
        "email": manager.identity.email,
        "plan": "Starter" if is_paid else "Free",
        "status": record.status.value if record else None,
        "usage": "Unlimited presentations" if is_paid else f"{generated}/{FREE_TIER_LIMIT} presentations used",
        "presentations_generated": generated,
        "payment_reference": record.payment_reference if record else None,
        "can_create_presentation": manager.can_create_presentation(),
        "degraded": bool(record and record.is_fallback),
    }
