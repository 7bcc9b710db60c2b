"""Notification polling route (the UI renders these as toasts)."""
from fastapi import APIRouter, Depends

from slideai.api.deps import get_entitlement_session
from slideai.features.entitlements.provider import EntitlementSession


router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("")
async def drain_notifications(session: EntitlementSession = Depends(get_entitlement_session)):
    return {
        "notifications": [
            {"level": n.level.value, "message": n.message, "created_at": n.created_at.isoformat()}
            for n in session.notifications.drain()
        ]
    }
