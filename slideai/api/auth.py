"""
Session API routes.

- POST /api/auth/session: Bind the caller's identity to the browser session
- POST /api/auth/logout: Reset the session's entitlement state
"""
from fastapi import APIRouter, Depends, Request, Response

from slideai.api.deps import get_entitlement_session, get_provider
from slideai.core.errors import UnauthorizedError
from slideai.features.entitlements.provider import SESSION_COOKIE, EntitlementSession


router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/session")
async def open_session(session: EntitlementSession = Depends(get_entitlement_session)):
    """Returns the user and current subscription state once the load settles."""
    identity = session.manager.identity
    if identity is None:
        raise UnauthorizedError("Authentication required")
    return {
        "user": {"id": identity.user_id, "email": identity.email},
        **session.manager.snapshot(),
    }


@router.post("/logout")
async def logout(request: Request, response: Response):
    session_id = request.cookies.get(SESSION_COOKIE)
    if session_id:
        await get_provider(request).end_session(session_id)
    response.delete_cookie(SESSION_COOKIE)
    return {"ok": True}
