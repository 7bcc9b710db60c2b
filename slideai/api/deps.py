"""Shared FastAPI dependencies."""
from fastapi import Request, Response

from slideai.core.auth import resolve_identity
from slideai.core.logging import session_id_ctx_var
from slideai.features.entitlements.provider import SESSION_COOKIE, EntitlementProvider, EntitlementSession


def get_provider(request: Request) -> EntitlementProvider:
    return request.app.state.entitlements


def set_session_cookie(response: Response, session_id: str) -> None:
    response.set_cookie(SESSION_COOKIE, session_id, httponly=True, samesite="lax")


async def get_entitlement_session(request: Request, response: Response) -> EntitlementSession:
    """
    Resolve the browser session and synchronize it with the caller's identity.

    Requests without credentials (e.g. the gateway's browser redirect) keep
    the identity already bound to the session; only logout or a different
    authenticated user changes it.
    """
    provider = get_provider(request)
    cookie_id = request.cookies.get(SESSION_COOKIE)
    session = provider.session(cookie_id)
    if session.session_id != cookie_id:
        set_session_cookie(response, session.session_id)
    session_id_ctx_var.set(session.session_id)

    identity = resolve_identity(request)
    if identity is not None:
        await provider.bind_identity(session, identity)
    return session
