"""
Auth utilities for the SlideAI API.

Validates Supabase-issued JWTs and extracts the user identity from the request.
Falls back to X-User-Id / X-User-Email headers when no JWT secret is
configured (local development and tests).

A missing identity means "logged out"; callers decide whether that is an error.
"""
import logging
from typing import Optional

import jwt
from fastapi import Request

from slideai.core.config import settings
from slideai.core.errors import UnauthorizedError
from slideai.models.identity import Identity

logger = logging.getLogger(__name__)

JWT_AUDIENCE = "authenticated"


def _bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization") or ""
    if not header.lower().startswith("bearer "):
        return None
    token = header[7:].strip()
    return token or None


def verify_token(token: str, secret: Optional[str] = None) -> Identity:
    """
    Verify a JWT and build the identity from its claims.

    Raises:
        UnauthorizedError: Invalid, expired, or subject-less token
    """
    key = secret or settings.SUPABASE_JWT_SECRET
    if not key:
        raise UnauthorizedError("Token verification is not configured")

    try:
        payload = jwt.decode(
            token,
            key,
            algorithms=["HS256"],
            audience=JWT_AUDIENCE,
            options={"verify_exp": True},
        )
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Token expired")
    except jwt.InvalidTokenError as e:
        logger.debug(f"Invalid token: {e}")
        raise UnauthorizedError("Invalid token")

    user_id = payload.get("sub")
    if not user_id:
        raise UnauthorizedError("Invalid token")
    return Identity(user_id=user_id, email=payload.get("email"), token=token)


def resolve_identity(request: Request) -> Optional[Identity]:
    """
    Extract the current identity from the request, or None if logged out.

    Priority:
    1. Bearer JWT (when SUPABASE_JWT_SECRET is configured)
    2. X-User-Id header (only when no JWT secret is configured)
    """
    token = _bearer_token(request)
    if settings.SUPABASE_JWT_SECRET:
        if not token:
            return None
        return verify_token(token)

    user_id = request.headers.get("X-User-Id")
    if not user_id:
        return None
    return Identity(
        user_id=user_id,
        email=request.headers.get("X-User-Email"),
        token=token,
    )


def require_identity(request: Request) -> Identity:
    identity = resolve_identity(request)
    if identity is None:
        raise UnauthorizedError("Authentication required")
    return identity
