"""Supabase JWT verification and request identity resolution."""
import time

import jwt
import pytest
from fastapi import Request

from slideai.core.auth import JWT_AUDIENCE, resolve_identity, verify_token
from slideai.core.config import settings
from slideai.core.errors import UnauthorizedError

SECRET = "test-jwt-secret-with-enough-length-000"


def _token(**claims) -> str:
    payload = {"sub": "user_1", "email": "u1@example.com", "aud": JWT_AUDIENCE, "exp": int(time.time()) + 600}
    payload.update(claims)
    return jwt.encode(payload, SECRET, algorithm="HS256")


def _request(headers: dict) -> Request:
    raw = [(k.lower().encode(), v.encode()) for k, v in headers.items()]
    return Request({"type": "http", "method": "GET", "path": "/", "headers": raw})


def test_valid_token():
    token = _token()
    identity = verify_token(token, SECRET)
    assert identity.user_id == "user_1"
    assert identity.email == "u1@example.com"
    assert identity.token == token


@pytest.mark.parametrize(
    "token",
    [
        _token(exp=int(time.time()) - 10),
        _token(aud="anon"),
        _token(sub=None),
        "not-a-jwt",
    ],
)
def test_rejected_tokens(token):
    with pytest.raises(UnauthorizedError):
        verify_token(token, SECRET)


def test_wrong_secret():
    with pytest.raises(UnauthorizedError):
        verify_token(_token(), "another-secret-with-enough-length-0000")


def test_resolve_identity_uses_jwt_when_configured(monkeypatch):
    monkeypatch.setattr(settings, "SUPABASE_JWT_SECRET", SECRET)

    assert resolve_identity(_request({})) is None
    # Header fallback is ignored once tokens are verified
    assert resolve_identity(_request({"X-User-Id": "spoofed"})) is None
    identity = resolve_identity(_request({"Authorization": f"Bearer {_token()}"}))
    assert identity.user_id == "user_1"


def test_resolve_identity_header_fallback(monkeypatch):
    monkeypatch.setattr(settings, "SUPABASE_JWT_SECRET", None)

    assert resolve_identity(_request({})) is None
    identity = resolve_identity(_request({"X-User-Id": "user_2", "X-User-Email": "u2@example.com"}))
    assert identity.user_id == "user_2"
    assert identity.email == "u2@example.com"
