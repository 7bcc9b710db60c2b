"""
End-to-end API flow against in-memory collaborators.

login -> free generation -> payment prompt -> gateway return -> paid
"""
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from slideai.core.config import Settings, settings
from slideai.features.entitlements.provider import SESSION_COOKIE
from slideai.features.generation.gate import UPGRADE_NOTICE
from slideai.features.entitlements.manager import FETCH_ERROR_MESSAGE
from slideai.features.payments.reconciliation import REJECTED_MESSAGE, SUCCESS_MESSAGE
from slideai.main import create_app
from slideai.tests.fakes import FakeGateway, FakePresentations

ALICE = {"X-User-Id": "user_alice", "X-User-Email": "alice@example.com"}
BOB = {"X-User-Id": "user_bob"}

APPROVED_QUERY = {
    "success": "true",
    "txn_response_code": "APPROVED",
    "data.message": "Approved",
    "merchant_order_id": "order_42",
}


@pytest.fixture
def api(monkeypatch, memory_store):
    monkeypatch.setattr(settings, "SUPABASE_JWT_SECRET", None)
    gateway = FakeGateway()
    presentations = FakePresentations()
    app = create_app(
        Settings(BASE_URL="http://testserver", SUBSCRIPTION_AMOUNT=5141),
        store=memory_store,
        gateway=gateway,
        presentations=presentations,
    )
    with TestClient(app) as client:
        yield SimpleNamespace(client=client, store=memory_store, gateway=gateway, presentations=presentations)


def _messages(client, headers=ALICE):
    return [n["message"] for n in client.get("/api/notifications", headers=headers).json()["notifications"]]


def test_healthz(api):
    response = api.client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_readyz_reports_store_outage(api):
    assert api.client.get("/readyz").status_code == 200
    api.store.fail_select = True
    response = api.client.get("/readyz")
    assert response.status_code == 503
    assert response.json()["status"] == "degraded"


def test_session_requires_identity(api):
    response = api.client.post("/api/auth/session")
    assert response.status_code == 401
    body = response.json()
    assert body["error"]["code"] == "unauthorized"
    assert body["error"]["request_id"]


def test_login_creates_record_and_sets_cookie(api):
    response = api.client.post("/api/auth/session", headers=ALICE)

    assert response.status_code == 200
    body = response.json()
    assert body["user"] == {"id": "user_alice", "email": "alice@example.com"}
    assert body["loading"] is False
    assert body["can_create_presentation"] is True
    assert body["subscription"]["status"] == "free"
    assert body["subscription"]["presentations_generated"] == 0
    assert SESSION_COOKIE in response.cookies
    assert len(api.store.records_for("user_alice")) == 1


def test_full_purchase_flow(api):
    client = api.client
    client.post("/api/auth/session", headers=ALICE)

    first = client.post("/api/presentations/generate", json={"topic": "Volcanoes", "num_slides": 5}, headers=ALICE)
    assert first.status_code == 200
    assert first.json()["status"] == "generated"
    assert first.json()["download_url"] == api.presentations.download_url
    assert first.json()["can_create_presentation"] is False

    second = client.post("/api/presentations/generate", json={"topic": "Glaciers"}, headers=ALICE)
    body = second.json()
    assert body["status"] == "payment_required"
    assert body["payment_url"] == api.gateway.payment_url
    assert body["message"] == UPGRADE_NOTICE
    assert api.gateway.calls == [{"amount": 5141, "redirect_url": "http://testserver/payment-success"}]
    assert len(api.presentations.calls) == 1

    # the gateway redirect carries only the session cookie
    back = client.get("/payment-success", params=APPROVED_QUERY, follow_redirects=False)
    assert back.status_code == 303
    assert back.headers["location"] == "/account"

    subscription = client.get("/api/subscription").json()
    assert subscription["subscription"]["status"] == "paid"
    assert subscription["subscription"]["payment_reference"] == "order_42"
    assert subscription["can_create_presentation"] is True

    account = client.get("/api/account", headers=ALICE).json()
    assert account["plan"] == "Starter"
    assert account["usage"] == "Unlimited presentations"

    third = client.post("/api/presentations/generate", json={"topic": "Deserts"}, headers=ALICE)
    assert third.json()["status"] == "generated"

    assert SUCCESS_MESSAGE in _messages(client)


def test_declined_return_reports_error_with_links(api):
    client = api.client
    client.post("/api/auth/session", headers=ALICE)

    declined = {**APPROVED_QUERY, "txn_response_code": "DECLINED"}
    back = client.get(
        "/payment-success", params={**declined, "ref": "email"}, headers=ALICE, follow_redirects=False
    )
    assert back.status_code == 303
    assert back.headers["location"] == "/payment-success?ref=email"

    page = client.get("/payment-success", headers=ALICE).json()
    assert page["status"] == "error"
    assert page["message"] == REJECTED_MESSAGE
    assert page["links"] == ["/account", "/"]
    assert client.get("/api/subscription", headers=ALICE).json()["subscription"]["status"] == "free"


def test_return_without_login_is_deferred(api):
    response = api.client.get("/payment-success", params=APPROVED_QUERY)
    assert response.status_code == 200
    assert response.json()["status"] == "loading"
    assert api.store.update_calls == 0


def test_logged_out_generate_points_to_login(api):
    response = api.client.post("/api/presentations/generate", json={"topic": "Volcanoes"})
    body = response.json()
    assert body["status"] == "login_required"
    assert body["login_url"] == "/login"
    assert api.presentations.calls == []


def test_generate_validates_input(api):
    response = api.client.post("/api/presentations/generate", json={"topic": ""}, headers=ALICE)
    assert response.status_code == 422
    response = api.client.post("/api/presentations/generate", json={"topic": "x", "num_slides": 0}, headers=ALICE)
    assert response.status_code == 422
    response = api.client.post("/api/presentations/generate", json={"topic": "   "}, headers=ALICE)
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "validation_error"


def test_degraded_store_allows_one_generation(api):
    api.store.fail_select = True
    client = api.client

    body = client.post("/api/auth/session", headers=ALICE).json()
    assert body["subscription"]["id"] == "fallback"
    assert client.get("/api/account", headers=ALICE).json()["degraded"] is True
    assert _messages(client) == [FETCH_ERROR_MESSAGE]

    assert client.post("/api/presentations/generate", json={"topic": "A"}, headers=ALICE).json()["status"] == "generated"
    assert client.post("/api/presentations/generate", json={"topic": "B"}, headers=ALICE).json()["status"] == "payment_required"


def test_switching_user_in_same_session_reloads(api):
    client = api.client
    client.post("/api/auth/session", headers=ALICE)
    client.post("/api/presentations/generate", json={"topic": "A"}, headers=ALICE)

    body = client.post("/api/auth/session", headers=BOB).json()
    assert body["user"]["id"] == "user_bob"
    assert body["subscription"]["user_id"] == "user_bob"
    assert body["can_create_presentation"] is True


def test_logout_clears_session(api):
    client = api.client
    client.post("/api/auth/session", headers=ALICE)

    assert client.post("/api/auth/logout").json() == {"ok": True}
    assert client.get("/api/subscription").json()["subscription"] is None
    assert len(api.store.records_for("user_alice")) == 1


def test_payment_session_endpoint(api):
    client = api.client
    assert client.post("/api/payments/session").status_code == 401

    response = client.post("/api/payments/session", headers=ALICE)
    assert response.status_code == 200
    assert response.json()["payment_url"] == api.gateway.payment_url

    api.gateway.fail = True
    response = client.post("/api/payments/session", headers=ALICE)
    assert response.status_code == 502
    assert response.json()["error"]["code"] == "upstream_error"


def test_server_verify_endpoint(api):
    client = api.client
    client.post("/api/auth/session", headers=ALICE)

    assert client.post("/api/payments/verify", params=APPROVED_QUERY).status_code == 401

    rejected = client.post("/api/payments/verify", params={**APPROVED_QUERY, "success": "false"}, headers=ALICE)
    assert rejected.json() == {"success": False, "message": "Payment verification failed"}

    verified = client.post("/api/payments/verify", params=APPROVED_QUERY, headers=ALICE).json()
    assert verified["success"] is True
    assert verified["subscription"]["status"] == "paid"
    assert api.store.records_for("user_alice")[0].is_paid

    api.store.fail_update = True
    failed = client.post("/api/payments/verify", params=APPROVED_QUERY, headers=ALICE)
    assert failed.status_code == 500
    assert failed.json()["error"]["code"] == "store_error"


def test_request_id_echoed(api):
    response = api.client.get("/healthz", headers={"x-request-id": "rid-123"})
    assert response.headers["x-request-id"] == "rid-123"
    assert api.client.get("/healthz").headers["x-request-id"]


def test_cookie_only_return_keeps_login(api):
    client = api.client
    client.post("/api/auth/session", headers=ALICE)

    back = client.get("/payment-success", params=APPROVED_QUERY, follow_redirects=False)

    assert back.status_code == 303
    assert back.headers["location"] == "/account"
    assert api.store.records_for("user_alice")[0].is_paid
    body = client.get("/api/subscription").json()
    assert body["subscription"]["status"] == "paid"
    assert body["subscription"]["user_id"] == "user_alice"


def test_return_before_login_commits_after_login(api):
    client = api.client
    early = client.get("/payment-success", params=APPROVED_QUERY)
    assert early.json()["status"] == "loading"
    assert api.store.update_calls == 0

    body = client.post("/api/auth/session", headers=ALICE).json()

    assert body["subscription"]["status"] == "paid"
    assert body["subscription"]["payment_reference"] == "order_42"
    assert client.get("/payment-success").json()["status"] == "success"
    assert SUCCESS_MESSAGE in _messages(client)


def test_failed_commit_retried_on_same_return(api):
    client = api.client
    client.post("/api/auth/session", headers=ALICE)

    api.store.fail_update = True
    first = client.get("/payment-success", params=APPROVED_QUERY, follow_redirects=False)
    assert first.status_code == 303
    assert first.headers["location"] == "/payment-success"
    assert client.get("/payment-success").json()["status"] == "error"

    api.store.fail_update = False
    second = client.get("/payment-success", params=APPROVED_QUERY, follow_redirects=False)
    assert second.headers["location"] == "/account"
    assert api.store.records_for("user_alice")[0].is_paid
