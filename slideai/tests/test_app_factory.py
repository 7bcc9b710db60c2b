"""App factory with default collaborators (no injected fakes)."""
from fastapi.testclient import TestClient

from slideai.core.config import Settings, settings
from slideai.features.entitlements.sql_store import SqlEntitlementStore
from slideai.features.generation.client import PresentationApiClient
from slideai.features.payments.gateway import HttpPaymentGateway


def test_module_level_app_has_routes():
    import slideai.main as main

    paths = {route.path for route in main.app.routes}
    assert {
        "/api/auth/session",
        "/api/subscription",
        "/api/presentations/generate",
        "/payment-success",
        "/api/notifications",
        "/healthz",
        "/readyz",
    } <= paths


def test_create_app_builds_default_collaborators(tmp_path, monkeypatch):
    from slideai.main import create_app

    monkeypatch.setattr(settings, "SUPABASE_JWT_SECRET", None)
    cfg = Settings(DATABASE_URL=f"sqlite:///{tmp_path / 'app.db'}", BASE_URL="http://testserver")

    with TestClient(create_app(cfg)) as client:
        provider = client.app.state.entitlements
        assert isinstance(provider.store, SqlEntitlementStore)
        assert isinstance(provider._gateway, HttpPaymentGateway)
        assert isinstance(provider._presentations, PresentationApiClient)

        assert client.get("/readyz").status_code == 200
        body = client.post("/api/auth/session", headers={"X-User-Id": "user_alice"}).json()
        assert body["subscription"]["status"] == "free"
