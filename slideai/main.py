import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv()

from slideai.api import auth as auth_api
from slideai.api import health as health_api
from slideai.api import notifications as notifications_api
from slideai.api import payments as payments_api
from slideai.api import presentations as presentations_api
from slideai.api import subscription as subscription_api
from slideai.core.config import Settings, settings, validate_config
from slideai.core.database import create_all_tables, init_engine
from slideai.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    unhandled_exception_handler,
)
from slideai.core.logging import configure_logging
from slideai.core.middleware.request_id import RequestIdMiddleware
from slideai.features.entitlements.provider import EntitlementProvider
from slideai.features.entitlements.rest_store import RestEntitlementStore
from slideai.features.entitlements.sql_store import SqlEntitlementStore
from slideai.features.entitlements.store import EntitlementStore
from slideai.features.generation.client import PresentationApiClient
from slideai.features.payments.gateway import HttpPaymentGateway, PaymentGateway
from slideai.features.payments.service import ServerPaymentVerifier


def build_store(cfg: Settings) -> EntitlementStore:
    """Construct the configured entitlement store."""
    if cfg.ENTITLEMENT_STORE.lower() == "rest":
        api_key = cfg.SUPABASE_SERVICE_ROLE_KEY or cfg.SUPABASE_ANON_KEY
        return RestEntitlementStore(cfg.SUPABASE_URL, api_key, timeout=cfg.HTTP_TIMEOUT_SECONDS)
    engine = init_engine(cfg.DATABASE_URL)
    create_all_tables(engine)
    return SqlEntitlementStore(engine)


def build_provider(
    cfg: Settings,
    *,
    store: Optional[EntitlementStore] = None,
    gateway: Optional[PaymentGateway] = None,
    presentations: Optional[PresentationApiClient] = None,
) -> EntitlementProvider:
    store = store or build_store(cfg)
    return EntitlementProvider(
        store,
        gateway or HttpPaymentGateway(cfg.PAYMENT_API_URL, timeout=cfg.HTTP_TIMEOUT_SECONDS),
        presentations or PresentationApiClient(cfg.PRESENTATION_API_URL, timeout=cfg.HTTP_TIMEOUT_SECONDS),
        amount=cfg.SUBSCRIPTION_AMOUNT,
        base_url=cfg.BASE_URL,
        verifier=ServerPaymentVerifier(store) if cfg.PAYMENT_SERVER_VERIFY else None,
        identity_timeout=cfg.IDENTITY_WAIT_SECONDS,
    )


def create_app(
    settings_obj: Optional[Settings] = None,
    *,
    store: Optional[EntitlementStore] = None,
    gateway: Optional[PaymentGateway] = None,
    presentations: Optional[PresentationApiClient] = None,
) -> FastAPI:
    """
    Build the SlideAI backend.

    Collaborators not passed in are built from settings at startup.
    """
    cfg = settings_obj or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger = logging.getLogger("slideai")
        logger.info("Starting SlideAI backend...")
        app.state.entitlements = build_provider(cfg, store=store, gateway=gateway, presentations=presentations)
        try:
            yield
        finally:
            logging.getLogger("slideai").info("Stopping SlideAI backend...")

    app = FastAPI(title="SlideAI - Backend", lifespan=lifespan)

    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[cfg.BASE_URL],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(HTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(auth_api.router)
    app.include_router(subscription_api.router)
    app.include_router(presentations_api.router)
    app.include_router(payments_api.router)
    app.include_router(notifications_api.router)
    app.include_router(health_api.router)
    return app


configure_logging(settings.ENV)
validate_config(strict=getattr(settings, "CONFIG_STRICT", False))

app = create_app()
