import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Optional

class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False

    # Entitlement record store
    ENTITLEMENT_STORE: str = "sql"  # sql | rest
    DATABASE_URL: str = "sqlite:///./slideai.db"

    # Supabase (REST store + token verification)
    SUPABASE_URL: Optional[str] = None
    SUPABASE_ANON_KEY: Optional[str] = None
    SUPABASE_SERVICE_ROLE_KEY: Optional[str] = None
    SUPABASE_JWT_SECRET: Optional[str] = None

    # Payment gateway
    PAYMENT_API_URL: str = "https://pay.techrealm.pk/create-payment"
    SUBSCRIPTION_AMOUNT: int = 5141  # minor units, single Starter tier
    PAYMENT_SERVER_VERIFY: bool = False

    # Slide generation API
    PRESENTATION_API_URL: str = "http://pptx.techrealm.online"

    # App URLs
    BASE_URL: str = "http://localhost:8080"

    # Timeouts
    IDENTITY_WAIT_SECONDS: float = 5.0
    HTTP_TIMEOUT_SECONDS: float = 30.0

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )
settings = Settings()


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate required configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    Secrets are not logged, only missing keys.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("slideai")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    store = (getattr(cfg, "ENTITLEMENT_STORE", "sql") or "sql").lower()
    if store not in ("sql", "rest"):
        message = f"Unknown ENTITLEMENT_STORE: {store}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)
        return True

    required_keys = ["PAYMENT_API_URL", "PRESENTATION_API_URL", "BASE_URL"]
    if store == "rest":
        required_keys += ["SUPABASE_URL", "SUPABASE_ANON_KEY"]
    else:
        required_keys += ["DATABASE_URL"]
    if getattr(cfg, "PAYMENT_SERVER_VERIFY", False):
        required_keys += ["SUPABASE_JWT_SECRET"]

    missing = [key for key in required_keys if not getattr(cfg, key, None)]
    if missing:
        message = f"Missing required configuration: {', '.join(missing)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return True
