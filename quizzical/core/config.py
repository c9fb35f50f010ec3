import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Optional

class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False

    # Document store (Firebase Realtime Database, SQL fallback)
    FIREBASE_CREDENTIALS: Optional[str] = None  # path to service account json, or the json itself
    FIREBASE_DATABASE_URL: Optional[str] = None
    DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL: Optional[str] = None

    # Whop
    WHOP_API_KEY: Optional[str] = None
    WHOP_WEBHOOK_SECRET: Optional[str] = None
    WHOP_BASIC_PRODUCT_ID: Optional[str] = None
    WHOP_PRO_PRODUCT_ID: Optional[str] = None
    WHOP_PREMIUM_PRODUCT_ID: Optional[str] = None

    # Webhook retry policy
    WEBHOOK_MAX_RETRIES: int = 5
    WEBHOOK_RETRY_BASE_SECONDS: float = 1.0

    # Stuck payment auto-fix
    STUCK_PAYMENT_MINUTES: int = 5

    # Admin / cron access
    ADMIN_KEY: Optional[str] = None
    CRON_SECRET: Optional[str] = None

    # App URLs
    BASE_URL: str = "http://localhost:8000"
    FRONTEND_ORIGIN: str = "http://localhost:3000"

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
    log = logger or logging.getLogger("quizzical")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    required_keys = [
        "FIREBASE_DATABASE_URL",
        "WHOP_WEBHOOK_SECRET",
        "WHOP_PRO_PRODUCT_ID",
        "WHOP_PREMIUM_PRODUCT_ID",
        "ADMIN_KEY",
        "CRON_SECRET",
    ]

    missing = [key for key in required_keys if not getattr(cfg, key, None)]
    if missing:
        message = f"Missing required configuration: {', '.join(missing)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return True
