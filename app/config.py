# app/config.py

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel

DEFAULT_DB_URL = "sqlite:///db.sqlite"  # file in project root


def _env(name: str) -> Optional[str]:
    value = os.getenv(name, "").strip()
    return value or None


class Settings(BaseModel):
    database_url: str = DEFAULT_DB_URL
    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    stripe_currency: str = "usd"
    admin_api_token: Optional[str] = None
    overdue_after_days: int = 30
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        return cls(
            database_url=_env("DATABASE_URL") or DEFAULT_DB_URL,
            stripe_secret_key=_env("STRIPE_SECRET_KEY"),
            stripe_webhook_secret=_env("STRIPE_WEBHOOK_SECRET"),
            stripe_currency=(_env("STRIPE_CURRENCY") or "usd").lower(),
            admin_api_token=_env("ADMIN_API_TOKEN"),
            overdue_after_days=int(_env("OVERDUE_AFTER_DAYS") or 30),
            log_level=(_env("LOG_LEVEL") or "INFO").upper(),
        )

    @property
    def payments_enabled(self) -> bool:
        # Only live/test secret keys can create payment links
        return bool(self.stripe_secret_key and self.stripe_secret_key.startswith("sk_"))
