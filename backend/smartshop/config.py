# backend/smartshop/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/smartshop.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///smartshop.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Outbound AI providers. Without a key the chat assistant answers locally.
    OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY")
    OPENAI_BASE_URL = os.environ.get("OPENAI_BASE_URL", "https://api.openai.com/v1")
    OPENAI_MODEL = os.environ.get("OPENAI_MODEL", "gpt-3.5-turbo")
    OCR_API_URL = os.environ.get("OCR_API_URL")
    OCR_API_KEY = os.environ.get("OCR_API_KEY")
    VISION_API_URL = os.environ.get("VISION_API_URL")
    AI_REQUEST_TIMEOUT = float(os.environ.get("AI_REQUEST_TIMEOUT", "30"))

    # Checkout tax in basis points (1800 = 18%)
    TAX_RATE_BPS = int(os.environ.get("TAX_RATE_BPS", "0"))

    ANALYTICS_RETENTION_DAYS = int(os.environ.get("ANALYTICS_RETENTION_DAYS", "90"))

    # When true, check_alerts resolves open alerts whose condition has cleared.
    ALERT_AUTO_RESOLVE = _env_bool("ALERT_AUTO_RESOLVE", False)

    SCHEDULER_ENABLED = _env_bool("SCHEDULER_ENABLED", True)
