# charityhub/config/config.py
# Canonical CharityHub configuration (env-first, production-safe)

from __future__ import annotations

import os
from typing import Any, Dict, Optional


# ----------------------------
# Env helpers
# ----------------------------
_TRUTHY = {"1", "true", "yes", "on", "y"}
_FALSY = {"0", "false", "no", "off", "n"}


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    v = os.getenv(name)
    if v is None:
        return default
    s = str(v).strip()
    return s if s else default


def _bool(name: str, default: bool = False) -> bool:
    v = _env(name)
    if v is None:
        return default
    s = v.strip().lower()
    if s in _TRUTHY:
        return True
    if s in _FALSY:
        return False
    return default


def _int(name: str, default: int) -> int:
    v = _env(name)
    if v is None:
        return default
    try:
        return int(str(v).strip())
    except Exception:
        return default


def _float(name: str, default: float) -> float:
    v = _env(name)
    if v is None:
        return default
    try:
        return float(str(v).strip())
    except Exception:
        return default


def _processor_default() -> str:
    """
    stripe  -> a Stripe secret key is present
    demo    -> DEMO_MODE is on (sandbox charges, never touches the network)
    none    -> card donations are recorded without an external charge
    """
    explicit = (_env("PAYMENT_PROCESSOR") or "").lower()
    if explicit:
        return explicit
    if _env("STRIPE_SECRET_KEY") or _env("STRIPE_API_KEY"):
        return "stripe"
    if _bool("DEMO_MODE", False):
        return "demo"
    return "none"


# Seed values for the single impact aggregate. `raised` is in whole currency units.
IMPACT_DEFAULTS: Dict[str, Any] = {
    "raised": 2_584_912,
    "lives": 15_430,
    "students": 5_200,
    "meals": 120_000,
    "medical": 8_400,
    "homes": 340,
}


# ----------------------------
# Config classes
# ----------------------------
class BaseConfig:
    """
    Env-first config:
    - all important settings can be overridden via environment variables
    - safe defaults for local dev
    """

    ENV = (_env("APP_ENV") or _env("ENV") or _env("FLASK_ENV") or "base").strip().lower()

    DEBUG = _bool("FLASK_DEBUG", False)
    TESTING = _bool("TESTING", False)

    # Security
    SECRET_KEY = _env("SECRET_KEY", "dev-change-me")
    ADMIN_PASSWORD = _env("ADMIN_PASSWORD", "")

    LOG_LEVEL = _env("LOG_LEVEL", "INFO")
    WERKZEUG_LOG_LEVEL = _env("WERKZEUG_LOG_LEVEL", "WARNING")

    # Proxy trust (reverse proxy)
    TRUST_PROXY = _bool("TRUST_PROXY", False)
    CORS_ORIGINS = _env("CORS_ORIGINS", "*")

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = _env("SQLALCHEMY_DATABASE_URI", _env("DATABASE_URL", "sqlite:///charityhub-dev.db"))
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}
    AUTO_CREATE_SCHEMA = _bool("AUTO_CREATE_SCHEMA", True)

    # Storage fallback
    STORAGE_RECONNECT_INTERVAL = _float("STORAGE_RECONNECT_INTERVAL", 15.0)

    # Payments
    PAYMENT_PROCESSOR = _processor_default()
    STRIPE_SECRET_KEY = _env("STRIPE_SECRET_KEY", _env("STRIPE_API_KEY", ""))
    STRIPE_MAX_NETWORK_RETRIES = _int("STRIPE_MAX_NETWORK_RETRIES", 2)
    DEFAULT_CURRENCY = (_env("DEFAULT_CURRENCY", "usd") or "usd").lower()

    # Hosted redirect flows (paypal_redirect / stripe_redirect)
    PAYPAL_DONATE_URL = _env("PAYPAL_DONATE_URL", "")
    STRIPE_PAYMENT_LINK = _env("STRIPE_PAYMENT_LINK", "")

    # Intake
    TXN_ID_ATTEMPTS = _int("TXN_ID_ATTEMPTS", 5)
    MAX_DONATION = _int("MAX_DONATION", 1_000_000)
    DONORS_LIMIT = _int("DONORS_LIMIT", 10)
    HISTORY_LIMIT = _int("HISTORY_LIMIT", 100)
    IMPACT_DEFAULTS = dict(IMPACT_DEFAULTS)

    @classmethod
    def init_app(cls, app) -> None:
        """
        Optional hook for factory boot hardening.
        Called from create_app() after app.config.from_object(...)
        """
        uri = str(app.config.get("SQLALCHEMY_DATABASE_URI") or "")

        if uri.startswith("sqlite:"):
            opts = dict(app.config.get("SQLALCHEMY_ENGINE_OPTIONS") or {})
            connect_args = dict(opts.get("connect_args") or {})
            connect_args.setdefault("check_same_thread", False)
            opts["connect_args"] = connect_args
            opts.setdefault("pool_pre_ping", True)
            app.config["SQLALCHEMY_ENGINE_OPTIONS"] = opts


class DevelopmentConfig(BaseConfig):
    ENV = "development"
    DEBUG = True


class TestingConfig(BaseConfig):
    ENV = "testing"
    TESTING = True
    DEBUG = False

    SECRET_KEY = "testing-secret"
    ADMIN_PASSWORD = "letmein"

    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SQLALCHEMY_ENGINE_OPTIONS: Dict[str, Any] = {}

    PAYMENT_PROCESSOR = "none"
    STRIPE_SECRET_KEY = ""
    PAYPAL_DONATE_URL = "https://www.paypal.com/donate/?business=TESTBUSINESS"
    STRIPE_PAYMENT_LINK = "https://buy.stripe.com/test_link"

    STORAGE_RECONNECT_INTERVAL = 3600.0
    LOG_LEVEL = "WARNING"


class ProductionConfig(BaseConfig):
    ENV = "production"
    DEBUG = False

    TRUST_PROXY = _bool("TRUST_PROXY", True)

    @classmethod
    def init_app(cls, app) -> None:
        super().init_app(app)

        sk = app.config.get("SECRET_KEY")
        if not sk or sk == "dev-change-me":
            raise RuntimeError("SECRET_KEY must be set to a strong random value in production.")

        if not app.config.get("ADMIN_PASSWORD"):
            raise RuntimeError("ADMIN_PASSWORD must be set in production.")

        if _bool("FLASK_DEBUG", False):
            raise RuntimeError("FLASK_DEBUG must be 0 in production.")
