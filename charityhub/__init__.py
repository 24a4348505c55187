# charityhub/__init__.py
# CharityHub — Flask app factory
# Goals:
# - JSON API for donations, impact stats and the admin history view
# - storage that keeps serving (in memory) while the database is unreachable
# - proxy-correct, request-id aware logging, JSON errors under /api/

from __future__ import annotations

import logging
import os
import time
from typing import Any, Dict, List, Optional, Type, Union
from uuid import uuid4

from dotenv import load_dotenv
from flask import Flask, g, jsonify, request
from werkzeug.exceptions import HTTPException, InternalServerError
from werkzeug.middleware.proxy_fix import ProxyFix
from werkzeug.utils import import_string

# IMPORTANT: never override real env vars in prod
load_dotenv(override=False)

ConfigLike = Union[str, Type[Any]]

from charityhub.context import DonationContext, get_context, init_context  # noqa: E402
from charityhub.extensions import cors, db  # noqa: E402
from charityhub.services.intake import DonationIntakeService  # noqa: E402
from charityhub.services.payments import PaymentProcessor, build_processor  # noqa: E402
from charityhub.services.storage import FallbackStorage, MemoryStorage, SqlStorage, StorageBackend  # noqa: E402

# Optional Sentry
try:
    import sentry_sdk  # type: ignore
    from sentry_sdk.integrations.flask import FlaskIntegration  # type: ignore
    from sentry_sdk.integrations.logging import LoggingIntegration  # type: ignore
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration  # type: ignore
except Exception:  # pragma: no cover
    sentry_sdk = None  # type: ignore

__version__ = "1.0.0"


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def _env_bool(name: str) -> Optional[bool]:
    v = os.getenv(name)
    if v is None:
        return None
    s = str(v).strip().lower()
    if s in {"1", "true", "t", "yes", "y", "on"}:
        return True
    if s in {"0", "false", "f", "no", "n", "off"}:
        return False
    return None


def _env_mode(app: Optional[Flask] = None) -> str:
    """
    Priority:
      1) app.config["ENV"] (if present and meaningful)
      2) APP_ENV / ENV / FLASK_ENV env vars
      3) default "development"
    """
    if app is not None:
        v = str(app.config.get("ENV") or "").strip().lower()
        if v and v not in {"?", "base"}:
            return v

    for key in ("APP_ENV", "ENV", "FLASK_ENV"):
        val = (os.getenv(key) or "").strip().lower()
        if val:
            if val == "prod":
                return "production"
            if val == "dev":
                return "development"
            return val

    return "development"


def _resolve_config(target: Optional[ConfigLike]) -> ConfigLike:
    """
    - If explicitly provided, respect it.
    - Else if FLASK_CONFIG is set, use it.
    - Else ProductionConfig when env indicates production; otherwise DevelopmentConfig.
    """
    if target is not None:
        return target

    explicit = (os.getenv("FLASK_CONFIG") or "").strip()
    if explicit:
        return explicit

    env = _env_mode(None)
    if env == "production":
        return "charityhub.config.ProductionConfig"
    if env == "testing":
        return "charityhub.config.TestingConfig"
    return "charityhub.config.DevelopmentConfig"


def _json_error(message: str, status: int, **extra: Any):
    payload: Dict[str, Any] = {
        "success": False,
        "message": str(message),
        "error": {"code": int(status)},
    }
    rid = extra.pop("request_id", None)
    if rid:
        payload["error"]["request_id"] = rid
    if extra:
        payload["error"].update(extra)

    resp = jsonify(payload)
    resp.status_code = int(status)
    return resp


def _wants_json_response() -> bool:
    path = request.path or ""
    if path.startswith(("/api/", "/healthz")):
        return True
    accept = (request.headers.get("Accept") or "").lower()
    return ("application/json" in accept) or bool(request.is_json)


def _parse_cors_origins(app: Flask) -> Union[str, List[str]]:
    raw = str(app.config.get("CORS_ORIGINS") or "*").strip()
    if raw in {"", "*"}:
        return "*"
    if "," in raw:
        return [o.strip() for o in raw.split(",") if o.strip()]
    return raw


# -----------------------------------------------------------------------------
# Logging with request_id
# -----------------------------------------------------------------------------
class _RequestIDFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        try:
            record.request_id = getattr(g, "request_id", "-")
        except RuntimeError:
            # outside an app/request context
            record.request_id = "-"
        return True


def _configure_logging(app: Flask) -> None:
    fmt = "%(asctime)s [%(levelname)s] %(name)s [rid=%(request_id)s]: %(message)s"
    root = logging.getLogger()

    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(fmt))
        handler.addFilter(_RequestIDFilter())
        root.addHandler(handler)
    else:
        for h in root.handlers:
            if not any(isinstance(f, _RequestIDFilter) for f in h.filters):
                h.addFilter(_RequestIDFilter())
            if not getattr(h, "formatter", None) or "%(request_id)s" not in getattr(h.formatter, "_fmt", ""):
                h.setFormatter(logging.Formatter(fmt))

    root.setLevel(str(app.config.get("LOG_LEVEL", "INFO")).upper())
    logging.getLogger("werkzeug").setLevel(str(app.config.get("WERKZEUG_LOG_LEVEL", "WARNING")).upper())
    app.logger.info("Loaded config: ENV=%s DEBUG=%s", app.config.get("ENV", "?"), app.debug)


# -----------------------------------------------------------------------------
# ProxyFix (reverse proxy)
# -----------------------------------------------------------------------------
def _apply_proxyfix(app: Flask) -> None:
    trust = _env_bool("TRUST_PROXY")
    if trust is None:
        trust = bool(app.config.get("TRUST_PROXY", False))
    if not trust:
        return

    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=1)
    app.logger.info("ProxyFix enabled (trusting X-Forwarded-* headers).")


# -----------------------------------------------------------------------------
# Integrations
# -----------------------------------------------------------------------------
def _init_sentry(app: Flask) -> None:
    dsn = (os.getenv("SENTRY_DSN") or "").strip()
    if not dsn or not sentry_sdk:
        return
    try:
        sentry_sdk.init(
            dsn=dsn,
            integrations=[
                FlaskIntegration(),
                LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
                SqlalchemyIntegration(),
            ],
            traces_sample_rate=float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.0")),
            send_default_pii=False,
            environment=app.config.get("ENV", "development"),
            release=os.getenv("GIT_COMMIT") or __version__,
        )
        app.logger.info("Sentry initialized")
    except Exception as e:
        app.logger.warning("Sentry init failed: %s", e)


def _init_cors(app: Flask, cors_origins: Union[str, List[str]]) -> None:
    cors.init_app(
        app,
        resources={r"/api/*": {"origins": cors_origins}},
        expose_headers=["X-Request-ID"],
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
        methods=["GET", "POST", "OPTIONS"],
    )


# -----------------------------------------------------------------------------
# Storage + processor wiring
# -----------------------------------------------------------------------------
def _maybe_create_schema(app: Flask) -> None:
    if app.config.get("AUTO_CREATE_SCHEMA", True) is not True:
        return
    try:
        with app.app_context():
            db.create_all()
    except Exception:
        app.logger.exception("create_all failed (continuing; storage will fall back to memory)")


def _build_storage(app: Flask) -> StorageBackend:
    defaults = dict(app.config.get("IMPACT_DEFAULTS") or {})
    primary = SqlStorage(db, defaults)
    primary.bind(app)
    storage = FallbackStorage(
        primary,
        MemoryStorage(defaults),
        reconnect_interval=float(app.config.get("STORAGE_RECONNECT_INTERVAL", 15.0) or 15.0),
    )
    with app.app_context():
        storage.ensure_seeded()
    if not primary.connected:
        app.logger.warning("Database unreachable at startup; serving from in-memory storage")
    return storage


def _init_donation_context(
    app: Flask,
    storage: Optional[StorageBackend],
    processor: Optional[PaymentProcessor],
) -> DonationContext:
    if storage is None:
        storage = _build_storage(app)
    if processor is None:
        processor = build_processor(app)

    intake = DonationIntakeService.from_config(app.config, storage, processor)
    ctx = DonationContext(
        storage=storage,
        intake=intake,
        processor=processor,
        admin_password=str(app.config.get("ADMIN_PASSWORD") or ""),
    )
    if not ctx.admin_password:
        app.logger.warning("ADMIN_PASSWORD is empty; admin login is disabled")
    app.logger.info(
        "Donation intake ready (storage=%s, processor=%s)",
        storage.name,
        processor.name if processor else "none",
    )
    return init_context(app, ctx)


# -----------------------------------------------------------------------------
# Request lifecycle + errors
# -----------------------------------------------------------------------------
def _register_request_lifecycle(app: Flask) -> None:
    @app.before_request
    def _bootstrap_request():
        g.request_id = request.headers.get("X-Request-ID") or uuid4().hex
        g._start_ts = time.perf_counter()

    @app.after_request
    def _attach_request_headers(resp):
        resp.headers["X-Request-ID"] = getattr(g, "request_id", "-")
        start = getattr(g, "_start_ts", None)
        if start:
            resp.headers["X-Response-Time-ms"] = str(int((time.perf_counter() - start) * 1000))
        return resp


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(HTTPException)
    def _http_err(err: HTTPException):
        if _wants_json_response():
            return _json_error(err.description or err.name, err.code or 500, request_id=getattr(g, "request_id", "-"))
        return err

    @app.errorhandler(Exception)
    def _uncaught(err: Exception):
        app.logger.exception("Unhandled error")
        if _wants_json_response():
            return _json_error("Internal Server Error", 500, request_id=getattr(g, "request_id", "-"))
        return InternalServerError()


# -----------------------------------------------------------------------------
# Health endpoints
# -----------------------------------------------------------------------------
def _register_health_endpoints(app: Flask) -> None:
    @app.get("/healthz")
    def _healthz():
        ctx = get_context(app)
        storage = ctx.storage.status()
        return {
            "status": "ok" if storage.get("connected", True) else "degraded",
            "env": app.config.get("ENV", "unknown"),
            "version": os.getenv("GIT_COMMIT") or __version__,
            "storage": storage,
            "processor": ctx.processor.name if ctx.processor else "none",
            "request_id": getattr(g, "request_id", "-"),
        }


# -----------------------------------------------------------------------------
# App Factory
# -----------------------------------------------------------------------------
def create_app(
    config_class: Optional[ConfigLike] = None,
    *,
    storage: Optional[StorageBackend] = None,
    processor: Optional[PaymentProcessor] = None,
) -> Flask:
    """
    `storage` / `processor` override what the config would build (tests, embedding).
    """
    app = Flask(__name__)

    # ---- Config loading
    cfg = _resolve_config(config_class)
    cfg_obj = import_string(cfg) if isinstance(cfg, str) else cfg
    app.config.from_object(cfg_obj)
    hook = getattr(cfg_obj, "init_app", None)
    if callable(hook):
        hook(app)

    env = _env_mode(app)
    app.config["ENV"] = env
    app.config.setdefault("JSON_SORT_KEYS", False)
    app.url_map.strict_slashes = False

    # ---- Proxy handling first
    _apply_proxyfix(app)

    # ---- Logging / integrations
    _configure_logging(app)
    _init_sentry(app)
    _init_cors(app, _parse_cors_origins(app))

    # ---- Persistence + donation pipeline
    db.init_app(app)
    if storage is None:
        _maybe_create_schema(app)
    _init_donation_context(app, storage, processor)

    # ---- Request lifecycle / errors
    _register_request_lifecycle(app)
    _register_error_handlers(app)

    # ---- Blueprints + health + CLI
    from charityhub.cli import register_cli
    from charityhub.routes import register_blueprints

    register_blueprints(app)
    _register_health_endpoints(app)
    register_cli(app)

    return app


__all__ = ["create_app", "get_context", "__version__"]
