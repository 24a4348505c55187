# charityhub/routes/api.py
from __future__ import annotations

"""
CharityHub public API Blueprint
────────────────────────────────────────────────────────────
• Mounted at /api via the blueprint loader
• RESTX docs at /api/docs (read endpoints)
• GET  /api/stats      → impact totals (never fails; defaults on error)
• GET  /api/donors     → recent donors, newest first
• POST /api/donate     → donation intake (card + hosted redirects)
• POST /api/newsletter → newsletter signup (duplicates are not errors)
• Consistent caching + ETag + 304 behavior on GETs
"""

import re
from hashlib import sha1
from typing import Any, Dict, Optional, Tuple

from flask import Blueprint, Response, current_app, jsonify, make_response, request
from flask_restx import Api, Resource, fields
from werkzeug.exceptions import BadRequest

from charityhub.config import IMPACT_DEFAULTS
from charityhub.context import get_context
from charityhub.domain import StatsSnapshot
from charityhub.schemas import DonationValidationError
from charityhub.services.intake import PaymentDeclined

# ─────────────────────────────────────────────────────────────
# Blueprint + RESTX API
# ─────────────────────────────────────────────────────────────
api_bp = Blueprint("api", __name__)
bp = api_bp  # alias for the loader

api = Api(
    api_bp,
    version="1.0",
    title="CharityHub API",
    description="Impact totals, donor wall and donation intake.",
    doc="/docs",
)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


# ─────────────────────────────────────────────────────────────
# JSON + caching helpers (ETag + 304)
# ─────────────────────────────────────────────────────────────
def _etag(s: str) -> str:
    return sha1(s.encode("utf-8")).hexdigest()[:12]


def _etag_matches(etag_value: str) -> bool:
    inm = request.if_none_match
    return bool(inm and inm.contains(etag_value))


def _json_response(
    data: Any,
    *,
    status: int = 200,
    etag_value: Optional[str] = None,
    max_age: int = 15,
    cache_public: bool = True,
) -> Response:
    if request.method == "GET" and etag_value and _etag_matches(etag_value):
        resp = make_response("", 304)
        resp.set_etag(etag_value)
        resp.headers.setdefault("Cache-Control", f"public, max-age={max_age}" if cache_public else "no-store")
        resp.headers.setdefault("X-Content-Type-Options", "nosniff")
        return resp

    resp = make_response(jsonify(data), status)
    if request.method == "GET":
        if etag_value:
            resp.set_etag(etag_value)
        resp.headers.setdefault("Cache-Control", f"public, max-age={max_age}" if cache_public else "no-store")
    else:
        resp.headers.setdefault("Cache-Control", "no-store")
    resp.headers.setdefault("X-Content-Type-Options", "nosniff")
    return resp


def _safe_int(name: str, default: int, minimum: int = 1, maximum: int = 100) -> int:
    raw = request.args.get(name, default)
    try:
        val = int(raw)
    except (TypeError, ValueError):
        raise BadRequest(f"Invalid integer for '{name}'")
    return max(minimum, min(maximum, val))


def _get_payload() -> Dict[str, Any]:
    """JSON body first; form fields as a gentle fallback."""
    data: Dict[str, Any] = {}
    body = request.get_json(silent=True)
    if isinstance(body, dict):
        data.update(body)
    for k in request.form:
        data.setdefault(k, request.form.get(k))
    return data


def _default_stats() -> Dict[str, Any]:
    defaults = current_app.config.get("IMPACT_DEFAULTS") or IMPACT_DEFAULTS
    return StatsSnapshot.from_defaults(defaults).as_dict()


# ─────────────────────────────────────────────────────────────
# Swagger models (docs only)
# ─────────────────────────────────────────────────────────────
stats_model = api.model(
    "ImpactStats",
    {
        "raised": fields.Float(required=True, example=2584912),
        "lives": fields.Integer(required=True, example=15430),
        "students": fields.Integer(required=True, example=5200),
        "meals": fields.Integer(required=True, example=120000),
        "medical": fields.Integer(required=True, example=8400),
        "homes": fields.Integer(required=True, example=340),
    },
)

donor_model = api.model(
    "Donor",
    {
        "name": fields.String(required=True, example="A Donor (Gala) [Phone]"),
        "amount": fields.Float(required=True, example=50),
        "timestamp": fields.String(required=True, example="2025-08-15T21:30:00Z"),
    },
)


# ─────────────────────────────────────────────────────────────
# RESTX routes
# ─────────────────────────────────────────────────────────────
@api.route("/stats")
class StatsResource(Resource):
    @api.doc(description="Impact totals. Serves configured defaults if storage fails.", tags=["Stats"])
    @api.response(200, "Impact totals", stats_model)
    def get(self):
        try:
            stats = get_context().storage.get_stats().as_dict()
        except Exception:
            current_app.logger.error("📊 error fetching stats; serving defaults", exc_info=True)
            stats = _default_stats()

        et = _etag("stats-" + "-".join(f"{k}={stats[k]}" for k in sorted(stats)))
        return _json_response(stats, etag_value=et, max_age=10)


@api.route("/donors")
class DonorsResource(Resource):
    @api.doc(
        description="Recent donors (supporter wall), newest first",
        params={"limit": "Max items (1–10, default 10)"},
        tags=["Stats"],
    )
    @api.response(200, "Recent donors", [donor_model])
    def get(self):
        cap = int(current_app.config.get("DONORS_LIMIT", 10) or 10)
        limit = _safe_int("limit", default=cap, minimum=1, maximum=cap)
        try:
            donors = [r.as_donor_dict() for r in get_context().storage.list_donors(limit)]
        except Exception:
            current_app.logger.error("🧾 donors feed error", exc_info=True)
            api.abort(500, "Error fetching donors")

        first_ts = donors[0]["timestamp"] if donors else "0"
        et = _etag(f"d-{len(donors)}-{first_ts}-{limit}")
        return _json_response(donors, etag_value=et, max_age=15)


# ─────────────────────────────────────────────────────────────
# Write endpoints (plain blueprint routes)
# ─────────────────────────────────────────────────────────────
@api_bp.post("/donate")
def donate():
    ctx = get_context()
    try:
        receipt = ctx.intake.process_donation(request.get_json(silent=True))
    except DonationValidationError as e:
        return _json_response({"success": False, "message": str(e)}, status=400)
    except PaymentDeclined as e:
        return _json_response({"success": False, "message": e.message}, status=402)
    except Exception:
        current_app.logger.error("Donation error", exc_info=True)
        return _json_response({"success": False, "message": "Processing failed"}, status=500)

    body: Dict[str, Any] = {
        "success": True,
        "message": "Donation processed!",
        "transactionId": receipt.transaction_id,
        "updatedStats": receipt.stats.as_dict(),
    }
    if receipt.redirect_url:
        body["redirectUrl"] = receipt.redirect_url
    return _json_response(body)


def _validate_email(email: str) -> Tuple[bool, Optional[str]]:
    if not email:
        return False, "Email required."
    if not EMAIL_RE.match(email) or len(email) > 255:
        return False, "Email looks invalid."
    return True, None


@api_bp.post("/newsletter")
def newsletter():
    email = str(_get_payload().get("email") or "").strip().lower()

    valid, err = _validate_email(email)
    if not valid:
        return _json_response({"success": False, "message": err}, status=400)

    try:
        created = get_context().storage.add_subscriber(email)
    except Exception:
        current_app.logger.error("Newsletter signup failed", exc_info=True)
        return _json_response({"success": False, "message": "Unable to save signup. Please try again."}, status=500)

    message = "Thanks for subscribing!" if created else "You're already subscribed."
    return _json_response({"success": True, "message": message})
