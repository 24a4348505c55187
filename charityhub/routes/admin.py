from __future__ import annotations

"""
CharityHub — Admin API
────────────────────────────────────────────────────────────
• POST     /api/admin/login            → shared-secret login, returns the process token
• GET|POST /api/admin/history          → stats + newest donations (≤ HISTORY_LIMIT)
• POST     /api/admin/virtual-terminal → operator-keyed donation (VT_ ids)

Protected routes expect `Authorization: <token>` (a `Bearer ` prefix is accepted).
"""

import logging
from functools import wraps

from flask import Blueprint, current_app, jsonify, request

from charityhub.context import get_context
from charityhub.schemas import DonationValidationError
from charityhub.services.intake import PaymentDeclined

log = logging.getLogger(__name__)

admin_bp = Blueprint("admin", __name__)
bp = admin_bp


def _unauthorized():
    return jsonify({"success": False, "message": "Unauthorized access"}), 401


def require_admin(fn):
    @wraps(fn)
    def wrapped(*args, **kwargs):
        if not get_context().check_token(request.headers.get("Authorization")):
            log.info("Rejected admin request to %s", request.path)
            return _unauthorized()
        return fn(*args, **kwargs)

    return wrapped


@admin_bp.post("/login")
def login():
    body = request.get_json(silent=True) or {}
    ctx = get_context()
    if not ctx.check_password(body.get("password") if isinstance(body, dict) else None):
        log.warning("Failed admin login attempt from %s", request.remote_addr)
        return jsonify({"success": False, "message": "Invalid password"}), 401
    return jsonify({"success": True, "token": ctx.admin_token})


@admin_bp.route("/history", methods=["GET", "POST"])
@require_admin
def history():
    ctx = get_context()
    limit = int(current_app.config.get("HISTORY_LIMIT", 100) or 100)
    try:
        stats = ctx.storage.get_stats()
        donations = ctx.storage.list_donations(limit, newest_first=True)
    except Exception:
        current_app.logger.error("Error fetching history", exc_info=True)
        return jsonify({"success": False, "message": "Error fetching history"}), 500

    resp = jsonify(
        {
            "stats": stats.as_dict(),
            "donations": [d.as_admin_dict() for d in donations],
        }
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@admin_bp.post("/virtual-terminal")
@require_admin
def virtual_terminal():
    ctx = get_context()
    try:
        receipt = ctx.intake.process_virtual_terminal(request.get_json(silent=True))
    except DonationValidationError as e:
        return jsonify({"success": False, "message": str(e)}), 400
    except PaymentDeclined as e:
        return jsonify({"success": False, "message": e.message}), 402
    except Exception:
        current_app.logger.error("Virtual terminal error", exc_info=True)
        return jsonify({"success": False, "message": "Terminal error"}), 500

    return jsonify(
        {
            "success": True,
            "message": "Virtual transaction authorized.",
            "transactionId": receipt.transaction_id,
            "updatedStats": receipt.stats.as_dict(),
        }
    )
