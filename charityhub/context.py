# charityhub/context.py
"""
Per-app runtime state (storage, processor, admin token, intake service).

Built once by the factory and stored in ``app.extensions["charityhub"]`` so
routes and CLI commands share one instance without module-level globals.
"""

from __future__ import annotations

import hmac
import secrets
from dataclasses import dataclass, field
from typing import Optional

from flask import Flask, current_app

from charityhub.services.intake import DonationIntakeService
from charityhub.services.payments import PaymentProcessor
from charityhub.services.storage import StorageBackend

EXTENSION_KEY = "charityhub"


def _new_admin_token() -> str:
    return secrets.token_urlsafe(32)


@dataclass
class DonationContext:
    storage: StorageBackend
    intake: DonationIntakeService
    processor: Optional[PaymentProcessor] = None
    admin_password: str = ""
    # Shared for the process lifetime, not per session.
    admin_token: str = field(default_factory=_new_admin_token)

    def check_password(self, candidate: Optional[str]) -> bool:
        if not self.admin_password or not isinstance(candidate, str):
            return False
        return hmac.compare_digest(candidate.encode("utf-8"), self.admin_password.encode("utf-8"))

    def check_token(self, header_value: Optional[str]) -> bool:
        raw = (header_value or "").strip()
        if raw.lower().startswith("bearer "):
            raw = raw.split(" ", 1)[1].strip()
        if not raw:
            return False
        return hmac.compare_digest(raw.encode("utf-8"), self.admin_token.encode("utf-8"))


def init_context(app: Flask, ctx: DonationContext) -> DonationContext:
    app.extensions[EXTENSION_KEY] = ctx
    return ctx


def get_context(app: Optional[Flask] = None) -> DonationContext:
    target = app or current_app
    try:
        return target.extensions[EXTENSION_KEY]
    except KeyError:
        raise RuntimeError("CharityHub context missing; build the app with charityhub.create_app()") from None
