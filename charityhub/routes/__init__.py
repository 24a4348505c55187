from __future__ import annotations

"""
CharityHub — Blueprint Loader

Explicit, deterministic registration. Prefix comes from the spec table below;
BP_PREFIX__<ALIAS> overrides it and DISABLE_BPS=alias,... skips a blueprint.
"""

import logging
import os
from dataclasses import dataclass
from importlib import import_module
from typing import Optional

from flask import Blueprint, Flask

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class BlueprintSpec:
    alias: str
    module: str
    attr: str = "bp"
    prefix: Optional[str] = None


BLUEPRINTS = (
    BlueprintSpec("api", "charityhub.routes.api", "api_bp", "/api"),
    BlueprintSpec("admin", "charityhub.routes.admin", "admin_bp", "/api/admin"),
)


def _disabled() -> set:
    return {p.strip().lower() for p in (os.getenv("DISABLE_BPS") or "").split(",") if p.strip()}


def _prefix_for(spec: BlueprintSpec) -> Optional[str]:
    override = (os.getenv(f"BP_PREFIX__{spec.alias.upper()}") or "").strip()
    if override:
        return "/" + override.strip("/")
    return spec.prefix


def register_blueprints(app: Flask) -> None:
    disabled = _disabled()
    for spec in BLUEPRINTS:
        if spec.alias in disabled:
            app.logger.info("Disabled blueprint: %s", spec.alias)
            continue

        blueprint = getattr(import_module(spec.module), spec.attr)
        if not isinstance(blueprint, Blueprint):
            raise RuntimeError(f"{spec.module}.{spec.attr} is not a Blueprint")
        if blueprint.name in app.blueprints:
            continue

        prefix = _prefix_for(spec)
        app.register_blueprint(blueprint, url_prefix=prefix)
        log.debug("Registered blueprint: %-8s → %s", blueprint.name, prefix or "/")
