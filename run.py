#!/usr/bin/env python3
# -*- coding: utf-8 -*-
from __future__ import annotations

"""
CharityHub dev launcher.

  ./run.py --env development
  ./run.py --env production --host 0.0.0.0 --port 8080 --no-reload
  gunicorn "wsgi:app"    (production)
"""

import argparse
import os

ENV_TO_CONFIG = {
    "development": "charityhub.config.DevelopmentConfig",
    "testing": "charityhub.config.TestingConfig",
    "production": "charityhub.config.ProductionConfig",
}


def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Run the CharityHub API server")
    p.add_argument("--env", choices=sorted(ENV_TO_CONFIG), default=os.getenv("ENV", "development"))
    p.add_argument("--host", default=os.getenv("HOST", "127.0.0.1"))
    p.add_argument("--port", type=int, default=int(os.getenv("PORT", "5000")))
    p.add_argument("--no-reload", action="store_true", help="Disable the Werkzeug reloader")
    return p.parse_args()


def main() -> None:
    args = _parse_args()
    os.environ["ENV"] = args.env

    from charityhub import create_app

    app = create_app(ENV_TO_CONFIG[args.env])
    debug = args.env == "development"
    app.run(host=args.host, port=args.port, debug=debug, use_reloader=debug and not args.no_reload)


if __name__ == "__main__":
    main()
