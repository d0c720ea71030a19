#!/usr/bin/env python3
"""
Marginalia - Goodreads import backend
=====================================

Single-command run:  python main.py
Worker (with REDIS_URL set):  celery -A celery_app worker

See config.py for all environment-variable tunables.
"""

import logging

from flask import Flask

import config
from db import init_db
from api import api_bp

logger = logging.getLogger(__name__)

# Multipart framing on top of the CSV itself
UPLOAD_OVERHEAD_BYTES = 1024 * 1024


def create_app(db_url: str | None = None) -> Flask:
    """Flask application factory."""

    app = Flask(__name__)
    app.secret_key = config.SECRET
    app.config["MAX_CONTENT_LENGTH"] = config.IMPORT_MAX_CSV_BYTES + UPLOAD_OVERHEAD_BYTES

    # ── Initialise database ─────────────────────────────────────────
    init_db(db_url or config.DB_URL)
    logger.info(f"Database: {db_url or config.DB_URL}")

    # ── Register blueprints ─────────────────────────────────────────
    app.register_blueprint(api_bp)

    @app.route("/health")
    def health():
        return {"status": "ok"}

    return app


def main():
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = create_app()
    logger.info(f"Listening on http://{config.HOST}:{config.PORT}")
    app.run(host=config.HOST, port=config.PORT, debug=config.DEBUG, threaded=True)


if __name__ == "__main__":
    main()
