"""
routes/health.py — Liveness probe.

  GET /health → 200 {"status": "ok", "database": "ok"}
               503 when the database does not answer
"""

from __future__ import annotations

from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from secure_api.app.extensions import db

health_bp = Blueprint("health", __name__)


@health_bp.route("/health", methods=["GET"])
def health():
    database = "ok"
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        current_app.logger.error("Health check: database unavailable: %s", exc)
        db.session.rollback()
        database = "unavailable"

    body = {
        "status": "ok" if database == "ok" else "degraded",
        "database": database,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    return jsonify({"data": body, "warnings": []}), 200 if database == "ok" else 503
