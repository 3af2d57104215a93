"""
app/__init__.py — create_app(), the only place the pieces are wired together.

Importing this package has no side effects; each create_app() call builds an
independent app (tests build one per session, Alembic builds none).

create_app() in order:
  config → logging → SQLAlchemy → auth components (app.extensions["auth"])
  → blueprints under /api/v1 → error handlers → CORS → security headers
  → CLI commands
"""

from __future__ import annotations

import logging
import traceback
from decimal import Decimal

from flask import Flask, jsonify, request
from flask.json.provider import DefaultJSONProvider
from flask.logging import default_handler
from marshmallow import ValidationError
from werkzeug.exceptions import HTTPException

from secure_api.config import config_by_name, validate_production_config


# ── Custom JSON provider ───────────────────────────────────────────────────
# Flask's default JSON encoder does not handle Decimal. Prices are sent as
# strings to preserve precision.

class DecimalJSONProvider(DefaultJSONProvider):
    """Serialises Decimal as str: Decimal("10.50") → "10.50"."""

    def default(self, o):
        if isinstance(o, Decimal):
            return str(o)
        return super().default(o)


# ── Application factory ────────────────────────────────────────────────────

def create_app(config_name: str = "development", **overrides) -> Flask:
    """
    Creates and returns a configured Flask application instance.

    Args:
        config_name: One of "development", "testing", "production".
        overrides:   Config keys applied after the config class
                     (tests use this to shrink windows or TTLs).
    """
    app = Flask(__name__)
    app.json_provider_class = DecimalJSONProvider
    app.json = DecimalJSONProvider(app)

    # ── Configuration ──────────────────────────────────────────────────────
    config_class = config_by_name.get(config_name, config_by_name["development"])
    app.config.from_object(config_class)
    app.config.update(overrides)

    if config_name == "production":
        validate_production_config(app)  # raises ValueError if misconfigured

    _configure_logging(app)

    # ── Extensions ─────────────────────────────────────────────────────────
    from secure_api.app.extensions import db
    db.init_app(app)

    # Import all models so that SQLAlchemy's MetaData is populated before
    # create_all() or Alembic inspects it.
    with app.app_context():
        from secure_api.app.models import (  # noqa: F401
            login_attempt,
            product,
            refresh_token,
            registration_attempt,
            user,
        )

    # ── Auth collaborators ─────────────────────────────────────────────────
    from secure_api.app.services.container import build_auth_components
    app.extensions["auth"] = build_auth_components(app.config, db.session)

    _register_blueprints(app)
    _register_error_handlers(app)
    _register_cors(app)
    _register_security_headers(app)

    from secure_api.app.cli import register_cli
    register_cli(app)

    return app


def _configure_logging(app: Flask) -> None:
    """
    Routes the package loggers (secure_api.*, including the
    secure_api.security event log) through Flask's default handler.
    """
    level = logging.getLevelName(str(app.config.get("LOG_LEVEL", "INFO")).upper())
    if not isinstance(level, int):
        level = logging.INFO

    app.logger.setLevel(level)
    package_logger = logging.getLogger("secure_api")
    package_logger.setLevel(level)
    if default_handler not in package_logger.handlers:
        package_logger.addHandler(default_handler)


def _register_blueprints(app: Flask) -> None:
    """Registers all route blueprints under the /api/v1 prefix."""
    from secure_api.app.routes.auth import auth_bp
    from secure_api.app.routes.health import health_bp
    from secure_api.app.routes.products import products_bp
    from secure_api.app.routes.users import users_bp

    app.register_blueprint(auth_bp,     url_prefix="/api/v1/auth")
    app.register_blueprint(products_bp, url_prefix="/api/v1/products")
    app.register_blueprint(users_bp,    url_prefix="/api/v1/users")
    app.register_blueprint(health_bp,   url_prefix="/api/v1")


def _first_validation_message(messages) -> tuple[str | None, str]:
    """
    (field, message) for the first entry of a marshmallow message map.
    Schema-level errors ("_schema") have no field.
    """
    if isinstance(messages, dict) and messages:
        name, errors = next(iter(messages.items()))
        if isinstance(errors, dict):
            # nested schema or per-item errors: report the inner message
            _, message = _first_validation_message(errors)
        elif isinstance(errors, list) and errors:
            message = str(errors[0])
        else:
            message = str(errors) or "Invalid value."
        return (None if name == "_schema" else name), message
    if isinstance(messages, list) and messages:
        return None, str(messages[0])
    return None, "Invalid input."


def _register_error_handlers(app: Flask) -> None:
    """
    Registers global error handlers.

    Handlers:
      AppError        → structured JSON error envelope with the correct status
      ValidationError → marshmallow schema errors as MISSING_FIELD /
                        INVALID_FIELD responses (400)
      HTTPException   → routing errors (404, 405, ...) in the same envelope
      Exception       → generic INTERNAL_ERROR (500); traceback logged only

    Stack traces never leave the server.
    """
    from secure_api.app.errors import AppError, ErrorCode
    from secure_api.app.extensions import db

    @app.errorhandler(AppError)
    def handle_app_error(error: AppError):
        """
        Converts an AppError raised anywhere in the request lifecycle
        (middleware, service, route) into the standard error envelope.
        """
        response = jsonify(error.to_dict())
        response.status_code = error.http_status
        if error.retry_after is not None:
            response.headers["Retry-After"] = str(error.retry_after)
        return response

    @app.errorhandler(ValidationError)
    def handle_validation_error(error: ValidationError):
        """
        Schema failures: the first failing field names the error, the full
        marshmallow message map goes in details.
        """
        field, message = _first_validation_message(error.messages)
        code = (
            ErrorCode.MISSING_FIELD
            if message.startswith("Missing data for required field")
            else ErrorCode.INVALID_FIELD
        )
        payload = {"code": code, "message": message, "details": error.messages}
        if field is not None:
            payload["field"] = field
        return jsonify({"error": payload}), 400

    @app.errorhandler(HTTPException)
    def handle_http_exception(error: HTTPException):
        code = {
            404: ErrorCode.NOT_FOUND,
            405: ErrorCode.METHOD_NOT_ALLOWED,
        }.get(error.code, ErrorCode.INVALID_FIELD if error.code == 400 else ErrorCode.INTERNAL_ERROR)
        return jsonify({"error": {"code": code, "message": error.description}}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        """
        Catches all unhandled exceptions (store unavailable, hasher failure,
        ...) and returns a generic 500. Nothing is retried.
        """
        db.session.rollback()
        app.logger.error(
            "Unhandled exception on %s %s: %s\n%s",
            request.method,
            request.path,
            str(error),
            traceback.format_exc(),
        )
        return jsonify({
            "error": {
                "code": ErrorCode.INTERNAL_ERROR,
                "message": "An unexpected error occurred. Please try again later.",
            }
        }), 500


def _register_cors(app: Flask) -> None:
    """
    Adds CORS headers for browser-based local development when DEBUG or
    TESTING is true, so a front end on another local port can call the API
    with an Authorization header.
    """

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allow_all = bool(app.config.get("DEBUG") or app.config.get("TESTING"))

        if allow_all:
            response.headers["Access-Control-Allow-Origin"] = origin if origin else "*"
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Methods"] = "GET, POST, PUT, PATCH, DELETE, OPTIONS"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"

        return response


def _register_security_headers(app: Flask) -> None:
    """
    Hardening headers on every response. setdefault leaves any header a
    view has already set alone. HSTS is only meaningful over HTTPS, so it
    is sent only for secure requests.
    """

    @app.after_request
    def add_security_headers(response):
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("X-XSS-Protection", "1; mode=block")
        response.headers.setdefault("Referrer-Policy", "no-referrer")
        response.headers.setdefault(
            "Content-Security-Policy", "default-src 'none'; frame-ancestors 'none'"
        )
        response.headers.setdefault("Cache-Control", "no-store, no-cache, must-revalidate, private")
        response.headers.setdefault("X-API-Version", "1.0")
        if request.is_secure:
            response.headers.setdefault(
                "Strict-Transport-Security", "max-age=31536000; includeSubDomains"
            )
        return response
