"""
middleware/auth_middleware.py — Authentication and authorization decorators.

Per-request state machine:

    NoToken ──► TokenPresent ──► Verified ──► user loaded, active ──► view
       │              │                │                 │
       ▼              ▼                ▼                 ▼
  TOKEN_MISSING  TOKEN_INVALID   USER_NOT_FOUND    ACCOUNT_INACTIVE
      401            401              401               403

@require_auth
  Runs the full sequence and attaches g.current_user (an Identity) and
  g.user_id. Raises AppError on any failure — the global error handler
  converts it to JSON. Routes never catch AppError.

@optional_auth
  Same sequence, but every failure is swallowed and the request proceeds
  with g.current_user = None.

@require_role(role) / @require_roles(*roles) / @require_ownership(type, param)
  Stack BELOW @require_auth (so authentication runs first). All three
  delegate to authorization.is_authorized(). 403 FORBIDDEN on refusal.

Example:
    @bp.route("/products/<int:product_id>", methods=["PUT"])
    @require_auth
    @require_ownership("product", "product_id")
    def update_product(product_id): ...
"""

from __future__ import annotations

import functools
import logging
from typing import Callable

from flask import current_app, g, request

from secure_api.app.errors import (
    AppError,
    ErrorCode,
    Forbidden,
    InactiveAccount,
    InvalidToken,
    MissingToken,
    NotFound,
)
from secure_api.app.extensions import db
from secure_api.app.middleware.authorization import OWNER_RESOLVERS, Identity, is_authorized
from secure_api.app.services.container import AuthComponents

security_log = logging.getLogger("secure_api.security")


def current_auth() -> AuthComponents:
    """The auth collaborators wired for the running app."""
    return current_app.extensions["auth"]


def get_client_ip() -> str:
    """
    Source address used by the login throttle. X-Forwarded-For is only
    honoured when TRUST_PROXY_HEADERS is set (otherwise it is spoofable).
    """
    if current_app.config.get("TRUST_PROXY_HEADERS"):
        forwarded = request.headers.get("X-Forwarded-For", "")
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.remote_addr or "unknown"


def _log_event(event: str, level: int = logging.WARNING, **context) -> None:
    context.setdefault("ip", get_client_ip())
    context.setdefault("endpoint", request.path)
    security_log.log(
        level,
        "%s %s",
        event,
        " ".join(f"{k}={v}" for k, v in context.items()),
        extra={"event": event, **context},
    )


# ── Authentication ─────────────────────────────────────────────────────────

def _authenticate_request() -> Identity:
    """
    Performs the full authentication sequence and returns the caller.

    Separated from the decorators for testability — can be called directly
    inside a test request context.
    """
    header = request.headers.get("Authorization", "")

    # ── Step 1: Require Authorization header ──────────────────────────────
    if not header:
        raise MissingToken()

    # ── Step 2: Parse "Bearer <token>" ────────────────────────────────────
    auth = current_auth()
    raw_token = auth.tokens.extract_bearer(header)
    if raw_token is None:
        raise InvalidToken(
            "malformed_header",
            "Authorization header must be in the format: Bearer <token>.",
        )

    # ── Step 3: Verify signature, issuer, audience, expiry ────────────────
    try:
        claims = auth.tokens.verify_access_token(raw_token)
    except InvalidToken as exc:
        _log_event("TOKEN_INVALID", reason=exc.reason)
        raise

    try:
        user_id = int(claims["sub"])
    except (KeyError, TypeError, ValueError):
        raise InvalidToken("invalid_subject", "The 'sub' claim is not a valid user ID.")

    # ── Step 4: Load the user; it must still exist and be active ──────────
    user = auth.store.find_user_by_id(user_id)
    if user is None:
        _log_event("USER_NOT_FOUND", user_id=user_id)
        raise NotFound(
            ErrorCode.USER_NOT_FOUND,
            "The user for this token no longer exists.",
            http_status=401,
        )
    if not user.active:
        _log_event("USER_INACTIVE", user_id=user.id)
        raise InactiveAccount()

    return Identity.from_user(user)


def _attach(identity: Identity | None) -> None:
    g.current_user = identity
    g.user_id = identity.id if identity is not None else None


def require_auth(f: Callable) -> Callable:
    """Route decorator that enforces a valid access token for an active user."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        _attach(_authenticate_request())
        return f(*args, **kwargs)

    return decorated


def optional_auth(f: Callable) -> Callable:
    """
    Route decorator for endpoints with mixed public/private behaviour.
    A missing, invalid or inactive identity leaves g.current_user = None.
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        try:
            identity = _authenticate_request()
        except AppError as exc:
            if exc.code != ErrorCode.TOKEN_MISSING:
                current_app.logger.debug("Optional auth ignored: %s", exc.code)
            identity = None
        _attach(identity)
        return f(*args, **kwargs)

    return decorated


# ── Authorization ──────────────────────────────────────────────────────────

def _current_identity() -> Identity:
    identity = g.get("current_user")
    if identity is None:
        # Decorator stacked without @require_auth above it.
        raise MissingToken()
    return identity


def require_roles(*roles: str) -> Callable:
    """403 unless the authenticated role is one of `roles`."""
    allowed = tuple(roles)

    def decorator(f: Callable) -> Callable:
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            identity = _current_identity()
            if not is_authorized(identity, roles=allowed):
                _log_event(
                    "UNAUTHORIZED_ACCESS",
                    user_id=identity.id, role=identity.role, allowed=",".join(allowed),
                )
                raise Forbidden(f"This action requires one of the roles: {', '.join(allowed)}.")
            return f(*args, **kwargs)

        return decorated

    return decorator


def require_role(role: str) -> Callable:
    return require_roles(role)


def require_ownership(resource_type: str, id_param: str) -> Callable:
    """
    403 unless the caller owns the resource named by the URL parameter
    `id_param`, or is an admin. 404 if the resource does not exist.
    """
    if resource_type not in OWNER_RESOLVERS:
        raise ValueError(f"Unsupported resource type for ownership checks: {resource_type!r}")
    resolve_owner, not_found_code = OWNER_RESOLVERS[resource_type]

    def decorator(f: Callable) -> Callable:
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            identity = _current_identity()
            if identity.is_admin:
                return f(*args, **kwargs)

            resource_id = kwargs.get(id_param)
            owner_id = resolve_owner(db.session, resource_id)
            if owner_id is None:
                raise NotFound(not_found_code, f"{resource_type.capitalize()} {resource_id} does not exist.")

            if not is_authorized(identity, owner_id=owner_id):
                _log_event(
                    "UNAUTHORIZED_RESOURCE_ACCESS",
                    user_id=identity.id, resource_type=resource_type, resource_id=resource_id,
                )
                raise Forbidden(f"You do not have permission to access this {resource_type}.")
            return f(*args, **kwargs)

        return decorated

    return decorator
