"""
errors.py — AppError base class, named auth errors and the error code registry.

Every error returned by the API uses a code defined here. Service and
middleware code raises; it never returns error objects. The global handlers
in app/__init__.py turn an AppError into the JSON error envelope.

Clients branch on `code`, never on `message`: codes are stable once
released, messages may be reworded. 401 means the caller is unknown, 403
means the caller is known but refused.
"""

from __future__ import annotations


class AppError(Exception):

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int,
            field: str | None = None,
            details: list | dict | None = None,
            retry_after: int | None = None,
    ) -> None:
        super().__init__(message)
        self.code        = code
        self.message     = message
        self.http_status = http_status
        self.field       = field        # which request field caused the error
        self.details     = details      # itemized reasons (validation, token reason)
        self.retry_after = retry_after  # seconds, for 429 responses

    def to_dict(self) -> dict:
        payload = {
            "code":    self.code,
            "message": self.message,
        }
        if self.field is not None:
            payload["field"] = self.field
        if self.details is not None:
            payload["details"] = self.details
        if self.retry_after is not None:
            payload["retry_after"] = self.retry_after
        return {"error": payload}

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by category. HTTP status is indicated in the comment.
# IMPORTANT: these are the string values sent in the API response.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    MISSING_FIELD              = "MISSING_FIELD"
    INVALID_FIELD              = "INVALID_FIELD"
    VALIDATION_FAILED          = "VALIDATION_FAILED"

    # ── Conflict Errors (409) ──────────────────────────────────────────────
    DUPLICATE_EMAIL            = "DUPLICATE_EMAIL"
    DUPLICATE_USERNAME         = "DUPLICATE_USERNAME"

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    NOT_FOUND                  = "NOT_FOUND"
    USER_NOT_FOUND             = "USER_NOT_FOUND"
    PRODUCT_NOT_FOUND          = "PRODUCT_NOT_FOUND"
    METHOD_NOT_ALLOWED         = "METHOD_NOT_ALLOWED"   # 405

    # ── Business Rule Violations (422) ────────────────────────────────────
    CANNOT_MODIFY_SELF         = "CANNOT_MODIFY_SELF"

    # ── Auth Errors ────────────────────────────────────────────────────────
    # 401 = we do not know who you are (unauthenticated)
    # 403 = we know who you are, but you are not allowed (unauthorized)
    INVALID_CREDENTIALS        = "INVALID_CREDENTIALS"    # 401
    TOKEN_MISSING              = "TOKEN_MISSING"          # 401
    TOKEN_INVALID              = "TOKEN_INVALID"          # 401
    USER_INVALID               = "USER_INVALID"           # 401
    ACCOUNT_INACTIVE           = "ACCOUNT_INACTIVE"       # 403
    FORBIDDEN                  = "FORBIDDEN"              # 403
    TOO_MANY_ATTEMPTS          = "TOO_MANY_ATTEMPTS"      # 429

    # ── System Errors (500) ────────────────────────────────────────────────
    INTERNAL_ERROR             = "INTERNAL_ERROR"


# ── Named errors ───────────────────────────────────────────────────────────
#
# Thin subclasses so callers (and tests) can catch a specific failure while
# the handler still sees a plain AppError.
# ──────────────────────────────────────────────────────────────────────────

class ValidationFailed(AppError):
    """Input failed a policy check; `details` lists every failed rule."""

    def __init__(self, message: str, details: list[str], field: str | None = None) -> None:
        super().__init__(ErrorCode.VALIDATION_FAILED, message, 400, field=field, details=details)


class ConflictError(AppError):

    def __init__(self, code: str, message: str, field: str) -> None:
        super().__init__(code, message, 409, field=field)


class InvalidCredentials(AppError):
    """Unknown user and wrong password are deliberately indistinguishable."""

    def __init__(self, message: str = "The username or password is incorrect.") -> None:
        super().__init__(ErrorCode.INVALID_CREDENTIALS, message, 401)


class InactiveAccount(AppError):

    def __init__(self, message: str = "This account has been deactivated. Contact an administrator.") -> None:
        super().__init__(ErrorCode.ACCOUNT_INACTIVE, message, 403)


class TooManyAttempts(AppError):

    def __init__(self, retry_after: int, what: str = "failed login attempts") -> None:
        minutes = max(1, retry_after // 60)
        super().__init__(
            ErrorCode.TOO_MANY_ATTEMPTS,
            f"Too many {what}. Try again in {minutes} minutes.",
            429,
            retry_after=retry_after,
        )


class MissingToken(AppError):

    def __init__(self) -> None:
        super().__init__(
            ErrorCode.TOKEN_MISSING,
            "Authentication required. Provide a Bearer token in the Authorization header.",
            401,
        )


class InvalidToken(AppError):
    """Signature, claim, expiry or storage failure; `reason` names which."""

    def __init__(self, reason: str, message: str = "The token is invalid or has expired.") -> None:
        super().__init__(ErrorCode.TOKEN_INVALID, message, 401, details={"reason": reason})
        self.reason = reason


class UserInvalid(AppError):

    def __init__(self) -> None:
        super().__init__(
            ErrorCode.USER_INVALID,
            "The user for this token does not exist or has been deactivated.",
            401,
        )


class Forbidden(AppError):

    def __init__(self, message: str = "You do not have permission to perform this action.") -> None:
        super().__init__(ErrorCode.FORBIDDEN, message, 403)


class NotFound(AppError):

    def __init__(self, code: str, message: str, http_status: int = 404) -> None:
        super().__init__(code, message, http_status)
