"""
services/token_service.py — JWT access/refresh token issuance and verification.

Token design:
  - Access token: HS256, short-lived (15 min default). Claims: sub, username,
    email, role, iat, iss, aud, exp. Stateless; there is no revocation list,
    so logout cannot invalidate an access token that is still unexpired.
  - Refresh token: HS256, long-lived (7 days default), signed with a
    DIFFERENT secret. Claims: sub, username, type="refresh", iat, iss, aud,
    exp, jti. The signed token is also persisted by the credential store and
    only accepted while its row exists.

Every verification failure is raised as InvalidToken with a short `reason`
naming the underlying PyJWT failure.
"""

from __future__ import annotations

import secrets
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

import jwt

from secure_api.app.errors import InvalidToken

TOKEN_TYPE = "Bearer"
REFRESH_TOKEN_TYPE = "refresh"

_ACCESS_REQUIRED_CLAIMS = ["sub", "iat", "exp", "iss", "aud"]
_REFRESH_REQUIRED_CLAIMS = ["sub", "iat", "exp", "iss", "aud", "type"]

# Most specific first: InvalidSignatureError subclasses DecodeError, and
# everything subclasses InvalidTokenError.
_FAILURE_REASONS: tuple[tuple[type[Exception], str], ...] = (
    (jwt.ExpiredSignatureError, "expired"),
    (jwt.InvalidSignatureError, "invalid_signature"),
    (jwt.InvalidIssuerError, "invalid_issuer"),
    (jwt.InvalidAudienceError, "invalid_audience"),
    (jwt.MissingRequiredClaimError, "missing_claim"),
    (jwt.ImmatureSignatureError, "not_yet_valid"),
    (jwt.InvalidAlgorithmError, "invalid_algorithm"),
    (jwt.DecodeError, "malformed"),
    (jwt.InvalidTokenError, "invalid"),
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _reason_for(error: jwt.InvalidTokenError) -> str:
    for exc_type, reason in _FAILURE_REASONS:
        if isinstance(error, exc_type):
            return reason
    return "invalid"


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int          # access-token lifetime, seconds
    token_type: str = TOKEN_TYPE

    def to_dict(self) -> dict:
        return asdict(self)


class TokenService:

    def __init__(
            self,
            access_secret: str,
            refresh_secret: str,
            issuer: str,
            audience: str,
            access_ttl: timedelta = timedelta(minutes=15),
            refresh_ttl: timedelta = timedelta(days=7),
            algorithm: str = "HS256",
            clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if access_secret == refresh_secret:
            raise ValueError("Access and refresh tokens must use different secrets.")
        self.access_secret = access_secret
        self.refresh_secret = refresh_secret
        self.issuer = issuer
        self.audience = audience
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self.algorithm = algorithm
        self._clock = clock

    @classmethod
    def from_config(cls, config) -> "TokenService":
        return cls(
            access_secret=config["JWT_ACCESS_SECRET"],
            refresh_secret=config["JWT_REFRESH_SECRET"],
            issuer=config["JWT_ISSUER"],
            audience=config["JWT_AUDIENCE"],
            access_ttl=config["JWT_ACCESS_TOKEN_EXPIRES"],
            refresh_ttl=config["JWT_REFRESH_TOKEN_EXPIRES"],
            algorithm=config.get("JWT_ALGORITHM", "HS256"),
        )

    @property
    def access_expires_in(self) -> int:
        return int(self.access_ttl.total_seconds())

    # ── Issuance ───────────────────────────────────────────────────────────

    def issue_access_token(self, user) -> str:
        now = self._clock()
        payload = {
            "sub": str(user.id),
            "username": user.username,
            "email": user.email,
            "role": user.role,
            "iat": now,
            "iss": self.issuer,
            "aud": self.audience,
            "exp": now + self.access_ttl,
        }
        return jwt.encode(payload, self.access_secret, algorithm=self.algorithm)

    def issue_refresh_token(self, user) -> str:
        now = self._clock()
        payload = {
            "sub": str(user.id),
            "username": user.username,
            "type": REFRESH_TOKEN_TYPE,
            "iat": now,
            "iss": self.issuer,
            "aud": self.audience,
            "exp": now + self.refresh_ttl,
            # The token is the storage key; two issued in the same second
            # must still differ.
            "jti": secrets.token_hex(8),
        }
        return jwt.encode(payload, self.refresh_secret, algorithm=self.algorithm)

    def issue_token_pair(self, user) -> TokenPair:
        return TokenPair(
            access_token=self.issue_access_token(user),
            refresh_token=self.issue_refresh_token(user),
            expires_in=self.access_expires_in,
        )

    def refresh_expiry(self) -> datetime:
        """Absolute expiry to persist next to a freshly issued refresh token."""
        return self._clock() + self.refresh_ttl

    # ── Verification ───────────────────────────────────────────────────────

    def verify_access_token(self, token: str) -> dict:
        return self._decode(token, self.access_secret, _ACCESS_REQUIRED_CLAIMS)

    def verify_refresh_token(self, token: str) -> dict:
        claims = self._decode(token, self.refresh_secret, _REFRESH_REQUIRED_CLAIMS)
        if claims.get("type") != REFRESH_TOKEN_TYPE:
            raise InvalidToken("wrong_token_type", "The token is not a refresh token.")
        return claims

    def _decode(self, token: str, secret: str, required: list[str]) -> dict:
        if not token:
            raise InvalidToken("malformed")
        try:
            return jwt.decode(
                token,
                secret,
                algorithms=[self.algorithm],
                issuer=self.issuer,
                audience=self.audience,
                options={"require": required},
            )
        except jwt.InvalidTokenError as exc:
            reason = _reason_for(exc)
            raise InvalidToken(reason, f"The token is invalid: {exc}") from exc

    # ── Header parsing ─────────────────────────────────────────────────────

    @staticmethod
    def extract_bearer(header: str | None) -> str | None:
        """
        Returns the token from an "Authorization: Bearer <token>" header value,
        or None when the header is absent or not in that form.
        """
        if not header:
            return None
        parts = header.split()
        if len(parts) != 2 or parts[0].lower() != "bearer":
            return None
        return parts[1]
