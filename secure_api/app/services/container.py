"""
services/container.py — Explicit wiring of the auth collaborators.

build_auth_components() is called once per app in the factory; the result is
stored on app.extensions["auth"]. Tests can build their own with fakes.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Session

from secure_api.app.services.auth_service import AuthService
from secure_api.app.services.credential_store import CredentialStore
from secure_api.app.services.login_throttle import LoginThrottle, RegistrationThrottle
from secure_api.app.services.password_hasher import PasswordHasher
from secure_api.app.services.password_policy import PasswordPolicy
from secure_api.app.services.token_service import TokenService
from secure_api.app.services.user_service import UserService


@dataclass
class AuthComponents:
    store: CredentialStore
    hasher: PasswordHasher
    tokens: TokenService
    throttle: LoginThrottle
    registration_throttle: RegistrationThrottle
    auth_service: AuthService
    user_service: UserService


def build_auth_components(config, session: Session) -> AuthComponents:
    """
    `config` is a Flask config mapping; `session` is normally the scoped
    db.session, which resolves to the current request's session on use.
    """
    store = CredentialStore(session)
    hasher = PasswordHasher(rounds=config.get("BCRYPT_LOG_ROUNDS", 12))
    tokens = TokenService.from_config(config)
    throttle = LoginThrottle(
        store,
        max_failed_attempts=config.get("LOGIN_MAX_FAILED_ATTEMPTS", 5),
        window_minutes=config.get("LOGIN_ATTEMPT_WINDOW_MINUTES", 15),
    )
    registration_throttle = RegistrationThrottle(
        store,
        max_attempts=config.get("REGISTER_MAX_ATTEMPTS", 3),
        window_minutes=config.get("REGISTER_WINDOW_MINUTES", 60),
    )
    policy = PasswordPolicy(
        min_length=config.get("PASSWORD_MIN_LENGTH", 8),
        max_length=config.get("PASSWORD_MAX_LENGTH", 128),
    )
    return AuthComponents(
        store=store,
        hasher=hasher,
        tokens=tokens,
        throttle=throttle,
        registration_throttle=registration_throttle,
        auth_service=AuthService(
            store, hasher, tokens, throttle, policy,
            registration_throttle=registration_throttle,
        ),
        user_service=UserService(store),
    )
