"""
services/login_throttle.py — Brute-force protection for POST /auth/login,
plus the per-IP cap on POST /auth/register (RegistrationThrottle).

Login policy:
  - Before credentials are evaluated, count FAILED attempts from the source
    IP in the last `window_minutes`. At `max_failed_attempts` or more the
    attempt is rejected with TooManyAttempts, before any bcrypt work.
  - Every evaluated attempt is recorded afterwards, success or failure. A
    correct password on a deactivated account is recorded as a failure.
  - Successful attempts never count toward the limit, and they do not erase
    earlier failures: a block only ends when failures age out of the window.
"""

from __future__ import annotations

import logging

from secure_api.app.errors import TooManyAttempts
from secure_api.app.services.credential_store import CredentialStore

security_log = logging.getLogger("secure_api.security")


class LoginThrottle:

    def __init__(
            self,
            store: CredentialStore,
            max_failed_attempts: int = 5,
            window_minutes: int = 15,
    ) -> None:
        self.store = store
        self.max_failed_attempts = max_failed_attempts
        self.window_minutes = window_minutes

    @property
    def retry_after_seconds(self) -> int:
        return self.window_minutes * 60

    def check(self, ip_address: str, username: str | None = None) -> None:
        """Raises TooManyAttempts if ip_address is currently blocked."""
        failures = self.store.count_recent_failed_attempts(ip_address, self.window_minutes)
        if failures >= self.max_failed_attempts:
            security_log.warning(
                "LOGIN_BLOCKED ip=%s username=%r failures=%d",
                ip_address, username, failures,
                extra={"event": "LOGIN_BLOCKED", "ip": ip_address, "attempts": failures},
            )
            raise TooManyAttempts(retry_after=self.retry_after_seconds)

    def record(self, ip_address: str, username: str, successful: bool) -> None:
        self.store.record_login_attempt(ip_address, username, successful)


class RegistrationThrottle:
    """
    Caps account creation per source IP: `max_attempts` registration
    requests in `window_minutes`. Unlike logins, every request that reaches
    the service counts, successful or not.
    """

    def __init__(
            self,
            store: CredentialStore,
            max_attempts: int = 3,
            window_minutes: int = 60,
    ) -> None:
        self.store = store
        self.max_attempts = max_attempts
        self.window_minutes = window_minutes

    def check(self, ip_address: str, username: str | None = None) -> None:
        attempts = self.store.count_recent_registration_attempts(ip_address, self.window_minutes)
        if attempts >= self.max_attempts:
            security_log.warning(
                "REGISTER_BLOCKED ip=%s username=%r attempts=%d",
                ip_address, username, attempts,
                extra={"event": "REGISTER_BLOCKED", "ip": ip_address, "attempts": attempts},
            )
            raise TooManyAttempts(
                retry_after=self.window_minutes * 60,
                what="registrations from this address",
            )

    def record(self, ip_address: str, username: str) -> None:
        self.store.record_registration_attempt(ip_address, username)
