"""
services/password_policy.py — Password strength policy.

check() returns every failed rule rather than stopping at the first, so the
client can show the user the full list in one round trip.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

SPECIAL_CHARS = "@$!%*?&"

# Predictable fragments rejected regardless of the other rules.
WEAK_PATTERNS: tuple[re.Pattern, ...] = (
    re.compile(r"(.)\1{2,}"),        # same character three or more times
    re.compile(r"123456"),
    re.compile(r"abcdef", re.IGNORECASE),
    re.compile(r"password", re.IGNORECASE),
    re.compile(r"qwerty", re.IGNORECASE),
)


@dataclass(frozen=True)
class PasswordPolicy:
    min_length: int = 8
    max_length: int = 128
    require_lowercase: bool = True
    require_uppercase: bool = True
    require_digit: bool = True
    require_special: bool = True
    weak_patterns: tuple[re.Pattern, ...] = field(default=WEAK_PATTERNS)

    def check(self, password: str) -> list[str]:
        """Returns the list of failed requirements; empty means acceptable."""
        if not password:
            return ["Password is required."]

        errors: list[str] = []
        if len(password) < self.min_length:
            errors.append(f"Password must be at least {self.min_length} characters long.")
        if len(password) > self.max_length:
            errors.append(f"Password must be at most {self.max_length} characters long.")
        if self.require_lowercase and not re.search(r"[a-z]", password):
            errors.append("Password must contain at least one lowercase letter.")
        if self.require_uppercase and not re.search(r"[A-Z]", password):
            errors.append("Password must contain at least one uppercase letter.")
        if self.require_digit and not re.search(r"\d", password):
            errors.append("Password must contain at least one digit.")
        if self.require_special and not any(c in SPECIAL_CHARS for c in password):
            errors.append(f"Password must contain at least one special character ({SPECIAL_CHARS}).")
        if re.search(r"\s", password):
            errors.append("Password must not contain whitespace.")
        if any(p.search(password) for p in self.weak_patterns):
            errors.append("Password must not contain common or predictable patterns.")
        return errors
