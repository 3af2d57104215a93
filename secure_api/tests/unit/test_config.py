"""
Unit tests for the production configuration guard.
"""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from secure_api import config as app_config
from secure_api.config import validate_production_config


def _app(**overrides) -> SimpleNamespace:
    config = {
        "SQLALCHEMY_DATABASE_URI": "postgresql://db/secure_api",
        "SECRET_KEY": "a-real-secret",
        "JWT_ACCESS_SECRET": "a-real-access-secret",
        "JWT_REFRESH_SECRET": "a-real-refresh-secret",
        "BCRYPT_LOG_ROUNDS": 12,
    }
    config.update(overrides)
    return SimpleNamespace(config=config)


def test_valid_production_config_passes():
    validate_production_config(_app())


@pytest.mark.parametrize("overrides", [
    {"SQLALCHEMY_DATABASE_URI": ""},
    {"SECRET_KEY": "change-me-in-production"},
    {"JWT_ACCESS_SECRET": "change-me-in-production-access"},
    {"JWT_REFRESH_SECRET": "change-me-in-production-refresh"},
    {"JWT_REFRESH_SECRET": "a-real-access-secret"},
    {"BCRYPT_LOG_ROUNDS": 4},
])
def test_insecure_production_config_is_refused(overrides):
    with pytest.raises(ValueError):
        validate_production_config(_app(**overrides))


def test_testing_config_uses_distinct_secrets_and_cheap_hashing():
    assert app_config.TestingConfig.JWT_ACCESS_SECRET != app_config.TestingConfig.JWT_REFRESH_SECRET
    assert app_config.TestingConfig.BCRYPT_LOG_ROUNDS == 4
    assert app_config.TestingConfig.TESTING is True
