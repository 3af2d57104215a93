"""
tests/integration/test_credential_store.py — CredentialStore against the
real schema. Expiry and window filtering happen in SQL, so these need a
database rather than a mock session.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from secure_api.app.errors import AppError, ErrorCode
from secure_api.app.extensions import db
from secure_api.app.services.credential_store import CredentialStore


@pytest.fixture
def store(app):
    with app.app_context():
        yield CredentialStore(db.session)
        db.session.rollback()


def _now() -> datetime:
    return datetime.now(timezone.utc)


class TestUsers:

    def test_email_lookup_is_case_insensitive(self, store):
        store.create_user("alice", "Alice@Example.com", "hash")
        assert store.find_user_by_email("ALICE@example.COM").username == "alice"

    def test_username_lookup_is_exact(self, store):
        store.create_user("alice", "alice@example.com", "hash")
        assert store.find_user_by_username("Alice") is None

    def test_login_lookup_accepts_either(self, store):
        user = store.create_user("alice", "alice@example.com", "hash")
        assert store.find_user_by_username_or_email("alice") is user
        assert store.find_user_by_username_or_email("ALICE@example.com") is user

    def test_duplicate_email_differing_in_case(self, store):
        store.create_user("alice", "alice@example.com", "hash")
        with pytest.raises(AppError) as exc_info:
            store.create_user("alice2", "ALICE@example.com", "hash")
        assert exc_info.value.code == ErrorCode.DUPLICATE_EMAIL

    def _skip_first_precheck(self, store, monkeypatch):
        """
        Lets the first duplicate check pass as if a concurrent request had
        not committed yet, so the insert reaches the unique constraint.
        """
        real_check = store._raise_if_taken
        calls = []

        def check(username, email):
            calls.append(username)
            if len(calls) > 1:
                real_check(username, email)

        monkeypatch.setattr(store, "_raise_if_taken", check)
        return calls

    def test_insert_losing_a_race_maps_to_conflict(self, store, monkeypatch):
        store.create_user("alice", "alice@example.com", "hash")
        db.session.commit()
        calls = self._skip_first_precheck(store, monkeypatch)

        with pytest.raises(AppError) as exc_info:
            store.create_user("alice", "alice2@example.com", "hash")

        assert exc_info.value.code == ErrorCode.DUPLICATE_USERNAME
        assert exc_info.value.http_status == 409
        assert calls == ["alice", "alice"]

    def test_lost_race_keeps_earlier_work_in_the_transaction(self, store, monkeypatch):
        store.create_user("alice", "alice@example.com", "hash")
        db.session.commit()
        store.record_login_attempt("1.1.1.1", "bob", False)
        self._skip_first_precheck(store, monkeypatch)

        with pytest.raises(AppError):
            store.create_user("bob", "ALICE@example.com", "hash")

        assert store.count_recent_failed_attempts("1.1.1.1", 15) == 1
        assert store.find_user_by_username("bob") is None

    def test_list_users_filters_and_counts(self, store):
        store.create_user("alice", "alice@example.com", "hash")
        bob = store.create_user("bob", "bob@example.com", "hash", role="admin")
        carol = store.create_user("carol", "carol@example.com", "hash")
        store.set_user_active(carol, False)

        admins, total = store.list_users(role="admin")
        assert [u.id for u in admins] == [bob.id]
        assert total == 1

        inactive, total = store.list_users(active=False)
        assert [u.username for u in inactive] == ["carol"]

        page, total = store.list_users(page=2, per_page=2)
        assert total == 3
        assert len(page) == 1


class TestRefreshTokens:

    def test_expired_token_is_not_valid(self, store):
        user = store.create_user("alice", "alice@example.com", "hash")
        store.save_refresh_token("live", user.id, _now() + timedelta(days=1))
        store.save_refresh_token("dead", user.id, _now() - timedelta(seconds=1))

        assert store.find_valid_refresh_token("live", user.id) is not None
        assert store.find_valid_refresh_token("dead", user.id) is None

    def test_token_of_another_user_is_not_valid(self, store):
        alice = store.create_user("alice", "alice@example.com", "hash")
        bob = store.create_user("bob", "bob@example.com", "hash")
        store.save_refresh_token("t", alice.id, _now() + timedelta(days=1))

        assert store.find_valid_refresh_token("t", bob.id) is None

    def test_deletes_report_counts(self, store):
        user = store.create_user("alice", "alice@example.com", "hash")
        for name in ("a", "b", "c"):
            store.save_refresh_token(name, user.id, _now() + timedelta(days=1))

        assert store.delete_refresh_token("a") == 1
        assert store.delete_refresh_token("a") == 0
        assert store.delete_all_refresh_tokens_for_user(user.id) == 2

    def test_purge_only_removes_expired(self, store):
        user = store.create_user("alice", "alice@example.com", "hash")
        store.save_refresh_token("live", user.id, _now() + timedelta(days=1))
        store.save_refresh_token("dead", user.id, _now() - timedelta(days=1))

        assert store.purge_expired_refresh_tokens() == 1
        assert store.find_valid_refresh_token("live", user.id) is not None


class TestLoginAttempts:

    def test_counts_only_recent_failures_for_that_ip(self, store):
        now = _now()
        store.record_login_attempt("1.1.1.1", "alice", False, attempted_at=now - timedelta(minutes=1))
        store.record_login_attempt("1.1.1.1", "alice", False, attempted_at=now - timedelta(minutes=20))
        store.record_login_attempt("1.1.1.1", "alice", True, attempted_at=now - timedelta(minutes=1))
        store.record_login_attempt("2.2.2.2", "alice", False, attempted_at=now - timedelta(minutes=1))

        assert store.count_recent_failed_attempts("1.1.1.1", 15, now=now) == 1
        assert store.count_recent_failed_attempts("1.1.1.1", 30, now=now) == 2
        assert store.count_recent_failed_attempts("3.3.3.3", 15, now=now) == 0

    def test_purge_before_cutoff(self, store):
        now = _now()
        store.record_login_attempt("1.1.1.1", "alice", False, attempted_at=now - timedelta(days=2))
        store.record_login_attempt("1.1.1.1", "alice", False, attempted_at=now)

        assert store.purge_login_attempts_before(now - timedelta(days=1)) == 1


class TestRegistrationAttempts:

    def test_counts_every_attempt_inside_the_window(self, store):
        now = _now()
        store.record_registration_attempt("1.1.1.1", "alice", attempted_at=now - timedelta(minutes=5))
        store.record_registration_attempt("1.1.1.1", "bob", attempted_at=now - timedelta(minutes=90))
        store.record_registration_attempt("2.2.2.2", "carol", attempted_at=now - timedelta(minutes=5))

        assert store.count_recent_registration_attempts("1.1.1.1", 60, now=now) == 1
        assert store.count_recent_registration_attempts("1.1.1.1", 120, now=now) == 2

    def test_purge_before_cutoff(self, store):
        now = _now()
        store.record_registration_attempt("1.1.1.1", "alice", attempted_at=now - timedelta(days=2))
        store.record_registration_attempt("1.1.1.1", "bob", attempted_at=now)

        assert store.purge_registration_attempts_before(now - timedelta(days=1)) == 1
