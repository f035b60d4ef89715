"""
Tests for the refresh token ledger.
"""
from datetime import timedelta

import pytest
from sqlalchemy.pool import StaticPool

from token_lifecycle.database import Database
from token_lifecycle.errors import UnavailableError
from token_lifecycle.ledger import RefreshTokenLedger


@pytest.fixture
def expires_at(clock):
    return clock.utcnow() + timedelta(days=7)


def test_persist_and_find_active(ledger, test_user, expires_at):
    """Test that a persisted token is found for its owner."""
    record = ledger.persist(test_user.id, "token-a", expires_at)

    found = ledger.find_active(test_user.id, "token-a")

    assert found == record
    assert found.owner_id == test_user.id
    assert found.expires_at == expires_at
    assert len(found.family_id) == 32


def test_find_active_requires_matching_owner(ledger, test_user, test_admin, expires_at):
    ledger.persist(test_user.id, "token-a", expires_at)

    assert ledger.find_active(test_admin.id, "token-a") is None
    assert ledger.find_active(test_user.id, "token-b") is None


def test_expired_record_is_absent_before_reaping(ledger, test_user, clock):
    """Test that expiry is applied at read time, not by the reaper."""
    ledger.persist(test_user.id, "token-a", clock.utcnow() + timedelta(seconds=60))

    clock.advance(59)
    assert ledger.find_active(test_user.id, "token-a") is not None

    clock.advance(1)
    assert ledger.find_active(test_user.id, "token-a") is None
    assert ledger.count_active(test_user.id) == 0


def test_reap_expired_only_removes_expired_records(ledger, test_user, clock, expires_at):
    ledger.persist(test_user.id, "short-lived", clock.utcnow() + timedelta(seconds=10))
    ledger.persist(test_user.id, "long-lived", expires_at)
    clock.advance(10)

    assert ledger.reap_expired() == 1
    assert ledger.reap_expired() == 0
    assert ledger.find_active(test_user.id, "long-lived") is not None
    # The row is physically gone, so a revoke finds nothing
    assert ledger.revoke("short-lived") == 0


def test_revoke_is_idempotent(ledger, test_user, expires_at):
    ledger.persist(test_user.id, "token-a", expires_at)

    assert ledger.revoke("token-a") == 1
    assert ledger.revoke("token-a") == 0
    assert ledger.revoke("never-issued") == 0
    assert ledger.find_active(test_user.id, "token-a") is None


def test_revoke_all_only_touches_one_owner(ledger, test_user, test_admin, expires_at):
    ledger.persist(test_user.id, "user-1", expires_at)
    ledger.persist(test_user.id, "user-2", expires_at)
    ledger.persist(test_admin.id, "admin-1", expires_at)

    assert ledger.revoke_all(test_user.id) == 2

    assert ledger.count_active(test_user.id) == 0
    assert ledger.find_active(test_admin.id, "admin-1") is not None


def test_rotate_replaces_token_and_keeps_family(ledger, test_user, expires_at):
    """Test that rotation deletes the old record and installs the new one."""
    old = ledger.persist(test_user.id, "old", expires_at)

    new = ledger.rotate(test_user.id, "old", "new", expires_at + timedelta(hours=1), family_id=old.family_id)

    assert new is not None
    assert new.token == "new"
    assert new.family_id == old.family_id
    assert ledger.find_active(test_user.id, "old") is None
    assert ledger.find_active(test_user.id, "new") == new
    assert ledger.count_active(test_user.id) == 1


def test_rotate_same_token_twice_fails_second_time(ledger, test_user, expires_at):
    ledger.persist(test_user.id, "old", expires_at)

    assert ledger.rotate(test_user.id, "old", "new-1", expires_at) is not None
    assert ledger.rotate(test_user.id, "old", "new-2", expires_at) is None

    assert ledger.find_active(test_user.id, "new-2") is None
    assert ledger.count_active(test_user.id) == 1


def test_rotate_revoked_token_installs_nothing(ledger, test_user, expires_at):
    ledger.persist(test_user.id, "old", expires_at)
    ledger.revoke("old")

    assert ledger.rotate(test_user.id, "old", "new", expires_at) is None
    assert ledger.count_active(test_user.id) == 0


def test_rotate_expired_token_installs_nothing(ledger, test_user, clock):
    ledger.persist(test_user.id, "old", clock.utcnow() + timedelta(seconds=30))
    clock.advance(30)

    assert ledger.rotate(test_user.id, "old", "new", clock.utcnow() + timedelta(days=7)) is None
    assert ledger.find_active(test_user.id, "new") is None


def test_rotate_with_wrong_owner_installs_nothing(ledger, test_user, test_admin, expires_at):
    ledger.persist(test_user.id, "old", expires_at)

    assert ledger.rotate(test_admin.id, "old", "new", expires_at) is None
    assert ledger.find_active(test_user.id, "old") is not None


def test_rotation_locks_are_released(ledger, test_user, expires_at):
    ledger.persist(test_user.id, "old", expires_at)

    ledger.rotate(test_user.id, "old", "new", expires_at)
    ledger.rotate(test_user.id, "old", "newer", expires_at)

    assert len(ledger._locks) == 0


def test_rotate_times_out_while_token_is_locked(ledger, test_user, expires_at):
    """Test that a contended rotation gives up with UnavailableError."""
    ledger.persist(test_user.id, "old", expires_at)
    ledger.timeout_seconds = 0.05

    with ledger._locks.hold("old", 1):
        with pytest.raises(UnavailableError):
            ledger.rotate(test_user.id, "old", "new", expires_at)

    assert len(ledger._locks) == 0
    assert ledger.find_active(test_user.id, "old") is not None


def test_storage_failure_maps_to_unavailable():
    db = Database("sqlite://", echo=False, timeout_seconds=1, poolclass=StaticPool)
    ledger = RefreshTokenLedger(db)

    with pytest.raises(UnavailableError):
        ledger.find_active(1, "token")

    db.dispose()
