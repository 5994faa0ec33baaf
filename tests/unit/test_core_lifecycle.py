"""Unit tests for reserve / commit / fetch / delete."""

import base64
import re
from datetime import datetime, timedelta, timezone

import pytest

from conftest import FAST_ITERATIONS, BlobSession, FakeBlobBackend, ScriptedSession, make_response
from vaultdrop.core.exceptions import (
    InvalidInputError,
    ObjectNotFoundError,
    RecordExistsError,
    VerificationFailedError,
    VerificationRequiredError,
)
from vaultdrop.core.lifecycle import ObjectLifecycle
from vaultdrop.database.stores import MemoryRecordStore
from vaultdrop.network.transfer import TransferClient
from vaultdrop.security.crypto import decrypt
from vaultdrop.security.kdf import derive_key, derive_verifier

NOW = datetime(2024, 6, 1, 9, 30, 0, tzinfo=timezone.utc)
SALT = b"\x07" * 16
NONCE = b"\x08" * 12


@pytest.fixture
def store():
    return MemoryRecordStore()


@pytest.fixture
def lifecycle(store, backend):
    return ObjectLifecycle(store, backend, clock=lambda: NOW)


def commit(lifecycle, owner="alice", verifier="dmVyaWZpZXI=", **overrides):
    reserved = lifecycle.reserve(owner, "report.pdf", 1024, "application/pdf")
    fields = dict(
        size=1024,
        mime_type="application/pdf",
        salt=SALT,
        nonce=NONCE,
        display_name="report.pdf",
        key_verifier=verifier,
    )
    fields.update(overrides)
    return lifecycle.commit(owner, reserved.object_name, **fields)


# ==============================================================================
# reserve
# ==============================================================================

def test_reserve_issues_scoped_write_capability(lifecycle, backend, store):
    reserved = lifecycle.reserve("alice", "report.pdf", 1024, "application/pdf")

    assert re.fullmatch(r"alice/\d+-[0-9a-f]{12}", reserved.object_name)
    assert reserved.object_name.startswith(f"alice/{int(NOW.timestamp() * 1000)}-")
    assert "sp=cw" in reserved.upload_url
    assert reserved.expires_at == NOW + timedelta(minutes=10)
    assert backend.issued == [(reserved.object_name, "cw", timedelta(minutes=10))]
    # nothing is persisted until commit
    assert store.find_by_owner("alice") == []


def test_reserve_names_never_collide(lifecycle):
    names = {lifecycle.reserve("alice", "a", 1, "text/plain").object_name for _ in range(50)}
    assert len(names) == 50


@pytest.mark.parametrize(
    "name, size, mime",
    [("", 1, "text/plain"), ("a.txt", None, "text/plain"), ("a.txt", 1, ""), ("  ", 1, "text/plain")],
)
def test_reserve_requires_fields(lifecycle, backend, name, size, mime):
    with pytest.raises(InvalidInputError, match="filename, size, mimeType required"):
        lifecycle.reserve("alice", name, size, mime)
    assert backend.issued == []


@pytest.mark.parametrize("size", [-1, "10", 1.5, True])
def test_reserve_rejects_bad_size(lifecycle, size):
    with pytest.raises(InvalidInputError):
        lifecycle.reserve("alice", "a.txt", size, "text/plain")


def test_reserve_allows_empty_object(lifecycle):
    assert lifecycle.reserve("alice", "empty.txt", 0, "text/plain").object_name


def test_reserve_requires_owner(lifecycle):
    with pytest.raises(InvalidInputError, match="owner"):
        lifecycle.reserve("", "a.txt", 1, "text/plain")


def test_custom_ttls(store, backend):
    lc = ObjectLifecycle(store, backend, upload_ttl=timedelta(minutes=2), download_ttl=timedelta(minutes=5),
                         clock=lambda: NOW)
    assert lc.reserve("alice", "a", 1, "text/plain").expires_at == NOW + timedelta(minutes=2)


# ==============================================================================
# commit
# ==============================================================================

def test_commit_persists_record(lifecycle, store):
    record = commit(lifecycle)
    assert store.get_by_id("alice", record.record_id) == record
    assert record.salt == SALT
    assert record.nonce == NONCE
    assert record.created_at == NOW
    assert record.key_verifier == "dmVyaWZpZXI="


def test_commit_accepts_base64_salt_and_nonce(lifecycle):
    record = commit(
        lifecycle,
        salt=base64.b64encode(SALT).decode(),
        nonce=base64.b64encode(NONCE).decode(),
    )
    assert record.salt == SALT
    assert record.nonce == NONCE


@pytest.mark.parametrize("field", ["mime_type", "salt", "nonce", "display_name", "size"])
def test_commit_missing_fields(lifecycle, field):
    with pytest.raises(InvalidInputError, match="missing fields"):
        commit(lifecycle, **{field: None})


@pytest.mark.parametrize(
    "field, value",
    [("salt", b"\x07" * 15), ("salt", b"\x07" * 17), ("nonce", b"\x08" * 11), ("nonce", b"\x08" * 16)],
)
def test_commit_wrong_lengths(lifecycle, field, value):
    with pytest.raises(InvalidInputError, match=field):
        commit(lifecycle, **{field: value})


def test_commit_twice_is_rejected(lifecycle):
    reserved = lifecycle.reserve("alice", "a.txt", 1, "text/plain")
    lifecycle.commit("alice", reserved.object_name, 1, "text/plain", SALT, NONCE, "a.txt")
    with pytest.raises(RecordExistsError):
        lifecycle.commit("alice", reserved.object_name, 1, "text/plain", SALT, NONCE, "a.txt")


def test_commit_cannot_claim_another_owners_object(lifecycle):
    reserved = lifecycle.reserve("bob", "a.txt", 1, "text/plain")
    with pytest.raises(InvalidInputError, match="owner"):
        lifecycle.commit("alice", reserved.object_name, 1, "text/plain", SALT, NONCE, "a.txt")


def test_commit_without_verifier_creates_legacy_record(lifecycle):
    assert not commit(lifecycle, verifier=None).has_verifier
    assert not commit(lifecycle, verifier="").has_verifier


# ==============================================================================
# fetch / list
# ==============================================================================

def test_fetch_issues_read_capability(lifecycle, backend):
    record = commit(lifecycle)
    grant = lifecycle.fetch("alice", record.record_id)

    assert grant.record == record
    assert "sp=r" in grant.download_url
    assert grant.expires_at == NOW + timedelta(minutes=30)
    assert backend.issued[-1] == (record.object_name, "r", timedelta(minutes=30))


def test_fetch_unknown_record(lifecycle):
    with pytest.raises(ObjectNotFoundError, match="File not found: nope"):
        lifecycle.fetch("alice", "nope")


def test_fetch_other_owners_record_is_not_found(lifecycle, backend):
    record = commit(lifecycle, owner="alice")
    issued = len(backend.issued)
    with pytest.raises(ObjectNotFoundError):
        lifecycle.fetch("bob", record.record_id)
    assert len(backend.issued) == issued


def test_list_is_per_owner(lifecycle):
    mine = commit(lifecycle, owner="alice")
    commit(lifecycle, owner="bob")
    assert lifecycle.list("alice") == [mine]


# ==============================================================================
# delete
# ==============================================================================

def test_delete_with_matching_verifier(lifecycle, backend, store):
    record = commit(lifecycle)
    assert lifecycle.delete("alice", record.record_id, "dmVyaWZpZXI=") is True
    assert store.get_by_id("alice", record.record_id) is None
    assert backend.deleted == [record.object_name]


def test_delete_without_verifier_is_required(lifecycle, backend, store):
    record = commit(lifecycle)
    with pytest.raises(VerificationRequiredError, match="Encryption key required"):
        lifecycle.delete("alice", record.record_id)
    assert store.get_by_id("alice", record.record_id) is not None
    assert backend.deleted == []


def test_delete_with_wrong_verifier_fails(lifecycle, backend, store):
    record = commit(lifecycle)
    with pytest.raises(VerificationFailedError, match="Invalid encryption key"):
        lifecycle.delete("alice", record.record_id, "d3Jvbmc=")
    assert store.get_by_id("alice", record.record_id) is not None
    assert backend.deleted == []


def test_delete_is_idempotent(lifecycle):
    record = commit(lifecycle)
    assert lifecycle.delete("alice", record.record_id, "dmVyaWZpZXI=") is True
    assert lifecycle.delete("alice", record.record_id, "dmVyaWZpZXI=") is False
    assert lifecycle.delete("alice", "never-existed") is False


def test_delete_legacy_record_needs_no_verifier(lifecycle, store, caplog):
    record = commit(lifecycle, verifier=None)
    with caplog.at_level("WARNING"):
        assert lifecycle.delete("alice", record.record_id) is True
    assert "without key verification" in caplog.text
    assert store.get_by_id("alice", record.record_id) is None


def test_delete_other_owners_record_is_noop(lifecycle, store):
    record = commit(lifecycle, owner="alice")
    assert lifecycle.delete("bob", record.record_id, "dmVyaWZpZXI=") is False
    assert store.get_by_id("alice", record.record_id) is not None


def test_backend_failure_still_removes_metadata(store):
    backend = FakeBlobBackend(fail_delete=True)
    lc = ObjectLifecycle(store, backend, clock=lambda: NOW)
    record = commit(lc)
    assert lc.delete("alice", record.record_id, "dmVyaWZpZXI=") is True
    assert store.get_by_id("alice", record.record_id) is None


def test_real_verifier_gate(lifecycle):
    """A verifier derived from the right passphrase opens the gate; a wrong one does not."""
    right = derive_verifier("correct horse", SALT, iterations=FAST_ITERATIONS)
    wrong = derive_verifier("battery staple", SALT, iterations=FAST_ITERATIONS)
    record = commit(lifecycle, verifier=right)

    with pytest.raises(VerificationFailedError):
        lifecycle.delete("alice", record.record_id, wrong)
    assert lifecycle.delete("alice", record.record_id, right) is True


def test_committed_but_never_uploaded_object_fails_to_decrypt(lifecycle, backend, no_sleep):
    """Commit without a push, then fetch and pull: an empty body is an input error, not a crash."""
    record = commit(lifecycle)
    grant = lifecycle.fetch("alice", record.record_id)
    assert record.object_name not in backend.blobs

    session = ScriptedSession([make_response(200, b"")])
    pulled = TransferClient(session=session, sleep=no_sleep).pull(grant.download_url)
    assert session.calls[0]["url"] == grant.download_url
    assert pulled.data == b""

    key = derive_key("passphrase", grant.record.salt, iterations=FAST_ITERATIONS)
    with pytest.raises(InvalidInputError, match="No data to decrypt"):
        decrypt(key, grant.record.nonce, grant.record.salt, pulled.data)


def test_committed_but_never_uploaded_object_is_missing_in_storage(lifecycle, backend, no_sleep):
    record = commit(lifecycle)
    grant = lifecycle.fetch("alice", record.record_id)
    with pytest.raises(ObjectNotFoundError):
        TransferClient(session=BlobSession(backend), sleep=no_sleep).pull(grant.download_url)


def test_commit_rejects_names_nested_under_another_owner(lifecycle, backend, store):
    """Owner ids are opaque; a nested name belongs to the longer owner id only."""
    victim = commit(lifecycle, owner="team/bob", verifier=None)
    backend.blobs[victim.object_name] = b"ciphertext"

    with pytest.raises(InvalidInputError, match="owner"):
        lifecycle.commit("team", victim.object_name, 1, "text/plain", SALT, NONCE, "stolen.txt")
    assert store.find_by_owner("team") == []
    assert backend.blobs[victim.object_name] == b"ciphertext"


@pytest.mark.parametrize(
    "object_name",
    ["alice/", "alice/notes.txt", "alice/123-ABCDEF012345", "alice/123-abcdef01234", "alice/123-abcdef012345/x"],
)
def test_commit_rejects_names_not_issued_by_reserve(lifecycle, object_name):
    with pytest.raises(InvalidInputError, match="owner"):
        lifecycle.commit("alice", object_name, 1, "text/plain", SALT, NONCE, "a.txt")


def test_get_returns_only_the_callers_record(lifecycle, backend):
    record = commit(lifecycle)
    issued = len(backend.issued)
    assert lifecycle.get("alice", record.record_id) == record
    assert lifecycle.get("bob", record.record_id) is None
    assert lifecycle.get("alice", "nope") is None
    assert len(backend.issued) == issued
