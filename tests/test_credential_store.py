"""Tests for credential store backends and the Fernet decryptor."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from cloudfleet.credentials.decryptor import (
    Decryptor,
    FernetDecryptor,
    build_decryptor,
    generate_key,
)
from cloudfleet.credentials.store import (
    CredentialStore,
    CredentialStoreError,
    FileCredentialStore,
    InMemoryCredentialStore,
    build_store,
)
from cloudfleet.errors import DecryptionError
from cloudfleet.models import Provider, StoredCredential

# --- Helpers ---


def _write_store(path: Path, entries: list[dict]) -> Path:
    path.write_text(yaml.safe_dump({"credentials": entries}), encoding="utf-8")
    return path


ENTRY = {
    "credential_id": "cred-gcp",
    "tenant_id": "team-a",
    "provider": "gcp",
    "encrypted_data": "gAAAAA",
}


class TestInMemoryStore:
    def test_protocol(self):
        assert isinstance(InMemoryCredentialStore(), CredentialStore)

    def test_get_and_add(self):
        store = InMemoryCredentialStore()
        assert store.get_credential_by_id("team-a", "cred-gcp") is None
        store.add(StoredCredential(**ENTRY))
        found = store.get_credential_by_id("team-a", "cred-gcp")
        assert found is not None
        assert found.provider == Provider.GCP

    def test_returns_real_owner(self):
        store = InMemoryCredentialStore([StoredCredential(**ENTRY)])
        found = store.get_credential_by_id("team-b", "cred-gcp")
        assert found.tenant_id == "team-a"


class TestFileStore:
    def test_reads_entries(self, tmp_path):
        store = FileCredentialStore(_write_store(tmp_path / "creds.yaml", [ENTRY]))
        found = store.get_credential_by_id("team-a", "cred-gcp")
        assert found.encrypted_data == "gAAAAA"

    def test_unknown_id(self, tmp_path):
        store = FileCredentialStore(_write_store(tmp_path / "creds.yaml", [ENTRY]))
        assert store.get_credential_by_id("team-a", "cred-x") is None

    def test_rereads_on_lookup(self, tmp_path):
        path = _write_store(tmp_path / "creds.yaml", [])
        store = FileCredentialStore(path)
        assert store.get_credential_by_id("team-a", "cred-gcp") is None
        _write_store(path, [ENTRY])
        assert store.get_credential_by_id("team-a", "cred-gcp") is not None

    def test_missing_file(self, tmp_path):
        store = FileCredentialStore(tmp_path / "missing.yaml")
        with pytest.raises(CredentialStoreError, match="not found"):
            store.get_credential_by_id("team-a", "cred-gcp")

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "creds.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(CredentialStoreError, match="mapping"):
            FileCredentialStore(path).get_credential_by_id("team-a", "x")

    def test_credentials_not_a_list(self, tmp_path):
        path = tmp_path / "creds.yaml"
        path.write_text("credentials: {a: 1}\n", encoding="utf-8")
        with pytest.raises(CredentialStoreError, match="must be a list"):
            FileCredentialStore(path).get_credential_by_id("team-a", "x")


class TestBuildStore:
    def test_path_means_file(self, tmp_path):
        store = build_store({"path": str(tmp_path / "c.yaml")})
        assert isinstance(store, FileCredentialStore)

    def test_default_is_memory(self):
        store = build_store({"credentials": [ENTRY]})
        assert isinstance(store, InMemoryCredentialStore)
        assert store.get_credential_by_id("team-a", "cred-gcp") is not None

    def test_file_requires_path(self):
        with pytest.raises(CredentialStoreError, match="requires 'path'"):
            build_store({"type": "file"})

    def test_unknown_type(self):
        with pytest.raises(CredentialStoreError, match="Unknown credential store type"):
            build_store({"type": "vault"})


class TestFernetDecryptor:
    def test_protocol(self):
        assert isinstance(FernetDecryptor(generate_key()), Decryptor)

    def test_roundtrip(self):
        dec = FernetDecryptor(generate_key())
        assert dec.decrypt(dec.encrypt(b'{"a": 1}')) == b'{"a": 1}'

    def test_invalid_key(self):
        with pytest.raises(DecryptionError, match="Invalid Fernet key"):
            FernetDecryptor("not-a-key")

    def test_garbage_token(self):
        with pytest.raises(DecryptionError, match="could not be decrypted"):
            FernetDecryptor(generate_key()).decrypt("garbage")


class TestBuildDecryptor:
    def test_inline_key(self):
        assert isinstance(build_decryptor({"key": generate_key()}), FernetDecryptor)

    def test_default_env(self, monkeypatch):
        monkeypatch.setenv("CLOUDFLEET_ENCRYPTION_KEY", generate_key())
        assert isinstance(build_decryptor({}), FernetDecryptor)

    def test_custom_env(self, monkeypatch):
        monkeypatch.setenv("MY_KEY", generate_key())
        assert isinstance(build_decryptor({"key_env": "MY_KEY"}), FernetDecryptor)

    def test_no_key(self, monkeypatch):
        monkeypatch.delenv("CLOUDFLEET_ENCRYPTION_KEY", raising=False)
        with pytest.raises(DecryptionError, match="No encryption key"):
            build_decryptor({})
