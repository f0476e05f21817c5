"""Tests for the file-backed credential store."""

from __future__ import annotations

import os
import stat
import threading
from datetime import datetime, timezone

import pytest

from taskgate.auth.models import TokenRecord
from taskgate.auth.store import CredentialStore, CredentialStoreError


def _record(**overrides) -> TokenRecord:
    defaults = {
        "token": "tok-1",
        "user_id": "42",
        "username": "milkman",
        "full_name": "Milk Man",
        "created_at": datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
        "updated_at": datetime(2026, 2, 3, 4, 5, 6, tzinfo=timezone.utc),
    }
    defaults.update(overrides)
    return TokenRecord(**defaults)


class TestCredentialStore:
    def test_load_when_empty(self, store) -> None:
        assert store.load() is None
        assert not store.exists()

    def test_save_then_load_round_trip(self, store) -> None:
        record = _record()
        store.save(record)
        assert store.load() == record

    def test_round_trip_with_minimal_record(self, store) -> None:
        record = TokenRecord(token="only-token")
        store.save(record)
        assert store.load() == record

    def test_overwrite_replaces(self, store) -> None:
        store.save(_record(token="old"))
        store.save(_record(token="new"))
        assert store.load().token == "new"
        leftovers = [p for p in store.path.parent.iterdir() if p.name != store.path.name]
        assert leftovers == []

    def test_delete_then_load_returns_none(self, store) -> None:
        store.save(_record())
        assert store.delete() is True
        assert store.load() is None

    def test_delete_when_missing(self, store) -> None:
        assert store.delete() is False

    def test_file_permissions(self, store) -> None:
        store.save(_record())
        mode = stat.S_IMODE(os.stat(store.path).st_mode)
        assert mode == 0o600

    def test_corrupt_file_raises(self, store) -> None:
        store.path.parent.mkdir(parents=True, exist_ok=True)
        store.path.write_text("{not json")
        with pytest.raises(CredentialStoreError):
            store.load()

    def test_inspect_hides_token(self, store) -> None:
        store.save(_record(token="very-secret"))
        info = store.inspect()
        assert info["present"] is True
        assert info["username"] == "milkman"
        assert "very-secret" not in str(info)

    def test_inspect_when_empty(self, store) -> None:
        assert store.inspect()["present"] is False

    def test_path_expands_user(self) -> None:
        store = CredentialStore("~/taskgate-token.json")
        assert "~" not in str(store.path)


# ---------------------------------------------------------------------------
# Concurrent access
# ---------------------------------------------------------------------------

class TestConcurrentAccess:
    @pytest.mark.parametrize("separate_reader", [False, True])
    def test_load_never_sees_partial_record(self, store, separate_reader) -> None:
        records = [_record(token=f"tok-{n}", username=f"user-{n}" * 50) for n in range(5)]
        store.save(records[0])
        reader = CredentialStore(store.path) if separate_reader else store
        expected = {(r.token, r.username) for r in records}
        seen: set[tuple[str, str]] = set()
        errors: list[BaseException] = []
        stop = threading.Event()

        def write() -> None:
            try:
                for _ in range(40):
                    for record in records:
                        store.save(record)
            except BaseException as exc:
                errors.append(exc)
            finally:
                stop.set()

        def read() -> None:
            try:
                while not stop.is_set():
                    loaded = reader.load()
                    assert loaded is not None
                    seen.add((loaded.token, loaded.username))
            except BaseException as exc:
                errors.append(exc)

        threads = [threading.Thread(target=write)] + [
            threading.Thread(target=read) for _ in range(3)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        assert errors == []
        assert seen <= expected
        assert reader.load() == records[-1]
        leftovers = [p for p in store.path.parent.iterdir() if p.name.endswith(".tmp")]
        assert leftovers == []
