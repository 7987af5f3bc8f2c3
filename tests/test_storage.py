"""
Tests for storage backends and atomic units
"""

import logging
import pytest
from datetime import datetime, timezone

from mobile_money.storage import (
    InMemoryStorage, SQLiteStorage, atomic_unit, create_storage
)
from mobile_money.exceptions import InternalFailure, InsufficientFunds


def _record(record_id, **fields):
    now = datetime.now(timezone.utc).isoformat()
    data = {"id": record_id, "created_at": now, "updated_at": now}
    data.update(fields)
    return data


@pytest.fixture(params=["memory", "sqlite"])
def storage(request, tmp_path):
    """Every backend behaves the same"""
    if request.param == "memory":
        backend = InMemoryStorage()
    else:
        backend = SQLiteStorage(tmp_path / "test.db")
    yield backend
    backend.close()


class TestBasicOperations:
    """Test CRUD operations on both backends"""

    def test_save_and_load(self, storage):
        """Test a saved record loads back unchanged"""
        data = _record("r1", name="Alice", balance="10.00")
        storage.save("accounts", "r1", data)
        assert storage.load("accounts", "r1") == data
        assert storage.exists("accounts", "r1")
        assert storage.count("accounts") == 1

    def test_load_missing(self, storage):
        """Test loading a missing record returns None"""
        assert storage.load("accounts", "nope") is None
        assert not storage.exists("accounts", "nope")

    def test_save_overwrites(self, storage):
        """Test saving an existing id replaces the record"""
        storage.save("accounts", "r1", _record("r1", balance="1.00"))
        storage.save("accounts", "r1", _record("r1", balance="2.00"))
        assert storage.load("accounts", "r1")["balance"] == "2.00"
        assert storage.count("accounts") == 1

    def test_find_keeps_insertion_order(self, storage):
        """Test find filters by field and preserves insertion order"""
        for i in range(5):
            storage.save("txns", f"t{i}", _record(f"t{i}", kind="a" if i % 2 == 0 else "b"))
        found = storage.find("txns", {"kind": "a"})
        assert [r["id"] for r in found] == ["t0", "t2", "t4"]
        assert [r["id"] for r in storage.load_all("txns")] == ["t0", "t1", "t2", "t3", "t4"]

    def test_delete_and_clear(self, storage):
        """Test deleting records and clearing a table"""
        storage.save("accounts", "r1", _record("r1"))
        storage.save("accounts", "r2", _record("r2"))
        assert storage.delete("accounts", "r1")
        assert not storage.delete("accounts", "r1")
        storage.clear_table("accounts")
        assert storage.count("accounts") == 0

    def test_returned_records_are_copies(self, storage):
        """Test mutating a loaded record does not change storage"""
        storage.save("accounts", "r1", _record("r1", balance="5.00"))
        loaded = storage.load("accounts", "r1")
        loaded["balance"] = "999.00"
        assert storage.load("accounts", "r1")["balance"] == "5.00"


class TestAtomicUnits:
    """Test all-or-nothing behavior"""

    def test_commit_makes_writes_visible(self, storage):
        """Test writes inside a committed unit persist"""
        with storage.atomic():
            storage.save("accounts", "a", _record("a", balance="1.00"))
            storage.save("accounts", "b", _record("b", balance="2.00"))
        assert storage.count("accounts") == 2

    def test_rollback_undoes_every_write(self, storage):
        """Test an exception inside a unit restores the previous state"""
        storage.save("accounts", "a", _record("a", balance="100.00"))

        with pytest.raises(RuntimeError):
            with storage.atomic():
                storage.save("accounts", "a", _record("a", balance="0.00"))
                storage.save("accounts", "b", _record("b", balance="100.00"))
                storage.delete("accounts", "a")
                raise RuntimeError("crash mid-unit")

        assert storage.load("accounts", "a")["balance"] == "100.00"
        assert storage.load("accounts", "b") is None

    def test_nested_unit_rolls_back_alone(self, storage):
        """Test a failed inner unit leaves the outer unit's writes intact"""
        with storage.atomic():
            storage.save("accounts", "outer", _record("outer"))
            with pytest.raises(ValueError):
                with storage.atomic():
                    storage.save("accounts", "inner", _record("inner"))
                    raise ValueError("inner failure")
            storage.save("accounts", "after", _record("after"))

        assert storage.exists("accounts", "outer")
        assert storage.exists("accounts", "after")
        assert not storage.exists("accounts", "inner")

    def test_outer_failure_discards_committed_inner_unit(self, storage):
        """Test inner commits are only final when the outer unit commits"""
        with pytest.raises(RuntimeError):
            with storage.atomic():
                with storage.atomic():
                    storage.save("accounts", "inner", _record("inner"))
                raise RuntimeError("outer failure")
        assert not storage.exists("accounts", "inner")

    def test_storage_usable_after_rollback(self, storage):
        """Test a new unit can start after a rollback"""
        with pytest.raises(RuntimeError):
            with storage.atomic():
                storage.save("accounts", "a", _record("a"))
                raise RuntimeError("boom")
        with storage.atomic():
            storage.save("accounts", "b", _record("b"))
        assert storage.exists("accounts", "b")


class TestAtomicUnitHelper:
    """Test mapping of failures to typed errors"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.logger = logging.getLogger("tests.storage")

    def test_unexpected_error_becomes_internal_failure(self):
        """Test a generic exception surfaces as InternalFailure after rollback"""
        with pytest.raises(InternalFailure) as exc_info:
            with atomic_unit(self.storage, "transfer", self.logger):
                self.storage.save("accounts", "a", _record("a"))
                raise RuntimeError("disk full")

        assert exc_info.value.details["operation"] == "transfer"
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert not self.storage.exists("accounts", "a")

    def test_domain_error_propagates_unchanged(self):
        """Test business errors pass through but still roll back"""
        with pytest.raises(InsufficientFunds):
            with atomic_unit(self.storage, "transfer", self.logger):
                self.storage.save("accounts", "a", _record("a"))
                raise InsufficientFunds("a", 0, 10)
        assert not self.storage.exists("accounts", "a")


class TestCreateStorage:
    """Test backend factory"""

    def test_known_backends(self, tmp_path):
        """Test memory and sqlite backends are created by name"""
        assert isinstance(create_storage("memory"), InMemoryStorage)
        sqlite_storage = create_storage("sqlite", tmp_path / "ledger.db")
        assert isinstance(sqlite_storage, SQLiteStorage)
        sqlite_storage.close()

    def test_unknown_backend(self):
        """Test unsupported backend names are rejected"""
        with pytest.raises(ValueError):
            create_storage("postgres")
