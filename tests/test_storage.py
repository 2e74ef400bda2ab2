"""
Tests for the in-memory document store and its atomic blocks
"""

import pytest
from datetime import datetime, timezone

from finledger.errors import NotFoundCondition
from finledger.storage import InMemoryStorage


# Test data
test_data = {
    "id": "test_001",
    "name": "Test Record",
    "amount": "100.50",
    "createdAt": datetime.now(timezone.utc).isoformat()
}


class TestInMemoryStorage:
    """Test basic document store operations"""

    def test_basic_operations(self):
        """Test basic CRUD operations with InMemoryStorage"""
        storage = InMemoryStorage()

        storage.save("records", "record_1", test_data)
        assert storage.load("records", "record_1") == test_data
        assert storage.exists("records", "record_1")
        assert not storage.exists("records", "non_existent")
        assert storage.load("records", "non_existent") is None

        storage.save("records", "record_2", {"id": "record_2", "name": "Other"})
        assert len(storage.load_all("records")) == 2
        assert storage.count("records") == 2

        results = storage.find("records", {"name": "Other"})
        assert [r["id"] for r in results] == ["record_2"]

        assert storage.delete("records", "record_1")
        assert not storage.delete("records", "record_1")
        assert storage.count("records") == 1

        storage.clear_table("records")
        assert storage.count("records") == 0

    def test_find_requires_all_filters(self):
        """Test documents missing a filter key do not match"""
        storage = InMemoryStorage()
        storage.save("tx", "a", {"id": "a", "accountId": "acc_1", "loanId": "loan_1"})
        storage.save("tx", "b", {"id": "b", "accountId": "acc_1"})
        assert [r["id"] for r in storage.find("tx", {"loanId": "loan_1"})] == ["a"]
        assert len(storage.find("tx", {"accountId": "acc_1"})) == 2

    def test_update_merges(self):
        """Test update merges into an existing document"""
        storage = InMemoryStorage()
        storage.save("records", "record_1", test_data)
        merged = storage.update("records", "record_1", {"name": "Renamed"})
        assert merged["name"] == "Renamed"
        assert merged["amount"] == "100.50"

    def test_update_missing(self):
        """Test updating a missing document raises"""
        with pytest.raises(NotFoundCondition):
            InMemoryStorage().update("records", "nope", {"name": "x"})

    def test_copies_are_isolated(self):
        """Test callers never share state with the store"""
        storage = InMemoryStorage()
        document = {"id": "r", "nested": {"value": 1}}
        storage.save("records", "r", document)
        document["nested"]["value"] = 2

        loaded = storage.load("records", "r")
        assert loaded["nested"]["value"] == 1
        loaded["nested"]["value"] = 3
        assert storage.load("records", "r")["nested"]["value"] == 1


class TestAtomic:
    """Test atomic blocks"""

    def test_commit(self):
        """Test writes inside a committed block persist"""
        storage = InMemoryStorage()
        with storage.atomic():
            storage.save("a", "1", {"id": "1"})
            storage.save("b", "2", {"id": "2"})
        assert storage.exists("a", "1") and storage.exists("b", "2")

    def test_rollback_on_error(self):
        """Test an error restores the state before the block"""
        storage = InMemoryStorage()
        storage.save("a", "1", {"id": "1", "v": 1})

        with pytest.raises(RuntimeError):
            with storage.atomic():
                storage.save("a", "1", {"id": "1", "v": 2})
                storage.save("a", "2", {"id": "2"})
                raise RuntimeError("boom")

        assert storage.load("a", "1")["v"] == 1
        assert not storage.exists("a", "2")

    def test_nested_blocks_roll_back_together(self):
        """Test an inner block's writes are undone by an outer failure"""
        storage = InMemoryStorage()
        with pytest.raises(RuntimeError):
            with storage.atomic():
                with storage.atomic():
                    storage.save("a", "1", {"id": "1"})
                raise RuntimeError("outer failure")
        assert not storage.exists("a", "1")


class TestSubscriptions:
    """Test snapshot subscriptions"""

    def test_snapshot_after_each_write(self):
        """Test subscribers receive the full table after writes"""
        storage = InMemoryStorage()
        snapshots = []
        storage.subscribe("a", lambda table, docs: snapshots.append((table, sorted(d["id"] for d in docs))))

        storage.save("a", "1", {"id": "1"})
        storage.save("a", "2", {"id": "2"})
        storage.delete("a", "1")
        storage.save("other", "x", {"id": "x"})

        assert snapshots == [("a", ["1"]), ("a", ["1", "2"]), ("a", ["2"])]

    def test_atomic_block_notifies_once(self):
        """Test notifications wait for the outermost commit"""
        storage = InMemoryStorage()
        snapshots = []
        storage.subscribe("a", lambda table, docs: snapshots.append(len(docs)))

        with storage.atomic():
            storage.save("a", "1", {"id": "1"})
            storage.save("a", "2", {"id": "2"})
            assert snapshots == []
        assert snapshots == [2]

    def test_rollback_does_not_notify(self):
        """Test rolled back writes are never announced"""
        storage = InMemoryStorage()
        snapshots = []
        storage.subscribe("a", lambda table, docs: snapshots.append(len(docs)))

        with pytest.raises(ValueError):
            with storage.atomic():
                storage.save("a", "1", {"id": "1"})
                raise ValueError("nope")
        assert snapshots == []

    def test_unsubscribe(self):
        """Test the returned callable removes the subscription"""
        storage = InMemoryStorage()
        snapshots = []
        unsubscribe = storage.subscribe("a", lambda table, docs: snapshots.append(len(docs)))
        storage.save("a", "1", {"id": "1"})
        unsubscribe()
        storage.save("a", "2", {"id": "2"})
        assert snapshots == [1]

    def test_failing_subscriber_does_not_break_writes(self):
        """Test a subscriber exception is logged, not raised"""
        storage = InMemoryStorage()
        received = []

        def broken(table, docs):
            raise RuntimeError("subscriber bug")

        storage.subscribe("a", broken)
        storage.subscribe("a", lambda table, docs: received.append(len(docs)))
        storage.save("a", "1", {"id": "1"})

        assert storage.exists("a", "1")
        assert received == [1]
