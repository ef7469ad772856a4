"""Tests for the local store."""

from datetime import date
from decimal import Decimal

import pytest

from budgetsync.domain.constants import DEFAULT_DATASET_ID
from budgetsync.domain.entities import Collection, StorageMode, Transaction, TransactionType
from budgetsync.domain.errors import NotFoundError, ValidationError
from budgetsync.store.events import StoreEvent
from budgetsync.store.local_store import DOCUMENT_KEY, LocalStore


def make_txn(txn_id="t1", amount="10.00", description="Coffee", category_id="other", **kwargs):
    return Transaction(
        id=txn_id,
        date=kwargs.pop("txn_date", date(2024, 1, 5)),
        type=kwargs.pop("type", TransactionType.EXPENSE),
        amount=Decimal(amount),
        description=description,
        category_id=category_id,
        **kwargs,
    )


class TestLifecycle:
    """Loading and persisting the local document."""

    def test_fresh_store_has_default_dataset(self, store):
        """A first start creates the default dataset with default categories."""
        assert store.active_id == DEFAULT_DATASET_ID
        assert store.dataset_ids == [DEFAULT_DATASET_ID]
        names = [c.name for c in store.get_active().categories]
        assert names == ["Rent", "Groceries", "Transport", "Fun", "Bills", "Other"]

    def test_data_survives_reload(self, memory_storage):
        """Records written in local mode are persisted and reloaded."""
        first = LocalStore(memory_storage)
        first.load()
        first.insert_record(Collection.TRANSACTIONS, make_txn())

        second = LocalStore(memory_storage)
        second.load()

        assert second.get_active().transactions == [make_txn()]

    def test_corrupt_document_is_quarantined(self, memory_storage):
        """An unreadable document is kept aside and replaced by a fresh one."""
        memory_storage.save_document(DOCUMENT_KEY, "{not json")

        store = LocalStore(memory_storage)
        store.load()

        quarantined = memory_storage.list_quarantined(DOCUMENT_KEY)
        assert len(quarantined) == 1
        assert quarantined[0].payload == "{not json"
        assert store.active_id == DEFAULT_DATASET_ID
        assert store.get_active().transactions == []

    def test_load_repairs_dangling_categories(self, memory_storage):
        """Transactions pointing at a missing category move to Other on load."""
        first = LocalStore(memory_storage)
        first.load()
        first.insert_record(Collection.TRANSACTIONS, make_txn(category_id="gone"))

        second = LocalStore(memory_storage)
        second.load()

        assert second.get_active().transactions[0].category_id == "other"

    def test_remote_mode_does_not_persist(self, memory_storage):
        """In remote mode the store is only a cache."""
        store = LocalStore(memory_storage, mode=StorageMode.REMOTE)
        store.load()
        store.insert_record(Collection.TRANSACTIONS, make_txn())

        assert memory_storage.load_document(DOCUMENT_KEY) is None


class TestActiveDataset:
    """Dataset-level accessors."""

    def test_get_active_returns_a_copy(self, store):
        """Mutating the returned data never changes the store."""
        data = store.get_active()
        data.transactions.append(make_txn())

        assert store.get_active().transactions == []

    def test_set_active_merges_partial_update(self, store):
        """Only the given collections are replaced."""
        categories = store.get_active().categories
        store.set_active(transactions=[make_txn()])

        data = store.get_active()
        assert data.transactions == [make_txn()]
        assert data.categories == categories

    def test_set_active_rejects_unknown_field(self, store):
        """Unknown collection names are rejected."""
        with pytest.raises(ValidationError):
            store.set_active(accounts=[])

    def test_switch_isolates_datasets(self, store):
        """Records of one dataset are invisible in another."""
        store.insert_record(Collection.TRANSACTIONS, make_txn())
        other = store.create_dataset("Holiday")

        store.switch_active(other.id)

        assert store.active_id == other.id
        assert store.get_active().transactions == []
        store.switch_active(DEFAULT_DATASET_ID)
        assert len(store.get_active().transactions) == 1

    def test_switch_to_unknown_dataset_initializes_defaults(self, store):
        """An unknown dataset is registered with default data."""
        store.switch_active("p_new", "New")

        assert store.get_dataset_info("p_new").name == "New"
        assert len(store.get_active().categories) == 6

    def test_rename_dataset(self, store):
        """Datasets can be renamed but not to an empty name."""
        renamed = store.rename_dataset(DEFAULT_DATASET_ID, "Home")

        assert renamed.name == "Home"
        assert store.get_dataset_info(DEFAULT_DATASET_ID).name == "Home"
        with pytest.raises(ValidationError):
            store.rename_dataset(DEFAULT_DATASET_ID, "  ")
        with pytest.raises(NotFoundError):
            store.rename_dataset("missing", "x")

    def test_drop_cache_of_inactive_dataset(self, store):
        """Dropping a cache forgets the dataset's collections."""
        other = store.create_dataset("Holiday")
        assert store.has_cached_data(other.id)

        store.drop_cache(other.id)

        assert not store.has_cached_data(other.id)


class TestRecords:
    """Record-level helpers."""

    def test_replace_record_with_new_id(self, store):
        """A record can be swapped for a version with another ID in place."""
        store.insert_record(Collection.TRANSACTIONS, make_txn("t1"))
        store.insert_record(Collection.TRANSACTIONS, make_txn("t2", description="Tea"))

        store.replace_record(Collection.TRANSACTIONS, make_txn("r9"), previous_id="t1")

        assert [t.id for t in store.get_active().transactions] == ["r9", "t2"]

    def test_remove_record_reports_position(self, store):
        """Removal returns where the record was, for exact reinsertion."""
        store.insert_record(Collection.TRANSACTIONS, make_txn("t1"))
        store.insert_record(Collection.TRANSACTIONS, make_txn("t2", description="Tea"))

        index, record = store.remove_record(Collection.TRANSACTIONS, "t2")

        assert index == 1
        assert record.id == "t2"
        assert store.remove_record(Collection.TRANSACTIONS, "t2") is None

    def test_remove_batch(self, store):
        """Every record tagged with the batch goes, and the undo pointer is cleared."""
        store.insert_record(Collection.TRANSACTIONS, make_txn("keep"))
        batch = [make_txn(f"b{i}", description=f"Row {i}", import_batch_id="batch_1") for i in range(3)]
        store.add_import_batch(batch, "batch_1")

        removed = store.remove_batch("batch_1")

        data = store.get_active()
        assert len(removed) == 3
        assert [t.id for t in data.transactions] == ["keep"]
        assert data.last_import_batch_ids == []

    def test_remove_batch_restores_previous_pointer(self, store):
        """Removing a batch can put back the undo pointer it replaced."""
        store.add_import_batch([make_txn("old", import_batch_id="batch_1")], "batch_1")
        store.add_import_batch([make_txn("new", description="Tea", import_batch_id="batch_2")], "batch_2")

        store.remove_batch("batch_2", restore_ids=["old"])

        data = store.get_active()
        assert [t.id for t in data.transactions] == ["old"]
        assert data.last_import_batch_ids == ["old"]


class TestEvents:
    """Change notifications."""

    def test_subscribers_see_changes(self, store):
        """Every mutation emits CHANGED for the active dataset."""
        seen = []
        store.events.subscribe(StoreEvent.CHANGED, seen.append)

        store.insert_record(Collection.TRANSACTIONS, make_txn())

        assert len(seen) == 1
        assert seen[0].dataset_id == store.active_id
        assert seen[0].collections == ("transactions",)

    def test_switch_emits_switched_then_changed(self, store):
        """A switch is announced before the data change it implies."""
        order = []
        store.events.subscribe(StoreEvent.SWITCHED, lambda change: order.append("switched"))
        store.events.subscribe(StoreEvent.CHANGED, lambda change: order.append("changed"))

        store.switch_active("p_other", "Other")

        assert order == ["switched", "changed"]

    def test_unsubscribe_stops_delivery(self, store):
        """An unsubscribed listener receives nothing more."""
        seen = []
        subscription = store.events.subscribe(StoreEvent.CHANGED, seen.append)
        subscription.unsubscribe()
        subscription.unsubscribe()

        store.insert_record(Collection.TRANSACTIONS, make_txn())

        assert seen == []
        assert store.events.subscriber_count(StoreEvent.CHANGED) == 0

    def test_failing_listener_does_not_break_fan_out(self, store):
        """A listener raising is logged and the others still run."""
        seen = []

        def broken(change):
            raise RuntimeError("boom")

        store.events.subscribe(StoreEvent.CHANGED, broken)
        store.events.subscribe(StoreEvent.CHANGED, seen.append)

        store.insert_record(Collection.TRANSACTIONS, make_txn())

        assert len(seen) == 1
