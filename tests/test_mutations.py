"""Tests for the optimistic mutation controller."""

import asyncio
import json
from datetime import date
from decimal import Decimal

import pytest

from budgetsync.adapters.client import RemoteError
from budgetsync.adapters.mappers import record_to_wire
from budgetsync.domain.entities import Category, Collection, Transaction, TransactionType
from budgetsync.domain.errors import NotFoundError, PermissionDeniedError, TransientNetworkError, ValidationError
from budgetsync.domain.notices import NoticeKind
from budgetsync.store.mappers import dataset_data_to_dict

TX = Collection.TRANSACTIONS


def make_txn(txn_id, author="u1", description="Coffee", amount="10.00", category_id="other"):
    return Transaction(
        id=txn_id,
        date=date(2024, 1, 5),
        type=TransactionType.EXPENSE,
        amount=Decimal(amount),
        description=description,
        category_id=category_id,
        author_id=author,
    )


def seed(client, store, txn_id, author="u1", **kwargs):
    """Put the same transaction in the remote store and the local cache."""
    txn = make_txn(txn_id, author=author, **kwargs)
    client.add_row("transactions", "b1", record_to_wire(TX, txn))
    store.insert_record(TX, txn)
    return txn


def snapshot(store) -> str:
    return json.dumps(dataset_data_to_dict(store.get_active()), sort_keys=True)


async def settle(rounds=5):
    for _ in range(rounds):
        await asyncio.sleep(0)


class TestLocalMode:
    """Writes in local-only mode go straight through the local store."""

    def test_create_update_delete(self, controller, store):
        """Local writes are applied and persisted directly."""
        created = asyncio.run(controller.create(TX, make_txn("t1")))
        updated = asyncio.run(controller.update(TX, "t1", description="Tea"))
        deleted = asyncio.run(controller.delete(TX, "t1"))

        assert created.ok and updated.ok and deleted.ok
        assert updated.record.description == "Tea"
        assert deleted.record.description == "Tea"
        assert store.get_active().transactions == []

    def test_invalid_patch_raises(self, controller, store):
        """A patch that does not fit the record is a validation error."""
        store.insert_record(TX, make_txn("t1"))

        with pytest.raises(ValidationError):
            asyncio.run(controller.update(TX, "t1", colour="red"))

    def test_missing_record_raises(self, controller):
        """Writes to unknown records raise NotFoundError."""
        with pytest.raises(NotFoundError):
            asyncio.run(controller.update(TX, "missing", description="x"))
        with pytest.raises(NotFoundError):
            asyncio.run(controller.delete(TX, "missing"))

    def test_import_batch_and_undo(self, controller, store):
        """Imported records carry the batch ID and can be undone."""
        outcome = asyncio.run(controller.import_batch([make_txn("a"), make_txn("b", description="Tea")]))

        data = store.get_active()
        assert outcome.ok
        assert {t.import_batch_id for t in data.transactions} == {outcome.batch_id}
        assert data.last_import_batch_ids == ["a", "b"]

        undo = asyncio.run(controller.undo_last_import())
        assert undo.ok
        assert store.get_active().transactions == []
        with pytest.raises(NotFoundError):
            asyncio.run(controller.undo_last_import())


class TestRemoteCreate:
    """Optimistic creates."""

    def test_remote_id_replaces_local_id(self, remote_controller, remote_store, remote_client):
        """The confirmed record takes the ID assigned by the remote store."""
        outcome = asyncio.run(remote_controller.create(TX, make_txn("tx_local")))

        ids = [t.id for t in remote_store.get_active().transactions]
        assert outcome.ok
        assert outcome.record.id != "tx_local"
        assert ids == [outcome.record.id]
        assert remote_client.dataset_rows("transactions", "b1")[0]["user_id"] == "u1"

    def test_record_is_visible_before_confirmation(self, remote_controller, remote_store, remote_client):
        """The local store shows the record while the remote call is pending."""

        async def scenario():
            gate = remote_client.gate("create_record")
            task = asyncio.create_task(remote_controller.create(TX, make_txn("tx_local")))
            await settle()
            pending = [t.id for t in remote_store.get_active().transactions]
            gate.set()
            await task
            return pending

        assert asyncio.run(scenario()) == ["tx_local"]

    def test_edit_waits_for_pending_create(self, remote_controller, remote_store, remote_client):
        """An edit submitted during the create is applied after it, under the confirmed ID."""

        async def scenario():
            gate = remote_client.gate("create_record")
            create = asyncio.create_task(remote_controller.create(TX, make_txn("tx_local")))
            await settle()
            edit = asyncio.create_task(remote_controller.update(TX, "tx_local", description="Tea"))
            await settle()
            edits_sent = remote_client.call_count("update_record")
            gate.set()
            created, edited = await asyncio.gather(create, edit)
            return edits_sent, created, edited

        edits_sent, created, edited = asyncio.run(scenario())

        remote_id = created.record.id
        assert edits_sent == 0
        assert created.ok and edited.ok
        assert edited.record.id == remote_id
        assert [(t.id, t.description) for t in remote_store.get_active().transactions] == [(remote_id, "Tea")]
        patches = [(args[1], args[2]) for name, args in remote_client.calls if name == "update_record"]
        assert patches == [(remote_id, {"description": "Tea"})]
        assert remote_client.dataset_rows("transactions", "b1")[0]["description"] == "Tea"
        assert remote_controller.pending() == 0

    def test_delete_waits_for_pending_create(self, remote_controller, remote_store, remote_client):
        """A delete submitted during the create removes the confirmed record."""

        async def scenario():
            gate = remote_client.gate("create_record")
            create = asyncio.create_task(remote_controller.create(TX, make_txn("tx_local")))
            await settle()
            delete = asyncio.create_task(remote_controller.delete(TX, "tx_local"))
            await settle()
            gate.set()
            return await asyncio.gather(create, delete)

        created, deleted = asyncio.run(scenario())

        assert created.ok and deleted.ok
        assert deleted.record.id == created.record.id
        assert remote_store.get_active().transactions == []
        assert remote_client.dataset_rows("transactions", "b1") == []

    def test_local_id_still_addresses_confirmed_record(self, remote_controller, remote_store):
        """After confirmation the local ID keeps working for later edits."""
        created = asyncio.run(remote_controller.create(TX, make_txn("tx_local")))

        outcome = asyncio.run(remote_controller.update(TX, "tx_local", description="Tea"))

        assert outcome.ok
        assert remote_store.get_record(TX, created.record.id).description == "Tea"

    def test_denied_create_is_rolled_back(self, remote_controller, remote_store, remote_client, notices):
        """A create that returns no row is a denial and is undone."""
        remote_client.fail_next("create_record", "empty")

        outcome = asyncio.run(remote_controller.create(TX, make_txn("tx_local")))

        assert not outcome.ok
        assert outcome.denied
        assert remote_store.get_active().transactions == []
        assert notices.active[-1].kind is NoticeKind.NOT_ALLOWED


class TestRemoteUpdate:
    """Optimistic updates and their rollback."""

    def test_update_is_confirmed(self, remote_controller, remote_store, remote_client):
        """An allowed update is kept locally and stored remotely."""
        seed(remote_client, remote_store, "r-own")

        outcome = asyncio.run(remote_controller.update(TX, "r-own", description="Tea"))

        assert outcome.ok
        assert remote_store.get_record(TX, "r-own").description == "Tea"
        assert remote_client.dataset_rows("transactions", "b1")[0]["description"] == "Tea"

    def test_denied_update_restores_exact_view(self, remote_controller, remote_store, remote_client, notices):
        """After a denied update the local view is byte-for-byte what it was."""
        seed(remote_client, remote_store, "r-mine", description="Mine")
        seed(remote_client, remote_store, "r-theirs", author="owner", description="Theirs")
        before = snapshot(remote_store)

        outcome = asyncio.run(remote_controller.update(TX, "r-theirs", description="Hijacked", amount=Decimal("1")))

        assert not outcome.ok
        assert isinstance(outcome.error, PermissionDeniedError)
        assert snapshot(remote_store) == before
        assert notices.active[-1].kind is NoticeKind.NOT_ALLOWED
        assert remote_client.dataset_rows("transactions", "b1")[1]["description"] == "Theirs"

    def test_update_of_concurrently_deleted_record(self, remote_controller, remote_store, remote_client, notices):
        """A record gone remotely is removed locally instead of restored."""
        remote_store.insert_record(TX, make_txn("r-gone"))

        outcome = asyncio.run(remote_controller.update(TX, "r-gone", description="Tea"))

        assert not outcome.ok
        assert isinstance(outcome.error, NotFoundError)
        assert remote_store.get_record(TX, "r-gone") is None
        assert notices.active[-1].kind is NoticeKind.ERROR

    def test_transport_failure_restores_and_offers_retry(self, remote_controller, remote_store, remote_client, notices):
        """A raised network error is rolled back with a retry notice."""
        seed(remote_client, remote_store, "r-own")
        before = snapshot(remote_store)
        remote_client.fail_next("update_record", ConnectionError("connection reset"))

        outcome = asyncio.run(remote_controller.update(TX, "r-own", description="Tea"))

        assert isinstance(outcome.error, TransientNetworkError)
        assert snapshot(remote_store) == before
        assert notices.active[-1].action == "retry"

    def test_writes_to_one_record_are_serialized(self, remote_controller, remote_store, remote_client):
        """A second write waits until the first is confirmed, in order."""
        seed(remote_client, remote_store, "r-own")

        async def scenario():
            gate = remote_client.gate("update_record")
            first = asyncio.create_task(remote_controller.update(TX, "r-own", description="First"))
            await settle()
            second = asyncio.create_task(remote_controller.update(TX, "r-own", description="Second"))
            await settle()
            in_flight = remote_client.call_count("update_record")
            pending = remote_controller.pending()
            gate.set()
            results = await asyncio.gather(first, second)
            return in_flight, pending, results

        in_flight, pending, results = asyncio.run(scenario())

        assert in_flight == 1
        assert pending == 1
        assert all(r.ok for r in results)
        patches = [args[2] for name, args in remote_client.calls if name == "update_record"]
        assert patches == [{"description": "First"}, {"description": "Second"}]
        assert remote_store.get_record(TX, "r-own").description == "Second"
        assert remote_controller.pending() == 0


class TestStaleResponses:
    """Responses arriving after a dataset switch."""

    def test_stale_response_is_dropped(self, remote_controller, remote_store, remote_client):
        """A late denial never rolls back into the newly active dataset."""
        seed(remote_client, remote_store, "r-theirs", author="owner")

        async def scenario():
            gate = remote_client.gate("update_record")
            task = asyncio.create_task(remote_controller.update(TX, "r-theirs", description="Edited"))
            await settle()
            remote_store.switch_active("b2", "Elsewhere")
            gate.set()
            return await task

        outcome = asyncio.run(scenario())

        assert outcome.stale
        assert remote_store.active_id == "b2"
        assert remote_store.get_active().transactions == []
        assert not remote_store.has_cached_data("b1")

    def test_stale_create_is_not_applied(self, remote_controller, remote_store, remote_client):
        """A create confirmed after a switch does not land in the new dataset."""

        async def scenario():
            gate = remote_client.gate("create_record")
            task = asyncio.create_task(remote_controller.create(TX, make_txn("tx_local")))
            await settle()
            remote_store.switch_active("b2", "Elsewhere")
            gate.set()
            return await task

        outcome = asyncio.run(scenario())

        assert outcome.stale
        assert remote_store.get_active().transactions == []


class TestRemoteDelete:
    """Optimistic deletes."""

    def test_denied_delete_reinserts_at_same_position(self, remote_controller, remote_store, remote_client):
        """A denied delete puts the record back where it was."""
        seed(remote_client, remote_store, "r-theirs", author="owner")
        seed(remote_client, remote_store, "r-mine", description="Tea")
        before = snapshot(remote_store)

        outcome = asyncio.run(remote_controller.delete(TX, "r-theirs"))

        assert not outcome.ok
        assert outcome.denied
        assert snapshot(remote_store) == before

    def test_delete_of_already_deleted_record_succeeds(self, remote_controller, remote_store):
        """A record the remote store no longer has counts as deleted."""
        remote_store.insert_record(TX, make_txn("r-gone"))

        outcome = asyncio.run(remote_controller.delete(TX, "r-gone"))

        assert outcome.ok
        assert remote_store.get_record(TX, "r-gone") is None


class TestRemoteImport:
    """Bulk imports and undo in remote mode."""

    def test_failed_bulk_create_leaves_no_batch_records(self, remote_controller, remote_store, remote_client, notices):
        """All 50 optimistic records of a failed batch are removed again."""
        seed(remote_client, remote_store, "r-existing")
        records = [make_txn(f"csv_{i}", description=f"Row {i}") for i in range(50)]

        async def scenario():
            gate = remote_client.gate("bulk_create")
            remote_client.fail_next("bulk_create", RemoteError("upstream timeout", status=503))
            task = asyncio.create_task(remote_controller.import_batch(records))
            await settle()
            in_flight = len(remote_store.get_active().transactions)
            gate.set()
            return in_flight, await task

        in_flight, outcome = asyncio.run(scenario())

        transactions = remote_store.get_active().transactions
        assert in_flight == 51
        assert not outcome.ok
        assert [t for t in transactions if t.import_batch_id == outcome.batch_id] == []
        assert [t.id for t in transactions] == ["r-existing"]
        assert remote_store.get_active().last_import_batch_ids == []
        assert notices.active[-1].action == "retry"

    def test_bulk_create_confirms_remote_ids(self, remote_controller, remote_store, remote_client):
        """Confirmed records take remote IDs and keep the batch tag."""
        outcome = asyncio.run(remote_controller.import_batch([make_txn("a"), make_txn("b", description="Tea")]))

        data = remote_store.get_active()
        remote_ids = [r["id"] for r in remote_client.dataset_rows("transactions", "b1")]
        assert outcome.ok
        assert [t.id for t in data.transactions] == remote_ids
        assert data.last_import_batch_ids == remote_ids
        assert {t.import_batch_id for t in data.transactions} == {outcome.batch_id}

    def test_failed_import_keeps_previous_undo(self, remote_controller, remote_store, remote_client):
        """A failed second import restores the view, including the earlier undo pointer."""
        first = asyncio.run(remote_controller.import_batch([make_txn("a")]))
        before = snapshot(remote_store)
        remote_client.fail_next("bulk_create", RemoteError("server error", status=500))

        outcome = asyncio.run(remote_controller.import_batch([make_txn("b", description="Tea")]))

        assert first.ok
        assert not outcome.ok
        assert snapshot(remote_store) == before
        assert remote_store.get_active().last_import_batch_ids == [first.accepted[0].id]

        undo = asyncio.run(remote_controller.undo_last_import())
        assert undo.ok
        assert remote_store.get_active().transactions == []

    def test_undo_keeps_records_whose_delete_failed(self, remote_controller, remote_store, remote_client):
        """Records that could not be deleted remotely are put back and stay undoable."""
        asyncio.run(remote_controller.import_batch([make_txn("a"), make_txn("b", description="Tea")]))
        remote_client.fail_next("delete_record", RemoteError("server error", status=500))

        outcome = asyncio.run(remote_controller.undo_last_import())

        data = remote_store.get_active()
        assert not outcome.ok
        assert len(outcome.record) == 1
        assert len(data.transactions) == 1
        assert data.last_import_batch_ids == [data.transactions[0].id]
        assert len(remote_client.dataset_rows("transactions", "b1")) == 1


class TestDeleteCategory:
    """Category deletes re-point references first."""

    def test_references_move_to_fallback(self, remote_controller, remote_store, remote_client):
        """Transactions in a deleted category end up in Other."""
        remote_client.add_row("categories", "b1", {"id": "fun", "name": "Fun"})
        seed(remote_client, remote_store, "r-own", category_id="fun")

        outcome = asyncio.run(remote_controller.delete_category("fun"))

        data = remote_store.get_active()
        assert outcome.ok
        assert "fun" not in {c.id for c in data.categories}
        assert data.transactions[0].category_id == "other"
        assert remote_client.dataset_rows("transactions", "b1")[0]["category_id"] == "other"

    def test_category_kept_when_a_reference_cannot_move(self, remote_controller, remote_store, remote_client):
        """A denied re-point keeps the category and the reference."""
        remote_client.add_row("categories", "b1", {"id": "fun", "name": "Fun"})
        seed(remote_client, remote_store, "r-theirs", author="owner", category_id="fun")

        outcome = asyncio.run(remote_controller.delete_category("fun"))

        data = remote_store.get_active()
        assert not outcome.ok
        assert "fun" in {c.id for c in data.categories}
        assert data.transactions[0].category_id == "fun"

    def test_last_category_cannot_be_deleted(self, controller, store):
        """Deleting the only category is refused."""
        store.set_active(categories=[Category(id="only", name="Only")])

        with pytest.raises(ValidationError):
            asyncio.run(controller.delete_category("only"))
