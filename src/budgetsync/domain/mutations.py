"""Optimistic mutation controller.

In remote mode a write is applied to the Local Store at once, then sent to
the remote store. A failed or denied call restores the pre-image exactly. A
response that arrives after the user switched datasets is dropped, and the
originating dataset's cache is discarded so it is refetched on next use.

Writes to the same record are serialized: each one is applied and confirmed
before the next starts, in submission order. In local mode the Local Store is
the durable copy and writes go straight through the adapter.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from typing import Any, Optional

from budgetsync.adapters.base import AdapterResult, Outcome, PersistenceAdapter
from budgetsync.domain.defaults import fallback_category
from budgetsync.domain.entities import Collection, StorageMode, Transaction
from budgetsync.domain.errors import (
    DomainError,
    NotFoundError,
    PermissionDeniedError,
    StaleDatasetError,
    ValidationError,
    category_not_found,
    last_category_delete_blocked,
    record_not_found,
)
from budgetsync.domain.notices import NoticeBoard, NoticeKind
from budgetsync.domain.reconciliation import RecordUpdate
from budgetsync.store.local_store import LocalStore
from budgetsync.utils.ids import new_batch_id
from budgetsync.utils.records import apply_patch

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MutationOutcome:
    """Result of one controller write.

    ``record`` is the record as it now stands locally (or the removed
    record for a delete). ``stale`` is set when the response arrived for a
    dataset that is no longer active.
    """

    ok: bool
    record: Any = None
    error: Optional[DomainError] = None
    stale: bool = False

    @property
    def denied(self) -> bool:
        return isinstance(self.error, PermissionDeniedError)


@dataclass
class BatchOutcome:
    """Result of writing one import batch."""

    ok: bool
    batch_id: str
    accepted: list[Transaction] = field(default_factory=list)
    updated: list[Transaction] = field(default_factory=list)
    failed_updates: int = 0
    error: Optional[DomainError] = None
    stale: bool = False


@dataclass
class _LockEntry:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class OptimisticMutationController:
    """Applies writes locally first and reconciles them with the adapter."""

    def __init__(
        self,
        store: LocalStore,
        adapter: PersistenceAdapter,
        notices: Optional[NoticeBoard] = None,
    ):
        """Initialize the controller.

        Args:
            store: Local store holding the active dataset
            adapter: Persistence adapter for the active dataset
            notices: Board receiving user-visible failures
        """
        self.store = store
        self.adapter = adapter
        self.notices = notices or NoticeBoard()
        self._locks: dict[tuple[str, str, str], _LockEntry] = {}
        # (dataset, collection, local id) -> confirmed id, and the reverse
        self._aliases: dict[tuple[str, str, str], str] = {}
        self._origins: dict[tuple[str, str, str], str] = {}

    def set_adapter(self, adapter: PersistenceAdapter) -> None:
        """Swap the adapter, e.g. after switching datasets or modes.

        Writes already in flight finish against the adapter they started with.
        """
        self.adapter = adapter

    @property
    def optimistic(self) -> bool:
        """True when writes are applied locally before the remote confirms them."""
        return self.adapter.mode is StorageMode.REMOTE

    @asynccontextmanager
    async def _serialized(self, dataset_id: str, collection: Collection, record_id: str):
        # A record keeps the lock of its local ID once the remote store renames it
        origin = self._origins.get((dataset_id, collection.value, record_id), record_id)
        key = (dataset_id, collection.value, origin)
        entry = self._locks.setdefault(key, _LockEntry())
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[key]

    def pending(self) -> int:
        """Number of records with a write in flight or queued."""
        return len(self._locks)

    def _resolve(self, dataset_id: str, collection: Collection, record_id: str) -> str:
        """Return the ID a record is stored under now, following a confirmed create."""
        return self._aliases.get((dataset_id, collection.value, record_id), record_id)

    def _remember_id(self, dataset_id: str, collection: Collection, local_id: str, confirmed_id: str) -> None:
        if local_id == confirmed_id:
            return
        self._aliases[(dataset_id, collection.value, local_id)] = confirmed_id
        self._origins[(dataset_id, collection.value, confirmed_id)] = local_id

    # Single-record writes
    async def create(self, collection: Collection, record) -> MutationOutcome:
        """Create a record.

        Returns:
            MutationOutcome whose record carries the remote-assigned ID when
            the remote store replaced the local one
        """
        adapter = self.adapter
        if not self.optimistic:
            return self._direct(await adapter.create(collection, record))

        dataset_id = self.store.active_id
        async with self._serialized(dataset_id, collection, record.id):
            self.store.insert_record(collection, record)
            result = await adapter.create(collection, record)
            if self._is_stale(dataset_id, "create"):
                return MutationOutcome(ok=result.ok, error=result.error, stale=True)
            if not result.ok:
                self.store.remove_record(collection, record.id)
                self._surface("add", collection, result)
                return MutationOutcome(ok=False, error=result.error)

            confirmed = self._keep_local_tags(result.data, record)
            if confirmed != record:
                self.store.replace_record(collection, confirmed, previous_id=record.id)
                self._remember_id(dataset_id, collection, record.id, confirmed.id)
            return MutationOutcome(ok=True, record=confirmed)

    async def update(self, collection: Collection, record_id: str, **changes: Any) -> MutationOutcome:
        """Update fields of a record.

        The record may be addressed by the local ID it was created under,
        also while that create is still in flight; the update then waits for
        it and is sent under the confirmed ID.

        Raises:
            NotFoundError: If the record is not in the active dataset
            ValidationError: If the changes do not fit the record
        """
        adapter = self.adapter
        dataset_id = self.store.active_id
        record_id = self._resolve(dataset_id, collection, record_id)
        if self.store.get_record(collection, record_id) is None:
            raise NotFoundError(record_not_found(collection.value, record_id))
        if not self.optimistic:
            return self._direct(await adapter.update(collection, record_id, changes))

        async with self._serialized(dataset_id, collection, record_id):
            if self._is_stale(dataset_id, "update"):
                return MutationOutcome(ok=False, error=StaleDatasetError("Dataset switched before update"), stale=True)
            record_id = self._resolve(dataset_id, collection, record_id)
            before = self.store.get_record(collection, record_id)
            if before is None:
                raise NotFoundError(record_not_found(collection.value, record_id))
            after = apply_patch(before, changes)
            self.store.replace_record(collection, after)

            result = await adapter.update(collection, record_id, changes)
            if self._is_stale(dataset_id, "update"):
                return MutationOutcome(ok=result.ok, error=result.error, stale=True)
            if result.outcome is Outcome.NOT_FOUND:
                # Deleted remotely in the meantime; mirror that locally
                self.store.remove_record(collection, record_id)
                self._surface("edit", collection, result)
                return MutationOutcome(ok=False, error=result.error)
            if not result.ok:
                self._restore(collection, before)
                self._surface("edit", collection, result)
                return MutationOutcome(ok=False, record=before, error=result.error)
            return MutationOutcome(ok=True, record=after)

    async def delete(self, collection: Collection, record_id: str) -> MutationOutcome:
        """Delete a record.

        A record the remote store no longer has counts as deleted.

        Raises:
            NotFoundError: If the record is not in the active dataset
        """
        adapter = self.adapter
        dataset_id = self.store.active_id
        record_id = self._resolve(dataset_id, collection, record_id)
        existing = self.store.get_record(collection, record_id)
        if existing is None:
            raise NotFoundError(record_not_found(collection.value, record_id))
        if not self.optimistic:
            result = await adapter.remove(collection, record_id)
            self._direct(result)
            return MutationOutcome(ok=True, record=existing)

        async with self._serialized(dataset_id, collection, record_id):
            record_id = self._resolve(dataset_id, collection, record_id)
            removed = self.store.remove_record(collection, record_id)
            if removed is None:
                raise NotFoundError(record_not_found(collection.value, record_id))
            index, record = removed

            result = await adapter.remove(collection, record_id)
            if self._is_stale(dataset_id, "delete"):
                return MutationOutcome(ok=result.ok, record=record, error=result.error, stale=True)
            if result.ok or result.outcome is Outcome.NOT_FOUND:
                return MutationOutcome(ok=True, record=record)
            self.store.insert_record(collection, record, index)
            self._surface("delete", collection, result)
            return MutationOutcome(ok=False, record=record, error=result.error)

    # Import batches
    async def import_batch(
        self, accepted: list[Transaction], updates: Optional[list[RecordUpdate]] = None
    ) -> BatchOutcome:
        """Write the outcome of a reconciliation.

        Accepted records are tagged with a fresh import batch ID and inserted
        at once. If the remote bulk write fails, every record carrying that
        batch ID is removed again. Updates are then applied one by one.
        """
        adapter = self.adapter
        batch_id = new_batch_id()
        dataset_id = self.store.active_id
        outcome = BatchOutcome(ok=True, batch_id=batch_id)
        tagged = [replace(txn, import_batch_id=batch_id) for txn in accepted]

        if tagged:
            previous_batch_ids = list(self.store.get_active().last_import_batch_ids)
            self.store.add_import_batch(tagged, batch_id)
            outcome.accepted = tagged
            if self.optimistic:
                result = await adapter.bulk_create(Collection.TRANSACTIONS, tagged)
                if self._is_stale(dataset_id, "import"):
                    outcome.ok = result.ok
                    outcome.error = result.error
                    outcome.stale = True
                    return outcome
                if not result.ok:
                    removed = self.store.remove_batch(batch_id, restore_ids=previous_batch_ids)
                    logger.warning(
                        "Import batch %s failed remotely, removed %d optimistic record(s)",
                        batch_id,
                        len(removed),
                    )
                    self._surface("import", Collection.TRANSACTIONS, result)
                    outcome.ok = False
                    outcome.error = result.error
                    outcome.accepted = []
                    return outcome
                outcome.accepted = self._confirm_batch(dataset_id, tagged, result.data, batch_id)

        for update in updates or []:
            try:
                result = await self.update(Collection.TRANSACTIONS, update.existing.id, **update.changes)
            except NotFoundError as e:
                logger.info("Skipping update of %s: %s", update.existing.id, e)
                outcome.failed_updates += 1
                continue
            if result.stale:
                outcome.stale = True
                break
            if result.ok:
                outcome.updated.append(result.record)
            else:
                outcome.failed_updates += 1

        logger.info(
            "Import batch %s: %d accepted, %d updated, %d update(s) failed",
            batch_id,
            len(outcome.accepted),
            len(outcome.updated),
            outcome.failed_updates,
        )
        return outcome

    def _confirm_batch(
        self, dataset_id: str, tagged: list[Transaction], confirmed: list, batch_id: str
    ) -> list[Transaction]:
        """Swap optimistic records for their remote versions, keeping the batch tag."""
        remap = {
            local.id: replace(remote, import_batch_id=batch_id)
            for local, remote in zip(tagged, confirmed or [])
        }
        if not remap or list(remap.values()) == tagged:
            return tagged
        data = self.store.get_active()
        self.store.set_active(
            transactions=[remap.get(txn.id, txn) for txn in data.transactions],
            last_import_batch_ids=[txn.id for txn in remap.values()],
        )
        for local_id, remote in remap.items():
            self._remember_id(dataset_id, Collection.TRANSACTIONS, local_id, remote.id)
        return list(remap.values())

    async def undo_last_import(self) -> MutationOutcome:
        """Remove the transactions created by the most recent import.

        Records whose remote delete fails are put back. Returns the removed
        transactions as the outcome's record.

        Raises:
            NotFoundError: If there is no import to undo
        """
        adapter = self.adapter
        data = self.store.get_active()
        batch_ids = set(data.last_import_batch_ids)
        if not batch_ids:
            raise NotFoundError("No import to undo")
        positions = {txn.id: index for index, txn in enumerate(data.transactions)}
        removed = [txn for txn in data.transactions if txn.id in batch_ids]

        self.store.apply_transaction_changes([], removed_ids=batch_ids)
        self.store.set_active(last_import_batch_ids=[])
        if not self.optimistic:
            logger.info("Undid last import: removed %d transaction(s)", len(removed))
            return MutationOutcome(ok=True, record=removed)

        dataset_id = self.store.active_id
        results = await asyncio.gather(*(adapter.remove(Collection.TRANSACTIONS, txn.id) for txn in removed))
        if self._is_stale(dataset_id, "undo import"):
            return MutationOutcome(ok=all(r.ok for r in results), record=removed, stale=True)

        failed = [
            (txn, result)
            for txn, result in zip(removed, results)
            if not result.ok and result.outcome is not Outcome.NOT_FOUND
        ]
        for txn, _ in sorted(failed, key=lambda pair: positions[pair[0].id]):
            self.store.insert_record(Collection.TRANSACTIONS, txn, positions[txn.id])
        if failed:
            self._surface("undo import", Collection.TRANSACTIONS, failed[0][1])
            kept = {txn.id for txn, _ in failed}
            # Leave the records that are still there undoable
            self.store.set_active(last_import_batch_ids=[txn.id for txn in removed if txn.id in kept])
            return MutationOutcome(
                ok=False,
                record=[txn for txn in removed if txn.id not in kept],
                error=failed[0][1].error,
            )
        logger.info("Undid last import: removed %d transaction(s)", len(removed))
        return MutationOutcome(ok=True, record=removed)

    # Categories
    async def delete_category(self, category_id: str) -> MutationOutcome:
        """Delete a category after re-pointing everything that references it.

        Transactions and recurring rules are moved to the fallback category
        first. If any of them cannot be moved the category is kept.

        Raises:
            NotFoundError: If the category doesn't exist
            ValidationError: If it is the last category
        """
        data = self.store.get_active()
        if not any(c.id == category_id for c in data.categories):
            raise NotFoundError(category_not_found(category_id))
        fallback = fallback_category(data.categories, excluding=category_id)
        if fallback is None:
            raise ValidationError(last_category_delete_blocked())

        referencing = [
            (Collection.TRANSACTIONS, txn.id) for txn in data.transactions if txn.category_id == category_id
        ] + [
            (Collection.RECURRING_RULES, rule.id) for rule in data.recurring_rules if rule.category_id == category_id
        ]
        results = await asyncio.gather(
            *(self.update(collection, record_id, category_id=fallback.id) for collection, record_id in referencing)
        )
        failures = [r for r in results if not r.ok]
        if failures:
            logger.warning(
                "Keeping category %s: %d referencing record(s) could not be moved", category_id, len(failures)
            )
            return MutationOutcome(ok=False, error=failures[0].error, stale=any(r.stale for r in failures))
        if referencing:
            logger.info("Moved %d record(s) from category %s to %s", len(referencing), category_id, fallback.id)
        return await self.delete(Collection.CATEGORIES, category_id)

    # Internals
    def _is_stale(self, dataset_id: str, action: str) -> bool:
        if self.store.active_id == dataset_id:
            return False
        logger.info("Dropping stale %s response for dataset %s", action, dataset_id)
        self.store.drop_cache(dataset_id)
        return True

    def _restore(self, collection: Collection, before) -> None:
        try:
            self.store.replace_record(collection, before)
        except NotFoundError:
            self.store.insert_record(collection, before)
        logger.warning("Rolled back %s %s", collection.value, before.id)

    @staticmethod
    def _keep_local_tags(confirmed, local):
        if confirmed is None:
            return local
        if isinstance(local, Transaction) and local.import_batch_id:
            return replace(confirmed, import_batch_id=local.import_batch_id)
        return confirmed

    @staticmethod
    def _direct(result: AdapterResult) -> MutationOutcome:
        if not result.ok:
            raise result.error
        return MutationOutcome(ok=True, record=result.data)

    def _surface(self, action: str, collection: Collection, result: AdapterResult) -> None:
        label = collection.value.replace("_", " ")
        if result.denied:
            self.notices.post(
                NoticeKind.NOT_ALLOWED,
                f"Not allowed to {action} {label}",
                str(result.error),
            )
        elif result.outcome is Outcome.NOT_FOUND:
            self.notices.post(NoticeKind.ERROR, f"Could not {action} {label}", str(result.error))
        else:
            self.notices.post(
                NoticeKind.ERROR,
                f"Could not {action} {label}",
                f"{result.error}. Please try again.",
                action="retry",
            )
