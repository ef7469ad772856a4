"""Remote session: which remote datasets the user can see and which one is active.

The session owns the remote-mode lifecycle of the Local Store. It picks the
active dataset on start, keeps the stored "active dataset" pointer, swaps the
mutation controller's adapter on every switch and performs full reloads of
the active dataset.
"""

import logging
from typing import Callable, Optional

from budgetsync.adapters.base import PersistenceAdapter
from budgetsync.adapters.client import RemoteClient
from budgetsync.adapters.mappers import dataset_from_wire, membership_from_wire
from budgetsync.adapters.remote import RemotePersistenceAdapter
from budgetsync.database.base import DocumentStorage
from budgetsync.domain.constants import ACTIVE_DATASET_PREFERENCE, PERSONAL_DATASET_NAME, SyncSettings
from budgetsync.domain.defaults import default_categories, repair_category_references
from budgetsync.domain.entities import (
    Collection,
    DatasetInfo,
    DatasetKind,
    Membership,
    StorageMode,
)
from budgetsync.domain.errors import (
    ConflictError,
    NotFoundError,
    TransientNetworkError,
    ValidationError,
    dataset_not_found,
)
from budgetsync.domain.mutations import OptimisticMutationController
from budgetsync.domain.notices import NoticeBoard
from budgetsync.domain.transaction import PermissionPolicy
from budgetsync.store.local_store import LocalStore

logger = logging.getLogger(__name__)

AdapterFactory = Callable[[str], PersistenceAdapter]


class RemoteSession:
    """Remote-mode session of one signed-in user."""

    def __init__(
        self,
        client: RemoteClient,
        store: LocalStore,
        preferences: DocumentStorage,
        user_id: str,
        notices: Optional[NoticeBoard] = None,
        settings: Optional[SyncSettings] = None,
        controller: Optional[OptimisticMutationController] = None,
        adapter_factory: Optional[AdapterFactory] = None,
    ):
        """Initialize the session.

        Args:
            client: Remote store client
            store: Local store, switched to remote mode on start
            preferences: Storage of the saved active-dataset pointer
            user_id: Signed-in user
            notices: Board receiving user-visible messages
            settings: Sync settings
            controller: Mutation controller whose adapter follows the
                active dataset
            adapter_factory: Builds the adapter of a dataset, a
                RemotePersistenceAdapter over ``client`` by default
        """
        self.client = client
        self.store = store
        self.preferences = preferences
        self.user_id = user_id
        self.notices = notices or NoticeBoard()
        self.settings = settings or SyncSettings()
        self.controller = controller
        self.adapter_factory = adapter_factory or (
            lambda dataset_id: RemotePersistenceAdapter(client, dataset_id, user_id)
        )
        self.current: Optional[DatasetInfo] = None
        self.accessible: list[DatasetInfo] = []
        self.membership: Optional[Membership] = None
        self.adapter: Optional[PersistenceAdapter] = None
        self._load_seq = 0
        self._seed_attempted: set[str] = set()

    # Lifecycle
    async def start(self) -> DatasetInfo:
        """Enter remote mode and activate a dataset.

        The saved pointer wins when it is still accessible, then the user's
        personal dataset, then the first accessible one. A personal dataset
        is created when the user has none.

        Raises:
            TransientNetworkError: If the dataset list could not be loaded
        """
        self.store.set_mode(StorageMode.REMOTE)
        datasets = await self.refresh_datasets()
        if not datasets:
            chosen = await self.create_dataset(PERSONAL_DATASET_NAME, DatasetKind.PERSONAL)
        else:
            saved = self.saved_pointer()
            chosen = next((d for d in datasets if d.id == saved), None) or self.fallback_dataset(datasets)
        await self.switch_dataset(chosen.id)
        return chosen

    # Datasets
    async def fetch_accessible(self) -> list[DatasetInfo]:
        """Ask the remote store which datasets the user can see.

        Raises:
            TransientNetworkError: If the call failed or returned no list
        """
        try:
            response = await self.client.list_accessible_datasets(self.user_id)
        except Exception as e:
            raise TransientNetworkError(f"Could not list datasets: {e}") from e
        if response.error is not None:
            raise TransientNetworkError(f"Could not list datasets: {response.error.message}")
        if not isinstance(response.data, list):
            raise TransientNetworkError("Could not list datasets: no data returned")
        return [dataset_from_wire(raw) for raw in response.data]

    async def refresh_datasets(self) -> list[DatasetInfo]:
        """Reload the accessible datasets and mirror them in the Local Store."""
        datasets = await self.fetch_accessible()
        self.accessible = datasets
        self.store.set_datasets(datasets)
        return datasets

    @staticmethod
    def fallback_dataset(datasets: list[DatasetInfo]) -> Optional[DatasetInfo]:
        """Pick the user's personal dataset, else the first one."""
        for dataset in datasets:
            if dataset.kind is DatasetKind.PERSONAL:
                return dataset
        return datasets[0] if datasets else None

    async def create_dataset(self, name: str, kind: DatasetKind = DatasetKind.SHARED) -> DatasetInfo:
        """Create a dataset owned by the user. Does not switch to it.

        Raises:
            ValidationError: If the name is empty
            TransientNetworkError: If the remote store did not create it
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Dataset name must not be empty")
        try:
            response = await self.client.create_dataset(name, kind.value, self.user_id)
        except Exception as e:
            raise TransientNetworkError(f"Could not create dataset: {e}") from e
        if response.error is not None or not response.data:
            message = response.error.message if response.error else "no data returned"
            raise TransientNetworkError(f"Could not create dataset: {message}")
        raw = response.data[0] if isinstance(response.data, list) else response.data
        info = dataset_from_wire(raw)
        logger.info("Created %s dataset %s (%s)", info.kind.value, info.id, info.name)
        self.accessible = [d for d in self.accessible if d.id != info.id] + [info]
        self.store.set_datasets(self.accessible)
        return info

    async def switch_dataset(self, dataset_id: str) -> DatasetInfo:
        """Activate an accessible dataset and reload it.

        Raises:
            NotFoundError: If the dataset is not accessible
        """
        info = next((d for d in self.accessible if d.id == dataset_id), None)
        if info is None:
            raise NotFoundError(dataset_not_found(dataset_id))

        self.current = info
        self.membership = None
        self.preferences.set_preference(ACTIVE_DATASET_PREFERENCE, info.id)
        self.adapter = self.adapter_factory(info.id)
        if self.controller is not None:
            self.controller.set_adapter(self.adapter)
        self.store.switch_active(info.id, info.name)
        logger.info("Switched to dataset %s (%s)", info.id, info.name)

        self.membership = await self.load_membership(info.id)
        await self.reload()
        return info

    async def load_membership(self, dataset_id: str) -> Optional[Membership]:
        """Return the user's membership in a dataset, or None if unknown."""
        try:
            response = await self.client.list_memberships(dataset_id)
        except Exception as e:
            logger.warning("Could not load memberships of %s: %s", dataset_id, e)
            return None
        if response.error is not None or not isinstance(response.data, list):
            logger.warning("Could not load memberships of %s", dataset_id)
            return None
        for raw in response.data:
            membership = membership_from_wire(raw)
            if membership.user_id == self.user_id:
                return membership
        return None

    def permission_policy(self) -> PermissionPolicy:
        """Permission policy for the active dataset."""
        shared = self.current is not None and self.current.kind is DatasetKind.SHARED
        return PermissionPolicy(self.user_id, self.membership, shared=shared)

    # Saved pointer
    def saved_pointer(self) -> Optional[str]:
        """The stored active-dataset pointer."""
        return self.preferences.get_preference(ACTIVE_DATASET_PREFERENCE)

    def clear_saved_pointer(self, dataset_id: str) -> bool:
        """Forget the stored pointer if it references the dataset."""
        if self.saved_pointer() != dataset_id:
            return False
        self.preferences.delete_preference(ACTIVE_DATASET_PREFERENCE)
        return True

    # Reload
    async def reload(self) -> bool:
        """Reload every collection of the active dataset from the remote store.

        A reload superseded by a newer one, or by a dataset switch, stops
        at its next await and applies nothing. A collection that fails to
        load keeps its cached records. An empty category list is seeded with
        the default categories once per dataset.

        Returns:
            True if the loaded data was applied
        """
        if self.current is None or self.adapter is None:
            logger.debug("Skipping reload: no active remote dataset")
            return False
        self._load_seq += 1
        seq = self._load_seq
        dataset_id = self.current.id
        adapter = self.adapter

        def still_current() -> bool:
            return (
                seq == self._load_seq
                and self.current is not None
                and self.current.id == dataset_id
                and self.store.active_id == dataset_id
            )

        loaded: dict[str, list] = {}
        for collection in Collection:
            result = await adapter.list(collection)
            if not still_current():
                logger.info("Dropping superseded reload of %s", dataset_id)
                return False
            if result.ok:
                loaded[collection.value] = result.data
            else:
                logger.error("Could not load %s of %s: %s", collection.value, dataset_id, result.error)

        categories = loaded.get(Collection.CATEGORIES.value)
        if categories == [] and dataset_id not in self._seed_attempted:
            self._seed_attempted.add(dataset_id)
            seeded = await self._seed_default_categories(adapter)
            if not still_current():
                logger.info("Dropping superseded reload of %s", dataset_id)
                return False
            if seeded is not None:
                loaded[Collection.CATEGORIES.value] = seeded

        data = self.store.get_active()
        for name, records in loaded.items():
            setattr(data, name, records)
        repaired = repair_category_references(data)
        if repaired:
            logger.warning("Re-pointed %d record(s) with a missing category in %s", repaired, dataset_id)
        self.store.set_active(**{name: getattr(data, name) for name in loaded})
        logger.info("Reloaded dataset %s", dataset_id)
        return True

    async def _seed_default_categories(self, adapter: PersistenceAdapter) -> Optional[list]:
        """Create the default categories, ignoring ones that already exist.

        Returns:
            The category list after seeding, or None if it could not be read
        """
        conflicts = 0
        for category in default_categories():
            result = await adapter.create(Collection.CATEGORIES, category)
            if isinstance(result.error, ConflictError):
                conflicts += 1
            elif not result.ok:
                logger.warning("Could not create default category %s: %s", category.name, result.error)

        result = await adapter.list(Collection.CATEGORIES)
        if result.ok and result.data:
            return result.data
        if conflicts:
            logger.warning(
                "Default categories conflict but none are visible; categories may not be readable in %s",
                adapter.dataset_id,
            )
        return None
