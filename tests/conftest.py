"""Shared pytest fixtures for budgetsync tests."""

import os
import tempfile
from pathlib import Path

import pytest

from budgetsync.adapters.local import LocalPersistenceAdapter
from budgetsync.adapters.remote import RemotePersistenceAdapter
from budgetsync.database.factories import create_memory_storage, create_sqlite_storage
from budgetsync.domain.category import CategoryService
from budgetsync.domain.constants import SyncSettings
from budgetsync.domain.entities import StorageMode
from budgetsync.domain.mutations import OptimisticMutationController
from budgetsync.domain.notices import NoticeBoard
from budgetsync.domain.transaction import TransactionService
from budgetsync.store.local_store import LocalStore
from tests.fakes import FakeRemoteClient


@pytest.fixture
def temp_db():
    """Create a temporary database file for testing."""
    # Create a temporary file for the database
    fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(fd)

    storage = create_sqlite_storage(database_path=db_path)
    # Store the path for tests that need it
    storage.database_path = db_path
    storage.connect()
    storage.initialize_schema()

    yield storage

    # Cleanup
    storage.disconnect()
    if os.path.exists(db_path):
        os.unlink(db_path)


@pytest.fixture
def memory_storage():
    """Create an in-memory storage."""
    storage = create_memory_storage()
    storage.connect()
    storage.initialize_schema()
    yield storage
    storage.disconnect()


@pytest.fixture
def store(memory_storage):
    """Create a loaded LocalStore in local-only mode."""
    local_store = LocalStore(memory_storage)
    local_store.load()
    yield local_store
    local_store.close()


@pytest.fixture
def notices():
    """Create an empty notice board."""
    return NoticeBoard()


@pytest.fixture
def controller(store, notices):
    """Create a controller writing straight through the local store."""
    return OptimisticMutationController(store, LocalPersistenceAdapter(store), notices)


@pytest.fixture
def fast_settings():
    """Settings with delays small enough for tests."""
    return SyncSettings(
        watchdog_interval=0.01,
        activity_cooldown=0.0,
        import_max_retries=3,
        import_base_delay=0.001,
    )


@pytest.fixture
def remote_client():
    """Create a scripted remote store with one shared dataset."""
    client = FakeRemoteClient()
    client.add_dataset("b1", "Household", kind="shared", owner_id="owner")
    client.add_member("b1", "owner", "owner")
    client.add_member("b1", "u1", "member")
    return client


@pytest.fixture
def remote_store():
    """Create a LocalStore acting as the remote read cache of dataset b1."""
    local_store = LocalStore(mode=StorageMode.REMOTE)
    local_store.switch_active("b1", "Household")
    return local_store


@pytest.fixture
def remote_controller(remote_store, remote_client, notices):
    """Create an optimistic controller writing to dataset b1 as user u1."""
    adapter = RemotePersistenceAdapter(remote_client, "b1", "u1")
    return OptimisticMutationController(remote_store, adapter, notices)


@pytest.fixture
def category_service(store, controller):
    """Create a CategoryService over the local store."""
    return CategoryService(store, controller)


@pytest.fixture
def transaction_service(store, controller):
    """Create a TransactionService over the local store."""
    return TransactionService(store, controller)


@pytest.fixture
def cli_runner():
    """Create a Click CLI test runner."""
    from click.testing import CliRunner

    return CliRunner()


@pytest.fixture
def fixtures_dir():
    """Return the path to the test fixtures directory."""
    return Path(__file__).parent / "fixtures"
