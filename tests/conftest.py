"""
Shared test fixtures and configuration for pytest.
"""

import logging
import sys
from pathlib import Path
from typing import Dict, Iterable, Optional

import pytest

# Add src directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from backup.bundle.asset_store import AssetStore
from backup.bundle.codec import BundleCodec
from backup.bundle.manager import BackupManager
from backup.bundle.sessions import SessionStore
from backup.core.models import BundleMetadata, InventoryRecord, ProjectLink, ProjectRecord
from backup.store import SqliteAuditLog, SqliteInventoryStore


logger = logging.getLogger(__name__)


# ============================================================================
# Pytest hooks
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (no external dependencies)")
    config.addinivalue_line("markers", "integration: Tests that run several components end to end")
    config.addinivalue_line("markers", "slow: Tests that take a long time to run")


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def storage_root(tmp_path) -> Path:
    """Local storage root (database + assets)."""
    root = tmp_path / "vault"
    root.mkdir()
    return root


@pytest.fixture
def store(storage_root):
    """SQLite inventory store in the storage root."""
    inventory_store = SqliteInventoryStore(storage_root / "inventory.db")
    yield inventory_store
    inventory_store.close()


@pytest.fixture
def asset_store(storage_root) -> AssetStore:
    return AssetStore(storage_root / "assets")


@pytest.fixture
def sessions(tmp_path) -> SessionStore:
    """Session registry; disposes anything a test leaves behind."""
    session_store = SessionStore(tmp_path / "sessions")
    yield session_store
    session_store.dispose_all()


@pytest.fixture
def codec() -> BundleCodec:
    return BundleCodec()


@pytest.fixture
def audit_log(store) -> SqliteAuditLog:
    return SqliteAuditLog(store)


@pytest.fixture
def manager(store, asset_store, sessions, codec, audit_log) -> BackupManager:
    """Fully wired manager over the temporary store."""
    return BackupManager(
        store=store,
        asset_store=asset_store,
        sessions=sessions,
        codec=codec,
        audit_log=audit_log,
    )


@pytest.fixture
def seed_inventory(store, asset_store):
    """
    Factory inserting a local inventory row and writing its attachments.

    Usage:
        item_id = seed_inventory("R1", images={"r1.png": b"png"}, quantity=50)
    """
    def _seed(
        name: str,
        value: str = "10k",
        package: str = "0805",
        quantity: int = 0,
        images: Optional[Dict[str, bytes]] = None,
        datasheets: Optional[Dict[str, bytes]] = None,
        **fields,
    ) -> int:
        for file_name, content in {**(images or {}), **(datasheets or {})}.items():
            (asset_store.root / file_name).write_bytes(content)
        record = InventoryRecord(
            id=None,
            name=name,
            value=value,
            package=package,
            quantity=quantity,
            image_paths=list(images or {}),
            datasheet_paths=list(datasheets or {}),
            **fields,
        )
        return store.insert_inventory(record)

    return _seed


@pytest.fixture
def seed_project(store, asset_store):
    """Factory inserting a local project, its files and optional links."""
    def _seed(
        name: str,
        files: Optional[Dict[str, bytes]] = None,
        links: Iterable[tuple] = (),
        description: str = "",
    ) -> int:
        for file_name, content in (files or {}).items():
            (asset_store.root / file_name).write_bytes(content)
        project_id = store.insert_project(
            ProjectRecord(id=None, name=name, description=description, files=list(files or {}))
        )
        for inventory_id, quantity in links:
            store.insert_link(ProjectLink(project_id, inventory_id, quantity))
        return project_id

    return _seed


@pytest.fixture
def make_bundle(tmp_path, codec):
    """
    Factory writing a bundle archive from records and in-memory assets.

    Usage:
        path = make_bundle(inventory=[...], projects=[...], links=[...],
                           assets={"a.png": b"..."})
    """
    counter = {"n": 0}

    def _make(
        inventory: Iterable[InventoryRecord] = (),
        projects: Iterable[ProjectRecord] = (),
        links: Iterable[ProjectLink] = (),
        assets: Optional[Dict[str, bytes]] = None,
        name: Optional[str] = None,
    ) -> Path:
        counter["n"] += 1
        output = tmp_path / "bundles" / (name or f"bundle_{counter['n']}.svdata")
        metadata = BundleMetadata.create(
            inventory=list(inventory),
            projects=list(projects),
            project_links=list(links),
        )
        return codec.write(output, metadata, assets or {})

    return _make


def stored_files(asset_store: AssetStore) -> Dict[str, bytes]:
    """Snapshot of the asset store contents."""
    return {p.name: p.read_bytes() for p in asset_store.root.iterdir() if p.is_file()}


@pytest.fixture
def asset_snapshot(asset_store):
    """Callable returning {file name: bytes} for the asset store."""
    return lambda: stored_files(asset_store)
