"""
Bundle scanning.

Extracts a bundle into a fresh scan session and reports which remote records
are new and which collide with local records, including whether their
attachments differ in content.
"""

import logging
from pathlib import Path
from typing import List

from ..core.exceptions import PathEscape
from ..core.logging import SessionContext
from ..core.models import ConflictItem, ScanResult
from ..core.store import InventoryStore
from .asset_store import AssetStore, resolve_bundle_asset
from .codec import BundleCodec
from .hashing import compute_file_hash, compute_hash_set
from .sessions import SessionStore


logger = logging.getLogger(__name__)


def assets_differ(
    local_paths: List[str],
    remote_paths: List[str],
    asset_store: AssetStore,
    remote_assets_dir: Path,
) -> bool:
    """
    Compare two attachment lists by content.

    Lists of different length differ. Otherwise every remote file whose
    digest is known must appear among the local digests. File names and
    directory layout never matter.

    Args:
        local_paths: Asset paths of the local record (relative to the asset root)
        remote_paths: Asset paths of the remote record (relative to assets/)
        asset_store: Local asset store
        remote_assets_dir: assets/ directory of the extracted bundle

    Returns:
        True if the content sets differ
    """
    if len(local_paths) != len(remote_paths):
        return True

    local_files = []
    for local_path in local_paths:
        try:
            local_files.append(asset_store.locate(local_path))
        except PathEscape as e:
            logger.warning(f"Ignoring local asset outside asset root: {e}")
    local_hashes = compute_hash_set(local_files)

    for remote_path in remote_paths:
        try:
            source = resolve_bundle_asset(remote_assets_dir, remote_path)
        except PathEscape as e:
            logger.warning(f"Ignoring bundle asset outside bundle: {e}")
            continue
        remote_hash = compute_file_hash(source) if source else ""
        if remote_hash and remote_hash not in local_hashes:
            return True

    return False


class Scanner:
    """
    Produces scan sessions and conflict reports for bundles.
    """

    def __init__(
        self,
        store: InventoryStore,
        asset_store: AssetStore,
        codec: BundleCodec,
        sessions: SessionStore,
    ):
        self.store = store
        self.asset_store = asset_store
        self.codec = codec
        self.sessions = sessions

    def scan(self, archive_path: Path) -> ScanResult:
        """
        Extract a bundle and compare it against the local store.

        The session stays registered on success so it can be imported; any
        failure disposes it before the error propagates.

        Args:
            archive_path: Bundle archive to scan

        Returns:
            ScanResult with conflicts and new-item counts

        Raises:
            InvalidBundle: If the archive has no readable meta.json
        """
        archive_path = Path(archive_path)

        with self.sessions.scope() as session:
            with SessionContext(session_id=session.session_id, operation="scan",
                                archive=archive_path.name):
                logger.info(f"Scanning bundle {archive_path}")

                root = self.codec.read(archive_path, session.working_directory)
                session = self.sessions.bind(session.session_id, root)
                metadata = self.codec.read_metadata(root)
                session.metadata = metadata

                result = ScanResult(scan_id=session.session_id, metadata=metadata)
                remote_assets_dir = session.assets_dir

                for remote in metadata.inventory:
                    local = self.store.find_inventory(remote.name, remote.package, remote.value)
                    if local is None:
                        result.new_inventory += 1
                        continue

                    differs = (
                        assets_differ(local.image_paths, remote.image_paths,
                                      self.asset_store, remote_assets_dir)
                        or assets_differ(local.datasheet_paths, remote.datasheet_paths,
                                         self.asset_store, remote_assets_dir)
                    )
                    result.inventory_conflicts.append(
                        ConflictItem(local=local, remote=remote, has_asset_difference=differs)
                    )

                for remote in metadata.projects:
                    local = self.store.find_project(remote.name)
                    if local is None:
                        result.new_projects += 1
                        continue

                    differs = assets_differ(
                        local.files, remote.files, self.asset_store, remote_assets_dir
                    )
                    result.project_conflicts.append(
                        ConflictItem(local=local, remote=remote, has_asset_difference=differs)
                    )

                logger.info(
                    f"Scan complete: {result.new_inventory} new inventory, "
                    f"{len(result.inventory_conflicts)} inventory conflicts, "
                    f"{result.new_projects} new projects, "
                    f"{len(result.project_conflicts)} project conflicts"
                )
                return result
