"""
Merge engine for importing a scanned bundle into the local store.

Applies skip / overwrite / keep_both per record, copies attachments through
the asset store, remaps bundle-local ids to local ids across inventory,
projects and project links, and commits everything in one transaction.
"""

import dataclasses
import logging
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Callable, Dict, List, Optional, Set

from ..core.exceptions import AssetIOFailure, PathEscape
from ..core.logging import SessionContext
from ..core.models import (
    BundleMetadata,
    ImportReport,
    ImportStrategies,
    ProjectLink,
    ScanSession,
    Strategy,
)
from ..core.store import AuditLog, InventoryStore
from .asset_store import AssetStore, resolve_bundle_asset
from .codec import BundleCodec
from .sessions import SessionStore


logger = logging.getLogger(__name__)

DEFAULT_KEEP_BOTH_SUFFIX = " (Imported)"


class MergeEngine:
    """
    Imports scan sessions into the local store.

    A session is consumed by exactly one import and disposed afterwards,
    whether the import commits or rolls back.
    """

    def __init__(
        self,
        store: InventoryStore,
        asset_store: AssetStore,
        codec: BundleCodec,
        sessions: SessionStore,
        audit_log: Optional[AuditLog] = None,
        keep_both_suffix: str = DEFAULT_KEEP_BOTH_SUFFIX,
    ):
        self.store = store
        self.asset_store = asset_store
        self.codec = codec
        self.sessions = sessions
        self.audit_log = audit_log
        self.keep_both_suffix = keep_both_suffix

    def import_session(
        self,
        session_id: str,
        strategies: Optional[ImportStrategies] = None,
    ) -> ImportReport:
        """
        Merge a scanned bundle into the local store.

        Args:
            session_id: Id returned by the scan
            strategies: Per-record choices; unlisted records use keep_both

        Returns:
            ImportReport with counts

        Raises:
            SessionExpired: If the session is unknown, consumed, or gone
            StoreTransactionFailure: If the store rejects the merge (rolled back)
        """
        strategies = strategies or ImportStrategies()
        session = self.sessions.claim(session_id)

        report = ImportReport(session_id=session_id, started_at=datetime.now(timezone.utc))
        try:
            with SessionContext(session_id=session_id, operation="import"):
                metadata = self.codec.read_metadata(session.working_directory)
                merge = _MergePass(self, session, strategies, report)
                merge.run(metadata)
        finally:
            self.sessions.dispose(session_id)

        report.completed_at = datetime.now(timezone.utc)

        if self.audit_log is not None:
            self.audit_log.record(
                "IMPORT",
                "INVENTORY",
                0,
                {
                    "key": "log.backup.import",
                    "params": {
                        "session": session_id[:8],
                        "inv": len(metadata.inventory),
                        "proj": len(metadata.projects),
                    },
                },
            )

        logger.info(
            f"Import committed: inventory +{report.inventory_inserted}/~{report.inventory_updated}"
            f"/={report.inventory_skipped}, projects +{report.projects_inserted}"
            f"/~{report.projects_updated}/={report.projects_skipped}, "
            f"links +{report.links_inserted} (dropped {report.links_dropped}), "
            f"asset failures {report.asset_failures}"
        )
        return report


class _MergePass:
    """State of one import: id maps, freshly copied files, report."""

    def __init__(
        self,
        engine: MergeEngine,
        session: ScanSession,
        strategies: ImportStrategies,
        report: ImportReport,
    ):
        self.store = engine.store
        self.asset_store = engine.asset_store
        self.keep_both_suffix = engine.keep_both_suffix
        self.session = session
        self.strategies = strategies
        self.report = report

        self.inventory_map: Dict[int, int] = {}
        self.project_map: Dict[int, int] = {}
        self.overwritten_projects: Set[int] = set()
        self.new_files: List[str] = []

    def run(self, metadata: BundleMetadata) -> None:
        try:
            with self.store.transaction():
                self._merge_inventory(metadata)
                self._merge_projects(metadata)
                self._rebuild_links(metadata)
        except BaseException:
            self._discard_new_files()
            raise

    def _merge_inventory(self, metadata: BundleMetadata) -> None:
        for remote in metadata.inventory:
            strategy = self.strategies.for_inventory(remote.id)
            existing = self.store.find_inventory(remote.name, remote.package, remote.value)

            if existing is not None and strategy == Strategy.SKIP:
                self._map(self.inventory_map, remote.id, existing.id)
                self.report.inventory_skipped += 1
                continue

            # Assets first so no row ever points at a file that failed to copy
            incoming = dataclasses.replace(
                remote,
                image_paths=self._import_assets(remote.image_paths, remote.label),
                datasheet_paths=self._import_assets(remote.datasheet_paths, remote.label),
            )

            if existing is not None and strategy == Strategy.OVERWRITE:
                self.store.overwrite_inventory(existing.id, incoming)
                self._map(self.inventory_map, remote.id, existing.id)
                self.report.inventory_updated += 1
                continue

            name = remote.name
            if existing is not None:
                name = self._keep_both_name(
                    remote.name,
                    lambda n: self.store.find_inventory(n, remote.package, remote.value) is not None,
                )

            # Exported stock counts are stale; new rows start empty
            local_id = self.store.insert_inventory(
                dataclasses.replace(incoming, id=None, name=name, quantity=0, location="")
            )
            self._map(self.inventory_map, remote.id, local_id)
            self.report.inventory_inserted += 1

    def _merge_projects(self, metadata: BundleMetadata) -> None:
        for remote in metadata.projects:
            strategy = self.strategies.for_project(remote.id)
            existing = self.store.find_project(remote.name)

            if existing is not None and strategy == Strategy.SKIP:
                self._map(self.project_map, remote.id, existing.id)
                self.report.projects_skipped += 1
                continue

            incoming = dataclasses.replace(
                remote, files=self._import_assets(remote.files, remote.label)
            )

            if existing is not None and strategy == Strategy.OVERWRITE:
                self.store.overwrite_project(existing.id, incoming)
                self._map(self.project_map, remote.id, existing.id)
                self.overwritten_projects.add(existing.id)
                self.report.projects_updated += 1
                continue

            name = remote.name
            if existing is not None:
                name = self._keep_both_name(
                    remote.name, lambda n: self.store.find_project(n) is not None
                )

            local_id = self.store.insert_project(
                dataclasses.replace(incoming, id=None, name=name)
            )
            self._map(self.project_map, remote.id, local_id)
            self.report.projects_inserted += 1

    def _rebuild_links(self, metadata: BundleMetadata) -> None:
        # Overwritten projects take the bundle's link set wholesale
        for project_id in sorted(self.overwritten_projects):
            removed = self.store.delete_links(project_id)
            logger.debug(f"Cleared {removed} links of overwritten project {project_id}")

        for link in metadata.project_links:
            local_project = self.project_map.get(link.project_id)
            local_inventory = self.inventory_map.get(link.inventory_id)

            if local_project is None or local_inventory is None:
                logger.debug(
                    f"Dropping link project={link.project_id} "
                    f"inventory={link.inventory_id}: endpoint not in bundle"
                )
                self.report.links_dropped += 1
                continue

            if self.store.link_exists(local_project, local_inventory):
                continue

            self.store.insert_link(
                ProjectLink(
                    project_id=local_project,
                    inventory_id=local_inventory,
                    quantity=link.quantity,
                )
            )
            self.report.links_inserted += 1

    def _import_assets(self, paths: List[str], label: str) -> List[str]:
        """
        Copy one record field's attachments into the asset store.

        A path escaping the bundle skips only that asset. A file that cannot
        be located or copied empties the whole list for this field.
        """
        stored: List[str] = []
        fresh: List[str] = []

        for relative_path in paths:
            try:
                source = resolve_bundle_asset(self.session.assets_dir, relative_path)
                if source is None:
                    raise AssetIOFailure(
                        f"Asset missing from bundle: {relative_path}", asset_path=relative_path
                    )
                result = self.asset_store.import_asset(
                    source, PurePosixPath(relative_path).name
                )
            except PathEscape as e:
                logger.warning(f"Skipping asset of '{label}': {e}")
                self.report.asset_failures += 1
                self._mark_degraded(label)
                continue
            except AssetIOFailure as e:
                logger.warning(f"Dropping attachments of '{label}': {e}")
                self.report.asset_failures += 1
                self._mark_degraded(label)
                for name in fresh:
                    self._remove_file(name)
                    self.new_files.remove(name)
                    self.report.assets_copied -= 1
                return []

            if result.copied:
                fresh.append(result.relative_path)
                self.new_files.append(result.relative_path)
                self.report.assets_copied += 1
            else:
                self.report.assets_deduplicated += 1
            stored.append(result.relative_path)

        return stored

    def _mark_degraded(self, label: str) -> None:
        if label not in self.report.degraded_records:
            self.report.degraded_records.append(label)

    def _discard_new_files(self) -> None:
        """Remove files copied by a pass that did not commit."""
        for name in self.new_files:
            self._remove_file(name)
        if self.new_files:
            logger.info(f"Removed {len(self.new_files)} assets copied by the rolled-back import")
        self.new_files = []

    def _remove_file(self, name: str) -> None:
        try:
            self.asset_store.remove(name)
        except OSError as e:
            logger.warning(f"Could not remove asset {name}: {e}")

    @staticmethod
    def _map(mapping: Dict[int, int], remote_id: Optional[int], local_id: int) -> None:
        if remote_id is not None:
            mapping[remote_id] = local_id

    def _keep_both_name(self, name: str, taken: Callable[[str], bool]) -> str:
        """Suffixed name for a kept copy, numbered when earlier copies exist."""
        candidate = f"{name}{self.keep_both_suffix}"
        counter = 2
        while taken(candidate):
            candidate = f"{name}{self.keep_both_suffix} {counter}"
            counter += 1
        return candidate
