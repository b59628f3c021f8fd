"""
Bundle export.

Selects records from the local store, gathers the attachments they reference
and hands both to the codec.
"""

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from ..core.exceptions import PathEscape
from ..core.models import BundleMetadata, ExportResult, InventoryRecord, ProjectLink, ProjectRecord
from ..core.store import AuditLog, InventoryStore
from .asset_store import AssetStore
from .codec import BundleCodec


logger = logging.getLogger(__name__)


class Exporter:
    """
    Produces bundle archives from the local store.

    Supports:
    - Full export (every record, link and referenced asset)
    - Subset export by project and inventory ids
    """

    def __init__(
        self,
        store: InventoryStore,
        asset_store: AssetStore,
        codec: BundleCodec,
        audit_log: Optional[AuditLog] = None,
    ):
        self.store = store
        self.asset_store = asset_store
        self.codec = codec
        self.audit_log = audit_log

    def export_all(self, output_path: Path) -> ExportResult:
        """
        Export every inventory record, project and link.

        Args:
            output_path: Destination archive path

        Returns:
            ExportResult with counts
        """
        inventory = self.store.list_inventory()
        projects = self.store.list_projects()
        links = self.store.list_links()
        return self._export(output_path, inventory, projects, links)

    def export_subset(
        self,
        output_path: Path,
        project_ids: Optional[Iterable[int]] = None,
        inventory_ids: Optional[Iterable[int]] = None,
    ) -> ExportResult:
        """
        Export the named projects and inventory items.

        Inventory used by a named project is included as well. Projects that
        are not named stay out even if they share inventory with named ones.

        Args:
            output_path: Destination archive path
            project_ids: Projects to include
            inventory_ids: Inventory items to include

        Returns:
            ExportResult with counts
        """
        project_ids = list(project_ids or [])
        target_inventory_ids = set(inventory_ids or [])

        projects = self.store.list_projects(project_ids) if project_ids else []
        links = self.store.list_links([p.id for p in projects]) if projects else []
        target_inventory_ids.update(link.inventory_id for link in links)

        inventory = self.store.list_inventory(target_inventory_ids) if target_inventory_ids else []
        return self._export(output_path, inventory, projects, links)

    def _export(
        self,
        output_path: Path,
        inventory: List[InventoryRecord],
        projects: List[ProjectRecord],
        links: List[ProjectLink],
    ) -> ExportResult:
        output_path = Path(output_path)

        inventory_ids = {r.id for r in inventory}
        project_ids = {p.id for p in projects}
        kept_links = [
            link for link in links
            if link.project_id in project_ids and link.inventory_id in inventory_ids
        ]
        if len(kept_links) != len(links):
            logger.warning(
                f"Omitting {len(links) - len(kept_links)} links that reference "
                f"records outside the export"
            )

        assets: Dict[str, Path] = {}
        for record in inventory:
            self._collect_assets(record.image_paths, assets)
            self._collect_assets(record.datasheet_paths, assets)
        for project in projects:
            self._collect_assets(project.files, assets)

        metadata = BundleMetadata.create(
            inventory=inventory,
            projects=projects,
            project_links=kept_links,
        )
        self.codec.write(output_path, metadata, assets)

        result = ExportResult(
            path=output_path,
            inventory_count=len(inventory),
            project_count=len(projects),
            link_count=len(kept_links),
            file_count=len(assets),
        )

        if self.audit_log is not None:
            self.audit_log.record(
                "EXPORT",
                "PROJECT",
                0,
                {
                    "key": "log.backup.export",
                    "params": {
                        "file": output_path.name,
                        "inv": result.inventory_count,
                        "proj": result.project_count,
                    },
                },
            )

        logger.info(
            f"Exported {result.inventory_count} inventory, {result.project_count} projects, "
            f"{result.link_count} links, {result.file_count} files to {output_path}"
        )
        return result

    def _collect_assets(self, paths: List[str], assets: Dict[str, Path]) -> None:
        """Add each existing referenced asset once."""
        for relative_path in paths:
            if relative_path in assets:
                continue
            try:
                full_path = self.asset_store.locate(relative_path)
            except PathEscape as e:
                logger.warning(f"Skipping asset outside asset root: {e}")
                continue
            if full_path.is_file():
                assets[relative_path] = full_path
            else:
                logger.debug(f"Referenced asset missing, not packed: {relative_path}")
