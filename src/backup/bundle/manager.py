"""
Backup manager.

Wires the store, asset store, codec, session registry and the three bundle
operations together for one storage root.
"""

import logging
from pathlib import Path
from typing import Iterable, List, Optional

from ..config.config_loader import BackupConfig
from ..core.models import ExportResult, ImportReport, ImportStrategies, ScanResult
from ..core.store import AuditLog, InventoryStore
from .asset_store import AssetStore
from .codec import BundleCodec
from .exporter import Exporter
from .merge_engine import DEFAULT_KEEP_BOTH_SUFFIX, MergeEngine
from .rotation import clean_old_backups, create_auto_backup
from .scanner import Scanner
from .sessions import SessionStore
from .template import generate_template_bundle


logger = logging.getLogger(__name__)


class BackupManager:
    """
    Entry point for export, scan, import and auto backups.

    Example:
        >>> manager = BackupManager.from_config(BackupConfig())
        >>> result = manager.scan(Path("bundle.svdata"))
        >>> report = manager.import_session(result.scan_id, ImportStrategies())
        >>> manager.close()
    """

    def __init__(
        self,
        store: InventoryStore,
        asset_store: AssetStore,
        sessions: SessionStore,
        codec: Optional[BundleCodec] = None,
        audit_log: Optional[AuditLog] = None,
        keep_both_suffix: str = DEFAULT_KEEP_BOTH_SUFFIX,
    ):
        self.store = store
        self.asset_store = asset_store
        self.sessions = sessions
        self.codec = codec or BundleCodec()
        self.audit_log = audit_log

        self.exporter = Exporter(store, asset_store, self.codec, audit_log)
        self.scanner = Scanner(store, asset_store, self.codec, sessions)
        self.merge_engine = MergeEngine(
            store,
            asset_store,
            self.codec,
            sessions,
            audit_log=audit_log,
            keep_both_suffix=keep_both_suffix,
        )

    @classmethod
    def from_config(cls, config: BackupConfig) -> "BackupManager":
        """Build a manager backed by SQLite under the configured storage root."""
        from ..store import SqliteAuditLog, SqliteInventoryStore

        store = SqliteInventoryStore(config.db_path)
        logger.info(f"Using storage root {config.storage_root}")
        return cls(
            store=store,
            asset_store=AssetStore(config.assets_root),
            sessions=SessionStore(config.session_root),
            codec=BundleCodec(default_min_stock=config.default_min_stock),
            audit_log=SqliteAuditLog(store),
            keep_both_suffix=config.keep_both_suffix,
        )

    def export_all(self, output_path: Path) -> ExportResult:
        return self.exporter.export_all(output_path)

    def export_subset(
        self,
        output_path: Path,
        project_ids: Optional[Iterable[int]] = None,
        inventory_ids: Optional[Iterable[int]] = None,
    ) -> ExportResult:
        return self.exporter.export_subset(output_path, project_ids, inventory_ids)

    def scan(self, archive_path: Path) -> ScanResult:
        return self.scanner.scan(archive_path)

    def import_session(
        self, session_id: str, strategies: Optional[ImportStrategies] = None
    ) -> ImportReport:
        return self.merge_engine.import_session(session_id, strategies)

    def cancel_session(self, session_id: str) -> None:
        """Discard a scanned bundle without importing it."""
        self.sessions.dispose(session_id)

    def generate_template(self, output_path: Path) -> Path:
        return generate_template_bundle(output_path, self.codec)

    def auto_backup(self, target_dir: Path, max_backups: int) -> ExportResult:
        """
        Take a full backup into target_dir, then prune old ones.

        Args:
            target_dir: Backup directory
            max_backups: Number of backups to keep (<= 0 keeps all)

        Returns:
            ExportResult of the new backup
        """
        result = create_auto_backup(self.exporter, target_dir)
        clean_old_backups(target_dir, max_backups)
        return result

    def close(self) -> None:
        """Dispose pending sessions and close the store."""
        pending: List[str] = self.sessions.active_ids()
        if pending:
            logger.info(f"Disposing {len(pending)} unimported scan sessions")
        self.sessions.dispose_all()
        self.store.close()
