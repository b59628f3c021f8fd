"""
Scheduled full backups and retention.
"""

import logging
import re
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Union

from ..core.models import ExportResult
from .exporter import Exporter


logger = logging.getLogger(__name__)

AUTO_BACKUP_PREFIX = "AutoBackup_"
AUTO_BACKUP_SUFFIX = ".svdata"
AUTO_BACKUP_PATTERN = re.compile(r"^AutoBackup_\d{8}_\d{6}\.svdata$")


def auto_backup_name(now: Optional[datetime] = None) -> str:
    """File name for a backup taken at ``now`` (local time)."""
    now = now or datetime.now()
    return f"{AUTO_BACKUP_PREFIX}{now.strftime('%Y%m%d_%H%M%S')}{AUTO_BACKUP_SUFFIX}"


def create_auto_backup(exporter: Exporter, target_dir: Union[str, Path]) -> ExportResult:
    """
    Export everything into a timestamped archive under target_dir.

    Args:
        exporter: Exporter bound to the local store
        target_dir: Backup directory, created if missing

    Returns:
        ExportResult of the backup
    """
    target_dir = Path(target_dir)
    target_dir.mkdir(parents=True, exist_ok=True)

    output_path = target_dir / auto_backup_name()
    logger.info(f"Creating auto backup {output_path.name}")
    return exporter.export_all(output_path)


def clean_old_backups(target_dir: Union[str, Path], max_backups: int) -> List[Path]:
    """
    Keep the newest max_backups auto backups and delete the rest.

    A CSV file with the same stem next to a deleted backup is removed too.
    Files not named like auto backups are never touched.

    Args:
        target_dir: Backup directory
        max_backups: Number of backups to retain; <= 0 disables cleanup

    Returns:
        Paths of the deleted backups
    """
    target_dir = Path(target_dir)
    if max_backups <= 0 or not target_dir.is_dir():
        return []

    backups = []
    for path in target_dir.iterdir():
        if not AUTO_BACKUP_PATTERN.match(path.name):
            continue
        try:
            backups.append((path.stat().st_mtime, path.name, path))
        except FileNotFoundError:
            continue

    # Newest first; the timestamped name breaks mtime ties
    backups.sort(reverse=True)

    deleted = []
    for _, _, path in backups[max_backups:]:
        path.unlink()
        sidecar = path.with_suffix(".csv")
        if sidecar.exists():
            sidecar.unlink()
        deleted.append(path)

    if deleted:
        logger.info(f"Cleaned {len(deleted)} old backups from {target_dir}")
    return deleted
