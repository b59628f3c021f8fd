"""
Core abstractions and models for the backup bundle engine.
"""

from .models import (
    BundleMetadata, InventoryRecord, ProjectRecord, ProjectLink,
    ScanSession, ScanResult, ConflictItem, ImportStrategies, ImportReport,
    ExportResult, Strategy, parse_asset_paths, BUNDLE_VERSION, DEFAULT_MIN_STOCK,
)
from .exceptions import (
    BackupError, InvalidBundle, SessionExpired, AssetIOFailure,
    StoreTransactionFailure, PathEscape, BackupConfigError,
)
from .store import InventoryStore, AuditLog

__all__ = [
    "BundleMetadata",
    "InventoryRecord",
    "ProjectRecord",
    "ProjectLink",
    "ScanSession",
    "ScanResult",
    "ConflictItem",
    "ImportStrategies",
    "ImportReport",
    "ExportResult",
    "Strategy",
    "parse_asset_paths",
    "BUNDLE_VERSION",
    "DEFAULT_MIN_STOCK",
    "BackupError",
    "InvalidBundle",
    "SessionExpired",
    "AssetIOFailure",
    "StoreTransactionFailure",
    "PathEscape",
    "BackupConfigError",
    "InventoryStore",
    "AuditLog",
]
