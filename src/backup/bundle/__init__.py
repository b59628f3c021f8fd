"""
Bundle export, scan and import.

Provides:
- Content hashing and the flat asset store
- The zip bundle codec (meta.json + assets/)
- Scan sessions, the scanner and the merge engine
- Template bundles and auto backup rotation
"""

from .hashing import compute_file_hash, compute_hash_set
from .asset_store import AssetStore, StoredAsset, safe_join, resolve_bundle_asset
from .codec import BundleCodec, META_FILENAME, ASSETS_DIRNAME
from .sessions import SessionStore
from .exporter import Exporter
from .scanner import Scanner, assets_differ
from .merge_engine import MergeEngine
from .template import generate_template_bundle
from .rotation import create_auto_backup, clean_old_backups
from .manager import BackupManager

__all__ = [
    "compute_file_hash",
    "compute_hash_set",
    "AssetStore",
    "StoredAsset",
    "safe_join",
    "resolve_bundle_asset",
    "BundleCodec",
    "META_FILENAME",
    "ASSETS_DIRNAME",
    "SessionStore",
    "Exporter",
    "Scanner",
    "assets_differ",
    "MergeEngine",
    "generate_template_bundle",
    "create_auto_backup",
    "clean_old_backups",
    "BackupManager",
]
