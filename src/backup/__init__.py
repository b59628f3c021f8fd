"""
Backup bundle engine for the component inventory.

Exports inventory, projects and their attachments into portable bundles and
merges bundles back into a local store with per-record conflict strategies.
"""

from .core.models import ImportStrategies, Strategy
from .bundle.manager import BackupManager
from .config.config_loader import BackupConfig

__version__ = "0.1.0"

__all__ = ["BackupManager", "BackupConfig", "ImportStrategies", "Strategy"]
