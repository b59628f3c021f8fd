"""
Configuration loader for the backup bundle engine.
"""

import copy
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from ..core.exceptions import BackupConfigError
from ..core.models import DEFAULT_MIN_STOCK


logger = logging.getLogger(__name__)


DEFAULT_CONFIG: Dict[str, Any] = {
    "storage": {
        "root_dir": "local/vault",
        "db_name": "inventory.db",
        "assets_dir_name": "assets",
    },
    "sessions": {
        "temp_dir": None,
    },
    "import": {
        "keep_both_suffix": " (Imported)",
        "default_min_stock": DEFAULT_MIN_STOCK,
    },
    "auto_backup": {
        "dir": "local/vault/backups",
        "max_backups": 10,
    },
    "logging": {
        "level": "INFO",
        "structured": False,
    },
}


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class BackupConfig:
    """
    Configuration for the backup bundle engine.

    Loads an optional YAML file on top of the built-in defaults, then applies
    environment variable overrides:

    - VAULT_STORAGE_DIR: storage.root_dir
    - VAULT_SESSION_DIR: sessions.temp_dir
    - VAULT_BACKUP_DIR: auto_backup.dir
    - VAULT_LOG_LEVEL: logging.level
    """

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize configuration.

        Args:
            config_path: Path to YAML config file (optional)
        """
        self.config_path = Path(config_path) if config_path else None
        loaded = self._load_config() if self.config_path else {}
        self.config = _deep_merge(DEFAULT_CONFIG, loaded)
        self._apply_env_overrides()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            raise BackupConfigError(f"Config file not found: {self.config_path}")

        logger.info(f"Loading config from: {self.config_path}")

        with open(self.config_path, "r", encoding="utf-8") as f:
            try:
                config = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise BackupConfigError(f"Invalid YAML in {self.config_path}: {e}") from e

        if config is None:
            return {}
        if not isinstance(config, dict):
            raise BackupConfigError(
                f"Config file must contain a mapping at top level: {self.config_path}"
            )
        return config

    def _apply_env_overrides(self) -> None:
        """Apply environment variable overrides to loaded config."""
        overrides = {
            "VAULT_STORAGE_DIR": ("storage", "root_dir"),
            "VAULT_SESSION_DIR": ("sessions", "temp_dir"),
            "VAULT_BACKUP_DIR": ("auto_backup", "dir"),
            "VAULT_LOG_LEVEL": ("logging", "level"),
        }
        for env_var, (section, key) in overrides.items():
            value = os.environ.get(env_var)
            if value:
                self.config.setdefault(section, {})[key] = value

    @property
    def storage_root(self) -> Path:
        return Path(self.get("storage.root_dir"))

    @property
    def db_path(self) -> Path:
        return self.storage_root / self.get("storage.db_name", "inventory.db")

    @property
    def assets_root(self) -> Path:
        return self.storage_root / self.get("storage.assets_dir_name", "assets")

    @property
    def session_root(self) -> Path:
        configured = self.get("sessions.temp_dir")
        if configured:
            return Path(configured)
        return Path(tempfile.gettempdir()) / "vault_import"

    @property
    def keep_both_suffix(self) -> str:
        return self.get("import.keep_both_suffix", " (Imported)")

    @property
    def default_min_stock(self) -> int:
        return int(self.get("import.default_min_stock", DEFAULT_MIN_STOCK))

    @property
    def backup_dir(self) -> Path:
        return Path(self.get("auto_backup.dir"))

    @property
    def max_backups(self) -> int:
        return int(self.get("auto_backup.max_backups", 10))

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value by dotted key."""
        keys = key.split(".")
        value = self.config

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default

        return value if value is not None else default
