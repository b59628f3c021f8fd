"""
Core data models for backup bundles.

Defines the records carried inside meta.json, the strategy map consumed by the
merge engine, and the result objects returned by export, scan and import.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


BUNDLE_VERSION = "2.0"
DEFAULT_MIN_STOCK = 10


def parse_asset_paths(raw: Any) -> List[str]:
    """
    Parse an asset path list from a record field.

    Accepts a list, a JSON-encoded list (the column encoding), or None.
    Anything malformed is treated as an empty list.

    Args:
        raw: Raw field value

    Returns:
        List of forward-slash-normalized relative paths
    """
    if raw is None or raw == "":
        return []

    value = raw
    if isinstance(raw, str):
        try:
            value = json.loads(raw)
        except ValueError:
            logger.debug(f"Unparseable asset list treated as empty: {raw[:80]!r}")
            return []

    if not isinstance(value, list):
        return []

    return [str(p).replace("\\", "/") for p in value if isinstance(p, str) and p]


def _int_or(value: Any, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _str_or_empty(value: Any) -> str:
    # Numeric JSON values such as 0 are part of a record's identity
    if value is None:
        return ""
    return str(value)


class Strategy(str, Enum):
    """Per-record conflict resolution chosen by the operator."""
    SKIP = "skip"
    OVERWRITE = "overwrite"
    KEEP_BOTH = "keep_both"


@dataclass
class InventoryRecord:
    """
    One inventory row as carried in a bundle.

    Identity for matching against the local store is (name, package, value).
    """
    id: Optional[int]
    name: str
    category: str = ""
    value: str = ""
    package: str = ""
    quantity: int = 0
    location: str = ""
    min_stock: int = DEFAULT_MIN_STOCK
    image_paths: List[str] = field(default_factory=list)
    datasheet_paths: List[str] = field(default_factory=list)

    @property
    def identity(self) -> tuple:
        return (self.name, self.package, self.value)

    @property
    def label(self) -> str:
        return f"{self.name} {self.value} {self.package}".strip()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "category": self.category,
            "name": self.name,
            "value": self.value,
            "package": self.package,
            "quantity": self.quantity,
            "location": self.location,
            "min_stock": self.min_stock,
            "image_paths": list(self.image_paths),
            "datasheet_paths": list(self.datasheet_paths),
        }

    @classmethod
    def from_dict(
        cls, data: Dict[str, Any], default_min_stock: int = DEFAULT_MIN_STOCK
    ) -> "InventoryRecord":
        return cls(
            id=_int_or(data.get("id"), None),
            category=_str_or_empty(data.get("category")),
            name=_str_or_empty(data.get("name")),
            value=_str_or_empty(data.get("value")),
            package=_str_or_empty(data.get("package")),
            quantity=_int_or(data.get("quantity"), 0),
            location=_str_or_empty(data.get("location")),
            min_stock=_int_or(data.get("min_stock"), default_min_stock),
            image_paths=parse_asset_paths(data.get("image_paths")),
            datasheet_paths=parse_asset_paths(data.get("datasheet_paths")),
        )


@dataclass
class ProjectRecord:
    """
    One project row as carried in a bundle.

    Identity for matching against the local store is the name.
    """
    id: Optional[int]
    name: str
    description: str = ""
    created_at: Optional[str] = None
    order_index: int = 0
    files: List[str] = field(default_factory=list)

    @property
    def label(self) -> str:
        return self.name

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "created_at": self.created_at,
            "order_index": self.order_index,
            "files": list(self.files),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProjectRecord":
        return cls(
            id=_int_or(data.get("id"), None),
            name=_str_or_empty(data.get("name")),
            description=_str_or_empty(data.get("description")),
            created_at=data.get("created_at"),
            order_index=_int_or(data.get("order_index"), 0),
            files=parse_asset_paths(data.get("files")),
        )


@dataclass
class ProjectLink:
    """Association of an inventory item to a project, in bundle-local ids."""
    project_id: int
    inventory_id: int
    quantity: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "project_id": self.project_id,
            "inventory_id": self.inventory_id,
            "quantity": self.quantity,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProjectLink":
        return cls(
            project_id=_int_or(data.get("project_id"), None),
            inventory_id=_int_or(data.get("inventory_id"), None),
            quantity=_int_or(data.get("quantity"), 0),
        )


@dataclass
class BundleMetadata:
    """
    The meta.json document of a bundle.

    created_at is epoch milliseconds.
    """
    inventory: List[InventoryRecord] = field(default_factory=list)
    projects: List[ProjectRecord] = field(default_factory=list)
    project_links: List[ProjectLink] = field(default_factory=list)
    version: str = BUNDLE_VERSION
    created_at: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "createdAt": self.created_at,
            "inventory": [r.to_dict() for r in self.inventory],
            "projects": [p.to_dict() for p in self.projects],
            "projectLinks": [link.to_dict() for link in self.project_links],
        }

    @classmethod
    def from_dict(
        cls, data: Dict[str, Any], default_min_stock: int = DEFAULT_MIN_STOCK
    ) -> "BundleMetadata":
        links = data.get("projectLinks")
        if links is None:
            # Bundles written before the rename carry "projectItems"
            links = data.get("projectItems") or []

        return cls(
            version=str(data.get("version", BUNDLE_VERSION)),
            created_at=_int_or(data.get("createdAt"), 0),
            inventory=[
                InventoryRecord.from_dict(r, default_min_stock)
                for r in data.get("inventory") or []
                if isinstance(r, dict)
            ],
            projects=[
                ProjectRecord.from_dict(p)
                for p in data.get("projects") or []
                if isinstance(p, dict)
            ],
            project_links=[
                ProjectLink.from_dict(link) for link in links if isinstance(link, dict)
            ],
        )

    @classmethod
    def create(cls, **kwargs) -> "BundleMetadata":
        """Create metadata stamped with the current time."""
        created_at = int(datetime.now(timezone.utc).timestamp() * 1000)
        return cls(created_at=created_at, **kwargs)


@dataclass
class ScanSession:
    """An extracted bundle waiting for import."""
    session_id: str
    working_directory: Path
    metadata: Optional[BundleMetadata] = None

    @property
    def assets_dir(self) -> Path:
        return self.working_directory / "assets"


@dataclass
class ConflictItem:
    """A remote record whose identity already exists locally."""
    local: Any
    remote: Any
    has_asset_difference: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "local": self.local.to_dict(),
            "remote": self.remote.to_dict(),
            "hasAssetDifference": self.has_asset_difference,
        }


@dataclass
class ScanResult:
    """Report produced by scanning a bundle against the local store."""
    scan_id: str
    metadata: BundleMetadata
    inventory_conflicts: List[ConflictItem] = field(default_factory=list)
    project_conflicts: List[ConflictItem] = field(default_factory=list)
    new_inventory: int = 0
    new_projects: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scanId": self.scan_id,
            "meta": self.metadata.to_dict(),
            "conflicts": {
                "inventory": [c.to_dict() for c in self.inventory_conflicts],
                "projects": [c.to_dict() for c in self.project_conflicts],
            },
            "newItems": {
                "inventory": self.new_inventory,
                "projects": self.new_projects,
            },
        }


def _coerce_strategy_map(raw: Optional[Dict[Any, Any]]) -> Dict[int, Strategy]:
    result: Dict[int, Strategy] = {}
    for key, value in (raw or {}).items():
        result[int(key)] = value if isinstance(value, Strategy) else Strategy(value)
    return result


@dataclass
class ImportStrategies:
    """
    Operator choices per bundle-local record id.

    Ids that are not listed resolve to keep_both.
    """
    inventory: Dict[int, Strategy] = field(default_factory=dict)
    projects: Dict[int, Strategy] = field(default_factory=dict)

    def for_inventory(self, remote_id: Optional[int]) -> Strategy:
        return self.inventory.get(remote_id, Strategy.KEEP_BOTH)

    def for_project(self, remote_id: Optional[int]) -> Strategy:
        return self.projects.get(remote_id, Strategy.KEEP_BOTH)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ImportStrategies":
        """Build from ``{"inventory": {id: strategy}, "projects": {...}}``."""
        data = data or {}
        return cls(
            inventory=_coerce_strategy_map(data.get("inventory")),
            projects=_coerce_strategy_map(data.get("projects")),
        )

    @classmethod
    def uniform(cls, metadata: BundleMetadata, strategy: Strategy) -> "ImportStrategies":
        """Apply one strategy to every record in the bundle."""
        return cls(
            inventory={r.id: strategy for r in metadata.inventory},
            projects={p.id: strategy for p in metadata.projects},
        )


@dataclass
class ExportResult:
    """Outcome of an export."""
    path: Path
    inventory_count: int = 0
    project_count: int = 0
    link_count: int = 0
    file_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": str(self.path),
            "count": {
                "inventory": self.inventory_count,
                "projects": self.project_count,
                "links": self.link_count,
                "files": self.file_count,
            },
        }


@dataclass
class ImportReport:
    """Report of an import pass."""
    session_id: str
    started_at: datetime
    completed_at: Optional[datetime] = None

    inventory_inserted: int = 0
    inventory_updated: int = 0
    inventory_skipped: int = 0

    projects_inserted: int = 0
    projects_updated: int = 0
    projects_skipped: int = 0

    links_inserted: int = 0
    links_dropped: int = 0

    assets_copied: int = 0
    assets_deduplicated: int = 0
    asset_failures: int = 0
    degraded_records: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "inventory": {
                "inserted": self.inventory_inserted,
                "updated": self.inventory_updated,
                "skipped": self.inventory_skipped,
            },
            "projects": {
                "inserted": self.projects_inserted,
                "updated": self.projects_updated,
                "skipped": self.projects_skipped,
            },
            "links": {
                "inserted": self.links_inserted,
                "dropped": self.links_dropped,
            },
            "assets": {
                "copied": self.assets_copied,
                "deduplicated": self.assets_deduplicated,
                "failures": self.asset_failures,
            },
            "degraded_records": list(self.degraded_records),
        }

    def summary(self) -> str:
        """Get a human-readable summary."""
        lines = [
            f"Import Report (session {self.session_id[:8]})",
            f"  Duration: {(self.completed_at - self.started_at).total_seconds():.1f}s" if self.completed_at else "",
            "",
            "  Inventory:",
            f"    Inserted: {self.inventory_inserted}",
            f"    Updated: {self.inventory_updated}",
            f"    Skipped: {self.inventory_skipped}",
            "",
            "  Projects:",
            f"    Inserted: {self.projects_inserted}",
            f"    Updated: {self.projects_updated}",
            f"    Skipped: {self.projects_skipped}",
            "",
            f"  Links inserted: {self.links_inserted}",
            f"  Links dropped: {self.links_dropped}",
            "",
            f"  Assets copied: {self.assets_copied}",
            f"  Assets deduplicated: {self.assets_deduplicated}",
            f"  Asset failures: {self.asset_failures}",
        ]
        return "\n".join(lines)
