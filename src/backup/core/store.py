"""
Store interfaces consumed by the bundle engine.

The relational store and the audit log are owned by the surrounding
application; the engine only needs the primitives declared here.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Iterable, Iterator, List, Optional

from .models import InventoryRecord, ProjectLink, ProjectRecord


class InventoryStore(ABC):
    """
    Abstract base class for the local inventory store.

    Row-level primitives for inventory, projects and project links, plus a
    transaction scope. Records returned carry local ids.
    """

    @abstractmethod
    def find_inventory(self, name: str, package: str, value: str) -> Optional[InventoryRecord]:
        """
        Find the first inventory row with the given identity.

        Args:
            name: Part name
            package: Package/footprint
            value: Part value

        Returns:
            InventoryRecord if found, None otherwise
        """
        pass

    @abstractmethod
    def find_project(self, name: str) -> Optional[ProjectRecord]:
        """Find the first project with the given name."""
        pass

    @abstractmethod
    def list_inventory(self, ids: Optional[Iterable[int]] = None) -> List[InventoryRecord]:
        """List inventory rows ordered by id, optionally restricted to ids."""
        pass

    @abstractmethod
    def list_projects(self, ids: Optional[Iterable[int]] = None) -> List[ProjectRecord]:
        """List projects ordered by id, optionally restricted to ids."""
        pass

    @abstractmethod
    def list_links(self, project_ids: Optional[Iterable[int]] = None) -> List[ProjectLink]:
        """List project links, optionally restricted to project ids."""
        pass

    @abstractmethod
    def insert_inventory(self, record: InventoryRecord) -> int:
        """Insert an inventory row and return its new id."""
        pass

    @abstractmethod
    def overwrite_inventory(self, inventory_id: int, record: InventoryRecord) -> None:
        """
        Overwrite the mutable fields of an existing inventory row.

        Only category, min_stock and the asset lists change; quantity and
        location stay as they are locally.
        """
        pass

    @abstractmethod
    def insert_project(self, record: ProjectRecord) -> int:
        """Insert a project row and return its new id."""
        pass

    @abstractmethod
    def overwrite_project(self, project_id: int, record: ProjectRecord) -> None:
        """Replace description and file list of an existing project."""
        pass

    @abstractmethod
    def delete_links(self, project_id: int) -> int:
        """Delete every link of a project. Returns number of rows removed."""
        pass

    @abstractmethod
    def link_exists(self, project_id: int, inventory_id: int) -> bool:
        """Check whether a (project, inventory) link already exists."""
        pass

    @abstractmethod
    def insert_link(self, link: ProjectLink) -> None:
        """Insert a project link (local ids)."""
        pass

    @abstractmethod
    @contextmanager
    def transaction(self) -> Iterator[None]:
        """
        Group statements into one transaction.

        Commits when the block exits normally and rolls back on any
        exception.
        """
        pass

    def close(self) -> None:
        """Close any open resources. Optional."""
        pass


class AuditLog(ABC):
    """Fire-and-forget operation log."""

    @abstractmethod
    def record(
        self,
        op_type: str,
        target_type: str,
        target_id: int,
        description: dict,
    ) -> None:
        """
        Record an operation. Must never raise.

        Args:
            op_type: Operation kind tag (EXPORT, IMPORT, ...)
            target_type: Entity kind (INVENTORY, PROJECT)
            target_id: Entity id, 0 for bulk operations
            description: Structured description ({"key": ..., "params": {...}})
        """
        pass
