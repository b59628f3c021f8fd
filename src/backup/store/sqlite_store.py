"""
SQLite-based inventory store.

Holds inventory, projects, project links and the operation log in one local
database file. Only the row-level primitives the bundle engine needs live
here; everyday CRUD belongs to the application.
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Union

from ..core.exceptions import StoreTransactionFailure
from ..core.models import (
    DEFAULT_MIN_STOCK,
    InventoryRecord,
    ProjectLink,
    ProjectRecord,
    parse_asset_paths,
)
from ..core.store import InventoryStore


logger = logging.getLogger(__name__)


class SqliteInventoryStore(InventoryStore):
    """
    SQLite-based implementation of the inventory store.

    The connection runs in autocommit mode; ``transaction()`` opens an
    explicit BEGIN/COMMIT scope so a whole merge pass commits or rolls back
    as one unit.
    """

    def __init__(self, db_path: Union[str, Path], auto_init: bool = True):
        """
        Initialize the SQLite inventory store.

        Args:
            db_path: Path to the SQLite database file (":memory:" allowed)
            auto_init: Whether to create tables automatically
        """
        self.db_path = db_path if str(db_path) == ":memory:" else Path(db_path)
        self.conn = None
        self._in_transaction = False
        self._connect()

        if auto_init:
            self._init_schema()

    def _connect(self) -> None:
        """Establish database connection."""
        if isinstance(self.db_path, Path):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(
            str(self.db_path),
            check_same_thread=False,
            isolation_level=None,
        )
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        logger.debug(f"Connected to SQLite inventory store: {self.db_path}")

    def _init_schema(self) -> None:
        """Initialize database schema."""
        cursor = self.conn.cursor()

        cursor.execute(f"""
            CREATE TABLE IF NOT EXISTS inventory (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                category TEXT,
                name TEXT,
                value TEXT,
                package TEXT,
                quantity INTEGER,
                location TEXT,
                min_stock INTEGER DEFAULT {DEFAULT_MIN_STOCK},
                image_paths TEXT,
                datasheet_paths TEXT
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS projects (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT,
                description TEXT,
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                order_index INTEGER DEFAULT 0,
                files TEXT
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS project_items (
                project_id INTEGER,
                inventory_id INTEGER,
                quantity INTEGER,
                FOREIGN KEY(project_id) REFERENCES projects(id) ON DELETE CASCADE,
                FOREIGN KEY(inventory_id) REFERENCES inventory(id)
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS operation_logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                op_type TEXT,
                target_type TEXT,
                target_id INTEGER,
                desc TEXT,
                old_data TEXT,
                new_data TEXT,
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS ix_inventory_identity
            ON inventory (name, package, value)
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS ix_projects_name
            ON projects (name)
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS ix_project_items_project
            ON project_items (project_id, inventory_id)
        """)

        logger.debug("Initialized inventory store schema")

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[None]:
        if self._in_transaction:
            # Nested scopes join the outer transaction
            yield
            return

        self.conn.execute("BEGIN")
        self._in_transaction = True
        try:
            yield
        except sqlite3.Error as e:
            self._rollback()
            logger.error(f"Transaction rolled back: {e}")
            raise StoreTransactionFailure(f"Store rejected transaction: {e}") from e
        except BaseException:
            self._rollback()
            raise
        else:
            try:
                self.conn.execute("COMMIT")
            except sqlite3.Error as e:
                self._rollback()
                raise StoreTransactionFailure(f"Commit failed: {e}") from e
        finally:
            self._in_transaction = False

    def _rollback(self) -> None:
        if self.conn.in_transaction:
            self.conn.execute("ROLLBACK")
            logger.debug("Rolled back inventory store transaction")

    # ------------------------------------------------------------------
    # Inventory
    # ------------------------------------------------------------------

    def find_inventory(self, name: str, package: str, value: str) -> Optional[InventoryRecord]:
        cursor = self.conn.cursor()
        cursor.execute("""
            SELECT * FROM inventory
            WHERE name = ? AND IFNULL(package, '') = ? AND IFNULL(value, '') = ?
            ORDER BY id ASC
            LIMIT 1
        """, (name, package or "", value or ""))
        row = cursor.fetchone()
        return self._row_to_inventory(row) if row else None

    def list_inventory(self, ids: Optional[Iterable[int]] = None) -> List[InventoryRecord]:
        cursor = self.conn.cursor()
        if ids is None:
            cursor.execute("SELECT * FROM inventory ORDER BY id ASC")
        else:
            id_list = sorted(set(ids))
            if not id_list:
                return []
            placeholders = ",".join("?" for _ in id_list)
            cursor.execute(
                f"SELECT * FROM inventory WHERE id IN ({placeholders}) ORDER BY id ASC",
                id_list,
            )
        return [self._row_to_inventory(row) for row in cursor.fetchall()]

    def insert_inventory(self, record: InventoryRecord) -> int:
        cursor = self.conn.cursor()
        cursor.execute("""
            INSERT INTO inventory (
                category, name, value, package, quantity, location,
                min_stock, image_paths, datasheet_paths
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            record.category,
            record.name,
            record.value,
            record.package,
            record.quantity,
            record.location,
            record.min_stock,
            json.dumps(record.image_paths),
            json.dumps(record.datasheet_paths),
        ))
        return cursor.lastrowid

    def overwrite_inventory(self, inventory_id: int, record: InventoryRecord) -> None:
        cursor = self.conn.cursor()
        cursor.execute("""
            UPDATE inventory
            SET min_stock = ?, category = ?, image_paths = ?, datasheet_paths = ?
            WHERE id = ?
        """, (
            record.min_stock,
            record.category,
            json.dumps(record.image_paths),
            json.dumps(record.datasheet_paths),
            inventory_id,
        ))

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def find_project(self, name: str) -> Optional[ProjectRecord]:
        cursor = self.conn.cursor()
        cursor.execute("""
            SELECT * FROM projects WHERE name = ? ORDER BY id ASC LIMIT 1
        """, (name,))
        row = cursor.fetchone()
        return self._row_to_project(row) if row else None

    def list_projects(self, ids: Optional[Iterable[int]] = None) -> List[ProjectRecord]:
        cursor = self.conn.cursor()
        if ids is None:
            cursor.execute("SELECT * FROM projects ORDER BY id ASC")
        else:
            id_list = sorted(set(ids))
            if not id_list:
                return []
            placeholders = ",".join("?" for _ in id_list)
            cursor.execute(
                f"SELECT * FROM projects WHERE id IN ({placeholders}) ORDER BY id ASC",
                id_list,
            )
        return [self._row_to_project(row) for row in cursor.fetchall()]

    def insert_project(self, record: ProjectRecord) -> int:
        created_at = record.created_at or datetime.now(timezone.utc).isoformat()
        cursor = self.conn.cursor()
        cursor.execute("""
            INSERT INTO projects (name, description, created_at, order_index, files)
            VALUES (?, ?, ?, ?, ?)
        """, (
            record.name,
            record.description,
            created_at,
            record.order_index,
            json.dumps(record.files),
        ))
        return cursor.lastrowid

    def overwrite_project(self, project_id: int, record: ProjectRecord) -> None:
        cursor = self.conn.cursor()
        cursor.execute("""
            UPDATE projects SET description = ?, files = ? WHERE id = ?
        """, (record.description, json.dumps(record.files), project_id))

    # ------------------------------------------------------------------
    # Links
    # ------------------------------------------------------------------

    def list_links(self, project_ids: Optional[Iterable[int]] = None) -> List[ProjectLink]:
        cursor = self.conn.cursor()
        if project_ids is None:
            cursor.execute("SELECT * FROM project_items ORDER BY rowid ASC")
        else:
            id_list = sorted(set(project_ids))
            if not id_list:
                return []
            placeholders = ",".join("?" for _ in id_list)
            cursor.execute(
                f"SELECT * FROM project_items WHERE project_id IN ({placeholders}) "
                f"ORDER BY rowid ASC",
                id_list,
            )
        return [
            ProjectLink(
                project_id=row["project_id"],
                inventory_id=row["inventory_id"],
                quantity=row["quantity"] or 0,
            )
            for row in cursor.fetchall()
        ]

    def delete_links(self, project_id: int) -> int:
        cursor = self.conn.cursor()
        cursor.execute("DELETE FROM project_items WHERE project_id = ?", (project_id,))
        return cursor.rowcount

    def link_exists(self, project_id: int, inventory_id: int) -> bool:
        cursor = self.conn.cursor()
        cursor.execute("""
            SELECT 1 FROM project_items WHERE project_id = ? AND inventory_id = ? LIMIT 1
        """, (project_id, inventory_id))
        return cursor.fetchone() is not None

    def insert_link(self, link: ProjectLink) -> None:
        cursor = self.conn.cursor()
        cursor.execute("""
            INSERT INTO project_items (project_id, inventory_id, quantity)
            VALUES (?, ?, ?)
        """, (link.project_id, link.inventory_id, link.quantity))

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def get_stats(self) -> dict:
        """
        Get row counts per table.

        Returns:
            Dictionary with inventory, projects and links counts
        """
        cursor = self.conn.cursor()
        stats = {}
        for key, table in (
            ("inventory", "inventory"),
            ("projects", "projects"),
            ("links", "project_items"),
        ):
            cursor.execute(f"SELECT COUNT(*) AS count FROM {table}")
            stats[key] = cursor.fetchone()["count"]
        return stats

    def _row_to_inventory(self, row: sqlite3.Row) -> InventoryRecord:
        """Convert a database row to an InventoryRecord."""
        return InventoryRecord(
            id=row["id"],
            category=row["category"] or "",
            name=row["name"] or "",
            value=row["value"] or "",
            package=row["package"] or "",
            quantity=row["quantity"] or 0,
            location=row["location"] or "",
            min_stock=row["min_stock"] if row["min_stock"] is not None else DEFAULT_MIN_STOCK,
            image_paths=parse_asset_paths(row["image_paths"]),
            datasheet_paths=parse_asset_paths(row["datasheet_paths"]),
        )

    def _row_to_project(self, row: sqlite3.Row) -> ProjectRecord:
        """Convert a database row to a ProjectRecord."""
        return ProjectRecord(
            id=row["id"],
            name=row["name"] or "",
            description=row["description"] or "",
            created_at=row["created_at"],
            order_index=row["order_index"] or 0,
            files=parse_asset_paths(row["files"]),
        )

    def close(self) -> None:
        """Close the database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None
            logger.debug("Closed SQLite inventory store connection")
