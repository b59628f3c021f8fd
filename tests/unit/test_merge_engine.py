"""
Unit tests for the merge engine.

Tests:
- Skip / overwrite / keep_both per record
- Id remapping for project links, dangling link drop
- Asset dedup across repeated imports
- Degraded attachments, rollback, session lifecycle
"""

import sqlite3

import pytest

from backup.core.exceptions import SessionExpired, StoreTransactionFailure
from backup.core.models import (
    ImportStrategies,
    InventoryRecord,
    ProjectLink,
    ProjectRecord,
    Strategy,
)


def _resistor(remote_id=1, **fields):
    data = dict(id=remote_id, name="R1", value="10k", package="0805")
    data.update(fields)
    return InventoryRecord(**data)


def _import(manager, archive, strategies=None):
    result = manager.scan(archive)
    return manager.import_session(result.scan_id, strategies), result


class TestInsertNew:
    """Records without a local match."""

    def test_new_records_inserted(self, manager, store, make_bundle):
        archive = make_bundle(
            inventory=[_resistor(quantity=77, location="Drawer 3", min_stock=4, category="Resistor")],
            projects=[ProjectRecord(id=5, name="Blinker", description="LED",
                                    created_at="2024-02-01T10:00:00")],
            links=[ProjectLink(project_id=5, inventory_id=1, quantity=2)],
        )

        report, _ = _import(manager, archive)

        inventory = store.list_inventory()
        projects = store.list_projects()
        assert report.inventory_inserted == 1
        assert report.projects_inserted == 1
        assert report.links_inserted == 1
        assert len(inventory) == 1
        # Exported stock is not trusted as local stock
        assert inventory[0].quantity == 0
        assert inventory[0].location == ""
        assert inventory[0].min_stock == 4
        assert inventory[0].category == "Resistor"
        assert projects[0].created_at == "2024-02-01T10:00:00"
        assert store.list_links() == [
            ProjectLink(project_id=projects[0].id, inventory_id=inventory[0].id, quantity=2)
        ]

    def test_project_without_created_at_gets_timestamp(self, manager, store, make_bundle):
        archive = make_bundle(projects=[ProjectRecord(id=5, name="Blinker")])

        _import(manager, archive)

        assert store.list_projects()[0].created_at

    def test_assets_copied(self, manager, asset_snapshot, make_bundle):
        archive = make_bundle(
            inventory=[_resistor(image_paths=["r1.png"], datasheet_paths=["docs/r1.pdf"])],
            assets={"r1.png": b"png", "docs/r1.pdf": b"pdf"},
        )

        report, _ = _import(manager, archive)

        assert asset_snapshot() == {"r1.png": b"png", "r1.pdf": b"pdf"}
        assert report.assets_copied == 2

    def test_stored_paths_are_flat(self, manager, store, make_bundle):
        archive = make_bundle(
            inventory=[_resistor(datasheet_paths=["docs/r1.pdf"])],
            assets={"docs/r1.pdf": b"pdf"},
        )

        _import(manager, archive)

        assert store.list_inventory()[0].datasheet_paths == ["r1.pdf"]


class TestSkip:
    """skip strategy."""

    def test_skip_leaves_local_untouched(self, manager, store, seed_inventory, asset_snapshot, make_bundle):
        local_id = seed_inventory("R1", quantity=50, images={"r1.png": b"local"}, category="Old")
        archive = make_bundle(
            inventory=[_resistor(category="New", image_paths=["r1.png"])],
            assets={"r1.png": b"remote"},
        )
        before = asset_snapshot()

        report, _ = _import(manager, archive, ImportStrategies(inventory={1: Strategy.SKIP}))

        record = store.list_inventory([local_id])[0]
        assert report.inventory_skipped == 1
        assert record.category == "Old"
        assert record.image_paths == ["r1.png"]
        assert asset_snapshot() == before
        assert len(store.list_inventory()) == 1

    def test_skipped_records_still_bind_links(self, manager, store, seed_inventory, make_bundle):
        local_id = seed_inventory("R1")
        archive = make_bundle(
            inventory=[_resistor()],
            projects=[ProjectRecord(id=5, name="Blinker")],
            links=[ProjectLink(project_id=5, inventory_id=1, quantity=3)],
        )

        report, _ = _import(manager, archive, ImportStrategies(inventory={1: Strategy.SKIP}))

        project_id = store.find_project("Blinker").id
        assert report.links_inserted == 1
        assert store.list_links() == [ProjectLink(project_id, local_id, 3)]

    def test_existing_link_not_duplicated(self, manager, store, seed_inventory, seed_project, make_bundle):
        local_id = seed_inventory("R1")
        project_id = seed_project("Blinker", links=[(local_id, 3)])
        archive = make_bundle(
            inventory=[_resistor()],
            projects=[ProjectRecord(id=5, name="Blinker")],
            links=[ProjectLink(project_id=5, inventory_id=1, quantity=3)],
        )
        strategies = ImportStrategies(inventory={1: Strategy.SKIP}, projects={5: Strategy.SKIP})

        report, _ = _import(manager, archive, strategies)

        assert report.links_inserted == 0
        assert store.list_links() == [ProjectLink(project_id, local_id, 3)]


class TestOverwrite:
    """overwrite strategy."""

    def test_overwrite_preserves_quantity(self, manager, store, seed_inventory, make_bundle):
        local_id = seed_inventory("R1", quantity=50, location="Box-1", min_stock=5, category="Old")
        archive = make_bundle(inventory=[
            _resistor(quantity=10, location="Elsewhere", min_stock=20, category="Resistor")
        ])

        report, _ = _import(manager, archive, ImportStrategies(inventory={1: Strategy.OVERWRITE}))

        record = store.list_inventory([local_id])[0]
        assert report.inventory_updated == 1
        assert record.quantity == 50
        assert record.location == "Box-1"
        assert record.min_stock == 20
        assert record.category == "Resistor"
        assert len(store.list_inventory()) == 1

    def test_overwrite_replaces_asset_lists(self, manager, store, seed_inventory, make_bundle):
        local_id = seed_inventory("R1", images={"old.png": b"old"})
        archive = make_bundle(
            inventory=[_resistor(image_paths=["new.png"], datasheet_paths=["r1.pdf"])],
            assets={"new.png": b"new", "r1.pdf": b"pdf"},
        )

        _import(manager, archive, ImportStrategies(inventory={1: Strategy.OVERWRITE}))

        record = store.list_inventory([local_id])[0]
        assert record.image_paths == ["new.png"]
        assert record.datasheet_paths == ["r1.pdf"]

    def test_colliding_asset_name_renamed(self, manager, store, seed_inventory, asset_snapshot, make_bundle):
        local_id = seed_inventory("R1", datasheets={"sheet.pdf": b"v1"})
        archive = make_bundle(
            inventory=[_resistor(datasheet_paths=["sheet.pdf"])],
            assets={"sheet.pdf": b"v2"},
        )

        _import(manager, archive, ImportStrategies(inventory={1: Strategy.OVERWRITE}))

        stored_name = store.list_inventory([local_id])[0].datasheet_paths[0]
        files = asset_snapshot()
        assert stored_name != "sheet.pdf"
        assert files["sheet.pdf"] == b"v1"
        assert files[stored_name] == b"v2"

    def test_project_overwrite_replaces_link_set(
        self, manager, store, seed_inventory, seed_project, make_bundle
    ):
        r1 = seed_inventory("R1")
        c1 = seed_inventory("C1", value="100n")
        project_id = seed_project("Blinker", description="old", links=[(r1, 5), (c1, 1)])
        archive = make_bundle(
            inventory=[_resistor()],
            projects=[ProjectRecord(id=5, name="Blinker", description="new")],
            links=[ProjectLink(project_id=5, inventory_id=1, quantity=2)],
        )
        strategies = ImportStrategies(inventory={1: Strategy.SKIP}, projects={5: Strategy.OVERWRITE})

        report, _ = _import(manager, archive, strategies)

        assert report.projects_updated == 1
        assert store.list_projects([project_id])[0].description == "new"
        assert store.list_links([project_id]) == [ProjectLink(project_id, r1, 2)]

    def test_project_overwrite_with_no_links_clears_links(
        self, manager, store, seed_inventory, seed_project, make_bundle
    ):
        r1 = seed_inventory("R1")
        project_id = seed_project("Blinker", links=[(r1, 5)])
        archive = make_bundle(projects=[ProjectRecord(id=5, name="Blinker")])

        _import(manager, archive, ImportStrategies(projects={5: Strategy.OVERWRITE}))

        assert store.list_links([project_id]) == []

    def test_overwrite_of_unmatched_inserts(self, manager, store, make_bundle):
        archive = make_bundle(inventory=[_resistor()])

        report, _ = _import(manager, archive, ImportStrategies(inventory={1: Strategy.OVERWRITE}))

        assert report.inventory_inserted == 1
        assert report.inventory_updated == 0


class TestKeepBoth:
    """keep_both strategy (the default)."""

    def test_keep_both_disambiguates(self, manager, store, seed_inventory, make_bundle):
        local_id = seed_inventory("R1", quantity=50)
        archive = make_bundle(
            inventory=[_resistor()],
            projects=[ProjectRecord(id=5, name="Blinker")],
            links=[ProjectLink(project_id=5, inventory_id=1, quantity=2)],
        )

        report, _ = _import(manager, archive)

        records = store.list_inventory()
        names = sorted(r.name for r in records)
        imported = next(r for r in records if r.id != local_id)
        assert report.inventory_inserted == 1
        assert names == ["R1", "R1 (Imported)"]
        assert imported.quantity == 0
        # The link binds to the imported copy through the id map
        assert [link.inventory_id for link in store.list_links()] == [imported.id]

    def test_keep_both_project(self, manager, store, seed_project, make_bundle):
        seed_project("Blinker")
        archive = make_bundle(projects=[ProjectRecord(id=5, name="Blinker")])

        _import(manager, archive)

        assert sorted(p.name for p in store.list_projects()) == ["Blinker", "Blinker (Imported)"]

    def test_repeated_keep_both_numbers_copies(self, manager, store, seed_inventory, seed_project, make_bundle):
        seed_inventory(name="R1", value="10k", package="0805")
        seed_project("Blinker")
        archive = make_bundle(
            inventory=[_resistor()],
            projects=[ProjectRecord(id=5, name="Blinker")],
        )

        _import(manager, archive)
        _import(manager, archive)

        identities = [r.identity for r in store.list_inventory()]
        assert len(set(identities)) == len(identities) == 3
        assert sorted(r.name for r in store.list_inventory()) == [
            "R1", "R1 (Imported)", "R1 (Imported) 2",
        ]
        assert sorted(p.name for p in store.list_projects()) == [
            "Blinker", "Blinker (Imported)", "Blinker (Imported) 2",
        ]

    def test_custom_suffix(self, store, asset_store, sessions, codec, seed_inventory, make_bundle):
        from backup.bundle.manager import BackupManager

        manager = BackupManager(store, asset_store, sessions, codec, keep_both_suffix=" #2")
        seed_inventory("R1")

        _import(manager, make_bundle(inventory=[_resistor()]))

        assert sorted(r.name for r in store.list_inventory()) == ["R1", "R1 #2"]


class TestLinks:
    """Association rebuild."""

    def test_dangling_link_dropped(self, manager, store, make_bundle):
        archive = make_bundle(
            inventory=[_resistor()],
            projects=[ProjectRecord(id=5, name="Blinker")],
            links=[
                ProjectLink(project_id=5, inventory_id=1, quantity=1),
                ProjectLink(project_id=5, inventory_id=99, quantity=1),
                ProjectLink(project_id=77, inventory_id=1, quantity=1),
            ],
        )

        report, _ = _import(manager, archive)

        assert report.links_inserted == 1
        assert report.links_dropped == 2
        assert len(store.list_links()) == 1
        assert store.get_stats()["inventory"] == 1


class TestDedupAcrossImports:
    """Repeated imports never re-copy byte-identical assets."""

    @pytest.fixture
    def archive(self, make_bundle):
        return make_bundle(
            inventory=[_resistor(image_paths=["r1.png"], datasheet_paths=["r1.pdf"])],
            projects=[ProjectRecord(id=5, name="Blinker", files=["r1.pdf", "s.pdf"])],
            assets={"r1.png": b"png", "r1.pdf": b"pdf", "s.pdf": b"sch"},
        )

    def test_second_import_with_skip(self, manager, asset_snapshot, archive):
        _import(manager, archive)
        after_first = asset_snapshot()

        result = manager.scan(archive)
        report = manager.import_session(
            result.scan_id, ImportStrategies.uniform(result.metadata, Strategy.SKIP)
        )

        assert asset_snapshot() == after_first
        assert report.assets_copied == 0
        assert report.inventory_skipped == 1
        assert report.projects_skipped == 1

    def test_second_import_with_keep_both(self, manager, store, asset_snapshot, archive):
        _import(manager, archive)
        after_first = asset_snapshot()

        report, _ = _import(manager, archive)

        assert asset_snapshot() == after_first
        assert report.assets_copied == 0
        assert report.assets_deduplicated == 4
        assert len(store.list_inventory()) == 2

    def test_shared_asset_copied_once_in_one_import(self, manager, archive):
        report, _ = _import(manager, archive)

        assert report.assets_copied == 3
        assert report.assets_deduplicated == 1

    def test_shared_asset_colliding_with_local_file(self, manager, asset_store, asset_snapshot, make_bundle):
        (asset_store.root / "x.png").write_bytes(b"local-content")
        archive = make_bundle(
            inventory=[
                _resistor(1, name="A", image_paths=["x.png"]),
                _resistor(2, name="B", image_paths=["x.png"]),
            ],
            assets={"x.png": b"remote-content"},
        )

        report, _ = _import(manager, archive)
        after_first = asset_snapshot()
        _import(manager, archive)

        assert report.assets_copied == 1
        assert report.assets_deduplicated == 1
        assert asset_snapshot() == after_first
        assert sorted(after_first.values()) == [b"local-content", b"remote-content"]


class TestDegradedAssets:
    """Attachment failures degrade the record instead of aborting."""

    def test_missing_asset_empties_list(self, manager, store, make_bundle):
        archive = make_bundle(
            inventory=[_resistor(image_paths=["r1.png", "missing.png"], datasheet_paths=["r1.pdf"])],
            assets={"r1.png": b"png", "r1.pdf": b"pdf"},
        )

        report, _ = _import(manager, archive)

        record = store.list_inventory()[0]
        assert record.image_paths == []
        assert record.datasheet_paths == ["r1.pdf"]
        assert report.asset_failures == 1
        assert report.degraded_records == ["R1 10k 0805"]

    def test_abandoned_copies_removed(self, manager, asset_snapshot, make_bundle):
        archive = make_bundle(
            inventory=[_resistor(image_paths=["r1.png", "missing.png"])],
            assets={"r1.png": b"png"},
        )

        report, _ = _import(manager, archive)

        assert "r1.png" not in asset_snapshot()
        assert report.assets_copied == 0

    def test_escaping_path_skips_single_asset(self, manager, store, make_bundle):
        archive = make_bundle(
            projects=[ProjectRecord(id=5, name="Blinker", files=["../../meta.json", "s.pdf"])],
            assets={"s.pdf": b"sch"},
        )

        report, _ = _import(manager, archive)

        assert store.list_projects()[0].files == ["s.pdf"]
        assert report.asset_failures == 1
        assert report.degraded_records == ["Blinker"]


class TestTransactionAndSessions:
    """Atomicity and session lifecycle."""

    def test_store_failure_rolls_back_everything(
        self, manager, store, sessions, asset_snapshot, monkeypatch, make_bundle
    ):
        archive = make_bundle(
            inventory=[_resistor(image_paths=["r1.png"])],
            projects=[ProjectRecord(id=5, name="Blinker")],
            links=[ProjectLink(project_id=5, inventory_id=1, quantity=1)],
            assets={"r1.png": b"png"},
        )
        result = manager.scan(archive)

        def broken_insert_link(link):
            raise sqlite3.OperationalError("disk I/O error")

        monkeypatch.setattr(store, "insert_link", broken_insert_link)

        with pytest.raises(StoreTransactionFailure):
            manager.import_session(result.scan_id, ImportStrategies())

        assert store.get_stats() == {"inventory": 0, "projects": 0, "links": 0}
        assert asset_snapshot() == {}
        assert result.scan_id not in sessions.active_ids()
        assert list(sessions.base_dir.iterdir()) == []

    def test_rollback_keeps_preexisting_assets(
        self, manager, store, seed_inventory, asset_snapshot, monkeypatch, make_bundle
    ):
        seed_inventory("C1", value="100n", images={"r1.png": b"png"})
        archive = make_bundle(
            inventory=[_resistor(image_paths=["r1.png"])],
            projects=[ProjectRecord(id=5, name="Blinker")],
            links=[ProjectLink(project_id=5, inventory_id=1, quantity=1)],
            assets={"r1.png": b"png"},
        )
        result = manager.scan(archive)

        def locked_insert_link(link):
            raise sqlite3.DatabaseError("database is locked")

        monkeypatch.setattr(store, "insert_link", locked_insert_link)

        with pytest.raises(StoreTransactionFailure):
            manager.import_session(result.scan_id)

        assert asset_snapshot() == {"r1.png": b"png"}
        assert [r.name for r in store.list_inventory()] == ["C1"]

    def test_session_consumed_on_success(self, manager, sessions, make_bundle):
        result = manager.scan(make_bundle(inventory=[_resistor()]))

        manager.import_session(result.scan_id)

        assert sessions.active_ids() == []
        with pytest.raises(SessionExpired):
            manager.import_session(result.scan_id)

    def test_unknown_session(self, manager):
        with pytest.raises(SessionExpired):
            manager.import_session("00000000-0000-0000-0000-000000000000")

    def test_vanished_session_directory(self, manager, sessions, make_bundle):
        import shutil

        result = manager.scan(make_bundle(inventory=[_resistor()]))
        shutil.rmtree(sessions.base_dir / result.scan_id)

        with pytest.raises(SessionExpired):
            manager.import_session(result.scan_id)

    def test_cancelled_session_cannot_import(self, manager, make_bundle):
        result = manager.scan(make_bundle(inventory=[_resistor()]))

        manager.cancel_session(result.scan_id)

        with pytest.raises(SessionExpired):
            manager.import_session(result.scan_id)


def test_import_audit_entry(manager, audit_log, make_bundle):
    archive = make_bundle(
        inventory=[_resistor()],
        projects=[ProjectRecord(id=5, name="Blinker"), ProjectRecord(id=6, name="Clock")],
    )

    report, result = _import(manager, archive)

    entry = audit_log.list_entries(limit=1)[0]
    assert entry["op_type"] == "IMPORT"
    assert entry["target_type"] == "INVENTORY"
    assert entry["desc"] == {
        "key": "log.backup.import",
        "params": {"session": result.scan_id[:8], "inv": 1, "proj": 2},
    }
    assert report.completed_at is not None
