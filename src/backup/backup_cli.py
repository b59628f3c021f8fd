#!/usr/bin/env python3
"""
CLI for backup bundle export/scan/import operations.

Usage:
    python -m backup.backup_cli init
    python -m backup.backup_cli export --out backup.svdata [--projects 1 2] [--inventory 5]
    python -m backup.backup_cli scan   --in backup.svdata [--json]
    python -m backup.backup_cli import --in backup.svdata [--strategies strategies.json] [--default keep_both]
    python -m backup.backup_cli template --out template.svdata
    python -m backup.backup_cli auto-backup [--dir local/vault/backups] [--max 10]

Global options:
    --config config/backup.yaml   YAML configuration (optional)
    -v, --verbose                 Debug logging
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from backup.bundle.manager import BackupManager
from backup.config.config_loader import BackupConfig
from backup.core.exceptions import BackupError
from backup.core.logging import configure_logging
from backup.core.models import ImportStrategies, Strategy


def setup_logging(config: BackupConfig, verbose: bool = False) -> None:
    """Configure logging from config, forcing DEBUG when verbose."""
    if verbose:
        level = logging.DEBUG
    else:
        level = getattr(logging, str(config.get("logging.level", "INFO")).upper(), logging.INFO)
    configure_logging(level=level, structured=bool(config.get("logging.structured", False)))


def load_strategies(path: Optional[str]) -> ImportStrategies:
    """Read a strategy file of the form {"inventory": {id: strategy}, "projects": {...}}."""
    if not path:
        return ImportStrategies()

    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Strategy file must contain a JSON object: {path}")
    return ImportStrategies.from_dict(data)


def cmd_init(args, config: BackupConfig) -> int:
    """Create the storage root, database and asset directory."""
    logger = logging.getLogger(__name__)

    manager = BackupManager.from_config(config)
    try:
        stats = manager.store.get_stats()
    finally:
        manager.close()

    logger.info(f"Initialized storage root: {config.storage_root}")
    logger.info(f"  Database: {config.db_path}")
    logger.info(f"  Assets: {config.assets_root}")
    print(json.dumps(stats, indent=2))
    return 0


def cmd_export(args, config: BackupConfig) -> int:
    """Export all records, or a subset by id, to a bundle."""
    manager = BackupManager.from_config(config)
    try:
        if args.projects or args.inventory:
            result = manager.export_subset(Path(args.out), args.projects, args.inventory)
        else:
            result = manager.export_all(Path(args.out))
    finally:
        manager.close()

    print(json.dumps(result.to_dict(), indent=2))
    return 0


def cmd_scan(args, config: BackupConfig) -> int:
    """Scan a bundle and print conflicts and new-item counts."""
    manager = BackupManager.from_config(config)
    try:
        result = manager.scan(Path(args.input))
        # Nothing can import this session once the process exits
        manager.cancel_session(result.scan_id)
    finally:
        manager.close()

    if args.json:
        print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
    else:
        print(f"Bundle v{result.metadata.version}: {args.input}")
        print(f"  New inventory: {result.new_inventory}")
        print(f"  New projects: {result.new_projects}")
        print(f"  Inventory conflicts: {len(result.inventory_conflicts)}")
        for conflict in result.inventory_conflicts:
            marker = " [assets differ]" if conflict.has_asset_difference else ""
            print(f"    #{conflict.remote.id} {conflict.remote.label}{marker}")
        print(f"  Project conflicts: {len(result.project_conflicts)}")
        for conflict in result.project_conflicts:
            marker = " [assets differ]" if conflict.has_asset_difference else ""
            print(f"    #{conflict.remote.id} {conflict.remote.label}{marker}")
    return 0


def cmd_import(args, config: BackupConfig) -> int:
    """Scan and import a bundle in one go."""
    logger = logging.getLogger(__name__)

    strategies = load_strategies(args.strategies)

    manager = BackupManager.from_config(config)
    try:
        result = manager.scan(Path(args.input))
        if args.default:
            # Explicit entries from the strategy file win over the default
            defaults = ImportStrategies.uniform(result.metadata, Strategy(args.default))
            defaults.inventory.update(strategies.inventory)
            defaults.projects.update(strategies.projects)
            strategies = defaults

        logger.info(
            f"Scan found {len(result.inventory_conflicts)} inventory and "
            f"{len(result.project_conflicts)} project conflicts"
        )
        report = manager.import_session(result.scan_id, strategies)
    finally:
        manager.close()

    print(report.summary())
    if args.json:
        print("\n" + json.dumps(report.to_dict(), indent=2))
    return 0


def cmd_template(args, config: BackupConfig) -> int:
    """Write the sample bundle."""
    logger = logging.getLogger(__name__)

    manager = BackupManager.from_config(config)
    try:
        path = manager.generate_template(Path(args.out))
    finally:
        manager.close()

    logger.info(f"Template written: {path}")
    return 0


def cmd_auto_backup(args, config: BackupConfig) -> int:
    """Take a timestamped full backup and prune old ones."""
    target_dir = Path(args.dir) if args.dir else config.backup_dir
    max_backups = args.max if args.max is not None else config.max_backups

    manager = BackupManager.from_config(config)
    try:
        result = manager.auto_backup(target_dir, max_backups)
    finally:
        manager.close()

    print(json.dumps(result.to_dict(), indent=2))
    return 0


def parse_args(argv: Optional[List[str]] = None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Inventory Backup Bundle CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose/debug logging",
    )
    parser.add_argument("--config", help="Path to YAML config file")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Init command
    subparsers.add_parser("init", help="Create storage root and database")

    # Export command
    export_parser = subparsers.add_parser("export", help="Export records to a bundle")
    export_parser.add_argument("--out", required=True, help="Output archive path")
    export_parser.add_argument("--projects", type=int, nargs="*", help="Project ids to export")
    export_parser.add_argument("--inventory", type=int, nargs="*", help="Inventory ids to export")

    # Scan command
    scan_parser = subparsers.add_parser("scan", help="Report conflicts in a bundle")
    scan_parser.add_argument("--in", dest="input", required=True, help="Input archive path")
    scan_parser.add_argument("--json", action="store_true", help="Output result as JSON")

    # Import command
    import_parser = subparsers.add_parser("import", help="Scan and import a bundle")
    import_parser.add_argument("--in", dest="input", required=True, help="Input archive path")
    import_parser.add_argument("--strategies", help="JSON file of per-record strategies")
    import_parser.add_argument("--default", choices=[s.value for s in Strategy],
                               help="Strategy for records not listed in the strategy file")
    import_parser.add_argument("--json", action="store_true", help="Output report as JSON")

    # Template command
    template_parser = subparsers.add_parser("template", help="Write a sample bundle")
    template_parser.add_argument("--out", required=True, help="Output archive path")

    # Auto-backup command
    auto_parser = subparsers.add_parser("auto-backup", help="Timestamped backup with rotation")
    auto_parser.add_argument("--dir", help="Backup directory (default: auto_backup.dir)")
    auto_parser.add_argument("--max", type=int, help="Backups to keep (default: auto_backup.max_backups)")

    return parser.parse_args(argv)


COMMANDS = {
    "init": cmd_init,
    "export": cmd_export,
    "scan": cmd_scan,
    "import": cmd_import,
    "template": cmd_template,
    "auto-backup": cmd_auto_backup,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    load_dotenv()
    args = parse_args(argv)

    try:
        config = BackupConfig(Path(args.config) if args.config else None)
    except BackupError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    setup_logging(config, verbose=args.verbose)
    logger = logging.getLogger(__name__)

    handler = COMMANDS.get(args.command)
    if handler is None:
        print("No command specified. Use --help for usage.", file=sys.stderr)
        return 1

    try:
        return handler(args, config)
    except (BackupError, OSError, ValueError) as e:
        logger.error(f"{args.command} failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
