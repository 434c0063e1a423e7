"""Command-line interface for managing configurator catalogs."""

import argparse
import json
import logging
import sys
from typing import List, Optional

__all__ = ["main", "parse_args", "show_stats"]

from configurator.config import DB_PATH
from configurator.csv_utils import export_catalog_to_csv, load_import_csv
from configurator.db import (
    count_categories,
    count_incompatibilities,
    count_options,
    create_configurator,
    get_connection,
    init_db,
    load_catalog,
)
from configurator.errors import ConfiguratorError
from configurator.importer import normalize_and_link_import
from configurator.logging_config import setup_logging
from configurator.resolver import find_asymmetric_edges


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Product configurator catalog management",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Create the database schema
  python -m configurator.cli --init-db

  # Create a configurator owned by a client
  python -m configurator.cli --create-configurator "Road bike" --client-id acme

  # Bulk import categories and options from JSON or CSV
  python -m configurator.cli --import-json data/bike.json --configurator-id abc123
  python -m configurator.cli --import-csv data/bike.csv --configurator-id abc123

  # Export a configurator's catalog to CSV
  python -m configurator.cli --export-csv data/export.csv --configurator-id abc123

  # Show database statistics
  python -m configurator.cli --stats
        """,
    )

    parser.add_argument(
        "--db",
        default=DB_PATH,
        help=f"SQLite database path (default: {DB_PATH})",
    )
    parser.add_argument(
        "--init-db",
        action="store_true",
        help="Create the database schema and exit",
    )

    # Configurators
    parser.add_argument(
        "--create-configurator",
        metavar="NAME",
        help="Create a new configurator and print its id",
    )
    parser.add_argument(
        "--client-id",
        help="Owning client id (for --create-configurator and ownership checks on import)",
    )
    parser.add_argument(
        "--configurator-id",
        help="Target configurator for import/export/stats",
    )

    # Import / export
    parser.add_argument(
        "--import-json",
        metavar="PATH",
        help="Bulk import a JSON file ({\"items\": [...]} or a bare list of items)",
    )
    parser.add_argument(
        "--import-csv",
        metavar="PATH",
        help="Bulk import a CSV file with one row per option",
    )
    parser.add_argument(
        "--export-csv",
        metavar="PATH",
        help="Export the configurator's catalog to CSV",
    )

    # Info commands
    parser.add_argument(
        "--stats",
        action="store_true",
        help="Show database statistics and exit",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )

    return parser.parse_args(argv)


def show_stats(db_path: str, configurator_id: Optional[str] = None) -> None:
    """Display database statistics."""
    init_db(db_path)

    print(f"\n{'='*50}")
    print(f"Database: {db_path}")
    print(f"{'='*50}")

    with get_connection(db_path) as conn:
        rows = conn.execute("SELECT id, name, client_id FROM configurators ORDER BY created_at").fetchall()
    print(f"\nConfigurators: {len(rows)}")
    for row in rows:
        print(
            f"  {row['id']}  {row['name']} (client: {row['client_id'] or '-'})"
            f" - {count_categories(db_path, row['id'])} categories,"
            f" {count_options(db_path, row['id'])} options"
        )

    print(f"\nIncompatibility rows: {count_incompatibilities(db_path)}")

    if configurator_id:
        catalog = load_catalog(db_path, configurator_id)
        asymmetric = find_asymmetric_edges(catalog.categories)
        print(f"One-directional edges in {configurator_id}: {len(asymmetric)}")
        for option_id, target_id in asymmetric:
            print(f"  {option_id} -> {target_id}")

    print()


def _load_json_items(path: str):
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    # Accept either the full request body or just the items list
    if isinstance(data, list):
        return data
    return data.get("items", []) if isinstance(data, dict) else []


def _require_configurator_id(args: argparse.Namespace) -> str:
    if not args.configurator_id:
        print("Error: --configurator-id is required for this command", file=sys.stderr)
        sys.exit(2)
    return args.configurator_id


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for CLI."""
    args = parse_args(argv)
    setup_logging(level=logging.DEBUG if args.verbose else logging.INFO, log_to_file=False)

    try:
        if args.init_db:
            init_db(args.db)
            print(f"Initialized database: {args.db}")
            return 0

        if args.stats:
            show_stats(args.db, args.configurator_id)
            return 0

        init_db(args.db)

        if args.create_configurator:
            configurator = create_configurator(args.db, args.create_configurator, client_id=args.client_id)
            print(f"Created configurator {configurator['id']} ({configurator['name']})")
            return 0

        if args.import_json or args.import_csv:
            configurator_id = _require_configurator_id(args)
            if args.import_json:
                items = _load_json_items(args.import_json)
            else:
                items = load_import_csv(args.import_csv)
            result = normalize_and_link_import(
                {"configuratorId": configurator_id, "items": items},
                db_path=args.db,
                client_id=args.client_id,
            )
            print(
                f"Imported {len(result.options)} options into {len(result.categories)} categories, "
                f"{result.incompatibilities_created} incompatibility rows"
            )
            for warning in result.warnings:
                print(f"  Warning: {warning}")
            return 0

        if args.export_csv:
            configurator_id = _require_configurator_id(args)
            count = export_catalog_to_csv(load_catalog(args.db, configurator_id), args.export_csv)
            print(f"Exported {count} options to {args.export_csv}")
            return 0
    except ConfiguratorError as e:
        print(f"Error [{e.code}]: {e.message}", file=sys.stderr)
        return 1

    print("Nothing to do. Run with --help for usage.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
