"""
Command-line interface for the manifest cache.

Commands:
    status              Show the imported version and stored categories
    check               Ask the API whether a newer manifest is published
    sync                Download and import the published manifest
    lookup TYPE HASH    Print a stored definition as JSON
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from bungiekit.client import BungieClient
from bungiekit.core.config import Settings, get_settings
from bungiekit.core.errors import BungieError

from .definitions import DefinitionType
from .provider import ManifestProvider
from .store import ContentStore


# ANSI color codes for terminal output
class Colors:
    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    CYAN = "\033[96m"
    BOLD = "\033[1m"
    RESET = "\033[0m"


def colorize(text: str, color: str, stream=None) -> str:
    """Apply color to text if the stream is a terminal."""
    stream = stream or sys.stdout
    if stream.isatty():
        return f"{color}{text}{Colors.RESET}"
    return text


def print_header(text: str) -> None:
    print(colorize(f"\n{'='*60}", Colors.CYAN))
    print(colorize(f" {text}", Colors.BOLD + Colors.CYAN))
    print(colorize(f"{'='*60}", Colors.CYAN))


def print_success(text: str) -> None:
    print(colorize(f"  [OK] {text}", Colors.GREEN))


def print_warning(text: str) -> None:
    print(colorize(f"  [WARN] {text}", Colors.YELLOW))


def print_error(text: str) -> None:
    """Print error message to stderr."""
    print(colorize(f"  [ERR] {text}", Colors.RED, sys.stderr), file=sys.stderr)


def print_progress(fraction: float) -> None:
    end = "\n" if fraction >= 1.0 else ""
    print(f"\r  Downloading... {fraction:6.1%}", end=end, flush=True)


def _store_path(args: argparse.Namespace, settings: Settings) -> Path:
    return Path(args.db) if args.db else settings.manifest_db_path


def _provider(args: argparse.Namespace, settings: Settings) -> ManifestProvider:
    store = ContentStore(_store_path(args, settings))
    return ManifestProvider(
        store,
        content_host=settings.content_host,
        download_timeout=settings.download_timeout,
    )


async def _fetch_manifest(settings: Settings):
    if not settings.api_key:
        raise BungieError("No API key configured (set BUNGIE_API_KEY)")
    async with BungieClient(settings) as client:
        return await client.destiny.get_manifest()


def cmd_status(args: argparse.Namespace, settings: Settings) -> int:
    """Show what is currently imported."""
    store = ContentStore(_store_path(args, settings))
    print_header(f"Manifest: {store.db_path}")

    info = store.version_info()
    if info is None:
        print_warning("No manifest imported")
        return 0

    print(f"\nVersion:  {info.version}")
    print(f"Locale:   {info.locale or '-'}")
    print(f"Imported: {info.imported_at.isoformat()}")

    counts = store.populated_categories()
    print(f"\nCategories ({len(counts)}):")
    for category, count in sorted(counts.items(), key=lambda item: item[0].value):
        print(f"  {category.value:<45} {count:>8}")
    return 0


def cmd_check(args: argparse.Namespace, settings: Settings) -> int:
    """Compare the published manifest version with the imported one."""
    provider = _provider(args, settings)
    manifest = asyncio.run(_fetch_manifest(settings))

    print(f"Published version: {manifest.version}")
    print(f"Imported version:  {provider.current_version or '-'}")
    if provider.needs_update(manifest):
        print_warning("Update available")
    else:
        print_success("Up to date")
    return 0


def cmd_sync(args: argparse.Namespace, settings: Settings) -> int:
    """Download and import the published manifest."""
    locale = args.locale or settings.default_locale

    async def run():
        manifest = await _fetch_manifest(settings)
        async with _provider(args, settings) as provider:
            if args.force:
                return await provider.update_manifest(manifest, locale, print_progress)
            return await provider.sync_if_needed(manifest, locale, print_progress)

    summary = asyncio.run(run())
    if summary is None:
        print_success("Manifest already up to date")
        return 0

    print_success(
        f"Imported {summary.version} ({summary.locale}): "
        f"{len(summary.rows_by_category)} categories, {summary.total_rows} definitions"
    )
    if summary.skipped_tables:
        print_warning(f"Skipped tables: {', '.join(summary.skipped_tables)}")
    return 0


def cmd_lookup(args: argparse.Namespace, settings: Settings) -> int:
    """Print one stored definition."""
    try:
        definition_type = DefinitionType.parse(args.type)
    except ValueError as e:
        print_error(str(e))
        return 1

    provider = _provider(args, settings)
    definition = provider.get_definition(args.hash, definition_type)
    if definition is None:
        print_error(f"{definition_type.value} {args.hash} not found")
        return 1

    print(json.dumps(definition, indent=2, ensure_ascii=False))
    return 0


COMMANDS = {
    "status": cmd_status,
    "check": cmd_check,
    "sync": cmd_sync,
    "lookup": cmd_lookup,
}


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog="bungiekit-manifest",
        description="Local cache of the Destiny 2 world content database",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Show the imported version:
    python -m bungiekit_manifest status

  Import the English content if a new version is out:
    BUNGIE_API_KEY=... python -m bungiekit_manifest sync --locale en

  Print an item definition:
    python -m bungiekit_manifest lookup inventoryItem 3588934839
        """
    )
    parser.add_argument(
        "--db",
        help="Path to the content database (default: from settings)"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser("status", help="Show the imported manifest version")
    subparsers.add_parser("check", help="Check whether a newer manifest is published")

    sync_parser = subparsers.add_parser("sync", help="Download and import the manifest")
    sync_parser.add_argument(
        "-l", "--locale",
        help="Content locale (default: BUNGIE_DEFAULT_LOCALE or en)"
    )
    sync_parser.add_argument(
        "-f", "--force",
        action="store_true",
        help="Import even if the version is already current"
    )

    lookup_parser = subparsers.add_parser("lookup", help="Print a stored definition")
    lookup_parser.add_argument(
        "type",
        help="Definition type, e.g. inventoryItem or DestinyInventoryItemDefinition"
    )
    lookup_parser.add_argument(
        "hash",
        type=int,
        help="Unsigned 32-bit definition hash"
    )

    args = parser.parse_args(argv)
    settings = get_settings()

    # Setup logging
    log_level = logging.DEBUG if args.verbose else settings.log_level
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    command = COMMANDS.get(args.command)
    if command is None:
        parser.print_help()
        return 0

    try:
        return command(args, settings)
    except (BungieError, ValueError) as e:
        print_error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
