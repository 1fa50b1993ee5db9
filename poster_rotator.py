"""
PosterRotator command line.

    python poster_rotator.py run [--dry-run]
    python poster_rotator.py pools | pool ITEM_ID | stats
    python poster_rotator.py rotate ITEM_ID
    python poster_rotator.py search ITEM_ID
    python poster_rotator.py add ITEM_ID FILE_OR_URL
    python poster_rotator.py delete ITEM_ID NAME
    python poster_rotator.py reorder ITEM_ID NAME [NAME ...]
    python poster_rotator.py cleanup | purge --yes
    python poster_rotator.py settings [--all] | settings set KEY VALUE | settings reset --yes

Listing commands print JSON on stdout; logs go to stdout/the log file as
configured in settings.json (debug.*).
"""
import argparse
import asyncio
import json
import signal
import sys
from pathlib import Path
from typing import List, Optional

from config import CATALOG, DEBUG, LIBRARIES, NETWORK, VERSION, build_rotator_config
from context import RunContext, create_session
from logging_config import get_logger, setup_logging
from providers import get_image_providers
from rotator.catalog import CatalogError, select_catalog
from rotator.helpers import shutdown_executor
from rotator.orchestrator import run
from rotator.pools import PoolService
from settings import SettingsManager, settings

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="poster_rotator", description="PosterRotator - rotating artwork pools")
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    sub = parser.add_subparsers(dest="command", required=True)

    run_parser = sub.add_parser("run", help="Run one rotation pass over the library")
    run_parser.add_argument("--dry-run", action="store_true", help="Choose and log, but write nothing")

    sub.add_parser("pools", help="List every pool")
    pool_parser = sub.add_parser("pool", help="Show one pool")
    pool_parser.add_argument("item_id")
    sub.add_parser("stats", help="Pool statistics")

    rotate_parser = sub.add_parser("rotate", help="Promote the next image now, ignoring the cooldown")
    rotate_parser.add_argument("item_id")

    search_parser = sub.add_parser("search", help="List provider images for an item (pass one to add)")
    search_parser.add_argument("item_id")

    add_parser = sub.add_parser("add", help="Add a local image file or an image URL to a pool")
    add_parser.add_argument("item_id")
    add_parser.add_argument("source")

    delete_parser = sub.add_parser("delete", help="Remove an image from a pool")
    delete_parser.add_argument("item_id")
    delete_parser.add_argument("name")

    reorder_parser = sub.add_parser("reorder", help="Save a custom image order for a pool")
    reorder_parser.add_argument("item_id")
    reorder_parser.add_argument("names", nargs="+")

    sub.add_parser("cleanup", help="Delete pools whose item no longer exists")
    purge_parser = sub.add_parser("purge", help="Delete every pool under the selected libraries")
    purge_parser.add_argument("--yes", action="store_true", help="Confirm the purge")

    settings_parser = sub.add_parser("settings", help="Show or change settings.json")
    settings_parser.add_argument("--all", action="store_true", help="Include advanced settings")
    settings_sub = settings_parser.add_subparsers(dest="settings_action")
    set_parser = settings_sub.add_parser("set", help="Change one setting")
    set_parser.add_argument("key")
    set_parser.add_argument("value")
    reset_parser = settings_sub.add_parser("reset", help="Restore every default")
    reset_parser.add_argument("--yes", action="store_true", help="Confirm the reset")
    return parser


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def _run_pass(catalog, cfg, session) -> int:
    ctx = RunContext(session=session, providers=get_image_providers())

    def handle_interrupt(signum, frame):
        """First Ctrl+C lets the current item finish; no new item is started."""
        logger.info("Received keyboard interrupt, finishing current item...")
        ctx.cancel()

    previous = signal.signal(signal.SIGINT, handle_interrupt)
    try:
        summary = asyncio.run(run(cfg, catalog, ctx))
    finally:
        signal.signal(signal.SIGINT, previous)
        ctx.close()
        shutdown_executor()

    _print_json(summary.to_dict())
    return 1 if summary.aborted else 0


def _settings_command(args, manager: SettingsManager) -> int:
    if args.settings_action == "set":
        if not manager.set(args.key, args.value):
            logger.error(f"Unknown setting: {args.key}")
            return 1
        if not manager.save_to_config():
            return 1
        _print_json({args.key: manager.get(args.key)})
        return 0
    if args.settings_action == "reset":
        if not args.yes:
            logger.error("Refusing to reset settings without --yes")
            return 1
        manager.reset_to_defaults()
        logger.info("Settings restored to defaults")
        return 0
    _print_json(manager.get_all(include_advanced=args.all))
    return 0


def _pool_command(args, service: PoolService) -> int:
    try:
        return _dispatch(args, service)
    except CatalogError as e:
        logger.error(f"Cannot list catalog items, nothing changed: {e}")
        return 1


def _dispatch(args, service: PoolService) -> int:
    if args.command == "pools":
        _print_json([p.to_dict() for p in service.list_pools()])
        return 0
    if args.command == "pool":
        info = service.get_pool(args.item_id)
        if info is None:
            return 1
        _print_json(info.to_dict())
        return 0
    if args.command == "stats":
        _print_json(service.get_statistics().to_dict())
        return 0
    if args.command == "rotate":
        chosen = service.force_rotate(args.item_id)
        if chosen:
            print(chosen)
        return 0 if chosen else 1
    if args.command == "search":
        found = service.search_remote_images(args.item_id)
        if found is None:
            return 1
        _print_json(found)
        return 0
    if args.command == "add":
        source = args.source
        if source.lower().startswith(("http://", "https://")):
            name = service.add_image_from_url(args.item_id, source)
        else:
            path = Path(source)
            if not path.is_file():
                logger.error(f"File not found: {source}")
                return 1
            name = service.add_image(args.item_id, path.read_bytes(), path.name)
        if name:
            print(name)
        return 0 if name else 1
    if args.command == "delete":
        return 0 if service.delete_image(args.item_id, args.name) else 1
    if args.command == "reorder":
        return 0 if service.reorder_pool(args.item_id, args.names) else 1
    if args.command == "cleanup":
        _print_json({"removed": service.cleanup_orphaned_pools()})
        return 0
    if args.command == "purge":
        if not args.yes:
            logger.error("Refusing to purge without --yes")
            return 1
        _print_json({"removed": service.purge_all_pools()})
        return 0
    return 1


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    # Set up logging
    setup_logging(
        console_level=DEBUG.get("log_level", "INFO"),
        file_level="DEBUG" if DEBUG.get("log_detailed", False) else "INFO",
        console=DEBUG.get("log_to_console", True),
        log_file=DEBUG.get("log_file", "posterrotator.log"),
        log_providers=DEBUG.get("log_providers", True),
    )

    if args.command == "settings":
        return _settings_command(args, settings)

    cfg = build_rotator_config(dry_run=True) if getattr(args, "dry_run", False) else build_rotator_config()
    session = create_session()
    try:
        catalog = select_catalog(
            CATALOG["type"],
            url=CATALOG["url"],
            api_key=CATALOG["api_key"],
            roots=LIBRARIES["roots"],
            session=session,
            timeout=NETWORK["timeout"],
        )
    except CatalogError as e:
        logger.error(str(e))
        session.close()
        return 1

    if args.command == "run":
        return _run_pass(catalog, cfg, session)

    service = PoolService(catalog, cfg, session)
    try:
        return _pool_command(args, service)
    finally:
        service.close()


if __name__ == "__main__":
    sys.exit(main())
