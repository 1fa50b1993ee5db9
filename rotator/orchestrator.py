"""
Run orchestrator: one pass over every eligible catalog item.

Items are processed one at a time. The cancellation flag is checked before
each item; an item already in progress always finishes. A failure inside one
item is logged and counted, never fatal. Only a catalog that cannot
enumerate items aborts the run, before any pool is touched.

Dependencies: resolver, topup, selector, catalog, language
"""
from __future__ import annotations

import time
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from config import RotatorConfig
from context import RunContext
from state_manager import RotationState
from . import state
from .catalog import CatalogAdapter, CatalogError
from .helpers import looks_like_path, path_starts_with, run_blocking, touch
from .language import detect_original_language
from .models import ItemResult, MediaItem, OpResult, RunSummary
from .resolver import count_items_by_dir, destination_path, resolve
from .selector import (
    allow_top_up,
    hours_since_rotation,
    is_locked,
    list_pool_members,
    lock_pool,
    pick_next,
    promote,
    unlock_pool,
)
from .topup import snapshot_current_artwork, top_up
from logging_config import get_logger

logger = get_logger(__name__)


def item_kinds(cfg: RotatorConfig) -> List[str]:
    kinds = list(state.BASE_ITEM_KINDS)
    if cfg.enable_season_posters:
        kinds.append(state.SEASON_KIND)
    if cfg.enable_episode_posters:
        kinds.append(state.EPISODE_KIND)
    return kinds


def _dedupe_paths(paths: Sequence[str]) -> List[str]:
    seen = set()
    unique = []
    for p in paths:
        if p.lower() not in seen:
            seen.add(p.lower())
            unique.append(p)
    return unique


def configured_library_names(cfg: RotatorConfig) -> List[str]:
    """Enabled library rules win over the plain name list."""
    if cfg.library_rules:
        return [name for name, enabled in cfg.library_rules if enabled]
    return list(cfg.library_names)


def resolve_selected_roots(cfg: RotatorConfig, library_map: Dict[str, List[str]]) -> List[str]:
    """
    Root paths this run is limited to.

    1. Manual entries: path-like entries are taken as-is, anything else is a
       library name looked up in `library_map`.
    2. Otherwise the configured library names.
    3. Otherwise every known library root.
    An empty result means no scoping (every item is processed).
    """
    manual = _dedupe_paths([e.strip() for e in cfg.manual_library_roots if e and e.strip()])
    if manual:
        paths: List[str] = []
        for entry in manual:
            if looks_like_path(entry):
                paths.append(entry)
            elif library_map.get(entry):
                paths.extend(library_map[entry])
            else:
                logger.warning(f"Manual library entry '{entry}' does not match any known library")
        paths = _dedupe_paths(paths)
        logger.info(f"Using manual library roots: {', '.join(paths) or 'none'}")
        return paths

    names = configured_library_names(cfg)
    if names:
        paths = []
        for name in names:
            if library_map.get(name):
                paths.extend(library_map[name])
            else:
                logger.warning(f"Configured library '{name}' not found among current libraries")
        paths = _dedupe_paths(paths)
        logger.info(f"Selected roots for libraries {', '.join(names)}: {', '.join(paths) or 'none'}")
        return paths

    all_roots = _dedupe_paths([p for paths in library_map.values() for p in paths])
    if all_roots:
        logger.debug(f"No libraries configured, using all roots: {', '.join(all_roots)}")
    return all_roots


def root_for(path: str, roots: Sequence[str]) -> Optional[str]:
    """Longest root containing `path`."""
    matches = [r for r in roots if looks_like_path(r) and path_starts_with(path, r)]
    return max(matches, key=len) if matches else None


async def process_item(
    item: MediaItem,
    dir_counts: Dict[str, int],
    cfg: RotatorConfig,
    catalog: CatalogAdapter,
    ctx: RunContext,
    now: Optional[float] = None,
) -> ItemResult:
    """Resolve, top up, choose and promote for a single item."""
    now = time.time() if now is None else now
    resolved = resolve(item, dir_counts)
    if resolved is None:
        return ItemResult(skipped=True)

    pool_dir = resolved.pool_dir
    members = list_pool_members(pool_dir, cfg.extra_poster_patterns)
    locked = is_locked(pool_dir)
    rotation_state = RotationState.load(pool_dir)
    can_top_up = allow_top_up(rotation_state, item.id, len(members), cfg, now)
    result = ItemResult()

    logger.debug(
        f"'{item.name}': pool {len(members)}/{cfg.pool_size}, locked={locked}, top-up allowed={can_top_up}"
    )

    if locked and not cfg.lock_after_fill:
        unlock_pool(pool_dir)
        locked = False
        logger.info(f"Unlocked pool for '{item.name}' (locking disabled)")

    if not locked and len(members) < cfg.pool_size:
        if can_top_up:
            original_language = None
            if cfg.enable_language_filter and cfg.uses_original_language_fallback:
                original_language = detect_original_language(item)
                logger.debug(f"'{item.name}': detected original language '{original_language}'")
            added = await top_up(item, resolved, cfg.pool_size - len(members), cfg, ctx, original_language)
            result.added = len(added)
            members.extend(added)
        else:
            elapsed = hours_since_rotation(rotation_state, item.id, now) or 0.0
            logger.debug(
                f"Skipping top-up for '{item.name}' (cooldown, {elapsed:.1f}h < {cfg.min_hours}h); will still rotate"
            )

    if not locked and cfg.lock_after_fill and len(members) >= cfg.pool_size:
        lock_pool(pool_dir)
        logger.info(f"Locked pool for '{item.name}' at size {len(members)}")

    current_primary = item.primary_image_path or await run_blocking(catalog.get_primary_image_path, item)

    if not members:
        snapshot = snapshot_current_artwork(item, resolved, current_primary)
        if snapshot is not None:
            members.append(snapshot)

    if not members:
        logger.debug(f"No pool images for '{item.name}'; nothing to rotate")
        result.skipped = True
        return result

    chosen = pick_next(members, item.id, cfg, rotation_state)
    destination = destination_path(item, resolved, chosen.suffix, current_primary)

    if cfg.dry_run:
        logger.info(f"[dry run] would rotate '{item.name}' to {chosen.name} ({destination.name})")
        result.promoted = chosen.name
        result.dry_run = True
        return result

    if not promote(chosen, destination):
        result.failed = True
        return result

    rotation_state.last_rotated_utc_by_item[item.id] = int(now)
    rotation_state.save(pool_dir)
    result.rotated = True
    result.promoted = chosen.name

    touch(resolved.item_dir)
    notified = await run_blocking(catalog.notify_artwork_changed, item, destination)
    if notified == OpResult.FAILED:
        result.notify_failed = True

    logger.info(f"Rotated '{item.name}' to {chosen.name} ({destination.name})")
    return result


def nudge_library_root(root: str, catalog: CatalogAdapter, trigger_scan: bool) -> OpResult:
    """
    Make file watchers notice a rotated library: create or refresh the touch
    file, refresh the root's mtime, and optionally ask the catalog to scan.
    """
    root_path = Path(root)
    try:
        touch_file = root_path / state.TOUCH_FILE_NAME
        if touch_file.exists():
            touch(touch_file)
        else:
            touch_file.write_text("", encoding="utf-8")
        touch(root_path)
    except OSError as e:
        logger.warning(f"Could not nudge library root {root}: {e}")

    if not trigger_scan:
        return OpResult.UNSUPPORTED
    scan = catalog.request_library_scan(root)
    if scan == OpResult.OK:
        logger.debug(f"Requested library scan for {root}")
    return scan


async def run(
    cfg: RotatorConfig,
    catalog: CatalogAdapter,
    ctx: RunContext,
    now: Optional[float] = None,
) -> RunSummary:
    """One rotation pass over every eligible item."""
    summary = RunSummary()
    kinds = item_kinds(cfg)
    logger.info(f"Poster rotation started ({catalog}, kinds: {', '.join(kinds)}{', dry run' if cfg.dry_run else ''})")

    try:
        items = await run_blocking(catalog.list_items, kinds)
    except CatalogError as e:
        logger.error(f"Cannot enumerate catalog items, aborting run: {e}")
        summary.aborted = True
        return summary

    # Mixed-folder detection counts every item, in scope or not
    dir_counts = count_items_by_dir(items)

    library_map = await run_blocking(catalog.library_roots)
    all_roots = _dedupe_paths([p for paths in library_map.values() for p in paths])
    selected = resolve_selected_roots(cfg, library_map)
    if selected:
        in_scope = [i for i in items if root_for(i.path or "", selected)]
        logger.debug(f"{len(in_scope)}/{len(items)} item(s) under the selected roots")
        items = in_scope

    summary.total = len(items)
    roots_to_nudge: List[str] = []

    for item in items:
        if ctx.cancelled:
            logger.info("Rotation cancelled; not starting further items")
            summary.cancelled = True
            break
        try:
            result = await process_item(item, dir_counts, cfg, catalog, ctx, now)
        except Exception as e:
            logger.warning(f"Error processing '{item.name}' ({item.path}): {e}", exc_info=True)
            summary.processed += 1
            summary.errored += 1
            continue

        summary.processed += 1
        summary.added += result.added
        if result.failed:
            summary.errored += 1
        elif result.rotated:
            summary.rotated += 1
            root = root_for(item.path or "", all_roots or selected)
            if root and root.lower() not in (r.lower() for r in roots_to_nudge):
                roots_to_nudge.append(root)
        elif result.dry_run:
            summary.dry_run += 1
        elif result.skipped:
            summary.skipped += 1
        if result.notify_failed:
            summary.notify_failures += 1

    for root in roots_to_nudge:
        if nudge_library_root(root, catalog, cfg.trigger_library_scan) == OpResult.FAILED:
            summary.notify_failures += 1
        summary.nudged_roots.append(root)

    logger.info(
        f"Poster rotation finished: {summary.rotated} rotated, {summary.dry_run} dry run, {summary.skipped} skipped, "
        f"{summary.errored} errored, {summary.added} image(s) added ({summary.processed}/{summary.total} processed)"
    )
    return summary
