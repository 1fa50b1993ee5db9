"""
Pool management operations (browse, curate, force a rotation, clean up).

These are thin wrappers over the same on-disk state the rotation pass uses.
They run synchronously, outside any rotation pass, and go through the same
atomic side-file writes, so a concurrent pass never reads a torn document.
"""
from __future__ import annotations

import asyncio
import os
import shutil
import time
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import requests

from config import RotatorConfig
from context import create_session
from network_utils import get_with_retry
from providers import get_image_providers
from state_manager import FingerprintIndex, LanguageIndex, PoolOrder, RotationState, forget_member, pool_lock
from . import state
from .catalog import CatalogAdapter
from .fingerprint import fingerprint_bytes
from .helpers import format_size, is_snapshot_name, new_member_path
from .image import content_type_for, determine_image_extension, save_image_original
from .models import MediaItem, OpResult, PoolImage, PoolInfo, PoolStatistics
from .orchestrator import resolve_selected_roots
from .resolver import count_items_by_dir, destination_path, resolve
from .selector import is_locked, list_pool_members, order_members, promote
from .topup import gather_candidates
from logging_config import get_logger

logger = get_logger(__name__)

# Every kind a pool can belong to, whatever the current run settings
ALL_ITEM_KINDS = state.BASE_ITEM_KINDS + (state.SEASON_KIND, state.EPISODE_KIND)

DAY_SECONDS = 24 * 3600


class PoolService:
    """Management operations over existing pools."""

    def __init__(self, catalog: CatalogAdapter, cfg: RotatorConfig, session: Optional[requests.Session] = None,
                 providers: Optional[Sequence] = None):
        self.catalog = catalog
        self.cfg = cfg
        self.session = session or create_session()
        self.providers = providers
        self._items: Optional[List[MediaItem]] = None

    # ------------------------------------------------------------------
    # Lookup helpers
    # ------------------------------------------------------------------

    def _all_items(self) -> List[MediaItem]:
        """Every catalog item, listed once. Raises CatalogError when the catalog cannot enumerate."""
        if self._items is None:
            self._items = self.catalog.list_items(ALL_ITEM_KINDS)
        return self._items

    def _find_item(self, item_id: str) -> Optional[MediaItem]:
        for item in self._all_items():
            if item.id == item_id:
                return item
        item = self.catalog.get_item(item_id)
        if item is None:
            logger.warning(f"Item {item_id} not found")
        return item

    def _pool_dir(self, item: MediaItem) -> Optional[Path]:
        resolved = resolve(item, count_items_by_dir(self._all_items()))
        return resolved.pool_dir if resolved else None

    def _existing_pool_dir(self, item_id: str) -> Tuple[Optional[MediaItem], Optional[Path]]:
        item = self._find_item(item_id)
        if item is None:
            return None, None
        pool_dir = self._pool_dir(item)
        if pool_dir is None or not pool_dir.is_dir():
            logger.warning(f"No pool for '{item.name}'")
            return item, None
        return item, pool_dir

    def _member_path(self, pool_dir: Path, file_name: str) -> Optional[Path]:
        """Resolve a member name, refusing anything that lands outside the pool."""
        if not file_name:
            return None
        candidate = (pool_dir / file_name).resolve()
        if candidate.parent != pool_dir.resolve():
            logger.warning(f"Rejected pool file name outside {pool_dir}: {file_name}")
            return None
        return candidate

    def _current_primary(self, item: MediaItem) -> Optional[str]:
        return item.primary_image_path or self.catalog.get_primary_image_path(item)

    def _selected_roots(self) -> List[str]:
        roots = resolve_selected_roots(self.cfg, self.catalog.library_roots())
        return [r for r in roots if os.path.isdir(r)]

    def _discover_pool_dirs(self) -> List[Path]:
        """Every pool directory under the selected library roots."""
        found: List[Path] = []
        seen = set()
        for root in self._selected_roots():
            for dirpath, dirnames, _ in os.walk(root):
                if state.POOL_DIR_NAME in dirnames:
                    pool_dir = Path(dirpath) / state.POOL_DIR_NAME
                    key = os.path.normcase(str(pool_dir))
                    if key not in seen:
                        seen.add(key)
                        found.append(pool_dir)
                # Never descend into pools or other hidden folders
                dirnames[:] = [d for d in dirnames if not d.startswith(".")]
        return found

    # ------------------------------------------------------------------
    # Browsing
    # ------------------------------------------------------------------

    def _pool_info(self, item: MediaItem, pool_dir: Path) -> PoolInfo:
        order = PoolOrder.load(pool_dir).names
        languages = LanguageIndex.load(pool_dir).entries
        rotation_state = RotationState.load(pool_dir)

        current_size = 0
        current_primary = self._current_primary(item)
        if current_primary and os.path.isfile(current_primary):
            current_size = os.path.getsize(current_primary)

        position = {name: i for i, name in enumerate(order)}
        members = sorted(
            list_pool_members(pool_dir, self.cfg.extra_poster_patterns),
            key=lambda p: (position.get(p.name, len(position)), p.name.lower()),
        )

        images = []
        current_name = None
        for member in members:
            st = member.stat()
            # Promotion copies bytes, so the current artwork has a member's exact size
            is_current = current_size > 0 and st.st_size == current_size
            if is_current and current_name is None:
                current_name = member.name
            images.append(PoolImage(
                file_name=member.name,
                size_bytes=st.st_size,
                size_formatted=format_size(st.st_size),
                modified_utc=st.st_mtime,
                language=languages.get(member.name),
                is_current=is_current,
                is_snapshot=is_snapshot_name(member.name),
            ))

        return PoolInfo(
            item_id=item.id,
            item_name=item.name,
            item_type=item.kind,
            pool_path=str(pool_dir),
            is_locked=is_locked(pool_dir),
            images=images,
            total_size_bytes=sum(i.size_bytes for i in images),
            last_rotation_utc=rotation_state.last_rotated_utc_by_item.get(item.id),
            custom_order=order,
            current_image=current_name,
        )

    def list_pools(self) -> List[PoolInfo]:
        pools = []
        items = self._all_items()
        dir_counts = count_items_by_dir(items)
        for item in items:
            resolved = resolve(item, dir_counts)
            if resolved and resolved.pool_dir.is_dir():
                pools.append(self._pool_info(item, resolved.pool_dir))
        return pools

    def get_pool(self, item_id: str) -> Optional[PoolInfo]:
        item, pool_dir = self._existing_pool_dir(item_id)
        if pool_dir is None:
            return None
        return self._pool_info(item, pool_dir)

    def get_pool_image(self, item_id: str, file_name: str) -> Optional[Tuple[bytes, str]]:
        _, pool_dir = self._existing_pool_dir(item_id)
        if pool_dir is None:
            return None
        path = self._member_path(pool_dir, file_name)
        if path is None or not path.is_file():
            return None
        return path.read_bytes(), content_type_for(path.name)

    def _orphaned_pool_dirs(self) -> List[Path]:
        items = self._all_items()
        known_ids = {item.id for item in items}
        dir_counts = count_items_by_dir(items)
        owned = set()
        for item in items:
            resolved = resolve(item, dir_counts)
            if resolved:
                owned.add(os.path.normcase(str(resolved.pool_dir)))

        orphans = []
        for pool_dir in self._discover_pool_dirs():
            if os.path.normcase(str(pool_dir)) in owned:
                continue
            rotation_state = RotationState.load(pool_dir)
            referenced = set(rotation_state.last_rotated_utc_by_item) | set(rotation_state.last_index_by_item)
            if not referenced & known_ids:
                orphans.append(pool_dir)
        return orphans

    def get_statistics(self, now: Optional[float] = None) -> PoolStatistics:
        now = time.time() if now is None else now
        pools = self.list_pools()
        stats = PoolStatistics()

        stats.total_pools = len(pools)
        stats.total_images = sum(len(p.images) for p in pools)
        stats.total_size_bytes = sum(p.total_size_bytes for p in pools)
        stats.total_size_formatted = format_size(stats.total_size_bytes)
        stats.locked_pools = sum(1 for p in pools if p.is_locked)
        stats.average_images_per_pool = round(stats.total_images / stats.total_pools, 1) if pools else 0.0
        stats.orphaned_pools = len(self._orphaned_pool_dirs())

        for p in pools:
            stats.type_breakdown[p.item_type] = stats.type_breakdown.get(p.item_type, 0) + 1

        rotations = [p.last_rotation_utc for p in pools if p.last_rotation_utc is not None]
        stats.last_rotation_utc = max(rotations) if rotations else None
        stats.rotations_last_24h = sum(1 for t in rotations if now - t <= DAY_SECONDS)
        stats.rotations_last_7d = sum(1 for t in rotations if now - t <= 7 * DAY_SECONDS)
        return stats

    # ------------------------------------------------------------------
    # Curation
    # ------------------------------------------------------------------

    def add_image(self, item_id: str, data: bytes, file_name: str = "") -> Optional[str]:
        """Add image bytes as a new member. Returns the member name, or None."""
        item = self._find_item(item_id)
        if item is None:
            return None
        pool_dir = self._pool_dir(item)
        if pool_dir is None:
            return None
        pool_dir.mkdir(parents=True, exist_ok=True)

        ext = determine_image_extension(file_name, None, data)
        target = new_member_path(pool_dir, ext)
        if not save_image_original(data, target):
            return None

        with pool_lock(pool_dir):
            hashes = FingerprintIndex.load(pool_dir)
            hashes.entries[target.name] = fingerprint_bytes(data)
            hashes.save(pool_dir)

        logger.info(f"Added {target.name} to pool of '{item.name}'")
        return target.name

    def add_image_from_url(self, item_id: str, url: str) -> Optional[str]:
        if not url or not url.strip():
            return None
        try:
            response = get_with_retry(self.session, url.strip(), timeout=self.cfg.timeout, retries=self.cfg.retries)
        except requests.exceptions.RequestException as e:
            logger.error(f"Failed to download {url}: {e}")
            return None
        ext = determine_image_extension(url, response.headers.get("Content-Type"), response.content)
        return self.add_image(item_id, response.content, f"download{ext}")

    def search_remote_images(self, item_id: str) -> Optional[List[Dict]]:
        """
        Every candidate the providers offer for an item, unfiltered and in
        provider order, so one can be picked and passed to add_image_from_url.
        Returns None for an unknown item.
        """
        item = self._find_item(item_id)
        if item is None:
            return None

        providers = self.providers
        owned = providers is None
        if owned:
            providers = get_image_providers()
        try:
            candidates = asyncio.run(gather_candidates(item, providers))
        finally:
            if owned:
                for provider in providers:
                    provider.session.close()

        logger.info(f"Found {len(candidates)} remote image(s) for '{item.name}'")
        return [
            {
                "url": c.url,
                "kind": c.kind.value,
                "language": c.language,
                "width": c.width,
                "height": c.height,
                "provider": c.provider,
            }
            for c in candidates
        ]

    def delete_image(self, item_id: str, file_name: str) -> bool:
        item, pool_dir = self._existing_pool_dir(item_id)
        if pool_dir is None:
            return False
        path = self._member_path(pool_dir, file_name)
        if path is None:
            return False
        if not path.is_file():
            logger.warning(f"Image {file_name} not found in pool of '{item.name}'")
            return False
        path.unlink()
        forget_member(pool_dir, path.name)
        logger.info(f"Deleted {path.name} from pool of '{item.name}'")
        return True

    def reorder_pool(self, item_id: str, file_names: Sequence[str]) -> bool:
        item, pool_dir = self._existing_pool_dir(item_id)
        if pool_dir is None:
            return False
        with pool_lock(pool_dir):
            PoolOrder(list(file_names)).save(pool_dir)
        logger.info(f"Reordered pool of '{item.name}' ({len(file_names)} image(s))")
        return True

    def force_rotate(self, item_id: str, now: Optional[float] = None) -> Optional[str]:
        """
        Promote the next member now, ignoring the cooldown.
        Uses the sequential cursor and steps over the snapshot when it lands on it.
        Returns the promoted member name, or None.
        """
        item = self._find_item(item_id)
        if item is None:
            return None
        resolved = resolve(item, count_items_by_dir(self._all_items()))
        if resolved is None or not resolved.pool_dir.is_dir():
            logger.warning(f"Cannot force rotate '{item.name}': no pool")
            return None

        members = order_members(list_pool_members(resolved.pool_dir, self.cfg.extra_poster_patterns))
        if len(members) < 2:
            logger.warning(f"Cannot force rotate '{item.name}': not enough images")
            return None

        rotation_state = RotationState.load(resolved.pool_dir)
        idx = rotation_state.last_index_by_item.get(item.id, 0) % len(members)
        if is_snapshot_name(members[idx].name):
            idx = (idx + 1) % len(members)
        chosen = members[idx]

        destination = destination_path(item, resolved, chosen.suffix, self._current_primary(item))
        if not promote(chosen, destination):
            return None

        now = time.time() if now is None else now
        rotation_state.last_index_by_item[item.id] = idx + 1
        rotation_state.last_rotated_utc_by_item[item.id] = int(now)
        rotation_state.save(resolved.pool_dir)

        if self.catalog.notify_artwork_changed(item, destination) == OpResult.FAILED:
            logger.warning(f"Catalog was not notified about the new artwork of '{item.name}'")
        logger.info(f"Forced rotation of '{item.name}' to {chosen.name}")
        return chosen.name

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------

    def cleanup_orphaned_pools(self) -> int:
        """Delete pools no catalog item owns or references. Raises CatalogError before deleting anything."""
        orphans = self._orphaned_pool_dirs()
        removed = 0
        for pool_dir in orphans:
            try:
                shutil.rmtree(pool_dir)
            except OSError as e:
                logger.error(f"Failed to delete orphaned pool {pool_dir}: {e}")
                continue
            removed += 1
            logger.info(f"Deleted orphaned pool {pool_dir}")
        logger.info(f"Cleanup removed {removed} orphaned pool(s)")
        return removed

    def purge_all_pools(self) -> int:
        removed = 0
        for pool_dir in self._discover_pool_dirs():
            try:
                shutil.rmtree(pool_dir)
            except OSError as e:
                logger.error(f"Failed to delete pool {pool_dir}: {e}")
                continue
            removed += 1
        logger.info(f"Purged {removed} pool(s)")
        return removed

    def close(self) -> None:
        self.session.close()
