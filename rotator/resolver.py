"""
Pool directory resolution: item -> item directory, pool directory and the
artwork destination that a promotion overwrites.
"""
from __future__ import annotations

import glob
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Optional

from . import state
from .models import MediaItem
from logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ResolvedItem:
    item_dir: Path
    pool_dir: Path
    mixed_folder: bool


def _dir_key(path: str) -> str:
    return os.path.normcase(os.path.dirname(path or ""))


def item_directory(item: MediaItem) -> Optional[Path]:
    """The item's own folder when its path is a directory, else the folder containing it."""
    if not item.path:
        return None
    path = Path(item.path)
    return path if path.is_dir() else path.parent


def count_items_by_dir(items: Iterable[MediaItem]) -> Dict[str, int]:
    """Number of catalog items per containing directory (case-insensitive on Windows)."""
    counts: Dict[str, int] = {}
    for item in items:
        key = _dir_key(item.path)
        counts[key] = counts.get(key, 0) + 1
    return counts


def is_mixed_folder(item: MediaItem, dir_counts: Dict[str, int]) -> bool:
    key = _dir_key(item.path)
    return bool(key) and dir_counts.get(key, 0) > 1


def pool_directory(item_dir: Path) -> Path:
    # Mixed folders share this one directory; consumers expect a fixed relative path
    return item_dir / state.POOL_DIR_NAME


def resolve(item: MediaItem, dir_counts: Dict[str, int]) -> Optional[ResolvedItem]:
    """Resolve an item's directories. None means the item has no existing directory and is skipped."""
    item_dir = item_directory(item)
    if item_dir is None or not item_dir.is_dir():
        logger.debug(f"No directory for '{item.name}' ({item.path}); skipping")
        return None
    return ResolvedItem(item_dir, pool_directory(item_dir), is_mixed_folder(item, dir_counts))


def _base_name(item: MediaItem) -> str:
    return Path(item.path).stem if item.path else "poster"


def find_per_item_poster(item: MediaItem, item_dir: Path) -> Optional[Path]:
    """Existing <base>-poster.* or <base>.* artwork beside an item in a mixed folder."""
    base = _base_name(item)
    for stem in (f"{base}-poster", base):
        matches = sorted(
            p for p in item_dir.glob(f"{glob.escape(stem)}.*")
            if p.is_file() and p.suffix.lower() in state.PER_ITEM_POSTER_EXTENSIONS
        )
        if matches:
            return matches[0]
    return None


def destination_path(
    item: MediaItem,
    resolved: ResolvedItem,
    chosen_ext: str,
    current_primary: Optional[str] = None,
) -> Path:
    """
    Where a promoted member is copied:
    1. the catalog's current artwork path, when it has one;
    2. in a mixed folder, an existing per-item poster, else <base>-poster<ext>;
    3. otherwise poster.jpg in the item directory.
    """
    if current_primary:
        return Path(current_primary)
    if resolved.mixed_folder:
        existing = find_per_item_poster(item, resolved.item_dir)
        if existing is not None:
            return existing
        ext = (chosen_ext or ".jpg").lower()
        return resolved.item_dir / f"{_base_name(item)}-poster{ext}"
    return resolved.item_dir / state.DEFAULT_POSTER_NAME
