"""
Rotation selector: which pool member to promote next, the promotion copy
itself, and the cooldown / lock gates around top-up.

State per item lives in RotationState (rotation_state.json). The selector
only mutates the in-memory object; the caller saves it after a successful
promotion.
"""
from __future__ import annotations

import fnmatch
import os
import random
import shutil
import stat
import time
from pathlib import Path
from typing import List, Optional, Sequence

from config import RotatorConfig
from state_manager import HASHES_FILE, LANGUAGES_FILE, ORDER_FILE, ROTATION_STATE_FILE, RotationState
from . import state
from .helpers import is_snapshot_name, touch
from logging_config import get_logger

logger = get_logger(__name__)

_SIDE_FILES = {ROTATION_STATE_FILE, LANGUAGES_FILE, HASHES_FILE, ORDER_FILE, state.LOCK_FILE_NAME}


def _is_member_name(name: str, extra_patterns: Sequence[str]) -> bool:
    lowered = name.lower()
    if name in _SIDE_FILES or lowered.endswith(".tmp"):
        return False
    if os.path.splitext(lowered)[1] in state.IMAGE_EXTENSIONS:
        return True
    return any(fnmatch.fnmatch(lowered, pattern.lower()) for pattern in extra_patterns if pattern)


def list_pool_members(pool_dir: Path, extra_patterns: Sequence[str] = ()) -> List[Path]:
    """Image files in the pool directory plus anything matching the extra patterns."""
    if not pool_dir.is_dir():
        return []
    return [
        p for p in pool_dir.iterdir()
        if p.is_file() and _is_member_name(p.name, extra_patterns)
    ]


def order_members(members: Sequence[Path]) -> List[Path]:
    """Snapshot member last, everything else by filename (case-insensitive)."""
    return sorted(members, key=lambda p: (1 if is_snapshot_name(p.name) else 0, p.name.lower()))


def pick_next(
    members: Sequence[Path],
    item_id: str,
    cfg: RotatorConfig,
    rotation_state: RotationState,
    rng: random.Random = random,
) -> Path:
    """
    Choose the member to promote.

    Sequential: the first pick for an item with several members is index 1
    (cursor stored as 2); afterwards cursor mod n, then cursor + 1.
    Random: uniform over non-snapshot members; the cursor is left alone.

    Raises:
        ValueError: if `members` is empty
    """
    ordered = order_members(members)
    if not ordered:
        raise ValueError("cannot pick from an empty pool")

    cursors = rotation_state.last_index_by_item
    if cfg.sequential_rotation:
        if item_id not in cursors and len(ordered) > 1:
            idx = 1
            cursors[item_id] = 2
        else:
            last = cursors.get(item_id, 0)
            idx = last % len(ordered)
            cursors[item_id] = last + 1
        return ordered[idx]

    if len(ordered) == 1:
        return ordered[0]
    non_snapshot = [p for p in ordered if not is_snapshot_name(p.name)]
    return rng.choice(non_snapshot or ordered)


def promote(src: Path, dst: Path) -> bool:
    """
    Copy a pool member over the item's artwork.
    Clears a read-only bit on the destination first and refreshes its mtime.

    Returns:
        True only when the byte copy completed
    """
    try:
        dst.parent.mkdir(parents=True, exist_ok=True)
        if dst.exists():
            mode = dst.stat().st_mode
            if not mode & stat.S_IWRITE:
                os.chmod(dst, mode | stat.S_IWRITE)
        shutil.copyfile(src, dst)
    except OSError as e:
        logger.warning(f"Failed to copy {src.name} over {dst}: {e}")
        return False

    try:
        touch(dst)
    except OSError as e:
        logger.debug(f"Could not refresh mtime of {dst}: {e}")
    return True


def allow_top_up(
    rotation_state: RotationState,
    item_id: str,
    member_count: int,
    cfg: RotatorConfig,
    now: Optional[float] = None,
) -> bool:
    """Cooldown gate. Only top-up is gated; promotion from cached members always proceeds."""
    last = rotation_state.last_rotated_utc_by_item.get(item_id)
    if last is None or member_count == 0:
        return True
    now = time.time() if now is None else now
    elapsed_hours = (now - last) / 3600
    return elapsed_hours >= cfg.min_hours


def hours_since_rotation(rotation_state: RotationState, item_id: str, now: Optional[float] = None) -> Optional[float]:
    last = rotation_state.last_rotated_utc_by_item.get(item_id)
    if last is None:
        return None
    now = time.time() if now is None else now
    return (now - last) / 3600


# =============================================================================
# Lock sentinel
# =============================================================================

def lock_path(pool_dir: Path) -> Path:
    return pool_dir / state.LOCK_FILE_NAME


def is_locked(pool_dir: Path) -> bool:
    return lock_path(pool_dir).exists()


def lock_pool(pool_dir: Path) -> None:
    lock_path(pool_dir).touch()


def unlock_pool(pool_dir: Path) -> None:
    try:
        lock_path(pool_dir).unlink()
    except FileNotFoundError:
        pass
