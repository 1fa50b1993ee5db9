"""
Helper functions for the rotator package.
Pure utility functions with minimal dependencies.

Dependencies: state (constants)
"""
from __future__ import annotations

import asyncio
import os
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Optional

from . import state
from logging_config import get_logger

logger = get_logger(__name__)


# =============================================================================
# Thread Executor for Blocking Operations
# =============================================================================
# Downloads and provider lookups use requests (blocking), so they run in a
# shared thread pool while the event loop keeps the concurrency bookkeeping.

_thread_executor: Optional[ThreadPoolExecutor] = None


def _get_executor() -> ThreadPoolExecutor:
    """Get or create the thread executor for blocking operations."""
    global _thread_executor
    if _thread_executor is None:
        _thread_executor = ThreadPoolExecutor(
            max_workers=8,
            thread_name_prefix="PosterRotator_Worker"
        )
    return _thread_executor


async def run_blocking(func: Callable, *args: Any) -> Any:
    """
    Run a blocking function in the shared thread executor.

    Args:
        func: Blocking function to run
        *args: Arguments to pass to the function

    Returns:
        Result of the function
    """
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(_get_executor(), func, *args)


def shutdown_executor():
    """Shutdown the thread executor. Call during app cleanup."""
    global _thread_executor
    if _thread_executor is not None:
        _thread_executor.shutdown(wait=False, cancel_futures=True)
        _thread_executor = None


# =============================================================================
# Names and paths
# =============================================================================

def unix_millis() -> int:
    return int(time.time() * 1000)


def new_member_path(pool_dir: Path, ext: str) -> Path:
    """
    Return a not-yet-existing pool_<unixMillis><ext> path.
    Bumps the timestamp when two members are written in the same millisecond.
    """
    millis = unix_millis()
    while True:
        candidate = pool_dir / f"{state.MEMBER_PREFIX}{millis}{ext}"
        if not candidate.exists():
            return candidate
        millis += 1


def is_snapshot_name(file_name: str) -> bool:
    return file_name.lower().startswith(state.SNAPSHOT_STEM)


def looks_like_path(entry: str) -> bool:
    """Manual selections containing a drive colon or a separator are paths, anything else is a library name."""
    return ":" in entry or "\\" in entry or "/" in entry


def path_starts_with(path: str, root: str) -> bool:
    """Case-insensitive prefix test used for library root matching."""
    return bool(path) and bool(root) and path.lower().startswith(root.lower())


def touch(path: Path) -> None:
    """Refresh a file or directory mtime to now."""
    now = time.time()
    os.utime(path, (now, now))


def format_size(size_bytes: int) -> str:
    """Human readable size with at most two decimals: 0 B, 512 B, 1.5 KB, 2.25 MB"""
    units = ["B", "KB", "MB", "GB", "TB"]
    size = float(max(0, size_bytes))
    unit = 0
    while size >= 1024 and unit < len(units) - 1:
        size /= 1024
        unit += 1
    number = f"{size:.2f}".rstrip("0").rstrip(".")
    return f"{number} {units[unit]}"
