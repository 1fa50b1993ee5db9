"""
Atomic JSON state store for pool side-files.

Every document a pool keeps beside its images (rotation cursor, language tags,
fingerprints, manual order) is read and written through this module. Writes go
to a uniquely named temp file in the same directory and are then moved over
the target with os.replace, so readers (including the management commands
running in another process) only ever see a complete document.
"""
import json
import os
import threading
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, ClassVar, Dict, List, Union

from logging_config import get_logger

logger = get_logger(__name__)

ROTATION_STATE_FILE = "rotation_state.json"
LANGUAGES_FILE = "pool_languages.json"
HASHES_FILE = "pool_hashes.json"
ORDER_FILE = "pool_order.json"

SCHEMA_VERSION = 1

PathLike = Union[str, Path]

# Per-pool locks for read-modify-write cycles. Each pool gets its own lock,
# allowing parallel writes to different pools.
_pool_locks: Dict[str, threading.RLock] = {}
_pool_locks_lock = threading.Lock()  # Protects the lock dictionary itself


def pool_lock(pool_dir: PathLike) -> threading.RLock:
    """Get (or create) the in-process lock guarding one pool's side-files."""
    key = os.path.normcase(os.path.abspath(str(pool_dir)))
    with _pool_locks_lock:
        lock = _pool_locks.get(key)
        if lock is None:
            lock = threading.RLock()
            _pool_locks[key] = lock
        return lock


def write_json_atomic(path: PathLike, data: Any) -> None:
    """
    Write `data` as UTF-8 JSON to `path` atomically.

    The final path is only ever touched by os.replace; if anything fails
    before that, the previous document stays intact and the temp file is
    removed.

    Raises:
        OSError: when the temp file cannot be written or moved into place.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.parent / f"{path.stem}_{uuid.uuid4().hex}.json.tmp"
    try:
        with open(temp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, path)
    except Exception:
        try:
            if temp_path.exists():
                os.remove(temp_path)
        except OSError:
            pass
        raise


def read_json(path: PathLike, default: Any = None) -> Any:
    """
    Read a JSON document, returning `default` when it is missing or unreadable.
    A corrupt file is never fatal: it is reported and treated as absent.
    """
    path = Path(path)
    if not path.exists():
        return default
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError) as e:
        # ValueError covers JSONDecodeError and UnicodeDecodeError
        logger.warning(f"Failed to read {path}: {e}, using defaults")
        return default


@dataclass
class RotationState:
    """Per-pool rotation cursor and last promotion time, keyed by item id."""
    last_index_by_item: Dict[str, int] = field(default_factory=dict)
    last_rotated_utc_by_item: Dict[str, int] = field(default_factory=dict)

    FILE_NAME: ClassVar[str] = ROTATION_STATE_FILE

    @classmethod
    def from_dict(cls, data: Any) -> "RotationState":
        if not isinstance(data, dict):
            return cls()
        version = data.get("SchemaVersion", SCHEMA_VERSION)
        if isinstance(version, int) and version > SCHEMA_VERSION:
            logger.warning(f"Rotation state schema v{version} is newer than v{SCHEMA_VERSION}; reading known fields only")
        return cls(
            last_index_by_item=_int_map(data.get("LastIndexByItem")),
            last_rotated_utc_by_item=_int_map(data.get("LastRotatedUtcByItem")),
        )

    def to_dict(self) -> dict:
        return {
            "SchemaVersion": SCHEMA_VERSION,
            "LastIndexByItem": dict(self.last_index_by_item),
            "LastRotatedUtcByItem": dict(self.last_rotated_utc_by_item),
        }

    @classmethod
    def load(cls, pool_dir: PathLike) -> "RotationState":
        return cls.from_dict(read_json(Path(pool_dir) / cls.FILE_NAME))

    def save(self, pool_dir: PathLike) -> None:
        write_json_atomic(Path(pool_dir) / self.FILE_NAME, self.to_dict())


@dataclass
class LanguageIndex:
    """Flat map of pool member filename -> language tag."""
    entries: Dict[str, str] = field(default_factory=dict)

    FILE_NAME: ClassVar[str] = LANGUAGES_FILE

    @classmethod
    def from_dict(cls, data: Any) -> "LanguageIndex":
        if not isinstance(data, dict):
            return cls()
        return cls({k: v for k, v in data.items() if isinstance(k, str) and isinstance(v, str)})

    def count(self, language: str) -> int:
        wanted = (language or "").lower()
        return sum(1 for v in self.entries.values() if v.lower() == wanted)

    @classmethod
    def load(cls, pool_dir: PathLike) -> "LanguageIndex":
        return cls.from_dict(read_json(Path(pool_dir) / cls.FILE_NAME))

    def save(self, pool_dir: PathLike) -> None:
        write_json_atomic(Path(pool_dir) / self.FILE_NAME, dict(self.entries))


@dataclass
class FingerprintIndex:
    """Flat map of pool member filename -> unsigned 64-bit fingerprint."""
    entries: Dict[str, int] = field(default_factory=dict)

    FILE_NAME: ClassVar[str] = HASHES_FILE

    @classmethod
    def from_dict(cls, data: Any) -> "FingerprintIndex":
        if not isinstance(data, dict):
            return cls()
        entries = {}
        for k, v in data.items():
            # bool is an int subclass; a true/false here is corruption, not a hash
            if isinstance(k, str) and isinstance(v, int) and not isinstance(v, bool) and 0 <= v < 2 ** 64:
                entries[k] = v
        return cls(entries)

    @classmethod
    def load(cls, pool_dir: PathLike) -> "FingerprintIndex":
        return cls.from_dict(read_json(Path(pool_dir) / cls.FILE_NAME))

    def save(self, pool_dir: PathLike) -> None:
        write_json_atomic(Path(pool_dir) / self.FILE_NAME, dict(self.entries))


@dataclass
class PoolOrder:
    """Manually curated member order (written by the management commands only)."""
    names: List[str] = field(default_factory=list)

    FILE_NAME: ClassVar[str] = ORDER_FILE

    @classmethod
    def from_list(cls, data: Any) -> "PoolOrder":
        if not isinstance(data, list):
            return cls()
        return cls([n for n in data if isinstance(n, str)])

    @classmethod
    def load(cls, pool_dir: PathLike) -> "PoolOrder":
        return cls.from_list(read_json(Path(pool_dir) / cls.FILE_NAME))

    def save(self, pool_dir: PathLike) -> None:
        write_json_atomic(Path(pool_dir) / self.FILE_NAME, list(self.names))


def forget_member(pool_dir: PathLike, file_name: str) -> None:
    """Drop a removed member from every side-file that references it."""
    with pool_lock(pool_dir):
        languages = LanguageIndex.load(pool_dir)
        if languages.entries.pop(file_name, None) is not None:
            languages.save(pool_dir)
        hashes = FingerprintIndex.load(pool_dir)
        if hashes.entries.pop(file_name, None) is not None:
            hashes.save(pool_dir)
        order = PoolOrder.load(pool_dir)
        if file_name in order.names:
            order.names = [n for n in order.names if n != file_name]
            order.save(pool_dir)


def _int_map(value: Any) -> Dict[str, int]:
    if not isinstance(value, dict):
        return {}
    return {
        str(k): v for k, v in value.items()
        if isinstance(v, int) and not isinstance(v, bool)
    }
