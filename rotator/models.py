"""
Value types shared by the catalog adapters, providers and the engine.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class ImageKind(str, Enum):
    PRIMARY = "Primary"
    THUMB = "Thumb"
    BACKDROP = "Backdrop"


class OpResult(str, Enum):
    """Outcome of a best-effort call into an external collaborator."""
    OK = "ok"
    UNSUPPORTED = "unsupported"  # expected; stays silent
    FAILED = "failed"  # logged and counted


@dataclass
class MediaItem:
    id: str
    name: str
    path: str
    kind: str = "Movie"
    original_title: Optional[str] = None
    provider_ids: Dict[str, str] = field(default_factory=dict)
    primary_image_path: Optional[str] = None
    production_year: Optional[int] = None

    def provider_id(self, *names: str) -> Optional[str]:
        """Case-insensitive lookup of the first matching cross-reference id."""
        lowered = {k.lower(): v for k, v in self.provider_ids.items() if v}
        for name in names:
            value = lowered.get(name.lower())
            if value:
                return str(value)
        return None


@dataclass(frozen=True)
class Candidate:
    """A provider-returned image descriptor. Never persisted."""
    url: str
    kind: ImageKind = ImageKind.PRIMARY
    provider: str = ""
    language: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None

    @property
    def is_landscape(self) -> bool:
        return bool(self.width and self.height and self.width > self.height)


@dataclass
class ItemResult:
    rotated: bool = False
    added: int = 0
    skipped: bool = False
    failed: bool = False
    notify_failed: bool = False
    dry_run: bool = False
    promoted: Optional[str] = None


@dataclass
class RunSummary:
    total: int = 0
    processed: int = 0
    rotated: int = 0
    dry_run: int = 0
    skipped: int = 0
    errored: int = 0
    added: int = 0
    notify_failures: int = 0
    cancelled: bool = False
    aborted: bool = False
    nudged_roots: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class PoolImage:
    file_name: str
    size_bytes: int
    size_formatted: str
    modified_utc: float
    language: Optional[str] = None
    is_current: bool = False
    is_snapshot: bool = False


@dataclass
class PoolInfo:
    item_id: str
    item_name: str
    item_type: str
    pool_path: str
    is_locked: bool = False
    images: List[PoolImage] = field(default_factory=list)
    total_size_bytes: int = 0
    last_rotation_utc: Optional[int] = None
    custom_order: List[str] = field(default_factory=list)
    current_image: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class PoolStatistics:
    total_pools: int = 0
    total_images: int = 0
    total_size_bytes: int = 0
    total_size_formatted: str = "0 B"
    locked_pools: int = 0
    orphaned_pools: int = 0
    average_images_per_pool: float = 0.0
    type_breakdown: Dict[str, int] = field(default_factory=dict)
    last_rotation_utc: Optional[int] = None
    rotations_last_24h: int = 0
    rotations_last_7d: int = 0

    def to_dict(self) -> dict:
        return asdict(self)
