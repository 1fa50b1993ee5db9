"""
Shared constants and singletons for the rotator package.

CRITICAL: This module imports NOTHING from the rotator package to prevent
circular imports. Every other rotator module may import it.
"""
from __future__ import annotations

# ==========================================
# POOL DIRECTORY CONVENTION
# ==========================================

POOL_DIR_NAME = ".poster_pool"
LOCK_FILE_NAME = "pool.lock"
TOUCH_FILE_NAME = ".posterrotator.touch"

# Members are pool_<unixMillis><ext>; the snapshot of the item's artwork
# taken when the pool was first seeded is pool_currentprimary<ext>.
MEMBER_PREFIX = "pool_"
SNAPSHOT_STEM = "pool_currentprimary"

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp", ".gif")

# Extensions accepted when looking for an item's existing per-item poster
PER_ITEM_POSTER_EXTENSIONS = (".jpg", ".png", ".webp")

DEFAULT_POSTER_NAME = "poster.jpg"

# Files that the filesystem catalog treats as an item's current artwork
ARTWORK_STEMS = ("poster", "folder", "cover")

VIDEO_EXTENSIONS = (".mkv", ".mp4", ".m4v", ".avi", ".mov", ".wmv", ".ts", ".m2ts", ".webm", ".iso")

# ==========================================
# ITEM KINDS
# ==========================================

BASE_ITEM_KINDS = ("Movie", "Series", "BoxSet")
SEASON_KIND = "Season"
EPISODE_KIND = "Episode"

# ==========================================
# PROVIDERS
# ==========================================

# Static preference: well-regarded poster sources are asked first
PROVIDER_SCORES = (
    ("tvdb", 100),
    ("tmdb", 50),
    ("fanart", 40),
)

# Backoff before retry n (seconds): 1, 2, 4, ...
RETRY_BASE_DELAY = 1.0
TRANSIENT_STATUS_CODES = (429, 500, 502, 503, 504)

# Downloads smaller than this are treated as provider errors
MIN_IMAGE_BYTES = 100

# ==========================================
# DUPLICATE DETECTION
# ==========================================

FINGERPRINT_HEADER_SKIP = 64
FINGERPRINT_SAMPLES = 64
DEFAULT_DUPLICATE_THRESHOLD = 10
