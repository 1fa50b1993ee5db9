"""
PosterRotator Configuration Loader
Loads values from settings.json via the settings manager.
"""
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv

from settings import settings

# ==========================================
# Path Configuration
# ==========================================
if "__compiled__" in globals() or getattr(sys, 'frozen', False):
    ROOT_DIR = Path(sys.executable).parent
else:
    ROOT_DIR = Path(__file__).parent

# ==========================================
# Version
# ==========================================
VERSION = "1.0.0"

# Only load .env if it exists
env_file = ROOT_DIR / '.env'
if env_file.exists():
    load_dotenv(env_file)


# Helper to prefer Env Var > Settings JSON > Default
def conf(key, default=None):
    # 1. Check Env Var (Highest Priority - good for docker/dev)
    env_val = os.getenv(key.upper().replace('.', '_'))
    if env_val is not None:
        return settings.coerce(key, env_val)

    # 2. Check Settings JSON
    json_val = settings.get(key)
    if json_val is not None:
        return json_val

    # 3. Default
    return default


# ==========================================
# EXPORTED CONFIG DICTS
# ==========================================

DEBUG = {
    "log_file": conf("debug.log_file", "posterrotator.log"),
    "log_level": conf("debug.log_level", "INFO"),
    "log_to_console": conf("debug.log_to_console", True),
    "log_detailed": conf("debug.log_detailed", False),
    "log_providers": conf("debug.log_providers", True),
}

POOL = {
    "size": conf("pool.size", 5),
    "sequential_rotation": conf("pool.sequential_rotation", False),
    "lock_after_fill": conf("pool.lock_after_fill", False),
    "min_hours_between_switches": conf("pool.min_hours_between_switches", 23),
    "extra_poster_patterns": conf("pool.extra_poster_patterns", []),
    "dry_run": conf("pool.dry_run", False),
}

ROTATION = {
    "trigger_library_scan": conf("rotation.trigger_library_scan", True),
}

LIBRARIES = {
    "manual_roots": conf("libraries.manual_roots", []),
    "names": conf("libraries.names", []),
    "rules": conf("libraries.rules", []),
    "roots": conf("libraries.roots", {}),
}

ITEMS = {
    "enable_seasons": conf("items.enable_seasons", False),
    "enable_episodes": conf("items.enable_episodes", False),
}

LANGUAGE = {
    "enable_filter": conf("language.enable_filter", False),
    "preferred": conf("language.preferred", "fr"),
    "fallback": conf("language.fallback", "en"),
    "max_preferred_images": conf("language.max_preferred_images", 2),
    "include_unknown": conf("language.include_unknown", True),
}

QUALITY = {
    "min_width": conf("quality.min_width", 0),
    "min_height": conf("quality.min_height", 0),
}

DEDUP = {
    "enabled": conf("dedup.enabled", True),
    "threshold": conf("dedup.threshold", 10),
}

NETWORK = {
    "timeout": conf("network.timeout", 15),
    "retries": conf("network.retries", 3),
    "download_concurrency": conf("network.download_concurrency", 3),
    "user_agent": f"PosterRotator/{VERSION} (+https://github.com/posterrotator/posterrotator)",
}

# API keys are NOT in settings.json - they are only read from the environment
# (.env file) so they never end up in a shared config file.
PROVIDERS = {
    "tvdb": {
        "enabled": conf("providers.tvdb.enabled", True),
        "priority": conf("providers.tvdb.priority", 1),
        "base_url": "https://api4.thetvdb.com/v4",
        "api_key": os.getenv("TVDB_API_KEY", ""),
        "pin": os.getenv("TVDB_PIN", ""),
        "timeout": NETWORK["timeout"],
        "retries": NETWORK["retries"],
    },
    "tmdb": {
        "enabled": conf("providers.tmdb.enabled", True),
        "priority": conf("providers.tmdb.priority", 2),
        "base_url": "https://api.themoviedb.org/3",
        "image_base_url": "https://image.tmdb.org/t/p/original",
        "api_key": os.getenv("TMDB_API_KEY", ""),
        "timeout": NETWORK["timeout"],
        "retries": NETWORK["retries"],
    },
    "fanart": {
        "enabled": conf("providers.fanart.enabled", True),
        "priority": conf("providers.fanart.priority", 3),
        "base_url": "https://webservice.fanart.tv/v3",
        "api_key": os.getenv("FANART_API_KEY", ""),
        "timeout": NETWORK["timeout"],
        "retries": NETWORK["retries"],
    },
}

CATALOG = {
    "type": conf("catalog.type", "auto"),
    "url": conf("catalog.url", ""),
    "api_key": os.getenv("JELLYFIN_API_KEY", ""),
}


@dataclass(frozen=True)
class RotatorConfig:
    """Typed snapshot of everything the rotation engine needs for one run."""
    pool_size: int = 5
    sequential_rotation: bool = False
    lock_after_fill: bool = False
    min_hours_between_switches: int = 23
    extra_poster_patterns: Tuple[str, ...] = ()
    dry_run: bool = False
    trigger_library_scan: bool = True
    manual_library_roots: Tuple[str, ...] = ()
    library_names: Tuple[str, ...] = ()
    library_rules: Tuple[Tuple[str, bool], ...] = ()
    enable_season_posters: bool = False
    enable_episode_posters: bool = False
    enable_language_filter: bool = False
    preferred_language: str = "fr"
    fallback_language: Optional[str] = "en"
    max_preferred_images: int = 2
    include_unknown_language: bool = True
    min_width: int = 0
    min_height: int = 0
    dedup_enabled: bool = True
    dedup_threshold: int = 10
    timeout: int = 15
    retries: int = 3
    download_concurrency: int = 3

    @property
    def min_hours(self) -> int:
        return max(1, self.min_hours_between_switches)

    @property
    def uses_original_language_fallback(self) -> bool:
        return (self.fallback_language or "").lower() == "original"


def _library_rules(raw) -> Tuple[Tuple[str, bool], ...]:
    rules = []
    for rule in raw or []:
        if isinstance(rule, dict) and rule.get("name"):
            rules.append((str(rule["name"]), bool(rule.get("enabled", True))))
    return tuple(rules)


def build_rotator_config(**overrides) -> RotatorConfig:
    """Build the engine config from the exported dicts. Keyword overrides win (used by the CLI)."""
    values = dict(
        pool_size=max(1, int(POOL["size"])),
        sequential_rotation=bool(POOL["sequential_rotation"]),
        lock_after_fill=bool(POOL["lock_after_fill"]),
        min_hours_between_switches=int(POOL["min_hours_between_switches"]),
        extra_poster_patterns=tuple(POOL["extra_poster_patterns"] or ()),
        dry_run=bool(POOL["dry_run"]),
        trigger_library_scan=bool(ROTATION["trigger_library_scan"]),
        manual_library_roots=tuple(LIBRARIES["manual_roots"] or ()),
        library_names=tuple(LIBRARIES["names"] or ()),
        library_rules=_library_rules(LIBRARIES["rules"]),
        enable_season_posters=bool(ITEMS["enable_seasons"]),
        enable_episode_posters=bool(ITEMS["enable_episodes"]),
        enable_language_filter=bool(LANGUAGE["enable_filter"]),
        preferred_language=str(LANGUAGE["preferred"] or "fr"),
        fallback_language=LANGUAGE["fallback"] or None,
        max_preferred_images=int(LANGUAGE["max_preferred_images"]),
        include_unknown_language=bool(LANGUAGE["include_unknown"]),
        min_width=int(QUALITY["min_width"]),
        min_height=int(QUALITY["min_height"]),
        dedup_enabled=bool(DEDUP["enabled"]),
        dedup_threshold=int(DEDUP["threshold"]),
        timeout=int(NETWORK["timeout"]),
        retries=int(NETWORK["retries"]),
        download_concurrency=max(1, int(NETWORK["download_concurrency"])),
    )
    values.update(overrides)
    return RotatorConfig(**values)


# Helper functions
def get_provider_config(name: str) -> dict:
    return PROVIDERS.get(name, {"enabled": False, "priority": 0})
