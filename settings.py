"""
PosterRotator Settings Manager
Handles dynamic configuration management using settings.json
"""

import json
import shutil
import os
import sys
import uuid
import ast
from pathlib import Path
from typing import Any, Dict, Optional
from dataclasses import dataclass

from benedict import benedict

from logging_config import get_logger

logger = get_logger(__name__)

if "__compiled__" in globals() or getattr(sys, 'frozen', False):
    ROOT_DIR = Path(sys.executable).parent
else:
    ROOT_DIR = Path(__file__).parent

# POSTERROTATOR_SETTINGS_FILE can keep it in the media server config volume
SETTINGS_FILE = Path(os.getenv("POSTERROTATOR_SETTINGS_FILE", str(ROOT_DIR / "settings.json")))


@dataclass
class Setting:
    """One key in settings.json with its type, default and UI hints"""
    name: str
    type: type
    default: Any
    category: Optional[str] = None
    description: Optional[str] = None
    widget_type: str = "text"  # text, number, switch, select, list, json
    options: Optional[list] = None  # For select
    min_val: Optional[float] = None  # For number
    max_val: Optional[float] = None  # For number
    advanced: bool = False  # Listed only by `settings --all`

    def validate_and_convert(self, value: Any) -> Any:
        try:
            if self.type == bool and isinstance(value, str):
                return value.lower() in ('true', '1', 'yes', 'on')

            if self.type == list:
                if isinstance(value, list):
                    return value
                if isinstance(value, str):
                    value = value.strip()
                    # Method 1: Python literal (handles ['a'] and ["a"])
                    try:
                        parsed = ast.literal_eval(value)
                        if isinstance(parsed, list):
                            return parsed
                    except (ValueError, SyntaxError):
                        pass
                    # Method 2: JSON
                    try:
                        parsed = json.loads(value)
                        if isinstance(parsed, list):
                            return parsed
                    except json.JSONDecodeError:
                        pass
                    # Method 3: Comma separation (strip brackets first)
                    clean_value = value.strip("[]")
                    if clean_value:
                        return [v.strip().strip("'").strip('"') for v in clean_value.split(',') if v.strip()]
                    return []
                return self.default

            if self.type == dict:
                if isinstance(value, dict):
                    return value
                if isinstance(value, str) and value.strip():
                    parsed = json.loads(value)
                    if isinstance(parsed, dict):
                        return parsed
                return self.default

            converted = self.type(value)
            if self.min_val is not None and converted < self.min_val:
                return self.type(self.min_val)
            if self.max_val is not None and converted > self.max_val:
                return self.type(self.max_val)
            return converted
        except (ValueError, TypeError):
            return self.default


class SettingsManager:
    def __init__(self):
        self._settings: Dict[str, Any] = {}

        # Define all available settings
        self._definitions = {
            # Debug
            "debug.log_file": Setting("Log File", str, "posterrotator.log", "Debug", "Log file name"),
            "debug.log_level": Setting("Log Level", str, "INFO", "Debug", "Console logging verbosity", "select", options=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]),
            "debug.log_to_console": Setting("Log to Console", bool, True, "Debug", "Print logs to terminal", "switch"),
            "debug.log_detailed": Setting("Detailed Logging", bool, False, "Debug", "Write DEBUG records to the log file", "switch"),
            "debug.log_providers": Setting("Log Providers", bool, True, "Debug", "Log provider requests", "switch"),

            # Pool
            "pool.size": Setting("Pool Size", int, 5, "Pool", "Number of posters kept per item", "number", min_val=1, max_val=50),
            "pool.sequential_rotation": Setting("Sequential Rotation", bool, False, "Pool", "Rotate in filename order instead of randomly", "switch"),
            "pool.lock_after_fill": Setting("Lock After Fill", bool, False, "Pool", "Stop fetching once a pool is full", "switch"),
            "pool.min_hours_between_switches": Setting("Cooldown Hours", int, 23, "Pool", "Minimum hours between provider top-ups", "number", min_val=1, max_val=8760),
            "pool.extra_poster_patterns": Setting("Extra Patterns", list, [], "Pool", "Additional glob patterns counted as pool members", "list", advanced=True),
            "pool.dry_run": Setting("Dry Run", bool, False, "Pool", "Choose posters but never write them", "switch"),

            # Rotation
            "rotation.trigger_library_scan": Setting("Trigger Library Scan", bool, True, "Rotation", "Ask the media server to rescan changed libraries", "switch"),

            # Libraries
            "libraries.manual_roots": Setting("Manual Roots", list, [], "Libraries", "Library paths or names to process", "list"),
            "libraries.names": Setting("Libraries", list, [], "Libraries", "Library names to process", "list"),
            "libraries.rules": Setting("Library Rules", list, [], "Libraries", "Per-library enable rules [{name, enabled}]", "json", advanced=True),
            "libraries.roots": Setting("Library Roots", dict, {}, "Libraries", "Filesystem catalog: {library name: [paths]}", "json"),

            # Items
            "items.enable_seasons": Setting("Season Posters", bool, False, "Items", "Rotate season posters", "switch"),
            "items.enable_episodes": Setting("Episode Posters", bool, False, "Items", "Rotate episode posters", "switch"),

            # Language
            "language.enable_filter": Setting("Language Filter", bool, False, "Language", "Filter candidates by language", "switch"),
            "language.preferred": Setting("Preferred Language", str, "fr", "Language", "Preferred poster language code"),
            "language.fallback": Setting("Fallback Language", str, "en", "Language", "Fallback code, or 'original' to detect it"),
            "language.max_preferred_images": Setting("Max Preferred", int, 2, "Language", "Preferred-language posters per pool", "number", min_val=0, max_val=50),
            "language.include_unknown": Setting("Include Unknown", bool, True, "Language", "Accept posters without a language tag", "switch"),

            # Quality
            "quality.min_width": Setting("Min Width", int, 0, "Quality", "Minimum poster width (0 = any)", "number", min_val=0),
            "quality.min_height": Setting("Min Height", int, 0, "Quality", "Minimum poster height (0 = any)", "number", min_val=0),

            # Duplicate detection
            "dedup.enabled": Setting("Duplicate Detection", bool, True, "Dedup", "Reject near-duplicate downloads", "switch"),
            "dedup.threshold": Setting("Duplicate Threshold", int, 10, "Dedup", "Max differing bits (of 64) treated as duplicate", "number", min_val=0, max_val=64),

            # Network
            "network.timeout": Setting("Timeout", int, 15, "Network", "HTTP timeout (s)", "number", min_val=1, max_val=120),
            "network.retries": Setting("Retries", int, 3, "Network", "Retries for transient failures", "number", min_val=0, max_val=10),
            "network.download_concurrency": Setting("Parallel Downloads", int, 3, "Network", "Simultaneous downloads per item", "number", min_val=1, max_val=8),

            # Providers
            "providers.tvdb.enabled": Setting("TheTVDB", bool, True, "Providers", "Enable TheTVDB (needs TVDB_API_KEY)", "switch"),
            "providers.tvdb.priority": Setting("TheTVDB Priority", int, 1, "Providers", "Lower = earlier among equal scores", "number"),
            "providers.tmdb.enabled": Setting("TMDB", bool, True, "Providers", "Enable TMDB (needs TMDB_API_KEY)", "switch"),
            "providers.tmdb.priority": Setting("TMDB Priority", int, 2, "Providers", "Lower = earlier among equal scores", "number"),
            "providers.fanart.enabled": Setting("FanArt.tv", bool, True, "Providers", "Enable FanArt.tv (needs FANART_API_KEY)", "switch"),
            "providers.fanart.priority": Setting("FanArt.tv Priority", int, 3, "Providers", "Lower = earlier among equal scores", "number"),

            # Catalog
            "catalog.type": Setting("Catalog", str, "auto", "Catalog", "Media catalog backend", "select", options=["auto", "jellyfin", "emby", "filesystem"]),
            "catalog.url": Setting("Server URL", str, "", "Catalog", "Media server base URL"),
        }

        self.load_settings()

    def load_settings(self) -> None:
        """(Re)read settings.json over the schema defaults. A corrupt file is backed up and rewritten."""
        self._settings = {}

        # Schema defaults, then whatever settings.json overrides
        for key, definition in self._definitions.items():
            self._settings[key] = definition.default

        if SETTINGS_FILE.exists():
            try:
                with open(SETTINGS_FILE, 'r', encoding='utf-8') as f:
                    saved = benedict(json.load(f), keypath_separator=".")
                for key, definition in self._definitions.items():
                    if key in saved:
                        self._settings[key] = definition.validate_and_convert(saved[key])
            except Exception as e:
                logger.error(f"Failed to load settings.json: {e} - resetting to defaults")
                backup_path = SETTINGS_FILE.with_suffix('.json.corrupted')
                try:
                    shutil.copy2(SETTINGS_FILE, backup_path)
                    logger.info(f"Backed up corrupted settings to {backup_path}")
                except OSError:
                    pass
                self.save_to_config()
        else:
            logger.info(f"Creating default settings file at {SETTINGS_FILE}")
            self.save_to_config()

    def get(self, key: str, default: Any = None) -> Any:
        """Loaded value, else the schema default, else `default` for unknown keys."""
        if key in self._settings:
            return self._settings[key]

        if key in self._definitions:
            return self._definitions[key].default

        return default

    def coerce(self, key: str, value: Any) -> Any:
        """Convert a raw value (e.g. from an environment variable) to the key's declared type"""
        defin = self._definitions.get(key)
        return defin.validate_and_convert(value) if defin else value

    def set(self, key: str, value: Any) -> bool:
        """Convert and keep a value in memory; save_to_config() persists it. False for unknown keys."""
        if key not in self._definitions:
            return False

        self._settings[key] = self._definitions[key].validate_and_convert(value)
        return True

    def save_to_config(self) -> bool:
        """Save current memory settings to JSON file (nested by dotted key)"""
        temp_path = SETTINGS_FILE.parent / f"settings_{uuid.uuid4().hex}.json.tmp"
        try:
            SETTINGS_FILE.parent.mkdir(parents=True, exist_ok=True)
            nested = benedict(keypath_separator=".")
            for key, val in self._settings.items():
                defin = self._definitions.get(key)
                if defin and defin.type in (list, dict) and not isinstance(val, defin.type):
                    logger.warning(f"Setting '{key}' has invalid type {type(val).__name__}, restoring default")
                    val = defin.default
                nested[key] = val

            with open(temp_path, 'w', encoding='utf-8') as f:
                json.dump(nested.dict(), f, indent=4, sort_keys=True)

            os.replace(temp_path, SETTINGS_FILE)
            return True
        except Exception as e:
            logger.error(f"Failed to save settings: {e}")
            if temp_path.exists():
                try:
                    os.remove(temp_path)
                except OSError:
                    pass
            return False

    def get_all(self, include_advanced: bool = True) -> Dict:
        """Return settings grouped by category"""
        result = {}
        for key, val in self._settings.items():
            defin = self._definitions.get(key)
            if not defin or (defin.advanced and not include_advanced):
                continue

            cat = defin.category or "Misc"
            if cat not in result: result[cat] = {}

            result[cat][key] = {
                "value": val,
                "name": defin.name,
                "description": defin.description,
                "type": defin.type.__name__,
                "widget_type": defin.widget_type,
                "options": defin.options,
                "min": defin.min_val,
                "max": defin.max_val,
            }
        return result

    def reset_to_defaults(self):
        if SETTINGS_FILE.exists():
            os.remove(SETTINGS_FILE)
        self.load_settings()


settings = SettingsManager()
