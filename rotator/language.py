"""
Best-effort guess of an item's original language.

Only used as the fallback-language source when `language.fallback` is set to
"original". The branch order (title script, anime ids, path keywords, English)
is a default policy and has no confidence score.
"""
from __future__ import annotations

import re
from pathlib import PurePath
from typing import Dict, Optional

from .models import MediaItem

DEFAULT_LANGUAGE = "en"

# Cross-reference ids that only anime catalogs hand out
ANIME_PROVIDER_IDS = ("anidb", "anilist", "myanimelist", "mal", "kitsu", "anisearch")

PATH_KEYWORDS: Dict[str, str] = {
    "anime": "ja",
    "japanese": "ja",
    "korean": "ko",
    "kdrama": "ko",
    "chinese": "zh",
    "mandarin": "zh",
    "cantonese": "zh",
    "french": "fr",
    "francais": "fr",
    "français": "fr",
    "german": "de",
    "deutsch": "de",
    "spanish": "es",
    "espanol": "es",
    "español": "es",
    "italian": "it",
    "italiano": "it",
    "portuguese": "pt",
    "russian": "ru",
    "hindi": "hi",
    "bollywood": "hi",
    "thai": "th",
    "arabic": "ar",
    "hebrew": "he",
}

_TOKEN_SPLIT = re.compile(r"[^\w]+", re.UNICODE)

# (first, last) code point ranges per script bucket
_SCRIPT_RANGES = (
    ("kana", 0x3040, 0x30FF),   # Hiragana + Katakana
    ("kana", 0x31F0, 0x31FF),   # Katakana phonetic extensions
    ("kana", 0xFF66, 0xFF9F),   # Half-width Katakana
    ("hangul", 0xAC00, 0xD7AF),
    ("hangul", 0x1100, 0x11FF),
    ("hangul", 0x3130, 0x318F),
    ("cjk", 0x4E00, 0x9FFF),
    ("cjk", 0x3400, 0x4DBF),
    ("ru", 0x0400, 0x04FF),
    ("ar", 0x0600, 0x06FF),
    ("ar", 0x0750, 0x077F),
    ("he", 0x0590, 0x05FF),
    ("th", 0x0E00, 0x0E7F),
)


def _script_counts(text: str) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for ch in text:
        cp = ord(ch)
        for bucket, first, last in _SCRIPT_RANGES:
            if first <= cp <= last:
                counts[bucket] = counts.get(bucket, 0) + 1
                break
    return counts


def classify_script(text: str) -> str:
    """Map a title's script to a language code. Latin or unknown scripts map to English."""
    counts = _script_counts(text or "")
    # Japanese titles mix kanji with kana; kana alone settles it
    if counts.get("kana"):
        return "ja"
    if counts.get("hangul"):
        return "ko"
    if counts.get("cjk"):
        return "zh"
    others = {k: v for k, v in counts.items() if k in ("ru", "ar", "he", "th")}
    if others:
        return max(others, key=others.get)
    return DEFAULT_LANGUAGE


def language_from_path(path: str) -> Optional[str]:
    if not path:
        return None
    for part in PurePath(path).parts:
        for token in _TOKEN_SPLIT.split(part.lower()):
            if token in PATH_KEYWORDS:
                return PATH_KEYWORDS[token]
    return None


def detect_original_language(item: MediaItem) -> str:
    original = (item.original_title or "").strip()
    if original and original != (item.name or "").strip():
        return classify_script(original)

    if item.provider_id(*ANIME_PROVIDER_IDS):
        return "ja"

    from_path = language_from_path(item.path)
    if from_path:
        return from_path

    return DEFAULT_LANGUAGE
