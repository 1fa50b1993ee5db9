"""
TMDB artwork provider (API v3).

Posters and backdrops for movies, TV series and collections (box sets).
Images come back in TMDB's own ranking (vote average), all languages
included so the classifier can apply the language policy.
"""
from typing import List, Optional

from config import get_provider_config
from rotator.models import Candidate, ImageKind, MediaItem
from .base import ImageProvider, safe_int
from logging_config import get_logger

logger = get_logger(__name__)

_MEDIA_TYPES = {
    "Movie": "movie",
    "Series": "tv",
    "BoxSet": "collection",
}


class TMDBProvider(ImageProvider):
    SUPPORTED_KINDS = tuple(_MEDIA_TYPES)

    def __init__(self):
        super().__init__("tmdb")
        self.image_base_url = get_provider_config("tmdb").get("image_base_url", "https://image.tmdb.org/t/p/original")

    def lookup_id(self, item: MediaItem) -> Optional[str]:
        if item.kind == "BoxSet":
            return item.provider_id("TmdbCollection", "tmdbcollection", "Tmdb", "tmdb")
        return item.provider_id("Tmdb", "tmdb", "tmdbid")

    def get_images(self, item: MediaItem, kind: ImageKind = ImageKind.PRIMARY) -> List[Candidate]:
        tmdb_id = self.lookup_id(item)
        media_type = _MEDIA_TYPES.get(item.kind)
        if not tmdb_id or not media_type:
            return []

        data = self._get_json(
            f"{self.base_url}/{media_type}/{tmdb_id}/images",
            params={"api_key": self.api_key},
        )
        if not isinstance(data, dict):
            logger.debug(f"TMDB: unexpected response for {media_type}/{tmdb_id}")
            return []

        bucket = "posters" if kind == ImageKind.PRIMARY else "backdrops"
        candidates = []
        for entry in data.get(bucket) or []:
            if not isinstance(entry, dict) or not entry.get("file_path"):
                continue
            candidates.append(Candidate(
                url=f"{self.image_base_url}{entry['file_path']}",
                kind=kind,
                provider=self.name,
                language=entry.get("iso_639_1") or None,
                width=safe_int(entry.get("width")),
                height=safe_int(entry.get("height")),
            ))
        logger.debug(f"TMDB: {len(candidates)} {kind.value} image(s) for '{item.name}'")
        return candidates
