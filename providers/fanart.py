"""
FanArt.tv artwork provider (API v3).

FanArt.tv provides curated posters but requires:
1. a TMDB or IMDb id for movies, a TheTVDB id for series
2. a personal API key via the FANART_API_KEY env var
"""
from typing import Any, Dict, List, Optional

from rotator.models import Candidate, ImageKind, MediaItem
from .base import ImageProvider, safe_int
from logging_config import get_logger

logger = get_logger(__name__)

# (response key, nominal width, nominal height) per kind. FanArt.tv does not
# return dimensions, but every artwork type has a fixed size.
MOVIE_ARTWORK = {
    ImageKind.PRIMARY: ("movieposter", 1000, 1426),
    ImageKind.THUMB: ("moviethumb", 1000, 562),
    ImageKind.BACKDROP: ("moviebackground", 1920, 1080),
}
TV_ARTWORK = {
    ImageKind.PRIMARY: ("tvposter", 1000, 1426),
    ImageKind.THUMB: ("tvthumb", 500, 281),
    ImageKind.BACKDROP: ("showbackground", 1920, 1080),
}


def safe_likes(entry: Dict[str, Any]) -> int:
    """Likes count from a FanArt.tv entry, 0 if missing or not numeric."""
    return safe_int(entry.get('likes')) or 0


class FanartProvider(ImageProvider):

    def __init__(self):
        super().__init__("fanart")

    def lookup_id(self, item: MediaItem) -> Optional[str]:
        if item.kind == "Movie":
            return item.provider_id("Tmdb", "tmdb", "Imdb", "imdb")
        if item.kind == "Series":
            return item.provider_id("Tvdb", "tvdb")
        return None

    def get_images(self, item: MediaItem, kind: ImageKind = ImageKind.PRIMARY) -> List[Candidate]:
        lookup = self.lookup_id(item)
        if not lookup:
            return []

        if item.kind == "Movie":
            url = f"{self.base_url}/movies/{lookup}"
            key, width, height = MOVIE_ARTWORK[kind]
        else:
            url = f"{self.base_url}/tv/{lookup}"
            key, width, height = TV_ARTWORK[kind]

        data = self._get_json(url, params={"api_key": self.api_key})
        if not isinstance(data, dict):
            logger.debug(f"FanArt.tv: unexpected response for {lookup}")
            return []

        entries = [e for e in data.get(key) or [] if isinstance(e, dict) and e.get('url')]
        # Sort by likes (community-curated quality); without likes keep API order
        if any(safe_likes(e) > 0 for e in entries):
            entries.sort(key=safe_likes, reverse=True)

        candidates = []
        for entry in entries:
            lang = entry.get('lang')
            candidates.append(Candidate(
                url=entry['url'],
                kind=kind,
                provider=self.name,
                # '00' marks text-less artwork
                language=lang if lang and lang != '00' else None,
                width=width,
                height=height,
            ))
        logger.debug(f"FanArt.tv: {len(candidates)} {kind.value} image(s) for '{item.name}'")
        return candidates
