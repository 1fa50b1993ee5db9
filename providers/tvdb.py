"""
TheTVDB artwork provider (API v4).

Requires a project API key (TVDB_API_KEY, optionally a subscriber TVDB_PIN).
The bearer token from /login is cached for the provider's lifetime and
refreshed once on a 401.
"""
import threading
from typing import Dict, List, Optional

import requests

from config import get_provider_config
from network_utils import request_with_retry
from rotator.models import Candidate, ImageKind, MediaItem
from .base import ImageProvider, safe_int
from logging_config import get_logger

logger = get_logger(__name__)

# Artwork type ids from /artwork/types
SERIES_ARTWORK_TYPES = {ImageKind.PRIMARY: 2, ImageKind.BACKDROP: 3, ImageKind.THUMB: 3}
MOVIE_ARTWORK_TYPES = {ImageKind.PRIMARY: 14, ImageKind.BACKDROP: 15, ImageKind.THUMB: 15}

# TheTVDB uses ISO 639-2 codes; pools and settings use ISO 639-1
LANGUAGE_CODES: Dict[str, str] = {
    "eng": "en", "fra": "fr", "deu": "de", "spa": "es", "ita": "it",
    "por": "pt", "nld": "nl", "swe": "sv", "nor": "no", "dan": "da",
    "fin": "fi", "pol": "pl", "ces": "cs", "hun": "hu", "tur": "tr",
    "rus": "ru", "ukr": "uk", "jpn": "ja", "kor": "ko", "zho": "zh",
    "ara": "ar", "heb": "he", "tha": "th", "hin": "hi", "ell": "el",
}


def normalize_language(code: Optional[str]) -> Optional[str]:
    if not code:
        return None
    code = code.lower()
    return LANGUAGE_CODES.get(code, code)


class TVDBProvider(ImageProvider):

    def __init__(self):
        super().__init__("tvdb")
        self.pin = get_provider_config("tvdb").get("pin", "")
        self._token: Optional[str] = None
        self._token_lock = threading.Lock()

    def lookup_id(self, item: MediaItem) -> Optional[str]:
        return item.provider_id("Tvdb", "tvdb", "tvdbid")

    def _login(self) -> str:
        payload = {"apikey": self.api_key}
        if self.pin:
            payload["pin"] = self.pin
        response = request_with_retry(
            self.session, "POST", f"{self.base_url}/login",
            json=payload, timeout=self.timeout, retries=self.retries,
        )
        token = (response.json().get("data") or {}).get("token")
        if not token:
            raise ValueError("TheTVDB login returned no token")
        return token

    def _authorized_get(self, url: str, **params) -> dict:
        with self._token_lock:
            if self._token is None:
                self._token = self._login()
            token = self._token
        try:
            return self._get_json(url, params=params or None, headers={"Authorization": f"Bearer {token}"})
        except requests.exceptions.HTTPError as e:
            if e.response is None or e.response.status_code != 401:
                raise
            logger.debug("TheTVDB token expired, logging in again")
            with self._token_lock:
                self._token = self._login()
                token = self._token
            return self._get_json(url, params=params or None, headers={"Authorization": f"Bearer {token}"})

    def get_images(self, item: MediaItem, kind: ImageKind = ImageKind.PRIMARY) -> List[Candidate]:
        tvdb_id = self.lookup_id(item)
        if not tvdb_id:
            return []

        if item.kind == "Movie":
            data = self._authorized_get(f"{self.base_url}/movies/{tvdb_id}/extended")
            artworks = (data.get("data") or {}).get("artworks") or []
            wanted_type = MOVIE_ARTWORK_TYPES[kind]
        else:
            wanted_type = SERIES_ARTWORK_TYPES[kind]
            data = self._authorized_get(f"{self.base_url}/series/{tvdb_id}/artworks", type=wanted_type)
            artworks = (data.get("data") or {}).get("artworks") or []

        matching = [
            art for art in artworks
            if isinstance(art, dict) and art.get("image") and art.get("type") == wanted_type
        ]
        # Highest community score first
        matching.sort(key=lambda art: safe_int(art.get("score")) or 0, reverse=True)

        candidates = [
            Candidate(
                url=art["image"],
                kind=kind,
                provider=self.name,
                language=normalize_language(art.get("language")),
                width=safe_int(art.get("width")),
                height=safe_int(art.get("height")),
            )
            for art in matching
        ]
        logger.debug(f"TheTVDB: {len(candidates)} {kind.value} image(s) for '{item.name}'")
        return candidates
