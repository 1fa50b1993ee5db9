"""
Catalog adapters.

The engine talks to the media catalog only through CatalogAdapter. One
implementation exists per supported API shape and select_catalog() picks one
at startup by probing what is reachable; nothing downstream checks which
adapter it got.
"""
from __future__ import annotations

import hashlib
import os
import re
import xml.etree.ElementTree as ET
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import requests

from . import state
from .models import MediaItem, OpResult
from logging_config import get_logger

logger = get_logger(__name__)


class CatalogError(Exception):
    """The catalog cannot enumerate items at all."""


class CatalogAdapter(ABC):
    """Capability the rotation engine needs from a media catalog."""

    name = "catalog"

    @abstractmethod
    def probe(self) -> bool:
        """Cheap reachability check used by select_catalog()."""

    @abstractmethod
    def list_items(self, kinds: Sequence[str]) -> List[MediaItem]:
        """
        Enumerate items of the given kinds.

        Raises:
            CatalogError: when items cannot be enumerated at all
        """

    @abstractmethod
    def library_roots(self) -> Dict[str, List[str]]:
        """Library name -> root paths."""

    @abstractmethod
    def get_item(self, item_id: str) -> Optional[MediaItem]:
        ...

    @abstractmethod
    def get_primary_image_path(self, item: MediaItem) -> Optional[str]:
        """Path of the item's currently displayed artwork, if it has one on disk."""

    def notify_artwork_changed(self, item: MediaItem, path: Path) -> OpResult:
        return OpResult.UNSUPPORTED

    def request_library_scan(self, root: str) -> OpResult:
        return OpResult.UNSUPPORTED

    def __str__(self):
        return self.name


# =============================================================================
# Filesystem
# =============================================================================

_ID_TAG = re.compile(r"[\[{](tmdbid|tmdb|tvdbid|tvdb|imdbid|imdb)[-=]([^\]}]+)[\]}]", re.IGNORECASE)
_NAME_NOISE = re.compile(r"\s*[\[{(][^\]})]*[\]})]\s*")


def _stable_id(path: str) -> str:
    # Same idea as the media servers: an item id derived from its path
    return hashlib.md5(os.path.normcase(os.path.abspath(path)).encode("utf-8")).hexdigest()


def _read_nfo(nfo_path: Path) -> dict:
    """Title, original title, year and provider ids from a Kodi-style .nfo file."""
    try:
        root = ET.parse(nfo_path).getroot()
    except (ET.ParseError, OSError) as e:
        logger.debug(f"Ignoring unreadable NFO {nfo_path}: {e}")
        return {}

    info: dict = {"provider_ids": {}}
    title = root.findtext("title")
    if title:
        info["name"] = title.strip()
    original = root.findtext("originaltitle")
    if original:
        info["original_title"] = original.strip()
    year = root.findtext("year")
    if year and year.strip().isdigit():
        info["production_year"] = int(year.strip())
    for uid in root.findall("uniqueid"):
        kind = uid.get("type")
        if kind and uid.text:
            info["provider_ids"][kind.strip().lower()] = uid.text.strip()
    for tag, key in (("tmdbid", "tmdb"), ("tvdbid", "tvdb"), ("imdbid", "imdb"), ("imdb_id", "imdb")):
        value = root.findtext(tag)
        if value and key not in info["provider_ids"]:
            info["provider_ids"][key] = value.strip()
    return info


class FilesystemCatalog(CatalogAdapter):
    """
    Catalog built from library folders on disk. Every video file is a Movie
    item; sidecar .nfo files and [tmdbid-123] style tags supply metadata.
    """

    name = "filesystem"

    def __init__(self, roots: Dict[str, List[str]]):
        self.roots = {name: [str(p) for p in paths] for name, paths in (roots or {}).items()}
        self._items: Dict[str, MediaItem] = {}

    def probe(self) -> bool:
        return any(Path(p).is_dir() for paths in self.roots.values() for p in paths)

    def library_roots(self) -> Dict[str, List[str]]:
        return {name: [p for p in paths if Path(p).is_dir()] for name, paths in self.roots.items()}

    def list_items(self, kinds: Sequence[str]) -> List[MediaItem]:
        roots = [p for paths in self.library_roots().values() for p in paths]
        if not roots:
            raise CatalogError(f"None of the configured library roots exist: {self.roots}")
        if "Movie" not in kinds:
            return []

        items: List[MediaItem] = []
        for root in roots:
            for dirpath, dirnames, filenames in os.walk(root):
                # Skip pool directories and other hidden folders
                dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
                videos = sorted(f for f in filenames if Path(f).suffix.lower() in state.VIDEO_EXTENSIONS)
                for file_name in videos:
                    items.append(self._build_item(Path(dirpath) / file_name, mixed=len(videos) > 1))

        self._items = {item.id: item for item in items}
        logger.debug(f"Filesystem catalog found {len(items)} item(s) under {len(roots)} root(s)")
        return items

    def get_item(self, item_id: str) -> Optional[MediaItem]:
        if item_id not in self._items:
            try:
                self.list_items(["Movie"])
            except CatalogError:
                return None
        return self._items.get(item_id)

    def get_primary_image_path(self, item: MediaItem) -> Optional[str]:
        video = Path(item.path)
        folder = video.parent
        mixed = sum(1 for f in folder.iterdir() if f.suffix.lower() in state.VIDEO_EXTENSIONS) > 1
        stems = [f"{video.stem}-poster", video.stem] if mixed else [f"{video.stem}-poster", *state.ARTWORK_STEMS]
        for stem in stems:
            for ext in state.IMAGE_EXTENSIONS:
                candidate = folder / f"{stem}{ext}"
                if candidate.is_file():
                    return str(candidate)
        return None

    def _build_item(self, video: Path, mixed: bool) -> MediaItem:
        info: dict = {"provider_ids": {}}
        for nfo in (video.with_suffix(".nfo"), video.parent / "movie.nfo"):
            if nfo.is_file() and (nfo.name != "movie.nfo" or not mixed):
                info = _read_nfo(nfo) or info
                break

        provider_ids = dict(info.get("provider_ids", {}))
        for key, value in _ID_TAG.findall(str(video)):
            key = key.lower().replace("id", "")
            provider_ids.setdefault(key, value.strip())

        name = info.get("name") or _NAME_NOISE.sub(" ", video.stem).strip() or video.stem
        item = MediaItem(
            id=_stable_id(str(video)),
            name=name,
            path=str(video),
            kind="Movie",
            original_title=info.get("original_title"),
            provider_ids=provider_ids,
            production_year=info.get("production_year"),
        )
        item.primary_image_path = self.get_primary_image_path(item)
        return item


# =============================================================================
# Jellyfin / Emby REST
# =============================================================================

class JellyfinCatalog(CatalogAdapter):
    """Jellyfin server over its REST API (admin API key)."""

    name = "jellyfin"
    API_PREFIX = ""
    ITEM_FIELDS = "Path,ProviderIds,OriginalTitle,ProductionYear"

    def __init__(self, base_url: str, api_key: str, session: Optional[requests.Session] = None, timeout: int = 15):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()

    def _url(self, endpoint: str) -> str:
        return f"{self.base_url}{self.API_PREFIX}{endpoint}"

    def _headers(self) -> dict:
        return {"X-Emby-Token": self.api_key} if self.api_key else {}

    def _get(self, endpoint: str, **params):
        resp = self.session.get(self._url(endpoint), params=params or None, headers=self._headers(), timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def _accepts_product(self, product_name: str) -> bool:
        return "jellyfin" in product_name.lower()

    def probe(self) -> bool:
        try:
            resp = self.session.get(self._url("/System/Info/Public"), timeout=self.timeout)
            if resp.status_code != 200:
                return False
            info = resp.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.debug(f"{self.name} probe failed for {self.base_url}: {e}")
            return False
        return isinstance(info, dict) and self._accepts_product(str(info.get("ProductName", "")))

    def _to_item(self, raw: dict) -> Optional[MediaItem]:
        if not isinstance(raw, dict) or not raw.get("Id"):
            return None
        return MediaItem(
            id=str(raw["Id"]),
            name=raw.get("Name") or "",
            path=raw.get("Path") or "",
            kind=raw.get("Type") or "Movie",
            original_title=raw.get("OriginalTitle"),
            provider_ids={k: str(v) for k, v in (raw.get("ProviderIds") or {}).items() if v},
            production_year=raw.get("ProductionYear"),
        )

    def _query_items(self, **params) -> List[MediaItem]:
        try:
            data = self._get("/Items", Fields=self.ITEM_FIELDS, **params)
        except (requests.exceptions.RequestException, ValueError) as e:
            raise CatalogError(f"{self.name}: item query failed: {e}") from e
        raw_items = data.get("Items") if isinstance(data, dict) else None
        if not isinstance(raw_items, list):
            raise CatalogError(f"{self.name}: unexpected /Items response shape")
        return [item for item in (self._to_item(r) for r in raw_items) if item is not None]

    def list_items(self, kinds: Sequence[str]) -> List[MediaItem]:
        items = self._query_items(Recursive="true", IncludeItemTypes=",".join(kinds))
        logger.debug(f"{self.name} returned {len(items)} item(s)")
        return items

    def library_roots(self) -> Dict[str, List[str]]:
        try:
            folders = self._get("/Library/VirtualFolders")
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.warning(f"{self.name}: could not read library folders: {e}")
            return {}
        roots: Dict[str, List[str]] = {}
        for folder in folders if isinstance(folders, list) else []:
            name = folder.get("Name") if isinstance(folder, dict) else None
            if name:
                roots[name] = list(dict.fromkeys(p for p in folder.get("Locations") or [] if p))
        return roots

    def get_item(self, item_id: str) -> Optional[MediaItem]:
        try:
            items = self._query_items(Ids=item_id)
        except CatalogError as e:
            logger.warning(str(e))
            return None
        return items[0] if items else None

    def get_primary_image_path(self, item: MediaItem) -> Optional[str]:
        try:
            images = self._get(f"/Items/{item.id}/Images")
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.debug(f"{self.name}: no image info for '{item.name}': {e}")
            return None
        for image in images if isinstance(images, list) else []:
            if isinstance(image, dict) and image.get("ImageType") == "Primary" and image.get("Path"):
                return image["Path"]
        return None

    def _post(self, endpoint: str, what: str, payload: Optional[dict] = None) -> OpResult:
        try:
            resp = self.session.post(self._url(endpoint), json=payload, headers=self._headers(), timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.warning(f"{self.name}: {what} failed: {e}")
            return OpResult.FAILED
        if resp.status_code in (404, 405, 501):
            return OpResult.UNSUPPORTED
        if not resp.ok:
            logger.warning(f"{self.name}: {what} returned {resp.status_code}")
            return OpResult.FAILED
        return OpResult.OK

    def _media_updated(self, path: str) -> OpResult:
        return self._post(
            "/Library/Media/Updated",
            f"change notification for {path}",
            {"Updates": [{"Path": path, "UpdateType": "Modified"}]},
        )

    def notify_artwork_changed(self, item: MediaItem, path: Path) -> OpResult:
        return self._media_updated(str(path))

    def request_library_scan(self, root: str) -> OpResult:
        # Path-scoped update first; servers without it get a full refresh
        result = self._media_updated(root)
        if result != OpResult.UNSUPPORTED:
            return result
        return self._post("/Library/Refresh", "library refresh")


class EmbyCatalog(JellyfinCatalog):
    """Emby server: same resource shapes under the /emby prefix."""

    name = "emby"
    API_PREFIX = "/emby"

    def _accepts_product(self, product_name: str) -> bool:
        return True


def select_catalog(
    catalog_type: str,
    url: str = "",
    api_key: str = "",
    roots: Optional[Dict[str, List[str]]] = None,
    session: Optional[requests.Session] = None,
    timeout: int = 15,
) -> CatalogAdapter:
    """
    Pick the catalog adapter by capability probe.

    `auto` tries Jellyfin, then Emby (when a server URL is configured), then
    the filesystem roots.

    Raises:
        CatalogError: when no adapter is usable
    """
    catalog_type = (catalog_type or "auto").lower()
    candidates: List[CatalogAdapter] = []
    if url and catalog_type in ("auto", "jellyfin"):
        candidates.append(JellyfinCatalog(url, api_key, session, timeout))
    if url and catalog_type in ("auto", "emby"):
        candidates.append(EmbyCatalog(url, api_key, session, timeout))
    if catalog_type in ("auto", "filesystem"):
        candidates.append(FilesystemCatalog(roots or {}))

    for adapter in candidates:
        if adapter.probe():
            logger.info(f"Using {adapter.name} catalog")
            return adapter
        logger.debug(f"{adapter.name} catalog not available")

    raise CatalogError(f"No usable catalog (type={catalog_type}, url={url or '-'}, roots={list((roots or {}).keys())})")
