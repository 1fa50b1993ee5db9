"""Tests for the catalog adapters and adapter selection"""
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import requests

from rotator.catalog import (
    CatalogError,
    EmbyCatalog,
    FilesystemCatalog,
    JellyfinCatalog,
    select_catalog,
)
from rotator.models import MediaItem, OpResult

NFO = """<?xml version="1.0" encoding="utf-8"?>
<movie>
  <title>Spirited Away</title>
  <originaltitle>千と千尋の神隠し</originaltitle>
  <year>2001</year>
  <uniqueid type="tmdb">129</uniqueid>
  <imdbid>tt0245429</imdbid>
</movie>
"""


def _response(status=200, payload=None):
    resp = MagicMock()
    resp.status_code = status
    resp.ok = status < 400
    resp.json.return_value = payload
    if status >= 400:
        resp.raise_for_status.side_effect = requests.exceptions.HTTPError(f"{status} error", response=resp)
    return resp


@pytest.fixture
def library(tmp_path):
    root = tmp_path / "Movies"
    heat = root / "Heat (1995) [tmdbid-949]"
    heat.mkdir(parents=True)
    (heat / "Heat (1995) [tmdbid-949].mkv").write_bytes(b"v")
    (heat / "folder.jpg").write_bytes(b"art")

    spirited = root / "Spirited Away"
    spirited.mkdir()
    (spirited / "Spirited Away.mp4").write_bytes(b"v")
    (spirited / "movie.nfo").write_text(NFO, encoding="utf-8")

    mixed = root / "Collection"
    mixed.mkdir()
    for stem in ("Alien", "Aliens"):
        (mixed / f"{stem}.mkv").write_bytes(b"v")
    (mixed / "Aliens-poster.png").write_bytes(b"art")

    # Pool directories and other hidden folders are never items
    hidden = heat / ".poster_pool"
    hidden.mkdir()
    (hidden / "trailer.mkv").write_bytes(b"v")
    return root


def test_filesystem_catalog_lists_videos(library):
    catalog = FilesystemCatalog({"Movies": [str(library)]})
    items = {i.name: i for i in catalog.list_items(["Movie", "Series"])}

    assert sorted(items) == ["Alien", "Aliens", "Heat", "Spirited Away"]
    assert items["Heat"].provider_ids == {"tmdb": "949"}
    assert items["Heat"].primary_image_path.endswith("folder.jpg")
    assert items["Aliens"].primary_image_path.endswith("Aliens-poster.png")
    assert items["Alien"].primary_image_path is None


def test_filesystem_catalog_reads_nfo(library):
    catalog = FilesystemCatalog({"Movies": [str(library)]})
    item = next(i for i in catalog.list_items(["Movie"]) if i.name == "Spirited Away")

    assert item.original_title == "千と千尋の神隠し"
    assert item.production_year == 2001
    assert item.provider_id("Tmdb") == "129"
    assert item.provider_id("imdb") == "tt0245429"


def test_filesystem_ids_are_stable_and_resolvable(library):
    first = FilesystemCatalog({"Movies": [str(library)]})
    second = FilesystemCatalog({"Movies": [str(library)]})
    ids = sorted(i.id for i in first.list_items(["Movie"]))

    assert ids == sorted(i.id for i in second.list_items(["Movie"]))
    assert FilesystemCatalog({"Movies": [str(library)]}).get_item(ids[0]).id == ids[0]
    assert first.get_item("nope") is None


def test_filesystem_catalog_without_roots_cannot_enumerate(tmp_path):
    catalog = FilesystemCatalog({"Movies": [str(tmp_path / "missing")]})
    assert catalog.probe() is False
    with pytest.raises(CatalogError):
        catalog.list_items(["Movie"])


def test_filesystem_catalog_only_has_movies(library):
    assert FilesystemCatalog({"Movies": [str(library)]}).list_items(["Series"]) == []


def test_jellyfin_lists_items():
    session = MagicMock()
    session.get.return_value = _response(payload={"Items": [
        {"Id": "abc", "Name": "Heat", "Path": "/m/Heat/Heat.mkv", "Type": "Movie",
         "ProviderIds": {"Tmdb": "949", "Imdb": ""}, "ProductionYear": 1995},
        {"Name": "no id"},
    ]})
    catalog = JellyfinCatalog("http://jf:8096/", "key", session=session)

    items = catalog.list_items(["Movie", "Series"])

    assert len(items) == 1
    assert items[0].provider_ids == {"Tmdb": "949"}
    url = session.get.call_args[0][0]
    params = session.get.call_args[1]["params"]
    assert url == "http://jf:8096/Items"
    assert params["IncludeItemTypes"] == "Movie,Series"
    assert session.get.call_args[1]["headers"] == {"X-Emby-Token": "key"}


@pytest.mark.parametrize("failure", [
    _response(status=500),
    _response(payload=["not", "a", "dict"]),
])
def test_jellyfin_enumeration_failure_raises(failure):
    session = MagicMock()
    session.get.return_value = failure
    with pytest.raises(CatalogError):
        JellyfinCatalog("http://jf", "key", session=session).list_items(["Movie"])


def test_jellyfin_connection_error_raises():
    session = MagicMock()
    session.get.side_effect = requests.exceptions.ConnectionError("refused")
    with pytest.raises(CatalogError):
        JellyfinCatalog("http://jf", "key", session=session).list_items(["Movie"])


def test_jellyfin_library_roots_and_primary_image():
    session = MagicMock()
    catalog = JellyfinCatalog("http://jf", "key", session=session)

    session.get.return_value = _response(payload=[
        {"Name": "Movies", "Locations": ["/m", "/m", "/m2"]},
        {"Locations": ["/orphan"]},
    ])
    assert catalog.library_roots() == {"Movies": ["/m", "/m2"]}

    session.get.return_value = _response(payload=[
        {"ImageType": "Backdrop", "Path": "/m/Heat/backdrop.jpg"},
        {"ImageType": "Primary", "Path": "/m/Heat/poster.jpg"},
    ])
    item = MediaItem(id="abc", name="Heat", path="/m/Heat/Heat.mkv")
    assert catalog.get_primary_image_path(item) == "/m/Heat/poster.jpg"

    session.get.return_value = _response(status=404)
    assert catalog.get_primary_image_path(item) is None


@pytest.mark.parametrize("status, expected", [
    (204, OpResult.OK),
    (404, OpResult.UNSUPPORTED),
    (500, OpResult.FAILED),
])
def test_jellyfin_notify_results(status, expected):
    session = MagicMock()
    session.post.return_value = _response(status=status)
    catalog = JellyfinCatalog("http://jf", "key", session=session)

    result = catalog.notify_artwork_changed(MediaItem(id="a", name="Heat", path="/m/Heat.mkv"), Path("/m/poster.jpg"))

    assert result == expected
    assert session.post.call_args[0][0] == "http://jf/Library/Media/Updated"
    assert session.post.call_args[1]["json"] == {"Updates": [{"Path": str(Path("/m/poster.jpg")), "UpdateType": "Modified"}]}


def test_scan_falls_back_to_full_refresh():
    session = MagicMock()
    session.post.side_effect = [_response(status=404), _response(status=204)]
    catalog = JellyfinCatalog("http://jf", "key", session=session)

    assert catalog.request_library_scan("/m") == OpResult.OK
    assert [c[0][0] for c in session.post.call_args_list] == [
        "http://jf/Library/Media/Updated",
        "http://jf/Library/Refresh",
    ]


def test_notify_network_error_is_a_failure():
    session = MagicMock()
    session.post.side_effect = requests.exceptions.Timeout("slow")
    catalog = JellyfinCatalog("http://jf", "key", session=session)
    assert catalog.request_library_scan("/m") == OpResult.FAILED


def test_emby_uses_prefix():
    session = MagicMock()
    session.get.return_value = _response(payload={"ProductName": "Emby Server"})
    catalog = EmbyCatalog("http://emby", "key", session=session)
    assert catalog.probe() is True
    assert session.get.call_args[0][0] == "http://emby/emby/System/Info/Public"


def test_select_prefers_reachable_jellyfin():
    session = MagicMock()
    session.get.return_value = _response(payload={"ProductName": "Jellyfin Server"})
    catalog = select_catalog("auto", url="http://jf", api_key="k", session=session)
    assert isinstance(catalog, JellyfinCatalog) and not isinstance(catalog, EmbyCatalog)


def test_select_falls_through_to_emby_then_filesystem(library):
    session = MagicMock()
    session.get.return_value = _response(payload={"ProductName": "Emby Server"})
    assert isinstance(select_catalog("auto", url="http://emby", session=session), EmbyCatalog)

    session.get.side_effect = requests.exceptions.ConnectionError("down")
    catalog = select_catalog("auto", url="http://gone", session=session, roots={"Movies": [str(library)]})
    assert isinstance(catalog, FilesystemCatalog)


def test_select_raises_when_nothing_is_usable(tmp_path):
    with pytest.raises(CatalogError):
        select_catalog("filesystem", roots={"Movies": [str(tmp_path / "missing")]})
    with pytest.raises(CatalogError):
        select_catalog("jellyfin", url="")
