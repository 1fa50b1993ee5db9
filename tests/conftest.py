"""Pytest configuration and shared fixtures"""
import dataclasses
import io
import os
import sys
import tempfile
from pathlib import Path
from typing import Dict, List, Optional

# Keep settings.json and logs out of the source tree while testing
_TEST_HOME = Path(tempfile.mkdtemp(prefix="posterrotator_tests_"))
os.environ.setdefault("POSTERROTATOR_SETTINGS_FILE", str(_TEST_HOME / "settings.json"))
os.environ.setdefault("POSTERROTATOR_LOGS_DIR", str(_TEST_HOME / "logs"))

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest
import requests
from PIL import Image

from config import RotatorConfig
from context import RunContext
from rotator.catalog import CatalogAdapter, CatalogError
from rotator.models import Candidate, ImageKind, MediaItem, OpResult


def walsh_payload(mask: int, header: bytes = bytes(64)) -> bytes:
    """
    Synthetic download whose fingerprint is the Walsh pattern for `mask`.
    Different non-zero masks give fingerprints exactly 32 bits apart.
    """
    body = bytearray()
    for j in range(64):
        high = bin(j & mask).count("1") % 2 == 1
        body.extend([200 if high else 10] * 4)
    return header + bytes(body)


def make_image_bytes(size=(60, 90), color=(200, 30, 30), fmt="JPEG") -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format=fmt)
    return buf.getvalue()


class FakeSession:
    """requests.Session stand-in serving canned bytes per URL."""

    def __init__(self, payloads: Optional[Dict[str, bytes]] = None, content_type: str = ""):
        self.payloads = dict(payloads or {})
        self.content_type = content_type
        self.requested: List[str] = []
        self.headers: Dict[str, str] = {}

    def request(self, method, url, timeout=None, **kwargs):
        self.requested.append(url)
        response = requests.Response()
        response.url = url
        if url in self.payloads:
            response.status_code = 200
            response._content = self.payloads[url]
            if self.content_type:
                response.headers["Content-Type"] = self.content_type
        else:
            response.status_code = 404
            response.reason = "Not Found"
            response._content = b""
        return response

    def close(self):
        pass


class FakeProvider:
    """Image provider stand-in returning fixed candidates per kind."""

    def __init__(self, name: str, candidates: Dict[ImageKind, List[Candidate]], priority: int = 1, fail: bool = False):
        self.name = name
        self.priority = priority
        self.candidates = candidates
        self.fail = fail
        self.calls: List[ImageKind] = []
        self.session = FakeSession()

    def supports(self, item: MediaItem) -> bool:
        return True

    def get_images(self, item: MediaItem, kind: ImageKind = ImageKind.PRIMARY) -> List[Candidate]:
        self.calls.append(kind)
        if self.fail:
            raise requests.exceptions.ConnectionError("provider down")
        return list(self.candidates.get(kind, []))

    def __str__(self):
        return self.name


class FakeCatalog(CatalogAdapter):
    """In-memory catalog recording notifications."""

    name = "fake"

    def __init__(self, items: List[MediaItem], roots: Optional[Dict[str, List[str]]] = None, fail: bool = False,
                 notify_result: OpResult = OpResult.OK):
        self.items = items
        self.roots = roots or {}
        self.fail = fail
        self.notify_result = notify_result
        self.notified: List[Path] = []
        self.scans: List[str] = []

    def probe(self) -> bool:
        return True

    def list_items(self, kinds):
        if self.fail:
            raise CatalogError("catalog offline")
        return [i for i in self.items if i.kind in kinds]

    def library_roots(self):
        return self.roots

    def get_item(self, item_id):
        return next((i for i in self.items if i.id == item_id), None)

    def get_primary_image_path(self, item):
        return None

    def notify_artwork_changed(self, item, path):
        self.notified.append(Path(path))
        return self.notify_result

    def request_library_scan(self, root):
        self.scans.append(root)
        return OpResult.OK


@pytest.fixture
def rotator_config():
    """Engine config with the rotation-friendly defaults most tests want."""
    return RotatorConfig(pool_size=3, sequential_rotation=True, retries=0, download_concurrency=2)


@pytest.fixture
def make_config(rotator_config):
    def _make(**overrides):
        return dataclasses.replace(rotator_config, **overrides)
    return _make


@pytest.fixture
def movie_dir(tmp_path):
    """Library root with one movie folder holding one video file."""
    root = tmp_path / "Movies"
    folder = root / "Heat (1995)"
    folder.mkdir(parents=True)
    (folder / "Heat (1995).mkv").write_bytes(b"video")
    return folder


@pytest.fixture
def movie(movie_dir):
    return MediaItem(
        id="item-1",
        name="Heat",
        path=str(movie_dir / "Heat (1995).mkv"),
        kind="Movie",
        provider_ids={"Tmdb": "949"},
    )


@pytest.fixture
def fake_catalog(movie, movie_dir):
    return FakeCatalog([movie], roots={"Movies": [str(movie_dir.parent)]})


@pytest.fixture
def fake_provider():
    candidates = {
        ImageKind.PRIMARY: [
            Candidate(url=f"https://img.test/p{i}.jpg", kind=ImageKind.PRIMARY, provider="fake", width=1000, height=1500)
            for i in range(1, 6)
        ]
    }
    return FakeProvider("fake", candidates)


@pytest.fixture
def download_session():
    """Serves distinct payloads for https://img.test/p1.jpg .. p5.jpg"""
    return FakeSession({f"https://img.test/p{i}.jpg": walsh_payload(i) for i in range(1, 6)})


@pytest.fixture
def run_context(fake_provider, download_session):
    return RunContext(session=download_session, providers=[fake_provider])
