"""Tests for image and path helpers"""
import pytest

from rotator.helpers import format_size, is_snapshot_name, looks_like_path, new_member_path, path_starts_with
from rotator.image import determine_image_extension, get_image_dimensions, save_image_original
from conftest import make_image_bytes


@pytest.mark.parametrize("size, expected", [
    (0, "0 B"),
    (512, "512 B"),
    (1536, "1.5 KB"),
    (int(2.25 * 1024 * 1024), "2.25 MB"),
    (1024 ** 3, "1 GB"),
    (-5, "0 B"),
])
def test_format_size(size, expected):
    assert format_size(size) == expected


def test_extension_prefers_magic_bytes_then_mime_then_url():
    png = make_image_bytes(fmt="PNG")
    assert determine_image_extension("https://x/a.jpg", "image/jpeg", png) == ".png"
    assert determine_image_extension("https://x/a.jpg", "image/webp; charset=binary") == ".webp"
    assert determine_image_extension("https://x/a.JPEG?w=500") == ".jpg"
    assert determine_image_extension("https://x/a.bmp", "text/html") == ".jpg"
    assert determine_image_extension("") == ".jpg"


def test_dimensions_from_bytes_and_path(tmp_path):
    data = make_image_bytes(size=(40, 70), fmt="JPEG")
    assert get_image_dimensions(data) == (40, 70)
    path = tmp_path / "a.jpg"
    path.write_bytes(data)
    assert get_image_dimensions(path) == (40, 70)
    assert get_image_dimensions(b"not an image") == (0, 0)


def test_save_refuses_tiny_payloads(tmp_path):
    target = tmp_path / "pool_1.jpg"
    assert save_image_original(b"<html>", target) is False
    assert not target.exists()


def test_save_writes_without_temp_leftovers(tmp_path):
    target = tmp_path / "pool_1.jpg"
    data = make_image_bytes()
    assert save_image_original(data, target) is True
    assert target.read_bytes() == data
    assert [p.name for p in tmp_path.iterdir()] == ["pool_1.jpg"]


def test_new_member_path_never_reuses_a_name(tmp_path, monkeypatch):
    monkeypatch.setattr("rotator.helpers.unix_millis", lambda: 1000)
    first = new_member_path(tmp_path, ".jpg")
    first.write_bytes(b"x")
    second = new_member_path(tmp_path, ".jpg")
    assert first.name == "pool_1000.jpg"
    assert second.name == "pool_1001.jpg"


def test_name_helpers():
    assert is_snapshot_name("POOL_CurrentPrimary.png")
    assert not is_snapshot_name("pool_123.jpg")
    assert looks_like_path("D:\\Movies") and looks_like_path("/media/tv")
    assert not looks_like_path("Movies")
    assert path_starts_with("/Media/Movies/Heat", "/media/movies")
    assert not path_starts_with("", "/media")
