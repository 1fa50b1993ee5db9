"""Tests for original-language detection"""
import pytest

from rotator.language import classify_script, detect_original_language, language_from_path
from rotator.models import MediaItem


@pytest.mark.parametrize("title, expected", [
    ("千と千尋の神隠し", "ja"),
    ("スパイファミリー", "ja"),
    ("기생충", "ko"),
    ("英雄", "zh"),
    ("Брат", "ru"),
    ("وجدة", "ar"),
    ("ואלס עם באשיר", "he"),
    ("ฉลาดเกมส์โกง", "th"),
    ("Amélie", "en"),
    ("", "en"),
])
def test_classify_script(title, expected):
    assert classify_script(title) == expected


def test_language_from_path_matches_folder_tokens():
    assert language_from_path("/media/Anime Movies/Akira (1988)/Akira.mkv") == "ja"
    assert language_from_path("D:\\Films\\French\\Amelie.mkv") == "fr"
    assert language_from_path("/media/Movies/Heat/Heat.mkv") is None
    assert language_from_path("") is None


def test_differing_original_title_wins():
    item = MediaItem(id="1", name="Spirited Away", path="/media/Movies/x.mkv", original_title="千と千尋の神隠し")
    assert detect_original_language(item) == "ja"


def test_same_original_title_is_ignored():
    item = MediaItem(id="1", name="Heat", path="/media/Korean/Heat.mkv", original_title="Heat")
    assert detect_original_language(item) == "ko"


def test_anime_provider_ids_mean_japanese():
    item = MediaItem(id="1", name="Cowboy Bebop", path="/media/TV/Bebop", provider_ids={"AniDB": "23"})
    assert detect_original_language(item) == "ja"


def test_default_is_english():
    item = MediaItem(id="1", name="Heat", path="/media/Movies/Heat/Heat.mkv")
    assert detect_original_language(item) == "en"
