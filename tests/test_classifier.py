"""Tests for the candidate classifier"""
import dataclasses

import pytest

from rotator.classifier import classify
from rotator.models import Candidate, ImageKind


def poster(n, language=None, provider="tmdb", kind=ImageKind.PRIMARY, width=1000, height=1500):
    return Candidate(
        url=f"https://img.test/{provider}/{kind.value}/{n}.jpg",
        kind=kind,
        provider=provider,
        language=language,
        width=width,
        height=height,
    )


@pytest.fixture
def language_config(make_config):
    return make_config(
        pool_size=5,
        enable_language_filter=True,
        preferred_language="fr",
        fallback_language="en",
        max_preferred_images=2,
        include_unknown_language=True,
    )


def test_need_zero_or_no_candidates_admits_nothing(rotator_config):
    assert classify([poster(1)], rotator_config, need=0) == []
    assert classify([], rotator_config, need=3) == []


def test_filter_off_keeps_provider_order_and_caps_at_need(rotator_config):
    candidates = [poster(i) for i in range(6)]
    assert classify(candidates, rotator_config, need=4) == candidates[:4]


def test_landscape_candidates_are_rejected(rotator_config):
    wide = poster(1, width=1920, height=1080)
    tall = poster(2)
    assert classify([wide, tall], rotator_config, need=5) == [tall]


def test_minimum_dimensions_apply_only_when_known(make_config):
    cfg = make_config(min_width=800, min_height=1200)
    small = poster(1, width=500, height=750)
    unknown = poster(2, width=None, height=None)
    big = poster(3)
    assert classify([small, unknown, big], cfg, need=5) == [unknown, big]


def test_duplicate_urls_are_admitted_once(rotator_config):
    a = poster(1)
    again = Candidate(url=a.url, kind=ImageKind.PRIMARY, provider="tvdb")
    assert classify([a, again, poster(2)], rotator_config, need=5) == [a, poster(2)]


def test_secondary_kinds_only_from_providers_without_posters(rotator_config):
    tmdb_poster = poster(1, provider="tmdb")
    tmdb_thumb = poster(2, provider="tmdb", kind=ImageKind.THUMB, width=600, height=900)
    fanart_thumb = poster(3, provider="fanart", kind=ImageKind.THUMB, width=600, height=900)

    admitted = classify([tmdb_thumb, fanart_thumb, tmdb_poster], rotator_config, need=5)

    # Posters rank ahead of secondary kinds
    assert admitted == [tmdb_poster, fanart_thumb]


def test_preferred_language_is_capped_and_topped_up_with_fallback(language_config):
    french = [poster(i, language="fr") for i in range(4)]
    unlabeled = [poster(10 + i) for i in range(6)]

    admitted = classify(french + unlabeled, language_config, need=5)

    assert admitted == french[:2] + unlabeled[:3]


def test_preferred_cap_counts_members_already_in_pool(language_config):
    french = [poster(i, language="fr") for i in range(4)]
    english = [poster(10 + i, language="en") for i in range(4)]

    admitted = classify(french + english, language_config, need=3, preferred_in_pool=1)

    assert admitted == french[:1] + english[:2]


def test_language_match_is_case_insensitive(language_config):
    upper = poster(1, language="FR")
    assert classify([upper], language_config, need=1) == [upper]


def test_other_languages_are_dropped_when_fallback_is_set(language_config):
    german = poster(1, language="de")
    english = poster(2, language="en")
    assert classify([german, english], language_config, need=5) == [english]


def test_unknown_language_can_be_excluded(language_config):
    cfg = dataclasses.replace(language_config, include_unknown_language=False)
    unlabeled = poster(1)
    english = poster(2, language="en")
    assert classify([unlabeled, english], cfg, need=5) == [english]


def test_without_fallback_any_language_fills_remaining_slots(language_config):
    cfg = dataclasses.replace(language_config, fallback_language=None)
    german = poster(1, language="de")
    assert classify([german], cfg, need=2) == [german]


def test_original_language_fallback_uses_detected_language(language_config):
    cfg = dataclasses.replace(language_config, fallback_language="original")
    japanese = poster(1, language="ja")
    english = poster(2, language="en")

    assert classify([english, japanese], cfg, need=5, original_language="ja") == [japanese]
    # Unknown original language: no language restriction beyond the preferred cap
    assert classify([english, japanese], cfg, need=5, original_language=None) == [english, japanese]
