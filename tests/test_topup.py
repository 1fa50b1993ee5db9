"""Tests for the top-up engine"""
import json

from context import RunContext
from rotator.models import Candidate, ImageKind
from rotator.resolver import resolve
from rotator.selector import list_pool_members
from rotator.topup import gather_candidates, snapshot_current_artwork, top_up
from state_manager import FingerprintIndex, LanguageIndex
from conftest import FakeProvider, FakeSession, make_image_bytes, walsh_payload


def _candidate(n, **kw):
    kw.setdefault("width", 1000)
    kw.setdefault("height", 1500)
    return Candidate(url=f"https://img.test/p{n}.jpg", kind=kw.pop("kind", ImageKind.PRIMARY), provider="fake", **kw)


async def test_fills_empty_pool_to_need(movie, rotator_config, run_context):
    resolved = resolve(movie, {})

    added = await top_up(movie, resolved, 3, rotator_config, run_context)

    assert len(added) == 3
    members = list_pool_members(resolved.pool_dir)
    assert sorted(p.name for p in members) == sorted(p.name for p in added)
    assert all(p.name.startswith("pool_") and p.suffix == ".jpg" for p in added)
    # Only the first three candidates are downloaded
    assert sorted(run_context.session.requested) == [f"https://img.test/p{i}.jpg" for i in (1, 2, 3)]


async def test_side_files_record_language_and_fingerprint(movie, rotator_config, run_context):
    resolved = resolve(movie, {})
    added = await top_up(movie, resolved, 2, rotator_config, run_context)

    languages = LanguageIndex.load(resolved.pool_dir).entries
    hashes = FingerprintIndex.load(resolved.pool_dir).entries
    assert {p.name for p in added} == set(languages) == set(hashes)
    assert set(languages.values()) == {"unknown"}
    assert all(h != 0 for h in hashes.values())


async def test_need_zero_contacts_nobody(movie, rotator_config, run_context, fake_provider):
    assert await top_up(movie, resolve(movie, {}), 0, rotator_config, run_context) == []
    assert fake_provider.calls == []
    assert run_context.session.requested == []


async def test_failed_downloads_are_replaced_by_later_candidates(movie, rotator_config, fake_provider):
    # p1 and p2 are not served (404)
    session = FakeSession({f"https://img.test/p{i}.jpg": walsh_payload(i) for i in (3, 4, 5)})
    ctx = RunContext(session=session, providers=[fake_provider])

    added = await top_up(movie, resolve(movie, {}), 3, rotator_config, ctx)

    assert len(added) == 3
    assert sorted(session.requested) == [f"https://img.test/p{i}.jpg" for i in range(1, 6)]


async def test_near_duplicates_are_rejected(movie, rotator_config, fake_provider):
    same = walsh_payload(1)
    session = FakeSession({
        "https://img.test/p1.jpg": same,
        "https://img.test/p2.jpg": same,
        "https://img.test/p3.jpg": walsh_payload(3),
    })
    ctx = RunContext(session=session, providers=[fake_provider])
    resolved = resolve(movie, {})

    added = await top_up(movie, resolved, 3, rotator_config, ctx)

    assert len(added) == 2
    assert len(set(FingerprintIndex.load(resolved.pool_dir).entries.values())) == 2


async def test_existing_members_are_backfilled_and_block_duplicates(movie, rotator_config, run_context):
    resolved = resolve(movie, {})
    resolved.pool_dir.mkdir()
    (resolved.pool_dir / "pool_1.jpg").write_bytes(walsh_payload(1))

    added = await top_up(movie, resolved, 2, rotator_config, run_context)

    hashes = FingerprintIndex.load(resolved.pool_dir).entries
    assert "pool_1.jpg" in hashes
    assert len(added) == 2
    # p1 duplicates the manual member, so p2 and p3 are taken
    assert sorted(run_context.session.requested) == [f"https://img.test/p{i}.jpg" for i in (1, 2, 3)]


async def test_dedup_can_be_disabled(movie, make_config, fake_provider):
    cfg = make_config(dedup_enabled=False)
    same = walsh_payload(1)
    session = FakeSession({f"https://img.test/p{i}.jpg": same for i in range(1, 6)})
    ctx = RunContext(session=session, providers=[fake_provider])

    assert len(await top_up(movie, resolve(movie, {}), 3, cfg, ctx)) == 3


async def test_actual_size_checked_when_provider_omits_dimensions(movie, make_config):
    cfg = make_config(min_width=50, min_height=80)
    provider = FakeProvider("fake", {ImageKind.PRIMARY: [
        _candidate(1, width=None, height=None),
        _candidate(2, width=None, height=None),
        _candidate(3, width=None, height=None),
    ]})
    session = FakeSession({
        "https://img.test/p1.jpg": make_image_bytes(size=(120, 60)),
        "https://img.test/p2.jpg": make_image_bytes(size=(30, 45)),
        "https://img.test/p3.jpg": make_image_bytes(size=(60, 90)),
    })
    ctx = RunContext(session=session, providers=[provider])

    added = await top_up(movie, resolve(movie, {}), 3, cfg, ctx)

    assert len(added) == 1
    assert added[0].read_bytes() == session.payloads["https://img.test/p3.jpg"]


async def test_language_tags_follow_candidates(movie, make_config):
    cfg = make_config(enable_language_filter=True, preferred_language="fr", fallback_language="en",
                      max_preferred_images=1)
    provider = FakeProvider("fake", {ImageKind.PRIMARY: [
        _candidate(1, language="fr"),
        _candidate(2, language="fr"),
        _candidate(3, language="en"),
        _candidate(4),
    ]})
    session = FakeSession({f"https://img.test/p{i}.jpg": walsh_payload(i) for i in range(1, 5)})
    ctx = RunContext(session=session, providers=[provider])
    resolved = resolve(movie, {})

    await top_up(movie, resolved, 3, cfg, ctx)

    languages = LanguageIndex.load(resolved.pool_dir)
    assert sorted(languages.entries.values()) == ["en", "fr", "unknown"]
    assert "https://img.test/p2.jpg" not in session.requested


async def test_failing_provider_contributes_nothing(movie, rotator_config, fake_provider, download_session):
    broken = FakeProvider("broken", {}, fail=True)
    ctx = RunContext(session=download_session, providers=[broken, fake_provider])

    added = await top_up(movie, resolve(movie, {}), 2, rotator_config, ctx)

    assert len(added) == 2
    assert broken.calls == [ImageKind.PRIMARY]


async def test_no_providers_means_no_top_up(movie, rotator_config, download_session):
    ctx = RunContext(session=download_session, providers=[])
    assert await top_up(movie, resolve(movie, {}), 3, rotator_config, ctx) == []


async def test_provider_without_candidates_creates_no_pool(movie, rotator_config, download_session):
    resolved = resolve(movie, {})
    ctx = RunContext(session=download_session, providers=[FakeProvider("empty", {})])

    assert await top_up(movie, resolved, 3, rotator_config, ctx) == []
    assert not resolved.pool_dir.exists()


async def test_kind_fallback_per_provider(movie):
    thumb = _candidate(9, kind=ImageKind.THUMB)
    provider = FakeProvider("fake", {ImageKind.THUMB: [thumb]})

    assert await gather_candidates(movie, [provider]) == [thumb]
    assert provider.calls == [ImageKind.PRIMARY, ImageKind.THUMB]


async def test_gather_keeps_provider_order(movie):
    first = FakeProvider("a", {ImageKind.PRIMARY: [_candidate(1)]})
    second = FakeProvider("b", {ImageKind.PRIMARY: [_candidate(2)]})
    urls = [c.url for c in await gather_candidates(movie, [first, second])]
    assert urls == ["https://img.test/p1.jpg", "https://img.test/p2.jpg"]


def test_snapshot_copies_current_artwork(movie, movie_dir):
    poster = movie_dir / "poster.png"
    poster.write_bytes(make_image_bytes(fmt="PNG"))
    resolved = resolve(movie, {})

    snapshot = snapshot_current_artwork(movie, resolved, str(poster))

    assert snapshot == resolved.pool_dir / "pool_currentprimary.png"
    assert snapshot.read_bytes() == poster.read_bytes()
    hashes = json.loads((resolved.pool_dir / "pool_hashes.json").read_text(encoding="utf-8"))
    assert "pool_currentprimary.png" in hashes


def test_snapshot_without_artwork_does_nothing(movie, movie_dir):
    resolved = resolve(movie, {})
    assert snapshot_current_artwork(movie, resolved, None) is None
    assert snapshot_current_artwork(movie, resolved, str(movie_dir / "missing.jpg")) is None
