"""
Top-up engine: brings one pool toward its target size.

Flow for one item:
1. Ask every provider that supports the item for primary artwork (falling
   back to thumb, then backdrop, when a provider has no primary images).
2. Rank the aggregated candidates with the classifier. Which candidates are
   tried, and in what order, is fixed here before any download starts.
3. Download a batch of just enough candidates, at most
   `download_concurrency` at a time.
4. Walk the batch results in admission order: reject failures, size
   violations and near-duplicates, write the rest as pool_<millis><ext>, then
   tag language and fingerprint. Repeat with the next batch while slots
   remain and candidates are left.

Provider and network failures never escape: a failing provider contributes
nothing, a failing download loses that one candidate.

Dependencies: classifier, fingerprint, image, helpers, state_manager
"""
from __future__ import annotations

import asyncio
import shutil
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import requests

from config import RotatorConfig
from context import RunContext
from network_utils import get_with_retry
from state_manager import FingerprintIndex, LanguageIndex, pool_lock
from . import state
from .classifier import classify
from .fingerprint import fingerprint_bytes, fingerprint_file, is_duplicate
from .helpers import new_member_path, run_blocking
from .image import determine_image_extension, get_image_dimensions, save_image_original
from .models import Candidate, ImageKind, MediaItem
from .resolver import ResolvedItem, find_per_item_poster
from .selector import list_pool_members
from logging_config import get_logger

logger = get_logger(__name__)

UNKNOWN_LANGUAGE = "unknown"

# Tried in order when a provider has nothing of the kind before it
KIND_FALLBACK_ORDER = (ImageKind.PRIMARY, ImageKind.THUMB, ImageKind.BACKDROP)


def _query_provider(provider, item: MediaItem) -> List[Candidate]:
    """Blocking: candidates from one provider, first non-empty kind wins."""
    try:
        if not provider.supports(item):
            logger.debug(f"Provider {provider} does not support '{item.name}'")
            return []
        for kind in KIND_FALLBACK_ORDER:
            images = provider.get_images(item, kind)
            if images:
                if kind != ImageKind.PRIMARY:
                    logger.debug(f"Provider {provider} has no primary artwork for '{item.name}', using {kind.value}")
                return list(images)
    except (requests.exceptions.RequestException, ValueError, KeyError, TypeError, AttributeError) as e:
        # ValueError covers JSON decode errors; the others unexpected response shapes
        logger.debug(f"Provider {provider} failed for '{item.name}': {e}")
    return []


async def gather_candidates(item: MediaItem, providers: Sequence) -> List[Candidate]:
    """Query every provider concurrently; results keep provider order."""
    if not providers:
        return []
    results = await asyncio.gather(*[run_blocking(_query_provider, p, item) for p in providers])
    candidates: List[Candidate] = []
    for provider_candidates in results:
        candidates.extend(provider_candidates)
    return candidates


def download_image(session: requests.Session, url: str, timeout: int, retries: int) -> Tuple[bytes, Optional[str]]:
    """Blocking: fetch image bytes, retrying transient failures (1s, 2s, 4s, ...)."""
    response = get_with_retry(session, url, timeout=timeout, retries=retries)
    return response.content, response.headers.get("Content-Type")


def _fails_actual_size(data: bytes, candidate: Candidate, cfg: RotatorConfig) -> Optional[str]:
    """Header check for candidates the provider sent without dimensions."""
    if candidate.width and candidate.height:
        return None
    width, height = get_image_dimensions(data)
    if not width or not height:
        return None
    if width > height:
        return f"landscape {width}x{height}"
    if (cfg.min_width and width < cfg.min_width) or (cfg.min_height and height < cfg.min_height):
        return f"too small {width}x{height}"
    return None


def _backfill_fingerprints(members: Sequence[Path], hashes: FingerprintIndex) -> bool:
    """Fingerprint members that predate the index (manual adds, older pools)."""
    changed = False
    for member in members:
        if member.name not in hashes.entries:
            hashes.entries[member.name] = fingerprint_file(member)
            changed = True
    return changed


async def top_up(
    item: MediaItem,
    resolved: ResolvedItem,
    need: int,
    cfg: RotatorConfig,
    ctx: RunContext,
    original_language: Optional[str] = None,
) -> List[Path]:
    """
    Add up to `need` members to the item's pool.

    Returns:
        Paths of the newly written members (possibly empty)
    """
    if need <= 0:
        return []
    if not ctx.providers:
        logger.debug(f"No image providers available for '{item.name}'")
        return []

    pool_dir = resolved.pool_dir
    candidates = await gather_candidates(item, ctx.providers)
    if not candidates:
        logger.debug(f"No candidates from any provider for '{item.name}'")
        return []
    pool_dir.mkdir(parents=True, exist_ok=True)

    languages = LanguageIndex.load(pool_dir)
    hashes = FingerprintIndex.load(pool_dir)
    if cfg.dedup_enabled:
        members = list_pool_members(pool_dir, cfg.extra_poster_patterns)
        if _backfill_fingerprints(members, hashes):
            hashes.save(pool_dir)

    # Full ranked list; batches are cut from its head
    ranked = classify(
        candidates, cfg, len(candidates),
        preferred_in_pool=languages.count(cfg.preferred_language),
        original_language=original_language,
    )
    logger.debug(f"Top-up for '{item.name}': need {need}, {len(ranked)}/{len(candidates)} candidate(s) eligible")

    semaphore = asyncio.Semaphore(max(1, cfg.download_concurrency))

    async def _fetch(candidate: Candidate) -> Tuple[bytes, Optional[str]]:
        async with semaphore:
            return await run_blocking(download_image, ctx.session, candidate.url, cfg.timeout, cfg.retries)

    added: List[Path] = []
    cursor = 0
    while len(added) < need and cursor < len(ranked):
        batch = ranked[cursor:cursor + need - len(added)]
        cursor += len(batch)

        results = await asyncio.gather(*[_fetch(c) for c in batch], return_exceptions=True)

        # Sequential on the event loop: dedup sees every member admitted before it
        for candidate, result in zip(batch, results):
            if len(added) >= need:
                break
            if isinstance(result, BaseException):
                logger.warning(f"Download failed for '{item.name}' from {candidate.provider}: {result}")
                continue
            data, content_type = result

            reason = _fails_actual_size(data, candidate, cfg)
            if reason:
                logger.debug(f"Rejected {candidate.provider} image for '{item.name}': {reason}")
                continue

            fingerprint = fingerprint_bytes(data)
            if cfg.dedup_enabled and is_duplicate(fingerprint, hashes.entries.values(), cfg.dedup_threshold):
                logger.debug(f"Rejected near-duplicate {candidate.provider} image for '{item.name}'")
                continue

            ext = determine_image_extension(candidate.url, content_type, data)
            target = new_member_path(pool_dir, ext)
            if not save_image_original(data, target):
                continue

            languages.entries[target.name] = candidate.language or UNKNOWN_LANGUAGE
            hashes.entries[target.name] = fingerprint
            added.append(target)
            logger.debug(
                f"Added {target.name} to pool of '{item.name}' "
                f"({candidate.provider}, {candidate.kind.value}, lang={candidate.language or UNKNOWN_LANGUAGE})"
            )

        if added:
            with pool_lock(pool_dir):
                languages.save(pool_dir)
                hashes.save(pool_dir)

    if added:
        logger.info(f"Top-up added {len(added)} image(s) for '{item.name}'")
    else:
        logger.debug(f"Top-up added nothing for '{item.name}'")
    return added


def snapshot_current_artwork(item: MediaItem, resolved: ResolvedItem, current_primary: Optional[str]) -> Optional[Path]:
    """
    Seed an empty pool with the item's existing artwork as pool_currentprimary<ext>.
    In a mixed folder, an existing <base>-poster.* / <base>.* beside the item is used
    when the catalog reports no artwork.
    """
    source: Optional[Path] = None
    if current_primary and Path(current_primary).is_file():
        source = Path(current_primary)
    elif resolved.mixed_folder:
        source = find_per_item_poster(item, resolved.item_dir)
    if source is None:
        return None

    resolved.pool_dir.mkdir(parents=True, exist_ok=True)
    ext = source.suffix.lower() or ".jpg"
    target = resolved.pool_dir / f"{state.SNAPSHOT_STEM}{ext}"
    shutil.copyfile(source, target)

    with pool_lock(resolved.pool_dir):
        hashes = FingerprintIndex.load(resolved.pool_dir)
        hashes.entries[target.name] = fingerprint_file(target)
        hashes.save(resolved.pool_dir)

    logger.info(f"Seeded pool of '{item.name}' with its current artwork ({source.name})")
    return target
