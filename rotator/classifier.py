"""
Candidate classifier: turns the raw provider candidate list into the ordered
admission list for one top-up pass. Pure; no I/O.
"""
from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from config import RotatorConfig
from .models import Candidate, ImageKind
from logging_config import get_logger

logger = get_logger(__name__)

WANTED_KIND = ImageKind.PRIMARY
SECONDARY_KINDS = (ImageKind.THUMB, ImageKind.BACKDROP)


def _filter_kinds(candidates: Sequence[Candidate]) -> List[Candidate]:
    """Keep wanted-kind images; a provider offering none of them may contribute secondary kinds."""
    has_wanted: Dict[str, bool] = {}
    for c in candidates:
        if c.kind == WANTED_KIND:
            has_wanted[c.provider] = True
    kept = []
    for c in candidates:
        if c.kind == WANTED_KIND:
            kept.append(c)
        elif c.kind in SECONDARY_KINDS and not has_wanted.get(c.provider):
            kept.append(c)
    return kept


def _passes_quality(c: Candidate, cfg: RotatorConfig) -> bool:
    if c.is_landscape:
        return False
    # Unknown dimensions pass: quality filtering is best effort
    if cfg.min_width and c.width and c.width < cfg.min_width:
        return False
    if cfg.min_height and c.height and c.height < cfg.min_height:
        return False
    return True


def _dedupe_by_url(candidates: Sequence[Candidate]) -> List[Candidate]:
    seen = set()
    unique = []
    for c in candidates:
        if not c.url or c.url in seen:
            continue
        seen.add(c.url)
        unique.append(c)
    return unique


def fallback_language_for(cfg: RotatorConfig, original_language: Optional[str]) -> Optional[str]:
    if cfg.uses_original_language_fallback:
        return original_language
    return cfg.fallback_language


def classify(
    candidates: Sequence[Candidate],
    cfg: RotatorConfig,
    need: int,
    preferred_in_pool: int = 0,
    original_language: Optional[str] = None,
) -> List[Candidate]:
    """
    Build the ordered, URL-deduplicated admission list, capped at `need`.

    Args:
        candidates: Every candidate gathered from the providers for this item
        cfg: Engine configuration
        need: Pool slots still to fill
        preferred_in_pool: Members already tagged with the preferred language
        original_language: Detected original language (used when the fallback is "original")
    """
    if need <= 0 or not candidates:
        return []

    eligible = _dedupe_by_url(_filter_kinds(candidates))
    eligible = [c for c in eligible if _passes_quality(c, cfg)]

    if not cfg.enable_language_filter:
        # Stable sort: wanted kind first, provider order preserved within a kind
        eligible.sort(key=lambda c: 0 if c.kind == WANTED_KIND else 1)
        admitted = eligible[:need]
        logger.debug(f"Classifier: {len(candidates)} candidates -> {len(admitted)} admitted (language filter off)")
        return admitted

    preferred = cfg.preferred_language.lower()
    fallback = (fallback_language_for(cfg, original_language) or "").lower()
    remaining_preferred = max(0, cfg.max_preferred_images - preferred_in_pool)

    preferred_hits: List[Candidate] = []
    fallback_hits: List[Candidate] = []
    for c in eligible:
        lang = (c.language or "").lower()
        if lang and lang == preferred:
            preferred_hits.append(c)
        elif not fallback:
            fallback_hits.append(c)
        elif lang and lang == fallback:
            fallback_hits.append(c)
        elif not lang and cfg.include_unknown_language:
            fallback_hits.append(c)

    admitted = preferred_hits[:min(remaining_preferred, need)]
    admitted.extend(fallback_hits[:need - len(admitted)])

    logger.debug(
        f"Classifier: {len(candidates)} candidates, {len(preferred_hits)} '{preferred}' "
        f"(room for {remaining_preferred}), {len(fallback_hits)} fallback '{fallback or 'any'}' -> {len(admitted)} admitted"
    )
    return admitted
