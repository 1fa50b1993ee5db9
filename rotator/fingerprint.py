"""
Byte-sampled average hash used to spot near-duplicate pool images.

The fingerprint treats the encoded file as a signal: 64 evenly strided bytes
after a 64-byte header are compared against their mean, one bit each. It does
not decode pixels, so it recognises re-downloads of the same file (or files
that share most of their encoded bytes) rather than true visual similarity.
"""
from __future__ import annotations

from pathlib import Path
from typing import Iterable, Union

from . import state
from logging_config import get_logger

logger = get_logger(__name__)

HEADER_SKIP = state.FINGERPRINT_HEADER_SKIP
SAMPLES = state.FINGERPRINT_SAMPLES


def _hash_samples(data: bytes) -> int:
    """Threshold 64 values against their integer mean. Shorter input is zero padded."""
    if not data:
        return 0
    if len(data) >= SAMPLES:
        step = len(data) // SAMPLES
        values = [data[i * step] for i in range(SAMPLES)]
    else:
        values = list(data) + [0] * (SAMPLES - len(data))

    avg = sum(values) // SAMPLES
    fingerprint = 0
    for i, value in enumerate(values):
        if value >= avg:
            fingerprint |= 1 << i
    return fingerprint


def fingerprint_bytes(data: bytes) -> int:
    """Fingerprint an in-memory image (e.g. a download before it is written)."""
    if not data:
        return 0
    body_len = len(data) - HEADER_SKIP
    if body_len < SAMPLES:
        return _hash_samples(data)
    step = body_len // SAMPLES
    samples = bytes(data[HEADER_SKIP + i * step] for i in range(SAMPLES))
    return _hash_samples(samples)


def fingerprint_file(path: Union[str, Path]) -> int:
    """Fingerprint a file on disk, reading only the sampled bytes. Returns 0 when unreadable."""
    path = Path(path)
    try:
        size = path.stat().st_size
        if size == 0:
            return 0
        body_len = size - HEADER_SKIP
        if body_len < SAMPLES:
            return _hash_samples(path.read_bytes())
        step = body_len // SAMPLES
        samples = bytearray()
        with open(path, "rb") as f:
            for i in range(SAMPLES):
                f.seek(HEADER_SKIP + i * step)
                b = f.read(1)
                samples.append(b[0] if b else 0)
        return _hash_samples(bytes(samples))
    except OSError as e:
        logger.debug(f"Could not fingerprint {path}: {e}")
        return 0


def hamming_distance(a: int, b: int) -> int:
    return bin(a ^ b).count("1")


def is_duplicate(fingerprint: int, existing: Iterable[int], threshold: int = state.DEFAULT_DUPLICATE_THRESHOLD) -> bool:
    """
    True when `fingerprint` is within `threshold` bits of any existing one.
    Zero fingerprints (empty or unreadable files) never match anything.
    """
    if fingerprint == 0:
        return False
    for other in existing:
        if other == 0:
            continue
        if hamming_distance(fingerprint, other) <= threshold:
            return True
    return False
