"""
Image utilities for the rotator package.
Handles image I/O, format detection and header-only dimension probing.

Dependencies: state (for constants)
"""
from __future__ import annotations

import io
import os
import uuid
from pathlib import Path
from typing import Optional, Tuple, Union
from urllib.parse import urlparse

from PIL import Image, UnidentifiedImageError

from . import state
from logging_config import get_logger

logger = get_logger(__name__)

_CONTENT_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".gif": "image/gif",
}


def get_image_extension(data: bytes) -> Optional[str]:
    """Detect image format from file header bytes."""
    if data.startswith(b'\xff\xd8'):
        return '.jpg'
    if data.startswith(b'\x89PNG\r\n\x1a\n'):
        return '.png'
    if data.startswith(b'GIF8'):
        return '.gif'
    if data[:4] == b'RIFF' and data[8:12] == b'WEBP':
        return '.webp'
    return None


def guess_ext_from_url(url: str) -> Optional[str]:
    """Extension of the URL path (query ignored), .jpeg normalized to .jpg."""
    try:
        ext = os.path.splitext(urlparse(url).path)[1].lower()
    except ValueError:
        return None
    if not ext:
        return None
    return '.jpg' if ext == '.jpeg' else ext


def guess_ext_from_mime(content_type: Optional[str]) -> Optional[str]:
    if not content_type:
        return None
    mime = content_type.lower().split(';')[0].strip()
    return {
        'image/jpeg': '.jpg',
        'image/jpg': '.jpg',
        'image/png': '.png',
        'image/webp': '.webp',
        'image/gif': '.gif',
    }.get(mime)


def determine_image_extension(url: str, content_type: Optional[str] = None, data: Optional[bytes] = None) -> str:
    """
    Determine the file extension for a downloaded image.

    Order: magic bytes, Content-Type header, URL path, then '.jpg'.
    Only extensions a pool accepts are returned.
    """
    for ext in (
        get_image_extension(data) if data else None,
        guess_ext_from_mime(content_type),
        guess_ext_from_url(url) if url else None,
    ):
        if ext in state.IMAGE_EXTENSIONS:
            return ext
    return '.jpg'


def content_type_for(file_name: str) -> str:
    return _CONTENT_TYPES.get(Path(file_name).suffix.lower(), "application/octet-stream")


def get_image_dimensions(source: Union[Path, str, bytes]) -> Tuple[int, int]:
    """
    Read (width, height) from the image header without decoding pixels.
    PIL parses only the header on open; returns (0, 0) when unreadable.
    """
    try:
        fp = io.BytesIO(source) if isinstance(source, (bytes, bytearray)) else source
        with Image.open(fp) as img:
            return img.size
    except (UnidentifiedImageError, OSError, ValueError) as e:
        logger.debug(f"Could not read image dimensions: {e}")
        return (0, 0)


def save_image_original(image_data: bytes, output_path: Path) -> bool:
    """
    Save image data in its original format without conversion.
    Uses atomic write pattern (temp file + os.replace) so a half-written
    member never appears in the pool.

    Args:
        image_data: Raw image bytes from the provider
        output_path: Final path (extension included)

    Returns:
        True if successful, False otherwise
    """
    # Don't save empty or extremely tiny files (likely error pages)
    if not image_data or len(image_data) < state.MIN_IMAGE_BYTES:
        logger.warning(f"Refusing to save empty/tiny image to {output_path} ({len(image_data) if image_data else 0} bytes)")
        return False

    temp_path = output_path.parent / f"{output_path.stem}_{uuid.uuid4().hex}{output_path.suffix}.tmp"
    try:
        with open(temp_path, 'wb') as f:
            f.write(image_data)
        os.replace(temp_path, output_path)
        return True
    except OSError as e:
        logger.error(f"Failed to save image {output_path}: {e}")
        try:
            if temp_path.exists():
                os.remove(temp_path)
        except OSError:
            pass
        return False
