"""
Artwork Providers Package
This package contains the remote sources poster pools are topped up from.
"""
from typing import List

from .base import ImageProvider, provider_score
from .fanart import FanartProvider
from .tmdb import TMDBProvider
from .tvdb import TVDBProvider
from logging_config import get_logger

logger = get_logger(__name__)

# List of all available providers
available_providers = [
    TVDBProvider,
    TMDBProvider,
    FanartProvider,
]


def get_image_providers() -> List[ImageProvider]:
    """
    Instantiate every enabled provider that has an API key, best first
    (static score, then configured priority). Called once per run.
    """
    providers = [cls() for cls in available_providers]
    usable = [p for p in providers if p.available]
    for p in providers:
        if not p.available:
            p.session.close()
    usable.sort(key=lambda p: (-p.score, p.priority))
    logger.debug(f"Image providers for this run: {', '.join(p.name for p in usable) or 'none'}")
    return usable


__all__ = [
    'ImageProvider',
    'TVDBProvider',
    'TMDBProvider',
    'FanartProvider',
    'available_providers',
    'get_image_providers',
    'provider_score',
]
