"""
Base Provider Class
All artwork providers must inherit from this base class.
"""

from abc import ABC, abstractmethod
from typing import Any, List, Optional

import requests

from config import get_provider_config, NETWORK
from network_utils import get_with_retry
from rotator.models import Candidate, ImageKind, MediaItem
from rotator.state import PROVIDER_SCORES
from logging_config import get_logger

logger = get_logger(__name__)


def provider_score(provider_name: str) -> int:
    """Static preference so TheTVDB, then TMDB, then FanArt.tv are asked first."""
    name = (provider_name or "").lower()
    for needle, score in PROVIDER_SCORES:
        if needle in name:
            return score
    return 0


def safe_int(value: Any) -> Optional[int]:
    """Provider dimensions/likes arrive as int, numeric string, '' or null."""
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


class ImageProvider(ABC):
    """Base class for all artwork providers."""

    # Item kinds this provider can look up
    SUPPORTED_KINDS = ("Movie", "Series")

    def __init__(self, provider_name: str):
        """
        Initialize the provider using configuration from config.py

        Args:
            provider_name (str): Name of the provider (must match config key)
        """
        config = get_provider_config(provider_name.lower())

        self.name = provider_name
        self.priority = config.get('priority', 100)
        self.enabled = config.get('enabled', True)
        self.timeout = config.get('timeout', 15)
        self.retries = config.get('retries', 3)
        self.base_url = config.get('base_url', '')
        self.api_key = config.get('api_key', '')

        self.session = requests.Session()
        self.session.headers.update({'User-Agent': NETWORK['user_agent']})

        if self.enabled and self.api_key:
            logger.info(f"Initialized {self.name} provider (priority: {self.priority})")
        elif self.enabled:
            logger.info(f"{self.name} provider has no API key configured")
        else:
            logger.info(f"{self.name} provider is disabled")

    @property
    def available(self) -> bool:
        return bool(self.enabled and self.api_key)

    @property
    def score(self) -> int:
        return provider_score(self.name)

    def supports(self, item: MediaItem) -> bool:
        """Whether this provider can look the item up at all (kind + cross-reference id)."""
        return self.available and item.kind in self.SUPPORTED_KINDS and self.lookup_id(item) is not None

    @abstractmethod
    def lookup_id(self, item: MediaItem) -> Optional[str]:
        """The id this provider knows the item by, or None."""

    @abstractmethod
    def get_images(self, item: MediaItem, kind: ImageKind = ImageKind.PRIMARY) -> List[Candidate]:
        """
        List candidate images of one kind for an item.

        Returns:
            Candidates in the provider's preferred order (may be empty).
            Network errors are retried inside; a provider that still fails
            raises requests.exceptions.RequestException.
        """

    def _get_json(self, url: str, **kwargs) -> Any:
        response = get_with_retry(self.session, url, timeout=self.timeout, retries=self.retries, **kwargs)
        return response.json()

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r}, priority={self.priority}, enabled={self.enabled})"
