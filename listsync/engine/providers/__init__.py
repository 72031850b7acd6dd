"""Provider fetcher strategies."""

from __future__ import annotations

import httpx

from .anilist import AniListFetcher
from .base import FetcherRegistry, ProviderFetcher
from .mdblist import MdbListFetcher
from .stevenlu import StevenLuFetcher
from .trakt import TraktFetcher


def build_registry(timeout: float = 30.0, client: httpx.Client | None = None) -> FetcherRegistry:
    """Registry with every built-in fetcher sharing one HTTP client."""

    shared = client or httpx.Client(follow_redirects=True, timeout=timeout)
    registry = FetcherRegistry(
        [
            TraktFetcher(client=shared),
            MdbListFetcher(client=shared),
            StevenLuFetcher(client=shared),
            AniListFetcher(client=shared),
        ]
    )
    if client is None:
        registry.owned_client = shared
    return registry


__all__ = [
    "AniListFetcher",
    "FetcherRegistry",
    "MdbListFetcher",
    "ProviderFetcher",
    "StevenLuFetcher",
    "TraktFetcher",
    "build_registry",
]
