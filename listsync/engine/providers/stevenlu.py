"""StevenLu popular-movies feed (public, no credentials)."""

from __future__ import annotations

from typing import Any

from ...config import ProviderConfig, ProviderKind
from ..items import MediaItem, MediaKind
from .base import ProviderFetcher

STEVENLU_FEED_URL = "https://s3.amazonaws.com/popular-movies/movies.json"


class StevenLuFetcher(ProviderFetcher):
    kinds = (ProviderKind.STEVENLU,)
    display_name = "StevenLu"
    requires_credentials = False

    def fetch_items(
        self,
        source_url: str,
        max_items: int,
        credentials: ProviderConfig | None,
    ) -> list[MediaItem]:
        feed_url = source_url if source_url.startswith(("http://", "https://")) else STEVENLU_FEED_URL
        # The feed has no limit parameter; truncation happens while normalising.
        payload = self._expect_list(self._get_json(feed_url))
        self.logger.info("stevenlu_received", count=len(payload))
        return self._build_items((self._record(entry) for entry in payload), max_items)

    @staticmethod
    def _record(entry: Any) -> tuple[Any, Any, Any, MediaKind]:
        if not isinstance(entry, dict):
            return None, None, None, MediaKind.MOVIE
        return entry.get("tmdb_id"), entry.get("title"), None, MediaKind.MOVIE


__all__ = ["STEVENLU_FEED_URL", "StevenLuFetcher"]
