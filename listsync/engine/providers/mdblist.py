"""MDBList user lists."""

from __future__ import annotations

import re
from typing import Any

from ...config import ProviderConfig, ProviderKind
from ...errors import InvalidListUrl, MalformedUpstreamResponse
from ..items import MediaItem, MediaKind
from .base import ProviderFetcher

MDBLIST_API = "https://api.mdblist.com"
MDBLIST_PAGE_LIMIT = 50
LIST_URL_PATTERN = re.compile(
    r"^https?://(?:www\.|api\.)?mdblist\.com/lists/(?P<username>[^/]+)/(?P<slug>[^/?#]+)(?:/items)?/?(?:\?.*)?$",
    re.IGNORECASE,
)


def parse_list_url(url: str) -> tuple[str, str]:
    match = LIST_URL_PATTERN.match(url.strip())
    if not match:
        raise InvalidListUrl(url, "https://mdblist.com/lists/{username}/{list-slug}")
    return match.group("username"), match.group("slug")


class MdbListFetcher(ProviderFetcher):
    kinds = (ProviderKind.MDBLIST,)
    display_name = "MDBList"

    def fetch_items(
        self,
        source_url: str,
        max_items: int,
        credentials: ProviderConfig | None,
    ) -> list[MediaItem]:
        api_key = self._require_credentials(credentials, ProviderKind.MDBLIST)
        username, slug = parse_list_url(source_url)
        limit = min(max_items, MDBLIST_PAGE_LIMIT)
        api_url = f"{MDBLIST_API}/lists/{username}/{slug}/items/"
        params = {"limit": limit, "apikey": api_key, "unified": "true"}
        payload = self._get_json(
            api_url,
            params=params,
            headers={"Content-Type": "application/json"},
            log_params={"limit": limit, "unified": "true"},
        )
        entries = self._entries(payload)
        self.logger.info("mdblist_received", username=username, slug=slug, count=len(entries))
        return self._build_items((self._record(entry) for entry in entries), limit)

    def _entries(self, payload: Any) -> list[Any]:
        if isinstance(payload, list):
            return payload
        if isinstance(payload, dict):
            if "error" in payload:
                raise MalformedUpstreamResponse(
                    self.display_name, f"MDBList API error: {payload['error']}"
                )
            # Non-unified responses split movies and shows.
            entries: list[Any] = []
            for key in ("items", "movies", "shows"):
                value = payload.get(key)
                if isinstance(value, list):
                    entries.extend(value)
            return entries
        return self._expect_list(payload)

    @staticmethod
    def _record(entry: Any) -> tuple[Any, Any, Any, MediaKind]:
        if not isinstance(entry, dict):
            return None, None, None, MediaKind.MOVIE
        kind = MediaKind.TV if entry.get("mediatype") == "show" else MediaKind.MOVIE
        external_id = entry.get("tmdb_id", entry.get("id"))
        return external_id, entry.get("title"), entry.get("release_year"), kind


__all__ = ["MdbListFetcher", "parse_list_url"]
