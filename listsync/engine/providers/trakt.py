"""Trakt user lists and public charts."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any
from urllib.parse import parse_qs, urlparse

from ...config import ProviderConfig, ProviderKind
from ...errors import InvalidListUrl
from ..items import MediaItem, MediaKind
from .base import ProviderFetcher

TRAKT_API = "https://api.trakt.tv"
LIST_URL_HINT = "https://trakt.tv/users/{username}/lists/{list-slug}"
CHART_URL_HINT = "https://trakt.tv/{movies|shows}/{trending|popular|...}"
CHART_TYPES = ("trending", "popular", "favorited", "played", "watched", "collected", "anticipated")
CHART_URL_PATTERN = re.compile(
    r"^https?://(?:www\.)?(?:api\.)?trakt\.tv/(?P<media>movies|shows)/(?P<chart>"
    + "|".join(CHART_TYPES)
    + r")/?(?:\?.*)?$",
    re.IGNORECASE,
)


@dataclass(slots=True)
class TraktListUrl:
    username: str
    list_slug: str
    media_filter: str | None = None
    sort_field: str | None = None
    sort_order: str | None = None

    def api_url(self) -> str:
        url = f"{TRAKT_API}/users/{self.username}/lists/{self.list_slug}/items"
        media_filter = self.media_filter or "all"
        if self.sort_field and self.sort_order:
            url += f"/{media_filter}/{self.sort_field}/{self.sort_order}"
        elif media_filter != "all":
            url += f"/{media_filter}"
        return url


def parse_list_url(url: str) -> TraktListUrl:
    parsed = urlparse(url.strip())
    parts = [part for part in parsed.path.split("/") if part]
    if len(parts) < 4 or parts[0] != "users" or parts[2] != "lists":
        raise InvalidListUrl(url, LIST_URL_HINT)
    query = parse_qs(parsed.query)
    display = (query.get("display") or [None])[0]
    media_filter = display if display in {"movie", "show"} else None
    sort_field = sort_order = None
    sort = (query.get("sort") or [None])[0]
    if sort:
        sort_parts = sort.split(",")
        if len(sort_parts) == 2:
            sort_field, sort_order = sort_parts
    return TraktListUrl(parts[1], parts[3], media_filter, sort_field, sort_order)


def parse_chart_url(url: str) -> tuple[str, str]:
    """Return ``(media, chart)`` for a display or API chart URL."""

    match = CHART_URL_PATTERN.match(url.strip())
    if not match:
        raise InvalidListUrl(url, CHART_URL_HINT)
    return match.group("media").lower(), match.group("chart").lower()


def _headers(client_id: str) -> dict[str, str]:
    return {
        "Content-Type": "application/json",
        "trakt-api-version": "2",
        "trakt-api-key": client_id,
    }


class TraktFetcher(ProviderFetcher):
    """Handle both ``trakt`` (user lists) and ``trakt_chart`` (charts)."""

    kinds = (ProviderKind.TRAKT, ProviderKind.TRAKT_CHART)
    display_name = "Trakt"

    def fetch_items(
        self,
        source_url: str,
        max_items: int,
        credentials: ProviderConfig | None,
    ) -> list[MediaItem]:
        client_id = self._require_credentials(credentials, ProviderKind.TRAKT)
        if CHART_URL_PATTERN.match(source_url.strip()):
            return self._fetch_chart(source_url, max_items, client_id)
        return self._fetch_list(source_url, max_items, client_id)

    def _fetch_list(self, source_url: str, max_items: int, client_id: str) -> list[MediaItem]:
        parsed = urlparse(source_url.strip())
        if parsed.hostname == "api.trakt.tv":
            # API URLs already carry filter/sort in the path.
            api_url = f"{TRAKT_API}{parsed.path.rstrip('/')}"
        else:
            api_url = parse_list_url(source_url).api_url()
        params = {"page": 1, "limit": max_items}
        payload = self._expect_list(
            self._get_json(api_url, params=params, headers=_headers(client_id), log_params=params)
        )
        self.logger.info("trakt_list_received", url=api_url, count=len(payload))
        return self._build_items((self._list_record(entry) for entry in payload), max_items)

    def _fetch_chart(self, source_url: str, max_items: int, client_id: str) -> list[MediaItem]:
        media, chart = parse_chart_url(source_url)
        api_url = f"{TRAKT_API}/{media}/{chart}"
        params = {"page": 1, "limit": max_items}
        payload = self._expect_list(
            self._get_json(api_url, params=params, headers=_headers(client_id), log_params=params)
        )
        self.logger.info("trakt_chart_received", media=media, chart=chart, count=len(payload))
        kind = MediaKind.TV if media == "shows" else MediaKind.MOVIE
        return self._build_items((self._chart_record(entry, kind) for entry in payload), max_items)

    @staticmethod
    def _list_record(entry: Any) -> tuple[Any, Any, Any, MediaKind]:
        if not isinstance(entry, dict):
            return None, None, None, MediaKind.MOVIE
        entry_type = entry.get("type")
        if entry_type == "movie" and isinstance(entry.get("movie"), dict):
            body, kind = entry["movie"], MediaKind.MOVIE
        elif entry_type == "show" and isinstance(entry.get("show"), dict):
            body, kind = entry["show"], MediaKind.TV
        else:
            # episodes, seasons and people are not requestable
            return None, None, None, MediaKind.MOVIE
        ids = body.get("ids") or {}
        return ids.get("tmdb"), body.get("title"), body.get("year"), kind

    @staticmethod
    def _chart_record(entry: Any, kind: MediaKind) -> tuple[Any, Any, Any, MediaKind]:
        if not isinstance(entry, dict):
            return None, None, None, kind
        # popular returns bare items; the other charts wrap them with counters.
        key = "show" if kind is MediaKind.TV else "movie"
        body = entry.get(key) if isinstance(entry.get(key), dict) else entry
        ids = body.get("ids") or {}
        return ids.get("tmdb"), body.get("title"), body.get("year"), kind


__all__ = ["TraktFetcher", "TraktListUrl", "parse_chart_url", "parse_list_url"]
