"""AniList user anime lists, mapped onto TMDB ids through the Fribb anime-lists feed."""

from __future__ import annotations

import re
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

from ...config import ProviderConfig, ProviderKind
from ...errors import InvalidListUrl, MalformedUpstreamResponse, UpstreamFetchFailed
from ..items import MediaItem, MediaKind
from .base import ProviderFetcher, coerce_external_id

ANILIST_GRAPHQL_URL = "https://graphql.anilist.co"
ANIME_ID_MAPPING_URL = "https://raw.githubusercontent.com/Fribb/anime-lists/master/anime-list-full.json"
MAPPING_TTL_SECONDS = 24 * 60 * 60
LIST_STATUSES = ("CURRENT", "PLANNING", "COMPLETED", "DROPPED", "PAUSED", "REPEATING")
LIST_URL_PATTERN = re.compile(
    rf"^anilist:(?P<username>[^:]+):(?P<status>{'|'.join(LIST_STATUSES)})$", re.IGNORECASE
)
MOVIE_FORMATS = {"MOVIE"}
# Not requestable downstream.
SKIP_FORMATS = {"MUSIC"}

MEDIA_LIST_QUERY = """
query ($userName: String, $status: MediaListStatus) {
  MediaListCollection(userName: $userName, type: ANIME, status: $status) {
    lists {
      name
      status
      entries {
        mediaId
        media {
          id
          title { romaji english }
          format
          seasonYear
        }
      }
    }
  }
}
"""


@dataclass(slots=True, frozen=True)
class TmdbMapping:
    tmdb_id: int
    media_kind: MediaKind


def parse_list_url(url: str) -> tuple[str, str]:
    """Split ``anilist:<username>:<status>`` into username and upper-cased status."""

    match = LIST_URL_PATTERN.match(url.strip())
    if not match:
        raise InvalidListUrl(url, f"anilist:{{username}}:{{{'|'.join(LIST_STATUSES)}}}")
    return match.group("username"), match.group("status").upper()


def format_media_kind(media_format: str | None) -> MediaKind | None:
    """Map an AniList format to a media kind; ``None`` means the entry is skipped."""

    if not media_format:
        return MediaKind.TV
    normalised = media_format.upper()
    if normalised in SKIP_FORMATS:
        return None
    if normalised in MOVIE_FORMATS:
        return MediaKind.MOVIE
    # TV, OVA, ONA, SPECIAL, TV_SHORT and anything new.
    return MediaKind.TV


class AniListFetcher(ProviderFetcher):
    kinds = (ProviderKind.ANILIST,)
    display_name = "AniList"
    requires_credentials = False

    def __init__(
        self,
        *args: Any,
        mapping_ttl: float = MAPPING_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        **kwargs: Any,
    ) -> None:
        super().__init__(*args, **kwargs)
        self.mapping_ttl = mapping_ttl
        self._clock = clock
        self._mapping: dict[int, TmdbMapping] = {}
        self._mapping_loaded_at: float | None = None
        self._mapping_lock = threading.Lock()

    def fetch_items(
        self,
        source_url: str,
        max_items: int,
        credentials: ProviderConfig | None,
    ) -> list[MediaItem]:
        username, status = parse_list_url(source_url)
        mapping = self.tmdb_mapping()
        variables = {"userName": username, "status": status}
        payload = self._request_json(
            "POST",
            ANILIST_GRAPHQL_URL,
            headers={"Accept": "application/json"},
            json={"query": MEDIA_LIST_QUERY, "variables": variables},
            log_params=variables,
        )
        entries = self._entries(payload)[:max_items]

        records: list[tuple[Any, Any, Any, MediaKind]] = []
        skipped_format = 0
        skipped_unmapped = 0
        for entry in entries:
            media = entry.get("media") if isinstance(entry, dict) else None
            if not isinstance(media, dict):
                skipped_unmapped += 1
                continue
            if format_media_kind(media.get("format")) is None:
                skipped_format += 1
                continue
            target = mapping.get(coerce_external_id(media.get("id")))
            if target is None:
                skipped_unmapped += 1
                continue
            title = media.get("title") if isinstance(media.get("title"), dict) else {}
            records.append(
                (
                    target.tmdb_id,
                    title.get("english") or title.get("romaji"),
                    media.get("seasonYear"),
                    target.media_kind,
                )
            )
        self.logger.info(
            "anilist_received",
            username=username,
            status=status,
            count=len(entries),
            converted=len(records),
            skipped_format=skipped_format,
            skipped_unmapped=skipped_unmapped,
        )
        return self._build_items(records, max_items)

    def tmdb_mapping(self) -> dict[int, TmdbMapping]:
        """AniList id to TMDB mapping, downloaded at most once per ``mapping_ttl``."""

        with self._mapping_lock:
            now = self._clock()
            if self._mapping_loaded_at is not None and now - self._mapping_loaded_at < self.mapping_ttl:
                return self._mapping
            payload = self._expect_list(
                self._get_json(ANIME_ID_MAPPING_URL, headers={"Accept": "application/json"})
            )
            mapping: dict[int, TmdbMapping] = {}
            for entry in payload:
                if not isinstance(entry, dict):
                    continue
                anilist_id = coerce_external_id(entry.get("anilist_id"))
                tmdb_id = coerce_external_id(entry.get("themoviedb_id"))
                if anilist_id is None or tmdb_id is None:
                    continue
                kind = MediaKind.MOVIE if str(entry.get("type") or "").upper() == "MOVIE" else MediaKind.TV
                mapping[anilist_id] = TmdbMapping(tmdb_id, kind)
            self._mapping = mapping
            self._mapping_loaded_at = now
            self.logger.info("anime_mapping_loaded", mappings=len(mapping), entries=len(payload))
            return mapping

    def _entries(self, payload: Any) -> list[Any]:
        if not isinstance(payload, dict):
            raise MalformedUpstreamResponse(
                self.display_name,
                f"AniList API returned {type(payload).__name__}, expected an object",
            )
        errors = payload.get("errors")
        if errors:
            messages = ", ".join(
                str(error.get("message", error)) if isinstance(error, dict) else str(error)
                for error in errors
            )
            raise UpstreamFetchFailed(self.display_name, f"AniList GraphQL errors: {messages}")
        collection = (payload.get("data") or {}).get("MediaListCollection") or {}
        lists = collection.get("lists")
        if not isinstance(lists, list):
            # Unknown user or private list.
            self.logger.warning("anilist_list_empty")
            return []
        entries: list[Any] = []
        for media_list in lists:
            if isinstance(media_list, dict) and isinstance(media_list.get("entries"), list):
                entries.extend(media_list["entries"])
        return entries


__all__ = ["AniListFetcher", "TmdbMapping", "format_media_kind", "parse_list_url"]
