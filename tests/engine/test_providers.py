from __future__ import annotations

import json

import httpx
import pytest

from listsync.config import ProviderConfig, ProviderKind
from listsync.engine import MediaKind
from listsync.engine.providers import (
    AniListFetcher,
    FetcherRegistry,
    MdbListFetcher,
    StevenLuFetcher,
    TraktFetcher,
    build_registry,
)
from listsync.engine.providers.anilist import parse_list_url as parse_anilist_url
from listsync.engine.providers.trakt import parse_chart_url, parse_list_url
from listsync.errors import (
    InvalidListUrl,
    MalformedUpstreamResponse,
    NoFetcherForProvider,
    ProviderNotConfigured,
    UpstreamFetchFailed,
)

TRAKT_KEY = ProviderConfig(api_key="client-id")
MDB_KEY = ProviderConfig(api_key="mdb-secret")


def test_parse_trakt_list_url_with_display_and_sort() -> None:
    parsed = parse_list_url("https://trakt.tv/users/alice/lists/favs?display=movie&sort=rank,asc")
    assert (parsed.username, parsed.list_slug) == ("alice", "favs")
    assert parsed.api_url() == "https://api.trakt.tv/users/alice/lists/favs/items/movie/rank/asc"
    assert parse_list_url("https://trakt.tv/users/alice/lists/favs").api_url() == (
        "https://api.trakt.tv/users/alice/lists/favs/items"
    )
    with pytest.raises(InvalidListUrl):
        parse_list_url("https://trakt.tv/movies/favs")


def test_parse_trakt_chart_url() -> None:
    assert parse_chart_url("https://trakt.tv/shows/trending") == ("shows", "trending")
    assert parse_chart_url("https://api.trakt.tv/movies/popular/") == ("movies", "popular")
    with pytest.raises(InvalidListUrl):
        parse_chart_url("https://trakt.tv/movies/newest")


def test_trakt_list_fetch_bounds_upstream_and_skips_unrequestable(mock_client) -> None:
    seen: list[httpx.Request] = []
    payload = [
        {"type": "movie", "movie": {"title": "Alpha", "year": 2001, "ids": {"tmdb": 11}}},
        {"type": "show", "show": {"title": "Beta", "year": 2010, "ids": {"tmdb": 22}}},
        {"type": "movie", "movie": {"title": "No id", "ids": {"tmdb": None}}},
        {"type": "episode", "episode": {"title": "Pilot", "ids": {"tmdb": 33}}},
    ]

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=payload)

    fetcher = TraktFetcher(client=mock_client(handler))
    items = fetcher.fetch_items("https://trakt.tv/users/alice/lists/favs", 10, TRAKT_KEY)

    assert [(item.external_id, item.media_kind) for item in items] == [
        (11, MediaKind.MOVIE),
        (22, MediaKind.TV),
    ]
    assert items[0].year == 2001
    request = seen[0]
    assert request.url.path == "/users/alice/lists/favs/items"
    assert request.url.params["limit"] == "10"
    assert request.headers["trakt-api-key"] == "client-id"
    assert request.headers["trakt-api-version"] == "2"


def test_trakt_chart_unwraps_nested_items(mock_client) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/shows/trending"
        return httpx.Response(200, json=[{"watchers": 5, "show": {"title": "Gamma", "ids": {"tmdb": 44}}}])

    items = TraktFetcher(client=mock_client(handler)).fetch_items(
        "https://trakt.tv/shows/trending", 5, TRAKT_KEY
    )
    assert [(item.external_id, item.title, item.media_kind) for item in items] == [
        (44, "Gamma", MediaKind.TV)
    ]


def test_trakt_requires_credentials(mock_client) -> None:
    fetcher = TraktFetcher(client=mock_client(lambda request: httpx.Response(200, json=[])))
    with pytest.raises(ProviderNotConfigured):
        fetcher.fetch_items("https://trakt.tv/movies/popular", 5, None)


def test_upstream_error_message_and_retry(mock_client) -> None:
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        return httpx.Response(503)

    fetcher = TraktFetcher(client=mock_client(handler), retry_delay=0)
    with pytest.raises(UpstreamFetchFailed) as excinfo:
        fetcher.fetch_items("https://trakt.tv/movies/popular", 5, TRAKT_KEY)
    assert str(excinfo.value) == "Trakt API error: 503 Service Unavailable"
    assert excinfo.value.status_code == 503
    assert len(calls) == 2


def test_client_error_is_not_retried(mock_client) -> None:
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        return httpx.Response(404)

    fetcher = TraktFetcher(client=mock_client(handler), retry_delay=0)
    with pytest.raises(UpstreamFetchFailed):
        fetcher.fetch_items("https://trakt.tv/users/a/lists/b", 5, TRAKT_KEY)
    assert len(calls) == 1


def test_unreachable_and_malformed_are_distinct(mock_client) -> None:
    def unreachable(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("no route", request=request)

    fetcher = TraktFetcher(client=mock_client(unreachable), retry_delay=0)
    with pytest.raises(UpstreamFetchFailed) as excinfo:
        fetcher.fetch_items("https://trakt.tv/movies/popular", 5, TRAKT_KEY)
    assert str(excinfo.value).startswith("Trakt API unreachable")

    fetcher = TraktFetcher(client=mock_client(lambda request: httpx.Response(200, text="<html>")))
    with pytest.raises(MalformedUpstreamResponse):
        fetcher.fetch_items("https://trakt.tv/movies/popular", 5, TRAKT_KEY)

    fetcher = TraktFetcher(client=mock_client(lambda request: httpx.Response(200, json={"items": []})))
    with pytest.raises(MalformedUpstreamResponse):
        fetcher.fetch_items("https://trakt.tv/movies/popular", 5, TRAKT_KEY)


def test_mdblist_fetch(mock_client) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json=[
                {"id": 101, "title": "Delta", "mediatype": "movie", "release_year": 1999},
                {"id": 202, "title": "Epsilon", "mediatype": "show"},
                {"title": "Missing id"},
            ],
        )

    items = MdbListFetcher(client=mock_client(handler)).fetch_items(
        "https://mdblist.com/lists/dan/top-picks", 50, MDB_KEY
    )

    assert [(item.external_id, item.media_kind, item.year) for item in items] == [
        (101, MediaKind.MOVIE, 1999),
        (202, MediaKind.TV, None),
    ]
    request = seen[0]
    assert request.url.host == "api.mdblist.com"
    assert request.url.path == "/lists/dan/top-picks/items/"
    assert request.url.params["apikey"] == "mdb-secret"
    assert request.url.params["limit"] == "50"


def test_mdblist_split_payload_and_bad_url(mock_client) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"movies": [{"id": 1, "title": "m"}], "shows": [{"id": 2, "title": "s", "mediatype": "show"}]})

    fetcher = MdbListFetcher(client=mock_client(handler))
    items = fetcher.fetch_items("https://mdblist.com/lists/dan/mixed", 10, MDB_KEY)
    assert [item.external_id for item in items] == [1, 2]
    with pytest.raises(InvalidListUrl):
        fetcher.fetch_items("https://example.com/lists/dan/mixed", 10, MDB_KEY)


def test_stevenlu_truncates_after_fetch(mock_client) -> None:
    feed = [{"title": f"Movie {n}", "tmdb_id": n} for n in range(1, 8)]
    fetcher = StevenLuFetcher(client=mock_client(lambda request: httpx.Response(200, json=feed)))

    items = fetcher.fetch_items("https://s3.amazonaws.com/popular-movies/movies.json", 3, None)

    assert [item.external_id for item in items] == [1, 2, 3]
    assert all(item.media_kind is MediaKind.MOVIE for item in items)


def test_registry_selects_by_provider_kind() -> None:
    registry = build_registry(timeout=5)
    try:
        assert isinstance(registry.find(ProviderKind.TRAKT_CHART), TraktFetcher)
        assert isinstance(registry.find(ProviderKind.MDBLIST), MdbListFetcher)
        assert registry.find(ProviderKind.STEVENLU).requires_credentials is False
    finally:
        registry.close()
    with pytest.raises(NoFetcherForProvider):
        FetcherRegistry([]).find(ProviderKind.TRAKT)


def test_single_attempt_raises_last_error(mock_client) -> None:
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        return httpx.Response(502)

    fetcher = TraktFetcher(client=mock_client(handler), attempts=1)
    with pytest.raises(UpstreamFetchFailed) as excinfo:
        fetcher.fetch_items("https://trakt.tv/movies/popular", 5, TRAKT_KEY)
    assert excinfo.value.status_code == 502
    assert len(calls) == 1


def test_invalid_upstream_url_is_unreachable(mock_client) -> None:
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        raise httpx.InvalidURL("Invalid host")

    fetcher = StevenLuFetcher(client=mock_client(handler), retry_delay=0)
    with pytest.raises(UpstreamFetchFailed) as excinfo:
        fetcher.fetch_items("https://feed.invalid/movies.json", 5, None)
    assert str(excinfo.value) == "StevenLu API unreachable: Invalid host"
    assert len(calls) == 1


ANIME_MAPPING = [
    {"anilist_id": 1, "themoviedb_id": 100, "type": "TV"},
    {"anilist_id": 2, "themoviedb_id": 200, "type": "MOVIE"},
    {"anilist_id": 3, "themoviedb_id": 300, "type": "Music"},
    {"anilist_id": 5, "themoviedb_id": 500, "type": "ONA"},
    {"anilist_id": 6},
]


def _anilist_entry(anilist_id: int, media_format: str | None, english: str | None = None, romaji: str = "romaji") -> dict:
    return {
        "mediaId": anilist_id,
        "media": {
            "id": anilist_id,
            "title": {"english": english, "romaji": romaji},
            "format": media_format,
            "seasonYear": 2020,
        },
    }


def _anilist_handler(entries: list[dict], seen: list[httpx.Request]):
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.host == "raw.githubusercontent.com":
            return httpx.Response(200, json=ANIME_MAPPING)
        assert request.url.host == "graphql.anilist.co"
        return httpx.Response(
            200, json={"data": {"MediaListCollection": {"lists": [{"name": "Planning", "entries": entries}]}}}
        )

    return handler


def test_parse_anilist_url() -> None:
    assert parse_anilist_url("anilist:kenji:planning") == ("kenji", "PLANNING")
    with pytest.raises(InvalidListUrl):
        parse_anilist_url("anilist:kenji:WATCHING")
    with pytest.raises(InvalidListUrl):
        parse_anilist_url("https://anilist.co/user/kenji/animelist")


def test_anilist_formats_and_tmdb_mapping(mock_client) -> None:
    seen: list[httpx.Request] = []
    entries = [
        _anilist_entry(1, "TV", english="Frieren"),
        _anilist_entry(2, "MOVIE", romaji="Kimi no Na wa"),
        _anilist_entry(3, "MUSIC"),
        _anilist_entry(4, "OVA"),
        _anilist_entry(5, None),
        _anilist_entry(6, "TV_SHORT"),
    ]
    fetcher = AniListFetcher(client=mock_client(_anilist_handler(entries, seen)))

    items = fetcher.fetch_items("anilist:kenji:PLANNING", 50, None)

    assert [(item.external_id, item.title, item.media_kind, item.year) for item in items] == [
        (100, "Frieren", MediaKind.TV, 2020),
        (200, "Kimi no Na wa", MediaKind.MOVIE, 2020),
        (500, "romaji", MediaKind.TV, 2020),
    ]
    graphql = seen[-1]
    assert graphql.method == "POST"
    assert json.loads(graphql.content)["variables"] == {"userName": "kenji", "status": "PLANNING"}


def test_anilist_truncates_and_caches_mapping(mock_client) -> None:
    seen: list[httpx.Request] = []
    entries = [_anilist_entry(1, "TV"), _anilist_entry(2, "MOVIE"), _anilist_entry(5, "ONA")]
    now = [0.0]
    fetcher = AniListFetcher(
        client=mock_client(_anilist_handler(entries, seen)), mapping_ttl=60, clock=lambda: now[0]
    )

    assert [item.external_id for item in fetcher.fetch_items("anilist:kenji:CURRENT", 2, None)] == [100, 200]
    fetcher.fetch_items("anilist:kenji:CURRENT", 2, None)
    mapping_calls = [request for request in seen if request.url.host == "raw.githubusercontent.com"]
    assert len(mapping_calls) == 1

    now[0] = 61.0
    fetcher.fetch_items("anilist:kenji:CURRENT", 2, None)
    mapping_calls = [request for request in seen if request.url.host == "raw.githubusercontent.com"]
    assert len(mapping_calls) == 2


def test_anilist_graphql_errors_and_missing_lists(mock_client) -> None:
    def errors(request: httpx.Request) -> httpx.Response:
        if request.url.host == "raw.githubusercontent.com":
            return httpx.Response(200, json=ANIME_MAPPING)
        return httpx.Response(200, json={"errors": [{"message": "User not found"}]})

    with pytest.raises(UpstreamFetchFailed) as excinfo:
        AniListFetcher(client=mock_client(errors)).fetch_items("anilist:ghost:CURRENT", 10, None)
    assert str(excinfo.value) == "AniList GraphQL errors: User not found"

    def empty(request: httpx.Request) -> httpx.Response:
        if request.url.host == "raw.githubusercontent.com":
            return httpx.Response(200, json=ANIME_MAPPING)
        return httpx.Response(200, json={"data": {"MediaListCollection": None}})

    assert AniListFetcher(client=mock_client(empty)).fetch_items("anilist:private:CURRENT", 10, None) == []


def test_registry_includes_anilist() -> None:
    registry = build_registry(timeout=5)
    try:
        fetcher = registry.find(ProviderKind.ANILIST)
        assert isinstance(fetcher, AniListFetcher)
        assert fetcher.requires_credentials is False
    finally:
        registry.close()
