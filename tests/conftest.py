"""Shared fixtures: temporary config tree, SQLite-backed stores and fake collaborators."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Iterable

import httpx
import pytest

from listsync.config import (
    ConfigLocator,
    ConfigRepository,
    DownstreamConfig,
    MediaListConfig,
    OwnerSettings,
    ProviderConfig,
    ProviderKind,
)
from listsync.engine import (
    ExecutionTracker,
    FailedRequest,
    FetcherRegistry,
    GlobalDeduplicationCache,
    MediaItem,
    RequestOutcome,
)
from listsync.infra import SQLiteManager


class FakeFetcher:
    """Return canned items per source URL; an exception value is raised instead."""

    display_name = "Fake"

    def __init__(
        self,
        responses: dict[str, list[MediaItem] | Exception] | None = None,
        kinds: Iterable[ProviderKind] = tuple(ProviderKind),
        requires_credentials: bool = True,
    ) -> None:
        self.responses = responses or {}
        self.kinds = tuple(kinds)
        self.requires_credentials = requires_credentials
        self.calls: list[tuple[str, int, ProviderConfig | None]] = []

    def supports(self, kind: ProviderKind) -> bool:
        return kind in self.kinds

    def fetch_items(self, source_url: str, max_items: int, credentials: ProviderConfig | None) -> list[MediaItem]:
        self.calls.append((source_url, max_items, credentials))
        result = self.responses.get(source_url, [])
        if isinstance(result, Exception):
            raise result
        return list(result)[:max_items]

    def close(self) -> None:
        pass


class FakeRequester:
    """Accept every item except ``fail_ids``; remembers each submitted batch."""

    def __init__(self, fail_ids: Iterable[int] = ()) -> None:
        self.fail_ids = set(fail_ids)
        self.batches: list[list[int]] = []
        self.configs: list[DownstreamConfig] = []
        self.closed = 0

    def factory(self, config: DownstreamConfig) -> "FakeRequester":
        self.configs.append(config)
        return self

    def request_items(self, items: Iterable[MediaItem]) -> RequestOutcome:
        items = list(items)
        self.batches.append([item.external_id for item in items])
        outcome = RequestOutcome()
        for item in items:
            if item.external_id in self.fail_ids:
                outcome.failed.append(FailedRequest(item=item, reason="500: boom"))
            else:
                outcome.succeeded.append(item)
        return outcome

    def close(self) -> None:
        self.closed += 1


def movie(external_id: int, title: str | None = None) -> MediaItem:
    return MediaItem(external_id=external_id, title=title or f"Movie {external_id}")


@pytest.fixture
def listsync_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("LISTSYNC_HOME", str(tmp_path))
    return tmp_path


@pytest.fixture
def temp_config_repository(listsync_home: Path) -> ConfigRepository:
    return ConfigRepository(ConfigLocator(project_root=listsync_home))


@pytest.fixture
def sample_list_config() -> Callable[..., MediaListConfig]:
    def _builder(**overrides: Any) -> MediaListConfig:
        base: dict[str, Any] = {
            "id": 1,
            "name": "Example list",
            "provider": ProviderKind.TRAKT,
            "url": "https://trakt.tv/users/someone/lists/favourites",
            "max_items": 50,
        }
        base.update(overrides)
        return MediaListConfig(**base)

    return _builder


@pytest.fixture
def add_list(
    temp_config_repository: ConfigRepository,
    sample_list_config: Callable[..., MediaListConfig],
) -> Callable[..., MediaListConfig]:
    def _add(**overrides: Any) -> MediaListConfig:
        config = sample_list_config(**overrides)
        temp_config_repository.save_list(config)
        return config

    return _add


@pytest.fixture
def configure_owner(temp_config_repository: ConfigRepository) -> Callable[..., OwnerSettings]:
    def _configure(owner_id: int = 1, downstream: bool = True, providers: Iterable[ProviderKind] | None = None) -> OwnerSettings:
        kinds = (ProviderKind.TRAKT, ProviderKind.MDBLIST) if providers is None else tuple(providers)
        settings = OwnerSettings(
            downstream=(
                DownstreamConfig(url="http://requests.local/", api_key="downstream-key", user_id=7)
                if downstream
                else None
            ),
            providers={kind: ProviderConfig(api_key=f"{kind.value}-key") for kind in kinds},
        )
        temp_config_repository.save_owner_settings(owner_id, settings)
        return settings

    return _configure


@pytest.fixture
def storage() -> Iterable[SQLiteManager]:
    manager = SQLiteManager()
    yield manager
    manager.close_all()


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "data" / "listsync.db"


@pytest.fixture
def cache(storage: SQLiteManager, db_path: Path) -> GlobalDeduplicationCache:
    return GlobalDeduplicationCache(storage, db_path)


@pytest.fixture
def tracker(storage: SQLiteManager, db_path: Path) -> ExecutionTracker:
    return ExecutionTracker(storage, db_path)


@pytest.fixture
def fake_fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def fake_requester() -> FakeRequester:
    return FakeRequester()


@pytest.fixture
def registry(fake_fetcher: FakeFetcher) -> FetcherRegistry:
    return FetcherRegistry([fake_fetcher])


@pytest.fixture
def mock_client() -> Iterable[Callable[[Callable[[httpx.Request], httpx.Response]], httpx.Client]]:
    clients: list[httpx.Client] = []

    def _build(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.Client:
        client = httpx.Client(transport=httpx.MockTransport(handler))
        clients.append(client)
        return client

    yield _build
    for client in clients:
        client.close()
