"""Provider fetcher strategy interface and shared HTTP helpers."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from typing import Any, Iterable

import httpx
import structlog

from ...config import ProviderConfig, ProviderKind
from ...errors import (
    MalformedUpstreamResponse,
    NoFetcherForProvider,
    ProviderNotConfigured,
    UpstreamFetchFailed,
)
from ..items import MediaItem, MediaKind

# Status codes worth a second attempt inside the same run.
RETRYABLE_STATUS = {429, 500, 502, 503, 504}


def coerce_external_id(value: Any) -> int | None:
    """Return a positive integer id, or ``None`` when the record is not requestable."""

    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        number = int(value.strip())
        return number if number > 0 else None
    return None


def coerce_year(value: Any) -> int | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


class ProviderFetcher(ABC):
    """Fetch and normalise one provider's list/chart items."""

    kinds: tuple[ProviderKind, ...] = ()
    display_name = "Provider"
    requires_credentials = True

    def __init__(
        self,
        client: httpx.Client | None = None,
        timeout: float = 30.0,
        attempts: int = 2,
        retry_delay: float = 1.0,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.Client(follow_redirects=True, timeout=timeout)
        self.attempts = max(1, attempts)
        self.retry_delay = retry_delay
        self.logger = logger or structlog.get_logger("listsync").bind(
            component="provider", provider=self.display_name
        )

    def supports(self, kind: ProviderKind) -> bool:
        return kind in self.kinds

    @abstractmethod
    def fetch_items(
        self,
        source_url: str,
        max_items: int,
        credentials: ProviderConfig | None,
    ) -> list[MediaItem]:
        """Return at most ``max_items`` normalised items for ``source_url``."""

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    # ------------------------------------------------------------------
    def _require_credentials(self, credentials: ProviderConfig | None, kind: ProviderKind) -> str:
        if credentials is None:
            raise ProviderNotConfigured(kind.credential_kind.value)
        return credentials.api_key

    def _get_json(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        log_params: dict[str, Any] | None = None,
    ) -> Any:
        """GET ``url`` and decode JSON, mapping failures onto the fetch taxonomy.

        ``log_params`` is what gets logged in place of ``params`` so secrets stay
        out of log files.
        """

        return self._request_json("GET", url, params=params, headers=headers, log_params=log_params)

    def _request_json(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        json: Any = None,
        log_params: dict[str, Any] | None = None,
    ) -> Any:
        attempt = 0
        while True:
            attempt += 1
            self.logger.debug(
                "provider_request", method=method, url=url, params=log_params or {}, attempt=attempt
            )
            try:
                response = self._client.request(method, url, params=params, headers=headers, json=json)
            except (httpx.HTTPError, httpx.InvalidURL) as exc:
                error = UpstreamFetchFailed(
                    self.display_name, f"{self.display_name} API unreachable: {exc}"
                )
                retryable = not isinstance(exc, httpx.InvalidURL)
            else:
                if response.is_success:
                    try:
                        return response.json()
                    except ValueError as exc:
                        raise MalformedUpstreamResponse(
                            self.display_name,
                            f"{self.display_name} API returned invalid JSON: {exc}",
                        ) from exc
                error = UpstreamFetchFailed(
                    self.display_name,
                    f"{self.display_name} API error: {response.status_code} {response.reason_phrase}".rstrip(),
                    status_code=response.status_code,
                )
                retryable = response.status_code in RETRYABLE_STATUS
            if not retryable or attempt >= self.attempts:
                self.logger.error("provider_request_failed", url=url, error=str(error))
                raise error
            self.logger.warning(
                "provider_request_retry", url=url, attempt=attempt, error=str(error)
            )
            time.sleep(self.retry_delay)

    def _expect_list(self, payload: Any) -> list[Any]:
        if not isinstance(payload, list):
            raise MalformedUpstreamResponse(
                self.display_name,
                f"{self.display_name} API returned {type(payload).__name__}, expected a list",
            )
        return payload

    def _build_items(
        self, records: Iterable[tuple[Any, Any, Any, MediaKind]], max_items: int
    ) -> list[MediaItem]:
        """Normalise ``(external_id, title, year, kind)`` tuples, dropping records without an id."""

        items: list[MediaItem] = []
        skipped = 0
        for raw_id, title, year, kind in records:
            external_id = coerce_external_id(raw_id)
            if external_id is None:
                skipped += 1
                continue
            items.append(
                MediaItem(
                    external_id=external_id,
                    title=str(title or f"#{external_id}"),
                    media_kind=kind,
                    year=coerce_year(year),
                )
            )
            if len(items) >= max_items:
                break
        if skipped:
            self.logger.warning("provider_items_skipped", skipped=skipped, reason="missing_external_id")
        return items


class FetcherRegistry:
    """Pick the fetcher whose ``supports`` claims a provider kind."""

    def __init__(self, fetchers: Iterable[ProviderFetcher]) -> None:
        self.fetchers = list(fetchers)
        self.owned_client: httpx.Client | None = None

    def find(self, kind: ProviderKind) -> ProviderFetcher:
        for fetcher in self.fetchers:
            if fetcher.supports(kind):
                return fetcher
        raise NoFetcherForProvider(kind.value)

    def close(self) -> None:
        for fetcher in self.fetchers:
            fetcher.close()
        if self.owned_client is not None:
            self.owned_client.close()
            self.owned_client = None


__all__ = [
    "FetcherRegistry",
    "ProviderFetcher",
    "RETRYABLE_STATUS",
    "coerce_external_id",
    "coerce_year",
]
