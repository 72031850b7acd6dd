"""Submit media items to the downstream request service one at a time."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

import httpx
import structlog

from ..config import DownstreamConfig
from ..errors import DownstreamRequestFailed
from .items import MediaItem, MediaKind

REQUEST_PATH = "/api/v1/request"


@dataclass(slots=True)
class FailedRequest:
    item: MediaItem
    reason: str


@dataclass(slots=True)
class RequestOutcome:
    succeeded: list[MediaItem] = field(default_factory=list)
    failed: list[FailedRequest] = field(default_factory=list)

    @property
    def succeeded_ids(self) -> set[int]:
        return {item.external_id for item in self.succeeded}

    @property
    def failed_ids(self) -> set[int]:
        return {entry.item.external_id for entry in self.failed}


def build_payload(item: MediaItem) -> dict[str, Any]:
    payload: dict[str, Any] = {"mediaType": item.media_kind.value, "mediaId": item.external_id}
    if item.media_kind is MediaKind.TV:
        payload["seasons"] = [1]
    return payload


def _response_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    text = response.text.strip()
    return text or response.reason_phrase or "no response body"


class DownstreamRequester:
    """Classify each submission as succeeded or failed without ever aborting the run."""

    def __init__(
        self,
        config: DownstreamConfig,
        client: httpx.Client | None = None,
        timeout: float = 30.0,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.config = config
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)
        self.logger = logger or structlog.get_logger("listsync").bind(component="requester")

    def __enter__(self) -> "DownstreamRequester":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "X-Api-Key": self.config.api_key,
            "X-Api-User": str(self.config.user_id),
        }

    def request_items(self, items: Iterable[MediaItem]) -> RequestOutcome:
        items = list(items)
        outcome = RequestOutcome()
        self.logger.info("downstream_batch_started", total=len(items))
        for index, item in enumerate(items, start=1):
            self.logger.debug(
                "downstream_item", progress=f"{index}/{len(items)}", title=item.title
            )
            try:
                self._request_one(item)
            except DownstreamRequestFailed as exc:
                outcome.failed.append(FailedRequest(item=item, reason=exc.reason))
            else:
                outcome.succeeded.append(item)
        self.logger.info(
            "downstream_batch_finished",
            succeeded=len(outcome.succeeded),
            failed=len(outcome.failed),
        )
        return outcome

    def _request_one(self, item: MediaItem) -> None:
        url = f"{self.config.url}{REQUEST_PATH}"
        payload = build_payload(item)
        try:
            response = self._client.post(url, json=payload, headers=self.headers)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            self.logger.error(
                "downstream_network_error", external_id=item.external_id, error=str(exc)
            )
            raise DownstreamRequestFailed(item.external_id, f"Network error: {exc}") from exc

        status = response.status_code
        if status in (200, 201):
            try:
                body = response.json()
            except ValueError:
                body = None
            media = body.get("media") if isinstance(body, dict) else None
            if isinstance(media, dict) and media.get("tmdbId") == item.external_id:
                self.logger.info(
                    "downstream_requested",
                    external_id=item.external_id,
                    title=item.title,
                    request_id=body.get("id"),
                )
                return
            self.logger.error(
                "downstream_response_mismatch", external_id=item.external_id, status=status
            )
            raise DownstreamRequestFailed(
                item.external_id, f"Request service did not confirm media {item.external_id}"
            )

        if status == 202:
            # Nothing requestable (e.g. no seasons); cached so it is not retried.
            self.logger.info("downstream_accepted_incomplete", external_id=item.external_id)
            return

        message = _response_message(response)
        if 400 <= status < 500 and "already" in message.lower():
            self.logger.info("downstream_already_requested", external_id=item.external_id)
            return

        event = "downstream_server_error" if status >= 500 else "downstream_rejected"
        self.logger.error(
            event, external_id=item.external_id, status=status, payload=payload, response=message
        )
        raise DownstreamRequestFailed(item.external_id, f"{status}: {message}")


__all__ = [
    "DownstreamRequester",
    "FailedRequest",
    "REQUEST_PATH",
    "RequestOutcome",
    "build_payload",
]
