"""Error taxonomy shared by the processing pipeline."""

from __future__ import annotations


class ListSyncError(Exception):
    """Base class for every error raised by listsync."""


class ListNotFound(ListSyncError):
    def __init__(self, list_id: int) -> None:
        super().__init__(f"Media list {list_id} not found")
        self.list_id = list_id


class ProviderNotConfigured(ListSyncError):
    def __init__(self, provider: str) -> None:
        super().__init__(
            f"{provider} provider is not configured. Add its API key to the owner settings."
        )
        self.provider = provider


class DownstreamNotConfigured(ListSyncError):
    def __init__(self) -> None:
        super().__init__(
            "Request service is not configured. Add a downstream section to the owner settings."
        )


class NoFetcherForProvider(ListSyncError):
    """No registered fetcher claims the provider kind; this is a wiring bug."""

    def __init__(self, provider: str) -> None:
        super().__init__(f"No fetcher registered for provider: {provider}")
        self.provider = provider


class ProviderFetchError(ListSyncError):
    """Base for failures talking to a catalog provider."""

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(message)
        self.provider = provider


class UpstreamFetchFailed(ProviderFetchError):
    """Provider unreachable or answered with a non-2xx status."""

    def __init__(self, provider: str, message: str, status_code: int | None = None) -> None:
        super().__init__(provider, message)
        self.status_code = status_code


class MalformedUpstreamResponse(ProviderFetchError):
    """Provider answered 2xx but the payload could not be understood."""


class InvalidListUrl(ListSyncError, ValueError):
    def __init__(self, url: str, expected: str) -> None:
        super().__init__(f"Invalid list URL {url!r}. Expected: {expected}")
        self.url = url


class DownstreamRequestFailed(ListSyncError):
    """A single item could not be requested; recorded as data, never propagated."""

    def __init__(self, external_id: int, reason: str) -> None:
        super().__init__(reason)
        self.external_id = external_id
        self.reason = reason


class InvalidStatusTransition(ListSyncError):
    def __init__(self, execution_id: int, current: str, target: str) -> None:
        super().__init__(
            f"Cannot transition execution {execution_id} from '{current}' to '{target}'"
        )


class InvalidBatchId(ListSyncError, ValueError):
    def __init__(self, value: str, reason: str) -> None:
        super().__init__(f"Invalid batch id {value!r}: {reason}")


class InvalidSchedule(ListSyncError, ValueError):
    def __init__(self, expression: str, reason: str) -> None:
        super().__init__(f"Invalid schedule {expression!r}: {reason}")
        self.expression = expression


class ProcessingInProgress(ListSyncError):
    def __init__(self, target: str) -> None:
        super().__init__(f"Processing already in progress for {target}")
        self.target = target


__all__ = [
    "DownstreamNotConfigured",
    "DownstreamRequestFailed",
    "InvalidBatchId",
    "InvalidListUrl",
    "InvalidSchedule",
    "InvalidStatusTransition",
    "ListNotFound",
    "ListSyncError",
    "MalformedUpstreamResponse",
    "NoFetcherForProvider",
    "ProcessingInProgress",
    "ProviderFetchError",
    "ProviderNotConfigured",
    "UpstreamFetchFailed",
]
