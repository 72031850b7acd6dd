"""Processing engine building blocks."""

from .dedup import CachedItem, GlobalDeduplicationCache
from .guard import RunGuard
from .history import BatchId, ExecutionStatus, ExecutionTracker, ProcessingExecution
from .items import MediaItem, MediaKind
from .providers import FetcherRegistry, ProviderFetcher, build_registry
from .requester import DownstreamRequester, FailedRequest, RequestOutcome
from .thread_pool import ThreadPoolManager

__all__ = [
    "BatchId",
    "CachedItem",
    "DownstreamRequester",
    "ExecutionStatus",
    "ExecutionTracker",
    "FailedRequest",
    "FetcherRegistry",
    "GlobalDeduplicationCache",
    "MediaItem",
    "MediaKind",
    "ProcessingExecution",
    "ProviderFetcher",
    "RequestOutcome",
    "RunGuard",
    "ThreadPoolManager",
    "build_registry",
]
