"""Orchestrator wiring fetch, global dedup, downstream requests and execution history."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable, Iterable

import structlog

from .config import (
    ConfigRepository,
    DownstreamConfig,
    MediaListConfig,
    ProviderConfig,
    TriggerKind,
)
from .engine import (
    BatchId,
    DownstreamRequester,
    ExecutionStatus,
    ExecutionTracker,
    FetcherRegistry,
    GlobalDeduplicationCache,
    MediaItem,
    ProcessingExecution,
    RequestOutcome,
    RunGuard,
)
from .errors import DownstreamNotConfigured, ListNotFound, ProcessingInProgress, ProviderNotConfigured
from .logging_conf import configure_logging, list_logger

RequesterFactory = Callable[[DownstreamConfig], DownstreamRequester]


@dataclass(slots=True)
class BatchSummary:
    batch_id: str
    processed_lists: int = 0
    total_items_found: int = 0
    global_unique_items: int = 0
    skipped_cached: int = 0
    items_requested: int = 0
    items_failed: int = 0
    executions: list[ProcessingExecution] = field(default_factory=list)

    @property
    def failed_lists(self) -> int:
        return sum(1 for execution in self.executions if execution.status is ExecutionStatus.ERROR)

    def as_dict(self) -> dict[str, object]:
        return {
            "batch_id": self.batch_id,
            "processed_lists": self.processed_lists,
            "total_items_found": self.total_items_found,
            "global_unique_items": self.global_unique_items,
            "skipped_cached": self.skipped_cached,
            "items_requested": self.items_requested,
            "items_failed": self.items_failed,
            "executions": [execution.as_dict() for execution in self.executions],
        }


@dataclass(slots=True)
class _FetchedList:
    media_list: MediaListConfig
    execution: ProcessingExecution
    items: list[MediaItem]


class Orchestrator:
    """Run one list or a whole batch of lists through the request pipeline."""

    def __init__(
        self,
        repository: ConfigRepository,
        cache: GlobalDeduplicationCache,
        tracker: ExecutionTracker,
        fetchers: FetcherRegistry,
        requester_factory: RequesterFactory = DownstreamRequester,
        guard: RunGuard | None = None,
        fetch_delay: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.repository = repository
        self.cache = cache
        self.tracker = tracker
        self.fetchers = fetchers
        self.requester_factory = requester_factory
        self.guard = guard or RunGuard()
        if fetch_delay is None:
            fetch_delay = repository.load_global_config().batch_fetch_delay
        self.fetch_delay = fetch_delay
        self._sleep = sleep
        self.logger = configure_logging().bind(component="orchestrator")

    # ------------------------------------------------------------------
    # Single list
    # ------------------------------------------------------------------
    def process_list(
        self,
        list_id: int,
        trigger: TriggerKind = TriggerKind.MANUAL,
        owner_id: int | None = None,
        batch_id: BatchId | str | None = None,
    ) -> ProcessingExecution:
        """Process one list; ``enabled`` is ignored because it only gates scheduling."""

        media_list = self.repository.get_list(list_id, owner_id)
        if media_list is None:
            raise ListNotFound(list_id)
        with self.guard.hold(RunGuard.list_key(list_id)):
            return self._process_list(media_list, trigger, batch_id or BatchId.generate(trigger))

    def _process_list(
        self,
        media_list: MediaListConfig,
        trigger: TriggerKind,
        batch_id: BatchId | str,
    ) -> ProcessingExecution:
        log = list_logger(media_list.id).bind(batch_id=str(batch_id), trigger=trigger.value)
        execution = self.tracker.start(media_list.id, batch_id, trigger)
        log.info("list_processing_started", execution_id=execution.id, provider=media_list.provider.value)
        try:
            downstream = self._downstream_config(media_list.owner_id)
            credentials = self._provider_config(media_list)
            fetched = self._fetch(media_list, credentials)
            unseen = self.cache.filter_unseen(fetched)
            log.info("list_items_filtered", found=len(fetched), unseen=len(unseen))
            outcome = self._request(downstream, unseen)
            if outcome.succeeded:
                self.cache.record_accepted(media_list.id, outcome.succeeded)
            for failure in outcome.failed:
                log.warning(
                    "list_item_request_failed",
                    external_id=failure.item.external_id,
                    title=failure.item.title,
                    reason=failure.reason,
                )
        except Exception as exc:
            log.error("list_processing_failed", execution_id=execution.id, error=str(exc))
            self.tracker.mark_error(execution, str(exc))
            raise
        completed = self.tracker.mark_success(
            execution,
            items_found=len(fetched),
            items_requested=len(outcome.succeeded),
            items_failed=len(outcome.failed),
        )
        log.info(
            "list_processing_completed",
            execution_id=completed.id,
            found=completed.items_found,
            requested=completed.items_requested,
            failed=completed.items_failed,
        )
        return completed

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------
    def process_batch(
        self,
        trigger: TriggerKind = TriggerKind.MANUAL,
        owner_id: int | None = None,
    ) -> BatchSummary:
        """Process every enabled list of ``owner_id`` with one merged request pass."""

        if owner_id is None:
            owner_id = self.repository.load_global_config().default_owner_id
        with self.guard.hold(RunGuard.batch_key(owner_id)):
            return self._process_batch(trigger, owner_id)

    def _process_batch(self, trigger: TriggerKind, owner_id: int) -> BatchSummary:
        lists = [item for item in self.repository.list_lists(owner_id) if item.enabled]
        batch_id = BatchId.generate(trigger)
        log = self.logger.bind(batch_id=str(batch_id), owner_id=owner_id, trigger=trigger.value)
        summary = BatchSummary(batch_id=str(batch_id))
        if not lists:
            log.info("batch_skipped", reason="no_enabled_lists")
            return summary
        log.info("batch_started", lists=len(lists))

        fetched, failed_executions = self._fetch_phase(lists, batch_id, trigger)
        summary.processed_lists = len(lists)
        summary.total_items_found = sum(len(entry.items) for entry in fetched)
        try:
            merged, first_seen = self._merge(fetched)
            summary.global_unique_items = len(merged)
            unseen = self.cache.filter_unseen(merged)
            summary.skipped_cached = len(merged) - len(unseen)
            log.info(
                "batch_items_merged",
                found=summary.total_items_found,
                unique=summary.global_unique_items,
                cached=summary.skipped_cached,
            )
            if unseen:
                outcome = self._request(self._downstream_config(owner_id), unseen)
            else:
                outcome = RequestOutcome()
            self._record_batch(outcome, first_seen)
            finalized = self._finalize(fetched, outcome)
        except Exception as exc:
            log.error("batch_failed", error=str(exc))
            for entry in fetched:
                current = self.tracker.get(entry.execution.id)
                if current is not None and current.status is ExecutionStatus.RUNNING:
                    self.tracker.mark_error(entry.execution, str(exc))
            raise

        summary.items_requested = len(outcome.succeeded)
        summary.items_failed = len(outcome.failed)
        summary.executions = sorted(failed_executions + finalized, key=lambda item: item.id)
        log.info(
            "batch_completed",
            processed=summary.processed_lists,
            requested=summary.items_requested,
            failed=summary.items_failed,
            failed_lists=summary.failed_lists,
        )
        return summary

    def _fetch_phase(
        self,
        lists: list[MediaListConfig],
        batch_id: BatchId,
        trigger: TriggerKind,
    ) -> tuple[list[_FetchedList], list[ProcessingExecution]]:
        fetched: list[_FetchedList] = []
        failed: list[ProcessingExecution] = []
        for index, media_list in enumerate(lists):
            if index and self.fetch_delay > 0:
                self._sleep(self.fetch_delay)
            log = list_logger(media_list.id).bind(batch_id=str(batch_id), trigger=trigger.value)
            execution = self.tracker.start(media_list.id, batch_id, trigger)
            try:
                items = self._fetch(media_list, self._provider_config(media_list))
            except Exception as exc:
                # One list failing to fetch never aborts its siblings.
                log.error("batch_list_fetch_failed", execution_id=execution.id, error=str(exc))
                failed.append(self.tracker.mark_error(execution, str(exc)))
                continue
            log.info("batch_list_fetched", execution_id=execution.id, count=len(items))
            fetched.append(_FetchedList(media_list, execution, items))
        return fetched, failed

    @staticmethod
    def _merge(fetched: Iterable[_FetchedList]) -> tuple[list[MediaItem], dict[int, int]]:
        """Union items by external id keeping the first occurrence, and remember who surfaced it."""

        merged: dict[int, MediaItem] = {}
        first_seen: dict[int, int] = {}
        for entry in fetched:
            for item in entry.items:
                if item.external_id not in merged:
                    merged[item.external_id] = item
                    first_seen[item.external_id] = entry.media_list.id
        return list(merged.values()), first_seen

    def _record_batch(self, outcome: RequestOutcome, first_seen: dict[int, int]) -> None:
        by_list: dict[int, list[MediaItem]] = {}
        for item in outcome.succeeded:
            by_list.setdefault(first_seen[item.external_id], []).append(item)
        for list_id, items in by_list.items():
            inserted = self.cache.record_accepted(list_id, items)
            self.logger.debug("batch_cache_written", list_id=list_id, inserted=inserted)

    def _finalize(self, fetched: Iterable[_FetchedList], outcome: RequestOutcome) -> list[ProcessingExecution]:
        succeeded_ids = outcome.succeeded_ids
        failed_ids = outcome.failed_ids
        finalized: list[ProcessingExecution] = []
        for entry in fetched:
            own_ids = {item.external_id for item in entry.items}
            finalized.append(
                self.tracker.mark_success(
                    entry.execution,
                    items_found=len(entry.items),
                    items_requested=len(own_ids & succeeded_ids),
                    items_failed=len(own_ids & failed_ids),
                )
            )
        return finalized

    # ------------------------------------------------------------------
    # Scheduler entry points (never raise)
    # ------------------------------------------------------------------
    def run_scheduled_list(self, list_id: int) -> None:
        media_list = self.repository.get_list(list_id)
        if media_list is None:
            self.logger.warning("scheduled_list_missing", list_id=list_id)
            return
        try:
            self.process_list(list_id, TriggerKind.SCHEDULED, owner_id=media_list.owner_id)
        except ProcessingInProgress as exc:
            self.logger.warning("scheduled_run_skipped", list_id=list_id, reason=str(exc))
        except Exception as exc:
            self.logger.error("scheduled_list_failed", list_id=list_id, error=str(exc))

    def run_scheduled_batch(self, trigger: TriggerKind = TriggerKind.SCHEDULED) -> list[BatchSummary]:
        summaries: list[BatchSummary] = []
        for owner_id in self.repository.list_owner_ids():
            try:
                summaries.append(self.process_batch(trigger, owner_id))
            except ProcessingInProgress as exc:
                self.logger.warning("scheduled_batch_skipped", owner_id=owner_id, reason=str(exc))
            except Exception as exc:
                self.logger.error("scheduled_batch_failed", owner_id=owner_id, error=str(exc))
        return summaries

    # ------------------------------------------------------------------
    def _downstream_config(self, owner_id: int) -> DownstreamConfig:
        config = self.repository.get_downstream_config(owner_id)
        if config is None:
            raise DownstreamNotConfigured()
        return config

    def _provider_config(self, media_list: MediaListConfig) -> ProviderConfig | None:
        fetcher = self.fetchers.find(media_list.provider)
        credentials = self.repository.get_provider_config(media_list.owner_id, media_list.provider)
        if credentials is None and fetcher.requires_credentials:
            raise ProviderNotConfigured(media_list.provider.credential_kind.value)
        return credentials

    def _fetch(self, media_list: MediaListConfig, credentials: ProviderConfig | None) -> list[MediaItem]:
        fetcher = self.fetchers.find(media_list.provider)
        return fetcher.fetch_items(media_list.url, media_list.max_items, credentials)

    def _request(self, downstream: DownstreamConfig, items: list[MediaItem]) -> RequestOutcome:
        if not items:
            return RequestOutcome()
        requester = self.requester_factory(downstream)
        try:
            return requester.request_items(items)
        finally:
            requester.close()


__all__ = ["BatchSummary", "Orchestrator"]
