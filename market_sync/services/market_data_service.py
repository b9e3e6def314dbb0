"""Fetch orchestrator: cached, single-flight and bulk-preloaded market data."""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from market_sync.models.market_data import (
    DEFAULT_INTERVAL,
    INTERVALS,
    Asset,
    FailedLoad,
    Interval,
    RemoteFailure,
    Series,
)
from market_sync.services.coingecko_client import CoinGeckoClient
from market_sync.services.market_data_cache import MarketDataCache
from market_sync.services.progress import ProgressDispatcher, ProgressSink
from market_sync.services.retry_policy import RetryPolicy
from market_sync.utils.config import Config, SyncConfig
from market_sync.utils.sync_journal import (
    FETCH_COMPLETE,
    LOAD_FAILED,
    PRELOAD_COMPLETE,
    PRELOAD_START,
    SyncJournal,
)
from market_sync.utils.logger import StructuredLogger
from market_sync.utils.trace_context import run_in_context, sync_trace


class TaskState(str, Enum):
    """Lifecycle of one (asset, interval) preload task."""

    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    PERMANENTLY_FAILED = "permanently_failed"


@dataclass
class FetchTask:
    """One preload work item."""

    asset_id: str
    asset_name: str
    interval: Interval
    state: TaskState = TaskState.PENDING
    attempts: int = 0


@dataclass
class FetchResult:
    """Outcome of a single unretried fetch for a task."""

    task: FetchTask
    series: Series | None
    success: bool


@dataclass
class PreloadReport:
    """Summary of one preload pass."""

    total_tasks: int = 0
    succeeded: int = 0
    failed: int = 0
    elapsed_ms: float = 0.0
    cancelled: bool = False
    failed_loads: list[FailedLoad] = field(default_factory=list)
    trace_id: str | None = None


class MarketDataService:
    """
    Public coordinator between the provider client, the cache and the UI.

    Reads run on the caller's thread and block for the network call and any
    retry waits. ``preload_all`` fans out over a thread pool and joins before
    each recovery phase. Remote failures never raise; they surface as empty
    results, log entries and the failed-load record.
    """

    def __init__(
        self,
        client: CoinGeckoClient,
        cache: MarketDataCache,
        sync_config: SyncConfig | None = None,
        journal: SyncJournal | None = None,
    ):
        """
        Initialize the service.

        Args:
            client: Provider client used for every outbound call
            cache: Cache shared by all reads and the preload
            sync_config: Retry, batching and concurrency settings
            journal: Optional journal for fetch and preload events

        Raises:
            ValueError: If client or cache is None
        """
        if client is None:
            raise ValueError("client cannot be None")
        if cache is None:
            raise ValueError("cache cannot be None")

        self.client = client
        self.cache = cache
        self.config = sync_config or SyncConfig()
        self.journal = journal
        self.logger = StructuredLogger("MarketDataService")

        self._cancel_event = threading.Event()
        self.retry_policy = RetryPolicy(
            delays=self.config.retry_delays,
            cancel_event=self._cancel_event,
            journal=journal,
        )
        self._ranked_list_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._failed_loads: list[FailedLoad] = []
        self._interval_load_counts: dict[str, int] = {}
        self._dispatcher = ProgressDispatcher()

    @classmethod
    def from_config(cls, config: Config, journal: SyncJournal | None = None) -> "MarketDataService":
        """Build a service with a fresh client and cache from a Config."""
        return cls(
            client=CoinGeckoClient(config.provider),
            cache=MarketDataCache(),
            sync_config=config.sync,
            journal=journal,
        )

    # Ranked list

    def get_ranked_list(self) -> list[Asset]:
        """
        Return the ranked asset list, fetching it once on a cache miss.

        Concurrent callers on a miss queue on one lock; the first re-checks
        the cache and fetches, the rest find the cached snapshot.

        Returns:
            Ranked assets; empty if the provider could not be reached
        """
        assets = self.cache.get_ranked_list()
        if assets:
            self.logger.debug("Returning ranked list from cache", context={"count": len(assets)})
            return assets

        with self._ranked_list_lock:
            assets = self.cache.get_ranked_list()
            if assets:
                self.logger.debug(
                    "Returning ranked list from cache after waiting",
                    context={"count": len(assets)},
                )
                return assets

            limit = self.config.ranked_list_limit
            self.logger.info("Fetching ranked list from provider", context={"limit": limit})
            assets = self.retry_policy.execute(
                lambda: self._timed_call(
                    "ranked_list", lambda: self.client.fetch_ranked_list(limit), {"limit": limit}
                ),
                default=list,
                description="ranked list fetch",
            )

            if assets:
                self.cache.set_ranked_list(assets)
                self.logger.info("Cached ranked list", context={"count": len(assets)})
            else:
                self.logger.warning("Ranked list unavailable; nothing cached")

            return list(assets)

    # Historical series

    def has_series(self, asset_id: str, interval: str) -> bool:
        if not asset_id or not asset_id.strip() or not interval or not interval.strip():
            return False
        return self.cache.has_series(asset_id, interval)

    def get_series(self, asset_id: str, interval: str | None = None) -> Series:
        """
        Return the history of an asset for a window, fetching it on a cache miss.

        Args:
            asset_id: Provider asset id
            interval: Window selector; blank defaults to "1"

        Returns:
            The series; empty for a blank id or when the provider failed
        """
        if not asset_id or not asset_id.strip():
            return Series()
        if not interval or not interval.strip():
            interval = DEFAULT_INTERVAL.selector

        if self.cache.has_series(asset_id, interval):
            return self.cache.get_series(asset_id, interval)

        self.logger.info(
            "Loading series from provider", context={"asset_id": asset_id, "interval": interval}
        )
        series = self.retry_policy.execute(
            lambda: self._fetch_series_once(asset_id, interval),
            default=Series,
            description=f"series fetch for {asset_id} ({interval})",
        )

        if not series.is_empty:
            self.cache.put_series(asset_id, interval, series)
            self.logger.info(
                "Loaded and cached series",
                context={"asset_id": asset_id, "interval": interval, "points": len(series)},
            )
        else:
            self.logger.warning(
                "Series unavailable", context={"asset_id": asset_id, "interval": interval}
            )

        return series

    # Progress

    def set_progress_sink(self, sink: ProgressSink | None) -> None:
        self._dispatcher.sink = sink

    def flush_notifications(self, timeout: float | None = None) -> bool:
        """Wait until queued progress notifications have been delivered."""
        return self._dispatcher.flush(timeout)

    # Preload

    def preload_all(self) -> PreloadReport:
        """
        Fetch every (asset, interval) series in parallel, then recover failures in batches.

        Returns:
            PreloadReport summarizing the pass
        """
        with sync_trace() as trace_id:
            report = self._run_preload()
        report.trace_id = trace_id
        return report

    def _run_preload(self) -> PreloadReport:
        start = time.monotonic()
        self._record(PRELOAD_START, "Preload started")

        assets = self.get_ranked_list()
        if not assets:
            self.logger.warning("Preload skipped: no ranked assets available")
            report = PreloadReport(cancelled=self._cancel_event.is_set())
            self._record(PRELOAD_COMPLETE, "Preload skipped", {"total_tasks": 0})
            return report

        total_assets = len(assets)
        with self._state_lock:
            self._interval_load_counts = {interval.display_name: 0 for interval in INTERVALS}

        tasks = [
            FetchTask(asset_id=asset.id, asset_name=asset.name, interval=interval)
            for asset in assets
            for interval in INTERVALS
        ]
        self.logger.info(
            "Starting parallel preload",
            context={"assets": total_assets, "tasks": len(tasks), "max_workers": self.config.max_workers},
        )

        results = self._run_tasks(tasks, max_workers=min(self.config.max_workers, len(tasks)))
        pending = self._process_results(results)

        self.logger.info(
            "Parallel phase complete",
            context={
                "elapsed_ms": round((time.monotonic() - start) * 1000, 1),
                "succeeded": len(tasks) - len(pending),
                "total": len(tasks),
            },
        )

        completed: set[str] = set()
        self._notify_completed_intervals(total_assets, completed)

        if pending:
            self.logger.info("Retrying failed calls in batches", context={"failed": len(pending)})
            pending = self._recover(pending, total_assets, completed)

        cancelled = self._cancel_event.is_set()
        permanent = self._record_permanent_failures(pending, cancelled)

        for interval in INTERVALS:
            if interval.display_name not in completed:
                self._dispatcher.post_interval_ready(interval.display_name, False)

        report = PreloadReport(
            total_tasks=len(tasks),
            succeeded=len(tasks) - len(pending),
            failed=len(pending),
            elapsed_ms=round((time.monotonic() - start) * 1000, 1),
            cancelled=cancelled,
            failed_loads=permanent,
        )
        self._record(
            PRELOAD_COMPLETE,
            "Preload complete",
            {
                "total_tasks": report.total_tasks,
                "succeeded": report.succeeded,
                "failed": report.failed,
                "cancelled": cancelled,
            },
            duration_ms=report.elapsed_ms,
        )
        self.logger.info(
            "All data preloading complete",
            context={
                "succeeded": report.succeeded,
                "failed": report.failed,
                "elapsed_ms": report.elapsed_ms,
                "cancelled": cancelled,
            },
        )
        return report

    def _run_tasks(self, tasks: list[FetchTask], max_workers: int) -> list[FetchResult]:
        """
        Run each task's unretried fetch concurrently and join them all.

        An interrupt while joining (KeyboardInterrupt, SystemExit) cancels the
        service before propagating, so queued tasks are dropped and the pool
        only waits for fetches already in flight.
        """
        executor = ThreadPoolExecutor(max_workers=max(1, max_workers), thread_name_prefix="preload")
        try:
            futures = [executor.submit(run_in_context(self._execute_task), task) for task in tasks]
            return [future.result() for future in futures]
        except BaseException:
            self._cancel_event.set()
            raise
        finally:
            executor.shutdown(wait=True, cancel_futures=True)

    def _execute_task(self, task: FetchTask) -> FetchResult:
        if self._cancel_event.is_set():
            task.state = TaskState.FAILED
            return FetchResult(task=task, series=None, success=False)

        task.state = TaskState.IN_FLIGHT
        task.attempts += 1
        try:
            outcome = self._fetch_series_once(task.asset_id, task.interval.selector)
        except Exception as e:
            self.logger.error(
                f"Error fetching {task.interval.display_name} for {task.asset_name}",
                context={"asset_id": task.asset_id, "interval": task.interval.selector},
                exception=e,
            )
            task.state = TaskState.FAILED
            return FetchResult(task=task, series=None, success=False)

        success = isinstance(outcome, Series) and not outcome.is_empty
        task.state = TaskState.SUCCEEDED if success else TaskState.FAILED
        return FetchResult(task=task, series=outcome if success else None, success=success)

    def _process_results(self, results: list[FetchResult]) -> list[FetchTask]:
        """
        Write successes through to the cache and notify; return the failed tasks.

        Runs on the preload thread after the group has been joined.
        """
        failed = []
        for result in results:
            task = result.task
            if not result.success:
                self.logger.debug(
                    "Preload fetch failed, will retry",
                    context={"asset_id": task.asset_id, "interval": task.interval.display_name},
                )
                failed.append(task)
                continue

            self.cache.put_series(task.asset_id, task.interval.selector, result.series)
            with self._state_lock:
                name = task.interval.display_name
                self._interval_load_counts[name] = self._interval_load_counts.get(name, 0) + 1
            self.logger.debug(
                "Preload fetch succeeded",
                context={"asset_id": task.asset_id, "interval": task.interval.display_name},
            )

            if task.interval.selector == DEFAULT_INTERVAL.selector:
                self._dispatcher.post_asset_ready(task.asset_id, True)
        return failed

    def _notify_completed_intervals(self, total_assets: int, completed: set[str]) -> None:
        """Notify once for each interval whose every asset has been loaded."""
        with self._state_lock:
            counts = dict(self._interval_load_counts)
        for interval in INTERVALS:
            name = interval.display_name
            if name not in completed and counts.get(name, 0) >= total_assets:
                completed.add(name)
                self.logger.info("Interval fully loaded", context={"interval": name})
                self._dispatcher.post_interval_ready(name, True)

    def _recover(
        self, pending: list[FetchTask], total_assets: int, completed: set[str]
    ) -> list[FetchTask]:
        """
        Retry failed tasks in bounded rounds of fixed-size concurrent batches.

        Returns:
            Tasks still failing after the last round (or at cancellation)
        """
        remaining = pending
        max_rounds = self.config.max_recovery_rounds
        batch_size = max(1, self.config.batch_size)

        for round_number in range(1, max_rounds + 1):
            if not remaining or self._cancel_event.is_set():
                break

            self.logger.info(
                f"Retry attempt {round_number}/{max_rounds}",
                context={"tasks": len(remaining), "batch_size": batch_size},
            )
            still_failed: list[FetchTask] = []

            for offset in range(0, len(remaining), batch_size):
                batch = remaining[offset : offset + batch_size]
                for task in batch:
                    task.state = TaskState.PENDING

                results = self._run_tasks(batch, max_workers=len(batch))
                still_failed.extend(self._process_results(results))
                self._notify_completed_intervals(total_assets, completed)

                rest = remaining[offset + batch_size :]
                if rest and self._cancel_event.wait(self.config.batch_delay):
                    self.logger.info("Recovery cancelled between batches")
                    return still_failed + rest

            remaining = still_failed
            if remaining and round_number < max_rounds:
                self.logger.info(
                    "Waiting before next retry attempt",
                    context={"delay_seconds": self.config.round_delay, "remaining": len(remaining)},
                )
                if self._cancel_event.wait(self.config.round_delay):
                    self.logger.info("Recovery cancelled between rounds")
                    break

        return remaining

    def _record_permanent_failures(self, tasks: list[FetchTask], cancelled: bool) -> list[FailedLoad]:
        reason = "cancelled" if cancelled else "exhausted"
        failures = []
        for task in tasks:
            task.state = TaskState.PERMANENTLY_FAILED
            failures.append(
                FailedLoad(
                    asset_id=task.asset_id,
                    asset_name=task.asset_name,
                    selector=task.interval.selector,
                    interval_name=task.interval.display_name,
                    reason=reason,
                )
            )
            self._record(
                LOAD_FAILED,
                f"{task.interval.display_name} for {task.asset_name} failed permanently",
                {"asset_id": task.asset_id, "interval": task.interval.selector, "reason": reason},
            )
            if task.interval.selector == DEFAULT_INTERVAL.selector:
                self._dispatcher.post_asset_ready(task.asset_id, False)

        if failures:
            with self._state_lock:
                self._failed_loads.extend(failures)
            self.logger.error(
                "Tasks still failed after all retries",
                context={"count": len(failures), "reason": reason},
            )
        return failures

    # Diagnostics and lifecycle

    def failed_load_count(self) -> int:
        with self._state_lock:
            return len(self._failed_loads)

    def failed_loads(self) -> list[FailedLoad]:
        with self._state_lock:
            return list(self._failed_loads)

    def interval_load_counts(self) -> dict[str, int]:
        with self._state_lock:
            return dict(self._interval_load_counts)

    def clear_cache(self) -> None:
        """Drop all cached data and failure records, and re-arm after a cancel."""
        self.cache.clear()
        with self._state_lock:
            self._failed_loads.clear()
            self._interval_load_counts.clear()
        self._cancel_event.clear()
        self.logger.info("Cache cleared")

    def cancel(self) -> None:
        """Abort pending waits and stop outstanding preload work."""
        self._cancel_event.set()
        self.logger.info("Cancellation requested")

    def resume(self) -> None:
        """Accept provider calls again after ``cancel`` without dropping cached data."""
        self._cancel_event.clear()
        self.logger.info("Cancellation lifted")

    @property
    def is_cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def close(self) -> None:
        self._dispatcher.shutdown(wait=True)

    # Internal helpers

    def _fetch_series_once(self, asset_id: str, interval: str) -> Series | RemoteFailure:
        return self._timed_call(
            "series",
            lambda: self.client.fetch_series(asset_id, interval),
            {"asset_id": asset_id, "interval": interval},
        )

    def _timed_call(self, endpoint: str, call, context: dict[str, Any]):
        """Run one provider call and journal its outcome and duration."""
        start = time.monotonic()
        result = call()
        duration_ms = round((time.monotonic() - start) * 1000, 3)

        event_context = {"endpoint": endpoint, **context}
        if isinstance(result, RemoteFailure):
            event_context.update(
                status="failed", failure=result.kind.value, status_code=result.status_code
            )
            self.logger.debug(
                "Provider call failed", context={**event_context, "error": result.message}
            )
        else:
            event_context["status"] = "success"
        self._record(FETCH_COMPLETE, f"{endpoint} fetch finished", event_context, duration_ms)
        return result

    def _record(
        self,
        event_type: str,
        message: str,
        context: dict[str, Any] | None = None,
        duration_ms: float | None = None,
    ) -> None:
        if self.journal:
            self.journal.record(event_type, "market_data_service", message, context, duration_ms)
