"""Progress notifications delivered to the presentation layer."""

from concurrent.futures import ThreadPoolExecutor
from typing import Protocol

from market_sync.utils.logger import StructuredLogger


class ProgressSink(Protocol):
    """Receives data-availability notifications from the sync engine."""

    def on_asset_ready(self, asset_id: str, success: bool) -> None:
        """An asset's default-interval series is ready (or definitively failed)."""

    def on_interval_ready(self, interval_name: str, success: bool) -> None:
        """Every asset's series for an interval is ready (or the interval gave up)."""


class LoggingProgressSink:
    """Sink that writes each notification to the structured log."""

    def __init__(self):
        self.logger = StructuredLogger("ProgressSink")

    def on_asset_ready(self, asset_id: str, success: bool) -> None:
        self.logger.info(
            "Asset data ready" if success else "Asset data unavailable",
            context={"asset_id": asset_id, "success": success},
        )

    def on_interval_ready(self, interval_name: str, success: bool) -> None:
        self.logger.info(
            "Interval data ready" if success else "Interval data incomplete",
            context={"interval": interval_name, "success": success},
        )


class ProgressDispatcher:
    """
    Posts notifications to a sink from a dedicated thread.

    The engine never waits on the sink: ``post_*`` only queues the call.
    Notifications are delivered one at a time in the order they were posted.
    A sink that raises is logged and skipped.
    """

    def __init__(self, sink: ProgressSink | None = None):
        self.sink = sink
        self.logger = StructuredLogger("ProgressDispatcher")
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="progress")

    def post_asset_ready(self, asset_id: str, success: bool) -> None:
        sink = self.sink
        if sink is not None:
            self._submit(sink.on_asset_ready, asset_id, success)

    def post_interval_ready(self, interval_name: str, success: bool) -> None:
        sink = self.sink
        if sink is not None:
            self._submit(sink.on_interval_ready, interval_name, success)

    def _submit(self, callback, *args) -> None:
        try:
            self._executor.submit(self._deliver, callback, *args)
        except RuntimeError:
            # Executor already shut down
            self.logger.warning(
                "Progress notification dropped after shutdown",
                context={"callback": getattr(callback, "__name__", str(callback))},
            )

    def _deliver(self, callback, *args) -> None:
        try:
            callback(*args)
        except Exception as e:
            self.logger.error(
                "Progress sink raised while handling a notification",
                context={"callback": getattr(callback, "__name__", str(callback))},
                exception=e,
            )

    def flush(self, timeout: float | None = None) -> bool:
        """
        Wait until every notification posted so far has been delivered.

        Returns:
            True if the queue drained within the timeout
        """
        try:
            marker = self._executor.submit(lambda: None)
        except RuntimeError:
            return True
        try:
            marker.result(timeout=timeout)
        except TimeoutError:
            return False
        return True

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
