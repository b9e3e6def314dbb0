"""Bounded backoff retry for provider calls."""

import threading
from collections.abc import Callable, Sequence
from typing import TypeVar

from market_sync.models.market_data import RemoteFailure
from market_sync.utils.config import DEFAULT_RETRY_DELAYS
from market_sync.utils.sync_journal import FETCH_RETRY, SyncJournal
from market_sync.utils.logger import StructuredLogger
from market_sync.utils.trace_context import current_trace_id

T = TypeVar("T")


class RetryPolicy:
    """
    Turns a single provider call into a resilient one.

    The call is attempted once plus once per configured delay. Retryable
    failures (network errors, 5xx, 429) wait for the next delay; anything
    else, or the last failure, degrades to the caller's default result.
    """

    def __init__(
        self,
        delays: Sequence[float] | None = None,
        cancel_event: threading.Event | None = None,
        journal: SyncJournal | None = None,
    ):
        """
        Initialize the retry policy.

        Args:
            delays: Seconds to wait before each retry (default 10, 20, 30, 30)
            cancel_event: Event that aborts any pending wait when set
            journal: Optional journal for scheduled retries
        """
        self.delays = tuple(DEFAULT_RETRY_DELAYS if delays is None else delays)
        self.cancel_event = cancel_event if cancel_event is not None else threading.Event()
        self.journal = journal
        self.logger = StructuredLogger("RetryPolicy")

    @property
    def max_attempts(self) -> int:
        return len(self.delays) + 1

    def execute(
        self,
        operation: Callable[[], T | RemoteFailure],
        default: Callable[[], T],
        description: str = "provider call",
    ) -> T:
        """
        Run an operation under the retry policy.

        Args:
            operation: Zero-argument call returning a result or a RemoteFailure
            default: Factory for the result returned when every attempt fails
            description: Human-readable label used in logs

        Returns:
            The first successful result, or ``default()``
        """
        trace_id = current_trace_id()

        for attempt in range(1, self.max_attempts + 1):
            if self.cancel_event.is_set():
                self.logger.info(
                    "Retry loop cancelled", context={"operation": description, "attempt": attempt}
                )
                return default()

            result = operation()
            if not isinstance(result, RemoteFailure):
                return result

            if not result.retryable:
                self.logger.error(
                    f"{description} failed with a non-retryable error",
                    context={
                        "operation": description,
                        "attempt": attempt,
                        "failure": result.kind.value,
                        "status_code": result.status_code,
                        "error": result.message,
                        "trace_id": trace_id,
                    },
                )
                return default()

            if attempt == self.max_attempts:
                self.logger.error(
                    f"{description} failed after all retry attempts",
                    context={
                        "operation": description,
                        "attempts": self.max_attempts,
                        "failure": result.kind.value,
                        "status_code": result.status_code,
                        "error": result.message,
                        "trace_id": trace_id,
                    },
                )
                return default()

            delay = self.delays[attempt - 1]
            self.logger.warning(
                f"{description} failed, retrying in {delay}s",
                context={
                    "operation": description,
                    "attempt": attempt,
                    "next_attempt": attempt + 1,
                    "max_attempts": self.max_attempts,
                    "failure": result.kind.value,
                    "status_code": result.status_code,
                    "retry_delay_seconds": delay,
                    "trace_id": trace_id,
                },
            )
            if self.journal:
                self.journal.record(
                    FETCH_RETRY,
                    "retry_policy",
                    f"{description} failed, retrying in {delay}s",
                    context={
                        "operation": description,
                        "attempt": attempt,
                        "failure": result.kind.value,
                        "retry_delay_seconds": delay,
                    },
                )

            # wait() returns True as soon as the event is set
            if self.cancel_event.wait(delay):
                self.logger.info(
                    "Retry wait interrupted by cancellation",
                    context={"operation": description, "attempt": attempt},
                )
                return default()

        return default()
