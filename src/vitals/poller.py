"""Polling scheduler for vitals."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

from vitals.client import DEFAULT_BASE_URL, DEFAULT_TIMEOUT, MetricsClient
from vitals.history import MAX_SAMPLES, MetricHistory
from vitals.models import EMPTY_SNAPSHOT, MetricSnapshot, PollOutcome, Source, Status
from vitals.normalize import TOP_PROCESSES, normalize_snapshot

logger = logging.getLogger(__name__)

Fetcher = Callable[[str], Awaitable[Any]]
UpdateCallback = Callable[["MetricsPoller"], None]

MIN_POLL_RATE = 0.1


class MetricsPoller:
    """
    Periodically fetches all metric sources and keeps the latest snapshot.

    Runs as tasks on the current asyncio loop. Every tick fans out one
    concurrent fetch per source and waits for all of them to settle; a
    failing or slow source only blanks its own fields. At most one cycle
    is in flight: a tick that fires while the previous cycle is still
    outstanding is dropped.

    The snapshot, status and history are only written by this class, and
    only while it is running, so results that settle after ``stop()`` are
    discarded.
    """

    def __init__(
        self,
        fetch: Fetcher | None = None,
        *,
        base_url: str = DEFAULT_BASE_URL,
        poll_rate: float = 1.0,
        fetch_timeout: float = DEFAULT_TIMEOUT,
        top_count: int = TOP_PROCESSES,
        max_samples: int = MAX_SAMPLES,
        on_update: UpdateCallback | None = None,
    ) -> None:
        """
        Initialize the MetricsPoller.

        Args:
            fetch: Coroutine function returning the decoded body of an
                endpoint. Defaults to an HTTP client rooted at ``base_url``.
            base_url: Endpoint root used when ``fetch`` is not given.
            poll_rate: Seconds between ticks.
            fetch_timeout: Per-source timeout in seconds.
            top_count: How many processes the snapshot keeps.
            max_samples: Capacity of each history buffer.
            on_update: Called with the poller after every settled cycle.
        """
        self._client: MetricsClient | None = None
        if fetch is None:
            self._client = MetricsClient(base_url, timeout=fetch_timeout)
            fetch = self._client.fetch
        self._fetch = fetch
        self._poll_rate = max(MIN_POLL_RATE, poll_rate)
        self._fetch_timeout = fetch_timeout
        self._top_count = top_count
        self._on_update = on_update

        self._history = MetricHistory(max_samples)
        self._snapshot: MetricSnapshot = EMPTY_SNAPSHOT
        self._outcome: PollOutcome | None = None
        self._status = Status.CHECKING

        self._active = False
        self._timer: asyncio.Task[None] | None = None
        self._cycle: asyncio.Task[None] | None = None
        self._cycles_completed = 0
        self._ticks_dropped = 0

    @property
    def poll_rate(self) -> float:
        """Get the current poll rate."""
        return self._poll_rate

    @poll_rate.setter
    def poll_rate(self, value: float) -> None:
        """Set the poll rate, taking effect after the current wait."""
        self._poll_rate = max(MIN_POLL_RATE, value)

    @property
    def top_count(self) -> int:
        """Get how many processes each snapshot keeps."""
        return self._top_count

    @property
    def is_running(self) -> bool:
        """Check if the poller is ticking."""
        return self._active and self._timer is not None and not self._timer.done()

    @property
    def in_flight(self) -> bool:
        """Check if a poll cycle is outstanding."""
        return self._cycle is not None and not self._cycle.done()

    @property
    def snapshot(self) -> MetricSnapshot:
        """Get the latest settled snapshot."""
        return self._snapshot

    @property
    def outcome(self) -> PollOutcome | None:
        """Get which sources answered in the latest cycle."""
        return self._outcome

    @property
    def status(self) -> Status:
        """Get the connection status."""
        return self._status

    @property
    def history(self) -> MetricHistory:
        """Get the rolling per-metric history."""
        return self._history

    @property
    def cycles_completed(self) -> int:
        return self._cycles_completed

    @property
    def ticks_dropped(self) -> int:
        return self._ticks_dropped

    def start(self) -> None:
        """Start ticking on the running loop; the first tick fires immediately."""
        if self.is_running:
            return
        self._active = True
        self._timer = asyncio.create_task(self._tick_loop(), name="vitals-poller")

    async def stop(self) -> None:
        """Cancel the timer and any in-flight fetches, and close the client."""
        self._active = False
        tasks = [task for task in (self._timer, self._cycle) if task is not None]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._timer = None
        self._cycle = None
        if self._client is not None:
            await self._client.close()

    def tick(self) -> bool:
        """
        Begin a poll cycle unless one is already outstanding.

        Returns:
            True if a cycle was started, False if the tick was dropped.
        """
        if not self._active:
            return False
        if self.in_flight:
            self._ticks_dropped += 1
            logger.debug("tick dropped, previous cycle still in flight", extra={"event": "tick_dropped"})
            return False
        self._cycle = asyncio.create_task(self._run_cycle(), name="vitals-cycle")
        self._cycle.add_done_callback(self._cycle_done)
        return True

    def _cycle_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("poll cycle failed", exc_info=exc, extra={"event": "cycle_failed"})

    async def _tick_loop(self) -> None:
        while self._active:
            self.tick()
            await asyncio.sleep(self._poll_rate)

    async def _fetch_source(self, source: Source) -> Any:
        return await asyncio.wait_for(self._fetch(source.value), timeout=self._fetch_timeout)

    async def _run_cycle(self) -> None:
        sources = list(Source)
        results = await asyncio.gather(
            *(self._fetch_source(source) for source in sources),
            return_exceptions=True,
        )

        raw: dict[Source, Any] = {}
        for source, result in zip(sources, results):
            if isinstance(result, BaseException):
                logger.debug(
                    "source %s unavailable: %r",
                    source.value,
                    result,
                    extra={"event": "source_unavailable", "source": source.value},
                )
                raw[source] = None
            else:
                raw[source] = result

        if not self._active:
            return

        snapshot, outcome = normalize_snapshot(
            raw,
            top_count=self._top_count,
            captured_at=datetime.now(timezone.utc),
        )
        self._apply(snapshot, outcome)

    def _apply(self, snapshot: MetricSnapshot, outcome: PollOutcome) -> None:
        if outcome.status is not self._status:
            logger.info(
                "metrics source %s (%d/%d sources)",
                outcome.status.value,
                len(outcome.succeeded),
                len(Source),
                extra={"event": "status_changed", "status": outcome.status.value},
            )

        self._snapshot = snapshot
        self._outcome = outcome
        self._status = outcome.status
        self._history.record(snapshot)
        self._cycles_completed += 1

        if self._on_update is not None:
            try:
                self._on_update(self)
            except Exception:
                logger.exception("update callback failed")
