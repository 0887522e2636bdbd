"""Rolling per-metric sample history for trend rendering."""

from collections import deque
from enum import Enum

from vitals.models import MetricSnapshot

MAX_SAMPLES = 24


class Metric(Enum):
    """Metrics that keep a rolling history."""

    CPU = "cpu"
    MEMORY = "memory"
    DISK = "disk"


class MetricHistory:
    """
    Fixed-capacity FIFO sequences of percentages, one per metric.

    Only non-null samples are stored, so a failed reading leaves a gap in
    time rather than a fake zero in the trend line. The buffers are
    independent: appending to one never touches the others.
    """

    def __init__(self, max_samples: int = MAX_SAMPLES) -> None:
        if max_samples < 1:
            raise ValueError(f"max_samples must be positive, got {max_samples}")
        self._max_samples = max_samples
        self._series: dict[Metric, deque[float]] = {
            metric: deque(maxlen=max_samples) for metric in Metric
        }

    @property
    def max_samples(self) -> int:
        return self._max_samples

    def append(self, metric: Metric | str, value: float | None) -> None:
        """Append a sample, evicting the oldest past capacity; None is a no-op."""
        series = self._series[Metric(metric)]
        if value is None:
            return
        series.append(value)

    def record(self, snapshot: MetricSnapshot) -> None:
        """Append the three headline percentages of a snapshot."""
        self.append(Metric.CPU, snapshot.cpu.total)
        self.append(Metric.MEMORY, snapshot.memory.percent)
        self.append(Metric.DISK, snapshot.disk.percent)

    def values(self, metric: Metric | str) -> tuple[float, ...]:
        """Samples for a metric, oldest first."""
        return tuple(self._series[Metric(metric)])

    @property
    def cpu(self) -> tuple[float, ...]:
        return self.values(Metric.CPU)

    @property
    def memory(self) -> tuple[float, ...]:
        return self.values(Metric.MEMORY)

    @property
    def disk(self) -> tuple[float, ...]:
        return self.values(Metric.DISK)
