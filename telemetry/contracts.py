"""Telemetry contracts for Graphite export.

This module defines the immutable metric snapshots handed to the Graphite
serializer, the metric source protocol, and the export configuration.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any, ClassVar, Literal, Protocol

MetricKind = Literal["counter", "gauge", "gauge_float64", "histogram", "meter", "timer"]

DEFAULT_PERCENTILES: tuple[float, ...] = (0.5, 0.75, 0.95, 0.99, 0.999)

DURATION_UNITS_NS: dict[str, int] = {
    "ns": 1,
    "us": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
}


class MetricSource(Protocol):
    """Anything that can enumerate its metrics as (name, snapshot) pairs."""

    def each(self, visitor: Callable[[str, Any], None]) -> None: ...


@dataclass(frozen=True)
class CounterSnapshot:
    """Point-in-time value of a counter."""

    count: int

    kind: ClassVar[MetricKind] = "counter"

    def snapshot(self) -> CounterSnapshot:
        return self


@dataclass(frozen=True)
class GaugeSnapshot:
    """Point-in-time value of an integer gauge."""

    value: int

    kind: ClassVar[MetricKind] = "gauge"

    def snapshot(self) -> GaugeSnapshot:
        return self


@dataclass(frozen=True)
class GaugeFloat64Snapshot:
    """Point-in-time value of a floating-point gauge."""

    value: float

    kind: ClassVar[MetricKind] = "gauge_float64"

    def snapshot(self) -> GaugeFloat64Snapshot:
        return self


@dataclass(frozen=True)
class HistogramSnapshot:
    """Distribution snapshot.

    Attributes:
        count: Number of observations
        min: Smallest observation
        max: Largest observation
        mean: Arithmetic mean of the retained sample
        std_dev: Population standard deviation of the retained sample
        values: Retained sample, used for percentile queries

    Raises:
        ValueError: If count is negative
    """

    count: int
    min: int
    max: int
    mean: float
    std_dev: float
    values: tuple[int, ...] = field(default=(), repr=False)

    kind: ClassVar[MetricKind] = "histogram"

    def __post_init__(self) -> None:
        """Validate histogram snapshot and freeze the sample in sorted order."""
        if self.count < 0:
            raise ValueError(f"count must be >= 0, got {self.count}")
        object.__setattr__(self, "values", tuple(sorted(self.values)))

    @classmethod
    def from_values(cls, values: Iterable[int], count: int | None = None) -> HistogramSnapshot:
        """Build a snapshot from raw observations.

        Args:
            values: Observed values (the retained sample)
            count: Total observation count, when larger than the retained sample

        Returns:
            HistogramSnapshot with min/max/mean/std-dev computed from values
        """
        sample = tuple(sorted(int(v) for v in values))
        if not sample:
            return cls(count=count or 0, min=0, max=0, mean=0.0, std_dev=0.0)

        mean = sum(sample) / len(sample)
        variance = sum((v - mean) ** 2 for v in sample) / len(sample)
        return cls(
            count=len(sample) if count is None else count,
            min=sample[0],
            max=sample[-1],
            mean=mean,
            std_dev=math.sqrt(variance),
            values=sample,
        )

    def percentile(self, p: float) -> float:
        """Value at fraction p of the sample (linear interpolation, 0.0 when empty)."""
        return self.percentiles([p])[0]

    def percentiles(self, ps: Sequence[float]) -> list[float]:
        """Values at each fraction in ps, in the order given."""
        size = len(self.values)
        if size == 0:
            return [0.0 for _ in ps]

        results: list[float] = []
        for p in ps:
            pos = p * (size + 1)
            if pos < 1.0:
                results.append(float(self.values[0]))
            elif pos >= size:
                results.append(float(self.values[-1]))
            else:
                lower = float(self.values[int(pos) - 1])
                upper = float(self.values[int(pos)])
                results.append(lower + (pos - math.floor(pos)) * (upper - lower))
        return results

    def snapshot(self) -> HistogramSnapshot:
        return self


@dataclass(frozen=True)
class MeterSnapshot:
    """Event-rate snapshot (rates are events per second)."""

    count: int
    rate1: float
    rate5: float
    rate15: float
    rate_mean: float

    kind: ClassVar[MetricKind] = "meter"

    def snapshot(self) -> MeterSnapshot:
        return self


@dataclass(frozen=True)
class TimerSnapshot:
    """Duration histogram fused with an event-rate meter.

    Durations in the histogram are raw nanosecond counts.
    """

    histogram: HistogramSnapshot
    meter: MeterSnapshot

    kind: ClassVar[MetricKind] = "timer"

    @property
    def count(self) -> int:
        return self.histogram.count

    @property
    def min(self) -> int:
        return self.histogram.min

    @property
    def max(self) -> int:
        return self.histogram.max

    @property
    def mean(self) -> float:
        return self.histogram.mean

    @property
    def std_dev(self) -> float:
        return self.histogram.std_dev

    def percentiles(self, ps: Sequence[float]) -> list[float]:
        return self.histogram.percentiles(ps)

    @property
    def rate1(self) -> float:
        return self.meter.rate1

    @property
    def rate5(self) -> float:
        return self.meter.rate5

    @property
    def rate15(self) -> float:
        return self.meter.rate15

    @property
    def rate_mean(self) -> float:
        return self.meter.rate_mean

    def snapshot(self) -> TimerSnapshot:
        return self


Snapshot = (
    CounterSnapshot
    | GaugeSnapshot
    | GaugeFloat64Snapshot
    | HistogramSnapshot
    | MeterSnapshot
    | TimerSnapshot
)


@dataclass(frozen=True)
class GraphiteConfig:
    """Settings for one Graphite export run.

    Attributes:
        host: Graphite (carbon) host
        port: Graphite plaintext port
        registry: Metric source to export
        flush_interval_seconds: Seconds between flush cycles
        duration_unit_ns: Nanoseconds per reported duration unit (1_000_000 for ms)
        prefix: Prefix prepended to every metric name
        percentiles: Fractions reported for histograms and timers, in output order

    Raises:
        ValueError: If flush interval or duration unit is not positive, a percentile
            falls outside [0, 1], host is empty or port is out of range
    """

    host: str
    port: int
    registry: MetricSource
    flush_interval_seconds: float = 60.0
    duration_unit_ns: int = 1
    prefix: str = ""
    percentiles: Sequence[float] = DEFAULT_PERCENTILES

    def __post_init__(self) -> None:
        """Validate export configuration."""
        if not self.host:
            raise ValueError("host must not be empty")
        if not 0 <= self.port <= 65535:
            raise ValueError(f"port must be in [0, 65535], got {self.port}")
        if not self.flush_interval_seconds > 0:
            raise ValueError(
                f"flush_interval_seconds must be > 0, got {self.flush_interval_seconds}"
            )
        if self.duration_unit_ns <= 0:
            raise ValueError(f"duration_unit_ns must be > 0, got {self.duration_unit_ns}")

        percentiles = tuple(float(p) for p in self.percentiles)
        for p in percentiles:
            if not 0.0 <= p <= 1.0:
                raise ValueError(f"percentiles must be in [0, 1], got {p}")
        object.__setattr__(self, "percentiles", percentiles)

    @property
    def addr(self) -> tuple[str, int]:
        """(host, port) pair of the Graphite endpoint."""
        return (self.host, self.port)
