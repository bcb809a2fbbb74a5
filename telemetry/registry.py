"""Metric registry enumerated by the Graphite exporter."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any, TypeVar

from telemetry.contracts import CounterSnapshot, GaugeFloat64Snapshot, GaugeSnapshot

logger = logging.getLogger(__name__)

_MetricT = TypeVar("_MetricT")


class Counter:
    """Integer counter.

    Unlike a Prometheus counter this one may be decremented and cleared.
    """

    def __init__(self) -> None:
        self._count = 0
        self._lock = threading.Lock()

    def inc(self, amount: int = 1) -> None:
        """Increment counter by amount."""
        with self._lock:
            self._count += amount

    def dec(self, amount: int = 1) -> None:
        """Decrement counter by amount."""
        with self._lock:
            self._count -= amount

    def clear(self) -> None:
        """Reset counter to zero."""
        with self._lock:
            self._count = 0

    def count(self) -> int:
        """Current count."""
        return self._count

    def snapshot(self) -> CounterSnapshot:
        return CounterSnapshot(count=self._count)


class Gauge:
    """Integer gauge (can go up and down)."""

    def __init__(self) -> None:
        self._value = 0

    def update(self, value: int) -> None:
        """Set gauge to value."""
        self._value = int(value)

    def value(self) -> int:
        return self._value

    def snapshot(self) -> GaugeSnapshot:
        return GaugeSnapshot(value=self._value)


class GaugeFloat64:
    """Floating-point gauge."""

    def __init__(self) -> None:
        self._value = 0.0

    def update(self, value: float) -> None:
        """Set gauge to value."""
        self._value = float(value)

    def value(self) -> float:
        return self._value

    def snapshot(self) -> GaugeFloat64Snapshot:
        return GaugeFloat64Snapshot(value=self._value)


class FunctionalGauge:
    """Integer gauge whose value is computed when a snapshot is taken."""

    def __init__(self, fn: Callable[[], int]) -> None:
        self._fn = fn

    def value(self) -> int:
        return int(self._fn())

    def snapshot(self) -> GaugeSnapshot:
        return GaugeSnapshot(value=self.value())


class FunctionalGaugeFloat64:
    """Floating-point gauge whose value is computed when a snapshot is taken."""

    def __init__(self, fn: Callable[[], float]) -> None:
        self._fn = fn

    def value(self) -> float:
        return float(self._fn())

    def snapshot(self) -> GaugeFloat64Snapshot:
        return GaugeFloat64Snapshot(value=self.value())


class MetricRegistry:
    """Registry for storing named metrics.

    Metrics are enumerated in registration order. Any registered object that
    exposes ``snapshot()`` is snapshotted at enumeration time; other objects
    are handed to the visitor unchanged.
    """

    def __init__(self) -> None:
        """Initialize metric registry."""
        self._metrics: dict[str, Any] = {}
        self._lock = threading.Lock()

    def register(self, name: str, metric: Any) -> None:
        """Register a metric under name.

        Args:
            name: Metric name, optionally carrying ``;key=value`` tags
            metric: Live metric or snapshot

        Raises:
            ValueError: If name is empty or already registered
        """
        if not name:
            raise ValueError("name must not be empty")
        with self._lock:
            if name in self._metrics:
                raise ValueError(f"Metric {name} already registered")
            self._metrics[name] = metric
        logger.debug("telemetry.registry.registered", extra={"metric_name": name})

    def get(self, name: str) -> Any | None:
        """Get metric by name."""
        with self._lock:
            return self._metrics.get(name)

    def get_or_register(self, name: str, factory: Callable[[], _MetricT]) -> _MetricT:
        """Return the metric registered under name, registering factory() if absent.

        Args:
            name: Metric name
            factory: Called to build the metric when name is not registered yet

        Returns:
            Registered metric instance
        """
        if not name:
            raise ValueError("name must not be empty")
        with self._lock:
            existing = self._metrics.get(name)
            if existing is not None:
                return existing  # type: ignore[no-any-return]
            metric = factory()
            self._metrics[name] = metric
            return metric

    def unregister(self, name: str) -> None:
        """Remove metric registered under name (no-op when absent)."""
        with self._lock:
            self._metrics.pop(name, None)

    def each(self, visitor: Callable[[str, Any], None]) -> None:
        """Call visitor(name, snapshot) for every registered metric.

        The registry lock is released before visiting, so metrics may be
        registered or removed by the visitor or by other threads meanwhile.
        A metric whose snapshot raises is logged and skipped.
        """
        with self._lock:
            items = list(self._metrics.items())

        for name, metric in items:
            snapshot_fn = getattr(metric, "snapshot", None)
            if callable(snapshot_fn):
                try:
                    metric = snapshot_fn()
                except Exception:
                    logger.exception(
                        "telemetry.registry.snapshot_failed", extra={"metric_name": name}
                    )
                    continue
            visitor(name, metric)

    def __len__(self) -> int:
        return len(self._metrics)

    def __contains__(self, name: object) -> bool:
        return name in self._metrics
