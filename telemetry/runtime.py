"""Process runtime gauges."""

from __future__ import annotations

import gc
import threading
import time

from telemetry.registry import FunctionalGauge, FunctionalGaugeFloat64, MetricRegistry


def _gc_collections() -> int:
    return sum(stats["collections"] for stats in gc.get_stats())


def register_runtime_metrics(registry: MetricRegistry, prefix: str = "runtime") -> None:
    """Register gauges describing the current Python process.

    Registers ``<prefix>.gc.gen{0,1,2}.count``, ``<prefix>.gc.collections``,
    ``<prefix>.threads`` and ``<prefix>.uptime_seconds``.
    """
    started = time.monotonic()

    for generation in range(3):
        registry.register(
            f"{prefix}.gc.gen{generation}.count",
            FunctionalGauge(lambda g=generation: gc.get_count()[g]),
        )
    registry.register(f"{prefix}.gc.collections", FunctionalGauge(_gc_collections))
    registry.register(f"{prefix}.threads", FunctionalGauge(threading.active_count))
    registry.register(
        f"{prefix}.uptime_seconds",
        FunctionalGaugeFloat64(lambda: time.monotonic() - started),
    )
