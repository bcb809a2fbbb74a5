"""Telemetry module for exporting metrics to Graphite."""

from telemetry.contracts import (
    CounterSnapshot,
    GaugeFloat64Snapshot,
    GaugeSnapshot,
    GraphiteConfig,
    HistogramSnapshot,
    MeterSnapshot,
    MetricSource,
    TimerSnapshot,
)
from telemetry.graphite import FlushResult, GraphiteExporter
from telemetry.registry import (
    Counter,
    FunctionalGauge,
    FunctionalGaugeFloat64,
    Gauge,
    GaugeFloat64,
    MetricRegistry,
)

__all__ = [
    "Counter",
    "CounterSnapshot",
    "FlushResult",
    "FunctionalGauge",
    "FunctionalGaugeFloat64",
    "Gauge",
    "GaugeFloat64",
    "GaugeFloat64Snapshot",
    "GaugeSnapshot",
    "GraphiteConfig",
    "GraphiteExporter",
    "HistogramSnapshot",
    "MeterSnapshot",
    "MetricRegistry",
    "MetricSource",
    "TimerSnapshot",
]
