"""Graphite plaintext protocol serialization.

Each metric field becomes one line::

    <prefix>.<name>.<field><tags> <value> <unix_seconds>

Tags follow the Graphite tagged-series syntax (``name;k1=v1;k2=v2``) and are
carried through verbatim from the registered metric name.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from decimal import Decimal
from typing import Any

logger = logging.getLogger(__name__)


def split_name_and_tags(name: str) -> tuple[str, str]:
    """Split a registered metric name into its base name and tag suffix.

    Only the first semicolon separates name from tags; the returned suffix
    keeps its leading semicolon.

    Args:
        name: Raw metric name, e.g. ``"disk.used;datacenter=dc1;rack=a1"``

    Returns:
        (name, tags), e.g. ``("disk.used", ";datacenter=dc1;rack=a1")``;
        tags is ``""`` when name carries none
    """
    base, sep, rest = name.partition(";")
    if not sep:
        return name, ""
    return base, sep + rest


def percentile_key(p: float) -> str:
    """Field key for percentile fraction p.

    ``p * 100`` is rendered in its shortest positional form and the first
    decimal point is dropped: 0.5 -> ``"50"``, 0.95 -> ``"95"``,
    0.999 -> ``"999"``.
    """
    rendered = format(Decimal(repr(p * 100.0)).normalize(), "f")
    return rendered.replace(".", "", 1)


def _fixed(value: float, digits: int) -> str:
    """Fixed-point rendering with non-finite values spelled +Inf, -Inf and NaN."""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    return f"{value:.{digits}f}"


def _trunc_div(value: int, divisor: int) -> int:
    """Integer division rounding toward zero."""
    quotient = abs(value) // abs(divisor)
    return quotient if (value < 0) == (divisor < 0) else -quotient


def format_metric(
    prefix: str,
    name: str,
    tags: str,
    metric: Any,
    now: int,
    flush_interval_seconds: float,
    duration_unit_ns: int,
    percentiles: Sequence[float],
) -> list[str]:
    """Serialize one metric snapshot into Graphite lines.

    Args:
        prefix: Prefix prepended to the metric name
        name: Metric name without tags
        tags: Tag suffix (including leading ``;``) or ``""``
        metric: Snapshot to serialize
        now: Flush timestamp (unix seconds) shared by every line of a cycle
        flush_interval_seconds: Flush interval used for ``count_ps`` rates
        duration_unit_ns: Nanoseconds per unit for timer durations
        percentiles: Percentile fractions to report, in output order

    Returns:
        Newline-terminated lines; empty for unsupported metric kinds
    """
    lines: list[str] = []

    def emit(field: str, value: str) -> None:
        lines.append(f"{prefix}.{name}.{field}{tags} {value} {now}\n")

    kind = getattr(metric, "kind", None)

    if kind == "counter":
        count = metric.count
        emit("count", f"{int(count)}")
        emit("count_ps", _fixed(count / flush_interval_seconds, 2))
        return lines

    if kind == "gauge":
        emit("value", f"{int(metric.value)}")
        return lines

    if kind == "gauge_float64":
        emit("value", _fixed(metric.value, 6))
        return lines

    if kind == "histogram":
        values = metric.percentiles(percentiles)
        emit("count", f"{int(metric.count)}")
        emit("min", f"{int(metric.min)}")
        emit("max", f"{int(metric.max)}")
        emit("mean", _fixed(metric.mean, 2))
        emit("std-dev", _fixed(metric.std_dev, 2))
        for p, value in zip(percentiles, values, strict=True):
            emit(f"{percentile_key(p)}-percentile", _fixed(value, 2))
        return lines

    if kind == "meter":
        emit("count", f"{int(metric.count)}")
        emit("one-minute", _fixed(metric.rate1, 2))
        emit("five-minute", _fixed(metric.rate5, 2))
        emit("fifteen-minute", _fixed(metric.rate15, 2))
        emit("mean", _fixed(metric.rate_mean, 2))
        return lines

    if kind == "timer":
        unit = float(duration_unit_ns)
        values = metric.percentiles(percentiles)
        count = metric.count
        emit("count", f"{int(count)}")
        emit("count_ps", _fixed(count / flush_interval_seconds, 2))
        emit("min", f"{_trunc_div(int(metric.min), duration_unit_ns)}")
        emit("max", f"{_trunc_div(int(metric.max), duration_unit_ns)}")
        emit("mean", _fixed(metric.mean / unit, 2))
        emit("std-dev", _fixed(metric.std_dev / unit, 2))
        for p, value in zip(percentiles, values, strict=True):
            emit(f"{percentile_key(p)}-percentile", _fixed(value / unit, 2))
        emit("one-minute", _fixed(metric.rate1, 2))
        emit("five-minute", _fixed(metric.rate5, 2))
        emit("fifteen-minute", _fixed(metric.rate15, 2))
        emit("mean-rate", _fixed(metric.rate_mean, 2))
        return lines

    logger.warning(
        "telemetry.graphite.unsupported_type",
        extra={"metric_name": name, "metric_type": type(metric).__name__},
    )
    return lines
