"""Graphite exporter: periodic flush of a metric registry over TCP."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Any

from telemetry.contracts import DEFAULT_PERCENTILES, GraphiteConfig, MetricSource
from telemetry.graphite_format import format_metric, split_name_and_tags
from telemetry.ticker import FlushTicker

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FlushResult:
    """Outcome of one flush cycle.

    Attributes:
        ok: False when the connection could not be established
        timestamp: Unix seconds stamped on every line of the cycle
        metrics: Number of metrics enumerated
        lines: Number of lines written
        write_errors: Number of metrics whose write or drain failed
        error: Connection error when ok is False
    """

    ok: bool
    timestamp: int
    metrics: int = 0
    lines: int = 0
    write_errors: int = 0
    error: BaseException | None = field(default=None, compare=False)


class GraphiteExporter:
    """Reports a metric registry to a Graphite server.

    Every flush cycle opens a fresh connection, writes one line per metric
    field, and closes the connection. ``run()`` repeats the cycle once per
    flush interval; ``once()`` performs a single cycle.
    """

    def __init__(
        self,
        config: GraphiteConfig,
        clock: Callable[[], float] = time.time,
        connect_timeout_seconds: float | None = None,
    ) -> None:
        """Initialize Graphite exporter.

        Args:
            config: Export configuration
            clock: Wall clock used for line timestamps
            connect_timeout_seconds: Give up connecting after this many seconds
                (None waits for the OS timeout)
        """
        self.config = config
        self.connect_timeout_seconds = connect_timeout_seconds
        self._clock = clock
        self._ticker: FlushTicker | None = None
        self._task: asyncio.Task[None] | None = None

    async def run(self) -> None:
        """Flush once per interval until ``stop()`` is called or the task is cancelled.

        The first flush happens one full interval after the call. A failed
        cycle is logged and the loop carries on at the next tick.
        """
        ticker = FlushTicker(self.config.flush_interval_seconds)
        self._ticker = ticker
        logger.info(
            "telemetry.graphite.started",
            extra={
                "host": self.config.host,
                "port": self.config.port,
                "flush_interval_seconds": self.config.flush_interval_seconds,
            },
        )
        try:
            async for _ in ticker:
                try:
                    result = await self.once()
                except Exception:
                    logger.exception("telemetry.graphite.flush_crashed")
                    continue

                if not result.ok:
                    logger.error(
                        "telemetry.graphite.flush_failed",
                        extra={
                            "host": self.config.host,
                            "port": self.config.port,
                            "error": str(result.error),
                        },
                    )
        finally:
            if self._ticker is ticker:
                self._ticker = None
            logger.info("telemetry.graphite.stopped")

    async def start(self) -> None:
        """Start ``run()`` as a background task."""
        if self._task is None:
            self._task = asyncio.create_task(self.run())

    async def stop(self) -> None:
        """Stop the flush loop and wait for the background task to finish."""
        if self._ticker is not None:
            self._ticker.stop()

        if self._task is None:
            return

        task = self._task
        self._task = None
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def once(self) -> FlushResult:
        """Perform a single flush cycle.

        Returns:
            FlushResult; ``ok`` is False only when the connection failed, in
            which case nothing was enumerated or written
        """
        config = self.config
        now = int(self._clock())

        try:
            _reader, writer = await asyncio.wait_for(
                asyncio.open_connection(config.host, config.port),
                timeout=self.connect_timeout_seconds,
            )
        except (OSError, asyncio.TimeoutError) as exc:
            return FlushResult(ok=False, timestamp=now, error=exc)

        entries: list[tuple[str, Any]] = []
        lines_written = 0
        write_errors = 0
        try:
            config.registry.each(lambda name, metric: entries.append((name, metric)))

            for raw_name, metric in entries:
                name, tags = split_name_and_tags(raw_name)
                lines = format_metric(
                    config.prefix,
                    name,
                    tags,
                    metric,
                    now,
                    config.flush_interval_seconds,
                    config.duration_unit_ns,
                    config.percentiles,
                )
                if not lines:
                    continue

                try:
                    writer.write("".join(lines).encode("utf-8"))
                    await writer.drain()
                except OSError as exc:
                    write_errors += 1
                    logger.warning(
                        "telemetry.graphite.write_failed",
                        extra={"metric_name": raw_name, "error": str(exc)},
                    )
                    continue
                lines_written += len(lines)
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError as exc:
                logger.debug("telemetry.graphite.close_failed", extra={"error": str(exc)})

        logger.debug(
            "telemetry.graphite.flushed",
            extra={
                "timestamp": now,
                "metrics": len(entries),
                "lines": lines_written,
                "write_errors": write_errors,
            },
        )
        return FlushResult(
            ok=True,
            timestamp=now,
            metrics=len(entries),
            lines=lines_written,
            write_errors=write_errors,
        )


def graphite(
    registry: MetricSource,
    flush_interval_seconds: float,
    prefix: str,
    host: str,
    port: int,
) -> None:
    """Blocking exporter reporting registry to host:port every flush interval.

    Durations are reported in nanoseconds with the default percentiles.
    """
    with_config(
        GraphiteConfig(
            host=host,
            port=port,
            registry=registry,
            flush_interval_seconds=flush_interval_seconds,
            duration_unit_ns=1,
            prefix=prefix,
            percentiles=DEFAULT_PERCENTILES,
        )
    )


def with_config(config: GraphiteConfig) -> None:
    """Blocking exporter like ``graphite()``, driven by a full configuration."""
    asyncio.run(GraphiteExporter(config).run())


def once(config: GraphiteConfig) -> FlushResult:
    """Perform a single blocking flush.

    Can be called in a loop for custom retry handling. Must not be called
    from inside a running event loop; use ``GraphiteExporter.once()`` there.
    """
    return asyncio.run(GraphiteExporter(config).once())
