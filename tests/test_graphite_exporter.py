"""Tests for the Graphite exporter flush cycle and loop."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from typing import Any

import pytest
import pytest_asyncio

from telemetry.contracts import GraphiteConfig, HistogramSnapshot, MetricSource
from telemetry.graphite import FlushResult, GraphiteExporter, once
from telemetry.registry import Counter, FunctionalGauge, Gauge, MetricRegistry
from tests.utils import GraphiteCaptureServer, RecordingSource, unused_port

NOW = 1_700_000_000


def make_config(port: int, registry: MetricSource, interval: float = 10.0) -> GraphiteConfig:
    return GraphiteConfig(
        host="127.0.0.1",
        port=port,
        registry=registry,
        flush_interval_seconds=interval,
        prefix="app",
    )


@pytest_asyncio.fixture
async def server() -> AsyncIterator[GraphiteCaptureServer]:
    capture = GraphiteCaptureServer()
    await capture.start()
    yield capture
    await capture.stop()


class TestFlushOnce:
    """Tests for single flush cycles."""

    @pytest.mark.asyncio
    async def test_writes_all_metrics(self, server: GraphiteCaptureServer) -> None:
        registry = MetricRegistry()
        counter = Counter()
        counter.inc(42)
        gauge = Gauge()
        gauge.update(7)
        registry.register("requests", counter)
        registry.register("queue.depth;queue=jobs", gauge)
        registry.register("latency", HistogramSnapshot.from_values([1, 2, 3]))

        exporter = GraphiteExporter(make_config(server.port, registry), clock=lambda: NOW + 0.7)
        result = await exporter.once()
        await server.wait_for_connections(1)

        assert result.ok
        assert result.timestamp == NOW
        assert result.metrics == 3
        assert result.lines == 13
        assert result.write_errors == 0
        assert len(server.lines) == 13
        assert f"app.requests.count 42 {NOW}\n" in server.lines
        assert f"app.requests.count_ps 4.20 {NOW}\n" in server.lines
        assert f"app.queue.depth.value;queue=jobs 7 {NOW}\n" in server.lines
        assert f"app.latency.999-percentile 3.00 {NOW}\n" in server.lines

    @pytest.mark.asyncio
    async def test_lines_share_one_timestamp(self, server: GraphiteCaptureServer) -> None:
        ticks = iter(range(NOW, NOW + 100))
        registry = MetricRegistry()
        registry.register("a", Counter())
        registry.register("b", HistogramSnapshot.from_values([5]))

        exporter = GraphiteExporter(make_config(server.port, registry), clock=lambda: next(ticks))
        await exporter.once()
        await server.wait_for_connections(1)

        timestamps = {line.rsplit(" ", 1)[1] for line in server.lines}
        assert timestamps == {f"{NOW}\n"}

    @pytest.mark.asyncio
    async def test_lines_of_one_metric_stay_contiguous(
        self, server: GraphiteCaptureServer
    ) -> None:
        registry = MetricRegistry()
        registry.register("first", Counter())
        registry.register("second", Counter())

        await GraphiteExporter(make_config(server.port, registry), clock=lambda: NOW).once()
        await server.wait_for_connections(1)

        prefixes = [line.split(".")[1] for line in server.lines]
        assert prefixes in (
            ["first", "first", "second", "second"],
            ["second", "second", "first", "first"],
        )

    @pytest.mark.asyncio
    async def test_connection_failure_skips_enumeration(self) -> None:
        source = RecordingSource([("a", Counter())])
        exporter = GraphiteExporter(make_config(unused_port(), source))

        result = await exporter.once()

        assert not result.ok
        assert isinstance(result.error, OSError)
        assert result.metrics == 0
        assert source.calls == 0

    @pytest.mark.asyncio
    async def test_unsupported_kind_does_not_interrupt(
        self, server: GraphiteCaptureServer, caplog: pytest.LogCaptureFixture
    ) -> None:
        registry = MetricRegistry()
        registry.register("a", Gauge())
        registry.register("b", object())
        registry.register("c", Gauge())

        with caplog.at_level(logging.WARNING):
            result = await GraphiteExporter(make_config(server.port, registry)).once()
        await server.wait_for_connections(1)

        assert result.ok
        assert result.metrics == 3
        assert result.lines == 2
        names = sorted(line.split(" ")[0] for line in server.lines)
        assert names == ["app.a.value", "app.c.value"]
        assert any(r.message == "telemetry.graphite.unsupported_type" for r in caplog.records)

    @pytest.mark.asyncio
    async def test_failing_snapshot_does_not_drop_other_metrics(
        self, server: GraphiteCaptureServer
    ) -> None:
        registry = MetricRegistry()
        good = Counter()
        good.inc(5)
        registry.register("good", good)
        registry.register("bad", FunctionalGauge(lambda: 1 // 0))

        exporter = GraphiteExporter(make_config(server.port, registry), clock=lambda: NOW)
        result = await exporter.once()
        await server.wait_for_connections(1)

        assert result.ok
        assert result.metrics == 1
        assert server.lines == [
            f"app.good.count 5 {NOW}\n",
            f"app.good.count_ps 0.50 {NOW}\n",
        ]

    @pytest.mark.asyncio
    async def test_drains_after_each_metric(
        self, server: GraphiteCaptureServer, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        drains = 0
        original_drain = asyncio.StreamWriter.drain

        async def counting_drain(self: asyncio.StreamWriter) -> None:
            nonlocal drains
            drains += 1
            await original_drain(self)

        monkeypatch.setattr(asyncio.StreamWriter, "drain", counting_drain)
        registry = MetricRegistry()
        for name in ("a", "b", "c"):
            registry.register(name, Counter())

        await GraphiteExporter(make_config(server.port, registry)).once()

        assert drains == 3

    @pytest.mark.asyncio
    async def test_write_failure_does_not_abort_cycle(
        self, server: GraphiteCaptureServer, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        calls = 0
        original_drain = asyncio.StreamWriter.drain

        async def flaky_drain(self: asyncio.StreamWriter) -> None:
            nonlocal calls
            calls += 1
            if calls == 1:
                raise ConnectionResetError("reset by peer")
            await original_drain(self)

        monkeypatch.setattr(asyncio.StreamWriter, "drain", flaky_drain)
        registry = MetricRegistry()
        registry.register("a", Counter())
        registry.register("b", Counter())
        registry.register("c", Gauge())

        result = await GraphiteExporter(make_config(server.port, registry)).once()

        assert result.ok
        assert result.write_errors == 1
        assert result.lines == 3

    @pytest.mark.asyncio
    async def test_closes_connection_when_source_raises(
        self, server: GraphiteCaptureServer
    ) -> None:
        class BrokenSource:
            def each(self, visitor: Any) -> None:
                raise RuntimeError("registry unavailable")

        exporter = GraphiteExporter(make_config(server.port, BrokenSource()))

        with pytest.raises(RuntimeError, match="registry unavailable"):
            await exporter.once()

        await server.wait_for_connections(1)
        assert server.lines == []


class TestFlushLoop:
    """Tests for the continuous flush loop."""

    @pytest.mark.asyncio
    async def test_flushes_every_interval(self, server: GraphiteCaptureServer) -> None:
        registry = MetricRegistry()
        registry.register("a", Counter())
        exporter = GraphiteExporter(make_config(server.port, registry, interval=0.05))

        started = time.monotonic()
        await exporter.start()
        assert exporter.running
        await server.wait_for_connections(2)
        await exporter.stop()
        elapsed = time.monotonic() - started

        assert not exporter.running
        assert elapsed >= 0.09
        assert all(len(connection) == 2 for connection in server.connections[:2])

    @pytest.mark.asyncio
    async def test_first_flush_waits_one_interval(self, server: GraphiteCaptureServer) -> None:
        registry = MetricRegistry()
        registry.register("a", Counter())
        exporter = GraphiteExporter(make_config(server.port, registry, interval=0.3))

        await exporter.start()
        await asyncio.sleep(0.1)
        assert server.connections == []

        await server.wait_for_connections(1)
        await exporter.stop()

    @pytest.mark.asyncio
    async def test_connection_failures_are_logged_and_loop_continues(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        attempts: list[FlushResult] = []
        attempted_at: list[float] = []

        class CountingExporter(GraphiteExporter):
            async def once(self) -> FlushResult:
                attempted_at.append(time.monotonic())
                result = await super().once()
                attempts.append(result)
                return result

        exporter = CountingExporter(
            make_config(unused_port(), RecordingSource(), interval=0.05)
        )

        with caplog.at_level(logging.ERROR, logger="telemetry.graphite"):
            await exporter.start()

            async def wait_for_attempts() -> None:
                while len(attempts) < 2:
                    await asyncio.sleep(0.01)

            await asyncio.wait_for(wait_for_attempts(), timeout=2.0)
            await exporter.stop()

        assert all(not result.ok for result in attempts)
        # a failed attempt does not trigger an early retry
        assert attempted_at[1] - attempted_at[0] >= 0.045
        assert any(r.message == "telemetry.graphite.flush_failed" for r in caplog.records)

    @pytest.mark.asyncio
    async def test_run_returns_after_stop(self, server: GraphiteCaptureServer) -> None:
        exporter = GraphiteExporter(make_config(server.port, MetricRegistry(), interval=60.0))

        task = asyncio.create_task(exporter.run())
        await asyncio.sleep(0.01)
        await exporter.stop()

        await asyncio.wait_for(task, timeout=1.0)
        assert server.connections == []

    @pytest.mark.asyncio
    async def test_stop_without_start_is_noop(self) -> None:
        exporter = GraphiteExporter(make_config(unused_port(), MetricRegistry()))

        await exporter.stop()

        assert not exporter.running


def test_blocking_once_reports_connection_failure() -> None:
    result = once(make_config(unused_port(), RecordingSource()))

    assert not result.ok
    assert result.error is not None
