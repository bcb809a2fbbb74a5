from __future__ import annotations

import asyncio
import socket
from collections.abc import Callable
from typing import Any


class GraphiteCaptureServer:
    """In-process TCP server recording the lines of every connection."""

    def __init__(self) -> None:
        self.connections: list[list[str]] = []
        self.completed = 0
        self.port = 0
        self._server: asyncio.Server | None = None

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        self.port = self._server.sockets[0].getsockname()[1]

    async def stop(self) -> None:
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        received: list[str] = []
        self.connections.append(received)
        try:
            async for line in reader:
                received.append(line.decode("utf-8"))
        finally:
            self.completed += 1
            writer.close()

    async def wait_for_connections(self, count: int, timeout: float = 2.0) -> None:
        """Wait until count connections have been fully read."""

        async def poll() -> None:
            while self.completed < count:
                await asyncio.sleep(0.005)

        await asyncio.wait_for(poll(), timeout=timeout)

    @property
    def lines(self) -> list[str]:
        return [line for connection in self.connections for line in connection]


def unused_port() -> int:
    """Port on localhost with nothing listening."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        port: int = sock.getsockname()[1]
    return port


class RecordingSource:
    """Metric source over a fixed list that counts enumerations."""

    def __init__(self, items: list[tuple[str, Any]] | None = None) -> None:
        self.items = items or []
        self.calls = 0

    def each(self, visitor: Callable[[str, Any], None]) -> None:
        self.calls += 1
        for name, metric in self.items:
            visitor(name, metric)


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now
