from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Iterator

import pytest

from labserver.app.handlers import build_handler
from labserver.app.server import HttpServer
from labserver.config import AppConfig
from labserver.ports.clock import Clock


class FixedClock(Clock):
    def __init__(self, moment: datetime, uptime: float) -> None:
        self._moment = moment
        self._uptime = uptime

    def now(self) -> datetime:
        return self._moment

    def uptime(self) -> float:
        return self._uptime


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2025, 1, 2, 3, 4, 5, 678000, tzinfo=timezone.utc), 12.5)


@pytest.fixture
def config() -> AppConfig:
    return AppConfig(host="127.0.0.1", port=0, environment="testing")


@pytest.fixture
def running_server(config: AppConfig, clock: FixedClock) -> Iterator[HttpServer]:
    server = HttpServer(build_handler(config, clock), config.host, config.port)
    thread = threading.Thread(target=server.serve_forever, kwargs={"poll_interval": 0.05}, daemon=True)
    thread.start()
    try:
        yield server
    finally:
        server.shutdown()
        thread.join(timeout=5)
