from __future__ import annotations

import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime:
        ...

    @abstractmethod
    def uptime(self) -> float:
        """Seconds elapsed since the process started serving."""

    def timestamp(self) -> str:
        return isoformat_utc(self.now())


class RealClock(Clock):
    def __init__(self, started_at: Optional[float] = None) -> None:
        self._started_at = time.monotonic() if started_at is None else started_at

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def uptime(self) -> float:
        return max(0.0, time.monotonic() - self._started_at)


def isoformat_utc(moment: datetime) -> str:
    """Render ``moment`` as ``2025-01-01T12:00:00.000Z``."""

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    text = moment.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return text.replace("+00:00", "Z")


__all__ = ["Clock", "RealClock", "isoformat_utc"]
