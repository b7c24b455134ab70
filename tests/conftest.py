"""Test fixtures for herald."""

import asyncio
import heapq
from datetime import datetime, timedelta
from typing import List, Optional, Set, Tuple

import pytest

from herald.exceptions import DeliveryError


class FakeClock:
    """Simulated time for schedulers.

    ``sleep`` parks the caller until ``advance`` moves simulated time past its
    wake-up point; ``now`` returns the matching wall-clock datetime.
    """

    def __init__(self, start: datetime = datetime(2026, 3, 2, 10, 0)):
        self.start = start
        self.elapsed = 0.0
        self.sleep_calls: List[float] = []
        self._sleepers: List[Tuple[float, int, asyncio.Future]] = []
        self._seq = 0

    def now(self) -> datetime:
        return self.start + timedelta(seconds=self.elapsed)

    async def sleep(self, delay: float) -> None:
        self.sleep_calls.append(delay)
        if delay <= 0:
            await asyncio.sleep(0)
            return
        future = asyncio.get_running_loop().create_future()
        self._seq += 1
        heapq.heappush(self._sleepers, (self.elapsed + delay, self._seq, future))
        await future

    @staticmethod
    async def settle(rounds: int = 20) -> None:
        """Let every runnable task proceed until it blocks again."""
        for _ in range(rounds):
            await asyncio.sleep(0)

    async def advance(self, seconds: float) -> None:
        target = self.elapsed + seconds
        await self.settle()
        while self._sleepers and self._sleepers[0][0] <= target:
            wake_at, _, future = heapq.heappop(self._sleepers)
            self.elapsed = max(self.elapsed, wake_at)
            if not future.done():
                future.set_result(None)
            await self.settle()
        self.elapsed = target
        await self.settle()


class RecordingChannel:
    """Channel that accepts every message."""

    def __init__(self):
        self.sent: List[Tuple[str, str]] = []

    async def send(self, destination: str, text: str) -> None:
        self.sent.append((destination, text))

    def texts(self) -> List[str]:
        return [text for _, text in self.sent]


class FailingChannel:
    """Channel that rejects sends, for every destination or only some."""

    def __init__(self, failing: Optional[Set[str]] = None, failures_before_success: Optional[int] = None):
        self.failing = failing
        self.failures_before_success = failures_before_success
        self.attempts: List[Tuple[str, str]] = []
        self.sent: List[Tuple[str, str]] = []

    async def send(self, destination: str, text: str) -> None:
        self.attempts.append((destination, text))
        if self.failures_before_success is not None:
            if len(self.attempts) <= self.failures_before_success:
                raise DeliveryError("temporarily unavailable", destination=destination)
        elif self.failing is None or destination in self.failing:
            raise DeliveryError("chat not found", destination=destination)
        self.sent.append((destination, text))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def channel() -> RecordingChannel:
    return RecordingChannel()
