"""Self-rescheduling broadcast loop.

After a startup delay the loop runs a cycle: pick one item from the content
pool and send it to every known destination, pausing between sends. It then
waits ``base_interval + uniform(0, jitter_max)`` seconds and cycles again.
"""

import asyncio
import random
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Set

from herald.channels.base import NotificationChannel
from herald.config.config import BroadcastConfig
from herald.utils.asyncio_helpers import SleepFunc, maybe_await
from herald.utils.logger import log_info, log_error, log_debug, log_warning


DestinationLister = Callable[[], Any]


@dataclass
class BroadcastState:
    """Process-wide broadcast state."""
    destinations: List[str] = field(default_factory=list)
    next_delay: Optional[float] = None
    cycles: int = 0
    in_cycle: bool = False


@dataclass
class BroadcastCycleResult:
    """Outcome of one broadcast cycle."""
    content: Optional[str] = None
    delivered: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    evicted: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content": self.content,
            "delivered": self.delivered,
            "failed": self.failed,
            "evicted": self.evicted,
        }


class BroadcastScheduler:
    """Periodically fans one content item out to every known destination."""

    def __init__(
        self,
        list_destinations: DestinationLister,
        channel: NotificationChannel,
        content_pool: Sequence[str],
        startup_delay: float = 60,
        base_interval: float = 6 * 3600,
        jitter_max: float = 3600,
        per_destination_delay: float = 5,
        max_consecutive_failures: Optional[int] = 3,
        on_evict: Optional[Callable[[str], Any]] = None,
        rng: Optional[random.Random] = None,
        sleep: SleepFunc = asyncio.sleep
    ):
        """Initialize the broadcast loop.

        Args:
            list_destinations: Returns the current destinations (sync or async)
            channel: Channel used for every send
            content_pool: Items to choose from each cycle
            startup_delay: Seconds before the first cycle
            base_interval: Minimum seconds between cycles
            jitter_max: Upper bound of the random extra delay
            per_destination_delay: Pause between two sends of one cycle
            max_consecutive_failures: Failed cycles before a destination is
                evicted; None never evicts
            on_evict: Takes over the removal of an evicted destination id;
                without it the scheduler filters the id while it stays listed
            rng: Random source for content choice and jitter
            sleep: Awaitable used for every wait
        """
        if base_interval <= 0:
            raise ValueError("base_interval must be positive")
        if jitter_max < 0:
            raise ValueError("jitter_max cannot be negative")

        self._list_destinations = list_destinations
        self.channel = channel
        self.content_pool = list(content_pool)
        self.startup_delay = startup_delay
        self.base_interval = base_interval
        self.jitter_max = jitter_max
        self.per_destination_delay = per_destination_delay
        self.max_consecutive_failures = max_consecutive_failures
        self._on_evict = on_evict
        self._rng = rng or random.Random()
        self._sleep = sleep

        self.state = BroadcastState()
        self._failure_counts: Dict[str, int] = {}
        self._evicted: Set[str] = set()
        self._evictions = 0
        self._task: Optional[asyncio.Task] = None
        self._stopping = False
        self._last_result: Optional[BroadcastCycleResult] = None

    @classmethod
    def from_config(
        cls,
        config: BroadcastConfig,
        list_destinations: DestinationLister,
        channel: NotificationChannel,
        **kwargs: Any
    ) -> "BroadcastScheduler":
        return cls(
            list_destinations=list_destinations,
            channel=channel,
            content_pool=config.content,
            startup_delay=config.startup_delay_seconds,
            base_interval=config.base_interval_seconds,
            jitter_max=config.jitter_max_seconds,
            per_destination_delay=config.per_destination_delay_seconds,
            max_consecutive_failures=config.max_consecutive_failures,
            **kwargs,
        )

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def compute_next_delay(self) -> float:
        """Draw the wait before the next cycle."""
        return self.base_interval + self._rng.uniform(0, self.jitter_max)

    async def _current_destinations(self) -> List[str]:
        destinations: List[str] = list(await maybe_await(self._list_destinations()) or [])
        # An evicted id the lister no longer returns is forgotten, so a
        # later rediscovery admits it again
        self._evicted.intersection_update(destinations)
        # Keep discovery order, drop duplicates and evicted destinations
        seen: Set[str] = set()
        current = []
        for destination in destinations:
            if destination in seen or destination in self._evicted:
                continue
            seen.add(destination)
            current.append(destination)
        self.state.destinations = current
        return current

    async def run_cycle(self) -> BroadcastCycleResult:
        """Deliver one content item to every current destination."""
        result = BroadcastCycleResult()
        self.state.in_cycle = True
        try:
            destinations = await self._current_destinations()
            if not destinations:
                log_debug("No broadcast destinations, skipping cycle")
                return result
            if not self.content_pool:
                log_warning("Broadcast content pool is empty, skipping cycle")
                return result

            result.content = self._rng.choice(self.content_pool)
            for index, destination in enumerate(destinations):
                if index > 0 and self.per_destination_delay > 0:
                    await self._sleep(self.per_destination_delay)
                await self._send_one(destination, result)
            log_info(
                f"Broadcast cycle delivered to {len(result.delivered)}/{len(destinations)} destination(s)"
            )
            return result
        finally:
            self.state.in_cycle = False
            self.state.cycles += 1
            self._last_result = result

    async def _send_one(self, destination: str, result: BroadcastCycleResult) -> None:
        try:
            await self.channel.send(destination, result.content)
        except Exception as e:
            result.failed.append(destination)
            log_warning(f"Couldn't broadcast to {destination}: {e}")
            self._record_failure(destination, result)
        else:
            result.delivered.append(destination)
            self._failure_counts.pop(destination, None)

    def _record_failure(self, destination: str, result: BroadcastCycleResult) -> None:
        failures = self._failure_counts.get(destination, 0) + 1
        self._failure_counts[destination] = failures
        if self.max_consecutive_failures is None or failures < self.max_consecutive_failures:
            return

        self._failure_counts.pop(destination, None)
        self._evictions += 1
        result.evicted.append(destination)
        log_warning(f"Evicting broadcast destination {destination} after {failures} failed cycles")
        if self._on_evict is not None:
            try:
                self._on_evict(destination)
                # The lister owns the removal from here on
                return
            except Exception as e:
                log_error(f"Eviction callback failed for {destination}: {e}")
        self._evicted.add(destination)

    async def _loop(self) -> None:
        log_debug("Broadcast loop started")
        await self._sleep(self.startup_delay)
        while not self._stopping:
            try:
                await self.run_cycle()
            except Exception as e:
                log_error(f"Broadcast cycle failed: {e}")
            if self._stopping:
                break
            self.state.next_delay = self.compute_next_delay()
            log_info(f"Next broadcast in {round(self.state.next_delay / 60)} minutes")
            await self._sleep(self.state.next_delay)
        log_debug("Broadcast loop ended")

    async def start(self) -> None:
        """Start the loop in the background."""
        if self.is_running:
            log_debug("BroadcastScheduler already running")
            return
        self._stopping = False
        self._task = asyncio.create_task(self._loop(), name="broadcast-loop")
        log_info("Broadcast loop enabled")

    async def stop(self, cancel_in_flight: bool = False) -> None:
        """Stop the loop.

        A pending wait is cancelled immediately; a running cycle completes
        first unless ``cancel_in_flight`` is set.
        """
        if self._task is None:
            return
        self._stopping = True
        if cancel_in_flight or not self.state.in_cycle:
            self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        self.state.in_cycle = False
        log_info("Broadcast loop stopped")

    def get_stats(self) -> Dict[str, Any]:
        return {
            "running": self.is_running,
            "cycles": self.state.cycles,
            "destinations": len(self.state.destinations),
            "evicted": sorted(self._evicted),
            "evictions": self._evictions,
            "next_delay_seconds": self.state.next_delay,
            "last_cycle": self._last_result.to_dict() if self._last_result else None,
        }
