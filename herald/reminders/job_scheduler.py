"""Fixed-interval job scheduler.

Every registered job gets its own timer task. A timer sleeps one interval,
then launches the job as a separate task and goes back to sleep, so a slow
job does not delay its own schedule. The single-flight guard skips a tick
whose previous invocation is still running instead of starting a second one.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Set

from herald.utils.asyncio_helpers import SleepFunc, call_maybe_async
from herald.utils.logger import log_info, log_error, log_debug, log_warning


JobFunc = Callable[[], Any]


@dataclass
class JobHandle:
    """Opaque handle of one registered job."""
    name: str
    interval: float
    job_fn: JobFunc = field(repr=False)
    runs: int = 0
    failures: int = 0
    skipped_overlaps: int = 0
    last_run_at: Optional[datetime] = None
    last_error: Optional[str] = None
    _timer: Optional[asyncio.Task] = field(default=None, repr=False)
    _in_flight: int = field(default=0, repr=False)
    _cancelled: bool = field(default=False, repr=False)

    @property
    def in_flight(self) -> bool:
        return self._in_flight > 0

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Stop future runs of this job; a running invocation completes."""
        self._cancelled = True
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "interval_seconds": self.interval,
            "runs": self.runs,
            "failures": self.failures,
            "skipped_overlaps": self.skipped_overlaps,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_error": self.last_error,
            "in_flight": self.in_flight,
            "cancelled": self._cancelled,
        }


class JobScheduler:
    """Owns a set of named periodic jobs and cancels them all at once."""

    def __init__(
        self,
        single_flight: bool = True,
        sleep: SleepFunc = asyncio.sleep,
        clock: Callable[[], datetime] = datetime.now
    ):
        """Initialize the scheduler.

        Args:
            single_flight: Skip ticks while the job's previous run is in flight
            sleep: Awaitable used to wait between ticks
            clock: Source of timestamps for job stats
        """
        self.single_flight = single_flight
        self._sleep = sleep
        self._clock = clock
        self._jobs: Dict[str, JobHandle] = {}
        self._invocations: Set[asyncio.Task] = set()
        self._stopped = False

    @property
    def is_stopped(self) -> bool:
        return self._stopped

    @property
    def jobs(self) -> List[JobHandle]:
        return list(self._jobs.values())

    def register(self, name: str, interval: float, job_fn: JobFunc) -> JobHandle:
        """Install a timer that runs ``job_fn`` every ``interval`` seconds.

        The first run happens after one full interval. Must be called from
        inside a running event loop.

        Args:
            name: Unique job name
            interval: Seconds between runs
            job_fn: Sync or async callable without arguments

        Returns:
            Handle that can cancel this job alone

        Raises:
            RuntimeError: If the scheduler was stopped
            ValueError: If the name is taken or the interval is not positive
        """
        if self._stopped:
            raise RuntimeError("JobScheduler has been stopped")
        if name in self._jobs:
            raise ValueError(f"Job '{name}' is already registered")
        if interval <= 0:
            raise ValueError(f"Job '{name}' needs a positive interval, got {interval}")

        handle = JobHandle(name=name, interval=interval, job_fn=job_fn)
        handle._timer = asyncio.get_running_loop().create_task(
            self._run_timer(handle), name=f"job-timer:{name}"
        )
        self._jobs[name] = handle
        log_info(f"Job '{name}' registered every {interval:g}s")
        return handle

    def get(self, name: str) -> Optional[JobHandle]:
        return self._jobs.get(name)

    async def _run_timer(self, handle: JobHandle) -> None:
        while not self._stopped and not handle.cancelled:
            await self._sleep(handle.interval)
            if self._stopped or handle.cancelled:
                break

            if handle.in_flight and self.single_flight:
                handle.skipped_overlaps += 1
                log_warning(f"Job '{handle.name}' still running, skipping this tick")
                continue

            invocation = asyncio.create_task(self._invoke(handle), name=f"job:{handle.name}")
            self._invocations.add(invocation)
            invocation.add_done_callback(self._invocations.discard)
            # Let the invocation start before the next sleep
            await asyncio.sleep(0)

    async def _invoke(self, handle: JobHandle) -> None:
        handle._in_flight += 1
        handle.last_run_at = self._clock()
        try:
            await call_maybe_async(handle.job_fn)
            handle.runs += 1
            log_debug(f"Job '{handle.name}' completed")
        except asyncio.CancelledError:
            log_debug(f"Job '{handle.name}' cancelled")
            raise
        except Exception as e:
            handle.runs += 1
            handle.failures += 1
            handle.last_error = str(e)
            log_error(f"Job '{handle.name}' failed: {e}")
        finally:
            handle._in_flight -= 1

    async def stop(self, cancel_in_flight: bool = False) -> None:
        """Cancel every timer.

        No job starts after this returns. Running invocations are left to
        finish unless ``cancel_in_flight`` is set.
        """
        if self._stopped:
            return
        self._stopped = True

        timers = [job._timer for job in self._jobs.values() if job._timer is not None]
        for job in self._jobs.values():
            job.cancel()
        await asyncio.gather(*timers, return_exceptions=True)

        if cancel_in_flight:
            running = list(self._invocations)
            for task in running:
                task.cancel()
            await asyncio.gather(*running, return_exceptions=True)

        log_info(f"JobScheduler stopped ({len(self._jobs)} job(s) cancelled)")

    async def drain(self) -> None:
        """Wait for every in-flight invocation to finish."""
        while self._invocations:
            await asyncio.gather(*list(self._invocations), return_exceptions=True)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "stopped": self._stopped,
            "single_flight": self.single_flight,
            "jobs": {name: job.to_dict() for name, job in self._jobs.items()},
        }
