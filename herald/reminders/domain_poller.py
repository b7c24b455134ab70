"""Domain poller that turns due candidates into notifications.

One poller exists per reminder domain. Each tick reads the due, unnotified
candidates from the domain's collaborator, dispatches one notification per
candidate and then marks it notified, whether or not the send succeeded.
"""

import asyncio
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, List, Optional, Protocol

from herald.exceptions import CollaboratorReadError
from herald.models.reminders import ReminderCandidate, ReminderDomain
from herald.reminders.messages import MessageFormatter
from herald.reminders.notification_dispatcher import Notification, NotificationDispatcher
from herald.utils.asyncio_helpers import maybe_await
from herald.utils.logger import log_info, log_error, log_debug


class ReminderSource(Protocol):
    """Contract a domain collaborator offers to its poller.

    Both methods may return an awaitable.
    """

    def get_due(self, window: Optional[timedelta]) -> Any:
        """Due, unnotified candidates ordered by due time. Pure read."""
        ...

    def mark_notified(self, candidate_id: str) -> Any:
        """Set the notified flag. Idempotent."""
        ...


@dataclass
class PollResult:
    """Outcome of a single poller tick."""
    domain: str
    fetched: int = 0
    delivered: int = 0
    failed: int = 0
    marked: int = 0
    read_error: Optional[str] = None

    @property
    def skipped(self) -> bool:
        return self.read_error is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "domain": self.domain,
            "fetched": self.fetched,
            "delivered": self.delivered,
            "failed": self.failed,
            "marked": self.marked,
            "read_error": self.read_error,
        }


class DomainPoller:
    """Polls one domain collaborator and dispatches its due reminders."""

    def __init__(
        self,
        domain: ReminderDomain,
        source: ReminderSource,
        dispatcher: NotificationDispatcher,
        formatter: MessageFormatter,
        window: Optional[timedelta]
    ):
        """Initialize the poller.

        Args:
            domain: Domain this poller serves
            source: Collaborator owning the candidates
            dispatcher: Dispatcher used for every notification
            formatter: Builds the message body of a candidate
            window: Look-ahead window; None means "due today or earlier"
        """
        self.domain = domain
        self.source = source
        self.dispatcher = dispatcher
        self.formatter = formatter
        self.window = window

        # Serializes ticks so a candidate is read and marked by one tick at a time
        self._lock = asyncio.Lock()

        self._ticks = 0
        self._read_errors = 0
        self._delivered = 0
        self._failed = 0
        self._last_result: Optional[PollResult] = None

    @property
    def name(self) -> str:
        return f"{self.domain.value}_reminders"

    async def poll(self) -> PollResult:
        """Run one tick.

        Returns:
            What the tick fetched, delivered and marked
        """
        async with self._lock:
            result = await self._poll_once()

        self._ticks += 1
        self._delivered += result.delivered
        self._failed += result.failed
        if result.skipped:
            self._read_errors += 1
        self._last_result = result
        return result

    async def _poll_once(self) -> PollResult:
        result = PollResult(domain=self.domain.value)

        try:
            candidates = await self._fetch_due()
        except CollaboratorReadError as e:
            log_error(f"Skipping {self.domain.value} tick: {e}")
            result.read_error = str(e)
            return result

        result.fetched = len(candidates)
        if not candidates:
            log_debug(f"No due {self.domain.value} reminders")
            return result

        log_info(f"{len(candidates)} due {self.domain.value} reminder(s)")
        for candidate in candidates:
            await self._deliver(candidate, result)
        return result

    async def _fetch_due(self) -> List[ReminderCandidate]:
        try:
            candidates = await maybe_await(self.source.get_due(self.window))
        except Exception as e:
            raise CollaboratorReadError(self.domain.value, str(e)) from e
        return list(candidates or [])

    async def _deliver(self, candidate: ReminderCandidate, result: PollResult) -> None:
        try:
            body = self.formatter(candidate)
        except Exception as e:
            log_error(f"Could not format {self.domain.value} reminder {candidate.id}: {e}")
            body = f"🔔 Reminder ({self.domain.value}) due {candidate.due_at:%Y-%m-%d %H:%M}"

        notification = Notification(
            body=body,
            domain=self.domain.value,
            candidate_id=candidate.id,
            metadata={"due_at": candidate.due_at.isoformat()},
        )
        if await self.dispatcher.send(notification):
            result.delivered += 1
        else:
            result.failed += 1

        # Marked regardless of the send outcome: a failed send is not retried
        try:
            await maybe_await(self.source.mark_notified(candidate.id))
            result.marked += 1
        except Exception as e:
            log_error(f"Could not mark {self.domain.value} reminder {candidate.id} as notified: {e}")

    def get_stats(self) -> Dict[str, Any]:
        return {
            "window_minutes": self.window.total_seconds() / 60 if self.window is not None else None,
            "ticks": self._ticks,
            "read_errors": self._read_errors,
            "delivered": self._delivered,
            "failed": self._failed,
            "last_result": self._last_result.to_dict() if self._last_result else None,
        }
