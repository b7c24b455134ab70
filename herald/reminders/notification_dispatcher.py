"""Notification dispatcher for delivering reminders to the user.

This module sends one formatted message at a time to the single configured
destination. Delivery is best effort: transport failures are logged and
swallowed here, so pollers never see an exception from a send.
"""

import asyncio
from datetime import datetime
from typing import Callable, Optional, List, Dict, Any
from dataclasses import dataclass, field

from herald.channels.base import NotificationChannel
from herald.config.config import DeliveryConfig
from herald.utils.asyncio_helpers import SleepFunc
from herald.utils.logger import log_info, log_error, log_debug, log_warning


@dataclass
class Notification:
    """A notification to be sent to the user."""
    body: str
    domain: str  # "calendar", "tasks", "briefing", ...
    candidate_id: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)
    metadata: Dict[str, Any] = field(default_factory=dict)


NotificationListener = Callable[[str, Notification], None]


class NotificationDispatcher:
    """Delivers notifications through one channel to one destination.

    ``send`` never raises. With no channel or no destination configured it
    is a no-op. The retry policy defaults to a single attempt.
    """

    def __init__(
        self,
        channel: Optional[NotificationChannel],
        destination: Optional[str],
        policy: Optional[DeliveryConfig] = None,
        sleep: SleepFunc = asyncio.sleep
    ):
        """Initialize the notification dispatcher.

        Args:
            channel: Outbound channel, or None to drop everything
            destination: Chat/recipient that receives every notification
            policy: Retry policy; defaults to fire-and-forget
            sleep: Awaitable used for retry backoff
        """
        self.channel = channel
        self.destination = destination
        self.policy = policy or DeliveryConfig()
        self._sleep = sleep
        self._listeners: List[NotificationListener] = []

        self._sent = 0
        self._failed = 0
        self._dropped = 0

        if not self.is_configured:
            log_warning("NotificationDispatcher has no channel or destination; notifications will be dropped")
        else:
            log_debug(f"NotificationDispatcher initialized for destination {destination}")

    @property
    def is_configured(self) -> bool:
        return self.channel is not None and bool(self.destination)

    def add_listener(self, listener: NotificationListener) -> None:
        """Register a callback invoked after every successful delivery.

        Args:
            listener: Function called with (destination, notification)
        """
        self._listeners.append(listener)

    async def send(self, notification: Notification) -> bool:
        """Deliver a notification, swallowing any failure.

        Args:
            notification: Notification to deliver

        Returns:
            True if the channel accepted the message
        """
        if not self.is_configured:
            self._dropped += 1
            log_debug(f"No destination configured, dropping {notification.domain} notification")
            return False

        attempts = 1 + self.policy.retry_count
        delay = self.policy.backoff_seconds

        for attempt in range(1, attempts + 1):
            try:
                await self.channel.send(self.destination, notification.body)
            except Exception as e:
                if attempt < attempts:
                    log_warning(
                        f"Delivery attempt {attempt}/{attempts} failed for "
                        f"{notification.domain} notification: {e}; retrying in {delay:.1f}s"
                    )
                    await self._sleep(delay)
                    delay *= self.policy.backoff_multiplier
                    continue
                self._failed += 1
                log_error(f"Failed to deliver {notification.domain} notification: {e}")
                return False
            else:
                self._sent += 1
                log_info(f"Notification sent ({notification.domain}): {notification.body[:50]!r}")
                self._notify_listeners(notification)
                return True

        return False

    async def send_text(self, text: str, domain: str = "message") -> bool:
        """Convenience wrapper for ad-hoc messages such as briefings."""
        return await self.send(Notification(body=text, domain=domain))

    def _notify_listeners(self, notification: Notification) -> None:
        for listener in self._listeners:
            try:
                listener(self.destination, notification)
            except Exception as e:
                log_error(f"Notification listener failed: {e}")

    def get_stats(self) -> Dict[str, Any]:
        """Get delivery counters.

        Returns:
            Dictionary with sent/failed/dropped counts
        """
        return {
            "configured": self.is_configured,
            "sent": self._sent,
            "failed": self._failed,
            "dropped": self._dropped,
            "retry_count": self.policy.retry_count,
        }
