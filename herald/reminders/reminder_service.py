"""Reminder service that coordinates the pollers and their schedule.

This module provides the ReminderService class that builds one DomainPoller
per reminder domain and registers it, together with the headline refresh
job, on a JobScheduler.
"""

import asyncio
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, Optional

from herald.config.config import PollerConfig, RemindersConfig
from herald.models.reminders import ReminderDomain
from herald.reminders.domain_poller import DomainPoller, PollResult, ReminderSource
from herald.reminders.job_scheduler import JobScheduler
from herald.reminders.messages import FORMATTERS
from herald.reminders.notification_dispatcher import NotificationDispatcher
from herald.sources.memory import HeadlineStore
from herald.utils.asyncio_helpers import SleepFunc
from herald.utils.logger import log_info, log_debug


@dataclass
class ReminderSources:
    """Collaborators polled by the reminder service."""
    calendar: ReminderSource
    tasks: ReminderSource
    price_alerts: ReminderSource
    documents: ReminderSource
    headlines: Optional[HeadlineStore] = None

    def for_domain(self, domain: ReminderDomain) -> ReminderSource:
        return getattr(self, domain.value)


def _window(poller_config: PollerConfig) -> Optional[timedelta]:
    if poller_config.window_minutes is None:
        return None
    return timedelta(minutes=poller_config.window_minutes)


class ReminderService:
    """Main service for scheduled reminders.

    This service:
    - Builds a poller for every reminder domain
    - Registers enabled pollers on its JobScheduler with their own cadence
    - Manages service lifecycle (start/stop)
    """

    def __init__(
        self,
        sources: ReminderSources,
        dispatcher: NotificationDispatcher,
        config: RemindersConfig,
        sleep: SleepFunc = asyncio.sleep
    ):
        """Initialize the reminder service.

        Args:
            sources: Domain collaborators
            dispatcher: Dispatcher shared by every poller
            config: Reminders configuration
            sleep: Awaitable the scheduler waits with
        """
        self.sources = sources
        self.dispatcher = dispatcher
        self.config = config
        self._sleep = sleep

        self.pollers: Dict[ReminderDomain, DomainPoller] = {}
        for domain in ReminderDomain:
            poller_config: PollerConfig = getattr(config, domain.value)
            self.pollers[domain] = DomainPoller(
                domain=domain,
                source=sources.for_domain(domain),
                dispatcher=dispatcher,
                formatter=FORMATTERS[domain],
                window=_window(poller_config),
            )

        self.scheduler: Optional[JobScheduler] = None
        self._is_started = False

        log_info("ReminderService initialized")

    @property
    def is_started(self) -> bool:
        return self._is_started

    async def start(self) -> None:
        """Register every enabled job on a fresh scheduler."""
        if self._is_started:
            log_debug("ReminderService already started")
            return

        if not self.config.enabled:
            log_info("Reminders disabled in configuration")
            return

        self.scheduler = JobScheduler(single_flight=self.config.single_flight, sleep=self._sleep)

        for domain, poller in self.pollers.items():
            poller_config: PollerConfig = getattr(self.config, domain.value)
            if not poller_config.enabled:
                log_info(f"{domain.value} reminders disabled")
                continue
            self.scheduler.register(poller.name, poller_config.interval_seconds, poller.poll)

        if self.sources.headlines is not None and self.config.headlines_refresh_seconds:
            self.scheduler.register(
                "headlines_refresh",
                self.config.headlines_refresh_seconds,
                self.sources.headlines.refresh,
            )

        self._is_started = True
        log_info("ReminderService started successfully")

    async def stop(self, cancel_in_flight: bool = False) -> None:
        """Stop all scheduled jobs."""
        if not self._is_started:
            return

        await self.scheduler.stop(cancel_in_flight=cancel_in_flight)

        self._is_started = False
        log_info("ReminderService stopped")

    async def poll_now(self, domain: ReminderDomain) -> PollResult:
        """Run one tick of a domain's poller outside its schedule."""
        log_info(f"Manual {domain.value} poll requested")
        return await self.pollers[domain].poll()

    def get_stats(self) -> Dict[str, Any]:
        """Get reminder service statistics.

        Returns:
            Dictionary with service, poller and scheduler stats
        """
        return {
            "is_started": self._is_started,
            "enabled": self.config.enabled,
            "pollers": {domain.value: poller.get_stats() for domain, poller in self.pollers.items()},
            "scheduler": self.scheduler.get_stats() if self.scheduler else None,
            "dispatcher": self.dispatcher.get_stats(),
        }

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()
