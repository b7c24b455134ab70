"""Application orchestration for programmatic access.

This module centralizes startup/shutdown of herald so it can be reused by
different front-ends (headless daemon, HTTP API, tests).
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Deque, Dict, List, Optional

from dateutil import tz

from herald.briefing.briefings import build_composers
from herald.briefing.report_composer import BriefingReport, ReportComposer
from herald.broadcast.broadcast_scheduler import BroadcastScheduler
from herald.channels.base import NotificationChannel
from herald.channels.telegram import TelegramChannel
from herald.config.config import AppConfig, load_config, validate_config
from herald.models.reminders import ReminderDomain
from herald.reminders.domain_poller import PollResult
from herald.reminders.notification_dispatcher import Notification, NotificationDispatcher
from herald.reminders.reminder_service import ReminderService, ReminderSources
from herald.sources.seed import DomainStores, build_stores, load_seed_file
from herald.utils.asyncio_helpers import SleepFunc
from herald.utils.logger import log_error, log_info, log_warning, setup_logging


@dataclass
class NotificationRecord:
    """Container for captured notifications."""

    message: str
    domain: str
    destination: str
    created_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "domain": self.domain,
            "destination": self.destination,
            "created_at": self.created_at.isoformat(),
        }


def make_clock(timezone_name: str) -> Callable[[], datetime]:
    """Wall-clock time in ``timezone_name`` as a naive datetime."""
    zone = tz.gettz(timezone_name)
    if zone is None:
        log_warning(f"Unknown timezone '{timezone_name}', using local time")
        zone = tz.tzlocal()

    def now() -> datetime:
        return datetime.now(zone).replace(tzinfo=None)

    return now


class HeraldApp:
    """Coordinates the reminder, briefing and broadcast services."""

    def __init__(
        self,
        config_path: Optional[Path] = None,
        *,
        config: Optional[AppConfig] = None,
        stores: Optional[DomainStores] = None,
        channel: Optional[NotificationChannel] = None,
        destination: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None,
        sleep: SleepFunc = asyncio.sleep
    ) -> None:
        """Initialize the application.

        Everything except ``config_path`` exists for embedding and tests;
        omitted collaborators are built from the configuration at startup.
        """
        self._config_path = config_path
        self._config = config
        self._stores = stores
        self._channel = channel
        self._owns_channel = False
        self._destination = destination
        self._clock = clock
        self._sleep = sleep

        self._dispatcher: Optional[NotificationDispatcher] = None
        self._reminder_service: Optional[ReminderService] = None
        self._broadcast: Optional[BroadcastScheduler] = None
        self._composers: Dict[str, ReportComposer] = {}

        self._startup_lock = asyncio.Lock()
        self._is_started = False

        # Notification handling
        self._notification_queue: asyncio.Queue[NotificationRecord] = asyncio.Queue(maxsize=100)
        self._notification_history: Deque[NotificationRecord] = deque(maxlen=100)
        self._external_notification_callback: Optional[Callable[[str], None]] = None

    @property
    def config(self) -> AppConfig:
        if not self._config:
            raise RuntimeError("HeraldApp not started yet; config unavailable")
        return self._config

    @property
    def stores(self) -> DomainStores:
        if not self._stores:
            raise RuntimeError("HeraldApp not started yet; stores unavailable")
        return self._stores

    @property
    def reminder_service(self) -> ReminderService:
        if not self._reminder_service:
            raise RuntimeError("HeraldApp not started yet; reminder service unavailable")
        return self._reminder_service

    @property
    def dispatcher(self) -> NotificationDispatcher:
        if not self._dispatcher:
            raise RuntimeError("HeraldApp not started yet; dispatcher unavailable")
        return self._dispatcher

    @property
    def broadcast(self) -> Optional[BroadcastScheduler]:
        return self._broadcast

    @property
    def briefing_variants(self) -> List[str]:
        return list(self._composers)

    @property
    def is_started(self) -> bool:
        return self._is_started

    async def startup(self) -> None:
        """Load configuration and start the background services."""

        async with self._startup_lock:
            if self._is_started:
                return

            if self._config is None:
                self._config = load_config(self._config_path)
            config = self._config
            setup_logging(
                level=config.logging.level,
                show_timestamps=config.logging.show_timestamps,
                log_file=config.logging.file,
            )
            log_info("HeraldApp startup: configuration loaded")
            for problem in validate_config(config):
                log_warning(f"Config: {problem}")

            if self._clock is None:
                self._clock = make_clock(config.briefing.timezone)

            if self._stores is None:
                seed = load_seed_file(config.sources.seed_file) if config.sources.seed_file else None
                self._stores = build_stores(seed, clock=self._clock)

            if self._channel is None and config.channel.bot_token:
                self._channel = TelegramChannel(
                    bot_token=config.channel.bot_token,
                    api_base_url=config.channel.api_base_url,
                    timeout_seconds=config.channel.timeout_seconds,
                    parse_mode=config.channel.parse_mode,
                )
                self._owns_channel = True

            self._dispatcher = NotificationDispatcher(
                channel=self._channel,
                destination=self._destination or config.channel.chat_id,
                policy=config.delivery,
                sleep=self._sleep,
            )
            self._dispatcher.add_listener(self._handle_notification)

            log_info("HeraldApp startup: starting reminder service")
            self._reminder_service = ReminderService(
                sources=ReminderSources(
                    calendar=self._stores.calendar,
                    tasks=self._stores.tasks,
                    price_alerts=self._stores.price_alerts,
                    documents=self._stores.documents,
                    headlines=self._stores.headlines,
                ),
                dispatcher=self._dispatcher,
                config=config.reminders,
                sleep=self._sleep,
            )
            await self._reminder_service.start()

            self._composers = build_composers(self._stores, config.briefing, clock=self._clock)

            if config.broadcast.enabled:
                if self._channel is None:
                    log_warning("Broadcast enabled but no channel is configured; loop not started")
                else:
                    log_info("HeraldApp startup: starting broadcast loop")
                    self._broadcast = BroadcastScheduler.from_config(
                        config.broadcast,
                        list_destinations=self._stores.destinations.list_destinations,
                        channel=self._channel,
                        on_evict=self._stores.destinations.discard,
                        sleep=self._sleep,
                    )
                    await self._broadcast.start()

            self._is_started = True
            log_info("HeraldApp startup complete")

    async def shutdown(self) -> None:
        """Gracefully shut down services."""

        if not self._is_started:
            return

        log_info("HeraldApp shutdown: stopping services")

        if self._broadcast:
            try:
                await self._broadcast.stop()
            except Exception as exc:  # pragma: no cover - best effort cleanup
                log_error(f"Error stopping broadcast loop: {exc}")

        if self._reminder_service:
            try:
                await self._reminder_service.stop()
            except Exception as exc:  # pragma: no cover - best effort cleanup
                log_error(f"Error stopping ReminderService: {exc}")

        if self._owns_channel and isinstance(self._channel, TelegramChannel):
            try:
                await self._channel.close()
            except Exception as exc:  # pragma: no cover - best effort cleanup
                log_error(f"Error closing Telegram channel: {exc}")

        self._is_started = False
        log_info("HeraldApp shutdown complete")

    def _composer(self, variant: str) -> ReportComposer:
        composer = self._composers.get(variant)
        if composer is None:
            raise ValueError(f"Unknown briefing variant: {variant}")
        return composer

    async def compose_briefing(self, variant: str) -> BriefingReport:
        """Compose a briefing without sending it."""

        if not self._is_started:
            await self.startup()

        return await self._composer(variant).compose()

    async def send_briefing(self, variant: str) -> Dict[str, Any]:
        """Compose a briefing and deliver it to the configured destination."""

        report = await self.compose_briefing(variant)
        delivered = await self.dispatcher.send(Notification(
            body=report.render(),
            domain="briefing",
            metadata={"variant": variant},
        ))
        return {
            "variant": variant,
            "delivered": delivered,
            "sections": [section.key for section in report.ok_sections],
            "failed_sections": [section.key for section in report.failed_sections],
        }

    async def poll_now(self, domain: ReminderDomain) -> PollResult:
        """Run one poller tick outside its schedule."""

        if not self._is_started:
            await self.startup()

        return await self.reminder_service.poll_now(domain)

    def track_destination(self, destination_id: str, title: Optional[str] = None) -> bool:
        """Record a broadcast destination; returns True when it is new."""

        return self.stores.destinations.track(destination_id, title)

    def get_stats(self) -> Dict[str, Any]:
        """Return reminder, delivery and broadcast statistics."""

        if not self._reminder_service:
            raise RuntimeError("HeraldApp not started yet; stats unavailable")

        return {
            "reminders": self._reminder_service.get_stats(),
            "broadcast": self._broadcast.get_stats() if self._broadcast else None,
            "destinations": len(self.stores.destinations),
        }

    async def get_notifications(self, *, limit: int = 20, flush: bool = True) -> List[Dict[str, Any]]:
        """Retrieve delivered notifications captured so far.

        Args:
            limit: Maximum number of notifications to return
            flush: If True, consume pending notifications; otherwise return recent history
        """

        if flush:
            notifications: List[Dict[str, Any]] = []
            for _ in range(limit):
                try:
                    record = self._notification_queue.get_nowait()
                except asyncio.QueueEmpty:
                    break
                notifications.append(record.to_dict())

            if notifications:
                return notifications

        # Fallback to history snapshot
        history_sample = list(self._notification_history)[:limit]
        return [record.to_dict() for record in history_sample]

    def register_notification_callback(self, callback: Callable[[str], None]) -> None:
        """Register an additional callback for real-time notifications."""

        self._external_notification_callback = callback

    def snapshot(self) -> Dict[str, Any]:
        """Return a health snapshot of the application state."""

        return {
            "is_started": self._is_started,
            "config_loaded": self._config is not None,
            "channel_configured": self._dispatcher.is_configured if self._dispatcher else False,
            "reminders_running": self._reminder_service.is_started if self._reminder_service else False,
            "broadcast_running": self._broadcast.is_running if self._broadcast else False,
            "briefings": self.briefing_variants,
        }

    def _handle_notification(self, destination: str, notification: Notification) -> None:
        """Capture notifications delivered by the dispatcher."""

        record = NotificationRecord(
            message=notification.body,
            domain=notification.domain,
            destination=destination,
            created_at=self._clock() if self._clock else datetime.now(),
        )

        self._notification_history.appendleft(record)

        try:
            self._notification_queue.put_nowait(record)
        except asyncio.QueueFull:
            # Drop the oldest pending item to make room and retry
            try:
                _ = self._notification_queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            else:
                self._notification_queue.put_nowait(record)

        if self._external_notification_callback:
            try:
                self._external_notification_callback(notification.body)
            except Exception as exc:  # pragma: no cover - callback should not break flow
                log_error(f"External notification callback failed: {exc}")
