"""Reminders module: scheduled domain polling and notification delivery."""

from herald.reminders.reminder_service import ReminderService, ReminderSources
from herald.reminders.domain_poller import DomainPoller, PollResult
from herald.reminders.job_scheduler import JobScheduler, JobHandle
from herald.reminders.notification_dispatcher import NotificationDispatcher, Notification

__all__ = [
    'ReminderService',
    'ReminderSources',
    'DomainPoller',
    'PollResult',
    'JobScheduler',
    'JobHandle',
    'NotificationDispatcher',
    'Notification',
]
