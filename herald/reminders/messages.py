"""Message bodies for reminder notifications (Telegram HTML)."""

from html import escape
from typing import Callable, Dict

from herald.models.reminders import ReminderCandidate, ReminderDomain


MessageFormatter = Callable[[ReminderCandidate], str]


def format_calendar_reminder(candidate: ReminderCandidate) -> str:
    title = escape(candidate.payload.get("title") or "Untitled event")
    time_str = candidate.due_at.strftime("%H:%M")
    message = f"🔔 <b>Calendar Reminder</b>\n\n<b>{title}</b> at {time_str}"
    location = candidate.payload.get("location")
    if location:
        message += f"\n📍 {escape(location)}"
    return message


def format_task_reminder(candidate: ReminderCandidate) -> str:
    title = escape(candidate.payload.get("title") or "Untitled task")
    message = f"🔔 <b>Task Reminder</b>\n\n<b>{title}</b>"
    due_date = candidate.payload.get("due_date")
    if due_date:
        message += f"\n📅 Due: {escape(due_date)}"
    return message


def format_price_alert(candidate: ReminderCandidate) -> str:
    payload = candidate.payload
    above = payload.get("direction") == "above"
    emoji = "📈" if above else "📉"
    return (
        f"{emoji} <b>Stock Alert: {escape(payload['symbol'])}</b>\n\n"
        f"Price {'above' if above else 'below'} ${payload['threshold']:.2f}\n"
        f"Current: <b>${payload['current_price']:.2f}</b>"
    )


def format_document_expiry(candidate: ReminderCandidate) -> str:
    payload = candidate.payload
    days_left = payload.get("days_left")
    if days_left is None:
        when = ""
    elif days_left < 0:
        when = f" (expired {-days_left} days ago)"
    else:
        when = f" ({days_left} days)"
    return (
        f"⚠️ <b>Document Expiring Soon</b>\n\n"
        f"<b>{escape(payload.get('doc_type') or 'Document')}</b>: {escape(payload.get('number') or 'N/A')}\n"
        f"Expires: {escape(payload['expiry_date'])}{when}"
    )


FORMATTERS: Dict[ReminderDomain, MessageFormatter] = {
    ReminderDomain.CALENDAR: format_calendar_reminder,
    ReminderDomain.TASKS: format_task_reminder,
    ReminderDomain.PRICE_ALERTS: format_price_alert,
    ReminderDomain.DOCUMENTS: format_document_expiry,
}
