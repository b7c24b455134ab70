"""In-memory domain collaborators.

Each store owns one domain's records and exposes the read/mark contract the
pollers and briefing sections rely on. ``get_due`` is a pure read ordered by
due time; ``mark_notified`` only ever flips the notified flag to true.
"""

from datetime import date, datetime, time, timedelta
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Tuple, Union

from dateutil.relativedelta import relativedelta

from herald.models.reminders import (
    AlertDirection,
    CalendarEvent,
    Contact,
    Expense,
    Headline,
    PriceAlert,
    Quote,
    ReminderCandidate,
    ReminderDomain,
    Task,
    TaskPriority,
    TravelDocument,
)
from herald.utils.asyncio_helpers import maybe_await
from herald.utils.logger import log_debug, log_info


Clock = Callable[[], datetime]


def due_cutoff(now: datetime, window: Optional[timedelta]) -> datetime:
    """Latest due time that is eligible at ``now``.

    A ``None`` window means "due today or earlier": everything up to the end
    of the current day.
    """
    if window is None:
        return datetime.combine(now.date(), time.max)
    return now + window


class CalendarStore:
    """Calendar events keyed by id."""

    def __init__(self, events: Optional[Iterable[CalendarEvent]] = None, clock: Clock = datetime.now):
        self._events: Dict[str, CalendarEvent] = {}
        self._clock = clock
        for event in events or []:
            self.add(event)

    def add(self, event: CalendarEvent) -> None:
        self._events[event.id] = event

    def get(self, event_id: str) -> Optional[CalendarEvent]:
        return self._events.get(event_id)

    def get_due(self, window: Optional[timedelta]) -> List[ReminderCandidate]:
        """Events starting within the window whose reminder was not sent yet."""
        cutoff = due_cutoff(self._clock(), window)
        due = [
            event for event in self._events.values()
            if not event.reminder_sent and event.start <= cutoff
        ]
        due.sort(key=lambda event: event.start)
        return [
            ReminderCandidate(
                id=event.id,
                due_at=event.start,
                domain=ReminderDomain.CALENDAR,
                payload={"title": event.title, "location": event.location},
            )
            for event in due
        ]

    def mark_notified(self, candidate_id: str) -> bool:
        event = self._events.get(candidate_id)
        if event is None:
            log_debug(f"Calendar event {candidate_id} not found while marking notified")
            return False
        event.reminder_sent = True
        return True

    def events_for_day(self, day: date) -> List[CalendarEvent]:
        events = [event for event in self._events.values() if event.start.date() == day]
        return sorted(events, key=lambda event: event.start)


_PRIORITY_ORDER = {TaskPriority.HIGH: 0, TaskPriority.MEDIUM: 1, TaskPriority.LOW: 2}


class TaskStore:
    """Tasks keyed by id."""

    def __init__(self, tasks: Optional[Iterable[Task]] = None, clock: Clock = datetime.now):
        self._tasks: Dict[str, Task] = {}
        self._clock = clock
        for task in tasks or []:
            self.add(task)

    def add(self, task: Task) -> None:
        self._tasks[task.id] = task

    def get(self, task_id: str) -> Optional[Task]:
        return self._tasks.get(task_id)

    def complete(self, task_id: str, at: Optional[datetime] = None) -> None:
        self._tasks[task_id].completed_at = at or self._clock()

    def get_due(self, window: Optional[timedelta]) -> List[ReminderCandidate]:
        """Open tasks whose reminder time falls before the cutoff.

        An explicit ``remind_at`` is a point in time: it is due once reached,
        or within ``window`` when one is set. Date-only tasks use the day
        cutoff, so a ``None`` window covers everything due today or earlier.
        """
        now = self._clock()
        timed_cutoff = now if window is None else now + window
        day_cutoff = due_cutoff(now, window)
        due: List[Tuple[datetime, Task]] = []
        for task in self._tasks.values():
            if task.reminder_sent or task.is_completed:
                continue
            if task.remind_at is not None:
                if task.remind_at <= timed_cutoff:
                    due.append((task.remind_at, task))
            elif task.due_date is not None:
                remind_at = datetime.combine(task.due_date, time.min)
                if remind_at <= day_cutoff:
                    due.append((remind_at, task))
        due.sort(key=lambda item: item[0])
        return [
            ReminderCandidate(
                id=task.id,
                due_at=remind_at,
                domain=ReminderDomain.TASKS,
                payload={
                    "title": task.title,
                    "due_date": task.due_date.isoformat() if task.due_date else None,
                    "priority": task.priority.value,
                },
            )
            for remind_at, task in due
        ]

    def mark_notified(self, candidate_id: str) -> bool:
        task = self._tasks.get(candidate_id)
        if task is None:
            log_debug(f"Task {candidate_id} not found while marking notified")
            return False
        task.reminder_sent = True
        return True

    def due_on(self, day: date) -> List[Task]:
        tasks = [
            task for task in self._tasks.values()
            if not task.is_completed and task.due_date == day
        ]
        return sorted(tasks, key=lambda task: (_PRIORITY_ORDER[task.priority], task.title))

    def overdue(self, today: date) -> List[Task]:
        tasks = [
            task for task in self._tasks.values()
            if not task.is_completed and task.due_date is not None and task.due_date < today
        ]
        return sorted(tasks, key=lambda task: task.due_date)

    def completed_since(self, moment: datetime) -> List[Task]:
        tasks = [
            task for task in self._tasks.values()
            if task.completed_at is not None and task.completed_at >= moment
        ]
        return sorted(tasks, key=lambda task: task.completed_at)

    def high_priority_pending(self, limit: int = 5) -> List[Task]:
        tasks = [
            task for task in self._tasks.values()
            if not task.is_completed and task.priority == TaskPriority.HIGH
        ]
        tasks.sort(key=lambda task: (task.due_date is None, task.due_date or date.max))
        return tasks[:limit]


class PriceAlertStore:
    """Price alerts plus the latest quote of every watched symbol."""

    def __init__(
        self,
        alerts: Optional[Iterable[PriceAlert]] = None,
        quotes: Optional[Iterable[Quote]] = None,
        clock: Clock = datetime.now
    ):
        self._alerts: Dict[str, PriceAlert] = {}
        self._quotes: Dict[str, Quote] = {}
        self._clock = clock
        for alert in alerts or []:
            self.add_alert(alert)
        for quote in quotes or []:
            self._quotes[quote.symbol.upper()] = quote

    def add_alert(self, alert: PriceAlert) -> None:
        alert.symbol = alert.symbol.upper()
        self._alerts[alert.id] = alert

    def record_quote(
        self,
        symbol: str,
        price: float,
        change_percent: float = 0.0,
        observed_at: Optional[datetime] = None
    ) -> Quote:
        quote = Quote(
            symbol=symbol.upper(),
            price=price,
            change_percent=change_percent,
            observed_at=observed_at or self._clock(),
        )
        self._quotes[quote.symbol] = quote
        return quote

    @staticmethod
    def _is_crossed(alert: PriceAlert, quote: Quote) -> bool:
        if alert.direction == AlertDirection.ABOVE:
            return quote.price >= alert.threshold
        return quote.price <= alert.threshold

    def get_due(self, window: Optional[timedelta]) -> List[ReminderCandidate]:
        """Untriggered alerts whose threshold the latest quote has crossed."""
        cutoff = due_cutoff(self._clock(), window)
        due = []
        for alert in self._alerts.values():
            quote = self._quotes.get(alert.symbol)
            if alert.triggered or quote is None:
                continue
            if quote.observed_at <= cutoff and self._is_crossed(alert, quote):
                due.append((quote, alert))
        due.sort(key=lambda item: item[0].observed_at)
        return [
            ReminderCandidate(
                id=alert.id,
                due_at=quote.observed_at,
                domain=ReminderDomain.PRICE_ALERTS,
                payload={
                    "symbol": alert.symbol,
                    "threshold": alert.threshold,
                    "direction": alert.direction.value,
                    "current_price": quote.price,
                },
            )
            for quote, alert in due
        ]

    def mark_notified(self, candidate_id: str) -> bool:
        alert = self._alerts.get(candidate_id)
        if alert is None:
            log_debug(f"Price alert {candidate_id} not found while marking notified")
            return False
        alert.triggered = True
        return True

    def watchlist(self) -> List[Quote]:
        return sorted(self._quotes.values(), key=lambda quote: quote.symbol)


class DocumentStore:
    """Travel documents keyed by id."""

    def __init__(self, documents: Optional[Iterable[TravelDocument]] = None, clock: Clock = datetime.now):
        self._documents: Dict[str, TravelDocument] = {}
        self._clock = clock
        for document in documents or []:
            self.add(document)

    def add(self, document: TravelDocument) -> None:
        self._documents[document.id] = document

    def get_due(self, window: Optional[timedelta]) -> List[ReminderCandidate]:
        """Documents expiring before the cutoff, including already expired ones."""
        now = self._clock()
        cutoff = due_cutoff(now, window)
        due = []
        for document in self._documents.values():
            expires_at = datetime.combine(document.expiry_date, time.min)
            if not document.reminder_sent and expires_at <= cutoff:
                due.append((expires_at, document))
        due.sort(key=lambda item: item[0])
        return [
            ReminderCandidate(
                id=document.id,
                due_at=expires_at,
                domain=ReminderDomain.DOCUMENTS,
                payload={
                    "doc_type": document.doc_type,
                    "number": document.number,
                    "expiry_date": document.expiry_date.isoformat(),
                    "days_left": (document.expiry_date - now.date()).days,
                },
            )
            for expires_at, document in due
        ]

    def mark_notified(self, candidate_id: str) -> bool:
        document = self._documents.get(candidate_id)
        if document is None:
            log_debug(f"Document {candidate_id} not found while marking notified")
            return False
        document.reminder_sent = True
        return True


HeadlineFetcher = Callable[[], Union[Iterable[Headline], Awaitable[Iterable[Headline]]]]


class HeadlineStore:
    """Headline cache refreshed by a periodic job."""

    def __init__(self, headlines: Optional[Iterable[Headline]] = None, fetcher: Optional[HeadlineFetcher] = None):
        self._headlines: Dict[str, Headline] = {}
        self._fetcher = fetcher
        for headline in headlines or []:
            self._headlines[headline.id] = headline

    async def refresh(self) -> int:
        """Pull fresh headlines from the fetcher; returns how many were new."""
        if self._fetcher is None:
            return 0
        fetched = await maybe_await(self._fetcher())
        added = 0
        for headline in fetched:
            if headline.id not in self._headlines:
                self._headlines[headline.id] = headline
                added += 1
        log_info(f"Headline refresh cached {added} new item(s)")
        return added

    def latest(self, unread: bool = True, limit: int = 5) -> List[Headline]:
        headlines = [h for h in self._headlines.values() if not (unread and h.read)]
        headlines.sort(key=lambda h: h.published_at or datetime.min, reverse=True)
        return headlines[:limit]


class ContactStore:
    """Contacts with birthdays."""

    def __init__(self, contacts: Optional[Iterable[Contact]] = None):
        self._contacts: Dict[str, Contact] = {c.id: c for c in contacts or []}

    def upcoming_anniversaries(self, today: date, days: int = 7) -> List[Tuple[Contact, date]]:
        """Contacts whose next birthday falls within ``days`` of ``today``."""
        upcoming = []
        for contact in self._contacts.values():
            if contact.birthday is None:
                continue
            # relativedelta clamps Feb 29 to Feb 28 in common years
            next_date = contact.birthday + relativedelta(year=today.year)
            if next_date < today:
                next_date = contact.birthday + relativedelta(year=today.year + 1)
            if (next_date - today).days <= days:
                upcoming.append((contact, next_date))
        return sorted(upcoming, key=lambda item: item[1])


class ExpenseStore:
    """Expenses plus the monthly budget."""

    def __init__(self, expenses: Optional[Iterable[Expense]] = None, monthly_budget: Optional[float] = None):
        self._expenses: List[Expense] = list(expenses or [])
        self._monthly_budget = monthly_budget

    def add(self, expense: Expense) -> None:
        self._expenses.append(expense)

    def month_total(self, today: date) -> float:
        month_start = today + relativedelta(day=1)
        return sum(
            expense.amount for expense in self._expenses
            if month_start <= expense.spent_on <= today
        )

    def monthly_budget(self) -> Optional[float]:
        return self._monthly_budget


class DestinationRegistry:
    """Broadcast destinations discovered at runtime, in discovery order."""

    def __init__(self, destinations: Optional[Iterable[str]] = None):
        self._destinations: Dict[str, Optional[str]] = {}
        for destination in destinations or []:
            self.track(destination)

    def track(self, destination_id: str, title: Optional[str] = None) -> bool:
        """Record a destination; returns True when it was not known before."""
        is_new = destination_id not in self._destinations
        if is_new or title:
            self._destinations[destination_id] = title or self._destinations.get(destination_id)
        if is_new:
            log_info(f"New broadcast destination: {title or destination_id}")
        return is_new

    def title_of(self, destination_id: str) -> Optional[str]:
        return self._destinations.get(destination_id)

    def list_destinations(self) -> List[str]:
        return list(self._destinations)

    def discard(self, destination_id: str) -> None:
        self._destinations.pop(destination_id, None)

    def __len__(self) -> int:
        return len(self._destinations)
