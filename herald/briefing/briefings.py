"""Day-start and day-end briefing variants.

Both variants are plain ReportComposer instances; they only differ in the
sections they include and the collaborator queries behind them.
"""

from datetime import date, datetime, time
from html import escape
from typing import Callable, Dict, List

from dateutil.relativedelta import relativedelta

from herald.briefing.report_composer import ReportComposer, SectionSpec
from herald.config.config import BriefingConfig
from herald.models.reminders import TaskPriority
from herald.sources.seed import DomainStores


DAY_START = "day_start"
DAY_END = "day_end"

_RULE = "━━━━━━━━━━━━━━━━━━━━"

_PRIORITY_MARKS = {
    TaskPriority.HIGH: "🔴",
    TaskPriority.MEDIUM: "🟡",
    TaskPriority.LOW: "🟢",
}


def _event_lines(events) -> List[str]:
    return [f"  • {event.start:%H:%M} {escape(event.title)}" for event in events]


def build_day_start_composer(
    stores: DomainStores,
    config: BriefingConfig,
    clock: Callable[[], datetime] = datetime.now
) -> ReportComposer:
    """Morning briefing: schedule, tasks, markets, headlines, anniversaries."""
    limit = config.list_limit

    def today() -> date:
        return clock().date()

    def render_overdue(tasks) -> List[str]:
        return [f"  • {escape(t.title)} ({t.due_date.isoformat()})" for t in tasks[:limit]]

    def render_due(tasks) -> List[str]:
        return [f"  {_PRIORITY_MARKS[t.priority]} {escape(t.title)}" for t in tasks]

    def render_markets(quotes) -> List[str]:
        lines = []
        for quote in quotes[:limit]:
            arrow = "▲" if quote.change_percent >= 0 else "▼"
            sign = "+" if quote.change_percent >= 0 else ""
            lines.append(
                f"  {escape(quote.symbol)}: ${quote.price:.2f} {arrow}{sign}{quote.change_percent:.1f}%"
            )
        return lines

    def render_headlines(headlines) -> List[str]:
        return [f"  • {escape(h.title)}" for h in headlines]

    def render_anniversaries(upcoming) -> List[str]:
        return [f"  • {escape(contact.name)} ({day:%b %d})" for contact, day in upcoming]

    sections = [
        SectionSpec(
            key="schedule",
            title="📅 Today's Schedule",
            fetch=lambda: stores.calendar.events_for_day(today()),
            render=_event_lines,
            placeholder="No events scheduled",
        ),
        SectionSpec(
            key="overdue_tasks",
            title="🔴 Overdue Tasks",
            fetch=lambda: stores.tasks.overdue(today()),
            render=render_overdue,
            placeholder="Nothing overdue",
        ),
        SectionSpec(
            key="tasks_due",
            title="✅ Tasks Due Today",
            fetch=lambda: stores.tasks.due_on(today()),
            render=render_due,
            placeholder="No tasks due today",
        ),
        SectionSpec(
            key="markets",
            title="📈 Markets",
            fetch=stores.price_alerts.watchlist,
            render=render_markets,
            placeholder="No quotes on the watchlist",
        ),
        SectionSpec(
            key="headlines",
            title="📰 Headlines",
            fetch=lambda: stores.headlines.latest(unread=True, limit=limit),
            render=render_headlines,
            placeholder="No unread headlines",
        ),
        SectionSpec(
            key="anniversaries",
            title="🎂 Upcoming Birthdays",
            fetch=lambda: stores.contacts.upcoming_anniversaries(today(), config.anniversary_days),
            render=render_anniversaries,
            placeholder="No birthdays this week",
        ),
    ]

    def header(now: datetime) -> str:
        return f"<b>☀️ Daily Briefing</b>\n<i>{now:%A, %d %B %Y • %H:%M}</i>\n{_RULE}"

    return ReportComposer(
        variant=DAY_START,
        sections=sections,
        header=header,
        footer=f"{_RULE}\n<i>Have a productive day!</i>",
        clock=clock,
        section_timeout=config.section_timeout_seconds,
    )


def build_day_end_composer(
    stores: DomainStores,
    config: BriefingConfig,
    clock: Callable[[], datetime] = datetime.now
) -> ReportComposer:
    """Evening summary: completed work, tomorrow, spending, pending priorities."""
    limit = config.list_limit

    def render_completed(tasks) -> List[str]:
        return [f"  ✓ {escape(t.title)}" for t in tasks]

    def render_expenses(totals) -> List[str]:
        spent, budget = totals
        if not spent:
            return []
        if not budget:
            return [f"  Spent: €{spent:.2f}"]
        remaining = budget - spent
        lines = [f"  Spent: €{spent:.2f} / €{budget:.2f} ({spent / budget * 100:.0f}%)"]
        if remaining < 0:
            lines.append(f"  ⚠️ Over budget by €{abs(remaining):.2f}")
        else:
            lines.append(f"  Remaining: €{remaining:.2f}")
        return lines

    def render_high_priority(tasks) -> List[str]:
        return [
            f"  • {escape(t.title)}" + (f" ({t.due_date.isoformat()})" if t.due_date else "")
            for t in tasks
        ]

    def tomorrow() -> date:
        return clock().date() + relativedelta(days=1)

    sections = [
        SectionSpec(
            key="completed_today",
            title="✅ Completed Today",
            fetch=lambda: stores.tasks.completed_since(datetime.combine(clock().date(), time.min)),
            render=render_completed,
            placeholder="No tasks completed today",
        ),
        SectionSpec(
            key="tomorrow",
            title="📅 Tomorrow",
            fetch=lambda: stores.calendar.events_for_day(tomorrow()),
            render=_event_lines,
            placeholder="No events scheduled",
        ),
        SectionSpec(
            key="monthly_expenses",
            title="💰 Monthly Expenses",
            fetch=lambda: (
                stores.expenses.month_total(clock().date()),
                stores.expenses.monthly_budget(),
            ),
            render=render_expenses,
            placeholder="No expenses this month",
        ),
        SectionSpec(
            key="high_priority",
            title="🔴 High Priority Pending",
            fetch=lambda: stores.tasks.high_priority_pending(limit),
            render=render_high_priority,
            placeholder="Nothing urgent pending",
        ),
    ]

    def header(now: datetime) -> str:
        return f"<b>🌙 Evening Summary</b>\n<i>{now:%A, %d %B}</i>\n{_RULE}"

    return ReportComposer(
        variant=DAY_END,
        sections=sections,
        header=header,
        footer=f"{_RULE}\n<i>Rest well!</i>",
        clock=clock,
        section_timeout=config.section_timeout_seconds,
    )


def build_composers(
    stores: DomainStores,
    config: BriefingConfig,
    clock: Callable[[], datetime] = datetime.now
) -> Dict[str, ReportComposer]:
    return {
        DAY_START: build_day_start_composer(stores, config, clock),
        DAY_END: build_day_end_composer(stores, config, clock),
    }
