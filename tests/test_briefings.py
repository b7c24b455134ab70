from datetime import datetime

import pytest

from herald.briefing.briefings import DAY_END, DAY_START, build_composers
from herald.config.config import BriefingConfig
from herald.sources.seed import SeedData, build_stores


NOW = datetime(2026, 3, 2, 8, 0)


def clock():
    return NOW


def seeded_stores():
    seed = SeedData(
        events=[
            {"id": "e1", "title": "Standup", "start": "2026-03-02T10:00:00"},
            {"id": "e2", "title": "Dentist & cleaning", "start": "2026-03-02T15:30:00"},
            {"id": "e3", "title": "Flight to Porto", "start": "2026-03-03T07:45:00"},
        ],
        tasks=[
            {"id": "t1", "title": "Pay rent", "due_date": "2026-03-02", "priority": "high"},
            {"id": "t2", "title": "Renew gym", "due_date": "2026-02-25"},
            {"id": "t3", "title": "Send invoice", "due_date": "2026-03-02",
             "completed_at": "2026-03-02T07:30:00"},
        ],
        quotes=[{"symbol": "AAPL", "price": 201.5, "change_percent": -1.25,
                 "observed_at": "2026-03-02T07:55:00"}],
        headlines=[{"id": "h1", "title": "Rates hold steady"}],
        contacts=[{"id": "c1", "name": "Ana", "birthday": "1990-03-05"}],
        expenses=[{"id": "x1", "amount": 420, "spent_on": "2026-03-01"}],
        monthly_budget=400,
    )
    return build_stores(seed, clock=clock)


@pytest.mark.asyncio
async def test_day_start_briefing_lists_every_section():
    composers = build_composers(seeded_stores(), BriefingConfig(), clock=clock)

    report = await composers[DAY_START].compose()
    text = report.render()

    assert report.failed_sections == []
    assert [s.key for s in report.sections] == [
        "schedule", "overdue_tasks", "tasks_due", "markets", "headlines", "anniversaries",
    ]
    assert text.startswith("<b>☀️ Daily Briefing</b>\n<i>Monday, 02 March 2026")
    assert "10:00 Standup" in text
    assert "Dentist &amp; cleaning" in text
    assert "Flight to Porto" not in text
    assert "Renew gym (2026-02-25)" in text
    assert "🔴 Pay rent" in text
    assert "Send invoice" not in text
    assert "AAPL: $201.50 ▼-1.2%" in text or "AAPL: $201.50 ▼-1.3%" in text
    assert "Rates hold steady" in text
    assert "Ana (Mar 05)" in text
    assert text.endswith("<i>Have a productive day!</i>")


@pytest.mark.asyncio
async def test_day_start_shows_placeholders_for_empty_sources():
    composers = build_composers(build_stores(clock=clock), BriefingConfig(), clock=clock)

    text = (await composers[DAY_START].compose()).render()

    assert "No events scheduled" in text
    assert "Nothing overdue" in text
    assert "No unread headlines" in text


@pytest.mark.asyncio
async def test_failing_source_drops_only_its_section():
    stores = seeded_stores()

    def offline():
        raise ConnectionError("quotes API unreachable")

    stores.price_alerts.watchlist = offline
    composers = build_composers(stores, BriefingConfig(), clock=clock)

    report = await composers[DAY_START].compose()

    assert [s.key for s in report.failed_sections] == ["markets"]
    assert "Markets" not in report.render()
    assert "Standup" in report.render()


@pytest.mark.asyncio
async def test_day_end_summary():
    composers = build_composers(seeded_stores(), BriefingConfig(), clock=clock)

    report = await composers[DAY_END].compose()
    text = report.render()

    assert report.failed_sections == []
    assert "✓ Send invoice" in text
    assert "07:45 Flight to Porto" in text
    assert "Spent: €420.00 / €400.00 (105%)" in text
    assert "Over budget by €20.00" in text
    assert "Pay rent (2026-03-02)" in text
    assert text.endswith("<i>Rest well!</i>")


@pytest.mark.asyncio
async def test_list_limit_caps_headlines():
    seed = SeedData(headlines=[{"id": f"h{i}", "title": f"Story {i}"} for i in range(10)])
    composers = build_composers(build_stores(seed, clock=clock), BriefingConfig(list_limit=3), clock=clock)

    report = await composers[DAY_START].compose()
    headlines = next(s for s in report.sections if s.key == "headlines")

    assert len(headlines.content.splitlines()) == 3
