"""Build the in-memory collaborators, optionally seeded from a YAML file."""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, Field

from herald.exceptions import ConfigurationError
from herald.models.reminders import (
    CalendarEvent,
    Contact,
    Expense,
    Headline,
    PriceAlert,
    Quote,
    Task,
    TravelDocument,
)
from herald.sources.memory import (
    CalendarStore,
    Clock,
    ContactStore,
    DestinationRegistry,
    DocumentStore,
    ExpenseStore,
    HeadlineStore,
    PriceAlertStore,
    TaskStore,
)
from herald.utils.logger import log_info


class SeedData(BaseModel):
    """Shape of the seed file."""
    events: List[CalendarEvent] = Field(default_factory=list)
    tasks: List[Task] = Field(default_factory=list)
    price_alerts: List[PriceAlert] = Field(default_factory=list)
    quotes: List[Quote] = Field(default_factory=list)
    documents: List[TravelDocument] = Field(default_factory=list)
    headlines: List[Headline] = Field(default_factory=list)
    contacts: List[Contact] = Field(default_factory=list)
    expenses: List[Expense] = Field(default_factory=list)
    monthly_budget: Optional[float] = None
    destinations: List[str] = Field(default_factory=list)


@dataclass
class DomainStores:
    """Every collaborator the scheduler, briefings and broadcast loop read from."""
    calendar: CalendarStore
    tasks: TaskStore
    price_alerts: PriceAlertStore
    documents: DocumentStore
    headlines: HeadlineStore
    contacts: ContactStore
    expenses: ExpenseStore
    destinations: DestinationRegistry = field(default_factory=DestinationRegistry)


def load_seed_file(path: Union[str, Path]) -> SeedData:
    """Parse and validate a seed YAML file.

    Raises:
        ConfigurationError: If the file is missing or does not validate
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Seed file not found: {path}")

    with open(path, 'r', encoding='utf-8') as f:
        raw: Dict[str, Any] = yaml.safe_load(f) or {}

    try:
        return SeedData(**raw)
    except Exception as e:
        raise ConfigurationError(f"Invalid seed file {path}: {e}") from e


def build_stores(seed: Optional[SeedData] = None, clock: Clock = datetime.now) -> DomainStores:
    """Create the stores, filling them from ``seed`` when given."""
    seed = seed or SeedData()
    stores = DomainStores(
        calendar=CalendarStore(seed.events, clock=clock),
        tasks=TaskStore(seed.tasks, clock=clock),
        price_alerts=PriceAlertStore(seed.price_alerts, seed.quotes, clock=clock),
        documents=DocumentStore(seed.documents, clock=clock),
        headlines=HeadlineStore(seed.headlines),
        contacts=ContactStore(seed.contacts),
        expenses=ExpenseStore(seed.expenses, monthly_budget=seed.monthly_budget),
        destinations=DestinationRegistry(seed.destinations),
    )
    log_info(
        f"Stores ready: {len(seed.events)} events, {len(seed.tasks)} tasks, "
        f"{len(seed.price_alerts)} alerts, {len(seed.documents)} documents"
    )
    return stores
