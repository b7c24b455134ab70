"""Data models for reminder candidates and the records behind them."""

from datetime import date, datetime
from enum import Enum
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field


class ReminderDomain(str, Enum):
    """Domains scanned by the reminder pollers."""
    CALENDAR = "calendar"
    TASKS = "tasks"
    PRICE_ALERTS = "price_alerts"
    DOCUMENTS = "documents"


class ReminderCandidate(BaseModel):
    """An item from a domain collaborator that is eligible for notification."""
    id: str = Field(description="Identifier inside the owning domain")
    due_at: datetime = Field(description="When the item becomes due")
    domain: ReminderDomain = Field(description="Owning domain")
    payload: Dict[str, Any] = Field(default_factory=dict, description="Domain fields used for the message")


class CalendarEvent(BaseModel):
    """Calendar event with its reminder flag."""
    id: str = Field(description="Event ID")
    title: str = Field(description="Event title")
    start: datetime = Field(description="Event start")
    location: Optional[str] = Field(default=None, description="Event location")
    reminder_sent: bool = Field(default=False, description="Notified flag")


class TaskPriority(str, Enum):
    """Task priority levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Task(BaseModel):
    """Task with an optional due date and reminder time."""
    id: str = Field(description="Task ID")
    title: str = Field(description="Task title")
    due_date: Optional[date] = Field(default=None, description="Calendar day the task is due")
    remind_at: Optional[datetime] = Field(
        default=None, description="Explicit reminder time; defaults to the start of due_date"
    )
    priority: TaskPriority = Field(default=TaskPriority.MEDIUM)
    completed_at: Optional[datetime] = Field(default=None, description="Completion timestamp")
    reminder_sent: bool = Field(default=False, description="Notified flag")

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None


class AlertDirection(str, Enum):
    """Which side of the threshold triggers a price alert."""
    ABOVE = "above"
    BELOW = "below"


class PriceAlert(BaseModel):
    """Price threshold alert for a watched symbol."""
    id: str = Field(description="Alert ID")
    symbol: str = Field(description="Ticker symbol")
    threshold: float = Field(description="Price threshold")
    direction: AlertDirection = Field(description="Trigger when price goes above or below")
    triggered: bool = Field(default=False, description="Notified flag")


class Quote(BaseModel):
    """Latest observed price of a watched symbol."""
    symbol: str
    price: float
    change_percent: float = 0.0
    observed_at: datetime


class TravelDocument(BaseModel):
    """Travel document with an expiry date."""
    id: str = Field(description="Document ID")
    doc_type: str = Field(description="Passport, visa, ID card...")
    number: Optional[str] = Field(default=None, description="Document number")
    expiry_date: date = Field(description="Expiry date")
    reminder_sent: bool = Field(default=False, description="Notified flag")


class Headline(BaseModel):
    """Cached news headline."""
    id: str
    title: str
    url: Optional[str] = None
    published_at: Optional[datetime] = None
    read: bool = False


class Contact(BaseModel):
    """Contact with an optional birthday."""
    id: str
    name: str
    birthday: Optional[date] = None


class Expense(BaseModel):
    """Single expense entry."""
    id: str
    amount: float
    spent_on: date
    category: Optional[str] = None
