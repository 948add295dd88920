"""Data models for events and bookings."""
from dataclasses import dataclass, field
from typing import List, Optional


EVENT_MODES = ('online', 'offline', 'hybrid')

# Fields a caller may supply when creating or updating an event
EVENT_FIELDS = (
    'title',
    'description',
    'overview',
    'image',
    'venue',
    'location',
    'date',
    'time',
    'mode',
    'audience',
    'agenda',
    'organizer',
    'tags',
)

BOOKING_FIELDS = ('event_id', 'email')


@dataclass
class Event:
    """Stored event with derived slug and canonical date/time."""
    id: str
    title: str
    slug: str
    description: str
    overview: str
    image: str
    venue: str
    location: str
    date: str
    time: str
    mode: str
    audience: str
    agenda: List[str]
    organizer: str
    tags: List[str]
    created_at: str
    updated_at: str


@dataclass
class Booking:
    """Booking of an event by an email address."""
    id: str
    event_id: str
    email: str
    created_at: str
    updated_at: str


@dataclass
class StoreSettings:
    """Where the event and booking tables live."""
    region: str
    table_prefix: str = 'eventbook'
    endpoint_url: Optional[str] = None

    @property
    def events_table(self) -> str:
        return f"{self.table_prefix}-events"

    @property
    def bookings_table(self) -> str:
        return f"{self.table_prefix}-bookings"
