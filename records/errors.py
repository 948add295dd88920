"""Errors raised by the event and booking stores."""
from typing import Dict, Iterable


class EventStoreError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(EventStoreError):
    """Required configuration is missing or malformed."""


class DatabaseConnectionError(EventStoreError, ConnectionError):
    """The DynamoDB connection could not be established."""


class ValidationError(EventStoreError):
    """One or more fields failed validation."""

    def __init__(self, errors: Dict[str, str]):
        self.errors = dict(errors)
        summary = '; '.join(
            f"{name}: {message}" for name, message in self.errors.items()
        )
        super().__init__(f"Validation failed: {summary}")


class ReferentialIntegrityError(EventStoreError):
    """A booking references an event that does not exist."""

    def __init__(self, event_id: str):
        self.event_id = event_id
        super().__init__(
            f"Event with ID {event_id} does not exist. "
            f"Cannot create booking for non-existent event."
        )


class UniquenessError(EventStoreError):
    """A write collided with an existing record on a unique key."""

    def __init__(self, fields: Iterable[str], message: str):
        self.fields = tuple(fields)
        super().__init__(message)


class RecordNotFoundError(EventStoreError):
    """The record to update does not exist."""
