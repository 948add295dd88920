"""AWS Lambda handler for the event listing and booking store."""
import json
import logging
import os
import threading
import time
from dataclasses import asdict
from typing import Any, Callable, Dict, Optional

from records.errors import (
    DatabaseConnectionError,
    RecordNotFoundError,
    ReferentialIntegrityError,
    UniquenessError,
    ValidationError,
)
from storage.booking_store import BookingStore
from storage.connection import ConnectionCache, load_settings
from storage.event_store import EventStore


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""
    
    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }
        
        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)
        
        return json.dumps(log_data)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.
    
    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()
    
    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    
    # Create new handler with JSON formatter
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)
    
    # Set log level
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


# Shared by every invocation of a warm container
_connection_cache: Optional[ConnectionCache] = None
_connection_cache_lock = threading.Lock()


def get_connection_cache() -> ConnectionCache:
    """Build the connection cache on first use; a missing EVENTS_DB_URL is fatal."""
    global _connection_cache
    if _connection_cache is None:
        with _connection_cache_lock:
            if _connection_cache is None:
                _connection_cache = ConnectionCache(load_settings())
    return _connection_cache


class BadRequest(Exception):
    """The invocation payload is missing something the action needs."""


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {'statusCode': status_code, 'body': json.dumps(body)}


def _resolve_event(events: EventStore, payload: Dict[str, Any]):
    if payload.get('slug'):
        event = events.get_by_slug(payload['slug'])
    elif payload.get('event_id'):
        event = events.get(payload['event_id'])
    else:
        raise BadRequest("Either 'slug' or 'event_id' is required")
    if event is None:
        raise RecordNotFoundError(
            f"Event {payload.get('slug') or payload.get('event_id')} not found"
        )
    return event


def list_events(events: EventStore, bookings: BookingStore, payload: Dict[str, Any]):
    return 200, {'events': [asdict(event) for event in events.list_events()]}


def get_event(events: EventStore, bookings: BookingStore, payload: Dict[str, Any]):
    event = _resolve_event(events, payload)
    return 200, {
        'event': asdict(event),
        'bookings': bookings.count_for_event(event.id),
    }


def create_event(events: EventStore, bookings: BookingStore, payload: Dict[str, Any]):
    fields = payload.get('event')
    if not isinstance(fields, dict):
        raise BadRequest("'event' must be an object of event fields")
    return 201, {'event': asdict(events.create(fields))}


def book_event(events: EventStore, bookings: BookingStore, payload: Dict[str, Any]):
    # A slug is resolved here; a raw event_id goes to the store's own reference check
    if payload.get('slug'):
        event_id = _resolve_event(events, payload).id
    else:
        event_id = payload.get('event_id')
    booking = bookings.create(event_id, payload.get('email'))
    return 201, {'booking': asdict(booking)}


def list_bookings(events: EventStore, bookings: BookingStore, payload: Dict[str, Any]):
    event = _resolve_event(events, payload)
    return 200, {
        'event_id': event.id,
        'bookings': [asdict(booking) for booking in bookings.list_for_event(event.id)],
    }


ACTIONS: Dict[str, Callable] = {
    'list_events': list_events,
    'get_event': get_event,
    'create_event': create_event,
    'book_event': book_event,
    'list_bookings': list_bookings,
}

ERROR_STATUS = [
    (BadRequest, 400),
    (ValidationError, 400),
    (RecordNotFoundError, 404),
    (ReferentialIntegrityError, 404),
    (UniquenessError, 409),
    (DatabaseConnectionError, 503),
]


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function for event listing and booking.
    
    Args:
        event: Invocation payload with an 'action' key and its arguments
        context: Lambda context object
        
    Returns:
        Response dict with statusCode and JSON body
    """
    # Read configuration from environment variables
    log_level = os.environ.get('LOG_LEVEL', 'INFO')
    
    # Initialize logging
    setup_logging(log_level)
    logger = logging.getLogger(__name__)
    
    # A ConfigurationError propagates and fails the invocation
    cache = get_connection_cache()
    
    start_time = time.time()
    action = event.get('action')
    logger.info(f"Invocation started: {action}")
    
    handler = ACTIONS.get(action)
    if handler is None:
        return _response(400, {
            'message': f"Unknown action: {action}",
            'actions': sorted(ACTIONS),
        })
    
    try:
        connection = cache.get_connection()
        events = EventStore(connection)
        bookings = BookingStore(connection, events)
        status_code, body = handler(events, bookings, event)
        
    except Exception as e:
        duration = time.time() - start_time
        status_code = next(
            (status for error_type, status in ERROR_STATUS if isinstance(e, error_type)),
            500,
        )
        
        body = {
            'message': str(e),
            'error_type': type(e).__name__,
            'duration_seconds': round(duration, 2)
        }
        if isinstance(e, ValidationError):
            body['errors'] = e.errors
        
        if status_code == 500:
            logger.error(
                f"Action {action} failed: {str(e)}",
                extra={'error_type': type(e).__name__},
                exc_info=True
            )
        else:
            logger.warning(f"Action {action} rejected: {str(e)}")
        
        return _response(status_code, body)
    
    duration = time.time() - start_time
    logger.info(
        f"Action {action} completed",
        extra={'duration_seconds': round(duration, 2), 'status_code': status_code}
    )
    return _response(status_code, body)
