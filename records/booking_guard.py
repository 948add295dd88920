"""Booking validation and the event reference check run before a booking is saved."""
import logging
import re
from typing import Any, Callable, Dict, Iterable

from records.errors import ReferentialIntegrityError, ValidationError

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')


def normalize_email(email: str) -> str:
    return (email or '').strip().lower()


def prepare_booking(proposed: Dict[str, Any], changed: Iterable[str]) -> Dict[str, Any]:
    """
    Normalize and validate a booking about to be saved.
    
    Args:
        proposed: Booking fields as they will be saved
        changed: Names of the fields modified by this save
        
    Returns:
        New dictionary with the email in canonical form
        
    Raises:
        ValidationError: Missing event reference or malformed email
    """
    record = dict(proposed)
    errors = {}
    
    event_id = record.get('event_id')
    if not isinstance(event_id, str) or not event_id.strip():
        errors['event_id'] = 'Event ID is required'
    
    email = record.get('email')
    if not isinstance(email, str) or not email.strip():
        errors['email'] = 'Email is required'
    else:
        if 'email' in set(changed):
            record['email'] = normalize_email(email)
        if not EMAIL_PATTERN.match(record['email']):
            errors['email'] = 'Please provide a valid email address'
    
    if errors:
        raise ValidationError(errors)
    
    return record


def check_event_reference(
    booking: Dict[str, Any],
    changed: Iterable[str],
    event_exists: Callable[[str], bool],
) -> None:
    """
    Ensure the event a booking points at exists.
    
    Only runs when the event reference is part of the save. Performs one
    read through ``event_exists`` each time it runs.
    
    Args:
        booking: Prepared booking fields
        changed: Names of the fields modified by this save
        event_exists: Accessor answering whether an event id is stored
        
    Raises:
        ReferentialIntegrityError: The referenced event is missing
    """
    if 'event_id' not in set(changed):
        return
    
    event_id = booking['event_id']
    if not event_exists(event_id):
        logger.warning(f"Booking rejected, event {event_id} does not exist")
        raise ReferentialIntegrityError(event_id)
