"""Event normalizer for slug derivation, date/time normalization and validation."""
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

from records.errors import ValidationError
from records.models import EVENT_MODES

logger = logging.getLogger(__name__)

_SLUG_STRIP = re.compile(r'[^\w\s-]', re.ASCII)
_SLUG_SPACES = re.compile(r'\s+')
_SLUG_HYPHENS = re.compile(r'-+')

_TIME_12_HOUR = re.compile(r'^(\d{1,2}):(\d{2})\s*(AM|PM)$', re.IGNORECASE | re.ASCII)
_TIME_24_HOUR = re.compile(r'^(\d{1,2}):(\d{2})$', re.ASCII)


class EventNormalizer:
    """Normalizes and validates event fields before they are persisted."""
    
    MIN_TITLE_LENGTH = 3
    MAX_TITLE_LENGTH = 200
    MIN_DESCRIPTION_LENGTH = 10
    
    # Free-text fields stored trimmed
    TRIMMED_FIELDS = (
        'title', 'description', 'overview', 'image', 'venue',
        'location', 'audience', 'organizer',
    )
    
    DATE_FORMATS = [
        '%Y-%m-%d',      # ISO 8601
        '%m/%d/%Y',      # US format
        '%m-%d-%Y',      # US format with dashes
        '%B %d, %Y',     # Full month name
        '%b %d, %Y',     # Abbreviated month name
        '%d %B %Y',      # Day first, full month name
        '%d %b %Y',      # Day first, abbreviated month name
        '%d/%m/%Y',      # European format
        '%Y/%m/%d',      # Alternative ISO format
    ]
    
    def prepare(self, proposed: Dict[str, Any], changed: Iterable[str]) -> Dict[str, Any]:
        """
        Produce the normalized form of an event about to be saved.
        
        The slug is derived only when the title changed, and date/time are
        normalized only when they changed; untouched fields are kept as
        stored. The whole record is validated on every save.
        
        Args:
            proposed: Field values of the event as it will be saved
            changed: Names of the fields modified by this save
            
        Returns:
            New dictionary with normalized values
            
        Raises:
            ValidationError: One entry per offending field
        """
        changed = set(changed)
        record = dict(proposed)
        
        for name in self.TRIMMED_FIELDS:
            if isinstance(record.get(name), str):
                record[name] = record[name].strip()
        
        for name in ('agenda', 'tags'):
            if isinstance(record.get(name), list):
                record[name] = [
                    item.strip() if isinstance(item, str) else item
                    for item in record[name]
                ]
        
        if isinstance(record.get('tags'), list):
            # Tags behave as a set but keep their submitted order
            record['tags'] = list(dict.fromkeys(record['tags']))
        
        if 'title' in changed and isinstance(record.get('title'), str):
            record['slug'] = self.generate_slug(record['title'])
        
        errors = self._validate(record)
        
        if 'date' in changed and 'date' not in errors:
            try:
                record['date'] = self.normalize_date(record['date'])
            except ValidationError as e:
                errors.update(e.errors)
        
        if 'time' in changed and 'time' not in errors:
            try:
                record['time'] = self.normalize_time(record['time'])
            except ValidationError as e:
                errors.update(e.errors)
        
        if errors:
            logger.warning(f"Rejected event '{record.get('title')}': {errors}")
            raise ValidationError(errors)
        
        return record
    
    @staticmethod
    def generate_slug(text: str) -> str:
        """
        Generate a URL-friendly slug from a title.
        
        Args:
            text: Event title
            
        Returns:
            Lowercase slug made of word characters and single hyphens
        """
        slug = text.lower().strip()
        slug = _SLUG_STRIP.sub('', slug)
        slug = _SLUG_SPACES.sub('-', slug)
        slug = _SLUG_HYPHENS.sub('-', slug)
        return slug.strip('-')
    
    def normalize_date(self, date_str: str) -> str:
        """
        Normalize date to ISO 8601 format (YYYY-MM-DD).
        
        Args:
            date_str: Date string in various formats
            
        Returns:
            ISO 8601 formatted date string
            
        Raises:
            ValidationError: The value is not a recognizable date
        """
        parsed = self._parse_date(date_str) if isinstance(date_str, str) else None
        if parsed is None:
            raise ValidationError(
                {'date': 'Invalid date format. Please provide a valid date.'}
            )
        return parsed.strftime('%Y-%m-%d')
    
    def _parse_date(self, date_str: str) -> Optional[datetime]:
        date_str = date_str.strip()
        
        for fmt in self.DATE_FORMATS:
            try:
                return datetime.strptime(date_str, fmt)
            except ValueError:
                continue
        
        # Full timestamps resolve to their UTC calendar date
        try:
            parsed = datetime.fromisoformat(date_str)
        except ValueError:
            return None
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(timezone.utc)
        return parsed
    
    @staticmethod
    def normalize_time(time_str: str) -> str:
        """
        Normalize time to 24-hour format (HH:MM).
        
        Accepts H:MM or HH:MM in 24-hour form, and the same followed by an
        AM/PM suffix in 12-hour form.
        
        Args:
            time_str: Time string
            
        Returns:
            Zero-padded 24-hour time string
            
        Raises:
            ValidationError: Unknown shape or out-of-range hours/minutes
        """
        if not isinstance(time_str, str):
            raise ValidationError({'time': 'Time must be a string.'})
        
        time_str = time_str.strip()
        
        match = _TIME_12_HOUR.match(time_str)
        if match:
            hours = int(match.group(1))
            minutes = int(match.group(2))
            period = match.group(3).upper()
            
            if hours < 1 or hours > 12 or minutes > 59:
                raise ValidationError(
                    {'time': 'Invalid time. Hours must be 1-12 and minutes 0-59 with AM/PM.'}
                )
            
            if period == 'PM' and hours != 12:
                hours += 12
            if period == 'AM' and hours == 12:
                hours = 0
            
            return f"{hours:02d}:{minutes:02d}"
        
        match = _TIME_24_HOUR.match(time_str)
        if match:
            hours = int(match.group(1))
            minutes = int(match.group(2))
            
            if hours > 23 or minutes > 59:
                raise ValidationError(
                    {'time': 'Invalid time. Hours must be 0-23 and minutes 0-59.'}
                )
            
            return f"{hours:02d}:{minutes:02d}"
        
        raise ValidationError({'time': 'Invalid time format. Use HH:MM or HH:MM AM/PM.'})
    
    def _validate(self, record: Dict[str, Any]) -> Dict[str, str]:
        """
        Check every field constraint of an event.
        
        Args:
            record: Event fields after trimming
            
        Returns:
            Mapping of field name to error message, empty when valid
        """
        errors = {}
        
        for name in self.TRIMMED_FIELDS + ('date', 'time', 'mode'):
            value = record.get(name)
            if value is None or (isinstance(value, str) and not value.strip()):
                errors[name] = f"{name.capitalize()} is required"
            elif not isinstance(value, str):
                errors[name] = f"{name.capitalize()} must be a string"
        
        title = record.get('title')
        if 'title' not in errors:
            if len(title) < self.MIN_TITLE_LENGTH:
                errors['title'] = (
                    f"Title must be at least {self.MIN_TITLE_LENGTH} characters"
                )
            elif len(title) > self.MAX_TITLE_LENGTH:
                errors['title'] = (
                    f"Title cannot exceed {self.MAX_TITLE_LENGTH} characters"
                )
            elif not record.get('slug'):
                errors['title'] = 'Title must contain at least one letter or digit'
        
        description = record.get('description')
        if 'description' not in errors and len(description) < self.MIN_DESCRIPTION_LENGTH:
            errors['description'] = (
                f"Description must be at least {self.MIN_DESCRIPTION_LENGTH} characters"
            )
        
        if 'mode' not in errors and record['mode'] not in EVENT_MODES:
            errors['mode'] = 'Mode must be either online, offline, or hybrid'
        
        for name, message in (
            ('agenda', 'Agenda must contain at least one item'),
            ('tags', 'At least one tag is required'),
        ):
            items = record.get(name)
            if not isinstance(items, list) or not items:
                errors[name] = message
            elif not all(isinstance(item, str) and item for item in items):
                errors[name] = f"{name.capitalize()} items must be non-empty strings"
        
        return errors
