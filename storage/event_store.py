"""Event accessor over the DynamoDB events table."""
import logging
import uuid
from dataclasses import asdict, replace
from typing import Any, Dict, List, Optional

from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError

from records.errors import RecordNotFoundError, UniquenessError, ValidationError
from records.event_normalizer import EventNormalizer
from records.models import EVENT_FIELDS, Event
from storage.connection import Connection
from storage.transactions import delete_op, put_op, transact_write, utc_now

logger = logging.getLogger(__name__)


class EventStore:
    """Create, read, update and delete events."""
    
    RECORD_TYPE = 'event'
    SLUG_PREFIX = 'slug#'
    
    def __init__(self, connection: Connection, normalizer: Optional[EventNormalizer] = None):
        """
        Initialize the store on an established connection.
        
        Args:
            connection: Connection from the ConnectionCache
            normalizer: Normalizer applied before every save
        """
        self.table = connection.events_table
        self.table_name = connection.settings.events_table
        self.client = connection.client
        self.normalizer = normalizer or EventNormalizer()
    
    def create(self, fields: Dict[str, Any]) -> Event:
        """
        Normalize, validate and store a new event.
        
        Args:
            fields: Submitted event fields
            
        Returns:
            The stored Event
            
        Raises:
            ValidationError: A field failed validation
            UniquenessError: Another event already uses the derived slug
        """
        self._reject_unknown_fields(fields)
        proposed = {name: fields.get(name) for name in EVENT_FIELDS}
        record = self.normalizer.prepare(proposed, changed=EVENT_FIELDS)
        
        now = utc_now()
        event = Event(
            id=uuid.uuid4().hex,
            slug=record['slug'],
            created_at=now,
            updated_at=now,
            **{name: record[name] for name in EVENT_FIELDS}
        )
        
        transact_write(
            self.client,
            [
                put_op(self.table_name, self._event_to_item(event), 'attribute_not_exists(id)'),
                put_op(self.table_name, self._slug_item(event), 'attribute_not_exists(id)'),
            ],
            [None, self._slug_taken(event.slug)],
        )
        
        logger.info(f"Created event {event.id} with slug '{event.slug}'")
        return event
    
    def get(self, event_id: str) -> Optional[Event]:
        try:
            response = self.table.get_item(Key={'id': event_id})
        except ClientError as e:
            logger.error(f"Error reading event {event_id}: {e}")
            raise
        
        item = response.get('Item')
        if not item or item.get('record_type') != self.RECORD_TYPE:
            return None
        return self._item_to_event(item)
    
    def get_by_slug(self, slug: str) -> Optional[Event]:
        guard = self._get_slug_guard(slug)
        if guard is None:
            return None
        return self.get(guard['event_id'])
    
    def exists(self, event_id: str) -> bool:
        """Check whether an event with this id is stored."""
        try:
            response = self.table.get_item(
                Key={'id': event_id},
                ProjectionExpression='record_type',
            )
        except ClientError as e:
            logger.error(f"Error checking event {event_id}: {e}")
            raise
        
        item = response.get('Item')
        return bool(item) and item.get('record_type') == self.RECORD_TYPE
    
    def slug_exists(self, slug: str) -> bool:
        return self._get_slug_guard(slug) is not None
    
    def list_events(self) -> List[Event]:
        """
        Retrieve all events ordered by date and time.
        
        Returns:
            List of Event objects
        """
        logger.info("Scanning events table")
        scan_kwargs = {'FilterExpression': Attr('record_type').eq(self.RECORD_TYPE)}
        
        try:
            response = self.table.scan(**scan_kwargs)
            items = response.get('Items', [])
            
            # Handle pagination
            while 'LastEvaluatedKey' in response:
                response = self.table.scan(
                    ExclusiveStartKey=response['LastEvaluatedKey'],
                    **scan_kwargs
                )
                items.extend(response.get('Items', []))
        except ClientError as e:
            logger.error(f"Error scanning events table: {e}")
            raise
        
        events = [event for event in map(self._item_to_event, items) if event]
        events.sort(key=lambda event: (event.date, event.time, event.title))
        logger.info(f"Retrieved {len(events)} events")
        return events
    
    def update(self, event_id: str, changes: Dict[str, Any]) -> Event:
        """
        Apply changes to a stored event.
        
        Only fields whose value differs from the stored one count as
        changed, so the slug is recomputed only when the title changes
        and date/time are re-normalized only when they change.
        
        Args:
            event_id: Id of the event to update
            changes: New values keyed by field name
            
        Returns:
            The updated Event
            
        Raises:
            RecordNotFoundError: No such event
            ValidationError: A field failed validation
            UniquenessError: The new slug belongs to another event
        """
        self._reject_unknown_fields(changes)
        current = self.get(event_id)
        if current is None:
            raise RecordNotFoundError(f"Event {event_id} not found")
        
        stored = asdict(current)
        changed = {
            name for name in EVENT_FIELDS
            if name in changes and changes[name] != stored[name]
        }
        if not changed:
            return current
        
        proposed = {name: stored[name] for name in EVENT_FIELDS}
        proposed['slug'] = current.slug
        proposed.update({name: changes[name] for name in changed})
        record = self.normalizer.prepare(proposed, changed=changed)
        
        updated = replace(
            current,
            slug=record['slug'],
            updated_at=utc_now(),
            **{name: record[name] for name in EVENT_FIELDS}
        )
        
        operations = [
            put_op(self.table_name, self._event_to_item(updated), 'attribute_exists(id)'),
        ]
        conflicts = [RecordNotFoundError(f"Event {event_id} not found")]
        if updated.slug != current.slug:
            operations.append(
                put_op(self.table_name, self._slug_item(updated), 'attribute_not_exists(id)')
            )
            conflicts.append(self._slug_taken(updated.slug))
            operations.append(
                delete_op(self.table_name, {'id': self.SLUG_PREFIX + current.slug})
            )
            conflicts.append(None)
        
        transact_write(self.client, operations, conflicts)
        
        logger.info(f"Updated event {event_id} fields: {sorted(changed)}")
        return updated
    
    def delete(self, event_id: str) -> bool:
        """
        Delete an event and release its slug. Bookings are left in place.
        
        Returns:
            True if the event existed
        """
        current = self.get(event_id)
        if current is None:
            return False
        
        transact_write(
            self.client,
            [
                delete_op(self.table_name, {'id': current.id}),
                delete_op(self.table_name, {'id': self.SLUG_PREFIX + current.slug}),
            ],
            [None, None],
        )
        logger.info(f"Deleted event {event_id}")
        return True
    
    def _get_slug_guard(self, slug: str) -> Optional[dict]:
        try:
            response = self.table.get_item(Key={'id': self.SLUG_PREFIX + slug})
        except ClientError as e:
            logger.error(f"Error reading slug '{slug}': {e}")
            raise
        return response.get('Item')
    
    def _slug_taken(self, slug: str) -> UniquenessError:
        return UniquenessError(
            ('slug',),
            f"An event with slug '{slug}' already exists",
        )
    
    @staticmethod
    def _reject_unknown_fields(fields: Dict[str, Any]) -> None:
        unknown = sorted(set(fields) - set(EVENT_FIELDS))
        if unknown:
            raise ValidationError(
                {name: 'Unknown or read-only field' for name in unknown}
            )
    
    def _slug_item(self, event: Event) -> dict:
        return {
            'id': self.SLUG_PREFIX + event.slug,
            'record_type': 'slug',
            'event_id': event.id,
        }
    
    def _event_to_item(self, event: Event) -> dict:
        item = asdict(event)
        item['record_type'] = self.RECORD_TYPE
        return item
    
    def _item_to_event(self, item: dict) -> Optional[Event]:
        """
        Convert DynamoDB item to Event object.
        
        Args:
            item: DynamoDB item dictionary
            
        Returns:
            Event object or None if conversion fails
        """
        try:
            return Event(
                id=item['id'],
                title=item['title'],
                slug=item['slug'],
                description=item['description'],
                overview=item['overview'],
                image=item['image'],
                venue=item['venue'],
                location=item['location'],
                date=item['date'],
                time=item['time'],
                mode=item['mode'],
                audience=item['audience'],
                agenda=list(item['agenda']),
                organizer=item['organizer'],
                tags=list(item['tags']),
                created_at=item['created_at'],
                updated_at=item['updated_at'],
            )
        except KeyError as e:
            logger.warning(f"Failed to convert item to Event: {e}")
            return None
