"""Booking accessor over the DynamoDB bookings table."""
import logging
import uuid
from dataclasses import asdict, replace
from typing import Any, Dict, List, Optional

from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from records.booking_guard import check_event_reference, normalize_email, prepare_booking
from records.errors import RecordNotFoundError, UniquenessError, ValidationError
from records.models import BOOKING_FIELDS, Booking
from storage.connection import Connection
from storage.event_store import EventStore
from storage.transactions import delete_op, put_op, transact_write, utc_now

logger = logging.getLogger(__name__)


class BookingStore:
    """Create, read, update and delete bookings."""
    
    def __init__(self, connection: Connection, events: EventStore):
        """
        Initialize the store on an established connection.
        
        Args:
            connection: Connection from the ConnectionCache
            events: Event accessor used to check booking references
        """
        self.table = connection.bookings_table
        self.table_name = connection.settings.bookings_table
        self.client = connection.client
        self.events = events
    
    def create(self, event_id: str, email: str) -> Booking:
        """
        Book an event for an email address.
        
        The referenced event is looked up before anything is written.
        
        Args:
            event_id: Id of the event being booked
            email: Attendee email, stored trimmed and lowercase
            
        Returns:
            The stored Booking
            
        Raises:
            ValidationError: Missing event id or malformed email
            ReferentialIntegrityError: The event does not exist
            UniquenessError: This email already booked this event
        """
        record = prepare_booking(
            {'event_id': event_id, 'email': email}, changed=BOOKING_FIELDS
        )
        check_event_reference(record, BOOKING_FIELDS, self.events.exists)
        
        now = utc_now()
        booking = Booking(
            id=uuid.uuid4().hex,
            event_id=record['event_id'],
            email=record['email'],
            created_at=now,
            updated_at=now,
        )
        
        try:
            self.table.put_item(
                Item=asdict(booking),
                ConditionExpression=Attr('event_id').not_exists(),
            )
        except ClientError as e:
            if e.response['Error']['Code'] == 'ConditionalCheckFailedException':
                raise self._already_booked(booking) from e
            logger.error(f"Error writing booking for event {event_id}: {e}")
            raise
        
        logger.info(f"Created booking {booking.id} for event {booking.event_id}")
        return booking
    
    def get(self, event_id: str, email: str) -> Optional[Booking]:
        try:
            response = self.table.get_item(
                Key={'event_id': event_id, 'email': normalize_email(email)}
            )
        except ClientError as e:
            logger.error(f"Error reading booking for event {event_id}: {e}")
            raise
        
        item = response.get('Item')
        return self._item_to_booking(item) if item else None
    
    def exists(self, event_id: str, email: str) -> bool:
        return self.get(event_id, email) is not None
    
    def list_for_event(self, event_id: str) -> List[Booking]:
        """
        Retrieve every booking of an event, oldest first.
        
        Args:
            event_id: Id of the booked event
            
        Returns:
            List of Booking objects
        """
        items = self._query(event_id)
        bookings = [booking for booking in map(self._item_to_booking, items) if booking]
        bookings.sort(key=lambda booking: booking.created_at)
        return bookings
    
    def count_for_event(self, event_id: str) -> int:
        return sum(self._query(event_id, count_only=True))
    
    def update(self, event_id: str, email: str, changes: Dict[str, Any]) -> Booking:
        """
        Move a booking to another event and/or email address.
        
        The event reference is checked only when it changes. A change of
        key rewrites the booking under its new (event_id, email) pair.
        
        Raises:
            RecordNotFoundError: No such booking
            ValidationError: Malformed new values
            ReferentialIntegrityError: The new event does not exist
            UniquenessError: The new pair is already booked
        """
        unknown = sorted(set(changes) - set(BOOKING_FIELDS))
        if unknown:
            raise ValidationError({name: 'Unknown or read-only field' for name in unknown})
        
        current = self.get(event_id, email)
        if current is None:
            raise RecordNotFoundError(f"No booking for {email} on event {event_id}")
        
        changed = {
            name for name in BOOKING_FIELDS
            if name in changes and changes[name] != getattr(current, name)
        }
        if not changed:
            return current
        
        proposed = {'event_id': current.event_id, 'email': current.email}
        proposed.update({name: changes[name] for name in changed})
        record = prepare_booking(proposed, changed=changed)
        check_event_reference(record, changed, self.events.exists)
        
        updated = replace(
            current,
            event_id=record['event_id'],
            email=record['email'],
            updated_at=utc_now(),
        )
        
        if (updated.event_id, updated.email) == (current.event_id, current.email):
            try:
                self.table.put_item(
                    Item=asdict(updated),
                    ConditionExpression=Attr('event_id').exists(),
                )
            except ClientError as e:
                if e.response['Error']['Code'] == 'ConditionalCheckFailedException':
                    raise RecordNotFoundError(
                        f"No booking for {email} on event {event_id}"
                    ) from e
                logger.error(f"Error updating booking {current.id}: {e}")
                raise
        else:
            transact_write(
                self.client,
                [
                    put_op(self.table_name, asdict(updated), 'attribute_not_exists(event_id)'),
                    delete_op(
                        self.table_name,
                        {'event_id': current.event_id, 'email': current.email},
                    ),
                ],
                [self._already_booked(updated), None],
            )
        
        logger.info(f"Updated booking {current.id} fields: {sorted(changed)}")
        return updated
    
    def delete(self, event_id: str, email: str) -> bool:
        """
        Cancel a booking.
        
        Returns:
            True if the booking existed
        """
        try:
            response = self.table.delete_item(
                Key={'event_id': event_id, 'email': normalize_email(email)},
                ReturnValues='ALL_OLD',
            )
        except ClientError as e:
            logger.error(f"Error deleting booking for event {event_id}: {e}")
            raise
        
        deleted = 'Attributes' in response
        if deleted:
            logger.info(f"Deleted booking for event {event_id}")
        return deleted
    
    def _query(self, event_id: str, count_only: bool = False) -> list:
        """
        Query the bookings of one event, following pagination.
        
        Returns:
            Items, or one page count per page when count_only is set
        """
        query_kwargs = {'KeyConditionExpression': Key('event_id').eq(event_id)}
        if count_only:
            query_kwargs['Select'] = 'COUNT'
        
        results = []
        try:
            response = self.table.query(**query_kwargs)
            while True:
                if count_only:
                    results.append(response['Count'])
                else:
                    results.extend(response.get('Items', []))
                if 'LastEvaluatedKey' not in response:
                    break
                response = self.table.query(
                    ExclusiveStartKey=response['LastEvaluatedKey'],
                    **query_kwargs
                )
        except ClientError as e:
            logger.error(f"Error querying bookings for event {event_id}: {e}")
            raise
        
        return results
    
    @staticmethod
    def _already_booked(booking: Booking) -> UniquenessError:
        return UniquenessError(
            ('event_id', 'email'),
            f"{booking.email} has already booked event {booking.event_id}",
        )
    
    @staticmethod
    def _item_to_booking(item: dict) -> Optional[Booking]:
        try:
            return Booking(
                id=item['id'],
                event_id=item['event_id'],
                email=item['email'],
                created_at=item['created_at'],
                updated_at=item['updated_at'],
            )
        except KeyError as e:
            logger.warning(f"Failed to convert item to Booking: {e}")
            return None
