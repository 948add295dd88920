"""Table definitions for the event and booking tables."""
import logging
from typing import Any, List

from botocore.exceptions import ClientError

from records.models import StoreSettings

logger = logging.getLogger(__name__)

# Events share their table with slug#<slug> guard items that hold the slug unique
EVENTS_KEY_SCHEMA = [
    {'AttributeName': 'id', 'KeyType': 'HASH'},
]
EVENTS_ATTRIBUTES = [
    {'AttributeName': 'id', 'AttributeType': 'S'},
]

# (event_id, email) is the primary key: unique per pair, queryable per event
BOOKINGS_KEY_SCHEMA = [
    {'AttributeName': 'event_id', 'KeyType': 'HASH'},
    {'AttributeName': 'email', 'KeyType': 'RANGE'},
]
BOOKINGS_ATTRIBUTES = [
    {'AttributeName': 'event_id', 'AttributeType': 'S'},
    {'AttributeName': 'email', 'AttributeType': 'S'},
]


def create_tables(dynamodb: Any, settings: StoreSettings) -> List[str]:
    """
    Create the event and booking tables if they do not exist yet.
    
    Args:
        dynamodb: boto3 DynamoDB resource
        settings: Store settings naming the tables
        
    Returns:
        Names of the tables that were created
    """
    created = []
    
    for table_name, key_schema, attributes in (
        (settings.events_table, EVENTS_KEY_SCHEMA, EVENTS_ATTRIBUTES),
        (settings.bookings_table, BOOKINGS_KEY_SCHEMA, BOOKINGS_ATTRIBUTES),
    ):
        try:
            table = dynamodb.create_table(
                TableName=table_name,
                KeySchema=key_schema,
                AttributeDefinitions=attributes,
                BillingMode='PAY_PER_REQUEST',
            )
        except ClientError as e:
            if e.response['Error']['Code'] == 'ResourceInUseException':
                logger.info(f"Table {table_name} already exists")
                continue
            logger.error(f"Error creating table {table_name}: {e}")
            raise
        
        table.wait_until_exists()
        created.append(table_name)
        logger.info(f"Created table {table_name}")
    
    return created
