"""Shared fixtures: mocked DynamoDB tables and sample records."""
import boto3
import pytest
from moto import mock_aws

from records.models import StoreSettings
from storage.booking_store import BookingStore
from storage.connection import connect
from storage.event_store import EventStore
from storage.schema import create_tables


@pytest.fixture
def aws_credentials(monkeypatch):
    """Fake credentials so boto3 never reaches real AWS."""
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_SESSION_TOKEN', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')


@pytest.fixture
def settings():
    return StoreSettings(region='us-east-1', table_prefix='test-eventbook')


@pytest.fixture
def dynamodb(aws_credentials, settings):
    """Create the mock event and booking tables."""
    with mock_aws():
        resource = boto3.resource('dynamodb', region_name='us-east-1')
        create_tables(resource, settings)
        yield resource


@pytest.fixture
def connection(dynamodb, settings):
    return connect(settings)


@pytest.fixture
def event_store(connection):
    return EventStore(connection)


@pytest.fixture
def booking_store(connection, event_store):
    return BookingStore(connection, event_store)


@pytest.fixture
def event_fields():
    """Submitted fields of a valid event."""
    return {
        'title': 'PyCon Berlin 2025',
        'description': 'Three days of talks, sprints and tutorials.',
        'overview': 'The yearly Python community conference.',
        'image': '/images/pycon.png',
        'venue': 'Berlin Congress Center',
        'location': 'Berlin, Germany',
        'date': '11/05/2025',
        'time': '9:30 AM',
        'mode': 'hybrid',
        'audience': 'Developers',
        'agenda': ['Registration', 'Keynote', 'Talks'],
        'organizer': 'Python Software Verband',
        'tags': ['python', 'conference'],
    }
