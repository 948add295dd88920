"""DynamoDB connection settings and the per-process connection cache."""
import logging
import os
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional
from urllib.parse import parse_qsl, urlsplit

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from records.errors import ConfigurationError, DatabaseConnectionError
from records.models import StoreSettings

logger = logging.getLogger(__name__)

DATABASE_URL_VARIABLE = 'EVENTS_DB_URL'

# No client-side retries: calls fail fast instead of queuing behind backoff
CLIENT_CONFIG = Config(retries={'max_attempts': 1, 'mode': 'standard'})


@dataclass
class Connection:
    """Established handle on the event and booking tables."""
    settings: StoreSettings
    resource: Any
    events_table: Any
    bookings_table: Any

    @property
    def client(self) -> Any:
        return self.resource.meta.client


def parse_database_url(url: str) -> StoreSettings:
    """
    Parse a connection string of the form
    ``dynamodb://<region>/<table_prefix>?endpoint_url=<url>``.
    """
    parts = urlsplit(url.strip())
    if parts.scheme != 'dynamodb':
        raise ConfigurationError(
            f"{DATABASE_URL_VARIABLE} must use the dynamodb:// scheme."
        )
    if not parts.netloc:
        raise ConfigurationError(f"{DATABASE_URL_VARIABLE} must name a region.")

    params = dict(parse_qsl(parts.query))
    prefix = parts.path.strip('/')
    return StoreSettings(
        region=parts.netloc,
        table_prefix=prefix or StoreSettings.table_prefix,
        endpoint_url=params.get('endpoint_url') or None,
    )


def load_settings(environ: Optional[Mapping[str, str]] = None) -> StoreSettings:
    if environ is None:
        environ = os.environ
    url = environ.get(DATABASE_URL_VARIABLE, '').strip()
    if not url:
        raise ConfigurationError(
            f"Please define the {DATABASE_URL_VARIABLE} environment variable."
        )
    return parse_database_url(url)


def connect(settings: StoreSettings) -> Connection:
    """
    Open a DynamoDB resource and confirm both tables are reachable.
    
    Args:
        settings: Region, table prefix and optional endpoint
        
    Returns:
        Connection bound to the event and booking tables
        
    Raises:
        DatabaseConnectionError: Endpoint unreachable or a table is missing
    """
    try:
        resource = boto3.resource(
            'dynamodb',
            region_name=settings.region,
            endpoint_url=settings.endpoint_url,
            config=CLIENT_CONFIG,
        )
        events_table = resource.Table(settings.events_table)
        bookings_table = resource.Table(settings.bookings_table)
        events_table.load()
        bookings_table.load()
    except (ClientError, BotoCoreError) as e:
        raise DatabaseConnectionError(
            f"Could not connect to DynamoDB in {settings.region}: {e}"
        ) from e

    return Connection(
        settings=settings,
        resource=resource,
        events_table=events_table,
        bookings_table=bookings_table,
    )


class ConnectionCache:
    """
    Lazily establishes one connection and hands it to every caller.
    
    Callers arriving while an attempt is in flight wait for that attempt
    instead of starting their own. A failed attempt is reported to all of
    its waiters and forgotten, so the next call starts over.
    """
    
    def __init__(
        self,
        settings: StoreSettings,
        connector: Callable[[StoreSettings], Connection] = connect,
    ):
        self.settings = settings
        self._connector = connector
        self._lock = threading.Lock()
        self._connection: Optional[Connection] = None
        self._pending: Optional[Future] = None
    
    def get_connection(self) -> Connection:
        connection = self._connection
        if connection is not None:
            return connection
        
        with self._lock:
            if self._connection is not None:
                return self._connection
            pending = self._pending
            starter = pending is None
            if starter:
                pending = Future()
                self._pending = pending
        
        if not starter:
            return pending.result()
        
        try:
            connection = self._connector(self.settings)
        except BaseException as e:
            logger.error(f"DynamoDB connection error: {e}")
            with self._lock:
                self._pending = None
            pending.set_exception(e)
            raise
        
        with self._lock:
            self._connection = connection
            self._pending = None
        pending.set_result(connection)
        logger.info(
            f"Connected to DynamoDB tables {self.settings.events_table}, "
            f"{self.settings.bookings_table}"
        )
        return connection
    
    def reset(self) -> None:
        """Forget the cached connection."""
        with self._lock:
            self._connection = None
