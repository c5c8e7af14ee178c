"""
Replica lookup and connection acquisition.

The backup must run against a live replica, so startup waits until the
replica accepts connections, with a bounded number of attempts.
"""

import logging
import time
from typing import Callable, List, Optional, Tuple

from sqlalchemy import create_engine, text
from sqlalchemy.engine import URL
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import NullPool

from xtraship.errors import ConfigError, FatalError, RetryableError
from xtraship.models import ConnectionDescriptor, DatabaseTarget
from xtraship.utils.dsn import parse_connection


logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 10
RETRY_DELAY_SECONDS = 5


class DatabaseNotReady(RetryableError):
    """Raised when the replica does not accept a connection yet."""
    pass


class ConnectionRetryExhausted(FatalError):
    """Raised when the replica never became reachable."""
    pass


def probe_connection(descriptor: ConnectionDescriptor, timeout: int = 10):
    """
    Open a connection to the replica and run a trivial query.

    Raises:
        DatabaseNotReady: If the connection or query fails
    """
    url = URL.create(
        'mysql+pymysql',
        username=descriptor.user,
        password=descriptor.password,
        host=descriptor.host,
        port=descriptor.port,
        database=descriptor.database
    )
    engine = create_engine(url, poolclass=NullPool, connect_args={'connect_timeout': timeout})

    try:
        with engine.connect() as conn:
            conn.execute(text('SELECT 1'))
    except SQLAlchemyError as e:
        raise DatabaseNotReady(str(e))
    finally:
        engine.dispose()


class ConnectionResolver:
    """
    Maps a database identifier to its replica and waits for it to be ready.
    """

    def __init__(self, replicas: List[Tuple[str, str]],
                 probe: Callable[[ConnectionDescriptor], None] = probe_connection,
                 sleep: Callable[[float], None] = time.sleep,
                 max_attempts: int = MAX_ATTEMPTS,
                 retry_delay: float = RETRY_DELAY_SECONDS):
        """
        Args:
            replicas: (name, dsn) pairs, in configuration order
            probe: Callable raising DatabaseNotReady when a connection fails
            sleep: Callable used between attempts
            max_attempts: Attempts before giving up
            retry_delay: Fixed delay between attempts in seconds
        """
        self.replicas = replicas
        self.probe = probe
        self.sleep = sleep
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay

    def find(self, database: str) -> Optional[str]:
        """Return the DSN of the first replica named exactly database."""
        for name, dsn in self.replicas:
            if name == database:
                return dsn
        return None

    def resolve(self, database: str) -> DatabaseTarget:
        """
        Resolve the replica connection of a database.

        Raises:
            ConfigError: If no replica matches or its DSN is invalid
        """
        dsn = self.find(database)
        if dsn is None:
            raise ConfigError(f"No DSN match for database: {database}")

        return DatabaseTarget(name=database, connection=parse_connection(dsn))

    def wait_until_ready(self, target: DatabaseTarget) -> int:
        """
        Attempt to connect until the replica answers.

        Returns:
            Number of attempts it took

        Raises:
            ConnectionRetryExhausted: After max_attempts failed attempts
        """
        attempts = 0

        while True:
            attempts += 1
            try:
                self.probe(target.connection)
                return attempts
            except DatabaseNotReady as e:
                logger.warning(f"Database not ready. Retrying connection ({attempts})...")
                if attempts >= self.max_attempts:
                    raise ConnectionRetryExhausted(f"Failed to connect to database: {e}")

                self.sleep(self.retry_delay)
