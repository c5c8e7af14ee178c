"""
Plain data types shared by the backup components.

Nothing here is persisted: the timestamp token embedded in a filename is the
only identity and age information an artifact has.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional


TIMESTAMP_FORMAT = '%Y_%m_%d_%H_%M_%S'
PRIMARY_SUFFIX = '.xbstream'
LOG_SUFFIX = '.xbstream.log'


@dataclass(frozen=True)
class ConnectionDescriptor:
    """Replica connection details resolved from a DSN."""
    host: str
    port: int
    user: str
    password: str = field(repr=False)
    database: Optional[str] = None


@dataclass(frozen=True)
class DatabaseTarget:
    """A database identifier together with its replica connection."""
    name: str
    connection: ConnectionDescriptor


@dataclass(frozen=True)
class RetentionThresholds:
    """Age limits, in seconds, applied independently to each tier."""
    local_seconds: int
    remote_seconds: int


@dataclass(frozen=True)
class BackupArtifact:
    """
    One backup produced by a cycle.

    The primary file, its log and its remote object key all derive from the
    same timestamp token.
    """
    token: str

    @classmethod
    def create(cls, now: Optional[datetime] = None) -> 'BackupArtifact':
        now = now or datetime.now(timezone.utc)
        return cls(token=now.strftime(TIMESTAMP_FORMAT))

    @property
    def filename(self) -> str:
        return self.token + PRIMARY_SUFFIX

    @property
    def log_filename(self) -> str:
        return self.token + LOG_SUFFIX

    def history_tag(self, database: str) -> str:
        return f"{database}|{self.token}"


@dataclass
class BackupContext:
    """
    Everything resolved once at startup and shared by the components.

    Built by xtraship.create_service() and never mutated afterwards.
    """
    target: DatabaseTarget
    runner: Any
    processors: int
    thresholds: RetentionThresholds
    local: Any
    remote: Any
    config: Any
