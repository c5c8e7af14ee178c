"""
Backup module for xtraship.

This module handles the backup lifecycle of one database:
- Replica resolution and connection acquisition
- xtrabackup execution through a runner
- Storage (S3 and local staging)
- Upload and verification
- Retention policy enforcement
"""

from .connection import ConnectionResolver
from .runner import DockerRunner, SSHRunner, create_runner
from .executor import BackupExecutor, detect_processors
from .storage import S3Storage, LocalStorage
from .uploader import ArtifactUploader
from .retention import RetentionManager, is_expired
from .cycle import BackupCycle

__all__ = [
    'ConnectionResolver',
    'DockerRunner',
    'SSHRunner',
    'create_runner',
    'BackupExecutor',
    'detect_processors',
    'S3Storage',
    'LocalStorage',
    'ArtifactUploader',
    'RetentionManager',
    'is_expired',
    'BackupCycle'
]
