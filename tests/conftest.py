"""
Shared pytest fixtures for xtraship tests.

This module provides fixtures for:
- Test configuration pointing at a temporary backups mount
- Mock S3 bucket using moto
- Local and remote storage handlers
- A fake backup tool runner
- A fully assembled BackupContext
"""

from datetime import datetime, timezone
from pathlib import Path

import pytest
import boto3
from moto import mock_aws

from xtraship.config import TestingConfig
from xtraship.backup.storage import S3Storage, LocalStorage
from xtraship.models import (
    BackupContext,
    ConnectionDescriptor,
    DatabaseTarget,
    RetentionThresholds
)

from tests.helpers import DATABASE, BUCKET, DAY, FakeRunner


@pytest.fixture
def now():
    return datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def test_config(tmp_path):
    """TestingConfig with its backups mount inside tmp_path."""
    backups = tmp_path / 'backups'
    backups.mkdir()

    class Config(TestingConfig):
        BACKUPS_PATH = str(backups)
        LOCAL_RETENTION_SECONDS = DAY
        REMOTE_RETENTION_SECONDS = 2 * DAY

    return Config


@pytest.fixture
def mock_s3():
    """
    Mock S3 service using moto.

    Creates a test bucket 'test-bucket' in us-east-1 region.
    """
    with mock_aws():
        s3 = boto3.resource('s3', region_name='us-east-1')
        s3.create_bucket(Bucket=BUCKET)
        yield s3


@pytest.fixture
def remote_storage(mock_s3):
    return S3Storage(
        access_key='test_key',
        secret_key='test_secret',
        bucket_name=BUCKET,
        root=f'{DATABASE}/full'
    )


@pytest.fixture
def local_storage(test_config):
    storage = LocalStorage(str(Path(test_config.BACKUPS_PATH) / DATABASE / 'full'))
    storage.ensure_root()
    return storage


@pytest.fixture
def fake_runner():
    return FakeRunner()


@pytest.fixture
def backup_context(test_config, fake_runner, local_storage, remote_storage):
    return BackupContext(
        target=DatabaseTarget(
            name=DATABASE,
            connection=ConnectionDescriptor(
                host='replica.internal',
                port=3306,
                user='backup',
                password='s3cret',
                database='appwrite'
            )
        ),
        runner=fake_runner,
        processors=8,
        thresholds=RetentionThresholds(
            local_seconds=test_config.LOCAL_RETENTION_SECONDS,
            remote_seconds=test_config.REMOTE_RETENTION_SECONDS
        ),
        local=local_storage,
        remote=remote_storage,
        config=test_config
    )
