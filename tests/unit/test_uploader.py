"""
Unit tests for the artifact uploader (xtraship/backup/uploader.py).
"""

from unittest.mock import MagicMock

import pytest

from xtraship.backup.storage import StorageError
from xtraship.backup.uploader import ArtifactUploader, UploadError
from xtraship.models import BackupArtifact

from tests.helpers import BUCKET


ARTIFACT = BackupArtifact(token='2024_01_01_00_00_00')


class TestArtifactUploader:
    """Test ArtifactUploader.upload."""

    def _stage(self, local_storage):
        (local_storage.root / ARTIFACT.filename).write_bytes(b'xbstream-data')

    def test_upload_and_verify(self, mock_s3, local_storage, remote_storage):
        """Test the artifact lands at {root}/{filename}."""
        self._stage(local_storage)

        key = ArtifactUploader(local_storage, remote_storage).upload(ARTIFACT)

        assert key == 'db_test_01/full/2024_01_01_00_00_00.xbstream'
        obj = mock_s3.Object(BUCKET, key)
        assert obj.get()['Body'].read() == b'xbstream-data'

    def test_unreadable_root_is_fatal(self, local_storage):
        """Test nothing is transferred when the root can't be read."""
        remote = MagicMock()
        remote.is_root_readable.return_value = False
        local = MagicMock()

        with pytest.raises(UploadError, match="Can't read remote root"):
            ArtifactUploader(local, remote).upload(ARTIFACT)

        local.transfer.assert_not_called()

    def test_transfer_failure_is_fatal(self):
        """Test a transfer reporting failure aborts."""
        remote = MagicMock()
        remote.key_for.return_value = 'db/full/2024_01_01_00_00_00.xbstream'
        local = MagicMock()
        local.transfer.return_value = False

        with pytest.raises(UploadError, match='Error uploading to db/full/'):
            ArtifactUploader(local, remote).upload(ARTIFACT)

        remote.exists.assert_not_called()

    def test_transfer_exception_is_fatal(self):
        """Test storage exceptions during transfer become UploadError."""
        remote = MagicMock()
        local = MagicMock()
        local.transfer.side_effect = StorageError("S3 upload failed (SlowDown)")

        with pytest.raises(UploadError, match='SlowDown'):
            ArtifactUploader(local, remote).upload(ARTIFACT)

    def test_existence_is_verified(self):
        """Test a successful transfer is not trusted without an existence check."""
        remote = MagicMock()
        remote.key_for.return_value = 'db/full/2024_01_01_00_00_00.xbstream'
        remote.exists.return_value = False
        local = MagicMock()
        local.transfer.return_value = True

        with pytest.raises(UploadError, match='File not found in destination'):
            ArtifactUploader(local, remote).upload(ARTIFACT)

        remote.exists.assert_called_once_with('db/full/2024_01_01_00_00_00.xbstream')

    def test_missing_local_file_is_fatal(self, local_storage, remote_storage):
        """Test uploading an artifact that was never staged."""
        with pytest.raises(UploadError):
            ArtifactUploader(local_storage, remote_storage).upload(ARTIFACT)
