"""
Artifact uploader - ships a staged artifact to the remote tier.
"""

import logging

from xtraship.errors import FatalError
from xtraship.models import BackupArtifact
from .storage import S3Storage, LocalStorage


logger = logging.getLogger(__name__)


class UploadError(FatalError):
    """Raised when an artifact could not be stored remotely."""
    pass


class ArtifactUploader:
    """
    Transfers one artifact and verifies it landed.

    A successful transfer call is not trusted on its own; the destination key
    is always checked afterwards.
    """

    def __init__(self, local: LocalStorage, remote: S3Storage):
        self.local = local
        self.remote = remote

    def upload(self, artifact: BackupArtifact) -> str:
        """
        Upload an artifact to {remote root}/{filename}.

        Returns:
            Remote key of the uploaded artifact

        Raises:
            UploadError: If the root is unreadable, the transfer fails or the
                object is missing afterwards
        """
        logger.info("Upload start")

        if not self.remote.is_root_readable():
            raise UploadError(f"Can't read remote root directory: {self.remote.root}")

        destination = self.remote.key_for(artifact.filename)

        try:
            if not self.local.transfer(artifact.filename, destination, self.remote):
                raise UploadError(f"Error uploading to {destination}")

            if not self.remote.exists(destination):
                raise UploadError(f"File not found in destination: {destination}")

        except UploadError:
            raise
        except Exception as e:
            raise UploadError(f"Upload of {artifact.filename} failed: {e}") from e

        logger.info(f"Uploaded {artifact.filename} to {destination}")
        return destination
