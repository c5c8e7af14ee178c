"""
Retention policy enforcement for backups.

An artifact's age comes only from the timestamp token in its filename.
Names that don't carry a recognized suffix and a parseable token are never
eligible for deletion.
"""

import logging
import posixpath
from datetime import datetime, timezone
from typing import Optional, Dict, Any

from xtraship.models import TIMESTAMP_FORMAT, PRIMARY_SUFFIX, LOG_SUFFIX, RetentionThresholds
from .storage import S3Storage, LocalStorage, StorageError


logger = logging.getLogger(__name__)


def is_log_artifact(filename: str) -> bool:
    return filename.endswith(LOG_SUFFIX)


def parse_artifact_timestamp(filename: str) -> Optional[datetime]:
    """
    Extract the UTC timestamp embedded in an artifact filename.

    Args:
        filename: e.g. '2024_01_01_00_00_00.xbstream' or '....xbstream.log'

    Returns:
        Aware datetime, or None if the name is not an artifact
    """
    if filename.endswith(PRIMARY_SUFFIX):
        token = filename[:-len(PRIMARY_SUFFIX)]
    elif filename.endswith(LOG_SUFFIX):
        token = filename[:-len(LOG_SUFFIX)]
    else:
        return None

    try:
        return datetime.strptime(token, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        return None


def is_expired(filename: str, seconds: int, now: Optional[datetime] = None) -> bool:
    """
    Check whether an artifact is older than the given number of seconds.

    Returns:
        True only for artifact names whose age strictly exceeds seconds
    """
    created = parse_artifact_timestamp(filename)
    if created is None:
        return False

    now = now or datetime.now(timezone.utc)
    return (now - created).total_seconds() > seconds


class RetentionManager:
    """
    Deletes expired artifacts from the staging and remote tiers of one database.

    A staged primary artifact is only removed once the remote tier holds it,
    or once it is older than the remote window itself.
    """

    def __init__(self, local: LocalStorage, remote: S3Storage, thresholds: RetentionThresholds):
        self.local = local
        self.remote = remote
        self.thresholds = thresholds

    def clean_local(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Cleanup expired files in the staging directory.

        Returns:
            Dict with 'deleted', 'skipped' and 'errors' lists
        """
        logger.info("Local cleanup start")
        now = now or datetime.now(timezone.utc)

        summary = {
            'deleted': [],
            'skipped': [],
            'errors': []
        }

        for item in self.local.list_entries():
            if not is_expired(item, self.thresholds.local_seconds, now):
                continue

            path = self.local.get_path(item)

            if not is_log_artifact(item):
                try:
                    uploaded = self.remote.exists(self.remote.key_for(item))
                except StorageError as e:
                    logger.error(f"Failed to check remote copy of {path}: {e}")
                    summary['errors'].append(f"{path}: {e}")
                    continue

                if not uploaded and not is_expired(item, self.thresholds.remote_seconds, now):
                    logger.warning(f"Skipping delete not found on cloud: {path}")
                    summary['skipped'].append(path)
                    continue

            try:
                self.local.delete(item)
                summary['deleted'].append(path)
                logger.info(f"{path} Deleted!")
            except StorageError as e:
                logger.error(f"Failed to delete local file {path}: {e}")
                summary['errors'].append(f"{path}: {e}")

        return summary

    def clean_remote(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Cleanup expired objects under the remote root.

        Does nothing when the listing comes back truncated.

        Returns:
            Dict with 'deleted', 'skipped' and 'errors' lists

        Raises:
            StorageError: If the root cannot be listed
        """
        logger.info("Remote cleanup start")
        now = now or datetime.now(timezone.utc)

        summary = {
            'deleted': [],
            'skipped': [],
            'errors': []
        }

        listing = self.remote.list_objects()

        if listing.truncated:
            logger.warning(f"Remote listing of {self.remote.root} is truncated, skipping cleanup")
            summary['skipped'] = [obj['Key'] for obj in listing.items]
            return summary

        for obj in listing.items:
            key = obj['Key']
            if not is_expired(posixpath.basename(key), self.thresholds.remote_seconds, now):
                continue

            try:
                self.remote.delete(key)
                summary['deleted'].append(key)
                logger.info(f"{key} Deleted!")
            except StorageError as e:
                logger.error(f"Failed to delete S3 object {key}: {e}")
                summary['errors'].append(f"{key}: {e}")

        return summary
