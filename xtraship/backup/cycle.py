"""
One full backup cycle for a database.

Workflow:
1. Assign the artifact's timestamp token
2. Run xtrabackup into the staging directory
3. Upload the artifact and verify it remotely
4. Cleanup expired staged files
5. Cleanup expired remote objects
"""

import logging
import time
from datetime import datetime, timezone
from typing import Optional

from xtraship.models import BackupArtifact, BackupContext
from .executor import BackupExecutor
from .uploader import ArtifactUploader
from .retention import RetentionManager


logger = logging.getLogger(__name__)


class BackupCycle:
    """
    Drives Executor -> Uploader -> RetentionManager once per run().

    Any FatalError propagates to the caller untouched.
    """

    def __init__(self, context: BackupContext):
        self.context = context
        self.executor = BackupExecutor(context)
        self.uploader = ArtifactUploader(context.local, context.remote)
        self.retention = RetentionManager(context.local, context.remote, context.thresholds)

    def run(self, now: Optional[datetime] = None) -> BackupArtifact:
        """
        Execute one cycle.

        Returns:
            The artifact produced and uploaded by this cycle
        """
        start = time.monotonic()
        now = now or datetime.now(timezone.utc)
        artifact = BackupArtifact.create(now)

        logger.info(f"--- Backup Start {artifact.token} --- ")

        self.executor.run(artifact)
        self.uploader.upload(artifact)

        local_summary = self.retention.clean_local(now)
        remote_summary = self.retention.clean_remote(now)

        logger.info(
            f"Retention complete. "
            f"Local deleted: {len(local_summary['deleted'])}, "
            f"Local skipped: {len(local_summary['skipped'])}, "
            f"Remote deleted: {len(remote_summary['deleted'])}, "
            f"Errors: {len(local_summary['errors']) + len(remote_summary['errors'])}"
        )

        logger.info(f"--- Backup Finish {time.monotonic() - start:.2f} seconds --- ")
        return artifact
