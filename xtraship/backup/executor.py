"""
Backup executor - runs xtrabackup against the replica.

Workflow:
1. Check the backups mount and create the staging directory
2. Run xtrabackup: stdout -> {token}.xbstream, stderr -> {token}.xbstream.log
3. Read the last log line and require the "completed OK!" marker
4. Delete the log
"""

import logging
import os
from typing import List

from xtraship.errors import FatalError
from xtraship.models import BackupArtifact, BackupContext, ConnectionDescriptor
from .runner import RunnerError


logger = logging.getLogger(__name__)

SUCCESS_MARKER = 'completed OK!'


class BackupToolError(FatalError):
    """Raised when xtrabackup did not report success."""
    pass


def detect_processors(runner) -> int:
    """
    Ask the backup tool host how many processors it has.

    Raises:
        RunnerError: If the command fails or the count is not a positive integer
    """
    result = runner.run(['nproc'])

    if result.stderr:
        raise RunnerError(f"Error setting processors: {result.stderr.strip()}")

    try:
        processors = int(result.stdout.strip())
    except ValueError:
        processors = 0

    if processors <= 0:
        raise RunnerError(f"Set processors error: unexpected nproc output {result.stdout!r}")

    return processors


def build_backup_command(connection: ConnectionDescriptor, database: str, artifact: BackupArtifact,
                         processors: int, backups_path: str, compress_algorithm: str = 'zstd',
                         safe_slave_backup_timeout: int = 300) -> List[str]:
    """
    Build the xtrabackup argument list.

    Args:
        connection: Replica to back up
        database: Database identifier, recorded in the backup history tag
        artifact: Artifact being produced
        processors: Processor budget of the backup tool host
        backups_path: xtrabackup target directory
        compress_algorithm: Compression codec
        safe_slave_backup_timeout: Seconds to wait for the replica SQL thread

    Returns:
        Argument list, suitable for exec without a shell
    """
    return [
        'xtrabackup',
        f'--user={connection.user}',
        f'--password={connection.password}',
        f'--host={connection.host}',
        f'--port={connection.port}',
        '--backup',
        '--stream=xbstream',
        '--strict',
        f'--history={artifact.history_tag(database)}',  # PERCONA_SCHEMA.xtrabackup_history
        '--slave-info',
        '--safe-slave-backup',
        f'--safe-slave-backup-timeout={safe_slave_backup_timeout}',
        '--check-privileges',
        f'--target-dir={backups_path}',
        f'--compress={compress_algorithm}',
        f'--compress-threads={processors // 2}',
        f'--parallel={processors}',
    ]


def read_last_line(path: str, block_size: int = 8192) -> str:
    """
    Return the last line of a file, like `tail -1`.

    Only the final block of the file is read.
    """
    with open(path, 'rb') as f:
        f.seek(0, os.SEEK_END)
        f.seek(max(0, f.tell() - block_size))
        data = f.read()

    lines = data.decode('utf-8', errors='replace').splitlines()
    return lines[-1] if lines else ''


class BackupExecutor:
    """
    Produces one artifact in the staging directory per call to run().
    """

    def __init__(self, context: BackupContext):
        """
        Initialize backup executor.

        Args:
            context: Startup context (target, runner, processors, stores)
        """
        self.context = context

    def run(self, artifact: BackupArtifact) -> str:
        """
        Run the backup tool for an artifact.

        Returns:
            Path of the primary file

        Raises:
            BackupToolError: If the mount is missing, the marker is absent
                or the log cannot be deleted
            StorageError: If the staging directory cannot be created
        """
        logger.info("Backup start")

        config = self.context.config
        local = self.context.local

        if not os.path.exists(config.BACKUPS_PATH):
            raise BackupToolError(f"Mount directory does not exist: {config.BACKUPS_PATH}")

        local.ensure_root()

        file_path = local.get_path(artifact.filename)
        log_path = local.get_path(artifact.log_filename)

        args = build_backup_command(
            self.context.target.connection,
            self.context.target.name,
            artifact,
            self.context.processors,
            config.BACKUPS_PATH,
            compress_algorithm=config.COMPRESS_ALGORITHM,
            safe_slave_backup_timeout=config.SAFE_SLAVE_BACKUP_TIMEOUT
        )

        result = self.context.runner.run(args, stdout_path=file_path, stderr_path=log_path)
        logger.info(f"xtrabackup exited with status {result.exit_code} for {artifact.filename}")

        try:
            last_line = read_last_line(log_path)
        except OSError as e:
            raise BackupToolError(f"Backup failed: cannot read log {log_path}: {e}")

        if SUCCESS_MARKER not in last_line:
            raise BackupToolError(f"Backup failed: {last_line}")

        if result.exit_code != 0:
            logger.warning(f"xtrabackup reported success with exit status {result.exit_code}")

        try:
            os.unlink(log_path)
        except OSError as e:
            raise BackupToolError(f"Error deleting: {log_path}: {e}")

        return file_path
