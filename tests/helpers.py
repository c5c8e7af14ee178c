"""Test doubles and helpers shared by the unit tests."""

from pathlib import Path

from xtraship.backup.runner import CommandResult
from xtraship.models import TIMESTAMP_FORMAT


DATABASE = 'db_test_01'
BUCKET = 'test-bucket'
DAY = 60 * 60 * 24


def artifact_name(now, age, suffix='.xbstream'):
    """Filename of an artifact created `age` before `now`."""
    return (now - age).strftime(TIMESTAMP_FORMAT) + suffix


class FakeRunner:
    """
    Backup tool runner double.

    Writes canned stdout/stderr into the requested files and records every
    command it was asked to run.
    """

    identity = 'fake-container'

    def __init__(self, stdout=b'xbstream-data', stderr='xtrabackup: completed OK!\n',
                 exit_code=0, nproc='8\n'):
        self.stdout = stdout
        self.stderr = stderr
        self.exit_code = exit_code
        self.nproc = nproc
        self.calls = []

    def run(self, args, stdout_path=None, stderr_path=None):
        self.calls.append(list(args))

        if args == ['nproc']:
            return CommandResult(exit_code=0, stdout=self.nproc, stderr='')

        if stdout_path is not None:
            Path(stdout_path).write_bytes(self.stdout)
        if stderr_path is not None:
            Path(stderr_path).write_text(self.stderr)

        return CommandResult(exit_code=self.exit_code)
