"""
Runners for the external backup tool.

Supports:
- DockerRunner: exec into the xtrabackup container through the Docker API
- SSHRunner: run on a backup host reached over SSH

Both take a structured argument list (never a shell string) and either
stream stdout/stderr into caller supplied files or capture them.
"""

import io
import logging
import shlex
import time
from contextlib import ExitStack
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import docker
import paramiko
from docker.errors import DockerException
from paramiko import SSHClient, AutoAddPolicy

from xtraship.errors import FatalError


logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


class RunnerError(FatalError):
    """Raised when the backup tool host cannot be reached or queried."""
    pass


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one command. Streams redirected to files are left empty."""
    exit_code: int
    stdout: str = ''
    stderr: str = ''


def _open_sink(stack: ExitStack, path: Optional[str]):
    if path is None:
        return io.BytesIO()
    return stack.enter_context(open(path, 'wb'))


def _drain(sink) -> str:
    if isinstance(sink, io.BytesIO):
        return sink.getvalue().decode('utf-8', errors='replace')
    return ''


class DockerRunner:
    """
    Runs commands inside the backup tool container.

    The container is looked up by name once, when the runner is created, and
    its id is kept for the lifetime of the process.
    """

    def __init__(self, container_name: str = 'xtrabackup', client=None):
        """
        Initialize Docker runner.

        Args:
            container_name: Name filter used to find the container
            client: Optional docker client (defaults to docker.from_env())

        Raises:
            RunnerError: If the daemon is unreachable or no container matches
        """
        self.container_name = container_name

        try:
            self.client = client or docker.from_env()
            containers = self.client.containers.list(filters={'name': container_name})
        except DockerException as e:
            raise RunnerError(f"Error setting container Id: {e}")

        if not containers:
            raise RunnerError(f"Container not found: {container_name}")

        self.container_id = containers[0].id

    @property
    def identity(self) -> str:
        return self.container_id

    def run(self, args: List[str], stdout_path: Optional[str] = None,
            stderr_path: Optional[str] = None) -> CommandResult:
        """
        Execute a command in the container and wait for it to exit.

        Args:
            args: Command and arguments
            stdout_path: File receiving stdout (captured when None)
            stderr_path: File receiving stderr (captured when None)

        Returns:
            CommandResult with the exit code and any captured output

        Raises:
            RunnerError: If the Docker API call fails
        """
        try:
            exec_id = self.client.api.exec_create(self.container_id, cmd=args)['Id']

            with ExitStack() as stack:
                out = _open_sink(stack, stdout_path)
                err = _open_sink(stack, stderr_path)

                for stdout_chunk, stderr_chunk in self.client.api.exec_start(exec_id, stream=True, demux=True):
                    if stdout_chunk:
                        out.write(stdout_chunk)
                    if stderr_chunk:
                        err.write(stderr_chunk)

                # The stream can close before the exec is reported finished
                inspect = self.client.api.exec_inspect(exec_id)
                while inspect.get('Running'):
                    time.sleep(0.1)
                    inspect = self.client.api.exec_inspect(exec_id)

                return CommandResult(exit_code=inspect['ExitCode'], stdout=_drain(out), stderr=_drain(err))

        except DockerException as e:
            raise RunnerError(f"Docker exec failed in {self.container_id}: {e}")


class SSHRunner:
    """
    Runs commands on a remote backup host via SSH.

    Output is streamed back over the channel, so the artifact still lands in
    the local staging directory.
    """

    def __init__(self, host: str, username: str, port: int = 22,
                 password: Optional[str] = None, private_key: Optional[str] = None):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.private_key_path = private_key

        self.ssh_client = None

    @property
    def identity(self) -> str:
        return f"{self.username}@{self.host}:{self.port}"

    def _connect(self):
        """
        Establish SSH connection.

        Raises:
            RunnerError: If connection fails
        """
        if self.ssh_client is not None:
            transport = self.ssh_client.get_transport()
            if transport is not None and transport.is_active():
                return

            logger.warning(f"SSH connection to {self.host} dropped, reconnecting")
            self.close()

        try:
            client = SSHClient()
            client.set_missing_host_key_policy(AutoAddPolicy())

            connect_kwargs = {
                'hostname': self.host,
                'port': self.port,
                'username': self.username,
                'timeout': 30
            }

            if self.password:
                connect_kwargs['password'] = self.password
            elif self.private_key_path:
                key_path = Path(self.private_key_path).expanduser()
                if not key_path.exists():
                    raise RunnerError(f"Private key not found: {self.private_key_path}")
                connect_kwargs['key_filename'] = str(key_path)
            else:
                raise RunnerError("Either password or private_key must be provided")

            client.connect(**connect_kwargs)
            self.ssh_client = client

        except RunnerError:
            raise
        except paramiko.AuthenticationException as e:
            raise RunnerError(f"SSH authentication failed: {e}")
        except paramiko.SSHException as e:
            raise RunnerError(f"SSH connection failed: {e}")
        except Exception as e:
            raise RunnerError(f"Failed to connect to {self.host}: {e}")

    def run(self, args: List[str], stdout_path: Optional[str] = None,
            stderr_path: Optional[str] = None) -> CommandResult:
        """Execute a command on the remote host and wait for it to exit."""
        self._connect()

        try:
            _, stdout, _ = self.ssh_client.exec_command(shlex.join(args))
            channel = stdout.channel

            with ExitStack() as stack:
                out = _open_sink(stack, stdout_path)
                err = _open_sink(stack, stderr_path)

                while True:
                    if channel.recv_ready():
                        out.write(channel.recv(CHUNK_SIZE))
                    elif channel.recv_stderr_ready():
                        err.write(channel.recv_stderr(CHUNK_SIZE))
                    elif channel.exit_status_ready() and (channel.eof_received or channel.closed):
                        # The last chunks can arrive together with the exit status
                        if not (channel.recv_ready() or channel.recv_stderr_ready()):
                            break
                    else:
                        time.sleep(0.1)

                exit_code = channel.recv_exit_status()
                return CommandResult(exit_code=exit_code, stdout=_drain(out), stderr=_drain(err))

        except paramiko.SSHException as e:
            raise RunnerError(f"SSH command failed on {self.host}: {e}")

    def close(self):
        """Close the SSH connection."""
        if self.ssh_client:
            self.ssh_client.close()
            self.ssh_client = None


def create_runner(config):
    """
    Factory function to create the configured runner.

    Args:
        config: Configuration class with RUNNER and runner settings

    Returns:
        DockerRunner or SSHRunner instance

    Raises:
        RunnerError: If the runner type is invalid
    """
    if config.RUNNER == 'docker':
        return DockerRunner(config.XTRABACKUP_CONTAINER)
    elif config.RUNNER == 'ssh':
        if not config.SSH_HOST:
            raise RunnerError("BACKUP_SSH_HOST is required for the ssh runner")
        return SSHRunner(
            host=config.SSH_HOST,
            username=config.SSH_USERNAME,
            port=config.SSH_PORT,
            password=config.SSH_PASSWORD,
            private_key=config.SSH_PRIVATE_KEY
        )
    else:
        raise RunnerError(f"Invalid runner type: {config.RUNNER}")
