"""
hostscale Command Execution

The single primitive every CLI-backed adapter goes through: run an argv
with a timeout and optional stdin, get back exit code, output and timing.
Commands run locally through subprocess or on a remote host over SSH.
"""

import os
import shlex
import socket
import subprocess
import time
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import paramiko

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0


@dataclass(frozen=True)
class ServerRef:
    """Remote host that commands are executed on"""
    host: str
    port: int = 22
    user: str = "root"
    identity_file: Optional[str] = None

    def __str__(self) -> str:
        return f"{self.user}@{self.host}:{self.port}"


@dataclass
class CommandResult:
    """Outcome of one command execution"""
    argv: List[str]
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    duration: float = 0.0
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.timed_out

    @property
    def command(self) -> str:
        return shlex.join(self.argv)

    def error_output(self) -> str:
        """Best description of a failure, stderr first"""
        return (self.stderr or self.stdout).strip() or f"exit code {self.exit_code}"


class CommandRunner(ABC):
    """Executes commands; implementations decide where"""

    @abstractmethod
    def run(
        self,
        argv: Sequence[str],
        timeout: float = DEFAULT_TIMEOUT,
        stdin: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        cwd: Optional[str] = None
    ) -> CommandResult:
        """
        Run a command and wait for it.

        Never raises for a failing or timed-out command; both are reported
        through the returned CommandResult.
        """
        pass


class LocalCommandRunner(CommandRunner):
    """Runs commands on this host via subprocess"""

    def run(
        self,
        argv: Sequence[str],
        timeout: float = DEFAULT_TIMEOUT,
        stdin: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        cwd: Optional[str] = None
    ) -> CommandResult:
        argv = [str(arg) for arg in argv]
        full_env = {**os.environ, **env} if env else None

        logger.debug(f"Running: {shlex.join(argv[:2])} ... (timeout={timeout}s)")
        start = time.monotonic()

        try:
            result = subprocess.run(
                argv,
                input=stdin,
                capture_output=True,
                text=True,
                timeout=timeout,
                env=full_env,
                cwd=cwd
            )
        except subprocess.TimeoutExpired as e:
            logger.warning(f"Command timed out after {timeout}s: {argv[0]}")
            return CommandResult(
                argv=argv,
                exit_code=-1,
                stdout=_decode(e.stdout),
                stderr=_decode(e.stderr),
                duration=time.monotonic() - start,
                timed_out=True
            )
        except FileNotFoundError:
            return CommandResult(
                argv=argv,
                exit_code=127,
                stderr=f"{argv[0]}: command not found",
                duration=time.monotonic() - start
            )
        except OSError as e:
            return CommandResult(
                argv=argv,
                exit_code=126,
                stderr=str(e),
                duration=time.monotonic() - start
            )

        return CommandResult(
            argv=argv,
            exit_code=result.returncode,
            stdout=result.stdout,
            stderr=result.stderr,
            duration=time.monotonic() - start
        )


class SshCommandRunner(CommandRunner):
    """
    Runs commands on a remote server over SSH.

    One connection per command; the remote side sees the argv quoted for
    a POSIX shell.
    """

    def __init__(self, server: ServerRef, connect_timeout: float = 10.0):
        self.server = server
        self.connect_timeout = connect_timeout

    def _connect(self) -> paramiko.SSHClient:
        client = paramiko.SSHClient()
        client.load_system_host_keys()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        client.connect(
            hostname=self.server.host,
            port=self.server.port,
            username=self.server.user,
            key_filename=self.server.identity_file,
            timeout=self.connect_timeout,
            banner_timeout=self.connect_timeout,
            auth_timeout=self.connect_timeout
        )
        return client

    def build_remote_command(
        self,
        argv: Sequence[str],
        env: Optional[Dict[str, str]] = None,
        cwd: Optional[str] = None
    ) -> str:
        command = shlex.join(str(arg) for arg in argv)
        if env:
            assignments = " ".join(f"{key}={shlex.quote(value)}" for key, value in env.items())
            command = f"env {assignments} {command}"
        if cwd:
            command = f"cd {shlex.quote(cwd)} && {command}"
        return command

    def run(
        self,
        argv: Sequence[str],
        timeout: float = DEFAULT_TIMEOUT,
        stdin: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        cwd: Optional[str] = None
    ) -> CommandResult:
        argv = [str(arg) for arg in argv]
        remote_command = self.build_remote_command(argv, env, cwd)

        logger.debug(f"Running on {self.server}: {shlex.join(argv[:2])} ... (timeout={timeout}s)")
        start = time.monotonic()

        try:
            client = self._connect()
        except (paramiko.SSHException, OSError) as e:
            return CommandResult(
                argv=argv,
                exit_code=255,
                stderr=f"ssh {self.server.host}: {e}",
                duration=time.monotonic() - start,
                timed_out=isinstance(e, socket.timeout)
            )

        try:
            channel_stdin, channel_stdout, channel_stderr = client.exec_command(remote_command, timeout=timeout)
            if stdin is not None:
                channel_stdin.write(stdin)
                channel_stdin.channel.shutdown_write()

            stdout = channel_stdout.read().decode("utf-8", errors="replace")
            stderr = channel_stderr.read().decode("utf-8", errors="replace")
            exit_code = channel_stdout.channel.recv_exit_status()
        except socket.timeout:
            logger.warning(f"Remote command timed out after {timeout}s on {self.server.host}: {argv[0]}")
            return CommandResult(
                argv=argv,
                exit_code=-1,
                duration=time.monotonic() - start,
                timed_out=True
            )
        except (paramiko.SSHException, OSError, EOFError) as e:
            # Dropped connection mid-stream
            return CommandResult(
                argv=argv,
                exit_code=255,
                stderr=f"ssh {self.server.host}: {e}",
                duration=time.monotonic() - start
            )
        finally:
            client.close()

        return CommandResult(
            argv=argv,
            exit_code=exit_code,
            stdout=stdout,
            stderr=stderr,
            duration=time.monotonic() - start
        )


def _decode(output) -> str:
    if output is None:
        return ""
    if isinstance(output, bytes):
        return output.decode("utf-8", errors="replace")
    return output
