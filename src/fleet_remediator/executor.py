"""SSH command execution against fleet hosts.

Wraps the system ``ssh`` client in non-interactive batch mode. ``execute``
raises typed RemoteExecutionError subclasses and is used by the collection
scheduler; ``run`` never raises and maps every failure to the sentinel exit
code so a remediation batch can survive a host going away mid-run.
"""

from __future__ import annotations

import logging
import os
import socket
import subprocess

from fleet_remediator.config import FleetConfig
from fleet_remediator.exceptions import (
    RemoteAuthError,
    RemoteConnectionError,
    RemoteExecutionError,
    RemoteTimeoutError,
)
from fleet_remediator.models import TRANSPORT_FAILURE_EXIT_CODE, ExecResult, HostDescriptor

logger = logging.getLogger(__name__)

# ssh reserves 255 for its own errors (connect, auth, protocol)
SSH_ERROR_EXIT_CODE = 255


class RemoteExecutor:
    """Runs single-line shell commands on remote hosts over SSH."""

    def __init__(
        self,
        ssh_binary: str = "ssh",
        connect_timeout: int = 10,
    ) -> None:
        self.ssh_binary = ssh_binary
        self.connect_timeout = connect_timeout

    @classmethod
    def from_config(cls, config: FleetConfig) -> RemoteExecutor:
        return cls(ssh_binary=config.ssh_binary, connect_timeout=config.ssh_connect_timeout)

    def build_argv(self, host: HostDescriptor, command: str) -> list[str]:
        """Return the ssh argument vector for running ``command`` on ``host``."""
        return [
            self.ssh_binary,
            "-i", os.path.expanduser(host.key_path),
            "-p", str(host.port),
            "-o", "BatchMode=yes",
            "-o", f"ConnectTimeout={self.connect_timeout}",
            "-o", "StrictHostKeyChecking=accept-new",
            "-T",
            f"{host.username}@{host.address}",
            command,
        ]

    def probe(self, host: HostDescriptor, timeout: float) -> bool:
        """Return True if the host accepts TCP connections on its SSH port."""
        try:
            with socket.create_connection((host.address, host.port), timeout=timeout):
                return True
        except OSError as exc:
            logger.debug("Probe of %s:%d failed: %s", host.address, host.port, exc)
            return False

    def execute(self, host: HostDescriptor, command: str, timeout: float) -> ExecResult:
        """Run ``command`` on ``host`` and return its exit code and output.

        The ssh child process is always reaped before this returns; on timeout
        it is killed first.

        Args:
            host: Target host.
            command: Single-line shell command.
            timeout: Seconds before the session is killed.

        Returns:
            ExecResult with the remote exit code and trimmed stdout+stderr.

        Raises:
            RemoteConnectionError: If the session could not be established.
            RemoteAuthError: If the host rejected the key.
            RemoteTimeoutError: If the command did not finish in time.
        """
        argv = self.build_argv(host, command)
        details = {"host": host.host_id, "port": host.port}
        try:
            proc = subprocess.run(
                argv,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                timeout=timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise RemoteTimeoutError(
                f"Command on {host.host_id} timed out after {timeout}s",
                timeout=timeout,
                details=details,
            ) from exc
        except OSError as exc:
            raise RemoteConnectionError(f"Could not start ssh for {host.host_id}: {exc}", details=details) from exc

        output = "\n".join(part.strip() for part in (proc.stdout, proc.stderr) if part and part.strip())
        if proc.returncode == SSH_ERROR_EXIT_CODE:
            if "permission denied" in (proc.stderr or "").lower():
                raise RemoteAuthError(f"Authentication to {host.host_id} failed: {output}", details=details)
            raise RemoteConnectionError(
                f"SSH connection to {host.host_id} failed: {output or 'no diagnostic output'}",
                details=details,
            )
        return ExecResult(exit_code=proc.returncode, output=output)

    def run(self, host: HostDescriptor, command: str, timeout: float) -> ExecResult:
        """Run ``command`` on ``host``; never raises.

        Any transport, authentication, or timeout failure is returned as
        exit code 9999 with a diagnostic message.
        """
        try:
            return self.execute(host, command, timeout)
        except RemoteExecutionError as exc:
            logger.warning("Remote execution on %s failed: %s", host.host_id, exc)
            return ExecResult(exit_code=TRANSPORT_FAILURE_EXIT_CODE, output=str(exc))
        except Exception as exc:
            logger.error("Unexpected error running command on %s: %s", host.host_id, exc)
            return ExecResult(
                exit_code=TRANSPORT_FAILURE_EXIT_CODE,
                output=f"{type(exc).__name__}: {exc}",
            )
