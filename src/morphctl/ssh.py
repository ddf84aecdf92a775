#!/usr/bin/env python3
"""
Shell Sessions — remote command execution on ready instances

Opens a paramiko connection to an instance's SSH endpoint using the
credential the caller holds (normally the result of the latest rotation).

Security model:
- Credentials are passed in, never read from disk or cached
- Command audit log per session (every exec is recorded)
- Timeout on connect and on every command

Usage:
    session = instance.ssh(credential)
    result = session.exec("echo hello")
    session.dispose()
"""

import io
import logging
import time
from dataclasses import dataclass, field, asdict
from typing import Optional, Dict, Any, List

import paramiko

from .errors import NotReadyError, SessionError
from .models import Credential, Endpoint, Networking

logger = logging.getLogger(__name__)

SSH_PORT = 22


@dataclass
class ExecResult:
    """Result of a remote command execution."""
    command: str
    exit_code: int
    stdout: str
    stderr: str
    success: bool
    duration_ms: float
    host: str = ""
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def select_endpoint(networking: Networking) -> Endpoint:
    """
    Pick the endpoint to open a shell on.

    Preference: an endpoint named or tagged "ssh", then anything on port 22,
    then the first declared endpoint.
    """
    endpoints = [e for e in networking.endpoints if e.host]
    if not endpoints:
        raise NotReadyError("Instance declares no reachable network endpoint")

    for endpoint in endpoints:
        if endpoint.name == "ssh" or endpoint.protocol == "ssh":
            return endpoint
    for endpoint in endpoints:
        if endpoint.port == SSH_PORT:
            return endpoint
    return endpoints[0]


def load_private_key(content: str):
    """Parse a private key held as a string. Returns None if no key type accepts it."""
    key_file = io.StringIO(content)
    for key_class in [paramiko.Ed25519Key, paramiko.RSAKey, paramiko.ECDSAKey]:
        try:
            key_file.seek(0)
            return key_class.from_private_key(key_file)
        except (paramiko.SSHException, ValueError):
            continue
    logger.warning("Could not parse SSH private key, falling back to password auth")
    return None


class ShellSession:
    """
    A live SSH connection to one instance.

    Created connected by open_session(); call dispose() (or use it as a
    context manager) to release the connection.
    """

    DEFAULT_TIMEOUT = 30

    def __init__(
        self,
        instance_id: str,
        host: str,
        port: int,
        username: str,
        credential: Credential,
        timeout: int = None,
    ):
        self.instance_id = instance_id
        self.host = host
        self.port = port
        self.username = username
        self.timeout = timeout or self.DEFAULT_TIMEOUT
        self._credential = credential
        self._client: Optional[paramiko.SSHClient] = None
        self._disposed = False
        self._exec_log: List[ExecResult] = []

    # ── Connection Management ────────────────────────────────────

    def connect(self) -> "ShellSession":
        """Establish the SSH connection. Raises SessionError on failure."""
        if self._disposed:
            raise SessionError("Session has been disposed")

        pkey = load_private_key(self._credential.private_key)
        password = self._credential.password or None
        if pkey is None and password is None:
            raise SessionError(f"No usable private key or password for {self.instance_id}")

        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            client.connect(
                hostname=self.host,
                port=self.port,
                username=self.username,
                pkey=pkey,
                password=password,
                timeout=self.timeout,
                allow_agent=False,
                look_for_keys=False,
            )
        except paramiko.AuthenticationException as e:
            logger.error(f"SSH auth failed for {self.username}@{self.host} ({self.instance_id})")
            client.close()
            raise SessionError(f"Authentication failed for {self.instance_id}") from e
        except (paramiko.SSHException, OSError) as e:
            logger.error(f"SSH connection failed to {self.host}: {e}")
            client.close()
            raise SessionError(f"Could not connect to {self.instance_id}: {e}") from e

        self._client = client
        logger.info(f"SSH connected to {self.username}@{self.host}:{self.port} ({self.instance_id})")
        return self

    def dispose(self):
        """Close the connection. Safe to call more than once."""
        if self._client is not None:
            self._client.close()
            self._client = None
            logger.info(f"SSH session to {self.instance_id} closed")
        self._disposed = True

    close = dispose

    @property
    def connected(self) -> bool:
        """Check if SSH connection is active."""
        if self._client is None:
            return False
        transport = self._client.get_transport()
        return transport is not None and transport.is_active()

    # ── Command Execution ────────────────────────────────────────

    def exec(self, command: str, timeout: int = None) -> ExecResult:
        """
        Execute a command on the instance.

        A non-zero exit code is reported in the result, not raised.

        Raises:
            SessionError: session disposed, or the channel failed.
        """
        if self._disposed or self._client is None:
            raise SessionError(f"Session to {self.instance_id} is not open")

        cmd_timeout = timeout or self.timeout
        start = time.time()

        try:
            _, stdout_ch, stderr_ch = self._client.exec_command(command, timeout=cmd_timeout)
            exit_code = stdout_ch.channel.recv_exit_status()
            stdout = stdout_ch.read().decode("utf-8", errors="replace")
            stderr = stderr_ch.read().decode("utf-8", errors="replace")
        except (paramiko.SSHException, OSError) as e:
            logger.warning(f"[SSH] {command[:80]} failed on {self.instance_id}: {e}")
            raise SessionError(f"Command failed on {self.instance_id}: {e}") from e

        result = ExecResult(
            command=command,
            exit_code=exit_code,
            stdout=stdout,
            stderr=stderr,
            success=exit_code == 0,
            duration_ms=round((time.time() - start) * 1000, 1),
            host=self.host,
        )
        self._exec_log.append(result)

        level = logging.INFO if result.success else logging.WARNING
        logger.log(
            level,
            f"[SSH] {command[:80]} -> exit={result.exit_code} "
            f"({result.duration_ms:.0f}ms)"
        )
        return result

    # ── Audit ────────────────────────────────────────────────────

    def get_exec_log(self, limit: int = 50) -> List[Dict[str, Any]]:
        """Get recent command execution log, newest first."""
        entries = self._exec_log[-limit:]
        return [e.to_dict() for e in reversed(entries)]

    def get_exec_stats(self) -> Dict[str, Any]:
        total = len(self._exec_log)
        successes = sum(1 for e in self._exec_log if e.success)
        avg_duration = (
            sum(e.duration_ms for e in self._exec_log) / total
            if total > 0 else 0
        )
        return {
            "total_commands": total,
            "successes": successes,
            "failures": total - successes,
            "avg_duration_ms": round(avg_duration, 1),
            "connected": self.connected,
            "host": self.host,
        }

    # ── Context Manager ──────────────────────────────────────────

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.dispose()
        return False

    def __repr__(self) -> str:
        status = "connected" if self.connected else "disconnected"
        return f"ShellSession({self.username}@{self.host}:{self.port}, {self.instance_id}, {status})"


def open_session(
    instance_id: str,
    networking: Networking,
    credential: Credential,
    username: str = "root",
    port: int = None,
    timeout: int = None,
) -> ShellSession:
    """Connect to the preferred endpoint of an instance and return the session."""
    endpoint = select_endpoint(networking)
    session = ShellSession(
        instance_id=instance_id,
        host=endpoint.host,
        port=port or endpoint.port,
        username=username,
        credential=credential,
        timeout=timeout,
    )
    return session.connect()
