"""
morphctl — client control surface for remote compute instances

Provides:
- Client context (MorphClient) — transport, auth header, request stats
- Instance handles (Instance, InstanceAPI) — start, refresh, wait until ready
- Credential rotation (rotate_sync, RotationJob, rotate_async)
- Shell sessions (ShellSession) — command execution over SSH
"""

from .client import MorphClient
from .config import ClientConfig, load_config
from .errors import (
    MorphError, ConfigError, AssociationError, TransportError, NotFoundError,
    ProtocolError, TerminalStateError, NotReadyError, WaitTimeoutError, SessionError,
)
from .instance import Instance, InstanceAPI
from .models import Credential, Endpoint, InstanceStatus, Networking, ResourceSpec
from .rotation import RotationJob, rotate_async, rotate_sync
from .ssh import ExecResult, ShellSession

__all__ = [
    'MorphClient', 'ClientConfig', 'load_config',
    'MorphError', 'ConfigError', 'AssociationError', 'TransportError', 'NotFoundError',
    'ProtocolError', 'TerminalStateError', 'NotReadyError', 'WaitTimeoutError', 'SessionError',
    'Instance', 'InstanceAPI',
    'Credential', 'Endpoint', 'InstanceStatus', 'Networking', 'ResourceSpec',
    'RotationJob', 'rotate_async', 'rotate_sync',
    'ExecResult', 'ShellSession',
]
