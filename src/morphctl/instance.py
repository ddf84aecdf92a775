#!/usr/bin/env python3
"""
Instance handles — local view of one remote instance

Implements:
- InstanceAPI.start(snapshot_id) -> Instance
- InstanceAPI.get(instance_id) -> Instance
- InstanceAPI.list() -> list[Instance]
- Instance.refresh()
- Instance.wait_until_ready(timeout)
- Instance.fetch_ssh_key() -> Credential
- Instance.rotate_ssh_key() -> Credential
- Instance.rotate_ssh_key_async(timeout) -> Credential
- Instance.start_ssh_key_rotation() -> RotationJob
- Instance.ssh(credential) -> ShellSession
- Instance.stop()

An Instance is bound to at most one MorphClient for its whole life. One
built without a client is still a valid value, but every call that would
hit the network raises AssociationError before a request is attempted.
Instances do no locking; share one between threads only with external
coordination.
"""

import logging
from typing import Optional, Dict, Any, List

from .client import MorphClient
from .errors import AssociationError, NotReadyError, ProtocolError, TerminalStateError
from .models import (
    Credential, InstanceRefs, InstanceState, InstanceStatus, Networking,
    ResourceSpec, parse_instance, parse_instance_list,
)
from .polling import poll_until
from .rotation import RotationJob, fetch_credential, rotate_async, rotate_sync
from .ssh import ShellSession, open_session

logger = logging.getLogger(__name__)


class Instance:
    """Last-known state of one remote instance."""

    def __init__(
        self,
        instance_id: str,
        client: Optional[MorphClient] = None,
        status: InstanceStatus = InstanceStatus.PENDING,
        spec: Optional[ResourceSpec] = None,
        refs: Optional[InstanceRefs] = None,
        networking: Optional[Networking] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        self._id = instance_id
        self._client = client
        self.status = status
        self.spec = spec
        self.refs = refs or InstanceRefs()
        self.networking = networking or Networking()
        self.metadata = dict(metadata or {})

    @classmethod
    def from_state(cls, state: InstanceState, client: Optional[MorphClient] = None) -> "Instance":
        instance = cls(state.id, client)
        instance._apply(state)
        return instance

    @property
    def id(self) -> str:
        return self._id

    @property
    def client(self) -> Optional[MorphClient]:
        return self._client

    def _require_client(self) -> MorphClient:
        if self._client is None:
            raise AssociationError()
        return self._client

    def _apply(self, state: InstanceState) -> None:
        self.status = state.status
        self.spec = state.spec
        self.refs = state.refs
        self.networking = state.networking
        self.metadata = state.metadata

    # ── State ────────────────────────────────────────────────────

    def refresh(self) -> "Instance":
        """
        Re-read this instance from the service and overwrite local fields.

        Raises:
            AssociationError: no client bound.
            NotFoundError: the instance no longer exists.
            TransportError: the request failed.
            ProtocolError: the response is malformed.
        """
        client = self._require_client()
        state = parse_instance(client.get(f"/instance/{self._id}"))
        if state.id != self._id:
            raise ProtocolError(f"Requested instance {self._id}, service returned {state.id}")
        self._apply(state)
        return self

    def _poll_status(self) -> InstanceStatus:
        self.refresh()
        if self.status.terminal:
            raise TerminalStateError(self._id, self.status.value)
        return self.status

    def wait_until_ready(self, timeout: float = None, interval: float = None) -> "Instance":
        """
        Poll until the instance reports ready.

        A timeout of None or 0 polls exactly once. Transient transport
        errors are retried under the same deadline.

        Raises:
            TerminalStateError: the instance reported error or stopped.
            WaitTimeoutError: deadline passed; carries the last status seen.
        """
        client = self._require_client()
        if self.status is InstanceStatus.READY:
            return self

        polling = client.polling
        poll_until(
            self._poll_status,
            lambda status: status is InstanceStatus.READY,
            timeout=timeout,
            interval=interval or polling.interval,
            backoff=polling.backoff,
            max_interval=polling.max_interval,
            max_consecutive_errors=polling.max_consecutive_errors,
            describe=lambda status: status.value if status else self.status.value,
            description=f"instance {self._id}",
        )
        logger.info(f"Instance {self._id} is ready")
        return self

    def stop(self) -> None:
        """Stop the instance. Local status becomes stopping until the next refresh."""
        client = self._require_client()
        client.delete(f"/instance/{self._id}")
        self.status = InstanceStatus.STOPPING
        logger.info(f"Stopping instance {self._id}")

    # ── Credentials ──────────────────────────────────────────────

    def fetch_ssh_key(self) -> Credential:
        """Current SSH credential, without rotating it."""
        return fetch_credential(self)

    def rotate_ssh_key(self, previous: Optional[Credential] = None) -> Credential:
        """Rotate the SSH key pair and password; the response carries the new triple."""
        return rotate_sync(self, previous)

    def rotate_ssh_key_async(self, previous: Optional[Credential] = None, timeout: float = None) -> Credential:
        """Rotate when the service may only acknowledge the request, and wait for the new triple."""
        return rotate_async(self, previous, timeout=timeout)

    def start_ssh_key_rotation(self, previous: Optional[Credential] = None) -> RotationJob:
        """Request a rotation and return a job to wait on."""
        return RotationJob.start(self, previous)

    # ── Shell ────────────────────────────────────────────────────

    def ssh(
        self,
        credential: Optional[Credential] = None,
        username: str = None,
        port: int = None,
    ) -> ShellSession:
        """
        Open a shell session on this instance.

        Pass the credential from the most recent rotation. When omitted, the
        current credential is fetched from the service.
        """
        client = self._require_client()
        if self.status is not InstanceStatus.READY:
            self.refresh()
            if self.status.terminal:
                raise TerminalStateError(self._id, self.status.value)
            if self.status is not InstanceStatus.READY:
                raise NotReadyError(f"Instance {self._id} is {self.status.value}, not ready")

        if credential is None:
            credential = self.fetch_ssh_key()

        ssh_config = client.ssh_config
        return open_session(
            self._id,
            self.networking,
            credential,
            username=username or ssh_config.username,
            port=port or ssh_config.port,
            timeout=ssh_config.connect_timeout,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self._id,
            "status": self.status.value,
            "spec": vars(self.spec) if self.spec else None,
            "refs": vars(self.refs),
            "endpoints": [vars(e) for e in self.networking.endpoints],
            "metadata": dict(self.metadata),
        }

    def __repr__(self) -> str:
        return f"Instance({self._id}, {self.status.value})"


class InstanceAPI:
    """Instance-level calls on a client: start, get, list."""

    def __init__(self, client: MorphClient):
        self._client = client

    def start(self, snapshot_id: str, metadata: Dict[str, str] = None) -> Instance:
        """Start a new instance from a snapshot. It is usually still pending."""
        logger.info(f"Starting instance from snapshot {snapshot_id}")
        data = self._client.post(
            "/instance",
            {"metadata": metadata or {}},
            params={"snapshot_id": snapshot_id},
        )
        instance = Instance.from_state(parse_instance(data), self._client)
        logger.info(f"Started instance {instance.id} ({instance.status.value})")
        return instance

    def get(self, instance_id: str) -> Instance:
        return Instance(instance_id, self._client).refresh()

    def list(self) -> List[Instance]:
        states = parse_instance_list(self._client.get("/instance"))
        logger.info(f"Listed {len(states)} instances")
        return [Instance.from_state(s, self._client) for s in states]
