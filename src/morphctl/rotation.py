#!/usr/bin/env python3
"""
SSH Credential Rotation

Replaces an instance's SSH key pair and password and hands the new triple
back to the caller. Two completion disciplines share one wait primitive:

- rotate_sync(): the rotation POST returns the new credential directly.
- RotationJob / rotate_async(): the POST may only acknowledge the request;
  the job then polls GET /instance/{id}/ssh/key until a credential with a
  new public key shows up.

Nothing here caches a credential between calls: every rotation issues a
fresh request, and the result lives only in the caller's hands.

Usage:
    cred = rotate_sync(instance)
    job = RotationJob.start(instance, previous=cred)
    newer = job.wait(timeout=60)
"""

import logging
import time
from typing import Optional, Any, TYPE_CHECKING

from .errors import NotFoundError, ProtocolError
from .models import Credential, parse_credential
from .polling import poll_until

if TYPE_CHECKING:
    from .instance import Instance

logger = logging.getLogger(__name__)


def ssh_key_path(instance_id: str) -> str:
    return f"/instance/{instance_id}/ssh/key"


def fetch_credential(instance: "Instance") -> Credential:
    """Read the instance's current credential without rotating it."""
    client = instance._require_client()
    return parse_credential(client.get(ssh_key_path(instance.id)))


def rotate_sync(instance: "Instance", previous: Optional[Credential] = None) -> Credential:
    """
    Rotate and return the new credential from the same response.

    Raises:
        AssociationError: instance has no client (no request is made).
        TransportError: the POST failed.
        ProtocolError: a field is missing or empty, or the service handed
            back the public key of `previous`.
    """
    client = instance._require_client()
    credential = parse_credential(client.post(ssh_key_path(instance.id)))

    if previous is not None and credential.public_key == previous.public_key:
        raise ProtocolError(f"Rotation for {instance.id} returned the previous public key")

    logger.info(f"Rotated SSH key for {instance.id}")
    return credential


class RotationJob:
    """
    One in-flight rotation for one instance.

    The baseline is the credential the rotation must replace. It comes from
    the caller when known, otherwise it is read from the service right
    before the rotation is requested, so the job never mistakes the old key
    for the new one.
    """

    PENDING = "pending"
    COMPLETE = "complete"

    def __init__(self, instance: "Instance", baseline: Optional[Credential] = None):
        self.instance = instance
        self.instance_id = instance.id
        self.baseline = baseline
        self.started_at = time.time()
        self.completed_at: Optional[float] = None
        self._credential: Optional[Credential] = None

    @classmethod
    def start(cls, instance: "Instance", previous: Optional[Credential] = None) -> "RotationJob":
        """Issue the rotation request and return without waiting for completion."""
        client = instance._require_client()

        baseline = previous
        if baseline is None:
            try:
                baseline = fetch_credential(instance)
            except NotFoundError:
                baseline = None

        job = cls(instance, baseline)
        job._accept(client.post(ssh_key_path(instance.id)))
        logger.info(f"Started SSH key rotation for {instance.id} ({job.status})")
        return job

    @property
    def status(self) -> str:
        return self.COMPLETE if self._credential is not None else self.PENDING

    @property
    def done(self) -> bool:
        return self._credential is not None

    def result(self) -> Credential:
        """The rotated credential. Raises ProtocolError while still pending."""
        if self._credential is None:
            raise ProtocolError(f"Rotation for {self.instance_id} has not completed")
        return self._credential

    def _accept(self, data: Any) -> bool:
        """
        Record data as the result if it carries a new credential.

        An empty body or the baseline key means still pending. A body that
        is present but malformed raises ProtocolError.
        """
        if not data:
            return False
        credential = parse_credential(data)
        if self.baseline is not None and credential.public_key == self.baseline.public_key:
            return False
        self._credential = credential
        self.completed_at = time.time()
        return True

    def poll(self) -> Optional[Credential]:
        """Check once for completion. Returns the credential when done."""
        if self._credential is None:
            client = self.instance._require_client()
            self._accept(client.get(ssh_key_path(self.instance_id)))
        return self._credential

    def wait(self, timeout: float = None, interval: float = None) -> Credential:
        """
        Block until the new credential is available.

        Transient transport errors are retried until the deadline.

        Raises:
            WaitTimeoutError: with last_status "pending".
        """
        if self._credential is not None:
            return self._credential

        polling = self.instance._require_client().polling
        credential = poll_until(
            self.poll,
            lambda found: found is not None,
            timeout=polling.rotation_timeout if timeout is None else timeout,
            interval=interval or polling.interval,
            backoff=polling.backoff,
            max_interval=polling.max_interval,
            max_consecutive_errors=polling.max_consecutive_errors,
            describe=lambda _: self.status,
            description=f"SSH key rotation on {self.instance_id}",
        )
        logger.info(f"Rotated SSH key for {self.instance_id}")
        return credential

    def __repr__(self) -> str:
        return f"RotationJob({self.instance_id}, {self.status})"


def rotate_async(
    instance: "Instance",
    previous: Optional[Credential] = None,
    timeout: float = None,
) -> Credential:
    """Rotate through a RotationJob and wait for it. Same guarantees as rotate_sync."""
    return RotationJob.start(instance, previous).wait(timeout=timeout)
