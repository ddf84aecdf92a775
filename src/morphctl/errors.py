"""Error types raised by the morphctl client."""

from __future__ import annotations

from typing import Optional

ASSOCIATION_MESSAGE = "Instance object is not associated with an API client"


class MorphError(Exception):
    """Base class for every error raised by this package."""


class ConfigError(MorphError):
    """Missing or invalid client configuration."""


class AssociationError(MorphError):
    """An instance handle has no API client bound to it."""

    def __init__(self, message: str = ASSOCIATION_MESSAGE) -> None:
        super().__init__(message)


class TransportError(MorphError):
    """
    A request failed at the network or HTTP layer.

    status_code is None when no response was received at all
    (connection refused, DNS failure, timeout).
    """

    def __init__(
        self,
        method: str,
        path: str,
        status_code: Optional[int] = None,
        body: str = "",
        reason: str = "",
    ) -> None:
        self.method = method
        self.path = path
        self.status_code = status_code
        self.body = body
        self.reason = reason
        if status_code is None:
            message = f"{method} {path} failed: {reason or 'no response'}"
        else:
            message = f"{method} {path} -> HTTP {status_code}: {body[:200]}"
        super().__init__(message)

    @property
    def transient(self) -> bool:
        """True when retrying the same request may succeed."""
        if self.status_code is None:
            return True
        return self.status_code == 429 or self.status_code >= 500


class NotFoundError(TransportError):
    """The requested resource does not exist (HTTP 404)."""


class ProtocolError(MorphError):
    """A response decoded fine but is missing or has empty required fields."""


class TerminalStateError(MorphError):
    """An instance reached a state from which it can never become ready."""

    def __init__(self, instance_id: str, status: str) -> None:
        self.instance_id = instance_id
        self.status = status
        super().__init__(f"Instance {instance_id} entered terminal state '{status}'")


class NotReadyError(MorphError):
    """A shell session was requested for an instance that is not ready."""


class WaitTimeoutError(MorphError, TimeoutError):
    """A polling deadline expired before the awaited condition held."""

    def __init__(self, description: str, timeout: float, last_status: Optional[str] = None) -> None:
        self.description = description
        self.timeout = timeout
        self.last_status = last_status
        super().__init__(
            f"Timed out after {timeout:.1f}s waiting for {description} "
            f"(last status: {last_status or 'unknown'})"
        )


class SessionError(MorphError):
    """A shell session could not be opened or used."""
