#!/usr/bin/env python3
"""
Instance API Client — transport and client context

Implements:
- get(path) -> JSON
- post(path, body) -> JSON
- delete(path) -> JSON | None
- instances -> InstanceAPI (start/get/list)
- get_stats() -> dict

Every failure is raised as a TransportError (NotFoundError for 404) that
names the method and path, so callers can tell which resource failed.
"""

import logging
import os
from typing import Dict, Any, TYPE_CHECKING

import requests

from .config import ClientConfig, PollingConfig, SSHConfig, DEFAULT_BASE_URL
from .errors import TransportError, NotFoundError, ProtocolError

if TYPE_CHECKING:
    from .instance import InstanceAPI

logger = logging.getLogger(__name__)


class MorphClient:
    """
    Client context for the instance service.

    Holds the base URL, API key and request timeout. Instance handles keep a
    reference to one of these; they never own it.

    Design principles:
    - API key from constructor or MORPH_API_KEY (never logged)
    - Failures raise typed errors, nothing is swallowed
    - All requests counted for get_stats()
    """

    DEFAULT_TIMEOUT = 30  # seconds

    def __init__(
        self,
        api_key: str = None,
        base_url: str = None,
        timeout: int = None,
        ssh: SSHConfig = None,
        polling: PollingConfig = None,
    ):
        """
        Initialize the client.

        Args:
            api_key: API key (or MORPH_API_KEY env var)
            base_url: API base URL (or MORPH_BASE_URL env var)
            timeout: Request timeout in seconds
            ssh: Defaults for shell sessions
            polling: Defaults for readiness and rotation waits
        """
        self.api_key = api_key or os.environ.get("MORPH_API_KEY")
        self.base_url = (base_url or os.environ.get("MORPH_BASE_URL") or DEFAULT_BASE_URL).rstrip("/")
        self.timeout = timeout or self.DEFAULT_TIMEOUT
        self.ssh_config = ssh or SSHConfig()
        self.polling = polling or PollingConfig()

        if not self.api_key:
            logger.warning("No API key configured. Set MORPH_API_KEY environment variable.")

        self._request_count = 0
        self._error_count = 0

        logger.info(
            f"MorphClient initialized (base_url={self.base_url}, "
            f"api_key={'configured' if self.api_key else 'missing'})"
        )

    @classmethod
    def from_config(cls, config: ClientConfig) -> "MorphClient":
        """Build a client from a loaded config. Fails fast without an API key."""
        return cls(
            api_key=config.require_api_key(),
            base_url=config.base_url,
            timeout=config.timeout,
            ssh=config.ssh,
            polling=config.polling,
        )

    def _headers(self) -> Dict[str, str]:
        """Build request headers with auth."""
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _request(self, method: str, path: str, **kwargs) -> Any:
        """
        Make an authenticated request and decode the JSON body.

        Returns the decoded body, or None for an empty body.
        Raises TransportError on network failure or HTTP >= 400.
        """
        url = f"{self.base_url}{path}"
        self._request_count += 1

        try:
            response = requests.request(
                method,
                url,
                headers=self._headers(),
                timeout=self.timeout,
                **kwargs,
            )
        except requests.Timeout as e:
            logger.error(f"API timeout: {method} {path} (>{self.timeout}s)")
            self._error_count += 1
            raise TransportError(method, path, reason=f"timed out after {self.timeout}s") from e
        except requests.ConnectionError as e:
            logger.error(f"API connection error: {method} {path}")
            self._error_count += 1
            raise TransportError(method, path, reason="connection error") from e
        except requests.RequestException as e:
            logger.error(f"API request error: {method} {path}: {e}")
            self._error_count += 1
            raise TransportError(method, path, reason=str(e)) from e

        if response.status_code >= 400:
            logger.warning(
                f"API error: {method} {path} -> {response.status_code} "
                f"{response.text[:200]}"
            )
            self._error_count += 1
            error_cls = NotFoundError if response.status_code == 404 else TransportError
            raise error_cls(method, path, status_code=response.status_code, body=response.text)

        if not response.content:
            return None

        try:
            return response.json()
        except ValueError as e:
            raise ProtocolError(f"{method} {path} returned a non-JSON body") from e

    def get(self, path: str, params: Dict[str, Any] = None) -> Any:
        return self._request("GET", path, params=params)

    def post(self, path: str, body: Dict[str, Any] = None, params: Dict[str, Any] = None) -> Any:
        if body is None:
            return self._request("POST", path, params=params)
        return self._request("POST", path, json=body, params=params)

    def delete(self, path: str) -> Any:
        return self._request("DELETE", path)

    # ── Resources ────────────────────────────────────────────────

    @property
    def instances(self) -> "InstanceAPI":
        from .instance import InstanceAPI
        return InstanceAPI(self)

    def get_stats(self) -> Dict[str, Any]:
        """Get client-side statistics."""
        return {
            "base_url": self.base_url,
            "api_key_configured": bool(self.api_key),
            "total_requests": self._request_count,
            "total_errors": self._error_count,
            "error_rate_percent": (
                round(self._error_count / self._request_count * 100, 1)
                if self._request_count > 0 else 0
            ),
        }

    def __repr__(self) -> str:
        return f"MorphClient(base_url={self.base_url!r})"

