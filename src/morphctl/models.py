#!/usr/bin/env python3
"""
Response schemas for the instance API.

Every payload coming back from the service is parsed here, at the boundary.
Required fields that are missing, empty or of the wrong shape raise
ProtocolError instead of turning into None further down.
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Optional, Dict, Any, List, Tuple

from .errors import ProtocolError

INSTANCE_OBJECT = "instance"
SSH_KEY_OBJECT = "instance_ssh_key"


class InstanceStatus(Enum):
    """Lifecycle states reported by GET /instance/{id}."""
    PENDING = "pending"
    READY = "ready"
    STOPPING = "stopping"
    STOPPED = "stopped"
    ERROR = "error"

    @property
    def terminal(self) -> bool:
        """States that can never progress to READY."""
        return self in (InstanceStatus.STOPPED, InstanceStatus.ERROR)


@dataclass(frozen=True)
class ResourceSpec:
    """Compute shape of an instance. Fixed at creation."""
    vcpus: int
    memory: int
    disk_size: int


@dataclass(frozen=True)
class InstanceRefs:
    """Resources the instance was created from."""
    snapshot_id: Optional[str] = None
    image_id: Optional[str] = None


@dataclass(frozen=True)
class Endpoint:
    """One network endpoint declared by an instance."""
    host: str
    port: int
    name: str = ""
    protocol: str = ""


@dataclass(frozen=True)
class Networking:
    endpoints: Tuple[Endpoint, ...] = ()


@dataclass(frozen=True)
class Credential:
    """
    SSH access triple for an instance.

    The values are opaque: they are returned exactly as the service sent
    them and are only checked for being non-empty strings.
    """
    private_key: str = field(repr=False)
    public_key: str
    password: str = field(repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class InstanceState:
    """Parsed body of GET /instance/{id}."""
    id: str
    status: InstanceStatus
    spec: ResourceSpec
    refs: InstanceRefs
    networking: Networking
    metadata: Dict[str, Any] = field(default_factory=dict)


# ── Parsing ──────────────────────────────────────────────────────

def _require_mapping(data: Any, what: str) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise ProtocolError(f"Expected JSON object for {what}, got {type(data).__name__}")
    return data


def _require_str(data: Dict[str, Any], key: str, what: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value:
        raise ProtocolError(f"{what} response is missing required field '{key}'")
    return value


def _require_int(data: Dict[str, Any], key: str, what: str) -> int:
    value = data.get(key)
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        raise ProtocolError(f"{what} response has invalid or missing integer field '{key}'")
    return value


def _check_object(data: Dict[str, Any], expected: str) -> None:
    tag = data.get("object")
    if tag != expected:
        raise ProtocolError(f"Expected object '{expected}', got '{tag}'")


def parse_status(value: Any) -> InstanceStatus:
    try:
        return InstanceStatus(value)
    except ValueError:
        raise ProtocolError(f"Unknown instance status: {value!r}") from None


def parse_endpoint(data: Any) -> Endpoint:
    data = _require_mapping(data, "endpoint")
    return Endpoint(
        host=_require_str(data, "host", "endpoint"),
        port=_require_int(data, "port", "endpoint"),
        name=data.get("name") or "",
        protocol=data.get("protocol") or "",
    )


def parse_networking(data: Any) -> Networking:
    if data is None:
        return Networking()
    data = _require_mapping(data, "networking")
    endpoints = data.get("endpoints") or []
    if not isinstance(endpoints, list):
        raise ProtocolError("networking.endpoints must be a list")
    return Networking(endpoints=tuple(parse_endpoint(e) for e in endpoints))


def parse_instance(data: Any) -> InstanceState:
    """Validate and convert a GET /instance/{id} body."""
    data = _require_mapping(data, "instance")
    _check_object(data, INSTANCE_OBJECT)

    spec = _require_mapping(data.get("spec"), "instance.spec")
    refs = data.get("refs") or {}
    refs = _require_mapping(refs, "instance.refs")
    metadata = data.get("metadata") or {}
    metadata = _require_mapping(metadata, "instance.metadata")

    return InstanceState(
        id=_require_str(data, "id", "instance"),
        status=parse_status(data.get("status")),
        spec=ResourceSpec(
            vcpus=_require_int(spec, "vcpus", "instance.spec"),
            memory=_require_int(spec, "memory", "instance.spec"),
            disk_size=_require_int(spec, "disk_size", "instance.spec"),
        ),
        refs=InstanceRefs(
            snapshot_id=refs.get("snapshot_id"),
            image_id=refs.get("image_id"),
        ),
        networking=parse_networking(data.get("networking")),
        metadata=dict(metadata),
    )


def parse_instance_list(data: Any) -> List[InstanceState]:
    data = _require_mapping(data, "instance list")
    items = data.get("data")
    if not isinstance(items, list):
        raise ProtocolError("Instance list response is missing 'data'")
    return [parse_instance(item) for item in items]


def parse_credential(data: Any) -> Credential:
    """
    Validate and convert an instance_ssh_key body.

    All three secrets must be present and non-empty; a partially populated
    credential is never returned.
    """
    data = _require_mapping(data, "ssh key")
    _check_object(data, SSH_KEY_OBJECT)
    return Credential(
        private_key=_require_str(data, "private_key", "ssh key"),
        public_key=_require_str(data, "public_key", "ssh key"),
        password=_require_str(data, "password", "ssh key"),
    )
