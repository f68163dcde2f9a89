"""Core domain models for leased nodes."""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

logger = logging.getLogger(__name__)


def current_millis() -> int:
    """Wall clock in epoch milliseconds."""
    return int(time.time() * 1000)


class EventType(Enum):
    """Node event severity."""

    INFO = "INFO"
    ERROR = "ERROR"


@dataclass
class NodeEvent:
    """Audit record attached to a node. Never edited once persisted."""

    node_id: Optional[int]
    event_type: EventType
    message: str
    timestamp: int = field(default_factory=current_millis)
    event_id: Optional[int] = None


@dataclass(frozen=True)
class ServerInfo:
    """What the cloud provider hands back for a freshly created server."""

    server_id: str
    public_ip: Optional[str] = None
    private_ip: Optional[str] = None


@dataclass
class Lease:
    """Grants a node a custom timeout, overriding the lifecycle owner's."""

    lease_id: str
    extra_timeout: int  # ms


@dataclass
class LifecycleOwner:
    """The widget instance currently occupying a node."""

    owner_id: str
    life_expectancy: int  # ms


@dataclass(frozen=True)
class Principal:
    """Whoever is asking the registry for nodes."""

    user_id: str
    is_admin: bool = False


@dataclass
class NodeRecord:
    """Metadata of a created (or about to be created) server node."""

    # Identity
    id: Optional[int] = None
    server_id: Optional[str] = None
    key: Optional[str] = None
    project: Optional[str] = None
    owner_id: Optional[str] = None

    # Network
    public_ip: Optional[str] = None
    private_ip: Optional[str] = None

    # Lease state
    busy: bool = False
    stopped: bool = False
    remote: bool = False
    creation_time: int = field(default_factory=current_millis)

    # Credentials
    private_key: Optional[str] = None

    # Associations (non-owning references)
    lease_id: Optional[str] = None
    lifecycle_owner_id: Optional[str] = None

    events: List[NodeEvent] = field(default_factory=list)

    # Optimistic concurrency
    version: int = 0

    @classmethod
    def from_server(cls, server: ServerInfo, **kwargs) -> "NodeRecord":
        return cls(
            server_id=server.server_id,
            public_ip=server.public_ip,
            private_ip=server.private_ip,
            **kwargs,
        )

    @property
    def node_id(self) -> Optional[str]:
        # not to be confused with the surrogate `id`
        return self.server_id

    # -------------------------
    # MUTATIONS
    # -------------------------

    def set_busy(self, busy: bool) -> None:
        self.busy = busy
        self.version += 1

    def set_stopped(self, stopped: bool) -> None:
        self.stopped = stopped
        self.version += 1

    def set_remote(self, remote: bool) -> None:
        self.remote = remote
        self.version += 1

    def assign_server(self, server: ServerInfo) -> None:
        """Fill in provider details on a placeholder node."""
        self.server_id = server.server_id
        self.public_ip = server.public_ip
        self.private_ip = server.private_ip
        self.version += 1

    def attach_lease(self, lease_id: Optional[str]) -> None:
        self.lease_id = lease_id
        self.version += 1

    def attach_lifecycle_owner(self, owner_id: str) -> None:
        """Occupy the node. A node with an owner is busy."""
        self.lifecycle_owner_id = owner_id
        self.busy = True
        self.version += 1

    def detach_lifecycle_owner(self) -> None:
        """Release the node back to the pool."""
        self.lifecycle_owner_id = None
        self.busy = False
        self.version += 1

    # -------------------------
    # EVENTS
    # -------------------------

    def create_event(self, message: str, event_type: EventType) -> NodeEvent:
        """Build an unsaved event linked to this node; the caller persists it."""
        logger.info(f"adding [{event_type.value}] event [{message}]")
        return NodeEvent(node_id=self.id, event_type=event_type, message=message)

    def info_event(self, message: str) -> NodeEvent:
        return self.create_event(message, EventType.INFO)

    def error_event(self, message: str) -> NodeEvent:
        return self.create_event(message, EventType.ERROR)

    # -------------------------
    # SECRETS
    # -------------------------

    def secret_key_token(self) -> str:
        return f"{self.project}___{self.key}"

    def __str__(self) -> str:
        return (
            f"NodeRecord{{id={self.id}, serverId='{self.server_id}', "
            f"publicIP='{self.public_ip}', privateIP='{self.private_ip}', "
            f"busy={self.busy}, remote={self.remote}, project='{self.project}'}}"
        )
