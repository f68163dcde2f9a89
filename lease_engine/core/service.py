"""Node registry - business logic layer over a node repository."""

import logging
from typing import Callable, List, Optional, Tuple

from lease_engine.core.criteria import QueryConf
from lease_engine.core.errors import (
    ConcurrentModification,
    NodeNotFound,
    NodePersistenceError,
)
from lease_engine.core.expiration import ExpirationPolicy, TimeLeft
from lease_engine.core.models import (
    Lease,
    LifecycleOwner,
    NodeEvent,
    NodeRecord,
    ServerInfo,
    current_millis,
)
from lease_engine.core.repository import NodeRepository
from lease_engine.core.secrets import InMemorySecretKeyStore, SecretKeyStore
from lease_engine.core.validation import (
    validate_lease,
    validate_lifecycle_owner,
    validate_new_node,
)

logger = logging.getLogger(__name__)


class NodeRegistry:
    """
    CRUD and query facade over the node store.

    Every write takes the version the caller last read. A mismatch raises
    ConcurrentModification; the registry never retries on its own.
    """

    def __init__(
        self,
        repository: NodeRepository,
        secret_store: Optional[SecretKeyStore] = None,
        policy: Optional[ExpirationPolicy] = None,
    ):
        self._repo = repository
        self._secrets = secret_store or InMemorySecretKeyStore()
        self._policy = policy or ExpirationPolicy()

    # -------------------------
    # CREATE
    # -------------------------

    def create(
        self,
        server_info: ServerInfo,
        *,
        owner_id: Optional[str] = None,
        project: Optional[str] = None,
        key: Optional[str] = None,
        private_key: Optional[str] = None,
    ) -> NodeRecord:
        """Register a node for a server the provider just created."""
        node = NodeRecord.from_server(
            server_info,
            owner_id=owner_id,
            project=project,
            key=key,
            private_key=private_key,
            creation_time=current_millis(),
        )
        return self._register(node)

    def create_placeholder(
        self,
        *,
        owner_id: Optional[str] = None,
        project: Optional[str] = None,
        key: Optional[str] = None,
    ) -> NodeRecord:
        """Register a node that is still waiting for its server."""
        node = NodeRecord(
            owner_id=owner_id,
            project=project,
            key=key,
            creation_time=current_millis(),
        )
        return self._register(node)

    def _register(self, node: NodeRecord) -> NodeRecord:
        validate_new_node(node)
        created = self._repo.create(node)
        logger.info(f"[registry] registered node {created.id} (serverId={created.server_id})")
        self._record(created.info_event("node registered"))
        return created

    # -------------------------
    # READ
    # -------------------------

    def get(self, node_id: int) -> Optional[NodeRecord]:
        return self._repo.get(node_id)

    def find_by_node_id(self, server_id: str) -> Optional[NodeRecord]:
        """Node with this cloud server id. Callers must not rely on which duplicate wins."""
        return self._repo.get_by_server_id(server_id)

    def query(self, conf: QueryConf) -> List[NodeRecord]:
        conf.validate()
        return self._repo.query(conf)

    def count(self) -> int:
        return self._repo.count()

    def all(self) -> List[NodeRecord]:
        return self._repo.list_all()

    def events(self, node_id: int) -> List[NodeEvent]:
        return self._repo.list_events(node_id)

    # -------------------------
    # MUTATIONS
    # -------------------------

    def set_busy(self, node_id: int, busy: bool, expected_version: int) -> NodeRecord:
        return self._mutate(
            node_id, expected_version,
            lambda n: n.set_busy(busy),
            f"busy set to {busy}",
        )

    def set_stopped(self, node_id: int, stopped: bool, expected_version: int) -> NodeRecord:
        return self._mutate(
            node_id, expected_version,
            lambda n: n.set_stopped(stopped),
            f"stopped set to {stopped}",
        )

    def set_remote(self, node_id: int, remote: bool, expected_version: int) -> NodeRecord:
        return self._mutate(
            node_id, expected_version,
            lambda n: n.set_remote(remote),
            f"remote set to {remote}",
        )

    def assign_server(
        self, node_id: int, server_info: ServerInfo, expected_version: int
    ) -> NodeRecord:
        return self._mutate(
            node_id, expected_version,
            lambda n: n.assign_server(server_info),
            f"server {server_info.server_id} assigned "
            f"[publicIp={server_info.public_ip}, privateIp={server_info.private_ip}]",
        )

    def attach_lease(self, node_id: int, lease: Lease, expected_version: int) -> NodeRecord:
        validate_lease(lease)
        return self._mutate(
            node_id, expected_version,
            lambda n: n.attach_lease(lease.lease_id),
            f"lease {lease.lease_id} attached [extraTimeout={lease.extra_timeout}]",
            lease=lease,
        )

    def detach_lease(self, node_id: int, expected_version: int) -> NodeRecord:
        return self._mutate(
            node_id, expected_version,
            lambda n: n.attach_lease(None),
            "lease detached",
        )

    def attach_lifecycle_owner(
        self, node_id: int, owner: LifecycleOwner, expected_version: int
    ) -> NodeRecord:
        validate_lifecycle_owner(owner)
        return self._mutate(
            node_id, expected_version,
            lambda n: n.attach_lifecycle_owner(owner.owner_id),
            f"lifecycle owner {owner.owner_id} attached",
            lifecycle_owner=owner,
        )

    def detach_lifecycle_owner(self, node_id: int, expected_version: int) -> NodeRecord:
        return self._mutate(
            node_id, expected_version,
            lambda n: n.detach_lifecycle_owner(),
            "lifecycle owner detached",
        )

    def release_lifecycle_owner(self, owner_id: str) -> Optional[NodeRecord]:
        """
        Delete a lifecycle owner, first releasing the node it occupies.

        Returns the released node, or None if the owner occupied nothing.
        """
        node = self._repo.find_by_lifecycle_owner(owner_id)
        released = None
        if node is not None:
            released = self.detach_lifecycle_owner(node.id, node.version)
        self._repo.delete_lifecycle_owner(owner_id)
        logger.info(f"[registry] lifecycle owner {owner_id} deleted")
        return released

    def delete(self, node_id: int, expected_version: int) -> None:
        """Detach the lifecycle owner, then delete the node and its events."""
        node = self._require_node(node_id)
        self._assert_version(node, expected_version)

        owner_id = node.lifecycle_owner_id
        if owner_id is not None:
            node.detach_lifecycle_owner()
            self._repo.update(node)
            self._repo.delete_lifecycle_owner(owner_id)

        self._repo.delete(node.id, node.version)
        logger.info(f"[registry] deleted node {node.id} (serverId={node.server_id})")

    def reclaim(self, node_id: int, expected_version: int, now: Optional[int] = None) -> bool:
        """
        Delete the node only if it is still expired at this version.

        Returns False when the node is gone or no longer expired.
        """
        node = self._repo.get(node_id)
        if node is None:
            return False
        self._assert_version(node, expected_version)
        if not self.is_expired(node, now):
            logger.info(f"[registry] node {node_id} no longer expired, skipping reclaim")
            return False
        self.delete(node.id, node.version)
        return True

    # -------------------------
    # EXPIRATION
    # -------------------------

    def time_left(self, node: NodeRecord, now: Optional[int] = None) -> TimeLeft:
        lease, owner = self._associations(node)
        return self._policy.time_left(node, now, lease=lease, lifecycle_owner=owner)

    def is_expired(
        self, node: NodeRecord, now: Optional[int] = None, *, report_unstable: bool = True
    ) -> bool:
        lease, owner = self._associations(node)
        return self._policy.is_expired(
            node, now, lease=lease, lifecycle_owner=owner, report_unstable=report_unstable
        )

    def to_debug_string(self, node: NodeRecord, now: Optional[int] = None) -> str:
        return (
            f"NodeRecord{{id='{node.id}', serverId='{node.server_id}', "
            f"expirationTime={self.time_left(node, now)}, publicIP='{node.public_ip}', "
            f"privateIP='{node.private_ip}', busy={node.busy}}}"
        )

    # -------------------------
    # SECRETS
    # -------------------------

    def get_secret_key(self, node: NodeRecord) -> Optional[str]:
        return self._secrets.get(node.project, node.key)

    def set_secret_key(self, node: NodeRecord, secret: str) -> None:
        self._secrets.set(node.project, node.key, secret)

    def private_key_for(self, server_node_id: str) -> Optional[str]:
        node = self.find_by_node_id(server_node_id)
        return node.private_key if node else None

    # -------------------------
    # INTERNAL HELPERS
    # -------------------------

    def _associations(
        self, node: NodeRecord
    ) -> Tuple[Optional[Lease], Optional[LifecycleOwner]]:
        lease = self._repo.get_lease(node.lease_id) if node.lease_id else None
        owner = None
        if node.lifecycle_owner_id:
            owner = self._repo.get_lifecycle_owner(node.lifecycle_owner_id)
            if owner is None:
                logger.warning(
                    f"[registry] node {node.id} references missing lifecycle owner "
                    f"{node.lifecycle_owner_id}"
                )
        return lease, owner

    def _mutate(
        self,
        node_id: int,
        expected_version: int,
        mutation: Callable[[NodeRecord], None],
        message: str,
        *,
        lease: Optional[Lease] = None,
        lifecycle_owner: Optional[LifecycleOwner] = None,
    ) -> NodeRecord:
        node = self._require_node(node_id)
        self._assert_version(node, expected_version)

        mutation(node)
        self._repo.update(node, lease=lease, lifecycle_owner=lifecycle_owner)

        logger.info(f"[registry] node {node.id} v{node.version}: {message}")
        self._record(node.info_event(message))
        return node

    def _require_node(self, node_id: int) -> NodeRecord:
        node = self._repo.get(node_id)
        if not node:
            raise NodeNotFound(f"Node {node_id} not found")
        return node

    @staticmethod
    def _assert_version(node: NodeRecord, expected_version: int) -> None:
        if node.version != expected_version:
            raise ConcurrentModification(
                f"Node {node.id} is at version {node.version}, not {expected_version}"
            )

    def _record(self, event: NodeEvent) -> None:
        """Audit trail is best effort; a lost event never fails the mutation."""
        try:
            self._repo.add_event(event)
        except NodePersistenceError as e:
            logger.warning(f"[registry] failed to record event for node {event.node_id}: {e}")
