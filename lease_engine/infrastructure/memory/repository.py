# lease_engine/infrastructure/memory/repository.py

import copy
import itertools
from threading import Lock
from typing import Dict, List, Optional

from lease_engine.core.criteria import QueryConf
from lease_engine.core.errors import (
    ConcurrentModification,
    LifecycleOwnerConflict,
    NodeNotFound,
)
from lease_engine.core.models import Lease, LifecycleOwner, NodeEvent, NodeRecord
from lease_engine.core.repository import NodeRepository


class InMemoryNodeRepository(NodeRepository):
    """Dict-backed store. Hands out copies so callers never share state."""

    def __init__(self):
        self._store: Dict[int, NodeRecord] = {}
        self._events: Dict[int, List[NodeEvent]] = {}
        self._leases: Dict[str, Lease] = {}
        self._owners: Dict[str, LifecycleOwner] = {}
        self._ids = itertools.count(1)
        self._event_ids = itertools.count(1)
        self._lock = Lock()

    def _snapshot(self, stored: NodeRecord) -> NodeRecord:
        node = copy.deepcopy(stored)
        node.events = copy.deepcopy(self._events.get(stored.id, []))
        return node

    def create(self, node: NodeRecord) -> NodeRecord:
        with self._lock:
            self._check_owner_free(node.lifecycle_owner_id, node.id)
            node.id = next(self._ids)
            stored = copy.deepcopy(node)
            stored.events = []
            self._store[node.id] = stored
            self._events[node.id] = []
            return self._snapshot(stored)

    def get(self, node_id: int) -> NodeRecord | None:
        stored = self._store.get(node_id)
        return self._snapshot(stored) if stored else None

    def get_by_server_id(self, server_id: str) -> NodeRecord | None:
        for key in sorted(self._store):
            if self._store[key].server_id == server_id:
                return self._snapshot(self._store[key])
        return None

    def query(self, conf: QueryConf) -> List[NodeRecord]:
        ordered = [self._store[key] for key in sorted(self._store)]
        return [self._snapshot(n) for n in conf.apply(ordered)]

    def count(self) -> int:
        return len(self._store)

    def list_all(self) -> List[NodeRecord]:
        return [self._snapshot(self._store[key]) for key in sorted(self._store)]

    def update(
        self,
        node: NodeRecord,
        *,
        lease: Optional[Lease] = None,
        lifecycle_owner: Optional[LifecycleOwner] = None,
    ) -> None:
        with self._lock:
            stored = self._store.get(node.id)
            if not stored:
                raise NodeNotFound(f"Node {node.id} not found")

            if stored.version != node.version - 1:
                raise ConcurrentModification(
                    f"Update failed for node {node.id} - concurrent modification "
                    f"(stored version {stored.version}, written {node.version})"
                )

            self._check_owner_free(node.lifecycle_owner_id, node.id)

            if lease is not None:
                self._leases[lease.lease_id] = copy.deepcopy(lease)
            if lifecycle_owner is not None:
                self._owners[lifecycle_owner.owner_id] = copy.deepcopy(lifecycle_owner)

            updated = copy.deepcopy(node)
            updated.events = []
            self._store[node.id] = updated

    def delete(self, node_id: int, expected_version: int) -> None:
        with self._lock:
            stored = self._store.get(node_id)
            if not stored:
                raise NodeNotFound(f"Node {node_id} not found")
            if stored.version != expected_version:
                raise ConcurrentModification(
                    f"Delete failed for node {node_id} - concurrent modification"
                )
            del self._store[node_id]
            self._events.pop(node_id, None)

    def _check_owner_free(self, owner_id: Optional[str], node_id: Optional[int]) -> None:
        if owner_id is None:
            return
        for other in self._store.values():
            if other.lifecycle_owner_id == owner_id and other.id != node_id:
                raise LifecycleOwnerConflict(
                    f"Lifecycle owner {owner_id} already occupies node {other.id}"
                )

    # -------------------------
    # EVENTS
    # -------------------------

    def add_event(self, event: NodeEvent) -> NodeEvent:
        with self._lock:
            if event.node_id not in self._store:
                raise NodeNotFound(f"Node {event.node_id} not found")
            event.event_id = next(self._event_ids)
            self._events[event.node_id].append(copy.deepcopy(event))
            return event

    def list_events(self, node_id: int) -> List[NodeEvent]:
        return copy.deepcopy(self._events.get(node_id, []))

    # -------------------------
    # ASSOCIATIONS
    # -------------------------

    def get_lease(self, lease_id: str) -> Lease | None:
        lease = self._leases.get(lease_id)
        return copy.deepcopy(lease) if lease else None

    def get_lifecycle_owner(self, owner_id: str) -> LifecycleOwner | None:
        owner = self._owners.get(owner_id)
        return copy.deepcopy(owner) if owner else None

    def delete_lifecycle_owner(self, owner_id: str) -> None:
        with self._lock:
            self._owners.pop(owner_id, None)

    def find_by_lifecycle_owner(self, owner_id: str) -> NodeRecord | None:
        for key in sorted(self._store):
            if self._store[key].lifecycle_owner_id == owner_id:
                return self._snapshot(self._store[key])
        return None
