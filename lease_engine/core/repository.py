# lease_engine/core/repository.py

from abc import ABC, abstractmethod
from typing import List, Optional

from lease_engine.core.criteria import QueryConf
from lease_engine.core.models import Lease, LifecycleOwner, NodeEvent, NodeRecord


class NodeRepository(ABC):
    """
    Persistence contract for node records and their associations.
    """

    @abstractmethod
    def create(self, node: NodeRecord) -> NodeRecord:
        """
        Persist a new node and assign its surrogate id.
        """
        raise NotImplementedError

    @abstractmethod
    def get(self, node_id: int) -> Optional[NodeRecord]:
        """
        Fetch node by surrogate id.
        Returns None if not found.
        """
        raise NotImplementedError

    @abstractmethod
    def get_by_server_id(self, server_id: str) -> Optional[NodeRecord]:
        """
        First node (by id) with the given cloud server id.
        """
        raise NotImplementedError

    @abstractmethod
    def query(self, conf: QueryConf) -> List[NodeRecord]:
        """
        Nodes matching any criteria group, capped by max_rows.
        Empty list when nothing matches.
        """
        raise NotImplementedError

    @abstractmethod
    def count(self) -> int:
        raise NotImplementedError

    @abstractmethod
    def list_all(self) -> List[NodeRecord]:
        raise NotImplementedError

    @abstractmethod
    def update(
        self,
        node: NodeRecord,
        *,
        lease: Optional[Lease] = None,
        lifecycle_owner: Optional[LifecycleOwner] = None,
    ) -> None:
        """
        Persist updated node state.
        Must enforce optimistic concurrency: the stored version must be
        node.version - 1, otherwise ConcurrentModification.

        A lease or lifecycle owner passed along is upserted in the same
        atomic step, only after the version and owner-uniqueness checks
        pass. A rejected update leaves both rows untouched.
        """
        raise NotImplementedError

    @abstractmethod
    def delete(self, node_id: int, expected_version: int) -> None:
        """
        Delete a node and its events if its version still matches.
        """
        raise NotImplementedError

    # -------------------------
    # EVENTS
    # -------------------------

    @abstractmethod
    def add_event(self, event: NodeEvent) -> NodeEvent:
        raise NotImplementedError

    @abstractmethod
    def list_events(self, node_id: int) -> List[NodeEvent]:
        """Events in insertion order."""
        raise NotImplementedError

    # -------------------------
    # ASSOCIATIONS
    # -------------------------

    @abstractmethod
    def get_lease(self, lease_id: str) -> Optional[Lease]:
        raise NotImplementedError

    @abstractmethod
    def get_lifecycle_owner(self, owner_id: str) -> Optional[LifecycleOwner]:
        raise NotImplementedError

    @abstractmethod
    def delete_lifecycle_owner(self, owner_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def find_by_lifecycle_owner(self, owner_id: str) -> Optional[NodeRecord]:
        """Node currently occupied by the given owner, if any."""
        raise NotImplementedError
