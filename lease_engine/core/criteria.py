#lease_engine\core\criteria.py

"""Composable node filters: an OR of AND-groups."""

from dataclasses import dataclass, field
from typing import List, Optional

from lease_engine.core.errors import CriteriaValidationError
from lease_engine.core.models import NodeRecord, Principal


@dataclass
class Criteria:
    """One conjunction. Unset predicates are ignored."""

    conf: Optional["QueryConf"] = field(default=None, repr=False, compare=False)
    busy: Optional[bool] = None
    remote: Optional[bool] = None
    stopped: Optional[bool] = None
    server_id_is_null: Optional[bool] = None
    node_id: Optional[str] = None
    user: Optional[Principal] = None

    def set_busy(self, busy: Optional[bool]) -> "Criteria":
        self.busy = busy
        return self

    def set_remote(self, remote: Optional[bool]) -> "Criteria":
        self.remote = remote
        return self

    def set_stopped(self, stopped: Optional[bool]) -> "Criteria":
        self.stopped = stopped
        return self

    def set_server_id_is_null(self, server_id_is_null: Optional[bool]) -> "Criteria":
        self.server_id_is_null = server_id_is_null
        return self

    def set_node_id(self, node_id: Optional[str]) -> "Criteria":
        self.node_id = node_id
        return self

    def set_user(self, user: Optional[Principal]) -> "Criteria":
        self.user = user
        return self

    def done(self) -> "QueryConf":
        return self.conf

    @property
    def owner_filter(self) -> Optional[str]:
        """Owner to filter on; administrators see every node."""
        if self.user is None or self.user.is_admin:
            return None
        return self.user.user_id

    def validate(self) -> None:
        if self.node_id is not None and self.server_id_is_null is not None:
            raise CriteriaValidationError(
                "node_id and server_id_is_null cannot be combined in one criteria group"
            )

    def is_empty(self) -> bool:
        return (
            self.busy is None
            and self.remote is None
            and self.stopped is None
            and self.server_id_is_null is None
            and self.node_id is None
            and self.owner_filter is None
        )

    def matches(self, node: NodeRecord) -> bool:
        """Evaluate this group against a record. An empty group is always true."""
        if self.busy is not None and node.busy != self.busy:
            return False
        if self.remote is not None and node.remote != self.remote:
            return False
        if self.stopped is not None and node.stopped != self.stopped:
            return False
        if self.server_id_is_null is not None:
            if self.server_id_is_null != (node.server_id is None):
                return False
        if self.node_id is not None and node.server_id != self.node_id:
            return False
        owner = self.owner_filter
        if owner is not None and node.owner_id != owner:
            return False
        return True


@dataclass
class QueryConf:
    """Disjunction of criteria groups plus an overall row cap (0 = no cap)."""

    max_rows: int = 0
    criterias: List[Criteria] = field(default_factory=list)

    def set_max_rows(self, max_rows: int) -> "QueryConf":
        self.max_rows = max_rows
        return self

    def criteria(self) -> Criteria:
        c = Criteria(conf=self)
        self.criterias.append(c)
        return c

    def validate(self) -> None:
        if self.max_rows < 0:
            raise CriteriaValidationError("max_rows must not be negative")
        for c in self.criterias:
            c.validate()

    def matches(self, node: NodeRecord) -> bool:
        # no groups at all means no filtering
        if not self.criterias:
            return True
        return any(c.matches(node) for c in self.criterias)

    def apply(self, nodes) -> List[NodeRecord]:
        """Filter an iterable of records in memory, honouring max_rows."""
        results = []
        for node in nodes:
            if not self.matches(node):
                continue
            results.append(node)
            if self.max_rows > 0 and len(results) >= self.max_rows:
                break
        return results
