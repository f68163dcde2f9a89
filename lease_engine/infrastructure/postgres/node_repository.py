"""SQLAlchemy node repository."""

import logging
from typing import List, Optional

from sqlalchemy import and_, or_, true
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from lease_engine.core.criteria import Criteria, QueryConf
from lease_engine.core.errors import (
    ConcurrentModification,
    LifecycleOwnerConflict,
    NodeNotFound,
    NodePersistenceError,
)
from lease_engine.core.models import Lease, LifecycleOwner, NodeEvent, NodeRecord
from lease_engine.core.repository import NodeRepository
from lease_engine.infrastructure.postgres.database import get_session_factory
from lease_engine.infrastructure.postgres.models import (
    LeaseORM,
    LifecycleOwnerORM,
    NodeEventORM,
    NodeORM,
)

logger = logging.getLogger(__name__)


# ============================================
# Mapping Functions
# ============================================

def event_to_domain(orm: NodeEventORM) -> NodeEvent:
    return NodeEvent(
        event_id=orm.event_id,
        node_id=orm.node_id,
        event_type=orm.event_type,
        message=orm.message,
        timestamp=orm.timestamp,
    )


def orm_to_node(orm: NodeORM) -> NodeRecord:
    """Convert ORM to node domain model."""
    return NodeRecord(
        id=orm.id,
        server_id=orm.server_id,
        key=orm.key,
        project=orm.project,
        owner_id=orm.owner_id,
        public_ip=orm.public_ip,
        private_ip=orm.private_ip,
        busy=orm.busy,
        stopped=orm.stopped,
        remote=orm.remote,
        creation_time=orm.creation_time,
        private_key=orm.private_key,
        lease_id=orm.lease_id,
        lifecycle_owner_id=orm.lifecycle_owner_id,
        events=[event_to_domain(e) for e in orm.events],
        version=orm.version,
    )


def node_to_orm(node: NodeRecord) -> NodeORM:
    """Convert node domain model to ORM. Events are persisted separately."""
    return NodeORM(
        server_id=node.server_id,
        key=node.key,
        project=node.project,
        owner_id=node.owner_id,
        public_ip=node.public_ip,
        private_ip=node.private_ip,
        busy=node.busy,
        stopped=node.stopped,
        remote=node.remote,
        creation_time=node.creation_time,
        private_key=node.private_key,
        lease_id=node.lease_id,
        lifecycle_owner_id=node.lifecycle_owner_id,
        version=node.version,
    )


def criteria_to_clause(criteria: Criteria):
    """One AND-group. Starts from TRUE so an empty group matches everything."""
    clauses = [true()]

    if criteria.busy is not None:
        clauses.append(NodeORM.busy == criteria.busy)

    if criteria.remote is not None:
        clauses.append(NodeORM.remote == criteria.remote)

    if criteria.stopped is not None:
        clauses.append(NodeORM.stopped == criteria.stopped)

    if criteria.server_id_is_null is not None:
        if criteria.server_id_is_null:
            clauses.append(NodeORM.server_id.is_(None))
        else:
            clauses.append(NodeORM.server_id.isnot(None))

    if criteria.node_id is not None:
        clauses.append(NodeORM.server_id == criteria.node_id)

    owner = criteria.owner_filter
    if owner is not None:
        clauses.append(NodeORM.owner_id == owner)

    return and_(*clauses)


# ============================================
# Repository Implementation
# ============================================

class PostgresNodeRepository(NodeRepository):
    """SQLAlchemy implementation with an injectable session factory."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self._session_factory = session_factory or get_session_factory()

    def _get_session(self) -> Session:
        return self._session_factory()

    # -------------------------
    # CREATE
    # -------------------------

    def create(self, node: NodeRecord) -> NodeRecord:
        session = self._get_session()
        try:
            orm = node_to_orm(node)
            session.add(orm)
            session.commit()
            node.id = orm.id
            logger.debug(f"[node_repo] create {orm.id} -> done")
            return orm_to_node(orm)
        except IntegrityError as e:
            session.rollback()
            raise LifecycleOwnerConflict(
                f"Lifecycle owner {node.lifecycle_owner_id} already occupies a node"
            ) from e
        except SQLAlchemyError as e:
            session.rollback()
            raise NodePersistenceError(f"Failed to create node: {e}") from e
        finally:
            session.close()

    # -------------------------
    # READ
    # -------------------------

    def get(self, node_id: int) -> Optional[NodeRecord]:
        session = self._get_session()
        try:
            orm = session.get(NodeORM, node_id)
            if orm is None:
                return None
            return orm_to_node(orm)
        finally:
            session.close()

    def get_by_server_id(self, server_id: str) -> Optional[NodeRecord]:
        session = self._get_session()
        try:
            orm = (
                session.query(NodeORM)
                .filter(NodeORM.server_id == server_id)
                .order_by(NodeORM.id.asc())
                .first()
            )
            return orm_to_node(orm) if orm else None
        finally:
            session.close()

    def query(self, conf: QueryConf) -> List[NodeRecord]:
        session = self._get_session()
        try:
            query = session.query(NodeORM)

            if conf.criterias:
                query = query.filter(
                    or_(*[criteria_to_clause(c) for c in conf.criterias])
                )

            query = query.order_by(NodeORM.id.asc())

            if conf.max_rows > 0:
                query = query.limit(conf.max_rows)

            results = query.all()
            logger.debug(f"[node_repo] query -> {len(results)} rows")
            return [orm_to_node(orm) for orm in results]
        finally:
            session.close()

    def count(self) -> int:
        session = self._get_session()
        try:
            return session.query(NodeORM).count()
        finally:
            session.close()

    def list_all(self) -> List[NodeRecord]:
        session = self._get_session()
        try:
            return [
                orm_to_node(orm)
                for orm in session.query(NodeORM).order_by(NodeORM.id.asc()).all()
            ]
        finally:
            session.close()

    # -------------------------
    # UPDATE
    # -------------------------

    def update(
        self,
        node: NodeRecord,
        *,
        lease: Optional[Lease] = None,
        lifecycle_owner: Optional[LifecycleOwner] = None,
    ) -> None:
        """Update node with optimistic locking, upserting associations in the same transaction."""
        session = self._get_session()
        try:
            current = session.query(NodeORM).filter(
                and_(
                    NodeORM.id == node.id,
                    NodeORM.version == node.version - 1,
                )
            ).with_for_update().first()

            if not current:
                if session.get(NodeORM, node.id) is None:
                    raise NodeNotFound(f"Node {node.id} not found")
                raise ConcurrentModification(
                    f"Update failed for node {node.id} - concurrent modification"
                )

            if node.lifecycle_owner_id is not None:
                holder = session.query(NodeORM.id).filter(
                    and_(
                        NodeORM.lifecycle_owner_id == node.lifecycle_owner_id,
                        NodeORM.id != node.id,
                    )
                ).first()
                if holder:
                    raise LifecycleOwnerConflict(
                        f"Lifecycle owner {node.lifecycle_owner_id} already occupies node {holder.id}"
                    )

            if lease is not None:
                session.merge(LeaseORM(lease_id=lease.lease_id, extra_timeout=lease.extra_timeout))
            if lifecycle_owner is not None:
                session.merge(
                    LifecycleOwnerORM(
                        owner_id=lifecycle_owner.owner_id,
                        life_expectancy=lifecycle_owner.life_expectancy,
                    )
                )
            # association rows must exist before the node references them
            session.flush()

            current.server_id = node.server_id
            current.public_ip = node.public_ip
            current.private_ip = node.private_ip
            current.busy = node.busy
            current.stopped = node.stopped
            current.remote = node.remote
            current.private_key = node.private_key
            current.lease_id = node.lease_id
            current.lifecycle_owner_id = node.lifecycle_owner_id
            current.version = node.version

            session.commit()
            logger.debug(f"[node_repo] update {node.id} -> v{node.version}")

        except NodePersistenceError:
            session.rollback()
            raise
        except IntegrityError as e:
            session.rollback()
            raise LifecycleOwnerConflict(
                f"Lifecycle owner {node.lifecycle_owner_id} already occupies a node"
            ) from e
        except SQLAlchemyError as e:
            session.rollback()
            raise NodePersistenceError(f"Update failed: {e}") from e
        finally:
            session.close()

    # -------------------------
    # DELETE
    # -------------------------

    def delete(self, node_id: int, expected_version: int) -> None:
        session = self._get_session()
        try:
            current = session.query(NodeORM).filter(
                and_(
                    NodeORM.id == node_id,
                    NodeORM.version == expected_version,
                )
            ).with_for_update().first()

            if not current:
                if session.get(NodeORM, node_id) is None:
                    raise NodeNotFound(f"Node {node_id} not found")
                raise ConcurrentModification(
                    f"Delete failed for node {node_id} - concurrent modification"
                )

            # events go with the node through the relationship cascade
            session.delete(current)
            session.commit()
            logger.debug(f"[node_repo] delete {node_id} -> done")

        except NodePersistenceError:
            session.rollback()
            raise
        except SQLAlchemyError as e:
            session.rollback()
            raise NodePersistenceError(f"Delete failed: {e}") from e
        finally:
            session.close()

    # -------------------------
    # EVENTS
    # -------------------------

    def add_event(self, event: NodeEvent) -> NodeEvent:
        session = self._get_session()
        try:
            orm = NodeEventORM(
                node_id=event.node_id,
                event_type=event.event_type,
                message=event.message,
                timestamp=event.timestamp,
            )
            session.add(orm)
            session.commit()
            event.event_id = orm.event_id
            return event
        except SQLAlchemyError as e:
            session.rollback()
            raise NodePersistenceError(f"Failed to add event: {e}") from e
        finally:
            session.close()

    def list_events(self, node_id: int) -> List[NodeEvent]:
        session = self._get_session()
        try:
            rows = (
                session.query(NodeEventORM)
                .filter(NodeEventORM.node_id == node_id)
                .order_by(NodeEventORM.event_id.asc())
                .all()
            )
            return [event_to_domain(row) for row in rows]
        finally:
            session.close()

    # -------------------------
    # ASSOCIATIONS
    # -------------------------

    def get_lease(self, lease_id: str) -> Optional[Lease]:
        session = self._get_session()
        try:
            orm = session.get(LeaseORM, lease_id)
            if orm is None:
                return None
            return Lease(lease_id=orm.lease_id, extra_timeout=orm.extra_timeout)
        finally:
            session.close()

    def get_lifecycle_owner(self, owner_id: str) -> Optional[LifecycleOwner]:
        session = self._get_session()
        try:
            orm = session.get(LifecycleOwnerORM, owner_id)
            if orm is None:
                return None
            return LifecycleOwner(owner_id=orm.owner_id, life_expectancy=orm.life_expectancy)
        finally:
            session.close()

    def delete_lifecycle_owner(self, owner_id: str) -> None:
        session = self._get_session()
        try:
            session.query(LifecycleOwnerORM).filter(
                LifecycleOwnerORM.owner_id == owner_id
            ).delete()
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise NodePersistenceError(f"Failed to delete lifecycle owner: {e}") from e
        finally:
            session.close()

    def find_by_lifecycle_owner(self, owner_id: str) -> Optional[NodeRecord]:
        session = self._get_session()
        try:
            orm = (
                session.query(NodeORM)
                .filter(NodeORM.lifecycle_owner_id == owner_id)
                .first()
            )
            return orm_to_node(orm) if orm else None
        finally:
            session.close()

