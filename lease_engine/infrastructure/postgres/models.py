#lease_engine\infrastructure\postgres\models.py
"""SQLAlchemy ORM models for database tables."""

from sqlalchemy import (
    BigInteger, Boolean, Column, Enum as SQLEnum, ForeignKey, Index, Integer, String, Text
)
from sqlalchemy.orm import relationship

from lease_engine.core.models import EventType
from lease_engine.infrastructure.postgres.database import Base


# ============================================
# ASSOCIATIONS
# ============================================

class LeaseORM(Base):
    """Lease table - custom timeouts granted to nodes."""

    __tablename__ = "leases"

    lease_id = Column(String(100), primary_key=True)
    extra_timeout = Column(BigInteger, nullable=False)


class LifecycleOwnerORM(Base):
    """Lifecycle owner table - widget instances occupying nodes."""

    __tablename__ = "lifecycle_owners"

    owner_id = Column(String(100), primary_key=True)
    life_expectancy = Column(BigInteger, nullable=False)


# ============================================
# SERVER NODES
# ============================================

class NodeORM(Base):
    """
    Server node table.

    Indexes:
    - server_id for provider lookups
    - (busy, remote, stopped) for criteria queries
    - unique lifecycle_owner_id: one owner occupies at most one node
    """

    __tablename__ = "server_nodes"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Identity
    server_id = Column(String(255), nullable=True, index=True)
    # "key" is a keyword in most SQL dialects
    key = Column("api_key", String(255), nullable=True)
    project = Column(String(255), nullable=True)
    owner_id = Column(String(255), nullable=True, index=True)

    # Network
    public_ip = Column(String(64), nullable=True)
    private_ip = Column(String(64), nullable=True)

    # Lease state
    busy = Column(Boolean, nullable=False, default=False)
    stopped = Column(Boolean, nullable=False, default=False)
    remote = Column(Boolean, nullable=False, default=False)
    creation_time = Column(BigInteger, nullable=False)

    # Credentials
    private_key = Column(Text, nullable=True)

    # Associations
    lease_id = Column(String(100), ForeignKey("leases.lease_id"), nullable=True)
    lifecycle_owner_id = Column(
        String(100),
        ForeignKey("lifecycle_owners.owner_id"),
        nullable=True,
        unique=True,
    )

    # Optimistic concurrency
    version = Column(Integer, nullable=False, default=0)

    events = relationship(
        "NodeEventORM",
        order_by="NodeEventORM.event_id",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        Index("ix_server_nodes_flags", "busy", "remote", "stopped"),
    )

    def __repr__(self) -> str:
        return (
            f"<NodeORM(id={self.id}, "
            f"server_id={self.server_id}, "
            f"busy={self.busy}, remote={self.remote})>"
        )


class NodeEventORM(Base):
    """Append-only node audit log."""

    __tablename__ = "server_node_events"

    event_id = Column(Integer, primary_key=True, autoincrement=True)
    node_id = Column(
        Integer,
        ForeignKey("server_nodes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    event_type = Column(SQLEnum(EventType, name="node_event_type"), nullable=False)
    message = Column(Text, nullable=False)
    timestamp = Column(BigInteger, nullable=False)
