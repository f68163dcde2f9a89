#tests\conftest.py

"""Pytest configuration and fixtures."""

import pytest

from lease_engine.core.models import LifecycleOwner, NodeRecord, ServerInfo
from lease_engine.core.secrets import InMemorySecretKeyStore
from lease_engine.core.service import NodeRegistry
from lease_engine.infrastructure.memory.repository import InMemoryNodeRepository
from lease_engine.infrastructure.postgres.database import (
    create_db_engine,
    get_session_factory,
    drop_db,
    init_db,
)
from lease_engine.infrastructure.postgres.node_repository import PostgresNodeRepository
from lease_engine.scripts.models import ScriptCommand, ScriptJob
from lease_engine.scripts.queue import ScriptJobQueue


@pytest.fixture
def sqlite_engine():
    """Fresh in-memory database per test."""
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield engine
    drop_db(engine)
    engine.dispose()


@pytest.fixture(params=["memory", "sqlite"])
def repository(request):
    """Every store-backed test runs against both repositories."""
    if request.param == "memory":
        return InMemoryNodeRepository()
    engine = request.getfixturevalue("sqlite_engine")
    return PostgresNodeRepository(session_factory=get_session_factory(engine))


@pytest.fixture
def registry(repository):
    return NodeRegistry(repository, secret_store=InMemorySecretKeyStore())


@pytest.fixture
def server_info():
    return ServerInfo(server_id="srv-1", public_ip="10.0.0.1", private_ip="192.168.0.1")


@pytest.fixture
def frozen_clock(monkeypatch):
    """Pin registry creation time to 1000 ms."""
    monkeypatch.setattr("lease_engine.core.service.current_millis", lambda: 1000)
    return 1000


@pytest.fixture
def sample_node():
    return NodeRecord(
        id=7,
        server_id="srv-7",
        public_ip="10.0.0.7",
        private_ip="192.168.0.7",
        creation_time=1000,
    )


@pytest.fixture
def widget_instance():
    return LifecycleOwner(owner_id="widget-1", life_expectancy=5000)


@pytest.fixture
def queue(tmp_path):
    q = ScriptJobQueue(tmp_path)
    q.ensure_layout()
    return q


@pytest.fixture
def bootstrap_job(tmp_path):
    return ScriptJob(
        server_node_id="srv-1",
        command=ScriptCommand.BOOTSTRAP,
        executable="/bin/sh",
        arguments=["bootstrap.sh", "--verbose"],
        handle_private_key=True,
        cloudify_home="/opt/cloudify",
        cloud_folder=str(tmp_path / "cloud"),
    )
