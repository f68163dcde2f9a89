#lease_engine\container.py

"""Dependency injection container - wires all services together."""

from lease_engine.infrastructure.postgres.node_repository import PostgresNodeRepository
from lease_engine.core.secrets import InMemorySecretKeyStore
from lease_engine.core.service import NodeRegistry
from lease_engine.scripts.config import script_settings
from lease_engine.scripts.queue import ScriptJobQueue
from lease_engine.executor.script_runner import ScriptRunner


# ============================================
# REPOSITORIES
# ============================================

node_repository = PostgresNodeRepository()

secret_key_store = InMemorySecretKeyStore()


# ============================================
# SERVICES
# ============================================

node_registry = NodeRegistry(
    repository=node_repository,
    secret_store=secret_key_store,
)

script_queue = ScriptJobQueue(script_settings.scripts_root)

script_runner = ScriptRunner(
    private_key_provider=node_registry.private_key_for,
    cloudify_home=script_settings.cloudify_home,
)
