"""Test node registry operations."""

import logging
import math

import pytest

from lease_engine.core.errors import (
    ConcurrentModification,
    LifecycleOwnerConflict,
    NodeNotFound,
    NodePersistenceError,
)
from lease_engine.core.models import EventType, Lease, LifecycleOwner, NodeRecord, ServerInfo
from lease_engine.core.service import NodeRegistry
from lease_engine.infrastructure.memory.repository import InMemoryNodeRepository


class TestCreate:

    def test_create_from_server(self, registry, server_info, frozen_clock):
        node = registry.create(server_info, project="acme", key="k-1", private_key="PEM")

        assert node.id is not None
        assert node.server_id == "srv-1"
        assert node.public_ip == "10.0.0.1"
        assert node.creation_time == 1000
        assert not node.busy and not node.stopped and not node.remote
        assert node.version == 0
        assert registry.get(node.id).private_key == "PEM"

    def test_create_records_event(self, registry, server_info):
        node = registry.create(server_info)

        events = registry.events(node.id)

        assert len(events) == 1
        assert events[0].event_type == EventType.INFO

    def test_placeholder_then_assign_server(self, registry):
        node = registry.create_placeholder(project="acme")
        assert node.server_id is None

        node = registry.assign_server(
            node.id, ServerInfo("srv-9", "1.1.1.1", "10.1.1.1"), node.version
        )

        stored = registry.find_by_node_id("srv-9")
        assert stored.id == node.id
        assert stored.public_ip == "1.1.1.1"
        assert stored.version == 1


class TestRead:

    def test_find_by_node_id(self, registry, server_info):
        created = registry.create(server_info)

        assert registry.find_by_node_id("srv-1").id == created.id

    def test_find_missing_node(self, registry):
        assert registry.find_by_node_id("nope") is None

    def test_find_with_duplicates_returns_one(self, registry, server_info):
        first = registry.create(server_info)
        second = registry.create(server_info)

        found = registry.find_by_node_id("srv-1")

        assert found.id in (first.id, second.id)

    def test_count_and_all(self, registry):
        registry.create(ServerInfo("srv-1"))
        registry.create(ServerInfo("srv-2"))

        assert registry.count() == 2
        assert sorted(n.server_id for n in registry.all()) == ["srv-1", "srv-2"]


class TestVersionedMutations:

    def test_mutation_bumps_version(self, registry, server_info):
        node = registry.create(server_info)

        node = registry.set_busy(node.id, True, node.version)
        node = registry.set_stopped(node.id, True, node.version)

        stored = registry.get(node.id)
        assert stored.version == 2
        assert stored.busy and stored.stopped

    def test_stale_version_is_rejected(self, registry, server_info):
        node = registry.create(server_info)
        registry.set_busy(node.id, True, node.version)

        with pytest.raises(ConcurrentModification):
            registry.set_stopped(node.id, True, node.version)

        stored = registry.get(node.id)
        assert not stored.stopped
        assert stored.version == 1

    def test_two_writers_one_wins(self, registry, server_info):
        node = registry.create(server_info)
        first_read = registry.get(node.id)
        second_read = registry.get(node.id)

        registry.set_remote(first_read.id, True, first_read.version)

        with pytest.raises(ConcurrentModification):
            registry.set_busy(second_read.id, True, second_read.version)

    def test_retry_after_conflict_succeeds(self, registry, server_info):
        node = registry.create(server_info)
        registry.set_remote(node.id, True, node.version)

        fresh = registry.get(node.id)
        updated = registry.set_busy(fresh.id, True, fresh.version)

        assert updated.busy and updated.remote

    def test_repository_rejects_stale_write(self, repository, server_info):
        """Version check also holds at the store, not just in the service."""
        registry = NodeRegistry(repository)
        node = registry.create(server_info)
        stale = repository.get(node.id)
        registry.set_busy(node.id, True, node.version)

        stale.set_stopped(True)
        with pytest.raises(ConcurrentModification):
            repository.update(stale)

    def test_missing_node(self, registry):
        with pytest.raises(NodeNotFound):
            registry.set_busy(999, True, 0)

    def test_mutations_are_audited_in_order(self, registry, server_info):
        node = registry.create(server_info)
        node = registry.set_busy(node.id, True, node.version)
        node = registry.set_busy(node.id, False, node.version)

        messages = [e.message for e in registry.events(node.id)]

        assert messages == ["node registered", "busy set to True", "busy set to False"]

    def test_event_failure_does_not_fail_mutation(self, server_info, caplog):
        class FlakyEvents(InMemoryNodeRepository):
            def add_event(self, event):
                raise NodePersistenceError("event table unavailable")

        registry = NodeRegistry(FlakyEvents())
        node = registry.create(server_info)

        with caplog.at_level(logging.WARNING, logger="lease_engine.core.service"):
            node = registry.set_busy(node.id, True, node.version)

        assert node.busy
        assert "failed to record event" in caplog.text


class TestAssociations:

    def test_attach_lifecycle_owner_marks_busy(self, registry, server_info, widget_instance):
        node = registry.create(server_info)

        node = registry.attach_lifecycle_owner(node.id, widget_instance, node.version)

        stored = registry.get(node.id)
        assert stored.busy
        assert stored.lifecycle_owner_id == "widget-1"

    def test_owner_cannot_occupy_two_nodes(self, registry, widget_instance):
        a = registry.create(ServerInfo("srv-a"))
        b = registry.create(ServerInfo("srv-b"))
        registry.attach_lifecycle_owner(a.id, widget_instance, a.version)

        with pytest.raises(LifecycleOwnerConflict):
            registry.attach_lifecycle_owner(b.id, widget_instance, b.version)

        assert not registry.get(b.id).busy

    def test_detach_lifecycle_owner_releases_node(self, registry, server_info, widget_instance):
        node = registry.create(server_info)
        node = registry.attach_lifecycle_owner(node.id, widget_instance, node.version)

        node = registry.detach_lifecycle_owner(node.id, node.version)

        assert not node.busy
        assert registry.time_left(node) is None

    def test_release_lifecycle_owner(self, registry, server_info, widget_instance):
        node = registry.create(server_info)
        registry.attach_lifecycle_owner(node.id, widget_instance, node.version)

        released = registry.release_lifecycle_owner("widget-1")

        assert released.id == node.id
        assert not registry.get(node.id).busy
        assert registry.release_lifecycle_owner("widget-1") is None

    def test_attach_and_detach_lease(self, registry, server_info, widget_instance, frozen_clock):
        node = registry.create(server_info)
        node = registry.attach_lifecycle_owner(node.id, widget_instance, node.version)
        node = registry.attach_lease(node.id, Lease("lead-1", 2000), node.version)

        assert registry.time_left(node, now=4000) == -1000

        node = registry.detach_lease(node.id, node.version)
        assert registry.time_left(node, now=4000) == 2000


class TestRejectedAssociationWrites:
    """A write refused for version or ownership leaves expiry untouched."""

    def test_stale_owner_attach_keeps_life_expectancy(
        self, registry, server_info, widget_instance, frozen_clock
    ):
        node = registry.create(server_info)
        stale = node.version
        node = registry.attach_lifecycle_owner(node.id, widget_instance, node.version)

        with pytest.raises(ConcurrentModification):
            registry.attach_lifecycle_owner(node.id, LifecycleOwner("widget-1", 10**9), stale)

        assert registry.time_left(registry.get(node.id), now=7000) == 0
        assert registry.is_expired(registry.get(node.id), now=7000)

    def test_conflicting_owner_attach_keeps_holder_expiry(
        self, registry, widget_instance, frozen_clock
    ):
        a = registry.create(ServerInfo("srv-a"))
        b = registry.create(ServerInfo("srv-b"))
        a = registry.attach_lifecycle_owner(a.id, widget_instance, a.version)

        with pytest.raises(LifecycleOwnerConflict):
            registry.attach_lifecycle_owner(b.id, LifecycleOwner("widget-1", 10**9), b.version)

        assert registry.time_left(registry.get(a.id), now=5500) == 500

    def test_stale_lease_attach_keeps_extra_timeout(
        self, registry, server_info, widget_instance, frozen_clock
    ):
        node = registry.create(server_info)
        node = registry.attach_lifecycle_owner(node.id, widget_instance, node.version)
        stale = node.version
        node = registry.attach_lease(node.id, Lease("lead-1", 2000), node.version)

        with pytest.raises(ConcurrentModification):
            registry.attach_lease(node.id, Lease("lead-1", 10**9), stale)

        assert registry.time_left(registry.get(node.id), now=4000) == -1000

    def test_store_skips_association_on_stale_update(self, repository, server_info):
        node = repository.create(NodeRecord.from_server(server_info, creation_time=1000))
        node.attach_lifecycle_owner("widget-9")
        node.version += 1

        with pytest.raises(ConcurrentModification):
            repository.update(node, lifecycle_owner=LifecycleOwner("widget-9", 5000))

        assert repository.get_lifecycle_owner("widget-9") is None
        assert repository.get(node.id).lifecycle_owner_id is None


class TestDelete:

    def test_delete_cascades(self, registry, repository, server_info, widget_instance):
        node = registry.create(server_info)
        node = registry.attach_lifecycle_owner(node.id, widget_instance, node.version)

        registry.delete(node.id, node.version)

        assert registry.get(node.id) is None
        assert registry.events(node.id) == []
        assert repository.get_lifecycle_owner("widget-1") is None
        assert registry.count() == 0

    def test_delete_with_stale_version(self, registry, server_info):
        node = registry.create(server_info)
        registry.set_busy(node.id, False, node.version)

        with pytest.raises(ConcurrentModification):
            registry.delete(node.id, node.version)

        assert registry.get(node.id) is not None


class TestExpiration:

    def test_end_to_end_expiry_then_remote(self, registry, widget_instance, frozen_clock):
        node = registry.create(ServerInfo("srv-1", "10.0.0.1", "192.168.0.1"))
        assert node.creation_time == 1000
        node = registry.attach_lifecycle_owner(node.id, widget_instance, node.version)

        assert registry.time_left(node, now=6500) == 0
        assert registry.is_expired(node, now=6500)

        node = registry.set_remote(node.id, True, node.version)

        assert math.isinf(registry.time_left(node, now=6500))
        assert not registry.is_expired(node, now=6500)

    def test_reclaim_expired_node(self, registry, widget_instance, frozen_clock):
        node = registry.create(ServerInfo("srv-1"))
        node = registry.attach_lifecycle_owner(node.id, widget_instance, node.version)

        assert registry.reclaim(node.id, node.version, now=7000)
        assert registry.get(node.id) is None

    def test_reclaim_skips_live_node(self, registry, widget_instance, frozen_clock):
        node = registry.create(ServerInfo("srv-1"))
        node = registry.attach_lifecycle_owner(node.id, widget_instance, node.version)

        assert not registry.reclaim(node.id, node.version, now=2000)
        assert registry.get(node.id) is not None

    def test_debug_string_shows_time_left(self, registry, widget_instance, frozen_clock):
        node = registry.create(ServerInfo("srv-1"))
        node = registry.attach_lifecycle_owner(node.id, widget_instance, node.version)

        assert "expirationTime=4000" in registry.to_debug_string(node, now=2000)


class TestSecrets:

    def test_secret_key_keyed_by_project_and_key(self, registry):
        a = registry.create(ServerInfo("srv-a"), project="acme", key="k-1")
        b = registry.create(ServerInfo("srv-b"), project="acme", key="k-1")
        c = registry.create(ServerInfo("srv-c"), project="other", key="k-1")

        registry.set_secret_key(a, "s3cr3t")

        assert registry.get_secret_key(b) == "s3cr3t"
        assert registry.get_secret_key(c) is None

    def test_last_write_wins(self, registry):
        node = registry.create(ServerInfo("srv-a"), project="acme", key="k-1")

        registry.set_secret_key(node, "one")
        registry.set_secret_key(node, "two")

        assert registry.get_secret_key(node) == "two"

    def test_private_key_lookup(self, registry):
        registry.create(ServerInfo("srv-a"), private_key="PEM-A")

        assert registry.private_key_for("srv-a") == "PEM-A"
        assert registry.private_key_for("srv-x") is None
