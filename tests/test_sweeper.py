"""Test expiration sweeper."""

import logging

import pytest

from lease_engine.core.errors import ConcurrentModification
from lease_engine.core.models import LifecycleOwner
from lease_engine.core.secrets import InMemorySecretKeyStore
from lease_engine.core.service import NodeRegistry
from lease_engine.infrastructure.memory.repository import InMemoryNodeRepository
from lease_engine.reclaimer.sweeper import ExpirationSweeper


@pytest.fixture
def fleet(registry, server_info, frozen_clock, widget_instance):
    """One node per expiration state, all created at t=1000."""
    idle = registry.create(server_info, owner_id="alice")

    busy = registry.create(server_info, owner_id="alice")
    busy = registry.set_busy(busy.id, True, busy.version)

    owned = registry.create(server_info, owner_id="alice")
    owned = registry.attach_lifecycle_owner(owned.id, widget_instance, owned.version)

    remote = registry.create(server_info, owner_id="alice")
    remote = registry.set_remote(remote.id, True, remote.version)
    remote = registry.set_busy(remote.id, True, remote.version)

    return {"idle": idle, "busy": busy, "owned": owned, "remote": remote}


class TestSweep:

    def test_reclaims_busy_node_without_owner(self, registry, fleet):
        reclaimed = ExpirationSweeper(registry).sweep(now=2000)

        assert [n.id for n in reclaimed] == [fleet["busy"].id]
        assert registry.get(fleet["busy"].id) is None

    def test_owner_expiry_reclaims_after_life_expectancy(self, registry, fleet):
        ExpirationSweeper(registry).sweep(now=7000)

        assert registry.get(fleet["owned"].id) is None
        assert registry.get(fleet["idle"].id) is not None
        assert registry.get(fleet["remote"].id) is not None

    def test_owner_still_alive(self, registry, fleet):
        ExpirationSweeper(registry).sweep(now=5999)

        assert registry.get(fleet["owned"].id) is not None

    def test_hook_sees_reclaimed_nodes(self, registry, fleet):
        seen = []
        sweeper = ExpirationSweeper(registry, on_reclaimed=seen.append)

        sweeper.sweep(now=7000)

        assert sorted(n.id for n in seen) == sorted([fleet["busy"].id, fleet["owned"].id])

    def test_hook_failure_still_reports_deleted_node(self, registry, fleet, caplog):
        def explode(node):
            raise RuntimeError("cloud api down")

        sweeper = ExpirationSweeper(registry, on_reclaimed=explode)

        with caplog.at_level(logging.ERROR):
            reclaimed = sweeper.sweep(now=7000)

        assert sorted(n.id for n in reclaimed) == sorted([fleet["busy"].id, fleet["owned"].id])
        assert registry.get(fleet["busy"].id) is None
        assert registry.get(fleet["owned"].id) is None
        assert "cloud api down" in caplog.text
        assert "serverId=srv-1" in caplog.text

    def test_unstable_node_reported_once_per_sweep(self, registry, fleet, caplog):
        with caplog.at_level(logging.ERROR, logger="lease_engine.core.expiration"):
            ExpirationSweeper(registry).sweep(now=2000)

        unstable = [r for r in caplog.records if "unstable status" in r.getMessage()]
        assert len(unstable) == 1

    def test_lifecycle_owner_removed_with_node(self, registry, fleet, repository):
        ExpirationSweeper(registry).sweep(now=7000)

        assert repository.get_lifecycle_owner("widget-1") is None


class TestReclaim:

    def test_not_expired_returns_false(self, registry, fleet):
        assert ExpirationSweeper(registry).reclaim(fleet["idle"].id, now=2000) is False
        assert registry.get(fleet["idle"].id) is not None

    def test_missing_node_returns_false(self, registry):
        assert ExpirationSweeper(registry).reclaim(999, now=2000) is False

    def test_retries_after_concurrent_modification(self, frozen_clock, server_info):
        class FlakyRegistry(NodeRegistry):
            conflicts = 1

            def reclaim(self, node_id, expected_version, now=None):
                if self.conflicts:
                    self.conflicts -= 1
                    raise ConcurrentModification("changed underneath")
                return super().reclaim(node_id, expected_version, now)

        registry = FlakyRegistry(InMemoryNodeRepository(), InMemorySecretKeyStore())
        node = registry.create(server_info)
        node = registry.set_busy(node.id, True, node.version)

        assert ExpirationSweeper(registry).reclaim(node.id, now=2000) is True
        assert registry.get(node.id) is None

    def test_gives_up_after_max_attempts(self, frozen_clock, server_info):
        class AlwaysConflicting(NodeRegistry):
            def reclaim(self, node_id, expected_version, now=None):
                raise ConcurrentModification("changed underneath")

        registry = AlwaysConflicting(InMemoryNodeRepository())
        node = registry.create(server_info)
        node = registry.set_busy(node.id, True, node.version)

        with pytest.raises(ConcurrentModification):
            ExpirationSweeper(registry, max_attempts=2).reclaim(node.id, now=2000)
        assert registry.get(node.id) is not None

    def test_node_leased_between_scan_and_reclaim_survives(
        self, registry, server_info, frozen_clock
    ):
        node = registry.create(server_info)
        node = registry.set_busy(node.id, True, node.version)
        assert registry.is_expired(node, 2000)

        registry.attach_lifecycle_owner(
            node.id, LifecycleOwner("widget-2", 60_000), node.version
        )

        assert ExpirationSweeper(registry).reclaim(node.id, now=2000) is False
        assert registry.get(node.id) is not None
