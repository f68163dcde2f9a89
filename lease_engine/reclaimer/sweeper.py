# lease_engine/reclaimer/sweeper.py
"""
Expiration sweeper - reclaims nodes whose lease ran out.

Runs as a separate process. Each candidate is re-read and re-checked right
before deletion, inside an optimistic-concurrency retry loop, so a node that
got leased between the scan and the reclaim is left alone.
"""

import logging
import time
from typing import Callable, List, Optional

from lease_engine.core.criteria import QueryConf
from lease_engine.core.errors import ConcurrentModification, LeaseEngineError
from lease_engine.core.models import NodeRecord
from lease_engine.core.service import NodeRegistry

logger = logging.getLogger(__name__)

ReclaimHook = Callable[[NodeRecord], None]


class ExpirationSweeper:
    """Periodically deletes expired, non-remote nodes."""

    def __init__(
        self,
        registry: NodeRegistry,
        *,
        on_reclaimed: Optional[ReclaimHook] = None,
        sweep_interval: float = 60.0,
        max_attempts: int = 3,
    ):
        """
        Args:
            registry: Node registry to sweep
            on_reclaimed: Called with each deleted node (e.g. destroy the VM)
            sweep_interval: Seconds between sweeps
            max_attempts: Retries per node on concurrent modification
        """
        self.registry = registry
        self.on_reclaimed = on_reclaimed
        self.sweep_interval = sweep_interval
        self.max_attempts = max_attempts
        self._stop_requested = False

    def start(self) -> None:
        logger.info(f"[sweeper] Starting, interval {self.sweep_interval}s")
        while not self._stop_requested:
            try:
                reclaimed = self.sweep()
                if reclaimed:
                    logger.info(f"[sweeper] reclaimed {len(reclaimed)} node(s)")
            except Exception as e:
                logger.error(f"[sweeper] Sweep failed: {e}", exc_info=True)
            time.sleep(self.sweep_interval)

    def stop(self) -> None:
        self._stop_requested = True

    def sweep(self, now: Optional[int] = None) -> List[NodeRecord]:
        """
        One pass over non-remote nodes. Returns every node it deleted, including
        those whose reclaim hook failed.
        """
        candidates = self.registry.query(
            QueryConf().criteria().set_remote(False).done()
        )

        reclaimed = []
        for node in candidates:
            # reclaim re-checks and reports unstable nodes, so stay quiet here
            if not self.registry.is_expired(node, now, report_unstable=False):
                continue
            try:
                deleted = self._delete_expired(node.id, now)
            except LeaseEngineError as e:
                logger.error(f"[sweeper] Failed to reclaim node {node.id}: {e}")
                continue
            if deleted is not None:
                reclaimed.append(deleted)
                self._notify_safely(deleted)
        return reclaimed

    def reclaim(self, node_id: int, now: Optional[int] = None) -> bool:
        """Delete the node if still expired, then run the reclaim hook."""
        deleted = self._delete_expired(node_id, now)
        if deleted is None:
            return False
        if self.on_reclaimed:
            self.on_reclaimed(deleted)
        return True

    def _delete_expired(self, node_id: int, now: Optional[int]) -> Optional[NodeRecord]:
        """Re-read, re-check and delete, retrying on version conflicts."""
        for attempt in range(1, self.max_attempts + 1):
            node = self.registry.get(node_id)
            if node is None:
                return None
            try:
                if not self.registry.reclaim(node.id, node.version, now):
                    return None
            except ConcurrentModification:
                logger.warning(
                    f"[sweeper] node {node_id} changed during reclaim "
                    f"(attempt {attempt}/{self.max_attempts})"
                )
                continue

            logger.info(
                f"[sweeper] reclaimed node {node.id} "
                f"[serverId={node.server_id}, publicIp={node.public_ip}]"
            )
            return node

        raise ConcurrentModification(
            f"Node {node_id} kept changing, gave up after {self.max_attempts} attempts"
        )

    def _notify_safely(self, node: NodeRecord) -> None:
        if not self.on_reclaimed:
            return
        try:
            self.on_reclaimed(node)
        except Exception as e:
            # registry row already deleted
            logger.error(
                f"[sweeper] Reclaim hook failed for node {node.id} "
                f"[serverId={node.server_id}, publicIp={node.public_ip}]: {e}",
                exc_info=True,
            )
