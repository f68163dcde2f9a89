"""Lease time-left computation."""

import logging
import math
from typing import Optional, Union

from lease_engine.core.models import Lease, LifecycleOwner, NodeRecord, current_millis

logger = logging.getLogger(__name__)

EXPIRED_TIME = 0
NEVER_EXPIRES = math.inf

TimeLeft = Optional[Union[int, float]]


class ExpirationPolicy:
    """
    Decides how long a node has left before it must be reclaimed.

    Precedence (first match wins):
    1. remote nodes never expire
    2. occupied nodes expire after the lease timeout if a lease exists,
       otherwise after the owner's life expectancy (floored at zero)
    3. unoccupied nodes are not tracked, unless marked busy, which is an
       unstable state and expires immediately
    """

    @staticmethod
    def time_left(
        node: NodeRecord,
        now: Optional[int] = None,
        *,
        lease: Optional[Lease] = None,
        lifecycle_owner: Optional[LifecycleOwner] = None,
        report_unstable: bool = True,
    ) -> TimeLeft:
        """
        Milliseconds left, NEVER_EXPIRES, or None when not leased.

        report_unstable=False skips the unstable-status error, for scans that
        re-check the node before acting on it.
        """
        if node.remote:
            return NEVER_EXPIRES

        now = current_millis() if now is None else now

        if lifecycle_owner is not None:
            if lease is not None:
                # may go negative
                return node.creation_time + lease.extra_timeout - now
            return max(
                EXPIRED_TIME,
                node.creation_time + lifecycle_owner.life_expectancy - now,
            )

        if node.busy:
            if report_unstable:
                logger.error(
                    "unstable status - lifecycle owner is missing, but node is marked busy. "
                    f"expiring the node [id, serverId, publicIp, privateIp] = "
                    f"[{node.id}, {node.server_id}, {node.public_ip}, {node.private_ip}]"
                )
            return EXPIRED_TIME

        return None

    @classmethod
    def is_expired(
        cls,
        node: NodeRecord,
        now: Optional[int] = None,
        *,
        lease: Optional[Lease] = None,
        lifecycle_owner: Optional[LifecycleOwner] = None,
        report_unstable: bool = True,
    ) -> bool:
        time_left = cls.time_left(
            node, now, lease=lease, lifecycle_owner=lifecycle_owner,
            report_unstable=report_unstable,
        )
        return time_left is not None and time_left <= 0
