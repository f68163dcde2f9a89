#lease_engine\core\validation.py
from lease_engine.core.models import Lease, LifecycleOwner, NodeRecord
from lease_engine.core.errors import NodeValidationError


def validate_new_node(node: NodeRecord) -> None:
    # -------------------------
    # Identity
    # -------------------------
    if node.id is not None:
        raise NodeValidationError("id is assigned by the registry")

    if node.server_id is not None and not node.server_id.strip():
        raise NodeValidationError("server_id must not be blank")

    # -------------------------
    # Lifecycle invariants
    # -------------------------
    if node.busy or node.stopped or node.remote:
        raise NodeValidationError(
            "new node must start idle (busy, stopped and remote all false)"
        )

    if node.lease_id or node.lifecycle_owner_id:
        raise NodeValidationError(
            "associations must not be set at creation"
        )

    if node.creation_time is None or node.creation_time < 0:
        raise NodeValidationError("creation_time must be a non-negative epoch millis")

    # -------------------------
    # Versioning
    # -------------------------
    if node.version != 0:
        raise NodeValidationError(
            "new node version must be 0"
        )


def validate_lease(lease: Lease) -> None:
    if not lease.lease_id:
        raise NodeValidationError("lease_id is required")
    if lease.extra_timeout is None:
        raise NodeValidationError("extra_timeout is required")


def validate_lifecycle_owner(owner: LifecycleOwner) -> None:
    if not owner.owner_id:
        raise NodeValidationError("owner_id is required")
    if owner.life_expectancy is None or owner.life_expectancy < 0:
        raise NodeValidationError("life_expectancy must be a non-negative duration")
