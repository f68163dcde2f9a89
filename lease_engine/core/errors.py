# lease_engine/core/errors.py

# -----------------------------
# Base Errors
# -----------------------------

class LeaseEngineError(Exception):
    """Base class for all lease engine errors."""
    pass


# -----------------------------
# Validation Errors
# -----------------------------

class NodeValidationError(LeaseEngineError):
    """Invalid input or malformed node record."""
    pass


class CriteriaValidationError(LeaseEngineError):
    """Contradictory predicates inside one criteria group."""
    pass


# -----------------------------
# Persistence Errors
# -----------------------------

class NodePersistenceError(LeaseEngineError):
    pass


class NodeNotFound(NodePersistenceError):
    pass


class ConcurrentModification(NodePersistenceError):
    """Version mismatch on write. Re-read and retry."""
    pass


class LifecycleOwnerConflict(NodePersistenceError):
    """Lifecycle owner already occupies another node."""
    pass


# -----------------------------
# Script Queue Errors
# -----------------------------

class ScriptQueueError(LeaseEngineError):
    pass


class JobSubmissionConflict(ScriptQueueError):
    """Same (node id, command) job is still pending."""
    pass


class StatusArtifactError(ScriptQueueError):
    """Status file exists but cannot be understood."""
    pass


class StuckJobError(ScriptQueueError):
    """No status artifact within the caller's timeout. Inconclusive."""
    pass


class ScriptExecutionFailure(LeaseEngineError):
    """Script reported a non-zero exit or an exception."""

    def __init__(self, server_node_id: str, exit_status: int, message: str | None):
        self.server_node_id = server_node_id
        self.exit_status = exit_status
        self.message = message
        super().__init__(
            f"Script on node {server_node_id} failed with exit status "
            f"{exit_status}: {message}"
        )
