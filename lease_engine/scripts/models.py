"""Script job descriptor and status artifact schemas."""

from enum import Enum
from typing import Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from lease_engine.core.errors import ScriptExecutionFailure
from lease_engine.scripts.constants import (
    DESCRIPTOR_SUFFIX,
    OUTPUT_FILE_NAME_PREFIX,
    SERVER_NODE_ID_DELIMITER,
    STATUS_SUFFIX,
)


class ScriptCommand(str, Enum):
    """Provisioning commands an executor knows how to run."""

    BOOTSTRAP = "bootstrap"
    INSTALL = "install"
    UNINSTALL = "uninstall"


def join_node_ids(node_ids: Iterable[str]) -> str:
    """Compound id for several logical nodes sharing one host."""
    ids = [str(n) for n in node_ids]
    if not ids:
        raise ValueError("at least one node id is required")
    return SERVER_NODE_ID_DELIMITER.join(ids)


def split_node_ids(server_node_id: str) -> List[str]:
    return server_node_id.split(SERVER_NODE_ID_DELIMITER)


def status_file_name(server_node_id: str) -> str:
    return f"{OUTPUT_FILE_NAME_PREFIX}{server_node_id}{STATUS_SUFFIX}"


def descriptor_file_name(command: ScriptCommand, server_node_id: str) -> str:
    """Unique per (node id, command)."""
    return f"{command.value}-nodeid-{server_node_id}{DESCRIPTOR_SUFFIX}"


class ScriptJob(BaseModel):
    """Job descriptor written into the NEW folder."""

    model_config = ConfigDict(populate_by_name=True, use_enum_values=False)

    server_node_id: str = Field(..., alias="serverNodeId", min_length=1)
    command: ScriptCommand
    executable: str = Field(..., min_length=1)
    arguments: List[str] = Field(default_factory=list)
    handle_private_key: bool = Field(default=False, alias="handlePrivateKey")
    cloudify_home: Optional[str] = Field(default=None, alias="cloudifyHome")
    cloud_folder: Optional[str] = Field(default=None, alias="cloudFolder")

    @property
    def descriptor_name(self) -> str:
        return descriptor_file_name(self.command, self.server_node_id)

    @property
    def node_ids(self) -> List[str]:
        return split_node_ids(self.server_node_id)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)


class JobStatus(BaseModel):
    """Status artifact: exit code plus an error message on failure."""

    model_config = ConfigDict(populate_by_name=True)

    exit_status: int = Field(..., alias="exitStatus")
    exception: Optional[str] = None

    @classmethod
    def success(cls) -> "JobStatus":
        return cls(exit_status=0)

    @classmethod
    def failure(cls, exit_status: int, message: str) -> "JobStatus":
        return cls(exit_status=exit_status, exception=message)

    @property
    def succeeded(self) -> bool:
        return self.exit_status == 0 and self.exception is None

    def raise_for_status(self, server_node_id: str) -> None:
        """Raise ScriptExecutionFailure with the script's own error text."""
        if not self.succeeded:
            raise ScriptExecutionFailure(server_node_id, self.exit_status, self.exception)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)
