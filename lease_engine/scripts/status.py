"""Status artifacts - the only completion signal an executor leaves behind."""

import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Union

from pydantic import ValidationError

from lease_engine.core.errors import StatusArtifactError
from lease_engine.scripts.models import JobStatus, status_file_name

logger = logging.getLogger(__name__)


class StatusReporter:
    """Reads and writes `output-nodeid-<id>_status.json` files in one folder."""

    def __init__(self, status_dir: Union[str, Path]):
        self.status_dir = Path(status_dir)

    def path_for(self, server_node_id: str) -> Path:
        return self.status_dir / status_file_name(server_node_id)

    def write(self, server_node_id: str, status: JobStatus) -> Path:
        """Write atomically so a poller never sees half a file."""
        self.status_dir.mkdir(parents=True, exist_ok=True)
        target = self.path_for(server_node_id)

        fd, tmp_name = tempfile.mkstemp(
            dir=self.status_dir, prefix=".status-", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(status.to_json())
            os.replace(tmp_name, target)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

        logger.info(
            f"[status] wrote {target.name} (exitStatus={status.exit_status})"
        )
        return target

    def read(self, server_node_id: str) -> Optional[JobStatus]:
        """None means still pending or unknown."""
        target = self.path_for(server_node_id)
        try:
            raw = target.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

        try:
            return JobStatus.model_validate_json(raw)
        except ValidationError as e:
            raise StatusArtifactError(f"Malformed status artifact {target.name}: {e}") from e

    def clear(self, server_node_id: str) -> bool:
        """Remove a previous run's artifact. Returns True if one existed."""
        try:
            self.path_for(server_node_id).unlink()
            return True
        except FileNotFoundError:
            return False
