"""
File-based script job queue.

    <root>/_scripts/new/         submitted, unclaimed descriptors
    <root>/_scripts/executing/   claimed, in-flight descriptors
    <root>/_scripts/output-nodeid-<id>_status.json

Jobs only move forward: NEW -> EXECUTING -> status artifact written.
Claiming links the descriptor into EXECUTING and then unlinks it from NEW.
The link fails when the target exists, so at most one executor wins a
descriptor and an in-flight one is never replaced. Both folders must live
on the same volume.
"""

import logging
import os
import tempfile
import time
from pathlib import Path
from typing import List, Optional, Union

from pydantic import ValidationError

from lease_engine.core.errors import (
    JobSubmissionConflict,
    ScriptQueueError,
    StuckJobError,
)
from lease_engine.scripts.constants import (
    DESCRIPTOR_SUFFIX,
    EXECUTING_SCRIPTS_FOLDER,
    NEW_SCRIPTS_FOLDER,
    SCRIPTS_FOLDER,
)
from lease_engine.scripts.models import (
    JobStatus,
    ScriptCommand,
    ScriptJob,
    descriptor_file_name,
)
from lease_engine.scripts.status import StatusReporter

logger = logging.getLogger(__name__)


class ScriptJobQueue:
    """Submit, claim, complete and poll script jobs through the filesystem."""

    def __init__(self, working_root: Union[str, Path] = "."):
        self.scripts_dir = Path(working_root) / SCRIPTS_FOLDER
        self.new_dir = self.scripts_dir / NEW_SCRIPTS_FOLDER
        self.executing_dir = self.scripts_dir / EXECUTING_SCRIPTS_FOLDER
        self.status = StatusReporter(self.scripts_dir)

    def ensure_layout(self) -> None:
        self.new_dir.mkdir(parents=True, exist_ok=True)
        self.executing_dir.mkdir(parents=True, exist_ok=True)

    # -------------------------
    # SUBMIT
    # -------------------------

    def submit(self, job: ScriptJob) -> Path:
        """
        Place a descriptor in NEW.

        Raises JobSubmissionConflict if any job for the same node id is still
        waiting or running, whatever its command: the node has a single status
        artifact, so a second job would report the first one's outcome. Any
        status artifact left by an earlier run for the node id is removed first.
        """
        self.ensure_layout()
        name = job.descriptor_name
        target = self.new_dir / name

        # NEW before EXECUTING: a claim moves a descriptor forward between the checks
        in_flight = self._in_flight(self.new_dir, job.server_node_id)
        if in_flight:
            raise JobSubmissionConflict(
                f"Job {in_flight} for node {job.server_node_id} is already pending"
            )
        in_flight = self._in_flight(self.executing_dir, job.server_node_id)
        if in_flight:
            raise JobSubmissionConflict(
                f"Job {in_flight} for node {job.server_node_id} is already executing"
            )

        if self.status.clear(job.server_node_id):
            logger.info(f"[script_queue] cleared stale status for node {job.server_node_id}")

        fd, tmp_name = tempfile.mkstemp(
            dir=self.scripts_dir, prefix=".submit-", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(job.to_json())
            # link() refuses to overwrite, so the descriptor appears whole or not at all
            os.link(tmp_name, target)
        except FileExistsError as e:
            raise JobSubmissionConflict(f"Job {name} is already pending") from e
        finally:
            os.unlink(tmp_name)

        logger.info(
            f"[script_queue] submitted {job.command.value} for node {job.server_node_id}"
        )
        return target

    # -------------------------
    # CLAIM
    # -------------------------

    def list_new(self) -> List[str]:
        return self._list(self.new_dir)

    def list_executing(self) -> List[str]:
        return self._list(self.executing_dir)

    def claim(self, descriptor_name: str) -> Optional[ScriptJob]:
        """
        Move a descriptor from NEW to EXECUTING.

        Returns None when another executor got there first. The move never
        replaces a descriptor already in EXECUTING.
        """
        self.ensure_layout()
        source = self.new_dir / descriptor_name
        target = self.executing_dir / descriptor_name
        try:
            # link() fails on an existing target where rename() would overwrite it
            os.link(source, target)
        except FileNotFoundError:
            logger.info(f"[script_queue] {descriptor_name} already claimed")
            return None
        except FileExistsError:
            logger.info(f"[script_queue] {descriptor_name} already in executing, not claimed")
            return None
        os.unlink(source)

        logger.info(f"[script_queue] claimed {descriptor_name}")
        return self.load(target)

    def claim_next(self) -> Optional[ScriptJob]:
        """Claim the first descriptor still available in NEW."""
        for name in self.list_new():
            job = self.claim(name)
            if job is not None:
                return job
        return None

    @staticmethod
    def load(path: Path) -> ScriptJob:
        try:
            return ScriptJob.model_validate_json(path.read_text(encoding="utf-8"))
        except ValidationError as e:
            raise ScriptQueueError(f"Malformed job descriptor {path.name}: {e}") from e

    # -------------------------
    # COMPLETE
    # -------------------------

    def complete(self, job: ScriptJob, status: JobStatus) -> Path:
        """Write the status artifact, then drop the EXECUTING descriptor."""
        artifact = self.status.write(job.server_node_id, status)
        try:
            (self.executing_dir / job.descriptor_name).unlink()
        except FileNotFoundError:
            logger.warning(f"[script_queue] {job.descriptor_name} was not in executing")
        return artifact

    # -------------------------
    # POLL
    # -------------------------

    def poll(self, server_node_id: str) -> Optional[JobStatus]:
        return self.status.read(server_node_id)

    def wait_for_status(
        self,
        server_node_id: str,
        timeout: float,
        interval: float = 1.0,
    ) -> JobStatus:
        """
        Poll until a status artifact appears.

        StuckJobError after `timeout` seconds is inconclusive: the job may
        still be running or its executor may be gone.
        """
        deadline = time.monotonic() + timeout
        while True:
            status = self.poll(server_node_id)
            if status is not None:
                return status
            if time.monotonic() >= deadline:
                raise StuckJobError(
                    f"No status for node {server_node_id} after {timeout}s"
                )
            time.sleep(interval)

    # -------------------------
    # INTERNAL HELPERS
    # -------------------------

    @staticmethod
    def _in_flight(folder: Path, server_node_id: str) -> Optional[str]:
        for command in ScriptCommand:
            name = descriptor_file_name(command, server_node_id)
            if (folder / name).exists():
                return name
        return None

    @staticmethod
    def _list(folder: Path) -> List[str]:
        if not folder.is_dir():
            return []
        return sorted(
            p.name for p in folder.iterdir()
            if p.is_file() and p.name.endswith(DESCRIPTOR_SUFFIX)
        )
