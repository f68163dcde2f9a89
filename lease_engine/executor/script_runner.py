# lease_engine/executor/script_runner.py
"""Script runner - runs one job descriptor as a child process."""

import logging
import os
import subprocess
from pathlib import Path
from typing import Callable, Optional

from lease_engine.scripts.constants import CLOUDIFY_HOME
from lease_engine.scripts.models import JobStatus, ScriptJob

logger = logging.getLogger(__name__)

LAUNCH_FAILURE_EXIT_STATUS = 1
STDERR_TAIL_LINES = 20

PrivateKeyProvider = Callable[[str], Optional[str]]


class ScriptRunner:
    """
    Runs `[executable, *arguments]` and turns the outcome into a JobStatus.

    Blocks until the child exits. Never raises for script failures; those
    are reported through the returned status. A materialized private key
    exists only while the script runs.
    """

    def __init__(
        self,
        private_key_provider: Optional[PrivateKeyProvider] = None,
        cloudify_home: Optional[str] = None,
    ):
        self._private_key_provider = private_key_provider
        self._cloudify_home = cloudify_home

    def run(self, job: ScriptJob) -> JobStatus:
        node = job.server_node_id
        logger.info(f"[{node}] Running {job.command.value}: {job.executable} {job.arguments}")

        if not job.handle_private_key:
            return self._execute(job)

        error = self._materialize_private_key(job)
        if error:
            logger.error(f"[{node}] {error}")
            return JobStatus.failure(LAUNCH_FAILURE_EXIT_STATUS, error)
        try:
            return self._execute(job)
        finally:
            self.key_file_for(job).unlink(missing_ok=True)
            logger.info(f"[{node}] private key removed")

    def _execute(self, job: ScriptJob) -> JobStatus:
        node = job.server_node_id
        env = os.environ.copy()
        cloudify_home = job.cloudify_home or self._cloudify_home
        if cloudify_home:
            env[CLOUDIFY_HOME] = cloudify_home

        try:
            completed = subprocess.run(
                [job.executable, *job.arguments],
                cwd=job.cloud_folder or None,
                env=env,
                capture_output=True,
                text=True,
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.error(f"[{node}] ❌ Failed to launch {job.executable}: {e}")
            return JobStatus.failure(
                LAUNCH_FAILURE_EXIT_STATUS,
                f"Failed to launch {job.executable}: {e}",
            )

        if completed.returncode == 0:
            logger.info(f"[{node}] ✅ {job.command.value} finished")
            return JobStatus.success()

        message = _tail(completed.stderr) or (
            f"{job.command.value} exited with status {completed.returncode}"
        )
        logger.error(f"[{node}] ❌ {job.command.value} exited with {completed.returncode}")
        return JobStatus.failure(completed.returncode, message)

    def key_file_for(self, job: ScriptJob) -> Path:
        folder = Path(job.cloud_folder) if job.cloud_folder else Path.cwd()
        return folder / f"{job.server_node_id}.pem"

    def _materialize_private_key(self, job: ScriptJob) -> Optional[str]:
        """Write the node's private key next to the job. Returns an error message."""
        if self._private_key_provider is None:
            return "Job requires a private key but no key provider is configured"

        # every logical node on the host shares the same machine credentials
        first_node_id = job.node_ids[0]
        private_key = self._private_key_provider(first_node_id)
        if not private_key:
            return f"No private key found for node {first_node_id}"

        key_file = self.key_file_for(job)
        key_file.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(key_file, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(private_key)
        os.chmod(key_file, 0o600)
        logger.info(f"[{job.server_node_id}] private key written to {key_file}")
        return None


def _tail(text: Optional[str]) -> Optional[str]:
    if not text or not text.strip():
        return None
    lines = text.strip().splitlines()
    return "\n".join(lines[-STDERR_TAIL_LINES:])
