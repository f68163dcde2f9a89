# lease_engine/executor/executor.py
"""Executor - claims script jobs from the queue and runs them."""

import threading
import time
import logging
from typing import List, Optional

from lease_engine.core.errors import ScriptQueueError
from lease_engine.executor.slots import SlotManager
from lease_engine.executor.script_runner import ScriptRunner
from lease_engine.scripts.models import JobStatus, ScriptJob
from lease_engine.scripts.queue import ScriptJobQueue

logger = logging.getLogger(__name__)


class ScriptExecutor:
    """
    Polls NEW, claims into EXECUTING, runs the script and writes its status.

    There is no retry and no cancellation: once claimed a job runs to
    completion. stop() waits for running jobs up to `shutdown_timeout`; a job
    still running after that, or one whose process dies, stays in EXECUTING.
    """

    def __init__(
        self,
        *,
        executor_id: str,
        queue: ScriptJobQueue,
        runner: Optional[ScriptRunner] = None,
        poll_interval: float = 1.0,
        max_slots: int = 2,
        shutdown_timeout: Optional[float] = 300.0,
    ):
        self.executor_id = executor_id
        self.queue = queue
        self.runner = runner or ScriptRunner()
        self.poll_interval = poll_interval
        self.shutdown_timeout = shutdown_timeout

        self.slots = SlotManager(max_slots)
        self._stop_event = threading.Event()
        self._thread = None

    def start(self):
        """Start executor main loop."""
        logger.info(f"[executor {self.executor_id}] 🚀 Starting executor")
        logger.info(f"[executor] Max slots: {self.slots.total_slots()}")
        logger.info(f"[executor] Poll interval: {self.poll_interval}s")
        logger.info(f"[executor] Queue: {self.queue.scripts_dir}")

        self.queue.ensure_layout()
        self._thread = threading.Thread(target=self._run_loop, daemon=True)
        self._thread.start()

    def stop(self) -> List[str]:
        """
        Stop polling and wait for running scripts to finish.

        Returns the descriptors still running when `shutdown_timeout` ran out.
        """
        logger.info(f"[executor {self.executor_id}] Stopping executor")
        self._stop_event.set()
        if self._thread:
            self._thread.join()

        active = self.slots.active_jobs()
        if active:
            logger.info(f"[executor] Waiting for {len(active)} running job(s)")
        unfinished = self.slots.join_all(self.shutdown_timeout)
        for name in unfinished:
            logger.warning(f"[executor] ⚠️ {name} still running at shutdown, left in executing")
        return unfinished

    def _run_loop(self):
        """Main polling loop."""
        while not self._stop_event.is_set():
            try:
                self._claim_and_execute()
            except Exception as e:
                logger.error(f"[executor] Error in main loop: {e}", exc_info=True)

            self._stop_event.wait(self.poll_interval)

    def _claim_and_execute(self):
        """Fill free slots with claimed jobs."""
        # only this thread occupies slots, so a free slot stays free until occupied
        while self.slots.has_free_slot():
            job = self._claim_next()
            if job is None:
                return

            thread = threading.Thread(
                target=self._execute_in_thread,
                args=(job,),
                daemon=True,
            )
            slot = self.slots.occupy(job.descriptor_name, thread)
            thread.start()
            logger.info(f"[executor] ✅ Started {job.descriptor_name} in slot {slot.slot_id}")

    def _claim_next(self) -> Optional[ScriptJob]:
        for name in self.queue.list_new():
            try:
                job = self.queue.claim(name)
            except ScriptQueueError as e:
                # unreadable descriptor: it sits in EXECUTING with no status
                logger.error(f"[executor] Cannot run {name}: {e}")
                continue
            if job is not None:
                return job
        return None

    def _execute_in_thread(self, job: ScriptJob):
        try:
            self.execute(job)
        finally:
            self.slots.release(job.descriptor_name)

    def execute(self, job: ScriptJob) -> JobStatus:
        """Run a claimed job and publish its status artifact."""
        logger.info(f"[executor] [{job.server_node_id}] Starting {job.command.value}")
        try:
            status = self.runner.run(job)
        except Exception as e:
            logger.error(f"[executor] [{job.server_node_id}] ❌ Failed: {e}", exc_info=True)
            status = JobStatus.failure(1, str(e))

        self.queue.complete(job, status)
        return status

    def process_next(self) -> Optional[JobStatus]:
        """Claim and run one job synchronously. None when NEW is empty."""
        job = self._claim_next()
        if job is None:
            return None
        return self.execute(job)

    def wait_idle(self, timeout: float = 10.0) -> bool:
        """Block until no job is running."""
        deadline = time.monotonic() + timeout
        while self.slots.active_jobs():
            if time.monotonic() >= deadline:
                return False
            time.sleep(0.05)
        return True
