# lease_engine/run_executor.py
"""Run script executor worker to process queued script jobs."""

import logging
import signal
import socket
import sys
import time

from lease_engine.container import script_queue, script_runner
from lease_engine.executor.config import ExecutorConfig
from lease_engine.executor.executor import ScriptExecutor

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)

config = ExecutorConfig(worker_id=f"executor-{socket.gethostname()}")

executor = ScriptExecutor(
    executor_id=config.worker_id,
    queue=script_queue,
    runner=script_runner,
    poll_interval=config.poll_interval_seconds,
    max_slots=config.max_slots,
    shutdown_timeout=config.shutdown_timeout_seconds,
)


def signal_handler(sig, frame):
    """Stop polling and let running scripts finish before exiting."""
    logger.info("🛑 Shutting down executor...")
    executor.stop()
    sys.exit(0)


def main():
    """Main entry point."""
    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    logger.info("=" * 80)
    logger.info("🚀 SCRIPT EXECUTOR")
    logger.info("=" * 80)
    logger.info(f"Worker ID: {executor.executor_id}")
    logger.info(f"Max Slots: {executor.slots.total_slots()}")
    logger.info(f"Poll Interval: {executor.poll_interval}s")
    logger.info(f"Shutdown Timeout: {executor.shutdown_timeout}s")
    logger.info(f"Scripts Folder: {script_queue.scripts_dir}")
    logger.info("Press Ctrl+C to stop")
    logger.info("=" * 80)

    executor.start()

    # Keep running
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("🛑 Shutting down executor...")
        executor.stop()


if __name__ == "__main__":
    main()
