# lease_engine/run_sweeper.py
"""Run the expiration sweeper (development)."""

import logging
import sys

from lease_engine.container import node_registry
from lease_engine.reclaimer.sweeper import ExpirationSweeper

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


def log_reclaimed(node):
    # destroying the VM belongs to the cloud provider integration
    logger.info(f"Node {node.server_id} reclaimed; cloud server must be destroyed")


def main():
    """Main entry point."""
    logger.info("Starting Expiration Sweeper (Development Mode)")

    sweeper = ExpirationSweeper(
        node_registry,
        on_reclaimed=log_reclaimed,
        sweep_interval=60,
    )

    try:
        sweeper.start()
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
