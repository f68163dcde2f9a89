#lease_engine\executor\config.py
from dataclasses import dataclass


@dataclass(frozen=True)
class ExecutorConfig:
    worker_id: str

    poll_interval_seconds: float = 1.0
    max_slots: int = 2

    # running scripts get this long to finish on shutdown
    shutdown_timeout_seconds: float = 300.0
