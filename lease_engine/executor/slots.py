#lease_engine\executor\slots.py

"""Fixed pool of execution slots, one claimed job descriptor per slot."""

import threading
import time
from typing import List, Optional


class Slot:
    """A running script: its descriptor name and the thread executing it."""

    def __init__(self, slot_id: int):
        self.slot_id = slot_id
        self.job_name: Optional[str] = None
        self.thread: Optional[threading.Thread] = None

    def is_free(self) -> bool:
        return self.job_name is None


class SlotManager:
    """
    Caps how many scripts one executor runs at once.

    Occupied by the polling thread, released by the job threads, so every
    access goes through one lock.
    """

    def __init__(self, max_slots: int):
        if max_slots < 1:
            raise ValueError("max_slots must be at least 1")

        self._slots = [Slot(i) for i in range(max_slots)]
        self._lock = threading.Lock()

    def has_free_slot(self) -> bool:
        with self._lock:
            return any(s.is_free() for s in self._slots)

    def occupy(self, job_name: str, thread: threading.Thread) -> Slot:
        """Bind a claimed descriptor and its thread to the first free slot."""
        with self._lock:
            if any(s.job_name == job_name for s in self._slots):
                raise ValueError(f"Job {job_name} already holds a slot")
            for slot in self._slots:
                if slot.is_free():
                    slot.job_name = job_name
                    slot.thread = thread
                    return slot
        raise ValueError(f"No free slot for {job_name}")

    def release(self, job_name: str) -> bool:
        with self._lock:
            for slot in self._slots:
                if slot.job_name == job_name:
                    slot.job_name = None
                    slot.thread = None
                    return True
        return False

    def active_jobs(self) -> List[str]:
        with self._lock:
            return [s.job_name for s in self._slots if not s.is_free()]

    def join_all(self, timeout: Optional[float] = None) -> List[str]:
        """
        Wait for every running job thread, sharing one deadline.

        Returns the names of jobs still running when the deadline passed.
        """
        with self._lock:
            running = [(s.job_name, s.thread) for s in self._slots if s.thread is not None]

        deadline = None if timeout is None else time.monotonic() + timeout
        for _, thread in running:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            thread.join(remaining)
        return [name for name, thread in running if thread.is_alive()]

    def total_slots(self) -> int:
        return len(self._slots)

    def free_slots(self) -> int:
        with self._lock:
            return sum(1 for s in self._slots if s.is_free())
