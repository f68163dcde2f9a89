#tests\test_slots.py

"""Test executor slot manager."""

import threading

import pytest

from lease_engine.executor.slots import SlotManager


def idle_thread():
    return threading.Thread(target=lambda: None)


class TestSlotManager:
    """Test slot manager."""

    def test_initialization(self):
        manager = SlotManager(max_slots=5)

        assert manager.total_slots() == 5
        assert manager.free_slots() == 5
        assert manager.active_jobs() == []

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            SlotManager(max_slots=0)

    def test_occupy_binds_job_and_thread(self):
        manager = SlotManager(max_slots=2)
        thread = idle_thread()

        slot = manager.occupy("a.json", thread)

        assert slot.job_name == "a.json"
        assert slot.thread is thread
        assert manager.active_jobs() == ["a.json"]
        assert manager.free_slots() == 1

    def test_occupy_when_all_taken(self):
        manager = SlotManager(max_slots=2)
        manager.occupy("a.json", idle_thread())
        manager.occupy("b.json", idle_thread())

        assert not manager.has_free_slot()
        with pytest.raises(ValueError):
            manager.occupy("c.json", idle_thread())

    def test_same_job_cannot_hold_two_slots(self):
        manager = SlotManager(max_slots=2)
        manager.occupy("a.json", idle_thread())

        with pytest.raises(ValueError):
            manager.occupy("a.json", idle_thread())

    def test_release(self):
        manager = SlotManager(max_slots=1)
        manager.occupy("a.json", idle_thread())

        assert manager.release("a.json") is True
        assert manager.has_free_slot()
        assert manager.release("a.json") is False


class TestJoinAll:
    """Test waiting for running jobs."""

    def test_join_finished_threads(self):
        manager = SlotManager(max_slots=2)
        thread = idle_thread()
        manager.occupy("a.json", thread)
        thread.start()

        assert manager.join_all(timeout=5) == []
        assert not thread.is_alive()

    def test_join_reports_threads_past_deadline(self):
        manager = SlotManager(max_slots=2)
        gate = threading.Event()
        thread = threading.Thread(target=gate.wait, daemon=True)
        manager.occupy("slow.json", thread)
        thread.start()

        try:
            assert manager.join_all(timeout=0.05) == ["slow.json"]
        finally:
            gate.set()
            thread.join()

    def test_join_with_nothing_running(self):
        assert SlotManager(max_slots=1).join_all(timeout=0) == []
