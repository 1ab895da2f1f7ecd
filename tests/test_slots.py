"""Tests for active-work slots."""

import threading

import pytest

from src.executor.slots import WorkSlots


def free_slots(slots):
    """Count slots another thread could take right now."""
    taken = 0
    while slots._semaphore.acquire(blocking=False):
        taken += 1
    for _ in range(taken):
        slots._semaphore.release()
    return taken


def test_hold_takes_a_slot():
    slots = WorkSlots(2)

    with slots.hold():
        assert slots.held
        assert free_slots(slots) == 1

    assert not slots.held
    assert free_slots(slots) == 2


def test_idle_hands_the_slot_back():
    slots = WorkSlots(1)

    with slots.hold():
        with slots.idle():
            assert not slots.held
            assert free_slots(slots) == 1
        assert slots.held
        assert free_slots(slots) == 0


def test_idle_without_a_slot_changes_nothing():
    slots = WorkSlots(1)

    with slots.idle():
        assert free_slots(slots) == 1


def test_slot_is_tracked_per_thread():
    slots = WorkSlots(2)
    seen = []

    with slots.hold():
        worker = threading.Thread(target=lambda: seen.append(slots.held))
        worker.start()
        worker.join()

    assert seen == [False]


def test_size_must_be_positive():
    with pytest.raises(ValueError):
        WorkSlots(0)
