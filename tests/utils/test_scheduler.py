import threading
import time

import pytest
from unittest.mock import patch

from credverify.utils.lock import StripedLock
from credverify.utils.scheduler import PollScheduler


@pytest.fixture
def sched():
    s = PollScheduler(max_workers=2, name="test-scheduler")
    yield s
    s.shutdown(wait=True)


def test_task_runs_after_delay(sched):
    done = threading.Event()
    start = time.monotonic()

    sched.schedule(0.05, done.set, name="t1")

    assert done.wait(timeout=2)
    assert time.monotonic() - start >= 0.05


def test_tasks_run_in_due_order(sched):
    order = []
    finished = threading.Event()

    def record(tag):
        order.append(tag)
        if len(order) == 2:
            finished.set()

    sched.schedule(0.15, lambda: record("late"))
    sched.schedule(0.02, lambda: record("early"))

    assert finished.wait(timeout=2)
    assert order == ["early", "late"]


def test_cancelled_task_never_runs(sched):
    ran = threading.Event()
    task = sched.schedule(0.05, ran.set)
    task.cancel()

    assert task.cancelled
    assert not ran.wait(timeout=0.2)
    assert sched.pending_count() == 0


def test_failing_task_is_logged_and_others_continue(sched):
    ok = threading.Event()

    def boom():
        raise ValueError("bad tick")

    with patch("credverify.utils.scheduler.log") as mock_log:
        sched.schedule(0.0, boom, name="boom")
        sched.schedule(0.05, ok.set, name="ok")
        assert ok.wait(timeout=2)

    assert mock_log.call_args.kwargs["event"] == "scheduler_task_exception"
    assert mock_log.call_args.kwargs["task"] == "boom"


def test_shutdown_drops_queued_tasks_and_rejects_new_ones():
    s = PollScheduler(max_workers=1)
    ran = threading.Event()
    s.schedule(5.0, ran.set)

    s.shutdown(wait=True)

    assert s.pending_count() == 0
    assert not ran.is_set()
    with pytest.raises(RuntimeError):
        s.schedule(0.0, ran.set)


def test_striped_lock_is_reentrant_per_key():
    locks = StripedLock(stripes=4)
    with locks.hold("alice"):
        with locks.hold("alice"):
            pass
