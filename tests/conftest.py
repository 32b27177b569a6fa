import json
from typing import Callable, List, Optional
from unittest.mock import MagicMock

import pytest

from credverify.core.orchestrator import SessionOrchestrator
from credverify.store.session_store import SessionStore
from credverify.verifier.client import VerifierClient

PENDING_PAYLOAD = json.dumps({"success": True, "session": {"id": "x", "status": "pending"}})


class ManualTask:
    def __init__(self, delay: float, fn: Callable[[], None], name: str = ""):
        self.delay = delay
        self.fn = fn
        self.name = name
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """Deterministic stand-in for PollScheduler: ticks run only when the test says so."""

    def __init__(self):
        self.tasks: List[ManualTask] = []
        self.shut_down = False

    def schedule(self, delay_sec, fn, name=""):
        task = ManualTask(delay_sec, fn, name)
        self.tasks.append(task)
        return task

    def pending(self) -> List[ManualTask]:
        return [t for t in self.tasks if not t.cancelled]

    def run_next(self) -> Optional[ManualTask]:
        for i, t in enumerate(self.tasks):
            if not t.cancelled:
                self.tasks.pop(i)
                t.fn()
                return t
        return None

    def run_all(self, limit: int = 1000) -> int:
        ran = 0
        while ran < limit and self.run_next() is not None:
            ran += 1
        return ran

    def shutdown(self, wait=True):
        self.shut_down = True


class FakeVerifier(VerifierClient):
    """Scripted verifier: poll() returns queued payloads, then PENDING forever."""

    def __init__(self, payloads=None, create_error=None, poll_error=None):
        self.payloads = list(payloads or [])
        self.create_error = create_error
        self.poll_error = poll_error
        self.create_calls = []
        self.poll_calls = []

    def create(self, identity, mode):
        self.create_calls.append((identity, mode))
        if self.create_error is not None:
            raise self.create_error
        return f"verification-{len(self.create_calls)}"

    def poll(self, session_id, mode="web"):
        self.poll_calls.append(session_id)
        if self.poll_error is not None:
            raise self.poll_error
        if self.payloads:
            return self.payloads.pop(0)
        return PENDING_PAYLOAD


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def verifier():
    return FakeVerifier()


@pytest.fixture
def notifier():
    return MagicMock()


@pytest.fixture
def benefits():
    return MagicMock()


@pytest.fixture
def store():
    return SessionStore()


@pytest.fixture
def make_orchestrator(scheduler, notifier, benefits, store):
    def _make(client, **kwargs):
        kwargs.setdefault("poll_interval_sec", 3.0)
        kwargs.setdefault("initial_delay_sec", 3.0)
        kwargs.setdefault("max_attempts", 3)
        kwargs.setdefault("session_expiry_sec", 600)
        return SessionOrchestrator(
            client=client,
            store=store,
            notifier=notifier,
            benefits=benefits,
            scheduler=scheduler,
            **kwargs,
        )
    return _make
