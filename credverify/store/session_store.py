import threading
from contextlib import contextmanager
from dataclasses import replace
from typing import Callable, Dict, List, Optional, Set, Tuple

from credverify.core import state_machine as sm
from credverify.observability.logging import log
from credverify.store.models import StartResult, VerificationSession
from credverify.store.records import InMemoryVerifiedRecords
from credverify.utils.lock import StripedLock
from credverify.utils.time import now_ms


class SessionStore:
    """
    Owns identity -> active session and identity -> verified flag.

    Every operation on one identity runs under that identity's lock, so calls
    for the same identity are linearizable. Different identities only contend
    when they share a lock stripe; the verifier call made while reserving a
    slot runs outside the lock. Callers get copies of sessions, never the
    stored objects.
    """

    def __init__(self, records=None, stripes: int = 64):
        self._records = records if records is not None else InMemoryVerifiedRecords()
        self._locks = StripedLock(stripes)
        self._active: Dict[str, VerificationSession] = {}
        # Identities whose verifier session is being created (slot claimed, no id yet)
        self._creating: Set[str] = set()
        # Guards the dict itself for cross-identity reads (active_sessions)
        self._index_lock = threading.Lock()

    @contextmanager
    def locked(self, identity: str):
        """Hold the identity lock across a composite step (re-entrant)."""
        with self._locks.hold(identity):
            yield

    def _get(self, identity: str) -> Optional[VerificationSession]:
        with self._index_lock:
            return self._active.get(identity)

    def _put(self, session: VerificationSession) -> None:
        with self._index_lock:
            self._active[session.identity] = session

    def _pop(self, identity: str) -> Optional[VerificationSession]:
        with self._index_lock:
            return self._active.pop(identity, None)

    def try_reserve(
        self,
        identity: str,
        factory: Callable[[], VerificationSession],
        expiry_ms: int,
    ) -> StartResult:
        """
        Reserve the single active session slot for `identity`.

        The slot is claimed under the identity lock, then `factory` runs with
        the lock released so other identities on the same stripe are not held
        up by the verifier call. A reservation for the same identity made while
        `factory` runs observes `in_progress` (with no session yet). If
        `factory` raises, the claim is dropped, nothing is stored and the
        exception propagates.
        """
        with self._locks.hold(identity):
            if self._records.is_verified(identity):
                return StartResult(status=sm.START_ALREADY_VERIFIED)
            if identity in self._creating:
                return StartResult(status=sm.START_IN_PROGRESS)

            replaced = None
            current = self._get(identity)
            if current is not None:
                if not current.is_expired(now_ms(), expiry_ms):
                    return StartResult(status=sm.START_IN_PROGRESS, session=replace(current))
                replaced = self._pop(identity)
                log(
                    event="session_replaced_expired",
                    identity=identity,
                    sessionId=replaced.sessionId,
                    ageMs=int(replaced.age_ms(now_ms())),
                )
            self._creating.add(identity)

        try:
            session = factory()
        except BaseException:
            with self._locks.hold(identity):
                self._creating.discard(identity)
            raise

        with self._locks.hold(identity):
            self._creating.discard(identity)
            session.identity = identity
            session.state = sm.PENDING
            session.attempts = 0
            self._put(session)
            return StartResult(status=sm.START_STARTED, session=replace(session), replaced=replaced)

    def get_active(self, identity: str) -> Optional[VerificationSession]:
        with self._locks.hold(identity):
            s = self._get(identity)
            return replace(s) if s is not None else None

    def record_attempt(self, identity: str, session_id: str, outcome: Optional[str] = None) -> int:
        """
        Count one poll against `session_id`. Returns the new attempt count, or
        0 if the session is no longer the active pending one.
        """
        with self._locks.hold(identity):
            s = self._get(identity)
            if s is None or s.sessionId != session_id or s.state != sm.PENDING:
                return 0
            s.attempts += 1
            s.lastPolledAtMs = now_ms()
            if outcome:
                s.lastOutcome = outcome
            return s.attempts

    def complete_terminal(self, identity: str, session_id: str, state: str) -> Optional[VerificationSession]:
        """
        Move the active session to a terminal state and remove it.
        Returns the final session, or None if `session_id` is not active
        (already completed, reset or replaced), so a terminal transition can
        only ever be applied once.
        """
        if not sm.is_terminal(state):
            raise ValueError(f"not a terminal state: {state}")
        with self._locks.hold(identity):
            s = self._get(identity)
            if s is None or s.sessionId != session_id or s.state != sm.PENDING:
                return None
            self._pop(identity)
            s.state = state
            return s

    def is_verified(self, identity: str) -> bool:
        with self._locks.hold(identity):
            return bool(self._records.is_verified(identity))

    def set_verified(self, identity: str) -> None:
        with self._locks.hold(identity):
            self._records.set_verified(identity)

    def reset(self, identity: str) -> Tuple[bool, Optional[VerificationSession]]:
        """
        Clear the verified flag and any active session.
        Returns (was_verified, dropped_session).
        """
        with self._locks.hold(identity):
            was_verified = bool(self._records.clear(identity))
            dropped = self._pop(identity)
            return was_verified, dropped

    def active_sessions(self) -> List[VerificationSession]:
        with self._index_lock:
            return [replace(s) for s in self._active.values()]
