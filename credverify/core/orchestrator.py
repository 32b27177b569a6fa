import threading
import time
from dataclasses import asdict
from typing import Any, Dict, Optional, Tuple

from credverify.callback.benefits import BenefitApplier, NullBenefitApplier, build_benefit_applier
from credverify.callback.sink import LogNotificationSink, NotificationSink, build_notification_sink
from credverify.core import state_machine as sm
from credverify.core.errors import CreationFailed, TransientPollFailure
from credverify.core.interpreter import interpret
from credverify.observability.logging import log
from credverify.settings import settings
from credverify.store.models import Outcome, StartResult, TerminalOutcome, VerificationSession
from credverify.store.records import build_records
from credverify.store.session_store import SessionStore
from credverify.utils.scheduler import PollScheduler, ScheduledTask
from credverify.utils.time import now_ms
from credverify.verifier.client import HttpVerifierClient, VerifierClient
import credverify.observability.metrics as metrics

_TERMINAL_BY_OUTCOME = {
    sm.OUTCOME_VERIFIED: sm.VERIFIED,
    sm.OUTCOME_FAILED: sm.FAILED,
    sm.OUTCOME_DECLINED: sm.DECLINED,
}


class SessionOrchestrator:
    """
    Drives verification sessions from creation to exactly one terminal outcome.

    Each active session owns one scheduled poll at a time; the next tick is
    armed only after the previous poll returned, so polls for a session never
    overlap. The terminal step (remove from store, notify, apply benefit) runs
    under the identity lock that start_session also takes.
    """

    def __init__(
        self,
        client: VerifierClient,
        store: Optional[SessionStore] = None,
        notifier: Optional[NotificationSink] = None,
        benefits: Optional[BenefitApplier] = None,
        scheduler=None,
        *,
        poll_interval_sec: Optional[float] = None,
        initial_delay_sec: Optional[float] = None,
        max_attempts: Optional[int] = None,
        session_expiry_sec: Optional[float] = None,
    ):
        self.client = client
        self.store = store if store is not None else SessionStore()
        self.notifier = notifier if notifier is not None else LogNotificationSink()
        self.benefits = benefits if benefits is not None else NullBenefitApplier()
        self.scheduler = scheduler if scheduler is not None else PollScheduler(max_workers=settings.SCHEDULER_WORKERS)

        self.poll_interval_sec = float(poll_interval_sec if poll_interval_sec is not None else settings.POLL_INTERVAL_SEC)
        self.initial_delay_sec = float(initial_delay_sec if initial_delay_sec is not None else settings.POLL_INITIAL_DELAY_SEC)
        self.max_attempts = max(1, int(max_attempts if max_attempts is not None else settings.POLL_MAX_ATTEMPTS))
        expiry = float(session_expiry_sec if session_expiry_sec is not None else settings.SESSION_EXPIRY_SEC)
        self.session_expiry_ms = int(expiry * 1000)

        self._timers: Dict[Tuple[str, str], ScheduledTask] = {}
        self._timers_lock = threading.Lock()
        self._stopped = False

        client_timeout = getattr(client, "timeout_sec", None)
        if client_timeout is not None and float(client_timeout) >= self.poll_interval_sec:
            log(
                event="orchestrator_config_warning",
                reason="verifier timeout is not shorter than the poll interval",
                verifierTimeoutSec=float(client_timeout),
                pollIntervalSec=self.poll_interval_sec,
            )

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------
    def start_session(self, identity: str, mode: str = sm.MODE_WEB) -> StartResult:
        """
        Start verification for `identity`.

        Returns a StartResult with status `already_verified`, `in_progress` or
        `started`. Raises CreationFailed if the verifier could not create a
        session (nothing is stored in that case).
        """
        identity = (identity or "").strip()
        if not identity:
            raise ValueError("identity is required")
        mode = sm.normalize_mode(mode)
        if self._stopped:
            raise RuntimeError("orchestrator is shut down")

        def _create() -> VerificationSession:
            try:
                session_id = self.client.create(identity, mode)
            except Exception as e:
                metrics.increment_creation_failed()
                log(
                    event="session_creation_failed",
                    identity=identity,
                    mode=mode,
                    errorType=type(e).__name__,
                    error=str(e)[:300],
                )
                raise CreationFailed(identity, f"verifier could not create a session: {e}") from e
            return VerificationSession(identity=identity, sessionId=session_id, mode=mode, createdAtMs=now_ms())

        result = self.store.try_reserve(identity, _create, expiry_ms=self.session_expiry_ms)

        if result.status == sm.START_ALREADY_VERIFIED:
            log(event="session_already_verified", identity=identity)
            return result
        if result.status == sm.START_IN_PROGRESS:
            log(
                event="session_in_progress",
                identity=identity,
                sessionId=result.session.sessionId if result.session else "",
            )
            return result

        if result.replaced is not None:
            self._cancel_timer(identity, result.replaced.sessionId)

        session = result.session
        metrics.increment_session_started()
        log(
            event="session_started",
            identity=identity,
            sessionId=session.sessionId,
            mode=mode,
            initialDelaySec=self.initial_delay_sec,
            intervalSec=self.poll_interval_sec,
            maxAttempts=self.max_attempts,
        )
        self._arm(identity, session.sessionId, self.initial_delay_sec)
        return result

    def is_verified(self, identity: str) -> bool:
        return self.store.is_verified(identity)

    def get_active(self, identity: str) -> Optional[VerificationSession]:
        return self.store.get_active(identity)

    def status(self, identity: str) -> Dict[str, Any]:
        session = self.store.get_active(identity)
        return {
            "identity": identity,
            "verified": self.store.is_verified(identity),
            "session": asdict(session) if session is not None else None,
        }

    def cancel(self, identity: str) -> bool:
        """Force a synthetic DECLINED on the active session. False if none was active."""
        session = self.store.get_active(identity)
        if session is None:
            return False
        return self._finish(identity, session.sessionId, sm.DECLINED)

    def reset(self, identity: str) -> bool:
        """
        Clear the verified flag and any active session; revoke the benefit if
        one was granted. Returns whether the identity was verified.
        """
        with self.store.locked(identity):
            was_verified, dropped = self.store.reset(identity)
            if dropped is not None:
                self._cancel_timer(identity, dropped.sessionId)
            if was_verified:
                try:
                    self.benefits.revoke(identity)
                except Exception as e:
                    log(event="benefit_revoke_failed", identity=identity, errorType=type(e).__name__, error=str(e)[:300])
        log(
            event="verification_reset",
            identity=identity,
            wasVerified=bool(was_verified),
            droppedSessionId=dropped.sessionId if dropped is not None else "",
        )
        return was_verified

    def restore(self, identity: str) -> bool:
        """Re-apply the benefit for an identity that is already verified (e.g. on reconnect)."""
        if not self.store.is_verified(identity):
            return False
        self._apply_benefit(identity)
        return True

    def active_timer_count(self) -> int:
        with self._timers_lock:
            return len(self._timers)

    def shutdown(self) -> None:
        """Stop every timer. Pending sessions are dropped without notification."""
        with self._timers_lock:
            self._stopped = True
            cancelled = len(self._timers)
            for task in self._timers.values():
                task.cancel()
            self._timers.clear()
        self.scheduler.shutdown(wait=False)
        log(event="orchestrator_shutdown", cancelledTimers=cancelled)

    # ------------------------------------------------------------------
    # Timer ownership
    # ------------------------------------------------------------------
    def _arm(self, identity: str, session_id: str, delay_sec: float) -> None:
        with self._timers_lock:
            if self._stopped:
                return
            task = self.scheduler.schedule(
                delay_sec,
                lambda: self._poll(identity, session_id),
                name=f"poll:{session_id}",
            )
            self._timers[(identity, session_id)] = task

    def _cancel_timer(self, identity: str, session_id: str) -> None:
        with self._timers_lock:
            task = self._timers.pop((identity, session_id), None)
        if task is not None:
            task.cancel()

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------
    def _poll_once(self, session: VerificationSession) -> Outcome:
        try:
            raw = self.client.poll(session.sessionId, session.mode)
        except Exception as e:
            raise TransientPollFailure(f"{type(e).__name__}: {str(e)[:200]}") from e
        try:
            return interpret(raw)
        except Exception as e:
            log(
                event="poll_interpret_exception",
                sessionId=session.sessionId,
                errorType=type(e).__name__,
                error=str(e)[:300],
            )
            return Outcome.malformed(str(raw)[:120])

    def _poll(self, identity: str, session_id: str) -> None:
        with self._timers_lock:
            # this tick has fired; the handle is spent
            self._timers.pop((identity, session_id), None)
            if self._stopped:
                return

        session = self.store.get_active(identity)
        if session is None or session.sessionId != session_id:
            log(event="poll_skipped_stale", identity=identity, sessionId=session_id)
            return

        start = time.time()
        outcome: Optional[Outcome] = None
        try:
            outcome = self._poll_once(session)
        except TransientPollFailure as e:
            metrics.increment_transient_failure()
            log(event="poll_transient_failure", identity=identity, sessionId=session_id, error=str(e))
        elapsed_ms = int((time.time() - start) * 1000)
        metrics.increment_poll()
        metrics.record_poll_latency(elapsed_ms)

        kind = outcome.kind if outcome is not None else "ERROR"
        attempts = self.store.record_attempt(identity, session_id, kind)
        if attempts == 0:
            # finished or reset while the request was in flight
            log(event="poll_skipped_stale", identity=identity, sessionId=session_id)
            return

        log(
            event="poll_attempt",
            identity=identity,
            sessionId=session_id,
            attempt=attempts,
            maxAttempts=self.max_attempts,
            outcome=kind,
            elapsedMs=elapsed_ms,
        )
        if outcome is not None and outcome.kind == sm.OUTCOME_MALFORMED:
            metrics.increment_malformed()
            log(event="poll_malformed_payload", identity=identity, sessionId=session_id, rawFragment=outcome.rawFragment or "")

        state = _TERMINAL_BY_OUTCOME.get(kind)
        if state is None and attempts >= self.max_attempts:
            state = sm.TIMED_OUT
        if state is not None:
            self._finish(identity, session_id, state, outcome)
            return

        self._arm(identity, session_id, self.poll_interval_sec)

    # ------------------------------------------------------------------
    # Terminal step
    # ------------------------------------------------------------------
    def _finish(self, identity: str, session_id: str, state: str, outcome: Optional[Outcome] = None) -> bool:
        with self.store.locked(identity):
            session = self.store.complete_terminal(identity, session_id, state)
            if session is None:
                return False
            self._cancel_timer(identity, session_id)

            if state == sm.VERIFIED:
                try:
                    self.store.set_verified(identity)
                except Exception as e:
                    log(event="verified_record_failed", identity=identity, errorType=type(e).__name__, error=str(e)[:300])

            terminal = TerminalOutcome(
                identity=identity,
                sessionId=session_id,
                mode=session.mode,
                state=state,
                attempts=session.attempts,
                reason=outcome.reason if (outcome is not None and state == sm.FAILED) else None,
                issuer=outcome.issuer if (outcome is not None and state == sm.VERIFIED) else None,
            )
            metrics.increment_terminal(state)
            log(
                event="session_terminal",
                identity=identity,
                sessionId=session_id,
                state=state,
                attempts=session.attempts,
                ageMs=session.age_ms(now_ms()),
            )
            try:
                self.notifier.notify(terminal)
            except Exception as e:
                log(event="notify_failed", identity=identity, sessionId=session_id, errorType=type(e).__name__, error=str(e)[:300])
            if state == sm.VERIFIED:
                self._apply_benefit(identity)
        return True

    def _apply_benefit(self, identity: str) -> None:
        try:
            self.benefits.apply(identity)
        except Exception as e:
            log(event="benefit_apply_failed", identity=identity, errorType=type(e).__name__, error=str(e)[:300])


def build_orchestrator() -> SessionOrchestrator:
    """Wire the orchestrator from settings."""
    return SessionOrchestrator(
        client=HttpVerifierClient(),
        store=SessionStore(records=build_records()),
        notifier=build_notification_sink(),
        benefits=build_benefit_applier(),
    )
