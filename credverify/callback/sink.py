"""
Notification sinks
------------------
Receive exactly one TerminalOutcome per finished session. Sinks run inside the
orchestrator's terminal step, so they must hand off quickly: the inline webhook
is bounded by NOTIFY_TIMEOUT_SEC and the queued sink only enqueues.
"""
from abc import ABC, abstractmethod
from typing import Optional

from rq import Retry

from credverify.callback.client import post_json
from credverify.callback.payloads import build_notification_payload, user_message
from credverify.observability.logging import log
from credverify.queue.jobs import deliver_notification_job
from credverify.queue.rq_conn import get_queue
from credverify.settings import settings
from credverify.store.models import TerminalOutcome


class NotificationSink(ABC):
    @abstractmethod
    def notify(self, outcome: TerminalOutcome) -> None:
        ...


class LogNotificationSink(NotificationSink):
    def notify(self, outcome: TerminalOutcome) -> None:
        log(
            event="verification_notification",
            identity=outcome.identity,
            sessionId=outcome.sessionId,
            state=outcome.state,
            message=user_message(outcome),
        )


class WebhookNotificationSink(NotificationSink):
    def __init__(self, url: Optional[str] = None, timeout_sec: Optional[float] = None):
        self.url = url if url is not None else settings.NOTIFY_WEBHOOK_URL
        self.timeout_sec = float(timeout_sec if timeout_sec is not None else settings.NOTIFY_TIMEOUT_SEC)
        if not self.url:
            raise RuntimeError("NOTIFY_WEBHOOK_URL is not set")

    def notify(self, outcome: TerminalOutcome) -> None:
        payload = build_notification_payload(outcome)
        ok, status_code, err = post_json(self.url, payload, timeout=self.timeout_sec)
        if not ok:
            log(
                event="notify_failed",
                identity=outcome.identity,
                sessionId=outcome.sessionId,
                state=outcome.state,
                statusCode=int(status_code),
                error=str(err or ""),
            )


class QueuedNotificationSink(NotificationSink):
    """Enqueue delivery on RQ; the worker retries with backoff."""

    RETRY_INTERVALS = [5, 15, 60]

    def __init__(self, queue=None):
        self._queue = queue

    def _q(self):
        if self._queue is None:
            self._queue = get_queue()
        return self._queue

    def notify(self, outcome: TerminalOutcome) -> None:
        payload = build_notification_payload(outcome)
        job = self._q().enqueue(
            deliver_notification_job,
            payload,
            retry=Retry(max=len(self.RETRY_INTERVALS), interval=self.RETRY_INTERVALS),
        )
        log(
            event="notification_enqueued",
            identity=outcome.identity,
            sessionId=outcome.sessionId,
            state=outcome.state,
            rq_job_id=getattr(job, "id", "") or "",
        )


def build_notification_sink(mode: Optional[str] = None) -> NotificationSink:
    mode = (mode or getattr(settings, "NOTIFY_MODE", "log") or "log").lower()
    if mode == "webhook":
        return WebhookNotificationSink()
    if mode == "rq":
        return QueuedNotificationSink()
    if mode != "log":
        raise ValueError(f"unknown NOTIFY_MODE: {mode!r}")
    return LogNotificationSink()
