from typing import Any, Dict

from credverify.callback.client import post_json
from credverify.observability.logging import log
from credverify.settings import settings


def deliver_notification_job(payload: Dict[str, Any]) -> bool:
    """
    Background job: POST one terminal notification to NOTIFY_WEBHOOK_URL.
    Raises on failure so RQ applies the Retry policy set at enqueue time.
    """
    session_id = str(payload.get("sessionId") or "")
    if not settings.NOTIFY_WEBHOOK_URL:
        log(event="notification_job_skipped_no_url", sessionId=session_id)
        return False

    log(event="notification_job_start", sessionId=session_id, state=payload.get("state"))
    ok, status_code, err = post_json(
        settings.NOTIFY_WEBHOOK_URL,
        payload,
        timeout=float(settings.NOTIFY_TIMEOUT_SEC),
        headers={"Idempotency-Key": f"{session_id}:{payload.get('state')}"},
    )
    if not ok:
        log(event="notification_job_failed", sessionId=session_id, statusCode=int(status_code), error=str(err or ""))
        raise RuntimeError(f"notification delivery failed: {status_code} {err}")
    return True
