from typing import Any, Dict

from credverify.core import state_machine as sm
from credverify.store.models import TerminalOutcome
from credverify.utils.time import now_ms, iso_from_ms

PAYLOAD_VERSION = "1.0"

# User-facing text per terminal state. FAILED uses the verifier's reason.
MESSAGES = {
    sm.VERIFIED: "Your credentials have been verified!",
    sm.DECLINED: "Verification request was declined.",
    sm.TIMED_OUT: "Verification timed out. Please try again.",
}


def user_message(outcome: TerminalOutcome) -> str:
    if outcome.state == sm.FAILED:
        return outcome.reason or "Verification failed"
    return MESSAGES.get(outcome.state, "Verification finished.")


def build_notification_payload(outcome: TerminalOutcome) -> Dict[str, Any]:
    """
    Webhook body for one terminal outcome.
    `reason` is only present for FAILED; declines and timeouts stay generic.
    """
    payload: Dict[str, Any] = {
        "version": PAYLOAD_VERSION,
        "identity": outcome.identity,
        "sessionId": outcome.sessionId,
        "mode": outcome.mode,
        "state": outcome.state,
        "attempts": int(outcome.attempts or 0),
        "message": user_message(outcome),
        "at": iso_from_ms(now_ms()),
    }
    if outcome.state == sm.FAILED:
        payload["reason"] = outcome.reason or "Verification failed"
    if outcome.state == sm.VERIFIED and outcome.issuer:
        payload["issuer"] = outcome.issuer
    return payload


def build_benefit_payload(identity: str, action: str) -> Dict[str, Any]:
    return {
        "version": PAYLOAD_VERSION,
        "identity": identity,
        "action": action,
        "at": iso_from_ms(now_ms()),
    }
