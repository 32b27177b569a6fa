import json

import pytest

from credverify.core import state_machine as sm
from credverify.core.interpreter import GENERIC_FAILURE_REASON, interpret


def test_pending_session_payload():
    out = interpret('{"success": true, "session": {"id": "v1", "status": "pending"}}')
    assert out.kind == sm.OUTCOME_PENDING


def test_wellformed_object_without_marker_is_pending():
    assert interpret("{}").kind == sm.OUTCOME_PENDING
    assert interpret({"success": True}).kind == sm.OUTCOME_PENDING


def test_verified_with_issuer_from_details():
    raw = {
        "success": True,
        "session": {
            "status": "verified",
            "verificationResult": {"verified": True, "details": {"issuer_did": "did:sov:abc"}},
        },
    }
    out = interpret(json.dumps(raw))
    assert out.kind == sm.OUTCOME_VERIFIED
    assert out.issuer == "did:sov:abc"


def test_verified_marker_is_key_order_and_extra_key_insensitive():
    out = interpret('{"extra": [1, 2], "issuer": "did:x", "other": {"a": 1}, "status": "VERIFIED"}')
    assert out.kind == sm.OUTCOME_VERIFIED
    assert out.issuer == "did:x"


def test_verified_boolean_flag():
    assert interpret('{"verified": true}').kind == sm.OUTCOME_VERIFIED


def test_failed_carries_message():
    out = interpret('{"session": {"status": "failed", "message": "bad issuer"}}')
    assert out.kind == sm.OUTCOME_FAILED
    assert out.reason == "bad issuer"


def test_failed_reason_from_verification_result():
    raw = {"session": {"status": "failed", "verificationResult": {"message": "credential revoked"}}}
    assert interpret(raw).reason == "credential revoked"


def test_failed_without_message_uses_generic_reason():
    out = interpret('{"status": "failed"}')
    assert out.kind == sm.OUTCOME_FAILED
    assert out.reason == GENERIC_FAILURE_REASON


def test_declined():
    assert interpret('{"session": {"status": "declined"}}').kind == sm.OUTCOME_DECLINED


@pytest.mark.parametrize("state", ["presentation-received", "done"])
def test_proof_exchange_done_states_verify(state):
    assert interpret({"state": state, "verified": "true"}).kind == sm.OUTCOME_VERIFIED


def test_proof_exchange_done_but_not_verified_fails():
    out = interpret({"state": "done", "verified": "false", "error_msg": "signature mismatch"})
    assert out.kind == sm.OUTCOME_FAILED
    assert out.reason == "signature mismatch"


@pytest.mark.parametrize("state", ["abandoned", "request-rejected"])
def test_proof_exchange_rejection_states_decline(state):
    assert interpret({"record": {"state": state}}).kind == sm.OUTCOME_DECLINED


def test_bytes_are_decoded():
    assert interpret(b'{"status": "declined"}').kind == sm.OUTCOME_DECLINED


@pytest.mark.parametrize("raw", [None, "", "   ", "not json at all", "[1, 2, 3]", '{"success": tr'])
def test_malformed_payloads(raw):
    assert interpret(raw).kind == sm.OUTCOME_MALFORMED


def test_malformed_keeps_bounded_fragment():
    out = interpret("x" * 500)
    assert out.kind == sm.OUTCOME_MALFORMED
    assert len(out.rawFragment) == 120


def test_truncated_body_with_failed_marker_extracts_message():
    raw = '{"success":true,"session":{"status":"failed","message":"Credential expired","extra":'
    out = interpret(raw)
    assert out.kind == sm.OUTCOME_FAILED
    assert out.reason == "Credential expired"


def test_truncated_body_with_cut_message_falls_back_to_generic():
    raw = '{"session":{"status":"failed","message":"Credential exp'
    out = interpret(raw)
    assert out.kind == sm.OUTCOME_FAILED
    assert out.reason == GENERIC_FAILURE_REASON


def test_truncated_body_with_escaped_quote_in_message():
    raw = '{"status":"failed","message":"issuer \\"acme\\" unknown",'
    out = interpret(raw)
    assert out.reason == 'issuer "acme" unknown'


def test_truncated_verified_marker():
    assert interpret('{"session":{"status":"verified","verif').kind == sm.OUTCOME_VERIFIED


def test_too_deeply_nested_body_is_malformed():
    out = interpret("[" * 200000)
    assert out.kind == sm.OUTCOME_MALFORMED
    assert len(out.rawFragment) == 120


def test_complete_pending_document_with_historical_marker_stays_pending():
    raw = '{"status": "pending", "previous": {"status": "verified"}}'
    assert interpret(raw).kind == sm.OUTCOME_PENDING


@pytest.mark.parametrize("raw", [
    '{"status": "pending", "previous": {"status": "verified"',
    '{"status": "pending", "request": {"verified": true',
    '{"session": {"status": "pending", "history": [{"status": "verified"}',
    '{"status": "pending", "session": {"status": "verified"',
    '{"status": "failed", "session": {"status": "verified"',
    '{"previous": {"status": "verified"}, "note": "cut',
    '{"verified": true, "extra":',
])
def test_truncated_body_without_one_agreed_terminal_status_is_malformed(raw):
    assert interpret(raw).kind == sm.OUTCOME_MALFORMED


def test_truncated_body_ignores_markers_outside_status_containers():
    raw = '{"status": "declined", "previous": {"status": "verified"}, "message": "user said no", "x'
    assert interpret(raw).kind == sm.OUTCOME_DECLINED
