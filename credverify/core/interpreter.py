"""
Status Payload Interpreter
--------------------------
Turns one raw verifier status payload into an `Outcome`. Pure: no state, no I/O.

Payload shapes differ between verifier endpoints, so classification looks for
explicit markers wherever they appear, ignoring key order and extra keys:

- wallet session status:  {"success": true, "session": {"status": "failed", ...}}
- flat status documents:  {"status": "verified", "issuer_did": "..."} / {"verified": true}
- present-proof v2 exchange records: {"state": "done", "verified": "true"}

A well-formed object without any marker is still PENDING. Anything that does not
parse to an object is MALFORMED, including bodies nested too deeply to decode.
The only string heuristics live in `_scan_markers`, used for truncated bodies
whose top-level or container "status" markers all agree on one terminal value.
"""
from __future__ import annotations

import json
from typing import Any, Dict, Iterator, List, Optional, Tuple

from credverify.store.models import Outcome

GENERIC_FAILURE_REASON = "Verification failed"
UNVERIFIED_PRESENTATION_REASON = "Presentation could not be verified"

# Nested containers that may hold the actual status document
_NESTED_KEYS = ("session", "result", "record", "data")

_VERIFIED_STATUSES = {"verified"}
_FAILED_STATUSES = {"failed"}
_DECLINED_STATUSES = {"declined"}

# present-proof v2 exchange record states
_PROOF_DONE_STATES = {"presentation-received", "done"}
_PROOF_DECLINED_STATES = {"abandoned", "request-rejected"}

_FRAGMENT_LEN = 120


def _norm(v: Any) -> str:
    if isinstance(v, bool):
        return "true" if v else "false"
    if isinstance(v, str):
        return v.strip().lower()
    return ""


def _fragment(text: str) -> str:
    return (text or "")[:_FRAGMENT_LEN]


def _clean_reason(v: Any) -> Optional[str]:
    if not isinstance(v, str):
        return None
    s = " ".join(v.replace("\\n", " ").split())
    return s or None


def _status_nodes(doc: Dict[str, Any]) -> Iterator[Dict[str, Any]]:
    yield doc
    for k in _NESTED_KEYS:
        node = doc.get(k)
        if isinstance(node, dict):
            yield node


def _issuer(node: Dict[str, Any]) -> Optional[str]:
    vr = node.get("verificationResult")
    details = vr.get("details") if isinstance(vr, dict) else None
    for source in (node, vr, details):
        if not isinstance(source, dict):
            continue
        for key in ("issuer", "issuer_did", "issuerDid"):
            val = source.get(key)
            if isinstance(val, str) and val.strip():
                return val.strip()
    return None


def _failure_reason(node: Dict[str, Any], doc: Dict[str, Any]) -> str:
    vr = node.get("verificationResult")
    candidates = [
        node.get("message"),
        vr.get("message") if isinstance(vr, dict) else None,
        node.get("reason"),
        node.get("error"),
        doc.get("message"),
    ]
    for c in candidates:
        reason = _clean_reason(c)
        if reason:
            return reason
    return GENERIC_FAILURE_REASON


def _classify_node(node: Dict[str, Any], doc: Dict[str, Any]) -> Optional[Outcome]:
    status = _norm(node.get("status"))
    if status in _VERIFIED_STATUSES:
        return Outcome.verified(_issuer(node))
    if status in _FAILED_STATUSES:
        return Outcome.failed(_failure_reason(node, doc))
    if status in _DECLINED_STATUSES:
        return Outcome.declined()

    verified_flag = _norm(node.get("verified"))
    state = _norm(node.get("state"))

    if state in _PROOF_DONE_STATES:
        if verified_flag == "false":
            return Outcome.failed(_clean_reason(node.get("error_msg")) or UNVERIFIED_PRESENTATION_REASON)
        return Outcome.verified(_issuer(node))
    if state in _PROOF_DECLINED_STATES:
        return Outcome.declined()

    if verified_flag == "true":
        return Outcome.verified(_issuer(node))
    return None


def _read_string(text: str, i: int) -> Tuple[Optional[str], int]:
    """JSON string starting at the opening quote `text[i]`; (None, len) when cut off."""
    j = i + 1
    while j < len(text):
        ch = text[j]
        if ch == "\\":
            j += 2
            continue
        if ch == '"':
            return text[i + 1:j].replace('\\"', '"'), j + 1
        j += 1
    return None, len(text)


def _scan_fields(text: str) -> Iterator[Tuple[str, Optional[str]]]:
    """
    Walk a possibly cut-off JSON object and yield (key, string_value)
    for every key sitting at the top level or directly inside one of the
    status containers. Non-string values yield None. Stops where the text ends.
    """
    stack: List[str] = []
    pending_key = ""
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == '"':
            s, i = _read_string(text, i)
            if s is None:
                return
            j = i
            while j < n and text[j] in " \t\r\n":
                j += 1
            if j >= n or text[j] != ":":
                continue
            pending_key = s
            i = j + 1
            while i < n and text[i] in " \t\r\n":
                i += 1
            value = None
            if i < n and text[i] == '"':
                value, i = _read_string(text, i)
                if value is None:
                    return
            if len(stack) == 1 or (len(stack) == 2 and stack[1] in _NESTED_KEYS):
                yield s, value
            continue
        if ch in "{[":
            stack.append(pending_key)
            pending_key = ""
        elif ch in "}]":
            if stack:
                stack.pop()
            pending_key = ""
        elif ch == ",":
            pending_key = ""
        i += 1


def _scan_markers(text: str) -> Outcome:
    """
    Classify a body that does not parse. Only `status` keys at the top level or
    in a status container count. Any non-terminal or conflicting status makes
    the body MALFORMED, as does the absence of a status.
    """
    statuses: List[str] = []
    reason: Optional[str] = None
    for key, value in _scan_fields(text):
        if key == "status" and value is not None:
            statuses.append(_norm(value))
        elif key == "message" and reason is None:
            reason = _clean_reason(value)

    if not statuses or len(set(statuses)) != 1:
        return Outcome.malformed(_fragment(text))
    status = statuses[0]
    if status in _VERIFIED_STATUSES:
        return Outcome.verified()
    if status in _FAILED_STATUSES:
        return Outcome.failed(reason or GENERIC_FAILURE_REASON)
    if status in _DECLINED_STATUSES:
        return Outcome.declined()
    return Outcome.malformed(_fragment(text))


def interpret(raw: Any) -> Outcome:
    """Classify a raw status payload (str, bytes or decoded dict)."""
    if isinstance(raw, dict):
        return _classify(raw)
    if raw is None:
        return Outcome.malformed("")
    if isinstance(raw, (bytes, bytearray)):
        text = bytes(raw).decode("utf-8", errors="replace")
    else:
        text = str(raw)

    stripped = text.strip()
    if not stripped:
        return Outcome.malformed("")
    try:
        doc = json.loads(stripped)
    except RecursionError:
        return Outcome.malformed(_fragment(stripped))
    except ValueError:
        return _scan_markers(stripped)
    if not isinstance(doc, dict):
        return Outcome.malformed(_fragment(stripped))
    return _classify(doc)


def _classify(doc: Dict[str, Any]) -> Outcome:
    for node in _status_nodes(doc):
        outcome = _classify_node(node, doc)
        if outcome is not None:
            return outcome
    return Outcome.pending()
