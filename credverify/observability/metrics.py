"""
Verification Metrics
--------------------
Lightweight Redis counters/timers for the polling pipeline and a snapshot
function consumed by /admin/metrics. Every recorder is best-effort: metrics are
disabled unless METRICS_ENABLED is set, and a Redis failure is swallowed so it
can never stall or fail a poll.
"""
from __future__ import annotations
import time
from typing import List, Tuple
from credverify.store.redis_conn import get_redis
from credverify.settings import settings

K_STARTED = "metrics:verify:sessions_started"      # INCR
K_CREATE_FAIL = "metrics:verify:creation_failed"   # INCR
K_POLLS = "metrics:verify:polls"                   # INCR
K_TRANSIENT = "metrics:verify:transient_failures"  # INCR
K_MALFORMED = "metrics:verify:malformed_payloads"  # INCR
K_TERMINAL = "metrics:verify:terminal:"            # INCR per state suffix
K_POLL_LAT = "metrics:verify:poll_latencies"       # LPUSH ms

TERMINAL_STATES = ("VERIFIED", "FAILED", "DECLINED", "TIMED_OUT")

_MAX_SAMPLES = 500

def _enabled() -> bool:
    return bool(getattr(settings, "METRICS_ENABLED", False))

def _percentile(data: List[float], p: float) -> float:
    """Deterministic percentile (nearest-rank on sorted data)."""
    if not data:
        return 0.0
    d = sorted(data)
    k = max(1, int(round(p * len(d))))
    return float(d[k - 1])

def _incr(key: str) -> None:
    if not _enabled():
        return
    try:
        get_redis().incr(key, 1)
    except Exception:
        pass

def increment_session_started() -> None:
    _incr(K_STARTED)

def increment_creation_failed() -> None:
    _incr(K_CREATE_FAIL)

def increment_poll() -> None:
    _incr(K_POLLS)

def increment_transient_failure() -> None:
    _incr(K_TRANSIENT)

def increment_malformed() -> None:
    _incr(K_MALFORMED)

def increment_terminal(state: str) -> None:
    _incr(f"{K_TERMINAL}{state}")

def record_poll_latency(ms: int) -> None:
    if not _enabled():
        return
    try:
        ms = int(ms)
    except Exception:
        return
    try:
        r = get_redis()
        r.lpush(K_POLL_LAT, ms)
        r.ltrim(K_POLL_LAT, 0, _MAX_SAMPLES - 1)
    except Exception:
        pass

def _read_latency_list(r, key: str) -> List[float]:
    raw = r.lrange(key, 0, _MAX_SAMPLES - 1) or []
    out: List[float] = []
    for x in raw:
        try:
            out.append(float(x) / 1000.0)  # seconds
        except Exception:
            continue
    return out

def _p50_p95(latencies_s: List[float]) -> Tuple[float, float]:
    if not latencies_s:
        return 0.0, 0.0
    return _percentile(latencies_s, 0.50), _percentile(latencies_s, 0.95)

def get_snapshot() -> dict:
    """
    Return a dict shaped for /admin/metrics consumers.
    Fields:
      - sessions_started, creation_failed, polls, transient_failures, malformed_payloads
      - terminal: {VERIFIED, FAILED, DECLINED, TIMED_OUT}
      - p50_poll_latency, p95_poll_latency (seconds)
    """
    if not _enabled():
        return {"enabled": False}

    r = get_redis()
    p50, p95 = _p50_p95(_read_latency_list(r, K_POLL_LAT))
    return {
        "enabled": True,
        "sessions_started": int(r.get(K_STARTED) or 0),
        "creation_failed": int(r.get(K_CREATE_FAIL) or 0),
        "polls": int(r.get(K_POLLS) or 0),
        "transient_failures": int(r.get(K_TRANSIENT) or 0),
        "malformed_payloads": int(r.get(K_MALFORMED) or 0),
        "terminal": {s: int(r.get(f"{K_TERMINAL}{s}") or 0) for s in TERMINAL_STATES},
        "p50_poll_latency": round(p50, 3),
        "p95_poll_latency": round(p95, 3),
        "snapshot_at": int(time.time()),
    }
