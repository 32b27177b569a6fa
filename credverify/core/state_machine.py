# Session states

# Waiting on the verifier; polled on every tick
PENDING = "PENDING"

# Terminal: credentials proven, record stored, benefit applied
VERIFIED = "VERIFIED"

# Terminal: verifier rejected the proof; reason surfaced to the requester
FAILED = "FAILED"

# Terminal: requester declined to share; no reason surfaced
DECLINED = "DECLINED"

# Terminal: attempt budget exhausted
TIMED_OUT = "TIMED_OUT"

TERMINAL_STATES = (VERIFIED, FAILED, DECLINED, TIMED_OUT)


# Outcome kinds produced by the interpreter (one per poll)
OUTCOME_PENDING = "PENDING"
OUTCOME_VERIFIED = "VERIFIED"
OUTCOME_FAILED = "FAILED"
OUTCOME_DECLINED = "DECLINED"
# Unparseable payload; handled like PENDING but reported separately
OUTCOME_MALFORMED = "MALFORMED"


# Verification channels. The state machine is mode-agnostic; the mode only
# selects the verifier endpoints.

# Proof request delegated to the companion wallet application
MODE_WEB = "web"

# Scannable code for a mobile wallet
MODE_MOBILE = "mobile"

MODES = (MODE_WEB, MODE_MOBILE)


# start_session results
START_STARTED = "started"
START_ALREADY_VERIFIED = "already_verified"
START_IN_PROGRESS = "in_progress"


def is_terminal(state: str) -> bool:
    return state in TERMINAL_STATES


def normalize_mode(mode) -> str:
    m = (mode or "").strip().lower()
    if m not in MODES:
        raise ValueError(f"unknown verification mode: {mode!r}")
    return m
