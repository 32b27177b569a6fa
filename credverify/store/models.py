from dataclasses import dataclass
from typing import Optional

from credverify.core import state_machine as sm

@dataclass
class Outcome:
    """Classification of one poll's raw payload."""
    kind: str = sm.OUTCOME_PENDING
    issuer: Optional[str] = None
    reason: Optional[str] = None
    # Short excerpt of an unparseable payload (logs only)
    rawFragment: Optional[str] = None

    @classmethod
    def pending(cls) -> "Outcome":
        return cls(kind=sm.OUTCOME_PENDING)

    @classmethod
    def verified(cls, issuer: Optional[str] = None) -> "Outcome":
        return cls(kind=sm.OUTCOME_VERIFIED, issuer=issuer)

    @classmethod
    def failed(cls, reason: str) -> "Outcome":
        return cls(kind=sm.OUTCOME_FAILED, reason=reason)

    @classmethod
    def declined(cls) -> "Outcome":
        return cls(kind=sm.OUTCOME_DECLINED)

    @classmethod
    def malformed(cls, raw_fragment: str) -> "Outcome":
        return cls(kind=sm.OUTCOME_MALFORMED, rawFragment=raw_fragment)

@dataclass
class VerificationSession:
    identity: str = ""
    # Assigned by the verifier on creation
    sessionId: str = ""
    mode: str = sm.MODE_WEB
    createdAtMs: int = 0
    attempts: int = 0
    state: str = sm.PENDING

    # Observability only
    lastPolledAtMs: int = 0
    lastOutcome: Optional[str] = None

    def age_ms(self, now: int) -> int:
        return max(0, int(now) - int(self.createdAtMs or 0))

    def is_expired(self, now: int, expiry_ms: int) -> bool:
        return self.age_ms(now) >= int(expiry_ms)

@dataclass
class StartResult:
    status: str
    session: Optional[VerificationSession] = None
    # Expired leftover evicted by this reservation (its timer must be cancelled)
    replaced: Optional[VerificationSession] = None

@dataclass
class TerminalOutcome:
    """What the notification sink receives, exactly once per session."""
    identity: str
    sessionId: str
    mode: str
    state: str
    attempts: int = 0
    # Set for FAILED only; DECLINED and TIMED_OUT stay generic
    reason: Optional[str] = None
    issuer: Optional[str] = None
