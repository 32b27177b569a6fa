"""Verification errors.

`already_verified` and `in_progress` are ordinary start results, not errors.
"""


class VerificationError(Exception):
    """Base class for credverify errors."""


class VerifierError(VerificationError):
    """The verifier backend was unreachable or answered with an error.

    Only one category exists: every verifier error is treated as transient.
    """

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message)
        self.status_code = int(status_code or 0)


class CreationFailed(VerificationError):
    """The verifier refused or could not create a session; nothing was stored."""

    def __init__(self, identity: str, message: str):
        super().__init__(message)
        self.identity = identity


class TransientPollFailure(VerificationError):
    """One poll round failed; counted against the attempt budget, never surfaced."""
