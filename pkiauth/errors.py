"""Error taxonomy for registration, challenge issuance and verification."""

from __future__ import annotations


class PkiAuthError(Exception):
    """Base class; ``str(exc)`` is the message reported to callers."""

    default_message = "authentication error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class ValidationError(PkiAuthError):
    default_message = "missing fields"


class UnknownUserError(PkiAuthError):
    default_message = "unknown user"


class ChallengeExpiredOrMissingError(PkiAuthError):
    """No active challenge for the identity.

    Expired and never-issued challenges are reported identically.
    """

    default_message = "challenge expired or missing"


ChallengeMissingError = ChallengeExpiredOrMissingError


class ChallengeMismatchError(PkiAuthError):
    default_message = "challenge mismatch"


class CryptoError(PkiAuthError):
    """Malformed key or signature, or any failure inside the verifier."""

    default_message = "signature verification failed"


__all__ = [
    "PkiAuthError",
    "ValidationError",
    "UnknownUserError",
    "ChallengeExpiredOrMissingError",
    "ChallengeMissingError",
    "ChallengeMismatchError",
    "CryptoError",
]
