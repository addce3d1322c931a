"""Public-key challenge-response authentication package."""

from .auth import PkiAuthService, issue_challenge, register, verify
from .crypto import (
    generate_private_key,
    load_public_key,
    public_key_to_base64,
    sign_challenge,
    verify_signature,
)
from .errors import (
    ChallengeExpiredOrMissingError,
    ChallengeMismatchError,
    ChallengeMissingError,
    CryptoError,
    PkiAuthError,
    UnknownUserError,
    ValidationError,
)
from .store import Challenge, ChallengeStore, Participant, ParticipantRegistry

__all__ = [
    "PkiAuthService",
    "issue_challenge",
    "register",
    "verify",
    "generate_private_key",
    "load_public_key",
    "public_key_to_base64",
    "sign_challenge",
    "verify_signature",
    "ChallengeExpiredOrMissingError",
    "ChallengeMismatchError",
    "ChallengeMissingError",
    "CryptoError",
    "PkiAuthError",
    "UnknownUserError",
    "ValidationError",
    "Challenge",
    "ChallengeStore",
    "Participant",
    "ParticipantRegistry",
]
