"""High level registration, challenge and verification operations."""

from __future__ import annotations

from typing import Dict, Optional, Union

import structlog

from .crypto import verify_signature
from .errors import CryptoError, PkiAuthError, UnknownUserError, ValidationError
from .store import DEFAULT_CHALLENGE_TTL, ChallengeStore, ParticipantRegistry

logger = structlog.get_logger(__name__)

Result = Dict[str, Union[bool, int, str]]


def _text(value: object) -> str:
    return "" if value is None else str(value)


def _failure(exc: PkiAuthError) -> Result:
    return {"ok": False, "error": exc.message}


class PkiAuthService:
    """Own the registry and challenge store shared by all requests."""

    def __init__(
        self,
        registry: Optional[ParticipantRegistry] = None,
        challenges: Optional[ChallengeStore] = None,
        *,
        challenge_ttl: float = DEFAULT_CHALLENGE_TTL,
    ) -> None:
        self.registry = registry if registry is not None else ParticipantRegistry()
        self.challenges = challenges if challenges is not None else ChallengeStore()
        self.challenge_ttl = challenge_ttl

    def register(self, participant_id: object, name: object, public_key_b64: object) -> Result:
        try:
            _, count = self.registry.register(participant_id, name, public_key_b64)
        except ValidationError as exc:
            return _failure(exc)
        return {"ok": True, "count": count}

    def issue_challenge(self, participant_id: object, ttl_seconds: Optional[float] = None) -> Result:
        user_id = _text(participant_id).strip()
        ttl = self.challenge_ttl if ttl_seconds is None else ttl_seconds
        try:
            challenge = self.challenges.issue(user_id, ttl)
        except ValidationError as exc:
            return _failure(exc)
        return {"ok": True, "id": user_id, "challenge": challenge.value, "ttlSeconds": ttl}

    def verify(self, participant_id: object, challenge: object, signature_b64: object) -> Result:
        try:
            verified = self.check(participant_id, challenge, signature_b64)
        except PkiAuthError as exc:
            return _failure(exc)
        return {"ok": verified}

    def check(self, participant_id: object, challenge: object, signature_b64: object) -> bool:
        """Run the verification steps, raising on every failure but a bad signature.

        The active challenge is consumed as soon as it matches, before and
        whatever the outcome of the signature check.
        """

        user_id = _text(participant_id).strip()
        received = _text(challenge)  # part of the signed payload, never trimmed
        sig_b64 = _text(signature_b64).strip()
        if not user_id or not received or not sig_b64:
            raise ValidationError("missing fields")

        participant = self.registry.lookup(user_id)
        if participant is None:
            raise UnknownUserError()

        # Removed here, before the signature check, so a concurrent request
        # cannot match the same value and a re-issued challenge survives.
        expected = self.challenges.take(user_id, received)

        try:
            verified = verify_signature(participant.public_key, sig_b64, expected)
        except CryptoError as exc:
            logger.info("verification_error", participant_id=user_id, error=exc.message)
            raise
        except Exception as exc:
            logger.exception("verification_error", participant_id=user_id)
            raise CryptoError(str(exc)) from exc

        logger.info("verification_finished", participant_id=user_id, verified=verified)
        return verified


def register(
    service: PkiAuthService, participant_id: object, name: object, public_key_b64: object
) -> Result:
    return service.register(participant_id, name, public_key_b64)


def issue_challenge(
    service: PkiAuthService, participant_id: object, ttl_seconds: Optional[float] = None
) -> Result:
    return service.issue_challenge(participant_id, ttl_seconds)


def verify(
    service: PkiAuthService, participant_id: object, challenge: object, signature_b64: object
) -> Result:
    return service.verify(participant_id, challenge, signature_b64)


__all__ = ["PkiAuthService", "Result", "issue_challenge", "register", "verify"]
