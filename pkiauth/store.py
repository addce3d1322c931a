"""In-memory participant registry and one-time challenge store."""

from __future__ import annotations

import secrets
import threading
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Tuple

import structlog

from .errors import ChallengeExpiredOrMissingError, ChallengeMismatchError, ValidationError

DEFAULT_CHALLENGE_TTL = 300

logger = structlog.get_logger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class Participant:
    """Registered identity and the public key bound to it."""

    id: str
    name: str
    public_key: str
    updated_at: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "id": self.id,
            "name": self.name,
            "publicKeyBase64": self.public_key,
            "updatedAt": self.updated_at,
        }


@dataclass(frozen=True)
class Challenge:
    """A one-time challenge value and the instant it stops being usable."""

    value: str
    expires_at: float


class ParticipantRegistry:
    """Map identities to registered public keys (last registration wins)."""

    def __init__(self) -> None:
        self._participants: Dict[str, Participant] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._participants)

    def register(
        self, participant_id: object, name: object, public_key_b64: object
    ) -> Tuple[Participant, int]:
        if not participant_id or not name or not public_key_b64:
            raise ValidationError("missing fields")

        record = Participant(
            id=str(participant_id),
            name=str(name),
            public_key=str(public_key_b64).strip(),
            updated_at=_now_iso(),
        )
        with self._lock:
            replaced = record.id in self._participants
            self._participants[record.id] = record
            count = len(self._participants)

        logger.info("participant_registered", participant_id=record.id, replaced=replaced, count=count)
        return record, count

    def lookup(self, participant_id: str) -> Optional[Participant]:
        with self._lock:
            return self._participants.get(participant_id)


class ChallengeStore:
    """Hold at most one outstanding challenge per identity.

    Expiry is enforced lazily: an expired entry is removed the next time it
    is read. A challenge is active strictly before ``expires_at``; the
    instant itself counts as expired.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._challenges: Dict[str, Challenge] = {}
        self._lock = threading.Lock()
        self._clock = clock

    @staticmethod
    def new_value() -> str:
        # uuid4 carries 122 bits from the OS CSPRNG; the timestamp keeps
        # values distinct across issuances.
        return f"{uuid.uuid4()}-{time.time_ns() // 1_000_000}"

    def issue(self, participant_id: str, ttl_seconds: float = DEFAULT_CHALLENGE_TTL) -> Challenge:
        if not participant_id:
            raise ValidationError("missing id")

        challenge = Challenge(value=self.new_value(), expires_at=self._clock() + ttl_seconds)
        with self._lock:
            replaced = participant_id in self._challenges
            self._challenges[participant_id] = challenge

        logger.debug("challenge_issued", participant_id=participant_id, ttl_seconds=ttl_seconds, replaced=replaced)
        return challenge

    def _active(self, participant_id: str) -> Optional[Challenge]:
        # Caller holds the lock.
        challenge = self._challenges.get(participant_id)
        if challenge is None:
            return None
        if self._clock() < challenge.expires_at:
            return challenge
        del self._challenges[participant_id]
        logger.debug("challenge_expired", participant_id=participant_id)
        return None

    def peek(self, participant_id: str) -> Optional[str]:
        """Return the active challenge value, purging it if it has expired.

        The expiry instant itself already counts as expired, so a challenge
        issued with a TTL of zero is never active.
        """
        with self._lock:
            challenge = self._active(participant_id)
        return None if challenge is None else challenge.value

    def take(self, participant_id: str, received: str) -> str:
        """Atomically match ``received`` against the active challenge and remove it.

        A mismatch leaves the entry in place. Raises
        :class:`ChallengeExpiredOrMissingError` or :class:`ChallengeMismatchError`.
        """
        with self._lock:
            challenge = self._active(participant_id)
            if challenge is None:
                raise ChallengeExpiredOrMissingError()
            if not secrets.compare_digest(challenge.value.encode("utf-8"), received.encode("utf-8")):
                raise ChallengeMismatchError()
            del self._challenges[participant_id]
        return challenge.value

    def consume(self, participant_id: str) -> None:
        with self._lock:
            self._challenges.pop(participant_id, None)

    def __contains__(self, participant_id: object) -> bool:
        with self._lock:
            return participant_id in self._challenges


__all__ = [
    "DEFAULT_CHALLENGE_TTL",
    "Challenge",
    "ChallengeStore",
    "Participant",
    "ParticipantRegistry",
]
