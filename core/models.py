"""
Record and result types for the roulette chat core.

Stored records (users, roulette sessions, private chats) are pydantic models
validated at the Redis boundary; operation results are plain dataclasses.
"""
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

GENDERS = ("male", "female")

RecordT = TypeVar("RecordT", bound="StoredRecord")


class DeclineReason(str, Enum):
    """Expected business-rule rejections, returned instead of raised."""

    GENDER_REQUIRED = "gender_required"
    ALREADY_QUEUED = "already_in_queue"
    ALREADY_IN_SESSION = "already_in_session"
    NOT_REGISTERED = "not_registered"
    NOT_FOUND = "not_found"
    NOT_PARTICIPANT = "not_participant"
    INVALID_MESSAGE = "invalid_message"


class EndReason(str, Enum):
    """Why a roulette session or private chat was torn down."""

    TIMEOUT = "timeout"
    SKIPPED = "skipped"
    MUTUAL_LIKE = "mutual_like"
    USER_LEFT = "user_left"


class StoredRecord(BaseModel):
    """Base for JSON records kept in Redis."""

    @classmethod
    def from_redis(cls: Type[RecordT], raw: Optional[str]) -> Optional[RecordT]:
        """
        Deserialize a stored record, rejecting malformed payloads.

        Args:
            raw: Raw JSON string from Redis (or None if the key is missing)

        Returns:
            Parsed record, or None if missing or invalid
        """
        if raw is None:
            return None
        try:
            return cls.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"Rejected malformed {cls.__name__} record: {e}")
            return None

    def to_redis(self) -> str:
        return self.model_dump_json()


class UserProfile(StoredRecord):
    """A registered party. The core only relies on id and gender."""

    id: str
    name: str
    photo: str = ""
    city: str = ""
    bio: str = ""
    age: Optional[int] = None
    gender: Optional[str] = None
    registered_at: float = Field(default_factory=time.time)


class PairRecord(StoredRecord):
    """Timed two-party record shared by roulette sessions and private chats."""

    id: str
    user1: str
    user2: str
    started_at: float
    expires_at: float

    @property
    def participants(self) -> Tuple[str, str]:
        return (self.user1, self.user2)

    def has_participant(self, party_id: str) -> bool:
        return party_id in (self.user1, self.user2)

    def both_in(self, members) -> bool:
        """True if both participants are in the given collection of ids."""
        return self.user1 in members and self.user2 in members

    @property
    def duration_seconds(self) -> int:
        return int(round(self.expires_at - self.started_at))


class RouletteSession(PairRecord):
    """A 3-minute random pairing formed by the matcher."""


class PrivateChat(PairRecord):
    """A timed private chat formed after a mutual like."""


@dataclass
class MatchAttempt:
    """Outcome of joining the queue or of a single pairing attempt."""

    status: str  # "matched", "waiting" or "declined"
    pair: Optional[Tuple[str, str]] = None
    position: int = 0
    reason: Optional[DeclineReason] = None

    @property
    def matched(self) -> bool:
        return self.status == "matched"

    @classmethod
    def waiting(cls, position: int) -> "MatchAttempt":
        return cls(status="waiting", position=position)

    @classmethod
    def declined(cls, reason: DeclineReason) -> "MatchAttempt":
        return cls(status="declined", reason=reason)


@dataclass
class JoinResult:
    """What a party gets back from asking to join the roulette."""

    status: str  # "matched", "waiting" or "declined"
    session: Optional[RouletteSession] = None
    position: int = 0
    reason: Optional[DeclineReason] = None


@dataclass
class LikeResult:
    mutual: bool = False
    likes: List[str] = field(default_factory=list)
    reason: Optional[DeclineReason] = None


@dataclass
class SkipResult:
    skipped: bool = False
    session: Optional[RouletteSession] = None
    attempts: List[MatchAttempt] = field(default_factory=list)
    reason: Optional[DeclineReason] = None


@dataclass
class ExtendResult:
    extended: bool = False
    voted_count: int = 0
    new_duration: Optional[int] = None
    reason: Optional[DeclineReason] = None
