"""
Shared data models and utilities for the awards voting service.

This module contains:
- VotingWindowConfig: immutable voting window built once at startup
- Category, Nominee, Vote, Ballot, UserProfile: store rows as seen by the service
- Batch and results structures
- Enums for error codes, ballot states and voting phases
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional, Dict, Any, List


WALL_CLOCK_FORMAT = "%Y-%m-%d %H:%M:%S"


class VoteErrorCode(str, Enum):
    """Machine-readable error codes returned to callers."""
    VOTING_ENDED = "VOTING_ENDED"
    VOTING_LOCKED = "VOTING_LOCKED"
    VOTING_NOT_STARTED = "VOTING_NOT_STARTED"
    NO_PERMISSION = "NO_PERMISSION"
    RESULTS_NOT_AVAILABLE = "RESULTS_NOT_AVAILABLE"
    BALLOT_FINALIZED = "BALLOT_FINALIZED"
    ALREADY_FINALIZED = "ALREADY_FINALIZED"
    INVALID_NOMINEE = "INVALID_NOMINEE"
    CATEGORY_INACTIVE = "CATEGORY_INACTIVE"
    NO_VOTES = "NO_VOTES"
    BATCH_TOO_LARGE = "BATCH_TOO_LARGE"
    INVALID_REQUEST = "INVALID_REQUEST"
    CATEGORY_NOT_FOUND = "CATEGORY_NOT_FOUND"
    NOMINEE_NOT_FOUND = "NOMINEE_NOT_FOUND"
    UNAUTHORIZED = "UNAUTHORIZED"
    BACKEND_ERROR = "BACKEND_ERROR"


class BallotState(str, Enum):
    """Lifecycle state of a user's ballot."""
    NO_BALLOT = "no_ballot"
    OPEN = "open"
    FINAL = "final"


class VotingPhase(str, Enum):
    """Global voting phase derived from the voting window."""
    LOCKED = "locked"
    OPEN = "open"
    ENDED = "ended"


@dataclass(frozen=True)
class VotingWindowConfig:
    """
    Process-wide voting window.

    Attributes:
        deadline: UTC instant at which voting closes for everyone
        live_voting_start: UTC instant before which only admins may vote
        lock_enabled: Whether the live-voting lock applies at all
    """
    deadline: datetime
    live_voting_start: datetime
    lock_enabled: bool = True

    @classmethod
    def from_wall_clock(
        cls,
        deadline: str,
        live_voting_start: str,
        lock_enabled: bool = True,
        utc_offset_hours: int = 8
    ) -> 'VotingWindowConfig':
        """
        Build a config from wall-clock strings in a fixed UTC offset.

        Args:
            deadline: "YYYY-MM-DD HH:MM:SS" in the configured offset
            live_voting_start: "YYYY-MM-DD HH:MM:SS" in the configured offset
            lock_enabled: Whether the live-voting lock applies
            utc_offset_hours: Offset of the wall clock from UTC

        Returns:
            VotingWindowConfig: Config holding absolute UTC instants
        """
        offset = timezone(timedelta(hours=utc_offset_hours))
        return cls(
            deadline=parse_wall_clock(deadline, offset),
            live_voting_start=parse_wall_clock(live_voting_start, offset),
            lock_enabled=lock_enabled
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'deadline': self.deadline.isoformat(),
            'live_voting_start': self.live_voting_start.isoformat(),
            'lock_enabled': self.lock_enabled
        }


@dataclass
class Nominee:
    id: str
    category_id: str
    name: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    display_order: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Category:
    """
    Voting category.

    voting_start/voting_end form an optional per-category window that is
    checked in addition to the global voting window.
    """
    id: str
    slug: str
    name: str
    is_active: bool = True
    description: Optional[str] = None
    display_order: int = 0
    voting_start: Optional[datetime] = None
    voting_end: Optional[datetime] = None
    nominees: List[Nominee] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Vote:
    """One vote per (user_id, category_id)."""
    id: str
    user_id: str
    category_id: str
    nominee_id: str
    is_final: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Ballot:
    """One ballot per user. is_final only ever goes from False to True."""
    id: str
    user_id: str
    is_final: bool = False
    submitted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @property
    def state(self) -> BallotState:
        return BallotState.FINAL if self.is_final else BallotState.OPEN

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class UserProfile:
    """Authenticated caller as forwarded by the identity provider."""
    user_id: str
    display_name: str = "Anonymous"
    avatar_url: Optional[str] = None
    is_admin: bool = False


@dataclass
class VoteItem:
    category_id: str
    nominee_id: str


@dataclass
class BatchItemFailure:
    item: VoteItem
    code: str
    message: str


@dataclass
class BatchResult:
    successes: List[Vote] = field(default_factory=list)
    failures: List[BatchItemFailure] = field(default_factory=list)


@dataclass
class NomineeResult:
    nominee_id: str
    nominee_name: str
    vote_count: int = 0


@dataclass
class CategoryResult:
    category_id: str
    category_name: str
    category_slug: str
    nominees: List[NomineeResult] = field(default_factory=list)

    @property
    def total_votes(self) -> int:
        return sum(n.vote_count for n in self.nominees)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CategoryResult':
        """Create CategoryResult from dictionary (e.g. a cached JSON entry)."""
        nominees = [NomineeResult(**n) for n in data.get('nominees', [])]
        return cls(
            category_id=data['category_id'],
            category_name=data['category_name'],
            category_slug=data['category_slug'],
            nominees=nominees
        )


def parse_wall_clock(value: str, offset: timezone) -> datetime:
    """
    Parse a wall-clock string in a fixed offset into a UTC instant.

    Args:
        value: "YYYY-MM-DD HH:MM:SS"
        offset: Fixed offset the wall clock is expressed in

    Returns:
        datetime: Aware datetime in UTC
    """
    local = datetime.strptime(value.strip(), WALL_CLOCK_FORMAT).replace(tzinfo=offset)
    return local.astimezone(timezone.utc)


def get_current_timestamp() -> datetime:
    """
    Get current UTC time.

    Returns:
        datetime: Aware datetime in UTC
    """
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def ballot_state(ballot: Optional[Ballot]) -> BallotState:
    """
    Classify a ballot row.

    Args:
        ballot: The user's ballot, or None if no row exists yet

    Returns:
        BallotState: NO_BALLOT, OPEN or FINAL
    """
    if ballot is None:
        return BallotState.NO_BALLOT
    return ballot.state
