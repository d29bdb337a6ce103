"""
Persistent store contract and an in-memory implementation.

The store is the single source of truth for votes and ballots. Every
check-then-write sequence (vote upsert, ballot finalization) is one store
call so that it runs atomically.
"""
import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from services.shared import (
    Ballot,
    BatchItemFailure,
    BatchResult,
    Category,
    CategoryResult,
    Nominee,
    NomineeResult,
    UserProfile,
    Vote,
    VoteErrorCode,
    VoteItem,
    VotingError,
    NotFoundError,
    StateConflictError,
    VoteValidationError,
    category_window_error,
    error_for_code,
    get_current_timestamp,
)

logger = logging.getLogger(__name__)

CATEGORY_FIELDS = ("name", "description", "voting_start", "voting_end", "display_order", "is_active")
NOMINEE_FIELDS = ("name", "description", "image_url", "display_order")


class VotingStore(ABC):
    """Operations the service needs from the persistent store."""

    async def initialize(self):
        """Open connections. No-op by default."""

    async def close(self):
        """Release connections. No-op by default."""

    @abstractmethod
    async def check_health(self) -> bool:
        ...

    # Categories and nominees

    @abstractmethod
    async def get_categories(self, include_nominees: bool = False,
                             include_inactive: bool = False) -> List[Category]:
        """Categories ordered by display_order."""

    @abstractmethod
    async def get_category(self, slug: str) -> Optional[Category]:
        """Category (active or not) with its nominees, or None."""

    # Users

    @abstractmethod
    async def ensure_user(self, user_id: str, display_name: str,
                          avatar_url: Optional[str] = None) -> UserProfile:
        """Create the user row if missing and return the stored profile."""

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[UserProfile]:
        ...

    # Votes and ballots

    @abstractmethod
    async def get_votes_for_user(self, user_id: str,
                                 category_slug: Optional[str] = None) -> List[Vote]:
        ...

    @abstractmethod
    async def submit_vote(self, user_id: str, category_id: str, nominee_id: str,
                          display_name: str, avatar_url: Optional[str] = None,
                          now: Optional[datetime] = None) -> Vote:
        """
        Atomically insert or update the user's vote for a category.

        Raises:
            VotingError: INVALID_NOMINEE, CATEGORY_NOT_FOUND, CATEGORY_INACTIVE,
                VOTING_NOT_STARTED, VOTING_ENDED or BALLOT_FINALIZED
            BackendError: the store failed
        """

    @abstractmethod
    async def submit_votes_batch(self, user_id: str, items: List[VoteItem],
                                 display_name: str, avatar_url: Optional[str] = None,
                                 now: Optional[datetime] = None) -> BatchResult:
        """
        Submit several votes; each item is atomic on its own.

        Item rejections are reported in the result. BackendError means the
        whole call failed and nothing is known about individual items.
        """

    @abstractmethod
    async def get_ballot(self, user_id: str) -> Optional[Ballot]:
        ...

    @abstractmethod
    async def finalize_ballot(self, user_id: str, now: Optional[datetime] = None) -> Ballot:
        """
        Atomically mark all of the user's votes final and stamp the ballot.

        Raises:
            VoteValidationError: NO_VOTES
            StateConflictError: ALREADY_FINALIZED
        """

    # Results and admin

    @abstractmethod
    async def get_results(self, category_slug: Optional[str] = None) -> List[CategoryResult]:
        """Finalized vote counts per nominee for active categories."""

    @abstractmethod
    async def create_category(self, slug: str, name: str, **fields) -> Category:
        ...

    @abstractmethod
    async def update_category(self, slug: str, **fields) -> Category:
        ...

    @abstractmethod
    async def delete_category(self, slug: str) -> None:
        ...

    @abstractmethod
    async def create_nominee(self, category_slug: str, name: str, **fields) -> Nominee:
        ...

    @abstractmethod
    async def update_nominee(self, nominee_id: str, **fields) -> Nominee:
        ...

    @abstractmethod
    async def delete_nominee(self, nominee_id: str) -> None:
        ...

    @abstractmethod
    async def get_admin_stats(self) -> Dict[str, int]:
        ...


def _new_id() -> str:
    return str(uuid.uuid4())


class InMemoryStore(VotingStore):
    """
    Store kept in process memory.

    Writes for one user are serialized with a per-user asyncio.Lock, which
    stands in for the row locks the database procedures take. Locks are
    never evicted, so memory grows with the number of distinct voters; this
    store is meant for development and tests only.
    """

    def __init__(self):
        self.users: Dict[str, UserProfile] = {}
        self.categories: Dict[str, Category] = {}
        self.nominees: Dict[str, Nominee] = {}
        self.votes: Dict[Tuple[str, str], Vote] = {}
        self.ballots: Dict[str, Ballot] = {}
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def check_health(self) -> bool:
        return True

    def _category_with_nominees(self, category: Category) -> Category:
        nominees = sorted(
            (n for n in self.nominees.values() if n.category_id == category.id),
            key=lambda n: (n.display_order, n.name)
        )
        return replace(category, nominees=nominees)

    def _category_by_slug(self, slug: str) -> Category:
        for category in self.categories.values():
            if category.slug == slug:
                return category
        raise NotFoundError(VoteErrorCode.CATEGORY_NOT_FOUND)

    async def get_categories(self, include_nominees: bool = False,
                             include_inactive: bool = False) -> List[Category]:
        categories = [
            c for c in self.categories.values()
            if include_inactive or c.is_active
        ]
        categories.sort(key=lambda c: (c.display_order, c.name))
        if include_nominees:
            return [self._category_with_nominees(c) for c in categories]
        return [replace(c, nominees=[]) for c in categories]

    async def get_category(self, slug: str) -> Optional[Category]:
        try:
            category = self._category_by_slug(slug)
        except NotFoundError:
            return None
        return self._category_with_nominees(category)

    async def ensure_user(self, user_id: str, display_name: str,
                          avatar_url: Optional[str] = None) -> UserProfile:
        user = self.users.get(user_id)
        if user is None:
            user = UserProfile(user_id=user_id, display_name=display_name, avatar_url=avatar_url)
            self.users[user_id] = user
        return replace(user)

    async def get_user(self, user_id: str) -> Optional[UserProfile]:
        user = self.users.get(user_id)
        return replace(user) if user else None

    async def get_votes_for_user(self, user_id: str,
                                 category_slug: Optional[str] = None) -> List[Vote]:
        category_id = None
        if category_slug is not None:
            try:
                category_id = self._category_by_slug(category_slug).id
            except NotFoundError:
                return []
        return [
            replace(v) for (uid, cid), v in self.votes.items()
            if uid == user_id and (category_id is None or cid == category_id)
        ]

    def _upsert_vote(self, user_id: str, category_id: str, nominee_id: str,
                     now: datetime) -> Vote:
        """Checks and write for one vote. Caller holds the user's lock."""
        nominee = self.nominees.get(nominee_id)
        if nominee is None or nominee.category_id != category_id:
            raise VoteValidationError(VoteErrorCode.INVALID_NOMINEE)

        category = self.categories.get(category_id)
        if category is None:
            raise NotFoundError(VoteErrorCode.CATEGORY_NOT_FOUND)
        if not category.is_active:
            raise VoteValidationError(VoteErrorCode.CATEGORY_INACTIVE)

        window_error = category_window_error(category, now)
        if window_error is not None:
            raise error_for_code(window_error.value)

        ballot = self.ballots.get(user_id)
        if ballot is not None and ballot.is_final:
            raise StateConflictError(VoteErrorCode.BALLOT_FINALIZED)

        if ballot is None:
            self.ballots[user_id] = Ballot(id=_new_id(), user_id=user_id, created_at=now)

        key = (user_id, category_id)
        vote = self.votes.get(key)
        if vote is None:
            vote = Vote(
                id=_new_id(),
                user_id=user_id,
                category_id=category_id,
                nominee_id=nominee_id,
                is_final=False,
                created_at=now,
                updated_at=now
            )
            self.votes[key] = vote
        else:
            vote.nominee_id = nominee_id
            vote.updated_at = now
        return replace(vote)

    async def submit_vote(self, user_id: str, category_id: str, nominee_id: str,
                          display_name: str, avatar_url: Optional[str] = None,
                          now: Optional[datetime] = None) -> Vote:
        now = now or get_current_timestamp()
        async with self._locks[user_id]:
            await self.ensure_user(user_id, display_name, avatar_url)
            return self._upsert_vote(user_id, category_id, nominee_id, now)

    async def submit_votes_batch(self, user_id: str, items: List[VoteItem],
                                 display_name: str, avatar_url: Optional[str] = None,
                                 now: Optional[datetime] = None) -> BatchResult:
        now = now or get_current_timestamp()
        result = BatchResult()
        async with self._locks[user_id]:
            await self.ensure_user(user_id, display_name, avatar_url)
            for item in items:
                try:
                    result.successes.append(
                        self._upsert_vote(user_id, item.category_id, item.nominee_id, now)
                    )
                except VotingError as e:
                    result.failures.append(
                        BatchItemFailure(item=item, code=e.code.value, message=e.message)
                    )
        return result

    async def get_ballot(self, user_id: str) -> Optional[Ballot]:
        ballot = self.ballots.get(user_id)
        return replace(ballot) if ballot else None

    async def finalize_ballot(self, user_id: str, now: Optional[datetime] = None) -> Ballot:
        now = now or get_current_timestamp()
        async with self._locks[user_id]:
            votes = [v for (uid, _), v in self.votes.items() if uid == user_id]
            if not votes:
                raise VoteValidationError(VoteErrorCode.NO_VOTES)

            ballot = self.ballots.get(user_id)
            if ballot is not None and ballot.is_final:
                raise StateConflictError(VoteErrorCode.ALREADY_FINALIZED)

            for vote in votes:
                vote.is_final = True
                vote.updated_at = now

            if ballot is None:
                ballot = Ballot(id=_new_id(), user_id=user_id, created_at=now)
                self.ballots[user_id] = ballot
            ballot.is_final = True
            ballot.submitted_at = now
            return replace(ballot)

    async def get_results(self, category_slug: Optional[str] = None) -> List[CategoryResult]:
        counts: Dict[str, int] = defaultdict(int)
        for vote in self.votes.values():
            if vote.is_final:
                counts[vote.nominee_id] += 1

        results = []
        for category in await self.get_categories(include_nominees=True):
            if category_slug is not None and category.slug != category_slug:
                continue
            results.append(CategoryResult(
                category_id=category.id,
                category_name=category.name,
                category_slug=category.slug,
                nominees=[
                    NomineeResult(
                        nominee_id=n.id,
                        nominee_name=n.name,
                        vote_count=counts.get(n.id, 0)
                    )
                    for n in category.nominees
                ]
            ))
        return results

    async def create_category(self, slug: str, name: str, **fields) -> Category:
        if any(c.slug == slug for c in self.categories.values()):
            raise VoteValidationError(
                VoteErrorCode.INVALID_REQUEST,
                f"Category slug '{slug}' already exists"
            )
        values = {k: v for k, v in fields.items() if k in CATEGORY_FIELDS and v is not None}
        category = Category(id=_new_id(), slug=slug, name=name, **values)
        self.categories[category.id] = category
        return replace(category)

    async def update_category(self, slug: str, **fields) -> Category:
        category = self._category_by_slug(slug)
        for key, value in fields.items():
            if key in CATEGORY_FIELDS:
                setattr(category, key, value)
        return self._category_with_nominees(category)

    async def delete_category(self, slug: str) -> None:
        category = self._category_by_slug(slug)
        del self.categories[category.id]
        for nominee_id in [n.id for n in self.nominees.values() if n.category_id == category.id]:
            del self.nominees[nominee_id]
        for key in [k for k in self.votes if k[1] == category.id]:
            del self.votes[key]

    async def create_nominee(self, category_slug: str, name: str, **fields) -> Nominee:
        category = self._category_by_slug(category_slug)
        values = {k: v for k, v in fields.items() if k in NOMINEE_FIELDS and v is not None}
        nominee = Nominee(id=_new_id(), category_id=category.id, name=name, **values)
        self.nominees[nominee.id] = nominee
        return replace(nominee)

    async def update_nominee(self, nominee_id: str, **fields) -> Nominee:
        nominee = self.nominees.get(nominee_id)
        if nominee is None:
            raise NotFoundError(VoteErrorCode.NOMINEE_NOT_FOUND)
        for key, value in fields.items():
            if key in NOMINEE_FIELDS:
                setattr(nominee, key, value)
        return replace(nominee)

    async def delete_nominee(self, nominee_id: str) -> None:
        if self.nominees.pop(nominee_id, None) is None:
            raise NotFoundError(VoteErrorCode.NOMINEE_NOT_FOUND)
        for key in [k for k, v in self.votes.items() if v.nominee_id == nominee_id]:
            del self.votes[key]

    async def get_admin_stats(self) -> Dict[str, int]:
        return {
            'total_categories': len(self.categories),
            'total_nominees': len(self.nominees),
            'total_votes': len(self.votes),
            'total_users': len(self.users),
            'finalized_ballots': sum(1 for b in self.ballots.values() if b.is_final),
        }
