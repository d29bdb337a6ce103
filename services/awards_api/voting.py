"""
Vote submission, ballot finalization and results workflows.

VotingService combines the eligibility gate with single atomic store calls.
It never reads and then writes ballot state in two round trips; the store
re-checks everything inside the write.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional, Tuple, Any

from prometheus_client import Counter

from services.shared import (
    Ballot,
    BallotState,
    BackendError,
    BatchItemFailure,
    BatchResult,
    Category,
    CategoryResult,
    NotFoundError,
    UserProfile,
    Vote,
    VoteErrorCode,
    VoteItem,
    VoteValidationError,
    EligibilityError,
    VotingError,
    VotingWindowConfig,
    ballot_state,
    get_current_timestamp,
    get_time_remaining,
    is_live_voting_active,
    is_voting_active,
    results_available,
    validate_vote_submission,
    voting_phase,
)
from .cache import ResultsCache
from .store import VotingStore

logger = logging.getLogger(__name__)

MAX_BATCH_SIZE = 20

# Prometheus metrics
votes_submitted = Counter(
    "votes_submitted_total",
    "Total number of votes accepted",
    ["mode"]
)
vote_errors = Counter(
    "vote_errors_total",
    "Total number of rejected vote or ballot operations",
    ["error_code"]
)
ballots_finalized = Counter(
    "ballots_finalized_total",
    "Total number of finalized ballots"
)
batch_fallbacks = Counter(
    "batch_fallbacks_total",
    "Batch submissions that fell back to sequential per-item submission"
)


class VotingService:
    """Workflows behind the vote, ballot and results endpoints."""

    def __init__(self, store: VotingStore, config: VotingWindowConfig,
                 cache: Optional[ResultsCache] = None):
        self.store = store
        self.config = config
        self.cache = cache

    def _check_eligibility(self, user: UserProfile, now: datetime) -> None:
        result = validate_vote_submission(self.config, user.is_admin, now)
        if not result.ok:
            vote_errors.labels(error_code=result.code.value).inc()
            logger.warning(f"Vote rejected for user {user.user_id}: {result.code.value}")
            result.raise_for_status()

    async def submit_vote(self, user: UserProfile, category_id: str, nominee_id: str,
                          now: Optional[datetime] = None) -> Vote:
        """
        Submit or change the caller's vote in one category.

        Raises:
            EligibilityError: VOTING_ENDED, VOTING_LOCKED, VOTING_NOT_STARTED
            StateConflictError: BALLOT_FINALIZED
            VoteValidationError: INVALID_NOMINEE, CATEGORY_INACTIVE
            NotFoundError: CATEGORY_NOT_FOUND
            BackendError: the store failed
        """
        now = now or get_current_timestamp()
        self._check_eligibility(user, now)

        try:
            vote = await self.store.submit_vote(
                user.user_id, category_id, nominee_id,
                user.display_name, user.avatar_url, now
            )
        except VotingError as e:
            vote_errors.labels(error_code=e.code.value).inc()
            logger.warning(
                f"Vote rejected for user {user.user_id}: category={category_id}, "
                f"nominee={nominee_id}, code={e.code.value}"
            )
            raise

        votes_submitted.labels(mode="single").inc()
        logger.info(
            f"Vote recorded: user={user.user_id}, category={category_id}, nominee={nominee_id}"
        )
        return vote

    async def submit_votes_batch(self, user: UserProfile, items: List[VoteItem],
                                 now: Optional[datetime] = None) -> BatchResult:
        """
        Submit up to MAX_BATCH_SIZE votes.

        The eligibility gate applies to the whole batch. Per-item rejections
        are returned in the result rather than failing the batch.
        """
        if not items:
            raise VoteValidationError(
                VoteErrorCode.INVALID_REQUEST,
                "Missing required field: votes array is required"
            )
        if len(items) > MAX_BATCH_SIZE:
            raise VoteValidationError(
                VoteErrorCode.BATCH_TOO_LARGE,
                f"Too many votes in batch. Maximum {MAX_BATCH_SIZE} votes allowed."
            )

        now = now or get_current_timestamp()
        self._check_eligibility(user, now)

        result = await self._submit_batch_atomic(user, items, now)
        if result is None:
            batch_fallbacks.inc()
            result = await self._submit_each(user, items, now)

        votes_submitted.labels(mode="batch").inc(len(result.successes))
        for failure in result.failures:
            vote_errors.labels(error_code=failure.code).inc()
        logger.info(
            f"Batch submitted for user {user.user_id}: "
            f"{len(result.successes)} accepted, {len(result.failures)} rejected"
        )
        return result

    async def _submit_batch_atomic(self, user: UserProfile, items: List[VoteItem],
                                   now: datetime) -> Optional[BatchResult]:
        """First tier: the batch procedure. None when the procedure itself failed."""
        try:
            return await self.store.submit_votes_batch(
                user.user_id, items, user.display_name, user.avatar_url, now
            )
        except BackendError as e:
            logger.warning(
                f"Batch procedure failed for user {user.user_id}, "
                f"falling back to individual submissions: {e.detail}"
            )
            return None

    async def _submit_each(self, user: UserProfile, items: List[VoteItem],
                           now: datetime) -> BatchResult:
        """Second tier: one atomic submit per item, errors captured per item."""
        result = BatchResult()
        for item in items:
            try:
                vote = await self.store.submit_vote(
                    user.user_id, item.category_id, item.nominee_id,
                    user.display_name, user.avatar_url, now
                )
            except VotingError as e:
                if isinstance(e, BackendError):
                    logger.error(f"Vote submission failed for item {item}: {e.detail}")
                result.failures.append(BatchItemFailure(item=item, code=e.code.value, message=e.message))
                continue
            result.successes.append(vote)
        return result

    async def get_votes(self, user: UserProfile, category_slug: Optional[str] = None) -> List[Vote]:
        return await self.store.get_votes_for_user(user.user_id, category_slug)

    async def get_ballot_status(self, user: UserProfile) -> Tuple[Optional[Ballot], BallotState]:
        ballot = await self.store.get_ballot(user.user_id)
        return ballot, ballot_state(ballot)

    async def finalize_ballot(self, user: UserProfile,
                              now: Optional[datetime] = None) -> Tuple[Ballot, int]:
        """
        Finalize the caller's ballot. Irreversible.

        Returns:
            tuple: (finalized ballot, number of votes frozen)

        Raises:
            VoteValidationError: NO_VOTES
            StateConflictError: ALREADY_FINALIZED
        """
        now = now or get_current_timestamp()
        try:
            ballot = await self.store.finalize_ballot(user.user_id, now)
        except VotingError as e:
            vote_errors.labels(error_code=e.code.value).inc()
            logger.warning(f"Finalize rejected for user {user.user_id}: {e.code.value}")
            raise

        if self.cache is not None:
            await self.cache.invalidate()

        votes = await self.store.get_votes_for_user(user.user_id)
        ballots_finalized.inc()
        logger.info(f"Ballot finalized: user={user.user_id}, votes={len(votes)}")
        return ballot, len(votes)

    async def _load_results(self, category_slug: Optional[str]) -> List[CategoryResult]:
        if self.cache is not None:
            cached = await self.cache.get(category_slug)
            if cached is not None:
                return cached

        results = await self.store.get_results(category_slug)

        if self.cache is not None:
            await self.cache.set(category_slug, results)
        return results

    async def get_results(self, user: Optional[UserProfile], category_slug: Optional[str] = None,
                          now: Optional[datetime] = None) -> List[CategoryResult]:
        """
        Vote counts per nominee, grouped by category.

        Admins see every active category. Everyone else only sees categories
        whose voting has ended.
        """
        now = now or get_current_timestamp()

        if category_slug is not None:
            category = await self.store.get_category(category_slug)
            if category is None or not category.is_active:
                raise NotFoundError(VoteErrorCode.CATEGORY_NOT_FOUND)
            categories = [category]
        else:
            categories = await self.store.get_categories()

        if user is None or not user.is_admin:
            categories = [c for c in categories if results_available(c, self.config, now)]
            if not categories:
                raise EligibilityError(VoteErrorCode.RESULTS_NOT_AVAILABLE)

        visible = {c.id for c in categories}
        results = await self._load_results(category_slug)
        return [r for r in results if r.category_id in visible]

    def get_voting_status(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Global phase, window instants and countdowns."""
        now = now or get_current_timestamp()
        return {
            'phase': voting_phase(now, self.config),
            'voting_active': is_voting_active(now, self.config),
            'live_voting_active': is_live_voting_active(now, self.config),
            'lock_enabled': self.config.lock_enabled,
            'deadline': self.config.deadline,
            'live_voting_start': self.config.live_voting_start,
            'time_remaining': get_time_remaining(now, self.config.deadline),
            'time_until_live': get_time_remaining(now, self.config.live_voting_start),
            'server_time': now
        }

    async def get_voting_data(self, user: UserProfile, category_slug: str) -> Dict[str, Any]:
        """Everything a category voting page needs in one call."""
        category = await self.store.get_category(category_slug)
        if category is None or not category.is_active:
            raise NotFoundError(VoteErrorCode.CATEGORY_NOT_FOUND)

        categories: List[Category] = await self.store.get_categories()
        votes = await self.store.get_votes_for_user(user.user_id, category_slug)
        ballot = await self.store.get_ballot(user.user_id)

        return {
            'category': category,
            'categories': categories,
            'vote': votes[0] if votes else None,
            'ballot': ballot,
            'ballot_state': ballot_state(ballot)
        }
