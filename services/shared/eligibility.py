"""
Voting eligibility gate.

Pure decision functions over (now, config, is_admin). The config is always
passed in explicitly; nothing here reads settings or the clock except
validate_vote_submission when no `now` is given.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Dict

from .errors import ERROR_MESSAGES, error_for_code
from .models import (
    Category,
    VoteErrorCode,
    VotingPhase,
    VotingWindowConfig,
    ensure_utc,
    get_current_timestamp,
)


def is_voting_active(now: datetime, config: VotingWindowConfig) -> bool:
    """True iff now is strictly before the deadline. The deadline instant itself counts as ended."""
    return ensure_utc(now) < config.deadline


def is_live_voting_active(now: datetime, config: VotingWindowConfig) -> bool:
    """True once public voting has opened, or always when the lock is disabled."""
    if not config.lock_enabled:
        return True
    return ensure_utc(now) >= config.live_voting_start


def is_voting_locked(now: datetime, config: VotingWindowConfig) -> bool:
    return not is_live_voting_active(now, config)


def can_user_vote(now: datetime, config: VotingWindowConfig, is_admin: bool) -> bool:
    """
    Decide whether a vote attempt may proceed.

    The deadline applies to everyone, admins included. Admins only bypass
    the lock window before live voting starts.
    """
    if not is_voting_active(now, config):
        return False
    if is_voting_locked(now, config):
        return is_admin
    return True


def voting_phase(now: datetime, config: VotingWindowConfig) -> VotingPhase:
    if not is_voting_active(now, config):
        return VotingPhase.ENDED
    if is_voting_locked(now, config):
        return VotingPhase.LOCKED
    return VotingPhase.OPEN


@dataclass(frozen=True)
class EligibilityResult:
    """Outcome of validate_vote_submission: ok, or a single error code."""
    code: Optional[VoteErrorCode] = None

    @property
    def ok(self) -> bool:
        return self.code is None

    @property
    def message(self) -> Optional[str]:
        return ERROR_MESSAGES[self.code] if self.code else None

    def raise_for_status(self) -> None:
        if self.code is not None:
            raise error_for_code(self.code.value)


def validate_vote_submission(
    config: VotingWindowConfig,
    is_admin: bool,
    now: Optional[datetime] = None
) -> EligibilityResult:
    """
    Check a vote attempt against the global voting window.

    VOTING_ENDED is reported before VOTING_LOCKED when both hold.

    Args:
        config: Voting window
        is_admin: Whether the caller is an administrator
        now: Decision instant (defaults to the current time)

    Returns:
        EligibilityResult: ok, or VOTING_ENDED / VOTING_LOCKED / NO_PERMISSION
    """
    if now is None:
        now = get_current_timestamp()

    if can_user_vote(now, config, is_admin):
        return EligibilityResult()

    if not is_voting_active(now, config):
        return EligibilityResult(VoteErrorCode.VOTING_ENDED)
    if is_voting_locked(now, config) and not is_admin:
        return EligibilityResult(VoteErrorCode.VOTING_LOCKED)
    # Not reachable under the current window rules: can_user_vote only
    # refuses after the deadline or for non-admins inside the lock window.
    return EligibilityResult(VoteErrorCode.NO_PERMISSION)


def category_window_error(category: Category, now: datetime) -> Optional[VoteErrorCode]:
    """
    Check a category's own voting_start/voting_end.

    Independent of the global window; there is no admin bypass here.
    """
    now = ensure_utc(now)
    if category.voting_start is not None and now < ensure_utc(category.voting_start):
        return VoteErrorCode.VOTING_NOT_STARTED
    if category.voting_end is not None and now >= ensure_utc(category.voting_end):
        return VoteErrorCode.VOTING_ENDED
    return None


def results_available(category: Category, config: VotingWindowConfig, now: datetime) -> bool:
    """Results for a category are public once the global deadline or the category's own end has passed."""
    if not is_voting_active(now, config):
        return True
    return category.voting_end is not None and ensure_utc(now) >= ensure_utc(category.voting_end)


def get_time_remaining(now: datetime, target: datetime) -> Dict[str, int]:
    """
    Get time remaining until a target instant.

    Returns:
        dict: days, hours, minutes, seconds and total (milliseconds);
        all zero once the target has passed
    """
    distance_ms = int((ensure_utc(target) - ensure_utc(now)).total_seconds() * 1000)

    if distance_ms <= 0:
        return {'days': 0, 'hours': 0, 'minutes': 0, 'seconds': 0, 'total': 0}

    day_ms = 24 * 60 * 60 * 1000
    hour_ms = 60 * 60 * 1000
    minute_ms = 60 * 1000

    return {
        'days': distance_ms // day_ms,
        'hours': (distance_ms % day_ms) // hour_ms,
        'minutes': (distance_ms % hour_ms) // minute_ms,
        'seconds': (distance_ms % minute_ms) // 1000,
        'total': distance_ms
    }
