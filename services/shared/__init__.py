"""
Shared utilities and models for the awards voting service.

This package contains the code the API and its tests share:
- Data models (Category, Nominee, Vote, Ballot, enums)
- The voting window configuration
- The voting eligibility gate
- The error taxonomy
"""

from .models import (
    VotingWindowConfig,
    Category,
    Nominee,
    Vote,
    Ballot,
    UserProfile,
    VoteItem,
    BatchItemFailure,
    BatchResult,
    NomineeResult,
    CategoryResult,
    VoteErrorCode,
    BallotState,
    VotingPhase,
    ballot_state,
    ensure_utc,
    get_current_timestamp,
    parse_wall_clock,
)
from .errors import (
    VotingError,
    AuthenticationError,
    EligibilityError,
    StateConflictError,
    VoteValidationError,
    NotFoundError,
    BackendError,
    error_for_code,
)
from .eligibility import (
    EligibilityResult,
    is_voting_active,
    is_live_voting_active,
    is_voting_locked,
    can_user_vote,
    voting_phase,
    validate_vote_submission,
    category_window_error,
    results_available,
    get_time_remaining,
)

__all__ = [
    'VotingWindowConfig',
    'Category',
    'Nominee',
    'Vote',
    'Ballot',
    'UserProfile',
    'VoteItem',
    'BatchItemFailure',
    'BatchResult',
    'NomineeResult',
    'CategoryResult',
    'VoteErrorCode',
    'BallotState',
    'VotingPhase',
    'ballot_state',
    'ensure_utc',
    'get_current_timestamp',
    'parse_wall_clock',
    'VotingError',
    'AuthenticationError',
    'EligibilityError',
    'StateConflictError',
    'VoteValidationError',
    'NotFoundError',
    'BackendError',
    'error_for_code',
    'EligibilityResult',
    'is_voting_active',
    'is_live_voting_active',
    'is_voting_locked',
    'can_user_vote',
    'voting_phase',
    'validate_vote_submission',
    'category_window_error',
    'results_available',
    'get_time_remaining',
]

__version__ = '1.0.0'
