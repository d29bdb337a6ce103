"""
Error taxonomy for vote submission and ballot finalization.

Errors fall into these groups:
- Authentication: the request carries no user identity
- Eligibility: the voting window or permissions deny the attempt
- State conflict: the client's view of the ballot is stale
- Validation: bad category/nominee ids or request shape
- Backend: the store failed; the detail is logged, never shown
"""

from typing import Optional, Dict, Any

from .models import VoteErrorCode


ERROR_MESSAGES = {
    VoteErrorCode.VOTING_ENDED: "The voting period has concluded. No new votes can be submitted.",
    VoteErrorCode.VOTING_LOCKED: "Voting is not open to the public yet.",
    VoteErrorCode.VOTING_NOT_STARTED: "Voting has not started yet for this category.",
    VoteErrorCode.NO_PERMISSION: "You do not have permission to perform this action.",
    VoteErrorCode.RESULTS_NOT_AVAILABLE: "Results not yet available.",
    VoteErrorCode.BALLOT_FINALIZED: "Ballot is already finalized. Votes can no longer be changed.",
    VoteErrorCode.ALREADY_FINALIZED: "Ballot is already finalized.",
    VoteErrorCode.INVALID_NOMINEE: "Nominee does not belong to the specified category.",
    VoteErrorCode.CATEGORY_INACTIVE: "Voting is not active for this category.",
    VoteErrorCode.NO_VOTES: "No votes to finalize.",
    VoteErrorCode.BATCH_TOO_LARGE: "Too many votes in batch.",
    VoteErrorCode.INVALID_REQUEST: "Invalid request.",
    VoteErrorCode.CATEGORY_NOT_FOUND: "Category not found.",
    VoteErrorCode.NOMINEE_NOT_FOUND: "Nominee not found.",
    VoteErrorCode.UNAUTHORIZED: "Authentication required.",
    VoteErrorCode.BACKEND_ERROR: "Internal server error",
}


class VotingError(Exception):
    """Base class for errors with a machine-readable code."""

    status_code = 400

    def __init__(
        self,
        code: VoteErrorCode,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.code = VoteErrorCode(code)
        self.message = message or ERROR_MESSAGES[self.code]
        self.details = details or {}
        super().__init__(f"{self.code.value}: {self.message}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'error': self.code.value,
            'message': self.message,
            'details': self.details
        }


class AuthenticationError(VotingError):
    status_code = 401


class EligibilityError(VotingError):
    status_code = 403


class StateConflictError(VotingError):
    status_code = 409


class VoteValidationError(VotingError):
    status_code = 400


class NotFoundError(VotingError):
    status_code = 404


class BackendError(VotingError):
    """Store failure. The message shown to users is always generic."""

    status_code = 500

    def __init__(self, detail: str = "", details: Optional[Dict[str, Any]] = None):
        self.detail = detail
        super().__init__(VoteErrorCode.BACKEND_ERROR, details=details)


_ERROR_CLASSES = {
    VoteErrorCode.VOTING_ENDED: EligibilityError,
    VoteErrorCode.VOTING_LOCKED: EligibilityError,
    VoteErrorCode.VOTING_NOT_STARTED: EligibilityError,
    VoteErrorCode.NO_PERMISSION: EligibilityError,
    VoteErrorCode.RESULTS_NOT_AVAILABLE: EligibilityError,
    VoteErrorCode.BALLOT_FINALIZED: StateConflictError,
    VoteErrorCode.ALREADY_FINALIZED: StateConflictError,
    VoteErrorCode.INVALID_NOMINEE: VoteValidationError,
    VoteErrorCode.CATEGORY_INACTIVE: VoteValidationError,
    VoteErrorCode.NO_VOTES: VoteValidationError,
    VoteErrorCode.BATCH_TOO_LARGE: VoteValidationError,
    VoteErrorCode.INVALID_REQUEST: VoteValidationError,
    VoteErrorCode.CATEGORY_NOT_FOUND: NotFoundError,
    VoteErrorCode.NOMINEE_NOT_FOUND: NotFoundError,
    VoteErrorCode.UNAUTHORIZED: AuthenticationError,
}


def error_for_code(code: str, message: Optional[str] = None) -> VotingError:
    """
    Build the error matching a code string.

    Stored procedures raise their error code as the exception message; this
    maps it back onto the taxonomy. Unknown codes become BackendError.

    Args:
        code: Error code string, e.g. "BALLOT_FINALIZED"
        message: Optional override for the human-readable message

    Returns:
        VotingError: Instance of the matching subclass
    """
    try:
        error_code = VoteErrorCode(code.strip())
    except ValueError:
        return BackendError(detail=code)

    if error_code == VoteErrorCode.BACKEND_ERROR:
        return BackendError(detail=message or code)

    return _ERROR_CLASSES[error_code](error_code, message)
