"""Pydantic models for request/response validation."""
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, ValidationInfo, field_validator

from services.shared import BallotState, VotingPhase


def _strip_required(value: str, field_name: str) -> str:
    if not value or not value.strip():
        raise ValueError(f"{field_name} cannot be empty")
    return value.strip()


def _reject_null(value, info):
    if value is None:
        raise ValueError(f"{info.field_name} cannot be null")
    return value


class VoteRequest(BaseModel):
    """Vote submission request model."""

    category_id: str = Field(..., description="Category identifier")
    nominee_id: str = Field(..., description="Nominee identifier")

    @field_validator("category_id")
    @classmethod
    def validate_category_id(cls, v):
        return _strip_required(v, "category_id")

    @field_validator("nominee_id")
    @classmethod
    def validate_nominee_id(cls, v):
        return _strip_required(v, "nominee_id")

    class Config:
        json_schema_extra = {
            "example": {
                "category_id": "3f0c2a9e-5d1b-4c57-9b8e-0c1d2e3f4a5b",
                "nominee_id": "9a8b7c6d-5e4f-4a3b-8c2d-1e0f9a8b7c6d"
            }
        }


class BatchVoteRequest(BaseModel):
    """Batch vote submission request model."""

    votes: list[VoteRequest] = Field(..., description="Votes to submit, one per category")

    class Config:
        json_schema_extra = {
            "example": {
                "votes": [
                    {"category_id": "game-of-the-year-id", "nominee_id": "nominee-id"},
                    {"category_id": "best-indie-id", "nominee_id": "other-nominee-id"}
                ]
            }
        }


class VoteOut(BaseModel):
    id: str
    user_id: str
    category_id: str
    nominee_id: str
    is_final: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class VoteResponse(BaseModel):
    """Vote submission response model."""

    vote: VoteOut
    message: str = Field(default="Vote recorded successfully", description="Response message")


class VotesResponse(BaseModel):
    votes: list[VoteOut]


class BatchItemError(BaseModel):
    category_id: str
    nominee_id: str
    error: str = Field(..., description="Error code")
    message: str


class BatchVoteResponse(BaseModel):
    """Batch submission response: accepted votes and per-item failures."""

    votes: list[VoteOut]
    failures: list[BatchItemError]
    count: int
    message: str


class BallotOut(BaseModel):
    id: str
    user_id: str
    is_final: bool
    submitted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BallotStatusResponse(BaseModel):
    ballot: Optional[BallotOut] = None
    state: BallotState


class FinalizeResponse(BaseModel):
    message: str = "Ballot finalized successfully"
    ballot: BallotOut
    votes_count: int


class NomineeOut(BaseModel):
    id: str
    category_id: str
    name: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    display_order: int = 0

    class Config:
        from_attributes = True


class CategoryOut(BaseModel):
    id: str
    slug: str
    name: str
    description: Optional[str] = None
    display_order: int = 0
    is_active: bool = True
    voting_start: Optional[datetime] = None
    voting_end: Optional[datetime] = None
    nominees: Optional[list[NomineeOut]] = None

    class Config:
        from_attributes = True


class CategoriesResponse(BaseModel):
    categories: list[CategoryOut]


class CategoryResponse(BaseModel):
    category: CategoryOut


class VotingDataResponse(BaseModel):
    """Combined data for a category voting page."""

    category: CategoryOut
    categories: list[CategoryOut]
    vote: Optional[VoteOut] = None
    ballot: Optional[BallotOut] = None
    ballot_state: BallotState


class NomineeResultOut(BaseModel):
    nominee_id: str
    nominee_name: str
    vote_count: int

    class Config:
        from_attributes = True


class CategoryResultOut(BaseModel):
    category_id: str
    category_name: str
    category_slug: str
    nominees: list[NomineeResultOut]
    total_votes: int

    class Config:
        from_attributes = True


class ResultsResponse(BaseModel):
    """Vote results response model."""

    results: list[CategoryResultOut]

    class Config:
        json_schema_extra = {
            "example": {
                "results": [
                    {
                        "category_id": "3f0c2a9e",
                        "category_name": "Game of the Year",
                        "category_slug": "game-of-the-year",
                        "nominees": [
                            {"nominee_id": "9a8b7c6d", "nominee_name": "Nominee A", "vote_count": 152}
                        ],
                        "total_votes": 152
                    }
                ]
            }
        }


class TimeRemaining(BaseModel):
    days: int
    hours: int
    minutes: int
    seconds: int
    total: int = Field(..., description="Milliseconds remaining")


class VotingStatusResponse(BaseModel):
    phase: VotingPhase
    voting_active: bool
    live_voting_active: bool
    lock_enabled: bool
    deadline: datetime
    live_voting_start: datetime
    time_remaining: TimeRemaining
    time_until_live: TimeRemaining
    server_time: datetime


class CategoryCreate(BaseModel):
    slug: str = Field(..., pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$", max_length=100)
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    voting_start: Optional[datetime] = None
    voting_end: Optional[datetime] = None
    display_order: int = 0
    is_active: bool = True


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    voting_start: Optional[datetime] = None
    voting_end: Optional[datetime] = None
    display_order: Optional[int] = None
    is_active: Optional[bool] = None

    @field_validator("name", "display_order", "is_active")
    @classmethod
    def validate_not_null(cls, v, info: ValidationInfo):
        return _reject_null(v, info)


class NomineeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    image_url: Optional[str] = None
    display_order: int = 0


class NomineeUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    image_url: Optional[str] = None
    display_order: Optional[int] = None

    @field_validator("name", "display_order")
    @classmethod
    def validate_not_null(cls, v, info: ValidationInfo):
        return _reject_null(v, info)


class NomineeResponse(BaseModel):
    nominee: NomineeOut


class AdminStatsResponse(BaseModel):
    total_categories: int
    total_nominees: int
    total_votes: int
    total_users: int
    finalized_ballots: int


class HealthResponse(BaseModel):
    """Health check response model."""

    status: Literal["healthy", "unhealthy"] = Field(..., description="Overall health status")
    services: dict = Field(..., description="Status of individual services")
    timestamp: datetime = Field(..., description="Health check timestamp")

    class Config:
        json_schema_extra = {
            "example": {
                "status": "healthy",
                "services": {
                    "store": "connected",
                    "redis": "connected"
                },
                "timestamp": "2025-11-01T10:30:00Z"
            }
        }


class ErrorResponse(BaseModel):
    """Error response model."""

    error: str = Field(..., description="Error code")
    message: str = Field(..., description="Error message")
    details: dict = Field(default_factory=dict, description="Additional error details")

    class Config:
        json_schema_extra = {
            "example": {
                "error": "VOTING_LOCKED",
                "message": "Voting is not open to the public yet.",
                "details": {}
            }
        }
