"""
Authentication boundary and request dependencies.

OAuth runs in the identity provider in front of this service. The provider
forwards the authenticated user as X-User-Id / X-User-Name / X-User-Avatar;
this module only trusts those headers and looks up the admin flag.
"""
from typing import Optional

from fastapi import Depends, Header, Request

from services.shared import (
    AuthenticationError,
    EligibilityError,
    UserProfile,
    VoteErrorCode,
    VotingWindowConfig,
)
from .cache import ResultsCache
from .store import VotingStore
from .voting import VotingService


def get_store(request: Request) -> VotingStore:
    return request.app.state.store


def get_voting_config(request: Request) -> VotingWindowConfig:
    return request.app.state.voting_config


def get_results_cache(request: Request) -> Optional[ResultsCache]:
    return getattr(request.app.state, "results_cache", None)


def get_voting_service(
    store: VotingStore = Depends(get_store),
    config: VotingWindowConfig = Depends(get_voting_config),
    cache: Optional[ResultsCache] = Depends(get_results_cache),
) -> VotingService:
    return VotingService(store, config, cache)


async def get_optional_user(
    x_user_id: Optional[str] = Header(default=None),
    x_user_name: Optional[str] = Header(default=None),
    x_user_avatar: Optional[str] = Header(default=None),
    store: VotingStore = Depends(get_store),
) -> Optional[UserProfile]:
    """The caller's profile, or None for anonymous requests."""
    if not x_user_id or not x_user_id.strip():
        return None
    return await store.ensure_user(
        x_user_id.strip(),
        x_user_name or "Anonymous",
        x_user_avatar
    )


async def get_current_user(
    user: Optional[UserProfile] = Depends(get_optional_user),
) -> UserProfile:
    if user is None:
        raise AuthenticationError(VoteErrorCode.UNAUTHORIZED)
    return user


async def require_admin(
    user: UserProfile = Depends(get_current_user),
) -> UserProfile:
    if not user.is_admin:
        raise EligibilityError(VoteErrorCode.NO_PERMISSION)
    return user
