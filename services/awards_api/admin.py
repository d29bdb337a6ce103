"""Admin routes: category and nominee management, statistics."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Response, status

from services.shared import UserProfile
from .auth import get_results_cache, get_store, require_admin
from .cache import ResultsCache
from .models import (
    AdminStatsResponse,
    CategoryCreate,
    CategoryOut,
    CategoryResponse,
    CategoryUpdate,
    ErrorResponse,
    NomineeCreate,
    NomineeOut,
    NomineeResponse,
    NomineeUpdate,
)
from .store import VotingStore

logger = logging.getLogger(__name__)

router = APIRouter(
    responses={
        401: {"model": ErrorResponse, "description": "Missing user identity"},
        403: {"model": ErrorResponse, "description": "Caller is not an administrator"}
    }
)


async def invalidate_results(cache: Optional[ResultsCache]):
    if cache is not None:
        await cache.invalidate()


@router.post("/categories", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
async def create_category(
    body: CategoryCreate,
    admin: UserProfile = Depends(require_admin),
    store: VotingStore = Depends(get_store),
    cache: Optional[ResultsCache] = Depends(get_results_cache),
):
    """Create a voting category."""
    category = await store.create_category(**body.model_dump())
    await invalidate_results(cache)
    logger.info(f"Category created by {admin.user_id}: {category.slug}")
    return CategoryResponse(category=CategoryOut.model_validate(category))


@router.put("/categories/{slug}", response_model=CategoryResponse)
async def update_category(
    slug: str,
    body: CategoryUpdate,
    admin: UserProfile = Depends(require_admin),
    store: VotingStore = Depends(get_store),
    cache: Optional[ResultsCache] = Depends(get_results_cache),
):
    """Update the fields present in the request body."""
    category = await store.update_category(slug, **body.model_dump(exclude_unset=True))
    await invalidate_results(cache)
    logger.info(f"Category updated by {admin.user_id}: {slug}")
    return CategoryResponse(category=CategoryOut.model_validate(category))


@router.delete("/categories/{slug}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_category(
    slug: str,
    admin: UserProfile = Depends(require_admin),
    store: VotingStore = Depends(get_store),
    cache: Optional[ResultsCache] = Depends(get_results_cache),
):
    await store.delete_category(slug)
    await invalidate_results(cache)
    logger.info(f"Category deleted by {admin.user_id}: {slug}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/categories/{slug}/nominees",
    response_model=NomineeResponse,
    status_code=status.HTTP_201_CREATED
)
async def create_nominee(
    slug: str,
    body: NomineeCreate,
    admin: UserProfile = Depends(require_admin),
    store: VotingStore = Depends(get_store),
    cache: Optional[ResultsCache] = Depends(get_results_cache),
):
    """Add a nominee to a category."""
    nominee = await store.create_nominee(slug, **body.model_dump())
    await invalidate_results(cache)
    logger.info(f"Nominee created by {admin.user_id}: {nominee.name} in {slug}")
    return NomineeResponse(nominee=NomineeOut.model_validate(nominee))


@router.put("/nominees/{nominee_id}", response_model=NomineeResponse)
async def update_nominee(
    nominee_id: str,
    body: NomineeUpdate,
    admin: UserProfile = Depends(require_admin),
    store: VotingStore = Depends(get_store),
    cache: Optional[ResultsCache] = Depends(get_results_cache),
):
    nominee = await store.update_nominee(nominee_id, **body.model_dump(exclude_unset=True))
    await invalidate_results(cache)
    logger.info(f"Nominee updated by {admin.user_id}: {nominee_id}")
    return NomineeResponse(nominee=NomineeOut.model_validate(nominee))


@router.delete("/nominees/{nominee_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_nominee(
    nominee_id: str,
    admin: UserProfile = Depends(require_admin),
    store: VotingStore = Depends(get_store),
    cache: Optional[ResultsCache] = Depends(get_results_cache),
):
    await store.delete_nominee(nominee_id)
    await invalidate_results(cache)
    logger.info(f"Nominee deleted by {admin.user_id}: {nominee_id}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/stats", response_model=AdminStatsResponse)
async def get_admin_stats(
    admin: UserProfile = Depends(require_admin),
    store: VotingStore = Depends(get_store),
):
    """Totals of categories, nominees, votes, users and finalized ballots."""
    return AdminStatsResponse(**await store.get_admin_stats())
