"""
FastAPI application for the awards voting API.

Users cast one vote per category, may change it until they finalize their
ballot, and finalize exactly once. Admins may vote during the lock window
before live voting opens; nobody may vote after the deadline.
"""
import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import Histogram, generate_latest, CONTENT_TYPE_LATEST
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from services.shared import (
    BackendError,
    NotFoundError,
    UserProfile,
    VoteErrorCode,
    VoteItem,
    VotingError,
    get_current_timestamp,
)
from .admin import router as admin_router
from .auth import (
    get_current_user,
    get_optional_user,
    get_store,
    get_voting_service,
)
from .cache import ResultsCache
from .config import settings
from .database import Database
from .models import (
    BallotOut,
    BallotStatusResponse,
    BatchItemError,
    BatchVoteRequest,
    BatchVoteResponse,
    CategoriesResponse,
    CategoryOut,
    CategoryResponse,
    CategoryResultOut,
    ErrorResponse,
    FinalizeResponse,
    HealthResponse,
    ResultsResponse,
    VoteOut,
    VoteRequest,
    VoteResponse,
    VotesResponse,
    VotingDataResponse,
    VotingStatusResponse,
)
from .store import InMemoryStore, VotingStore
from .voting import VotingService

# Configure logging
logging.basicConfig(
    level=logging.INFO if not settings.DEBUG else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

API_PREFIX = f"/api/{settings.API_VERSION}"

# Prometheus metrics
request_duration = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint", "status"]
)

# Rate limiter
limiter = Limiter(key_func=get_remote_address)


def build_store() -> VotingStore:
    """Create the store selected by STORE_BACKEND."""
    if settings.STORE_BACKEND == "memory":
        logger.warning("Using in-memory store; data is lost on restart")
        return InMemoryStore()
    if settings.STORE_BACKEND == "postgres":
        return Database()
    raise ValueError(f"Unknown STORE_BACKEND: {settings.STORE_BACKEND}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events."""
    logger.info(f"Starting {settings.SERVICE_NAME} service...")

    try:
        if getattr(app.state, "store", None) is None:
            app.state.store = build_store()
        await app.state.store.initialize()

        if settings.REDIS_ENABLED and getattr(app.state, "results_cache", None) is None:
            cache = ResultsCache()
            await cache.initialize()
            app.state.results_cache = cache

        config = app.state.voting_config
        logger.info(
            f"Voting window: live start {config.live_voting_start.isoformat()}, "
            f"deadline {config.deadline.isoformat()}, lock enabled {config.lock_enabled}"
        )
        logger.info(f"{settings.SERVICE_NAME} started successfully")

    except Exception as e:
        logger.error(f"Failed to start {settings.SERVICE_NAME}: {e}")
        raise

    yield

    logger.info(f"Shutting down {settings.SERVICE_NAME} service...")

    try:
        cache = getattr(app.state, "results_cache", None)
        if cache is not None:
            await cache.close()
        await app.state.store.close()
        logger.info(f"{settings.SERVICE_NAME} shut down successfully")

    except Exception as e:
        logger.error(f"Error during shutdown: {e}")


# Create FastAPI app
app = FastAPI(
    title="Awards Voting API",
    description="API for casting, finalizing and tallying community awards votes",
    version=settings.API_VERSION,
    lifespan=lifespan
)

app.state.voting_config = settings.voting_window()
app.state.results_cache = None

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=settings.CORS_ALLOW_METHODS,
    allow_headers=settings.CORS_ALLOW_HEADERS,
)

# Add rate limiter
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.include_router(admin_router, prefix=f"{API_PREFIX}/admin", tags=["admin"])


@app.exception_handler(VotingError)
async def voting_error_handler(request: Request, exc: VotingError):
    """Render domain errors as ErrorResponse. Backend detail stays in the log."""
    if isinstance(exc, BackendError):
        logger.error(f"Backend error on {request.method} {request.url.path}: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unexpected error on {request.method} {request.url.path}: {exc}")
    error = BackendError(detail=str(exc))
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


@app.middleware("http")
async def prometheus_middleware(request: Request, call_next):
    """Middleware to track request duration."""
    start = time.perf_counter()
    response = await call_next(request)
    route = request.scope.get("route")
    request_duration.labels(
        method=request.method,
        endpoint=getattr(route, "path", request.url.path),
        status=response.status_code
    ).observe(time.perf_counter() - start)
    return response


# Categories

@app.get(f"{API_PREFIX}/categories", response_model=CategoriesResponse)
@limiter.limit(settings.RATE_LIMIT)
async def get_categories(
    request: Request,
    include_nominees: bool = False,
    store: VotingStore = Depends(get_store),
):
    """Active categories ordered by display order."""
    categories = await store.get_categories(include_nominees=include_nominees)
    out = [CategoryOut.model_validate(c) for c in categories]
    if not include_nominees:
        out = [c.model_copy(update={"nominees": None}) for c in out]
    return CategoriesResponse(categories=out)


@app.get(
    f"{API_PREFIX}/categories/{{slug}}",
    response_model=CategoryResponse,
    responses={404: {"model": ErrorResponse, "description": "Category not found"}}
)
async def get_category(slug: str, store: VotingStore = Depends(get_store)):
    """One active category with its nominees."""
    category = await store.get_category(slug)
    if category is None or not category.is_active:
        raise NotFoundError(VoteErrorCode.CATEGORY_NOT_FOUND)
    return CategoryResponse(category=CategoryOut.model_validate(category))


@app.get(f"{API_PREFIX}/categories/{{slug}}/voting-data", response_model=VotingDataResponse)
async def get_voting_data(
    slug: str,
    user: UserProfile = Depends(get_current_user),
    service: VotingService = Depends(get_voting_service),
):
    """Category, navigation list, the caller's vote and ballot in one request."""
    data = await service.get_voting_data(user, slug)
    return VotingDataResponse(
        category=CategoryOut.model_validate(data["category"]),
        categories=[
            CategoryOut.model_validate(c).model_copy(update={"nominees": None})
            for c in data["categories"]
        ],
        vote=VoteOut.model_validate(data["vote"]) if data["vote"] else None,
        ballot=BallotOut.model_validate(data["ballot"]) if data["ballot"] else None,
        ballot_state=data["ballot_state"]
    )


# Votes

@app.get(f"{API_PREFIX}/votes", response_model=VotesResponse)
async def get_votes(
    category: Optional[str] = None,
    user: UserProfile = Depends(get_current_user),
    service: VotingService = Depends(get_voting_service),
):
    """The caller's votes, optionally for one category slug."""
    votes = await service.get_votes(user, category)
    return VotesResponse(votes=[VoteOut.model_validate(v) for v in votes])


@app.post(
    f"{API_PREFIX}/votes",
    response_model=VoteResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid nominee or inactive category"},
        403: {"model": ErrorResponse, "description": "Voting ended or locked"},
        409: {"model": ErrorResponse, "description": "Ballot already finalized"},
        429: {"description": "Rate limit exceeded"},
        500: {"model": ErrorResponse, "description": "Internal server error"}
    }
)
@limiter.limit(settings.VOTE_RATE_LIMIT)
async def submit_vote(
    request: Request,
    vote: VoteRequest,
    user: UserProfile = Depends(get_current_user),
    service: VotingService = Depends(get_voting_service),
) -> VoteResponse:
    """
    Submit or change a vote in one category.

    - **category_id**: Category identifier
    - **nominee_id**: Nominee identifier in that category
    """
    result = await service.submit_vote(user, vote.category_id, vote.nominee_id)
    return VoteResponse(vote=VoteOut.model_validate(result))


@app.post(
    f"{API_PREFIX}/votes/batch",
    response_model=BatchVoteResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse, "description": "Empty or oversized batch"},
        403: {"model": ErrorResponse, "description": "Voting ended or locked"},
        429: {"description": "Rate limit exceeded"}
    }
)
@limiter.limit(settings.VOTE_RATE_LIMIT)
async def submit_votes_batch(
    request: Request,
    body: BatchVoteRequest,
    user: UserProfile = Depends(get_current_user),
    service: VotingService = Depends(get_voting_service),
) -> BatchVoteResponse:
    """Submit up to 20 votes; failures are reported per item."""
    items = [VoteItem(category_id=v.category_id, nominee_id=v.nominee_id) for v in body.votes]
    result = await service.submit_votes_batch(user, items)
    return BatchVoteResponse(
        votes=[VoteOut.model_validate(v) for v in result.successes],
        failures=[
            BatchItemError(
                category_id=f.item.category_id,
                nominee_id=f.item.nominee_id,
                error=f.code,
                message=f.message
            )
            for f in result.failures
        ],
        count=len(result.successes),
        message=f"Successfully submitted {len(result.successes)} votes"
    )


# Ballot

@app.get(f"{API_PREFIX}/ballot/status", response_model=BallotStatusResponse)
async def get_ballot_status(
    user: UserProfile = Depends(get_current_user),
    service: VotingService = Depends(get_voting_service),
):
    ballot, state = await service.get_ballot_status(user)
    return BallotStatusResponse(
        ballot=BallotOut.model_validate(ballot) if ballot else None,
        state=state
    )


@app.post(
    f"{API_PREFIX}/ballot/finalize",
    response_model=FinalizeResponse,
    responses={
        400: {"model": ErrorResponse, "description": "No votes to finalize"},
        409: {"model": ErrorResponse, "description": "Ballot already finalized"}
    }
)
@limiter.limit(settings.VOTE_RATE_LIMIT)
async def finalize_ballot(
    request: Request,
    user: UserProfile = Depends(get_current_user),
    service: VotingService = Depends(get_voting_service),
):
    """Freeze all of the caller's votes. This cannot be undone."""
    ballot, votes_count = await service.finalize_ballot(user)
    return FinalizeResponse(ballot=BallotOut.model_validate(ballot), votes_count=votes_count)


# Results and status

@app.get(
    f"{API_PREFIX}/results",
    response_model=ResultsResponse,
    responses={
        403: {"model": ErrorResponse, "description": "Results not yet available"},
        404: {"model": ErrorResponse, "description": "Category not found"}
    }
)
@limiter.limit(settings.RATE_LIMIT)
async def get_results(
    request: Request,
    category: Optional[str] = None,
    user: Optional[UserProfile] = Depends(get_optional_user),
    service: VotingService = Depends(get_voting_service),
):
    """Finalized vote counts per nominee, grouped by category."""
    results = await service.get_results(user, category)
    return ResultsResponse(results=[CategoryResultOut.model_validate(r) for r in results])


@app.get(f"{API_PREFIX}/voting/status", response_model=VotingStatusResponse)
async def get_voting_status(service: VotingService = Depends(get_voting_service)):
    """Current voting phase and countdowns."""
    return VotingStatusResponse(**service.get_voting_status())


@app.get(
    f"{API_PREFIX}/health",
    response_model=HealthResponse,
    responses={
        503: {"model": HealthResponse, "description": "Service unhealthy"}
    }
)
async def health_check(request: Request) -> HealthResponse:
    """
    Check health of the service and its dependencies.

    Verifies the store and, when enabled, Redis.
    """
    services = {}

    try:
        store_healthy = await request.app.state.store.check_health()
        services["store"] = "connected" if store_healthy else "disconnected"
    except Exception as e:
        logger.error(f"Store health check error: {e}")
        services["store"] = "error"

    cache = getattr(request.app.state, "results_cache", None)
    if cache is not None:
        services["redis"] = "connected" if await cache.check_health() else "disconnected"

    all_healthy = all(
        state == "connected" for state in services.values()
    )

    response = HealthResponse(
        status="healthy" if all_healthy else "unhealthy",
        services=services,
        timestamp=get_current_timestamp()
    )

    return JSONResponse(
        status_code=status.HTTP_200_OK if all_healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=response.model_dump(mode="json")
    )


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "service": settings.SERVICE_NAME,
        "version": settings.API_VERSION,
        "status": "running",
        "endpoints": {
            "categories": f"{API_PREFIX}/categories",
            "votes": f"{API_PREFIX}/votes",
            "batch_votes": f"{API_PREFIX}/votes/batch",
            "ballot_status": f"{API_PREFIX}/ballot/status",
            "finalize": f"{API_PREFIX}/ballot/finalize",
            "results": f"{API_PREFIX}/results",
            "voting_status": f"{API_PREFIX}/voting/status",
            "health": f"{API_PREFIX}/health",
            "metrics": "/metrics"
        }
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "services.awards_api.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level="info"
    )
