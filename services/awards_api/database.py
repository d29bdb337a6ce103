"""PostgreSQL store: connection pool, queries and stored procedure calls."""
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

import asyncpg

from services.shared import (
    Ballot,
    BackendError,
    BatchItemFailure,
    BatchResult,
    Category,
    CategoryResult,
    Nominee,
    NomineeResult,
    NotFoundError,
    UserProfile,
    Vote,
    VoteErrorCode,
    VoteItem,
    VoteValidationError,
    VotingError,
    error_for_code,
    get_current_timestamp,
)
from .config import settings
from .store import CATEGORY_FIELDS, NOMINEE_FIELDS, VotingStore

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).with_name("schema.sql")

# SQLSTATE for RAISE EXCEPTION in PL/pgSQL
RAISE_EXCEPTION_SQLSTATE = "P0001"


def _translate_error(e: Exception, operation: str) -> VotingError:
    """Map a database exception onto the error taxonomy."""
    if isinstance(e, asyncpg.PostgresError) and e.sqlstate == RAISE_EXCEPTION_SQLSTATE:
        return error_for_code(str(e.message))
    logger.error(f"Database error during {operation}: {e}")
    return BackendError(detail=f"{operation}: {e}")


def _category_from_row(row, nominees: Optional[List[Nominee]] = None) -> Category:
    return Category(
        id=row["id"],
        slug=row["slug"],
        name=row["name"],
        is_active=row["is_active"],
        description=row["description"],
        display_order=row["display_order"],
        voting_start=row["voting_start"],
        voting_end=row["voting_end"],
        nominees=nominees or []
    )


def _nominee_from_row(row) -> Nominee:
    return Nominee(
        id=row["id"],
        category_id=row["category_id"],
        name=row["name"],
        description=row["description"],
        image_url=row["image_url"],
        display_order=row["display_order"]
    )


def _vote_from_row(row) -> Vote:
    return Vote(
        id=row["id"],
        user_id=row["user_id"],
        category_id=row["category_id"],
        nominee_id=row["nominee_id"],
        is_final=row["is_final"],
        created_at=row["created_at"],
        updated_at=row["updated_at"]
    )


def _ballot_from_row(row) -> Ballot:
    return Ballot(
        id=row["id"],
        user_id=row["user_id"],
        is_final=row["is_final"],
        submitted_at=row["submitted_at"],
        created_at=row["created_at"]
    )


def _user_from_row(row) -> UserProfile:
    return UserProfile(
        user_id=row["id"],
        display_name=row["display_name"],
        avatar_url=row["avatar_url"],
        is_admin=row["is_admin"]
    )


class Database(VotingStore):
    """Async PostgreSQL store."""

    def __init__(self, dsn: Optional[str] = None):
        self.dsn = dsn or settings.postgres_dsn
        self.pool: Optional[asyncpg.Pool] = None

    async def initialize(self):
        """Initialize database connection pool."""
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=settings.POSTGRES_POOL_MIN_SIZE,
                max_size=settings.POSTGRES_POOL_MAX_SIZE,
                command_timeout=60
            )
            logger.info("PostgreSQL connection pool initialized successfully")

            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
                logger.info("PostgreSQL connection verified")

            if settings.APPLY_SCHEMA:
                await self.apply_schema()

        except Exception as e:
            logger.error(f"Failed to initialize PostgreSQL connection pool: {e}")
            raise

    async def apply_schema(self):
        """Create tables and procedures from schema.sql."""
        async with self.pool.acquire() as conn:
            await conn.execute(SCHEMA_PATH.read_text(encoding="utf-8"))
        logger.info("Database schema applied")

    async def close(self):
        """Close database connection pool."""
        try:
            if self.pool:
                await self.pool.close()
                logger.info("PostgreSQL connection pool closed successfully")
        except Exception as e:
            logger.error(f"Error closing PostgreSQL connection pool: {e}")

    async def check_health(self) -> bool:
        """Check database connection health."""
        try:
            if not self.pool:
                return False
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
                return True
        except Exception as e:
            logger.error(f"PostgreSQL health check failed: {e}")
            return False

    # Categories and nominees

    async def _nominees_by_category(self, conn, category_ids: List[str]) -> Dict[str, List[Nominee]]:
        rows = await conn.fetch(
            """
            SELECT id, category_id, name, description, image_url, display_order
            FROM nominees
            WHERE category_id = ANY($1::text[])
            ORDER BY display_order, name
            """,
            category_ids
        )
        grouped: Dict[str, List[Nominee]] = {}
        for row in rows:
            grouped.setdefault(row["category_id"], []).append(_nominee_from_row(row))
        return grouped

    async def get_categories(self, include_nominees: bool = False,
                             include_inactive: bool = False) -> List[Category]:
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT id, slug, name, description, voting_start, voting_end,
                           display_order, is_active
                    FROM categories
                    WHERE is_active OR $1
                    ORDER BY display_order, name
                    """,
                    include_inactive
                )
                nominees = {}
                if include_nominees and rows:
                    nominees = await self._nominees_by_category(conn, [r["id"] for r in rows])
                return [_category_from_row(r, nominees.get(r["id"])) for r in rows]
        except Exception as e:
            raise _translate_error(e, "get_categories")

    async def get_category(self, slug: str) -> Optional[Category]:
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    SELECT id, slug, name, description, voting_start, voting_end,
                           display_order, is_active
                    FROM categories
                    WHERE slug = $1
                    """,
                    slug
                )
                if row is None:
                    return None
                nominees = await self._nominees_by_category(conn, [row["id"]])
                return _category_from_row(row, nominees.get(row["id"]))
        except Exception as e:
            raise _translate_error(e, "get_category")

    # Users

    async def ensure_user(self, user_id: str, display_name: str,
                          avatar_url: Optional[str] = None) -> UserProfile:
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    INSERT INTO users (id, display_name, avatar_url)
                    VALUES ($1, $2, $3)
                    ON CONFLICT (id) DO UPDATE SET id = EXCLUDED.id
                    RETURNING id, display_name, avatar_url, is_admin
                    """,
                    user_id, display_name, avatar_url
                )
                return _user_from_row(row)
        except Exception as e:
            raise _translate_error(e, "ensure_user")

    async def get_user(self, user_id: str) -> Optional[UserProfile]:
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    "SELECT id, display_name, avatar_url, is_admin FROM users WHERE id = $1",
                    user_id
                )
                return _user_from_row(row) if row else None
        except Exception as e:
            raise _translate_error(e, "get_user")

    # Votes and ballots

    async def get_votes_for_user(self, user_id: str,
                                 category_slug: Optional[str] = None) -> List[Vote]:
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT v.*
                    FROM votes v
                    JOIN categories c ON c.id = v.category_id
                    WHERE v.user_id = $1
                      AND ($2::text IS NULL OR c.slug = $2)
                    ORDER BY c.display_order, c.name
                    """,
                    user_id, category_slug
                )
                return [_vote_from_row(r) for r in rows]
        except Exception as e:
            raise _translate_error(e, "get_votes_for_user")

    async def submit_vote(self, user_id: str, category_id: str, nominee_id: str,
                          display_name: str, avatar_url: Optional[str] = None,
                          now: Optional[datetime] = None) -> Vote:
        now = now or get_current_timestamp()
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    "SELECT * FROM submit_vote($1, $2, $3, $4, $5, $6)",
                    user_id, category_id, nominee_id, display_name, avatar_url, now
                )
                return _vote_from_row(row)
        except Exception as e:
            raise _translate_error(e, "submit_vote")

    async def submit_votes_batch(self, user_id: str, items: List[VoteItem],
                                 display_name: str, avatar_url: Optional[str] = None,
                                 now: Optional[datetime] = None) -> BatchResult:
        now = now or get_current_timestamp()
        payload = json.dumps([
            {"category_id": item.category_id, "nominee_id": item.nominee_id}
            for item in items
        ])
        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    rows = await conn.fetch(
                        "SELECT * FROM submit_votes_batch($1, $2::jsonb, $3, $4, $5)",
                        user_id, payload, display_name, avatar_url, now
                    )
                    vote_ids = [r["vote_id"] for r in rows if r["vote_id"] is not None]
                    vote_rows = await conn.fetch(
                        "SELECT * FROM votes WHERE id = ANY($1::text[])",
                        vote_ids
                    )
        except Exception as e:
            raise _translate_error(e, "submit_votes_batch")

        votes_by_id = {r["id"]: _vote_from_row(r) for r in vote_rows}
        result = BatchResult()
        for row in rows:
            item = VoteItem(category_id=row["item_category_id"], nominee_id=row["item_nominee_id"])
            if row["error_code"] is None:
                result.successes.append(votes_by_id[row["vote_id"]])
            else:
                error = error_for_code(row["error_code"])
                result.failures.append(
                    BatchItemFailure(item=item, code=error.code.value, message=error.message)
                )
        return result

    async def get_ballot(self, user_id: str) -> Optional[Ballot]:
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow("SELECT * FROM ballots WHERE user_id = $1", user_id)
                return _ballot_from_row(row) if row else None
        except Exception as e:
            raise _translate_error(e, "get_ballot")

    async def finalize_ballot(self, user_id: str, now: Optional[datetime] = None) -> Ballot:
        now = now or get_current_timestamp()
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    "SELECT * FROM finalize_ballot($1, $2)",
                    user_id, now
                )
                return _ballot_from_row(row)
        except Exception as e:
            raise _translate_error(e, "finalize_ballot")

    # Results and admin

    async def get_results(self, category_slug: Optional[str] = None) -> List[CategoryResult]:
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch("SELECT * FROM get_vote_results($1)", category_slug)
        except Exception as e:
            raise _translate_error(e, "get_results")

        grouped: Dict[str, CategoryResult] = {}
        for row in rows:
            result = grouped.get(row["category_id"])
            if result is None:
                result = CategoryResult(
                    category_id=row["category_id"],
                    category_name=row["category_name"],
                    category_slug=row["category_slug"]
                )
                grouped[row["category_id"]] = result
            if row["nominee_id"] is not None:
                result.nominees.append(NomineeResult(
                    nominee_id=row["nominee_id"],
                    nominee_name=row["nominee_name"],
                    vote_count=row["vote_count"]
                ))
        return list(grouped.values())

    async def create_category(self, slug: str, name: str, **fields) -> Category:
        values = {k: v for k, v in fields.items() if k in CATEGORY_FIELDS and v is not None}
        values.update(slug=slug, name=name)
        columns = list(values)
        placeholders = ", ".join(f"${i}" for i in range(1, len(columns) + 1))
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"INSERT INTO categories ({', '.join(columns)}) VALUES ({placeholders}) RETURNING *",
                    *values.values()
                )
                return _category_from_row(row)
        except asyncpg.UniqueViolationError:
            raise VoteValidationError(
                VoteErrorCode.INVALID_REQUEST,
                f"Category slug '{slug}' already exists"
            )
        except Exception as e:
            raise _translate_error(e, "create_category")

    async def update_category(self, slug: str, **fields) -> Category:
        values = {k: v for k, v in fields.items() if k in CATEGORY_FIELDS}
        if not values:
            category = await self.get_category(slug)
            if category is None:
                raise NotFoundError(VoteErrorCode.CATEGORY_NOT_FOUND)
            return category

        assignments = ", ".join(f"{column} = ${i}" for i, column in enumerate(values, start=2))
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"UPDATE categories SET {assignments} WHERE slug = $1 RETURNING slug",
                    slug, *values.values()
                )
        except Exception as e:
            raise _translate_error(e, "update_category")

        if row is None:
            raise NotFoundError(VoteErrorCode.CATEGORY_NOT_FOUND)
        return await self.get_category(slug)

    async def delete_category(self, slug: str) -> None:
        try:
            async with self.pool.acquire() as conn:
                deleted = await conn.fetchval(
                    "DELETE FROM categories WHERE slug = $1 RETURNING id", slug
                )
        except Exception as e:
            raise _translate_error(e, "delete_category")
        if deleted is None:
            raise NotFoundError(VoteErrorCode.CATEGORY_NOT_FOUND)

    async def create_nominee(self, category_slug: str, name: str, **fields) -> Nominee:
        values = {k: v for k, v in fields.items() if k in NOMINEE_FIELDS and v is not None}
        try:
            async with self.pool.acquire() as conn:
                category_id = await conn.fetchval(
                    "SELECT id FROM categories WHERE slug = $1", category_slug
                )
                if category_id is None:
                    raise NotFoundError(VoteErrorCode.CATEGORY_NOT_FOUND)
                values.update(category_id=category_id, name=name)
                columns = list(values)
                placeholders = ", ".join(f"${i}" for i in range(1, len(columns) + 1))
                row = await conn.fetchrow(
                    f"INSERT INTO nominees ({', '.join(columns)}) VALUES ({placeholders}) RETURNING *",
                    *values.values()
                )
                return _nominee_from_row(row)
        except VotingError:
            raise
        except Exception as e:
            raise _translate_error(e, "create_nominee")

    async def update_nominee(self, nominee_id: str, **fields) -> Nominee:
        values = {k: v for k, v in fields.items() if k in NOMINEE_FIELDS}
        try:
            async with self.pool.acquire() as conn:
                if values:
                    assignments = ", ".join(f"{column} = ${i}" for i, column in enumerate(values, start=2))
                    row = await conn.fetchrow(
                        f"UPDATE nominees SET {assignments} WHERE id = $1 RETURNING *",
                        nominee_id, *values.values()
                    )
                else:
                    row = await conn.fetchrow("SELECT * FROM nominees WHERE id = $1", nominee_id)
        except Exception as e:
            raise _translate_error(e, "update_nominee")

        if row is None:
            raise NotFoundError(VoteErrorCode.NOMINEE_NOT_FOUND)
        return _nominee_from_row(row)

    async def delete_nominee(self, nominee_id: str) -> None:
        try:
            async with self.pool.acquire() as conn:
                deleted = await conn.fetchval(
                    "DELETE FROM nominees WHERE id = $1 RETURNING id", nominee_id
                )
        except Exception as e:
            raise _translate_error(e, "delete_nominee")
        if deleted is None:
            raise NotFoundError(VoteErrorCode.NOMINEE_NOT_FOUND)

    async def get_admin_stats(self) -> Dict[str, int]:
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    SELECT
                        (SELECT COUNT(*) FROM categories) AS total_categories,
                        (SELECT COUNT(*) FROM nominees) AS total_nominees,
                        (SELECT COUNT(*) FROM votes) AS total_votes,
                        (SELECT COUNT(*) FROM users) AS total_users,
                        (SELECT COUNT(*) FROM ballots WHERE is_final) AS finalized_ballots
                    """
                )
                return dict(row)
        except Exception as e:
            raise _translate_error(e, "get_admin_stats")
