"""End-to-end integration tests for the vote and ballot flow.

Tests the full path from the HTTP API through the PostgreSQL procedures:
vote upsert, ballot creation, finalization and the finalized-ballot trigger.

Requires: API, PostgreSQL and Redis running, categories seeded
"""

import asyncio

import asyncpg
import httpx
import pytest


@pytest.mark.docker
@pytest.mark.asyncio
class TestVoteFlow:
    """End-to-end vote flow tests."""

    async def test_vote_change_and_finalize(
        self,
        api_client: httpx.AsyncClient,
        categories,
        new_user,
        postgres_connection: asyncpg.Connection,
        voting_open
    ):
        """Test: vote, change the vote, finalize, and verify the rows.

        Flow:
        1. Vote in the first category, then change to another nominee
        2. Verify a single votes row holds the latest nominee
        3. Finalize and verify votes and ballot are final in PostgreSQL
        """
        headers = new_user()
        category = categories[0]
        first, second = category["nominees"][0], category["nominees"][-1]

        response = await api_client.post(
            "/api/v1/votes",
            json={"category_id": category["id"], "nominee_id": first["id"]},
            headers=headers
        )
        assert response.status_code == 201

        response = await api_client.post(
            "/api/v1/votes",
            json={"category_id": category["id"], "nominee_id": second["id"]},
            headers=headers
        )
        assert response.status_code == 201

        rows = await postgres_connection.fetch(
            "SELECT nominee_id, is_final FROM votes WHERE user_id = $1",
            headers["X-User-Id"]
        )
        assert [(r["nominee_id"], r["is_final"]) for r in rows] == [(second["id"], False)]

        response = await api_client.post("/api/v1/ballot/finalize", headers=headers)
        assert response.status_code == 200
        assert response.json()["votes_count"] == 1

        ballot = await postgres_connection.fetchrow(
            "SELECT is_final, submitted_at FROM ballots WHERE user_id = $1",
            headers["X-User-Id"]
        )
        assert ballot["is_final"] is True
        assert ballot["submitted_at"] is not None

        final_votes = await postgres_connection.fetchval(
            "SELECT COUNT(*) FROM votes WHERE user_id = $1 AND is_final",
            headers["X-User-Id"]
        )
        assert final_votes == 1

    async def test_finalized_ballot_cannot_be_reopened(
        self,
        api_client: httpx.AsyncClient,
        categories,
        new_user,
        postgres_connection: asyncpg.Connection,
        voting_open
    ):
        """Test: the database refuses to move a ballot from final back to open."""
        headers = new_user()
        category = categories[0]

        await api_client.post(
            "/api/v1/votes",
            json={"category_id": category["id"], "nominee_id": category["nominees"][0]["id"]},
            headers=headers
        )
        await api_client.post("/api/v1/ballot/finalize", headers=headers)

        with pytest.raises(asyncpg.PostgresError):
            await postgres_connection.execute(
                "UPDATE ballots SET is_final = FALSE WHERE user_id = $1",
                headers["X-User-Id"]
            )

        response = await api_client.post(
            "/api/v1/votes",
            json={"category_id": category["id"], "nominee_id": category["nominees"][-1]["id"]},
            headers=headers
        )
        assert response.status_code == 409
        assert response.json()["error"] == "BALLOT_FINALIZED"

    async def test_batch_through_procedure(
        self,
        api_client: httpx.AsyncClient,
        categories,
        new_user,
        voting_open
    ):
        """Test: batch submission reports per-item outcomes from the procedure."""
        headers = new_user()
        votes = [
            {"category_id": c["id"], "nominee_id": c["nominees"][0]["id"]}
            for c in categories if c["nominees"]
        ]
        # Nominee from a different category
        if len(categories) > 1:
            votes.append({
                "category_id": categories[0]["id"],
                "nominee_id": categories[1]["nominees"][0]["id"]
            })

        response = await api_client.post(
            "/api/v1/votes/batch",
            json={"votes": votes[:20]},
            headers=headers
        )

        assert response.status_code == 201
        data = response.json()
        if len(categories) > 1 and len(votes) <= 20:
            assert data["failures"][-1]["error"] == "INVALID_NOMINEE"
        assert data["count"] == len(data["votes"])

    async def test_concurrent_votes_keep_one_row(
        self,
        api_client: httpx.AsyncClient,
        categories,
        new_user,
        postgres_connection: asyncpg.Connection,
        voting_open
    ):
        """Test: concurrent submissions for one category leave exactly one row."""
        headers = new_user()
        category = categories[0]

        responses = await asyncio.gather(*[
            api_client.post(
                "/api/v1/votes",
                json={"category_id": category["id"], "nominee_id": nominee["id"]},
                headers=headers
            )
            for nominee in category["nominees"] * 5
        ])

        assert all(r.status_code == 201 for r in responses)
        count = await postgres_connection.fetchval(
            "SELECT COUNT(*) FROM votes WHERE user_id = $1",
            headers["X-User-Id"]
        )
        assert count == 1

    async def test_concurrent_finalize_succeeds_once(
        self,
        api_client: httpx.AsyncClient,
        categories,
        new_user,
        voting_open
    ):
        """Test: two simultaneous finalize calls produce one success and one 409."""
        headers = new_user()
        category = categories[0]
        await api_client.post(
            "/api/v1/votes",
            json={"category_id": category["id"], "nominee_id": category["nominees"][0]["id"]},
            headers=headers
        )

        responses = await asyncio.gather(
            api_client.post("/api/v1/ballot/finalize", headers=headers),
            api_client.post("/api/v1/ballot/finalize", headers=headers)
        )

        assert sorted(r.status_code for r in responses) == [200, 409]
