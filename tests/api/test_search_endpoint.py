"""Tests for the search endpoint."""

from unittest.mock import MagicMock

import pytest
from fastapi import Request
from httpx import AsyncClient

from solr_adapter.engine.solr import SolrEngine
from solr_adapter.main import app
from solr_adapter.search.schemas import AccessScope, QueryResult, ResultDocument

SCOPE = AccessScope(user_id=7, usercontexts={"mod_forum-post": [10]})


def _resolve_scope(request: Request) -> AccessScope:
    return SCOPE


@pytest.fixture
def engine(client: AsyncClient) -> MagicMock:
    """Mock engine and scope resolver placed on app state."""
    engine = MagicMock(spec=SolrEngine)
    engine.execute_query.return_value = QueryResult()
    app.state.engine = engine
    app.state.scope_resolver = _resolve_scope
    return engine


class TestSearchEndpoint:
    """Tests for POST /search."""

    @pytest.mark.asyncio
    async def test_returns_documents(self, client: AsyncClient, engine: MagicMock):
        """Should return the engine's documents and available count."""
        engine.execute_query.return_value = QueryResult(
            documents=[
                ResultDocument(
                    id="mod_forum-post-1",
                    itemid=1,
                    areaid="mod_forum-post",
                    contextid=10,
                    title="@@HI_S@@Frogs@@HI_E@@",
                    file_ids=["55"],
                )
            ],
            total_engine_docs=25,
            processed_docs=10,
            skipped_docs=4,
        )

        response = await client.post(
            "/search", json={"filter": {"q": "frogs"}, "limit": 10}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["query"] == "frogs"
        assert data["total_count"] == 21
        assert data["documents"][0]["file_ids"] == ["55"]
        assert data["error"] is None
        search_filter, scope, limit = engine.execute_query.call_args.args
        assert search_filter.q == "frogs"
        assert scope == SCOPE
        assert limit == 10

    @pytest.mark.asyncio
    async def test_body_cannot_choose_scope(
        self, client: AsyncClient, engine: MagicMock
    ):
        """Should reject a request body that carries its own access scope."""
        response = await client.post(
            "/search",
            json={
                "filter": {"q": "frogs"},
                "scope": {"user_id": 2, "everything": True},
            },
        )

        assert response.status_code == 422
        engine.execute_query.assert_not_called()

    @pytest.mark.asyncio
    async def test_scope_comes_from_resolver(
        self, client: AsyncClient, engine: MagicMock
    ):
        """Should search with the scope resolved for the request."""
        seen = []

        def resolver(request: Request) -> AccessScope:
            seen.append(request.headers.get("x-user"))
            return AccessScope(user_id=42, usercontexts={"mod_forum-post": [11]})

        app.state.scope_resolver = resolver

        response = await client.post(
            "/search", json={"filter": {"q": "frogs"}}, headers={"X-User": "42"}
        )

        assert response.status_code == 200
        assert seen == ["42"]
        scope = engine.execute_query.call_args.args[1]
        assert scope.user_id == 42
        assert not scope.everything

    @pytest.mark.asyncio
    async def test_partial_results_carry_error(
        self, client: AsyncClient, engine: MagicMock
    ):
        """Should pass the engine error through with partial results."""
        engine.execute_query.return_value = QueryResult(error="HTTP 500: down")

        response = await client.post("/search", json={"filter": {"q": "frogs"}})

        assert response.status_code == 200
        assert response.json()["error"] == "HTTP 500: down"

    @pytest.mark.asyncio
    async def test_invalid_location_order(
        self, client: AsyncClient, engine: MagicMock
    ):
        """Should reject location ordering without a course context."""
        response = await client.post(
            "/search", json={"filter": {"q": "frogs", "order": "location"}}
        )

        assert response.status_code == 422
        engine.execute_query.assert_not_called()

    @pytest.mark.asyncio
    async def test_engine_not_configured(self, client: AsyncClient):
        """Should return 503 when no engine is configured."""
        response = await client.post("/search", json={"filter": {"q": "frogs"}})

        assert response.status_code == 503
        assert response.json()["detail"] == "Search engine not configured"

    @pytest.mark.asyncio
    async def test_scope_resolver_not_configured(self, client: AsyncClient):
        """Should return 503 when the host installed no scope resolver."""
        app.state.engine = MagicMock(spec=SolrEngine)

        response = await client.post("/search", json={"filter": {"q": "frogs"}})

        assert response.status_code == 503
        assert response.json()["detail"] == "Access scope not configured"
