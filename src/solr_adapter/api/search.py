"""Search API endpoint.

Runs an access-scoped search through the engine on app state. The caller's
access scope is never taken from the request: the host application places
a resolver on ``app.state.scope_resolver`` that builds it from the request
(e.g. from its authenticated session).
"""

from collections.abc import Callable

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field

from solr_adapter.engine.solr import SolrEngine
from solr_adapter.search.schemas import AccessScope, ResultDocument, SearchFilter

search_router = APIRouter(prefix="/search", tags=["search"])

ScopeResolver = Callable[[Request], AccessScope]


class SearchRequest(BaseModel):
    """Request body for a search."""

    model_config = ConfigDict(extra="forbid")

    filter: SearchFilter = Field(description="Keywords and filters")
    limit: int = Field(
        default=0, ge=0, le=500, description="Maximum results (0 for default)"
    )


class SearchResponse(BaseModel):
    """Search results with counts for paging displays."""

    query: str = Field(description="Original keyword query")
    total_count: int = Field(description="Results available to the caller")
    documents: list[ResultDocument] = Field(default_factory=list)
    error: str | None = Field(
        default=None, description="Engine error, if results may be incomplete"
    )


def get_engine(request: Request) -> SolrEngine:
    """Get SolrEngine from app state."""
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Search engine not configured")
    return engine


def get_access_scope(request: Request) -> AccessScope:
    """Resolve the caller's access scope with the host's resolver."""
    resolver: ScopeResolver | None = getattr(
        request.app.state, "scope_resolver", None
    )
    if resolver is None:
        raise HTTPException(status_code=503, detail="Access scope not configured")
    return resolver(request)


@search_router.post("", response_model=SearchResponse)
def search(
    body: SearchRequest,
    engine: SolrEngine = Depends(get_engine),
    scope: AccessScope = Depends(get_access_scope),
) -> SearchResponse:
    """Search documents visible to the caller.

    Engine failures return the results gathered so far with ``error`` set.
    """
    result = engine.execute_query(body.filter, scope, body.limit)
    return SearchResponse(
        query=body.filter.q,
        total_count=result.total_count,
        documents=result.documents,
        error=result.error,
    )
