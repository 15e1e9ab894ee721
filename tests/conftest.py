"""Pytest configuration and fixtures."""

from collections.abc import AsyncIterator, Callable
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

from solr_adapter.engine.query import NO_CACHE, EngineQuery
from solr_adapter.main import app
from solr_adapter.search.areas import AreaRegistry
from solr_adapter.search.schemas import AccessDecision, QueryOutcome

AREA_ID = "mod_forum-post"


class StubArea:
    """Search area whose decisions are picked by a callable per item."""

    def __init__(
        self,
        area_id: str = AREA_ID,
        decide: Callable[[int], AccessDecision] | None = None,
    ):
        self.area_id = area_id
        self._decide = decide or (lambda itemid: AccessDecision.GRANTED)
        self.checked: list[int] = []

    def check_access(self, itemid: int) -> AccessDecision:
        self.checked.append(itemid)
        return self._decide(itemid)


class FakeIndex:
    """In-memory stand-in for the engine's select handler.

    Plain queries page through ``docs``. When ``grouped_pages`` is set,
    user queries return those grouped responses in order instead. Id
    lookups are always answered from ``docs``.
    """

    def __init__(
        self,
        docs: list[dict[str, Any]] | None = None,
        grouped_pages: list[dict[str, Any]] | None = None,
    ):
        self.docs = list(docs or [])
        self.grouped_pages = list(grouped_pages or [])
        self.calls: list[EngineQuery] = []
        self.purged: list[str] = []
        self.failing_calls: set[int] = set()

    def fetch(self, query: EngineQuery) -> QueryOutcome:
        self.calls.append(query.model_copy(deep=True))
        if len(self.calls) in self.failing_calls:
            return QueryOutcome.failure("HTTP 500: engine exploded")

        id_prefix = f"{NO_CACHE}id:("
        id_filter = next((f for f in query.filters if f.startswith(id_prefix)), None)
        if id_filter is not None:
            ids = id_filter[len(id_prefix) : -1].split(" OR ")
            found = [doc for doc in self.docs if doc["id"] in ids]
            return self._outcome({"response": {"numFound": len(found), "docs": found}})

        if query.group_field:
            if not self.grouped_pages:
                return QueryOutcome.empty()
            return QueryOutcome.success(self.grouped_pages.pop(0))

        page = self.docs[query.start : query.start + query.rows]
        return self._outcome({"response": {"numFound": len(self.docs), "docs": page}})

    @staticmethod
    def _outcome(data: dict[str, Any]) -> QueryOutcome:
        if not data["response"]["docs"]:
            return QueryOutcome.empty(data)
        return QueryOutcome.success(data)

    def purge(self, doc_id: str) -> bool:
        self.purged.append(doc_id)
        self.docs = [
            doc
            for doc in self.docs
            if doc["id"] != doc_id and doc.get("solr_filegroupingid") != doc_id
        ]
        return True


def engine_doc(itemid: int, /, area_id: str = AREA_ID, **fields: Any) -> dict[str, Any]:
    """Build an engine record the way the select handler returns it."""
    doc = {
        "id": f"{area_id}-{itemid}",
        "itemid": itemid,
        "areaid": area_id,
        "contextid": 10,
        "courseid": 2,
        "owneruserid": 0,
        "type": 1,
        "modified": "2024-01-01T00:00:00Z",
        "title": f"Post {itemid}",
        "content": f"Content of post {itemid}",
        "solr_filegroupingid": f"{area_id}-{itemid}",
    }
    doc.update(fields)
    return doc


def file_doc(itemid: int, file_id: str, area_id: str = AREA_ID) -> dict[str, Any]:
    """Build an engine file record attached to a main document."""
    main_id = f"{area_id}-{itemid}"
    return {
        "id": f"{main_id}-solrfile{file_id}",
        "itemid": itemid,
        "areaid": area_id,
        "contextid": 10,
        "courseid": 2,
        "owneruserid": 0,
        "type": 2,
        "modified": "2024-01-01T00:00:00Z",
        "title": f"file{file_id}.pdf",
        "solr_filegroupingid": main_id,
        "solr_fileid": file_id,
        "solr_filecontenthash": f"hash{file_id}",
        "solr_fileindexstatus": 1,
    }


def grouped_page(
    groups: list[tuple[str, list[dict[str, Any]]]], ngroups: int | None = None
) -> dict[str, Any]:
    """Build a grouped select response from (group id, members) pairs."""
    return {
        "grouped": {
            "solr_filegroupingid": {
                "matches": sum(len(docs) for _, docs in groups),
                "ngroups": len(groups) if ngroups is None else ngroups,
                "groups": [
                    {
                        "groupValue": group_id,
                        "doclist": {"numFound": len(docs), "start": 0, "docs": docs},
                    }
                    for group_id, docs in groups
                ],
            }
        }
    }


@pytest.fixture
def make_area() -> type[StubArea]:
    """Factory for stub search areas."""
    return StubArea


@pytest.fixture
def area() -> StubArea:
    """A search area granting everything."""
    return StubArea()


@pytest.fixture
def registry(area: StubArea) -> AreaRegistry:
    """Registry holding the default area."""
    return AreaRegistry([area])


@pytest.fixture
def make_index() -> type[FakeIndex]:
    """Factory for in-memory engine indexes."""
    return FakeIndex


@pytest.fixture
def make_doc() -> Callable[..., dict[str, Any]]:
    """Factory for main engine records."""
    return engine_doc


@pytest.fixture
def make_file_doc() -> Callable[..., dict[str, Any]]:
    """Factory for engine file records."""
    return file_doc


@pytest.fixture
def make_grouped_page() -> Callable[..., dict[str, Any]]:
    """Factory for grouped engine responses."""
    return grouped_page


@pytest.fixture
async def client() -> AsyncIterator[AsyncClient]:
    """Create async test client for the FastAPI app.

    The lifespan does not run under ASGITransport; tests put the engine
    and scope resolver they need on ``app.state``.
    """
    app.state.engine = None
    app.state.scope_resolver = None
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    del app.state.engine
    del app.state.scope_resolver
