"""Tests for SolrEngine wiring."""

import json
from urllib.parse import parse_qs

import httpx
import pytest

from solr_adapter.config import Settings
from solr_adapter.engine.solr import SolrEngine
from solr_adapter.errors import EngineNotConfiguredError
from solr_adapter.search.areas import AreaRegistry
from solr_adapter.search.schemas import (
    AccessDecision,
    AccessScope,
    ContextLevel,
    SearchContext,
    SearchFilter,
)


@pytest.fixture
def settings() -> Settings:
    """Engine settings pointing at a test server."""
    return Settings(server_hostname="solr.test", index_name="moodle")


class RecordingSolr:
    """Minimal select/update handler for an httpx MockTransport."""

    def __init__(self, docs: list[dict], update_status: int = 200):
        self.docs = docs
        self.update_status = update_status
        self.selects: list[dict] = []
        self.updates: list = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/select"):
            params = parse_qs(request.content.decode())
            self.selects.append(params)
            start = int(params["start"][0])
            rows = int(params["rows"][0])
            page = self.docs[start : start + rows]
            return httpx.Response(
                200, json={"response": {"numFound": len(self.docs), "docs": page}}
            )
        if request.url.path.endswith("/update"):
            self.updates.append(json.loads(request.content))
            return httpx.Response(self.update_status, json={})
        return httpx.Response(404)


class TestSolrEngine:
    """Tests for SolrEngine."""

    def test_execute_query(self, settings, registry, make_doc):
        """Should search through the transport and filter access."""
        solr = RecordingSolr([make_doc(1), make_doc(2)])
        engine = SolrEngine(
            registry, settings, http_transport=httpx.MockTransport(solr)
        )

        result = engine.execute_query(
            SearchFilter(q="frogs"),
            AccessScope(user_id=7, usercontexts={"mod_forum-post": [10]}),
            limit=5,
        )

        assert [doc.itemid for doc in result.documents] == [1, 2]
        assert solr.selects[0]["rows"] == ["15"]
        assert "type:1" in solr.selects[0]["fq"]

    def test_stale_purge_failure_does_not_abort(self, settings, make_area, make_doc):
        """Should keep searching when purging a stale record fails."""
        area = make_area(
            decide=lambda itemid: (
                AccessDecision.STALE if itemid == 1 else AccessDecision.GRANTED
            )
        )
        solr = RecordingSolr([make_doc(1), make_doc(2)], update_status=500)
        engine = SolrEngine(
            AreaRegistry([area]), settings, http_transport=httpx.MockTransport(solr)
        )

        result = engine.execute_query(
            SearchFilter(q="frogs"), AccessScope.sees_everything(7), limit=5
        )

        assert [doc.itemid for doc in result.documents] == [2]
        assert solr.updates == [
            {"delete": {"query": "solr_filegroupingid:mod_forum-post-1"}}
        ]

    def test_failed_purge_does_not_repeat_documents(
        self, settings, make_area, make_doc
    ):
        """Should page past a stale record that could not be deleted."""
        area = make_area(
            decide=lambda itemid: (
                AccessDecision.STALE if itemid == 2 else AccessDecision.GRANTED
            )
        )
        solr = RecordingSolr([make_doc(i) for i in range(1, 13)], update_status=500)
        engine = SolrEngine(
            AreaRegistry([area]),
            settings.model_copy(update={"query_size": 3}),
            http_transport=httpx.MockTransport(solr),
        )

        result = engine.execute_query(
            SearchFilter(q="frogs"), AccessScope.sees_everything(7), limit=10
        )

        itemids = [doc.itemid for doc in result.documents]
        assert itemids == [1, 3, 4, 5, 6, 7, 8, 9, 10, 11]
        assert [params["start"] for params in solr.selects] == [
            ["0"],
            ["3"],
            ["6"],
            ["9"],
        ]
        assert result.total_engine_docs == 12

    def test_alternate_requires_configuration(self, settings, registry):
        """Should refuse the alternate server when it is not configured."""
        with pytest.raises(EngineNotConfiguredError, match="alternate"):
            SolrEngine(registry, settings, alternate=True)

    def test_not_configured(self, registry):
        """Should refuse to start without a server."""
        with pytest.raises(EngineNotConfiguredError):
            SolrEngine(registry, Settings(server_hostname=None, index_name=None))

    def test_supported_orders(self, settings, registry):
        """Should only offer location ordering inside a course."""
        engine = SolrEngine(registry, settings)
        in_course = SearchContext(
            id=30, level=ContextLevel.MODULE, course_id=2, name="Frogs 101"
        )
        at_site = SearchContext(id=1, level=ContextLevel.SYSTEM)

        assert set(engine.get_supported_orders(in_course)) == {"relevance", "location"}
        assert set(engine.get_supported_orders(at_site)) == {"relevance"}

    def test_capabilities(self, settings, registry):
        """Should advertise group, user and batch support."""
        engine = SolrEngine(registry, settings)

        assert engine.supports_group_filtering()
        assert engine.supports_users()
        assert engine.supports_add_document_batch()
        assert not engine.file_indexing_enabled()
        assert not engine.has_alternate_configuration()

    def test_area_index_complete_commits(self, settings, registry):
        """Should commit once an area is indexed."""
        solr = RecordingSolr([])
        engine = SolrEngine(
            registry, settings, http_transport=httpx.MockTransport(solr)
        )

        assert engine.area_index_complete("mod_forum-post") is True
        assert solr.updates == [{"commit": {}}]
