"""Solr search engine.

Single entry point used by the host application: searching, indexing,
deletion and health checks, all wired to one engine transport.
"""

import httpx
import structlog

from solr_adapter.config import Settings, get_settings
from solr_adapter.engine.executor import QueryExecutor
from solr_adapter.engine.files import FileIndexer, FileSetSynchronizer
from solr_adapter.engine.indexer import DocumentIndexer
from solr_adapter.engine.query import EngineQuery
from solr_adapter.engine.status import StatusChecker
from solr_adapter.engine.transport import SolrTransport
from solr_adapter.errors import EngineConnectionError, EngineNotConfiguredError
from solr_adapter.search.areas import AreaRegistry
from solr_adapter.search.schemas import (
    AccessScope,
    QueryOutcome,
    QueryResult,
    SearchContext,
    SearchDocument,
    SearchFilter,
    StatusResult,
)

logger = structlog.get_logger()


class SolrEngine:
    """Search engine backed by a Solr index.

    Example:
        >>> engine = SolrEngine(registry)
        >>> result = engine.execute_query(SearchFilter(q="frogs"), scope, limit=10)
        >>> [doc.title for doc in result.documents]
    """

    def __init__(
        self,
        registry: AreaRegistry,
        settings: Settings | None = None,
        *,
        alternate: bool = False,
        transport: SolrTransport | None = None,
        http_transport: httpx.BaseTransport | None = None,
    ):
        """Initialize engine.

        Args:
            registry: Search areas known to the host application
            settings: Optional settings, defaults to the environment
            alternate: Connect to the alternate server instead of the primary
            transport: Optional engine transport for dependency injection
            http_transport: Optional httpx transport, used when ``transport``
                is not given

        Raises:
            EngineNotConfiguredError: If the requested server is not configured
        """
        self._settings = settings or get_settings()
        if alternate and not self._settings.has_alternate_configuration():
            raise EngineNotConfiguredError("No alternate solr configuration found")

        self.registry = registry
        self.transport = transport or SolrTransport.from_settings(
            self._settings, alternate=alternate, http_transport=http_transport
        )

        self.indexer = DocumentIndexer(self.transport)
        self.file_indexer = FileIndexer(
            self.transport,
            self.indexer.add_record,
            max_index_file_kb=self._settings.max_index_file_kb,
        )
        self.indexer.synchronizer = FileSetSynchronizer(
            self.fetch,
            self.indexer.delete_record,
            self.file_indexer,
            page_size=self._settings.indexed_files_page_size,
        )
        self.executor = QueryExecutor(
            self.fetch,
            self._purge,
            registry,
            file_indexing=self._settings.file_indexing,
            query_size=self._settings.query_size,
            max_results=self._settings.max_results,
        )
        self.status = StatusChecker(self.transport)

    def fetch(self, query: EngineQuery) -> QueryOutcome:
        """Run a compiled query against the engine."""
        return self.transport.query(query.to_params())

    def _purge(self, doc_id: str) -> bool:
        # Query-time deletes must not abort the search
        try:
            self.indexer.delete_by_id(doc_id)
        except EngineConnectionError as e:
            logger.warning(
                "failed to purge stale document", doc_id=doc_id, error=str(e)
            )
            return False
        return True

    def file_indexing_enabled(self) -> bool:
        return self._settings.file_indexing

    def execute_query(
        self, search_filter: SearchFilter, scope: AccessScope, limit: int = 0
    ) -> QueryResult:
        """Search the index for documents the user can access.

        Args:
            search_filter: Keywords and filters
            scope: Contexts and groups the user can see
            limit: Maximum results (0 for the configured maximum)

        Returns:
            QueryResult; ``error`` is set if an engine call failed on the way
        """
        result = self.executor.execute(search_filter, scope, limit)
        if result.error:
            logger.warning("search completed with engine error", error=result.error)
        return result

    def add_document(
        self, document: SearchDocument, file_indexing: bool | None = None
    ) -> bool:
        """Add a document (and its files when file indexing is on)."""
        if file_indexing is None:
            file_indexing = self.file_indexing_enabled()
        return self.indexer.add_document(document, file_indexing)

    def add_document_batch(
        self, documents: list[SearchDocument], file_indexing: bool | None = None
    ) -> tuple[int, int, int]:
        """Add several documents; returns (successful, failed, batches)."""
        if file_indexing is None:
            file_indexing = self.file_indexing_enabled()
        return self.indexer.add_document_batch(documents, file_indexing)

    def delete_by_id(self, doc_id: str) -> None:
        self.indexer.delete_by_id(doc_id)

    def delete(self, area_id: str | None = None) -> None:
        self.indexer.delete(area_id)

    def delete_index_for_context(self, context_id: int) -> bool:
        return self.indexer.delete_index_for_context(context_id)

    def delete_index_for_course(self, course_id: int) -> bool:
        return self.indexer.delete_index_for_course(course_id)

    def area_index_complete(self, area_id: str | None = None) -> bool:
        """Commit once an area has been indexed."""
        self.indexer.commit()
        logger.info("area indexing complete", area_id=area_id)
        return True

    def is_server_ready(self) -> bool | str:
        return self.status.is_server_ready()

    def get_status(self, timeout: float = 0) -> StatusResult:
        return self.status.get_status(timeout)

    def get_supported_orders(self, context: SearchContext) -> dict[str, str]:
        """Result orders available when searching from a context.

        Location ordering is only offered inside a course.
        """
        orders = {"relevance": "Relevance"}
        if context.course_id is not None:
            orders["location"] = f"Prioritise results related to {context.name}"
        return orders

    def has_alternate_configuration(self) -> bool:
        return self._settings.has_alternate_configuration()

    def supports_group_filtering(self) -> bool:
        return True

    def supports_users(self) -> bool:
        return True

    def supports_add_document_batch(self) -> bool:
        return True

    def close(self) -> None:
        self.transport.close()
