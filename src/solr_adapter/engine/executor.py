"""Paginated query execution.

Over-fetches from the engine and keeps requesting pages until enough
documents survive access filtering or the engine has nothing left.
"""

from collections.abc import Callable

import structlog

from solr_adapter.engine.assembler import ResultAssembler
from solr_adapter.engine.grouping import GroupedFileMerger
from solr_adapter.engine.normalizer import NormalizedResponse, normalize_response
from solr_adapter.engine.query import QUERY_SIZE, EngineQuery, compile_user_query
from solr_adapter.search.areas import AreaRegistry
from solr_adapter.search.schemas import (
    AccessScope,
    PaginationState,
    QueryOutcome,
    QueryResult,
    ResultDocument,
    SearchFilter,
)

logger = structlog.get_logger()

MAX_RESULTS = 100


class QueryExecutor:
    """Runs one search across as many engine pages as needed.

    Every call to ``execute`` owns a fresh PaginationState, so one executor
    can serve several searches.
    """

    def __init__(
        self,
        fetch: Callable[[EngineQuery], QueryOutcome],
        purge: Callable[[str], bool],
        registry: AreaRegistry,
        *,
        file_indexing: bool = False,
        query_size: int = QUERY_SIZE,
        max_results: int = MAX_RESULTS,
    ):
        """Initialize executor.

        Args:
            fetch: Runs a query against the engine
            purge: Deletes a document and its files from the index by id;
                returns False if the delete failed
            registry: Resolves area ids to search areas
            file_indexing: Whether results are grouped by file group
            query_size: Largest page requested from the engine
            max_results: Limit used when the caller passes 0
        """
        self._fetch = fetch
        self._purge = purge
        self._registry = registry
        self._file_indexing = file_indexing
        self._query_size = query_size
        self._max_results = max_results

    def execute(
        self, search_filter: SearchFilter, scope: AccessScope, limit: int = 0
    ) -> QueryResult:
        """Execute a search.

        Engine failures do not raise; they stop paging and the documents
        gathered so far are returned with the error recorded.

        Args:
            search_filter: Keywords and filters
            scope: What the user can see
            limit: Maximum documents to return (0 for the default maximum)

        Returns:
            QueryResult with documents in rank order and final counters
        """
        if not limit:
            limit = self._max_results

        query = compile_user_query(
            search_filter, scope, file_indexing=self._file_indexing
        )
        if query is None:
            return QueryResult()

        state = PaginationState()
        assembler = ResultAssembler(self._registry, self._purge, scope.user_id)
        merger = GroupedFileMerger(assembler, self._fetch)
        error: str | None = None

        # Access filtering usually keeps most results, so start small
        query.start = 0
        query.rows = min(limit * 3, self._query_size)
        outcome = self._fetch(query)
        page = normalize_response(outcome.data)
        if outcome.failed:
            error = outcome.error
        if page.included == 0 or page.found == 0:
            return self._result([], state, error)
        state.total_engine_docs = page.found

        results = self._process_page(page, state, limit, assembler, merger)

        while len(results) < limit and state.remaining > 0:
            query.start = state.consumed
            query.rows = self._query_size

            outcome = self._fetch(query)
            if outcome.failed:
                error = outcome.error
            page = normalize_response(outcome.data)
            if page.included == 0 or page.found == 0:
                # Nothing came back although more was expected; keep what we have
                logger.info(
                    "engine page empty, stopping",
                    start=query.start,
                    total=state.total_engine_docs,
                )
                break
            # The count may have moved since the last page (e.g. purges)
            state.total_engine_docs = page.found

            results.extend(
                self._process_page(
                    page, state, limit - len(results), assembler, merger
                )
            )

        return self._result(results, state, error)

    def _process_page(
        self,
        page: NormalizedResponse,
        state: PaginationState,
        limit: int,
        assembler: ResultAssembler,
        merger: GroupedFileMerger,
    ) -> list[ResultDocument]:
        if page.grouped:
            return merger.process(page, state, limit)
        return assembler.process(page, state, limit)

    @staticmethod
    def _result(
        documents: list[ResultDocument], state: PaginationState, error: str | None
    ) -> QueryResult:
        return QueryResult(
            documents=documents,
            total_engine_docs=state.total_engine_docs,
            processed_docs=state.processed_docs,
            skipped_docs=state.skipped_docs,
            error=error,
        )
