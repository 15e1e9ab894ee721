"""Search domain: request, result and indexing models, and search areas."""

from solr_adapter.search.areas import AreaRegistry, SearchArea
from solr_adapter.search.schemas import (
    NO_OWNER_ID,
    TYPE_FILE,
    TYPE_TEXT,
    AccessDecision,
    AccessScope,
    AttachedFile,
    Candidate,
    ContextLevel,
    IndexedFileRecord,
    IndexStatus,
    PaginationState,
    QueryOutcome,
    QueryResult,
    ResultDocument,
    SearchContext,
    SearchDocument,
    SearchFilter,
    StatusResult,
    format_time_for_engine,
    import_time_from_engine,
)

__all__ = [
    "NO_OWNER_ID",
    "TYPE_FILE",
    "TYPE_TEXT",
    "AccessDecision",
    "AccessScope",
    "AreaRegistry",
    "AttachedFile",
    "Candidate",
    "ContextLevel",
    "IndexStatus",
    "IndexedFileRecord",
    "PaginationState",
    "QueryOutcome",
    "QueryResult",
    "ResultDocument",
    "SearchArea",
    "SearchContext",
    "SearchDocument",
    "SearchFilter",
    "StatusResult",
    "format_time_for_engine",
    "import_time_from_engine",
]
