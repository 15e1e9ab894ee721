"""Access-aware search engine adapter for Solr.

Compiles access-scoped queries, pages through results while checking
per-document access, merges file-grouped results and keeps indexed file
records in sync with the files attached to each document.
"""

from solr_adapter.engine.solr import SolrEngine
from solr_adapter.search.areas import AreaRegistry, SearchArea
from solr_adapter.search.schemas import (
    AccessDecision,
    AccessScope,
    AttachedFile,
    QueryResult,
    ResultDocument,
    SearchDocument,
    SearchFilter,
)

__all__ = [
    "AccessDecision",
    "AccessScope",
    "AreaRegistry",
    "AttachedFile",
    "QueryResult",
    "ResultDocument",
    "SearchArea",
    "SearchDocument",
    "SearchFilter",
    "SolrEngine",
]
