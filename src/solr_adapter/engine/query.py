"""Query compilation.

Turns a SearchFilter and an AccessScope into engine query parameters:
keyword clause, field lists, filter clauses, visibility restrictions,
file grouping and location boosts.
"""

import re
from typing import Any

from pydantic import BaseModel, Field

from solr_adapter.engine.normalizer import GROUP_FIELD, HIGHLIGHT_FIELDS
from solr_adapter.search.schemas import (
    NO_OWNER_ID,
    TYPE_FILE,
    TYPE_TEXT,
    AccessScope,
    ContextLevel,
    SearchFilter,
    format_time_for_engine,
)

QUERY_SIZE = 120

# Slightly larger than the displayed snippet (500) to leave room for "..."
FRAG_SIZE = 510

HIGHLIGHT_START = "@@HI_S@@"
HIGHLIGHT_END = "@@HI_E@@"

COURSE_BOOST = 1
CONTEXT_BOOST = 0.5

GROUP_LIMIT = 3

# Stored fields returned with every result
RESULT_FIELDS = (
    "id",
    "itemid",
    "areaid",
    "contextid",
    "courseid",
    "owneruserid",
    "userid",
    "groupid",
    "type",
    "modified",
    "title",
    "content",
    "description1",
    "description2",
    "solr_filegroupingid",
    "solr_fileid",
    "solr_filecontenthash",
    "solr_fileindexstatus",
)

# Fields the keywords are matched against
MAIN_QUERY_FIELDS = (
    "title",
    "content",
    "description1",
    "description2",
    "solr_filecontent",
)

INDEXED_FILE_FIELDS = (
    "id",
    "modified",
    "title",
    "solr_fileid",
    "solr_filecontenthash",
    "solr_fileindexstatus",
)

NO_CACHE = "{!cache=false}"

_EDGE_UNDERLINE = re.compile(r"\b_|_\b")


def replace_underlines(text: str) -> str:
    """Remove underlines at the edges of words.

    Italic text is converted to plain text as ``_italic_``; the engine
    treats underlines as word characters, so the word could not be found.
    Underlines inside a word are kept.

    Example:
        >>> replace_underlines("_frogs and toads_")
        'frogs and toads'
        >>> replace_underlines("frogs_and_toads")
        'frogs_and_toads'
    """
    return _EDGE_UNDERLINE.sub("", text)


def _any_of(values: Any) -> str:
    return "(" + " OR ".join(str(value) for value in values) + ")"


class EngineQuery(BaseModel):
    """Engine-native query parameters.

    Built once by the compiler; only ``start`` and ``rows`` change while
    paging.
    """

    q: str = "*"
    def_type: str | None = Field(default=None, description="Query parser, e.g. edismax")
    fields: list[str] = Field(default_factory=list)
    query_fields: list[str] = Field(default_factory=list)
    filters: list[str] = Field(default_factory=list)
    boosts: list[str] = Field(default_factory=list)
    sort: str | None = None
    start: int = 0
    rows: int = QUERY_SIZE
    highlight_fields: list[str] = Field(default_factory=list)
    group_field: str | None = None

    def to_params(self) -> dict[str, str | list[str]]:
        """Render as engine request parameters."""
        params: dict[str, str | list[str]] = {
            "q": self.q,
            "start": str(self.start),
            "rows": str(self.rows),
        }
        if self.def_type:
            params["defType"] = self.def_type
        if self.fields:
            params["fl"] = ",".join(self.fields)
        if self.query_fields:
            params["qf"] = " ".join(f"{name}^1" for name in self.query_fields)
        if self.filters:
            params["fq"] = list(self.filters)
        if self.boosts:
            params["bq"] = list(self.boosts)
        if self.sort:
            params["sort"] = self.sort
        if self.highlight_fields:
            params.update(
                {
                    "hl": "true",
                    "hl.fl": ",".join(self.highlight_fields),
                    "hl.fragsize": str(FRAG_SIZE),
                    "hl.simple.pre": HIGHLIGHT_START,
                    "hl.simple.post": HIGHLIGHT_END,
                    "hl.mergeContiguous": "true",
                }
            )
        if self.group_field:
            params.update(
                {
                    "group": "true",
                    "group.field": self.group_field,
                    "group.limit": str(GROUP_LIMIT),
                    "group.ngroups": "true",
                }
            )
        return params


def _base_query(q: str, dismax: bool) -> EngineQuery:
    query = EngineQuery(
        q=q,
        fields=list(RESULT_FIELDS),
        highlight_fields=list(HIGHLIGHT_FIELDS),
    )
    if dismax:
        query.def_type = "edismax"
        query.query_fields = list(MAIN_QUERY_FIELDS)
    return query


def _time_range(search_filter: SearchFilter) -> str:
    start = (
        format_time_for_engine(search_filter.timestart)
        if search_filter.timestart
        else "*"
    )
    end = (
        format_time_for_engine(search_filter.timeend) if search_filter.timeend else "*"
    )
    return f"{NO_CACHE}modified:[{start} TO {end}]"


def _visible_contexts(search_filter: SearchFilter, scope: AccessScope) -> list[int]:
    contexts: dict[int, None] = {}
    for area_id, area_contexts in scope.usercontexts.items():
        if search_filter.areaids and area_id not in search_filter.areaids:
            continue
        for context_id in area_contexts:
            contexts[context_id] = None
    return list(contexts)


def _separate_groups_clause(scope: AccessScope) -> str:
    # Areas in the same context can use visible groups while another uses
    # separate groups; those get an explicit exception.
    exceptions = "".join(
        f" OR (contextid:{context_id} AND areaid:{_any_of(area_ids)})"
        for context_id, area_ids in scope.visiblegroupscontextsareas.items()
    )
    no_group = "(*:* -groupid:[* TO *])"
    unrestricted = f"(*:* -contextid:{_any_of(scope.separategroupscontexts)})"
    if scope.usergroups:
        return (
            f"{no_group} OR groupid:{_any_of(scope.usergroups)} OR "
            f"{unrestricted}{exceptions}"
        )
    return f"{no_group} OR {unrestricted}{exceptions}"


def compile_user_query(
    search_filter: SearchFilter,
    scope: AccessScope,
    *,
    file_indexing: bool = False,
) -> EngineQuery | None:
    """Build the engine query for a user search.

    Args:
        search_filter: Keywords and filters
        scope: Contexts and groups the user can see
        file_indexing: Group results by file group when True

    Returns:
        EngineQuery, or None when the user cannot see any context in the
        requested areas (so there can be no results)
    """
    query = _base_query(replace_underlines(search_filter.q), dismax=True)

    # Per-request filters are not cached so they don't evict the context filters
    if search_filter.title:
        query.filters.append("{!field cache=false f=title}" + search_filter.title)
    if search_filter.areaids:
        query.filters.append(f"{NO_CACHE}areaid:{_any_of(search_filter.areaids)}")
    if search_filter.courseids:
        query.filters.append(f"{NO_CACHE}courseid:{_any_of(search_filter.courseids)}")
    if search_filter.groupids:
        query.filters.append(f"{NO_CACHE}groupid:{_any_of(search_filter.groupids)}")
    if search_filter.userids:
        query.filters.append(f"{NO_CACHE}userid:{_any_of(search_filter.userids)}")
    if search_filter.timestart or search_filter.timeend:
        query.filters.append(_time_range(search_filter))

    query.filters.append(f"owneruserid:{_any_of([NO_OWNER_ID, scope.user_id])}")

    if not scope.everything:
        contexts = _visible_contexts(search_filter, scope)
        if not contexts:
            return None
        query.filters.append(f"contextid:{_any_of(contexts)}")

        if scope.separategroupscontexts:
            query.filters.append(_separate_groups_clause(scope))

    if file_indexing:
        query.group_field = GROUP_FIELD
    else:
        # The index may still hold file records from when file indexing was on
        query.filters.append(f"type:{TYPE_TEXT}")

    if search_filter.order == "location" and search_filter.context is not None:
        context = search_filter.context
        query.boosts.append(f"courseid:{context.course_id}^{COURSE_BOOST}")
        if context.level != ContextLevel.COURSE:
            query.boosts.append(f"contextid:{context.id}^{CONTEXT_BOOST}")

    return query


def compile_id_query(doc_ids: list[str]) -> EngineQuery:
    """Build a plain query fetching the given documents by id."""
    query = _base_query("*", dismax=False)
    query.rows = len(doc_ids)
    query.filters.append(f"{NO_CACHE}id:{_any_of(doc_ids)}")
    return query


def compile_indexed_files_query(doc_id: str, start: int, rows: int) -> EngineQuery:
    """Build a query listing the file records indexed for a document."""
    return EngineQuery(
        q="*",
        fields=list(INDEXED_FILE_FIELDS),
        filters=[
            f"{NO_CACHE}{GROUP_FIELD}:({doc_id})",
            f"type:{TYPE_FILE}",
        ],
        sort="id asc",
        start=start,
        rows=rows,
    )
