"""Merging of file-grouped results.

With file indexing on, every logical document is a group: the main
record (whose id is the group id) plus file records pointing at it. The
engine pages group members independently, so a group on this page may
contain only file records. Those groups are completed with one extra
fetch by id, and the output keeps the engine's group order.
"""

from collections.abc import Callable
from typing import Any

import structlog

from solr_adapter.engine.assembler import ResultAssembler, is_foreign_owned
from solr_adapter.engine.normalizer import (
    NormalizedResponse,
    ResponseGroup,
    normalize_response,
    to_candidate,
)
from solr_adapter.engine.query import EngineQuery, compile_id_query
from solr_adapter.search.schemas import (
    AccessDecision,
    Candidate,
    PaginationState,
    QueryOutcome,
    ResultDocument,
)

logger = structlog.get_logger()


def _split_group(group: ResponseGroup) -> tuple[dict[str, Any] | None, list[str]]:
    """Separate the main record from the attached file ids of a group."""
    main_doc = None
    file_ids: list[str] = []
    for doc in group.docs:
        if str(doc.get("id")) == group.group_id:
            main_doc = doc
        elif doc.get("solr_fileid") is not None:
            file_ids.append(str(doc["solr_fileid"]))
    return main_doc, file_ids


class GroupedFileMerger:
    """Turns grouped engine pages into documents with attached files."""

    def __init__(
        self,
        assembler: ResultAssembler,
        fetch: Callable[[EngineQuery], QueryOutcome],
    ):
        """Initialize merger.

        Args:
            assembler: Performs access checks and counter updates
            fetch: Runs a query against the engine
        """
        self._assembler = assembler
        self._fetch = fetch

    def process(
        self,
        response: NormalizedResponse,
        state: PaginationState,
        limit: int = 0,
    ) -> list[ResultDocument]:
        """Process one grouped page.

        Args:
            response: Normalized grouped engine page
            state: Counters for the running query (one unit per group)
            limit: Stop after this many granted groups (0 for all)

        Returns:
            Documents in engine group order, with matching files attached
        """
        ordered_ids: list[str] = []
        complete: dict[str, ResultDocument] = {}
        incomplete: dict[str, list[str]] = {}
        granted = 0

        for group in response.groups:
            if not group.docs:
                state.record_processed()
                continue
            main_doc, file_ids = _split_group(group)

            # Any member carries the area and item of the main document
            representative = Candidate.from_engine(main_doc or group.docs[0])
            if is_foreign_owned(representative, self._assembler.user_id):
                state.record_processed()
                continue

            area = self._assembler.registry.get(representative.areaid)
            if area is None:
                state.record_processed()
                continue

            decision = self._assembler.check(
                area, representative, state, purge_id=group.group_id
            )
            if decision != AccessDecision.GRANTED:
                continue
            granted += 1

            ordered_ids.append(group.group_id)
            if main_doc is None:
                # Main record is on another page; resolve it after the loop
                incomplete[group.group_id] = file_ids
            else:
                doc = ResultDocument.from_candidate(
                    to_candidate(main_doc, response.highlighting)
                )
                for file_id in file_ids:
                    doc.add_stored_file(file_id)
                complete[group.group_id] = doc

            if limit and granted >= limit:
                break

        resolved = self.resolve_missing(incomplete)

        out = []
        for group_id in ordered_ids:
            if group_id in complete:
                out.append(complete[group_id])
            elif group_id in resolved:
                out.append(resolved[group_id])
            else:
                logger.debug("dropping unresolved file group", group_id=group_id)
        return out

    def resolve_missing(
        self, missing: dict[str, list[str]]
    ) -> dict[str, ResultDocument]:
        """Fetch main documents that were not on the page and attach files.

        Args:
            missing: File ids to attach, keyed by main document id

        Returns:
            Completed documents keyed by document id
        """
        if not missing:
            return {}

        outcome = self._fetch(compile_id_query(list(missing)))
        if outcome.failed:
            logger.warning(
                "could not fetch missing grouped documents",
                count=len(missing),
                error=outcome.error,
            )
            return {}

        # Access was already checked for these groups; the counters of the
        # main query are not touched by this lookup.
        results = self._assembler.process(
            normalize_response(outcome.data),
            PaginationState(),
            skip_access_check=True,
        )

        out: dict[str, ResultDocument] = {}
        for result in results:
            if result.id not in missing:
                continue
            for file_id in missing[result.id]:
                result.add_stored_file(file_id)
            out[result.id] = result
        return out
