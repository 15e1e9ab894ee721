"""Access filtering of engine results.

The engine only knows coarse visibility (contexts, owner, groups). Each
remaining candidate is checked with its search area before it is
returned; stale index entries found on the way are purged.
"""

from collections.abc import Callable

import structlog

from solr_adapter.engine.normalizer import NormalizedResponse, to_candidate
from solr_adapter.search.areas import AreaRegistry, SearchArea
from solr_adapter.search.schemas import (
    NO_OWNER_ID,
    AccessDecision,
    Candidate,
    PaginationState,
    ResultDocument,
)

logger = structlog.get_logger()


def is_foreign_owned(candidate: Candidate, user_id: int) -> bool:
    """True when the record belongs to another user.

    Owned records are never visible to other users, whatever the area says.
    """
    return candidate.owneruserid not in (NO_OWNER_ID, user_id)


class ResultAssembler:
    """Classifies candidates as granted, denied or stale.

    Updates the PaginationState of the query being executed and deletes
    stale records through ``purge``.
    """

    def __init__(
        self,
        registry: AreaRegistry,
        purge: Callable[[str], bool],
        user_id: int,
    ):
        """Initialize assembler.

        Args:
            registry: Resolves area ids to search areas
            purge: Deletes a document (and its files) from the index by id;
                returns False if the delete failed
            user_id: Id of the user the results are for
        """
        self._registry = registry
        self._purge = purge
        self._user_id = user_id

    @property
    def user_id(self) -> int:
        return self._user_id

    @property
    def registry(self) -> AreaRegistry:
        return self._registry

    def check(
        self,
        area: SearchArea,
        candidate: Candidate,
        state: PaginationState,
        purge_id: str | None = None,
    ) -> AccessDecision:
        """Run the area access check and apply its counter side effects.

        Denied records count as skipped. Stale ones are deleted from the
        index straight away and, once the delete succeeded, removed from the
        processed and total counts.

        Args:
            area: Search area owning the candidate
            candidate: Record being checked
            state: Counters for the running query
            purge_id: Document id to delete when stale (defaults to the
                candidate's own id)
        """
        decision = area.check_access(candidate.itemid)
        if decision == AccessDecision.DENIED:
            state.record_denied()
            return decision

        state.record_processed()
        if decision == AccessDecision.STALE:
            doc_id = purge_id or candidate.id
            logger.info(
                "purging stale search document",
                doc_id=doc_id,
                area_id=candidate.areaid,
            )
            # A record still in the index keeps its place in the paging offset
            if self._purge(doc_id):
                state.record_stale()
        return decision

    def process(
        self,
        response: NormalizedResponse,
        state: PaginationState,
        limit: int = 0,
        *,
        skip_access_check: bool = False,
    ) -> list[ResultDocument]:
        """Filter one page of plain (ungrouped) results.

        Args:
            response: Normalized engine page
            state: Counters for the running query
            limit: Stop once this many documents are granted (0 for all)
            skip_access_check: Treat every candidate as granted; only for
                records whose access is already known

        Returns:
            Granted documents in engine order
        """
        out: list[ResultDocument] = []
        if not response.found:
            return out

        for doc in response.docs:
            candidate = to_candidate(doc, response.highlighting)

            if is_foreign_owned(candidate, self._user_id):
                state.record_processed()
                continue

            area = self._registry.get(candidate.areaid)
            if area is None:
                # Area removed since the record was indexed
                state.record_processed()
                continue

            if skip_access_check:
                state.record_processed()
                decision = AccessDecision.GRANTED
            else:
                decision = self.check(area, candidate, state)

            if decision == AccessDecision.GRANTED:
                out.append(ResultDocument.from_candidate(candidate))

            if limit and len(out) >= limit:
                break

        return out
