"""Search area protocol and registry.

A search area is one category of indexable content (forum posts, pages,
...). Each area owns the access rules for its own items; the engine only
asks it for a decision per item.
"""

from typing import Protocol, runtime_checkable

import structlog

from solr_adapter.search.schemas import AccessDecision

logger = structlog.get_logger()


@runtime_checkable
class SearchArea(Protocol):
    """Protocol for search areas consulted while filtering results.

    Areas implement this protocol for structural subtyping -
    they don't need to inherit, just implement the members.
    """

    area_id: str

    def check_access(self, itemid: int) -> AccessDecision:
        """Decide whether the current user may see an item.

        Args:
            itemid: Id of the item within this area

        Returns:
            GRANTED, DENIED, or STALE when the item no longer exists
        """
        ...


class AreaRegistry:
    """Resolves area ids to search areas.

    Populated by the host application with the areas it supports.
    """

    def __init__(self, areas: list[SearchArea] | None = None):
        self._areas: dict[str, SearchArea] = {}
        for area in areas or []:
            self.register(area)

    def register(self, area: SearchArea) -> None:
        """Add or replace an area."""
        self._areas[area.area_id] = area
        logger.debug("search area registered", area_id=area.area_id)

    def get(self, area_id: str) -> SearchArea | None:
        """Get the area for an id, or None if it is not (or no longer) known."""
        return self._areas.get(area_id)

    def __contains__(self, area_id: str) -> bool:
        return area_id in self._areas

    def __len__(self) -> int:
        return len(self._areas)
