"""Tests for GroupedFileMerger."""

from unittest.mock import MagicMock

from solr_adapter.engine.assembler import ResultAssembler
from solr_adapter.engine.grouping import GroupedFileMerger
from solr_adapter.engine.normalizer import normalize_response
from solr_adapter.search.areas import AreaRegistry
from solr_adapter.search.schemas import AccessDecision, PaginationState


def _merger(index, registry, user_id=7):
    assembler = ResultAssembler(registry, index.purge, user_id)
    return GroupedFileMerger(assembler, index.fetch)


class TestGroupedMerge:
    """Tests for merging grouped pages."""

    def test_primary_on_later_page(
        self, registry, make_index, make_doc, make_file_doc, make_grouped_page
    ):
        """Should fetch a main document missing from the page and attach its file."""
        index = make_index([make_doc(1)])
        page = normalize_response(
            make_grouped_page([("mod_forum-post-1", [make_file_doc(1, "55")])])
        )
        state = PaginationState(total_engine_docs=1)

        results = _merger(index, registry).process(page, state)

        assert len(results) == 1
        assert results[0].id == "mod_forum-post-1"
        assert results[0].title == "Post 1"
        assert results[0].file_ids == ["55"]
        # One lookup by id, and it leaves the query counters alone
        assert len(index.calls) == 1
        assert state.processed_docs == 1

    def test_preserves_group_order(
        self, make_area, make_index, make_doc, make_file_doc, make_grouped_page
    ):
        """Should keep engine group order, leaving out denied groups."""
        area = make_area(
            decide=lambda itemid: (
                AccessDecision.DENIED if itemid == 3 else AccessDecision.GRANTED
            )
        )
        index = make_index([make_doc(2)])
        page = normalize_response(
            make_grouped_page(
                [
                    ("mod_forum-post-1", [make_doc(1)]),
                    ("mod_forum-post-2", [make_file_doc(2, "21")]),
                    ("mod_forum-post-3", [make_doc(3)]),
                    ("mod_forum-post-4", [make_doc(4), make_file_doc(4, "41")]),
                ]
            )
        )
        state = PaginationState(total_engine_docs=4)

        results = _merger(index, AreaRegistry([area])).process(page, state)

        assert [doc.itemid for doc in results] == [1, 2, 4]
        assert results[2].file_ids == ["41"]
        assert state.processed_docs == 3
        assert state.skipped_docs == 1

    def test_unresolved_group_is_dropped(
        self, registry, make_index, make_doc, make_file_doc, make_grouped_page
    ):
        """Should leave out groups whose main document cannot be found."""
        index = make_index([])
        page = normalize_response(
            make_grouped_page(
                [
                    ("mod_forum-post-1", [make_doc(1)]),
                    ("mod_forum-post-2", [make_file_doc(2, "21")]),
                ]
            )
        )

        results = _merger(index, registry).process(
            page, PaginationState(total_engine_docs=2)
        )

        assert [doc.itemid for doc in results] == [1]

    def test_failed_lookup_drops_incomplete_groups(
        self, registry, make_index, make_doc, make_file_doc, make_grouped_page
    ):
        """Should keep complete groups when the id lookup fails."""
        index = make_index([make_doc(2)])
        index.failing_calls = {1}
        page = normalize_response(
            make_grouped_page(
                [
                    ("mod_forum-post-1", [make_doc(1)]),
                    ("mod_forum-post-2", [make_file_doc(2, "21")]),
                ]
            )
        )

        results = _merger(index, registry).process(
            page, PaginationState(total_engine_docs=2)
        )

        assert [doc.itemid for doc in results] == [1]

    def test_stale_group_purged_by_group_id(
        self, make_area, make_index, make_file_doc, make_grouped_page
    ):
        """Should purge the whole group when its item no longer exists."""
        area = make_area(decide=lambda itemid: AccessDecision.STALE)
        index = make_index([])
        page = normalize_response(
            make_grouped_page([("mod_forum-post-1", [make_file_doc(1, "55")])])
        )
        state = PaginationState(total_engine_docs=1)

        results = _merger(index, AreaRegistry([area])).process(page, state)

        assert results == []
        assert index.purged == ["mod_forum-post-1"]
        assert state.total_engine_docs == 0
        assert state.processed_docs == 0

    def test_foreign_owned_group_skipped(
        self, area, registry, make_index, make_doc, make_grouped_page
    ):
        """Should drop groups owned by another user without an access check."""
        index = make_index([])
        page = normalize_response(
            make_grouped_page([("mod_forum-post-1", [make_doc(1, owneruserid=8)])])
        )
        state = PaginationState(total_engine_docs=1)

        results = _merger(index, registry).process(page, state)

        assert results == []
        assert area.checked == []
        assert state.processed_docs == 1

    def test_empty_group_counts_as_processed(
        self, area, registry, make_index, make_doc, make_grouped_page
    ):
        """Should count a group without members so paging moves past it."""
        index = make_index([])
        page = normalize_response(
            make_grouped_page(
                [
                    ("mod_forum-post-9", []),
                    ("mod_forum-post-1", [make_doc(1)]),
                ]
            )
        )
        state = PaginationState(total_engine_docs=2)

        results = _merger(index, registry).process(page, state)

        assert [doc.itemid for doc in results] == [1]
        assert area.checked == [1]
        assert state.processed_docs == 2
        assert state.consumed == 2

    def test_stops_at_limit(self, registry, make_index, make_doc, make_grouped_page):
        """Should stop after the limit of granted groups."""
        index = make_index([])
        page = normalize_response(
            make_grouped_page(
                [(f"mod_forum-post-{i}", [make_doc(i)]) for i in range(1, 5)]
            )
        )
        state = PaginationState(total_engine_docs=4)

        results = _merger(index, registry).process(page, state, limit=2)

        assert [doc.itemid for doc in results] == [1, 2]
        assert state.consumed == 2

    def test_highlighting_applied_to_main_document(
        self, registry, make_doc, make_grouped_page
    ):
        """Should merge highlighted fragments into the main document."""
        data = make_grouped_page([("mod_forum-post-1", [make_doc(1)])])
        data["highlighting"] = {
            "mod_forum-post-1": {"content": ["@@HI_S@@Content@@HI_E@@ of post 1"]}
        }

        results = _merger(MagicMock(), registry).process(
            normalize_response(data), PaginationState(total_engine_docs=1)
        )

        assert results[0].content == "@@HI_S@@Content@@HI_E@@ of post 1"
