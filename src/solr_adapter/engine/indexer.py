"""Document indexing and deletion."""

from typing import Any

import structlog

from solr_adapter.engine.files import FileSetSynchronizer
from solr_adapter.engine.normalizer import GROUP_FIELD
from solr_adapter.engine.query import replace_underlines
from solr_adapter.engine.transport import SolrTransport
from solr_adapter.errors import EngineConnectionError, EngineError
from solr_adapter.search.schemas import SearchDocument

logger = structlog.get_logger()

# Milliseconds within which the engine commits added documents
AUTOCOMMIT_WITHIN = 15000


def prepare_record(doc: dict[str, Any]) -> dict[str, Any]:
    """Clean a field-map before it is sent to the engine.

    Italic markers in the text content are stripped the same way as in
    queries, otherwise italic words could not be found.
    """
    record = dict(doc)
    if isinstance(record.get("content"), str):
        record["content"] = replace_underlines(record["content"])
    return record


class DocumentIndexer:
    """Adds and removes documents in the engine index."""

    def __init__(
        self,
        transport: SolrTransport,
        synchronizer: FileSetSynchronizer | None = None,
    ):
        """Initialize indexer.

        Args:
            transport: Engine transport
            synchronizer: Keeps attached files in sync; required for file
                indexing
        """
        self._transport = transport
        self.synchronizer = synchronizer

    def add_record(self, doc: dict[str, Any]) -> bool:
        """Add one engine record. Failures are logged, not raised."""
        try:
            self._transport.add_documents(
                [prepare_record(doc)], commit_within=AUTOCOMMIT_WITHIN
            )
            return True
        except EngineConnectionError as e:
            # Only the first line, the rest is a server-side stack trace
            logger.warning(
                "engine error adding document",
                doc_id=doc.get("id"),
                error=str(e).split("\n", 1)[0],
            )
            return False

    def add_records(self, docs: list[dict[str, Any]]) -> tuple[int, int, int]:
        """Add engine records in one batch.

        If the batch fails, records are added one at a time so the failing
        ones can be reported. Adding overwrites, so repeats are harmless.

        Returns:
            (successful, failed, batches sent)
        """
        try:
            self._transport.add_documents(
                [prepare_record(doc) for doc in docs],
                commit_within=AUTOCOMMIT_WITHIN,
            )
            return len(docs), 0, 1
        except EngineConnectionError as e:
            logger.info("batch add failed, retrying one by one", error=str(e))

        success = failure = 0
        for doc in docs:
            if self.add_record(doc):
                success += 1
            else:
                failure += 1
        return success, failure, len(docs)

    def _sync_files(self, document: SearchDocument) -> None:
        if self.synchronizer is None:
            return
        self.synchronizer.sync(document)

    def add_document(
        self, document: SearchDocument, file_indexing: bool = False
    ) -> bool:
        """Add a document, and optionally bring its attached files up to date.

        This does not commit.
        """
        if not self.add_record(document.export_for_engine()):
            return False
        if file_indexing:
            self._sync_files(document)
        return True

    def add_document_batch(
        self, documents: list[SearchDocument], file_indexing: bool = False
    ) -> tuple[int, int, int]:
        """Add several documents at once.

        Files are processed one document at a time afterwards.

        Returns:
            (successful, failed, batches sent)
        """
        counts = self.add_records([doc.export_for_engine() for doc in documents])
        if file_indexing:
            for document in documents:
                self._sync_files(document)
        return counts

    def commit(self) -> None:
        self._transport.commit()

    def delete_by_id(self, doc_id: str) -> None:
        """Delete a document together with all of its file records."""
        self._transport.delete_by_query(f"{GROUP_FIELD}:{doc_id}")
        self.commit()

    def delete_record(self, record_id: str) -> None:
        """Delete a single engine record (e.g. one file record)."""
        self._transport.delete_by_id(record_id)

    def delete(self, area_id: str | None = None) -> None:
        """Delete all documents of an area, or the whole index."""
        self._transport.delete_by_query(f"areaid:{area_id}" if area_id else "*:*")
        self.commit()

    def _delete_for(self, field: str, value: int) -> bool:
        try:
            self._transport.delete_by_query(f"{field}:{value}")
            self.commit()
        except EngineConnectionError as e:
            raise EngineError(f"Error deleting from index: {e}") from e
        return True

    def delete_index_for_context(self, context_id: int) -> bool:
        """Delete everything indexed for a deleted context."""
        return self._delete_for("contextid", context_id)

    def delete_index_for_course(self, course_id: int) -> bool:
        """Delete everything indexed for a deleted course."""
        return self._delete_for("courseid", course_id)
