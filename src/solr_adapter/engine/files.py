"""Attached file indexing.

Keeps the file records in the index in line with the files currently
attached to a document: unchanged files are skipped, changed and new ones
are (re-)indexed, and records of removed files are deleted.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog

from solr_adapter.engine.normalizer import normalize_response
from solr_adapter.engine.query import EngineQuery, compile_indexed_files_query
from solr_adapter.engine.transport import SolrTransport
from solr_adapter.search.schemas import (
    UNINDEXABLE_MIMETYPES,
    AttachedFile,
    IndexedFileRecord,
    IndexStatus,
    QueryOutcome,
    SearchDocument,
)

logger = structlog.get_logger()

INDEXED_FILES_PAGE_SIZE = 500

_STATUS_PATTERN = re.compile(r'<int [^>]*name="status"[^>]*>(\d*)</int>', re.I)
_MSG_PATTERN = re.compile(r'<str [^>]*name="msg"[^>]*>(.*?)</str>', re.I | re.S)
_TITLE_PATTERN = re.compile(r"<title[^>]*>([^>]*)</title>", re.I)


def _extract_error(body: str) -> str | None:
    for pattern in (_MSG_PATTERN, _TITLE_PATTERN):
        if match := pattern.search(body):
            return match.group(1)
    return None


class FileIndexer:
    """Sends attached files to the engine's text extraction handler."""

    def __init__(
        self,
        transport: SolrTransport,
        add_record: Callable[[dict[str, Any]], bool],
        max_index_file_kb: int = 0,
    ):
        """Initialize file indexer.

        Args:
            transport: Engine transport
            add_record: Adds a plain engine record (used for file records
                whose content is not extracted)
            max_index_file_kb: Largest file to extract; 0 means no limit
        """
        self._transport = transport
        self._add_record = add_record
        self._max_index_file_kb = max_index_file_kb

    def is_indexable(self, file: AttachedFile) -> bool:
        """Check whether current policy allows extracting a file's text."""
        if self._max_index_file_kb and file.filesize > self._max_index_file_kb * 1024:
            return False
        return file.mimetype not in UNINDEXABLE_MIMETYPES

    def extract_params(
        self, filedoc: dict[str, Any], filename: str
    ) -> list[tuple[str, str]]:
        """Build the extraction handler parameters for a file record."""
        params = [
            ("wt", "xml"),
            # Don't create a field for every metadata item found in the file
            ("uprefix", "ignored_"),
            ("captureAttr", "true"),
            ("fmap.content", "solr_filecontent"),
            ("fmap.media_white_point", "ignored_mwp"),
            ("fmap.media_black_point", "ignored_mbp"),
        ]
        # Our values go through a temporary name so that metadata extracted
        # from the file cannot overwrite them.
        for key, value in filedoc.items():
            params.append((f"fmap.{key}", f"ignored_{key}"))
            params.append((f"literal.mdltmp_{key}", str(value)))
            params.append((f"fmap.mdltmp_{key}", key))
        params.append(("resource.name", filename))
        return params

    def add_stored_file(self, document: SearchDocument, file: AttachedFile) -> bool:
        """Index one attached file.

        Files blocked by policy, or whose extraction fails, are still
        recorded (without content) with the matching index status.

        Returns:
            True if the file content was extracted and indexed
        """
        filedoc = document.export_file_for_engine(file)

        if not self.is_indexable(file):
            filedoc["solr_fileindexstatus"] = int(IndexStatus.BLOCKED)
            self._add_record(filedoc)
            return False

        params = self.extract_params(filedoc, file.filename)
        try:
            response = self._transport.extract(params, file.content)
        except httpx.HTTPError as e:
            logger.warning(
                "error while indexing file",
                doc_id=filedoc["id"],
                filename=file.filename,
                error=str(e),
            )
        else:
            if response.status_code != 200:
                logger.info(
                    "engine refused file",
                    doc_id=filedoc["id"],
                    status_code=response.status_code,
                    error=_extract_error(response.text),
                )
            elif match := _STATUS_PATTERN.search(response.text):
                if int(match.group(1) or 0) == 0:
                    return True
                logger.warning(
                    "unexpected engine status while indexing file",
                    doc_id=filedoc["id"],
                    status=int(match.group(1)),
                )
            else:
                logger.warning(
                    "unexpected engine response while indexing file",
                    doc_id=filedoc["id"],
                    response=response.text.strip().split("\n", 1)[0],
                )

        filedoc["solr_fileindexstatus"] = int(IndexStatus.FAILED)
        self._add_record(filedoc)
        return False


@dataclass
class SyncReport:
    """What a file synchronization did for one document."""

    indexed: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)


def needs_reindex(
    record: IndexedFileRecord, file: AttachedFile, indexable: bool
) -> bool:
    """Compare an indexed file record with the live file.

    Modification time alone is not reliable, so title and content hash
    are compared too. A file blocked by policy last time is re-indexed
    once policy accepts it.
    """
    if record.modified != file.time_modified:
        return True
    if record.title != file.filename:
        return True
    if record.content_hash != file.content_hash:
        return True
    return record.index_status == IndexStatus.BLOCKED and indexable


class FileSetSynchronizer:
    """Reconciles a document's attached files with its indexed file records."""

    def __init__(
        self,
        fetch: Callable[[EngineQuery], QueryOutcome],
        delete_record: Callable[[str], None],
        file_indexer: FileIndexer,
        page_size: int = INDEXED_FILES_PAGE_SIZE,
    ):
        """Initialize synchronizer.

        Args:
            fetch: Runs a query against the engine
            delete_record: Deletes a single engine record by id
            file_indexer: Indexes attached files
            page_size: Indexed file records fetched per page
        """
        self._fetch = fetch
        self._delete_record = delete_record
        self._file_indexer = file_indexer
        self._page_size = page_size

    def get_indexed_files(
        self, doc_id: str, start: int = 0, rows: int | None = None
    ) -> tuple[int, list[IndexedFileRecord]]:
        """Fetch a page of the file records indexed for a document.

        Returns:
            Total number of records, and the records of this page
        """
        outcome = self._fetch(
            compile_indexed_files_query(doc_id, start, rows or self._page_size)
        )
        if outcome.failed:
            logger.warning(
                "could not list indexed files", doc_id=doc_id, error=outcome.error
            )
        page = normalize_response(outcome.data)
        if not page.found:
            return 0, []
        return page.found, [IndexedFileRecord.from_engine(doc) for doc in page.docs]

    def sync(self, document: SearchDocument) -> SyncReport:
        """Bring the indexed files of a document up to date.

        Deletions are collected over all pages first and applied at the
        end, so deleting does not shift the pages still being read.
        """
        report = SyncReport()
        files = dict(document.files)

        if not document.is_new:
            rows = self._page_size
            found, records = self.get_indexed_files(document.id, 0, rows)
            count = 0
            while True:
                for record in records:
                    file = files.get(record.file_id)
                    if file is None:
                        report.deleted.append(record.id)
                        continue
                    indexable = self._file_indexer.is_indexable(file)
                    if not needs_reindex(record, file, indexable):
                        del files[record.file_id]
                        report.unchanged.append(record.file_id)
                count += rows
                if count >= found:
                    break
                found, records = self.get_indexed_files(document.id, count, rows)

            for record_id in report.deleted:
                self._delete_record(record_id)

        for file in files.values():
            self._file_indexer.add_stored_file(document, file)
            report.indexed.append(file.file_id)

        logger.debug(
            "document files synchronized",
            doc_id=document.id,
            indexed=len(report.indexed),
            deleted=len(report.deleted),
            unchanged=len(report.unchanged),
        )
        return report
