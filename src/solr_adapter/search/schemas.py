"""Search domain schemas.

Defines the request-side models (filters, access scope), the records the
engine hands back (candidates, indexed file records), the documents we
return to callers, and the documents and files we send for indexing.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum, IntEnum
from typing import Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from solr_adapter.errors import (
    MultiValuedFieldError,
    StructuralDataError,
    UnexpectedFieldError,
)

# Owner id used by documents that any user may see
NO_OWNER_ID = 0

# Document types stored in the "type" field
TYPE_TEXT = 1
TYPE_FILE = 2

ENGINE_DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

# Attachments that never carry indexable text
UNINDEXABLE_MIMETYPES = frozenset({"application/vnd.moodle.backup"})


def format_time_for_engine(timestamp: int) -> str:
    """Format a unix timestamp in the engine's UTC date syntax.

    Example:
        >>> format_time_for_engine(0)
        '1970-01-01T00:00:00Z'
    """
    return datetime.fromtimestamp(timestamp, tz=UTC).strftime(ENGINE_DATE_FORMAT)


def import_time_from_engine(value: str) -> int:
    """Convert an engine date string back into a unix timestamp."""
    parsed = datetime.strptime(value, ENGINE_DATE_FORMAT).replace(tzinfo=UTC)
    return int(parsed.timestamp())


def _engine_time(value: Any) -> Any:
    if isinstance(value, str) and not value.lstrip("-").isdigit():
        return import_time_from_engine(value)
    return value


class AccessDecision(str, Enum):
    """Outcome of a search area's access check for one item."""

    GRANTED = "granted"
    DENIED = "denied"
    STALE = "stale"


class IndexStatus(IntEnum):
    """Index status stored on file records."""

    OK = 1
    BLOCKED = 0
    FAILED = -1


class ContextLevel(str, Enum):
    """Level of the context a search was launched from."""

    SYSTEM = "system"
    CATEGORY = "category"
    COURSE = "course"
    MODULE = "module"
    BLOCK = "block"
    USER = "user"


class SearchContext(BaseModel):
    """Context the user searched from, used for location ordering."""

    model_config = ConfigDict(frozen=True)

    id: int = Field(description="Context id")
    level: ContextLevel = Field(description="Context level")
    course_id: int | None = Field(
        default=None, description="Id of the enclosing course, if any"
    )
    name: str = Field(default="", description="Display name of the context")


class SearchFilter(BaseModel):
    """Abstract search request: keywords plus optional filters."""

    model_config = ConfigDict(frozen=True)

    q: str = Field(description="Keyword query")
    title: str | None = Field(default=None, description="Exact title filter")
    areaids: list[str] = Field(default_factory=list)
    courseids: list[int] = Field(default_factory=list)
    groupids: list[int] = Field(default_factory=list)
    userids: list[int] = Field(default_factory=list)
    timestart: int | None = Field(default=None, description="Unix timestamp")
    timeend: int | None = Field(default=None, description="Unix timestamp")
    order: Literal["relevance", "location"] = Field(default="relevance")
    context: SearchContext | None = Field(default=None)

    @model_validator(mode="after")
    def _location_needs_course(self) -> "SearchFilter":
        if self.order == "location" and (
            self.context is None or self.context.course_id is None
        ):
            raise ValueError("Location ordering requires a context inside a course")
        return self


class AccessScope(BaseModel):
    """What the current user is allowed to see.

    Either ``everything`` is set, or ``usercontexts`` maps each search area
    id to the context ids visible within that area.
    """

    model_config = ConfigDict(frozen=True)

    user_id: int = Field(description="Id of the user running the search")
    everything: bool = Field(default=False)
    usercontexts: dict[str, list[int]] = Field(default_factory=dict)
    separategroupscontexts: list[int] = Field(
        default_factory=list,
        description="Contexts where documents are restricted to group members",
    )
    visiblegroupscontextsareas: dict[int, list[str]] = Field(
        default_factory=dict,
        description="Per-context area ids exempt from group separation",
    )
    usergroups: list[int] = Field(default_factory=list)

    @classmethod
    def sees_everything(cls, user_id: int) -> "AccessScope":
        """Build a scope for a user with access to all contexts."""
        return cls(user_id=user_id, everything=True)


class Candidate(BaseModel):
    """One record returned by the engine, before access is decided."""

    model_config = ConfigDict(extra="forbid")

    id: str
    itemid: int
    areaid: str
    contextid: int
    courseid: int | None = None
    owneruserid: int = NO_OWNER_ID
    userid: int | None = None
    groupid: int | None = None
    type: int = TYPE_TEXT
    modified: int = 0
    title: str = ""
    content: str | None = None
    description1: str | None = None
    description2: str | None = None
    solr_filegroupingid: str | None = None
    solr_fileid: str | None = None
    solr_filecontenthash: str | None = None
    solr_fileindexstatus: int | None = None

    @field_validator("modified", mode="before")
    @classmethod
    def _parse_modified(cls, value: Any) -> Any:
        return _engine_time(value)

    @field_validator("id", "solr_filegroupingid", "solr_fileid", mode="before")
    @classmethod
    def _id_as_text(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value

    @classmethod
    def from_engine(cls, doc: dict[str, Any]) -> "Candidate":
        """Build a candidate from an engine field-map.

        Raises:
            UnexpectedFieldError: If the record has fields outside the schema
            MultiValuedFieldError: If any field holds several values
            StructuralDataError: If a value does not fit its field
        """
        unknown = sorted(set(doc) - set(cls.model_fields))
        if unknown:
            raise UnexpectedFieldError(unknown)
        for name, value in doc.items():
            if isinstance(value, list):
                raise MultiValuedFieldError(name)
        try:
            return cls(**doc)
        except ValidationError as e:
            raise StructuralDataError(f"Malformed engine record: {e}") from e

    @property
    def is_file(self) -> bool:
        return self.solr_fileid is not None


class ResultDocument(BaseModel):
    """A search result as handed back to the caller."""

    id: str
    itemid: int
    areaid: str
    contextid: int
    courseid: int | None = None
    owneruserid: int = NO_OWNER_ID
    userid: int | None = None
    groupid: int | None = None
    modified: int = 0
    title: str = ""
    content: str | None = None
    description1: str | None = None
    description2: str | None = None
    file_ids: list[str] = Field(
        default_factory=list, description="Matching attached files, in rank order"
    )

    @classmethod
    def from_candidate(cls, candidate: Candidate) -> "ResultDocument":
        """Copy the displayable fields of an access-checked candidate."""
        return cls(
            **candidate.model_dump(
                include={
                    "id",
                    "itemid",
                    "areaid",
                    "contextid",
                    "courseid",
                    "owneruserid",
                    "userid",
                    "groupid",
                    "modified",
                    "title",
                    "content",
                    "description1",
                    "description2",
                }
            )
        )

    def add_stored_file(self, file_id: str) -> None:
        """Attach a matching file to this result."""
        self.file_ids.append(file_id)


class IndexedFileRecord(BaseModel):
    """Metadata the engine holds for a previously indexed file."""

    id: str = Field(description="Engine record id")
    modified: int = Field(description="File modification time when indexed")
    title: str = Field(description="File name when indexed")
    file_id: str
    content_hash: str
    index_status: IndexStatus

    @classmethod
    def from_engine(cls, doc: dict[str, Any]) -> "IndexedFileRecord":
        """Copy the bare minimum needed for file synchronization."""
        return cls(
            id=doc["id"],
            modified=_engine_time(doc["modified"]),
            title=doc["title"],
            file_id=str(doc["solr_fileid"]),
            content_hash=doc["solr_filecontenthash"],
            index_status=doc["solr_fileindexstatus"],
        )


class AttachedFile(BaseModel):
    """A file currently attached to a document."""

    file_id: str
    filename: str
    content_hash: str
    time_modified: int
    filesize: int = 0
    mimetype: str = "application/octet-stream"
    content: bytes = b""


class SearchDocument(BaseModel):
    """A logical document to be sent to the engine for indexing.

    The content itself is produced by the owning search area; this model
    only knows how to export it in the engine's field layout.
    """

    itemid: int
    areaid: str
    contextid: int
    courseid: int | None = None
    owneruserid: int = NO_OWNER_ID
    userid: int | None = None
    groupid: int | None = None
    modified: int
    title: str
    content: str = ""
    description1: str | None = None
    description2: str | None = None
    files: dict[str, AttachedFile] = Field(default_factory=dict)
    is_new: bool = Field(
        default=False, description="True when the document was never indexed"
    )

    @property
    def id(self) -> str:
        return f"{self.areaid}-{self.itemid}"

    def add_file(self, file: AttachedFile) -> None:
        self.files[file.file_id] = file

    def export_for_engine(self) -> dict[str, Any]:
        """Return the field-map sent to the engine for this document."""
        data: dict[str, Any] = {
            "id": self.id,
            "itemid": self.itemid,
            "areaid": self.areaid,
            "contextid": self.contextid,
            "courseid": self.courseid,
            "owneruserid": self.owneruserid,
            "userid": self.userid,
            "groupid": self.groupid,
            "type": TYPE_TEXT,
            "modified": format_time_for_engine(self.modified),
            "title": self.title,
            "content": self.content,
            "description1": self.description1,
            "description2": self.description2,
            "solr_filegroupingid": self.id,
        }
        return {key: value for key, value in data.items() if value is not None}

    def export_file_for_engine(self, file: AttachedFile) -> dict[str, Any]:
        """Return the field-map for one attached file of this document."""
        data = self.export_for_engine()
        # Text content lives on the main document only
        for key in ("content", "description1", "description2"):
            data.pop(key, None)
        data.update(
            {
                "id": f"{self.id}-solrfile{file.file_id}",
                "type": TYPE_FILE,
                "solr_fileid": file.file_id,
                "solr_filecontenthash": file.content_hash,
                "solr_fileindexstatus": int(IndexStatus.OK),
                "title": file.filename,
                "modified": format_time_for_engine(file.time_modified),
            }
        )
        return data


@dataclass
class PaginationState:
    """Running counters for a single query execution.

    A consumed candidate counts once, either as processed or as skipped
    (access denied). Stale records are purged from both the processed and
    the total counts. The next page always starts at ``consumed``.
    """

    total_engine_docs: int = 0
    processed_docs: int = 0
    skipped_docs: int = 0

    @property
    def consumed(self) -> int:
        return self.processed_docs + self.skipped_docs

    @property
    def remaining(self) -> int:
        return self.total_engine_docs - self.consumed

    def record_processed(self) -> None:
        self.processed_docs += 1

    def record_denied(self) -> None:
        self.skipped_docs += 1

    def record_stale(self) -> None:
        # The record was deleted from the engine as soon as we saw it
        self.processed_docs -= 1
        self.total_engine_docs -= 1

    def available_count(self) -> int:
        """Total results available to the user, excluding denied ones."""
        return self.total_engine_docs - self.skipped_docs


class OutcomeStatus(str, Enum):
    """Kind of result an engine call produced."""

    OK = "ok"
    EMPTY = "empty"
    FAILED = "failed"


class QueryOutcome(BaseModel):
    """Result of one engine request.

    Failures are carried as data so that "zero results" and "the call
    failed" are never confused.
    """

    status: OutcomeStatus
    data: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None

    @classmethod
    def success(cls, data: dict[str, Any]) -> "QueryOutcome":
        return cls(status=OutcomeStatus.OK, data=data)

    @classmethod
    def empty(cls, data: dict[str, Any] | None = None) -> "QueryOutcome":
        return cls(status=OutcomeStatus.EMPTY, data=data or {})

    @classmethod
    def failure(cls, error: str) -> "QueryOutcome":
        return cls(status=OutcomeStatus.FAILED, error=error)

    @property
    def failed(self) -> bool:
        return self.status == OutcomeStatus.FAILED


class QueryResult(BaseModel):
    """Results of a paginated query plus its final counters."""

    documents: list[ResultDocument] = Field(default_factory=list)
    total_engine_docs: int = 0
    processed_docs: int = 0
    skipped_docs: int = 0
    error: str | None = Field(
        default=None, description="Last engine error seen while fetching pages"
    )

    @property
    def total_count(self) -> int:
        """Results available to the user, excluding denied documents."""
        return self.total_engine_docs - self.skipped_docs


class StatusResult(BaseModel):
    """Outcome of the engine status check."""

    connected: bool = Field(
        default=False, description="Engine reachable and returned parseable status"
    )
    foundcore: bool = Field(
        default=False, description="Configured index found among cores/collections"
    )
    indexsize: int | None = Field(default=None, description="Index size in bytes")
    error: str | None = None
    exception: str | None = Field(
        default=None, description="Class name of the exception, if one was raised"
    )
    time: float = Field(default=0.0, description="Seconds spent on the status call")
