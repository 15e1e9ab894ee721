"""Conversion of engine responses into candidates.

Handles both plain responses (``response.docs``) and file-grouped
responses (``grouped.<field>.groups``), and merges highlighted field
values back into the records.
"""

from dataclasses import dataclass, field
from typing import Any

from solr_adapter.errors import MultiValuedFieldError
from solr_adapter.search.schemas import Candidate

GROUP_FIELD = "solr_filegroupingid"

# Fields that can carry highlighted fragments
HIGHLIGHT_FIELDS = ("title", "content", "description1", "description2")


@dataclass
class ResponseGroup:
    """One file group: the main document id plus the members returned."""

    group_id: str
    docs: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class NormalizedResponse:
    """Uniform view of an engine response.

    For grouped responses the counts are group counts, otherwise
    document counts.
    """

    included: int = 0
    found: int = 0
    docs: list[dict[str, Any]] = field(default_factory=list)
    groups: list[ResponseGroup] = field(default_factory=list)
    highlighting: dict[str, dict[str, list[str]]] = field(default_factory=dict)
    grouped: bool = False


def response_counts(data: dict[str, Any] | None) -> tuple[int, int]:
    """Return (included, found) for a response; (0, 0) if empty or invalid."""
    if not data:
        return 0, 0
    grouping = (data.get("grouped") or {}).get(GROUP_FIELD)
    if grouping and "ngroups" in grouping:
        return len(grouping.get("groups") or []), grouping["ngroups"]
    body = data.get("response")
    if body and "numFound" in body:
        found = body["numFound"]
        docs = body.get("docs")
        included = len(docs) if found > 0 and isinstance(docs, list) else 0
        return included, found
    return 0, 0


def normalize_response(data: dict[str, Any] | None) -> NormalizedResponse:
    """Convert a raw engine response into a NormalizedResponse.

    Args:
        data: Decoded engine JSON, or None when the call failed

    Returns:
        NormalizedResponse; empty when there is nothing to read
    """
    if not data:
        return NormalizedResponse()

    included, found = response_counts(data)
    highlighting = data.get("highlighting") or {}

    if "grouped" in data:
        grouping = data["grouped"].get(GROUP_FIELD) or {}
        groups = []
        # A grouped response with no matches has nothing usable in it
        if grouping.get("matches"):
            for group in grouping.get("groups") or []:
                groups.append(
                    ResponseGroup(
                        group_id=str(group["groupValue"]),
                        docs=list((group.get("doclist") or {}).get("docs") or []),
                    )
                )
        return NormalizedResponse(
            included=included,
            found=found,
            groups=groups,
            highlighting=highlighting,
            grouped=True,
        )

    docs = (data.get("response") or {}).get("docs") or []
    return NormalizedResponse(
        included=included,
        found=found,
        docs=list(docs) if found else [],
        highlighting=highlighting,
    )


def merge_highlight_field_values(
    doc: dict[str, Any], highlighted: dict[str, list[str]] | None
) -> dict[str, Any]:
    """Replace plain field values with their highlighted version.

    The first highlighted fragment wins.

    Args:
        doc: Engine field-map
        highlighted: Highlighted fragments for this document, by field

    Returns:
        A copy of ``doc`` with highlighted values merged in

    Raises:
        MultiValuedFieldError: If a highlightable field has several values
    """
    merged = dict(doc)
    for name in HIGHLIGHT_FIELDS:
        if not merged.get(name):
            continue
        if isinstance(merged[name], list):
            raise MultiValuedFieldError(name)
        fragments = (highlighted or {}).get(name)
        if fragments:
            merged[name] = fragments[0]
    return merged


def to_candidate(
    doc: dict[str, Any], highlighting: dict[str, dict[str, list[str]]]
) -> Candidate:
    """Merge highlighting into one record and build a Candidate from it."""
    merged = merge_highlight_field_values(doc, highlighting.get(str(doc.get("id"))))
    return Candidate.from_engine(merged)
