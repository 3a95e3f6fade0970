"""
Client-side Query Evaluation

Neither backend has a query engine of its own, so filtering, ordering,
limits and cursors are evaluated here, in Python, over the documents of
one collection. Semantics follow a hosted document database:

- an ordered query skips documents that lack the ordering field
- ties on the ordering field are broken by document id, ascending
- an unordered query returns documents by id
- `start_after` resumes strictly after the cursor's position
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any, Optional

from expense_tracker.services.storage.values import sort_key, to_store_value


_OPERATORS = ("==", "<", "<=", ">", ">=")


@dataclass
class StoredDocument:
    """A document as held by a backend: its id plus stored field values."""

    id: str
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class FieldFilter:
    """A single `field <op> value` condition."""

    field: str
    op: str
    value: Any

    def __post_init__(self):
        if self.op not in _OPERATORS:
            raise ValueError(f"Unsupported filter operator: {self.op}")

    def matches(self, document: StoredDocument) -> bool:
        if self.field not in document.data:
            return False

        actual = sort_key(document.data[self.field])
        bound = sort_key(to_store_value(self.value))

        if self.op == "==":
            return actual == bound
        # Range comparisons never cross types
        if actual[0] != bound[0]:
            return False
        if self.op == "<":
            return actual < bound
        if self.op == "<=":
            return actual <= bound
        if self.op == ">":
            return actual > bound
        return actual >= bound


@dataclass(frozen=True)
class OrderBy:
    """Single-field ordering."""

    field: str
    direction: str = "desc"

    def __post_init__(self):
        if self.direction not in ("asc", "desc"):
            raise ValueError(f"Order direction must be 'asc' or 'desc', got {self.direction!r}")

    @property
    def descending(self) -> bool:
        return self.direction == "desc"


@dataclass(frozen=True)
class PageCursor:
    """Opaque position of the last document of a returned page."""

    document_id: str
    order_field: str
    order_value: Any


def _is_after(document: StoredDocument, order_by: OrderBy, cursor: PageCursor) -> bool:
    value = sort_key(document.data[order_by.field])
    anchor = sort_key(cursor.order_value)
    if value == anchor:
        return document.id > cursor.document_id
    if order_by.descending:
        return value < anchor
    return value > anchor


def run_query(
    documents: Iterable[StoredDocument],
    filters: Sequence[FieldFilter] = (),
    order_by: Optional[OrderBy] = None,
    limit: Optional[int] = None,
    start_after: Optional[PageCursor] = None,
) -> list[StoredDocument]:
    """
    Evaluate a query over one collection's documents.

    Args:
        documents: All documents in the collection
        filters: Conditions that must all hold
        order_by: Ordering; required when `start_after` is given
        limit: Maximum number of results (must be positive)
        start_after: Cursor from a previous page

    Returns:
        Matching documents in query order
    """
    if limit is not None and limit < 1:
        raise ValueError(f"Query limit must be positive, got {limit}")
    if start_after is not None and order_by is None:
        raise ValueError("A cursor requires an ordered query")

    results = [doc for doc in documents if all(f.matches(doc) for f in filters)]
    results.sort(key=lambda doc: doc.id)

    if order_by is not None:
        results = [doc for doc in results if order_by.field in doc.data]
        # Stable sort keeps the id tie-break in both directions
        results.sort(
            key=lambda doc: sort_key(doc.data[order_by.field]),
            reverse=order_by.descending,
        )
        if start_after is not None:
            results = [doc for doc in results if _is_after(doc, order_by, start_after)]

    if limit is not None:
        results = results[:limit]
    return results
