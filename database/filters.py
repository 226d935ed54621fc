"""
Typed query builder for ticket filtering.

Predicates are small objects that render to SQL text with ``?``
placeholders plus their positional parameters. Column names are checked
against the table's whitelist; values never enter the query text.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Optional, Sequence, Tuple

from models.filter import TicketFilter
from models.timestamps import EPOCH, format_timestamp, utc_now

TICKET_COLUMNS = (
    'id', 'issuer', 'owner', 'subject', 'content', 'metadata',
    'importance_level', 'status', 'created_at', 'modified_at'
)

COMMENT_COLUMNS = (
    'id', 'ticket_id', 'owner', 'content', 'metadata', 'created_at', 'modified_at'
)


@dataclass(frozen=True)
class Equals:
    column: str
    value: Any

    def render(self) -> Tuple[str, List[Any]]:
        return f"{self.column} = ?", [self.value]


@dataclass(frozen=True)
class InRange:
    """Half open range: lower <= column < upper."""
    column: str
    lower: Any
    upper: Any

    def render(self) -> Tuple[str, List[Any]]:
        return f"{self.column} >= ? AND {self.column} < ?", [self.lower, self.upper]


@dataclass(frozen=True)
class InList:
    column: str
    values: Tuple[Any, ...]

    def render(self) -> Tuple[str, List[Any]]:
        placeholders = ", ".join("?" for _ in self.values)
        return f"{self.column} IN ({placeholders})", list(self.values)


class SelectQuery:
    """Composable SELECT over one table."""

    def __init__(self, table: str, columns: Sequence[str]):
        self.table = table
        self.columns = tuple(columns)
        self._predicates: List[Any] = []
        self._order: List[Tuple[str, bool]] = []
        self._limit: Optional[int] = None
        self._offset: Optional[int] = None

    def _check(self, column: str) -> None:
        if column not in self.columns:
            raise ValueError(f"Unknown column for {self.table}: {column}")

    def where(self, predicate) -> 'SelectQuery':
        self._check(predicate.column)
        if isinstance(predicate, InList) and not predicate.values:
            raise ValueError("IN predicate needs at least one value")
        self._predicates.append(predicate)
        return self

    def order_by(self, column: str, descending: bool = False) -> 'SelectQuery':
        self._check(column)
        self._order.append((column, descending))
        return self

    def limit(self, limit: int) -> 'SelectQuery':
        self._limit = limit
        return self

    def offset(self, offset: int) -> 'SelectQuery':
        self._offset = offset
        return self

    def build(self) -> Tuple[str, List[Any]]:
        """Render the query text and its positional parameters."""
        sql = f"SELECT {', '.join(self.columns)} FROM {self.table}"
        params: List[Any] = []

        if self._predicates:
            clauses = []
            for predicate in self._predicates:
                clause, values = predicate.render()
                clauses.append(clause)
                params.extend(values)
            sql += " WHERE " + " AND ".join(clauses)

        if self._order:
            sql += " ORDER BY " + ", ".join(
                f"{column} {'DESC' if descending else 'ASC'}" for column, descending in self._order
            )

        if self._limit is not None:
            sql += " LIMIT ?"
            params.append(self._limit)
            if self._offset is not None:
                sql += " OFFSET ?"
                params.append(self._offset)

        return sql, params


def ticket_filter_predicates(ticket_filter: TicketFilter, now: Optional[datetime] = None) -> List[Any]:
    """
    Turn a sparse filter into predicates.

    Only non-empty criteria produce predicates; the modified_at range is
    always present and defaults to [epoch, now).
    """
    predicates: List[Any] = [
        InRange('modified_at',
                format_timestamp(ticket_filter.from_date or EPOCH),
                format_timestamp(ticket_filter.to_date or now or utc_now()))
    ]

    if ticket_filter.issuer:
        predicates.append(Equals('issuer', ticket_filter.issuer))
    if ticket_filter.owner:
        predicates.append(Equals('owner', ticket_filter.owner))
    if ticket_filter.importance_level:
        predicates.append(Equals('importance_level', ticket_filter.importance_level.value))
    if ticket_filter.status:
        predicates.append(Equals('status', ticket_filter.status.value))

    return predicates


def build_ticket_filter_query(ticket_filter: TicketFilter,
                              now: Optional[datetime] = None) -> Tuple[str, List[Any]]:
    """
    Build the page query. One extra row is requested to detect a next page.
    """
    query = SelectQuery('tickets', TICKET_COLUMNS)
    for predicate in ticket_filter_predicates(ticket_filter, now):
        query.where(predicate)

    return (query
            .order_by('modified_at', descending=True)
            .order_by('id', descending=True)
            .limit(ticket_filter.page_size + 1)
            .offset(ticket_filter.offset)
            .build())


def build_comments_query(ticket_ids: Sequence[int]) -> Tuple[str, List[Any]]:
    """Build the single follow-up query that loads comments for a page of tickets."""
    return (SelectQuery('comments', COMMENT_COLUMNS)
            .where(InList('ticket_id', tuple(ticket_ids)))
            .order_by('created_at', descending=True)
            .order_by('id', descending=True)
            .build())
