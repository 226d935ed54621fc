"""
Unit tests for the ticket filter query builder.
"""
from datetime import datetime, timezone

import pytest

from database.filters import (
    Equals, InList, InRange, SelectQuery, build_comments_query, build_ticket_filter_query,
    ticket_filter_predicates
)
from models.filter import TicketFilter
from models.ticket import ImportanceLevel, TicketStatus

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


class TestPredicates:
    """Test predicate rendering."""

    def test_render(self):
        assert Equals('owner', 'alice').render() == ("owner = ?", ['alice'])
        assert InRange('modified_at', 'a', 'b').render() == (
            "modified_at >= ? AND modified_at < ?", ['a', 'b'])
        assert InList('ticket_id', (1, 2, 3)).render() == ("ticket_id IN (?, ?, ?)", [1, 2, 3])

    def test_unknown_column_is_rejected(self):
        query = SelectQuery('tickets', ('id', 'owner'))
        with pytest.raises(ValueError):
            query.where(Equals('owner; DROP TABLE tickets', 'x'))
        with pytest.raises(ValueError):
            query.order_by('password')

    def test_empty_in_list_is_rejected(self):
        with pytest.raises(ValueError):
            SelectQuery('comments', ('ticket_id',)).where(InList('ticket_id', ()))

    def test_values_never_enter_query_text(self):
        hostile = "x' OR '1'='1"
        sql, params = SelectQuery('tickets', ('id', 'owner')).where(Equals('owner', hostile)).build()
        assert hostile not in sql
        assert params == [hostile]


class TestTicketFilterQuery:
    """Test the filter to query translation."""

    def test_empty_filter_has_only_date_range(self):
        predicates = ticket_filter_predicates(TicketFilter(), now=NOW)

        assert predicates == [InRange('modified_at', "1970-01-01T00:00:00.000000+00:00",
                                      "2024-06-01T00:00:00.000000+00:00")]

    def test_all_criteria(self):
        ticket_filter = TicketFilter(
            issuer='desk', owner='alice', importance_level=ImportanceLevel.HIGH,
            status=TicketStatus.REPLIED,
            from_date=datetime(2024, 1, 1, tzinfo=timezone.utc),
            to_date=datetime(2024, 2, 1, tzinfo=timezone.utc)
        )
        columns = [p.column for p in ticket_filter_predicates(ticket_filter, now=NOW)]

        assert columns == ['modified_at', 'issuer', 'owner', 'importance_level', 'status']

    def test_page_query_requests_one_extra_row(self):
        ticket_filter = TicketFilter(owner='alice', page_number=3, page_size=10)
        sql, params = build_ticket_filter_query(ticket_filter, now=NOW)

        assert sql.endswith("ORDER BY modified_at DESC, id DESC LIMIT ? OFFSET ?")
        assert "owner = ?" in sql
        assert params[-2:] == [11, 20]
        assert 'alice' in params

    def test_comments_query(self):
        sql, params = build_comments_query([5, 3])

        assert sql.startswith("SELECT id, ticket_id, owner")
        assert "WHERE ticket_id IN (?, ?)" in sql
        assert sql.endswith("ORDER BY created_at DESC, id DESC")
        assert params == [5, 3]
