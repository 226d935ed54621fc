"""
Ticket and comment repositories.

Repositories translate domain calls into parameterized statements and map
storage failures onto the service error taxonomy. Native driver errors
never leave this module: they are logged next to the fingerprint of the
InternalError raised in their place.
"""
import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from database.adapter import DatabaseAdapter
from database.filters import (
    COMMENT_COLUMNS, TICKET_COLUMNS, build_comments_query, build_ticket_filter_query
)
from errors.exceptions import (
    InternalError, NotFoundError, PreconditionFailedError, ServiceError
)
from models.comment import Comment
from models.filter import TicketFilter
from models.messages import describe_filter
from models.ticket import ImportanceLevel, Ticket, TicketStatus
from models.timestamps import format_timestamp, parse_timestamp, utc_now

_RESOLUTION = timedelta(microseconds=1)


def _ticket_from_row(row) -> Ticket:
    """Convert database row to Ticket object."""
    return Ticket(
        id=row['id'],
        issuer=row['issuer'],
        owner=row['owner'],
        subject=row['subject'],
        content=row['content'],
        metadata=row['metadata'],
        importance_level=ImportanceLevel(row['importance_level']),
        status=TicketStatus(row['status']),
        created_at=parse_timestamp(row['created_at']),
        modified_at=parse_timestamp(row['modified_at'])
    )


def _comment_from_row(row) -> Comment:
    """Convert database row to Comment object."""
    return Comment(
        id=row['id'],
        ticket_id=row['ticket_id'],
        owner=row['owner'],
        content=row['content'],
        metadata=row['metadata'],
        created_at=parse_timestamp(row['created_at']),
        modified_at=parse_timestamp(row['modified_at'])
    )


class _Repository:
    entity = "entity"

    def __init__(self, database: DatabaseAdapter, logger: Optional[logging.Logger] = None):
        self.db = database
        self.logger = logger or logging.getLogger(__name__)

    def _internal(self, operation: str, error: Exception) -> InternalError:
        internal = InternalError()
        self.logger.error(f"{internal.fingerprint}: {self.entity} {operation} failed: {error}")
        return internal

    def _not_found(self) -> NotFoundError:
        return NotFoundError(f"{self.entity}.not_found")

    async def _next_modified_at(self, conn, table: str, entity_id: int) -> datetime:
        """
        Pick a modified_at strictly after the stored one.

        Raises:
            NotFoundError: If the row does not exist
        """
        cursor = await conn.execute(f"SELECT modified_at FROM {table} WHERE id = ?", (entity_id,))
        row = await cursor.fetchone()
        if row is None:
            raise self._not_found()

        now = utc_now()
        previous = parse_timestamp(row['modified_at'])
        return now if now > previous else previous + _RESOLUTION


class TicketRepository(_Repository):
    """Persistence operations for tickets."""

    entity = "ticket"

    async def insert(self, ticket: Ticket) -> int:
        """
        Insert a ticket. Status is forced to NEW and both timestamps are set
        to the same server-side instant.

        Returns:
            int: The id assigned by the store (also set on the ticket)

        Raises:
            InternalError: If the insert fails
        """
        now = utc_now()
        try:
            async with self.db.transaction() as conn:
                cursor = await conn.execute("""
                    INSERT INTO tickets (
                        issuer, owner, subject, content, metadata,
                        importance_level, status, created_at, modified_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    ticket.issuer,
                    ticket.owner,
                    ticket.subject,
                    ticket.content,
                    ticket.metadata,
                    ticket.importance_level.value,
                    TicketStatus.NEW.value,
                    format_timestamp(now),
                    format_timestamp(now)
                ))
                ticket_id = cursor.lastrowid
        except Exception as e:
            raise self._internal("insert", e) from e

        ticket.id = ticket_id
        ticket.status = TicketStatus.NEW
        ticket.created_at = now
        ticket.modified_at = now
        ticket.comments = []
        self.logger.info(f"Inserted ticket {ticket_id}")
        return ticket_id

    async def load_by_id(self, ticket_id: int) -> Ticket:
        """
        Load a ticket and its comments, newest first, from one snapshot.

        Raises:
            NotFoundError: If the ticket does not exist
            InternalError: If the read fails
        """
        try:
            async with self.db.transaction(readonly=True) as conn:
                cursor = await conn.execute(
                    f"SELECT {', '.join(TICKET_COLUMNS)} FROM tickets WHERE id = ?", (ticket_id,))
                row = await cursor.fetchone()
                if row is None:
                    raise self._not_found()
                ticket = _ticket_from_row(row)

                cursor = await conn.execute(
                    f"SELECT {', '.join(COMMENT_COLUMNS)} FROM comments WHERE ticket_id = ? "
                    f"ORDER BY created_at DESC, id DESC", (ticket_id,))
                ticket.comments = [_comment_from_row(r) for r in await cursor.fetchall()]
        except ServiceError:
            raise
        except Exception as e:
            raise self._internal("load", e) from e

        return ticket

    async def update(self, ticket: Ticket) -> None:
        """
        Update subject, metadata, importance level and status, bumping
        modified_at strictly forward.

        Raises:
            NotFoundError: If no row was affected
            InternalError: If the update fails
        """
        try:
            async with self.db.transaction() as conn:
                modified_at = await self._next_modified_at(conn, 'tickets', ticket.id)
                cursor = await conn.execute("""
                    UPDATE tickets
                    SET subject = ?, metadata = ?, importance_level = ?, status = ?, modified_at = ?
                    WHERE id = ?
                """, (
                    ticket.subject,
                    ticket.metadata,
                    ticket.importance_level.value,
                    ticket.status.value,
                    format_timestamp(modified_at),
                    ticket.id
                ))
                if cursor.rowcount == 0:
                    raise self._not_found()
        except ServiceError:
            raise
        except Exception as e:
            raise self._internal("update", e) from e

        ticket.modified_at = modified_at
        self.logger.info(f"Updated ticket {ticket.id} to {ticket.status.value}")

    async def delete_by_id(self, ticket_id: int) -> None:
        """
        Delete a ticket together with its comments in one transaction.
        Deleting an absent ticket is a no-op.

        Raises:
            InternalError: If the delete fails
        """
        try:
            async with self.db.transaction() as conn:
                await conn.execute("DELETE FROM comments WHERE ticket_id = ?", (ticket_id,))
                cursor = await conn.execute("DELETE FROM tickets WHERE id = ?", (ticket_id,))
                deleted = cursor.rowcount > 0
        except Exception as e:
            raise self._internal("delete", e) from e

        if deleted:
            self.logger.info(f"Deleted ticket {ticket_id}")

    async def filter(self, ticket_filter: TicketFilter) -> Tuple[List[Ticket], bool]:
        """
        Load one page of tickets matching the filter, with their comments.

        Returns:
            Tuple[List[Ticket], bool]: The page and whether another page exists

        Raises:
            InternalError: If a query fails
        """
        self.logger.debug(f"Filtering tickets: {describe_filter(ticket_filter)}")
        try:
            async with self.db.transaction(readonly=True) as conn:
                query, params = build_ticket_filter_query(ticket_filter)
                cursor = await conn.execute(query, params)
                tickets = [_ticket_from_row(row) for row in await cursor.fetchall()]

                has_next_page = len(tickets) > ticket_filter.page_size
                if has_next_page:
                    tickets = tickets[:ticket_filter.page_size]

                if tickets:
                    query, params = build_comments_query([t.id for t in tickets])
                    cursor = await conn.execute(query, params)
                    comments: Dict[int, List[Comment]] = defaultdict(list)
                    for row in await cursor.fetchall():
                        comment = _comment_from_row(row)
                        comments[comment.ticket_id].append(comment)
                    for ticket in tickets:
                        ticket.comments = comments.get(ticket.id, [])
        except Exception as e:
            raise self._internal("filter", e) from e

        return tickets, has_next_page


class CommentRepository(_Repository):
    """Persistence operations for comments."""

    entity = "comment"

    async def insert(self, comment: Comment) -> int:
        """
        Insert a comment and bump its ticket's modified_at in one transaction.

        Returns:
            int: The id assigned by the store (also set on the comment)

        Raises:
            PreconditionFailedError: If the referenced ticket does not exist
            InternalError: If the insert fails for any other reason
        """
        now = utc_now()
        stamp = format_timestamp(now)
        try:
            async with self.db.transaction() as conn:
                cursor = await conn.execute("""
                    INSERT INTO comments (
                        ticket_id, owner, content, metadata, created_at, modified_at
                    ) VALUES (?, ?, ?, ?, ?, ?)
                """, (
                    comment.ticket_id,
                    comment.owner,
                    comment.content,
                    comment.metadata,
                    stamp,
                    stamp
                ))
                comment_id = cursor.lastrowid
                await conn.execute(
                    "UPDATE tickets SET modified_at = ? WHERE id = ? AND modified_at < ?",
                    (stamp, comment.ticket_id, stamp))
        except Exception as e:
            if self.db.is_foreign_key_violation(e):
                raise PreconditionFailedError("ticket.not_exists") from e
            raise self._internal("insert", e) from e

        comment.id = comment_id
        comment.created_at = now
        comment.modified_at = now
        self.logger.info(f"Inserted comment {comment_id} on ticket {comment.ticket_id}")
        return comment_id

    async def load_by_id(self, comment_id: int) -> Comment:
        """
        Raises:
            NotFoundError: If the comment does not exist
            InternalError: If the read fails
        """
        try:
            async with self.db.connection() as conn:
                cursor = await conn.execute(
                    f"SELECT {', '.join(COMMENT_COLUMNS)} FROM comments WHERE id = ?", (comment_id,))
                row = await cursor.fetchone()
        except Exception as e:
            raise self._internal("load", e) from e

        if row is None:
            raise self._not_found()
        return _comment_from_row(row)

    async def update(self, comment: Comment) -> None:
        """
        Replace the metadata of a comment. The ticket is left untouched.

        Raises:
            NotFoundError: If no row was affected
            InternalError: If the update fails
        """
        try:
            async with self.db.transaction() as conn:
                modified_at = await self._next_modified_at(conn, 'comments', comment.id)
                cursor = await conn.execute(
                    "UPDATE comments SET metadata = ?, modified_at = ? WHERE id = ?",
                    (comment.metadata, format_timestamp(modified_at), comment.id))
                if cursor.rowcount == 0:
                    raise self._not_found()
        except ServiceError:
            raise
        except Exception as e:
            raise self._internal("update", e) from e

        comment.modified_at = modified_at

    async def delete_by_id(self, comment_id: int) -> None:
        """
        Delete a comment. Deleting an absent comment is a no-op.

        Raises:
            InternalError: If the delete fails
        """
        try:
            async with self.db.transaction() as conn:
                await conn.execute("DELETE FROM comments WHERE id = ?", (comment_id,))
        except Exception as e:
            raise self._internal("delete", e) from e
