# Models package for domain entities and broker messages

from .comment import Comment
from .ticket import Ticket, TicketStatus, ImportanceLevel
from .filter import TicketFilter, MAX_PAGE_SIZE
from .messages import (
    IdRequest,
    CreateTicketRequest,
    UpdateTicketRequest,
    FilterTicketsRequest,
    FilterTicketsResponse,
    CreateCommentRequest,
    UpdateCommentRequest
)

__all__ = [
    'Comment',
    'Ticket',
    'TicketStatus',
    'ImportanceLevel',
    'TicketFilter',
    'MAX_PAGE_SIZE',
    'IdRequest',
    'CreateTicketRequest',
    'UpdateTicketRequest',
    'FilterTicketsRequest',
    'FilterTicketsResponse',
    'CreateCommentRequest',
    'UpdateCommentRequest'
]
