"""
Ticket filter criteria.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from models.ticket import ImportanceLevel, TicketStatus

MAX_PAGE_SIZE = 200


@dataclass
class TicketFilter:
    """
    Sparse filter over tickets.

    Empty criteria are ignored. The date range applies to modified_at and is
    half open: from_date <= modified_at < to_date.
    """
    issuer: Optional[str] = None
    owner: Optional[str] = None
    importance_level: Optional[ImportanceLevel] = None
    status: Optional[TicketStatus] = None
    from_date: Optional[datetime] = None
    to_date: Optional[datetime] = None
    page_number: int = 1
    page_size: int = 20

    @property
    def offset(self) -> int:
        return (self.page_number - 1) * self.page_size
