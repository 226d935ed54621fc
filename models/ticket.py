"""
Ticket data model for the ticket service.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

from models.comment import Comment
from models.timestamps import format_timestamp, parse_timestamp


class ImportanceLevel(Enum):
    """Enumeration for ticket importance levels."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class TicketStatus(Enum):
    """Enumeration for ticket status values."""
    NEW = "NEW"
    REPLIED = "REPLIED"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"
    BLOCKED = "BLOCKED"


@dataclass
class Ticket:
    """
    Data model representing a support ticket.

    Attributes:
        issuer: Who opened the ticket on behalf of the owner
        owner: The customer the ticket belongs to
        subject: Short summary
        content: Full request text
        importance_level: Severity, drives notification routing
        status: Current status of the ticket
        metadata: Opaque caller data (None when absent)
        id: Store assigned identifier (None until inserted)
        created_at: Timestamp set by the store on insert
        modified_at: Timestamp bumped by the store on every change
        comments: Replies, newest first (empty until loaded)
    """
    issuer: str
    owner: str
    subject: str
    content: str
    importance_level: ImportanceLevel
    status: TicketStatus = TicketStatus.NEW
    metadata: Optional[str] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None
    comments: List[Comment] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Convert ticket to its response representation."""
        return {
            'id': self.id,
            'issuer': self.issuer,
            'owner': self.owner,
            'subject': self.subject,
            'content': self.content,
            'metadata': self.metadata,
            'importanceLevel': self.importance_level.value,
            'status': self.status.value,
            'comments': [comment.to_dict() for comment in self.comments],
            'createdAt': format_timestamp(self.created_at),
            'modifiedAt': format_timestamp(self.modified_at)
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Ticket':
        """Create ticket instance from its response representation."""
        return cls(
            id=data.get('id'),
            issuer=data['issuer'],
            owner=data['owner'],
            subject=data['subject'],
            content=data['content'],
            metadata=data.get('metadata'),
            importance_level=ImportanceLevel(data['importanceLevel']),
            status=TicketStatus(data['status']),
            comments=[Comment.from_dict(c) for c in data.get('comments') or []],
            created_at=parse_timestamp(data.get('createdAt')),
            modified_at=parse_timestamp(data.get('modifiedAt'))
        )
