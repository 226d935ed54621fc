"""
Comment data model for the ticket service.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from models.timestamps import format_timestamp, parse_timestamp


@dataclass
class Comment:
    """A reply attached to a ticket. Never outlives its ticket."""
    ticket_id: int
    owner: str
    content: str
    metadata: Optional[str] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        """Convert comment to its response representation."""
        return {
            'id': self.id,
            'ticketId': self.ticket_id,
            'owner': self.owner,
            'content': self.content,
            'metadata': self.metadata,
            'createdAt': format_timestamp(self.created_at),
            'modifiedAt': format_timestamp(self.modified_at)
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Comment':
        """Create comment instance from its response representation."""
        return cls(
            id=data.get('id'),
            ticket_id=data['ticketId'],
            owner=data['owner'],
            content=data['content'],
            metadata=data.get('metadata'),
            created_at=parse_timestamp(data.get('createdAt')),
            modified_at=parse_timestamp(data.get('modifiedAt'))
        )
