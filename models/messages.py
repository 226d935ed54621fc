"""
Request and response messages exchanged between the gateway and workers.

Requests validate themselves before they reach storage. Free-text fields
are trimmed first, then constraints are checked in a fixed order and the
first violation is raised.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from errors.exceptions import ValidationError
from models.comment import Comment
from models.filter import MAX_PAGE_SIZE, TicketFilter
from models.ticket import ImportanceLevel, Ticket, TicketStatus
from models.timestamps import format_timestamp, parse_timestamp

FIELD_LIMITS = {
    'issuer': 64,
    'owner': 64,
    'subject': 256,
    'content': 4096,
    'metadata': 1024,
}


def _text(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{key}.not_valid", field=key)
    return value


def _integer(data: Dict[str, Any], key: str, default: int = 0) -> int:
    value = data.get(key, default)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{key}.not_valid", field=key)
    return value


def _check_length(name: str, value: str) -> None:
    if len(value) > FIELD_LIMITS[name]:
        raise ValidationError(f"{name}.too_long", field=name)


def _check_required(name: str, value: str) -> None:
    if not value:
        raise ValidationError(f"{name}.is_required", field=name)
    _check_length(name, value)


def _importance_level(value: str) -> ImportanceLevel:
    try:
        return ImportanceLevel(value)
    except ValueError:
        raise ValidationError("importanceLevel.not_valid", field='importanceLevel')


def _status(value: str) -> TicketStatus:
    try:
        return TicketStatus(value)
    except ValueError:
        raise ValidationError("status.not_valid", field='status')


def _ensure_mapping(data: Any) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise ValidationError("invalid.json.format")
    return data


@dataclass
class IdRequest:
    """Identifies a single ticket or comment (load, delete)."""
    id: int

    def validate(self) -> None:
        if self.id <= 0:
            raise ValidationError("ID.invalid", field='id')

    def to_dict(self) -> dict:
        return {'id': self.id}

    @classmethod
    def from_dict(cls, data: Any) -> 'IdRequest':
        data = _ensure_mapping(data)
        return cls(id=_integer(data, 'id'))


@dataclass
class CreateTicketRequest:
    """Opens a new ticket. The status is always forced to NEW."""
    issuer: str
    owner: str
    subject: str
    content: str
    importance_level: str
    metadata: str = ""

    def validate(self) -> None:
        """
        Trim and validate the request.

        Raises:
            ValidationError: For the first violated constraint, checked in the
                order issuer, owner, subject, content, importance level, metadata
        """
        self.issuer = self.issuer.strip()
        self.owner = self.owner.strip()
        self.subject = self.subject.strip()
        self.content = self.content.strip()
        self.metadata = self.metadata.strip()

        _check_required('issuer', self.issuer)
        _check_required('owner', self.owner)
        _check_required('subject', self.subject)
        _check_required('content', self.content)
        _importance_level(self.importance_level)
        _check_length('metadata', self.metadata)

    def as_ticket(self) -> Ticket:
        return Ticket(
            issuer=self.issuer,
            owner=self.owner,
            subject=self.subject,
            content=self.content,
            metadata=self.metadata or None,
            importance_level=ImportanceLevel(self.importance_level),
            status=TicketStatus.NEW
        )

    def to_dict(self) -> dict:
        return {
            'issuer': self.issuer,
            'owner': self.owner,
            'subject': self.subject,
            'content': self.content,
            'metadata': self.metadata,
            'importanceLevel': self.importance_level
        }

    @classmethod
    def from_dict(cls, data: Any) -> 'CreateTicketRequest':
        data = _ensure_mapping(data)
        return cls(
            issuer=_text(data, 'issuer'),
            owner=_text(data, 'owner'),
            subject=_text(data, 'subject'),
            content=_text(data, 'content'),
            metadata=_text(data, 'metadata'),
            importance_level=_text(data, 'importanceLevel')
        )


@dataclass
class UpdateTicketRequest:
    """Changes subject, metadata, importance and status of a ticket."""
    id: int
    subject: str
    importance_level: str
    status: str
    metadata: str = ""

    def validate(self) -> None:
        """
        Trim and validate the request.

        Status must move away from NEW; a ticket can never go back to NEW.

        Raises:
            ValidationError: For the first violated constraint
        """
        self.subject = self.subject.strip()
        self.metadata = self.metadata.strip()

        if self.id <= 0:
            raise ValidationError("ID.invalid", field='id')
        _check_required('subject', self.subject)
        _importance_level(self.importance_level)
        if _status(self.status) is TicketStatus.NEW:
            raise ValidationError("status.not_valid", field='status')
        _check_length('metadata', self.metadata)

    def as_ticket(self) -> Ticket:
        return Ticket(
            id=self.id,
            issuer="",
            owner="",
            subject=self.subject,
            content="",
            metadata=self.metadata or None,
            importance_level=ImportanceLevel(self.importance_level),
            status=TicketStatus(self.status)
        )

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'subject': self.subject,
            'metadata': self.metadata,
            'importanceLevel': self.importance_level,
            'status': self.status
        }

    @classmethod
    def from_dict(cls, data: Any) -> 'UpdateTicketRequest':
        data = _ensure_mapping(data)
        return cls(
            id=_integer(data, 'id'),
            subject=_text(data, 'subject'),
            metadata=_text(data, 'metadata'),
            importance_level=_text(data, 'importanceLevel'),
            status=_text(data, 'status')
        )


@dataclass
class FilterTicketsRequest:
    """Sparse ticket filter with page based navigation."""
    issuer: str = ""
    owner: str = ""
    importance_level: str = ""
    status: str = ""
    from_date: str = ""
    to_date: str = ""
    page_number: int = 1
    page_size: int = 20

    def validate(self) -> None:
        """
        Validate paging first, then the optional criteria.

        Raises:
            ValidationError: For the first violated constraint
        """
        self.issuer = self.issuer.strip()
        self.owner = self.owner.strip()

        if self.page_number < 1:
            raise ValidationError("pageNumber.not_valid", field='pageNumber')
        if self.page_size < 1 or self.page_size > MAX_PAGE_SIZE:
            raise ValidationError("pageSize.not_valid", field='pageSize')
        if self.importance_level:
            _importance_level(self.importance_level)
        if self.status:
            _status(self.status)
        for name, value in (('fromDate', self.from_date), ('toDate', self.to_date)):
            try:
                parse_timestamp(value)
            except ValueError:
                raise ValidationError(f"{name}.not_valid", field=name)

    def as_filter(self) -> TicketFilter:
        return TicketFilter(
            issuer=self.issuer or None,
            owner=self.owner or None,
            importance_level=ImportanceLevel(self.importance_level) if self.importance_level else None,
            status=TicketStatus(self.status) if self.status else None,
            from_date=parse_timestamp(self.from_date),
            to_date=parse_timestamp(self.to_date),
            page_number=self.page_number,
            page_size=self.page_size
        )

    def to_dict(self) -> dict:
        return {
            'issuer': self.issuer,
            'owner': self.owner,
            'importanceLevel': self.importance_level,
            'status': self.status,
            'fromDate': self.from_date,
            'toDate': self.to_date,
            'pageNumber': self.page_number,
            'pageSize': self.page_size
        }

    @classmethod
    def from_dict(cls, data: Any) -> 'FilterTicketsRequest':
        data = _ensure_mapping(data)
        return cls(
            issuer=_text(data, 'issuer'),
            owner=_text(data, 'owner'),
            importance_level=_text(data, 'importanceLevel'),
            status=_text(data, 'status'),
            from_date=_text(data, 'fromDate'),
            to_date=_text(data, 'toDate'),
            page_number=_integer(data, 'pageNumber', 1),
            page_size=_integer(data, 'pageSize', 20)
        )


@dataclass
class FilterTicketsResponse:
    """One page of tickets plus the look-ahead flag."""
    tickets: List[Ticket] = field(default_factory=list)
    has_next_page: bool = False

    def to_dict(self) -> dict:
        return {
            'tickets': [ticket.to_dict() for ticket in self.tickets],
            'hasNextPage': self.has_next_page
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'FilterTicketsResponse':
        return cls(
            tickets=[Ticket.from_dict(t) for t in data.get('tickets') or []],
            has_next_page=bool(data.get('hasNextPage'))
        )


@dataclass
class CreateCommentRequest:
    """Attaches a reply to an existing ticket."""
    ticket_id: int
    owner: str
    content: str
    metadata: str = ""

    def validate(self) -> None:
        self.owner = self.owner.strip()
        self.content = self.content.strip()
        self.metadata = self.metadata.strip()

        _check_required('owner', self.owner)
        _check_required('content', self.content)
        _check_length('metadata', self.metadata)

    def as_comment(self) -> Comment:
        return Comment(
            ticket_id=self.ticket_id,
            owner=self.owner,
            content=self.content,
            metadata=self.metadata or None
        )

    def to_dict(self) -> dict:
        return {
            'ticketId': self.ticket_id,
            'owner': self.owner,
            'content': self.content,
            'metadata': self.metadata
        }

    @classmethod
    def from_dict(cls, data: Any) -> 'CreateCommentRequest':
        data = _ensure_mapping(data)
        return cls(
            ticket_id=_integer(data, 'ticketId'),
            owner=_text(data, 'owner'),
            content=_text(data, 'content'),
            metadata=_text(data, 'metadata')
        )


@dataclass
class UpdateCommentRequest:
    """Replaces the metadata of a comment."""
    id: int
    metadata: str = ""

    def validate(self) -> None:
        self.metadata = self.metadata.strip()

        if self.id <= 0:
            raise ValidationError("ID.invalid", field='id')
        _check_length('metadata', self.metadata)

    def as_comment(self) -> Comment:
        return Comment(id=self.id, ticket_id=0, owner="", content="",
                       metadata=self.metadata or None)

    def to_dict(self) -> dict:
        return {'id': self.id, 'metadata': self.metadata}

    @classmethod
    def from_dict(cls, data: Any) -> 'UpdateCommentRequest':
        data = _ensure_mapping(data)
        return cls(id=_integer(data, 'id'), metadata=_text(data, 'metadata'))


def describe_filter(ticket_filter: TicketFilter) -> Dict[str, Optional[str]]:
    """Compact, loggable view of a filter."""
    return {
        'issuer': ticket_filter.issuer,
        'owner': ticket_filter.owner,
        'importance_level': ticket_filter.importance_level.value if ticket_filter.importance_level else None,
        'status': ticket_filter.status.value if ticket_filter.status else None,
        'from_date': format_timestamp(ticket_filter.from_date),
        'to_date': format_timestamp(ticket_filter.to_date),
        'page': f"{ticket_filter.page_number}x{ticket_filter.page_size}"
    }
