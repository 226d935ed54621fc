"""
Gateway side client for the ticket and comment workers.

A request is published to the operation's subject together with a private
reply key; the client then waits on that key for the reply envelope.
"""
import json
import logging
import uuid
from typing import Any, Dict, Optional

from dispatch.broker import Broker
from dispatch.subjects import (
    COMMENTS, CREATE, DELETE, FILTER, LOAD, TICKETS, UPDATE, reply_key, subject_for
)
from errors.exceptions import InternalError, RequestTimeoutError, ServiceError
from models.comment import Comment
from models.messages import (
    CreateCommentRequest, CreateTicketRequest, FilterTicketsRequest, FilterTicketsResponse,
    UpdateCommentRequest, UpdateTicketRequest
)
from models.ticket import Ticket

DEFAULT_REQUEST_TIMEOUT = 15.0


def unwrap(envelope: Dict[str, Any]) -> Any:
    """
    Return the ``ok`` payload of a reply envelope.

    Raises:
        ServiceError: The error carried by an ``err`` envelope
        InternalError: If the envelope carries neither tag
    """
    if 'err' in envelope:
        raise ServiceError.from_record(envelope['err'] or {})
    if 'ok' not in envelope:
        raise InternalError(message="malformed reply envelope")
    return envelope['ok']


class GatewayClient:
    """Request/reply client used by the HTTP gateway (or any other caller)."""

    def __init__(self, broker: Broker, prefix: str, timeout: float = DEFAULT_REQUEST_TIMEOUT,
                 logger: Optional[logging.Logger] = None):
        self.broker = broker
        self.prefix = prefix
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)

    async def publish_request(self, entity: str, operation: str, payload: Any) -> str:
        """
        Publish a request without waiting for the reply.

        Returns:
            str: The reply key to wait on
        """
        reply_to = reply_key(self.prefix, uuid.uuid4().hex)
        await self.broker.publish(subject_for(self.prefix, entity, operation), {
            'reply_to': reply_to,
            'data': json.dumps(payload)
        })
        return reply_to

    async def await_reply(self, reply_to: str, timeout: Optional[float] = None) -> Dict[str, Any]:
        """
        Wait for the reply envelope published on ``reply_to``.

        Raises:
            RequestTimeoutError: If no reply arrives in time
        """
        timeout = timeout or self.timeout
        result = await self.broker.client.blpop([reply_to], timeout=timeout)
        if result is None:
            self.logger.warning(f"No reply on {reply_to} within {timeout}s")
            raise RequestTimeoutError(message=f"no reply within {timeout}s")

        _, raw = result
        await self.broker.client.delete(reply_to)
        return json.loads(raw)

    async def request(self, entity: str, operation: str, payload: Any,
                      timeout: Optional[float] = None) -> Any:
        """Publish a request, wait for its reply and unwrap the envelope."""
        reply_to = await self.publish_request(entity, operation, payload)
        return unwrap(await self.await_reply(reply_to, timeout))

    async def create_ticket(self, request: CreateTicketRequest) -> int:
        reply = await self.request(TICKETS, CREATE, request.to_dict())
        return reply['id']

    async def load_ticket(self, ticket_id: int) -> Ticket:
        return Ticket.from_dict(await self.request(TICKETS, LOAD, {'id': ticket_id}))

    async def update_ticket(self, request: UpdateTicketRequest) -> None:
        await self.request(TICKETS, UPDATE, request.to_dict())

    async def delete_ticket(self, ticket_id: int) -> None:
        await self.request(TICKETS, DELETE, {'id': ticket_id})

    async def filter_tickets(self, request: FilterTicketsRequest) -> FilterTicketsResponse:
        return FilterTicketsResponse.from_dict(await self.request(TICKETS, FILTER, request.to_dict()))

    async def create_comment(self, request: CreateCommentRequest) -> int:
        reply = await self.request(COMMENTS, CREATE, request.to_dict())
        return reply['id']

    async def load_comment(self, comment_id: int) -> Comment:
        return Comment.from_dict(await self.request(COMMENTS, LOAD, {'id': comment_id}))

    async def update_comment(self, request: UpdateCommentRequest) -> None:
        await self.request(COMMENTS, UPDATE, request.to_dict())

    async def delete_comment(self, comment_id: int) -> None:
        await self.request(COMMENTS, DELETE, {'id': comment_id})
