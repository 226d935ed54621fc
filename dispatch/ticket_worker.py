"""
Ticket request handlers.
"""
from typing import Any, Dict

from database.repositories import TicketRepository
from dispatch.subjects import CREATE, DELETE, FILTER, LOAD, TICKETS, UPDATE
from dispatch.worker import Handler, Worker
from models.messages import (
    CreateTicketRequest, FilterTicketsRequest, FilterTicketsResponse, IdRequest,
    UpdateTicketRequest
)

DEFAULT_TICKET_DEADLINE = 5.0


class TicketWorker(Worker):
    """Serves create, load, update, delete and filter requests for tickets."""

    entity = TICKETS

    def __init__(self, broker, prefix: str, repository: TicketRepository,
                 notifier=None, deadline: float = DEFAULT_TICKET_DEADLINE, **kwargs):
        """
        Args:
            broker: Broker used to read requests and push replies
            prefix: Subject prefix shared with the gateway
            repository: Ticket persistence
            notifier: Optional NotificationDispatcher called after create
            deadline: Seconds a handler may run
            **kwargs: Passed to Worker (consumer, block_ms, logger, audit_logger)
        """
        super().__init__(broker, prefix, deadline, **kwargs)
        self.repository = repository
        self.notifier = notifier

    def handlers(self) -> Dict[str, Handler]:
        return {
            CREATE: self.create,
            LOAD: self.load,
            UPDATE: self.update,
            DELETE: self.delete,
            FILTER: self.filter,
        }

    async def create(self, data: Any) -> Dict[str, int]:
        request = CreateTicketRequest.from_dict(data)
        request.validate()

        ticket = request.as_ticket()
        ticket_id = await self.repository.insert(ticket)

        if self.audit_logger:
            self.audit_logger.log_ticket_created(ticket_id, ticket.owner, ticket.importance_level.value)
        if self.notifier:
            self.run_in_background(self.notifier.ticket_created(ticket),
                                   f"notification for ticket {ticket_id}")

        return {'id': ticket_id}

    async def load(self, data: Any) -> Dict[str, Any]:
        request = IdRequest.from_dict(data)
        request.validate()
        ticket = await self.repository.load_by_id(request.id)
        return ticket.to_dict()

    async def update(self, data: Any) -> None:
        request = UpdateTicketRequest.from_dict(data)
        request.validate()

        ticket = request.as_ticket()
        await self.repository.update(ticket)

        if self.audit_logger:
            self.audit_logger.log_ticket_updated(ticket.id, ticket.status.value)

    async def delete(self, data: Any) -> None:
        request = IdRequest.from_dict(data)
        request.validate()
        await self.repository.delete_by_id(request.id)

        if self.audit_logger:
            self.audit_logger.log_ticket_deleted(request.id)

    async def filter(self, data: Any) -> Dict[str, Any]:
        request = FilterTicketsRequest.from_dict(data)
        request.validate()

        tickets, has_next_page = await self.repository.filter(request.as_filter())
        return FilterTicketsResponse(tickets=tickets, has_next_page=has_next_page).to_dict()
