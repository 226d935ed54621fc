# Dispatch package for broker plumbing, workers and the gateway client

from .broker import Broker, create_redis_client
from .worker import Worker
from .ticket_worker import TicketWorker
from .comment_worker import CommentWorker
from .client import GatewayClient, unwrap

__all__ = [
    'Broker',
    'create_redis_client',
    'Worker',
    'TicketWorker',
    'CommentWorker',
    'GatewayClient',
    'unwrap'
]
