#!/usr/bin/env python3
"""
Ticket Service - Main Entry Point

Runs the ticket and comment workers against SQLite storage, consuming
requests from Redis and publishing notifications for new tickets and
comments.
"""

import asyncio
import logging
import os
import signal
import sys
from typing import List, Optional

from dotenv import load_dotenv

from config.config_manager import ConfigManager, ConfigurationError
from database.repositories import CommentRepository, TicketRepository
from database.sqlite_adapter import SQLiteAdapter
from dispatch.broker import Broker, create_redis_client
from dispatch.comment_worker import CommentWorker
from dispatch.ticket_worker import TicketWorker
from dispatch.worker import Worker
from logging_config import setup_logging
from notifications.dispatcher import NotificationDispatcher

logger = logging.getLogger(__name__)


class TicketService:
    """Wires storage, broker, notifier and workers together."""

    def __init__(self, config_manager: ConfigManager, audit_logger=None):
        self.config_manager = config_manager
        self.audit_logger = audit_logger
        self.database_adapter: Optional[SQLiteAdapter] = None
        self.redis = None
        self.workers: List[Worker] = []
        self._shutdown_event = asyncio.Event()
        self._shutdown_initiated = False

    async def setup(self):
        """Connect storage and broker, then start the workers."""
        logger.info("Starting service setup...")

        try:
            await self._initialize_database()
            self._initialize_workers()

            for worker in self.workers:
                await worker.start()

            logger.info(f"Service ready with {len(self.workers)} workers")

        except Exception as e:
            logger.error(f"Error during service setup: {e}")
            await self.close()
            raise

    async def _initialize_database(self):
        database = self.config_manager.database
        self.database_adapter = SQLiteAdapter(database.url, pool_size=database.pool_size,
                                              timeout=database.timeout)
        await self.database_adapter.connect()

        if not await self.database_adapter.is_connected():
            raise ConnectionError("Database connection test failed")

        logger.info(f"Database connection established ({database.url})")

    def _initialize_workers(self):
        broker_config = self.config_manager.broker
        workers_config = self.config_manager.workers

        self.redis = create_redis_client(broker_config.url)
        broker = Broker(self.redis, reply_ttl=broker_config.reply_ttl)
        notifier = NotificationDispatcher(broker, self.config_manager.notifications,
                                          self.config_manager.notifier_subject)

        common = {
            'block_ms': broker_config.block_ms,
            'max_age': broker_config.request_timeout,
            'audit_logger': self.audit_logger,
        }
        self.workers = [
            TicketWorker(broker, broker_config.prefix, TicketRepository(self.database_adapter),
                         notifier=notifier, deadline=workers_config.ticket_deadline,
                         logger=logging.getLogger('dispatch.tickets'), **common),
            CommentWorker(broker, broker_config.prefix, CommentRepository(self.database_adapter),
                          notifier=notifier, deadline=workers_config.comment_deadline,
                          logger=logging.getLogger('dispatch.comments'), **common),
        ]

    async def run(self):
        """Run until shutdown is requested."""
        await self.setup()
        await self._shutdown_event.wait()
        await self.close()

    def request_shutdown(self, signal_name: Optional[str] = None):
        if signal_name:
            logger.info(f"Received {signal_name}, initiating graceful shutdown...")
        self._shutdown_event.set()

    async def close(self):
        """Stop workers, then release storage and broker connections."""
        if self._shutdown_initiated:
            return

        self._shutdown_initiated = True
        logger.info("Service is shutting down...")

        for worker in self.workers:
            try:
                await worker.stop()
            except Exception as e:
                logger.error(f"Error stopping {worker.name}: {e}")

        if self.database_adapter:
            await self.database_adapter.disconnect()

        if self.redis is not None:
            await self.redis.aclose()

        logger.info("Graceful shutdown completed")


def setup_signal_handlers(service: TicketService):
    """
    Setup signal handlers for graceful shutdown.

    Args:
        service: The service instance
    """
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, service.request_shutdown, signal.Signals(signum).name)
        except NotImplementedError:
            logger.warning(f"Signal handler for {signal.Signals(signum).name} not supported on this platform")


def load_configuration() -> ConfigManager:
    """
    Load and validate configuration.

    Raises:
        ConfigurationError: If the configuration is invalid
    """
    config_manager = ConfigManager(os.getenv('CONFIG_FILE', 'config.json'))

    errors = config_manager.validate_configuration()
    if errors:
        error_msg = "Configuration validation failed:\n" + "\n".join(f"- {error}" for error in errors)
        logger.error(error_msg)
        raise ConfigurationError(error_msg)

    return config_manager


async def main():
    """Main function to start the service with proper initialization and error handling."""
    load_dotenv()

    config_manager = load_configuration()
    service_logger = setup_logging(log_dir=config_manager.log_dir, log_level=config_manager.log_level)
    audit_logger = service_logger.setup_audit_logging()

    logger.info("Starting ticket service...")
    service = TicketService(config_manager, audit_logger=audit_logger)
    setup_signal_handlers(service)

    await service.run()


def cli():
    """Console entry point."""
    try:
        asyncio.run(main())
    except ConfigurationError:
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Service stopped by user")
        sys.exit(0)
    except Exception as e:
        logger.error(f"Fatal error during service startup: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    cli()
