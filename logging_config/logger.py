"""
Main logging configuration and setup for the ticket service.

This module provides centralized logging configuration with support for
file rotation, a separate error log and a JSON audit trail of ticket and
comment operations.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Dict, Any
from datetime import datetime, timezone

from .formatters import ServiceFormatter, AuditFormatter
from .handlers import RotatingFileHandler, AuditFileHandler


class ServiceLogger:
    """
    Owns the root logger configuration of the service process.

    Installs a colored console handler, a rotating main log and a rotating
    error log. Modules log through logging.getLogger(__name__).
    """

    def __init__(self, log_dir: str = "logs", log_level: str = "INFO"):
        """
        Initialize the logger.

        Args:
            log_dir: Directory to store log files
            log_level: Default log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        """
        self.log_dir = Path(log_dir)
        self.log_level = getattr(logging, log_level.upper(), logging.INFO)

        self.log_dir.mkdir(parents=True, exist_ok=True)
        self._setup_root_logger()

    def _setup_root_logger(self):
        root_logger = logging.getLogger()
        root_logger.setLevel(self.log_level)

        for handler in list(root_logger.handlers):
            root_logger.removeHandler(handler)
            handler.close()

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(self.log_level)
        console_handler.setFormatter(ServiceFormatter())
        root_logger.addHandler(console_handler)

        file_handler = RotatingFileHandler(
            filename=str(self.log_dir / "service.log"),
            max_bytes=10 * 1024 * 1024,
            backup_count=5
        )
        file_handler.setLevel(self.log_level)
        file_handler.setFormatter(ServiceFormatter(use_colors=False, include_extra=True))
        root_logger.addHandler(file_handler)

        error_handler = RotatingFileHandler(
            filename=str(self.log_dir / "error.log"),
            max_bytes=5 * 1024 * 1024,
            backup_count=3
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(ServiceFormatter(use_colors=False, include_extra=True))
        root_logger.addHandler(error_handler)

    def setup_audit_logging(self) -> 'AuditLogger':
        """
        Setup audit logging for ticket and comment operations.

        Returns:
            AuditLogger: Configured audit logger instance
        """
        return AuditLogger(self.log_dir)


class AuditLogger:
    """
    Structured audit trail of state changes and worker lifecycle.

    Events are written as JSON lines to ``audit.log`` through a dedicated
    logger that does not propagate to the root logger.
    """

    def __init__(self, log_dir: Path, name: str = "audit"):
        """
        Initialize the audit logger.

        Args:
            log_dir: Directory to store audit log files
            name: Name of the underlying logger
        """
        self.log_dir = Path(log_dir)
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)

        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()

        audit_handler = AuditFileHandler(filename=str(self.log_dir / "audit.log"))
        audit_handler.setLevel(logging.INFO)
        audit_handler.setFormatter(AuditFormatter())
        self.logger.addHandler(audit_handler)

        self.logger.propagate = False

    def log_ticket_created(self, ticket_id: int, owner: str, importance_level: str,
                           additional_info: Optional[Dict[str, Any]] = None):
        """
        Log ticket creation event.

        Args:
            ticket_id: Id assigned to the new ticket
            owner: Owner of the ticket
            importance_level: Importance level of the ticket
            additional_info: Additional information to log
        """
        info = dict(additional_info or {})
        info['importance_level'] = importance_level

        self._log_audit_event("TICKET_CREATED", ticket_id=ticket_id, actor=owner,
                              additional_info=info)

    def log_ticket_updated(self, ticket_id: int, status: str,
                           additional_info: Optional[Dict[str, Any]] = None):
        info = dict(additional_info or {})
        info['status'] = status

        self._log_audit_event("TICKET_UPDATED", ticket_id=ticket_id, additional_info=info)

    def log_ticket_deleted(self, ticket_id: int):
        self._log_audit_event("TICKET_DELETED", ticket_id=ticket_id)

    def log_comment_created(self, comment_id: int, ticket_id: int, owner: str,
                            additional_info: Optional[Dict[str, Any]] = None):
        """
        Log comment creation event.

        Args:
            comment_id: Id assigned to the new comment
            ticket_id: Ticket the comment belongs to
            owner: Author of the comment
            additional_info: Additional information to log
        """
        self._log_audit_event("COMMENT_CREATED", ticket_id=ticket_id, comment_id=comment_id,
                              actor=owner, additional_info=additional_info)

    def log_comment_updated(self, comment_id: int):
        self._log_audit_event("COMMENT_UPDATED", comment_id=comment_id)

    def log_comment_deleted(self, comment_id: int):
        self._log_audit_event("COMMENT_DELETED", comment_id=comment_id)

    def log_worker_started(self, worker: str, group: str, consumer: str):
        self._log_audit_event("WORKER_STARTED",
                              additional_info={'worker': worker, 'group': group, 'consumer': consumer})

    def log_worker_stopped(self, worker: str, group: str, consumer: str):
        self._log_audit_event("WORKER_STOPPED",
                              additional_info={'worker': worker, 'group': group, 'consumer': consumer})

    def _log_audit_event(self, event_type: str, ticket_id: Optional[int] = None,
                         comment_id: Optional[int] = None, actor: Optional[str] = None,
                         additional_info: Optional[Dict[str, Any]] = None):
        """
        Log a structured audit event.

        Args:
            event_type: Type of event being logged
            ticket_id: Ticket involved
            comment_id: Comment involved
            actor: Owner or author behind the change
            additional_info: Additional information to include
        """
        event_data = {
            'event_type': event_type,
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'ticket_id': ticket_id,
            'comment_id': comment_id,
            'actor': actor
        }

        if additional_info:
            event_data.update(additional_info)

        event_data = {k: v for k, v in event_data.items() if v is not None}

        self.logger.info("Audit event", extra={'audit_data': event_data})


def setup_logging(log_dir: str = "logs", log_level: str = "INFO") -> ServiceLogger:
    """
    Configure process wide logging.

    Args:
        log_dir: Directory to store log files
        log_level: Default log level

    Returns:
        ServiceLogger: Configured logger instance
    """
    return ServiceLogger(log_dir, log_level)
