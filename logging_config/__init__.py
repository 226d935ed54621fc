"""
Logging configuration module for the ticket service.

This module provides logging setup including file rotation, a separate
error log and a JSON audit trail of ticket and comment operations.
"""

from .logger import setup_logging, ServiceLogger, AuditLogger
from .formatters import ServiceFormatter, AuditFormatter
from .handlers import RotatingFileHandler, AuditFileHandler

__all__ = [
    'setup_logging',
    'ServiceLogger',
    'AuditLogger',
    'ServiceFormatter',
    'AuditFormatter',
    'RotatingFileHandler',
    'AuditFileHandler'
]
