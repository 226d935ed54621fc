"""
Error handling module for the ticket service.

This module provides the service error taxonomy and error handling
utilities for consistent error management across workers and clients.
"""

from .exceptions import (
    ServiceError,
    ValidationError,
    NotFoundError,
    PreconditionFailedError,
    RequestTimeoutError,
    InternalError
)

from .handlers import (
    handle_errors,
    log_error,
    as_service_error,
    success_envelope,
    failure_envelope
)

__all__ = [
    # Exception classes
    'ServiceError',
    'ValidationError',
    'NotFoundError',
    'PreconditionFailedError',
    'RequestTimeoutError',
    'InternalError',

    # Handler functions
    'handle_errors',
    'log_error',
    'as_service_error',
    'success_envelope',
    'failure_envelope'
]
