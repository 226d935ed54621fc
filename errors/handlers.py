"""
Error handling utilities and decorators for the ticket service.

This module provides the helpers used by the dispatch workers to log
errors consistently and to turn the outcome of an operation into the
tagged reply envelope.
"""

import logging
import traceback
import functools
from typing import Optional, Callable, Any, Dict
from datetime import datetime, timezone

from .exceptions import ServiceError, InternalError

logger = logging.getLogger(__name__)


def log_error(error: Exception, context: Optional[str] = None,
              additional_info: Optional[dict] = None,
              log: Optional[logging.Logger] = None) -> None:
    """
    Log an error with context information.

    Caller errors (validation, not found, precondition) are logged as
    warnings; everything else is logged as an error.

    Args:
        error: The exception that occurred
        context: Additional context about where the error occurred
        additional_info: Additional information to log
        log: Logger to write to (defaults to this module's logger)
    """
    log = log or logger
    error_info = {
        'error_type': type(error).__name__,
        'error_message': str(error),
        'context': context,
        'timestamp': datetime.now(timezone.utc).isoformat()
    }

    if isinstance(error, ServiceError):
        error_info['fingerprint'] = error.fingerprint

    if additional_info:
        error_info.update(additional_info)

    if isinstance(error, ServiceError) and error.status < 500:
        log.warning(f"Service error: {error_info}")
    else:
        log.error(f"Unexpected error: {error_info}")


def as_service_error(error: Exception, context: Optional[str] = None,
                     log: Optional[logging.Logger] = None) -> ServiceError:
    """
    Map any exception onto the service error taxonomy.

    Unknown exceptions become an InternalError whose fingerprint is logged
    together with the original traceback.
    """
    if isinstance(error, ServiceError):
        log_error(error, context=context, log=log)
        return error

    internal = InternalError()
    log_error(error, context=context, log=log,
              additional_info={'fingerprint': internal.fingerprint,
                               'traceback': traceback.format_exc()})
    return internal


def success_envelope(payload: Any = None) -> Dict[str, Any]:
    """Wrap a successful result."""
    return {'ok': payload}


def failure_envelope(error: ServiceError) -> Dict[str, Any]:
    """Wrap a failed result."""
    return {'err': error.to_record()}


def handle_errors(func: Callable) -> Callable:
    """
    Decorator turning a coroutine's outcome into a reply envelope.

    The wrapped coroutine returns its payload or raises; the wrapper
    always returns either ``{'ok': payload}`` or ``{'err': record}``.

    Args:
        func: The coroutine function to wrap

    Returns:
        Callable: Wrapped coroutine function
    """
    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return success_envelope(await func(*args, **kwargs))
        except Exception as e:
            owner = args[0] if args else None
            log = getattr(owner, 'logger', None)
            return failure_envelope(as_service_error(e, context=func.__name__, log=log))

    return wrapper
