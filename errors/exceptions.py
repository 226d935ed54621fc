"""
Custom exception classes for the ticket service.

This module defines the error taxonomy shared by the persistence layer,
the dispatch workers and the gateway client. The HTTP status class of
every error is derived from its type only.
"""

import uuid
from typing import Optional, Dict, Any, List


class ServiceError(Exception):
    """
    Base exception for all ticket service errors.

    Every error carries a correlation fingerprint so that the full detail
    logged on the worker side can be matched with what the caller received.
    """

    status: int = 500
    default_code: str = "unknown"

    def __init__(self, code: Optional[str] = None, message: str = "",
                 fingerprint: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        """
        Initialize ServiceError.

        Args:
            code: Machine readable error code (e.g. 'issuer.is_required')
            message: Optional human readable message sent to the caller
            fingerprint: Correlation id, generated when not provided
            details: Optional extra information kept on the worker side
        """
        self.code = code or self.default_code
        self.message = message
        self.fingerprint = fingerprint or str(uuid.uuid4())
        self.details = details or {}
        super().__init__(f"{self.code}: {message}" if message else self.code)

    def to_record(self) -> Dict[str, Any]:
        """Convert the error into the record that crosses the broker boundary."""
        return {
            'fingerprint': self.fingerprint,
            'errors': [{'code': self.code, 'message': self.message}],
            'httpStatusClass': self.status
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> 'ServiceError':
        """Rebuild the matching error subclass from an error record."""
        errors: List[Dict[str, Any]] = record.get('errors') or [{}]
        first = errors[0]
        error_class = _ERRORS_BY_STATUS.get(record.get('httpStatusClass'), InternalError)
        return error_class(
            code=first.get('code'),
            message=first.get('message', ''),
            fingerprint=record.get('fingerprint')
        )


class ValidationError(ServiceError):
    """Raised for invalid caller input. Always recoverable by the caller."""

    status = 400
    default_code = "invalid.argument"

    def __init__(self, code: Optional[str] = None, message: str = "",
                 field: Optional[str] = None, **kwargs):
        super().__init__(code, message, **kwargs)
        self.field = field


class NotFoundError(ServiceError):
    """Raised when the requested entity does not exist."""

    status = 404
    default_code = "not_found"


class PreconditionFailedError(ServiceError):
    """Raised when a referenced related entity is missing (e.g. comment -> ticket)."""

    status = 412
    default_code = "precondition.failed"


class RequestTimeoutError(ServiceError):
    """Raised when an operation exceeds its deadline."""

    status = 408
    default_code = "request.timeout"


class InternalError(ServiceError):
    """
    Raised for unexpected storage or transport failures.

    Only the fingerprint and the generic code leave the worker; the native
    error text is logged next to the fingerprint.
    """

    status = 500
    default_code = "unknown"


_ERRORS_BY_STATUS = {
    ValidationError.status: ValidationError,
    NotFoundError.status: NotFoundError,
    PreconditionFailedError.status: PreconditionFailedError,
    RequestTimeoutError.status: RequestTimeoutError,
    InternalError.status: InternalError,
}
