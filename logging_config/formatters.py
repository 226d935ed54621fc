"""
Custom log formatters for the ticket service.

This module provides the formatter used for console and file output of the
service logs and the JSON formatter used by the audit trail.
"""

import logging
import json
from datetime import datetime, timezone
from typing import Dict, Any

# Attributes every LogRecord carries; anything else came in through ``extra``.
_STANDARD_FIELDS = frozenset({
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname', 'filename',
    'module', 'lineno', 'funcName', 'created', 'msecs', 'relativeCreated',
    'thread', 'threadName', 'processName', 'process', 'taskName', 'exc_info',
    'exc_text', 'stack_info', 'asctime', 'message'
})


def _extra_fields(record: logging.LogRecord, skip: frozenset = frozenset()) -> Dict[str, Any]:
    return {
        key: value for key, value in record.__dict__.items()
        if key not in _STANDARD_FIELDS and key not in skip and not key.startswith('_')
    }


class ServiceFormatter(logging.Formatter):
    """
    Formatter for service logs.

    Colors the level name on the console and, for files, appends any
    ``extra`` fields as ``key=value`` pairs.
    """

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
        'RESET': '\033[0m'
    }

    def __init__(self, use_colors: bool = True, include_extra: bool = False):
        """
        Initialize the formatter.

        Args:
            use_colors: Whether to color the level name (console output)
            include_extra: Whether to append extra record fields
        """
        self.use_colors = use_colors
        self.include_extra = include_extra
        super().__init__("%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                         datefmt='%Y-%m-%d %H:%M:%S')

    def format(self, record: logging.LogRecord) -> str:
        # Work on a copy so other handlers see the plain level name
        record_copy = logging.makeLogRecord(record.__dict__)

        if self.use_colors:
            color = self.COLORS.get(record_copy.levelname, '')
            record_copy.levelname = f"{color}{record_copy.levelname}{self.COLORS['RESET']}"

        formatted = super().format(record_copy)

        if self.include_extra:
            extra = _extra_fields(record)
            if extra:
                formatted += " | " + " | ".join(
                    f"{key}={json.dumps(value, default=str) if isinstance(value, (dict, list, tuple)) else value}"
                    for key, value in extra.items()
                )

        return formatted


class AuditFormatter(logging.Formatter):
    """
    Formatter for the audit trail.

    Every record becomes a single JSON object; the ``audit_data`` mapping
    attached by AuditLogger is merged into the top level.
    """

    def format(self, record: logging.LogRecord) -> str:
        """
        Format an audit log record as JSON.

        Args:
            record: Log record to format

        Returns:
            str: JSON-formatted audit log entry
        """
        audit_entry = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage()
        }

        audit_data = getattr(record, 'audit_data', None)
        if audit_data:
            audit_entry.update(audit_data)

        if record.exc_info:
            audit_entry['exception'] = self.formatException(record.exc_info)

        extra = _extra_fields(record, skip=frozenset({'audit_data'}))
        if extra:
            audit_entry['extra'] = extra

        return json.dumps(audit_entry, default=str, separators=(',', ':'))
