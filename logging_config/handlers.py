"""
Custom log handlers for the ticket service.

Rotated files are gzip compressed through the standard ``namer`` and
``rotator`` hooks of the rotating handler.
"""

import logging
import logging.handlers
import gzip
import os
import shutil
from pathlib import Path
from typing import Optional


def _gzip_namer(name: str) -> str:
    return f"{name}.gz"


def _gzip_rotator(source: str, dest: str) -> None:
    with open(source, 'rb') as f_in, gzip.open(dest, 'wb') as f_out:
        shutil.copyfileobj(f_in, f_out)
    os.remove(source)


class RotatingFileHandler(logging.handlers.RotatingFileHandler):
    """
    Rotating file handler that creates its directory and compresses backups.
    """

    def __init__(self, filename: str, max_bytes: int = 10 * 1024 * 1024, backup_count: int = 5,
                 encoding: Optional[str] = None, compress_rotated: bool = True):
        """
        Initialize the rotating file handler.

        Args:
            filename: Path to the log file
            max_bytes: Maximum size of log file before rotation
            backup_count: Number of backup files to keep
            encoding: File encoding (default: utf-8)
            compress_rotated: Whether to gzip rotated files
        """
        Path(filename).parent.mkdir(parents=True, exist_ok=True)

        super().__init__(
            filename=filename,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding=encoding or 'utf-8'
        )

        self.compress_rotated = compress_rotated
        if compress_rotated:
            self.namer = _gzip_namer
            self.rotator = _gzip_rotator


class AuditFileHandler(RotatingFileHandler):
    """
    File handler for the audit trail. The file is readable by its owner only.
    """

    def __init__(self, filename: str, max_bytes: int = 20 * 1024 * 1024, backup_count: int = 10,
                 encoding: Optional[str] = None):
        super().__init__(
            filename=filename,
            max_bytes=max_bytes,
            backup_count=backup_count,
            encoding=encoding,
            compress_rotated=True
        )
        self._restrict_permissions()

    def _restrict_permissions(self) -> None:
        if os.path.exists(self.baseFilename):
            os.chmod(self.baseFilename, 0o600)

    def doRollover(self):
        super().doRollover()
        self._restrict_permissions()
