"""Scanner exception types."""

from __future__ import annotations


class ScannerError(Exception):
    """Base class for scanner errors."""


class ScanConfigError(ScannerError, ValueError):
    """Raised when a scan is configured with values that cannot find anything."""


class ScanExhausted(ScannerError):
    """Raised by :meth:`ScanHandle.recv` once the scan ended and no result is left."""
