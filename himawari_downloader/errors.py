"""
Error types raised by the Himawari downloader.

Only timeouts are recovered locally (see retry.py); everything below is
surfaced to the caller.
"""


class HimawariError(Exception):
    """Base class for all downloader errors."""


class InvalidArgumentError(HimawariError, ValueError):
    """Raised for an illegal grid request, before any network activity."""


class TransientNetworkError(HimawariError):
    """Raised when a bounded retry policy runs out of attempts on timeouts."""

    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.attempts = attempts


class MetadataFormatError(HimawariError):
    """Raised when latest.json cannot be interpreted."""


class TileDecodeError(HimawariError):
    """Raised when tile bytes are not a valid chunk-sized image."""


class CompositionError(HimawariError):
    """Raised when a tile sequence does not cover the grid exactly once."""


class RetryCancelledError(HimawariError):
    """Raised when a retry loop is told to stop before it succeeds."""
