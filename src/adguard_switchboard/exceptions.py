"""
Exception classes for the switchboard.

All exceptions inherit from SwitchboardError and provide structured
error information with codes, messages, and optional details.
"""

from typing import Optional


class SwitchboardError(Exception):
    """Base exception for all switchboard errors."""

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[dict] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"

    def to_dict(self) -> dict:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class FetchUnavailable(SwitchboardError):
    """A requested snapshot field could not be loaded from the server."""

    pass


class MutationFailed(SwitchboardError):
    """A remote write was rejected or could not be delivered."""

    pass


class StorageFailed(SwitchboardError):
    """Raised when durable storage operations fail (file I/O, decoding)."""

    pass


class TamperingError(StorageFailed):
    """Raised when HMAC validation fails, indicating data tampering."""

    pass


class ConfigInvalid(SwitchboardError):
    """Raised when a switch group configuration cannot be used."""

    pass
