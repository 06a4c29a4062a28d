"""
Error taxonomy for usage acquisition.
"""

from typing import Optional


class CrsStatusError(Exception):
    """Base class for all usage acquisition failures."""


class ConfigError(CrsStatusError):
    """Raised when the base URL or API key is missing.
    
    User-actionable; never retried automatically.
    """


class ProtocolError(CrsStatusError):
    """Raised when any remote call fails.
    
    Covers network failures, non-success HTTP status and malformed
    response envelopes.
    """
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
