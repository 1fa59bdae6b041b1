"""
Exception types shared by the source server.

ValidationError never leaves the filter sanitizer. StoreError is surfaced to
the caller of a store operation. ReplicationError stays inside the
replication worker. AuthError becomes a uniform 401.
"""

from typing import Optional


class SourceError(Exception):
    """Base class for source server errors"""


class ValidationError(SourceError):
    """Malformed filter, projection or value input"""


class StoreError(SourceError):
    """Relational backend failure (connectivity, constraint, bad SQL)"""


class ReplicationError(SourceError):
    """Remote endpoint unreachable or returned a non-success status"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AuthError(SourceError):
    """Request credentials did not match"""
