"""
Error taxonomy for refmirror.

Codec-level failures (parse, validation) are collected per item by batch
operations. Protocol-level failures (transport, authentication) abort the
current operation only.
"""

from typing import Dict, List, Optional


class RefMirrorError(Exception):
    """Base class for all refmirror errors."""
    pass


class ParseFailure(RefMirrorError):
    """Raised (or collected) when a BibTeX block cannot be parsed."""

    def __init__(self, message: str, block: Optional[str] = None):
        super().__init__(message)
        self.block = block[:80] if block else block


class ValidationFailure(RefMirrorError):
    """
    Raised when a citation violates the record schema.

    Attributes:
        errors: Mapping of field name to list of messages
    """

    def __init__(self, errors: Dict[str, List[str]]):
        self.errors = errors
        summary = "; ".join(
            f"{field}: {', '.join(messages)}" for field, messages in errors.items()
        )
        super().__init__(f"Invalid citation ({summary})")


class AuthenticationFailure(RefMirrorError):
    """Raised when an encrypted payload fails its authentication check."""
    pass


class NotPublished(RefMirrorError):
    """Raised when a retraction is requested for a record with no network reference."""
    pass


class TransportFailure(RefMirrorError):
    """Raised when a network send or query fails, times out or is cancelled."""
    pass


class IOFailure(RefMirrorError):
    """Raised when the library store or a .bib file cannot be read or written."""
    pass


class SyncStateError(RefMirrorError):
    """Raised when an operation is not allowed from the record's current sync state."""
    pass
