"""
Citation record data model.

The Citation dataclass is the canonical in-memory representation shared by
the BibTeX codec, the event codec and the synchronization protocol.
"""

import hashlib
import json
import re
import secrets
import string
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from refmirror.errors import ValidationFailure


DEFAULT_TITLE = "Untitled Reference"

DOI_PATTERN = re.compile(r'^10\.\d{4,9}/[-._;()/:A-Za-z0-9]+$')

_BASE36 = string.digits + string.ascii_lowercase


class Visibility(str, Enum):
    """Whether a citation is mirrored in cleartext or only as an encrypted blob."""

    PUBLIC = "public"
    PRIVATE = "private"


@dataclass(frozen=True)
class NetworkRef:
    """
    Most recent successfully published network event for a citation.

    Owned by the synchronization protocol. `content_hash` and `visibility`
    capture what was published so later edits can be detected as stale.
    `created_at` is the event timestamp; a republish is stamped later.
    """

    event_id: str
    visibility: Visibility
    content_hash: str
    created_at: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'event_id': self.event_id,
            'visibility': self.visibility.value,
            'content_hash': self.content_hash,
            'created_at': self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NetworkRef":
        return cls(
            event_id=data['event_id'],
            visibility=Visibility(data['visibility']),
            content_hash=data.get('content_hash', ''),
            created_at=data.get('created_at', 0),
        )


def now_seconds() -> int:
    """Current Unix time in whole seconds."""
    return int(time.time())


def new_citation_id() -> str:
    """Generate an opaque, practically unique citation id."""
    millis = int(time.time() * 1000)
    stamp = ""
    while millis:
        millis, rem = divmod(millis, 36)
        stamp = _BASE36[rem] + stamp
    suffix = "".join(secrets.choice(_BASE36) for _ in range(10))
    return stamp + suffix


def _dedupe(values: List[str]) -> List[str]:
    seen = set()
    result = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


@dataclass
class Citation:
    """A single bibliographic entry in the local library."""

    id: str
    title: str
    authors: List[str] = field(default_factory=list)
    year: Optional[int] = None
    container: Optional[str] = None  # journal or book title
    doi: Optional[str] = None
    url: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    notes: Optional[str] = None  # confidential, never in a plaintext event
    visibility: Visibility = Visibility.PRIVATE
    created_at: int = field(default_factory=now_seconds)
    updated_at: int = 0
    network_ref: Optional[NetworkRef] = None

    def __post_init__(self):
        """Normalize collections and timestamps."""
        self.authors = list(self.authors or [])
        self.tags = _dedupe(list(self.tags or []))
        if not isinstance(self.visibility, Visibility):
            self.visibility = Visibility(self.visibility)
        if self.updated_at < self.created_at:
            self.updated_at = self.created_at

    @property
    def is_public(self) -> bool:
        return self.visibility is Visibility.PUBLIC

    def touch(self, now: Optional[int] = None) -> None:
        """Advance updated_at, never moving it backwards."""
        stamp = now_seconds() if now is None else now
        self.updated_at = max(self.updated_at, stamp)

    def content_fields(self) -> Dict[str, Any]:
        """Content and visibility, without timestamps or network state."""
        return {
            'id': self.id,
            'title': self.title,
            'authors': list(self.authors),
            'year': self.year,
            'container': self.container,
            'doi': self.doi,
            'url': self.url,
            'tags': list(self.tags),
            'notes': self.notes,
            'visibility': self.visibility.value,
        }

    def content_hash(self) -> str:
        """
        Compute SHA256 of the canonical content.

        Returns:
            Hex-encoded SHA256 hash
        """
        canonical = json.dumps(self.content_fields(), sort_keys=True, separators=(',', ':'))
        return hashlib.sha256(canonical.encode('utf-8')).hexdigest()

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert to the canonical JSON-compatible form.

        This is the plaintext that private events encrypt and the shape
        the library store persists.
        """
        data = self.content_fields()
        data['created_at'] = self.created_at
        data['updated_at'] = self.updated_at
        data['network_ref'] = self.network_ref.to_dict() if self.network_ref else None
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Citation":
        """
        Build a Citation from its canonical dict form.

        Raises:
            KeyError: If 'id' is missing
        """
        ref_data = data.get('network_ref')
        created_at = data.get('created_at') or now_seconds()
        return cls(
            id=data['id'],
            title=data.get('title') or DEFAULT_TITLE,
            authors=data.get('authors') or [],
            year=data.get('year'),
            container=data.get('container'),
            doi=data.get('doi'),
            url=data.get('url'),
            tags=data.get('tags') or [],
            notes=data.get('notes'),
            visibility=data.get('visibility', Visibility.PRIVATE.value),
            created_at=created_at,
            updated_at=data.get('updated_at') or created_at,
            network_ref=NetworkRef.from_dict(ref_data) if ref_data else None,
        )


@dataclass
class BibTeXEntry:
    """Transient BibTeX entry produced and consumed by the BibTeX codec."""

    entry_type: str  # article, book, inproceedings, misc
    citation_key: str
    fields: Dict[str, str] = field(default_factory=dict)


def validate_citation(citation: Citation) -> Dict[str, List[str]]:
    """
    Validate a citation against the record schema.

    Args:
        citation: Citation to check

    Returns:
        Mapping of field name to error messages (empty when valid)
    """
    errors: Dict[str, List[str]] = {}

    def add(name: str, message: str):
        errors.setdefault(name, []).append(message)

    if not citation.title or not citation.title.strip():
        add('title', "Title is required")

    if not citation.authors:
        add('authors', "At least one author is required")
    elif any(not author or not author.strip() for author in citation.authors):
        add('authors', "Author names must not be empty")

    if citation.year is not None:
        max_year = datetime.now().year + 10
        if isinstance(citation.year, bool) or not isinstance(citation.year, int):
            add('year', "Year must be an integer")
        elif not 0 <= citation.year <= max_year:
            add('year', f"Year must be between 0 and {max_year}")

    if citation.doi and not DOI_PATTERN.match(citation.doi):
        add('doi', "Invalid DOI format. Should start with 10. followed by numbers and a slash")

    if citation.url:
        parsed = urlparse(citation.url)
        if parsed.scheme not in ('http', 'https') or not parsed.netloc:
            add('url', "Invalid URL format")

    if any(not tag or not tag.strip() for tag in citation.tags):
        add('tags', "Tags must not be empty")

    return errors


def check_citation(citation: Citation) -> Citation:
    """
    Validate a citation, raising on any schema violation.

    Raises:
        ValidationFailure: With per-field messages
    """
    errors = validate_citation(citation)
    if errors:
        raise ValidationFailure(errors)
    return citation
