"""
Network event codec.

Maps citations to and from the three wire variants exchanged with the
pub/sub transport:
- PublicEvent: every non-confidential field as a tag
- PrivateEvent: the full record encrypted, tags limited to a ref id and marker
- RetractionEvent: deletion request pointing at a previously sent event
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from refmirror.config import EventKinds
from refmirror.crypto import decrypt, encrypt
from refmirror.errors import NotPublished
from refmirror.models import (
    DEFAULT_TITLE,
    Citation,
    NetworkRef,
    Visibility,
    now_seconds,
)


PUBLIC_CONTENT = "KnowTation public reference"
PRIVATE_MARKER = ('e-type', 'reference')
CLIENT_REF_TAG = 'client-ref-id'
DEFAULT_RETRACTION_REASON = "Deleted by user"

Tags = Tuple[Tuple[str, ...], ...]


@dataclass(frozen=True)
class _EventBase:
    kind: int
    content: str
    tags: Tags
    created_at: int
    event_id: Optional[str] = None  # assigned by the transport
    pubkey: Optional[str] = None

    def tag_value(self, name: str) -> Optional[str]:
        """Value of the first tag with this name."""
        for tag in self.tags:
            if tag and tag[0] == name and len(tag) > 1:
                return tag[1]
        return None

    def tag_values(self, name: str) -> List[str]:
        """Values of every tag with this name, in order."""
        return [tag[1] for tag in self.tags if tag and tag[0] == name and len(tag) > 1]


@dataclass(frozen=True)
class PublicEvent(_EventBase):
    """Cleartext reference event."""


@dataclass(frozen=True)
class PrivateEvent(_EventBase):
    """Encrypted reference event."""


@dataclass(frozen=True)
class RetractionEvent(_EventBase):
    """Request to delete a previously sent event."""

    @property
    def target_ids(self) -> List[str]:
        return self.tag_values('e')


NetworkEvent = Union[PublicEvent, PrivateEvent, RetractionEvent]


def _freeze(tags: Sequence[Sequence[str]]) -> Tags:
    return tuple(tuple(str(part) for part in tag) for tag in tags)


def to_public_event(citation: Citation, kinds: Optional[EventKinds] = None,
                    created_at: Optional[int] = None) -> PublicEvent:
    """
    Encode a citation as a cleartext event.

    Notes are never included.

    Args:
        citation: Citation to encode
        kinds: Event kind numbers
        created_at: Event timestamp (defaults to now)

    Returns:
        PublicEvent
    """
    kinds = kinds or EventKinds()
    tags: List[List[str]] = [['title', citation.title]]
    tags.extend(['author', author] for author in citation.authors)

    if citation.year is not None:
        tags.append(['year', str(citation.year)])
    if citation.container:
        tags.append(['journal', citation.container])
    if citation.doi:
        tags.append(['doi', citation.doi])
    if citation.url:
        tags.append(['url', citation.url])
    tags.extend(['t', tag] for tag in citation.tags)
    tags.append([CLIENT_REF_TAG, citation.id])

    return PublicEvent(
        kind=kinds.public,
        content=PUBLIC_CONTENT,
        tags=_freeze(tags),
        created_at=now_seconds() if created_at is None else created_at,
    )


def private_payload(citation: Citation) -> str:
    """Canonical plaintext of a citation for encryption."""
    data = citation.to_dict()
    data['network_ref'] = None
    return json.dumps(data, sort_keys=True, ensure_ascii=False)


def to_private_event(citation: Citation, key: bytes, kinds: Optional[EventKinds] = None,
                     created_at: Optional[int] = None) -> PrivateEvent:
    """
    Encode a citation as an encrypted event.

    The whole record, notes included, goes into the ciphertext. Tags reveal
    only the client ref id and a type marker.

    Args:
        citation: Citation to encode
        key: Symmetric key from crypto.derive_key
        kinds: Event kind numbers
        created_at: Event timestamp (defaults to now)

    Returns:
        PrivateEvent
    """
    kinds = kinds or EventKinds()
    return PrivateEvent(
        kind=kinds.private,
        content=encrypt(private_payload(citation), key),
        tags=_freeze([[CLIENT_REF_TAG, citation.id], list(PRIVATE_MARKER)]),
        created_at=now_seconds() if created_at is None else created_at,
    )


def _parse_year(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def from_public_event(event: PublicEvent) -> Citation:
    """
    Decode a cleartext event into a public citation.

    Raises:
        ValueError: If the event carries neither a client ref id nor an event id
    """
    ref_id = event.tag_value(CLIENT_REF_TAG) or event.event_id
    if not ref_id:
        raise ValueError("Event has neither a client-ref-id tag nor an event id")

    citation = Citation(
        id=ref_id,
        title=event.tag_value('title') or DEFAULT_TITLE,
        authors=event.tag_values('author'),
        year=_parse_year(event.tag_value('year')),
        container=event.tag_value('journal'),
        doi=event.tag_value('doi'),
        url=event.tag_value('url'),
        tags=event.tag_values('t'),
        visibility=Visibility.PUBLIC,
        created_at=event.created_at,
        updated_at=event.created_at,
    )
    if event.event_id:
        citation.network_ref = NetworkRef(event.event_id, Visibility.PUBLIC, citation.content_hash(),
                                          event.created_at)
    return citation


def from_private_event(event: PrivateEvent, key: bytes) -> Citation:
    """
    Decrypt an encrypted event back into a private citation.

    Raises:
        AuthenticationFailure: If the payload cannot be authenticated
        ValueError: If the decrypted payload is not a citation record
    """
    plaintext = decrypt(event.content, key)
    try:
        data = json.loads(plaintext)
        citation = Citation.from_dict(data)
    except (json.JSONDecodeError, KeyError, TypeError) as e:
        raise ValueError(f"Decrypted payload is not a citation record: {e}") from e

    citation.visibility = Visibility.PRIVATE
    citation.network_ref = None
    if event.event_id:
        citation.network_ref = NetworkRef(event.event_id, Visibility.PRIVATE, citation.content_hash(),
                                          event.created_at)
    return citation


def to_retraction(citation: Citation, reason: str = DEFAULT_RETRACTION_REASON,
                  kinds: Optional[EventKinds] = None,
                  created_at: Optional[int] = None) -> RetractionEvent:
    """
    Build a retraction for the citation's current network event.

    Raises:
        NotPublished: If the citation has never been published
    """
    if citation.network_ref is None:
        raise NotPublished(f"Citation {citation.id} has not been published")

    kinds = kinds or EventKinds()
    return RetractionEvent(
        kind=kinds.retraction,
        content=reason,
        tags=_freeze([['e', citation.network_ref.event_id]]),
        created_at=now_seconds() if created_at is None else created_at,
    )


def event_to_dict(event: NetworkEvent) -> Dict[str, Any]:
    """Wire shape of an event."""
    data: Dict[str, Any] = {
        'kind': event.kind,
        'content': event.content,
        'tags': [list(tag) for tag in event.tags],
        'created_at': event.created_at,
    }
    if event.event_id:
        data['id'] = event.event_id
    if event.pubkey:
        data['pubkey'] = event.pubkey
    return data


def event_from_dict(data: Dict[str, Any], kinds: Optional[EventKinds] = None) -> NetworkEvent:
    """
    Decode a wire-shaped event into its variant.

    Raises:
        ValueError: If the kind is not one of the three known variants
    """
    kinds = kinds or EventKinds()
    kind = data.get('kind')
    variants = {
        kinds.public: PublicEvent,
        kinds.private: PrivateEvent,
        kinds.retraction: RetractionEvent,
    }
    if kind not in variants:
        raise ValueError(f"Unknown event kind: {kind!r}")

    return variants[kind](
        kind=kind,
        content=data.get('content', ''),
        tags=_freeze(data.get('tags', [])),
        created_at=int(data.get('created_at', 0)),
        event_id=data.get('id'),
        pubkey=data.get('pubkey'),
    )
