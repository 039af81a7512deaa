"""
Synchronization protocol between the local library and the event network.

Tracks which network event currently represents each citation and issues
publish / retract-then-republish / retract sequences against an injected
transport. Operations are independent per citation: there is no
cross-record transaction, and callers must not overlap operations on the
same citation (they would race on network_ref).

A cancelled or timed-out transport call leaves the citation untouched.
Completed steps of a multi-step operation are never rolled back.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional

from refmirror.audit.logger import AuditLogger
from refmirror.config import ConfigError, MirrorConfig
from refmirror.crypto import derive_key
from refmirror.errors import (
    AuthenticationFailure,
    NotPublished,
    RefMirrorError,
    SyncStateError,
    TransportFailure,
)
from refmirror.events import (
    DEFAULT_RETRACTION_REASON,
    NetworkEvent,
    PrivateEvent,
    PublicEvent,
    from_private_event,
    from_public_event,
    to_private_event,
    to_public_event,
    to_retraction,
)
from refmirror.models import Citation, NetworkRef, now_seconds
from refmirror.transport.base import BaseTransport, EventFilter


logger = logging.getLogger(__name__)

UPDATE_RETRACTION_REASON = "Superseded by updated reference"


class SyncState(str, Enum):
    """Mirror state of a single citation."""

    UNSYNCED = "unsynced"  # no network_ref
    SYNCED = "synced"      # network_ref matches current content and visibility
    STALE = "stale"        # edited since network_ref was set


def sync_state(citation: Citation) -> SyncState:
    """Classify a citation against its last published representation."""
    ref = citation.network_ref
    if ref is None:
        return SyncState.UNSYNCED
    if ref.visibility == citation.visibility and ref.content_hash == citation.content_hash():
        return SyncState.SYNCED
    return SyncState.STALE


@dataclass
class BatchReport:
    """Outcome of a batch of independent per-citation operations."""

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    errors: Dict[str, str] = field(default_factory=dict)


class SyncProtocol:
    """
    Publish, update and retract citations on the event network.

    The transport and identity key are supplied by the caller; this class
    holds no state beyond the derived key cache and the last event
    timestamp sent for each citation id.
    """

    def __init__(self, transport: BaseTransport, identity_key: Optional[str] = None,
                 config: Optional[MirrorConfig] = None,
                 audit_logger: Optional[AuditLogger] = None):
        """
        Initialize the protocol.

        Args:
            transport: Transport collaborator used for send and query
            identity_key: Opaque identity string for private-event keys
                (defaults to config.identity_key)
            config: Mirror settings (event kinds, timeouts, limits)
            audit_logger: Optional audit logger
        """
        self.transport = transport
        self.config = config or MirrorConfig()
        self.identity_key = identity_key or self.config.identity_key
        self.audit_logger = audit_logger
        self._key: Optional[bytes] = None
        self._last_stamps: Dict[str, int] = {}

    @property
    def kinds(self):
        return self.config.kinds

    async def encryption_key(self) -> bytes:
        """
        Derive (once) the symmetric key for private events.

        Raises:
            ConfigError: If no identity key is configured
        """
        if self._key is None:
            if not self.identity_key:
                raise ConfigError("An identity key is required for private references")
            self._key = await asyncio.to_thread(
                derive_key, self.identity_key, self.config.kdf_iterations
            )
        return self._key

    async def encode(self, citation: Citation, created_at: Optional[int] = None) -> NetworkEvent:
        """Encode a citation according to its current visibility."""
        if citation.is_public:
            return to_public_event(citation, self.kinds, created_at)
        key = await self.encryption_key()
        return to_private_event(citation, key, self.kinds, created_at)

    async def _send(self, event: NetworkEvent) -> str:
        try:
            return await asyncio.wait_for(self.transport.send(event), self.config.send_timeout)
        except asyncio.TimeoutError as e:
            raise TransportFailure(
                f"Send of kind {event.kind} timed out after {self.config.send_timeout}s"
            ) from e
        except OSError as e:
            raise TransportFailure(f"Send of kind {event.kind} failed: {e}") from e

    async def _query(self, event_filter: EventFilter) -> List[NetworkEvent]:
        started = time.perf_counter()
        try:
            events = await asyncio.wait_for(
                self.transport.query(event_filter), self.config.query_timeout
            )
        except asyncio.TimeoutError as e:
            raise TransportFailure(f"Query timed out after {self.config.query_timeout}s") from e
        except OSError as e:
            raise TransportFailure(f"Query failed: {e}") from e

        if self.audit_logger:
            self.audit_logger.log_fetch(
                kind=event_filter.kinds[0],
                num_results=len(events),
                execution_time_ms=(time.perf_counter() - started) * 1000,
            )
        return events

    async def _publish(self, citation: Citation,
                       previous: Optional[NetworkRef] = None) -> NetworkRef:
        # Stamp after the previous event so an identical re-encoding gets a fresh id
        previous = previous or citation.network_ref
        floor = self._last_stamps.get(citation.id, -1)
        if previous is not None:
            floor = max(floor, previous.created_at)
        created_at = max(now_seconds(), floor + 1)

        event = await self.encode(citation, created_at)
        content_hash = citation.content_hash()
        visibility = citation.visibility

        try:
            event_id = await self._send(event)
        except TransportFailure as e:
            if self.audit_logger:
                self.audit_logger.log_error('publish_failed', str(e), {'citation_id': citation.id})
            raise

        ref = NetworkRef(event_id=event_id, visibility=visibility, content_hash=content_hash,
                         created_at=event.created_at)
        citation.network_ref = ref
        self._last_stamps[citation.id] = event.created_at
        if self.audit_logger:
            self.audit_logger.log_publish(citation.id, event_id, event.kind, visibility.value)
        logger.debug("Published %s as %s (kind %d)", citation.id, event_id, event.kind)
        return ref

    async def publish(self, citation: Citation) -> NetworkRef:
        """
        Publish a citation that is unsynced or stale.

        On a stale citation the previous event is not retracted; use
        update() for retract-then-republish.

        Args:
            citation: Citation to publish; network_ref is set on success

        Returns:
            The new NetworkRef

        Raises:
            SyncStateError: If the citation is already synced
            TransportFailure: If sending failed (citation unchanged)
        """
        if sync_state(citation) is SyncState.SYNCED:
            raise SyncStateError(f"Citation {citation.id} is already synced")
        if citation.network_ref is not None:
            logger.warning(
                "Publishing stale citation %s without retracting %s",
                citation.id, citation.network_ref.event_id,
            )
        return await self._publish(citation)

    async def _retract(self, citation: Citation, reason: str) -> str:
        event = to_retraction(citation, reason, self.kinds)
        target = citation.network_ref.event_id

        try:
            retraction_id = await self._send(event)
        except TransportFailure as e:
            if self.audit_logger:
                self.audit_logger.log_retraction(citation.id, target, False, error=str(e))
            raise

        self._last_stamps[citation.id] = max(
            self._last_stamps.get(citation.id, -1), citation.network_ref.created_at
        )
        citation.network_ref = None
        if self.audit_logger:
            self.audit_logger.log_retraction(citation.id, target, True, retraction_id=retraction_id)
        return retraction_id

    async def retract(self, citation: Citation, reason: str = DEFAULT_RETRACTION_REASON) -> str:
        """
        Retract a citation's current network event.

        Args:
            citation: Published citation; network_ref is cleared on success
            reason: Free-text reason carried by the retraction

        Returns:
            Event id of the retraction itself

        Raises:
            NotPublished: If the citation has no network_ref
            TransportFailure: If sending failed (citation unchanged)
        """
        return await self._retract(citation, reason)

    async def update(self, citation: Citation) -> NetworkRef:
        """
        Retract the old representation, then publish the current one.

        The retraction is best-effort: if it fails the republish still
        happens and the old event may remain visible. Relays may also
        apply retractions late or never, so observers can briefly see
        both or neither representation.

        Args:
            citation: Previously published citation

        Returns:
            The new NetworkRef

        Raises:
            NotPublished: If the citation has no network_ref
            TransportFailure: If the republish failed; network_ref is then
                None if the retraction succeeded, else still the old ref
        """
        if citation.network_ref is None:
            raise NotPublished(f"Citation {citation.id} has not been published")

        old_ref = citation.network_ref
        if old_ref.visibility != citation.visibility:
            logger.info(
                "Visibility of %s changed %s -> %s",
                citation.id, old_ref.visibility.value, citation.visibility.value,
            )

        try:
            await self._retract(citation, UPDATE_RETRACTION_REASON)
        except TransportFailure as e:
            logger.warning("Retraction of %s failed, republishing anyway: %s", old_ref.event_id, e)

        return await self._publish(citation, previous=old_ref)

    async def retract_all(self, citations: Iterable[Citation],
                          reason: str = DEFAULT_RETRACTION_REASON) -> BatchReport:
        """
        Retract many citations as independent operations.

        Citations without a network_ref are skipped. There is no atomicity
        across the batch.

        Returns:
            BatchReport with per-citation errors
        """
        citations = list(citations)
        report = BatchReport(total=len(citations))
        published = [c for c in citations if c.network_ref is not None]
        report.skipped = len(citations) - len(published)

        results = await asyncio.gather(
            *(self._retract(c, reason) for c in published), return_exceptions=True
        )
        for citation, result in zip(published, results):
            if isinstance(result, RefMirrorError):
                report.failed += 1
                report.errors[citation.id] = str(result)
            elif isinstance(result, BaseException):
                raise result
            else:
                report.succeeded += 1
        return report

    async def fetch_public(self, authors: Optional[Iterable[str]] = None,
                           limit: Optional[int] = None) -> List[Citation]:
        """
        Fetch public citations from the network.

        Args:
            authors: Optional author pubkeys to restrict the query
            limit: Maximum number of events (defaults to config.query_limit)

        Returns:
            Decoded public citations, newest first

        Raises:
            TransportFailure: If the query failed or timed out
        """
        event_filter = EventFilter(
            kinds=(self.kinds.public,),
            authors=tuple(authors) if authors else None,
            limit=limit or self.config.query_limit,
        )
        citations = []
        for event in await self._query(event_filter):
            if not isinstance(event, PublicEvent):
                continue
            try:
                citations.append(from_public_event(event))
            except ValueError as e:
                logger.warning("Skipping undecodable public event %s: %s", event.event_id, e)
        return citations

    async def fetch_private(self, authors: Optional[Iterable[str]] = None,
                            limit: Optional[int] = None) -> List[Citation]:
        """
        Fetch and decrypt private citations from the network.

        Events that do not authenticate under our key are skipped.

        Raises:
            TransportFailure: If the query failed or timed out
            ConfigError: If no identity key is configured
        """
        key = await self.encryption_key()
        event_filter = EventFilter(
            kinds=(self.kinds.private,),
            authors=tuple(authors) if authors else None,
            limit=limit or self.config.query_limit,
        )
        citations = []
        skipped = 0
        for event in await self._query(event_filter):
            if not isinstance(event, PrivateEvent):
                continue
            try:
                citations.append(from_private_event(event, key))
            except (AuthenticationFailure, ValueError):
                skipped += 1
        if skipped:
            logger.info("Skipped %d private events not readable with this identity", skipped)
        return citations
