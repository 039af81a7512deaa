"""
In-process relay.

Behaves like a single cooperative relay: assigns content-derived event ids,
honours retraction events and answers filtered queries newest first. Used
by tests and offline runs; failure hooks simulate an unreachable relay.
"""

import asyncio
import dataclasses
import hashlib
import json
from typing import List, Optional, Set

from refmirror.config import EventKinds
from refmirror.errors import TransportFailure
from refmirror.events import NetworkEvent, RetractionEvent
from refmirror.transport.base import BaseTransport, EventFilter


class MemoryTransport(BaseTransport):
    """Relay simulation holding events in memory."""

    def __init__(self, pubkey: str = "0" * 64, kinds: Optional[EventKinds] = None,
                 delay: float = 0.0):
        """
        Initialize the relay.

        Args:
            pubkey: Author pubkey stamped on every sent event
            kinds: Event kind numbers
            delay: Seconds each send/query sleeps, to exercise timeouts
        """
        self.pubkey = pubkey
        self.kinds = kinds or EventKinds()
        self.delay = delay
        self.events: List[NetworkEvent] = []
        self.deleted: Set[str] = set()

        # Failure hooks
        self.fail_sends = 0
        self.fail_on_kinds: Set[int] = set()
        self.fail_queries = False

    @staticmethod
    def compute_event_id(pubkey: str, event: NetworkEvent) -> str:
        """SHA256 over the serialized [0, pubkey, created_at, kind, tags, content]."""
        serialized = json.dumps(
            [0, pubkey, event.created_at, event.kind,
             [list(tag) for tag in event.tags], event.content],
            separators=(',', ':'),
            ensure_ascii=False,
        )
        return hashlib.sha256(serialized.encode('utf-8')).hexdigest()

    async def send(self, event: NetworkEvent) -> str:
        if self.delay:
            await asyncio.sleep(self.delay)

        if self.fail_sends > 0:
            self.fail_sends -= 1
            raise TransportFailure("Relay rejected event")
        if event.kind in self.fail_on_kinds:
            raise TransportFailure(f"Relay rejected kind {event.kind}")

        event_id = self.compute_event_id(self.pubkey, event)
        stored = dataclasses.replace(event, event_id=event_id, pubkey=self.pubkey)
        self.events.append(stored)

        if isinstance(stored, RetractionEvent):
            own_ids = {e.event_id for e in self.events if e.pubkey == stored.pubkey}
            self.deleted.update(i for i in stored.target_ids if i in own_ids)

        return event_id

    async def query(self, event_filter: EventFilter) -> List[NetworkEvent]:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_queries:
            raise TransportFailure("Relay query failed")

        matches = [
            event for event in self.events
            if event.kind in event_filter.kinds
            and event.event_id not in self.deleted
            and (event_filter.authors is None or event.pubkey in event_filter.authors)
            and (event_filter.ids is None or event.event_id in event_filter.ids)
        ]
        # Newest first; later sends win ties
        ordered = sorted(enumerate(matches), key=lambda p: (p[1].created_at, p[0]), reverse=True)
        return [event for _, event in ordered][:event_filter.limit]

    def get(self, event_id: str) -> Optional[NetworkEvent]:
        """Stored event by id, retracted or not."""
        for event in self.events:
            if event.event_id == event_id:
                return event
        return None

    def is_live(self, event_id: str) -> bool:
        """Whether an event was stored and has not been retracted."""
        return self.get(event_id) is not None and event_id not in self.deleted
