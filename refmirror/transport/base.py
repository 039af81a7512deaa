"""Abstract transport collaborator and query filter."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Tuple

from refmirror.events import NetworkEvent


@dataclass(frozen=True)
class EventFilter:
    """Query filter: kinds plus optional author pubkeys and event ids."""

    kinds: Tuple[int, ...]
    authors: Optional[Tuple[str, ...]] = None
    ids: Optional[Tuple[str, ...]] = None
    limit: int = 50


class BaseTransport(ABC):
    """Abstract base for all transports."""

    @abstractmethod
    async def send(self, event: NetworkEvent) -> str:
        """
        Publish an event.

        Args:
            event: Any of the three event variants

        Returns:
            Transport-assigned event id

        Raises:
            TransportFailure: If the event could not be sent
        """
        pass

    @abstractmethod
    async def query(self, event_filter: EventFilter) -> List[NetworkEvent]:
        """
        Fetch events matching a filter.

        Args:
            event_filter: Kinds, optional authors/ids and a result limit

        Returns:
            Matching events with event_id and pubkey filled in

        Raises:
            TransportFailure: If the query failed
        """
        pass


