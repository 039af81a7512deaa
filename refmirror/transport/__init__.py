"""
Transports for the pub/sub event network.

Transports are caller-owned collaborators injected into the
synchronization protocol.
"""

from .base import BaseTransport, EventFilter
from .memory import MemoryTransport

__all__ = ['BaseTransport', 'EventFilter', 'MemoryTransport']
