"""
refmirror - personal bibliography with selective network mirroring.

Round-trips citations through BibTeX, encodes them as public or encrypted
pub/sub events, and tracks publish / update / retract state per citation.
"""

__version__ = "1.0.0"

from refmirror.models import Citation, NetworkRef, Visibility
from refmirror.config import MirrorConfig, load_config
from refmirror.sync import SyncProtocol, SyncState

__all__ = [
    'Citation',
    'NetworkRef',
    'Visibility',
    'MirrorConfig',
    'load_config',
    'SyncProtocol',
    'SyncState',
]
