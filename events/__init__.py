"""
events — In-memory simulation notification bus
==============================================

Provides a lightweight topic-based pub/sub layer that carries the
simulation's notifications (passengers alighted, dwell complete, lap
complete, stop skipped/abandoned) from the motion core to the
throughput aggregator and the UI, without either side importing the
other.

Modules
-------
message
    :class:`Message` dataclass.
event_bus
    :class:`EventBus` publish / subscribe / poll transport.
metrics
    :class:`EventMetrics` counter snapshot.
utils
    ID generation.
"""

from .message import Message
from .event_bus import EventBus
from .metrics import EventMetrics
from .utils import new_msg_id

__all__ = [
    "Message",
    "EventBus",
    "EventMetrics",
    "new_msg_id",
]
