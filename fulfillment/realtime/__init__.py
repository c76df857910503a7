from fulfillment.realtime.transport import ChangeEvent, LocalRealtimeTransport, RealtimeChannel
from fulfillment.realtime.change_feed import ChangeFeed, record_change

__all__ = [
    "ChangeEvent",
    "ChangeFeed",
    "LocalRealtimeTransport",
    "RealtimeChannel",
    "record_change",
]
