from functools import lru_cache

from fulfillment.realtime import ChangeFeed, LocalRealtimeTransport


@lru_cache(maxsize=1)
def get_realtime_transport() -> LocalRealtimeTransport:
    return LocalRealtimeTransport()


@lru_cache(maxsize=1)
def get_change_feed() -> ChangeFeed:
    """Publishes committed row changes to the process transport once installed."""
    return ChangeFeed(get_realtime_transport())
