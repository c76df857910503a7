from .events import Channel, EmailType, PurchaseEvent
from .dispatcher import dispatch_email, dispatch_purchase_event

__all__ = [
    "Channel",
    "EmailType",
    "PurchaseEvent",
    "dispatch_email",
    "dispatch_purchase_event",
]
