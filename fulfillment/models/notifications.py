from datetime import datetime
from enum import Enum
from typing import Optional

from sqlmodel import SQLModel, Field


class RecipientRole(str, Enum):
    admin = "admin"
    buyer = "buyer"


class Notification(SQLModel, table=True):
    """In-app inbox entry raised by a purchase event."""

    id: Optional[int] = Field(default=None, primary_key=True)

    recipient_role: RecipientRole = Field(index=True)
    user_id: Optional[int] = None

    trigger_source: str          # PurchaseEvent value
    related_id: int              # purchase or purchase request id

    title: str
    content: str

    is_read: bool = Field(default=False)
    read_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
