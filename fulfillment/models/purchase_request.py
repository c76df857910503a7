from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlmodel import SQLModel, Field

from fulfillment.constants.purchase_status import ItemType
from fulfillment.constants.request_status import ContactType, RequestStatus


class PurchaseRequest(SQLModel, table=True):
    __tablename__ = "purchase_requests"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)

    item_type: ItemType
    item_id: int
    amount: Decimal = Field(max_digits=10, decimal_places=2)

    status: RequestStatus = Field(default=RequestStatus.pending, index=True)
    preferred_contact_method: Optional[ContactType] = None
    user_message: Optional[str] = None
    admin_notes: Optional[str] = None

    contacted_at: Optional[datetime] = None
    responded_at: Optional[datetime] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
