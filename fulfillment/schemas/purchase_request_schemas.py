from pydantic import BaseModel, Field
from typing import Optional
from decimal import Decimal

from fulfillment.constants.purchase_status import ItemType
from fulfillment.constants.request_status import ContactType, RequestStatus


class PurchaseRequestCreate(BaseModel):
    item_type: ItemType
    item_id: int
    amount: Decimal
    preferred_contact_method: Optional[ContactType] = None
    user_message: Optional[str] = Field(None, max_length=1000)


class PurchaseRequestStatusUpdate(BaseModel):
    status: RequestStatus
    admin_notes: Optional[str] = Field(None, max_length=1000)
