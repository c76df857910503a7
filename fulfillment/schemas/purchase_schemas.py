from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict

from fulfillment.constants.purchase_status import ItemType, PurchaseStatus


class PurchaseCreate(BaseModel):
    item_type: ItemType
    item_id: int


class PurchaseRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    item_type: ItemType
    item_id: int
    amount: Decimal
    amount_in_birr: Optional[Decimal] = None
    status: PurchaseStatus
    transaction_reference: Optional[str] = None
    payment_proof_key: Optional[str] = None
    admin_notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class PurchaseInitiated(BaseModel):
    purchase: PurchaseRead
    bot_link: str
    initiation_token: str


class PurchaseDecision(BaseModel):
    """Admin decision; ``expected_updated_at`` is the version the admin looked at."""
    expected_updated_at: datetime
    admin_notes: Optional[str] = None
