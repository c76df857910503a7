from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import BigInteger, Column
from sqlmodel import SQLModel, Field

from fulfillment.constants.purchase_status import ItemType, PurchaseStatus


class Purchase(SQLModel, table=True):
    __tablename__ = "purchases"

    id: Optional[int] = Field(default=None, primary_key=True)

    user_id: int = Field(foreign_key="users.id", index=True)
    item_type: ItemType
    item_id: int = Field(index=True)

    amount: Decimal = Field(max_digits=10, decimal_places=2)
    amount_in_birr: Optional[Decimal] = Field(default=None, max_digits=12, decimal_places=2)

    status: PurchaseStatus = Field(default=PurchaseStatus.pending, index=True)

    transaction_reference: Optional[str] = Field(default=None, unique=True, index=True)
    payment_provider_id: Optional[str] = None
    initiation_token: Optional[str] = Field(default=None, unique=True, index=True)

    telegram_chat_id: Optional[int] = Field(default=None, sa_column=Column(BigInteger, index=True))
    telegram_user_id: Optional[int] = Field(default=None, sa_column=Column(BigInteger))

    payment_proof_key: Optional[str] = None
    admin_notes: Optional[str] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
