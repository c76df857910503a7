from datetime import datetime
from enum import Enum
from typing import Optional

from sqlmodel import SQLModel, Field


class PaymentConfigType(str, Enum):
    bank_account = "bank_account"
    mobile_money = "mobile_money"


class PaymentConfig(SQLModel, table=True):
    __tablename__ = "payment_config"

    id: Optional[int] = Field(default=None, primary_key=True)
    config_type: PaymentConfigType
    provider_name: str
    account_number: str
    account_name: str
    instructions: Optional[str] = None

    is_active: bool = True
    display_order: int = 0

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
