from pydantic import BaseModel, Field
from typing import Optional

from fulfillment.models.payment_config import PaymentConfigType


class PaymentConfigCreate(BaseModel):
    config_type: PaymentConfigType
    provider_name: str = Field(..., min_length=1, max_length=100)
    account_number: str = Field(..., min_length=1, max_length=100)
    account_name: str = Field(..., min_length=1, max_length=200)
    instructions: Optional[str] = None
    is_active: bool = True
    display_order: int = Field(default=0, ge=0)


class PaymentConfigUpdate(BaseModel):
    # config_type is fixed at creation
    provider_name: Optional[str] = Field(None, min_length=1, max_length=100)
    account_number: Optional[str] = Field(None, min_length=1, max_length=100)
    account_name: Optional[str] = Field(None, min_length=1, max_length=200)
    instructions: Optional[str] = None
    is_active: Optional[bool] = None
    display_order: Optional[int] = Field(None, ge=0)


class PaymentInstruction(BaseModel):
    id: int
    type: PaymentConfigType
    provider_name: str
    account_number: str
    account_name: str
    instructions: str = ""
    display_order: int = 0
