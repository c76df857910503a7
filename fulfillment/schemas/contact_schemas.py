from pydantic import BaseModel, Field
from typing import Optional

from fulfillment.constants.request_status import ContactType


class AdminContactCreate(BaseModel):
    contact_type: ContactType
    contact_value: str = Field(..., min_length=1, max_length=200)
    display_name: Optional[str] = Field(None, max_length=100)
    is_active: bool = True
    is_primary: bool = False
    display_order: int = Field(default=0, ge=0)


class AdminContactUpdate(BaseModel):
    contact_value: Optional[str] = Field(None, min_length=1, max_length=200)
    display_name: Optional[str] = Field(None, max_length=100)
    is_active: Optional[bool] = None
    is_primary: Optional[bool] = None
    display_order: Optional[int] = Field(None, ge=0)
