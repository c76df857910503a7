from datetime import datetime
from typing import Optional

from sqlmodel import SQLModel, Field

from fulfillment.constants.request_status import ContactType


class AdminContactInfo(SQLModel, table=True):
    __tablename__ = "admin_contact_info"

    id: Optional[int] = Field(default=None, primary_key=True)
    admin_id: int = Field(foreign_key="users.id", index=True)

    contact_type: ContactType
    contact_value: str
    display_name: Optional[str] = None

    is_active: bool = True
    is_primary: bool = False
    display_order: int = 0

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
