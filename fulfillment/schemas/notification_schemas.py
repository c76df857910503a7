from pydantic import BaseModel, Field
from typing import Any, Dict, Literal, Optional
from datetime import datetime


class PurchaseStatusNotification(BaseModel):
    type: Literal["purchase_status_update"] = "purchase_status_update"
    source: Literal["purchase", "purchase_request"] = "purchase"
    purchase_id: int
    status: str
    item_type: str
    item_id: int


class AdminApprovalNotification(BaseModel):
    type: Literal["admin_approval_required"] = "admin_approval_required"
    request_type: Literal["purchase_request"] = "purchase_request"
    request_id: int
    user_id: int
    user_display_name: str
    item_type: str
    item_id: int
    item_title: str
    amount: float


class ReadingProgressNotification(BaseModel):
    type: Literal["reading_progress_sync"] = "reading_progress_sync"
    book_id: int
    book_title: str
    progress: int = 0
    last_read_position: Optional[str] = None
    status: str


class ActivityFeedNotification(BaseModel):
    type: Literal["activity_feed"] = "activity_feed"
    activity_type: Literal["book_added", "book_completed"]
    user_id: int
    user_display_name: str
    item_id: int
    item_title: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.utcnow)
