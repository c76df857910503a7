from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session

from fulfillment.database import get_session
from fulfillment.dependencies.admin import require_admin
from fulfillment.models.user import User
from fulfillment.services.notification_service import list_admin_notifications, mark_notification_read

router = APIRouter()


def _view(notification) -> dict:
    return {
        "notification_id": notification.id,
        "title": notification.title,
        "content": notification.content,
        "trigger_source": notification.trigger_source,
        "related_id": notification.related_id,
        "is_read": notification.is_read,
        "created_at": notification.created_at,
    }


@router.get("")
def admin_notifications(
    trigger_source: Optional[str] = None,
    unread: bool = False,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    return [_view(n) for n in list_admin_notifications(session, trigger_source, unread)]


@router.post("/{notification_id}/read")
def read_notification(
    notification_id: int,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    notification = mark_notification_read(session, notification_id)
    if notification is None:
        raise HTTPException(404, "Notification not found")
    return _view(notification)
