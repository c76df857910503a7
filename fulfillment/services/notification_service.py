from datetime import datetime
from typing import List, Optional

from sqlmodel import Session, select

from fulfillment.models.notifications import Notification, RecipientRole


def create_notification(
    *,
    session: Session,
    recipient_role: RecipientRole,
    user_id: Optional[int],
    trigger_source: str,
    related_id: int,
    title: str,
    content: str,
) -> Notification:
    notification = Notification(
        recipient_role=recipient_role,
        user_id=user_id,
        trigger_source=trigger_source,
        related_id=related_id,
        title=title,
        content=content,
    )
    session.add(notification)
    session.flush()
    return notification


def list_admin_notifications(
    session: Session,
    trigger_source: Optional[str] = None,
    unread_only: bool = False,
) -> List[Notification]:
    query = select(Notification).where(Notification.recipient_role == RecipientRole.admin)
    if trigger_source:
        query = query.where(Notification.trigger_source == trigger_source)
    if unread_only:
        query = query.where(Notification.is_read == False)  # noqa: E712
    return list(session.exec(query.order_by(Notification.created_at.desc(), Notification.id.desc())).all())


def mark_notification_read(session: Session, notification_id: int) -> Optional[Notification]:
    """Returns None when no admin notification has that id. Re-reading keeps the first read_at."""
    notification = session.get(Notification, notification_id)
    if notification is None or notification.recipient_role != RecipientRole.admin:
        return None

    if not notification.is_read:
        notification.is_read = True
        notification.read_at = datetime.utcnow()
        session.add(notification)
        session.commit()
        session.refresh(notification)
    return notification
