import logging
from typing import Callable, Optional

from sqlmodel import Session

from fulfillment.config import settings
from fulfillment.database import session_factory as default_session_factory
from fulfillment.models.notifications import RecipientRole
from fulfillment.models.user import User
from fulfillment.notifications.email_handlers import send_admin_email, send_user_email
from fulfillment.notifications.events import Channel, EmailType, PurchaseEvent
from fulfillment.notifications.rules import EMAIL_RULES, NOTIFICATION_RULES, AuthTier
from fulfillment.services.notification_service import create_notification
from fulfillment.utils.result import ErrorCode, Result, failure, success

logger = logging.getLogger(__name__)


def dispatch_purchase_event(
    *,
    event: PurchaseEvent,
    related_id: int,
    user: Optional[dict] = None,
    extra: Optional[dict] = None,
    session_factory: Callable[[], Session] = default_session_factory,
    notify_user: bool = True,
    notify_admin: bool = True,
) -> dict:
    """
    Central notification dispatcher for purchase events.

    Handles:
    - admin in-app notifications
    - user email
    - admin email

    Channels are independent: one failing is logged and the others still run.
    ``user`` is a plain ``{id, email, name}`` dict so this can run off-request.
    """
    rules = NOTIFICATION_RULES.get(event, {})
    extra = extra or {}
    delivered = {}

    # -------------------------
    # ADMIN IN-APP NOTIFICATION
    # -------------------------
    if notify_admin and rules.get(Channel.INAPP_ADMIN):
        try:
            with session_factory() as session:
                create_notification(
                    session=session,
                    recipient_role=RecipientRole.admin,
                    user_id=user["id"] if user else None,
                    trigger_source=event.value,
                    related_id=related_id,
                    title=extra.get("admin_title", "Purchase update"),
                    content=extra.get("admin_content", ""),
                )
                session.commit()
            delivered[Channel.INAPP_ADMIN] = True
        except Exception:
            logger.exception(f"In-app admin notification failed for {event.value} {related_id}")
            delivered[Channel.INAPP_ADMIN] = False

    # -------------------------
    # USER EMAIL
    # -------------------------
    if notify_user and rules.get(Channel.EMAIL_USER) and user:
        try:
            delivered[Channel.EMAIL_USER] = send_user_email(
                template=extra["user_template"],
                subject=extra["user_subject"],
                to=user["email"],
                user=user,
                **{k: v for k, v in extra.items() if k not in ("user_template", "user_subject")},
            ) is not None
        except Exception:
            logger.exception(f"User email failed for {event.value} {related_id}")
            delivered[Channel.EMAIL_USER] = False

    # -------------------------
    # ADMIN EMAIL
    # -------------------------
    if notify_admin and rules.get(Channel.EMAIL_ADMIN):
        try:
            delivered[Channel.EMAIL_ADMIN] = send_admin_email(
                template=extra["admin_template"],
                subject=extra["admin_subject"],
                user=user,
                **{k: v for k, v in extra.items() if k not in ("admin_template", "admin_subject")},
            ) is not None
        except Exception:
            logger.exception(f"Admin email failed for {event.value} {related_id}")
            delivered[Channel.EMAIL_ADMIN] = False

    return delivered


def _user_context(user: Optional[User]) -> Optional[dict]:
    if user is None:
        return None
    return {"id": user.id, "email": user.email, "name": user.display_name}


def dispatch_email(email_type, data: Optional[dict], user: Optional[User] = None) -> Result:
    """Send one of the transactional emails on behalf of an HTTP caller."""
    if not email_type or not data:
        return failure("Missing required fields: type and data", ErrorCode.VALIDATION_ERROR)

    try:
        email_type = EmailType(email_type)
    except ValueError:
        return failure(f"Unknown email type: {email_type}", ErrorCode.VALIDATION_ERROR)

    rule = EMAIL_RULES[email_type]

    if rule.tier != AuthTier.ANONYMOUS and user is None:
        return failure("Authentication required", ErrorCode.UNAUTHORIZED)
    if rule.tier == AuthTier.ADMIN and not user.is_admin:
        return failure("Admin access required", ErrorCode.FORBIDDEN)

    missing = [field for field in rule.required if not data.get(field)]
    if missing:
        return failure(f"Missing required data: {', '.join(missing)}", ErrorCode.VALIDATION_ERROR)

    context = dict(data)
    context.setdefault("user", _user_context(user))
    subject = rule.subject.format(store_name=settings.store_name)

    try:
        if email_type == EmailType.ADMIN_PURCHASE_APPROVAL:
            message_id = send_admin_email(rule.template, subject, **context)
        else:
            recipient = (context.get("user") or {}).get("email")
            if not recipient:
                return failure("Recipient email required", ErrorCode.VALIDATION_ERROR)
            message_id = send_user_email(rule.template, subject, recipient, **context)
    except Exception:
        logger.exception(f"Rendering or sending {email_type.value} email failed")
        return failure("Failed to send email", ErrorCode.INTERNAL_ERROR)

    if message_id is None:
        return failure("Failed to send email", ErrorCode.INTERNAL_ERROR)

    return success({"success": True, "message": "Email sent successfully", "id": message_id})
