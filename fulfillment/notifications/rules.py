from dataclasses import dataclass
from enum import Enum
from typing import Tuple

from fulfillment.notifications.events import Channel, EmailType, PurchaseEvent


NOTIFICATION_RULES = {

    PurchaseEvent.REQUEST_CREATED: {
        Channel.INAPP_ADMIN: True,
        Channel.EMAIL_ADMIN: True,
    },

    PurchaseEvent.PROOF_SUBMITTED: {
        Channel.INAPP_ADMIN: True,
        Channel.EMAIL_ADMIN: True,
    },

    PurchaseEvent.PURCHASE_APPROVED: {
        Channel.EMAIL_USER: True,
    },

    PurchaseEvent.PURCHASE_REJECTED: {
        Channel.EMAIL_USER: True,
    },

}


class AuthTier(str, Enum):
    ANONYMOUS = "anonymous"
    AUTHENTICATED = "authenticated"
    ADMIN = "admin"


@dataclass(frozen=True)
class EmailRule:
    tier: AuthTier
    required: Tuple[str, ...]
    template: str
    subject: str


EMAIL_RULES = {
    EmailType.WELCOME: EmailRule(
        tier=AuthTier.ANONYMOUS,
        required=("user",),
        template="emails/welcome.html",
        subject="Welcome to {store_name}",
    ),
    EmailType.PURCHASE_RECEIPT: EmailRule(
        tier=AuthTier.AUTHENTICATED,
        required=("purchase",),
        template="emails/purchase_receipt.html",
        subject="We received your purchase",
    ),
    EmailType.PURCHASE_CONFIRMATION: EmailRule(
        tier=AuthTier.AUTHENTICATED,
        required=("purchase", "approved_date"),
        template="emails/purchase_confirmation.html",
        subject="Your purchase is confirmed",
    ),
    EmailType.PASSWORD_RESET: EmailRule(
        tier=AuthTier.ANONYMOUS,
        required=("user", "reset_url"),
        template="emails/password_reset.html",
        subject="Reset your password",
    ),
    EmailType.SECURITY_NOTIFICATION: EmailRule(
        tier=AuthTier.AUTHENTICATED,
        required=("event_type", "event_details"),
        template="emails/security_notification.html",
        subject="Security alert for your account",
    ),
    EmailType.ADMIN_PURCHASE_APPROVAL: EmailRule(
        tier=AuthTier.ADMIN,
        required=("user", "purchase"),
        template="emails/admin_purchase_approval.html",
        subject="Purchase awaiting approval",
    ),
}
