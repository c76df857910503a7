from enum import Enum


class PurchaseEvent(str, Enum):
    REQUEST_CREATED = "purchase_request_created"
    PROOF_SUBMITTED = "payment_proof_submitted"
    PURCHASE_APPROVED = "purchase_approved"
    PURCHASE_REJECTED = "purchase_rejected"


class Channel(str, Enum):
    """Where a purchase event can be delivered."""
    EMAIL_USER = "email_user"
    EMAIL_ADMIN = "email_admin"
    INAPP_ADMIN = "inapp_admin"


class EmailType(str, Enum):
    WELCOME = "welcome"
    PURCHASE_RECEIPT = "purchase_receipt"
    PURCHASE_CONFIRMATION = "purchase_confirmation"
    PASSWORD_RESET = "password_reset"
    SECURITY_NOTIFICATION = "security_notification"
    ADMIN_PURCHASE_APPROVAL = "admin_purchase_approval"
