from enum import Enum


class ItemType(str, Enum):
    book = "book"
    bundle = "bundle"


class PurchaseStatus(str, Enum):
    pending = "pending"
    pending_initiation = "pending_initiation"
    awaiting_payment = "awaiting_payment"
    pending_verification = "pending_verification"
    completed = "completed"
    rejected = "rejected"


ALLOWED_PURCHASE_TRANSITIONS = {
    PurchaseStatus.pending: [
        PurchaseStatus.awaiting_payment,
        PurchaseStatus.pending_verification,
        PurchaseStatus.rejected,
    ],
    PurchaseStatus.pending_initiation: [PurchaseStatus.awaiting_payment, PurchaseStatus.rejected],
    PurchaseStatus.awaiting_payment: [PurchaseStatus.pending_verification, PurchaseStatus.rejected],
    PurchaseStatus.pending_verification: [PurchaseStatus.completed, PurchaseStatus.rejected],
    PurchaseStatus.completed: [],
    PurchaseStatus.rejected: [],
}

TERMINAL_PURCHASE_STATUSES = {PurchaseStatus.completed, PurchaseStatus.rejected}

# completed still blocks a new purchase of the same item; rejected frees it
BLOCKING_PURCHASE_STATUSES = [s for s in PurchaseStatus if s != PurchaseStatus.rejected]


def can_transition_purchase(current, target) -> bool:
    return PurchaseStatus(target) in ALLOWED_PURCHASE_TRANSITIONS.get(PurchaseStatus(current), [])
