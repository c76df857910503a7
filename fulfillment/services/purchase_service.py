import logging
import secrets
import time
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from fulfillment.config import settings
from fulfillment.constants.purchase_status import (
    TERMINAL_PURCHASE_STATUSES,
    ItemType,
    PurchaseStatus,
    can_transition_purchase,
)
from fulfillment.models.library import LibraryEntry
from fulfillment.models.purchase import Purchase
from fulfillment.models.user import User
from fulfillment.notifications import PurchaseEvent, dispatch_purchase_event
from fulfillment.repositories.purchase_repository import PurchaseRepository
from fulfillment.services import storage_service
from fulfillment.utils.background import fire_and_forget
from fulfillment.utils.result import ErrorCode, Result, failure, success

logger = logging.getLogger(__name__)


def new_transaction_reference() -> str:
    return f"AST-{int(time.time() * 1000)}-{secrets.token_hex(3).upper()}"


def bot_deep_link(token: str) -> str:
    return f"https://t.me/{settings.telegram_bot_username}?start={token}"


class PurchaseService:
    """
    Manual-payment purchase workflow.

    pending_initiation -> awaiting_payment (bot linked) -> pending_verification
    (proof uploaded) -> completed | rejected (admin decision). Every transition
    is a compare-and-swap on ``updated_at``; a lost race comes back as
    ``STALE_WRITE`` and is never retried here.
    """

    def __init__(self, session: Session, catalog=None, converter=None, storage=storage_service,
                 dispatcher: Callable = dispatch_purchase_event, executor=None,
                 background_tasks=None):
        if catalog is None:
            from fulfillment.dependencies.catalog import get_catalog_repository
            catalog = get_catalog_repository()
        if converter is None:
            from fulfillment.dependencies.currency import get_currency_converter
            converter = get_currency_converter()

        self.session = session
        self.repository = PurchaseRepository(session)
        self.catalog = catalog
        self.converter = converter
        self.storage = storage
        self.dispatcher = dispatcher
        self.executor = executor
        self.background_tasks = background_tasks

    # -------------------------
    # HELPERS
    # -------------------------

    def _transition(self, purchase: Purchase, target: PurchaseStatus, patch: dict,
                    expected_updated_at: Optional[datetime] = None, also_add=()) -> Result:
        if not can_transition_purchase(purchase.status, target):
            return failure(
                f"Cannot move purchase from {purchase.status.value} to {target.value}",
                ErrorCode.INVALID_TRANSITION,
            )

        patch = dict(patch, status=target)
        result = self.repository.update_purchase_with_version_check(
            purchase.id, patch, expected_updated_at or purchase.updated_at, also_add=also_add
        )
        if result.success:
            logger.info(f"Purchase {purchase.id} -> {target.value}")
        return result

    def _item_title(self, purchase: Purchase) -> str:
        item = self.catalog.get_item(purchase.item_type, purchase.item_id)
        return item.data["title"] if item.success else "Unknown Item"

    def _buyer(self, purchase: Purchase) -> dict:
        user = self.session.get(User, purchase.user_id)
        if user is None:
            return {"id": purchase.user_id, "email": "", "name": "Unknown User"}
        return {"id": user.id, "email": user.email, "name": user.display_name}

    def _purchase_context(self, purchase: Purchase) -> dict:
        return {
            "id": purchase.id,
            "item_title": self._item_title(purchase),
            "amount": purchase.amount,
            "transaction_reference": purchase.transaction_reference,
        }

    def _notify(self, event: PurchaseEvent, purchase: Purchase, **extra) -> None:
        fire_and_forget(
            self.dispatcher,
            executor=self.executor,
            background_tasks=self.background_tasks,
            event=event,
            related_id=purchase.id,
            user=self._buyer(purchase),
            extra=dict(extra, purchase=self._purchase_context(purchase)),
        )

    # -------------------------
    # BUYER
    # -------------------------

    def initiate_purchase(self, user: User, item_type, item_id: int) -> Result:
        try:
            item_type = ItemType(item_type)
        except ValueError:
            return failure(f"Unknown item type: {item_type}", ErrorCode.VALIDATION_ERROR)

        item = self.catalog.get_item(item_type, item_id)
        if not item.success:
            return item
        if item.data.get("is_free") or not item.data["price"] or item.data["price"] <= 0:
            return failure("This item is free and cannot be purchased", ErrorCode.VALIDATION_ERROR)

        existing = self.repository.has_existing_purchase(user.id, item_type, item_id)
        if not existing.success:
            return existing
        if existing.data is not None:
            return failure(
                f"You already have a {existing.data.status.value} purchase for this item",
                ErrorCode.DUPLICATE_PURCHASE,
            )

        token = secrets.token_urlsafe(24)
        created = self.repository.create_purchase({
            "user_id": user.id,
            "item_type": item_type,
            "item_id": item_id,
            "amount": item.data["price"],
            "amount_in_birr": self.converter.convert(item.data["price"]),
            "status": PurchaseStatus.pending_initiation,
            "initiation_token": token,
            "transaction_reference": new_transaction_reference(),
        })
        if not created.success:
            return created

        return success({
            "purchase": created.data,
            "bot_link": bot_deep_link(token),
            "initiation_token": token,
        })

    def get_purchase_for_user(self, purchase_id: int, user: User) -> Result:
        result = self.repository.get_purchase_by_id(purchase_id)
        if result.success and result.data.user_id != user.id and not user.is_admin:
            return failure("Purchase not found", ErrorCode.NOT_FOUND)
        return result

    def get_user_purchases(self, user: User) -> Result:
        return self.repository.get_purchases_by_user(user.id)

    def link_bot_chat(self, token: str, chat_id: int, telegram_user_id: Optional[int] = None) -> Result:
        """Consume an initiation token: the bot chat now owns the payment conversation."""
        resolved = self.repository.find_purchase_by_token(token)
        if not resolved.success:
            return resolved
        if resolved.data is None:
            return failure("Purchase not found or token expired", ErrorCode.TOKEN_NOT_FOUND)

        purchase = self.repository.get_purchase_by_id(resolved.data["purchase_id"])
        if not purchase.success:
            return purchase

        return self._transition(purchase.data, PurchaseStatus.awaiting_payment, {
            "telegram_chat_id": chat_id,
            "telegram_user_id": telegram_user_id,
        })

    def submit_payment_proof(self, purchase_id: int, user: User, file) -> Result:
        current = self.repository.get_purchase_by_id(purchase_id)
        if not current.success:
            return current
        purchase = current.data

        if purchase.user_id != user.id:
            return failure("You can only submit proof for your own purchase", ErrorCode.FORBIDDEN)
        if not can_transition_purchase(purchase.status, PurchaseStatus.pending_verification):
            return failure(
                f"Cannot submit proof while purchase is {purchase.status.value}",
                ErrorCode.INVALID_TRANSITION,
            )

        try:
            key = self.storage.upload_payment_proof(file, purchase.id, purchase.transaction_reference)
        except storage_service.StorageError as exc:
            return failure(f"Failed to store payment proof: {exc}", ErrorCode.STORAGE_ERROR)

        result = self._transition(purchase, PurchaseStatus.pending_verification, {"payment_proof_key": key})
        if not result.success:
            self.storage.delete_payment_proof(key)
            return result

        self._notify(
            PurchaseEvent.PROOF_SUBMITTED,
            result.data,
            admin_title=f"Payment proof for purchase #{purchase.id}",
            admin_content=f"{purchase.transaction_reference} is waiting for verification",
            admin_template="emails/admin_purchase_approval.html",
            admin_subject=f"Purchase #{purchase.id} awaiting approval",
        )
        return result

    # -------------------------
    # ADMIN
    # -------------------------

    def approve_purchase(self, purchase_id: int, admin: User, expected_updated_at: datetime,
                         admin_notes: Optional[str] = None) -> Result:
        current = self.repository.get_purchase_by_id(purchase_id)
        if not current.success:
            return current

        entries = self._missing_library_entries(current.data)
        if not entries.success:
            return entries

        patch = {"admin_notes": admin_notes} if admin_notes is not None else {}
        result = self._transition(
            current.data, PurchaseStatus.completed, patch, expected_updated_at, also_add=entries.data
        )
        if not result.success:
            return result

        purchase = result.data
        logger.info(
            f"Admin {admin.id} approved purchase {purchase.id}, "
            f"granted {len(entries.data)} books to user {purchase.user_id}"
        )

        self._notify(
            PurchaseEvent.PURCHASE_APPROVED,
            purchase,
            user_template="emails/purchase_confirmation.html",
            user_subject="Your purchase is confirmed",
            approved_date=purchase.updated_at.strftime("%Y-%m-%d"),
        )
        return result

    def reject_purchase(self, purchase_id: int, admin: User, expected_updated_at: datetime,
                        reason: Optional[str] = None) -> Result:
        current = self.repository.get_purchase_by_id(purchase_id)
        if not current.success:
            return current
        if current.data.status in TERMINAL_PURCHASE_STATUSES:
            return failure(
                f"Purchase is already {current.data.status.value}", ErrorCode.INVALID_TRANSITION
            )

        patch = {"admin_notes": reason} if reason is not None else {}
        result = self._transition(current.data, PurchaseStatus.rejected, patch, expected_updated_at)
        if not result.success:
            return result

        logger.info(f"Admin {admin.id} rejected purchase {purchase_id}")
        self._notify(
            PurchaseEvent.PURCHASE_REJECTED,
            result.data,
            user_template="emails/purchase_rejected.html",
            user_subject="We could not verify your payment",
            reason=reason,
        )
        return result

    def _missing_library_entries(self, purchase: Purchase) -> Result:
        """Unsaved library rows for the purchased book(s) the buyer does not own yet."""
        if purchase.item_type == ItemType.book:
            book_ids = [purchase.item_id]
        else:
            books = self.catalog.get_bundle_books(purchase.item_id)
            if not books.success:
                return books
            book_ids = [book["id"] for book in books.data]

        try:
            owned = set(self.session.exec(
                select(LibraryEntry.book_id)
                .where(LibraryEntry.user_id == purchase.user_id)
                .where(LibraryEntry.book_id.in_(book_ids))
            ).all())
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception(f"Library lookup failed for purchase {purchase.id}")
            return failure(f"Failed to read library: {exc}", ErrorCode.DATABASE_ERROR)

        return success([
            LibraryEntry(user_id=purchase.user_id, book_id=book_id)
            for book_id in book_ids if book_id not in owned
        ])

    def grant_library_access(self, purchase: Purchase) -> Result:
        """
        Re-grant the books of a completed purchase. Approval already grants
        them; this repairs a library after catalog changes and is idempotent.
        """
        if purchase.status != PurchaseStatus.completed:
            return failure("Only completed purchases grant library access", ErrorCode.INVALID_TRANSITION)

        entries = self._missing_library_entries(purchase)
        if not entries.success:
            return entries

        try:
            self.session.add_all(entries.data)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception(f"Library grant failed for purchase {purchase.id}")
            return failure(f"Library grant failed: {exc}", ErrorCode.DATABASE_ERROR)

        added = [entry.book_id for entry in entries.data]
        logger.info(f"Granted {len(added)} books to user {purchase.user_id} for purchase {purchase.id}")
        return success(added)

    def get_purchase_stats(self) -> Result:
        return self.repository.get_purchase_count_by_status()

    def list_purchases(self, status: Optional[str] = None, page: int = 1, limit: int = 20) -> Result:
        if status:
            return self.repository.get_purchases_by_status(status, page, limit)
        return self.repository.get_all_purchases(page, limit)
