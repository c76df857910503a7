import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from sqlalchemy import and_, func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from fulfillment.config import settings
from fulfillment.constants.purchase_status import (
    BLOCKING_PURCHASE_STATUSES,
    TERMINAL_PURCHASE_STATUSES,
    ItemType,
    PurchaseStatus,
)
from fulfillment.models.book import Book
from fulfillment.models.bundle import Bundle
from fulfillment.models.purchase import Purchase
from fulfillment.models.user import User
from fulfillment.realtime.change_feed import previous_snapshot, record_change, snapshot
from fulfillment.realtime.transport import UPDATE
from fulfillment.utils.pagination import paginate
from fulfillment.utils.result import ErrorCode, Result, failure, success

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("user_id", "item_type", "item_id", "amount")

# columns a patch may never touch
IMMUTABLE_FIELDS = {"id", "created_at", "updated_at"}


def as_naive_utc(value: datetime) -> datetime:
    """Stored timestamps are naive UTC; aware inputs are converted to match."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _next_version(expected: Optional[datetime] = None) -> datetime:
    now = datetime.utcnow()
    if expected is not None and now <= expected:
        return expected + timedelta(microseconds=1)
    return now


class PurchaseRepository:
    def __init__(self, session: Session):
        self.session = session

    def _store_error(self, operation: str, exc: Exception, **context) -> Result:
        self.session.rollback()
        details = " ".join(f"{k}={v}" for k, v in context.items())
        logger.exception(f"Purchase repository {operation} failed {details}".strip())
        return failure(f"Failed to {operation}: {exc}", ErrorCode.DATABASE_ERROR)

    # -------------------------
    # CREATE
    # -------------------------

    def create_purchase(self, data: dict) -> Result:
        missing = [f for f in REQUIRED_FIELDS if data.get(f) is None]
        if missing:
            return failure(
                f"Missing required fields: {', '.join(missing)}",
                ErrorCode.VALIDATION_ERROR,
            )

        try:
            purchase = Purchase(**data)
            self.session.add(purchase)
            self.session.commit()
            self.session.refresh(purchase)
        except (SQLAlchemyError, ValueError) as exc:
            return self._store_error("create purchase", exc, user_id=data.get("user_id"))

        logger.info(f"Purchase {purchase.id} created for user {purchase.user_id} ({purchase.status.value})")
        return success(purchase)

    # -------------------------
    # READ
    # -------------------------

    def has_existing_purchase(self, user_id: int, item_type, item_id: int) -> Result:
        """Most recent purchase that still blocks buying this item again."""
        try:
            purchase = self.session.exec(
                select(Purchase)
                .where(Purchase.user_id == user_id)
                .where(Purchase.item_type == ItemType(item_type))
                .where(Purchase.item_id == item_id)
                .where(Purchase.status.in_(BLOCKING_PURCHASE_STATUSES))
                .order_by(Purchase.created_at.desc(), Purchase.id.desc())
            ).first()
        except SQLAlchemyError as exc:
            return self._store_error("check existing purchase", exc, user_id=user_id, item_id=item_id)

        return success(purchase)

    def get_purchase_by_id(self, purchase_id: int) -> Result:
        try:
            purchase = self.session.get(Purchase, purchase_id)
        except SQLAlchemyError as exc:
            return self._store_error("fetch purchase", exc, purchase_id=purchase_id)

        if purchase is None:
            return failure("Purchase not found", ErrorCode.NOT_FOUND)
        return success(purchase)

    def get_purchases_by_user(self, user_id: int) -> Result:
        try:
            purchases = self.session.exec(
                select(Purchase)
                .where(Purchase.user_id == user_id)
                .order_by(Purchase.created_at.desc())
            ).all()
        except SQLAlchemyError as exc:
            return self._store_error("fetch user purchases", exc, user_id=user_id)
        return success(list(purchases))

    def find_purchase_by_transaction_reference(self, reference: str, chat_id: Optional[int] = None) -> Result:
        query = select(Purchase).where(Purchase.transaction_reference == reference)
        if chat_id is not None:
            query = query.where(Purchase.telegram_chat_id == chat_id)

        try:
            purchase = self.session.exec(query).first()
        except SQLAlchemyError as exc:
            return self._store_error("find purchase by reference", exc, reference=reference)
        return success(purchase)

    def find_pending_by_chat(self, chat_id: int) -> Result:
        try:
            purchase = self.session.exec(
                select(Purchase)
                .where(Purchase.telegram_chat_id == chat_id)
                .where(Purchase.status == PurchaseStatus.awaiting_payment)
                .order_by(Purchase.created_at.desc())
            ).first()
        except SQLAlchemyError as exc:
            return self._store_error("find pending purchase by chat", exc, chat_id=chat_id)
        return success(purchase)

    def find_purchase_by_token(self, token: str) -> Result:
        """
        Resolve an initiation token to the purchase, its buyer and item title.

        The token is a bearer capability: whoever holds it may read this one
        purchase. Unknown tokens, tokens of finished purchases and tokens older
        than the configured TTL resolve to ``None``.
        """
        cutoff = datetime.utcnow() - timedelta(hours=settings.initiation_token_ttl_hours)

        try:
            row = self.session.exec(
                select(Purchase, User, Book.title, Bundle.title)
                .join(User, User.id == Purchase.user_id)
                .outerjoin(Book, and_(Purchase.item_type == ItemType.book, Book.id == Purchase.item_id))
                .outerjoin(Bundle, and_(Purchase.item_type == ItemType.bundle, Bundle.id == Purchase.item_id))
                .where(Purchase.initiation_token == token)
                .where(Purchase.status.not_in(TERMINAL_PURCHASE_STATUSES))
                .where(Purchase.created_at >= cutoff)
            ).first()
        except SQLAlchemyError as exc:
            return self._store_error("find purchase by token", exc)

        if row is None:
            return success(None)

        purchase, user, book_title, bundle_title = row
        return success({
            "purchase_id": purchase.id,
            "user_id": user.id,
            "user_email": user.email,
            "user_name": user.display_name,
            "item_type": purchase.item_type.value,
            "item_id": purchase.item_id,
            "item_title": book_title or bundle_title or "Unknown Item",
            "amount": purchase.amount,
            "status": purchase.status.value,
            "transaction_reference": purchase.transaction_reference,
            "created_at": purchase.created_at,
        })

    # -------------------------
    # UPDATE
    # -------------------------

    def update_purchase(self, purchase_id: int, patch: dict) -> Result:
        try:
            purchase = self.session.get(Purchase, purchase_id)
            if purchase is None:
                return failure("Purchase not found", ErrorCode.NOT_FOUND)

            for key, value in patch.items():
                if key in IMMUTABLE_FIELDS:
                    continue
                setattr(purchase, key, value)
            purchase.updated_at = _next_version(purchase.updated_at)

            self.session.add(purchase)
            self.session.commit()
            self.session.refresh(purchase)
        except SQLAlchemyError as exc:
            return self._store_error("update purchase", exc, purchase_id=purchase_id)

        return success(purchase)

    def update_purchase_with_version_check(self, purchase_id: int, patch: dict,
                                           expected_updated_at: datetime,
                                           also_add: Iterable = ()) -> Result:
        """
        Compare-and-swap write keyed on ``updated_at``.

        Succeeds only while the stored ``updated_at`` still equals
        ``expected_updated_at``. A ``STALE_WRITE`` failure means another writer
        got there first: re-read the row and decide again, never resend the
        same expected version.

        Rows in ``also_add`` are committed in the same transaction as the
        status write, so either both land or neither does.
        """
        try:
            expected_updated_at = as_naive_utc(expected_updated_at)
            values = {k: v for k, v in patch.items() if k not in IMMUTABLE_FIELDS}
            values["updated_at"] = _next_version(expected_updated_at)
        except (AttributeError, TypeError):
            return failure(
                f"Invalid expected_updated_at: {expected_updated_at!r}", ErrorCode.VALIDATION_ERROR
            )

        try:
            current = self.session.get(Purchase, purchase_id, populate_existing=True)
            if current is None:
                return failure("Purchase not found", ErrorCode.NOT_FOUND)
            old = previous_snapshot(current)

            outcome = self.session.execute(
                update(Purchase)
                .where(Purchase.id == purchase_id)
                .where(Purchase.updated_at == expected_updated_at)
                .values(**values)
                .execution_options(synchronize_session=False)
            )

            if outcome.rowcount == 0:
                self.session.rollback()
                logger.warning(
                    f"Stale write on purchase {purchase_id}: expected updated_at {expected_updated_at}"
                )
                return failure(
                    "Purchase was modified elsewhere; re-read it and retry",
                    ErrorCode.STALE_WRITE,
                )

            self.session.add_all(list(also_add))
            self.session.expire(current)
            self.session.refresh(current)
            record_change(self.session, Purchase.__tablename__, UPDATE, new=snapshot(current), old=old)
            self.session.commit()
            self.session.refresh(current)
        except SQLAlchemyError as exc:
            return self._store_error("update purchase with version check", exc, purchase_id=purchase_id)

        return success(current)

    # -------------------------
    # ADMIN AGGREGATES
    # -------------------------

    def get_purchase_count_by_status(self) -> Result:
        try:
            rows = self.session.exec(
                select(Purchase.status, func.count(Purchase.id)).group_by(Purchase.status)
            ).all()
        except SQLAlchemyError as exc:
            return self._store_error("count purchases by status", exc)

        counts = {status.value: 0 for status in PurchaseStatus}
        for status, count in rows:
            counts[PurchaseStatus(status).value] = count
        counts["total"] = sum(counts.values())
        return success(counts)

    def get_all_purchases(self, page: int = 1, limit: int = 20) -> Result:
        query = select(Purchase).order_by(Purchase.created_at.desc(), Purchase.id.desc())
        try:
            return success(paginate(session=self.session, query=query, page=page, limit=limit))
        except SQLAlchemyError as exc:
            return self._store_error("list purchases", exc, page=page)

    def get_purchases_by_status(self, status, page: int = 1, limit: int = 20) -> Result:
        try:
            status = PurchaseStatus(status)
        except ValueError:
            return failure(f"Unknown purchase status: {status}", ErrorCode.VALIDATION_ERROR)

        query = (
            select(Purchase)
            .where(Purchase.status == status)
            .order_by(Purchase.created_at.desc(), Purchase.id.desc())
        )
        try:
            return success(paginate(session=self.session, query=query, page=page, limit=limit))
        except SQLAlchemyError as exc:
            return self._store_error("list purchases by status", exc, status=status.value)
