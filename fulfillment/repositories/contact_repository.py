import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import and_, case, func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from fulfillment.constants.purchase_status import ItemType
from fulfillment.constants.request_status import OPEN_REQUEST_STATUSES, RequestStatus
from fulfillment.models.admin_contact import AdminContactInfo
from fulfillment.models.book import Book
from fulfillment.models.bundle import Bundle
from fulfillment.models.purchase_request import PurchaseRequest
from fulfillment.models.user import User
from fulfillment.utils.result import ErrorCode, Result, failure, success

logger = logging.getLogger(__name__)

# set once when the request is created; never patched afterwards
RESTRICTED_REQUEST_FIELDS = {"user_id", "item_id", "item_type", "amount"}

CONTACT_FIELDS = {"contact_type", "contact_value", "display_name", "is_active", "is_primary", "display_order"}


def request_to_dict(request: PurchaseRequest, **extra) -> dict:
    data = {
        "id": request.id,
        "user_id": request.user_id,
        "item_type": request.item_type.value,
        "item_id": request.item_id,
        "amount": request.amount,
        "status": request.status.value,
        "preferred_contact_method": (
            request.preferred_contact_method.value if request.preferred_contact_method else None
        ),
        "user_message": request.user_message,
        "admin_notes": request.admin_notes,
        "contacted_at": request.contacted_at,
        "responded_at": request.responded_at,
        "created_at": request.created_at,
        "updated_at": request.updated_at,
    }
    data.update(extra)
    return data


class ContactRepository:
    """Admin contact directory and buyer purchase requests."""

    def __init__(self, session: Session):
        self.session = session

    def _store_error(self, operation: str, exc: Exception, **context) -> Result:
        self.session.rollback()
        details = " ".join(f"{k}={v}" for k, v in context.items())
        logger.exception(f"Contact repository {operation} failed {details}".strip())
        return failure(f"Failed to {operation}: {exc}", ErrorCode.DATABASE_ERROR)

    # -------------------------
    # ADMIN CONTACTS
    # -------------------------

    def get_admin_contact_info(self, admin_id: int) -> Result:
        try:
            contacts = self.session.exec(
                select(AdminContactInfo)
                .where(AdminContactInfo.admin_id == admin_id)
                .order_by(AdminContactInfo.display_order, AdminContactInfo.id)
            ).all()
        except SQLAlchemyError as exc:
            return self._store_error("fetch admin contacts", exc, admin_id=admin_id)
        return success(list(contacts))

    def get_active_admin_contacts(self) -> Result:
        try:
            contacts = self.session.exec(
                select(AdminContactInfo)
                .where(AdminContactInfo.is_active == True)  # noqa: E712
                .order_by(
                    AdminContactInfo.is_primary.desc(),
                    AdminContactInfo.display_order,
                    AdminContactInfo.contact_type,
                )
            ).all()
        except SQLAlchemyError as exc:
            return self._store_error("fetch active admin contacts", exc)
        return success(list(contacts))

    def create_admin_contact_info(self, admin_id: int, data: dict) -> Result:
        try:
            contact = AdminContactInfo(admin_id=admin_id, **{k: v for k, v in data.items() if k in CONTACT_FIELDS})
            self.session.add(contact)
            self.session.commit()
            self.session.refresh(contact)
        except (SQLAlchemyError, ValueError) as exc:
            return self._store_error("create admin contact", exc, admin_id=admin_id)

        logger.info(f"Admin {admin_id} added {contact.contact_type.value} contact {contact.id}")
        return success(contact)

    def update_admin_contact_info(self, contact_id: int, data: dict) -> Result:
        try:
            contact = self.session.get(AdminContactInfo, contact_id)
            if contact is None:
                return failure("Contact not found", ErrorCode.NOT_FOUND)

            for key, value in data.items():
                if key in CONTACT_FIELDS:
                    setattr(contact, key, value)
            contact.updated_at = datetime.utcnow()

            self.session.add(contact)
            self.session.commit()
            self.session.refresh(contact)
        except SQLAlchemyError as exc:
            return self._store_error("update admin contact", exc, contact_id=contact_id)
        return success(contact)

    def delete_admin_contact_info(self, contact_id: int) -> Result:
        try:
            contact = self.session.get(AdminContactInfo, contact_id)
            if contact is None:
                return failure("Contact not found", ErrorCode.NOT_FOUND)
            self.session.delete(contact)
            self.session.commit()
        except SQLAlchemyError as exc:
            return self._store_error("delete admin contact", exc, contact_id=contact_id)
        return success(True)

    # -------------------------
    # PURCHASE REQUESTS
    # -------------------------

    def _joined_requests(self):
        return (
            select(PurchaseRequest, User, Book, Bundle)
            .join(User, User.id == PurchaseRequest.user_id)
            .outerjoin(Book, and_(PurchaseRequest.item_type == ItemType.book, Book.id == PurchaseRequest.item_id))
            .outerjoin(
                Bundle, and_(PurchaseRequest.item_type == ItemType.bundle, Bundle.id == PurchaseRequest.item_id)
            )
        )

    @staticmethod
    def _joined_row(row) -> dict:
        request, user, book, bundle = row
        item = book or bundle
        return request_to_dict(
            request,
            user={"id": user.id, "email": user.email, "name": user.display_name},
            item={
                "title": item.title if item else "Unknown Item",
                "author": book.author if book else None,
                "price": item.price if item else None,
            },
        )

    def get_purchase_requests(self, user_id: Optional[int] = None, limit: int = 50, offset: int = 0) -> Result:
        """Requests newest first, joined with buyer and item; all buyers when ``user_id`` is None."""
        query = self._joined_requests()
        if user_id is not None:
            query = query.where(PurchaseRequest.user_id == user_id)
        query = query.order_by(PurchaseRequest.created_at.desc(), PurchaseRequest.id.desc())

        try:
            rows = self.session.exec(query.offset(offset).limit(limit)).all()
        except SQLAlchemyError as exc:
            return self._store_error("list purchase requests", exc, user_id=user_id)
        return success([self._joined_row(row) for row in rows])

    def get_purchase_request_by_id(self, request_id: int) -> Result:
        try:
            request = self.session.get(PurchaseRequest, request_id)
        except SQLAlchemyError as exc:
            return self._store_error("fetch purchase request", exc, request_id=request_id)

        if request is None:
            return failure("Purchase request not found", ErrorCode.NOT_FOUND)
        return success(request)

    def find_open_request(self, user_id: int, item_type, item_id: int) -> Result:
        try:
            request = self.session.exec(
                select(PurchaseRequest)
                .where(PurchaseRequest.user_id == user_id)
                .where(PurchaseRequest.item_type == ItemType(item_type))
                .where(PurchaseRequest.item_id == item_id)
                .where(PurchaseRequest.status.in_(OPEN_REQUEST_STATUSES))
            ).first()
        except SQLAlchemyError as exc:
            return self._store_error("find open purchase request", exc, user_id=user_id, item_id=item_id)
        return success(request)

    def create_purchase_request(self, data: dict) -> Result:
        try:
            request = PurchaseRequest(**data)
            request.status = RequestStatus.pending
            self.session.add(request)
            self.session.commit()
            self.session.refresh(request)
        except (SQLAlchemyError, ValueError) as exc:
            return self._store_error("create purchase request", exc, user_id=data.get("user_id"))

        logger.info(f"Purchase request {request.id} created for user {request.user_id}")
        return success(request)

    def update_purchase_request(self, request_id: int, data: dict) -> Result:
        restricted = sorted(RESTRICTED_REQUEST_FIELDS.intersection(data))
        if restricted:
            return failure(f"Cannot update restricted fields: {', '.join(restricted)}", ErrorCode.FORBIDDEN)

        try:
            request = self.session.get(PurchaseRequest, request_id)
            if request is None:
                return failure("Purchase request not found", ErrorCode.NOT_FOUND)

            for key, value in data.items():
                if key in ("id", "created_at"):
                    continue
                setattr(request, key, value)
            request.updated_at = datetime.utcnow()

            self.session.add(request)
            self.session.commit()
            self.session.refresh(request)
        except SQLAlchemyError as exc:
            return self._store_error("update purchase request", exc, request_id=request_id)
        return success(request)

    def update_purchase_request_status(self, request_id: int, status, admin_notes: Optional[str] = None) -> Result:
        status = RequestStatus(status)
        now = datetime.utcnow()
        patch = {"status": status}
        if status == RequestStatus.contacted:
            patch["contacted_at"] = now
        elif status in (RequestStatus.approved, RequestStatus.rejected):
            patch["responded_at"] = now
        if admin_notes is not None:
            patch["admin_notes"] = admin_notes

        result = self.update_purchase_request(request_id, patch)
        if result.success:
            logger.info(f"Purchase request {request_id} -> {status.value}")
        return result

    def delete_purchase_request(self, request_id: int) -> Result:
        try:
            request = self.session.get(PurchaseRequest, request_id)
            if request is None:
                return failure("Purchase request not found", ErrorCode.NOT_FOUND)
            self.session.delete(request)
            self.session.commit()
        except SQLAlchemyError as exc:
            return self._store_error("delete purchase request", exc, request_id=request_id)
        return success(True)

    def get_purchase_request_stats(self) -> Result:
        columns = [
            func.count(PurchaseRequest.id).label("total"),
            *[
                func.sum(case((PurchaseRequest.status == status, 1), else_=0)).label(status.value)
                for status in RequestStatus
            ],
        ]
        try:
            row = self.session.exec(select(*columns)).one()
        except SQLAlchemyError as exc:
            return self._store_error("compute purchase request stats", exc)

        stats = {"total": row.total or 0}
        for status in RequestStatus:
            stats[status.value] = getattr(row, status.value) or 0
        return success(stats)
